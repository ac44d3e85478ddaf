"""
ConsultFlow — identity and API-key middleware.

Provides:
    - API key authentication via X-API-Key header or ?api_key= query param
    - Role-based access control decorator for API key roles
    - The acting user as set by the upstream gateway

Identity model:
    The engine does not manage users.  The gateway in front of it forwards
    the authenticated user in two headers:

        X-User-Id     — opaque user id (compared against Lead/Project owner_id)
        X-User-Roles  — comma-separated role names

    A user is "elevated" (may approve any phase) when one of their roles is
    listed in ELEVATED_ROLES.

Configuration (env vars / app config):
    API_KEYS          — comma-separated "<key>:<role>" pairs, role admin|editor|viewer
    API_AUTH_ENABLED  — "false" disables the API key check (development only)
    ELEVATED_ROLES    — comma-separated role names, default "admin"
"""

import functools
import logging
from typing import Optional

from flask import current_app, g, jsonify, request

logger = logging.getLogger(__name__)

ROLES = {"admin", "editor", "viewer"}

ROLE_HIERARCHY = {
    "admin": {"admin", "editor", "viewer"},
    "editor": {"editor", "viewer"},
    "viewer": {"viewer"},
}

_FALSY = ("false", "0", "no", "off")


def _split(raw) -> list[str]:
    if not raw:
        return []
    if isinstance(raw, (list, tuple, set, frozenset)):
        return [str(r).strip() for r in raw if str(r).strip()]
    return [part.strip() for part in str(raw).split(",") if part.strip()]


def parse_api_keys(raw: str) -> dict[str, str]:
    """Parse "key1:admin,key2:viewer" into {key: role}; bare keys are viewers."""
    keys = {}
    for entry in _split(raw):
        if ":" in entry:
            key, role = entry.rsplit(":", 1)
            role = role.strip().lower()
            if role not in ROLES:
                logger.warning("Unknown role '%s' for API key, defaulting to 'viewer'", role)
                role = "viewer"
            keys[key.strip()] = role
        else:
            keys[entry] = "viewer"
    return keys


def _is_auth_enabled(app=None) -> bool:
    value = (app or current_app).config.get("API_AUTH_ENABLED", "true")
    return str(value).lower() not in _FALSY


def _get_api_key_from_request() -> Optional[str]:
    key = request.headers.get("X-API-Key", "").strip()
    if key:
        return key
    return request.args.get("api_key", "").strip() or None


# ── Acting user ──────────────────────────────────────────────────────────────


def current_user_id() -> Optional[str]:
    """User id forwarded by the gateway, or None for anonymous calls."""
    return request.headers.get("X-User-Id", "").strip() or None


def current_roles() -> set[str]:
    return {r.lower() for r in _split(request.headers.get("X-User-Roles", ""))}


def is_elevated() -> bool:
    """True when the acting user holds one of ELEVATED_ROLES."""
    elevated = {r.lower() for r in _split(current_app.config.get("ELEVATED_ROLES", "admin"))}
    return bool(current_roles() & elevated)


# ── Role decorator ───────────────────────────────────────────────────────────


def require_role(minimum_role: str):
    """
    Decorator: require a minimum API key role.

    Usage:
        @tenant_bp.route("", methods=["POST"])
        @require_role("admin")
        def create_tenant(): ...
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user_role = getattr(g, "current_user_role", None)
            if not user_role:
                return jsonify({"error": "Authentication required"}), 401

            if minimum_role not in ROLE_HIERARCHY.get(user_role, set()):
                logger.warning(
                    "Access denied: role '%s' tried to access '%s'-level endpoint %s",
                    user_role, minimum_role, request.path,
                )
                return jsonify({"error": "Insufficient permissions"}), 403

            return f(*args, **kwargs)
        return decorated
    return decorator


# ── before_request hook installer ────────────────────────────────────────────


def init_auth(app):
    """
    Install the API key check on /api/v1/* routes.

    Health probes and CORS pre-flight requests are never checked.
    """
    @app.before_request
    def _before_request_auth():
        if not request.path.startswith("/api/v1/"):
            return None
        if request.path.startswith("/api/v1/health"):
            return None
        if request.method == "OPTIONS":
            return None

        if not _is_auth_enabled():
            g.current_user_role = "admin"
            g.api_key = "dev-mode"
            return None

        api_key = _get_api_key_from_request()
        if not api_key:
            return jsonify({"error": "Authentication required. Provide X-API-Key header."}), 401

        api_keys = parse_api_keys(current_app.config.get("API_KEYS", ""))
        if not api_keys:
            logger.error("API_KEYS is not configured but API_AUTH_ENABLED=true")
            return jsonify({"error": "Server authentication not configured"}), 500

        role = api_keys.get(api_key)
        if role is None:
            logger.warning("Invalid API key attempt: %s...", api_key[:8])
            return jsonify({"error": "Invalid API key"}), 401

        g.current_user_role = role
        g.api_key = api_key
        return None

    logger.info("Auth middleware installed (enabled=%s)", _is_auth_enabled(app))
