"""
Object storage gateway for project files.

Keys are project-scoped:  <tenant_id>/<project_id>/<unix_ms>_<file_name>

LocalFileStorage keeps blobs under OBJECT_STORAGE_ROOT on disk; another
backend only has to implement the four ObjectStorage methods.

Usage:
    storage = get_storage()
    key = build_storage_key(tenant_id, project_id, "report.pdf")
    storage.put(key, data, content_type="application/pdf")
"""

from __future__ import annotations

import logging
import os
import re
import time
from abc import ABC, abstractmethod

from flask import current_app

logger = logging.getLogger(__name__)

EXTENSION_KEY = "consultflow.storage"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class StorageError(Exception):
    """Blob missing or the key escapes the storage root."""


def safe_file_name(file_name: str) -> str:
    """Strip directories and unsafe characters; never returns an empty name."""
    base = os.path.basename((file_name or "").replace("\\", "/"))
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._")
    return cleaned or "file"


def build_storage_key(tenant_id: int, project_id: int, file_name: str,
                      timestamp_ms: int | None = None) -> str:
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{tenant_id}/{project_id}/{timestamp_ms}_{safe_file_name(file_name)}"


class ObjectStorage(ABC):
    """Abstract blob store."""

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str | None = None) -> str:
        """Store ``data`` under ``key``; returns the key."""

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Return the blob; raises StorageError when missing."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the blob; missing keys are ignored."""

    @abstractmethod
    def url_for(self, key: str) -> str:
        """Return a fetchable reference for the blob."""


class LocalFileStorage(ObjectStorage):
    """Filesystem-backed store rooted at ``root``."""

    def __init__(self, root: str, url_prefix: str = "/api/v1/files") -> None:
        self.root = os.path.abspath(root)
        self.url_prefix = url_prefix.rstrip("/")

    def _path(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self.root, key))
        if os.path.commonpath([self.root, path]) != self.root:
            raise StorageError(f"Storage key escapes root: {key!r}")
        return path

    def put(self, key: str, data: bytes, content_type: str | None = None) -> str:
        path = self._path(key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as fh:
            fh.write(data)
        logger.debug("Stored %d bytes at %s (%s)", len(data), key, content_type)
        return key

    def get(self, key: str) -> bytes:
        path = self._path(key)
        if not os.path.isfile(path):
            raise StorageError(f"Object not found: {key}")
        with open(path, "rb") as fh:
            return fh.read()

    def delete(self, key: str) -> None:
        path = self._path(key)
        if os.path.isfile(path):
            os.remove(path)
            logger.debug("Deleted %s", key)

    def url_for(self, key: str) -> str:
        return f"{self.url_prefix}/{key}"


def init_storage(app, storage: ObjectStorage | None = None) -> ObjectStorage:
    if storage is None:
        storage = LocalFileStorage(app.config["OBJECT_STORAGE_ROOT"])
    app.extensions[EXTENSION_KEY] = storage
    return storage


def get_storage() -> ObjectStorage:
    return current_app.extensions[EXTENSION_KEY]
