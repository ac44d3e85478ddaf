"""
Typed view over Agent.model_config.

The stored JSON is free-form; the only key the engine relies on is the model
identifier.  Everything else is kept as ``extensions`` and forwarded as-is.

    cfg = AgentModelConfig.parse({"model": "gpt-4o-mini", "top_p": 0.9})
    cfg.model_identifier   # "gpt-4o-mini"
    cfg.extensions         # {"top_p": 0.9}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from consultflow.core.exceptions import ValidationError

MODEL_KEY = "model"


@dataclass(frozen=True)
class AgentModelConfig:
    model_identifier: str
    extensions: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def parse(cls, raw: Any, *, default_model: str | None = None) -> "AgentModelConfig":
        """Build a config from the stored JSON blob.

        Args:
            raw: ``Agent.model_config`` (dict or None).
            default_model: Used when the blob carries no model identifier.

        Raises:
            ValidationError: raw is not a mapping, or no usable model identifier.
        """
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ValidationError(
                "model_config must be an object",
                details={"model_config": type(raw).__name__},
            )
        model = raw.get(MODEL_KEY)
        if model is not None and not isinstance(model, str):
            raise ValidationError(
                "model_config.model must be a string",
                details={"model": repr(model)},
            )
        model = (model or "").strip() or (default_model or "").strip()
        if not model:
            raise ValidationError(
                "Agent model_config has no model identifier",
                details={"model_config": raw},
            )
        extensions = {k: v for k, v in raw.items() if k != MODEL_KEY}
        return cls(model_identifier=model, extensions=extensions)

    def to_dict(self) -> dict:
        return {MODEL_KEY: self.model_identifier, **self.extensions}
