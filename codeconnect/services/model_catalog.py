"""
Catalog of LLM models offered in the chat model selector.
"""

import json
from typing import Any, Optional

from codeconnect.core.config import ModelSettings
from codeconnect.core.constants import DEFAULT_MODEL, DEFAULT_MODELS
from codeconnect.core.logging import get_logger

logger = get_logger(__name__)


def parse_models(raw: Optional[str]) -> list[str]:
    """
    Parse a model list from configuration.

    Accepts a JSON array (``["a/b", "c/d"]``) or a comma separated string.
    Falls back to the default list when unset or unparsable.
    """
    if not raw:
        return list(DEFAULT_MODELS)

    raw = raw.strip()
    if raw.startswith("["):
        try:
            models = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Invalid model list, using defaults", error=str(e))
            return list(DEFAULT_MODELS)
        if not isinstance(models, list):
            return list(DEFAULT_MODELS)
        return [str(m).strip() for m in models if str(m).strip()]

    return [m.strip() for m in raw.split(",") if m.strip()]


class ModelCatalog:
    """Resolves available and default models from settings."""

    def __init__(self, config: Optional[ModelSettings] = None) -> None:
        self.config = config or ModelSettings()

    def available_models(self) -> list[str]:
        return parse_models(self.config.available_models)

    def default_model(self) -> str:
        return self.config.default_model or DEFAULT_MODEL

    def is_model_available(self, model: str) -> bool:
        return model in self.available_models()

    def fallback_model(self, preferred: Optional[str] = None) -> str:
        """Preferred model if offered, else the default, else the first offered model."""
        if preferred and self.is_model_available(preferred):
            return preferred

        default = self.default_model()
        if self.is_model_available(default):
            return default

        models = self.available_models()
        return models[0] if models else DEFAULT_MODEL

    def model_options(self) -> list[dict[str, Any]]:
        return [
            {"value": model, "label": model, "provider": model.split("/")[0]}
            for model in self.available_models()
        ]

    def to_api(self) -> dict[str, Any]:
        return {"models": self.available_models(), "defaultModel": self.default_model()}
