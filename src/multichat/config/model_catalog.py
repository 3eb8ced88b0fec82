"""
Model catalog configuration.

The catalog is the fixed, enumerated set of models a session may select.
Each entry carries presentation metadata (title, description) and the
provider resolution used to build its streaming adapter.
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from ..clients import get_supported_providers

logger = logging.getLogger(__name__)


class UnknownModelError(LookupError):
    """A model identifier is not part of the catalog."""

    def __init__(self, model_id: str, known: list[str] | None = None):
        self.model_id = model_id
        self.known = known or []
        message = f"Unknown model '{model_id}'"
        if self.known:
            message += f" (expected one of: {', '.join(self.known)})"
        super().__init__(message)


class ModelEntry(BaseModel):
    """One selectable model."""

    model_id: str = Field(..., description="Catalog identifier")
    title: str = Field(..., description="Display title")
    description: str = Field(..., description="Display description")
    provider: str = Field(..., description="Provider serving the model")
    provider_model: str = Field(..., description="Model name sent upstream")
    max_tokens: int | None = Field(
        None, ge=1, le=32000, description="Per-model cap on generated tokens"
    )
    temperature: float | None = Field(
        None, ge=0.0, le=2.0, description="Per-model sampling temperature"
    )

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v):
        provider = v.lower().strip()
        if provider not in get_supported_providers():
            raise ValueError(
                f"Provider must be one of {get_supported_providers()}, got '{v}'"
            )
        return provider

    @field_validator("model_id", "provider_model")
    @classmethod
    def validate_identifier(cls, v):
        if not v or not v.strip():
            raise ValueError("Model identifiers cannot be empty")
        return v.strip()


DEFAULT_ENTRIES: tuple[ModelEntry, ...] = (
    ModelEntry(
        model_id="chatgpt",
        title="ChatGPT Turbo",
        description=(
            "GPT-3.5 Turbo is a fast and efficient language model suitable "
            "for a wide range of tasks."
        ),
        provider="openai",
        provider_model="gpt-3.5-turbo",
    ),
    ModelEntry(
        model_id="claude",
        title="Claude",
        description=(
            "Claude is an AI assistant created by Anthropic to be helpful, "
            "harmless, and honest."
        ),
        provider="anthropic",
        provider_model="claude-3-opus-20240229",
    ),
    ModelEntry(
        model_id="gemini",
        title="Gemini",
        description=(
            "Gemini is Google's largest and most capable AI model, with strong "
            "performance across a wide range of tasks."
        ),
        provider="google",
        provider_model="gemini-pro",
    ),
    ModelEntry(
        model_id="local",
        title="Local Model",
        description="Whichever model is currently loaded in LM Studio on this machine.",
        provider="lmstudio",
        provider_model="local-model",
    ),
)


class ModelCatalog(BaseModel):
    """Ordered, immutable set of catalog entries keyed by model id."""

    entries: list[ModelEntry] = Field(
        default_factory=lambda: list(DEFAULT_ENTRIES), min_length=1
    )

    @model_validator(mode="after")
    def validate_unique_ids(self):
        seen: set[str] = set()
        for entry in self.entries:
            if entry.model_id in seen:
                raise ValueError(f"Duplicate model id in catalog: {entry.model_id}")
            seen.add(entry.model_id)
        return self

    def model_ids(self) -> list[str]:
        return [entry.model_id for entry in self.entries]

    def get(self, model_id: str) -> ModelEntry:
        """
        Look up a catalog entry.

        Raises:
            UnknownModelError: If the id is not in the catalog
        """
        for entry in self.entries:
            if entry.model_id == model_id:
                return entry
        raise UnknownModelError(model_id, self.model_ids())

    def __contains__(self, model_id: object) -> bool:
        return any(entry.model_id == model_id for entry in self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @classmethod
    def from_yaml(cls, config_path: Path) -> "ModelCatalog":
        """Load a catalog from a YAML file with a top-level ``models`` list."""
        try:
            with open(config_path, encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in model catalog: {e}") from e

        catalog = cls.model_validate({"entries": config_data.get("models", [])})
        logger.info(f"Loaded {len(catalog)} models from {config_path}")
        return catalog


def load_model_catalog(config_path: Path | str | None = None) -> ModelCatalog:
    """Load the catalog from ``config_path`` or fall back to the built-in one."""
    if config_path is None:
        return ModelCatalog()
    return ModelCatalog.from_yaml(Path(config_path))
