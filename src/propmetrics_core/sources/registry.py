"""Data source (GA4 property) descriptors and the enabled-source registry."""
import logging
from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import ConfigError


logger = logging.getLogger(__name__)


# Config key -> model attribute
REQUIRED_FIELDS = {"name": "name", "dataset": "id", "tablePrefix": "table_prefix"}


class SourceDescriptor(BaseModel):
    """One configured analytics property."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., description="Display identity, unique per registry")
    id: str = Field(..., alias="dataset", description="Warehouse dataset ID")
    table_prefix: str = Field(
        ..., alias="tablePrefix", description="Event table prefix (e.g., events_)"
    )
    description: str = Field("", description="Free-text description")
    enabled: bool = Field(True, description="Disabled sources are never queried")


def parse_source(raw: dict, index: int) -> SourceDescriptor:
    """Build a SourceDescriptor from a config entry.

    Raises:
        ConfigError: If a required field is missing or empty
    """
    if not isinstance(raw, dict):
        raise ConfigError(f"datasets[{index}] must be an object, got {type(raw).__name__}")

    missing = [
        key
        for key, attr in REQUIRED_FIELDS.items()
        if not raw.get(key) and not raw.get(attr)
    ]
    if missing:
        raise ConfigError(f"datasets[{index}] missing required field(s): {', '.join(missing)}")

    try:
        return SourceDescriptor.model_validate(raw)
    except PydanticValidationError as exc:
        raise ConfigError(f"datasets[{index}] is invalid: {exc}") from exc


class SourceRegistry:
    """Holds configured source descriptors for the lifetime of one run."""

    def __init__(self, sources: Iterable[SourceDescriptor]) -> None:
        self._sources = tuple(sources)

        if not self._sources:
            raise ConfigError(
                "No dataset configuration found. Set DATASETS_CONFIG, "
                "DATASETS_CONFIG_FILE, or BIGQUERY_DATASET"
            )

        seen: set[str] = set()
        for source in self._sources:
            if source.name in seen:
                raise ConfigError(f"Duplicate source name: {source.name}")
            seen.add(source.name)

    @classmethod
    def from_config(cls, entries: list) -> "SourceRegistry":
        if not isinstance(entries, list):
            raise ConfigError("Dataset configuration must be a JSON list")
        return cls(parse_source(raw, index) for index, raw in enumerate(entries))

    def all_sources(self) -> tuple[SourceDescriptor, ...]:
        return self._sources

    def enabled_sources(self) -> tuple[SourceDescriptor, ...]:
        """Return enabled sources in configuration order."""
        return tuple(source for source in self._sources if source.enabled)

    def log_summary(self) -> None:
        logger.info("Configured properties: %s", len(self._sources))
        for source in self._sources:
            logger.info(
                "  - %s: %s (%s)",
                source.name,
                source.id,
                "enabled" if source.enabled else "disabled",
            )
