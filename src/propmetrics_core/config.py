"""Run configuration loaded once from environment variables.

Source list precedence:
    1. DATASETS_CONFIG      - inline JSON list
    2. DATASETS_CONFIG_FILE - JSON file (default ./config/datasets.json)
    3. BIGQUERY_DATASET     - single-source fallback
"""
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
from zoneinfo import ZoneInfo

from .exceptions import ConfigError
from .sources.registry import SourceDescriptor, SourceRegistry


logger = logging.getLogger(__name__)


DEFAULT_DATASETS_FILE = "./config/datasets.json"
DEFAULT_TABLE_PREFIX = "events_"
SINK_KINDS = {"sheets", "sqlite"}
DEFAULT_REDIS_URL = "redis://localhost:6379"


@dataclass(frozen=True)
class RunConfig:
    """Immutable settings for one reporting run."""

    project_id: str
    sources: tuple[SourceDescriptor, ...]
    spreadsheet_id: Optional[str] = None
    bigquery_access_token: Optional[str] = None
    sheets_access_token: Optional[str] = None
    timezone: str = "Asia/Tokyo"
    sink: str = "sheets"
    db_path: Path = Path("data/report.db")
    default_months: int = 12

    @property
    def tzinfo(self) -> ZoneInfo:
        return _resolve_timezone(self.timezone)

    @property
    def secrets(self) -> list[Optional[str]]:
        return [self.bigquery_access_token, self.sheets_access_token]

    def registry(self) -> SourceRegistry:
        return SourceRegistry(self.sources)


def redact_text(text: str, secrets: list[Optional[str]]) -> str:
    if not text:
        return text
    redacted = text
    for secret in secrets:
        if secret:
            redacted = redacted.replace(secret, "[REDACTED]")
    return redacted


def _resolve_timezone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except Exception:
        logger.warning("Invalid REPORT_TIMEZONE '%s', using UTC", tz_name)
        return ZoneInfo("UTC")


def load_source_entries(env: Mapping[str, str]) -> list:
    """Resolve the raw source list from the environment.

    Raises:
        ConfigError: If no source configuration is found or it cannot be parsed
    """
    inline = env.get("DATASETS_CONFIG")
    if inline:
        try:
            return json.loads(inline)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Error parsing DATASETS_CONFIG: {exc}") from exc

    config_file = Path(env.get("DATASETS_CONFIG_FILE", DEFAULT_DATASETS_FILE))
    if config_file.exists():
        try:
            with open(config_file, encoding="utf-8") as handle:
                return json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigError(
                f"Error reading datasets config file {config_file}: {exc}"
            ) from exc

    dataset = env.get("BIGQUERY_DATASET")
    if dataset:
        return [
            {
                "name": "Default",
                "dataset": dataset,
                "tablePrefix": env.get("BIGQUERY_TABLE_PREFIX") or DEFAULT_TABLE_PREFIX,
                "description": "Default GA4 dataset",
                "enabled": True,
            }
        ]

    raise ConfigError(
        "No dataset configuration found. Please set DATASETS_CONFIG, "
        "DATASETS_CONFIG_FILE, or BIGQUERY_DATASET"
    )


def load_run_config(env: Optional[Mapping[str, str]] = None) -> RunConfig:
    """Build the RunConfig from environment variables.

    Args:
        env: Mapping to read from (defaults to os.environ)

    Raises:
        ConfigError: On missing/invalid settings
    """
    if env is None:
        env = os.environ

    project_id = env.get("PROJECT_ID")
    if not project_id:
        raise ConfigError("PROJECT_ID is not set")

    registry = SourceRegistry.from_config(load_source_entries(env))

    sink = env.get("REPORT_SINK", "sheets").lower()
    if sink not in SINK_KINDS:
        raise ConfigError(
            f"REPORT_SINK must be one of {sorted(SINK_KINDS)}, got '{sink}'"
        )

    spreadsheet_id = env.get("SPREADSHEET_ID")
    if sink == "sheets" and not spreadsheet_id:
        raise ConfigError("SPREADSHEET_ID is not set")

    try:
        default_months = int(env.get("REPORT_MONTHS", "12"))
    except ValueError as exc:
        raise ConfigError(f"REPORT_MONTHS must be an integer: {exc}") from exc

    return RunConfig(
        project_id=project_id,
        sources=registry.all_sources(),
        spreadsheet_id=spreadsheet_id,
        bigquery_access_token=env.get("BIGQUERY_ACCESS_TOKEN"),
        sheets_access_token=env.get("SHEETS_ACCESS_TOKEN"),
        timezone=env.get("REPORT_TIMEZONE", "Asia/Tokyo"),
        sink=sink,
        db_path=Path(env.get("REPORT_DB_PATH", "data/report.db")),
        default_months=default_months,
    )


def redis_url(env: Optional[Mapping[str, str]] = None) -> str:
    """Redis URL for the run lock (REDIS_URL)."""
    if env is None:
        env = os.environ
    return env.get("REDIS_URL") or DEFAULT_REDIS_URL
