"""calendar_import.core.config

Settings for the import engine.

- Typed dataclass ``ImportSettings`` with conservative coercion in
  ``from_dict`` (bad values fall back to defaults with a warning).
- ``load_settings()`` reads a YAML or JSON file and applies
  ``CALENDAR_IMPORT_*`` environment overrides on top.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ICS_BYTES = 50 * 1024 * 1024  # 50MB limit


@dataclass(frozen=True)
class ImportSettings:
    """Typed configuration for the import engine.

    Fields:
        days_back: preview window start, days before "now"
        days_ahead: preview window end, days after "now"
        max_occurrences: hard cap on anchors examined per recurrence rule
        success_threshold: minimum imported/submitted ratio for a successful batch
        fetch_timeout_seconds: bound on the provider event-list fetch
        submit_timeout_seconds: bound on the batch-create request
        sync_timeout_seconds: bound on the best-effort sync signal
        max_ics_bytes: largest ICS feed body accepted by the fetcher
        default_calendar_name: name used when an ICS file has no X-WR-CALNAME
        metadata_prefix: prefix for the opaque metadata keys attached on commit
        keyword_tables_path: optional YAML file replacing the classifier tables
        log_level: logging level name
    """

    days_back: int = 30
    days_ahead: int = 90
    max_occurrences: int = 1000
    success_threshold: float = 0.9
    fetch_timeout_seconds: float = 30.0
    submit_timeout_seconds: float = 60.0
    sync_timeout_seconds: float = 15.0
    max_ics_bytes: int = DEFAULT_MAX_ICS_BYTES
    default_calendar_name: str = "Imported Calendar"
    metadata_prefix: str = "calendar_import."
    keyword_tables_path: str | None = None
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ImportSettings:
        """Create settings from a plain mapping, applying defaults and validation.

        Numeric-like values are coerced; values outside their allowed range are
        replaced by the default and a warning is logged.
        """
        if data is None:
            data = {}
        defaults = cls()

        def _coerce_int(key: str, default: int, minimum: int) -> int:
            raw = data.get(key, default)
            try:
                value = int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default
            if value < minimum:
                logger.warning("Config %s=%d below minimum %d; using default %d", key, value, minimum, default)
                return default
            return value

        def _coerce_float(key: str, default: float) -> float:
            raw = data.get(key, default)
            try:
                value = float(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not a number; using default %s", key, raw, default)
                return default
            if value <= 0:
                logger.warning("Config %s=%s must be positive; using default %s", key, value, default)
                return default
            return value

        threshold = _coerce_float("success_threshold", defaults.success_threshold)
        if threshold > 1.0:
            logger.warning("success_threshold %s above 1.0; coercing to 1.0", threshold)
            threshold = 1.0

        keyword_path = data.get("keyword_tables_path")
        log_level = str(data.get("log_level") or defaults.log_level).upper()

        return cls(
            days_back=_coerce_int("days_back", defaults.days_back, 0),
            days_ahead=_coerce_int("days_ahead", defaults.days_ahead, 0),
            max_occurrences=_coerce_int("max_occurrences", defaults.max_occurrences, 1),
            success_threshold=threshold,
            fetch_timeout_seconds=_coerce_float("fetch_timeout_seconds", defaults.fetch_timeout_seconds),
            submit_timeout_seconds=_coerce_float("submit_timeout_seconds", defaults.submit_timeout_seconds),
            sync_timeout_seconds=_coerce_float("sync_timeout_seconds", defaults.sync_timeout_seconds),
            max_ics_bytes=_coerce_int("max_ics_bytes", defaults.max_ics_bytes, 1),
            default_calendar_name=str(data.get("default_calendar_name") or defaults.default_calendar_name),
            metadata_prefix=str(data.get("metadata_prefix") or defaults.metadata_prefix),
            keyword_tables_path=str(keyword_path) if keyword_path else None,
            log_level=log_level,
        )

    def to_dict(self) -> dict[str, Any]:
        """Plain mapping of all settings."""
        return asdict(self)


# Environment variable -> settings key
ENV_OVERRIDES: dict[str, str] = {
    "CALENDAR_IMPORT_DAYS_BACK": "days_back",
    "CALENDAR_IMPORT_DAYS_AHEAD": "days_ahead",
    "CALENDAR_IMPORT_MAX_OCCURRENCES": "max_occurrences",
    "CALENDAR_IMPORT_SUCCESS_THRESHOLD": "success_threshold",
    "CALENDAR_IMPORT_FETCH_TIMEOUT": "fetch_timeout_seconds",
    "CALENDAR_IMPORT_SUBMIT_TIMEOUT": "submit_timeout_seconds",
    "CALENDAR_IMPORT_SYNC_TIMEOUT": "sync_timeout_seconds",
    "CALENDAR_IMPORT_MAX_ICS_BYTES": "max_ics_bytes",
    "CALENDAR_IMPORT_DEFAULT_CALENDAR_NAME": "default_calendar_name",
    "CALENDAR_IMPORT_METADATA_PREFIX": "metadata_prefix",
    "CALENDAR_IMPORT_KEYWORDS_FILE": "keyword_tables_path",
    "CALENDAR_IMPORT_LOG_LEVEL": "log_level",
}


def settings_from_env(environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Collect settings overrides from ``CALENDAR_IMPORT_*`` environment variables.

    Args:
        environ: Mapping to read instead of ``os.environ`` (used by tests)

    Returns:
        Partial settings mapping suitable for ``ImportSettings.from_dict``
    """
    env = os.environ if environ is None else environ
    return {key: env[name] for name, key in ENV_OVERRIDES.items() if env.get(name)}


def _load_mapping(path: Path) -> dict[str, Any]:
    """Load a mapping from a YAML or JSON file, chosen by suffix."""
    text = path.read_text(encoding="utf-8")
    try:
        loaded = json.loads(text) if path.suffix.lower() == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Unable to parse settings file {path}: {exc}") from exc

    # safe_load returns None for empty files
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Settings file {path} must contain a mapping at top level")
    return loaded


def load_settings(path: str | Path | None = None, environ: dict[str, str] | None = None) -> ImportSettings:
    """Load settings from a YAML/JSON file plus environment overrides.

    Args:
        path: Optional settings file. Missing files fall back to defaults.
        environ: Optional environment mapping (defaults to ``os.environ``)

    Returns:
        ImportSettings instance

    Raises:
        ConfigurationError: If the file exists but cannot be parsed
    """
    data: dict[str, Any] = {}
    if path is not None:
        p = Path(path)
        if p.exists():
            data = _load_mapping(p)
            logger.info("Loaded import settings from %s", p)
        else:
            logger.info("Settings file %s not found; using defaults", p)

    data.update(settings_from_env(environ))
    settings = ImportSettings.from_dict(data)
    logger.debug("Import settings in use: %s", settings)
    return settings
