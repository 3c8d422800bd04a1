"""examsync.config_loader

Config loader for examsync.

- Reads a YAML mapping with PyYAML (JSON files parse as YAML too).
- Exposes a typed dataclass `Config` and a `load_config()` helper that accepts
  an optional path override.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from examsync.core.timezone_utils import DEFAULT_SCHOOL_TIMEZONE, normalize_timezone_name

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV_VAR = "EXAMSYNC_CONFIG"
DEFAULT_CONFIG_PATH = Path("~/.config/examsync/config.yaml")
DEFAULT_STATE_PATH = "~/.local/share/examsync/state.json"


@dataclass
class Config:
    """Typed configuration for examsync.

    Fields:
        ical_url: schulNetz (or other) iCal subscription link, optional
        school_timezone: IANA zone for floating times and day windows
        lesson_window_days: days ahead to import lessons (1..120)
        event_window_days: days ahead to import school events (1..366)
        import_events: whether sync imports general school events
        connect_timeout_seconds: HTTP connect timeout
        read_timeout_seconds: HTTP read timeout
        state_path: JSON file used by JsonSyncStore
        log_level: logging level name
    """

    ical_url: str | None = None
    school_timezone: str = DEFAULT_SCHOOL_TIMEZONE
    lesson_window_days: int = 35
    event_window_days: int = 180
    import_events: bool = True
    connect_timeout_seconds: float = 15.0
    read_timeout_seconds: float = 20.0
    state_path: str = DEFAULT_STATE_PATH
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Config:
        """Create Config from a plain mapping, applying defaults and validation.

        Numeric values are coerced, window sizes are clamped into their allowed
        ranges and unknown time zones fall back to Europe/Zurich, logging a
        warning whenever a value is replaced.
        """
        if data is None:
            data = {}

        def _coerce_int(key: str, default: int, minimum: int, maximum: int) -> int:
            raw = data.get(key, default)
            try:
                value = int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default
            if value < minimum:
                logger.warning("%s %d below minimum; coercing to %d", key, value, minimum)
                return minimum
            if value > maximum:
                logger.warning("%s %d above maximum; coercing to %d", key, value, maximum)
                return maximum
            return value

        def _coerce_float(key: str, default: float) -> float:
            raw = data.get(key, default)
            try:
                value = float(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not a number; using default %s", key, raw, default)
                return default
            if value <= 0:
                logger.warning("Config %s=%r must be positive; using default %s", key, raw, default)
                return default
            return value

        ical_url = data.get("ical_url")
        if ical_url is not None:
            ical_url = str(ical_url).strip() or None

        tz_raw = data.get("school_timezone", DEFAULT_SCHOOL_TIMEZONE)
        school_timezone = normalize_timezone_name(str(tz_raw)) if tz_raw else None
        if school_timezone is None:
            logger.warning(
                "Config school_timezone=%r is unknown; using %s", tz_raw, DEFAULT_SCHOOL_TIMEZONE
            )
            school_timezone = DEFAULT_SCHOOL_TIMEZONE

        import_events = data.get("import_events", True)
        if isinstance(import_events, str):
            import_events = import_events.strip().lower() in ("1", "true", "yes", "on")

        state_path = data.get("state_path") or DEFAULT_STATE_PATH

        log_level = data.get("log_level", "INFO")
        log_level = str(log_level).upper() if log_level is not None else "INFO"

        return cls(
            ical_url=ical_url,
            school_timezone=school_timezone,
            lesson_window_days=_coerce_int("lesson_window_days", 35, 1, 120),
            event_window_days=_coerce_int("event_window_days", 180, 1, 366),
            import_events=bool(import_events),
            connect_timeout_seconds=_coerce_float("connect_timeout_seconds", 15.0),
            read_timeout_seconds=_coerce_float("read_timeout_seconds", 20.0),
            state_path=str(state_path),
            log_level=log_level,
        )


def _load_yaml(path: Path) -> Any:
    """Load a YAML document; empty files yield an empty mapping."""
    try:
        loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"Config file {path} is not valid YAML: {exc}") from exc
    if loaded is None:
        return {}
    return loaded


def load_config(path: str | None = None) -> Config:
    """Load configuration from a YAML file and return a Config instance.

    Args:
        path: Optional path to the config file. Defaults to $EXAMSYNC_CONFIG,
              else ~/.config/examsync/config.yaml.

    Returns:
        Config dataclass instance with values from file (or defaults).

    Behavior:
    - If file is missing: returns Config() with defaults.
    - If file exists but top-level is not a mapping: raises ValueError.
    """
    if path:
        p = Path(path).expanduser()
    elif os.environ.get(CONFIG_PATH_ENV_VAR):
        p = Path(os.environ[CONFIG_PATH_ENV_VAR]).expanduser()
    else:
        p = DEFAULT_CONFIG_PATH.expanduser()

    logger.debug("Attempting to load config from %s", p)
    if not p.exists():
        logger.info("Config file %s not found; using defaults", p)
        return Config()

    raw = _load_yaml(p)
    if not isinstance(raw, dict):
        logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, raw)
        raise ValueError("Config file must contain a mapping at top level")  # noqa: TRY004
    cfg = Config.from_dict(raw)
    logger.info("Loaded configuration from %s", p)
    logger.debug("Configuration values: %s", cfg)
    return cfg
