"""
Configuration model.

Defines the runtime configuration of the watch service and the persisted
user settings record. Supports loading from a JSON config file with the
service URL and database URL overridable from environment variables.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional


API_BASE = "https://classes.cornell.edu/api/2.0"
DEFAULT_DB_URL = "sqlite:///seatwatch.db"

POLLING_OPTIONS = (10, 30, 60, 300)
DEFAULT_POLLING_INTERVAL = 60


def validate_interval(seconds: int) -> int:
    """Return ``seconds`` if it is one of the supported polling cadences."""
    if seconds not in POLLING_OPTIONS:
        raise ValueError(
            f"Unsupported polling interval {seconds!r}. "
            f"Choose one of: {list(POLLING_OPTIONS)}"
        )
    return seconds


@dataclass
class Settings:
    """User settings persisted between runs.

    Attributes:
        sound_enabled: Play a continuous tone when a section opens.
        notify_enabled: Send one system notification per alert batch.
        polling_interval: Seconds between polling ticks (see POLLING_OPTIONS).
    """

    sound_enabled: bool = True
    notify_enabled: bool = True
    polling_interval: int = DEFAULT_POLLING_INTERVAL

    @classmethod
    def from_stored(
        cls,
        sound_enabled: Optional[bool],
        notify_enabled: Optional[bool],
        polling_interval: Optional[int],
    ) -> Settings:
        """Build settings from stored values, falling back on bad data."""
        interval = polling_interval
        if interval not in POLLING_OPTIONS:
            interval = DEFAULT_POLLING_INTERVAL
        return cls(
            sound_enabled=True if sound_enabled is None else bool(sound_enabled),
            notify_enabled=True if notify_enabled is None else bool(notify_enabled),
            polling_interval=interval,
        )


@dataclass
class WatchConfig:
    """Runtime configuration for a WatchService.

    Attributes:
        api_base: Base URL of the class catalog API.
        db_url: SQLAlchemy URL of the state database.
        request_timeout: Per-request HTTP timeout in seconds.
        min_request_interval: Minimum spacing between two catalog requests.
        debounce_delay: Settling window for search input, in seconds.
        dismiss_window: How long a dismissed alert stays suppressed.
        default_polling_interval: Cadence used when no setting is stored.
    """

    api_base: str = API_BASE
    db_url: str = DEFAULT_DB_URL
    request_timeout: float = 10.0
    min_request_interval: float = 1.0
    debounce_delay: float = 0.4
    dismiss_window: float = 300.0
    default_polling_interval: int = DEFAULT_POLLING_INTERVAL

    def __post_init__(self) -> None:
        validate_interval(self.default_polling_interval)
        if self.min_request_interval < 0:
            raise ValueError("min_request_interval must not be negative")
        if self.debounce_delay < 0:
            raise ValueError("debounce_delay must not be negative")


def load_config(config_path: Optional[str | Path] = None) -> WatchConfig:
    """Load a WatchConfig from an optional JSON file and the environment.

    Keys in the JSON file match the WatchConfig attribute names; unknown
    keys are ignored. ``SEATWATCH_API_BASE`` and ``SEATWATCH_DB_URL``
    override whatever the file says.

    Args:
        config_path: Path to a JSON config file, or None for defaults.

    Returns:
        A fully populated WatchConfig instance.

    Raises:
        FileNotFoundError: If config_path is given but does not exist.
        json.JSONDecodeError: If the JSON is malformed.
        ValueError: If a value is out of range.
    """
    raw: dict[str, Any] = {}
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            raise ValueError(f"Config file must contain a JSON object: {path}")

    defaults = WatchConfig.__dataclass_fields__
    values = {key: raw[key] for key in defaults if key in raw}

    # --- Environment overrides ---
    if os.environ.get("SEATWATCH_API_BASE"):
        values["api_base"] = os.environ["SEATWATCH_API_BASE"]
    if os.environ.get("SEATWATCH_DB_URL"):
        values["db_url"] = os.environ["SEATWATCH_DB_URL"]

    return WatchConfig(**values)
