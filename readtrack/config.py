import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV = "READTRACK_CONFIG"


@dataclass
class TrackerSettings:
    idle_timeout_ms: int = 120000       # 2 minutes without input -> pause
    autosave_interval_ms: int = 30000   # periodic save while active
    min_session_ms: int = 5000
    page_noise_ms: int = 2000
    closing_page_noise_ms: int = 1000
    recent_sessions_limit: int = 10

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if not isinstance(value, int) or value <= 0:
                raise ValueError(f"tracker.{f.name} must be a positive integer, got {value!r}")


@dataclass
class StorageSettings:
    backend: str = "sqlite"  # "sqlite" or "memory"
    db_path: str = "data/analytics.db"

    def __post_init__(self):
        if self.backend not in ("sqlite", "memory"):
            raise ValueError(f"storage.backend must be 'sqlite' or 'memory', got {self.backend!r}")


@dataclass
class LastPageSettings:
    path: str = "data/last_pages.json"
    debounce_ms: int = 500


@dataclass
class Settings:
    tracker: TrackerSettings = field(default_factory=TrackerSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    last_page: LastPageSettings = field(default_factory=LastPageSettings)
    log_level: str = "INFO"


def load_config(config_path: str | Path | None = None) -> dict:
    """Read the YAML config. A missing file means all defaults."""
    path = Path(config_path or os.environ.get(CONFIG_ENV, "config.yaml"))
    if not path.exists():
        logger.info("No config file at %s, using defaults", path)
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def settings_from_dict(config: dict[str, Any]) -> Settings:
    return Settings(
        tracker=TrackerSettings(**(config.get("tracker") or {})),
        storage=StorageSettings(**(config.get("storage") or {})),
        last_page=LastPageSettings(**(config.get("last_page") or {})),
        log_level=(config.get("logging") or {}).get("level", "INFO"),
    )


def load_settings(config_path: str | Path | None = None) -> Settings:
    return settings_from_dict(load_config(config_path))
