"""Engine configuration with JSON overrides."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class EngineConfig:
    """Tunable engine parameters."""

    backoff_threshold: int = 2
    backoff_extra_days: int = 1
    fire_detection_grace_seconds: float = 60.0
    daily_nudge_cap: int = 2
    min_spacing_hours: float = 6.0
    default_goal_nudge_time: str = "16:00"
    ledger_path: Optional[str] = None
    log_level: str = "INFO"

    def to_dict(self) -> dict:
        return asdict(self)


DEFAULT_CONFIG = EngineConfig()


def load_config(path: Optional[str] = None) -> EngineConfig:
    """Load config from a JSON file, merged over the defaults."""

    if path is None:
        return DEFAULT_CONFIG

    config_path = Path(path)
    if not config_path.exists():
        return DEFAULT_CONFIG

    with open(config_path, encoding="utf-8") as handle:
        try:
            stored = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Malformed config file {config_path}") from exc

    if not isinstance(stored, dict):
        raise ValueError("Config payload must be an object")

    known = {f.name for f in fields(EngineConfig)}
    unknown = sorted(set(stored) - known)
    if unknown:
        raise ValueError(f"Unknown config keys {unknown}")

    config = replace(DEFAULT_CONFIG, **stored)
    if config.backoff_threshold < 1:
        raise ValueError("backoff_threshold must be >= 1")
    if config.backoff_extra_days < 0:
        raise ValueError("backoff_extra_days must be >= 0")
    if config.daily_nudge_cap < 1:
        raise ValueError("daily_nudge_cap must be >= 1")
    if config.min_spacing_hours < 0:
        raise ValueError("min_spacing_hours must be >= 0")
    return config


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for scripts and demos."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
