"""Engine configuration — loads tunable constants from config/engine.yaml.

Provides a single ``EngineConfig`` dataclass that is loaded once at
startup and then injected into the services that need it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import yaml

from battlemap.util import constants

log = logging.getLogger(__name__)

DEFAULT_ENGINE_CONFIG_PATH = "config/engine.yaml"


@dataclass
class EngineConfig:
    """All tunable timeline-engine constants.

    Loaded from ``config/engine.yaml``.  Every field has a sensible
    default so the engine can start even without the file.
    """

    # -- Playback ----------------------------------------------------
    default_animation_ms: float = constants.DEFAULT_ANIMATION_MS
    min_animation_speed: float = constants.MIN_ANIMATION_SPEED
    max_animation_speed: float = constants.MAX_ANIMATION_SPEED
    auto_execute_on_advance: bool = True
    concurrent_token_animations: bool = True

    # -- Battle log --------------------------------------------------
    battle_log_max_entries: int = constants.BATTLE_LOG_MAX_ENTRIES

    # -- Network -----------------------------------------------------
    rest_host: str = "0.0.0.0"
    rest_port: int = 8080


def load_engine_config(path: str = DEFAULT_ENGINE_CONFIG_PATH) -> EngineConfig:
    """Load engine configuration from a YAML file.

    Missing keys fall back to dataclass defaults.  If the file does not
    exist, a warning is logged and pure defaults are returned.
    """
    p = Path(path)
    if not p.exists():
        log.warning("Engine config not found at %s, using defaults", p)
        return EngineConfig()

    with p.open() as f:
        raw = yaml.safe_load(f) or {}

    log.info("Loaded engine config from %s (%d keys)", p, len(raw))

    unknown = sorted(k for k in raw if k not in EngineConfig.__dataclass_fields__)
    if unknown:
        log.warning("Ignoring unknown engine config keys: %s", ", ".join(unknown))

    cfg = EngineConfig(**{
        k: v for k, v in raw.items()
        if k in EngineConfig.__dataclass_fields__
    })
    if cfg.min_animation_speed > cfg.max_animation_speed:
        raise ValueError(
            f"min_animation_speed ({cfg.min_animation_speed}) exceeds "
            f"max_animation_speed ({cfg.max_animation_speed})"
        )
    return cfg
