"""Battle-map timeline server entry point.

Initializes all components and serves the REST API:
1. Load configuration (config/engine.yaml)
2. Create engine services (object store, effect lifecycle, executor, timeline)
3. Wire event handlers
4. Start the REST API with uvicorn

Usage:
    python -m battlemap.main [--config config/engine.yaml]
    # or via entry point:
    battlemap
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from battlemap.engine.action_executor import ActionExecutor
from battlemap.engine.animation import AnimationRegistry
from battlemap.engine.battle_log import BattleLog
from battlemap.engine.effect_lifecycle import EffectLifecycle
from battlemap.engine.object_store import MapObjectStore
from battlemap.engine.timeline_service import TimelineService
from battlemap.loaders.engine_config_loader import (
    DEFAULT_ENGINE_CONFIG_PATH,
    EngineConfig,
    load_engine_config,
)
from battlemap.util.events import CombatEnded, CombatStarted, EventBus

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Container for all services (makes passing around easier)
# ---------------------------------------------------------------------------


@dataclass
class Services:
    """Holds references to all engine services."""

    engine_config: Optional[EngineConfig] = None
    event_bus: Optional[EventBus] = None
    object_store: Optional[MapObjectStore] = None
    lifecycle: Optional[EffectLifecycle] = None
    animations: Optional[AnimationRegistry] = None
    battle_log: Optional[BattleLog] = None
    executor: Optional[ActionExecutor] = None
    timeline_service: Optional[TimelineService] = None


# ===================================================================
# 1. Create engine services
# ===================================================================


def create_services(config: EngineConfig | None = None,
                    object_store: MapObjectStore | None = None,
                    animations: AnimationRegistry | None = None) -> Services:
    """Instantiate all engine services with proper dependency injection.

    Wiring order matters: services that are injected into others are created first.

    Args:
        config: Engine configuration (defaults if None).
        object_store: Existing store to drive (a fresh one if None).
        animations: Animation registry (sleep-only playback if None).

    Returns:
        Populated :class:`Services` container.
    """
    log.info("Creating services …")

    cfg = config or EngineConfig()
    event_bus = EventBus()
    store = object_store if object_store is not None else MapObjectStore()
    lifecycle = EffectLifecycle(store, event_bus)
    registry = animations if animations is not None else AnimationRegistry()
    battle_log = BattleLog(max_entries=cfg.battle_log_max_entries)
    executor = ActionExecutor(lifecycle, registry, battle_log, event_bus, cfg)
    timeline_service = TimelineService(lifecycle, executor, event_bus, cfg)

    log.info("  all services created")

    return Services(
        engine_config=cfg,
        event_bus=event_bus,
        object_store=store,
        lifecycle=lifecycle,
        animations=registry,
        battle_log=battle_log,
        executor=executor,
        timeline_service=timeline_service,
    )


# ===================================================================
# 2. Wire up event handlers
# ===================================================================


def wire_events(services: Services) -> None:
    """Register cross-cutting event handlers on the EventBus.

    A new combat starts with an empty battle log.
    """
    log.info("Wiring event handlers …")
    bus = services.event_bus

    bus.on(CombatStarted, lambda evt: services.battle_log.clear()
           if not evt.reactivated else None)
    bus.on(CombatEnded, lambda evt: log.info(
        "  combat on map %s ended after %d rounds", evt.map_id, evt.retired_rounds))

    log.info("  event handlers registered")


# ===================================================================
# 3. Serve
# ===================================================================


async def serve(services: Services) -> None:
    """Run the REST API until uvicorn receives a shutdown signal."""
    import uvicorn

    from battlemap.network.rest_api import create_app

    cfg = services.engine_config
    app = create_app(services)
    server = uvicorn.Server(uvicorn.Config(
        app,
        host=cfg.rest_host,
        port=cfg.rest_port,
        log_level="info",
        access_log=False,
    ))
    log.info("REST API listening on http://%s:%d", cfg.rest_host, cfg.rest_port)
    await server.serve()
    log.info("  goodbye")


# ===================================================================
# Entry points
# ===================================================================


async def _start(config_path: str = DEFAULT_ENGINE_CONFIG_PATH) -> None:
    """Initialize and run all server components."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    log.info("=== Battle map timeline starting ===")

    config = load_engine_config(config_path)
    services = create_services(config)
    wire_events(services)
    await serve(services)


def main() -> None:
    """Entry point for the timeline server."""
    parser = argparse.ArgumentParser(description="Battle-map combat timeline server")
    parser.add_argument("--config", default=DEFAULT_ENGINE_CONFIG_PATH,
                        help="Path to the engine YAML config")
    args = parser.parse_args()
    asyncio.run(_start(config_path=args.config))


if __name__ == "__main__":
    main()
