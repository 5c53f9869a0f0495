"""REST API — FastAPI application over the timeline engine.

Usage::

    from battlemap.network.rest_api import create_app

    app = create_app(services)
    # Start with uvicorn (see battlemap.main)
"""

from __future__ import annotations

import logging
from typing import Any, Optional, TYPE_CHECKING

from fastapi import FastAPI, HTTPException, Path, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from battlemap.network.rest_models import (
    AddActionRequest,
    AddActionResponse,
    AnimationSpeedRequest,
    CombatStateResponse,
    EffectResponse,
    GoToRoundRequest,
    MapObjectModel,
    StartCombatRequest,
    UpdateActionRequest,
)
from battlemap.network.serialization import (
    log_entry_to_dict,
    map_object_from_dict,
    map_object_to_dict,
    timeline_to_dict,
)

if TYPE_CHECKING:
    from battlemap.main import Services

log = logging.getLogger(__name__)


def create_app(services: "Services") -> FastAPI:
    """Factory: create and return a configured FastAPI application.

    The ``services`` reference is captured by closure so every endpoint
    can reach the engine without global state.
    """
    app = FastAPI(title="Battle Map Timeline", version="1.0.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValueError)
    async def _value_error(request: Request, exc: ValueError) -> JSONResponse:
        log.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    timeline = services.timeline_service

    def _state() -> dict[str, Any]:
        return {
            "current_round": timeline.current_round,
            "is_active": timeline.is_active,
            "animation_speed": timeline.animation_speed,
            "timeline": timeline_to_dict(timeline.timeline),
        }

    # =================================================================
    # Combat
    # =================================================================

    @app.get("/api/combat", response_model=CombatStateResponse)
    async def get_combat() -> dict[str, Any]:
        return _state()

    @app.post("/api/combat/start", response_model=CombatStateResponse)
    async def start_combat(body: StartCombatRequest) -> dict[str, Any]:
        timeline.start_combat(body.map_id)
        return _state()

    @app.post("/api/combat/end", response_model=CombatStateResponse)
    async def end_combat() -> dict[str, Any]:
        timeline.end_combat()
        return _state()

    @app.post("/api/combat/next", response_model=CombatStateResponse)
    async def next_round() -> dict[str, Any]:
        await timeline.next_round()
        return _state()

    @app.post("/api/combat/previous", response_model=CombatStateResponse)
    async def previous_round() -> dict[str, Any]:
        timeline.previous_round()
        return _state()

    @app.post("/api/combat/goto", response_model=CombatStateResponse)
    async def go_to_round(body: GoToRoundRequest) -> dict[str, Any]:
        await timeline.go_to_round(body.round_number)
        return _state()

    @app.post("/api/combat/speed", response_model=CombatStateResponse)
    async def set_speed(body: AnimationSpeedRequest) -> dict[str, Any]:
        timeline.set_animation_speed(body.multiplier)
        return _state()

    # =================================================================
    # Actions
    # =================================================================

    @app.post("/api/actions", response_model=AddActionResponse)
    async def add_action(body: AddActionRequest) -> dict[str, Any]:
        action_id = timeline.add_action(body.token_id, body.type, body.data, body.round_number)
        if action_id is None:
            return {"success": False, "action_id": ""}
        return {"success": True, "action_id": action_id}

    @app.patch("/api/actions/{action_id}", response_model=CombatStateResponse)
    async def update_action(action_id: str, body: UpdateActionRequest) -> dict[str, Any]:
        timeline.update_action(action_id, **body.model_dump(exclude_none=True))
        return _state()

    @app.delete("/api/actions/{action_id}", response_model=CombatStateResponse)
    async def remove_action(action_id: str) -> dict[str, Any]:
        timeline.remove_action(action_id)
        return _state()

    @app.post("/api/rounds/{round_number}/execute", response_model=CombatStateResponse)
    async def execute_round(round_number: int = Path(ge=1)) -> dict[str, Any]:
        await timeline.execute_round_actions(round_number)
        return _state()

    # =================================================================
    # Map objects / effects
    # =================================================================

    @app.get("/api/objects")
    async def list_objects() -> dict[str, Any]:
        return {"objects": [map_object_to_dict(o) for o in services.object_store.objects]}

    @app.post("/api/objects")
    async def place_object(body: MapObjectModel) -> dict[str, Any]:
        obj = map_object_from_dict(body.model_dump())
        if obj.is_spell_effect:
            raise HTTPException(status_code=400, detail="Use /api/effects for spell effects")
        if obj.id in services.object_store or services.lifecycle.is_tombstoned(obj.id):
            raise HTTPException(status_code=409, detail=f"Object id {obj.id} is already taken")
        services.object_store.add_object(obj)
        return map_object_to_dict(obj)

    @app.post("/api/effects", response_model=EffectResponse)
    async def add_effect(body: MapObjectModel) -> dict[str, Any]:
        obj = map_object_from_dict({**body.model_dump(), "is_spell_effect": True})
        if not timeline.add_effect(obj):
            return {"success": False, "error": f"Effect {obj.id} was removed and cannot return"}
        return {"success": True, "error": ""}

    @app.delete("/api/effects/{object_id}", response_model=EffectResponse)
    async def remove_effect(object_id: str) -> dict[str, Any]:
        if not timeline.remove_effect(object_id):
            return {"success": False, "error": f"Effect {object_id} not found"}
        return {"success": True, "error": ""}

    @app.get("/api/battle-log")
    async def battle_log(round_number: Optional[int] = None) -> dict[str, Any]:
        if round_number is None:
            entries = services.battle_log.entries
        else:
            entries = services.battle_log.for_round(round_number)
        return {"entries": [log_entry_to_dict(e) for e in entries]}

    return app
