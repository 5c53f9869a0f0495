"""Serialization — model objects to and from JSON-ready dicts."""

from __future__ import annotations

from typing import Any

from battlemap.engine.battle_log import BattleLogEntry
from battlemap.models.map_object import MapObject, Position, StatusEffect
from battlemap.models.timeline import Action, Round, Timeline


def action_to_dict(action: Action) -> dict[str, Any]:
    return {
        "id": action.id,
        "token_id": action.token_id,
        "type": action.type,
        "data": dict(action.data),
        "executed": action.executed,
        "order": action.order,
        "round_number": action.round_number,
    }


def round_to_dict(round_: Round) -> dict[str, Any]:
    return {
        "id": round_.id,
        "number": round_.number,
        "timestamp": round_.timestamp,
        "executed": round_.executed,
        "actions": [action_to_dict(a) for a in round_.sorted_actions()],
    }


def timeline_to_dict(timeline: Timeline | None) -> dict[str, Any] | None:
    if timeline is None:
        return None
    return {
        "id": timeline.id,
        "map_id": timeline.map_id,
        "current_round": timeline.current_round,
        "is_active": timeline.is_active,
        "rounds": [round_to_dict(r) for r in timeline.rounds],
        "history": [round_to_dict(r) for r in timeline.history],
    }


def map_object_to_dict(obj: MapObject) -> dict[str, Any]:
    return {
        "id": obj.id,
        "type": obj.type,
        "position": obj.position.to_dict(),
        "name": obj.name,
        "layer": obj.layer,
        "visible": obj.visible,
        "is_spell_effect": obj.is_spell_effect,
        "round_created": obj.round_created,
        "spell_duration": obj.spell_duration,
        "spell_data": dict(obj.spell_data),
        "status_effects": [
            {"type": e.type, "duration": e.duration, "round_applied": e.round_applied}
            for e in obj.status_effects
        ],
    }


def map_object_from_dict(raw: dict[str, Any]) -> MapObject:
    """Build a MapObject from a request body; missing keys take defaults."""
    return MapObject(
        id=str(raw["id"]),
        type=raw.get("type", "token"),
        position=Position.from_dict(raw.get("position")) or Position(),
        name=raw.get("name", ""),
        layer=int(raw.get("layer", 0)),
        visible=bool(raw.get("visible", True)),
        is_spell_effect=bool(raw.get("is_spell_effect", False)),
        round_created=raw.get("round_created"),
        spell_duration=raw.get("spell_duration"),
        spell_data=dict(raw.get("spell_data") or {}),
        status_effects=tuple(
            StatusEffect(type=e["type"], duration=e.get("duration"),
                         round_applied=e.get("round_applied"))
            for e in raw.get("status_effects") or ()
        ),
    )


def log_entry_to_dict(entry: BattleLogEntry) -> dict[str, Any]:
    return {
        "round_number": entry.round_number,
        "type": entry.type,
        "token_id": entry.token_id,
        "token_name": entry.token_name,
        "message": entry.message,
        "severity": entry.severity,
        "details": dict(entry.details),
        "timestamp": entry.timestamp,
    }
