"""Pydantic request/response models for the REST API.

These models define the HTTP request bodies and response shapes of the
combat endpoints.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ===================================================================
# Combat
# ===================================================================


class StartCombatRequest(BaseModel):
    map_id: str = Field(min_length=1)


class GoToRoundRequest(BaseModel):
    round_number: int


class AnimationSpeedRequest(BaseModel):
    multiplier: float


class CombatStateResponse(BaseModel):
    current_round: int
    is_active: bool
    animation_speed: float
    timeline: Optional[Dict[str, Any]] = None


# ===================================================================
# Actions
# ===================================================================


class AddActionRequest(BaseModel):
    token_id: str
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)
    round_number: Optional[int] = Field(default=None, ge=1)


class AddActionResponse(BaseModel):
    success: bool
    action_id: str = ""


class UpdateActionRequest(BaseModel):
    token_id: Optional[str] = None
    type: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    executed: Optional[bool] = None


# ===================================================================
# Map objects
# ===================================================================


class PositionModel(BaseModel):
    x: float = 0.0
    y: float = 0.0


class StatusEffectModel(BaseModel):
    type: str
    duration: Optional[int] = Field(default=None, ge=0)
    round_applied: Optional[int] = Field(default=None, ge=1)


class MapObjectModel(BaseModel):
    id: str
    type: str = "token"
    position: PositionModel = Field(default_factory=PositionModel)
    name: str = ""
    layer: int = 0
    visible: bool = True
    is_spell_effect: bool = False
    round_created: Optional[int] = Field(default=None, ge=1)
    spell_duration: Optional[int] = Field(default=None, ge=0)
    spell_data: Dict[str, Any] = Field(default_factory=dict)
    status_effects: List[StatusEffectModel] = Field(default_factory=list)


class EffectResponse(BaseModel):
    success: bool
    error: str = ""
