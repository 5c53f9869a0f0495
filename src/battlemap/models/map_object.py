"""Map object model — tokens, shapes and spell-effect objects.

Objects are immutable values owned by the object store.  Changes are made
by replacing an object with a modified copy (``dataclasses.replace``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Position:
    """A point on the battle map, in map pixels."""

    x: float = 0.0
    y: float = 0.0

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> Position | None:
        """Build a position from ``{"x": .., "y": ..}``; None passes through."""
        if raw is None:
            return None
        if isinstance(raw, Position):
            return raw
        return cls(x=float(raw.get("x", 0.0)), y=float(raw.get("y", 0.0)))

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class StatusEffect:
    """A condition on a token (poisoned, blessed, ...).

    Attributes:
        type: Condition key, unique per token.
        duration: Rounds the condition lasts; 0 or None means indefinite.
        round_applied: Round in which the condition was applied.
    """

    type: str
    duration: int | None = None
    round_applied: int | None = None


@dataclass(frozen=True)
class MapObject:
    """A placed object on the battle map.

    Spell-effect objects set ``is_spell_effect`` together with
    ``round_created`` and ``spell_duration``.  A duration of 0 (or None)
    marks an instant effect that the round cleanup never removes.

    Attributes:
        id: Unique object id.
        type: Object kind ("token", "shape", "spell", ...).
        position: Map position.
        name: Display name (tokens).
        layer: Render layer.
        visible: False while a token is hidden by a disappear action.
        is_spell_effect: Whether the round cleanup applies to this object.
        round_created: Round in which the effect was created.
        spell_duration: Rounds the effect persists.
        spell_data: Spell parameters copied from the casting action.
        status_effects: Timed conditions (tokens only).
    """

    id: str
    type: str = "token"
    position: Position = field(default_factory=Position)
    name: str = ""
    layer: int = 0
    visible: bool = True
    is_spell_effect: bool = False
    round_created: int | None = None
    spell_duration: int | None = None
    spell_data: dict[str, Any] = field(default_factory=dict, compare=False)
    status_effects: tuple[StatusEffect, ...] = ()
