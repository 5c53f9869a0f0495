"""Timeline model — rounds and the actions scheduled inside them.

All records are frozen.  Every helper returns a new value, so a committed
Timeline is never modified after the fact and the ordering invariants
can be checked on any snapshot:

- ``Timeline.rounds`` is sorted ascending by ``number`` with unique numbers.
- ``Action.order`` is taken from ``Round.next_order`` and never reused.

Business logic lives in engine/timeline_service.py.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable


class ActionType(str, Enum):
    """Built-in action kinds.  Other strings are accepted and play as-is."""

    MOVE = "move"
    SPELL = "spell"
    ATTACK = "attack"
    INTERACTION = "interaction"
    APPEAR = "appear"
    DISAPPEAR = "disappear"


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Action:
    """A single scheduled action for a token.

    Attributes:
        id: Unique action id.
        token_id: Acting token (caster for spells).
        type: ActionType value or a custom type string.
        data: Type-specific parameters (positions, spell name, duration ms).
        executed: Set once the executor processed the action.
        order: Execution position inside the round.
        round_number: Round the action belongs to.
    """

    id: str
    token_id: str
    type: str
    data: dict[str, Any] = field(default_factory=dict, compare=False)
    executed: bool = False
    order: int = 0
    round_number: int = 1


@dataclass(frozen=True)
class Round:
    """One discrete step of combat time."""

    id: str
    number: int
    timestamp: float
    actions: tuple[Action, ...] = ()
    executed: bool = False
    next_order: int = 0

    def sorted_actions(self) -> list[Action]:
        """Actions in execution order."""
        return sorted(self.actions, key=lambda a: a.order)

    def find_action(self, action_id: str) -> Action | None:
        for action in self.actions:
            if action.id == action_id:
                return action
        return None

    def append_action(self, token_id: str, action_type: str,
                      data: dict[str, Any] | None = None) -> tuple[Round, Action]:
        """Return (new round, new action) with the action appended.

        Appending to an executed round reopens it, so the new action is
        played on the next execution.
        """
        action = Action(
            id=new_id(),
            token_id=token_id,
            type=str(action_type.value if isinstance(action_type, ActionType) else action_type),
            data=dict(data or {}),
            order=self.next_order,
            round_number=self.number,
        )
        updated = replace(
            self,
            actions=self.actions + (action,),
            next_order=self.next_order + 1,
            executed=False,
        )
        return updated, action

    def replace_action(self, action_id: str, fn: Callable[[Action], Action]) -> Round:
        return replace(self, actions=tuple(
            fn(a) if a.id == action_id else a for a in self.actions
        ))

    def without_action(self, action_id: str) -> Round:
        return replace(self, actions=tuple(a for a in self.actions if a.id != action_id))


def new_round(number: int) -> Round:
    """Create an empty, unexecuted round."""
    return Round(id=new_id(), number=number, timestamp=time.time())


@dataclass(frozen=True)
class Timeline:
    """Combat timeline of one map.

    Attributes:
        id: Stable identity, kept across end/start combat cycles.
        map_id: Map the timeline belongs to.
        rounds: Live rounds, ascending by number.
        history: Rounds retired by end_combat (append-only).
        current_round: Round shown to the editor.
        is_active: Whether combat is running.
    """

    id: str
    map_id: str
    rounds: tuple[Round, ...] = ()
    history: tuple[Round, ...] = ()
    current_round: int = 1
    is_active: bool = True

    # -- Query -----------------------------------------------------------

    def find_round(self, number: int) -> Round | None:
        for round_ in self.rounds:
            if round_.number == number:
                return round_
        return None

    def find_action(self, action_id: str) -> tuple[Round, Action] | None:
        """Locate an action across all live rounds."""
        for round_ in self.rounds:
            action = round_.find_action(action_id)
            if action is not None:
                return round_, action
        return None

    # -- Updates (return new timelines) ----------------------------------

    def with_round(self, round_: Round) -> Timeline:
        """Insert or replace ``round_`` keeping rounds sorted and unique."""
        others = [r for r in self.rounds if r.number != round_.number]
        others.append(round_)
        others.sort(key=lambda r: r.number)
        return replace(self, rounds=tuple(others))

    def ensure_round(self, number: int) -> Timeline:
        """Return a timeline that contains round ``number``."""
        if self.find_round(number) is not None:
            return self
        return self.with_round(new_round(number))

    def retire_rounds(self) -> Timeline:
        """Move all live rounds to the end of history and deactivate."""
        return replace(
            self,
            history=self.history + self.rounds,
            rounds=(),
            is_active=False,
        )


def new_timeline(map_id: str) -> Timeline:
    """Create an active timeline holding round 1."""
    return Timeline(id=new_id(), map_id=map_id, rounds=(new_round(1),),
                    current_round=1, is_active=True)
