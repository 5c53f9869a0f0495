"""Typed event bus — decoupled notification of timeline changes.

Editor panels, the battle log and the REST layer subscribe here instead
of polling the engine for round and effect changes.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, TypeVar, Type

T = TypeVar("T")


# -- Combat events -------------------------------------------------------

@dataclass(frozen=True)
class CombatStarted:
    """A timeline was created or reactivated for a map."""
    map_id: str
    timeline_id: str
    current_round: int
    reactivated: bool = False


@dataclass(frozen=True)
class CombatEnded:
    """Combat ended; the rounds were retired into history."""
    map_id: str
    timeline_id: str
    retired_rounds: int


@dataclass(frozen=True)
class RoundChanged:
    """The current round changed (after the effect pass completed)."""
    map_id: str
    previous_round: int
    current_round: int


# -- Effect events -------------------------------------------------------

@dataclass(frozen=True)
class EffectAdded:
    """A spell-effect object was placed on the map."""
    object_id: str
    round_created: int | None
    spell_duration: int | None


@dataclass(frozen=True)
class EffectExpired:
    """A spell-effect object reached its expiry round and was removed."""
    object_id: str
    round_number: int
    expiry_round: int


@dataclass(frozen=True)
class StatusEffectExpired:
    """A timed status effect fell off a token."""
    token_id: str
    effect_type: str
    round_number: int


# -- Execution events ----------------------------------------------------

@dataclass(frozen=True)
class ActionExecuted:
    """An action finished playing and its side effects were applied."""
    action_id: str
    token_id: str
    action_type: str
    round_number: int


@dataclass(frozen=True)
class RoundExecuted:
    """Every action of a round has been processed."""
    map_id: str
    round_number: int
    action_count: int


# -- Event Bus -----------------------------------------------------------

class EventBus:
    """Synchronous dispatch of timeline events to per-type subscribers.

    Handlers run in subscription order, inside ``emit``, after the engine
    committed the state the event describes::

        bus = EventBus()
        on_round = bus.on(RoundChanged, lambda e: redraw(e.current_round))
        bus.emit(RoundChanged(map_id="crypt", previous_round=3, current_round=4))
        bus.off(RoundChanged, on_round)

    A handler may unsubscribe itself (or others) while an event is being
    dispatched; the change takes effect from the next ``emit``.
    """

    def __init__(self) -> None:
        self._subscribers: dict[type, list[Callable[[Any], None]]] = defaultdict(list)

    def on(self, event_type: Type[T], handler: Callable[[T], None]) -> Callable[[T], None]:
        """Subscribe ``handler``; returns it so callers can keep it for ``off``."""
        self._subscribers[event_type].append(handler)
        return handler

    def off(self, event_type: Type[T], handler: Callable[[T], None]) -> None:
        """Unsubscribe ``handler``; unknown handlers are ignored."""
        subscribers = self._subscribers.get(event_type)
        if subscribers and handler in subscribers:
            subscribers.remove(handler)

    def emit(self, event: object) -> None:
        """Deliver ``event`` to the subscribers of its exact type."""
        for handler in tuple(self._subscribers.get(type(event), ())):
            handler(event)

    def clear(self, event_type: type | None = None) -> None:
        """Drop the subscribers of one event type, or of all types."""
        if event_type is None:
            self._subscribers.clear()
        else:
            self._subscribers.pop(event_type, None)
