"""Timeline service — combat rounds, navigation and action scheduling.

State machine per map:
  IDLE (no timeline) → ACTIVE → INACTIVE (history kept) → ACTIVE ...

Round transitions:
- ``next_round`` / ``go_to_round`` run the effect lifecycle pass for the
  target round before the new current round is committed.  Forward
  transitions then execute the entered round (``auto_execute_on_advance``).
- ``previous_round`` only moves the counter; no effect pass runs, and
  removed effects stay removed.

Every transition bumps a generation counter.  A round execution started
under an older generation stops before applying further side effects.

Calls made without a timeline are silent no-ops.  Invalid round numbers
raise ValueError.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Optional

from battlemap.models.timeline import Timeline, new_timeline
from battlemap.util.constants import FIRST_ROUND, MAX_ANIMATION_SPEED, MIN_ANIMATION_SPEED
from battlemap.util.events import CombatEnded, CombatStarted, RoundChanged, RoundExecuted

if TYPE_CHECKING:
    from battlemap.engine.action_executor import ActionExecutor
    from battlemap.engine.effect_lifecycle import EffectLifecycle
    from battlemap.loaders.engine_config_loader import EngineConfig
    from battlemap.models.map_object import MapObject
    from battlemap.models.timeline import Action
    from battlemap.util.events import EventBus

log = logging.getLogger(__name__)

_UPDATABLE_ACTION_FIELDS = frozenset({"token_id", "type", "data", "executed"})


@dataclass
class _RoundRun:
    """Bookkeeping for one in-flight round execution."""
    generation: int
    stop: asyncio.Event = field(default_factory=asyncio.Event)


def _check_round_number(value: Any) -> int:
    """Reject anything that is not an integer >= 1."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Round number must be an integer, got {value!r}")
    if value < FIRST_ROUND:
        raise ValueError(f"Round number must be >= {FIRST_ROUND}, got {value}")
    return value


class TimelineService:
    """Owns the combat timelines and drives round transitions.

    Args:
        lifecycle: Effect lifecycle applied on round transitions.
        executor: Action executor used for round playback.
        event_bus: Event bus for combat / round events.
        engine_config: Engine settings (speed range, auto execution).
    """

    def __init__(
        self,
        lifecycle: EffectLifecycle,
        executor: ActionExecutor,
        event_bus: EventBus,
        engine_config: EngineConfig | None = None,
    ) -> None:
        self._lifecycle = lifecycle
        self._executor = executor
        self._events = event_bus
        self._timelines: dict[str, Timeline] = {}  # map_id → Timeline
        self._map_id: Optional[str] = None
        self._animation_speed: float = 1.0
        self._generation: int = 0
        self._running: dict[tuple[str, int], _RoundRun] = {}  # (map_id, round) → run

        if engine_config is not None:
            self._min_speed = engine_config.min_animation_speed
            self._max_speed = engine_config.max_animation_speed
            self._auto_execute = engine_config.auto_execute_on_advance
        else:
            self._min_speed = MIN_ANIMATION_SPEED
            self._max_speed = MAX_ANIMATION_SPEED
            self._auto_execute = True

    # -- Query -----------------------------------------------------------

    @property
    def timeline(self) -> Optional[Timeline]:
        """Snapshot of the selected map's timeline."""
        if self._map_id is None:
            return None
        return self._timelines.get(self._map_id)

    @property
    def current_round(self) -> int:
        timeline = self.timeline
        return timeline.current_round if timeline is not None else FIRST_ROUND

    @property
    def is_active(self) -> bool:
        timeline = self.timeline
        return timeline is not None and timeline.is_active

    @property
    def animation_speed(self) -> float:
        return self._animation_speed

    @property
    def generation(self) -> int:
        """Incremented on every round transition, combat start/end and map switch."""
        return self._generation

    def get_timeline(self, map_id: str) -> Optional[Timeline]:
        return self._timelines.get(map_id)

    def _commit(self, timeline: Timeline) -> None:
        self._timelines[timeline.map_id] = timeline

    def _advance_generation(self) -> None:
        """Invalidate every in-flight execution and wake it up to stop."""
        self._generation += 1
        for run in self._running.values():
            run.stop.set()

    # -- Combat lifecycle ------------------------------------------------

    def start_combat(self, map_id: str) -> Timeline:
        """Create or reactivate the timeline of ``map_id`` and select it."""
        switched = self._map_id != map_id
        self._map_id = map_id
        existing = self._timelines.get(map_id)
        if existing is not None and existing.is_active:
            if switched:
                self._advance_generation()
            log.debug("Combat already active on map %s", map_id)
            return existing

        self._advance_generation()
        if existing is None:
            timeline = new_timeline(map_id)
            log.info("Combat started: map=%s timeline=%s", map_id, timeline.id)
        else:
            timeline = replace(existing, is_active=True).ensure_round(existing.current_round)
            log.info("Combat resumed: map=%s timeline=%s round=%d",
                     map_id, timeline.id, timeline.current_round)
        self._commit(timeline)
        self._events.emit(CombatStarted(
            map_id=map_id,
            timeline_id=timeline.id,
            current_round=timeline.current_round,
            reactivated=existing is not None,
        ))
        return timeline

    def end_combat(self) -> None:
        """Retire all rounds into history and deactivate the timeline."""
        timeline = self.timeline
        if timeline is None or not timeline.is_active:
            return
        self._advance_generation()
        retired = len(timeline.rounds)
        self._commit(timeline.retire_rounds())
        log.info("Combat ended: map=%s rounds retired=%d", timeline.map_id, retired)
        self._events.emit(CombatEnded(
            map_id=timeline.map_id, timeline_id=timeline.id, retired_rounds=retired,
        ))

    def clear_timeline(self) -> None:
        """Discard the selected map's timeline entirely."""
        if self._map_id is None:
            return
        if self._timelines.pop(self._map_id, None) is not None:
            self._advance_generation()
            log.info("Timeline cleared for map %s", self._map_id)

    # -- Navigation ------------------------------------------------------

    async def next_round(self) -> None:
        """Advance one round: effect pass, then play the entered round."""
        timeline = self.timeline
        if timeline is None or not timeline.is_active:
            return
        await self._transition(timeline, timeline.current_round + 1)

    def previous_round(self) -> None:
        """Step back one round (floored at 1) without an effect pass."""
        timeline = self.timeline
        if timeline is None or not timeline.is_active:
            return
        target = max(FIRST_ROUND, timeline.current_round - 1)
        if target == timeline.current_round:
            return
        self._advance_generation()
        self._commit(replace(timeline, current_round=target))
        log.info("Round %d -> %d (back)", timeline.current_round, target)
        self._events.emit(RoundChanged(
            map_id=timeline.map_id, previous_round=timeline.current_round, current_round=target,
        ))

    async def go_to_round(self, round_number: int) -> None:
        """Jump to ``round_number``; the effect pass runs in either direction."""
        _check_round_number(round_number)
        timeline = self.timeline
        if timeline is None or not timeline.is_active:
            return
        await self._transition(timeline, round_number)

    async def _transition(self, timeline: Timeline, target: int) -> None:
        self._advance_generation()
        previous = timeline.current_round
        updated = timeline.ensure_round(target)

        removed = self._lifecycle.run_pass(target)
        self._commit(replace(updated, current_round=target))
        log.info("Round %d -> %d (%d effects expired)", previous, target, len(removed))
        self._events.emit(RoundChanged(
            map_id=timeline.map_id, previous_round=previous, current_round=target,
        ))

        if self._auto_execute and target > previous:
            await self.execute_round_actions(target)

    # -- Actions ---------------------------------------------------------

    def add_action(self, token_id: str, action_type: str,
                   data: dict[str, Any] | None = None,
                   round_number: int | None = None) -> Optional[str]:
        """Schedule an action; returns its id, or None without a timeline."""
        if round_number is not None:
            _check_round_number(round_number)
        timeline = self.timeline
        if timeline is None:
            return None
        target = round_number if round_number is not None else timeline.current_round
        timeline = timeline.ensure_round(target)
        round_, action = timeline.find_round(target).append_action(token_id, action_type, data)
        self._commit(timeline.with_round(round_))
        log.debug("Action added: id=%s type=%s token=%s round=%d order=%d",
                  action.id, action.type, token_id, target, action.order)
        return action.id

    def update_action(self, action_id: str, **changes: Any) -> None:
        """Update fields of an action; unknown ids are ignored."""
        timeline = self.timeline
        if timeline is None:
            return
        found = timeline.find_action(action_id)
        if found is None:
            return
        rejected = set(changes) - _UPDATABLE_ACTION_FIELDS
        if rejected:
            log.warning("Ignoring read-only action fields: %s", ", ".join(sorted(rejected)))
        allowed = {k: v for k, v in changes.items() if k in _UPDATABLE_ACTION_FIELDS}
        if "type" in allowed:
            allowed["type"] = str(getattr(allowed["type"], "value", allowed["type"]))
        if "data" in allowed:
            allowed["data"] = dict(allowed["data"] or {})
        round_, _ = found
        self._commit(timeline.with_round(
            round_.replace_action(action_id, lambda a: replace(a, **allowed))
        ))

    def remove_action(self, action_id: str) -> None:
        """Remove an action; unknown ids are ignored."""
        timeline = self.timeline
        if timeline is None:
            return
        found = timeline.find_action(action_id)
        if found is None:
            return
        round_, _ = found
        self._commit(timeline.with_round(round_.without_action(action_id)))

    async def execute_round_actions(self, round_number: int) -> None:
        """Play the actions of a round once; executed rounds are skipped."""
        _check_round_number(round_number)
        timeline = self.timeline
        if timeline is None:
            return
        round_ = timeline.find_round(round_number)
        if round_ is None or round_.executed:
            return

        generation = self._generation
        map_id = timeline.map_id
        key = (map_id, round_number)
        running = self._running.get(key)
        if running is not None and running.generation == generation:
            log.debug("Round %d on map %s is already playing", round_number, map_id)
            return
        # A stale run for the same round was told to stop; it applies
        # nothing further, so a fresh run takes over.
        run = _RoundRun(generation)
        self._running[key] = run
        try:
            completed = await self._executor.run(
                round_,
                speed=self._animation_speed,
                is_current=lambda: self._generation == generation and self._map_id == map_id,
                on_executed=lambda action: self._mark_executed(map_id, action),
                stop=run.stop,
            )
        finally:
            if self._running.get(key) is run:
                del self._running[key]
        if not completed:
            return

        current = self._timelines.get(map_id)
        latest = current.find_round(round_number) if current is not None else None
        if latest is None:
            return
        if any(not a.executed for a in latest.actions):
            # Actions were added while the round was playing.
            return
        self._commit(current.with_round(replace(latest, executed=True)))
        log.info("Round %d executed (%d actions)", round_number, len(latest.actions))
        self._events.emit(RoundExecuted(
            map_id=map_id, round_number=round_number, action_count=len(latest.actions),
        ))

    def _mark_executed(self, map_id: str, action: Action) -> None:
        timeline = self._timelines.get(map_id)
        if timeline is None:
            return
        found = timeline.find_action(action.id)
        if found is None:
            return
        round_, _ = found
        self._commit(timeline.with_round(
            round_.replace_action(action.id, lambda a: replace(a, executed=True))
        ))

    # -- Settings / effects ----------------------------------------------

    def set_animation_speed(self, multiplier: float) -> float:
        """Store the speed multiplier clamped to the configured range."""
        self._animation_speed = max(self._min_speed, min(self._max_speed, float(multiplier)))
        return self._animation_speed

    def add_effect(self, obj: MapObject) -> bool:
        """Place a spell effect, stamping the current round if unset."""
        if obj.round_created is None:
            obj = replace(obj, round_created=self.current_round)
        return self._lifecycle.add_effect(obj)

    def remove_effect(self, object_id: str) -> bool:
        """Delete a spell effect for good."""
        return self._lifecycle.remove_effect(object_id)
