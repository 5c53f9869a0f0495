"""Action executor — plays a round's actions and applies their results.

Execution order (must be preserved):
1. Every unexecuted action is dispatched to the animation registry.
   Actions of different tokens animate concurrently; an action waits
   for the previous action of the same token to be applied first.
2. Completions are consumed strictly in ``order``: after an action's
   animation finished (or failed), its side effect is applied to the
   object store, it is logged and reported back as executed.
3. Before each wait and each side effect the caller's ``is_current``
   check runs.  Once it returns False (the user moved to another round)
   the remaining animations are cancelled and nothing further is
   applied.  Setting the optional ``stop`` event cuts a running wait short.

Animation failures are logged and never abort the round.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Callable, Optional

from battlemap.engine.battle_log import BattleLogEntry
from battlemap.models.map_object import MapObject, Position
from battlemap.models.timeline import ActionType
from battlemap.util.constants import DEFAULT_ANIMATION_MS, SPELL_LAYER, SPELL_OBJECT_PREFIX
from battlemap.util.events import ActionExecuted
from battlemap.util.types import format_position, format_rounds

if TYPE_CHECKING:
    from battlemap.engine.animation import AnimationRegistry
    from battlemap.engine.battle_log import BattleLog
    from battlemap.engine.effect_lifecycle import EffectLifecycle
    from battlemap.loaders.engine_config_loader import EngineConfig
    from battlemap.models.timeline import Action, Round
    from battlemap.util.events import EventBus

log = logging.getLogger(__name__)


class ActionExecutor:
    """Plays actions through the animation registry and commits their effects.

    Args:
        lifecycle: Effect lifecycle (owns the object store and tombstones).
        animations: Registry of per-type playback coroutines.
        battle_log: Optional log receiving one entry per action.
        event_bus: Optional bus for ActionExecuted events.
        engine_config: Playback settings.
    """

    def __init__(
        self,
        lifecycle: EffectLifecycle,
        animations: AnimationRegistry,
        battle_log: BattleLog | None = None,
        event_bus: EventBus | None = None,
        engine_config: EngineConfig | None = None,
    ) -> None:
        self._lifecycle = lifecycle
        self._store = lifecycle.store
        self._animations = animations
        self._log = battle_log
        self._events = event_bus
        if engine_config is not None:
            self._default_ms = engine_config.default_animation_ms
            self._concurrent = engine_config.concurrent_token_animations
        else:
            self._default_ms = DEFAULT_ANIMATION_MS
            self._concurrent = True

    def duration_for(self, action: Action, speed: float) -> float:
        """Playback length in seconds, scaled by ``1 / speed``."""
        ms = action.data.get("duration")
        if ms is None:
            ms = self._default_ms
        return float(ms) / 1000.0 / speed

    # -- Round execution -------------------------------------------------

    async def run(
        self,
        round_: Round,
        speed: float,
        is_current: Callable[[], bool],
        on_executed: Callable[[Action], None],
        stop: Optional[asyncio.Event] = None,
    ) -> bool:
        """Execute the unexecuted actions of ``round_`` in order.

        Args:
            round_: Snapshot of the round to play.
            speed: Animation speed multiplier.
            is_current: Returns False once the execution went stale.
            on_executed: Called with each action after its side effect.
            stop: Set by the caller to abandon the wait on a running animation.

        Returns:
            True if every action was processed, False if it went stale.

        Raises:
            ValueError: An action carries a non-numeric ``duration``.
                Nothing is played in that case.
        """
        pending = [a for a in round_.sorted_actions() if not a.executed]
        if not pending:
            return True
        durations = [self.duration_for(action, speed) for action in pending]

        lanes: dict[str, asyncio.Event] = {}
        previous: Optional[asyncio.Event] = None
        scheduled: list[tuple[Action, asyncio.Task, asyncio.Event]] = []
        try:
            for action, duration in zip(pending, durations):
                wait_for = lanes.get(action.token_id) if self._concurrent else previous
                applied = asyncio.Event()
                task = asyncio.create_task(self._play(action, duration, wait_for))
                scheduled.append((action, task, applied))
                lanes[action.token_id] = applied
                previous = applied

            for action, task, applied in scheduled:
                if is_current():
                    try:
                        await self._finish(task, stop)
                    except Exception:
                        log.exception("Animation failed for %s action %s (round %d)",
                                      action.type, action.id, round_.number)
                if not is_current():
                    log.warning("Round %d execution went stale; stopping before action %s",
                                round_.number, action.id)
                    return False
                self._apply(action, round_.number)
                on_executed(action)
                applied.set()
            return True
        finally:
            leftover = [task for _, task, _ in scheduled if not task.done()]
            for task in leftover:
                task.cancel()
            if leftover:
                await asyncio.gather(*leftover, return_exceptions=True)

    @staticmethod
    async def _finish(task: asyncio.Task, stop: Optional[asyncio.Event]) -> None:
        """Wait for ``task`` unless ``stop`` fires first; re-raise its failure."""
        if stop is None:
            await task
            return
        stopper = asyncio.create_task(stop.wait())
        try:
            await asyncio.wait({task, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopper.cancel()
        if task.done() and not task.cancelled():
            task.result()

    async def _play(self, action: Action, duration: float,
                    wait_for: Optional[asyncio.Event]) -> None:
        if wait_for is not None:
            await wait_for.wait()
        await self._animations.play(action, duration)

    # -- Side effects ----------------------------------------------------

    def _apply(self, action: Action, round_number: int) -> None:
        """Apply the state change of one finished action."""
        handler = self._handlers.get(action.type, ActionExecutor._apply_generic)
        handler(self, action, round_number)
        if self._events is not None:
            self._events.emit(ActionExecuted(
                action_id=action.id,
                token_id=action.token_id,
                action_type=action.type,
                round_number=round_number,
            ))

    def _apply_move(self, action: Action, round_number: int) -> None:
        token = self._store.get(action.token_id)
        target = Position.from_dict(action.data.get("to_position"))
        if token is None or target is None:
            log.warning("Move %s skipped: token %s or target missing", action.id, action.token_id)
            return
        self._store.update_object(replace(token, position=target))
        self._write_log(action, round_number, "movement",
                        f"Moved to {format_position(target)}", severity="low",
                        details={"from": token.position.to_dict(), "to": target.to_dict()})

    def _apply_spell(self, action: Action, round_number: int) -> None:
        data = action.data
        spell_name = data.get("spell_name") or "spell"
        persist = int(data.get("persist_duration") or 0)
        if persist > 0:
            effect = MapObject(
                id=f"{SPELL_OBJECT_PREFIX}{action.id}",
                type="spell",
                position=self._spell_position(action),
                name=spell_name,
                layer=SPELL_LAYER,
                is_spell_effect=True,
                round_created=round_number,
                spell_duration=persist,
                spell_data=dict(data),
            )
            self._lifecycle.add_effect(effect)
        self._write_log(action, round_number, "spell", f"Cast {spell_name}",
                        details={"spell": spell_name,
                                 "target": "Token" if data.get("target_token_id") else "Position",
                                 "persists": format_rounds(persist) if persist else "instant"})

    def _spell_position(self, action: Action) -> Position:
        """Target token's current position, else the aimed point, else the caster."""
        target_id = action.data.get("target_token_id")
        if target_id:
            target = self._store.get(target_id)
            if target is not None:
                return target.position
            log.warning("Spell %s: target token %s not found", action.id, target_id)
        aimed = Position.from_dict(action.data.get("to_position"))
        if aimed is not None:
            return aimed
        caster = self._store.get(action.token_id)
        if caster is not None:
            return caster.position
        return Position.from_dict(action.data.get("from_position")) or Position()

    def _apply_appear(self, action: Action, round_number: int) -> None:
        token = self._store.get(action.token_id)
        if token is None:
            log.warning("Appear %s skipped: token %s not found", action.id, action.token_id)
            return
        position = Position.from_dict(action.data.get("position")) or token.position
        self._store.update_object(replace(token, visible=True, position=position))
        self._write_log(action, round_number, "action", f"Appeared at {format_position(position)}",
                        severity="low")

    def _apply_disappear(self, action: Action, round_number: int) -> None:
        token = self._store.get(action.token_id)
        if token is None:
            log.warning("Disappear %s skipped: token %s not found", action.id, action.token_id)
            return
        self._store.update_object(replace(token, visible=False))
        self._write_log(action, round_number, "action", "Disappeared", severity="low")

    def _apply_attack(self, action: Action, round_number: int) -> None:
        target = self._store.get(action.data.get("target_token_id") or "")
        weapon = action.data.get("weapon_name") or "Attack"
        message = f"{weapon} on {target.name}" if target is not None else f"{weapon} at position"
        self._write_log(action, round_number, "action", message,
                        details={"attack": weapon, "target": target.name if target else "Position"})

    def _apply_generic(self, action: Action, round_number: int) -> None:
        description = action.data.get("description") or action.type.replace("_", " ").capitalize()
        self._write_log(action, round_number, "action", str(description))

    _handlers: dict[str, Callable[[Any, Action, int], None]] = {
        ActionType.MOVE.value: _apply_move,
        ActionType.SPELL.value: _apply_spell,
        ActionType.APPEAR.value: _apply_appear,
        ActionType.DISAPPEAR.value: _apply_disappear,
        ActionType.ATTACK.value: _apply_attack,
    }

    def _write_log(self, action: Action, round_number: int, entry_type: str, message: str,
                   severity: str = "normal", details: dict[str, Any] | None = None) -> None:
        if self._log is None:
            return
        token = self._store.get(action.token_id)
        self._log.add_entry(BattleLogEntry(
            round_number=round_number,
            type=entry_type,
            token_id=action.token_id,
            token_name=token.name if token is not None and token.name else "Unknown",
            message=message,
            severity=severity,
            details=details or {},
        ))
