"""Tests for action playback ordering, side effects and failure isolation."""

import asyncio
from dataclasses import replace

import pytest

from battlemap.engine.action_executor import ActionExecutor
from battlemap.engine.animation import AnimationRegistry
from battlemap.engine.battle_log import BattleLog
from battlemap.engine.effect_lifecycle import EffectLifecycle
from battlemap.engine.object_store import MapObjectStore
from battlemap.loaders.engine_config_loader import EngineConfig
from battlemap.models.map_object import MapObject, Position
from battlemap.models.timeline import new_round
from battlemap.util.events import ActionExecuted, EventBus


class RecordingPlayer:
    """Animation player that records calls and can be held open per action."""

    def __init__(self) -> None:
        self.started: list[str] = []
        self.finished: list[str] = []
        self.durations: dict[str, float] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.fail: set[str] = set()

    async def __call__(self, action, duration):
        self.started.append(action.id)
        self.durations[action.id] = duration
        gate = self.gates.get(action.id)
        if gate is not None:
            await gate.wait()
        if action.id in self.fail:
            raise RuntimeError("renderer crashed")
        self.finished.append(action.id)


async def _settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


def _round_with(*specs):
    """Build round 1 from (token_id, type, data) tuples."""
    r = new_round(1)
    actions = []
    for token_id, action_type, data in specs:
        r, action = r.append_action(token_id, action_type, data)
        actions.append(action)
    return r, actions


@pytest.fixture
def store():
    return MapObjectStore([
        MapObject(id="wizard", name="Wizard", position=Position(0, 0)),
        MapObject(id="orc", name="Orc", position=Position(200, 100)),
    ])


@pytest.fixture
def player():
    return RecordingPlayer()


@pytest.fixture
def bus():
    return EventBus()


def _make_executor(store, player, bus, **cfg):
    lifecycle = EffectLifecycle(store, bus)
    battle_log = BattleLog()
    executor = ActionExecutor(lifecycle, AnimationRegistry(default=player), battle_log,
                              bus, EngineConfig(default_animation_ms=0, **cfg))
    return executor, lifecycle, battle_log


@pytest.fixture
def executor(store, player, bus):
    return _make_executor(store, player, bus)


async def _run(executor, round_, current=lambda: True, speed=1.0):
    done = []
    ok = await executor.run(round_, speed=speed, is_current=current, on_executed=done.append)
    return ok, [a.id for a in done]


# ── Basics ──────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_empty_round_completes(executor, player):
    ex, _, _ = executor
    ok, done = await _run(ex, new_round(1))
    assert ok is True
    assert done == []
    assert player.started == []


@pytest.mark.asyncio
async def test_move_updates_token_and_logs(executor, store, bus):
    ex, _, battle_log = executor
    received = []
    bus.on(ActionExecuted, received.append)
    r, (move,) = _round_with(("wizard", "move", {"to_position": {"x": 50, "y": 75}}))
    ok, done = await _run(ex, r)
    assert ok and done == [move.id]
    assert store.get("wizard").position == Position(50, 75)
    assert battle_log.entries[0].type == "movement"
    assert battle_log.entries[0].token_name == "Wizard"
    assert received[0].action_id == move.id


@pytest.mark.asyncio
async def test_chained_moves_end_at_last_target(executor, store):
    ex, _, _ = executor
    r, _ = _round_with(
        ("wizard", "move", {"to_position": {"x": 10, "y": 0}}),
        ("wizard", "move", {"to_position": {"x": 20, "y": 0}}),
    )
    await _run(ex, r)
    assert store.get("wizard").position == Position(20, 0)


@pytest.mark.asyncio
async def test_duration_scaled_by_speed(executor, player):
    ex, _, _ = executor
    r, (a,) = _round_with(("wizard", "interaction", {"duration": 500}))
    await _run(ex, r, speed=2.0)
    assert player.durations[a.id] == pytest.approx(0.25)


@pytest.mark.asyncio
async def test_already_executed_actions_skipped(executor, player):
    ex, _, _ = executor
    r, (a, b) = _round_with(("wizard", "interaction", {}), ("orc", "interaction", {}))
    r = r.replace_action(a.id, lambda x: replace(x, executed=True))
    ok, done = await _run(ex, r)
    assert ok and done == [b.id]
    assert player.started == [b.id]


# ── Spells ──────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_persistent_spell_creates_effect_at_target(executor, store):
    ex, _, battle_log = executor
    r, (cast,) = _round_with(("wizard", "spell", {
        "spell_name": "Web", "persist_duration": 3, "target_token_id": "orc",
        "to_position": {"x": 1, "y": 1},
    }))
    await _run(ex, r)
    effect = store.get(f"spell-{cast.id}")
    assert effect is not None
    assert effect.is_spell_effect
    assert (effect.round_created, effect.spell_duration) == (1, 3)
    assert effect.position == Position(200, 100)
    assert battle_log.entries[-1].message == "Cast Web"


@pytest.mark.asyncio
async def test_spell_without_target_token_uses_aimed_point(executor, store):
    ex, _, _ = executor
    r, (cast,) = _round_with(("wizard", "spell", {
        "spell_name": "Darkness", "persist_duration": 2, "to_position": {"x": 30, "y": 40},
    }))
    await _run(ex, r)
    assert store.get(f"spell-{cast.id}").position == Position(30, 40)


@pytest.mark.asyncio
async def test_instant_spell_leaves_no_object(executor, store):
    ex, _, battle_log = executor
    r, _ = _round_with(("wizard", "spell", {"spell_name": "Magic Missile"}))
    await _run(ex, r)
    assert [o.id for o in store.objects] == ["wizard", "orc"]
    assert len(battle_log) == 1


@pytest.mark.asyncio
async def test_tombstoned_spell_not_recreated(executor, store):
    ex, lifecycle, _ = executor
    r, (cast,) = _round_with(("wizard", "spell", {"persist_duration": 1}))
    await _run(ex, r)
    lifecycle.run_pass(2)
    assert f"spell-{cast.id}" not in store
    await _run(ex, r)  # replay of an un-executed snapshot
    assert f"spell-{cast.id}" not in store


# ── Appear / disappear ──────────────────────────────────────

@pytest.mark.asyncio
async def test_disappear_then_appear(executor, store):
    ex, _, _ = executor
    r, _ = _round_with(
        ("orc", "disappear", {}),
        ("orc", "appear", {"position": {"x": 5, "y": 6}}),
    )
    await _run(ex, r)
    orc = store.get("orc")
    assert orc.visible is True
    assert orc.position == Position(5, 6)


@pytest.mark.asyncio
async def test_missing_token_is_skipped(executor):
    ex, _, _ = executor
    r, (a,) = _round_with(("ghost", "move", {"to_position": {"x": 1, "y": 1}}))
    ok, done = await _run(ex, r)
    assert ok and done == [a.id]


# ── Ordering and concurrency ────────────────────────────────

@pytest.mark.asyncio
async def test_independent_tokens_animate_concurrently_but_commit_in_order(executor, player):
    ex, _, _ = executor
    r, (a, b) = _round_with(("wizard", "interaction", {}), ("orc", "interaction", {}))
    player.gates[a.id] = asyncio.Event()
    done = []
    task = asyncio.create_task(
        ex.run(r, speed=1.0, is_current=lambda: True, on_executed=done.append)
    )
    await _settle()
    assert player.started == [a.id, b.id]
    assert player.finished == [b.id]
    assert done == []  # b finished first but waits for a
    player.gates[a.id].set()
    assert await task is True
    assert [x.id for x in done] == [a.id, b.id]


@pytest.mark.asyncio
async def test_same_token_waits_for_previous_action(executor, player):
    ex, _, _ = executor
    r, (a, b) = _round_with(("wizard", "interaction", {}), ("wizard", "interaction", {}))
    player.gates[a.id] = asyncio.Event()
    task = asyncio.create_task(
        ex.run(r, speed=1.0, is_current=lambda: True, on_executed=lambda _: None)
    )
    await _settle()
    assert player.started == [a.id]
    player.gates[a.id].set()
    await task
    assert player.started == [a.id, b.id]


@pytest.mark.asyncio
async def test_sequential_mode_serializes_all_tokens(store, player, bus):
    ex, _, _ = _make_executor(store, player, bus, concurrent_token_animations=False)
    r, (a, b) = _round_with(("wizard", "interaction", {}), ("orc", "interaction", {}))
    player.gates[a.id] = asyncio.Event()
    task = asyncio.create_task(
        ex.run(r, speed=1.0, is_current=lambda: True, on_executed=lambda _: None)
    )
    await _settle()
    assert player.started == [a.id]
    player.gates[a.id].set()
    await task
    assert player.started == [a.id, b.id]


# ── Failure isolation / staleness ───────────────────────────

@pytest.mark.asyncio
async def test_animation_failure_does_not_abort_round(executor, player, store, caplog):
    ex, _, _ = executor
    r, (a, b) = _round_with(
        ("wizard", "move", {"to_position": {"x": 9, "y": 9}}),
        ("orc", "move", {"to_position": {"x": 3, "y": 3}}),
    )
    player.fail.add(a.id)
    ok, done = await _run(ex, r)
    assert ok is True
    assert done == [a.id, b.id]
    assert store.get("wizard").position == Position(9, 9)
    assert store.get("orc").position == Position(3, 3)
    assert "Animation failed" in caplog.text


@pytest.mark.asyncio
async def test_stale_execution_stops_and_cancels(executor, player, store):
    ex, _, _ = executor
    r, (a, b, c) = _round_with(
        ("wizard", "move", {"to_position": {"x": 1, "y": 1}}),
        ("orc", "move", {"to_position": {"x": 2, "y": 2}}),
        ("orc", "interaction", {}),
    )
    player.gates[b.id] = asyncio.Event()
    current = {"value": True}
    done = []

    def on_executed(action):
        done.append(action.id)
        current["value"] = False  # user navigated away after the first action

    ok = await ex.run(r, speed=1.0, is_current=lambda: current["value"], on_executed=on_executed)
    assert ok is False
    assert done == [a.id]
    assert store.get("orc").position == Position(200, 100)
    assert c.id not in player.started


@pytest.mark.asyncio
async def test_stop_event_abandons_running_animation(executor, player, store):
    ex, _, _ = executor
    r, (a,) = _round_with(("wizard", "move", {"to_position": {"x": 8, "y": 8}}))
    player.gates[a.id] = asyncio.Event()
    stop = asyncio.Event()
    current = {"value": True}
    task = asyncio.create_task(ex.run(
        r, speed=1.0, is_current=lambda: current["value"], on_executed=lambda _: None, stop=stop,
    ))
    await _settle()
    current["value"] = False
    stop.set()
    assert await task is False
    assert a.id not in player.finished
    assert store.get("wizard").position == Position(0, 0)


@pytest.mark.asyncio
async def test_invalid_duration_plays_nothing(executor, player):
    ex, _, _ = executor
    r, _ = _round_with(
        ("wizard", "interaction", {}),
        ("orc", "interaction", {"duration": "slow"}),
    )
    with pytest.raises(ValueError):
        await _run(ex, r)
    await _settle()
    assert player.started == []
