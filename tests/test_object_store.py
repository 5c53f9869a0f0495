"""Tests for the map object store, the battle log and animation dispatch."""

from unittest.mock import AsyncMock

import pytest

from battlemap.engine.animation import AnimationRegistry
from battlemap.engine.battle_log import BattleLog, BattleLogEntry
from battlemap.engine.object_store import MapObjectStore
from battlemap.models.map_object import MapObject, Position
from battlemap.models.timeline import Action, ActionType
from battlemap.util.types import format_position, format_rounds


class TestMapObjectStore:
    def test_initial_objects_keep_order(self):
        store = MapObjectStore([MapObject(id="a"), MapObject(id="b")])
        assert [o.id for o in store.objects] == ["a", "b"]
        assert len(store) == 2

    def test_add_replaces_existing_id(self):
        store = MapObjectStore([MapObject(id="a", name="Old")])
        store.add_object(MapObject(id="a", name="New"))
        assert len(store) == 1
        assert store.get("a").name == "New"

    def test_delete_is_idempotent(self):
        store = MapObjectStore([MapObject(id="a")])
        store.delete_object("a")
        version = store.version
        store.delete_object("a")
        assert "a" not in store
        assert store.version == version

    def test_update_requires_existing_object(self):
        store = MapObjectStore()
        assert store.update_object(MapObject(id="ghost")) is False
        assert "ghost" not in store

    def test_update_replaces_value(self):
        store = MapObjectStore([MapObject(id="a")])
        assert store.update_object(MapObject(id="a", position=Position(3, 4))) is True
        assert store.get("a").position == Position(3, 4)

    def test_clear(self):
        store = MapObjectStore([MapObject(id="a")])
        store.clear()
        assert store.objects == ()


class TestBattleLog:
    def _entry(self, round_number: int, message: str = "Moved") -> BattleLogEntry:
        return BattleLogEntry(round_number=round_number, type="movement",
                              token_id="t1", token_name="Rogue", message=message)

    def test_for_round(self):
        battle_log = BattleLog()
        battle_log.add_entry(self._entry(1))
        battle_log.add_entry(self._entry(2))
        battle_log.add_entry(self._entry(2, "Cast Web"))
        assert [e.message for e in battle_log.for_round(2)] == ["Moved", "Cast Web"]

    def test_oldest_entries_dropped(self):
        battle_log = BattleLog(max_entries=2)
        for n in (1, 2, 3):
            battle_log.add_entry(self._entry(n))
        assert [e.round_number for e in battle_log.entries] == [2, 3]

    def test_clear(self):
        battle_log = BattleLog()
        battle_log.add_entry(self._entry(1))
        battle_log.clear()
        assert len(battle_log) == 0


class TestAnimationRegistry:
    @pytest.mark.asyncio
    async def test_registered_player_used_for_type(self):
        default, mover = AsyncMock(), AsyncMock()
        registry = AnimationRegistry(default=default)
        registry.register(ActionType.MOVE, mover)

        walk = Action(id="a1", token_id="t1", type="move")
        cast = Action(id="a2", token_id="t1", type="spell")
        await registry.play(walk, 0.5)
        await registry.play(cast, 1.0)
        mover.assert_awaited_once_with(walk, 0.5)
        default.assert_awaited_once_with(cast, 1.0)

        registry.unregister("move")
        await registry.play(walk, 0.5)
        assert default.await_count == 2

    @pytest.mark.asyncio
    async def test_default_player_sleeps(self):
        await AnimationRegistry().play(Action(id="a1", token_id="t1", type="move"), 0.0)


def test_formatting():
    assert format_position(Position(10, 2.5)) == "(10, 2.5)"
    assert format_position(None) == "(?)"
    assert format_rounds(1) == "1 round"
    assert format_rounds(3) == "3 rounds"
