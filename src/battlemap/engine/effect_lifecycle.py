"""Effect lifecycle — round-based expiry of spell effects and conditions.

Expiry rule for a spell-effect object at round ``r``:

1. Objects without ``is_spell_effect`` are out of scope.
2. Missing ``round_created`` / ``spell_duration``, or a duration of 0,
   means keep (instant or malformed effects are never guessed away).
3. Otherwise the object is removed once ``r >= round_created + spell_duration``.

Removal is one-way.  Every id removed by a pass (or deleted explicitly
by the user) is tombstoned, and ``add_effect`` refuses tombstoned ids,
so going back to an earlier round can never bring an effect back.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Optional

from battlemap.models.map_object import MapObject, StatusEffect
from battlemap.util.events import EffectAdded, EffectExpired, StatusEffectExpired

if TYPE_CHECKING:
    from battlemap.engine.object_store import MapObjectStore
    from battlemap.util.events import EventBus

log = logging.getLogger(__name__)


# -- Pure rules ----------------------------------------------------------

def expiry_round(obj: MapObject) -> Optional[int]:
    """First round at which ``obj`` must no longer exist.

    None for objects the cleanup never removes (not a spell effect,
    instant, or missing the creation/duration fields).
    """
    if obj.is_spell_effect is not True:
        return None
    if obj.round_created is None or obj.spell_duration is None:
        return None
    if obj.spell_duration == 0:
        return None
    return obj.round_created + obj.spell_duration


def is_expired(obj: MapObject, round_number: int) -> bool:
    """Whether ``obj`` has to be removed when ``round_number`` is current."""
    expiry = expiry_round(obj)
    return expiry is not None and round_number >= expiry


def status_effect_expired(effect: StatusEffect, round_number: int) -> bool:
    """Same rule for token conditions: indefinite or unstamped ones stay."""
    if not effect.duration or effect.round_applied is None:
        return False
    return round_number >= effect.round_applied + effect.duration


# -- Lifecycle pass ------------------------------------------------------

class EffectLifecycle:
    """Applies the expiry rules to an object store and keeps tombstones.

    Args:
        store: Object store holding the placed objects.
        event_bus: Optional bus for EffectAdded / EffectExpired events.
    """

    def __init__(self, store: MapObjectStore, event_bus: EventBus | None = None) -> None:
        self._store = store
        self._events = event_bus
        self._tombstones: set[str] = set()

    @property
    def store(self) -> MapObjectStore:
        return self._store

    @property
    def tombstones(self) -> frozenset[str]:
        """Ids that were removed for good."""
        return frozenset(self._tombstones)

    def is_tombstoned(self, object_id: str) -> bool:
        return object_id in self._tombstones

    # -- Authoring -------------------------------------------------------

    def add_effect(self, obj: MapObject) -> bool:
        """Place a spell-effect object.  Returns False for tombstoned ids."""
        if obj.id in self._tombstones:
            log.warning("Refusing to re-add removed effect %s", obj.id)
            return False
        if not obj.is_spell_effect:
            obj = replace(obj, is_spell_effect=True)
        self._store.add_object(obj)
        log.info("Effect added: id=%s created=%s duration=%s",
                 obj.id, obj.round_created, obj.spell_duration)
        if self._events is not None:
            self._events.emit(EffectAdded(
                object_id=obj.id,
                round_created=obj.round_created,
                spell_duration=obj.spell_duration,
            ))
        return True

    def remove_effect(self, object_id: str) -> bool:
        """Explicit user deletion; the id is tombstoned like an expiry."""
        if object_id not in self._store:
            return False
        self._store.delete_object(object_id)
        self._tombstones.add(object_id)
        log.info("Effect removed by user: id=%s", object_id)
        return True

    # -- Round transition ------------------------------------------------

    def run_pass(self, round_number: int) -> list[str]:
        """Remove every effect expired at ``round_number``.

        Runs against the store's current snapshot, so repeating the pass
        at the same round removes nothing further.  Returns removed ids.
        """
        removed: list[str] = []
        for obj in self._store.objects:
            expiry = expiry_round(obj)
            if expiry is None:
                if obj.status_effects:
                    self._expire_status_effects(obj, round_number)
                continue
            if round_number < expiry:
                log.debug("Keeping effect %s (expires at round %d, now %d)",
                          obj.id, expiry, round_number)
                continue
            self._store.delete_object(obj.id)
            self._tombstones.add(obj.id)
            removed.append(obj.id)
            log.info("Effect expired: id=%s round=%d expiry=%d", obj.id, round_number, expiry)
            if self._events is not None:
                self._events.emit(EffectExpired(
                    object_id=obj.id, round_number=round_number, expiry_round=expiry,
                ))
        return removed

    def _expire_status_effects(self, token: MapObject, round_number: int) -> None:
        kept = tuple(e for e in token.status_effects
                     if not status_effect_expired(e, round_number))
        if len(kept) == len(token.status_effects):
            return
        self._store.update_object(replace(token, status_effects=kept))
        for effect in token.status_effects:
            if effect in kept:
                continue
            log.info("Status effect expired: token=%s type=%s round=%d",
                     token.id, effect.type, round_number)
            if self._events is not None:
                self._events.emit(StatusEffectExpired(
                    token_id=token.id, effect_type=effect.type, round_number=round_number,
                ))
