"""Object store — authoritative list of placed map objects.

The timeline engine never mutates objects directly; every change goes
through ``add_object`` / ``delete_object`` / ``update_object`` so the
store stays the single owner of the object list.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from battlemap.models.map_object import MapObject

log = logging.getLogger(__name__)


class MapObjectStore:
    """In-memory store of the objects placed on one battle map.

    Args:
        objects: Initial objects, in placement order.
    """

    def __init__(self, objects: Iterable[MapObject] = ()) -> None:
        self._objects: dict[str, MapObject] = {}
        for obj in objects:
            self._objects[obj.id] = obj
        self.version: int = 0

    # -- Query -----------------------------------------------------------

    @property
    def objects(self) -> tuple[MapObject, ...]:
        """Snapshot of all objects in placement order."""
        return tuple(self._objects.values())

    def get(self, object_id: str) -> Optional[MapObject]:
        """Look up an object by id."""
        return self._objects.get(object_id)

    def __contains__(self, object_id: object) -> bool:
        return object_id in self._objects

    def __len__(self) -> int:
        return len(self._objects)

    # -- Mutation --------------------------------------------------------

    def add_object(self, obj: MapObject) -> None:
        """Insert a new object; an existing id is replaced in place."""
        self._objects[obj.id] = obj
        self.version += 1
        log.debug("Object added: id=%s type=%s", obj.id, obj.type)

    def delete_object(self, object_id: str) -> None:
        """Remove an object by id.  Deleting an absent id does nothing."""
        if self._objects.pop(object_id, None) is not None:
            self.version += 1
            log.debug("Object deleted: id=%s", object_id)

    def update_object(self, obj: MapObject) -> bool:
        """Replace an existing object with a modified copy.

        Returns False (and changes nothing) if the id is not present.
        """
        if obj.id not in self._objects:
            return False
        self._objects[obj.id] = obj
        self.version += 1
        return True

    def clear(self) -> None:
        """Remove every object."""
        self._objects.clear()
        self.version += 1
