"""Animation dispatch — hands actions to the rendering side for playback.

A player is an async callable ``(action, duration_s) -> None`` that
returns once the visual effect has finished.  The registry picks the
player registered for the action type and falls back to a default one.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable

if TYPE_CHECKING:
    from battlemap.models.timeline import Action

log = logging.getLogger(__name__)

PlayFn = Callable[["Action", float], Awaitable[None]]


async def sleep_play(action: Action, duration: float) -> None:
    """Default player: no visuals, just let the scaled duration elapse."""
    await asyncio.sleep(max(0.0, duration))


class AnimationRegistry:
    """Maps action types to playback coroutines.

    Args:
        default: Player for types without a registered one.
    """

    def __init__(self, default: PlayFn = sleep_play) -> None:
        self._default = default
        self._players: dict[str, PlayFn] = {}

    def register(self, action_type: str, player: PlayFn) -> None:
        """Register the player for an action type (replaces an existing one)."""
        self._players[str(getattr(action_type, "value", action_type))] = player

    def unregister(self, action_type: str) -> None:
        self._players.pop(str(getattr(action_type, "value", action_type)), None)

    def player_for(self, action_type: str) -> PlayFn:
        return self._players.get(action_type, self._default)

    async def play(self, action: Action, duration: float) -> None:
        """Play ``action`` and wait for the player to finish."""
        log.debug("Playing %s action %s for %.3fs", action.type, action.id, duration)
        await self.player_for(action.type)(action, duration)
