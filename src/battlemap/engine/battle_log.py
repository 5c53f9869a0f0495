"""Battle log — chronological record of executed actions."""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from battlemap.util.constants import BATTLE_LOG_MAX_ENTRIES


@dataclass(frozen=True)
class BattleLogEntry:
    """One line of the battle log.

    Attributes:
        round_number: Round the action was executed in.
        type: Entry kind ("movement", "spell", "action", ...).
        token_id: Acting token.
        token_name: Display name at the time of the entry.
        message: Human-readable summary.
        severity: "low", "normal" or "high".
        details: Extra structured data.
        timestamp: Wall-clock time of the entry.
    """

    round_number: int
    type: str
    token_id: str
    token_name: str
    message: str
    severity: str = "normal"
    details: dict[str, Any] = field(default_factory=dict, compare=False)
    timestamp: float = field(default_factory=time.time)


class BattleLog:
    """Bounded list of battle-log entries; the oldest are dropped first."""

    def __init__(self, max_entries: int = BATTLE_LOG_MAX_ENTRIES) -> None:
        self._entries: deque[BattleLogEntry] = deque(maxlen=max_entries)

    def add_entry(self, entry: BattleLogEntry) -> None:
        self._entries.append(entry)

    @property
    def entries(self) -> list[BattleLogEntry]:
        return list(self._entries)

    def for_round(self, round_number: int) -> list[BattleLogEntry]:
        return [e for e in self._entries if e.round_number == round_number]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
