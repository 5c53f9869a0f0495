"""Formatting utilities.

Position and duration formatting for battle-log messages.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from battlemap.models.map_object import Position


def format_number(value: float) -> str:
    """Format a number with appropriate precision."""
    if value == int(value):
        return str(int(value))
    return f"{value:.1f}"


def format_position(position: Position | None) -> str:
    """Format a map position as ``(x, y)``."""
    if position is None:
        return "(?)"
    return f"({format_number(position.x)}, {format_number(position.y)})"


def format_rounds(count: int) -> str:
    """Format a round count, e.g. ``1 round`` / ``3 rounds``."""
    return f"{count} round" if count == 1 else f"{count} rounds"
