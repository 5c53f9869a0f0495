"""Engine constants — timing, speed bounds, layers.

Fallback values used when no EngineConfig is injected.
"""

# -- Rounds --------------------------------------------------------------

FIRST_ROUND: int = 1
"""Round numbers start at 1; navigation never goes below it."""

# -- Timing --------------------------------------------------------------

DEFAULT_ANIMATION_MS: float = 1000.0
"""Action animation length when the action data carries no duration."""

MIN_ANIMATION_SPEED: float = 0.1
"""Lower clamp for the animation speed multiplier."""

MAX_ANIMATION_SPEED: float = 5.0
"""Upper clamp for the animation speed multiplier."""

# -- Map layers ----------------------------------------------------------

SPELL_LAYER: int = 10

# -- Battle log ----------------------------------------------------------

BATTLE_LOG_MAX_ENTRIES: int = 500

SPELL_OBJECT_PREFIX = "spell-"
"""Id prefix of spell-effect objects created by spell actions."""
