"""Small numeric helpers shared by the engine modules."""

import math


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    """Clamp value into [low, high]."""
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up.

    Python's round() uses banker's rounding (round(62.5) == 62); scores are
    user-visible, so 62.5 must become 63 consistently.
    """
    return int(math.floor(value + 0.5))
