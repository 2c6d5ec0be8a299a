"""Rounding helpers shared by the scheduler and the score aggregator."""

import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer, with .5 going towards positive infinity.

    Python's built-in ``round`` uses banker's rounding (``round(2.5) == 2``),
    which would shift scaled scores and intervals sitting exactly on a half.
    """
    return math.floor(value + 0.5)
