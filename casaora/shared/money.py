"""Integer money helpers

All amounts are stored in minor currency units (cents). Rounding follows the
round-half-up convention the web client uses, so server and client agree on
every displayed total.
"""

import math
from typing import Union

Number = Union[int, float]


def round_half_up(value: Number) -> int:
    """Round to the nearest integer, halves going towards +infinity"""
    return int(math.floor(value + 0.5))


def percent_of(amount: int, percent: Number) -> int:
    """Return `percent`% of `amount`, rounded half up"""
    return round_half_up(amount * percent / 100)


def apply_rate(amount: int, rate: float) -> int:
    """Return `amount * rate`, rounded half up"""
    return round_half_up(amount * rate)
