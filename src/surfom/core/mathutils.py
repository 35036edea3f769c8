"""
Small numerical helpers shared by the residue model.
"""
import logging
from typing import Optional, Sequence

import numpy as np

from surfom.core.constants import REAL_EQUALITY_TOLERANCE, ROUNDING_DECIMALS
from surfom.core.exceptions import MassImbalanceError, ErrorContext

logger = logging.getLogger(__name__)


def divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Divide, returning ``default`` when the denominator is zero"""
    if denominator == 0:
        return default
    return numerator / denominator


def bound(value: float, lower: float, upper: float) -> float:
    """Clamp ``value`` into [lower, upper]"""
    return float(np.clip(value, lower, upper))


def reals_are_equal(first: float, second: float) -> bool:
    return abs(first - second) < REAL_EQUALITY_TOLERANCE


def bound_check(value: float, lower: float, upper: float, name: str) -> bool:
    """
    Warn when a value falls outside its expected range.

    Returns True when the value is in bounds. Nothing is clamped.
    """
    if value < lower or value > upper:
        logger.warning(f"'{name}' out of bounds! {lower} < {value} < {upper} evaluates 'FALSE'")
        return False
    return True


def check_non_negative(value: float, name: str, context: Optional[ErrorContext] = None) -> float:
    """
    Round to 8 decimal places and fail on a negative result.

    Used on conservation-critical quantities where a negative value can
    only mean an upstream accounting error.
    """
    rounded = round(value, ROUNDING_DECIMALS)
    if rounded < 0:
        raise MassImbalanceError(f"Negative value for {name}: {value}", context)
    return rounded


def get_cumulative_index(cum_sum: float, array: Sequence[float]) -> int:
    """
    Find the first element of ``array`` at which the running sum reaches ``cum_sum``.

    Returns the 0-based index of the smallest ``ndx`` such that
    ``sum(array[0..ndx]) >= cum_sum``. If the target is never reached the
    index of the last element is returned (-1 for an empty array).
    """
    last = len(array) - 1
    cum = 0.0
    for i in range(last):
        cum += array[i]
        if cum >= cum_sum:
            return i
    return last


def add_cover(cover1: float, cover2: float) -> float:
    """
    Combine two fractional covers assuming random overlap.

    Each cover is the fraction (0-1) of the surface intercepted by one
    layer; the result is the fraction intercepted when both are present.
    """
    bare = (1.0 - cover1) * (1.0 - cover2)
    return 1.0 - bare
