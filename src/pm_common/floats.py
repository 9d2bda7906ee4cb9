"""Float tolerance utilities for pool and share arithmetic.

Pools, amounts and shares are floats. Comparisons that decide whether an
order is exhausted or a position is empty go through these helpers so that
residues like 1e-13 are treated as zero.
"""

from collections.abc import Callable

from src.pm_common.errors import InternalError

EPSILON = 1e-9


def floating_equal(a: float, b: float, epsilon: float = EPSILON) -> bool:
    return abs(a - b) < epsilon


def floating_lesser_equal(a: float, b: float, epsilon: float = EPSILON) -> bool:
    return a < b + epsilon


def floating_greater_equal(a: float, b: float, epsilon: float = EPSILON) -> bool:
    return a + epsilon > b


def binary_search(
    low: float,
    high: float,
    comparator: Callable[[float], float],
    max_iterations: int = 200,
    tolerance: float = 0.0,
) -> float:
    """Find x in [low, high] where an increasing comparator crosses zero.

    comparator(x) > 0 means x is too large, < 0 means too small. Stops when
    |comparator(x)| <= tolerance or the bracket collapses to float precision.
    Raises InternalError if neither happens within max_iterations.
    """
    for _ in range(max_iterations):
        mid = low + (high - low) / 2
        if mid == low or mid == high:
            return mid
        comparison = comparator(mid)
        if abs(comparison) <= tolerance:
            return mid
        if comparison > 0:
            high = mid
        else:
            low = mid
    raise InternalError(
        f"Binary search did not converge within {max_iterations} iterations"
        f" (bracket [{low}, {high}])"
    )
