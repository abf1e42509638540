"""Crossing detection for double exercise boundaries.

Beyond the crossing time the exercise region is empty and the boundary
values carry no meaning; nodes at and after the crossing are merged onto
a single level so that downstream consumers never see an inverted pair.
"""

import logging
from typing import Optional, Tuple

import numpy as np

from negrate_american.datatypes import DoubleBoundaryResult

logger = logging.getLogger(__name__)


def first_crossing_index(upper: np.ndarray, lower: np.ndarray) -> Optional[int]:
    """Index of the first node with upper <= lower, or None."""
    crossed = np.flatnonzero(np.asarray(upper) <= np.asarray(lower))
    if crossed.size == 0:
        return None
    return int(crossed[0])


def crossing_time_at(times: np.ndarray, index: Optional[int]) -> float:
    """Crossing time reported for a crossing at ``index``.

    A pair that is already collapsed at expiry has no exercise region at
    any maturity and reports the full maturity.
    """
    if index is None:
        return 0.0
    if index == 0:
        return float(times[-1])
    return float(times[index])


def merge_after(upper: np.ndarray, lower: np.ndarray, index: Optional[int]) -> Tuple[np.ndarray, np.ndarray]:
    """Set every node from ``index`` on to the midpoint at ``index``."""
    upper = np.array(upper, dtype=float)
    lower = np.array(lower, dtype=float)
    if index is not None:
        level = 0.5 * (upper[index] + lower[index])
        upper[index:] = level
        lower[index:] = level
    return upper, lower


def detect_crossing(result: DoubleBoundaryResult) -> DoubleBoundaryResult:
    """Recompute the crossing time from the final boundary values.

    Args:
        result: Boundary pair, possibly refined.

    Returns:
        A new result with the recomputed crossing time and merged
        post-crossing nodes. Applying the detector again returns an
        identical result.
    """
    index = first_crossing_index(result.upper, result.lower)
    upper, lower = merge_after(result.upper, result.lower, index)
    crossing_time = crossing_time_at(result.times, index)
    if crossing_time != result.crossing_time:
        logger.debug("Crossing time moved from %.6g to %.6g (index %s)",
                     result.crossing_time, crossing_time, index)
    return DoubleBoundaryResult(result.times, upper, lower, crossing_time)


def split_at_crossing(result: DoubleBoundaryResult) -> Tuple[DoubleBoundaryResult, Optional[DoubleBoundaryResult]]:
    """Split a boundary pair into the pre-crossing and post-crossing parts.

    The pre-crossing part runs up to and including the crossing node; the
    post-crossing part, where the exercise region is empty, starts at the
    crossing node. Without a crossing the second element is None.
    """
    index = first_crossing_index(result.upper, result.lower)
    if index is None or not result.has_crossing:
        return result, None
    if index == 0:
        return DoubleBoundaryResult(result.times[:1], result.upper[:1], result.lower[:1],
                                    result.crossing_time), result
    pre = DoubleBoundaryResult(result.times[:index + 1], result.upper[:index + 1],
                               result.lower[:index + 1], result.crossing_time)
    post = DoubleBoundaryResult(result.times[index:], result.upper[index:],
                                result.lower[index:], result.crossing_time)
    return pre, post
