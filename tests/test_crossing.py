"""Tests for crossing detection on synthetic boundary pairs."""

import numpy as np
import pytest

from negrate_american.boundary.crossing import (
    crossing_time_at,
    detect_crossing,
    first_crossing_index,
    merge_after,
    split_at_crossing,
)
from negrate_american.datatypes import DoubleBoundaryResult

TIMES = np.array([0.0, 1.0, 2.0, 3.0, 4.0])


class TestFirstCrossingIndex:
    """Locating the first node with upper <= lower."""

    def test_no_crossing(self):
        """Strictly ordered pairs never cross."""
        assert first_crossing_index([5, 4, 3], [1, 2, 2.5]) is None

    def test_touching_counts_as_crossing(self):
        """upper == lower is already a crossing."""
        assert first_crossing_index([5, 4, 3], [1, 4, 2]) == 1

    def test_first_of_several(self):
        """Only the first crossed node matters."""
        assert first_crossing_index([5, 4, 1, 0.5], [1, 2, 2, 3]) == 2


class TestCrossingTime:
    """Crossing time reported for an index."""

    def test_none_is_zero(self):
        assert crossing_time_at(TIMES, None) == 0.0

    def test_interior_node(self):
        assert crossing_time_at(TIMES, 3) == 3.0

    def test_collapsed_at_expiry_reports_maturity(self):
        """A pair crossed at node 0 has no exercise region at all."""
        assert crossing_time_at(TIMES, 0) == 4.0


class TestMergeAfter:
    """Merging post-crossing nodes."""

    def test_midpoint_from_index_on(self):
        upper, lower = merge_after([10, 9, 7, 6], [5, 6, 8, 9], 2)
        np.testing.assert_allclose(upper, [10, 9, 7.5, 7.5])
        np.testing.assert_allclose(lower, [5, 6, 7.5, 7.5])

    def test_no_index_is_a_copy(self):
        original = np.array([3.0, 2.0])
        upper, _ = merge_after(original, [1.0, 1.0], None)
        upper[0] = 99.0
        assert original[0] == 3.0


class TestDetectCrossing:
    """Recomputing the crossing time from boundary values."""

    def test_detects_and_merges(self):
        """Crossing found at node 3 and merged onto the midpoint."""
        result = DoubleBoundaryResult(TIMES, [100, 95, 90, 80, 78], [50, 60, 70, 85, 90])
        detected = detect_crossing(result)
        assert detected.crossing_time == 3.0
        assert detected.has_crossing
        np.testing.assert_allclose(detected.upper[3:], 82.5)
        np.testing.assert_allclose(detected.lower[3:], 82.5)
        np.testing.assert_allclose(detected.upper[:3], [100, 95, 90])

    def test_overrides_stale_crossing_time(self):
        """The stored crossing time is replaced by the detected one."""
        result = DoubleBoundaryResult(TIMES, [100, 95, 90, 88, 86], [50, 60, 70, 75, 80], 2.0)
        assert detect_crossing(result).crossing_time == 0.0

    def test_idempotent(self):
        """Detecting twice gives the same result."""
        result = DoubleBoundaryResult(TIMES, [100, 95, 90, 80, 78], [50, 60, 70, 85, 90])
        once = detect_crossing(result)
        twice = detect_crossing(once)
        assert twice.crossing_time == once.crossing_time
        np.testing.assert_array_equal(twice.upper, once.upper)
        np.testing.assert_array_equal(twice.lower, once.lower)

    def test_returns_new_object(self):
        result = DoubleBoundaryResult(TIMES, [100, 95, 90, 80, 78], [50, 60, 70, 85, 90])
        assert detect_crossing(result) is not result


class TestSplitAtCrossing:
    """Pre- and post-crossing segments."""

    def test_without_crossing(self):
        result = DoubleBoundaryResult(TIMES, [100, 95, 90, 88, 86], [50, 60, 70, 75, 80])
        pre, post = split_at_crossing(result)
        assert pre is result
        assert post is None

    def test_segments_share_crossing_node(self):
        result = detect_crossing(
            DoubleBoundaryResult(TIMES, [100, 95, 90, 80, 78], [50, 60, 70, 85, 90]))
        pre, post = split_at_crossing(result)
        np.testing.assert_array_equal(pre.times, [0.0, 1.0, 2.0, 3.0])
        np.testing.assert_array_equal(post.times, [3.0, 4.0])
        assert pre.crossing_time == post.crossing_time == 3.0


class TestDoubleBoundaryResult:
    """Invariants of the boundary container."""

    def test_arrays_are_read_only(self):
        result = DoubleBoundaryResult(TIMES, np.ones(5), np.zeros(5))
        with pytest.raises(ValueError):
            result.upper[0] = 2.0

    def test_exercise_horizon(self):
        result = DoubleBoundaryResult(TIMES, np.ones(5), np.zeros(5), 2.0)
        assert result.exercise_horizon == 2.0
        assert DoubleBoundaryResult(TIMES, np.ones(5), np.zeros(5)).exercise_horizon == 4.0

    def test_rejects_mismatched_lengths(self):
        with pytest.raises(ValueError):
            DoubleBoundaryResult(TIMES, np.ones(4), np.zeros(5))
