import pytest

from mcp_nft_launchpad.intervals import IntervalSet


def test_locate_free_on_empty_set_is_identity():
    ranges = IntervalSet(100)
    assert ranges.locate_free(0) == 0
    assert ranges.locate_free(42) == 42


def test_locate_free_skips_claimed_ranges():
    ranges = IntervalSet(100)
    ranges.insert_merge(10, 20)
    assert ranges.locate_free(9) == 9
    assert ranges.locate_free(10) == 20
    assert ranges.locate_free(15) == 25
    assert 12 in ranges
    assert 20 not in ranges


def test_locate_free_wraps_past_the_last_free_position():
    ranges = IntervalSet(10)
    ranges.insert_merge(0, 3)
    # Free positions are 3..9; offset 7 wraps back to the first of them.
    assert ranges.locate_free(6) == 9
    assert ranges.locate_free(7) == 3
    assert ranges.locate_free(8) == 4


def test_touching_ranges_merge():
    ranges = IntervalSet(100)
    ranges.insert_merge(10, 20)
    assert ranges.insert_merge(20, 25) == 1
    assert ranges.ranges == [(10, 25)]
    assert ranges.covered() == 15


def test_overlapping_insert_absorbs_and_stretches():
    ranges = IntervalSet(100)
    ranges.insert_merge(10, 20)
    ranges.insert_merge(15, 18)
    # The three new positions are added on top of the ten already claimed.
    assert ranges.ranges == [(10, 23)]
    assert ranges.covered() == 13


def test_disjoint_ranges_stay_sorted():
    ranges = IntervalSet(100)
    ranges.insert_merge(50, 60)
    ranges.insert_merge(5, 10)
    assert ranges.ranges == [(5, 10), (50, 60)]
    assert len(ranges) == 2


def test_overflow_wraps_to_the_start():
    ranges = IntervalSet(100)
    assert ranges.insert_merge(95, 105) == 2
    assert ranges.ranges == [(0, 5), (95, 100)]
    assert ranges.covered() == 10


def test_wrapped_overflow_merges_with_existing_range():
    ranges = IntervalSet(100)
    ranges.insert_merge(2, 4)
    ranges.insert_merge(95, 105)
    assert ranges.ranges == [(0, 7), (95, 100)]
    assert ranges.covered() == 12


@pytest.mark.parametrize("start,end", [(-1, 5), (100, 105), (10, 10), (10, 5)])
def test_invalid_ranges_are_rejected(start, end):
    with pytest.raises(ValueError):
        IntervalSet(100).insert_merge(start, end)


def test_claiming_more_than_the_space_is_rejected():
    ranges = IntervalSet(100)
    ranges.insert_merge(0, 60)
    with pytest.raises(ValueError):
        ranges.insert_merge(60, 110)


def test_size_must_be_positive():
    with pytest.raises(ValueError):
        IntervalSet(0)
