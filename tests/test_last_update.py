import pytest
from hypothesis import given
from hypothesis import strategies as st

from lendingstate.common import ErrorCode, LendingError
from lendingstate.last_update import STALE_AFTER_SLOTS_ELAPSED, LastUpdate

slots = st.integers(min_value=0, max_value=2**64 - 1)


@given(slots, st.integers(min_value=0, max_value=10**6))
def test_slots_elapsed_counts_forward(start, gap):
    assert LastUpdate(slot=start).slots_elapsed(start + gap) == gap


def test_slots_elapsed_backwards_overflows():
    with pytest.raises(LendingError) as err:
        LastUpdate(slot=10).slots_elapsed(9)
    assert err.value.code is ErrorCode.MATH_OVERFLOW


def test_update_slot_clears_stale():
    update = LastUpdate(slot=3, stale=True)
    update.update_slot(8)
    assert update.slot == 8
    assert update.stale is False
    assert update.is_stale(8) is False


def test_stale_after_slot_passes():
    update = LastUpdate(slot=8)
    assert update.is_stale(8 + STALE_AFTER_SLOTS_ELAPSED) is True


def test_mark_stale():
    update = LastUpdate(slot=8)
    update.mark_stale()
    assert update.is_stale(8) is True


def test_marked_stale_does_not_check_slot():
    assert LastUpdate(slot=10, stale=True).is_stale(0) is True


def test_unmarked_with_earlier_slot_overflows():
    with pytest.raises(LendingError):
        LastUpdate(slot=10, stale=False).is_stale(0)


def test_equality_and_order_use_slot_only():
    assert LastUpdate(slot=5, stale=True) == LastUpdate(slot=5, stale=False)
    assert LastUpdate(slot=4) < LastUpdate(slot=5)
    assert LastUpdate(slot=6) >= LastUpdate(slot=5)
    assert max(LastUpdate(slot=2), LastUpdate(slot=7)).slot == 7