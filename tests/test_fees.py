import pytest
from hypothesis import given
from hypothesis import strategies as st

from lendingstate.common import U64_MAX, WAD, Decimal, ErrorCode, LendingError
from lendingstate.fees import FeeCalculation, ReserveFees

ONE_PERCENT_WAD = 10_000_000_000_000_000


def test_borrow_fee_calculation_min_host():
    fees = ReserveFees(borrow_fee_wad=ONE_PERCENT_WAD, flash_loan_fee_wad=0, host_fee_percentage=20)

    with pytest.raises(LendingError) as exc:
        fees.calculate_borrow_fees(Decimal.from_int(2), FeeCalculation.EXCLUSIVE)
    assert exc.value.code is ErrorCode.BORROW_TOO_SMALL

    with pytest.raises(LendingError) as exc:
        fees.calculate_borrow_fees(Decimal.one(), FeeCalculation.EXCLUSIVE)
    assert exc.value.code is ErrorCode.BORROW_TOO_SMALL

    assert fees.calculate_borrow_fees(Decimal.zero(), FeeCalculation.EXCLUSIVE) == (0, 0)


def test_borrow_fee_calculation_min_no_host():
    fees = ReserveFees(borrow_fee_wad=ONE_PERCENT_WAD, flash_loan_fee_wad=0, host_fee_percentage=0)

    assert fees.calculate_borrow_fees(Decimal.from_int(2), FeeCalculation.EXCLUSIVE) == (1, 0)

    with pytest.raises(LendingError) as exc:
        fees.calculate_borrow_fees(Decimal.one(), FeeCalculation.EXCLUSIVE)
    assert exc.value.code is ErrorCode.BORROW_TOO_SMALL

    assert fees.calculate_borrow_fees(Decimal.zero(), FeeCalculation.EXCLUSIVE) == (0, 0)


def test_borrow_fee_calculation_host():
    fees = ReserveFees(borrow_fee_wad=ONE_PERCENT_WAD, flash_loan_fee_wad=0, host_fee_percentage=20)
    assert fees.calculate_borrow_fees(Decimal.from_int(1000), FeeCalculation.EXCLUSIVE) == (10, 2)


def test_borrow_fee_calculation_no_host():
    fees = ReserveFees(borrow_fee_wad=ONE_PERCENT_WAD, flash_loan_fee_wad=0, host_fee_percentage=0)
    assert fees.calculate_borrow_fees(Decimal.from_int(1000), FeeCalculation.EXCLUSIVE) == (10, 0)


def test_borrow_fee_calculation_inclusive():
    fees = ReserveFees(borrow_fee_wad=ONE_PERCENT_WAD, flash_loan_fee_wad=0, host_fee_percentage=20)
    assert fees.calculate_borrow_fees(Decimal.from_int(1010), FeeCalculation.INCLUSIVE) == (10, 2)


def test_zero_fee_rate_charges_nothing():
    fees = ReserveFees(borrow_fee_wad=0, flash_loan_fee_wad=0, host_fee_percentage=50)
    assert fees.calculate_borrow_fees(Decimal.from_int(1000), FeeCalculation.EXCLUSIVE) == (0, 0)
    assert fees.calculate_flash_loan_fees(Decimal.from_int(1000)) == (0, 0)


def test_flash_loan_fee_split():
    fees = ReserveFees(
        borrow_fee_wad=0, flash_loan_fee_wad=3_000_000_000_000_000, host_fee_percentage=20
    )
    assert fees.calculate_flash_loan_fees(Decimal.from_int(1000)) == (2, 1)


def test_flash_loan_too_small():
    fees = ReserveFees(borrow_fee_wad=0, flash_loan_fee_wad=ONE_PERCENT_WAD, host_fee_percentage=0)
    with pytest.raises(LendingError) as exc:
        fees.calculate_flash_loan_fees(Decimal.one())
    assert exc.value.code is ErrorCode.BORROW_TOO_SMALL


def test_invalid_host_fee_percentage_rejected():
    with pytest.raises(ValueError):
        ReserveFees(host_fee_percentage=256)


fee_wads = st.integers(min_value=0, max_value=WAD - 1)
host_percentages = st.integers(min_value=0, max_value=100)
borrow_amounts = st.integers(min_value=3, max_value=U64_MAX)


@given(fee_wads, fee_wads, host_percentages, borrow_amounts)
def test_borrow_fee_properties(borrow_fee_wad, flash_loan_fee_wad, host_fee_percentage, borrow_amount):
    fees = ReserveFees(borrow_fee_wad, flash_loan_fee_wad, host_fee_percentage)
    total_fee, host_fee = fees.calculate_borrow_fees(
        Decimal.from_int(borrow_amount), FeeCalculation.EXCLUSIVE
    )

    assert total_fee <= borrow_amount
    assert host_fee <= total_fee
    if borrow_fee_wad > 0:
        assert total_fee > 0
    if host_fee_percentage == 100:
        assert host_fee == total_fee
    if host_fee_percentage > 0 and borrow_fee_wad > 0:
        assert host_fee > 0
    else:
        assert host_fee == 0


@given(fee_wads, fee_wads, host_percentages, borrow_amounts)
def test_flash_loan_fee_properties(
    borrow_fee_wad, flash_loan_fee_wad, host_fee_percentage, borrow_amount
):
    fees = ReserveFees(borrow_fee_wad, flash_loan_fee_wad, host_fee_percentage)
    origination_fee, host_fee = fees.calculate_flash_loan_fees(Decimal.from_int(borrow_amount))

    assert origination_fee + host_fee <= borrow_amount
    if flash_loan_fee_wad > 0:
        assert origination_fee + host_fee > 0
    if host_fee_percentage == 100:
        assert origination_fee == 0
    if host_fee_percentage > 0 and flash_loan_fee_wad > 0:
        assert host_fee > 0
    else:
        assert host_fee == 0