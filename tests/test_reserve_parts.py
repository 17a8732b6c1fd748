import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from lendingstate.common import (
    SLOTS_PER_YEAR,
    U64_MAX,
    WAD,
    Decimal,
    ErrorCode,
    LendingError,
    Rate,
)
from lendingstate.fees import ReserveFees
from lendingstate.reserve_parts import (
    CollateralExchangeRate,
    ReserveCollateral,
    ReserveConfig,
    ReserveLiquidity,
)

MAX_LIQUIDITY = U64_MAX // 5


def test_create_liquidity_starts_empty_with_rate_one():
    liquidity = ReserveLiquidity.create(
        bytes([1]) * 32, 6, bytes([2]) * 32, bytes([3]) * 32, bytes([4]) * 32, Decimal.from_int(7)
    )
    assert liquidity.available_amount == 0
    assert liquidity.cumulative_borrow_rate_wads == Decimal.one()
    assert liquidity.borrowed_amount_wads == Decimal.zero()
    assert liquidity.market_price == Decimal.from_int(7)
    assert liquidity.mint_decimals == 6


def test_total_supply():
    liquidity = ReserveLiquidity(
        available_amount=100,
        borrowed_amount_wads=Decimal.from_int(50),
        accumulated_protocol_fees_wads=Decimal.from_int(10),
    )
    assert liquidity.total_supply() == Decimal.from_int(140)


def test_deposit_and_overflow():
    liquidity = ReserveLiquidity(available_amount=5)
    liquidity.deposit(10)
    assert liquidity.available_amount == 15
    with pytest.raises(LendingError) as info:
        liquidity.deposit(U64_MAX)
    assert info.value.code is ErrorCode.MATH_OVERFLOW


def test_withdraw_too_much():
    liquidity = ReserveLiquidity(available_amount=5)
    with pytest.raises(LendingError) as info:
        liquidity.withdraw(6)
    assert info.value.code is ErrorCode.INSUFFICIENT_LIQUIDITY
    liquidity.withdraw(5)
    assert liquidity.available_amount == 0


def test_borrow_floors_available_and_keeps_fraction():
    liquidity = ReserveLiquidity(available_amount=10)
    amount = Decimal.from_scaled_val(10 * WAD + 7 * WAD // 10)
    liquidity.borrow(amount)
    assert liquidity.available_amount == 0
    assert liquidity.borrowed_amount_wads == amount


def test_borrow_too_much():
    liquidity = ReserveLiquidity(available_amount=10)
    with pytest.raises(LendingError) as info:
        liquidity.borrow(Decimal.from_int(11))
    assert info.value.code is ErrorCode.INSUFFICIENT_LIQUIDITY


def test_repay_clamps_settle_amount():
    liquidity = ReserveLiquidity(available_amount=0, borrowed_amount_wads=Decimal.from_int(3))
    liquidity.repay(5, Decimal.from_int(5))
    assert liquidity.available_amount == 5
    assert liquidity.borrowed_amount_wads == Decimal.zero()


def test_redeem_fees():
    liquidity = ReserveLiquidity(
        available_amount=5, accumulated_protocol_fees_wads=Decimal.from_int(10)
    )
    liquidity.redeem_fees(3)
    assert liquidity.available_amount == 2
    assert liquidity.accumulated_protocol_fees_wads == Decimal.from_int(7)
    with pytest.raises(LendingError) as info:
        liquidity.redeem_fees(3)
    assert info.value.code is ErrorCode.MATH_OVERFLOW


def test_utilization_rate_values():
    assert ReserveLiquidity().utilization_rate() == Rate.zero()
    liquidity = ReserveLiquidity(available_amount=50, borrowed_amount_wads=Decimal.from_int(50))
    assert liquidity.utilization_rate() == Rate.from_percent(50)


@given(
    total_liquidity=st.integers(0, MAX_LIQUIDITY),
    borrowed_percent=st.integers(0, WAD),
)
def test_current_utilization_rate(total_liquidity, borrowed_percent):
    borrowed = Decimal.from_int(total_liquidity).try_mul(Rate.from_scaled_val(borrowed_percent))
    liquidity = ReserveLiquidity(
        borrowed_amount_wads=borrowed,
        available_amount=total_liquidity - borrowed.try_round_u64(),
    )
    assert liquidity.utilization_rate() <= Rate.one()


@settings(max_examples=10, deadline=None)
@given(
    slots_elapsed=st.integers(0, SLOTS_PER_YEAR),
    borrow_rate=st.integers(0, 255),
    take_rate=st.integers(0, 100),
)
def test_compound_interest_does_not_overflow(slots_elapsed, borrow_rate, take_rate):
    liquidity = ReserveLiquidity()
    for _ in range(1000):
        liquidity.compound_interest(
            Rate.from_percent(borrow_rate), slots_elapsed, Rate.from_percent(take_rate)
        )
        liquidity.cumulative_borrow_rate_wads.to_scaled_val()
        liquidity.accumulated_protocol_fees_wads.to_scaled_val()
    assert liquidity.cumulative_borrow_rate_wads == Decimal.zero()
    assert liquidity.accumulated_protocol_fees_wads == Decimal.zero()


def test_compound_interest_zero_rate_changes_nothing():
    liquidity = ReserveLiquidity(
        borrowed_amount_wads=Decimal.from_int(100), cumulative_borrow_rate_wads=Decimal.one()
    )
    liquidity.compound_interest(Rate.zero(), 1000, Rate.from_percent(50))
    assert liquidity.borrowed_amount_wads == Decimal.from_int(100)
    assert liquidity.cumulative_borrow_rate_wads == Decimal.one()
    assert liquidity.accumulated_protocol_fees_wads == Decimal.zero()


def test_compound_interest_full_take_rate_collects_all_new_debt():
    before = Decimal.from_int(1000)
    liquidity = ReserveLiquidity(borrowed_amount_wads=before, cumulative_borrow_rate_wads=Decimal.one())
    liquidity.compound_interest(Rate.from_percent(10), SLOTS_PER_YEAR // 12, Rate.one())
    assert liquidity.borrowed_amount_wads > before
    assert liquidity.cumulative_borrow_rate_wads > Decimal.one()
    assert liquidity.accumulated_protocol_fees_wads == liquidity.borrowed_amount_wads.try_sub(before)


def test_create_collateral_is_empty():
    collateral = ReserveCollateral.create(bytes([9]) * 32, bytes([8]) * 32)
    assert collateral.mint_total_supply == 0
    assert collateral.mint_pubkey == bytes([9]) * 32


def test_mint_and_burn():
    collateral = ReserveCollateral()
    collateral.mint(10)
    collateral.burn(4)
    assert collateral.mint_total_supply == 6
    with pytest.raises(LendingError) as info:
        collateral.burn(7)
    assert info.value.code is ErrorCode.MATH_OVERFLOW
    with pytest.raises(LendingError):
        collateral.mint(U64_MAX)


def test_initial_exchange_rate():
    assert ReserveCollateral().exchange_rate(Decimal.from_int(100)).rate == Rate.one()
    collateral = ReserveCollateral(mint_total_supply=10)
    assert collateral.exchange_rate(Decimal.zero()).rate == Rate.one()


def test_exchange_rate_from_supply():
    collateral = ReserveCollateral(mint_total_supply=200)
    assert collateral.exchange_rate(Decimal.from_int(100)).rate == Rate.from_scaled_val(2 * WAD)


def test_exchange_rate_conversions():
    rate = CollateralExchangeRate(Rate.from_scaled_val(2 * WAD))
    assert rate.liquidity_to_collateral(50) == 100
    assert rate.collateral_to_liquidity(100) == 50
    assert rate.decimal_liquidity_to_collateral(Decimal.from_int(3)) == Decimal.from_int(6)
    assert rate.decimal_collateral_to_liquidity(Decimal.from_int(3)) == Decimal.from_scaled_val(
        3 * WAD // 2
    )


def test_exchange_rate_conversion_floors():
    rate = CollateralExchangeRate(Rate.from_scaled_val(3 * WAD))
    assert rate.collateral_to_liquidity(10) == 3


def test_reserve_config_fields():
    config = ReserveConfig(optimal_utilization_rate=80, fees=ReserveFees(borrow_fee_wad=5))
    assert config.optimal_utilization_rate == 80
    assert config.fees.borrow_fee_wad == 5


@pytest.mark.parametrize(
    "kwargs",
    [{"optimal_utilization_rate": 256}, {"max_borrow_rate": -1}, {"deposit_limit": U64_MAX + 1}],
)
def test_reserve_config_rejects_out_of_range(kwargs):
    with pytest.raises(ValueError):
        ReserveConfig(**kwargs)