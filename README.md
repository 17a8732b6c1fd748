# lendingstate

Account state and arithmetic for a collateralised lending protocol: lending
markets, reserves, obligations, fees, interest accrual and liquidation, plus
the fixed-size little-endian binary layouts those accounts are stored in.

## Installing

    pip install .

For running the tests:

    pip install ".[test]"
    pytest

## Modules

- `lendingstate.common` — `Decimal` (192-bit) and `Rate` (128-bit), unsigned
  fixed-point numbers with 18 decimal places. Their `try_*` operations raise
  `LendingError` with `ErrorCode.MATH_OVERFLOW` on overflow, underflow or
  division by zero. Also the field codecs `pack_decimal`, `unpack_decimal`,
  `pack_bool`, `unpack_bool`, and `InvalidAccountData` (a `ValueError`) for
  account bytes that cannot be decoded.
- `lendingstate.pyth` — `Price` and `Product` oracle account layouts with
  `to_bytes`, read back with `load_price` and `load_product`; the enums
  `AccountType`, `PriceStatus`, `CorpAction`, `PriceType`.
- `lendingstate.last_update` — `LastUpdate`: last refreshed slot, staleness
  (`is_stale`, `mark_stale`, `update_slot`, `slots_elapsed`). Equality and
  ordering compare the slot only.
- `lendingstate.lending_market` — `LendingMarket` with `create`, `pack` and
  `unpack` (290 bytes).
- `lendingstate.fees` — `ReserveFees` and `FeeCalculation` (`EXCLUSIVE`,
  `INCLUSIVE`) for borrow and flash-loan fees.
- `lendingstate.positions` — `ObligationCollateral` and `ObligationLiquidity`,
  one deposit or borrow of an obligation, including interest accrual.
- `lendingstate.obligation` — `Obligation`: deposits and borrows, loan to
  value, withdraw and borrow limits, liquidation limits, and its 1300-byte
  layout (`pack` / `unpack`).
- `lendingstate.reserve_parts` — `ReserveLiquidity`, `ReserveCollateral`,
  `CollateralExchangeRate` and `ReserveConfig`.
- `lendingstate.reserve` — `Reserve`: borrow rate curve, interest accrual,
  deposit and redeem, `calculate_borrow`, `calculate_repay`,
  `calculate_liquidation`, protocol fees, and its 619-byte layout.

Errors from lending operations are `LendingError`; its `code` attribute is an
`ErrorCode` member saying why.

## Example

    from lendingstate.common import Decimal, LendingError
    from lendingstate.fees import FeeCalculation, ReserveFees

    fees = ReserveFees(borrow_fee_wad=10_000_000_000_000_000, flash_loan_fee_wad=0,
                       host_fee_percentage=20)
    total_fee, host_fee = fees.calculate_borrow_fees(Decimal.from_int(1000),
                                                     FeeCalculation.EXCLUSIVE)
    assert (total_fee, host_fee) == (10, 2)

    try:
        fees.calculate_borrow_fees(Decimal.from_int(2), FeeCalculation.EXCLUSIVE)
    except LendingError as exc:
        print(exc.code)  # ErrorCode.BORROW_TOO_SMALL

Staleness:

    from lendingstate.last_update import LastUpdate

    last_update = LastUpdate(slot=10)
    assert not last_update.is_stale(10)
    assert last_update.is_stale(11)

Accounts round-trip through bytes:

    from lendingstate.obligation import Obligation

    obligation = Obligation.create(current_slot=1, lending_market=bytes(32),
                                   owner=bytes(32), deposits=[], borrows=[])
    data = obligation.pack()
    assert len(data) == Obligation.LEN
    assert Obligation.unpack(data) == obligation

## What it does not do

This package models account state and the calculations on it. It does not
process transactions or instructions, check signers or account ownership,
fetch accounts or oracle prices from a network, or move tokens. Market prices
are set on `ReserveLiquidity.market_price` by the caller. There is no
command-line program.