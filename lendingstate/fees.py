"""Borrow and flash-loan fee calculation for a reserve."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from lendingstate.common import U64_MAX, Decimal, ErrorCode, LendingError, Rate


class FeeCalculation(enum.Enum):
    """Whether a fee is added on top of an amount or taken out of it."""

    # fee = rate * amount
    EXCLUSIVE = "exclusive"
    # fee = (rate / (1 + rate)) * amount
    INCLUSIVE = "inclusive"


@dataclass(frozen=True)
class ReserveFees:
    """Owner and host fees charged on borrows and flash loans.

    Fee rates are wads: 10**18 means 100%, so 1% is 10**16.
    ``host_fee_percentage`` is the share of the fee that goes to the host.
    """

    borrow_fee_wad: int = 0
    flash_loan_fee_wad: int = 0
    host_fee_percentage: int = 0

    def __post_init__(self) -> None:
        for name in ("borrow_fee_wad", "flash_loan_fee_wad"):
            value = getattr(self, name)
            if not 0 <= value <= U64_MAX:
                raise ValueError(f"{name} {value} is not an unsigned 64-bit integer")
        if not 0 <= self.host_fee_percentage <= 255:
            raise ValueError(
                f"host_fee_percentage {self.host_fee_percentage} is not an unsigned 8-bit integer"
            )

    def calculate_borrow_fees(
        self, borrow_amount: Decimal, fee_calculation: FeeCalculation
    ) -> tuple[int, int]:
        """Return ``(total_fee, host_fee)`` for a borrow."""
        return self._calculate_fees(borrow_amount, self.borrow_fee_wad, fee_calculation)

    def calculate_flash_loan_fees(self, flash_loan_amount: Decimal) -> tuple[int, int]:
        """Return ``(origination_fee, host_fee)`` for a flash loan."""
        total_fee, host_fee = self._calculate_fees(
            flash_loan_amount, self.flash_loan_fee_wad, FeeCalculation.EXCLUSIVE
        )
        if host_fee > total_fee:
            raise LendingError(ErrorCode.MATH_OVERFLOW)
        return total_fee - host_fee, host_fee

    def _calculate_fees(
        self, amount: Decimal, fee_wad: int, fee_calculation: FeeCalculation
    ) -> tuple[int, int]:
        fee_rate = Rate.from_scaled_val(fee_wad)
        host_fee_rate = Rate.from_percent(self.host_fee_percentage)
        if fee_rate <= Rate.zero() or amount <= Decimal.zero():
            return 0, 0

        assess_host_fee = host_fee_rate > Rate.zero()
        # One token to the owner, plus one to the host when there is a host fee.
        minimum_fee = 2 if assess_host_fee else 1

        if fee_calculation is FeeCalculation.EXCLUSIVE:
            fee_amount = amount.try_mul(fee_rate)
        else:
            inclusive_rate = fee_rate.try_div(fee_rate.try_add(Rate.one()))
            fee_amount = amount.try_mul(inclusive_rate)

        fee_decimal = max(fee_amount, Decimal.from_int(minimum_fee))
        if fee_decimal >= amount:
            raise LendingError(
                ErrorCode.BORROW_TOO_SMALL,
                "Borrow amount is too small to receive liquidity after fees",
            )

        total_fee = fee_decimal.try_round_u64()
        host_fee = (
            max(fee_decimal.try_mul(host_fee_rate).try_round_u64(), 1) if assess_host_fee else 0
        )
        return total_fee, host_fee