"""Collateral deposited into and liquidity borrowed by an obligation."""

from __future__ import annotations

from dataclasses import dataclass, field

from lendingstate.common import (
    PUBKEY_BYTES,
    U64_MAX,
    Decimal,
    ErrorCode,
    LendingError,
)


def _checked_u64(value: int) -> int:
    if not 0 <= value <= U64_MAX:
        raise LendingError(ErrorCode.MATH_OVERFLOW)
    return value


@dataclass
class ObligationCollateral:
    """Collateral deposited to one reserve, with its market value in quote currency."""

    deposit_reserve: bytes = bytes(PUBKEY_BYTES)
    deposited_amount: int = 0
    market_value: Decimal = field(default_factory=Decimal.zero)

    def deposit(self, collateral_amount: int) -> None:
        """Increase the deposited collateral."""
        self.deposited_amount = _checked_u64(self.deposited_amount + collateral_amount)

    def withdraw(self, collateral_amount: int) -> None:
        """Decrease the deposited collateral."""
        self.deposited_amount = _checked_u64(self.deposited_amount - collateral_amount)


@dataclass
class ObligationLiquidity:
    """Liquidity borrowed from one reserve, including accrued interest."""

    borrow_reserve: bytes = bytes(PUBKEY_BYTES)
    cumulative_borrow_rate_wads: Decimal = field(default_factory=Decimal.zero)
    borrowed_amount_wads: Decimal = field(default_factory=Decimal.zero)
    market_value: Decimal = field(default_factory=Decimal.zero)

    def repay(self, settle_amount: Decimal) -> None:
        """Decrease the borrowed liquidity."""
        self.borrowed_amount_wads = self.borrowed_amount_wads.try_sub(settle_amount)

    def borrow(self, borrow_amount: Decimal) -> None:
        """Increase the borrowed liquidity."""
        self.borrowed_amount_wads = self.borrowed_amount_wads.try_add(borrow_amount)

    def accrue_interest(self, cumulative_borrow_rate_wads: Decimal) -> None:
        """Grow the borrowed amount by the change in the reserve's cumulative rate."""
        if cumulative_borrow_rate_wads < self.cumulative_borrow_rate_wads:
            raise LendingError(
                ErrorCode.NEGATIVE_INTEREST_RATE, "Interest rate cannot be negative"
            )
        if cumulative_borrow_rate_wads == self.cumulative_borrow_rate_wads:
            return
        compounded_interest_rate = cumulative_borrow_rate_wads.try_div(
            self.cumulative_borrow_rate_wads
        ).to_rate()
        self.borrowed_amount_wads = self.borrowed_amount_wads.try_mul(compounded_interest_rate)
        self.cumulative_borrow_rate_wads = cumulative_borrow_rate_wads