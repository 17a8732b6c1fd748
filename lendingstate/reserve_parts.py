"""Liquidity, collateral and configuration held by a reserve."""

from __future__ import annotations

from dataclasses import dataclass, field

from lendingstate.common import (
    INITIAL_COLLATERAL_RATE,
    PUBKEY_BYTES,
    SLOTS_PER_YEAR,
    U64_MAX,
    Decimal,
    ErrorCode,
    LendingError,
    Rate,
)
from lendingstate.fees import ReserveFees


def _checked_u64(value: int) -> int:
    if not 0 <= value <= U64_MAX:
        raise LendingError(ErrorCode.MATH_OVERFLOW)
    return value


def _insufficient(message: str) -> LendingError:
    return LendingError(ErrorCode.INSUFFICIENT_LIQUIDITY, message)


@dataclass
class ReserveLiquidity:
    """The liquidity side of a reserve: supply, borrows, fees and price."""

    mint_pubkey: bytes = bytes(PUBKEY_BYTES)
    mint_decimals: int = 0
    supply_pubkey: bytes = bytes(PUBKEY_BYTES)
    pyth_oracle_pubkey: bytes = bytes(PUBKEY_BYTES)
    switchboard_oracle_pubkey: bytes = bytes(PUBKEY_BYTES)
    available_amount: int = 0
    borrowed_amount_wads: Decimal = field(default_factory=Decimal.zero)
    cumulative_borrow_rate_wads: Decimal = field(default_factory=Decimal.zero)
    accumulated_protocol_fees_wads: Decimal = field(default_factory=Decimal.zero)
    market_price: Decimal = field(default_factory=Decimal.zero)

    @classmethod
    def create(
        cls,
        mint_pubkey: bytes,
        mint_decimals: int,
        supply_pubkey: bytes,
        pyth_oracle_pubkey: bytes,
        switchboard_oracle_pubkey: bytes,
        market_price: Decimal,
    ) -> ReserveLiquidity:
        """Create empty liquidity with a cumulative borrow rate of one."""
        return cls(
            mint_pubkey=mint_pubkey,
            mint_decimals=mint_decimals,
            supply_pubkey=supply_pubkey,
            pyth_oracle_pubkey=pyth_oracle_pubkey,
            switchboard_oracle_pubkey=switchboard_oracle_pubkey,
            cumulative_borrow_rate_wads=Decimal.one(),
            market_price=market_price,
        )

    def total_supply(self) -> Decimal:
        """Total supply including active loans, net of protocol fees."""
        return (
            Decimal.from_int(self.available_amount)
            .try_add(self.borrowed_amount_wads)
            .try_sub(self.accumulated_protocol_fees_wads)
        )

    def deposit(self, liquidity_amount: int) -> None:
        """Add liquidity to the available amount."""
        self.available_amount = _checked_u64(self.available_amount + liquidity_amount)

    def withdraw(self, liquidity_amount: int) -> None:
        """Remove liquidity from the available amount."""
        if liquidity_amount > self.available_amount:
            raise _insufficient("Withdraw amount cannot exceed available amount")
        self.available_amount = _checked_u64(self.available_amount - liquidity_amount)

    def borrow(self, borrow_decimal: Decimal) -> None:
        """Move a borrow from available liquidity into borrows."""
        borrow_amount = borrow_decimal.try_floor_u64()
        if borrow_amount > self.available_amount:
            raise _insufficient("Borrow amount cannot exceed available amount")
        self.available_amount = _checked_u64(self.available_amount - borrow_amount)
        self.borrowed_amount_wads = self.borrowed_amount_wads.try_add(borrow_decimal)

    def repay(self, repay_amount: int, settle_amount: Decimal) -> None:
        """Return repaid liquidity and settle at most the outstanding borrows."""
        self.available_amount = _checked_u64(self.available_amount + repay_amount)
        safe_settle_amount = min(settle_amount, self.borrowed_amount_wads)
        self.borrowed_amount_wads = self.borrowed_amount_wads.try_sub(safe_settle_amount)

    def redeem_fees(self, withdraw_amount: int) -> None:
        """Pay out accumulated protocol fees from available liquidity."""
        self.available_amount = _checked_u64(self.available_amount - withdraw_amount)
        self.accumulated_protocol_fees_wads = self.accumulated_protocol_fees_wads.try_sub(
            Decimal.from_int(withdraw_amount)
        )

    def utilization_rate(self) -> Rate:
        """Share of the total supply that is borrowed."""
        total_supply = self.total_supply()
        if total_supply == Decimal.zero():
            return Rate.zero()
        return self.borrowed_amount_wads.try_div(total_supply).to_rate()

    def compound_interest(
        self, current_borrow_rate: Rate, slots_elapsed: int, take_rate: Rate
    ) -> None:
        """Compound the yearly borrow rate over the elapsed slots."""
        slot_interest_rate = current_borrow_rate.try_div(SLOTS_PER_YEAR)
        compounded_interest_rate = Rate.one().try_add(slot_interest_rate).try_pow(slots_elapsed)
        self.cumulative_borrow_rate_wads = self.cumulative_borrow_rate_wads.try_mul(
            compounded_interest_rate
        )
        net_new_debt = self.borrowed_amount_wads.try_mul(compounded_interest_rate).try_sub(
            self.borrowed_amount_wads
        )
        self.accumulated_protocol_fees_wads = net_new_debt.try_mul(take_rate).try_add(
            self.accumulated_protocol_fees_wads
        )
        self.borrowed_amount_wads = self.borrowed_amount_wads.try_add(net_new_debt)


@dataclass(frozen=True)
class CollateralExchangeRate:
    """Collateral tokens per unit of liquidity."""

    rate: Rate

    def collateral_to_liquidity(self, collateral_amount: int) -> int:
        return self.decimal_collateral_to_liquidity(
            Decimal.from_int(collateral_amount)
        ).try_floor_u64()

    def decimal_collateral_to_liquidity(self, collateral_amount: Decimal) -> Decimal:
        return collateral_amount.try_div(self.rate)

    def liquidity_to_collateral(self, liquidity_amount: int) -> int:
        return self.decimal_liquidity_to_collateral(
            Decimal.from_int(liquidity_amount)
        ).try_floor_u64()

    def decimal_liquidity_to_collateral(self, liquidity_amount: Decimal) -> Decimal:
        return liquidity_amount.try_mul(self.rate)


@dataclass
class ReserveCollateral:
    """The collateral token side of a reserve."""

    mint_pubkey: bytes = bytes(PUBKEY_BYTES)
    mint_total_supply: int = 0
    supply_pubkey: bytes = bytes(PUBKEY_BYTES)

    @classmethod
    def create(cls, mint_pubkey: bytes, supply_pubkey: bytes) -> ReserveCollateral:
        return cls(mint_pubkey=mint_pubkey, mint_total_supply=0, supply_pubkey=supply_pubkey)

    def mint(self, collateral_amount: int) -> None:
        """Add collateral to the total supply."""
        self.mint_total_supply = _checked_u64(self.mint_total_supply + collateral_amount)

    def burn(self, collateral_amount: int) -> None:
        """Remove collateral from the total supply."""
        self.mint_total_supply = _checked_u64(self.mint_total_supply - collateral_amount)

    def exchange_rate(self, total_liquidity: Decimal) -> CollateralExchangeRate:
        """Current exchange rate given the reserve's total liquidity."""
        if self.mint_total_supply == 0 or total_liquidity == Decimal.zero():
            rate = Rate.from_scaled_val(INITIAL_COLLATERAL_RATE)
        else:
            rate = Decimal.from_int(self.mint_total_supply).try_div(total_liquidity).to_rate()
        return CollateralExchangeRate(rate)


_U8_FIELDS = (
    "optimal_utilization_rate",
    "loan_to_value_ratio",
    "liquidation_bonus",
    "liquidation_threshold",
    "min_borrow_rate",
    "optimal_borrow_rate",
    "max_borrow_rate",
    "protocol_liquidation_fee",
    "protocol_take_rate",
)


@dataclass(frozen=True)
class ReserveConfig:
    """Reserve configuration; rates and ratios are whole percentages."""

    optimal_utilization_rate: int = 0
    loan_to_value_ratio: int = 0
    liquidation_bonus: int = 0
    liquidation_threshold: int = 0
    min_borrow_rate: int = 0
    optimal_borrow_rate: int = 0
    max_borrow_rate: int = 0
    fees: ReserveFees = field(default_factory=ReserveFees)
    deposit_limit: int = 0
    borrow_limit: int = 0
    fee_receiver: bytes = bytes(PUBKEY_BYTES)
    protocol_liquidation_fee: int = 0
    protocol_take_rate: int = 0

    def __post_init__(self) -> None:
        for name in _U8_FIELDS:
            value = getattr(self, name)
            if not 0 <= value <= 255:
                raise ValueError(f"{name} {value} is not an unsigned 8-bit integer")
        for name in ("deposit_limit", "borrow_limit"):
            value = getattr(self, name)
            if not 0 <= value <= U64_MAX:
                raise ValueError(f"{name} {value} is not an unsigned 64-bit integer")