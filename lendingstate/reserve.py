"""Reserve account state: a pool of one liquidity token and its collateral token."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import ClassVar

from lendingstate.common import (
    PROGRAM_VERSION,
    PUBKEY_BYTES,
    U64_MAX,
    UNINITIALIZED_VERSION,
    Decimal,
    ErrorCode,
    InvalidAccountData,
    LendingError,
    Rate,
    pack_bool,
    pack_decimal,
    unpack_bool,
    unpack_decimal,
)
from lendingstate.fees import FeeCalculation, ReserveFees
from lendingstate.last_update import LastUpdate
from lendingstate.obligation import Obligation
from lendingstate.positions import ObligationCollateral, ObligationLiquidity
from lendingstate.reserve_parts import (
    CollateralExchangeRate,
    ReserveCollateral,
    ReserveConfig,
    ReserveLiquidity,
)

# Obligation borrow amount that is small enough to close out.
LIQUIDATION_CLOSE_AMOUNT = 2

RESERVE_LEN = 619

_LAYOUT = struct.Struct("<BQ1s32s32sB32s32s32sQ16s16s16s32sQ32s7BQQBQQ32sBB16s230x")

# Rates paid when the optimal and maximum borrow rates are equal and one of these
# values, as multiples of 50%.
_BOOSTED_MAX_BORROW_RATES = {
    251: 6,  # 300%
    252: 7,  # 350%
    253: 8,  # 400%
    254: 10,  # 500%
    255: 12,  # 600%
    250: 20,  # 1000%
    249: 30,  # 1500%
    248: 40,  # 2000%
    247: 50,  # 2500%
}


def _overflow() -> LendingError:
    return LendingError(ErrorCode.MATH_OVERFLOW)


def _checked_sub(a: int, b: int) -> int:
    if b > a:
        raise _overflow()
    return a - b


def _require_key(name: str, key: bytes) -> bytes:
    if len(key) != PUBKEY_BYTES:
        raise ValueError(f"{name} must be {PUBKEY_BYTES} bytes, got {len(key)}")
    return bytes(key)


@dataclass(frozen=True)
class CalculateBorrowResult:
    """Outcome of a borrow calculation."""

    # Total amount of the borrow including fees
    borrow_amount: Decimal
    # Portion of the total the borrower receives
    receive_amount: int
    # Loan origination fee
    borrow_fee: int
    # Host share of the origination fee
    host_fee: int


@dataclass(frozen=True)
class CalculateRepayResult:
    """Outcome of a repay calculation."""

    # Liquidity settled from the obligation
    settle_amount: Decimal
    # Token amount that is repaid
    repay_amount: int


@dataclass(frozen=True)
class CalculateLiquidationResult:
    """Outcome of a liquidation calculation."""

    # Liquidity settled from the obligation, including defaulted debt
    settle_amount: Decimal
    # Token amount that is repaid
    repay_amount: int
    # Collateral withdrawn in exchange for the repayment
    withdraw_amount: int


@dataclass
class Reserve:
    """A lending market reserve: its liquidity, collateral and configuration."""

    LEN: ClassVar[int] = RESERVE_LEN

    version: int = UNINITIALIZED_VERSION
    last_update: LastUpdate = field(default_factory=LastUpdate)
    lending_market: bytes = bytes(PUBKEY_BYTES)
    liquidity: ReserveLiquidity = field(default_factory=ReserveLiquidity)
    collateral: ReserveCollateral = field(default_factory=ReserveCollateral)
    config: ReserveConfig = field(default_factory=ReserveConfig)

    @classmethod
    def create(
        cls,
        current_slot: int,
        lending_market: bytes,
        liquidity: ReserveLiquidity,
        collateral: ReserveCollateral,
        config: ReserveConfig,
    ) -> Reserve:
        """Create an initialized reserve at the current program version."""
        return cls(
            version=PROGRAM_VERSION,
            last_update=LastUpdate(slot=current_slot, stale=True),
            lending_market=lending_market,
            liquidity=liquidity,
            collateral=collateral,
            config=config,
        )

    def is_initialized(self) -> bool:
        return self.version != UNINITIALIZED_VERSION

    def deposit_liquidity(self, liquidity_amount: int) -> int:
        """Record deposited liquidity and return the collateral amount to mint."""
        collateral_amount = self.collateral_exchange_rate().liquidity_to_collateral(
            liquidity_amount
        )
        self.liquidity.deposit(liquidity_amount)
        self.collateral.mint(collateral_amount)
        return collateral_amount

    def redeem_collateral(self, collateral_amount: int) -> int:
        """Record redeemed collateral and return the liquidity amount to withdraw."""
        liquidity_amount = self.collateral_exchange_rate().collateral_to_liquidity(
            collateral_amount
        )
        self.collateral.burn(collateral_amount)
        self.liquidity.withdraw(liquidity_amount)
        return liquidity_amount

    def current_borrow_rate(self) -> Rate:
        """Yearly borrow rate for the current utilization."""
        config = self.config
        utilization_rate = self.liquidity.utilization_rate()
        optimal_utilization_rate = Rate.from_percent(config.optimal_utilization_rate)
        low_utilization = utilization_rate < optimal_utilization_rate

        if low_utilization or config.optimal_utilization_rate == 100:
            normalized_rate = utilization_rate.try_div(optimal_utilization_rate)
            min_rate = Rate.from_percent(config.min_borrow_rate)
            rate_range = Rate.from_percent(
                _checked_sub(config.optimal_borrow_rate, config.min_borrow_rate)
            )
            return normalized_rate.try_mul(rate_range).try_add(min_rate)

        if config.optimal_borrow_rate == config.max_borrow_rate:
            multiple = _BOOSTED_MAX_BORROW_RATES.get(config.max_borrow_rate)
            if multiple is not None:
                return Rate.from_percent(50).try_mul(multiple)
            return Rate.from_percent(config.max_borrow_rate)

        normalized_rate = utilization_rate.try_sub(optimal_utilization_rate).try_div(
            Rate.from_percent(_checked_sub(100, config.optimal_utilization_rate))
        )
        min_rate = Rate.from_percent(config.optimal_borrow_rate)
        rate_range = Rate.from_percent(
            _checked_sub(config.max_borrow_rate, config.optimal_borrow_rate)
        )
        return normalized_rate.try_mul(rate_range).try_add(min_rate)

    def collateral_exchange_rate(self) -> CollateralExchangeRate:
        return self.collateral.exchange_rate(self.liquidity.total_supply())

    def accrue_interest(self, current_slot: int) -> None:
        """Update the borrow rate and compound interest up to ``current_slot``."""
        slots_elapsed = self.last_update.slots_elapsed(current_slot)
        if slots_elapsed > 0:
            current_borrow_rate = self.current_borrow_rate()
            take_rate = Rate.from_percent(self.config.protocol_take_rate)
            self.liquidity.compound_interest(current_borrow_rate, slots_elapsed, take_rate)

    def calculate_borrow(
        self,
        amount_to_borrow: int,
        max_borrow_value: Decimal,
        remaining_reserve_borrow: Decimal,
    ) -> CalculateBorrowResult:
        """Borrow liquidity up to a maximum market value.

        An ``amount_to_borrow`` of 2**64 - 1 borrows as much as allowed.
        """
        decimals = 10**self.liquidity.mint_decimals
        if decimals > U64_MAX:
            raise _overflow()

        if amount_to_borrow == U64_MAX:
            borrow_amount = min(
                max_borrow_value.try_mul(decimals).try_div(self.liquidity.market_price),
                remaining_reserve_borrow,
                Decimal.from_int(self.liquidity.available_amount),
            )
            borrow_fee, host_fee = self.config.fees.calculate_borrow_fees(
                borrow_amount, FeeCalculation.INCLUSIVE
            )
            receive_amount = _checked_sub(borrow_amount.try_floor_u64(), borrow_fee)
            return CalculateBorrowResult(borrow_amount, receive_amount, borrow_fee, host_fee)

        receive_amount = amount_to_borrow
        borrow_amount = Decimal.from_int(receive_amount)
        borrow_fee, host_fee = self.config.fees.calculate_borrow_fees(
            borrow_amount, FeeCalculation.EXCLUSIVE
        )
        borrow_amount = borrow_amount.try_add(Decimal.from_int(borrow_fee))
        borrow_value = borrow_amount.try_mul(self.liquidity.market_price).try_div(decimals)
        if borrow_value > max_borrow_value:
            raise LendingError(
                ErrorCode.BORROW_TOO_LARGE, "Borrow value cannot exceed maximum borrow value"
            )
        return CalculateBorrowResult(borrow_amount, receive_amount, borrow_fee, host_fee)

    def calculate_repay(self, amount_to_repay: int, borrowed_amount: Decimal) -> CalculateRepayResult:
        """Repay liquidity up to the borrowed amount; 2**64 - 1 repays everything."""
        if amount_to_repay == U64_MAX:
            settle_amount = borrowed_amount
        else:
            settle_amount = min(Decimal.from_int(amount_to_repay), borrowed_amount)
        return CalculateRepayResult(settle_amount, settle_amount.try_ceil_u64())

    def calculate_liquidation(
        self,
        amount_to_liquidate: int,
        obligation: Obligation,
        liquidity: ObligationLiquidity,
        collateral: ObligationCollateral,
    ) -> CalculateLiquidationResult:
        """Liquidate some or all of an unhealthy obligation."""
        bonus_rate = Rate.from_percent(self.config.liquidation_bonus).try_add(Rate.one())

        if amount_to_liquidate == U64_MAX:
            max_amount = liquidity.borrowed_amount_wads
        else:
            max_amount = min(
                Decimal.from_int(amount_to_liquidate), liquidity.borrowed_amount_wads
            )

        if liquidity.borrowed_amount_wads < Decimal.from_int(LIQUIDATION_CLOSE_AMOUNT):
            # Too small to liquidate normally: settle it all.
            settle_amount = liquidity.borrowed_amount_wads
            liquidation_value = liquidity.market_value.try_mul(bonus_rate)
            if liquidation_value > collateral.market_value:
                repay_pct = collateral.market_value.try_div(liquidation_value)
                repay_amount = max_amount.try_mul(repay_pct).try_ceil_u64()
                withdraw_amount = collateral.deposited_amount
            elif liquidation_value == collateral.market_value:
                repay_amount = max_amount.try_ceil_u64()
                withdraw_amount = collateral.deposited_amount
            else:
                withdraw_pct = liquidation_value.try_div(collateral.market_value)
                repay_amount = max_amount.try_ceil_u64()
                withdraw_amount = (
                    Decimal.from_int(collateral.deposited_amount)
                    .try_mul(withdraw_pct)
                    .try_floor_u64()
                )
        else:
            liquidation_amount = min(obligation.max_liquidation_amount(liquidity), max_amount)
            liquidation_pct = liquidation_amount.try_div(liquidity.borrowed_amount_wads)
            liquidation_value = liquidity.market_value.try_mul(liquidation_pct).try_mul(
                bonus_rate
            )
            if liquidation_value > collateral.market_value:
                repay_pct = collateral.market_value.try_div(liquidation_value)
                settle_amount = liquidation_amount.try_mul(repay_pct)
                repay_amount = settle_amount.try_ceil_u64()
                withdraw_amount = collateral.deposited_amount
            elif liquidation_value == collateral.market_value:
                settle_amount = liquidation_amount
                repay_amount = settle_amount.try_ceil_u64()
                withdraw_amount = collateral.deposited_amount
            else:
                withdraw_pct = liquidation_value.try_div(collateral.market_value)
                settle_amount = liquidation_amount
                repay_amount = settle_amount.try_ceil_u64()
                withdraw_amount = (
                    Decimal.from_int(collateral.deposited_amount)
                    .try_mul(withdraw_pct)
                    .try_floor_u64()
                )

        return CalculateLiquidationResult(settle_amount, repay_amount, withdraw_amount)

    def calculate_protocol_liquidation_fee(self, amount_liquidated: int) -> int:
        """Protocol cut of the liquidation bonus, always at least 1."""
        bonus_rate = Rate.from_percent(self.config.liquidation_bonus).try_add(Rate.one())
        amount = Decimal.from_int(amount_liquidated)
        bonus = amount.try_sub(amount.try_div(bonus_rate))
        fee = bonus.try_mul(Rate.from_percent(self.config.protocol_liquidation_fee))
        return max(fee.try_ceil_u64(), 1)

    def calculate_redeem_fees(self) -> int:
        """Protocol fees that can be redeemed from the available liquidity."""
        return min(
            self.liquidity.available_amount,
            self.liquidity.accumulated_protocol_fees_wads.try_floor_u64(),
        )

    def pack(self) -> bytes:
        """Serialize into the fixed-size account layout."""
        liquidity, collateral, config = self.liquidity, self.collateral, self.config
        fees = config.fees
        try:
            return _LAYOUT.pack(
                self.version,
                self.last_update.slot,
                pack_bool(self.last_update.stale),
                _require_key("lending_market", self.lending_market),
                _require_key("liquidity mint_pubkey", liquidity.mint_pubkey),
                liquidity.mint_decimals,
                _require_key("liquidity supply_pubkey", liquidity.supply_pubkey),
                _require_key("pyth_oracle_pubkey", liquidity.pyth_oracle_pubkey),
                _require_key("switchboard_oracle_pubkey", liquidity.switchboard_oracle_pubkey),
                liquidity.available_amount,
                pack_decimal(liquidity.borrowed_amount_wads),
                pack_decimal(liquidity.cumulative_borrow_rate_wads),
                pack_decimal(liquidity.market_price),
                _require_key("collateral mint_pubkey", collateral.mint_pubkey),
                collateral.mint_total_supply,
                _require_key("collateral supply_pubkey", collateral.supply_pubkey),
                config.optimal_utilization_rate,
                config.loan_to_value_ratio,
                config.liquidation_bonus,
                config.liquidation_threshold,
                config.min_borrow_rate,
                config.optimal_borrow_rate,
                config.max_borrow_rate,
                fees.borrow_fee_wad,
                fees.flash_loan_fee_wad,
                fees.host_fee_percentage,
                config.deposit_limit,
                config.borrow_limit,
                _require_key("fee_receiver", config.fee_receiver),
                config.protocol_liquidation_fee,
                config.protocol_take_rate,
                pack_decimal(liquidity.accumulated_protocol_fees_wads),
            )
        except struct.error as exc:
            raise ValueError(str(exc)) from exc

    @classmethod
    def unpack(cls, data: bytes) -> Reserve:
        """Deserialize from the start of ``data``."""
        if len(data) < RESERVE_LEN:
            raise InvalidAccountData(f"reserve needs {RESERVE_LEN} bytes, got {len(data)}")
        (
            version,
            slot,
            stale,
            lending_market,
            liquidity_mint_pubkey,
            liquidity_mint_decimals,
            liquidity_supply_pubkey,
            pyth_oracle_pubkey,
            switchboard_oracle_pubkey,
            available_amount,
            borrowed_amount_wads,
            cumulative_borrow_rate_wads,
            market_price,
            collateral_mint_pubkey,
            collateral_mint_total_supply,
            collateral_supply_pubkey,
            optimal_utilization_rate,
            loan_to_value_ratio,
            liquidation_bonus,
            liquidation_threshold,
            min_borrow_rate,
            optimal_borrow_rate,
            max_borrow_rate,
            borrow_fee_wad,
            flash_loan_fee_wad,
            host_fee_percentage,
            deposit_limit,
            borrow_limit,
            fee_receiver,
            protocol_liquidation_fee,
            protocol_take_rate,
            accumulated_protocol_fees_wads,
        ) = _LAYOUT.unpack_from(data)

        if version > PROGRAM_VERSION:
            raise InvalidAccountData("Reserve version does not match lending program version")

        return cls(
            version=version,
            last_update=LastUpdate(slot=slot, stale=unpack_bool(stale)),
            lending_market=lending_market,
            liquidity=ReserveLiquidity(
                mint_pubkey=liquidity_mint_pubkey,
                mint_decimals=liquidity_mint_decimals,
                supply_pubkey=liquidity_supply_pubkey,
                pyth_oracle_pubkey=pyth_oracle_pubkey,
                switchboard_oracle_pubkey=switchboard_oracle_pubkey,
                available_amount=available_amount,
                borrowed_amount_wads=unpack_decimal(borrowed_amount_wads),
                cumulative_borrow_rate_wads=unpack_decimal(cumulative_borrow_rate_wads),
                accumulated_protocol_fees_wads=unpack_decimal(accumulated_protocol_fees_wads),
                market_price=unpack_decimal(market_price),
            ),
            collateral=ReserveCollateral(
                mint_pubkey=collateral_mint_pubkey,
                mint_total_supply=collateral_mint_total_supply,
                supply_pubkey=collateral_supply_pubkey,
            ),
            config=ReserveConfig(
                optimal_utilization_rate=optimal_utilization_rate,
                loan_to_value_ratio=loan_to_value_ratio,
                liquidation_bonus=liquidation_bonus,
                liquidation_threshold=liquidation_threshold,
                min_borrow_rate=min_borrow_rate,
                optimal_borrow_rate=optimal_borrow_rate,
                max_borrow_rate=max_borrow_rate,
                fees=ReserveFees(
                    borrow_fee_wad=borrow_fee_wad,
                    flash_loan_fee_wad=flash_loan_fee_wad,
                    host_fee_percentage=host_fee_percentage,
                ),
                deposit_limit=deposit_limit,
                borrow_limit=borrow_limit,
                fee_receiver=fee_receiver,
                protocol_liquidation_fee=protocol_liquidation_fee,
                protocol_take_rate=protocol_take_rate,
            ),
        )