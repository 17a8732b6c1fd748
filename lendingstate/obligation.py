"""Obligation account state: a user's deposits and borrows in one lending market."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import ClassVar, Iterable

from lendingstate.common import (
    PROGRAM_VERSION,
    PUBKEY_BYTES,
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
from lendingstate.last_update import LastUpdate
from lendingstate.positions import ObligationCollateral, ObligationLiquidity

# Max number of collateral and liquidity reserve accounts combined for an obligation.
MAX_OBLIGATION_RESERVES = 10

# Percentage of an obligation that can be repaid during each liquidation call.
LIQUIDATION_CLOSE_FACTOR = 20

# Maximum quote currency value that can be liquidated in one liquidation call.
MAX_LIQUIDATABLE_VALUE_AT_ONCE = 500_000

OBLIGATION_COLLATERAL_LEN = 88  # 32 + 8 + 16 + 32
OBLIGATION_LIQUIDITY_LEN = 112  # 32 + 16 + 16 + 16 + 32
OBLIGATION_LEN = 1300

_DATA_FLAT_LEN = OBLIGATION_COLLATERAL_LEN + OBLIGATION_LIQUIDITY_LEN * (
    MAX_OBLIGATION_RESERVES - 1
)

_HEADER = struct.Struct("<BQ1s32s32s16s16s16s16s64xBB")
_COLLATERAL = struct.Struct("<32sQ16s32x")
_LIQUIDITY = struct.Struct("<32s16s16s16s32x")


def _require_key(name: str, key: bytes) -> bytes:
    if len(key) != PUBKEY_BYTES:
        raise ValueError(f"{name} must be {PUBKEY_BYTES} bytes, got {len(key)}")
    return bytes(key)


def _pack(layout: struct.Struct, *values: object) -> bytes:
    try:
        return layout.pack(*values)
    except struct.error as exc:
        raise ValueError(str(exc)) from exc


def _reserve_limit() -> LendingError:
    return LendingError(
        ErrorCode.OBLIGATION_RESERVE_LIMIT,
        f"Obligation cannot have more than {MAX_OBLIGATION_RESERVES} "
        "deposits and borrows combined",
    )


@dataclass
class Obligation:
    """A user's collateral deposits and liquidity borrows in a lending market."""

    LEN: ClassVar[int] = OBLIGATION_LEN

    version: int = UNINITIALIZED_VERSION
    last_update: LastUpdate = field(default_factory=LastUpdate)
    lending_market: bytes = bytes(PUBKEY_BYTES)
    owner: bytes = bytes(PUBKEY_BYTES)
    deposits: list[ObligationCollateral] = field(default_factory=list)
    borrows: list[ObligationLiquidity] = field(default_factory=list)
    deposited_value: Decimal = field(default_factory=Decimal.zero)
    borrowed_value: Decimal = field(default_factory=Decimal.zero)
    allowed_borrow_value: Decimal = field(default_factory=Decimal.zero)
    unhealthy_borrow_value: Decimal = field(default_factory=Decimal.zero)

    @classmethod
    def create(
        cls,
        current_slot: int,
        lending_market: bytes,
        owner: bytes,
        deposits: Iterable[ObligationCollateral],
        borrows: Iterable[ObligationLiquidity],
    ) -> Obligation:
        """Create an initialized obligation at the current program version."""
        return cls(
            version=PROGRAM_VERSION,
            last_update=LastUpdate(slot=current_slot, stale=True),
            lending_market=lending_market,
            owner=owner,
            deposits=list(deposits),
            borrows=list(borrows),
        )

    def is_initialized(self) -> bool:
        return self.version != UNINITIALIZED_VERSION

    def loan_to_value(self) -> Decimal:
        """Ratio of borrowed value to deposited value."""
        return self.borrowed_value.try_div(self.deposited_value)

    def repay(self, settle_amount: Decimal, liquidity_index: int) -> None:
        """Repay liquidity, removing the borrow once it is settled in full."""
        liquidity = self.borrows[liquidity_index]
        if settle_amount == liquidity.borrowed_amount_wads:
            del self.borrows[liquidity_index]
        else:
            liquidity.repay(settle_amount)

    def withdraw(self, withdraw_amount: int, collateral_index: int) -> None:
        """Withdraw collateral, removing the deposit once it is emptied."""
        collateral = self.deposits[collateral_index]
        if withdraw_amount == collateral.deposited_amount:
            del self.deposits[collateral_index]
        else:
            collateral.withdraw(withdraw_amount)

    def max_withdraw_value(self, withdraw_collateral_ltv: Rate) -> Decimal:
        """Maximum collateral value that can be withdrawn."""
        if self.allowed_borrow_value <= self.borrowed_value:
            return Decimal.zero()
        if withdraw_collateral_ltv == Rate.zero():
            return self.deposited_value
        return self.allowed_borrow_value.try_sub(self.borrowed_value).try_div(
            withdraw_collateral_ltv
        )

    def remaining_borrow_value(self) -> Decimal:
        """Maximum liquidity value that can still be borrowed."""
        return self.allowed_borrow_value.try_sub(self.borrowed_value)

    def max_liquidation_amount(self, liquidity: ObligationLiquidity) -> Decimal:
        """Maximum amount of the given borrow that one liquidation may settle."""
        max_liquidation_value = min(
            self.borrowed_value.try_mul(Rate.from_percent(LIQUIDATION_CLOSE_FACTOR)),
            liquidity.market_value,
            Decimal.from_int(MAX_LIQUIDATABLE_VALUE_AT_ONCE),
        )
        max_liquidation_pct = max_liquidation_value.try_div(liquidity.market_value)
        return liquidity.borrowed_amount_wads.try_mul(max_liquidation_pct)

    def find_collateral_in_deposits(
        self, deposit_reserve: bytes
    ) -> tuple[ObligationCollateral, int]:
        """Return the collateral for a deposit reserve and its index."""
        if not self.deposits:
            raise LendingError(ErrorCode.OBLIGATION_DEPOSITS_EMPTY, "Obligation has no deposits")
        index = self._collateral_index(deposit_reserve)
        if index is None:
            raise LendingError(ErrorCode.INVALID_OBLIGATION_COLLATERAL)
        return self.deposits[index], index

    def find_or_add_collateral_to_deposits(self, deposit_reserve: bytes) -> ObligationCollateral:
        """Return the collateral for a deposit reserve, adding an empty one if absent."""
        index = self._collateral_index(deposit_reserve)
        if index is not None:
            return self.deposits[index]
        if len(self.deposits) + len(self.borrows) >= MAX_OBLIGATION_RESERVES:
            raise _reserve_limit()
        collateral = ObligationCollateral(deposit_reserve=deposit_reserve)
        self.deposits.append(collateral)
        return collateral

    def find_liquidity_in_borrows(self, borrow_reserve: bytes) -> tuple[ObligationLiquidity, int]:
        """Return the liquidity for a borrow reserve and its index."""
        if not self.borrows:
            raise LendingError(ErrorCode.OBLIGATION_BORROWS_EMPTY, "Obligation has no borrows")
        index = self._liquidity_index(borrow_reserve)
        if index is None:
            raise LendingError(ErrorCode.INVALID_OBLIGATION_LIQUIDITY)
        return self.borrows[index], index

    def find_or_add_liquidity_to_borrows(
        self, borrow_reserve: bytes, cumulative_borrow_rate_wads: Decimal
    ) -> ObligationLiquidity:
        """Return the liquidity for a borrow reserve, adding an empty one if absent."""
        index = self._liquidity_index(borrow_reserve)
        if index is not None:
            return self.borrows[index]
        if len(self.deposits) + len(self.borrows) >= MAX_OBLIGATION_RESERVES:
            raise _reserve_limit()
        liquidity = ObligationLiquidity(
            borrow_reserve=borrow_reserve,
            cumulative_borrow_rate_wads=cumulative_borrow_rate_wads,
        )
        self.borrows.append(liquidity)
        return liquidity

    def _collateral_index(self, deposit_reserve: bytes) -> int | None:
        return next(
            (i for i, c in enumerate(self.deposits) if c.deposit_reserve == deposit_reserve),
            None,
        )

    def _liquidity_index(self, borrow_reserve: bytes) -> int | None:
        return next(
            (i for i, l in enumerate(self.borrows) if l.borrow_reserve == borrow_reserve),
            None,
        )

    def pack(self) -> bytes:
        """Serialize into the fixed-size account layout."""
        header = _pack(
            _HEADER,
            self.version,
            self.last_update.slot,
            pack_bool(self.last_update.stale),
            _require_key("lending_market", self.lending_market),
            _require_key("owner", self.owner),
            pack_decimal(self.deposited_value),
            pack_decimal(self.borrowed_value),
            pack_decimal(self.allowed_borrow_value),
            pack_decimal(self.unhealthy_borrow_value),
            len(self.deposits),
            len(self.borrows),
        )
        entries = [
            _pack(
                _COLLATERAL,
                _require_key("deposit_reserve", c.deposit_reserve),
                c.deposited_amount,
                pack_decimal(c.market_value),
            )
            for c in self.deposits
        ]
        entries.extend(
            _pack(
                _LIQUIDITY,
                _require_key("borrow_reserve", l.borrow_reserve),
                pack_decimal(l.cumulative_borrow_rate_wads),
                pack_decimal(l.borrowed_amount_wads),
                pack_decimal(l.market_value),
            )
            for l in self.borrows
        )
        data_flat = b"".join(entries)
        if len(data_flat) > _DATA_FLAT_LEN:
            raise ValueError("obligation has too many deposits and borrows to pack")
        return header + data_flat.ljust(_DATA_FLAT_LEN, b"\x00")

    @classmethod
    def unpack(cls, data: bytes) -> Obligation:
        """Deserialize from the start of ``data``."""
        if len(data) < OBLIGATION_LEN:
            raise InvalidAccountData(f"obligation needs {OBLIGATION_LEN} bytes, got {len(data)}")
        (
            version,
            slot,
            stale,
            lending_market,
            owner,
            deposited_value,
            borrowed_value,
            allowed_borrow_value,
            unhealthy_borrow_value,
            deposits_len,
            borrows_len,
        ) = _HEADER.unpack_from(data)
        if version > PROGRAM_VERSION:
            raise InvalidAccountData("Obligation version does not match lending program version")
        needed = deposits_len * OBLIGATION_COLLATERAL_LEN + borrows_len * OBLIGATION_LIQUIDITY_LEN
        if needed > _DATA_FLAT_LEN:
            raise InvalidAccountData("obligation deposit and borrow counts exceed account size")

        offset = _HEADER.size
        deposits = []
        for _ in range(deposits_len):
            reserve, amount, market_value = _COLLATERAL.unpack_from(data, offset)
            deposits.append(
                ObligationCollateral(
                    deposit_reserve=reserve,
                    deposited_amount=amount,
                    market_value=unpack_decimal(market_value),
                )
            )
            offset += OBLIGATION_COLLATERAL_LEN
        borrows = []
        for _ in range(borrows_len):
            reserve, rate, borrowed, market_value = _LIQUIDITY.unpack_from(data, offset)
            borrows.append(
                ObligationLiquidity(
                    borrow_reserve=reserve,
                    cumulative_borrow_rate_wads=unpack_decimal(rate),
                    borrowed_amount_wads=unpack_decimal(borrowed),
                    market_value=unpack_decimal(market_value),
                )
            )
            offset += OBLIGATION_LIQUIDITY_LEN

        return cls(
            version=version,
            last_update=LastUpdate(slot=slot, stale=unpack_bool(stale)),
            lending_market=lending_market,
            owner=owner,
            deposits=deposits,
            borrows=borrows,
            deposited_value=unpack_decimal(deposited_value),
            borrowed_value=unpack_decimal(borrowed_value),
            allowed_borrow_value=unpack_decimal(allowed_borrow_value),
            unhealthy_borrow_value=unpack_decimal(unhealthy_borrow_value),
        )