"""Fixed-point math, error types and field codecs shared by the account state types."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Union

WAD = 10**18
HALF_WAD = WAD // 2
PERCENT_SCALER = 10**16

U64_MAX = 2**64 - 1
U128_MAX = 2**128 - 1
U192_MAX = 2**192 - 1

PUBKEY_BYTES = 32

# Collateral tokens are initially valued at this ratio (collateral:liquidity).
INITIAL_COLLATERAL_RATIO = 1
INITIAL_COLLATERAL_RATE = INITIAL_COLLATERAL_RATIO * WAD

# Current version of the program and all new accounts created.
PROGRAM_VERSION = 1
# Accounts are created zeroed, so uninitialized state has version 0.
UNINITIALIZED_VERSION = 0

# 2 slots per second * 60 * 60 * 24 * 365
SLOTS_PER_YEAR = 63_072_000


class ErrorCode(enum.Enum):
    """Reasons a lending operation can be refused."""

    MATH_OVERFLOW = "math operation overflow"
    ALREADY_INITIALIZED = "account is already initialized"
    INSUFFICIENT_LIQUIDITY = "insufficient liquidity available"
    BORROW_TOO_LARGE = "borrow value exceeds maximum borrow value"
    BORROW_TOO_SMALL = "borrow amount too small to receive liquidity after fees"
    NEGATIVE_INTEREST_RATE = "interest rate is negative"
    OBLIGATION_RESERVE_LIMIT = "obligation reserve limit exceeded"
    OBLIGATION_DEPOSITS_EMPTY = "obligation has no deposits"
    OBLIGATION_BORROWS_EMPTY = "obligation has no borrows"
    INVALID_OBLIGATION_COLLATERAL = "invalid obligation collateral"
    INVALID_OBLIGATION_LIQUIDITY = "invalid obligation liquidity"


class LendingError(Exception):
    """A lending operation failed; ``code`` says why."""

    def __init__(self, code: ErrorCode, message: str | None = None) -> None:
        self.code = code
        super().__init__(message or code.value)


class InvalidAccountData(ValueError):
    """Serialized account data cannot be decoded."""


def _overflow() -> LendingError:
    return LendingError(ErrorCode.MATH_OVERFLOW)


def _check(value: int, limit: int) -> int:
    if value < 0 or value > limit:
        raise _overflow()
    return value


@dataclass(frozen=True, order=True)
class Decimal:
    """Unsigned fixed-point number with 18 decimals, 192 bits wide."""

    value: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.value <= U192_MAX:
            raise ValueError(f"scaled value {self.value} out of range for Decimal")

    @classmethod
    def from_scaled_val(cls, value: int) -> Decimal:
        return cls(value)

    @classmethod
    def from_int(cls, value: int) -> Decimal:
        if not 0 <= value <= U64_MAX:
            raise ValueError(f"{value} is not an unsigned 64-bit integer")
        return cls(value * WAD)

    @classmethod
    def one(cls) -> Decimal:
        return cls(WAD)

    @classmethod
    def zero(cls) -> Decimal:
        return cls(0)

    def to_scaled_val(self) -> int:
        """Return the scaled value, which must fit in 128 bits."""
        return _check(self.value, U128_MAX)

    def try_add(self, other: Decimal) -> Decimal:
        return Decimal(_check(self.value + other.value, U192_MAX))

    def try_sub(self, other: Decimal) -> Decimal:
        return Decimal(_check(self.value - other.value, U192_MAX))

    def try_mul(self, other: Union[Decimal, Rate, int]) -> Decimal:
        if isinstance(other, Rate):
            other = other.to_decimal()
        if isinstance(other, Decimal):
            return Decimal(_check(self.value * other.value, U192_MAX) // WAD)
        if isinstance(other, int):
            return Decimal(_check(self.value * _check(other, U64_MAX), U192_MAX))
        raise TypeError(f"cannot multiply Decimal by {type(other).__name__}")

    def try_div(self, other: Union[Decimal, Rate, int]) -> Decimal:
        if isinstance(other, Rate):
            other = other.to_decimal()
        if isinstance(other, Decimal):
            if other.value == 0:
                raise _overflow()
            return Decimal(_check(self.value * WAD, U192_MAX) // other.value)
        if isinstance(other, int):
            if _check(other, U64_MAX) == 0:
                raise _overflow()
            return Decimal(self.value // other)
        raise TypeError(f"cannot divide Decimal by {type(other).__name__}")

    def try_floor_u64(self) -> int:
        return _check(self.value // WAD, U64_MAX)

    def try_ceil_u64(self) -> int:
        return _check(_check(self.value + WAD - 1, U192_MAX) // WAD, U64_MAX)

    def try_round_u64(self) -> int:
        return _check(_check(self.value + HALF_WAD, U192_MAX) // WAD, U64_MAX)

    def to_rate(self) -> Rate:
        return Rate(self.to_scaled_val())

    def __str__(self) -> str:
        whole, frac = divmod(self.value, WAD)
        return f"{whole}.{frac:018d}"


@dataclass(frozen=True, order=True)
class Rate:
    """Unsigned fixed-point ratio with 18 decimals, 128 bits wide."""

    value: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.value <= U128_MAX:
            raise ValueError(f"scaled value {self.value} out of range for Rate")

    @classmethod
    def from_percent(cls, percent: int) -> Rate:
        if not 0 <= percent <= 255:
            raise ValueError(f"percent {percent} is not an unsigned 8-bit integer")
        return cls(percent * PERCENT_SCALER)

    @classmethod
    def from_scaled_val(cls, value: int) -> Rate:
        return cls(value)

    @classmethod
    def one(cls) -> Rate:
        return cls(WAD)

    @classmethod
    def zero(cls) -> Rate:
        return cls(0)

    def to_scaled_val(self) -> int:
        return self.value

    def try_add(self, other: Rate) -> Rate:
        return Rate(_check(self.value + other.value, U128_MAX))

    def try_sub(self, other: Rate) -> Rate:
        return Rate(_check(self.value - other.value, U128_MAX))

    def try_mul(self, other: Union[Rate, int]) -> Rate:
        if isinstance(other, Rate):
            return Rate(_check(self.value * other.value, U128_MAX) // WAD)
        if isinstance(other, int):
            return Rate(_check(self.value * _check(other, U64_MAX), U128_MAX))
        raise TypeError(f"cannot multiply Rate by {type(other).__name__}")

    def try_div(self, other: Union[Rate, int]) -> Rate:
        if isinstance(other, Rate):
            if other.value == 0:
                raise _overflow()
            return Rate(_check(self.value * WAD, U128_MAX) // other.value)
        if isinstance(other, int):
            if _check(other, U64_MAX) == 0:
                raise _overflow()
            return Rate(self.value // other)
        raise TypeError(f"cannot divide Rate by {type(other).__name__}")

    def try_pow(self, exponent: int) -> Rate:
        """Raise to a non-negative integer power by repeated squaring."""
        exponent = _check(exponent, U64_MAX)
        base = self
        result = base if exponent % 2 else Rate.one()
        while exponent >= 2:
            base = base.try_mul(base)
            exponent //= 2
            if exponent % 2:
                result = result.try_mul(base)
        return result

    def to_decimal(self) -> Decimal:
        return Decimal(self.value)

    def __str__(self) -> str:
        whole, frac = divmod(self.value, WAD)
        return f"{whole}.{frac:018d}"


def pack_decimal(value: Decimal) -> bytes:
    """Encode a decimal as 16 little-endian bytes."""
    return value.to_scaled_val().to_bytes(16, "little")


def unpack_decimal(data: bytes) -> Decimal:
    if len(data) != 16:
        raise InvalidAccountData(f"decimal field needs 16 bytes, got {len(data)}")
    return Decimal.from_scaled_val(int.from_bytes(data, "little"))


def pack_bool(value: bool) -> bytes:
    return b"\x01" if value else b"\x00"


def unpack_bool(data: bytes) -> bool:
    if len(data) != 1:
        raise InvalidAccountData(f"boolean field needs 1 byte, got {len(data)}")
    if data[0] == 0:
        return False
    if data[0] == 1:
        return True
    raise InvalidAccountData("Boolean cannot be unpacked")