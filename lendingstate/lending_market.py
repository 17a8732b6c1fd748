"""Lending market account state."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import ClassVar

from lendingstate.common import (
    PROGRAM_VERSION,
    PUBKEY_BYTES,
    UNINITIALIZED_VERSION,
    InvalidAccountData,
)

LENDING_MARKET_LEN = 290  # 1 + 1 + 32 + 32 + 32 + 32 + 32 + 128

_LAYOUT = struct.Struct("<BB32s32s32s32s32s128x")

_KEY_FIELDS = (
    "owner",
    "quote_currency",
    "token_program_id",
    "oracle_program_id",
    "switchboard_oracle_program_id",
)


@dataclass
class LendingMarket:
    """A lending market: its owner, quote currency and the programs it relies on.

    ``quote_currency`` is either a null-padded symbol such as ``b"USD"`` or a
    token mint key.
    """

    LEN: ClassVar[int] = LENDING_MARKET_LEN

    version: int = UNINITIALIZED_VERSION
    bump_seed: int = 0
    owner: bytes = bytes(PUBKEY_BYTES)
    quote_currency: bytes = bytes(32)
    token_program_id: bytes = bytes(PUBKEY_BYTES)
    oracle_program_id: bytes = bytes(PUBKEY_BYTES)
    switchboard_oracle_program_id: bytes = bytes(PUBKEY_BYTES)

    @classmethod
    def create(
        cls,
        bump_seed: int,
        owner: bytes,
        quote_currency: bytes,
        token_program_id: bytes,
        oracle_program_id: bytes,
        switchboard_oracle_program_id: bytes,
    ) -> LendingMarket:
        """Create an initialized lending market at the current program version."""
        return cls(
            version=PROGRAM_VERSION,
            bump_seed=bump_seed,
            owner=owner,
            quote_currency=quote_currency,
            token_program_id=token_program_id,
            oracle_program_id=oracle_program_id,
            switchboard_oracle_program_id=switchboard_oracle_program_id,
        )

    def is_initialized(self) -> bool:
        return self.version != UNINITIALIZED_VERSION

    def pack(self) -> bytes:
        """Serialize into the fixed-size account layout."""
        for name in _KEY_FIELDS:
            value = getattr(self, name)
            if len(value) != 32:
                raise ValueError(f"{name} must be 32 bytes, got {len(value)}")
        try:
            return _LAYOUT.pack(
                self.version,
                self.bump_seed,
                *(bytes(getattr(self, name)) for name in _KEY_FIELDS),
            )
        except struct.error as exc:
            raise ValueError(str(exc)) from exc

    @classmethod
    def unpack(cls, data: bytes) -> LendingMarket:
        """Deserialize from the start of ``data``."""
        if len(data) < LENDING_MARKET_LEN:
            raise InvalidAccountData(
                f"lending market needs {LENDING_MARKET_LEN} bytes, got {len(data)}"
            )
        version, bump_seed, *keys = _LAYOUT.unpack_from(data)
        if version > PROGRAM_VERSION:
            raise InvalidAccountData(
                "Lending market version does not match lending program version"
            )
        return cls(version, bump_seed, *keys)