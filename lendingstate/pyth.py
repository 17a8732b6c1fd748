"""Decoding and encoding of Pyth oracle price and product accounts."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field

MAGIC = 0xA1B2C3D4
VERSION_2 = 2
VERSION = VERSION_2
MAP_TABLE_SIZE = 640
PROD_ACCT_SIZE = 512
PROD_HDR_SIZE = 48
PROD_ATTR_SIZE = PROD_ACCT_SIZE - PROD_HDR_SIZE
NUM_COMPONENTS = 32
KEY_SIZE = 32


class AccountType(enum.IntEnum):
    UNKNOWN = 0
    MAPPING = 1
    PRODUCT = 2
    PRICE = 3


class PriceStatus(enum.IntEnum):
    UNKNOWN = 0
    TRADING = 1
    HALTED = 2
    AUCTION = 3


class CorpAction(enum.IntEnum):
    NO_CORP_ACT = 0


class PriceType(enum.IntEnum):
    UNKNOWN = 0
    PRICE = 1


_PRICE_INFO = struct.Struct("<qQIIQ")
_PRICE_COMP = struct.Struct("<32s" + "qQIIQ" * 2)
_PRICE_HEADER = struct.Struct("<IIIIIiII QQqQ 6q 32s32s32s")
_PRODUCT_HEADER = struct.Struct("<IIII32s")

PRICE_SIZE = _PRICE_HEADER.size + _PRICE_INFO.size + NUM_COMPONENTS * _PRICE_COMP.size


def _as_enum(kind: type[enum.IntEnum], raw: int) -> enum.IntEnum:
    try:
        return kind(raw)
    except ValueError:
        raise ValueError(f"invalid {kind.__name__} value {raw}") from None


def _require_key(name: str, key: bytes) -> None:
    if len(key) != KEY_SIZE:
        raise ValueError(f"{name} must be {KEY_SIZE} bytes, got {len(key)}")


def _pack(layout: struct.Struct, *values: object) -> bytes:
    try:
        return layout.pack(*values)
    except struct.error as exc:
        raise ValueError(str(exc)) from exc


@dataclass(frozen=True)
class PriceInfo:
    """A price, its confidence interval and publication state."""

    price: int = 0
    conf: int = 0
    status: PriceStatus = PriceStatus.UNKNOWN
    corp_act: CorpAction = CorpAction.NO_CORP_ACT
    pub_slot: int = 0

    def _fields(self) -> tuple:
        return (self.price, self.conf, int(self.status), int(self.corp_act), self.pub_slot)

    @classmethod
    def _from_fields(cls, price: int, conf: int, status: int, corp_act: int, pub_slot: int) -> PriceInfo:
        return cls(
            price=price,
            conf=conf,
            status=_as_enum(PriceStatus, status),
            corp_act=_as_enum(CorpAction, corp_act),
            pub_slot=pub_slot,
        )


@dataclass(frozen=True)
class PriceComp:
    """One publisher's contribution to a price."""

    publisher: bytes = bytes(KEY_SIZE)
    agg: PriceInfo = field(default_factory=PriceInfo)
    latest: PriceInfo = field(default_factory=PriceInfo)

    def __post_init__(self) -> None:
        _require_key("publisher", self.publisher)


def _default_components() -> tuple[PriceComp, ...]:
    return tuple(PriceComp() for _ in range(NUM_COMPONENTS))


@dataclass(frozen=True)
class Price:
    """A Pyth price account."""

    magic: int = MAGIC
    ver: int = VERSION
    atype: int = AccountType.PRICE
    size: int = 0
    ptype: PriceType = PriceType.PRICE
    expo: int = 0
    num: int = 0
    unused: int = 0
    curr_slot: int = 0
    valid_slot: int = 0
    twap: int = 0
    avol: int = 0
    drv: tuple[int, ...] = (0,) * 6
    prod: bytes = bytes(KEY_SIZE)
    next: bytes = bytes(KEY_SIZE)
    agg_pub: bytes = bytes(KEY_SIZE)
    agg: PriceInfo = field(default_factory=PriceInfo)
    comp: tuple[PriceComp, ...] = field(default_factory=_default_components)

    def __post_init__(self) -> None:
        object.__setattr__(self, "drv", tuple(self.drv))
        object.__setattr__(self, "comp", tuple(self.comp))
        if len(self.drv) != 6:
            raise ValueError(f"drv must hold 6 values, got {len(self.drv)}")
        if len(self.comp) != NUM_COMPONENTS:
            raise ValueError(f"comp must hold {NUM_COMPONENTS} components, got {len(self.comp)}")
        for name in ("prod", "next", "agg_pub"):
            _require_key(name, getattr(self, name))

    def to_bytes(self) -> bytes:
        header = _pack(
            _PRICE_HEADER,
            self.magic, self.ver, self.atype, self.size, int(self.ptype), self.expo,
            self.num, self.unused, self.curr_slot, self.valid_slot, self.twap, self.avol,
            *self.drv, self.prod, self.next, self.agg_pub,
        )
        parts = [header, _pack(_PRICE_INFO, *self.agg._fields())]
        parts.extend(
            _pack(_PRICE_COMP, c.publisher, *c.agg._fields(), *c.latest._fields())
            for c in self.comp
        )
        return b"".join(parts)


@dataclass(frozen=True)
class Product:
    """A Pyth product account."""

    magic: int = MAGIC
    ver: int = VERSION
    atype: int = AccountType.PRODUCT
    size: int = 0
    px_acc: bytes = bytes(KEY_SIZE)
    attr: bytes = bytes(PROD_ATTR_SIZE)

    def __post_init__(self) -> None:
        _require_key("px_acc", self.px_acc)
        if len(self.attr) != PROD_ATTR_SIZE:
            raise ValueError(f"attr must be {PROD_ATTR_SIZE} bytes, got {len(self.attr)}")

    def to_bytes(self) -> bytes:
        header = _pack(_PRODUCT_HEADER, self.magic, self.ver, self.atype, self.size, self.px_acc)
        return header + bytes(self.attr)


def load_price(data: bytes) -> Price:
    """Decode a price account from the start of ``data``."""
    if len(data) < PRICE_SIZE:
        raise ValueError(f"price account needs {PRICE_SIZE} bytes, got {len(data)}")
    view = memoryview(data)[:PRICE_SIZE]
    (magic, ver, atype, size, ptype, expo, num, unused, curr_slot, valid_slot, twap, avol,
     *rest) = _PRICE_HEADER.unpack_from(view)
    drv, (prod, next_key, agg_pub) = rest[:6], rest[6:]
    offset = _PRICE_HEADER.size
    agg = PriceInfo._from_fields(*_PRICE_INFO.unpack_from(view, offset))
    offset += _PRICE_INFO.size
    comps = tuple(
        PriceComp(
            publisher=values[0],
            agg=PriceInfo._from_fields(*values[1:6]),
            latest=PriceInfo._from_fields(*values[6:11]),
        )
        for values in _PRICE_COMP.iter_unpack(view[offset:])
    )
    return Price(
        magic=magic, ver=ver, atype=atype, size=size, ptype=_as_enum(PriceType, ptype),
        expo=expo, num=num, unused=unused, curr_slot=curr_slot, valid_slot=valid_slot,
        twap=twap, avol=avol, drv=tuple(drv), prod=prod, next=next_key, agg_pub=agg_pub,
        agg=agg, comp=comps,
    )


def load_product(data: bytes) -> Product:
    """Decode a product account from the start of ``data``."""
    if len(data) < PROD_ACCT_SIZE:
        raise ValueError(f"product account needs {PROD_ACCT_SIZE} bytes, got {len(data)}")
    magic, ver, atype, size, px_acc = _PRODUCT_HEADER.unpack_from(data)
    attr = bytes(data[PROD_HDR_SIZE:PROD_ACCT_SIZE])
    return Product(magic=magic, ver=ver, atype=atype, size=size, px_acc=px_acc, attr=attr)