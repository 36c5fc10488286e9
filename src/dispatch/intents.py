"""
Operator Intents
================
One frozen dataclass per CLI command. Built once from parsed args and
consumed once by the CommandDispatcher.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple, Union

from solders.pubkey import Pubkey

from src.openbook.instructions import Side


# ─── read-only ───

@dataclass(frozen=True)
class InfoIntent:
    pass


@dataclass(frozen=True)
class EventQueueStatusIntent:
    pass


@dataclass(frozen=True)
class LoadOrdersIntent:
    pass


@dataclass(frozen=True)
class FindOpenOrdersIntent:
    limit: int = 1000


# ─── order-return ───

@dataclass(frozen=True)
class PlaceIntent:
    target_amount_quote: float
    side: Side
    best_offset: float
    execute: bool
    price_target: float


@dataclass(frozen=True)
class CancelIntent:
    execute: bool = False


@dataclass(frozen=True)
class SettleIntent:
    execute: bool = False


# ─── send-always ───

@dataclass(frozen=True)
class MatchIntent:
    limit: int


@dataclass(frozen=True)
class CancelSettlePlaceIntent:
    ask_target_quote: float
    bid_target_quote: float
    bid_price: float
    ask_price: float


@dataclass(frozen=True)
class CancelSettlePlaceBidIntent:
    bid_target_quote: float
    bid_price: float


@dataclass(frozen=True)
class CancelSettlePlaceAskIntent:
    ask_target_quote: float
    ask_price: float


@dataclass(frozen=True)
class ConsumeIntent:
    limit: int
    open_orders: Tuple[Pubkey, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ConsumePermissionedIntent:
    limit: int
    open_orders: Tuple[Pubkey, ...] = field(default_factory=tuple)


Intent = Union[
    InfoIntent,
    EventQueueStatusIntent,
    LoadOrdersIntent,
    FindOpenOrdersIntent,
    PlaceIntent,
    CancelIntent,
    SettleIntent,
    MatchIntent,
    CancelSettlePlaceIntent,
    CancelSettlePlaceBidIntent,
    CancelSettlePlaceAskIntent,
    ConsumeIntent,
    ConsumePermissionedIntent,
]
