"""
OpenBook Account Layouts
========================
Pure decoders for the OpenBook v1 / Serum v3 DEX accounts the operator reads.

All accounts start with the 5-byte "serum" head padding and end with 7 bytes
of tail padding. Integers are little-endian.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import List, Optional

from solders.pubkey import Pubkey

from src.shared.exceptions import AccountNotFoundError


HEAD_PADDING = 5
TAIL_PADDING = 7

# Account flag bits
FLAG_INITIALIZED = 1 << 0
FLAG_MARKET = 1 << 1
FLAG_OPEN_ORDERS = 1 << 2
FLAG_REQUEST_QUEUE = 1 << 3
FLAG_EVENT_QUEUE = 1 << 4
FLAG_BIDS = 1 << 5
FLAG_ASKS = 1 << 6
FLAG_DISABLED = 1 << 7
FLAG_CLOSED = 1 << 8
FLAG_PERMISSIONED = 1 << 9

# Event flag bits
EVENT_FILL = 1 << 0
EVENT_OUT = 1 << 1
EVENT_BID = 1 << 2
EVENT_MAKER = 1 << 3
EVENT_RELEASE_FUNDS = 1 << 4


def _pk(raw: bytes) -> Pubkey:
    return Pubkey.from_bytes(raw)


def _u128(data: bytes, offset: int) -> int:
    return int.from_bytes(data[offset:offset + 16], "little")


# ═══════════════════════════════════════════════════════════════════════════════
# MARKET STATE
# ═══════════════════════════════════════════════════════════════════════════════

_MARKET_FMT = "<5sQ32sQ32s32s32sQQ32sQQQ32s32s32s32sQQQQ"
_MARKET_CORE_SIZE = struct.calcsize(_MARKET_FMT)
MARKET_STATE_V1_SIZE = _MARKET_CORE_SIZE + TAIL_PADDING  # 388
_MARKET_AUTHORITIES_SIZE = 32 * 3


@dataclass(frozen=True)
class MarketState:
    """Decoded market account (V1, plus V2 authorities when present)."""

    account_flags: int
    own_address: Pubkey
    vault_signer_nonce: int
    base_mint: Pubkey
    quote_mint: Pubkey
    base_vault: Pubkey
    base_deposits_total: int
    base_fees_accrued: int
    quote_vault: Pubkey
    quote_deposits_total: int
    quote_fees_accrued: int
    quote_dust_threshold: int
    request_queue: Pubkey
    event_queue: Pubkey
    bids: Pubkey
    asks: Pubkey
    base_lot_size: int
    quote_lot_size: int
    fee_rate_bps: int
    referrer_rebates_accrued: int
    open_orders_authority: Optional[Pubkey] = None
    prune_authority: Optional[Pubkey] = None
    consume_events_authority: Optional[Pubkey] = None

    @property
    def is_permissioned(self) -> bool:
        return bool(self.account_flags & FLAG_PERMISSIONED)


def decode_market_state(data: bytes) -> MarketState:
    if len(data) < MARKET_STATE_V1_SIZE:
        raise AccountNotFoundError(
            f"Market account too small: {len(data)} bytes (need {MARKET_STATE_V1_SIZE})"
        )

    fields = struct.unpack_from(_MARKET_FMT, data, 0)
    flags = fields[1]
    if not flags & FLAG_MARKET:
        raise AccountNotFoundError(f"Account is not a market (flags=0x{flags:x})")

    authorities = [None, None, None]
    if len(data) >= _MARKET_CORE_SIZE + _MARKET_AUTHORITIES_SIZE + TAIL_PADDING:
        base = _MARKET_CORE_SIZE
        authorities = [_pk(data[base + i * 32:base + (i + 1) * 32]) for i in range(3)]

    return MarketState(
        account_flags=flags,
        own_address=_pk(fields[2]),
        vault_signer_nonce=fields[3],
        base_mint=_pk(fields[4]),
        quote_mint=_pk(fields[5]),
        base_vault=_pk(fields[6]),
        base_deposits_total=fields[7],
        base_fees_accrued=fields[8],
        quote_vault=_pk(fields[9]),
        quote_deposits_total=fields[10],
        quote_fees_accrued=fields[11],
        quote_dust_threshold=fields[12],
        request_queue=_pk(fields[13]),
        event_queue=_pk(fields[14]),
        bids=_pk(fields[15]),
        asks=_pk(fields[16]),
        base_lot_size=fields[17],
        quote_lot_size=fields[18],
        fee_rate_bps=fields[19],
        referrer_rebates_accrued=fields[20],
        open_orders_authority=authorities[0],
        prune_authority=authorities[1],
        consume_events_authority=authorities[2],
    )


# ═══════════════════════════════════════════════════════════════════════════════
# EVENT QUEUE
# ═══════════════════════════════════════════════════════════════════════════════

_EVENT_QUEUE_HEADER_FMT = "<5sQQQQ"
EVENT_QUEUE_HEADER_SIZE = struct.calcsize(_EVENT_QUEUE_HEADER_FMT)  # 37

_EVENT_FMT = "<BBB5sQQQ16s32sQ"
EVENT_SIZE = struct.calcsize(_EVENT_FMT)  # 88


@dataclass(frozen=True)
class EventQueueStats:
    """Event queue header summary."""

    count: int
    head: int
    seq_num: int
    account_flags: int

    @property
    def needs_crank(self) -> bool:
        return self.count > 0


@dataclass(frozen=True)
class QueueEvent:
    """Single fill/out event awaiting consumption."""

    event_flags: int
    open_order_slot: int
    fee_tier: int
    native_qty_released: int
    native_qty_paid: int
    native_fee_or_rebate: int
    order_id: int
    owner: Pubkey
    client_order_id: int

    @property
    def is_fill(self) -> bool:
        return bool(self.event_flags & EVENT_FILL)

    @property
    def is_bid(self) -> bool:
        return bool(self.event_flags & EVENT_BID)


def decode_event_queue_header(data: bytes) -> EventQueueStats:
    if len(data) < EVENT_QUEUE_HEADER_SIZE:
        raise AccountNotFoundError(f"Event queue account too small: {len(data)} bytes")

    _, flags, head, count, seq_num = struct.unpack_from(_EVENT_QUEUE_HEADER_FMT, data, 0)
    if not flags & FLAG_EVENT_QUEUE:
        raise AccountNotFoundError(f"Account is not an event queue (flags=0x{flags:x})")

    return EventQueueStats(count=count, head=head, seq_num=seq_num, account_flags=flags)


def event_queue_capacity(data: bytes) -> int:
    return max(0, (len(data) - EVENT_QUEUE_HEADER_SIZE - TAIL_PADDING) // EVENT_SIZE)


def decode_event(data: bytes, offset: int) -> QueueEvent:
    (flags, slot, fee_tier, _pad, released, paid, fee, order_id, owner, client_id) = struct.unpack_from(
        _EVENT_FMT, data, offset
    )
    return QueueEvent(
        event_flags=flags,
        open_order_slot=slot,
        fee_tier=fee_tier,
        native_qty_released=released,
        native_qty_paid=paid,
        native_fee_or_rebate=fee,
        order_id=int.from_bytes(order_id, "little"),
        owner=_pk(owner),
        client_order_id=client_id,
    )


def decode_pending_events(data: bytes, limit: Optional[int] = None) -> List[QueueEvent]:
    """
    Walk the ring buffer from head, returning at most `limit` pending events.
    """
    stats = decode_event_queue_header(data)
    capacity = event_queue_capacity(data)
    if capacity == 0:
        return []

    pending = min(stats.count, capacity)
    if limit is not None:
        pending = min(pending, max(0, limit))

    events = []
    for i in range(pending):
        slot = (stats.head + i) % capacity
        events.append(decode_event(data, EVENT_QUEUE_HEADER_SIZE + slot * EVENT_SIZE))
    return events


# ═══════════════════════════════════════════════════════════════════════════════
# OPEN ORDERS
# ═══════════════════════════════════════════════════════════════════════════════

OPEN_ORDERS_SIZE = 3228
OPEN_ORDERS_MARKET_OFFSET = 13
OPEN_ORDERS_OWNER_OFFSET = 45
_OO_BALANCES_OFFSET = 77
_OO_FREE_SLOTS_OFFSET = 109
_OO_IS_BID_OFFSET = 125
_OO_ORDERS_OFFSET = 141
_OO_CLIENT_IDS_OFFSET = _OO_ORDERS_OFFSET + 128 * 16
MAX_ORDER_SLOTS = 128


@dataclass(frozen=True)
class RestingOrder:
    """One occupied slot of an open-orders account."""

    slot: int
    order_id: int
    client_order_id: int
    is_bid: bool

    @property
    def price_lots(self) -> int:
        return self.order_id >> 64


@dataclass(frozen=True)
class OpenOrdersAccount:
    address: Pubkey
    account_flags: int
    market: Pubkey
    owner: Pubkey
    base_token_free: int
    base_token_total: int
    quote_token_free: int
    quote_token_total: int
    orders: List[RestingOrder] = field(default_factory=list)


def decode_open_orders(address: Pubkey, data: bytes) -> OpenOrdersAccount:
    if len(data) < OPEN_ORDERS_SIZE:
        raise AccountNotFoundError(
            f"Open orders account {address} too small: {len(data)} bytes"
        )

    (flags,) = struct.unpack_from("<Q", data, HEAD_PADDING)
    if not flags & FLAG_OPEN_ORDERS:
        raise AccountNotFoundError(f"Account {address} is not an open-orders account")

    base_free, base_total, quote_free, quote_total = struct.unpack_from("<QQQQ", data, _OO_BALANCES_OFFSET)
    free_slot_bits = _u128(data, _OO_FREE_SLOTS_OFFSET)
    is_bid_bits = _u128(data, _OO_IS_BID_OFFSET)

    orders = []
    for slot in range(MAX_ORDER_SLOTS):
        if free_slot_bits & (1 << slot):
            continue
        order_id = _u128(data, _OO_ORDERS_OFFSET + slot * 16)
        (client_id,) = struct.unpack_from("<Q", data, _OO_CLIENT_IDS_OFFSET + slot * 8)
        orders.append(
            RestingOrder(
                slot=slot,
                order_id=order_id,
                client_order_id=client_id,
                is_bid=bool(is_bid_bits & (1 << slot)),
            )
        )

    return OpenOrdersAccount(
        address=address,
        account_flags=flags,
        market=_pk(data[OPEN_ORDERS_MARKET_OFFSET:OPEN_ORDERS_MARKET_OFFSET + 32]),
        owner=_pk(data[OPEN_ORDERS_OWNER_OFFSET:OPEN_ORDERS_OWNER_OFFSET + 32]),
        base_token_free=base_free,
        base_token_total=base_total,
        quote_token_free=quote_free,
        quote_token_total=quote_total,
        orders=orders,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# SPL MINT
# ═══════════════════════════════════════════════════════════════════════════════

MINT_DECIMALS_OFFSET = 44


def decode_mint_decimals(data: bytes) -> int:
    if len(data) <= MINT_DECIMALS_OFFSET:
        raise AccountNotFoundError(f"Mint account too small: {len(data)} bytes")
    return data[MINT_DECIMALS_OFFSET]
