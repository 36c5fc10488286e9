"""
OpenBook Instruction Builders
=============================
Pure, deterministic DEX instruction encoding.

Every instruction is `version (u8 = 0) | tag (u32 LE) | args`.
No RPC, no wallet: testable offline.
"""

from __future__ import annotations

import struct
from enum import IntEnum
from typing import List, Optional, Sequence

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.sysvar import RENT
from spl.token.constants import TOKEN_PROGRAM_ID

from src.openbook.layouts import MarketState


class DexInstruction(IntEnum):
    MATCH_ORDERS = 2
    CONSUME_EVENTS = 3
    SETTLE_FUNDS = 5
    NEW_ORDER_V3 = 10
    CANCEL_ORDER_V2 = 11
    CONSUME_EVENTS_PERMISSIONED = 17


class Side(IntEnum):
    BID = 0
    ASK = 1

    @classmethod
    def parse(cls, raw: str) -> "Side":
        """'bid' / 'ask', case-insensitive. Anything else is treated as a bid."""
        return cls.ASK if raw.strip().lower() == "ask" else cls.BID


class OrderType(IntEnum):
    LIMIT = 0
    IMMEDIATE_OR_CANCEL = 1
    POST_ONLY = 2


class SelfTradeBehavior(IntEnum):
    DECREMENT_TAKE = 0
    CANCEL_PROVIDE = 1
    ABORT_TRANSACTION = 2


I64_MAX = 2**63 - 1


def _data(tag: DexInstruction, args: bytes = b"") -> bytes:
    return struct.pack("<BI", 0, int(tag)) + args


def _w(pubkey: Pubkey, signer: bool = False) -> AccountMeta:
    return AccountMeta(pubkey, is_signer=signer, is_writable=True)


def _r(pubkey: Pubkey, signer: bool = False) -> AccountMeta:
    return AccountMeta(pubkey, is_signer=signer, is_writable=False)


def vault_signer_address(market: MarketState, program_id: Pubkey) -> Pubkey:
    seeds = [bytes(market.own_address), struct.pack("<Q", market.vault_signer_nonce)]
    return Pubkey.create_program_address(seeds, program_id)


# ═══════════════════════════════════════════════════════════════════════════════
# CRANK
# ═══════════════════════════════════════════════════════════════════════════════

def match_orders(
    program_id: Pubkey,
    market: MarketState,
    base_fee_receivable: Pubkey,
    quote_fee_receivable: Pubkey,
    limit: int,
) -> Instruction:
    accounts = [
        _w(market.own_address),
        _w(market.request_queue),
        _w(market.event_queue),
        _w(market.bids),
        _w(market.asks),
        _w(base_fee_receivable),
        _w(quote_fee_receivable),
    ]
    return Instruction(program_id, _data(DexInstruction.MATCH_ORDERS, struct.pack("<H", limit)), accounts)


def consume_events(
    program_id: Pubkey,
    market: MarketState,
    open_orders: Sequence[Pubkey],
    base_fee_receivable: Pubkey,
    quote_fee_receivable: Pubkey,
    limit: int,
) -> Instruction:
    accounts = [_w(oo) for oo in open_orders]
    accounts += [
        _w(market.own_address),
        _w(market.event_queue),
        _w(base_fee_receivable),
        _w(quote_fee_receivable),
    ]
    return Instruction(program_id, _data(DexInstruction.CONSUME_EVENTS, struct.pack("<H", limit)), accounts)


def consume_events_permissioned(
    program_id: Pubkey,
    market: MarketState,
    open_orders: Sequence[Pubkey],
    consume_events_authority: Pubkey,
    limit: int,
) -> Instruction:
    accounts = [_w(oo) for oo in open_orders]
    accounts += [
        _w(market.own_address),
        _w(market.event_queue),
        _r(consume_events_authority, signer=True),
    ]
    return Instruction(
        program_id,
        _data(DexInstruction.CONSUME_EVENTS_PERMISSIONED, struct.pack("<H", limit)),
        accounts,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# ORDERS
# ═══════════════════════════════════════════════════════════════════════════════

def new_order_v3(
    program_id: Pubkey,
    market: MarketState,
    open_orders: Pubkey,
    payer: Pubkey,
    owner: Pubkey,
    side: Side,
    limit_price: int,
    max_base_qty: int,
    max_native_quote_qty: int,
    order_type: OrderType = OrderType.LIMIT,
    self_trade_behavior: SelfTradeBehavior = SelfTradeBehavior.DECREMENT_TAKE,
    client_order_id: int = 0,
    limit: int = 65535,
    max_ts: int = I64_MAX,
    fee_discount_pubkey: Optional[Pubkey] = None,
) -> Instruction:
    """
    Args:
        payer: token account debited (quote wallet for bids, base wallet for asks)
        limit_price: price in quote lots per base lot
        max_base_qty: size in base lots
        max_native_quote_qty: quote budget in native units, fees included
    """
    args = struct.pack(
        "<IQQQIIQHq",
        int(side),
        limit_price,
        max_base_qty,
        max_native_quote_qty,
        int(self_trade_behavior),
        int(order_type),
        client_order_id,
        limit,
        max_ts,
    )
    accounts = [
        _w(market.own_address),
        _w(open_orders),
        _w(market.request_queue),
        _w(market.event_queue),
        _w(market.bids),
        _w(market.asks),
        _w(payer),
        _r(owner, signer=True),
        _w(market.base_vault),
        _w(market.quote_vault),
        _r(TOKEN_PROGRAM_ID),
        _r(RENT),
    ]
    if fee_discount_pubkey is not None:
        accounts.append(_r(fee_discount_pubkey))
    return Instruction(program_id, _data(DexInstruction.NEW_ORDER_V3, args), accounts)


def cancel_order_v2(
    program_id: Pubkey,
    market: MarketState,
    open_orders: Pubkey,
    owner: Pubkey,
    side: Side,
    order_id: int,
) -> Instruction:
    args = struct.pack("<I", int(side)) + order_id.to_bytes(16, "little")
    accounts = [
        _w(market.own_address),
        _w(market.bids),
        _w(market.asks),
        _w(open_orders),
        _r(owner, signer=True),
        _w(market.event_queue),
    ]
    return Instruction(program_id, _data(DexInstruction.CANCEL_ORDER_V2, args), accounts)


def settle_funds(
    program_id: Pubkey,
    market: MarketState,
    open_orders: Pubkey,
    owner: Pubkey,
    base_wallet: Pubkey,
    quote_wallet: Pubkey,
    referrer_quote_wallet: Optional[Pubkey] = None,
) -> Instruction:
    accounts: List[AccountMeta] = [
        _w(market.own_address),
        _w(open_orders),
        _r(owner, signer=True),
        _w(market.base_vault),
        _w(market.quote_vault),
        _w(base_wallet),
        _w(quote_wallet),
        _r(vault_signer_address(market, program_id)),
        _r(TOKEN_PROGRAM_ID),
    ]
    if referrer_quote_wallet is not None:
        accounts.append(_w(referrer_quote_wallet))
    return Instruction(program_id, _data(DexInstruction.SETTLE_FUNDS), accounts)
