"""
OpenBook Client
===============
Order-book client for one OpenBook v1 / Serum v3 market.

Builds unsigned DEX instructions for the operator's intents and, when asked
to execute, sends them through the RPC gateway.

Mutating calls come in two shapes:
- place / cancel / settle: return an OrderReturn (batch or signature)
- match / cancel-settle-place / consume: always send, return (confirmed, sig)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solana.rpc.commitment import Commitment
from spl.token.instructions import get_associated_token_address

from config.settings import Settings
from src.execution.order_result import InstructionBatch, OrderReturn, SignatureResult
from src.openbook import instructions as dex
from src.openbook.instructions import OrderType, SelfTradeBehavior, Side
from src.openbook.keys import parse_optional_pubkey, parse_pubkey
from src.openbook.layouts import (
    OPEN_ORDERS_MARKET_OFFSET,
    OPEN_ORDERS_OWNER_OFFSET,
    OPEN_ORDERS_SIZE,
    EventQueueStats,
    MarketState,
    OpenOrdersAccount,
    decode_event_queue_header,
    decode_market_state,
    decode_mint_decimals,
    decode_open_orders,
    decode_pending_events,
)
from src.openbook.rpc import RpcGateway
from src.shared.exceptions import AccountNotFoundError, InvalidInputError
from src.shared.system.logging import Logger


# ═══════════════════════════════════════════════════════════════════════════════
# CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ClientConfig:
    """Everything the client needs; passed in explicitly at construction."""

    rpc_url: str
    market_id: Pubkey
    program_id: Pubkey
    commitment: str = "confirmed"
    open_orders_account: Optional[Pubkey] = None

    @classmethod
    def from_settings(
        cls,
        market_id: Optional[str] = None,
        program_id: Optional[str] = None,
    ) -> "ClientConfig":
        """Build from Settings, with CLI overrides. Raises InvalidInputError."""
        return cls(
            rpc_url=Settings.RPC_URL,
            market_id=parse_pubkey(market_id or Settings.MARKET_ID, "market id"),
            program_id=parse_pubkey(program_id or Settings.PROGRAM_ID, "program id"),
            commitment=Settings.COMMITMENT,
            open_orders_account=parse_optional_pubkey(
                Settings.OPEN_ORDERS_ACCOUNT, "open orders account"
            ),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# LOT CONVERSIONS
# ═══════════════════════════════════════════════════════════════════════════════

def price_to_lots(
    price: float,
    base_decimals: int,
    quote_decimals: int,
    base_lot_size: int,
    quote_lot_size: int,
) -> int:
    """UI price (quote per base) -> quote lots per base lot."""
    return round(
        (price * 10**quote_decimals * base_lot_size) / (10**base_decimals * quote_lot_size)
    )


def lots_to_price(
    price_lots: int,
    base_decimals: int,
    quote_decimals: int,
    base_lot_size: int,
    quote_lot_size: int,
) -> float:
    return (price_lots * quote_lot_size * 10**base_decimals) / (base_lot_size * 10**quote_decimals)


def base_size_to_lots(size: float, base_decimals: int, base_lot_size: int) -> int:
    """UI base size -> base lots, rounded down so the quote budget is never exceeded."""
    return int((size * 10**base_decimals) // base_lot_size)


def limit_price_for(side: Side, price_target: float, best_offset: float) -> float:
    """Bids rest below the target, asks above it."""
    if side == Side.BID:
        return price_target - best_offset
    return price_target + best_offset


# ═══════════════════════════════════════════════════════════════════════════════
# CLIENT
# ═══════════════════════════════════════════════════════════════════════════════

class OpenBookClient:
    """
    Usage:
        async with RpcGateway(config.rpc_url) as rpc:
            client = await OpenBookClient.connect(config, keypair, rpc)
            result = await client.cancel_orders(execute=False)
    """

    def __init__(self, config: ClientConfig, owner: Keypair, rpc: RpcGateway):
        self.config = config
        self.owner = owner
        self.rpc = rpc
        self.program_id = config.program_id
        self.market_id = config.market_id

        self.market: Optional[MarketState] = None
        self.base_decimals = 0
        self.quote_decimals = 0
        self.base_wallet: Optional[Pubkey] = None
        self.quote_wallet: Optional[Pubkey] = None
        self.oo_key: Optional[Pubkey] = config.open_orders_account

    @classmethod
    async def connect(cls, config: ClientConfig, owner: Keypair, rpc: Optional[RpcGateway] = None) -> "OpenBookClient":
        if rpc is None:
            rpc = RpcGateway(config.rpc_url, commitment=Commitment(config.commitment))
        client = cls(config, owner, rpc)
        await client.load()
        return client

    async def load(self) -> None:
        """Fetch market state, mint decimals, and locate the operator's accounts."""
        self.market = decode_market_state(await self.rpc.get_account_data(self.market_id))
        self.base_decimals = decode_mint_decimals(await self.rpc.get_account_data(self.market.base_mint))
        self.quote_decimals = decode_mint_decimals(await self.rpc.get_account_data(self.market.quote_mint))

        owner = self.owner.pubkey()
        self.base_wallet = get_associated_token_address(owner, self.market.base_mint)
        self.quote_wallet = get_associated_token_address(owner, self.market.quote_mint)

        if self.oo_key is None:
            found = await self.find_open_orders_accounts_for_owner(owner, 1)
            if found:
                self.oo_key = found[0]
                Logger.debug(f"[MARKET] Using discovered open orders account {self.oo_key}")
            else:
                Logger.warning(f"[MARKET] No open orders account for {owner} on {self.market_id}")

        Logger.debug(
            f"[MARKET] Loaded {self.market_id}: base_lot={self.market.base_lot_size} "
            f"quote_lot={self.market.quote_lot_size} decimals={self.base_decimals}/{self.quote_decimals}"
        )

    # ─── helpers ───

    def _require_market(self) -> MarketState:
        if self.market is None:
            raise AccountNotFoundError("Market not loaded; call load() first")
        return self.market

    @property
    def open_orders_key(self) -> Pubkey:
        if self.oo_key is None:
            raise AccountNotFoundError(
                f"No open orders account for {self.owner.pubkey()} on market {self.market_id}. "
                "Set OPEN_ORDERS_ACCOUNT."
            )
        return self.oo_key

    async def _finish(self, instructions: List[Instruction], execute: bool) -> OrderReturn:
        if not execute or not instructions:
            return InstructionBatch(instructions)
        _confirmed, signature = await self.rpc.submit_and_confirm(self.owner, instructions)
        return SignatureResult(signature)

    def _new_order_ix(self, side: Side, limit_price: float, target_amount_quote: float) -> Optional[Instruction]:
        market = self._require_market()
        if limit_price <= 0:
            raise InvalidInputError(f"Limit price must be positive, got {limit_price}")
        if target_amount_quote <= 0:
            raise InvalidInputError(f"Target amount must be positive, got {target_amount_quote}")

        price_lots = price_to_lots(
            limit_price, self.base_decimals, self.quote_decimals,
            market.base_lot_size, market.quote_lot_size,
        )
        base_lots = base_size_to_lots(target_amount_quote / limit_price, self.base_decimals, market.base_lot_size)
        if price_lots == 0 or base_lots == 0:
            Logger.warning(
                f"[PLACE] Order below lot size (price_lots={price_lots}, base_lots={base_lots}); skipping"
            )
            return None

        max_native_quote = market.quote_lot_size * price_lots * base_lots
        payer = self.quote_wallet if side == Side.BID else self.base_wallet

        Logger.info(
            f"[PLACE] {side.name} {base_lots} lots @ {limit_price:.6f} "
            f"({price_lots} lots), quote budget {max_native_quote}"
        )
        return dex.new_order_v3(
            self.program_id,
            market,
            self.open_orders_key,
            payer,
            self.owner.pubkey(),
            side,
            limit_price=price_lots,
            max_base_qty=base_lots,
            max_native_quote_qty=max_native_quote,
            order_type=OrderType.LIMIT,
            self_trade_behavior=SelfTradeBehavior.DECREMENT_TAKE,
            limit=Settings.ORDER_MATCH_LIMIT,
        )

    async def _cancel_ixs(self) -> List[Instruction]:
        market = self._require_market()
        account = await self.load_open_orders(self.open_orders_key)
        return [
            dex.cancel_order_v2(
                self.program_id,
                market,
                account.address,
                self.owner.pubkey(),
                Side.BID if order.is_bid else Side.ASK,
                order.order_id,
            )
            for order in account.orders
        ]

    def _settle_ix(self) -> Instruction:
        return dex.settle_funds(
            self.program_id,
            self._require_market(),
            self.open_orders_key,
            self.owner.pubkey(),
            self.base_wallet,
            self.quote_wallet,
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # ORDER-RETURN OPERATIONS
    # ═══════════════════════════════════════════════════════════════════════════

    async def place_limit_order(
        self,
        target_amount_quote: float,
        side: Side,
        best_offset: float,
        execute: bool,
        price_target: float,
    ) -> Optional[OrderReturn]:
        limit_price = limit_price_for(side, price_target, best_offset)
        ix = self._new_order_ix(side, limit_price, target_amount_quote)
        if ix is None:
            return None
        return await self._finish([ix], execute)

    async def cancel_orders(self, execute: bool) -> Optional[OrderReturn]:
        ixs = await self._cancel_ixs()
        Logger.info(f"[CANCEL] {len(ixs)} resting orders on {self.open_orders_key}")
        return await self._finish(ixs, execute)

    async def settle_balance(self, execute: bool) -> Optional[OrderReturn]:
        return await self._finish([self._settle_ix()], execute)

    # ═══════════════════════════════════════════════════════════════════════════
    # SEND-ALWAYS OPERATIONS
    # ═══════════════════════════════════════════════════════════════════════════

    async def match_orders_transaction(self, limit: int) -> Tuple[bool, Signature]:
        ix = dex.match_orders(
            self.program_id, self._require_market(), self.base_wallet, self.quote_wallet, limit
        )
        return await self.rpc.submit_and_confirm(self.owner, [ix])

    async def cancel_settle_place(
        self,
        ask_target_quote: float,
        bid_target_quote: float,
        bid_price: float,
        ask_price: float,
    ) -> Tuple[bool, Signature]:
        """Cancel all, settle, then place bid and ask, in one transaction."""
        ixs = await self._cancel_ixs()
        ixs.append(self._settle_ix())
        for side, price, target in ((Side.BID, bid_price, bid_target_quote), (Side.ASK, ask_price, ask_target_quote)):
            ix = self._new_order_ix(side, price, target)
            if ix is not None:
                ixs.append(ix)
        return await self.rpc.submit_and_confirm(self.owner, ixs)

    async def cancel_settle_place_bid(self, bid_target_quote: float, bid_price: float) -> Tuple[bool, Signature]:
        ixs = await self._cancel_ixs()
        ixs.append(self._settle_ix())
        ix = self._new_order_ix(Side.BID, bid_price, bid_target_quote)
        if ix is not None:
            ixs.append(ix)
        return await self.rpc.submit_and_confirm(self.owner, ixs)

    async def cancel_settle_place_ask(self, ask_target_quote: float, ask_price: float) -> Tuple[bool, Signature]:
        ixs = await self._cancel_ixs()
        ixs.append(self._settle_ix())
        ix = self._new_order_ix(Side.ASK, ask_price, ask_target_quote)
        if ix is not None:
            ixs.append(ix)
        return await self.rpc.submit_and_confirm(self.owner, ixs)

    async def consume_events_instruction(self, open_orders: Sequence[Pubkey], limit: int) -> Tuple[bool, Signature]:
        ix = dex.consume_events(
            self.program_id, self._require_market(), list(open_orders),
            self.base_wallet, self.quote_wallet, limit,
        )
        return await self.rpc.submit_and_confirm(self.owner, [ix])

    async def consume_events_permissioned_instruction(
        self,
        open_orders: Sequence[Pubkey],
        limit: int,
    ) -> Tuple[bool, Signature]:
        market = self._require_market()
        authority = self.owner.pubkey()
        if market.consume_events_authority is not None and market.consume_events_authority != authority:
            Logger.warning(
                f"[CONSUME] Market authority is {market.consume_events_authority}, signing as {authority}"
            )
        ix = dex.consume_events_permissioned(self.program_id, market, list(open_orders), authority, limit)
        return await self.rpc.submit_and_confirm(self.owner, [ix])

    # ═══════════════════════════════════════════════════════════════════════════
    # QUERIES
    # ═══════════════════════════════════════════════════════════════════════════

    async def fetch_event_queue_stats(self) -> EventQueueStats:
        data = await self.rpc.get_account_data(self._require_market().event_queue)
        return decode_event_queue_header(data)

    async def collect_event_queue_open_orders(self, limit: int) -> List[Pubkey]:
        """Distinct open-orders owners of the first `limit` pending events, in queue order."""
        data = await self.rpc.get_account_data(self._require_market().event_queue)
        owners: List[Pubkey] = []
        for event in decode_pending_events(data, limit):
            if event.owner not in owners:
                owners.append(event.owner)
        Logger.debug(f"[EVENTQ] {len(owners)} distinct owners in first {limit} events")
        return owners

    async def load_open_orders(self, address: Pubkey) -> OpenOrdersAccount:
        return decode_open_orders(address, await self.rpc.get_account_data(address))

    async def find_open_orders_accounts_for_owner(self, owner: Pubkey, limit: int) -> List[Pubkey]:
        accounts = await self.rpc.find_program_accounts(
            self.program_id,
            OPEN_ORDERS_SIZE,
            [(OPEN_ORDERS_MARKET_OFFSET, self.market_id), (OPEN_ORDERS_OWNER_OFFSET, owner)],
        )
        return [address for address, _data in accounts[:max(0, limit)]]

    async def load_orders_for_owner(self) -> List[OpenOrdersAccount]:
        accounts = await self.rpc.find_program_accounts(
            self.program_id,
            OPEN_ORDERS_SIZE,
            [(OPEN_ORDERS_MARKET_OFFSET, self.market_id), (OPEN_ORDERS_OWNER_OFFSET, self.owner.pubkey())],
        )
        return [decode_open_orders(address, data) for address, data in accounts]

    def describe(self) -> Dict[str, Any]:
        """Snapshot of client state for the info command."""
        market = self._require_market()
        return {
            "market": str(self.market_id),
            "program_id": str(self.program_id),
            "owner": str(self.owner.pubkey()),
            "open_orders": str(self.oo_key) if self.oo_key else None,
            "base_mint": str(market.base_mint),
            "quote_mint": str(market.quote_mint),
            "base_decimals": self.base_decimals,
            "quote_decimals": self.quote_decimals,
            "base_lot_size": market.base_lot_size,
            "quote_lot_size": market.quote_lot_size,
            "fee_rate_bps": market.fee_rate_bps,
            "bids": str(market.bids),
            "asks": str(market.asks),
            "event_queue": str(market.event_queue),
            "request_queue": str(market.request_queue),
            "permissioned": market.is_permissioned,
            "base_wallet": str(self.base_wallet),
            "quote_wallet": str(self.quote_wallet),
        }
