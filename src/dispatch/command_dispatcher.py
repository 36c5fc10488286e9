"""
Command Dispatcher
==================
Maps each operator intent onto exactly one flow:

- read-only:      query + render (load/find failures are printed, not fatal)
- order-return:   signature -> ConfirmationWaiter, batch -> render (dry run)
- executed cancel: BatchSubmitter under global/per-tx caps
- send-always:    (confirmed, signature) -> ConfirmationWaiter

One linear pass per intent. No retries here.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

from rich.console import Console
from rich.table import Table
from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.signature import Signature

from src.dispatch.intents import (
    CancelIntent,
    CancelSettlePlaceAskIntent,
    CancelSettlePlaceBidIntent,
    CancelSettlePlaceIntent,
    ConsumeIntent,
    ConsumePermissionedIntent,
    EventQueueStatusIntent,
    FindOpenOrdersIntent,
    InfoIntent,
    Intent,
    LoadOrdersIntent,
    MatchIntent,
    PlaceIntent,
    SettleIntent,
)
from src.execution.batch_submitter import BatchSubmitter
from src.execution.confirmation import ConfirmationWaiter
from src.execution.open_orders_resolver import resolve_open_orders
from src.execution.order_result import InstructionBatch, OrderReturn, SignatureResult
from src.openbook.client import lots_to_price
from src.openbook.layouts import EventQueueStats
from src.shared.system.logging import Logger


def event_queue_summary(stats: EventQueueStats) -> Dict[str, Any]:
    return {
        "pending_events": stats.count,
        "head": stats.head,
        "seq_num": stats.seq_num,
        "account_flags": stats.account_flags,
        "needs_crank": stats.count > 0,
    }


def render_instructions(instructions: Sequence[Instruction], console: Console) -> None:
    table = Table(title=f"Instructions ({len(instructions)}, not sent)")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Program")
    table.add_column("Accounts", justify="right")
    table.add_column("Data")
    for i, ix in enumerate(instructions):
        table.add_row(str(i), str(ix.program_id), str(len(ix.accounts)), bytes(ix.data).hex())
    console.print(table)


class CommandDispatcher:
    """
    Usage:
        dispatcher = CommandDispatcher(client, waiter, submitter)
        exit_code = await dispatcher.dispatch(CancelIntent(execute=True))
    """

    def __init__(
        self,
        client: Any,
        waiter: ConfirmationWaiter,
        submitter: BatchSubmitter,
        console: Optional[Console] = None,
    ):
        self.client = client
        self.waiter = waiter
        self.submitter = submitter
        self.console = console or Console()
        self._handlers: Dict[type, Callable[[Any], Awaitable[None]]] = {
            InfoIntent: self._handle_info,
            EventQueueStatusIntent: self._handle_event_queue,
            PlaceIntent: self._handle_place,
            CancelIntent: self._handle_cancel,
            SettleIntent: self._handle_settle,
            MatchIntent: self._handle_match,
            CancelSettlePlaceIntent: self._handle_cancel_settle_place,
            CancelSettlePlaceBidIntent: self._handle_cancel_settle_place_bid,
            CancelSettlePlaceAskIntent: self._handle_cancel_settle_place_ask,
            ConsumeIntent: self._handle_consume,
            ConsumePermissionedIntent: self._handle_consume_permissioned,
            LoadOrdersIntent: self._handle_load_orders,
            FindOpenOrdersIntent: self._handle_find_open_orders,
        }

    async def dispatch(self, intent: Intent) -> int:
        """
        Execute one intent.

        Returns:
            Exit code (0 for success). Input and transport errors propagate.
        """
        handler = self._handlers.get(type(intent))
        if handler is None:
            Logger.error(f"Unknown intent: {type(intent).__name__}")
            return 1

        Logger.debug(f"[SYSTEM] Dispatching {intent}")
        await handler(intent)
        return 0

    # ═══════════════════════════════════════════════════════════════════════════
    # RESULT HANDLING
    # ═══════════════════════════════════════════════════════════════════════════

    async def _show_signature(self, signature: Signature) -> None:
        Logger.success(f"[TX] Transaction successful, signature: {signature}")
        await self.waiter.show_transaction(signature)

    async def _handle_order_return(self, result: Optional[OrderReturn]) -> None:
        if result is None:
            Logger.info("[TX] Nothing to do")
        elif isinstance(result, SignatureResult):
            await self._show_signature(result.signature)
        elif isinstance(result, InstructionBatch):
            if result.is_empty:
                Logger.info("[TX] Got 0 instructions, nothing to do")
            else:
                Logger.info(f"[TX] Got {len(result)} instructions")
                render_instructions(result.instructions, self.console)

    async def _handle_pair(self, confirmed: bool, signature: Signature) -> None:
        Logger.debug(f"[TX] confirmed={confirmed}")
        await self._show_signature(signature)

    # ═══════════════════════════════════════════════════════════════════════════
    # READ-ONLY
    # ═══════════════════════════════════════════════════════════════════════════

    async def _handle_info(self, intent: InfoIntent) -> None:
        info = self.client.describe()
        table = Table(title="OpenBook v1 Client", show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        for key, value in info.items():
            table.add_row(key, str(value))
        self.console.print(table)

        if self.client.oo_key is None:
            return
        account = await self.client.load_open_orders(self.client.oo_key)
        market = self.client.market
        orders = Table(title=f"Open Orders {account.address}")
        orders.add_column("Slot", justify="right")
        orders.add_column("Side")
        orders.add_column("Price", justify="right")
        orders.add_column("Client ID", justify="right")
        for order in account.orders:
            price = lots_to_price(
                order.price_lots,
                self.client.base_decimals,
                self.client.quote_decimals,
                market.base_lot_size,
                market.quote_lot_size,
            )
            orders.add_row(str(order.slot), "BID" if order.is_bid else "ASK", f"{price:.6f}", str(order.client_order_id))
        self.console.print(orders)
        Logger.info(
            f"[MARKET] Balances base free/total {account.base_token_free}/{account.base_token_total}, "
            f"quote free/total {account.quote_token_free}/{account.quote_token_total}"
        )

    async def _handle_event_queue(self, intent: EventQueueStatusIntent) -> None:
        summary = event_queue_summary(await self.client.fetch_event_queue_stats())
        Logger.info(
            f"[EVENTQ] Event queue stats => pending_events: {summary['pending_events']}, "
            f"head: {summary['head']}, seq_num: {summary['seq_num']}, "
            f"account_flags: 0x{summary['account_flags']:x}, needs_crank: {summary['needs_crank']}"
        )

    async def _handle_load_orders(self, intent: LoadOrdersIntent) -> None:
        try:
            accounts = await self.client.load_orders_for_owner()
        except Exception as e:
            self.console.print(f"[*] Error loading orders for owner: {e}", style="red", markup=False)
            return

        table = Table(title=f"Found Program Accounts ({len(accounts)})")
        table.add_column("Open Orders")
        table.add_column("Orders", justify="right")
        table.add_column("Base free/total", justify="right")
        table.add_column("Quote free/total", justify="right")
        for account in accounts:
            table.add_row(
                str(account.address),
                str(len(account.orders)),
                f"{account.base_token_free}/{account.base_token_total}",
                f"{account.quote_token_free}/{account.quote_token_total}",
            )
        self.console.print(table)

    async def _handle_find_open_orders(self, intent: FindOpenOrdersIntent) -> None:
        owner = self.client.owner.pubkey()
        try:
            found = await self.client.find_open_orders_accounts_for_owner(owner, intent.limit)
        except Exception as e:
            self.console.print(f"[*] Error finding open orders accounts: {e}", style="red", markup=False)
            return

        Logger.info(f"[MARKET] Found {len(found)} open orders accounts for {owner}")
        for address in found:
            self.console.print(f"  {address}")

    # ═══════════════════════════════════════════════════════════════════════════
    # ORDER-RETURN
    # ═══════════════════════════════════════════════════════════════════════════

    async def _handle_place(self, intent: PlaceIntent) -> None:
        result = await self.client.place_limit_order(
            intent.target_amount_quote,
            intent.side,
            intent.best_offset,
            intent.execute,
            intent.price_target,
        )
        await self._handle_order_return(result)

    async def _handle_cancel(self, intent: CancelIntent) -> None:
        if not intent.execute:
            await self._handle_order_return(await self.client.cancel_orders(False))
            return

        # Build unsigned, then send through the capped batch path
        signature = await self.submitter.submit_limited(await self.client.cancel_orders(False))
        if signature is None:
            Logger.info("[CANCEL] No open orders to cancel")
            return
        await self._show_signature(signature)

    async def _handle_settle(self, intent: SettleIntent) -> None:
        await self._handle_order_return(await self.client.settle_balance(intent.execute))

    # ═══════════════════════════════════════════════════════════════════════════
    # SEND-ALWAYS
    # ═══════════════════════════════════════════════════════════════════════════

    async def _handle_match(self, intent: MatchIntent) -> None:
        await self._handle_pair(*await self.client.match_orders_transaction(intent.limit))

    async def _handle_cancel_settle_place(self, intent: CancelSettlePlaceIntent) -> None:
        await self._handle_pair(
            *await self.client.cancel_settle_place(
                intent.ask_target_quote,
                intent.bid_target_quote,
                intent.bid_price,
                intent.ask_price,
            )
        )

    async def _handle_cancel_settle_place_bid(self, intent: CancelSettlePlaceBidIntent) -> None:
        await self._handle_pair(
            *await self.client.cancel_settle_place_bid(intent.bid_target_quote, intent.bid_price)
        )

    async def _handle_cancel_settle_place_ask(self, intent: CancelSettlePlaceAskIntent) -> None:
        await self._handle_pair(
            *await self.client.cancel_settle_place_ask(intent.ask_target_quote, intent.ask_price)
        )

    async def _resolve_targets(self, explicit: Sequence[Pubkey], limit: int):
        return await resolve_open_orders(
            explicit,
            limit,
            self.client.collect_event_queue_open_orders,
            lambda: self.client.open_orders_key,
        )

    async def _handle_consume(self, intent: ConsumeIntent) -> None:
        accounts = await self._resolve_targets(intent.open_orders, intent.limit)
        await self._handle_pair(*await self.client.consume_events_instruction(accounts, intent.limit))

    async def _handle_consume_permissioned(self, intent: ConsumePermissionedIntent) -> None:
        accounts = await self._resolve_targets(intent.open_orders, intent.limit)
        await self._handle_pair(
            *await self.client.consume_events_permissioned_instruction(accounts, intent.limit)
        )
