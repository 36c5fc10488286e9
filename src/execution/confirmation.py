"""
Confirmation Waiter
===================
After any flow that yields a signature: wait out the crank, then show the tx.

The wait is fixed (not adaptive). Matching and settlement on the DEX happen
in later crank transactions, so querying straight after confirmation shows an
incomplete picture. Fetch failures are logged and never raised: the action
already landed.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Protocol

from rich.console import Console
from rich.table import Table
from solders.signature import Signature

from src.shared.system.logging import Logger


class TransactionFetcher(Protocol):
    async def fetch_transaction(self, signature: Signature) -> Any:
        ...


def render_transaction(signature: Signature, detail: Any, console: Optional[Console] = None) -> None:
    """Print a landed transaction and its status meta as Rich tables."""
    console = console or Console()

    tx_with_meta = getattr(detail, "transaction", None)
    meta = getattr(tx_with_meta, "meta", None)
    tx = getattr(tx_with_meta, "transaction", None)
    message = getattr(tx, "message", None)

    block_time = getattr(detail, "block_time", None)
    when = (
        datetime.fromtimestamp(block_time, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        if block_time
        else "-"
    )
    err = getattr(meta, "err", None)

    # Full signature on one line so it can be copied
    console.print(f"Transaction {signature}", soft_wrap=True, highlight=False)

    summary = Table(show_header=False)
    summary.add_column("Field", style="cyan")
    summary.add_column("Value")
    summary.add_row("Slot", str(getattr(detail, "slot", "-")))
    summary.add_row("Block Time", when)
    summary.add_row("Fee (lamports)", str(getattr(meta, "fee", "-")))
    summary.add_row("Status", "[green]Ok[/]" if err is None else f"[red]{err}[/]")
    if message is not None:
        summary.add_row("Instructions", str(len(getattr(message, "instructions", []))))
    console.print(summary)

    account_keys = getattr(message, "account_keys", None) or []
    if account_keys:
        accounts = Table(title="Accounts")
        accounts.add_column("#", justify="right", style="dim")
        accounts.add_column("Address")
        for i, key in enumerate(account_keys):
            accounts.add_row(str(i), str(key))
        console.print(accounts)

    logs = getattr(meta, "log_messages", None) or []
    if logs:
        console.print("[bold]Log Messages[/]")
        for line in logs:
            console.print(f"  {line}", markup=False, highlight=False)


class ConfirmationWaiter:
    """
    Usage:
        waiter = ConfirmationWaiter(rpc, settle_delay_sec=50)
        await waiter.show_transaction(signature)
    """

    def __init__(
        self,
        fetcher: TransactionFetcher,
        settle_delay_sec: float = 50.0,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        console: Optional[Console] = None,
    ):
        self.fetcher = fetcher
        self.settle_delay_sec = settle_delay_sec
        self._sleep = sleep or asyncio.sleep
        self.console = console or Console()

    async def show_transaction(self, signature: Signature) -> bool:
        """
        Sleep for the settle delay, then fetch and render.

        Returns:
            True if the transaction was rendered, False if the fetch failed.
        """
        Logger.info(f"[TX] Waiting {self.settle_delay_sec:.0f}s for crank before fetching {signature}")
        await self._sleep(self.settle_delay_sec)

        try:
            detail = await self.fetcher.fetch_transaction(signature)
        except Exception as e:
            Logger.error(f"[TX] Unable to get confirmed transaction details: {e}")
            return False

        render_transaction(signature, detail, self.console)
        return True
