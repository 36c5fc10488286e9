"""
Open-Orders Resolver
====================
Picks the open-orders accounts a consume-events crank should touch.

Priority:
1. Explicit operator list (parsed up front by the CLI, order preserved)
2. Distinct owners of the first `limit` pending event-queue entries
3. The operator's own open-orders account
"""

from __future__ import annotations

from typing import Awaitable, Callable, List, Optional, Sequence

from solders.pubkey import Pubkey

from src.openbook.keys import parse_pubkey
from src.shared.system.logging import Logger

QueueScanner = Callable[[int], Awaitable[List[Pubkey]]]


def parse_open_orders(inputs: Sequence[str]) -> List[Pubkey]:
    """Parse every entry or fail on the first bad one (InvalidInputError)."""
    return [parse_pubkey(key, "open orders pubkey") for key in inputs]


async def resolve_open_orders(
    explicit: Optional[Sequence[Pubkey]],
    limit: int,
    scanner: QueueScanner,
    own_account: Callable[[], Pubkey],
) -> List[Pubkey]:
    """
    Args:
        explicit: operator-supplied accounts, already parsed (may be empty)
        limit: how many pending queue entries to inspect on fallback
        scanner: async queue scan, e.g. client.collect_event_queue_open_orders
        own_account: returns the operator's open-orders account; only
            called when both other sources are empty
    """
    if explicit:
        keys = list(explicit)
        Logger.debug(f"[RESOLVER] Using {len(keys)} explicit open orders accounts")
        return keys

    owners = list(await scanner(limit))
    if owners:
        Logger.info(f"[RESOLVER] Found {len(owners)} open orders accounts in event queue")
        return owners

    own = own_account()
    Logger.info(f"[RESOLVER] Event queue empty, falling back to own account {own}")
    return [own]
