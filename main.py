"""
OpenBook Operator - Unified CLI Entrypoint
==========================================
One intent per run against a single OpenBook v1 market.

Read-only:
    python main.py info
    python main.py event-queue
    python main.py load-orders
    python main.py find-open-orders

Orders:
    python main.py place -t 10 -s bid -b 0.01 -p 3.25 --execute
    python main.py cancel --execute
    python main.py settle --execute

Crank:
    python main.py match -l 10
    python main.py consume -l 10 --open-orders <PUBKEY>,<PUBKEY>
    python main.py consume-permissioned -l 10

Composite:
    python main.py cancel-settle-place -u 10 -t 10 -p 3.20 -a 3.30
"""

import argparse
import asyncio
import sys
from typing import List, Optional, Tuple

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.commitment import Commitment
from solana.rpc.core import (
    RPCException,
    TransactionExpiredBlockheightExceededError,
    UnconfirmedTxError,
)
from solders.pubkey import Pubkey

from config.settings import Settings
from src.dispatch.command_dispatcher import CommandDispatcher
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
from src.execution.batch_submitter import BatchLimits, BatchSubmitter
from src.execution.confirmation import ConfirmationWaiter
from src.execution.open_orders_resolver import parse_open_orders
from src.openbook.client import ClientConfig, OpenBookClient
from src.openbook.instructions import Side
from src.openbook.keys import load_keypair
from src.openbook.rpc import RpcGateway
from src.shared.exceptions import OperatorError
from src.shared.system.logging import Logger


def _add_execute(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-e", "--execute", action="store_true",
        help="Send on-chain (default: only build and print instructions)"
    )


def _add_open_orders(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--open-orders", action="append", default=[], metavar="PUBKEY",
        help="Open orders accounts to crank (comma separated or repeated). "
             "Defaults to event queue owners, then your own account"
    )


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="openbook-operator",
        description="OpenBook v1 CLI: place, cancel, settle, match and consume events"
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="Increase verbosity (-v, -vv, -vvv)"
    )
    parser.add_argument(
        "-m", "--market-id", type=str, default=None,
        help=f"Market to trade on (default: {Settings.MARKET_ID})"
    )
    parser.add_argument(
        "--program-id", type=str, default=None,
        help=f"DEX program id (default: {Settings.PROGRAM_ID}; "
             f"Serum v3 is {Settings.SERUM_V3_PROGRAM_ID})"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # ═══════════════════════════════════════════════════════════════
    # READ-ONLY
    # ═══════════════════════════════════════════════════════════════
    subparsers.add_parser("info", help="Fetch market info & current open orders")
    subparsers.add_parser("event-queue", help="Display event queue status (pending events, head, seq)")
    subparsers.add_parser("load-orders", help="Load orders for owner")
    find_parser = subparsers.add_parser("find-open-orders", help="Find open orders accounts for owner")
    find_parser.add_argument(
        "--limit", type=int, default=Settings.FIND_OPEN_ORDERS_LIMIT,
        help=f"Max accounts to list (default: {Settings.FIND_OPEN_ORDERS_LIMIT})"
    )

    # ═══════════════════════════════════════════════════════════════
    # ORDERS
    # ═══════════════════════════════════════════════════════════════
    place_parser = subparsers.add_parser("place", help="Place a limit order (bid / ask)")
    place_parser.add_argument(
        "-t", "--target-amount-quote", type=float, required=True,
        help="Target amount in quote currency (e.g. USDC)"
    )
    place_parser.add_argument(
        "-s", "--side", type=str, required=True,
        help='Side: "bid" or "ask"'
    )
    place_parser.add_argument(
        "-b", "--best-offset-usdc", type=float, required=True,
        help="Offset from the target price in quote units"
    )
    place_parser.add_argument(
        "-p", "--price-target", type=float, required=True,
        help="Target price"
    )
    _add_execute(place_parser)

    cancel_parser = subparsers.add_parser("cancel", help="Cancel all open orders for your open orders account")
    _add_execute(cancel_parser)

    settle_parser = subparsers.add_parser("settle", help="Settle balances")
    _add_execute(settle_parser)

    # ═══════════════════════════════════════════════════════════════
    # CRANK
    # ═══════════════════════════════════════════════════════════════
    match_parser = subparsers.add_parser("match", help="Match orders (crank)")
    match_parser.add_argument(
        "-l", "--limit", type=int, required=True,
        help="Maximum number of orders to match"
    )

    consume_parser = subparsers.add_parser("consume", help="Consume events")
    consume_parser.add_argument(
        "-l", "--limit", type=int, required=True,
        help="Limit for consume events instruction"
    )
    _add_open_orders(consume_parser)

    consume_perm_parser = subparsers.add_parser("consume-permissioned", help="Consume events (permissioned)")
    consume_perm_parser.add_argument(
        "-l", "--limit", type=int, required=True,
        help="Limit for consume events permissioned instruction"
    )
    _add_open_orders(consume_perm_parser)

    # ═══════════════════════════════════════════════════════════════
    # COMPOSITE (cancel -> settle -> place, one transaction)
    # ═══════════════════════════════════════════════════════════════
    csp_parser = subparsers.add_parser("cancel-settle-place", help="Cancel, settle, place both bid & ask")
    csp_parser.add_argument("-u", "--usdc-ask-target", type=float, required=True, help="Target size in USDC for the ask order")
    csp_parser.add_argument("-t", "--target-usdc-bid", type=float, required=True, help="Target size in USDC for the bid order")
    csp_parser.add_argument("-p", "--price-jlp-usdc-bid", type=float, required=True, help="Bid price")
    csp_parser.add_argument("-a", "--ask-price-jlp-usdc", type=float, required=True, help="Ask price")

    csp_bid_parser = subparsers.add_parser("cancel-settle-place-bid", help="Cancel, settle, place only bid")
    csp_bid_parser.add_argument("-t", "--target-size-usdc-bid", type=float, required=True, help="Target size in USDC for the bid order")
    csp_bid_parser.add_argument("-b", "--bid-price-jlp-usdc", type=float, required=True, help="Bid price")

    csp_ask_parser = subparsers.add_parser("cancel-settle-place-ask", help="Cancel, settle, place only ask")
    csp_ask_parser.add_argument("-t", "--target-size-usdc-ask", type=float, required=True, help="Target size in USDC for the ask order")
    csp_ask_parser.add_argument("-a", "--ask-price-jlp-usdc", type=float, required=True, help="Ask price")

    return parser


def split_open_orders(values: List[str]) -> tuple:
    """Flatten repeated / comma separated --open-orders values."""
    return tuple(part.strip() for value in values for part in value.split(",") if part.strip())


def parse_open_orders_arg(values: List[str]) -> Tuple[Pubkey, ...]:
    """Raises InvalidInputError naming the first malformed entry."""
    return tuple(parse_open_orders(split_open_orders(values)))


def parse_side(raw: str) -> Side:
    side = Side.parse(raw)
    if raw.strip().lower() not in ("bid", "ask"):
        Logger.warning(f"[PLACE] Unknown side '{raw}', defaulting to bid")
    return side


def build_intent(args: argparse.Namespace) -> Intent:
    """Turn parsed args into the immutable intent the dispatcher consumes."""
    command = args.command
    if command == "info":
        return InfoIntent()
    if command == "event-queue":
        return EventQueueStatusIntent()
    if command == "load-orders":
        return LoadOrdersIntent()
    if command == "find-open-orders":
        return FindOpenOrdersIntent(limit=args.limit)
    if command == "place":
        return PlaceIntent(
            target_amount_quote=args.target_amount_quote,
            side=parse_side(args.side),
            best_offset=args.best_offset_usdc,
            execute=args.execute,
            price_target=args.price_target,
        )
    if command == "cancel":
        return CancelIntent(execute=args.execute)
    if command == "settle":
        return SettleIntent(execute=args.execute)
    if command == "match":
        return MatchIntent(limit=args.limit)
    if command == "cancel-settle-place":
        return CancelSettlePlaceIntent(
            ask_target_quote=args.usdc_ask_target,
            bid_target_quote=args.target_usdc_bid,
            bid_price=args.price_jlp_usdc_bid,
            ask_price=args.ask_price_jlp_usdc,
        )
    if command == "cancel-settle-place-bid":
        return CancelSettlePlaceBidIntent(
            bid_target_quote=args.target_size_usdc_bid,
            bid_price=args.bid_price_jlp_usdc,
        )
    if command == "cancel-settle-place-ask":
        return CancelSettlePlaceAskIntent(
            ask_target_quote=args.target_size_usdc_ask,
            ask_price=args.ask_price_jlp_usdc,
        )
    if command == "consume":
        return ConsumeIntent(limit=args.limit, open_orders=parse_open_orders_arg(args.open_orders))
    if command == "consume-permissioned":
        return ConsumePermissionedIntent(limit=args.limit, open_orders=parse_open_orders_arg(args.open_orders))
    raise ValueError(f"Unknown command: {command}")


# Failures that end the run with exit code 1 and a single error line
TRANSPORT_ERRORS = (
    OperatorError,
    RPCException,
    SolanaRpcException,
    UnconfirmedTxError,
    TransactionExpiredBlockheightExceededError,
    httpx.HTTPError,
)


async def run(args: argparse.Namespace) -> int:
    """Build config and client, dispatch one intent, return exit code."""
    Logger.set_verbosity(args.verbose)

    try:
        config = ClientConfig.from_settings(args.market_id, args.program_id)
        intent = build_intent(args)
        keypair = load_keypair(Settings.SOLANA_PRIVATE_KEY)
    except OperatorError as e:
        Logger.error(f"[*] {e}")
        return 1

    Logger.section(f"{args.command} @ {config.market_id}")

    async with RpcGateway(config.rpc_url, commitment=Commitment(config.commitment)) as rpc:
        try:
            client = await OpenBookClient.connect(config, keypair, rpc)
            dispatcher = CommandDispatcher(
                client,
                ConfirmationWaiter(rpc, settle_delay_sec=Settings.CRANK_DELAY_SEC),
                BatchSubmitter(
                    rpc,
                    keypair,
                    BatchLimits(
                        max_instructions=Settings.MAX_CANCEL_ORDERS,
                        max_per_tx=Settings.MAX_CANCEL_ORDERS_PER_TX,
                    ),
                ),
            )
            return await dispatcher.dispatch(intent)
        except TRANSPORT_ERRORS as e:
            Logger.error(f"[*] {e}")
            return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    return asyncio.run(run(args))


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n   Goodbye!")
        sys.exit(130)
