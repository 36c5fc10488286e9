"""
CommandDispatcher Unit Tests
============================
Intent -> flow mapping against a mocked client, waiter and submitter.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from rich.console import Console
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature


def _console():
    return Console(record=True, width=200, file=open("/dev/null", "w"))


@pytest.fixture
def client():
    c = MagicMock()
    c.owner = Keypair()
    c.oo_key = None
    c.open_orders_key = Pubkey.new_unique()
    for name in (
        "place_limit_order", "cancel_orders", "settle_balance",
        "match_orders_transaction", "cancel_settle_place",
        "cancel_settle_place_bid", "cancel_settle_place_ask",
        "consume_events_instruction", "consume_events_permissioned_instruction",
        "collect_event_queue_open_orders", "fetch_event_queue_stats",
        "load_orders_for_owner", "find_open_orders_accounts_for_owner",
        "load_open_orders",
    ):
        setattr(c, name, AsyncMock())
    return c


@pytest.fixture
def waiter():
    w = MagicMock()
    w.show_transaction = AsyncMock(return_value=True)
    return w


@pytest.fixture
def submitter():
    s = MagicMock()
    s.submit_limited = AsyncMock(return_value=None)
    return s


@pytest.fixture
def dispatcher(client, waiter, submitter):
    from src.dispatch.command_dispatcher import CommandDispatcher
    return CommandDispatcher(client, waiter, submitter, console=_console())


class TestOrderReturnFlow:

    @pytest.mark.asyncio
    async def test_dry_run_place_renders_batch(self, dispatcher, client, waiter, make_instructions):
        """execute=False -> instructions printed, nothing sent, waiter idle."""
        from src.dispatch.intents import PlaceIntent
        from src.execution.order_result import InstructionBatch
        from src.openbook.instructions import Side

        ixs = make_instructions(1)
        client.place_limit_order.return_value = InstructionBatch(ixs)

        code = await dispatcher.dispatch(PlaceIntent(10.0, Side.BID, 0.01, False, 3.25))

        assert code == 0
        client.place_limit_order.assert_awaited_once_with(10.0, Side.BID, 0.01, False, 3.25)
        waiter.show_transaction.assert_not_awaited()
        assert "not sent" in dispatcher.console.export_text()

    @pytest.mark.asyncio
    async def test_executed_place_waits_for_signature(self, dispatcher, client, waiter):
        from src.dispatch.intents import PlaceIntent
        from src.execution.order_result import SignatureResult
        from src.openbook.instructions import Side

        sig = Signature.new_unique()
        client.place_limit_order.return_value = SignatureResult(sig)

        await dispatcher.dispatch(PlaceIntent(10.0, Side.ASK, 0.01, True, 3.25))

        waiter.show_transaction.assert_awaited_once_with(sig)

    @pytest.mark.asyncio
    async def test_below_lot_size_is_nothing_to_do(self, dispatcher, client, waiter):
        from src.dispatch.intents import PlaceIntent
        from src.openbook.instructions import Side

        client.place_limit_order.return_value = None

        assert await dispatcher.dispatch(PlaceIntent(0.001, Side.BID, 0.0, True, 3.0)) == 0
        waiter.show_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_settle_batch_does_not_render(self, dispatcher, client, waiter):
        from src.dispatch.intents import SettleIntent
        from src.execution.order_result import InstructionBatch

        client.settle_balance.return_value = InstructionBatch([])

        await dispatcher.dispatch(SettleIntent(execute=False))

        client.settle_balance.assert_awaited_once_with(False)
        assert "not sent" not in dispatcher.console.export_text()
        waiter.show_transaction.assert_not_awaited()


class TestCancelFlow:

    @pytest.mark.asyncio
    async def test_executed_cancel_goes_through_submitter(self, client, waiter, make_instructions):
        """7 pending cancels with caps 5/5 -> one tx of 5, then confirmation display."""
        from src.dispatch.command_dispatcher import CommandDispatcher
        from src.dispatch.intents import CancelIntent
        from src.execution.batch_submitter import BatchLimits, BatchSubmitter
        from src.execution.order_result import InstructionBatch

        ixs = make_instructions(7)
        sig = Signature.new_unique()
        sender = MagicMock()
        sender.submit_and_confirm = AsyncMock(return_value=(True, sig))
        submitter = BatchSubmitter(sender, Keypair(), BatchLimits(5, 5))
        client.cancel_orders.return_value = InstructionBatch(ixs)

        dispatcher = CommandDispatcher(client, waiter, submitter, console=_console())
        await dispatcher.dispatch(CancelIntent(execute=True))

        client.cancel_orders.assert_awaited_once_with(False)
        assert sender.submit_and_confirm.await_count == 1
        assert list(sender.submit_and_confirm.await_args.args[1]) == ixs[:5]
        waiter.show_transaction.assert_awaited_once_with(sig)

    @pytest.mark.asyncio
    async def test_executed_cancel_without_orders(self, dispatcher, client, waiter, submitter):
        from src.dispatch.intents import CancelIntent
        from src.execution.order_result import InstructionBatch

        client.cancel_orders.return_value = InstructionBatch([])

        assert await dispatcher.dispatch(CancelIntent(execute=True)) == 0
        submitter.submit_limited.assert_awaited_once()
        waiter.show_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dry_run_cancel_skips_submitter(self, dispatcher, client, submitter, make_instructions):
        from src.dispatch.intents import CancelIntent
        from src.execution.order_result import InstructionBatch

        client.cancel_orders.return_value = InstructionBatch(make_instructions(3))

        await dispatcher.dispatch(CancelIntent(execute=False))

        submitter.submit_limited.assert_not_awaited()
        assert "Instructions (3" in dispatcher.console.export_text()


class TestSendAlwaysFlow:

    @pytest.mark.asyncio
    async def test_match_shows_transaction(self, dispatcher, client, waiter):
        from src.dispatch.intents import MatchIntent

        sig = Signature.new_unique()
        client.match_orders_transaction.return_value = (True, sig)

        await dispatcher.dispatch(MatchIntent(limit=10))

        client.match_orders_transaction.assert_awaited_once_with(10)
        waiter.show_transaction.assert_awaited_once_with(sig)

    @pytest.mark.asyncio
    async def test_unconfirmed_pair_still_shows_transaction(self, dispatcher, client, waiter):
        from src.dispatch.intents import CancelSettlePlaceIntent

        sig = Signature.new_unique()
        client.cancel_settle_place.return_value = (False, sig)

        await dispatcher.dispatch(CancelSettlePlaceIntent(10.0, 12.0, 3.2, 3.3))

        client.cancel_settle_place.assert_awaited_once_with(10.0, 12.0, 3.2, 3.3)
        waiter.show_transaction.assert_awaited_once_with(sig)

    @pytest.mark.asyncio
    async def test_single_sided_composites(self, dispatcher, client, waiter):
        from src.dispatch.intents import CancelSettlePlaceAskIntent, CancelSettlePlaceBidIntent

        client.cancel_settle_place_bid.return_value = (True, Signature.new_unique())
        client.cancel_settle_place_ask.return_value = (True, Signature.new_unique())

        await dispatcher.dispatch(CancelSettlePlaceBidIntent(5.0, 3.1))
        await dispatcher.dispatch(CancelSettlePlaceAskIntent(6.0, 3.4))

        client.cancel_settle_place_bid.assert_awaited_once_with(5.0, 3.1)
        client.cancel_settle_place_ask.assert_awaited_once_with(6.0, 3.4)
        assert waiter.show_transaction.await_count == 2

    @pytest.mark.asyncio
    async def test_send_failure_propagates(self, dispatcher, client, waiter):
        from src.dispatch.intents import MatchIntent
        from src.shared.exceptions import TransactionFailedError

        client.match_orders_transaction.side_effect = TransactionFailedError(reason="custom program error")

        with pytest.raises(TransactionFailedError):
            await dispatcher.dispatch(MatchIntent(limit=1))
        waiter.show_transaction.assert_not_awaited()


class TestConsumeFlow:

    @pytest.mark.asyncio
    async def test_explicit_accounts_skip_queue_scan(self, dispatcher, client):
        from src.dispatch.intents import ConsumeIntent

        keys = [Pubkey.new_unique() for _ in range(3)]
        client.consume_events_instruction.return_value = (True, Signature.new_unique())

        await dispatcher.dispatch(ConsumeIntent(limit=10, open_orders=tuple(keys)))

        client.collect_event_queue_open_orders.assert_not_awaited()
        client.consume_events_instruction.assert_awaited_once_with(keys, 10)

    @pytest.mark.asyncio
    async def test_queue_owners_used_when_no_list(self, dispatcher, client):
        from src.dispatch.intents import ConsumePermissionedIntent

        owners = [Pubkey.new_unique()]
        client.collect_event_queue_open_orders.return_value = owners
        client.consume_events_permissioned_instruction.return_value = (True, Signature.new_unique())

        await dispatcher.dispatch(ConsumePermissionedIntent(limit=7))

        client.collect_event_queue_open_orders.assert_awaited_once_with(7)
        client.consume_events_permissioned_instruction.assert_awaited_once_with(owners, 7)

    @pytest.mark.asyncio
    async def test_empty_queue_falls_back_to_own_account(self, dispatcher, client):
        from src.dispatch.intents import ConsumeIntent

        client.collect_event_queue_open_orders.return_value = []
        client.consume_events_instruction.return_value = (True, Signature.new_unique())

        await dispatcher.dispatch(ConsumeIntent(limit=3))

        client.consume_events_instruction.assert_awaited_once_with([client.open_orders_key], 3)


class TestReadOnlyFlow:

    @pytest.mark.asyncio
    async def test_event_queue_empty_needs_no_crank(self, dispatcher, client):
        from src.dispatch.command_dispatcher import event_queue_summary
        from src.dispatch.intents import EventQueueStatusIntent
        from src.openbook.layouts import EventQueueStats

        stats = EventQueueStats(count=0, head=4, seq_num=100, account_flags=17)
        client.fetch_event_queue_stats.return_value = stats

        assert await dispatcher.dispatch(EventQueueStatusIntent()) == 0
        assert event_queue_summary(stats)["needs_crank"] is False
        assert event_queue_summary(EventQueueStats(3, 0, 1, 17))["needs_crank"] is True

    @pytest.mark.asyncio
    async def test_load_orders_failure_is_not_fatal(self, dispatcher, client):
        from src.dispatch.intents import LoadOrdersIntent

        client.load_orders_for_owner.side_effect = RuntimeError("rpc [limit] exceeded")

        assert await dispatcher.dispatch(LoadOrdersIntent()) == 0
        assert "Error loading orders for owner: rpc [limit] exceeded" in dispatcher.console.export_text()

    @pytest.mark.asyncio
    async def test_find_open_orders_failure_is_not_fatal(self, dispatcher, client):
        from src.dispatch.intents import FindOpenOrdersIntent

        client.find_open_orders_accounts_for_owner.side_effect = RuntimeError("timeout")

        assert await dispatcher.dispatch(FindOpenOrdersIntent(limit=5)) == 0
        client.find_open_orders_accounts_for_owner.assert_awaited_once_with(client.owner.pubkey(), 5)
        assert "Error finding open orders accounts: timeout" in dispatcher.console.export_text()

    @pytest.mark.asyncio
    async def test_find_open_orders_lists_accounts(self, dispatcher, client):
        from src.dispatch.intents import FindOpenOrdersIntent

        found = [Pubkey.new_unique(), Pubkey.new_unique()]
        client.find_open_orders_accounts_for_owner.return_value = found

        await dispatcher.dispatch(FindOpenOrdersIntent(limit=1000))

        text = dispatcher.console.export_text()
        assert all(str(k) in text for k in found)

    @pytest.mark.asyncio
    async def test_info_without_open_orders_account(self, dispatcher, client):
        from src.dispatch.intents import InfoIntent

        client.describe.return_value = {"market": "MKT", "base_decimals": 6}

        assert await dispatcher.dispatch(InfoIntent()) == 0
        client.load_open_orders.assert_not_awaited()
        assert "MKT" in dispatcher.console.export_text()

    @pytest.mark.asyncio
    async def test_unknown_intent_returns_error_code(self, dispatcher):
        assert await dispatcher.dispatch(object()) == 1
