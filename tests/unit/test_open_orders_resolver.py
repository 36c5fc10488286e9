"""
Open-Orders Resolver Unit Tests
===============================
explicit list > event queue owners > own account.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from solders.pubkey import Pubkey


class TestResolveOpenOrders:

    @pytest.mark.asyncio
    async def test_explicit_list_wins_and_skips_scan(self):
        """3 explicit accounts, limit 10 -> exactly those 3, queue never scanned."""
        from src.execution.open_orders_resolver import resolve_open_orders

        keys = [Pubkey.new_unique() for _ in range(3)]
        scanner = AsyncMock(return_value=[Pubkey.new_unique()])
        own = MagicMock()

        result = await resolve_open_orders(keys, 10, scanner, own)

        assert result == keys
        scanner.assert_not_awaited()
        own.assert_not_called()

    @pytest.mark.asyncio
    async def test_scan_result_used_when_no_explicit_list(self):
        from src.execution.open_orders_resolver import resolve_open_orders

        owners = [Pubkey.new_unique(), Pubkey.new_unique()]
        scanner = AsyncMock(return_value=owners)
        own = MagicMock()

        result = await resolve_open_orders([], 25, scanner, own)

        assert result == owners
        scanner.assert_awaited_once_with(25)
        own.assert_not_called()

    @pytest.mark.asyncio
    async def test_falls_back_to_own_account(self):
        from src.execution.open_orders_resolver import resolve_open_orders

        mine = Pubkey.new_unique()
        scanner = AsyncMock(return_value=[])

        result = await resolve_open_orders((), 10, scanner, lambda: mine)

        assert result == [mine]

    @pytest.mark.asyncio
    async def test_scan_failure_propagates(self):
        from src.execution.open_orders_resolver import resolve_open_orders

        scanner = AsyncMock(side_effect=ConnectionError("rpc down"))

        with pytest.raises(ConnectionError):
            await resolve_open_orders(None, 10, scanner, MagicMock())


class TestParseOpenOrders:

    def test_preserves_order(self):
        from src.execution.open_orders_resolver import parse_open_orders

        keys = [Pubkey.new_unique() for _ in range(4)]

        assert parse_open_orders([str(k) for k in keys]) == keys

    def test_error_names_offending_entry(self):
        from src.execution.open_orders_resolver import parse_open_orders
        from src.shared.exceptions import InvalidInputError

        with pytest.raises(InvalidInputError) as exc:
            parse_open_orders(["xyz123"])

        assert "'xyz123'" in str(exc.value)

    def test_bad_entry_fails_whole_list(self):
        from src.execution.open_orders_resolver import parse_open_orders
        from src.shared.exceptions import InvalidInputError

        good = str(Pubkey.new_unique())

        with pytest.raises(InvalidInputError, match="not-a-key"):
            parse_open_orders([good, "not-a-key", good])
