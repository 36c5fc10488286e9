"""
Unit Test Configuration
=======================
Fixtures for pure logic tests - NO I/O ALLOWED.

All unit tests should be completely isolated from:
- Network (RPC, HTTP)
- File system (except tmp_path)
"""

import struct

import pytest
from unittest.mock import AsyncMock, MagicMock

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature


# ============================================================================
# AUTOUSE: ENFORCE I/O ISOLATION
# ============================================================================


@pytest.fixture(autouse=True)
def isolate_unit_tests(monkeypatch):
    """
    Automatically disable network I/O and file logging for unit tests.
    Any test that accidentally tries to make a network call will fail.
    """
    def block_network(*args, **kwargs):
        raise RuntimeError(
            "Network I/O detected in unit test! "
            "Unit tests must be pure logic with no external dependencies. "
            "Use integration tests for network-dependent code."
        )

    monkeypatch.setattr("httpx.AsyncClient.send", block_network)
    monkeypatch.setattr("httpx.Client.send", block_network)

    from src.shared.system.logging import Logger
    monkeypatch.setattr(Logger, "_file_enabled", False)
    monkeypatch.setattr(Logger, "_silent_mode", True)


# ============================================================================
# SOLANA PRIMITIVES
# ============================================================================


@pytest.fixture
def keypair():
    return Keypair()


@pytest.fixture
def program_id():
    return Pubkey.new_unique()


@pytest.fixture
def make_instructions():
    """Factory: n distinct instructions, data byte = position."""
    def _make(n):
        program = Pubkey.new_unique()
        return [Instruction(program, bytes([i % 256]), []) for i in range(n)]
    return _make


@pytest.fixture
def mock_sender():
    """RPC stand-in whose submit_and_confirm returns a fresh signature per call."""
    sender = MagicMock()
    sender.submit_and_confirm = AsyncMock(
        side_effect=lambda signer, ixs: (True, Signature.new_unique())
    )
    return sender


@pytest.fixture
def no_sleep():
    return AsyncMock(return_value=None)


# ============================================================================
# ACCOUNT BYTES
# ============================================================================

MARKET_FLAGS = 1 | 2  # initialized | market
EVENT_QUEUE_FLAGS = 1 | 16
OPEN_ORDERS_FLAGS = 1 | 4


def build_market_bytes(keys, base_lot_size=100_000, quote_lot_size=10, nonce=0, authorities=None):
    """keys: dict with own, base_mint, quote_mint, base_vault, quote_vault,
    request_queue, event_queue, bids, asks."""
    data = struct.pack(
        "<5sQ32sQ32s32s32sQQ32sQQQ32s32s32s32sQQQQ",
        b"serum",
        MARKET_FLAGS,
        bytes(keys["own"]),
        nonce,
        bytes(keys["base_mint"]),
        bytes(keys["quote_mint"]),
        bytes(keys["base_vault"]),
        0,
        0,
        bytes(keys["quote_vault"]),
        0,
        0,
        100,
        bytes(keys["request_queue"]),
        bytes(keys["event_queue"]),
        bytes(keys["bids"]),
        bytes(keys["asks"]),
        base_lot_size,
        quote_lot_size,
        22,
        0,
    )
    if authorities is not None:
        data += b"".join(bytes(a) for a in authorities) + b"\x00" * 992
    return data + b"padding"


def build_event_queue_bytes(owners, head=0, capacity=8, seq_num=42, count=None):
    """Ring buffer with one fill event per owner, starting at `head`."""
    count = len(owners) if count is None else count
    header = struct.pack("<5sQQQQ", b"serum", EVENT_QUEUE_FLAGS, head, count, seq_num)
    slots = [b"\x00" * 88] * capacity
    for i, owner in enumerate(owners):
        slots[(head + i) % capacity] = struct.pack(
            "<BBB5sQQQ16s32sQ",
            1,  # fill
            i,
            0,
            b"\x00" * 5,
            10,
            20,
            1,
            (i + 1).to_bytes(16, "little"),
            bytes(owner),
            i,
        )
    return header + b"".join(slots) + b"padding"


def build_open_orders_bytes(market, owner, orders=()):
    """orders: iterable of (slot, price_lots, is_bid, client_id)."""
    free_bits = (1 << 128) - 1
    bid_bits = 0
    order_ids = [0] * 128
    client_ids = [0] * 128
    for slot, price_lots, is_bid, client_id in orders:
        free_bits &= ~(1 << slot)
        if is_bid:
            bid_bits |= 1 << slot
        order_ids[slot] = (price_lots << 64) | (slot + 1)
        client_ids[slot] = client_id

    data = b"serum" + struct.pack("<Q", OPEN_ORDERS_FLAGS)
    data += bytes(market) + bytes(owner)
    data += struct.pack("<QQQQ", 5, 10, 7, 20)
    data += free_bits.to_bytes(16, "little") + bid_bits.to_bytes(16, "little")
    data += b"".join(o.to_bytes(16, "little") for o in order_ids)
    data += b"".join(struct.pack("<Q", c) for c in client_ids)
    data += struct.pack("<Q", 0) + b"padding"
    return data


def build_mint_bytes(decimals):
    return b"\x00" * 44 + bytes([decimals]) + b"\x01" + b"\x00" * 36


@pytest.fixture
def market_keys():
    return {
        name: Pubkey.new_unique()
        for name in (
            "own", "base_mint", "quote_mint", "base_vault", "quote_vault",
            "request_queue", "event_queue", "bids", "asks",
        )
    }


@pytest.fixture
def account_bytes():
    """Expose the byte builders to tests."""
    return {
        "market": build_market_bytes,
        "event_queue": build_event_queue_bytes,
        "open_orders": build_open_orders_bytes,
        "mint": build_mint_bytes,
    }
