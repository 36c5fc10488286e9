"""
Ledger RPC Gateway
==================
Thin async wrapper over solana-py's AsyncClient.

Responsibilities:
- Account reads (single, program-wide scans)
- Assemble, sign and send versioned transactions, then confirm
- Fetch landed transactions for inspection
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence, Tuple

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed
from solana.rpc.core import (
    RPCException,
    TransactionExpiredBlockheightExceededError,
    UnconfirmedTxError,
)
from solana.rpc.types import MemcmpOpts, TxOpts

from src.shared.exceptions import (
    AccountNotFoundError,
    TransactionFailedError,
    TransactionNotFoundError,
)
from src.shared.system.logging import Logger


class RpcGateway:
    """
    Single owner of the AsyncClient for the lifetime of one command.

    Usage:
        async with RpcGateway(rpc_url) as rpc:
            confirmed, sig = await rpc.submit_and_confirm(keypair, instructions)
    """

    def __init__(
        self,
        rpc_url: str,
        commitment: Commitment = Confirmed,
        client: Optional[AsyncClient] = None,
    ):
        self.rpc_url = rpc_url
        self.commitment = commitment
        self.client = client or AsyncClient(rpc_url, commitment=commitment)

    async def __aenter__(self) -> "RpcGateway":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.client.close()

    # ═══════════════════════════════════════════════════════════════════════════
    # READS
    # ═══════════════════════════════════════════════════════════════════════════

    async def get_account_data(self, pubkey: Pubkey) -> bytes:
        resp = await self.client.get_account_info(pubkey, commitment=self.commitment, encoding="base64")
        if resp.value is None:
            raise AccountNotFoundError(f"Account {pubkey} not found")
        return bytes(resp.value.data)

    async def find_program_accounts(
        self,
        program_id: Pubkey,
        data_size: int,
        memcmp: Sequence[Tuple[int, Pubkey]] = (),
    ) -> List[Tuple[Pubkey, bytes]]:
        """getProgramAccounts filtered by data size and (offset, pubkey) memcmps."""
        filters: List[Any] = [data_size]
        filters += [MemcmpOpts(offset=offset, bytes=str(key)) for offset, key in memcmp]

        resp = await self.client.get_program_accounts(
            program_id,
            commitment=self.commitment,
            encoding="base64",
            filters=filters,
        )
        return [(keyed.pubkey, bytes(keyed.account.data)) for keyed in resp.value]

    # ═══════════════════════════════════════════════════════════════════════════
    # WRITES
    # ═══════════════════════════════════════════════════════════════════════════

    async def build_transaction(
        self,
        signer: Keypair,
        instructions: Sequence[Instruction],
    ) -> Tuple[VersionedTransaction, int]:
        """Compile and sign a v0 transaction. Returns (tx, last_valid_block_height)."""
        bh_resp = await self.client.get_latest_blockhash(commitment=self.commitment)
        msg = MessageV0.try_compile(
            payer=signer.pubkey(),
            instructions=list(instructions),
            address_lookup_table_accounts=[],
            recent_blockhash=bh_resp.value.blockhash,
        )
        tx = VersionedTransaction(msg, [signer])
        Logger.debug(f"[RPC] TX built: {len(instructions)} ixs")
        return tx, bh_resp.value.last_valid_block_height

    async def submit_and_confirm(
        self,
        signer: Keypair,
        instructions: Sequence[Instruction],
    ) -> Tuple[bool, Signature]:
        """
        Send one signed transaction and wait for it to reach the configured
        commitment.

        Returns:
            (confirmed, signature)

        Raises:
            TransactionFailedError: send rejected, or landed with an error
        """
        if not instructions:
            raise ValueError("Refusing to send a transaction with no instructions")

        tx, last_valid_block_height = await self.build_transaction(signer, instructions)

        try:
            resp = await self.client.send_transaction(
                tx,
                opts=TxOpts(skip_confirmation=True, preflight_commitment=self.commitment),
            )
        except (RPCException, SolanaRpcException) as e:
            raise TransactionFailedError(reason=str(e)) from e

        signature = resp.value
        Logger.info(f"[RPC] 🚀 Sent {len(instructions)} ixs: {signature}")

        try:
            conf = await self.client.confirm_transaction(
                signature,
                commitment=self.commitment,
                last_valid_block_height=last_valid_block_height,
            )
        except (
            RPCException,
            SolanaRpcException,
            UnconfirmedTxError,
            TransactionExpiredBlockheightExceededError,
        ) as e:
            raise TransactionFailedError(reason=str(e), signature=str(signature)) from e

        status = conf.value[0] if conf.value else None
        if status is not None and status.err is not None:
            raise TransactionFailedError(reason=str(status.err), signature=str(signature))

        confirmed = status is not None
        Logger.debug(f"[RPC] Confirmation for {signature}: confirmed={confirmed}")
        return confirmed, signature

    async def fetch_transaction(self, signature: Signature) -> Any:
        """
        Fetch a landed transaction with its status meta.

        Raises:
            TransactionNotFoundError: node does not (yet) know the signature
        """
        resp = await self.client.get_transaction(
            signature,
            encoding="base64",
            commitment=Confirmed,
            max_supported_transaction_version=0,
        )
        if resp.value is None:
            raise TransactionNotFoundError(f"Transaction {signature} not found")
        return resp.value
