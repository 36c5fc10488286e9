"""
Batch Submitter
===============
Sends an instruction batch as a sequence of independently signed transactions.

Two caps apply:
- max_instructions: global cap, excess instructions are dropped (not retried)
- max_per_tx: chunk size for each transaction

Chunks go out strictly one at a time; each is confirmed before the next is
built, since later chunks may depend on state freed by earlier ones.
A failure aborts the remaining chunks. Chunks already landed stay landed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, Tuple

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.signature import Signature

from src.execution.order_result import InstructionBatch, OrderReturn
from src.shared.system.logging import Logger


class TransactionSender(Protocol):
    async def submit_and_confirm(
        self,
        signer: Keypair,
        instructions: Sequence[Instruction],
    ) -> Tuple[bool, Signature]:
        ...


@dataclass(frozen=True)
class BatchLimits:
    """Caps for executed batch actions."""

    max_instructions: int = 5
    max_per_tx: int = 5


def limit_and_chunk(
    instructions: Sequence[Instruction],
    max_instructions: int,
    max_per_tx: int,
) -> List[List[Instruction]]:
    """
    Truncate to the first `max_instructions`, then split into consecutive
    chunks of at most `max_per_tx` (clamped to >= 1), preserving order.
    """
    kept = list(instructions)[:max(0, max_instructions)]
    size = max(1, max_per_tx)
    return [kept[i:i + size] for i in range(0, len(kept), size)]


class BatchSubmitter:
    """
    Usage:
        submitter = BatchSubmitter(rpc, keypair, BatchLimits(5, 5))
        last_sig = await submitter.submit_limited(await client.cancel_orders(False))
    """

    def __init__(
        self,
        sender: TransactionSender,
        signer: Keypair,
        limits: Optional[BatchLimits] = None,
    ):
        self.sender = sender
        self.signer = signer
        self.limits = limits or BatchLimits()

        # Statistics
        self._submitted = 0
        self._dropped = 0

    async def submit_limited(
        self,
        result: Optional[OrderReturn],
        max_instructions: Optional[int] = None,
        max_per_tx: Optional[int] = None,
    ) -> Optional[Signature]:
        """
        Submit a non-executed action's instructions under the configured caps.
        Explicit caps override the configured ones for this call only.

        Returns:
            Signature of the last chunk, or None when nothing was sent
            (no result, a result that already carries a signature, or an
            empty batch).
        """
        if not isinstance(result, InstructionBatch) or result.is_empty:
            Logger.debug("[BATCH] Nothing to submit")
            return None
        return await self.submit_instructions(result.instructions, max_instructions, max_per_tx)

    async def submit_instructions(
        self,
        instructions: Sequence[Instruction],
        max_instructions: Optional[int] = None,
        max_per_tx: Optional[int] = None,
    ) -> Optional[Signature]:
        if not instructions:
            return None

        cap = self.limits.max_instructions if max_instructions is None else max_instructions
        per_tx = self.limits.max_per_tx if max_per_tx is None else max_per_tx
        chunks = limit_and_chunk(instructions, cap, per_tx)
        kept = sum(len(chunk) for chunk in chunks)
        dropped = len(instructions) - kept
        if dropped > 0:
            self._dropped += dropped
            Logger.debug(
                f"[BATCH] Cap {cap} reached, dropping {dropped} instructions"
            )

        last_sig: Optional[Signature] = None
        for index, chunk in enumerate(chunks, start=1):
            Logger.info(f"[BATCH] Submitting chunk {index}/{len(chunks)} ({len(chunk)} ixs)")
            # Any failure propagates; remaining chunks are never attempted
            _confirmed, signature = await self.sender.submit_and_confirm(self.signer, chunk)
            self._submitted += 1
            last_sig = signature
            Logger.debug(f"[BATCH] Chunk {index} landed: {signature}")

        return last_sig

    def get_stats(self) -> dict:
        return {
            "submitted_transactions": self._submitted,
            "dropped_instructions": self._dropped,
        }
