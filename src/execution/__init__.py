"""
Execution Pipeline
==================
Batching and confirmation orchestration.

Components:
- OrderReturn: batch-or-signature result of a mutating call
- BatchSubmitter: capped, chunked, strictly sequential submission
- ConfirmationWaiter: settle delay, then fetch and render
- resolve_open_orders: crank target discovery
"""

from src.execution.order_result import (
    InstructionBatch,
    SignatureResult,
    OrderReturn,
)

from src.execution.batch_submitter import (
    BatchSubmitter,
    BatchLimits,
    limit_and_chunk,
)

from src.execution.confirmation import (
    ConfirmationWaiter,
    render_transaction,
)

from src.execution.open_orders_resolver import (
    resolve_open_orders,
    parse_open_orders,
)


__all__ = [
    # Results
    "InstructionBatch",
    "SignatureResult",
    "OrderReturn",
    # Submitter
    "BatchSubmitter",
    "BatchLimits",
    "limit_and_chunk",
    # Confirmation
    "ConfirmationWaiter",
    "render_transaction",
    # Resolver
    "resolve_open_orders",
    "parse_open_orders",
]
