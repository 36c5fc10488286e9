"""
Order Return Type
=================
Result of any order-mutating client call.

Exactly one of two shapes:
- InstructionBatch: unsigned instructions, nothing sent (dry run)
- SignatureResult: instructions were sent and the transaction confirmed

An empty InstructionBatch means "nothing to do".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, Union

from solders.instruction import Instruction
from solders.signature import Signature


@dataclass(frozen=True)
class InstructionBatch:
    instructions: Tuple[Instruction, ...] = ()

    def __post_init__(self):
        # Accept any sequence, store an immutable tuple
        object.__setattr__(self, "instructions", tuple(self.instructions))

    @property
    def is_empty(self) -> bool:
        return len(self.instructions) == 0

    def __len__(self) -> int:
        return len(self.instructions)


@dataclass(frozen=True)
class SignatureResult:
    signature: Signature

    def __post_init__(self):
        if self.signature is None:
            raise ValueError("SignatureResult requires a signature")


OrderReturn = Union[InstructionBatch, SignatureResult]
