"""
delegation.processor — the delegation state machine.

Each processor has the signature `process_x(program_id, accounts, data)` and
receives only its args. `process_instruction` is the entry point registered
with a ledger: it strips the 8-byte discriminator and dispatches.

    ledger.register_program(program_id, process_instruction)
    ledger.execute(program_id, metas, Discriminator.FINALIZE.encode())
"""

from __future__ import annotations

from typing import Callable, Dict, List

from delegation.ledger import AccountInfo

from .args import Discriminator, split_instruction
from .commit_diff import process_commit_diff, process_commit_diff_from_buffer
from .commit_state import process_commit_state, process_commit_state_from_buffer
from .delegate import process_delegate
from .finalize import process_finalize
from .undelegate import process_undelegate

PROCESSORS: Dict[Discriminator, Callable[[bytes, List[AccountInfo], bytes], None]] = {
    Discriminator.DELEGATE: process_delegate,
    Discriminator.COMMIT_STATE: process_commit_state,
    Discriminator.FINALIZE: process_finalize,
    Discriminator.UNDELEGATE: process_undelegate,
    Discriminator.COMMIT_STATE_FROM_BUFFER: process_commit_state_from_buffer,
    Discriminator.COMMIT_DIFF: process_commit_diff,
    Discriminator.COMMIT_DIFF_FROM_BUFFER: process_commit_diff_from_buffer,
}


def process_instruction(program_id: bytes, accounts: List[AccountInfo], data: bytes) -> None:
    disc, args = split_instruction(data)
    PROCESSORS[disc](program_id, accounts, args)


__all__ = [
    "PROCESSORS",
    "Discriminator",
    "process_instruction",
    "process_delegate",
    "process_commit_state",
    "process_commit_state_from_buffer",
    "process_commit_diff",
    "process_commit_diff_from_buffer",
    "process_finalize",
    "process_undelegate",
]
