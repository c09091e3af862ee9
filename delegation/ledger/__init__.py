"""
delegation.ledger — in-memory ledger model: cells, atomic execution, rent,
slot clock, system program and synchronous cross-program invocation.
"""

from .cells import LOADER_ID, U64_MAX, AccountInfo, AccountMeta, StorageCell
from .runtime import MAX_INVOKE_DEPTH, Ledger, Processor, current_ledger

__all__ = [
    "LOADER_ID",
    "U64_MAX",
    "AccountInfo",
    "AccountMeta",
    "StorageCell",
    "MAX_INVOKE_DEPTH",
    "Ledger",
    "Processor",
    "current_ledger",
]
