"""
delegation.ledger.runtime — in-memory ledger with atomic instruction execution.

The `Ledger` owns every `StorageCell`, a slot clock, the rent policy and the set
of registered programs (processors). It is the collaborator the delegation
processors are written against:

  • `execute(program_id, metas, data)` runs one top-level instruction. All cells
    are checkpointed first; any exception restores them before it propagates.
  • `invoke` / `invoke_signed` perform a synchronous cross-program call from
    inside a running processor. Callee privileges are checked against the
    caller's frame; derived addresses may sign via their seeds.
  • After every frame the runtime verifies that read-only accounts are
    unchanged and that total lamports across the frame's accounts are conserved.

Intended usage
--------------
    ledger = Ledger()
    ledger.register_program(PROGRAM_ID, process_instruction)
    ledger.set_account(payer, lamports=10**9)
    ledger.execute(PROGRAM_ID, [AccountMeta.writable(payer, signer=True), ...], data)

Inside a processor, `current_ledger()` plays the role of the rent/clock sysvars.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from delegation.config import RentPolicy, SYSTEM_PROGRAM_ID, get_config
from delegation.errors import ErrorCode, fail
from delegation.pda import create_program_address

from .cells import LOADER_ID, AccountInfo, AccountMeta, StorageCell, _addr

log = logging.getLogger(__name__)

Processor = Callable[[bytes, List[AccountInfo], bytes], None]

#: Maximum cross-program call depth (top-level frame included).
MAX_INVOKE_DEPTH = 5

_CURRENT: ContextVar[Optional["Ledger"]] = ContextVar("_CURRENT_LEDGER", default=None)


def current_ledger() -> "Ledger":
    """The ledger executing the current instruction."""
    ledger = _CURRENT.get()
    if ledger is None:
        raise RuntimeError("no instruction is executing")
    return ledger


@dataclass
class _Frame:
    program_id: bytes
    signers: frozenset
    writable: frozenset


@dataclass
class Ledger:
    rent: RentPolicy = field(default_factory=lambda: get_config().rent)
    slot: int = 0
    cells: Dict[bytes, StorageCell] = field(default_factory=dict)
    programs: Dict[bytes, Processor] = field(default_factory=dict)
    _checkpoints: List[Dict[bytes, StorageCell]] = field(default_factory=list, repr=False)
    _frames: List[_Frame] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        from . import system

        self.register_program(SYSTEM_PROGRAM_ID, system.process_instruction)

    # ------------------------------------------------------------------ cells

    def get(self, addr: bytes) -> Optional[StorageCell]:
        return self.cells.get(addr)

    def cell(self, addr: bytes) -> StorageCell:
        """Existing cell for `addr`, or a fresh default (system-owned, empty) one."""
        c = self.cells.get(addr)
        if c is None:
            c = StorageCell()
            self.cells[_addr(addr)] = c
        return c

    def set_account(
        self,
        addr: bytes,
        *,
        lamports: int = 0,
        data: bytes = b"",
        owner: bytes = SYSTEM_PROGRAM_ID,
        executable: bool = False,
    ) -> StorageCell:
        """Seed a cell directly (genesis / fixtures)."""
        c = StorageCell(lamports=int(lamports), data=bytearray(data), owner=_addr(owner), executable=executable)
        self.cells[_addr(addr)] = c
        return c

    def lamports(self, addr: bytes) -> int:
        c = self.cells.get(addr)
        return c.lamports if c else 0

    def data(self, addr: bytes) -> bytes:
        c = self.cells.get(addr)
        return bytes(c.data) if c else b""

    def owner(self, addr: bytes) -> bytes:
        c = self.cells.get(addr)
        return c.owner if c else SYSTEM_PROGRAM_ID

    def exists(self, addr: bytes) -> bool:
        c = self.cells.get(addr)
        return c is not None and not c.is_default

    def total_lamports(self, addrs: Optional[Iterable[bytes]] = None) -> int:
        if addrs is None:
            return sum(c.lamports for c in self.cells.values())
        return sum(self.lamports(a) for a in set(addrs))

    def minimum_balance(self, data_len: int) -> int:
        return self.rent.minimum_balance(data_len)

    # ------------------------------------------------------------------ programs

    def register_program(self, program_id: bytes, processor: Processor) -> None:
        self.programs[_addr(program_id)] = processor
        self.cells[program_id] = StorageCell(lamports=1, owner=LOADER_ID, executable=True)

    def warp_to_slot(self, slot: int) -> None:
        if slot < self.slot:
            raise ValueError("slot must not go backwards")
        self.slot = slot

    # ------------------------------------------------------------------ checkpoints

    def begin(self) -> None:
        self._checkpoints.append({k: c.copy() for k, c in self.cells.items()})

    def commit(self) -> None:
        if not self._checkpoints:
            raise RuntimeError("commit() without matching begin()")
        self._checkpoints.pop()

    def revert(self) -> None:
        if not self._checkpoints:
            raise RuntimeError("revert() without matching begin()")
        self.cells = self._checkpoints.pop()

    # ------------------------------------------------------------------ execution

    def execute(self, program_id: bytes, metas: Sequence[AccountMeta], data: bytes = b"") -> None:
        """
        Run one top-level instruction atomically.

        Top-level metas carry whatever signer/writable flags the transaction
        declares; signatures themselves are not modelled.
        """
        if self._frames:
            raise RuntimeError("execute() is not reentrant; use invoke() from processors")
        self.begin()
        token = _CURRENT.set(self)
        try:
            self._run(program_id, metas, bytes(data))
            self._purge_empty()
        except Exception:
            self.revert()
            raise
        else:
            self.commit()
        finally:
            _CURRENT.reset(token)

    def invoke(self, program_id: bytes, metas: Sequence[AccountMeta], data: bytes = b"") -> None:
        self.invoke_signed(program_id, metas, data, ())

    def invoke_signed(
        self,
        program_id: bytes,
        metas: Sequence[AccountMeta],
        data: bytes,
        signer_seeds: Sequence[Sequence[bytes]] = (),
    ) -> None:
        """
        Synchronous cross-program call from the running processor.

        A callee meta may be a signer only if the caller's frame has it as a
        signer or one of `signer_seeds` derives it under the caller's program id.
        A callee meta may be writable only if it is writable in the caller's frame.
        """
        if not self._frames:
            raise RuntimeError("invoke_signed() outside of an executing instruction")
        caller = self._frames[-1]
        if len(self._frames) >= MAX_INVOKE_DEPTH:
            raise fail(ErrorCode.CALL_DEPTH_EXCEEDED, depth=len(self._frames))

        derived = {create_program_address(list(seeds), caller.program_id) for seeds in signer_seeds}
        for m in metas:
            if m.is_signer and m.key not in caller.signers and m.key not in derived:
                raise fail(ErrorCode.MISSING_REQUIRED_SIGNATURE, account=m.key, callee=program_id)
            if m.is_writable and m.key not in caller.writable:
                raise fail(ErrorCode.ACCOUNT_NOT_WRITABLE, account=m.key, callee=program_id)
        self._run(program_id, metas, bytes(data))

    # ------------------------------------------------------------------ internals

    def _run(self, program_id: bytes, metas: Sequence[AccountMeta], data: bytes) -> None:
        processor = self.programs.get(program_id)
        if processor is None:
            raise fail(ErrorCode.UNKNOWN_PROGRAM, program_id=program_id)

        keys = {m.key for m in metas}
        writable = frozenset(m.key for m in metas if m.is_writable)
        signers = frozenset(m.key for m in metas if m.is_signer)
        before = {k: self.cell(k).copy() for k in keys}

        infos = [AccountInfo(self, m) for m in metas]
        self._frames.append(_Frame(program_id, signers, writable))
        try:
            processor(program_id, infos, data)
        finally:
            self._frames.pop()

        for k in keys - writable:
            if self.cell(k) != before[k]:
                raise fail(ErrorCode.ACCOUNT_NOT_WRITABLE, account=k, program_id=program_id)
        pre = sum(c.lamports for c in before.values())
        post = sum(self.cell(k).lamports for k in keys)
        if pre != post:
            raise fail(ErrorCode.UNBALANCED_INSTRUCTION, before=pre, after=post, program_id=program_id)

    def _purge_empty(self) -> None:
        """Drop zero-lamport cells at the end of a successful instruction."""
        dead = [k for k, c in self.cells.items() if c.lamports == 0 and not c.executable]
        for k in dead:
            del self.cells[k]
        if dead:
            log.debug("purged %d zero-lamport cells", len(dead))


__all__ = [
    "MAX_INVOKE_DEPTH",
    "Processor",
    "Ledger",
    "current_ledger",
]
