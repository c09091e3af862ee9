"""
delegation.ledger.cells — storage cells and the per-instruction account views.

A `StorageCell` is the ledger-resident state of one address: lamport balance,
raw data bytes, owning program and the executable flag. Processors never touch
cells directly; they receive `AccountInfo` views that bind an `AccountMeta`
(address + signer/writable privileges for this instruction) to the live cell.

Lamports are u64. Setting a balance outside [0, 2^64) raises an ArithmeticFault.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Union

from delegation.config import ADDRESS_LEN, SYSTEM_PROGRAM_ID
from delegation.errors import ErrorCode, fail

if TYPE_CHECKING:  # pragma: no cover
    from .runtime import Ledger

U64_MAX = (1 << 64) - 1

#: Owner recorded on executable program cells.
LOADER_ID = b"loader".ljust(ADDRESS_LEN, b"\x00")


def _addr(x: Union[bytes, bytearray], *, name: str = "address") -> bytes:
    if not isinstance(x, (bytes, bytearray)) or len(x) != ADDRESS_LEN:
        raise TypeError(f"{name} must be {ADDRESS_LEN} bytes")
    return bytes(x)


# --------------------------------------------------------------------------- #
# Cell
# --------------------------------------------------------------------------- #


@dataclass
class StorageCell:
    lamports: int = 0
    data: bytearray = field(default_factory=bytearray)
    owner: bytes = SYSTEM_PROGRAM_ID
    executable: bool = False

    def copy(self) -> "StorageCell":
        return StorageCell(
            lamports=self.lamports,
            data=bytearray(self.data),
            owner=self.owner,
            executable=self.executable,
        )

    @property
    def is_default(self) -> bool:
        """True for an address nothing has ever funded, allocated or assigned."""
        return (
            self.lamports == 0
            and not self.data
            and self.owner == SYSTEM_PROGRAM_ID
            and not self.executable
        )


# --------------------------------------------------------------------------- #
# Metas & views
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class AccountMeta:
    key: bytes
    is_signer: bool = False
    is_writable: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "key", _addr(self.key, name="AccountMeta.key"))

    @classmethod
    def writable(cls, key: bytes, signer: bool = False) -> "AccountMeta":
        return cls(key, is_signer=signer, is_writable=True)

    @classmethod
    def readonly(cls, key: bytes, signer: bool = False) -> "AccountMeta":
        return cls(key, is_signer=signer, is_writable=False)


class AccountInfo:
    """
    Live view of one account for the duration of an instruction.

    Mutations go straight to the ledger cell; the runtime checkpoints every
    cell before the instruction starts and restores them on failure.
    """

    __slots__ = ("_ledger", "meta")

    def __init__(self, ledger: "Ledger", meta: AccountMeta) -> None:
        self._ledger = ledger
        self.meta = meta

    # ---- identity & privileges ----

    @property
    def key(self) -> bytes:
        return self.meta.key

    @property
    def is_signer(self) -> bool:
        return self.meta.is_signer

    @property
    def is_writable(self) -> bool:
        return self.meta.is_writable

    @property
    def _cell(self) -> StorageCell:
        return self._ledger.cell(self.meta.key)

    # ---- balance ----

    @property
    def lamports(self) -> int:
        return self._cell.lamports

    @lamports.setter
    def lamports(self, value: int) -> None:
        if value < 0:
            raise fail(ErrorCode.INSUFFICIENT_FUNDS, account=self.key, lamports=value)
        if value > U64_MAX:
            raise fail(ErrorCode.ARITHMETIC_OVERFLOW, account=self.key, lamports=value)
        self._cell.lamports = int(value)

    # ---- data ----

    @property
    def data(self) -> bytearray:
        """Mutable data buffer. Writes land in the ledger cell."""
        return self._cell.data

    def data_len(self) -> int:
        return len(self._cell.data)

    def data_is_empty(self) -> bool:
        return not self._cell.data

    def resize(self, new_len: int) -> None:
        """Grow with zero bytes or truncate."""
        if new_len < 0:
            raise fail(ErrorCode.INVALID_ARGUMENT, new_len=new_len)
        data = self._cell.data
        if new_len < len(data):
            del data[new_len:]
        elif new_len > len(data):
            data.extend(bytes(new_len - len(data)))

    # ---- ownership ----

    @property
    def owner(self) -> bytes:
        return self._cell.owner

    def is_owned_by(self, program_id: bytes) -> bool:
        return self._cell.owner == program_id

    def assign(self, owner: bytes) -> None:
        self._cell.owner = _addr(owner, name="owner")

    @property
    def executable(self) -> bool:
        return self._cell.executable

    def __repr__(self) -> str:
        c = self._cell
        flags = ("s" if self.is_signer else "-") + ("w" if self.is_writable else "-")
        return (
            f"AccountInfo({self.key.hex()[:12]}.. {flags} lamports={c.lamports} "
            f"len={len(c.data)} owner={c.owner.hex()[:8]}..)"
        )


__all__ = [
    "U64_MAX",
    "LOADER_ID",
    "StorageCell",
    "AccountMeta",
    "AccountInfo",
]
