"""
delegation.processor.args — instruction discriminators and argument codecs.

Instruction data is `[discriminator: u64 LE][args]`; processors receive only
the args. Arguments use the borsh layout shared with on-chain clients:

  u32/u64   little-endian
  bool      one byte, 0 or 1
  Vec<T>    u32 length prefix followed by the items
  Option<T> one tag byte (0 = None, 1 = Some) followed by the value

Decoding is strict: trailing bytes, truncated input and out-of-range tags all
raise MalformedDataError(INVALID_INSTRUCTION_DATA).
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Optional, Sequence, Tuple

from delegation.config import ADDRESS_LEN, EXTERNAL_UNDELEGATE_DISCRIMINATOR
from delegation.diff import DiffSet
from delegation.errors import ErrorCode, fail

DISCRIMINATOR_SIZE = 8

#: nonce u64 + lamports u64 + allow_undelegation bool
SIZE_COMMIT_DIFF_ARGS_WITHOUT_DIFF = 8 + 8 + 1


class Discriminator(IntEnum):
    DELEGATE = 0
    COMMIT_STATE = 1
    FINALIZE = 2
    UNDELEGATE = 3
    COMMIT_STATE_FROM_BUFFER = 13
    COMMIT_DIFF = 16
    COMMIT_DIFF_FROM_BUFFER = 17

    def encode(self) -> bytes:
        return int(self).to_bytes(DISCRIMINATOR_SIZE, "little")


def split_instruction(data: bytes) -> Tuple[Discriminator, bytes]:
    """Separate `[discriminator][args]`; unknown discriminators are rejected."""
    if len(data) < DISCRIMINATOR_SIZE:
        raise fail(ErrorCode.INVALID_INSTRUCTION_DATA, reason="missing discriminator", len=len(data))
    raw = int.from_bytes(data[:DISCRIMINATOR_SIZE], "little")
    try:
        disc = Discriminator(raw)
    except ValueError as e:
        raise fail(ErrorCode.INVALID_INSTRUCTION_DATA, discriminator=raw) from e
    return disc, data[DISCRIMINATOR_SIZE:]


# ------------------------------ reader/writer -------------------------------


class _Reader:
    __slots__ = ("_buf", "_pos")

    def __init__(self, buf: bytes) -> None:
        self._buf = memoryview(buf)
        self._pos = 0

    def _take(self, n: int) -> bytes:
        end = self._pos + n
        if end > len(self._buf):
            raise fail(ErrorCode.INVALID_INSTRUCTION_DATA, reason="truncated", need=end, have=len(self._buf))
        out = bytes(self._buf[self._pos : end])
        self._pos = end
        return out

    def u8(self) -> int:
        return self._take(1)[0]

    def u32(self) -> int:
        return struct.unpack("<I", self._take(4))[0]

    def u64(self) -> int:
        return struct.unpack("<Q", self._take(8))[0]

    def bool(self) -> bool:
        b = self.u8()
        if b > 1:
            raise fail(ErrorCode.INVALID_INSTRUCTION_DATA, reason="invalid bool", value=b)
        return b == 1

    def bytes_vec(self) -> bytes:
        return self._take(self.u32())

    def pubkey(self) -> bytes:
        return self._take(ADDRESS_LEN)

    def finish(self) -> None:
        if self._pos != len(self._buf):
            raise fail(
                ErrorCode.INVALID_INSTRUCTION_DATA,
                reason="trailing bytes",
                trailing=len(self._buf) - self._pos,
            )


def _vec(b: bytes) -> bytes:
    return struct.pack("<I", len(b)) + bytes(b)


def encode_seeds(seeds: Sequence[bytes]) -> bytes:
    """borsh `Vec<Vec<u8>>`."""
    return struct.pack("<I", len(seeds)) + b"".join(_vec(s) for s in seeds)


def decode_seeds(data: bytes) -> List[bytes]:
    r = _Reader(data)
    seeds = [r.bytes_vec() for _ in range(r.u32())]
    r.finish()
    return seeds


# ------------------------------ delegate ------------------------------------


@dataclass
class DelegateArgs:
    commit_frequency_ms: int = 0
    seeds: List[bytes] = field(default_factory=list)
    validator: Optional[bytes] = None

    def to_bytes(self) -> bytes:
        out = struct.pack("<I", self.commit_frequency_ms) + encode_seeds(self.seeds)
        if self.validator is None:
            return out + b"\x00"
        if len(self.validator) != ADDRESS_LEN:
            raise ValueError("validator must be 32 bytes")
        return out + b"\x01" + bytes(self.validator)

    @classmethod
    def from_bytes(cls, data: bytes) -> "DelegateArgs":
        r = _Reader(data)
        freq = r.u32()
        seeds = [r.bytes_vec() for _ in range(r.u32())]
        tag = r.u8()
        if tag == 0:
            validator = None
        elif tag == 1:
            validator = r.pubkey()
        else:
            raise fail(ErrorCode.INVALID_INSTRUCTION_DATA, reason="invalid option tag", value=tag)
        r.finish()
        return cls(commit_frequency_ms=freq, seeds=seeds, validator=validator)


# ------------------------------ commits -------------------------------------


@dataclass
class CommitStateFromBufferArgs:
    nonce: int
    lamports: int
    allow_undelegation: bool

    def to_bytes(self) -> bytes:
        return struct.pack("<QQ?", self.nonce, self.lamports, self.allow_undelegation)

    @classmethod
    def from_bytes(cls, data: bytes) -> "CommitStateFromBufferArgs":
        r = _Reader(data)
        out = cls(nonce=r.u64(), lamports=r.u64(), allow_undelegation=r.bool())
        r.finish()
        return out


@dataclass
class CommitStateArgs:
    nonce: int
    lamports: int
    allow_undelegation: bool
    data: bytes = b""

    def to_bytes(self) -> bytes:
        return struct.pack("<QQ?", self.nonce, self.lamports, self.allow_undelegation) + _vec(self.data)

    @classmethod
    def from_bytes(cls, data: bytes) -> "CommitStateArgs":
        r = _Reader(data)
        out = cls(nonce=r.u64(), lamports=r.u64(), allow_undelegation=r.bool(), data=r.bytes_vec())
        r.finish()
        return out


@dataclass
class CommitDiffArgs:
    """
    `[diff: Vec<u8>][nonce u64][lamports u64][allow_undelegation bool]`.

    The diff length is implied by the total size; decoding parses the diff in
    place (offset 4 of the args buffer) after checking its length prefix.
    """

    diff: bytes
    nonce: int
    lamports: int
    allow_undelegation: bool

    def to_bytes(self) -> bytes:
        return _vec(self.diff) + struct.pack("<QQ?", self.nonce, self.lamports, self.allow_undelegation)


def split_commit_diff_args(data: bytes) -> Tuple[DiffSet, CommitStateFromBufferArgs]:
    """Parse CommitDiff args into the (zero-copy) DiffSet and the scalar tail."""
    if len(data) < SIZE_COMMIT_DIFF_ARGS_WITHOUT_DIFF:
        raise fail(ErrorCode.INVALID_INSTRUCTION_DATA, len=len(data))
    split = len(data) - SIZE_COMMIT_DIFF_ARGS_WITHOUT_DIFF
    tail = CommitStateFromBufferArgs.from_bytes(data[split:])
    return diffset_from_borsh_vec(data, end=split), tail


def diffset_from_borsh_vec(buf: bytes, end: Optional[int] = None) -> DiffSet:
    """
    Parse a DiffSet stored as borsh `Vec<u8>` at `buf[0:end]`: the u32 prefix must
    equal the remaining length, and the diff itself starts at offset 4.
    """
    end = len(buf) if end is None else end
    if end < 4:
        raise fail(ErrorCode.INVALID_DIFF, reason="missing vec length", len=end)
    (declared,) = struct.unpack_from("<I", buf, 0)
    if declared != end - 4:
        raise fail(ErrorCode.INVALID_DIFF, reason="vec length mismatch", declared=declared, actual=end - 4)
    return DiffSet.parse(buf, offset=4, end=end)


# ------------------------------ handback ------------------------------------


def external_undelegate_data(seeds: Sequence[bytes]) -> bytes:
    """Instruction data of the owner program's handback entry point."""
    return EXTERNAL_UNDELEGATE_DISCRIMINATOR + encode_seeds(seeds)


def parse_external_undelegate_data(data: bytes) -> List[bytes]:
    n = len(EXTERNAL_UNDELEGATE_DISCRIMINATOR)
    if data[:n] != EXTERNAL_UNDELEGATE_DISCRIMINATOR:
        raise fail(ErrorCode.INVALID_INSTRUCTION_DATA, reason="not a handback instruction")
    return decode_seeds(data[n:])


__all__ = [
    "DISCRIMINATOR_SIZE",
    "SIZE_COMMIT_DIFF_ARGS_WITHOUT_DIFF",
    "Discriminator",
    "split_instruction",
    "encode_seeds",
    "decode_seeds",
    "DelegateArgs",
    "CommitStateArgs",
    "CommitStateFromBufferArgs",
    "CommitDiffArgs",
    "split_commit_diff_args",
    "diffset_from_borsh_vec",
    "external_undelegate_data",
    "parse_external_undelegate_data",
]
