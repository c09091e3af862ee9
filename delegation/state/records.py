"""
delegation.state.records — on-ledger record layouts.

Every record starts with an 8-byte little-endian discriminator:

    DelegationRecord    100   fixed, 96 bytes
    CommitRecord        101   fixed, 88 bytes
    DelegationMetadata  102   fixed header + canonical CBOR list of seeds
    ProgramConfig       103   canonical CBOR map

Fixed layouts use `struct`; variable parts use `cbor2` with `canonical=True` so
the same value always yields the same bytes. A cell's size never changes after
creation: DelegationMetadata keeps its mutable fields (nonce, undelegatable
flag) in the fixed header so rewriting them in place is always size-stable.

Decoding a buffer whose discriminator or length does not match raises
MalformedDataError(INVALID_ACCOUNT_DATA).
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, List, Sequence, Tuple, Type, TypeVar, Union

import cbor2

from delegation.errors import ErrorCode, fail

BytesLike = Union[bytes, bytearray, memoryview]

DISCRIMINATOR_LEN = 8


class AccountDiscriminator(IntEnum):
    DELEGATION_RECORD = 100
    COMMIT_RECORD = 101
    DELEGATION_METADATA = 102
    PROGRAM_CONFIG = 103

    def to_bytes8(self) -> bytes:
        return int(self).to_bytes(DISCRIMINATOR_LEN, "little")


# ------------------------------ helpers -------------------------------------


def _check_discriminator(data: BytesLike, expected: AccountDiscriminator) -> None:
    if len(data) < DISCRIMINATOR_LEN:
        raise fail(ErrorCode.INVALID_ACCOUNT_DATA, reason="too short", len=len(data))
    got = int.from_bytes(bytes(data[:DISCRIMINATOR_LEN]), "little")
    if got != int(expected):
        raise fail(
            ErrorCode.INVALID_ACCOUNT_DATA,
            reason="discriminator mismatch",
            expected=int(expected),
            got=got,
        )


def _cbor_dumps(obj: Any) -> bytes:
    return cbor2.dumps(obj, canonical=True)


def _cbor_loads(data: BytesLike) -> Any:
    try:
        return cbor2.loads(bytes(data))
    except (cbor2.CBORDecodeError, ValueError, TypeError) as e:
        raise fail(ErrorCode.INVALID_ACCOUNT_DATA, reason=f"cbor: {e}") from e


R = TypeVar("R", bound="_FixedRecord")


class _FixedRecord:
    """Shared encode/decode for struct-backed records."""

    DISCRIMINATOR: AccountDiscriminator
    _LAYOUT: struct.Struct

    def _values(self) -> Tuple[Any, ...]:
        raise NotImplementedError

    @classmethod
    def size(cls) -> int:
        return DISCRIMINATOR_LEN + cls._LAYOUT.size

    def to_bytes(self) -> bytes:
        return self.DISCRIMINATOR.to_bytes8() + self._LAYOUT.pack(*self._values())

    def write_into(self, buf: bytearray) -> None:
        """Overwrite `buf` in place; its length must equal `size()`."""
        if len(buf) != self.size():
            raise fail(ErrorCode.INVALID_ACCOUNT_DATA, expected=self.size(), got=len(buf))
        buf[:] = self.to_bytes()

    @classmethod
    def from_bytes(cls: Type[R], data: BytesLike) -> R:
        _check_discriminator(data, cls.DISCRIMINATOR)
        if len(data) != cls.size():
            raise fail(ErrorCode.INVALID_ACCOUNT_DATA, expected=cls.size(), got=len(data))
        return cls(*cls._LAYOUT.unpack_from(bytes(data), DISCRIMINATOR_LEN))


# ------------------------------ records -------------------------------------


@dataclass
class DelegationRecord(_FixedRecord):
    """
    Custody record created at Delegate.

    owner:               program that owned the account before delegation
    authority:           validator allowed to commit (all-zero = any validator)
    commit_frequency_ms: advisory commit cadence
    delegation_slot:     slot at which the delegation happened
    lamports:            delegated balance; refreshed at every Finalize
    """

    owner: bytes
    authority: bytes
    commit_frequency_ms: int
    delegation_slot: int
    lamports: int

    DISCRIMINATOR = AccountDiscriminator.DELEGATION_RECORD
    _LAYOUT = struct.Struct("<32s32sQQQ")

    def _values(self) -> Tuple[Any, ...]:
        return (
            self.owner,
            self.authority,
            self.commit_frequency_ms,
            self.delegation_slot,
            self.lamports,
        )


@dataclass
class CommitRecord(_FixedRecord):
    """Pending commit: who committed, for which account, at which nonce and balance."""

    identity: bytes
    account: bytes
    nonce: int
    lamports: int

    DISCRIMINATOR = AccountDiscriminator.COMMIT_RECORD
    _LAYOUT = struct.Struct("<32s32sQQ")

    def _values(self) -> Tuple[Any, ...]:
        return (self.identity, self.account, self.nonce, self.lamports)


_METADATA_HEADER = struct.Struct("<Q?32s")


@dataclass
class DelegationMetadata:
    """
    Mutable delegation state.

    Layout: discriminator | last_update_nonce u64 | is_undelegatable u8 |
    rent_payer [32] | canonical CBOR list of seeds.
    """

    seeds: List[bytes]
    last_update_nonce: int
    is_undelegatable: bool
    rent_payer: bytes

    DISCRIMINATOR = AccountDiscriminator.DELEGATION_METADATA

    def to_bytes(self) -> bytes:
        header = _METADATA_HEADER.pack(self.last_update_nonce, self.is_undelegatable, self.rent_payer)
        return self.DISCRIMINATOR.to_bytes8() + header + _cbor_dumps([bytes(s) for s in self.seeds])

    def serialized_size(self) -> int:
        return len(self.to_bytes())

    def write_into(self, buf: bytearray) -> None:
        out = self.to_bytes()
        if len(buf) != len(out):
            raise fail(ErrorCode.INVALID_ACCOUNT_DATA, expected=len(out), got=len(buf))
        buf[:] = out

    @classmethod
    def from_bytes(cls, data: BytesLike) -> "DelegationMetadata":
        _check_discriminator(data, cls.DISCRIMINATOR)
        fixed = DISCRIMINATOR_LEN + _METADATA_HEADER.size
        if len(data) <= fixed:
            raise fail(ErrorCode.INVALID_ACCOUNT_DATA, reason="metadata too short", len=len(data))
        nonce, undelegatable, rent_payer = _METADATA_HEADER.unpack_from(bytes(data), DISCRIMINATOR_LEN)
        seeds = _cbor_loads(data[fixed:])
        if not isinstance(seeds, list) or not all(isinstance(s, bytes) for s in seeds):
            raise fail(ErrorCode.INVALID_ACCOUNT_DATA, reason="seeds must be a list of bytes")
        return cls(
            seeds=seeds,
            last_update_nonce=nonce,
            is_undelegatable=undelegatable,
            rent_payer=rent_payer,
        )


@dataclass
class ProgramConfig:
    """Per-program validator allow-list, written by the program-config subsystem."""

    approved_validators: List[bytes] = field(default_factory=list)

    DISCRIMINATOR = AccountDiscriminator.PROGRAM_CONFIG

    def to_bytes(self) -> bytes:
        body = {"approvedValidators": sorted(bytes(v) for v in self.approved_validators)}
        return self.DISCRIMINATOR.to_bytes8() + _cbor_dumps(body)

    def is_approved(self, validator: bytes) -> bool:
        return validator in self.approved_validators

    @classmethod
    def from_bytes(cls, data: BytesLike) -> "ProgramConfig":
        _check_discriminator(data, cls.DISCRIMINATOR)
        body = _cbor_loads(data[DISCRIMINATOR_LEN:])
        if not isinstance(body, dict):
            raise fail(ErrorCode.INVALID_ACCOUNT_DATA, reason="program config must be a map")
        validators = body.get("approvedValidators", [])
        if not isinstance(validators, list) or not all(isinstance(v, bytes) for v in validators):
            raise fail(ErrorCode.INVALID_ACCOUNT_DATA, reason="approvedValidators must be bytes[]")
        return cls(approved_validators=validators)


def metadata_size_for(seeds: Sequence[bytes]) -> int:
    """Bytes a DelegationMetadata with `seeds` occupies (independent of nonce/flag)."""
    return DelegationMetadata(list(seeds), 0, False, bytes(32)).serialized_size()


__all__ = [
    "DISCRIMINATOR_LEN",
    "AccountDiscriminator",
    "DelegationRecord",
    "CommitRecord",
    "DelegationMetadata",
    "ProgramConfig",
    "metadata_size_for",
]
