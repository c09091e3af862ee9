"""
delegation.ledger.system — the system program of the ledger model.

Instructions (u32 LE tag followed by fixed fields):

    0  CreateAccount {lamports: u64, space: u64, owner: [u8; 32]}   [from (s,w), to (s,w)]
    1  Assign        {owner: [u8; 32]}                              [account (s,w)]
    2  Transfer      {lamports: u64}                                [from (s,w), to (w)]
    8  Allocate      {space: u64}                                   [account (s,w)]

Helpers (`create_account`, `transfer`, `allocate`, `assign`) build the
instruction and invoke it from the running processor, optionally signing for
derived addresses with `signer_seeds`.
"""

from __future__ import annotations

import struct
from typing import List, Sequence

from delegation.config import ADDRESS_LEN, SYSTEM_PROGRAM_ID
from delegation.errors import ErrorCode, fail

from .cells import AccountInfo, AccountMeta
from .runtime import current_ledger

CREATE_ACCOUNT = 0
ASSIGN = 1
TRANSFER = 2
ALLOCATE = 8

#: Largest data size an account may be allocated with.
MAX_PERMITTED_DATA_LENGTH = 10 * 1024 * 1024

_TAG = struct.Struct("<I")
_CREATE = struct.Struct("<IQQ32s")
_ASSIGN = struct.Struct("<I32s")
_TRANSFER = struct.Struct("<IQ")
_ALLOCATE = struct.Struct("<IQ")

SignerSeeds = Sequence[Sequence[bytes]]


# --------------------------------------------------------------------------- #
# Processor
# --------------------------------------------------------------------------- #


def process_instruction(program_id: bytes, accounts: List[AccountInfo], data: bytes) -> None:
    if len(data) < _TAG.size:
        raise fail(ErrorCode.INVALID_INSTRUCTION_DATA, len=len(data))
    (tag,) = _TAG.unpack_from(data)
    try:
        if tag == CREATE_ACCOUNT:
            _, lamports, space, owner = _CREATE.unpack(data)
            _need(accounts, 2)
            _create_account(accounts[0], accounts[1], lamports, space, owner)
        elif tag == ASSIGN:
            _, owner = _ASSIGN.unpack(data)
            _need(accounts, 1)
            _assign(accounts[0], owner)
        elif tag == TRANSFER:
            _, lamports = _TRANSFER.unpack(data)
            _need(accounts, 2)
            _transfer(accounts[0], accounts[1], lamports)
        elif tag == ALLOCATE:
            _, space = _ALLOCATE.unpack(data)
            _need(accounts, 1)
            _allocate(accounts[0], space)
        else:
            raise fail(ErrorCode.INVALID_INSTRUCTION_DATA, tag=tag)
    except struct.error as e:
        raise fail(ErrorCode.INVALID_INSTRUCTION_DATA, tag=tag, reason=str(e)) from e


def _need(accounts: List[AccountInfo], n: int) -> None:
    if len(accounts) < n:
        raise fail(ErrorCode.NOT_ENOUGH_ACCOUNT_KEYS, expected=n, got=len(accounts))


def _require_signer(info: AccountInfo) -> None:
    if not info.is_signer:
        raise fail(ErrorCode.MISSING_REQUIRED_SIGNATURE, account=info.key)


def _allocate(info: AccountInfo, space: int) -> None:
    _require_signer(info)
    if not info.data_is_empty() or info.owner != SYSTEM_PROGRAM_ID:
        raise fail(ErrorCode.ACCOUNT_ALREADY_INITIALIZED, account=info.key)
    if space > MAX_PERMITTED_DATA_LENGTH:
        raise fail(ErrorCode.INVALID_ARGUMENT, space=space)
    info.resize(space)


def _assign(info: AccountInfo, owner: bytes) -> None:
    if info.owner == owner:
        return
    _require_signer(info)
    if info.owner != SYSTEM_PROGRAM_ID:
        raise fail(ErrorCode.INVALID_ACCOUNT_OWNER, account=info.key)
    info.assign(owner)


def _transfer(src: AccountInfo, dst: AccountInfo, lamports: int) -> None:
    _require_signer(src)
    if not src.data_is_empty() or src.owner != SYSTEM_PROGRAM_ID:
        raise fail(ErrorCode.INVALID_ARGUMENT, reason="from must not carry data", account=src.key)
    if src.lamports < lamports:
        raise fail(ErrorCode.INSUFFICIENT_FUNDS, account=src.key, have=src.lamports, need=lamports)
    src.lamports -= lamports
    dst.lamports += lamports


def _create_account(src: AccountInfo, dst: AccountInfo, lamports: int, space: int, owner: bytes) -> None:
    _require_signer(dst)
    if dst.lamports > 0 or not dst.data_is_empty() or dst.owner != SYSTEM_PROGRAM_ID:
        raise fail(ErrorCode.ACCOUNT_ALREADY_INITIALIZED, account=dst.key)
    _allocate(dst, space)
    _assign(dst, owner)
    _transfer(src, dst, lamports)


# --------------------------------------------------------------------------- #
# Instruction builders & invoke helpers
# --------------------------------------------------------------------------- #


def create_account_data(lamports: int, space: int, owner: bytes) -> bytes:
    if len(owner) != ADDRESS_LEN:
        raise ValueError("owner must be 32 bytes")
    return _CREATE.pack(CREATE_ACCOUNT, lamports, space, owner)


def assign_data(owner: bytes) -> bytes:
    return _ASSIGN.pack(ASSIGN, owner)


def transfer_data(lamports: int) -> bytes:
    return _TRANSFER.pack(TRANSFER, lamports)


def allocate_data(space: int) -> bytes:
    return _ALLOCATE.pack(ALLOCATE, space)


def create_account(
    payer: AccountInfo,
    target: AccountInfo,
    lamports: int,
    space: int,
    owner: bytes,
    signer_seeds: SignerSeeds = (),
) -> None:
    current_ledger().invoke_signed(
        SYSTEM_PROGRAM_ID,
        [AccountMeta.writable(payer.key, signer=True), AccountMeta.writable(target.key, signer=True)],
        create_account_data(lamports, space, owner),
        signer_seeds,
    )


def transfer(src: AccountInfo, dst: AccountInfo, lamports: int, signer_seeds: SignerSeeds = ()) -> None:
    current_ledger().invoke_signed(
        SYSTEM_PROGRAM_ID,
        [AccountMeta.writable(src.key, signer=True), AccountMeta.writable(dst.key)],
        transfer_data(lamports),
        signer_seeds,
    )


def allocate(target: AccountInfo, space: int, signer_seeds: SignerSeeds = ()) -> None:
    current_ledger().invoke_signed(
        SYSTEM_PROGRAM_ID,
        [AccountMeta.writable(target.key, signer=True)],
        allocate_data(space),
        signer_seeds,
    )


def assign(target: AccountInfo, owner: bytes, signer_seeds: SignerSeeds = ()) -> None:
    current_ledger().invoke_signed(
        SYSTEM_PROGRAM_ID,
        [AccountMeta.writable(target.key, signer=True)],
        assign_data(owner),
        signer_seeds,
    )


__all__ = [
    "CREATE_ACCOUNT",
    "ASSIGN",
    "TRANSFER",
    "ALLOCATE",
    "MAX_PERMITTED_DATA_LENGTH",
    "process_instruction",
    "create_account_data",
    "assign_data",
    "transfer_data",
    "allocate_data",
    "create_account",
    "transfer",
    "allocate",
    "assign",
]
