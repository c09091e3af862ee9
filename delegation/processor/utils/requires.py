"""
delegation.processor.utils.requires — precondition checks shared by processors.

Each `require_*` returns normally or raises a DelegationError. Checks that
concern a program-owned record take an optional `kind` (a `RecordKind`); when
given, the failure is raised from that kind's error set (invalid seeds /
invalid owner / already initialized / immutable) instead of the generic code.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from delegation import pda
from delegation.config import SYSTEM_PROGRAM_ID
from delegation.errors import DelegationError, ErrorCode, RecordKind, fail, record_error
from delegation.ledger import AccountInfo

log = logging.getLogger(__name__)


def _err(kind: Optional[RecordKind], which: str, generic: ErrorCode, **data) -> DelegationError:
    if kind is not None:
        return record_error(kind, which, **data)
    return fail(generic, **data)


def require_accounts(accounts: Sequence[AccountInfo], n: int) -> List[AccountInfo]:
    """First `n` accounts, or NOT_ENOUGH_ACCOUNT_KEYS."""
    if len(accounts) < n:
        raise fail(ErrorCode.NOT_ENOUGH_ACCOUNT_KEYS, expected=n, got=len(accounts))
    return list(accounts[:n])


def require_owned_pda(info: AccountInfo, owner: bytes, label: str, kind: Optional[RecordKind] = None) -> None:
    if not info.is_owned_by(owner):
        log.debug("invalid account owner for %s: %s", label, info.key.hex())
        raise _err(kind, "invalid_owner", ErrorCode.INVALID_ACCOUNT_OWNER, label=label, account=info.key)


def require_signer(info: AccountInfo, label: str) -> None:
    if not info.is_signer:
        log.debug("account needs to be signer %s: %s", label, info.key.hex())
        raise fail(ErrorCode.MISSING_REQUIRED_SIGNATURE, label=label, account=info.key)


def require_program(info: AccountInfo, key: bytes, label: str) -> None:
    if info.key != key:
        raise fail(ErrorCode.INCORRECT_PROGRAM_ID, label=label, account=info.key)
    if not info.executable:
        raise fail(ErrorCode.INVALID_ACCOUNT_DATA, label=label, reason="not executable")


def _require_address(
    info: AccountInfo,
    seeds: Sequence[bytes],
    program_id: bytes,
    label: str,
    kind: Optional[RecordKind],
) -> int:
    address, bump = pda.find_program_address(seeds, program_id)
    if info.key != address:
        log.debug("invalid seeds for %s: %s", label, info.key.hex())
        raise _err(kind, "invalid_seeds", ErrorCode.INVALID_SEEDS, label=label, account=info.key)
    return bump


def require_pda(
    info: AccountInfo,
    seeds: Sequence[bytes],
    program_id: bytes,
    is_writable: bool,
    label: str,
    kind: Optional[RecordKind] = None,
) -> int:
    """Address must match the derivation and the writable flag must match exactly."""
    bump = _require_address(info, seeds, program_id, label, kind)
    if info.is_writable != is_writable:
        raise _err(kind, "immutable", ErrorCode.INVALID_ACCOUNT_DATA, label=label, writable=info.is_writable)
    return bump


def is_uninitialized_account(info: AccountInfo) -> bool:
    return info.owner == SYSTEM_PROGRAM_ID and info.data_is_empty()


def require_uninitialized_account(
    info: AccountInfo, is_writable: bool, label: str, kind: Optional[RecordKind] = None
) -> None:
    if info.owner != SYSTEM_PROGRAM_ID:
        log.debug("invalid owner for %s: %s owned by %s", label, info.key.hex(), info.owner.hex())
        raise _err(kind, "invalid_owner", ErrorCode.INVALID_ACCOUNT_OWNER, label=label, account=info.key)
    if not info.data_is_empty():
        log.debug("account needs to be uninitialized %s: %s", label, info.key.hex())
        raise _err(
            kind, "already_initialized", ErrorCode.ACCOUNT_ALREADY_INITIALIZED, label=label, account=info.key
        )
    if is_writable and not info.is_writable:
        raise _err(kind, "immutable", ErrorCode.INVALID_ACCOUNT_DATA, label=label, account=info.key)


def require_uninitialized_pda(
    info: AccountInfo,
    seeds: Sequence[bytes],
    program_id: bytes,
    is_writable: bool,
    label: str,
    kind: Optional[RecordKind] = None,
) -> int:
    bump = _require_address(info, seeds, program_id, label, kind)
    require_uninitialized_account(info, is_writable, label, kind)
    return bump


def require_initialized_pda(
    info: AccountInfo,
    seeds: Sequence[bytes],
    program_id: bytes,
    is_writable: bool,
    label: str,
    kind: Optional[RecordKind] = None,
) -> int:
    bump = _require_address(info, seeds, program_id, label, kind)
    require_owned_pda(info, program_id, label, kind)
    if is_writable and not info.is_writable:
        raise _err(kind, "immutable", ErrorCode.INVALID_ACCOUNT_DATA, label=label, account=info.key)
    return bump


# -------- named cells -------------------------------------------------------


def require_initialized_delegation_record(
    program_id: bytes, delegated: AccountInfo, record: AccountInfo, is_writable: bool
) -> None:
    require_initialized_pda(
        record,
        pda.delegation_record_seeds(delegated.key),
        program_id,
        is_writable,
        "delegation record",
        RecordKind.DELEGATION_RECORD,
    )


def require_initialized_delegation_metadata(
    program_id: bytes, delegated: AccountInfo, metadata: AccountInfo, is_writable: bool
) -> None:
    require_initialized_pda(
        metadata,
        pda.delegation_metadata_seeds(delegated.key),
        program_id,
        is_writable,
        "delegation metadata",
        RecordKind.DELEGATION_METADATA,
    )


def require_initialized_commit_state(
    program_id: bytes, delegated: AccountInfo, commit_state: AccountInfo, is_writable: bool
) -> None:
    require_initialized_pda(
        commit_state,
        pda.commit_state_seeds(delegated.key),
        program_id,
        is_writable,
        "commit state",
        RecordKind.COMMIT_STATE,
    )


def require_initialized_commit_record(
    program_id: bytes, delegated: AccountInfo, commit_record: AccountInfo, is_writable: bool
) -> None:
    require_initialized_pda(
        commit_record,
        pda.commit_record_seeds(delegated.key),
        program_id,
        is_writable,
        "commit record",
        RecordKind.COMMIT_RECORD,
    )


def require_initialized_protocol_fees_vault(program_id: bytes, fees_vault: AccountInfo, is_writable: bool) -> None:
    require_initialized_pda(fees_vault, pda.fees_vault_seeds(), program_id, is_writable, "protocol fees vault")


def require_initialized_validator_fees_vault(
    program_id: bytes, validator: AccountInfo, vault: AccountInfo, is_writable: bool
) -> None:
    expected = pda.validator_fees_vault_pda(validator.key, program_id)
    if vault.key != expected:
        log.debug("invalid validator fees vault: expected %s got %s", expected.hex(), vault.key.hex())
        raise fail(ErrorCode.INVALID_AUTHORITY, label="validator fees vault", account=vault.key)
    require_initialized_pda(
        vault, pda.validator_fees_vault_seeds(validator.key), program_id, is_writable, "validator fees vault"
    )


def require_program_config(program_id: bytes, program_config: AccountInfo, program: bytes, is_writable: bool) -> bool:
    """
    Check the program-config address for `program`; returns True when the cell
    exists (i.e. is no longer system-owned).
    """
    expected = pda.program_config_pda(program, program_id)
    if program_config.key != expected:
        log.debug("invalid program config: expected %s got %s", expected.hex(), program_config.key.hex())
        raise fail(ErrorCode.INVALID_AUTHORITY, label="program config", account=program_config.key)
    require_pda(program_config, pda.program_config_seeds(program), program_id, is_writable, "program config")
    return program_config.owner != SYSTEM_PROGRAM_ID


__all__ = [
    "require_accounts",
    "require_owned_pda",
    "require_signer",
    "require_program",
    "require_pda",
    "is_uninitialized_account",
    "require_uninitialized_account",
    "require_uninitialized_pda",
    "require_initialized_pda",
    "require_initialized_delegation_record",
    "require_initialized_delegation_metadata",
    "require_initialized_commit_state",
    "require_initialized_commit_record",
    "require_initialized_protocol_fees_vault",
    "require_initialized_validator_fees_vault",
    "require_program_config",
]
