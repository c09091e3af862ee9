"""
delegation.processor.finalize — apply the pending commit to the delegated account.

Accounts:
    0 validator             (signer, writable)
    1 delegated_account     (writable)
    2 commit_state          (writable)
    3 commit_record         (writable)
    4 delegation_record     (writable)
    5 delegation_metadata   (writable)
    6 validator_fees_vault  (writable)
    7 system_program

Finalize instructions are usually bundled after commits, so a call with no
pending commit is a logged no-op rather than an error.
"""

from __future__ import annotations

import logging
from typing import List

from delegation.config import SYSTEM_PROGRAM_ID
from delegation.errors import DelegationError, ErrorCode, fail
from delegation.ledger import AccountInfo
from delegation.logging import op_scope
from delegation.state import CommitRecord, DelegationMetadata, DelegationRecord

from .utils import (
    close_pda,
    is_uninitialized_account,
    require_accounts,
    require_initialized_commit_record,
    require_initialized_commit_state,
    require_initialized_delegation_metadata,
    require_initialized_delegation_record,
    require_initialized_validator_fees_vault,
    require_owned_pda,
    require_program,
    require_signer,
)

log = logging.getLogger(__name__)

_OWNER_ERRORS = frozenset(
    {
        ErrorCode.COMMIT_STATE_INVALID_ACCOUNT_OWNER,
        ErrorCode.COMMIT_RECORD_INVALID_ACCOUNT_OWNER,
    }
)


def process_finalize(program_id: bytes, accounts: List[AccountInfo], data: bytes) -> None:
    (
        validator,
        delegated_account,
        commit_state_account,
        commit_record_account,
        delegation_record_account,
        delegation_metadata_account,
        validator_fees_vault,
        system_program,
    ) = require_accounts(accounts, 8)

    with op_scope("finalize", delegated_account=delegated_account.key, validator=validator.key):
        require_signer(validator, "validator")
        require_owned_pda(delegated_account, program_id, "delegated account")
        require_initialized_delegation_record(program_id, delegated_account, delegation_record_account, True)
        require_initialized_delegation_metadata(program_id, delegated_account, delegation_metadata_account, True)
        require_initialized_validator_fees_vault(program_id, validator, validator_fees_vault, True)
        require_program(system_program, SYSTEM_PROGRAM_ID, "system program")

        if not _require_pending_commit(program_id, delegated_account, commit_state_account, commit_record_account):
            log.info("no state to be finalized; skipping finalize")
            return

        metadata = DelegationMetadata.from_bytes(delegation_metadata_account.data)
        record = DelegationRecord.from_bytes(delegation_record_account.data)
        commit_record = CommitRecord.from_bytes(commit_record_account.data)

        if commit_record.account != delegated_account.key:
            raise fail(ErrorCode.INVALID_DELEGATED_ACCOUNT, account=commit_record.account)
        if commit_record.identity != validator.key:
            raise fail(ErrorCode.INVALID_REIMBURSEMENT_ACCOUNT, identity=commit_record.identity)

        settle_lamports_balance(
            delegated_account,
            commit_state_account,
            validator_fees_vault,
            record.lamports,
            commit_record.lamports,
        )

        metadata.last_update_nonce = commit_record.nonce
        metadata.write_into(delegation_metadata_account.data)

        record.lamports = delegated_account.lamports
        record.write_into(delegation_record_account.data)

        new_state = bytes(commit_state_account.data)
        delegated_account.resize(len(new_state))
        delegated_account.data[:] = new_state

        close_pda(commit_state_account, validator)
        close_pda(commit_record_account, validator)

        log.info(
            "finalized nonce %d (bytes=%d lamports=%d)",
            commit_record.nonce,
            len(new_state),
            record.lamports,
        )


def _require_pending_commit(
    program_id: bytes,
    delegated: AccountInfo,
    commit_state: AccountInfo,
    commit_record: AccountInfo,
) -> bool:
    """
    True when both commit cells are initialized; False when both are absent.
    Any other combination raises the first failing check.
    """
    errors = []
    for check, info in (
        (require_initialized_commit_state, commit_state),
        (require_initialized_commit_record, commit_record),
    ):
        try:
            check(program_id, delegated, info, True)
        except DelegationError as e:
            errors.append(e)
        else:
            errors.append(None)

    if (
        all(e is not None and e.code in _OWNER_ERRORS for e in errors)
        and is_uninitialized_account(commit_state)
        and is_uninitialized_account(commit_record)
    ):
        return False
    for e in errors:
        if e is not None:
            raise e
    return True


def settle_lamports_balance(
    delegated: AccountInfo,
    commit_state: AccountInfo,
    validator_fees_vault: AccountInfo,
    recorded_lamports: int,
    committed_lamports: int,
) -> None:
    """
    Move the committed balance change: a decrease goes from the delegated
    account to the validator fees vault, an increase is paid out of the
    collateral held by the commit-state cell.
    """
    if recorded_lamports > committed_lamports:
        source, destination = delegated, validator_fees_vault
        amount = recorded_lamports - committed_lamports
    elif committed_lamports > recorded_lamports:
        source, destination = commit_state, delegated
        amount = committed_lamports - recorded_lamports
    else:
        return

    if source.lamports < amount:
        raise fail(ErrorCode.OVERFLOW, account=source.key, have=source.lamports, need=amount)
    source.lamports = source.lamports - amount
    destination.lamports = destination.lamports + amount
    log.debug("settled %d lamports %s -> %s", amount, source.key.hex()[:12], destination.key.hex()[:12])
