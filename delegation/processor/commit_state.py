"""
delegation.processor.commit_state — accept a new state for a delegated account.

Accounts (CommitState / CommitDiff):
    0 validator             (signer, writable)
    1 delegated_account
    2 commit_state          (writable)  [b"state-diff", delegated], uninitialized
    3 commit_record         (writable)  [b"commit-state-record", delegated], uninitialized
    4 delegation_record
    5 delegation_metadata   (writable)
    6 validator_fees_vault              [b"v-fees-vault", validator]
    7 program_config        (read-only) [b"p-conf", record.owner]; may not exist
    8 system_program

The *FromBuffer variants insert a `state_buffer` account at index 6 and read
the new state (or diff) from it.

All four variants funnel into `commit_state_internal`, which enforces ordering
(nonce = last + 1), the undelegation latch, authority, solvency and the
allow-list, then materialises the CommitState and CommitRecord cells.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

from delegation import pda
from delegation.config import get_config
from delegation.errors import ErrorCode, RecordKind, fail
from delegation.ledger import AccountInfo, system
from delegation.logging import op_scope
from delegation.state import CommitRecord, DelegationMetadata, DelegationRecord, ProgramConfig

from .args import CommitStateArgs, CommitStateFromBufferArgs
from .utils import (
    create_pda,
    require_accounts,
    require_initialized_delegation_metadata,
    require_initialized_delegation_record,
    require_initialized_validator_fees_vault,
    require_owned_pda,
    require_program_config,
    require_signer,
    require_uninitialized_pda,
)

log = logging.getLogger(__name__)


@dataclass
class CommitStateInternalArgs:
    program_id: bytes
    commit_state_bytes: bytes
    commit_record_lamports: int
    commit_record_nonce: int
    allow_undelegation: bool
    validator: AccountInfo
    delegated_account: AccountInfo
    commit_state_account: AccountInfo
    commit_record_account: AccountInfo
    delegation_record_account: AccountInfo
    delegation_metadata_account: AccountInfo
    validator_fees_vault: AccountInfo
    program_config_account: AccountInfo


def process_commit_state(program_id: bytes, accounts: List[AccountInfo], data: bytes) -> None:
    args = CommitStateArgs.from_bytes(data)
    (
        validator,
        delegated_account,
        commit_state_account,
        commit_record_account,
        delegation_record_account,
        delegation_metadata_account,
        validator_fees_vault,
        program_config_account,
        _system_program,
    ) = require_accounts(accounts, 9)

    commit_state_internal(
        CommitStateInternalArgs(
            program_id=program_id,
            commit_state_bytes=args.data,
            commit_record_lamports=args.lamports,
            commit_record_nonce=args.nonce,
            allow_undelegation=args.allow_undelegation,
            validator=validator,
            delegated_account=delegated_account,
            commit_state_account=commit_state_account,
            commit_record_account=commit_record_account,
            delegation_record_account=delegation_record_account,
            delegation_metadata_account=delegation_metadata_account,
            validator_fees_vault=validator_fees_vault,
            program_config_account=program_config_account,
        ),
        op="commit_state",
    )


def process_commit_state_from_buffer(program_id: bytes, accounts: List[AccountInfo], data: bytes) -> None:
    args = CommitStateFromBufferArgs.from_bytes(data)
    (
        validator,
        delegated_account,
        commit_state_account,
        commit_record_account,
        delegation_record_account,
        delegation_metadata_account,
        state_buffer,
        validator_fees_vault,
        program_config_account,
        _system_program,
    ) = require_accounts(accounts, 10)

    commit_state_internal(
        CommitStateInternalArgs(
            program_id=program_id,
            commit_state_bytes=bytes(state_buffer.data),
            commit_record_lamports=args.lamports,
            commit_record_nonce=args.nonce,
            allow_undelegation=args.allow_undelegation,
            validator=validator,
            delegated_account=delegated_account,
            commit_state_account=commit_state_account,
            commit_record_account=commit_record_account,
            delegation_record_account=delegation_record_account,
            delegation_metadata_account=delegation_metadata_account,
            validator_fees_vault=validator_fees_vault,
            program_config_account=program_config_account,
        ),
        op="commit_state_from_buffer",
    )


def commit_state_internal(args: CommitStateInternalArgs, op: str = "commit_state") -> None:
    program_id = args.program_id
    delegated = args.delegated_account
    validator = args.validator

    with op_scope(op, delegated_account=delegated.key, validator=validator.key, nonce=args.commit_record_nonce):
        require_owned_pda(delegated, program_id, "delegated account")
        require_signer(validator, "validator account")
        require_initialized_delegation_record(program_id, delegated, args.delegation_record_account, False)
        require_initialized_delegation_metadata(program_id, delegated, args.delegation_metadata_account, True)
        require_initialized_validator_fees_vault(program_id, validator, args.validator_fees_vault, False)

        metadata = DelegationMetadata.from_bytes(args.delegation_metadata_account.data)

        # sequential commits only, so the history of updates is preserved
        if args.commit_record_nonce != metadata.last_update_nonce + 1:
            log.warning(
                "nonce %d is incorrect, previous nonce is %d; rejecting commit",
                args.commit_record_nonce,
                metadata.last_update_nonce,
            )
            raise fail(
                ErrorCode.NONCE_OUT_OF_ORDER,
                nonce=args.commit_record_nonce,
                last_update_nonce=metadata.last_update_nonce,
            )

        if metadata.is_undelegatable:
            log.warning("delegation is already marked undelegatable; rejecting commit")
            raise fail(ErrorCode.ALREADY_UNDELEGATED, metadata=args.delegation_metadata_account.key)

        metadata.is_undelegatable = args.allow_undelegation
        metadata.write_into(args.delegation_metadata_account.data)

        record = DelegationRecord.from_bytes(args.delegation_record_account.data)

        if record.authority != validator.key and record.authority != get_config().identity.any_validator:
            log.warning("validator %s is not the delegation authority", validator.key.hex()[:16])
            raise fail(ErrorCode.INVALID_AUTHORITY, validator=validator.key, authority=record.authority)

        if delegated.lamports < record.lamports:
            raise fail(
                ErrorCode.INVALID_DELEGATED_STATE,
                lamports=delegated.lamports,
                recorded=record.lamports,
            )

        # The validator posts any balance increase up front as collateral; a
        # decrease is settled from the delegated account at finalize time.
        if args.commit_record_lamports > record.lamports:
            system.transfer(validator, args.commit_state_account, args.commit_record_lamports - record.lamports)

        if require_program_config(program_id, args.program_config_account, record.owner, False):
            config = ProgramConfig.from_bytes(args.program_config_account.data)
            if not config.is_approved(validator.key):
                log.warning("validator %s is not allow-listed for the program", validator.key.hex()[:16])
                raise fail(ErrorCode.INVALID_WHITELIST_PROGRAM_CONFIG, validator=validator.key)

        commit_state_bump = require_uninitialized_pda(
            args.commit_state_account,
            pda.commit_state_seeds(delegated.key),
            program_id,
            True,
            "commit state account",
            RecordKind.COMMIT_STATE,
        )
        commit_record_bump = require_uninitialized_pda(
            args.commit_record_account,
            pda.commit_record_seeds(delegated.key),
            program_id,
            True,
            "commit record",
            RecordKind.COMMIT_RECORD,
        )

        create_pda(
            args.commit_state_account,
            program_id,
            len(args.commit_state_bytes),
            [[*pda.commit_state_seeds(delegated.key), bytes([commit_state_bump])]],
            validator,
        )
        create_pda(
            args.commit_record_account,
            program_id,
            CommitRecord.size(),
            [[*pda.commit_record_seeds(delegated.key), bytes([commit_record_bump])]],
            validator,
        )

        CommitRecord(
            identity=validator.key,
            account=delegated.key,
            nonce=args.commit_record_nonce,
            lamports=args.commit_record_lamports,
        ).write_into(args.commit_record_account.data)
        args.commit_state_account.data[:] = args.commit_state_bytes

        log.info(
            "commit accepted (bytes=%d lamports=%d undelegate=%s)",
            len(args.commit_state_bytes),
            args.commit_record_lamports,
            args.allow_undelegation,
        )
