"""
delegation.processor.delegate — take custody of an account.

Accounts:
    0 payer                 (signer, writable)  funds the record cells
    1 delegated_account     (signer, writable)  already assigned to this program
    2 owner_program                             program that owned the account
    3 delegate_buffer       (writable)          [b"buffer", delegated] under owner_program
    4 delegation_record     (writable)          uninitialized
    5 delegation_metadata   (writable)          uninitialized
    6 system_program

Args: DelegateArgs {commit_frequency_ms, seeds, validator}.
"""

from __future__ import annotations

import logging
from typing import List

from delegation import pda
from delegation.config import SYSTEM_PROGRAM_ID, get_config
from delegation.curve import is_on_curve
from delegation.errors import ErrorCode, RecordKind, fail
from delegation.ledger import AccountInfo, current_ledger
from delegation.logging import op_scope
from delegation.state import DelegationMetadata, DelegationRecord

from .args import DelegateArgs
from .utils import (
    create_pda,
    require_accounts,
    require_owned_pda,
    require_pda,
    require_signer,
    require_uninitialized_pda,
)

log = logging.getLogger(__name__)

#: Seed components accepted when validating a derived delegated address.
MIN_DELEGATED_SEEDS = 1
MAX_DELEGATED_SEEDS = 4


def process_delegate(program_id: bytes, accounts: List[AccountInfo], data: bytes) -> None:
    (
        payer,
        delegated_account,
        owner_program,
        delegate_buffer,
        delegation_record_account,
        delegation_metadata_account,
        _system_program,
    ) = require_accounts(accounts, 7)

    with op_scope("delegate", delegated_account=delegated_account.key):
        require_owned_pda(delegated_account, program_id, "delegated account")
        require_signer(payer, "payer")
        require_signer(delegated_account, "delegated account")

        require_pda(
            delegate_buffer,
            pda.delegate_buffer_seeds(delegated_account.key),
            owner_program.key,
            True,
            "delegate buffer",
        )
        record_bump = require_uninitialized_pda(
            delegation_record_account,
            pda.delegation_record_seeds(delegated_account.key),
            program_id,
            True,
            "delegation record",
            RecordKind.DELEGATION_RECORD,
        )
        metadata_bump = require_uninitialized_pda(
            delegation_metadata_account,
            pda.delegation_metadata_seeds(delegated_account.key),
            program_id,
            True,
            "delegation metadata",
            RecordKind.DELEGATION_METADATA,
        )

        args = DelegateArgs.from_bytes(data)

        # Derived accounts must prove their address; escrow accounts (owned by the
        # system program before delegation) are derived under this program.
        if not is_on_curve(delegated_account.key):
            seeds_program = program_id if owner_program.key == SYSTEM_PROGRAM_ID else owner_program.key
            # an off-curve key always has seeds, so an empty list is out of range too
            if not MIN_DELEGATED_SEEDS <= len(args.seeds) <= MAX_DELEGATED_SEEDS:
                raise fail(ErrorCode.TOO_MANY_SEEDS, seeds=len(args.seeds))
            derived, _ = pda.find_program_address(args.seeds, seeds_program)
            if derived != delegated_account.key:
                log.debug("expected delegated PDA %s, got %s", derived.hex(), delegated_account.key.hex())
                raise fail(ErrorCode.INVALID_SEEDS, label="delegated account", expected=derived)

        ledger = current_ledger()
        create_pda(
            delegation_record_account,
            program_id,
            DelegationRecord.size(),
            [[*pda.delegation_record_seeds(delegated_account.key), bytes([record_bump])]],
            payer,
        )
        record = DelegationRecord(
            owner=owner_program.key,
            authority=args.validator if args.validator is not None else get_config().identity.default_validator,
            commit_frequency_ms=args.commit_frequency_ms,
            delegation_slot=ledger.slot,
            lamports=delegated_account.lamports,
        )
        record.write_into(delegation_record_account.data)

        metadata = DelegationMetadata(
            seeds=list(args.seeds),
            last_update_nonce=0,
            is_undelegatable=False,
            rent_payer=payer.key,
        )
        create_pda(
            delegation_metadata_account,
            program_id,
            metadata.serialized_size(),
            [[*pda.delegation_metadata_seeds(delegated_account.key), bytes([metadata_bump])]],
            payer,
        )
        metadata.write_into(delegation_metadata_account.data)

        if not delegate_buffer.data_is_empty():
            if delegate_buffer.data_len() != delegated_account.data_len():
                raise fail(
                    ErrorCode.INVALID_ACCOUNT_DATA,
                    label="delegate buffer",
                    buffer_len=delegate_buffer.data_len(),
                    account_len=delegated_account.data_len(),
                )
            delegated_account.data[:] = delegate_buffer.data

        log.info(
            "delegated to authority %s (slot=%d lamports=%d)",
            record.authority.hex()[:16],
            record.delegation_slot,
            record.lamports,
        )
