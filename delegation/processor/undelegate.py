"""
delegation.processor.undelegate — hand a delegated account back to its owner.

Accounts:
     0 validator            (signer, writable)
     1 delegated_account    (writable)
     2 owner_program                     must equal the record owner
     3 undelegate_buffer    (writable)   [b"undelegate-buffer", delegated]
     4 commit_state                      must be uninitialized
     5 commit_record                     must be uninitialized
     6 delegation_record    (writable)
     7 delegation_metadata  (writable)
     8 rent_reimbursement   (writable)   must equal metadata.rent_payer
     9 protocol_fees_vault  (writable)   [b"fees-vault"]
    10 validator_fees_vault (writable)   [b"v-fees-vault", validator]
    11 system_program

An account without data is simply assigned back. Otherwise its bytes are parked
in the undelegate buffer, the account is closed, and the owner program is
invoked to recreate it at the same address; the call is then verified against
the validator's balance and the parked bytes. Record and metadata are closed to
the rent payer after the cascading fee.
"""

from __future__ import annotations

import logging
from typing import List

from delegation import pda
from delegation.config import get_config
from delegation.errors import ErrorCode, RecordKind, fail
from delegation.ledger import AccountInfo, AccountMeta, current_ledger, system
from delegation.logging import op_scope
from delegation.state import DelegationMetadata, DelegationRecord

from .args import external_undelegate_data
from .utils import (
    close_pda,
    close_pda_with_fees,
    create_pda,
    require_accounts,
    require_initialized_delegation_metadata,
    require_initialized_delegation_record,
    require_initialized_protocol_fees_vault,
    require_initialized_validator_fees_vault,
    require_owned_pda,
    require_signer,
    require_uninitialized_pda,
)

log = logging.getLogger(__name__)


def process_undelegate(program_id: bytes, accounts: List[AccountInfo], data: bytes) -> None:
    (
        validator,
        delegated_account,
        owner_program,
        undelegate_buffer,
        commit_state_account,
        commit_record_account,
        delegation_record_account,
        delegation_metadata_account,
        rent_reimbursement,
        fees_vault,
        validator_fees_vault,
        system_program,
    ) = require_accounts(accounts, 12)

    with op_scope("undelegate", delegated_account=delegated_account.key, validator=validator.key):
        require_signer(validator, "validator")
        require_owned_pda(delegated_account, program_id, "delegated account")
        require_initialized_delegation_record(program_id, delegated_account, delegation_record_account, True)
        require_initialized_delegation_metadata(program_id, delegated_account, delegation_metadata_account, True)
        require_initialized_protocol_fees_vault(program_id, fees_vault, True)
        require_initialized_validator_fees_vault(program_id, validator, validator_fees_vault, True)

        # no pending commit may be left unfinalized
        require_uninitialized_pda(
            commit_state_account,
            pda.commit_state_seeds(delegated_account.key),
            program_id,
            False,
            "commit state",
            RecordKind.COMMIT_STATE,
        )
        require_uninitialized_pda(
            commit_record_account,
            pda.commit_record_seeds(delegated_account.key),
            program_id,
            False,
            "commit record",
            RecordKind.COMMIT_RECORD,
        )

        record = DelegationRecord.from_bytes(delegation_record_account.data)
        if record.owner != owner_program.key:
            log.warning(
                "expected delegation record owner %s, got %s",
                record.owner.hex(),
                owner_program.key.hex(),
            )
            raise fail(ErrorCode.INVALID_ACCOUNT_OWNER, expected=record.owner, got=owner_program.key)

        metadata = DelegationMetadata.from_bytes(delegation_metadata_account.data)
        if not metadata.is_undelegatable:
            log.warning("delegation metadata %s is not undelegatable", delegation_metadata_account.key.hex())
            raise fail(ErrorCode.NOT_UNDELEGATABLE, metadata=delegation_metadata_account.key)

        if metadata.rent_payer != rent_reimbursement.key:
            log.warning(
                "expected rent payer %s, got %s",
                metadata.rent_payer.hex(),
                rent_reimbursement.key.hex(),
            )
            raise fail(
                ErrorCode.INVALID_REIMBURSEMENT_ADDRESS_FOR_DELEGATION_RENT,
                expected=metadata.rent_payer,
                got=rent_reimbursement.key,
            )

        if delegated_account.data_is_empty():
            delegated_account.assign(owner_program.key)
            log.info("no data; assigned back to %s", owner_program.key.hex()[:16])
        else:
            buffer_seeds = pda.undelegate_buffer_seeds(delegated_account.key)
            buffer_bump = require_uninitialized_pda(
                undelegate_buffer,
                buffer_seeds,
                program_id,
                True,
                "undelegate buffer",
                RecordKind.UNDELEGATE_BUFFER,
            )
            signer_seeds = [[*buffer_seeds, bytes([buffer_bump])]]

            create_pda(undelegate_buffer, program_id, delegated_account.data_len(), signer_seeds, validator)
            undelegate_buffer.data[:] = delegated_account.data

            _undelegate_with_handback(
                validator,
                delegated_account,
                owner_program,
                undelegate_buffer,
                system_program,
                signer_seeds,
                metadata,
            )
            close_pda(undelegate_buffer, validator)

        _cleanup(delegation_record_account, delegation_metadata_account, rent_reimbursement, fees_vault, validator_fees_vault)


def _undelegate_with_handback(
    validator: AccountInfo,
    delegated_account: AccountInfo,
    owner_program: AccountInfo,
    undelegate_buffer: AccountInfo,
    system_program: AccountInfo,
    signer_seeds,
    metadata: DelegationMetadata,
) -> None:
    """Close the account, let the owner program recreate it, then verify and refund."""
    lamports_before_close = delegated_account.lamports
    close_pda(delegated_account, validator)

    ledger = current_ledger()
    validator_before = validator.lamports
    ledger.invoke_signed(
        owner_program.key,
        [
            AccountMeta.writable(delegated_account.key),
            AccountMeta.writable(undelegate_buffer.key, signer=True),
            AccountMeta.writable(validator.key, signer=True),
            AccountMeta.readonly(system_program.key),
        ],
        external_undelegate_data(metadata.seeds),
        signer_seeds,
    )
    validator_after = validator.lamports

    min_rent = ledger.minimum_balance(delegated_account.data_len())
    if validator_before != validator_after + min_rent:
        raise fail(
            ErrorCode.INVALID_VALIDATOR_BALANCE_AFTER_CPI,
            before=validator_before,
            after=validator_after,
            min_rent=min_rent,
        )

    if bytes(delegated_account.data) != bytes(undelegate_buffer.data):
        raise fail(ErrorCode.INVALID_ACCOUNT_DATA_AFTER_CPI, account=delegated_account.key)

    extra = lamports_before_close - min_rent
    if extra < 0:
        raise fail(ErrorCode.OVERFLOW, lamports=lamports_before_close, min_rent=min_rent)
    system.transfer(validator, delegated_account, extra)
    log.info("handed back to %s (lamports=%d)", owner_program.key.hex()[:16], delegated_account.lamports)


def _cleanup(
    delegation_record_account: AccountInfo,
    delegation_metadata_account: AccountInfo,
    rent_reimbursement: AccountInfo,
    fees_vault: AccountInfo,
    validator_fees_vault: AccountInfo,
) -> None:
    pct = get_config().fees.rent_fees_percentage
    for target in (delegation_record_account, delegation_metadata_account):
        close_pda_with_fees(target, rent_reimbursement, [validator_fees_vault, fees_vault], pct)
