"""
delegation.processor.commit_diff — commit a state expressed as a diff against
the delegated account's current bytes.

CommitDiff args are `[diff: Vec<u8>][nonce u64][lamports u64][allow_undelegation bool]`;
CommitDiffFromBuffer takes the 17-byte tail as args and reads the encoded diff
from the `state_buffer` account. Both reconstruct the new state with
`apply_diff_copy` and then follow the regular commit path.
"""

from __future__ import annotations

import logging
from typing import List

from delegation.diff import DiffSet, apply_diff_copy
from delegation.ledger import AccountInfo

from .args import CommitStateFromBufferArgs, split_commit_diff_args
from .commit_state import CommitStateInternalArgs, commit_state_internal
from .utils import require_accounts

log = logging.getLogger(__name__)


def process_commit_diff(program_id: bytes, accounts: List[AccountInfo], data: bytes) -> None:
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

    diffset, args = split_commit_diff_args(data)
    _commit_diffset(
        program_id,
        diffset,
        args,
        validator,
        delegated_account,
        commit_state_account,
        commit_record_account,
        delegation_record_account,
        delegation_metadata_account,
        validator_fees_vault,
        program_config_account,
        op="commit_diff",
    )


def process_commit_diff_from_buffer(program_id: bytes, accounts: List[AccountInfo], data: bytes) -> None:
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

    args = CommitStateFromBufferArgs.from_bytes(data)
    # snapshot: the buffer cell may be touched by later system calls
    diffset = DiffSet.parse(bytes(state_buffer.data))
    _commit_diffset(
        program_id,
        diffset,
        args,
        validator,
        delegated_account,
        commit_state_account,
        commit_record_account,
        delegation_record_account,
        delegation_metadata_account,
        validator_fees_vault,
        program_config_account,
        op="commit_diff_from_buffer",
    )


def _commit_diffset(
    program_id: bytes,
    diffset: DiffSet,
    args: CommitStateFromBufferArgs,
    validator: AccountInfo,
    delegated_account: AccountInfo,
    commit_state_account: AccountInfo,
    commit_record_account: AccountInfo,
    delegation_record_account: AccountInfo,
    delegation_metadata_account: AccountInfo,
    validator_fees_vault: AccountInfo,
    program_config_account: AccountInfo,
    *,
    op: str,
) -> None:
    if diffset.segments_count == 0:
        log.warning("noop: empty diff sent for %s", delegated_account.key.hex()[:16])

    changed = apply_diff_copy(delegated_account.data, diffset)

    commit_state_internal(
        CommitStateInternalArgs(
            program_id=program_id,
            commit_state_bytes=bytes(changed),
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
        op=op,
    )
