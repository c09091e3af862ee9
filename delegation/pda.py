"""
delegation.pda — derived addresses for every program-owned cell.

    address = SHA-256(seed_0 ‖ … ‖ seed_n ‖ program_id ‖ b"ProgramDerivedAddress")

rejected when the digest is a valid Ed25519 point. `find_program_address`
appends a one-byte bump seed and walks it from 255 down to 0 until the result
is off-curve.

Per-cell helpers default `program_id` to the configured program id.
"""

from __future__ import annotations

import hashlib
from typing import Optional, Sequence, Tuple

from delegation.config import get_config
from delegation.curve import is_on_curve
from delegation.errors import AddressDerivationError, ErrorCode, fail

MAX_SEEDS = 16
MAX_SEED_LEN = 32
PDA_MARKER = b"ProgramDerivedAddress"

DELEGATION_RECORD_TAG = b"delegation"
DELEGATION_METADATA_TAG = b"delegation-metadata"
COMMIT_STATE_TAG = b"state-diff"
COMMIT_RECORD_TAG = b"commit-state-record"
DELEGATE_BUFFER_TAG = b"buffer"
UNDELEGATE_BUFFER_TAG = b"undelegate-buffer"
FEES_VAULT_TAG = b"fees-vault"
VALIDATOR_FEES_VAULT_TAG = b"v-fees-vault"
PROGRAM_CONFIG_TAG = b"p-conf"

Seeds = Sequence[bytes]


def create_program_address(seeds: Seeds, program_id: bytes) -> bytes:
    """Derive the address for exactly `seeds` (bump included by the caller)."""
    if len(seeds) > MAX_SEEDS:
        raise fail(ErrorCode.MAX_SEED_LENGTH_EXCEEDED, seeds=len(seeds))
    h = hashlib.sha256()
    for seed in seeds:
        if len(seed) > MAX_SEED_LEN:
            raise fail(ErrorCode.MAX_SEED_LENGTH_EXCEEDED, seed_len=len(seed))
        h.update(seed)
    h.update(program_id)
    h.update(PDA_MARKER)
    address = h.digest()
    if is_on_curve(address):
        raise fail(ErrorCode.INVALID_SEEDS, reason="on-curve")
    return address


def try_find_program_address(seeds: Seeds, program_id: bytes) -> Optional[Tuple[bytes, int]]:
    for bump in range(255, -1, -1):
        try:
            return create_program_address([*seeds, bytes([bump])], program_id), bump
        except AddressDerivationError as e:
            if e.code != ErrorCode.INVALID_SEEDS:
                raise
    return None


def find_program_address(seeds: Seeds, program_id: bytes) -> Tuple[bytes, int]:
    """Return `(address, bump)` for the first off-curve bump, 255 downwards."""
    found = try_find_program_address(seeds, program_id)
    if found is None:
        raise fail(ErrorCode.INVALID_SEEDS, reason="no viable bump")
    return found


# -------- per-cell derivations ---------------------------------------------


def _pid(program_id: Optional[bytes]) -> bytes:
    return program_id if program_id is not None else get_config().program_id


def delegation_record_seeds(delegated: bytes) -> Tuple[bytes, ...]:
    return (DELEGATION_RECORD_TAG, delegated)


def delegation_metadata_seeds(delegated: bytes) -> Tuple[bytes, ...]:
    return (DELEGATION_METADATA_TAG, delegated)


def commit_state_seeds(delegated: bytes) -> Tuple[bytes, ...]:
    return (COMMIT_STATE_TAG, delegated)


def commit_record_seeds(delegated: bytes) -> Tuple[bytes, ...]:
    return (COMMIT_RECORD_TAG, delegated)


def undelegate_buffer_seeds(delegated: bytes) -> Tuple[bytes, ...]:
    return (UNDELEGATE_BUFFER_TAG, delegated)


def delegate_buffer_seeds(delegated: bytes) -> Tuple[bytes, ...]:
    return (DELEGATE_BUFFER_TAG, delegated)


def fees_vault_seeds() -> Tuple[bytes, ...]:
    return (FEES_VAULT_TAG,)


def validator_fees_vault_seeds(validator: bytes) -> Tuple[bytes, ...]:
    return (VALIDATOR_FEES_VAULT_TAG, validator)


def program_config_seeds(program: bytes) -> Tuple[bytes, ...]:
    return (PROGRAM_CONFIG_TAG, program)


def delegation_record_pda(delegated: bytes, program_id: Optional[bytes] = None) -> bytes:
    return find_program_address(delegation_record_seeds(delegated), _pid(program_id))[0]


def delegation_metadata_pda(delegated: bytes, program_id: Optional[bytes] = None) -> bytes:
    return find_program_address(delegation_metadata_seeds(delegated), _pid(program_id))[0]


def commit_state_pda(delegated: bytes, program_id: Optional[bytes] = None) -> bytes:
    return find_program_address(commit_state_seeds(delegated), _pid(program_id))[0]


def commit_record_pda(delegated: bytes, program_id: Optional[bytes] = None) -> bytes:
    return find_program_address(commit_record_seeds(delegated), _pid(program_id))[0]


def undelegate_buffer_pda(delegated: bytes, program_id: Optional[bytes] = None) -> bytes:
    return find_program_address(undelegate_buffer_seeds(delegated), _pid(program_id))[0]


def delegate_buffer_pda(delegated: bytes, owner_program: bytes) -> bytes:
    """The delegate buffer lives under the OWNER program, not this one."""
    return find_program_address(delegate_buffer_seeds(delegated), owner_program)[0]


def fees_vault_pda(program_id: Optional[bytes] = None) -> bytes:
    return find_program_address(fees_vault_seeds(), _pid(program_id))[0]


def validator_fees_vault_pda(validator: bytes, program_id: Optional[bytes] = None) -> bytes:
    return find_program_address(validator_fees_vault_seeds(validator), _pid(program_id))[0]


def program_config_pda(program: bytes, program_id: Optional[bytes] = None) -> bytes:
    return find_program_address(program_config_seeds(program), _pid(program_id))[0]


__all__ = [
    "MAX_SEEDS",
    "MAX_SEED_LEN",
    "DELEGATION_RECORD_TAG",
    "DELEGATION_METADATA_TAG",
    "COMMIT_STATE_TAG",
    "COMMIT_RECORD_TAG",
    "DELEGATE_BUFFER_TAG",
    "UNDELEGATE_BUFFER_TAG",
    "FEES_VAULT_TAG",
    "VALIDATOR_FEES_VAULT_TAG",
    "PROGRAM_CONFIG_TAG",
    "create_program_address",
    "try_find_program_address",
    "find_program_address",
    "delegation_record_seeds",
    "delegation_metadata_seeds",
    "commit_state_seeds",
    "commit_record_seeds",
    "undelegate_buffer_seeds",
    "delegate_buffer_seeds",
    "fees_vault_seeds",
    "validator_fees_vault_seeds",
    "program_config_seeds",
    "delegation_record_pda",
    "delegation_metadata_pda",
    "commit_state_pda",
    "commit_record_pda",
    "undelegate_buffer_pda",
    "delegate_buffer_pda",
    "fees_vault_pda",
    "validator_fees_vault_pda",
    "program_config_pda",
]
