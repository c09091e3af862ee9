from __future__ import annotations

import pytest

from delegation.errors import (
    AddressDerivationError,
    AuthorizationError,
    ErrorCode,
    LifecycleError,
    MalformedDataError,
)
from delegation.ledger import AccountMeta
from delegation.processor import Discriminator
from delegation.processor.args import DelegateArgs
from delegation.state import DelegationMetadata, DelegationRecord

from .harness import DEFAULT_VALIDATOR, OWNER_PROGRAM_ID, PAYER, STARTING_BALANCE, VALIDATOR, Harness

USER = bytes([0x33]) * 32
SEEDS = [b"counter", USER]
STATE = bytes(range(1, 17))


def test_delegate_creates_record_and_metadata(harness: Harness) -> None:
    harness.ledger.warp_to_slot(42)
    delegated = harness.prepare_delegated(SEEDS, STATE, extra_lamports=5_000)
    balance = harness.ledger.lamports(delegated)

    harness.delegate(delegated, SEEDS)

    record = DelegationRecord.from_bytes(harness.ledger.data(harness.record_addr(delegated)))
    assert record.owner == OWNER_PROGRAM_ID
    assert record.authority == VALIDATOR
    assert record.commit_frequency_ms == 30_000
    assert record.delegation_slot == 42
    assert record.lamports == balance

    metadata = DelegationMetadata.from_bytes(harness.ledger.data(harness.metadata_addr(delegated)))
    assert metadata.seeds == SEEDS
    assert metadata.last_update_nonce == 0
    assert metadata.is_undelegatable is False
    assert metadata.rent_payer == PAYER

    assert harness.ledger.data(delegated) == STATE
    assert harness.ledger.owner(harness.record_addr(delegated)) == harness.program_id

    rent_paid = harness.ledger.lamports(harness.record_addr(delegated)) + harness.ledger.lamports(
        harness.metadata_addr(delegated)
    )
    assert rent_paid == harness.rent(DelegationRecord.size()) + harness.rent(len(metadata.to_bytes()))
    assert harness.ledger.lamports(PAYER) == STARTING_BALANCE - rent_paid


def test_delegate_without_validator_uses_default_identity(harness: Harness) -> None:
    delegated = harness.prepare_delegated(SEEDS, b"")
    args = DelegateArgs(commit_frequency_ms=0, seeds=SEEDS, validator=None)
    harness.run(Discriminator.DELEGATE, harness.delegate_metas(delegated), args.to_bytes())

    record = DelegationRecord.from_bytes(harness.ledger.data(harness.record_addr(delegated)))
    assert record.authority == DEFAULT_VALIDATOR
    assert harness.ledger.data(delegated) == b""


def test_delegate_twice_fails(harness: Harness) -> None:
    delegated = harness.prepare_delegated(SEEDS, STATE)
    harness.delegate(delegated, SEEDS)
    with pytest.raises(LifecycleError) as ei:
        harness.delegate(delegated, SEEDS)
    assert ei.value.code == ErrorCode.DELEGATION_RECORD_INVALID_ACCOUNT_OWNER


def test_wrong_seeds_rejected_and_rolled_back(harness: Harness) -> None:
    delegated = harness.prepare_delegated(SEEDS, STATE)
    with pytest.raises(AddressDerivationError) as ei:
        harness.delegate(delegated, [b"counter", bytes([0x34]) * 32])
    assert ei.value.code == ErrorCode.INVALID_SEEDS
    assert not harness.ledger.exists(harness.record_addr(delegated))
    assert harness.ledger.lamports(PAYER) == STARTING_BALANCE


def test_too_many_seeds(harness: Harness) -> None:
    seeds = [b"a", b"b", b"c", b"d", b"e"]
    delegated = harness.prepare_delegated(seeds, b"")
    with pytest.raises(AddressDerivationError) as ei:
        harness.delegate(delegated, seeds)
    assert ei.value.code == ErrorCode.TOO_MANY_SEEDS


def test_off_curve_account_without_seeds(harness: Harness) -> None:
    delegated = harness.prepare_delegated(SEEDS, b"")
    with pytest.raises(AddressDerivationError) as ei:
        harness.delegate(delegated, [])
    assert ei.value.code == ErrorCode.TOO_MANY_SEEDS
    assert not harness.ledger.exists(harness.record_addr(delegated))


def test_account_must_be_assigned_to_the_program(harness: Harness) -> None:
    delegated = harness.prepare_delegated(SEEDS, b"")
    harness.ledger.set_account(delegated, lamports=harness.rent(0), owner=OWNER_PROGRAM_ID)
    with pytest.raises(LifecycleError) as ei:
        harness.delegate(delegated, SEEDS)
    assert ei.value.code == ErrorCode.INVALID_ACCOUNT_OWNER


def test_delegated_account_must_sign(harness: Harness) -> None:
    delegated = harness.prepare_delegated(SEEDS, b"")
    metas = harness.delegate_metas(delegated)
    metas[1] = AccountMeta.writable(delegated)
    args = DelegateArgs(0, SEEDS, VALIDATOR)
    with pytest.raises(AuthorizationError) as ei:
        harness.run(Discriminator.DELEGATE, metas, args.to_bytes())
    assert ei.value.code == ErrorCode.MISSING_REQUIRED_SIGNATURE


def test_delegate_buffer_length_must_match(harness: Harness) -> None:
    delegated = harness.prepare_delegated(SEEDS, STATE)
    harness.ledger.set_account(delegated, lamports=harness.rent(8), data=bytes(8), owner=harness.program_id)
    with pytest.raises(MalformedDataError) as ei:
        harness.delegate(delegated, SEEDS)
    assert ei.value.code == ErrorCode.INVALID_ACCOUNT_DATA


def test_not_enough_accounts(harness: Harness) -> None:
    delegated = harness.prepare_delegated(SEEDS, b"")
    with pytest.raises(MalformedDataError) as ei:
        harness.run(Discriminator.DELEGATE, harness.delegate_metas(delegated)[:6], DelegateArgs().to_bytes())
    assert ei.value.code == ErrorCode.NOT_ENOUGH_ACCOUNT_KEYS


def test_malformed_args(harness: Harness) -> None:
    delegated = harness.prepare_delegated(SEEDS, b"")
    with pytest.raises(MalformedDataError) as ei:
        harness.run(Discriminator.DELEGATE, harness.delegate_metas(delegated), b"\x00\x00")
    assert ei.value.code == ErrorCode.INVALID_INSTRUCTION_DATA
