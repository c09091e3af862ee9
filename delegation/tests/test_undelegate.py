from __future__ import annotations

import pytest

from delegation import pda
from delegation.config import SYSTEM_PROGRAM_ID
from delegation.errors import (
    AuthorizationError,
    ErrorCode,
    LifecycleError,
    PostconditionError,
)
from delegation.ledger import AccountMeta
from delegation.processor import Discriminator
from delegation.processor.utils import fee_tiers

from .harness import (
    OTHER_VALIDATOR,
    OWNER_PROGRAM_ID,
    PAYER,
    STARTING_BALANCE,
    VALIDATOR,
    Harness,
    build_harness,
)

SEEDS = (b"counter", bytes([0x33]) * 32)
FINAL_STATE = b"final-state-0123"


def _ready(h: Harness, state: bytes = FINAL_STATE, extra_lamports: int = 0) -> bytes:
    """Delegate, then commit+finalize `state` with undelegation allowed."""
    delegated = h.delegated_account(seeds=SEEDS, extra_lamports=extra_lamports)
    h.commit(delegated, state, nonce=1, allow_undelegation=True)
    h.finalize(delegated)
    return delegated


def test_undelegate_hands_account_back(harness: Harness) -> None:
    delegated = _ready(harness, extra_lamports=12_345)
    lamports = harness.ledger.lamports(delegated)

    harness.undelegate(delegated)

    assert harness.ledger.owner(delegated) == OWNER_PROGRAM_ID
    assert harness.ledger.data(delegated) == FINAL_STATE
    assert harness.ledger.lamports(delegated) == lamports
    assert harness.ledger.lamports(VALIDATOR) == STARTING_BALANCE
    for addr in (
        harness.record_addr(delegated),
        harness.metadata_addr(delegated),
        pda.undelegate_buffer_pda(delegated, harness.program_id),
    ):
        assert not harness.ledger.exists(addr)


def test_undelegate_without_data_reassigns_owner(harness: Harness) -> None:
    delegated = _ready(harness, state=b"")
    lamports = harness.ledger.lamports(delegated)

    harness.undelegate(delegated)

    assert harness.ledger.owner(delegated) == OWNER_PROGRAM_ID
    assert harness.ledger.data(delegated) == b""
    assert harness.ledger.lamports(delegated) == lamports


def test_undelegate_distributes_rent_with_fees(harness: Harness) -> None:
    delegated = _ready(harness)
    record_rent = harness.ledger.lamports(harness.record_addr(delegated))
    metadata_rent = harness.ledger.lamports(harness.metadata_addr(delegated))
    payer_before = harness.ledger.lamports(PAYER)
    vault_before = harness.ledger.lamports(harness.validator_fees_vault())
    protocol_before = harness.ledger.lamports(harness.fees_vault())

    harness.undelegate(delegated)

    validator_cut = protocol_cut = fees = 0
    for rent in (record_rent, metadata_rent):
        v, p = fee_tiers(rent, 2, 10)
        validator_cut += v
        protocol_cut += p
        fees += rent * 10 // 100
    assert harness.ledger.lamports(harness.validator_fees_vault()) == vault_before + validator_cut
    assert harness.ledger.lamports(harness.fees_vault()) == protocol_before + protocol_cut
    assert harness.ledger.lamports(PAYER) == payer_before + record_rent + metadata_rent - fees


def test_full_cycle_allows_redelegation(harness: Harness) -> None:
    delegated = _ready(harness)
    harness.undelegate(delegated)

    again = harness.delegated_account(seeds=SEEDS, data=b"fresh")
    assert again == delegated
    assert harness.ledger.data(delegated) == b"fresh"


@pytest.mark.parametrize(
    "mode,code",
    [
        ("bad_data", ErrorCode.INVALID_ACCOUNT_DATA_AFTER_CPI),
        ("overpay", ErrorCode.INVALID_VALIDATOR_BALANCE_AFTER_CPI),
    ],
)
def test_misbehaving_owner_program(mode: str, code: ErrorCode) -> None:
    h = build_harness(owner_mode=mode)
    delegated = _ready(h)
    total = h.ledger.total_lamports()

    with pytest.raises(PostconditionError) as ei:
        h.undelegate(delegated)
    assert ei.value.code == code

    assert h.ledger.owner(delegated) == h.program_id
    assert h.ledger.data(delegated) == FINAL_STATE
    assert h.ledger.exists(h.record_addr(delegated))
    assert h.ledger.total_lamports() == total


def test_undelegate_requires_latch(harness: Harness) -> None:
    delegated = harness.delegated_account(seeds=SEEDS)
    with pytest.raises(LifecycleError) as ei:
        harness.undelegate(delegated)
    assert ei.value.code == ErrorCode.NOT_UNDELEGATABLE


def test_undelegate_with_pending_commit(harness: Harness) -> None:
    delegated = harness.delegated_account(seeds=SEEDS)
    harness.commit(delegated, FINAL_STATE, nonce=1, allow_undelegation=True)
    with pytest.raises(LifecycleError) as ei:
        harness.undelegate(delegated)
    assert ei.value.code == ErrorCode.COMMIT_STATE_INVALID_ACCOUNT_OWNER


def test_undelegate_wrong_rent_reimbursement(harness: Harness) -> None:
    delegated = _ready(harness)
    with pytest.raises(AuthorizationError) as ei:
        harness.undelegate(delegated, rent_reimbursement=OTHER_VALIDATOR)
    assert ei.value.code == ErrorCode.INVALID_REIMBURSEMENT_ADDRESS_FOR_DELEGATION_RENT


def test_undelegate_wrong_owner_program(harness: Harness) -> None:
    delegated = _ready(harness)
    metas = harness.undelegate_metas(delegated)
    metas[2] = AccountMeta.readonly(SYSTEM_PROGRAM_ID)
    with pytest.raises(LifecycleError) as ei:
        harness.run(Discriminator.UNDELEGATE, metas)
    assert ei.value.code == ErrorCode.INVALID_ACCOUNT_OWNER


def test_undelegate_buffer_must_be_free(harness: Harness) -> None:
    delegated = _ready(harness)
    buffer = pda.undelegate_buffer_pda(delegated, harness.program_id)
    harness.ledger.set_account(buffer, lamports=harness.rent(4), data=b"junk", owner=harness.program_id)
    with pytest.raises(LifecycleError) as ei:
        harness.undelegate(delegated)
    assert ei.value.code == ErrorCode.UNDELEGATE_BUFFER_INVALID_ACCOUNT_OWNER
