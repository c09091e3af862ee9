from __future__ import annotations

import cbor2
import pytest

from delegation.errors import ErrorCode, MalformedDataError
from delegation.state import (
    DISCRIMINATOR_LEN,
    AccountDiscriminator,
    CommitRecord,
    DelegationMetadata,
    DelegationRecord,
    ProgramConfig,
    metadata_size_for,
)

OWNER = bytes([1]) * 32
AUTHORITY = bytes([2]) * 32
PAYER = bytes([3]) * 32


def test_delegation_record_layout() -> None:
    rec = DelegationRecord(OWNER, AUTHORITY, commit_frequency_ms=30_000, delegation_slot=7, lamports=1_000)
    raw = rec.to_bytes()
    assert len(raw) == DelegationRecord.size() == 96
    assert raw[:DISCRIMINATOR_LEN] == (100).to_bytes(8, "little")
    assert raw[8:40] == OWNER
    assert DelegationRecord.from_bytes(raw) == rec


def test_commit_record_layout() -> None:
    rec = CommitRecord(identity=AUTHORITY, account=OWNER, nonce=3, lamports=55)
    raw = rec.to_bytes()
    assert len(raw) == CommitRecord.size() == 88
    assert raw[:8] == AccountDiscriminator.COMMIT_RECORD.to_bytes8()
    assert CommitRecord.from_bytes(bytearray(raw)) == rec


def test_write_into_requires_exact_size() -> None:
    rec = CommitRecord(AUTHORITY, OWNER, 1, 1)
    buf = bytearray(CommitRecord.size())
    rec.write_into(buf)
    assert bytes(buf) == rec.to_bytes()
    with pytest.raises(MalformedDataError):
        rec.write_into(bytearray(10))


def test_wrong_discriminator_is_invalid_account_data() -> None:
    raw = CommitRecord(AUTHORITY, OWNER, 1, 1).to_bytes()
    with pytest.raises(MalformedDataError) as ei:
        DelegationRecord.from_bytes(raw + bytes(8))
    assert ei.value.code == ErrorCode.INVALID_ACCOUNT_DATA


def test_truncated_record_is_invalid_account_data() -> None:
    raw = DelegationRecord(OWNER, AUTHORITY, 0, 0, 0).to_bytes()
    with pytest.raises(MalformedDataError) as ei:
        DelegationRecord.from_bytes(raw[:-1])
    assert ei.value.code == ErrorCode.INVALID_ACCOUNT_DATA


def test_metadata_roundtrip_and_in_place_update() -> None:
    seeds = [b"counter", bytes([9]) * 32]
    meta = DelegationMetadata(seeds=seeds, last_update_nonce=0, is_undelegatable=False, rent_payer=PAYER)
    buf = bytearray(meta.to_bytes())
    assert len(buf) == metadata_size_for(seeds)

    meta.last_update_nonce = 2**40
    meta.is_undelegatable = True
    meta.write_into(buf)

    decoded = DelegationMetadata.from_bytes(buf)
    assert decoded.seeds == seeds
    assert decoded.last_update_nonce == 2**40
    assert decoded.is_undelegatable is True
    assert decoded.rent_payer == PAYER


def test_metadata_rejects_non_list_seeds() -> None:
    header = DelegationMetadata([], 0, False, PAYER).to_bytes()[: DISCRIMINATOR_LEN + 41]
    with pytest.raises(MalformedDataError) as ei:
        DelegationMetadata.from_bytes(header + cbor2.dumps("x"))
    assert ei.value.code == ErrorCode.INVALID_ACCOUNT_DATA


def test_program_config_allow_list() -> None:
    validator = bytes([7]) * 32
    cfg = ProgramConfig([validator])
    decoded = ProgramConfig.from_bytes(cfg.to_bytes())
    assert decoded.is_approved(validator)
    assert not decoded.is_approved(bytes([8]) * 32)
    assert ProgramConfig.from_bytes(ProgramConfig().to_bytes()).approved_validators == []
