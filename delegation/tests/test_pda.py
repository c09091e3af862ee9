from __future__ import annotations

import hashlib

import pytest

from delegation import pda
from delegation.curve import is_on_curve
from delegation.errors import AddressDerivationError, ErrorCode

from .harness import PROGRAM_ID

# compressed Ed25519 base point (y = 4/5)
BASE_POINT = bytes.fromhex("58" + "66" * 31)
IDENTITY_POINT = b"\x01" + bytes(31)


def test_known_points_are_on_curve() -> None:
    assert is_on_curve(BASE_POINT)
    assert is_on_curve(IDENTITY_POINT)


def test_is_on_curve_requires_32_bytes() -> None:
    with pytest.raises(ValueError):
        is_on_curve(b"\x01" * 31)


def test_find_program_address_is_consistent() -> None:
    seeds = [b"counter", b"\x07" * 32]
    address, bump = pda.find_program_address(seeds, PROGRAM_ID)
    assert 0 <= bump <= 255
    assert not is_on_curve(address)
    assert pda.create_program_address([*seeds, bytes([bump])], PROGRAM_ID) == address
    expected = hashlib.sha256(b"".join([*seeds, bytes([bump]), PROGRAM_ID, b"ProgramDerivedAddress"])).digest()
    assert address == expected


def test_find_program_address_takes_the_highest_viable_bump() -> None:
    seeds = [b"fees-vault"]
    address, bump = pda.find_program_address(seeds, PROGRAM_ID)
    for higher in range(bump + 1, 256):
        with pytest.raises(AddressDerivationError):
            pda.create_program_address([*seeds, bytes([higher])], PROGRAM_ID)
    assert pda.try_find_program_address(seeds, PROGRAM_ID) == (address, bump)


def test_too_many_seeds() -> None:
    with pytest.raises(AddressDerivationError) as ei:
        pda.create_program_address([b"s"] * 17, PROGRAM_ID)
    assert ei.value.code == ErrorCode.MAX_SEED_LENGTH_EXCEEDED


def test_seed_too_long() -> None:
    with pytest.raises(AddressDerivationError) as ei:
        pda.find_program_address([bytes(33)], PROGRAM_ID)
    assert ei.value.code == ErrorCode.MAX_SEED_LENGTH_EXCEEDED


def test_cell_helpers_default_to_configured_program() -> None:
    delegated = b"\x05" * 32
    assert pda.delegation_record_pda(delegated) == pda.find_program_address([b"delegation", delegated], PROGRAM_ID)[0]
    assert pda.commit_state_pda(delegated) == pda.find_program_address([b"state-diff", delegated], PROGRAM_ID)[0]
    assert pda.fees_vault_pda() == pda.find_program_address([b"fees-vault"], PROGRAM_ID)[0]


def test_distinct_tags_give_distinct_addresses() -> None:
    delegated = b"\x05" * 32
    addrs = {
        pda.delegation_record_pda(delegated),
        pda.delegation_metadata_pda(delegated),
        pda.commit_state_pda(delegated),
        pda.commit_record_pda(delegated),
        pda.undelegate_buffer_pda(delegated),
        pda.delegate_buffer_pda(delegated, PROGRAM_ID),
    }
    assert len(addrs) == 6
