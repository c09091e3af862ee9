from __future__ import annotations

import pytest

from delegation.config import (
    DEFAULT_PROGRAM_ID_HEX,
    SYSTEM_PROGRAM_ID,
    get_config,
    load_config,
    parse_address,
    summary,
    use_config,
)

from .harness import PROGRAM_ID


def test_defaults_without_env() -> None:
    cfg = load_config({})
    assert cfg.program_id == bytes.fromhex(DEFAULT_PROGRAM_ID_HEX)
    assert cfg.identity.any_validator == SYSTEM_PROGRAM_ID
    assert cfg.fees.rent_fees_percentage == 10
    assert cfg.rent.minimum_balance(0) == 128 * 3480 * 2
    assert cfg.rent.minimum_balance(96) == (128 + 96) * 3480 * 2


def test_env_and_overrides() -> None:
    env = {
        "DLP_PROGRAM_ID": "0x" + "ab" * 32,
        "DLP_RENT_FEES_PERCENTAGE": "25",
        "DLP_LAMPORTS_PER_BYTE_YEAR": "1",
        "DLP_RENT_EXEMPTION_THRESHOLD": "1.0",
    }
    cfg = load_config(env, overrides={"rent_fees_percentage": 5})
    assert cfg.program_id == bytes([0xAB]) * 32
    assert cfg.fees.rent_fees_percentage == 5
    assert cfg.rent.minimum_balance(10) == 138


@pytest.mark.parametrize(
    "env",
    [
        {"DLP_RENT_FEES_PERCENTAGE": "101"},
        {"DLP_PROGRAM_ID": "00" * 32},
        {"DLP_DEFAULT_VALIDATOR": "abcd"},
    ],
)
def test_invalid_config_rejected(env) -> None:
    with pytest.raises(ValueError):
        load_config(env)


def test_parse_address_accepts_hex_and_bytes() -> None:
    assert parse_address("0x" + "01" * 32) == b"\x01" * 32
    assert parse_address(bytearray(32)) == bytes(32)


def test_use_config_restores_previous() -> None:
    assert get_config().program_id == PROGRAM_ID
    with use_config(rent_fees_percentage=50) as cfg:
        assert get_config() is cfg
        assert cfg.fees.rent_fees_percentage == 50
        assert cfg.program_id == PROGRAM_ID
    assert get_config().fees.rent_fees_percentage == 10


def test_use_config_rejects_unknown_override() -> None:
    with pytest.raises(TypeError):
        with use_config(not_a_knob=1):
            pass


def test_summary_mentions_program() -> None:
    s = summary()
    assert PROGRAM_ID.hex()[:16] in s
    assert "fees=10%" in s


def test_identity_is_program_and_validators_only() -> None:
    identity = load_config({}).to_dict()["identity"]
    assert sorted(identity) == ["any_validator", "default_validator", "program_id"]
    assert identity["any_validator"] == SYSTEM_PROGRAM_ID.hex()
