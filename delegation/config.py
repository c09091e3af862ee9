"""
delegation.config — process-wide program identity and knobs.

This module centralizes:
  • Program identity (this program's address, the system program, the default
    validator identity used when Delegate names none, the "any validator" sentinel)
  • Fee policy (percentage charged by the cascading close at undelegation)
  • Rent policy (lamports per byte-year and exemption threshold of the ledger model)

Configuration may be provided via environment variables. Safe defaults are chosen
so tests and local tooling work out of the box. Tests inject alternate identities
with `set_config(...)` or the `use_config(...)` context manager.

Environment variables (all optional, addresses are 32-byte hex, "0x" allowed):
  DLP_PROGRAM_ID                 -> this program's address
  DLP_DEFAULT_VALIDATOR          -> authority recorded when Delegate names no validator
  DLP_RENT_FEES_PERCENTAGE       -> integer in [0, 100] (default: 10)
  DLP_LAMPORTS_PER_BYTE_YEAR     -> integer (default: 3480)
  DLP_RENT_EXEMPTION_THRESHOLD   -> float years (default: 2.0)

Programmatic usage:
    from delegation.config import get_config
    cfg = get_config()
    cfg.identity.program_id
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from dataclasses import asdict, dataclass, replace
from functools import lru_cache
from typing import Dict, Iterator, Mapping, Optional, Union

# ----------------------------- constants ------------------------------------

ADDRESS_LEN = 32

#: All-zero address. It is the system program and doubles as the
#: "any validator may commit" authority sentinel.
SYSTEM_PROGRAM_ID = bytes(ADDRESS_LEN)

DEFAULT_PROGRAM_ID_HEX = "b7d9a3f1c2e84d6a9f0b5c1e3a7d2f8406c9e1b3a5f7d0c2e4b6a8f1d3c5e7a9"
DEFAULT_VALIDATOR_HEX = "0b9e4c2d7f1a3e5b8c6d0f2a4e1c3b5d7a9f0e2c4b6d8a1f3e5c7b9d0a2c4e6f"

DEFAULT_RENT_FEES_PERCENTAGE = 10
DEFAULT_LAMPORTS_PER_BYTE_YEAR = 3480
DEFAULT_EXEMPTION_THRESHOLD = 2.0

#: Per-account storage overhead charged by the rent formula.
ACCOUNT_STORAGE_OVERHEAD = 128

#: Leading bytes of the owner program's handback instruction.
EXTERNAL_UNDELEGATE_DISCRIMINATOR = bytes([196, 28, 41, 206, 48, 37, 51, 167])


# ----------------------------- helpers -------------------------------------


def parse_address(value: Union[str, bytes, bytearray]) -> bytes:
    """Accept 32 raw bytes or a 64-char hex string (optional 0x prefix)."""
    if isinstance(value, (bytes, bytearray)):
        b = bytes(value)
    else:
        s = value.strip().lower()
        if s.startswith("0x"):
            s = s[2:]
        try:
            b = bytes.fromhex(s)
        except ValueError as e:
            raise ValueError(f"invalid address hex: {value!r}") from e
    if len(b) != ADDRESS_LEN:
        raise ValueError(f"address must be {ADDRESS_LEN} bytes, got {len(b)}")
    return b


# ------------------------------ dataclasses ---------------------------------


@dataclass(frozen=True)
class ProgramIdentity:
    program_id: bytes = bytes.fromhex(DEFAULT_PROGRAM_ID_HEX)
    default_validator: bytes = bytes.fromhex(DEFAULT_VALIDATOR_HEX)
    any_validator: bytes = SYSTEM_PROGRAM_ID


@dataclass(frozen=True)
class FeePolicy:
    rent_fees_percentage: int = DEFAULT_RENT_FEES_PERCENTAGE


@dataclass(frozen=True)
class RentPolicy:
    lamports_per_byte_year: int = DEFAULT_LAMPORTS_PER_BYTE_YEAR
    exemption_threshold: float = DEFAULT_EXEMPTION_THRESHOLD

    def minimum_balance(self, data_len: int) -> int:
        """Lamports required to keep an account of `data_len` bytes rent-exempt."""
        per_year = (ACCOUNT_STORAGE_OVERHEAD + data_len) * self.lamports_per_byte_year
        return int(per_year * self.exemption_threshold)


@dataclass(frozen=True)
class DelegationConfig:
    identity: ProgramIdentity
    fees: FeePolicy
    rent: RentPolicy

    @property
    def program_id(self) -> bytes:
        return self.identity.program_id

    def to_dict(self) -> Dict[str, object]:
        d = asdict(self)
        for k, v in d["identity"].items():
            d["identity"][k] = v.hex()
        return d


# ------------------------------ loader --------------------------------------


def _validate(cfg: DelegationConfig) -> DelegationConfig:
    if not (0 <= cfg.fees.rent_fees_percentage <= 100):
        raise ValueError("rent_fees_percentage must be in [0,100]")
    if cfg.rent.lamports_per_byte_year < 0:
        raise ValueError("lamports_per_byte_year must be ≥ 0")
    if cfg.rent.exemption_threshold < 0:
        raise ValueError("exemption_threshold must be ≥ 0")
    if cfg.identity.program_id == SYSTEM_PROGRAM_ID:
        raise ValueError("program_id must differ from the system program")
    return cfg


def load_config(
    env: Optional[Mapping[str, str]] = None,
    *,
    overrides: Optional[Mapping[str, Union[str, bytes, int, float]]] = None,
) -> DelegationConfig:
    """
    Build a DelegationConfig from environment and optional overrides.

    Args:
        env: mapping to read variables from (default: os.environ)
        overrides: explicit field overrides; keys support:
          'program_id', 'default_validator', 'rent_fees_percentage',
          'lamports_per_byte_year', 'exemption_threshold'
    """
    env = os.environ if env is None else env
    overrides = dict(overrides or {})

    identity = ProgramIdentity(
        program_id=parse_address(
            overrides.get("program_id", env.get("DLP_PROGRAM_ID", DEFAULT_PROGRAM_ID_HEX))
        ),
        default_validator=parse_address(
            overrides.get(
                "default_validator", env.get("DLP_DEFAULT_VALIDATOR", DEFAULT_VALIDATOR_HEX)
            )
        ),
    )
    fees = FeePolicy(
        rent_fees_percentage=int(
            overrides.get(
                "rent_fees_percentage",
                env.get("DLP_RENT_FEES_PERCENTAGE", DEFAULT_RENT_FEES_PERCENTAGE),
            )
        )
    )
    rent = RentPolicy(
        lamports_per_byte_year=int(
            overrides.get(
                "lamports_per_byte_year",
                env.get("DLP_LAMPORTS_PER_BYTE_YEAR", DEFAULT_LAMPORTS_PER_BYTE_YEAR),
            )
        ),
        exemption_threshold=float(
            overrides.get(
                "exemption_threshold",
                env.get("DLP_RENT_EXEMPTION_THRESHOLD", DEFAULT_EXEMPTION_THRESHOLD),
            )
        ),
    )
    return _validate(DelegationConfig(identity=identity, fees=fees, rent=rent))


_override: Optional[DelegationConfig] = None


@lru_cache(maxsize=1)
def _env_config() -> DelegationConfig:
    return load_config()


def get_config() -> DelegationConfig:
    """
    Active config: an injected one (see `set_config`) or the cached env-derived one.
    """
    return _override if _override is not None else _env_config()


def set_config(cfg: Optional[DelegationConfig]) -> None:
    """Install `cfg` process-wide; `None` restores the env-derived config."""
    global _override
    _override = _validate(cfg) if cfg is not None else None


@contextmanager
def use_config(cfg: Optional[DelegationConfig] = None, **overrides) -> Iterator[DelegationConfig]:
    """
    Temporarily install a config. Keyword overrides are applied on top of `cfg`
    (or the current config) using `load_config` override names.
    """
    global _override
    prev = _override
    base = cfg or get_config()
    if overrides:
        identity = base.identity
        if "program_id" in overrides:
            identity = replace(identity, program_id=parse_address(overrides.pop("program_id")))
        if "default_validator" in overrides:
            identity = replace(
                identity, default_validator=parse_address(overrides.pop("default_validator"))
            )
        fees = base.fees
        if "rent_fees_percentage" in overrides:
            fees = replace(fees, rent_fees_percentage=int(overrides.pop("rent_fees_percentage")))
        rent = base.rent
        if "lamports_per_byte_year" in overrides:
            rent = replace(rent, lamports_per_byte_year=int(overrides.pop("lamports_per_byte_year")))
        if "exemption_threshold" in overrides:
            rent = replace(rent, exemption_threshold=float(overrides.pop("exemption_threshold")))
        if overrides:
            raise TypeError(f"unknown config overrides: {sorted(overrides)}")
        base = DelegationConfig(identity=identity, fees=fees, rent=rent)
    set_config(base)
    try:
        yield base
    finally:
        _override = prev


# ----------------------------- pretty-print ---------------------------------


def summary(cfg: Optional[DelegationConfig] = None) -> str:
    """
    Return a human-friendly one-line summary of the active program knobs.
    """
    cfg = cfg or get_config()
    i = cfg.identity
    return (
        "dlp{"
        f"program={i.program_id.hex()[:16]}…, "
        f"default_validator={i.default_validator.hex()[:16]}…, "
        f"fees={cfg.fees.rent_fees_percentage}%, "
        f"rent={cfg.rent.lamports_per_byte_year}/byte-yr x{cfg.rent.exemption_threshold:g}"
        "}"
    )


__all__ = [
    "ADDRESS_LEN",
    "SYSTEM_PROGRAM_ID",
    "ACCOUNT_STORAGE_OVERHEAD",
    "EXTERNAL_UNDELEGATE_DISCRIMINATOR",
    "ProgramIdentity",
    "FeePolicy",
    "RentPolicy",
    "DelegationConfig",
    "parse_address",
    "load_config",
    "get_config",
    "set_config",
    "use_config",
    "summary",
]
