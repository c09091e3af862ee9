"""
Fixtures for the delegation test-suite:
- Pinned program identity (independent of DLP_* env vars)
- A fresh ledger harness per test (see harness.py)
"""
from __future__ import annotations

import pytest

from delegation.config import use_config

from .harness import DEFAULT_VALIDATOR, PROGRAM_ID, Harness, build_harness


@pytest.fixture(autouse=True)
def pinned_config():
    with use_config(program_id=PROGRAM_ID, default_validator=DEFAULT_VALIDATOR, rent_fees_percentage=10) as cfg:
        yield cfg


@pytest.fixture
def harness(pinned_config) -> Harness:
    return build_harness()
