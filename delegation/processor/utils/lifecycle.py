"""
delegation.processor.utils.lifecycle — create / close program-owned cells.

`create_pda` funds, allocates and assigns a derived cell via the system program,
signing for it with its derivation seeds. `close_pda` returns a cell's lamports
to a destination and hands the (now empty) cell back to the system program.
`close_pda_with_fees` does the same after skimming a cascading fee:

    total  = L * pct // 100
    tier_0 = total, tier_i+1 = tier_i * pct // 100
    vault_i receives tier_i - tier_i+1 (the last vault keeps its whole tier)
    destination receives L - total
"""

from __future__ import annotations

import logging
from typing import List, Sequence

from delegation.errors import ErrorCode, fail
from delegation.config import SYSTEM_PROGRAM_ID
from delegation.ledger import AccountInfo, current_ledger, system

log = logging.getLogger(__name__)


def create_pda(
    target: AccountInfo,
    owner: bytes,
    space: int,
    signer_seeds: Sequence[Sequence[bytes]],
    payer: AccountInfo,
) -> None:
    """
    Create `target` with `space` bytes owned by `owner`.

    A zero-balance target is created in one system call funded with the
    rent-exempt minimum. A target that already holds lamports (e.g. collateral)
    is topped up to the minimum, then allocated and assigned.
    """
    min_rent = current_ledger().minimum_balance(space)
    if target.lamports == 0:
        system.create_account(payer, target, min_rent, space, owner, signer_seeds)
        return
    shortfall = max(0, min_rent - target.lamports)
    if shortfall > 0:
        system.transfer(payer, target, shortfall)
    system.allocate(target, space, signer_seeds)
    system.assign(target, owner, signer_seeds)


def close_pda(target: AccountInfo, destination: AccountInfo) -> None:
    """Move every lamport of `target` to `destination` and reset it to an empty system cell."""
    destination.lamports = destination.lamports + target.lamports
    target.lamports = 0
    target.assign(SYSTEM_PROGRAM_ID)
    target.resize(0)


def fee_tiers(lamports: int, count: int, fee_percentage: int) -> List[int]:
    """Per-vault amounts of the cascading fee (see module docstring)."""
    total = lamports * fee_percentage // 100
    tiers = [total]
    for _ in range(1, count):
        tiers.append(tiers[-1] * fee_percentage // 100)
    return [tiers[i] - tiers[i + 1] for i in range(count - 1)] + [tiers[-1]]


def close_pda_with_fees(
    target: AccountInfo,
    destination: AccountInfo,
    fee_accounts: Sequence[AccountInfo],
    fee_percentage: int,
) -> None:
    if not fee_accounts or not 0 <= fee_percentage <= 100:
        raise fail(ErrorCode.INVALID_ARGUMENT, fee_accounts=len(fee_accounts), fee_percentage=fee_percentage)

    initial = target.lamports
    total = initial * fee_percentage // 100
    for vault, amount in zip(fee_accounts, fee_tiers(initial, len(fee_accounts), fee_percentage)):
        vault.lamports = vault.lamports + amount
    destination.lamports = destination.lamports + (initial - total)
    log.debug("closed %s: %d lamports, %d in fees", target.key.hex()[:12], initial, total)

    target.lamports = 0
    target.assign(SYSTEM_PROGRAM_ID)
    target.resize(0)


__all__ = ["create_pda", "close_pda", "fee_tiers", "close_pda_with_fees"]
