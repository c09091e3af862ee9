"""
delegation.curve — Ed25519 point validation for 32-byte addresses.

A derived address must NOT be a valid compressed Edwards point (otherwise a
private key could exist for it). `is_on_curve` answers that question using plain
modular arithmetic over GF(2^255 - 19):

  y      = little-endian integer with the sign bit cleared, reduced mod p
  u / v  = (y² - 1) / (d·y² + 1)
  valid  ⇔ u/v is a square mod p (x = 0 included)
"""

from __future__ import annotations

P = 2**255 - 19
D = (-121665 * pow(121666, P - 2, P)) % P

_Y_MASK = (1 << 255) - 1


def is_on_curve(address: bytes) -> bool:
    if len(address) != 32:
        raise ValueError(f"address must be 32 bytes, got {len(address)}")
    y = (int.from_bytes(address, "little") & _Y_MASK) % P
    yy = y * y % P
    u = (yy - 1) % P
    v = (D * yy + 1) % P
    w = u * pow(v, P - 2, P) % P
    if w == 0:
        return True
    return pow(w, (P - 1) // 2, P) == 1


__all__ = ["is_on_curve", "P", "D"]
