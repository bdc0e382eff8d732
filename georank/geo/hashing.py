"""Deterministic string hashing used for positional jitter."""
from __future__ import annotations

_MASK_32 = 0xFFFFFFFF


def string_hash(text: str) -> int:
    """Polynomial hash (`h * 31 + code`) wrapped to signed 32 bits, then absolute.

    Stable across processes, unlike the builtin `hash()` which is salted.
    """
    value = 0
    for char in text:
        value = (value * 31 + ord(char)) & _MASK_32
    if value >= 0x80000000:
        value -= 0x100000000
    return abs(value)


def unit_offset(seed: int, *, buckets: int, step: float) -> float:
    """Map a hash to a centred offset in `[-buckets/2 * step, buckets/2 * step)`."""
    return ((seed % buckets) - buckets // 2) * step
