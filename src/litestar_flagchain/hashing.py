"""Stable bucketing hash for offline evaluation.

MurmurHash3 (x86, 32-bit) is used because it is fast, well distributed and
specified bit-for-bit, so the same identity lands in the same bucket on every
machine and every Python version. ``hash()`` is salted per process and must
never be used for bucketing.
"""

from __future__ import annotations

__all__ = ["bucket_for", "murmur3_32"]

_C1 = 0xCC9E2D51
_C2 = 0x1B873593
_MASK = 0xFFFFFFFF


def _rotl32(value: int, shift: int) -> int:
    return ((value << shift) | (value >> (32 - shift))) & _MASK


def murmur3_32(data: bytes, seed: int = 0) -> int:
    """Compute the MurmurHash3 x86 32-bit hash of ``data``.

    Args:
        data: Bytes to hash.
        seed: Hash seed.

    Returns:
        An unsigned 32-bit integer.

    """
    length = len(data)
    h1 = seed & _MASK
    rounded_end = length & ~0x3

    for i in range(0, rounded_end, 4):
        k1 = int.from_bytes(data[i : i + 4], "little")
        k1 = (k1 * _C1) & _MASK
        k1 = _rotl32(k1, 15)
        k1 = (k1 * _C2) & _MASK

        h1 ^= k1
        h1 = _rotl32(h1, 13)
        h1 = (h1 * 5 + 0xE6546B64) & _MASK

    k1 = 0
    tail = length & 0x3
    if tail == 3:
        k1 ^= data[rounded_end + 2] << 16
    if tail >= 2:
        k1 ^= data[rounded_end + 1] << 8
    if tail >= 1:
        k1 ^= data[rounded_end]
        k1 = (k1 * _C1) & _MASK
        k1 = _rotl32(k1, 15)
        k1 = (k1 * _C2) & _MASK
        h1 ^= k1

    h1 ^= length
    h1 ^= h1 >> 16
    h1 = (h1 * 0x85EBCA6B) & _MASK
    h1 ^= h1 >> 13
    h1 = (h1 * 0xC2B2AE35) & _MASK
    h1 ^= h1 >> 16
    return h1


def bucket_for(flag_key: str, identity: str, buckets: int = 100) -> int:
    """Map ``flag_key + identity`` onto one of ``buckets`` stable buckets.

    Args:
        flag_key: The flag being evaluated. Salts the hash so different flags
            bucket the same identity independently.
        identity: The identity string (user id followed by visitor id).
        buckets: Number of buckets.

    Returns:
        A bucket index in ``range(buckets)``.

    """
    return murmur3_32(f"{flag_key}{identity}".encode()) % buckets
