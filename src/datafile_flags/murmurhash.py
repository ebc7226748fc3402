"""MurmurHash3 (x86, 32-bit).

Implemented in pure Python so bucketing stays identical to every other SDK
reading the same datafile. All arithmetic wraps at 32 bits.
"""

from __future__ import annotations

__all__ = ["murmur3_32"]

_MASK_32 = 0xFFFFFFFF
_C1 = 0xCC9E2D51
_C2 = 0x1B873593


def _rotl32(value: int, shift: int) -> int:
    return ((value << shift) | (value >> (32 - shift))) & _MASK_32


def _mix_k1(k1: int) -> int:
    k1 = (k1 * _C1) & _MASK_32
    k1 = _rotl32(k1, 15)
    return (k1 * _C2) & _MASK_32


def murmur3_32(data: bytes, seed: int = 0) -> int:
    """Hash ``data`` with MurmurHash3 x86 32-bit.

    Args:
        data: Bytes to hash.
        seed: Hash seed.

    Returns:
        Unsigned 32-bit hash value.
    """
    length = len(data)
    h1 = seed & _MASK_32
    rounded_end = length & ~0x3

    for i in range(0, rounded_end, 4):
        k1 = data[i] | (data[i + 1] << 8) | (data[i + 2] << 16) | (data[i + 3] << 24)
        h1 ^= _mix_k1(k1)
        h1 = _rotl32(h1, 13)
        h1 = (h1 * 5 + 0xE6546B64) & _MASK_32

    # tail
    remainder = length & 0x3
    k1 = 0
    if remainder >= 3:
        k1 ^= data[rounded_end + 2] << 16
    if remainder >= 2:
        k1 ^= data[rounded_end + 1] << 8
    if remainder >= 1:
        k1 ^= data[rounded_end]
        h1 ^= _mix_k1(k1)

    # finalization
    h1 ^= length
    h1 ^= h1 >> 16
    h1 = (h1 * 0x85EBCA6B) & _MASK_32
    h1 ^= h1 >> 13
    h1 = (h1 * 0xC2B2AE35) & _MASK_32
    h1 ^= h1 >> 16

    return h1
