"""Bit manipulation helpers for arrays of 64-bit words."""

from __future__ import annotations

import struct
from typing import Sequence

__all__ = [
    "WORD_SIZE",
    "MASK64",
    "select_in_byte",
    "select64",
    "popcount",
    "trailing_zeros",
    "leading_zeros",
    "popcount_block",
    "read_bit",
    "set_bit",
    "align",
    "words_to_bytes",
    "bytes_to_words",
    "u32s_to_bytes",
    "bytes_to_u32s",
]

WORD_SIZE = 64
MASK64 = (1 << 64) - 1

_ONES_STEP4 = 0x1111111111111111
_ONES_STEP8 = 0x0101010101010101
_MSBS_STEP8 = 0x80 * _ONES_STEP8


def popcount(x: int) -> int:
    """Number of set bits in ``x``."""
    return x.bit_count()


def trailing_zeros(x: int) -> int:
    """Number of trailing zero bits of a 64-bit word; 64 for zero."""
    x &= MASK64
    if x == 0:
        return WORD_SIZE
    return (x & -x).bit_length() - 1


def leading_zeros(x: int) -> int:
    """Number of leading zero bits of a 64-bit word; 64 for zero."""
    return WORD_SIZE - (x & MASK64).bit_length()


def _find_first_set(x: int) -> int:
    return trailing_zeros(x) + 1


def select_in_byte(i: int, j: int) -> int:
    """Position of the ``j``-th (0-based) set bit of byte ``i``, or 8 if absent."""
    r = 0
    for _ in range(j):
        s = _find_first_set(i)
        r += s
        i >>= s
    if i == 0:
        return 8
    return r + _find_first_set(i) - 1


_SELECT_IN_BYTE_LUT = tuple(
    tuple(select_in_byte(i, j) for j in range(8)) for i in range(256)
)


def select64(x: int, nth: int) -> int:
    """Position (0-based) of the ``nth`` (1-based) set bit of the word ``x``."""
    x &= MASK64
    if not 1 <= nth <= popcount(x):
        raise ValueError(f"word has no set bit of rank {nth}")
    k = nth - 1
    s = x
    s = (s - ((s & (0xA * _ONES_STEP4)) >> 1)) & MASK64
    s = (s & (0x3 * _ONES_STEP4)) + ((s >> 2) & (0x3 * _ONES_STEP4))
    s = (s + (s >> 4)) & (0xF * _ONES_STEP8)
    byte_sums = (s * _ONES_STEP8) & MASK64

    step8 = (k * _ONES_STEP8) & MASK64
    geq_k_step8 = (((step8 | _MSBS_STEP8) - byte_sums) & MASK64) & _MSBS_STEP8
    place = popcount(geq_k_step8) * 8
    byte_rank = k - ((((byte_sums << 8) & MASK64) >> place) & 0xFF)
    return place + _SELECT_IN_BYTE_LUT[(x >> place) & 0xFF][byte_rank]


def popcount_block(words: Sequence[int], off: int, nbits: int) -> int:
    """Count set bits among the first ``nbits`` bits starting at word ``off``."""
    if nbits == 0:
        return 0
    last_word = (nbits - 1) // WORD_SIZE
    last_bits = (nbits - 1) % WORD_SIZE
    total = sum(popcount(w) for w in words[off : off + last_word])
    last = (words[off + last_word] << (WORD_SIZE - 1 - last_bits)) & MASK64
    return total + popcount(last)


def read_bit(words: Sequence[int], pos: int) -> bool:
    """Tell whether bit ``pos`` is set."""
    return bool(words[pos // WORD_SIZE] & (1 << (pos % WORD_SIZE)))


def set_bit(words: list[int], pos: int) -> None:
    """Set bit ``pos`` in place."""
    words[pos // WORD_SIZE] |= 1 << (pos % WORD_SIZE)


def align(off: int) -> int:
    """Round ``off`` up to a multiple of 8."""
    return (off + 7) & ~7


def words_to_bytes(words: Sequence[int]) -> bytes:
    """Little-endian encoding of 64-bit words."""
    return struct.pack(f"<{len(words)}Q", *words)


def bytes_to_words(buf) -> list[int]:
    """Decode little-endian 64-bit words."""
    return list(struct.unpack(f"<{len(buf) // 8}Q", buf[: len(buf) // 8 * 8]))


def u32s_to_bytes(values: Sequence[int]) -> bytes:
    """Little-endian encoding of 32-bit integers."""
    return struct.pack(f"<{len(values)}I", *values)


def bytes_to_u32s(buf) -> list[int]:
    """Decode little-endian 32-bit integers."""
    return list(struct.unpack(f"<{len(buf) // 4}I", buf[: len(buf) // 4 * 4]))