"""Succinct bit vectors with rank and select support, and fixed-size value arrays."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Sequence

from burrow.surf.bits import (
    MASK64,
    WORD_SIZE,
    align,
    bytes_to_u32s,
    bytes_to_words,
    leading_zeros,
    popcount,
    popcount_block,
    read_bit,
    select64,
    trailing_zeros,
    u32s_to_bytes,
    words_to_bytes,
)

__all__ = [
    "SELECT_SAMPLE_INTERVAL",
    "RANK_DENSE_BLOCK_SIZE",
    "RANK_SPARSE_BLOCK_SIZE",
    "BitVector",
    "ValueVector",
    "SelectVector",
    "RankVector",
    "dense_rank_vector",
    "sparse_rank_vector",
]

SELECT_SAMPLE_INTERVAL = 64
RANK_DENSE_BLOCK_SIZE = 64
RANK_SPARSE_BLOCK_SIZE = 512

_U32_PAIR = struct.Struct("<II")


def _num_words(num_bits: int) -> int:
    return (num_bits + WORD_SIZE - 1) // WORD_SIZE


def _padding(size: int) -> bytes:
    return b"\x00" * (align(size) - size)


def _merge_levels(
    bits_per_level: Sequence[Sequence[int]], num_bits_per_level: Sequence[int]
) -> tuple[int, list[int]]:
    """Concatenate per-level bit arrays into one packed word list."""
    num_bits = sum(num_bits_per_level)
    words = [0] * _num_words(num_bits)

    word_id = 0
    bit_shift = 0
    for level_bits, n in zip(bits_per_level, num_bits_per_level):
        if n == 0:
            continue
        complete = n // WORD_SIZE
        for word in level_bits[:complete]:
            words[word_id] |= (word << bit_shift) & MASK64
            word_id += 1
            if bit_shift > 0:
                words[word_id] |= word >> (WORD_SIZE - bit_shift)

        remain = n % WORD_SIZE
        if remain > 0:
            last = level_bits[complete]
            words[word_id] |= (last << bit_shift) & MASK64
            if bit_shift + remain <= WORD_SIZE:
                bit_shift = (bit_shift + remain) % WORD_SIZE
                if bit_shift == 0:
                    word_id += 1
            else:
                word_id += 1
                words[word_id] |= last >> (WORD_SIZE - bit_shift)
                bit_shift = bit_shift + remain - WORD_SIZE
    return num_bits, words


@dataclass
class BitVector:
    """A packed sequence of bits stored in 64-bit words."""

    num_bits: int
    bits: list[int]

    @classmethod
    def from_levels(cls, bits_per_level, num_bits_per_level) -> "BitVector":
        """Concatenate the bits of each level into one vector."""
        num_bits, words = _merge_levels(bits_per_level, num_bits_per_level)
        return cls(num_bits=num_bits, bits=words)

    def num_words(self) -> int:
        """Number of 64-bit words needed for the bits."""
        return _num_words(self.num_bits)

    def _bits_size(self) -> int:
        return self.num_words() * 8

    def is_set(self, pos: int) -> bool:
        """Tell whether bit ``pos`` is set."""
        return read_bit(self.bits, pos)

    def distance_to_next_set_bit(self, pos: int) -> int:
        """Distance from ``pos`` to the next set bit, or to the end of the vector."""
        distance = 1
        word_off = (pos + 1) // WORD_SIZE
        bits_off = (pos + 1) % WORD_SIZE

        if word_off >= len(self.bits):
            return 0

        test_bits = self.bits[word_off] >> bits_off
        if test_bits:
            return distance + trailing_zeros(test_bits)

        num_words = self.num_words()
        if word_off == num_words - 1:
            return self.num_bits - pos
        distance += WORD_SIZE - bits_off

        while word_off < num_words - 1:
            word_off += 1
            test_bits = self.bits[word_off]
            if test_bits:
                return distance + trailing_zeros(test_bits)
            distance += WORD_SIZE

        if word_off == num_words - 1 and self.num_bits % WORD_SIZE != 0:
            distance -= WORD_SIZE - self.num_bits % WORD_SIZE
        return distance

    def distance_to_prev_set_bit(self, pos: int) -> int:
        """Distance from ``pos`` back to the previous set bit, or past the start."""
        if pos == 0:
            return 1
        distance = 1
        word_off = (pos - 1) // WORD_SIZE
        bits_off = (pos - 1) % WORD_SIZE

        test_bits = (self.bits[word_off] << (WORD_SIZE - 1 - bits_off)) & MASK64
        if test_bits:
            return distance + leading_zeros(test_bits)
        distance += bits_off + 1

        while word_off > 0:
            word_off -= 1
            test_bits = self.bits[word_off]
            if test_bits:
                return distance + leading_zeros(test_bits)
            distance += WORD_SIZE
        return distance


@dataclass
class ValueVector:
    """An array of fixed-size values stored back to back."""

    data: bytes
    value_size: int

    @classmethod
    def from_levels(cls, values_per_level, value_size: int) -> "ValueVector":
        """Concatenate the values of each level."""
        return cls(data=b"".join(bytes(v) for v in values_per_level), value_size=value_size)

    def get(self, pos: int) -> bytes:
        """Return the value at index ``pos``."""
        off = pos * self.value_size
        return self.data[off : off + self.value_size]

    def _raw_marshal_size(self) -> int:
        return 8 + len(self.data)

    def marshal_size(self) -> int:
        """Size of the serialized form, padded to 8 bytes."""
        return align(self._raw_marshal_size())

    def to_bytes(self) -> bytes:
        """Serialize the vector."""
        return (
            _U32_PAIR.pack(len(self.data), self.value_size)
            + self.data
            + _padding(self._raw_marshal_size())
        )

    @classmethod
    def unmarshal(cls, buf) -> tuple["ValueVector", memoryview]:
        """Decode a vector from ``buf``; return it and the remaining bytes."""
        view = memoryview(buf)
        size, value_size = _U32_PAIR.unpack_from(view)
        cursor = 8
        data = bytes(view[cursor : cursor + size])
        cursor = align(cursor + size)
        return cls(data=data, value_size=value_size), view[cursor:]


@dataclass
class SelectVector(BitVector):
    """Bit vector answering "where is the n-th set bit" queries."""

    num_ones: int
    select_lut: list[int]

    @classmethod
    def from_levels(cls, bits_per_level, num_bits_per_level) -> "SelectVector":
        """Build the vector and its sampled select table."""
        num_bits, words = _merge_levels(bits_per_level, num_bits_per_level)
        lut = [0]
        sampled_ones = SELECT_SAMPLE_INTERVAL
        ones_upto_word = 0
        for i, word in enumerate(words):
            ones = popcount(word)
            while sampled_ones <= ones_upto_word + ones:
                diff = sampled_ones - ones_upto_word
                lut.append(i * WORD_SIZE + select64(word, diff))
                sampled_ones += SELECT_SAMPLE_INTERVAL
            ones_upto_word += ones
        return cls(num_bits=num_bits, bits=words, num_ones=ones_upto_word, select_lut=lut)

    def _lut_size(self) -> int:
        return (self.num_ones // SELECT_SAMPLE_INTERVAL + 1) * 4

    def select(self, rank: int) -> int:
        """Position (0-based) of the ``rank``-th (1-based) set bit."""
        if rank < 1:
            raise ValueError("rank is one-based")
        lut_idx = rank // SELECT_SAMPLE_INTERVAL
        rank_left = rank % SELECT_SAMPLE_INTERVAL
        if lut_idx == 0:
            rank_left -= 1

        pos = self.select_lut[lut_idx]
        if rank_left == 0:
            return pos

        word_off = pos // WORD_SIZE
        bits_off = pos % WORD_SIZE
        if bits_off == WORD_SIZE - 1:
            word_off += 1
            bits_off = 0
        else:
            bits_off += 1

        word = (self.bits[word_off] >> bits_off) << bits_off
        ones = popcount(word)
        while ones < rank_left:
            word_off += 1
            word = self.bits[word_off]
            rank_left -= ones
            ones = popcount(word)
        return word_off * WORD_SIZE + select64(word, rank_left)

    def _raw_marshal_size(self) -> int:
        return 8 + self._bits_size() + self._lut_size()

    def marshal_size(self) -> int:
        """Size of the serialized form, padded to 8 bytes."""
        return align(self._raw_marshal_size())

    def to_bytes(self) -> bytes:
        """Serialize the vector."""
        return b"".join(
            (
                _U32_PAIR.pack(self.num_bits, self.num_ones),
                words_to_bytes(self.bits),
                u32s_to_bytes(self.select_lut),
                _padding(self._raw_marshal_size()),
            )
        )

    @classmethod
    def unmarshal(cls, buf) -> tuple["SelectVector", memoryview]:
        """Decode a vector from ``buf``; return it and the remaining bytes."""
        view = memoryview(buf)
        num_bits, num_ones = _U32_PAIR.unpack_from(view)
        cursor = 8
        bits_size = _num_words(num_bits) * 8
        words = bytes_to_words(view[cursor : cursor + bits_size])
        cursor += bits_size
        lut_size = (num_ones // SELECT_SAMPLE_INTERVAL + 1) * 4
        lut = bytes_to_u32s(view[cursor : cursor + lut_size])
        cursor = align(cursor + lut_size)
        vec = cls(num_bits=num_bits, bits=words, num_ones=num_ones, select_lut=lut)
        return vec, view[cursor:]


@dataclass
class RankVector(BitVector):
    """Bit vector answering "how many set bits up to here" queries."""

    block_size: int
    rank_lut: list[int]

    @classmethod
    def from_levels(
        cls, block_size: int, bits_per_level, num_bits_per_level
    ) -> "RankVector":
        """Build the vector with a rank table sampled every ``block_size`` bits."""
        num_bits, words = _merge_levels(bits_per_level, num_bits_per_level)
        words_per_block = block_size // WORD_SIZE
        num_blocks = num_bits // block_size + 1
        lut = []
        total = 0
        for block in range(num_blocks - 1):
            lut.append(total)
            total += popcount_block(words, block * words_per_block, block_size)
        lut.append(total)
        return cls(num_bits=num_bits, bits=words, block_size=block_size, rank_lut=lut)

    def _lut_size(self) -> int:
        return (self.num_bits // self.block_size + 1) * 4

    def rank(self, pos: int) -> int:
        """Number of set bits in positions ``0..pos`` inclusive."""
        words_per_block = self.block_size // WORD_SIZE
        block_off = pos // self.block_size
        bits_off = pos % self.block_size
        return self.rank_lut[block_off] + popcount_block(
            self.bits, block_off * words_per_block, bits_off + 1
        )

    def _raw_marshal_size(self) -> int:
        return 8 + self._bits_size() + self._lut_size()

    def marshal_size(self) -> int:
        """Size of the serialized form, padded to 8 bytes."""
        return align(self._raw_marshal_size())

    def to_bytes(self) -> bytes:
        """Serialize the vector."""
        return b"".join(
            (
                _U32_PAIR.pack(self.num_bits, self.block_size),
                words_to_bytes(self.bits),
                u32s_to_bytes(self.rank_lut),
                _padding(self._raw_marshal_size()),
            )
        )

    @classmethod
    def unmarshal(cls, buf) -> tuple["RankVector", memoryview]:
        """Decode a vector from ``buf``; return it and the remaining bytes."""
        view = memoryview(buf)
        num_bits, block_size = _U32_PAIR.unpack_from(view)
        if block_size == 0:
            raise ValueError("rank vector has zero block size")
        cursor = 8
        bits_size = _num_words(num_bits) * 8
        words = bytes_to_words(view[cursor : cursor + bits_size])
        cursor += bits_size
        lut_size = (num_bits // block_size + 1) * 4
        lut = bytes_to_u32s(view[cursor : cursor + lut_size])
        cursor = align(cursor + lut_size)
        vec = cls(num_bits=num_bits, bits=words, block_size=block_size, rank_lut=lut)
        return vec, view[cursor:]


def dense_rank_vector(bits_per_level, num_bits_per_level) -> RankVector:
    """Rank vector with the small block size used by dense levels."""
    return RankVector.from_levels(RANK_DENSE_BLOCK_SIZE, bits_per_level, num_bits_per_level)


def sparse_rank_vector(bits_per_level, num_bits_per_level) -> RankVector:
    """Rank vector with the large block size used by sparse levels."""
    return RankVector.from_levels(RANK_SPARSE_BLOCK_SIZE, bits_per_level, num_bits_per_level)