"""Label, suffix and prefix vectors of a succinct range filter."""

from __future__ import annotations

import bisect
import struct
from dataclasses import dataclass, field
from typing import Sequence

from burrow.surf.bits import MASK64, WORD_SIZE, align
from burrow.surf.bits import bytes_to_u32s, bytes_to_words, u32s_to_bytes, words_to_bytes
from burrow.surf.bitvec import BitVector, RankVector, _merge_levels, sparse_rank_vector

__all__ = [
    "LABEL_TERMINATOR",
    "HASH_SHIFT",
    "COULD_BE_POSITIVE",
    "LabelVector",
    "SuffixVector",
    "PrefixVector",
    "fingerprint64",
    "construct_suffix",
    "construct_hash_suffix",
    "construct_real_suffix",
    "construct_mixed_suffix",
    "extract_real_suffix",
]

LABEL_TERMINATOR = 0xFF
HASH_SHIFT = 7
COULD_BE_POSITIVE = 2

_U32 = struct.Struct("<I")
_U32_PAIR = struct.Struct("<II")
_U32_TRIPLE = struct.Struct("<III")


def _padding(size: int) -> bytes:
    return b"\x00" * (align(size) - size)


# ---------------------------------------------------------------- fingerprint

_K0 = 0xC3A5C85C97CB3127
_K1 = 0xB492B66BE9E9B3E5
_K2 = 0x9AE16A3B2F90404F


def _f64(s: bytes, i: int) -> int:
    return int.from_bytes(s[i : i + 8], "little")


def _f32(s: bytes, i: int) -> int:
    return int.from_bytes(s[i : i + 4], "little")


def _rot(v: int, shift: int) -> int:
    v &= MASK64
    return ((v >> shift) | (v << (64 - shift))) & MASK64


def _shift_mix(v: int) -> int:
    v &= MASK64
    return v ^ (v >> 47)


def _hash_len16(u: int, v: int, mul: int) -> int:
    a = ((u ^ v) * mul) & MASK64
    a ^= a >> 47
    b = ((v ^ a) * mul) & MASK64
    b ^= b >> 47
    return (b * mul) & MASK64


def _hash_len_0_to_16(s: bytes) -> int:
    n = len(s)
    if n >= 8:
        mul = _K2 + n * 2
        a = (_f64(s, 0) + _K2) & MASK64
        b = _f64(s, n - 8)
        c = (_rot(b, 37) * mul + a) & MASK64
        d = ((_rot(a, 25) + b) * mul) & MASK64
        return _hash_len16(c, d, mul)
    if n >= 4:
        mul = _K2 + n * 2
        a = _f32(s, 0)
        return _hash_len16(n + (a << 3), _f32(s, n - 4), mul)
    if n > 0:
        y = (s[0] + (s[n >> 1] << 8)) & 0xFFFFFFFF
        z = (n + (s[n - 1] << 2)) & 0xFFFFFFFF
        return (_shift_mix(((y * _K2) ^ (z * _K0)) & MASK64) * _K2) & MASK64
    return _K2


def _hash_len_17_to_32(s: bytes) -> int:
    n = len(s)
    mul = _K2 + n * 2
    a = (_f64(s, 0) * _K1) & MASK64
    b = _f64(s, 8)
    c = (_f64(s, n - 8) * mul) & MASK64
    d = (_f64(s, n - 16) * _K2) & MASK64
    return _hash_len16(
        _rot(a + b, 43) + _rot(c, 30) + d, a + _rot(b + _K2, 18) + c, mul
    )


def _hash_len_33_to_64(s: bytes) -> int:
    n = len(s)
    mul = _K2 + n * 2
    a = (_f64(s, 0) * _K2) & MASK64
    b = _f64(s, 8)
    c = (_f64(s, n - 8) * mul) & MASK64
    d = (_f64(s, n - 16) * _K2) & MASK64
    y = (_rot(a + b, 43) + _rot(c, 30) + d) & MASK64
    z = _hash_len16(y, a + _rot(b + _K2, 18) + c, mul)
    e = (_f64(s, 16) * mul) & MASK64
    f = _f64(s, 24)
    g = ((y + _f64(s, n - 32)) * mul) & MASK64
    h = ((z + _f64(s, n - 24)) * mul) & MASK64
    return _hash_len16(
        _rot(e + f, 43) + _rot(g, 30) + h, e + _rot(f + a, 18) + g, mul
    )


def _weak_hash(s: bytes, i: int, a: int, b: int) -> tuple[int, int]:
    w, x, y, z = _f64(s, i), _f64(s, i + 8), _f64(s, i + 16), _f64(s, i + 24)
    a = (a + w) & MASK64
    b = _rot(b + a + z, 21)
    c = a
    a = (a + x + y) & MASK64
    b = (b + _rot(a, 44)) & MASK64
    return (a + z) & MASK64, (b + c) & MASK64


def fingerprint64(data: bytes) -> int:
    """64-bit FarmHash fingerprint of ``data``."""
    s = bytes(data)
    n = len(s)
    if n <= 16:
        return _hash_len_0_to_16(s)
    if n <= 32:
        return _hash_len_17_to_32(s)
    if n <= 64:
        return _hash_len_33_to_64(s)

    seed = 81
    x = seed
    y = (seed * _K1 + 113) & MASK64
    z = (_shift_mix(y * _K2 + 113) * _K2) & MASK64
    v = (0, 0)
    w = (0, 0)
    x = (x * _K2 + _f64(s, 0)) & MASK64
    end = ((n - 1) // 64) * 64
    last64 = end + ((n - 1) & 63) - 63
    for p in range(0, end, 64):
        x = (_rot(x + y + v[0] + _f64(s, p + 8), 37) * _K1) & MASK64
        y = (_rot(y + v[1] + _f64(s, p + 48), 42) * _K1) & MASK64
        x ^= w[1]
        y = (y + v[0] + _f64(s, p + 40)) & MASK64
        z = (_rot(z + w[0], 33) * _K1) & MASK64
        v = _weak_hash(s, p, (v[1] * _K1) & MASK64, x + w[0])
        w = _weak_hash(s, p + 32, z + w[1], y + _f64(s, p + 16))
        z, x = x, z
    mul = _K1 + ((z & 0xFF) << 1)
    p = last64
    w0 = (w[0] + ((n - 1) & 63)) & MASK64
    v0 = (v[0] + w0) & MASK64
    w0 = (w0 + v0) & MASK64
    v = (v0, v[1])
    w = (w0, w[1])
    x = (_rot(x + y + v[0] + _f64(s, p + 8), 37) * mul) & MASK64
    y = (_rot(y + v[1] + _f64(s, p + 48), 42) * mul) & MASK64
    x ^= (w[1] * 9) & MASK64
    y = (y + v[0] * 9 + _f64(s, p + 40)) & MASK64
    z = (_rot(z + w[0], 33) * mul) & MASK64
    v = _weak_hash(s, p, (v[1] * mul) & MASK64, x + w[0])
    w = _weak_hash(s, p + 32, z + w[1], y + _f64(s, p + 16))
    x, z = z, x
    return _hash_len16(
        _hash_len16(v[0], w[0], mul) + _shift_mix(y) * _K0 + z,
        _hash_len16(v[1], w[1], mul) + x,
        mul,
    )


# ---------------------------------------------------------------- suffixes


def construct_hash_suffix(key: bytes, hash_suffix_len: int) -> int:
    """Hash suffix of ``hash_suffix_len`` bits taken from the key fingerprint."""
    fp = fingerprint64(key)
    fp = (fp << (WORD_SIZE - hash_suffix_len - HASH_SHIFT)) & MASK64
    return fp >> (WORD_SIZE - hash_suffix_len)


def construct_real_suffix(key: bytes, level: int, real_suffix_len: int) -> int:
    """Real key bits following ``level``; zero if the key is too short."""
    klen = len(key)
    if klen < level or (klen - level) * 8 < real_suffix_len:
        return 0
    suffix = 0
    nbytes = real_suffix_len // 8
    if nbytes > 0:
        suffix += key[level]
        for i in range(1, nbytes):
            suffix = (suffix << 8) + key[i]
    off = real_suffix_len % 8
    if off > 0:
        suffix <<= off
        suffix += key[level + nbytes] >> (8 - off)
    return suffix & MASK64


def construct_mixed_suffix(
    key: bytes, level: int, real_suffix_len: int, hash_suffix_len: int
) -> int:
    """Hash suffix followed by real suffix bits."""
    hs = construct_hash_suffix(key, hash_suffix_len)
    rs = construct_real_suffix(key, level, real_suffix_len)
    return ((hs << real_suffix_len) | rs) & MASK64


def construct_suffix(
    key: bytes, level: int, real_suffix_len: int, hash_suffix_len: int
) -> int:
    """Suffix of the configured kind for ``key``."""
    if hash_suffix_len == 0 and real_suffix_len == 0:
        return 0
    if real_suffix_len == 0:
        return construct_hash_suffix(key, hash_suffix_len)
    if hash_suffix_len == 0:
        return construct_real_suffix(key, level, real_suffix_len)
    return construct_mixed_suffix(key, level, real_suffix_len, hash_suffix_len)


def extract_real_suffix(suffix: int, suffix_len: int) -> int:
    """Keep the low ``suffix_len`` bits."""
    return suffix & ((1 << suffix_len) - 1)


# ---------------------------------------------------------------- labels


@dataclass
class LabelVector:
    """Labels of the sparse levels, one byte each."""

    labels: bytes

    @classmethod
    def from_levels(cls, labels_per_level, start_level: int, end_level: int) -> "LabelVector":
        """Concatenate labels of levels ``start_level..end_level`` plus one spare byte."""
        body = b"".join(bytes(labels_per_level[lv]) for lv in range(start_level, end_level))
        return cls(labels=body + b"\x00")

    def get_label(self, pos: int) -> int:
        """Label at ``pos``."""
        return self.labels[pos]

    def search(self, k: int, off: int, size: int) -> tuple[int, bool]:
        """Find label ``k`` in the node at ``off``; return its position and success."""
        start = off
        if size > 1 and self.labels[start] == LABEL_TERMINATOR:
            start += 1
            size -= 1
        end = min(start + size, len(self.labels))
        result = self.labels.find(bytes([k]), start, end)
        if result < 0:
            return off, False
        return result, True

    def search_greater_than(self, label: int, pos: int, size: int) -> tuple[int, bool]:
        """Find the first label greater than ``label`` in the node at ``pos``."""
        if size > 1 and self.labels[pos] == LABEL_TERMINATOR:
            pos += 1
            size -= 1
        result = bisect.bisect_right(self.labels[pos : pos + size], label)
        if result == size:
            return pos + result - 1, False
        return pos + result, True

    def _raw_marshal_size(self) -> int:
        return 4 + len(self.labels)

    def marshal_size(self) -> int:
        """Size of the serialized form, padded to 8 bytes."""
        return align(self._raw_marshal_size())

    def to_bytes(self) -> bytes:
        """Serialize the vector."""
        return _U32.pack(len(self.labels)) + self.labels + _padding(self._raw_marshal_size())

    @classmethod
    def unmarshal(cls, buf) -> tuple["LabelVector", memoryview]:
        """Decode a vector from ``buf``; return it and the remaining bytes."""
        view = memoryview(buf)
        (length,) = _U32.unpack_from(view)
        labels = bytes(view[4 : 4 + length])
        return cls(labels=labels), view[align(4 + length) :]


# ---------------------------------------------------------------- suffix vector


@dataclass
class SuffixVector(BitVector):
    """Packed per-key suffixes used to cut false positives."""

    hash_suffix_len: int = 0
    real_suffix_len: int = 0

    @classmethod
    def from_levels(
        cls, hash_len: int, real_len: int, bits_per_level, num_bits_per_level
    ) -> "SuffixVector":
        """Concatenate per-level suffix bits."""
        num_bits, words = _merge_levels(bits_per_level, num_bits_per_level)
        return cls(
            num_bits=num_bits, bits=words, hash_suffix_len=hash_len, real_suffix_len=real_len
        )

    @property
    def suffix_len(self) -> int:
        return self.hash_suffix_len + self.real_suffix_len

    def _has_suffix(self) -> bool:
        return self.real_suffix_len != 0 or self.hash_suffix_len != 0

    def _is_real_suffix(self) -> bool:
        return self.real_suffix_len != 0 and self.hash_suffix_len == 0

    def _is_mixed_suffix(self) -> bool:
        return self.real_suffix_len != 0 and self.hash_suffix_len != 0

    def read(self, idx: int) -> int:
        """Suffix stored at index ``idx``."""
        suffix_len = self.suffix_len
        bit_pos = idx * suffix_len
        word_off, bits_off = divmod(bit_pos, WORD_SIZE)
        result = (self.bits[word_off] >> bits_off) & ((1 << suffix_len) - 1)
        if bits_off + suffix_len > WORD_SIZE:
            left = WORD_SIZE - bits_off
            right = suffix_len - left
            result |= (self.bits[word_off + 1] & ((1 << right) - 1)) << left
        return result & MASK64

    def check_equality(self, idx: int, key: bytes, level: int) -> bool:
        """Tell whether the suffix at ``idx`` may belong to ``key``."""
        if not self._has_suffix():
            return True
        if idx * self.suffix_len >= self.num_bits:
            return False
        suffix = self.read(idx)
        if self._is_real_suffix():
            if suffix == 0:
                return True
            if len(key) < level or (len(key) - level) * 8 < self.real_suffix_len:
                return False
        expected = construct_suffix(key, level, self.real_suffix_len, self.hash_suffix_len)
        return suffix == expected

    def compare(self, key: bytes, idx: int, level: int) -> int:
        """Compare stored real suffix with ``key``'s; COULD_BE_POSITIVE if unknown."""
        if idx * self.suffix_len >= self.num_bits or self.real_suffix_len == 0:
            return COULD_BE_POSITIVE
        suffix = self.read(idx)
        if self._is_mixed_suffix():
            suffix = extract_real_suffix(suffix, self.real_suffix_len)
        expected = construct_real_suffix(key, level, self.real_suffix_len)
        if suffix == 0 or expected == 0:
            return COULD_BE_POSITIVE
        if suffix < expected:
            return -1
        if suffix == expected:
            return COULD_BE_POSITIVE
        return 1

    def _raw_marshal_size(self) -> int:
        return 12 + self._bits_size()

    def marshal_size(self) -> int:
        """Size of the serialized form, padded to 8 bytes."""
        return align(self._raw_marshal_size())

    def to_bytes(self) -> bytes:
        """Serialize the vector."""
        return (
            _U32_TRIPLE.pack(self.num_bits, self.hash_suffix_len, self.real_suffix_len)
            + words_to_bytes(self.bits)
            + _padding(self._raw_marshal_size())
        )

    @classmethod
    def unmarshal(cls, buf) -> tuple["SuffixVector", memoryview]:
        """Decode a vector from ``buf``; return it and the remaining bytes."""
        view = memoryview(buf)
        num_bits, hash_len, real_len = _U32_TRIPLE.unpack_from(view)
        cursor = 12
        vec = cls(num_bits=num_bits, bits=[], hash_suffix_len=hash_len, real_suffix_len=real_len)
        if vec._has_suffix():
            size = vec._bits_size()
            vec.bits = bytes_to_words(view[cursor : cursor + size])
            cursor += size
        return vec, view[align(cursor) :]


# ---------------------------------------------------------------- prefix vector


@dataclass
class PrefixVector:
    """Compressed path prefixes of trie nodes."""

    has_prefix_vec: RankVector
    prefix_offsets: list[int] = field(default_factory=list)
    prefix_data: bytes = b""

    @classmethod
    def from_levels(cls, has_prefix_bits, num_nodes_per_level, prefixes) -> "PrefixVector":
        """Build from per-level has-prefix bits and prefix lists."""
        vec = sparse_rank_vector(has_prefix_bits, num_nodes_per_level)
        offsets = []
        data = bytearray()
        for level in prefixes:
            for prefix in level:
                offsets.append(len(data))
                data += prefix
        return cls(has_prefix_vec=vec, prefix_offsets=offsets, prefix_data=bytes(data))

    def get_prefix(self, node_id: int) -> bytes:
        """Prefix of node ``node_id``; empty if it has none."""
        if not self.has_prefix_vec.is_set(node_id):
            return b""
        prefix_id = self.has_prefix_vec.rank(node_id) - 1
        start = self.prefix_offsets[prefix_id]
        if prefix_id + 1 < len(self.prefix_offsets):
            end = self.prefix_offsets[prefix_id + 1]
        else:
            end = len(self.prefix_data)
        return self.prefix_data[start:end]

    def check_prefix(self, key: bytes, depth: int, node_id: int) -> tuple[int, bool]:
        """Match the node's prefix at ``key[depth:]``; return its length and success."""
        prefix = self.get_prefix(node_id)
        if not prefix:
            return 0, True
        if depth + len(prefix) > len(key):
            return 0, False
        if bytes(key[depth : depth + len(prefix)]) != prefix:
            return 0, False
        return len(prefix), True

    def _raw_marshal_size(self) -> int:
        return (
            self.has_prefix_vec.marshal_size()
            + 8
            + len(self.prefix_offsets) * 4
            + len(self.prefix_data)
        )

    def marshal_size(self) -> int:
        """Size of the serialized form, padded to 8 bytes."""
        return align(self._raw_marshal_size())

    def to_bytes(self) -> bytes:
        """Serialize the vector."""
        return b"".join(
            (
                self.has_prefix_vec.to_bytes(),
                _U32_PAIR.pack(len(self.prefix_offsets) * 4, len(self.prefix_data)),
                u32s_to_bytes(self.prefix_offsets),
                self.prefix_data,
                _padding(self._raw_marshal_size()),
            )
        )

    @classmethod
    def unmarshal(cls, buf) -> tuple["PrefixVector", memoryview]:
        """Decode a vector from ``buf``; return it and the remaining bytes."""
        view = memoryview(buf)
        has_vec, rest = RankVector.unmarshal(view)
        offsets_len, data_len = _U32_PAIR.unpack_from(rest)
        cursor = 8
        offsets = bytes_to_u32s(rest[cursor : cursor + offsets_len])
        cursor += offsets_len
        data = bytes(rest[cursor : cursor + data_len])
        vec = cls(has_prefix_vec=has_vec, prefix_offsets=offsets, prefix_data=data)
        return vec, view[vec.marshal_size() :]