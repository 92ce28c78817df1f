import pytest
from hypothesis import given, strategies as st

from burrow.surf.vectors import (
    COULD_BE_POSITIVE,
    LABEL_TERMINATOR,
    LabelVector,
    PrefixVector,
    SuffixVector,
    construct_hash_suffix,
    construct_real_suffix,
    construct_suffix,
    extract_real_suffix,
    fingerprint64,
)


def _label_vec():
    labels = [b"\x01", b"\x02\x03", b"\x04\x05\x06", bytes([LABEL_TERMINATOR, 7, 8, 9])]
    return LabelVector.from_levels(labels, 0, len(labels))


@pytest.mark.parametrize(
    "k,start,size,pos", [(1, 0, 1, 0), (3, 0, 5, 2), (5, 3, 7, 4), (7, 6, 8, 7)]
)
def test_label_search(k, start, size, pos):
    assert _label_vec().search(k, start, size) == (pos, True)


def test_label_search_missing():
    assert _label_vec().search(9, 0, 3) == (0, False)


def test_label_search_greater_than():
    v = _label_vec()
    assert v.search_greater_than(7, 6, 4) == (8, True)
    assert v.search_greater_than(9, 6, 4) == (9, False)


def test_label_round_trip():
    v = _label_vec()
    data = v.to_bytes()
    assert len(data) == v.marshal_size()
    back, rest = LabelVector.unmarshal(data + b"xy")
    assert back == v
    assert bytes(rest) == b"xy"


@given(st.binary(min_size=0, max_size=100))
def test_fingerprint_deterministic(data):
    h = fingerprint64(data)
    assert h == fingerprint64(bytes(data))
    assert 0 <= h < 1 << 64


def test_real_suffix_pinned():
    assert construct_real_suffix(b"\x01\x02", 0, 16) == 0x0102
    assert construct_real_suffix(b"\x01", 0, 16) == 0
    assert construct_real_suffix(b"\xf0", 0, 4) == 0xF


def test_hash_suffix_width():
    for key in (b"a", b"hello", b"x" * 80):
        assert construct_hash_suffix(key, 13) < 1 << 13
        assert construct_suffix(key, 0, 0, 13) == construct_hash_suffix(key, 13)


def test_extract_real_suffix():
    assert extract_real_suffix(0xABCD, 8) == 0xCD


def _suffix_vec(hash_len, real_len, keys):
    width = hash_len + real_len
    words = [0] * ((width * len(keys)) // 64 + 2)
    for i, k in enumerate(keys):
        s = construct_suffix(k, 1, real_len, hash_len)
        pos = i * width
        value = s << (pos % 64)
        words[pos // 64] |= value & ((1 << 64) - 1)
        words[pos // 64 + 1] |= value >> 64
    return SuffixVector.from_levels(hash_len, real_len, [words], [width * len(keys)])


@pytest.mark.parametrize("hash_len,real_len", [(4, 0), (0, 16), (8, 8), (32, 0)])
def test_suffix_equality_and_round_trip(hash_len, real_len):
    keys = [b"aabcd", b"abbce", b"acxyz"]
    v = _suffix_vec(hash_len, real_len, keys)
    for i, k in enumerate(keys):
        assert v.read(i) == construct_suffix(k, 1, real_len, hash_len)
        assert v.check_equality(i, k, 1)
    back, rest = SuffixVector.unmarshal(v.to_bytes())
    assert back.to_bytes() == v.to_bytes()
    assert len(rest) == 0
    assert not v.check_equality(len(keys) + 5, keys[0], 1)


def test_suffix_compare():
    v = _suffix_vec(0, 8, [b"am"])
    assert v.compare(b"aa", 0, 1) == 1
    assert v.compare(b"az", 0, 1) == -1
    assert v.compare(b"am", 0, 1) == COULD_BE_POSITIVE


def test_prefix_vector():
    v = PrefixVector.from_levels([[0b101]], [3], [[b"ab", b"cd"]])
    assert v.get_prefix(0) == b"ab"
    assert v.get_prefix(1) == b""
    assert v.get_prefix(2) == b"cd"
    assert v.check_prefix(b"xabz", 1, 0) == (2, True)
    assert v.check_prefix(b"xaz", 1, 0) == (0, False)
    assert v.check_prefix(b"x", 0, 1) == (0, True)
    data = v.to_bytes()
    assert len(data) == v.marshal_size()
    back, rest = PrefixVector.unmarshal(data + b"\x00" * 8)
    assert back.get_prefix(2) == b"cd"
    assert back.prefix_offsets == [0, 2]
    assert len(rest) == 8