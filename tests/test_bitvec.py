import pytest

from burrow.surf.bits import set_bit
from burrow.surf.bitvec import (
    BitVector,
    RankVector,
    SelectVector,
    ValueVector,
    dense_rank_vector,
    sparse_rank_vector,
)


def construct_bits(sets):
    nbits = sets[-1] + 1
    words = [0] * ((nbits + 63) // 64)
    for i in sets:
        set_bit(words, i)
    return words, nbits


def build_levels(case):
    bits_per_level = []
    num_bits_per_level = []
    for positions in case:
        words, nbits = construct_bits(positions)
        bits_per_level.append(words)
        num_bits_per_level.append(nbits)
    return bits_per_level, num_bits_per_level


def global_positions(case):
    result = []
    off = 0
    for positions in case:
        result.extend(off + p for p in positions)
        off += positions[-1] + 1
    return result


BIT_VECTOR_CASES = [
    [
        [0, 1, 24, 60],
        [0, 31, 127],
        [4],
    ],
    [
        [23, 44],
        [0, 122, 123, 456],
        [0, 1, 2, 3, 4, 5, 62, 63],
        [127, 128, 129, 255, 257],
    ],
]

SELECT_VECTOR_CASES = [
    [
        [0, 1, 24, 60],
        [0, 31, 127],
        [4],
    ],
    [
        [0, 23, 44],
        [0, 122, 123, 456],
        [0, 1, 2, 3, 4, 5, 62, 63],
        [127, 128, 129, 255, 257],
    ],
]


@pytest.mark.parametrize("case", BIT_VECTOR_CASES)
def test_bit_vector(case):
    bits_per_level, num_bits_per_level = build_levels(case)
    vec = BitVector.from_levels(bits_per_level, num_bits_per_level)
    assert vec.num_bits == sum(num_bits_per_level)

    off = 0
    for level, positions in enumerate(case):
        for i, pos in enumerate(positions):
            idx = off + pos
            assert vec.is_set(idx)

            if i == len(positions) - 1:
                expected = case[level + 1][0] + 1 if level < len(case) - 1 else 1
            else:
                expected = positions[i + 1] - pos
            assert vec.distance_to_next_set_bit(idx) == expected

            expected = pos + 1 if i == 0 else pos - positions[i - 1]
            assert vec.distance_to_prev_set_bit(idx) == expected
        off += num_bits_per_level[level]


@pytest.mark.parametrize("case", BIT_VECTOR_CASES)
def test_bit_vector_only_listed_bits_set(case):
    bits_per_level, num_bits_per_level = build_levels(case)
    vec = BitVector.from_levels(bits_per_level, num_bits_per_level)
    expected = set(global_positions(case))
    actual = {p for p in range(vec.num_bits) if vec.is_set(p)}
    assert actual == expected
    assert vec.num_words() == (vec.num_bits + 63) // 64


def test_bit_vector_skips_empty_level():
    vec = BitVector.from_levels([[0b1], [], [0b10]], [1, 0, 2])
    assert vec.num_bits == 3
    assert [vec.is_set(p) for p in range(3)] == [True, False, True]


@pytest.mark.parametrize("case", SELECT_VECTOR_CASES)
def test_select_vector(case):
    bits_per_level, num_bits_per_level = build_levels(case)
    vec = SelectVector.from_levels(bits_per_level, num_bits_per_level)
    positions = global_positions(case)
    assert vec.num_ones == len(positions)
    for rank, idx in enumerate(positions, start=1):
        assert vec.select(rank) == idx


def test_select_vector_many_ones():
    positions = [0] + list(range(3, 1000, 3))
    words, nbits = construct_bits(positions)
    vec = SelectVector.from_levels([words], [nbits])
    assert len(vec.select_lut) == vec.num_ones // 64 + 1
    for rank, idx in enumerate(positions, start=1):
        assert vec.select(rank) == idx


def test_select_rank_zero_rejected():
    words, nbits = construct_bits([0, 5])
    vec = SelectVector.from_levels([words], [nbits])
    with pytest.raises(ValueError):
        vec.select(0)


def test_select_vector_round_trip():
    bits_per_level, num_bits_per_level = build_levels(SELECT_VECTOR_CASES[1])
    vec = SelectVector.from_levels(bits_per_level, num_bits_per_level)
    data = vec.to_bytes()
    assert len(data) == vec.marshal_size()
    assert len(data) % 8 == 0
    decoded, rest = SelectVector.unmarshal(data + b"tail")
    assert decoded == vec
    assert bytes(rest) == b"tail"


@pytest.mark.parametrize("factory, block", [(dense_rank_vector, 64), (sparse_rank_vector, 512)])
@pytest.mark.parametrize("case", BIT_VECTOR_CASES)
def test_rank_vector(factory, block, case):
    bits_per_level, num_bits_per_level = build_levels(case)
    vec = factory(bits_per_level, num_bits_per_level)
    assert vec.block_size == block
    positions = global_positions(case)
    for pos in range(vec.num_bits):
        assert vec.rank(pos) == sum(1 for p in positions if p <= pos)


def test_rank_vector_spanning_sparse_blocks():
    positions = list(range(0, 1300, 7))
    words, nbits = construct_bits(positions)
    vec = sparse_rank_vector([words], [nbits])
    assert len(vec.rank_lut) == nbits // 512 + 1
    assert vec.rank(511) == len([p for p in positions if p <= 511])
    assert vec.rank(positions[-1]) == len(positions)


def test_rank_vector_round_trip():
    bits_per_level, num_bits_per_level = build_levels(BIT_VECTOR_CASES[1])
    vec = RankVector.from_levels(64, bits_per_level, num_bits_per_level)
    data = vec.to_bytes()
    assert len(data) == vec.marshal_size()
    assert len(data) % 8 == 0
    decoded, rest = RankVector.unmarshal(data)
    assert decoded == vec
    assert len(rest) == 0


def test_rank_vector_empty_round_trip():
    vec = dense_rank_vector([], [])
    assert vec.num_bits == 0
    assert vec.rank_lut == [0]
    decoded, rest = RankVector.unmarshal(vec.to_bytes())
    assert decoded == vec
    assert len(rest) == 0


def test_value_vector_get():
    vec = ValueVector.from_levels([b"aaaabbbb", b"", b"cccc"], 4)
    assert vec.get(0) == b"aaaa"
    assert vec.get(1) == b"bbbb"
    assert vec.get(2) == b"cccc"


def test_value_vector_round_trip():
    vec = ValueVector.from_levels([b"abc", b"def", b"g"], 1)
    data = vec.to_bytes()
    assert data[:8] == b"\x07\x00\x00\x00\x01\x00\x00\x00"
    assert len(data) == vec.marshal_size() == 16
    decoded, rest = ValueVector.unmarshal(data + b"xy")
    assert decoded == vec
    assert bytes(rest) == b"xy"