import pytest

from burrow.surf.bits import popcount
from burrow.surf.builder import DENSE_FANOUT, Builder
from burrow.surf.vectors import LABEL_TERMINATOR

PREFIX_KEYS = [b"\x01", b"\x01\x01", b"\x01\x01\x01", b"\x01\x01\x01\x01", b"\x02", b"\x02\x02", b"\x02\x02\x02"]
PATH_KEYS = [
    bytes([1, 1, 1]),
    bytes([1, 1, 1, 2, 2]),
    bytes([1, 1, 1, 2, 2, 2]),
    bytes([1, 1, 1, 2, 2, 3]),
    bytes([2, 1, 3]),
    bytes([2, 2, 3]),
    bytes([2, 3, 1, 1, 1, 1, 1, 1, 1]),
    bytes([2, 3, 1, 1, 1, 2, 2, 2, 2]),
]


def _vals(n):
    return [i.to_bytes(4, "little") for i in range(n)]


def _build(keys, hash_len=4, real_len=4):
    b = Builder(4, hash_len, real_len)
    b.build_nodes(keys, _vals(len(keys)))
    return b


@pytest.mark.parametrize("keys", [PREFIX_KEYS, PATH_KEYS])
def test_every_key_stored_once(keys):
    b = _build(keys)
    assert sum(b.value_counts) == len(keys)
    assert sum(b.suffix_counts) == len(keys)
    stored = b"".join(bytes(v) for v in b.values)
    assert sorted(stored[i : i + 4] for i in range(0, len(stored), 4)) == sorted(_vals(len(keys)))
    assert b.total_count == len(keys)


def test_prefix_keys_use_terminators():
    b = _build(PREFIX_KEYS)
    assert any(b.is_last_item_terminator)
    assert LABEL_TERMINATOR in b.ls_labels[1]
    assert b.suffix_len() == 8


def test_compressed_path_records_prefix():
    b = _build(PATH_KEYS)
    assert b"\x01\x01" in [p for level in b.prefixes for p in level]


@pytest.mark.parametrize("keys", [PREFIX_KEYS, PATH_KEYS])
def test_dense_matches_sparse(keys):
    b = _build(keys)
    height = b.tree_height()
    b.build_dense(height)
    assert len(b.ld_labels) == height
    for level in range(height):
        labels = sum(popcount(w) for w in b.ld_labels[level])
        prefixes = sum(popcount(w) for w in b.ld_is_prefix[level])
        assert labels + prefixes == b.num_items(level)
        assert len(b.ld_labels[level]) == b.node_counts[level] * DENSE_FANOUT // 64


def test_cutoff_level_in_range():
    b = _build(PATH_KEYS)
    level = b.determine_cutoff_level(60)
    assert 0 <= level < b.tree_height()
    assert b.sparse_start_level == level
    assert b.determine_cutoff_level(0) == 0


def test_mismatched_input_rejected():
    with pytest.raises(ValueError):
        Builder(4, 0, 0).build_nodes([b"a"], [])
    with pytest.raises(ValueError):
        Builder(4, 0, 0).build_nodes([b"a", b"b"], [b"\x00", b"\x00"])