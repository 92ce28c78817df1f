# burrow

Building blocks of SuRF, a succinct range filter stored as a LOUDS-encoded
trie. Everything is pure Python with no third-party dependencies.

- `burrow.surf.bits` — helpers on lists of 64-bit words: `select64`,
  `select_in_byte`, `popcount_block`, `read_bit`, `set_bit`, `align`, and
  little-endian packing of 64- and 32-bit integers.
- `burrow.surf.bitvec` — `BitVector`, `RankVector` (with
  `dense_rank_vector` / `sparse_rank_vector`), `SelectVector` and
  `ValueVector`, each with `marshal_size()`, `to_bytes()` and `unmarshal()`.
- `burrow.surf.vectors` — `LabelVector`, `SuffixVector` and `PrefixVector`,
  the `fingerprint64` hash (64-bit FarmHash fingerprint) and the suffix
  helpers `construct_suffix`, `construct_hash_suffix`,
  `construct_real_suffix`, `construct_mixed_suffix`, `extract_real_suffix`.
- `burrow.surf.builder` — `Builder`, which turns sorted, unique keys into
  per-level trie vectors.
- `burrow.surf.louds_dense` — `LoudsDense`, the dense (256-bit bitmap per
  node) upper levels of the trie, with point lookups, serialization and
  `DenseIterator` for ordered traversal.

## Install

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Rank and select

```python
from burrow.surf.bitvec import SelectVector, dense_rank_vector

words = [0b101001]                          # bits 0, 3 and 5 set
rank = dense_rank_vector([words], [6])
rank.rank(3)                                # 2: set bits in positions 0..3

select = SelectVector.from_levels([words], [6])
select.select(3)                            # 5: position of the 3rd set bit
```

## Building a trie and looking keys up

Keys must be sorted and unique; every value is cut to `value_size` bytes.
`build_dense(level)` encodes the levels below `level` densely; passing
`tree_height()` makes every level dense.

```python
from burrow.surf.builder import Builder
from burrow.surf.louds_dense import DenseIterator, LoudsDense

keys = [b"apple", b"apricot", b"banana", b"cherry"]
vals = [i.to_bytes(4, "little") for i in range(len(keys))]

builder = Builder(value_size=4, hash_suffix_len=8, real_suffix_len=8)
builder.build_nodes(keys, vals)
builder.build_dense(builder.tree_height())

dense = LoudsDense.from_builder(builder)
lookup = dense.get(b"banana")       # DenseLookup(node, depth, value, ok)
if lookup.ok:
    print(lookup.value)

it = DenseIterator(dense)
it.set_to_first_in_root()
it.move_to_left_most_key()
while it.valid:
    print(it.key(), it.value())     # keys are stored prefixes of the originals
    it.next()
```

Like any filter, a lookup never misses a stored key but may accept keys that
were never added; longer hash and real suffixes lower that rate at the cost
of space. `Builder.determine_cutoff_level(bits_per_key_hint)` picks the
first level to leave out of the dense encoding so the trie fits a size hint.

`LoudsDense.to_bytes()` serializes the dense levels without their values;
`LoudsDense.unmarshal()` returns the levels (with empty values) and the
remaining bytes.

## What this package does not do

It covers only the dense levels of the trie. The sparse (LOUDS-Sparse)
encoding of the lower levels is not included, so when `build_dense` is given
a level below `tree_height()`, `LoudsDense.get` can only hand back the node
and depth at which a lookup would continue (`DenseLookup.node >= 0`), and
`DenseIterator` stops at the boundary. There is no single filter object
combining both encodings, no range-overlap query across a whole filter, and
no storage engine, compression or value-log code.