"""Dense (LOUDS-Dense) upper levels of a succinct range filter and their iterator."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import NamedTuple, Optional

from burrow.surf.bits import align
from burrow.surf.bitvec import RankVector, ValueVector, dense_rank_vector
from burrow.surf.builder import DENSE_FANOUT, Builder
from burrow.surf.vectors import COULD_BE_POSITIVE, PrefixVector, SuffixVector

__all__ = ["DenseLookup", "LoudsDense", "DenseIterator"]

_U32 = struct.Struct("<I")


def _compare(a: bytes, b: bytes) -> int:
    return (a > b) - (a < b)


class DenseLookup(NamedTuple):
    """Outcome of a point lookup in the dense levels.

    ``node`` is the sparse node to continue from, or -1 if the lookup ended
    in the dense levels; ``depth`` is the key depth reached.
    """

    node: int
    depth: int
    value: Optional[bytes]
    ok: bool


def _empty_suffixes() -> SuffixVector:
    return SuffixVector(num_bits=0, bits=[])


def _empty_values() -> ValueVector:
    return ValueVector(data=b"", value_size=0)


@dataclass
class LoudsDense:
    """Trie levels encoded with a 256-bit bitmap per node."""

    label_vec: RankVector
    has_child_vec: RankVector
    is_prefix_vec: RankVector
    prefix_vec: PrefixVector
    suffixes: SuffixVector = field(default_factory=_empty_suffixes)
    values: ValueVector = field(default_factory=_empty_values)
    height: int = 0

    @classmethod
    def from_builder(cls, builder: Builder) -> "LoudsDense":
        """Take the dense levels below ``builder.sparse_start_level``."""
        height = builder.sparse_start_level
        num_bits_per_level = [
            len(builder.ld_labels[level]) * 64 for level in range(height)
        ]
        label_vec = dense_rank_vector(builder.ld_labels[:height], num_bits_per_level)
        has_child_vec = dense_rank_vector(
            builder.ld_has_child[:height], num_bits_per_level
        )
        is_prefix_vec = dense_rank_vector(
            builder.ld_is_prefix[:height], builder.node_counts
        )

        suffix_len = builder.suffix_len()
        if suffix_len != 0:
            suffixes = SuffixVector.from_levels(
                builder.hash_suffix_len,
                builder.real_suffix_len,
                builder.suffixes[:height],
                [builder.suffix_counts[i] * suffix_len for i in range(height)],
            )
        else:
            suffixes = _empty_suffixes()

        values = ValueVector.from_levels(builder.values[:height], builder.value_size)
        prefix_vec = PrefixVector.from_levels(
            builder.has_prefix[:height],
            builder.node_counts[:height],
            builder.prefixes[:height],
        )
        return cls(
            label_vec=label_vec,
            has_child_vec=has_child_vec,
            is_prefix_vec=is_prefix_vec,
            prefix_vec=prefix_vec,
            suffixes=suffixes,
            values=values,
            height=height,
        )

    def get(self, key: bytes) -> DenseLookup:
        """Look ``key`` up in the dense levels."""
        key = bytes(key)
        node_id = 0
        depth = 0
        for _ in range(self.height):
            prefix_len, ok = self.prefix_vec.check_prefix(key, depth, node_id)
            if not ok:
                return DenseLookup(-1, depth, None, False)
            depth += prefix_len

            pos = node_id * DENSE_FANOUT
            if depth >= len(key):
                value = None
                ok = self.is_prefix_vec.is_set(node_id)
                if ok:
                    val_pos = self.suffix_pos(pos, True)
                    ok = self.suffixes.check_equality(val_pos, key, depth + 1)
                    if ok:
                        value = self.values.get(val_pos)
                return DenseLookup(-1, depth, value, ok)
            pos += key[depth]

            if not self.label_vec.is_set(pos):
                return DenseLookup(-1, depth, None, False)

            if not self.has_child_vec.is_set(pos):
                value = None
                val_pos = self.suffix_pos(pos, False)
                ok = self.suffixes.check_equality(val_pos, key, depth + 1)
                if ok:
                    value = self.values.get(val_pos)
                return DenseLookup(-1, depth, value, ok)

            node_id = self.child_node_id(pos)
            depth += 1

        return DenseLookup(node_id, depth, None, True)

    def _raw_marshal_size(self) -> int:
        return (
            4
            + self.label_vec.marshal_size()
            + self.has_child_vec.marshal_size()
            + self.is_prefix_vec.marshal_size()
            + self.suffixes.marshal_size()
            + self.prefix_vec.marshal_size()
        )

    def marshal_size(self) -> int:
        """Size of the serialized form (values excluded), padded to 8 bytes."""
        return align(self._raw_marshal_size())

    def to_bytes(self) -> bytes:
        """Serialize the dense levels; values are written separately."""
        raw = self._raw_marshal_size()
        return b"".join(
            (
                _U32.pack(self.height),
                self.label_vec.to_bytes(),
                self.has_child_vec.to_bytes(),
                self.is_prefix_vec.to_bytes(),
                self.suffixes.to_bytes(),
                self.prefix_vec.to_bytes(),
                b"\x00" * (align(raw) - raw),
            )
        )

    @classmethod
    def unmarshal(cls, buf) -> tuple["LoudsDense", memoryview]:
        """Decode dense levels from ``buf``; return them and the remaining bytes.

        The values are not part of this encoding and are left empty.
        """
        view = memoryview(buf)
        (height,) = _U32.unpack_from(view)
        rest = view[4:]
        label_vec, rest = RankVector.unmarshal(rest)
        has_child_vec, rest = RankVector.unmarshal(rest)
        is_prefix_vec, rest = RankVector.unmarshal(rest)
        suffixes, rest = SuffixVector.unmarshal(rest)
        prefix_vec, rest = PrefixVector.unmarshal(rest)
        size = align(len(view) - len(rest))
        ld = cls(
            label_vec=label_vec,
            has_child_vec=has_child_vec,
            is_prefix_vec=is_prefix_vec,
            prefix_vec=prefix_vec,
            suffixes=suffixes,
            values=_empty_values(),
            height=height,
        )
        return ld, view[size:]

    def child_node_id(self, pos: int) -> int:
        """Node id of the child reached through label position ``pos``."""
        return self.has_child_vec.rank(pos)

    def suffix_pos(self, pos: int, is_prefix: bool) -> int:
        """Index of the suffix and value belonging to label position ``pos``."""
        node_id = pos // DENSE_FANOUT
        suffix_pos = (
            self.label_vec.rank(pos)
            - self.has_child_vec.rank(pos)
            + self.is_prefix_vec.rank(node_id)
            - 1
        )
        # A leaf at label 0 would otherwise be taken for the prefix key's slot.
        if (
            is_prefix
            and self.label_vec.is_set(pos)
            and not self.has_child_vec.is_set(pos)
        ):
            suffix_pos -= 1
        return suffix_pos

    def next_pos(self, pos: int) -> int:
        """Position of the next set label after ``pos``."""
        return pos + self.label_vec.distance_to_next_set_bit(pos)

    def prev_pos(self, pos: int) -> tuple[int, bool]:
        """Position of the previous set label, and whether it ran off the start."""
        dist = self.label_vec.distance_to_prev_set_bit(pos)
        if pos < dist:
            return 0, True
        return pos - dist, False


class DenseIterator:
    """Cursor over the keys of the dense levels."""

    def __init__(self, ld: LoudsDense) -> None:
        self.ld = ld
        self.valid = False
        self.search_comp = False
        self.left_comp = False
        self.right_comp = False
        self.send_out_node_id = 0
        self.send_out_depth = 0
        self.key_buf = bytearray()
        self.level = 0
        self.pos_in_trie = [0] * ld.height
        self.prefix_len = [0] * ld.height
        self.at_prefix_key = False

    def _set_flags(self, search: bool, left: bool, right: bool) -> None:
        self.valid = True
        self.search_comp = search
        self.left_comp = left
        self.right_comp = right

    def reset(self) -> None:
        """Forget the current position."""
        self.valid = False
        self.level = 0
        self.at_prefix_key = False
        self.key_buf.clear()

    def next(self) -> None:
        """Move to the next key."""
        if self.ld.height == 0:
            return
        if self.at_prefix_key:
            self.at_prefix_key = False
            self.move_to_left_most_key()
            return

        pos = self.pos_in_trie[self.level]
        next_pos = self.ld.next_pos(pos)
        while pos == next_pos or next_pos // DENSE_FANOUT > pos // DENSE_FANOUT:
            if self.level == 0:
                self.valid = False
                return
            self.level -= 1
            pos = self.pos_in_trie[self.level]
            next_pos = self.ld.next_pos(pos)
        self._set_at(self.level, next_pos)
        self.move_to_left_most_key()

    def prev(self) -> None:
        """Move to the previous key."""
        if self.ld.height == 0:
            return
        if self.at_prefix_key:
            self.at_prefix_key = False
            if self.level == 0:
                self.valid = False
                return
            self.level -= 1
        pos = self.pos_in_trie[self.level]
        prev_pos, out = self.ld.prev_pos(pos)
        if out:
            self.valid = False
            return

        while prev_pos // DENSE_FANOUT < pos // DENSE_FANOUT:
            node_id = pos // DENSE_FANOUT
            if self.ld.is_prefix_vec.is_set(node_id):
                self._truncate(self.level)
                self.at_prefix_key = True
                self._set_flags(True, True, True)
                return
            if self.level == 0:
                self.valid = False
                return
            self.level -= 1
            pos = self.pos_in_trie[self.level]
            prev_pos, out = self.ld.prev_pos(pos)
            if out:
                self.valid = False
                return
        self._set_at(self.level, prev_pos)
        self.move_to_right_most_key()

    def seek(self, key: bytes) -> bool:
        """Move to the first key not less than ``key``; tell whether it may equal it."""
        key = bytes(key)
        node_id = 0
        depth = 0
        self.level = 0
        while self.level < self.ld.height:
            prefix = self.ld.prefix_vec.get_prefix(node_id)
            prefix_cmp = 0
            if prefix:
                end = min(depth + len(prefix), len(key))
                prefix_cmp = _compare(bytes(prefix), key[depth:end])

            if prefix_cmp < 0:
                if node_id == 0:
                    self.valid = False
                    return False
                self.level -= 1
                self.next()
                return False

            pos = node_id * DENSE_FANOUT
            depth += len(prefix)
            if depth >= len(key) or prefix_cmp > 0:
                if pos > 0:
                    self._append(self.ld.next_pos(pos - 1))
                else:
                    self.set_to_first_in_root()
                if self.ld.is_prefix_vec.is_set(node_id):
                    self.at_prefix_key = True
                    self._set_flags(True, True, True)
                else:
                    self.move_to_left_most_key()
                return prefix_cmp == 0

            pos += key[depth]
            self._append(pos)
            depth += 1

            if not self.ld.label_vec.is_set(pos):
                self.next()
                return False

            if not self.ld.has_child_vec.is_set(pos):
                return self._compare_suffix_greater_than(key, pos, depth)

            node_id = self.ld.child_node_id(pos)
            self.level += 1

        self.level -= 1
        self.send_out_node_id = node_id
        self.send_out_depth = depth
        self._set_flags(False, True, True)
        return True

    def key(self) -> bytes:
        """Key bytes walked so far."""
        if self.at_prefix_key:
            return bytes(self.key_buf[:-1])
        return bytes(self.key_buf)

    def value(self) -> bytes:
        """Value of the current key."""
        val_pos = self.ld.suffix_pos(self.pos_in_trie[self.level], self.at_prefix_key)
        return self.ld.values.get(val_pos)

    def compare(self, key: bytes) -> int:
        """Compare the current key with ``key``; COULD_BE_POSITIVE if undecidable."""
        key = bytes(key)
        it_key = self.key()
        cmp_len = min(len(it_key), len(key))
        cmp = _compare(it_key[:cmp_len], key[:cmp_len])
        if cmp != 0:
            return cmp
        if len(it_key) > len(key):
            return 1
        if len(it_key) == len(key) and self.at_prefix_key:
            return 0
        if self.is_complete():
            suffix_pos = self.ld.suffix_pos(
                self.pos_in_trie[self.level], self.at_prefix_key
            )
            return self.ld.suffixes.compare(key, suffix_pos, len(it_key))
        return cmp

    def is_complete(self) -> bool:
        """Tell whether the current key ends within the dense levels."""
        return self.search_comp and self.left_comp and self.right_comp

    def _append(self, pos: int) -> None:
        node_id = pos // DENSE_FANOUT
        prefix = self.ld.prefix_vec.get_prefix(node_id)
        self.key_buf += prefix
        self.key_buf.append(pos % DENSE_FANOUT)
        self.pos_in_trie[self.level] = pos
        self.prefix_len[self.level] = len(prefix) + 1
        if self.level != 0:
            self.prefix_len[self.level] += self.prefix_len[self.level - 1]

    def move_to_left_most_key(self) -> None:
        """Descend to the smallest key below the current position."""
        pos = self.pos_in_trie[self.level]
        if not self.ld.has_child_vec.is_set(pos):
            self._set_flags(True, True, True)
            return

        while self.level < self.ld.height - 1:
            self.level += 1
            node_id = self.ld.child_node_id(pos)
            if self.ld.is_prefix_vec.is_set(node_id):
                self._append(self.ld.next_pos(node_id * DENSE_FANOUT - 1))
                self.at_prefix_key = True
                self._set_flags(True, True, True)
                return

            pos = self.ld.next_pos(node_id * DENSE_FANOUT - 1)
            self._append(pos)
            if not self.ld.has_child_vec.is_set(pos):
                self._set_flags(True, True, True)
                return
        self.send_out_node_id = self.ld.child_node_id(pos)
        self.send_out_depth = len(self.key_buf)
        self._set_flags(True, False, True)

    def move_to_right_most_key(self) -> None:
        """Descend to the largest key below the current position."""
        pos = self.pos_in_trie[self.level]
        if not self.ld.has_child_vec.is_set(pos):
            self._set_flags(True, True, True)
            return

        while self.level < self.ld.height - 1:
            self.level += 1
            node_id = self.ld.child_node_id(pos)
            pos, out = self.ld.prev_pos((node_id + 1) * DENSE_FANOUT)
            if out:
                self.valid = False
                return
            self._append(pos)
            if not self.ld.has_child_vec.is_set(pos):
                self._set_flags(True, True, True)
                return
        self.send_out_node_id = self.ld.child_node_id(pos)
        self.send_out_depth = len(self.key_buf)
        self._set_flags(True, True, False)

    def set_to_first_in_root(self) -> None:
        """Position on the first label of the root node."""
        if self.ld.label_vec.is_set(0):
            self._append(0)
        else:
            self._append(self.ld.next_pos(0))

    def set_to_last_in_root(self) -> None:
        """Position on the last label of the root node."""
        pos, _ = self.ld.prev_pos(DENSE_FANOUT)
        self._append(pos)

    def _set_at(self, level: int, pos: int) -> None:
        del self.key_buf[self.prefix_len[level] - 1 :]
        self.key_buf.append(pos % DENSE_FANOUT)
        self.pos_in_trie[self.level] = pos

    def _truncate(self, level: int) -> None:
        del self.key_buf[self.prefix_len[level] :]

    def _compare_suffix_greater_than(self, key: bytes, pos: int, level: int) -> bool:
        cmp = self.ld.suffixes.compare(key, self.ld.suffix_pos(pos, False), level)
        if cmp < 0:
            self.next()
            return False
        self._set_flags(True, True, True)
        return cmp == COULD_BE_POSITIVE