"""Bulk builder of the LOUDS-encoded trie behind a succinct range filter."""

from __future__ import annotations

from burrow.surf.bits import MASK64, WORD_SIZE, read_bit, set_bit
from burrow.surf.vectors import LABEL_TERMINATOR, construct_suffix

__all__ = ["DENSE_FANOUT", "Builder"]

DENSE_FANOUT = 256


class Builder:
    """Collects per-level trie vectors from sorted, unique keys."""

    def __init__(self, value_size: int, hash_suffix_len: int, real_suffix_len: int) -> None:
        self.value_size = value_size
        self.hash_suffix_len = hash_suffix_len
        self.real_suffix_len = real_suffix_len
        self.sparse_start_level = 0
        self.total_count = 0

        self.ls_labels: list[bytearray] = []
        self.ls_has_child: list[list[int]] = []
        self.ls_louds_bits: list[list[int]] = []

        self.ld_labels: list[list[int]] = []
        self.ld_has_child: list[list[int]] = []
        self.ld_is_prefix: list[list[int]] = []

        self.suffixes: list[list[int]] = []
        self.suffix_counts: list[int] = []

        self.values: list[bytearray] = []
        self.value_counts: list[int] = []

        self.has_prefix: list[list[int]] = []
        self.prefixes: list[list[bytes]] = []

        self.node_counts: list[int] = []
        self.is_last_item_terminator: list[bool] = []

    # ------------------------------------------------------------ sizes

    def tree_height(self) -> int:
        """Number of levels built so far."""
        return len(self.node_counts)

    def suffix_len(self) -> int:
        """Total suffix bits per key."""
        return self.hash_suffix_len + self.real_suffix_len

    def num_items(self, level: int) -> int:
        """Number of labels on ``level``."""
        return len(self.ls_labels[level])

    # ------------------------------------------------------------ building

    def build_nodes(self, keys, vals) -> None:
        """Build the sparse per-level vectors from sorted unique keys."""
        if len(keys) != len(vals):
            raise ValueError("keys and values differ in number")
        if not keys:
            raise ValueError("no keys to build from")
        self.total_count = len(keys)
        self._build_nodes([bytes(k) for k in keys], [bytes(v) for v in vals], 0, 0, 0)

    def _build_nodes(self, keys, vals, prefix_depth: int, depth: int, level: int) -> None:
        self._ensure_level(level)
        node_start_pos = self.num_items(level)

        while True:
            group_start = 0
            if depth >= len(keys[0]):
                self.ls_labels[level].append(LABEL_TERMINATOR)
                self.is_last_item_terminator[level] = True
                self._insert_suffix(keys[0], level, depth)
                self._insert_value(vals[0], level)
                self._move_to_next_item_slot(level)
                group_start = 1
                break
            first = keys[0][depth]
            if len(keys) > 1 and all(k[depth] == first for k in keys):
                # one-way node: compress it into the next one
                depth += 1
                continue
            break

        n = len(keys)
        while group_start < n:
            label = keys[group_start][depth]
            group_end = group_start + 1
            while group_end < n and keys[group_end][depth] == label:
                group_end += 1

            self.ls_labels[level].append(label)
            self._move_to_next_item_slot(level)
            if group_end - group_start == 1:
                self._insert_suffix(keys[group_start], level, depth)
                self._insert_value(vals[group_start], level)
            else:
                set_bit(self.ls_has_child[level], self.num_items(level) - 1)
                self._build_nodes(
                    keys[group_start:group_end],
                    vals[group_start:group_end],
                    depth + 1,
                    depth + 1,
                    level + 1,
                )
            group_start = group_end

        if depth - prefix_depth > 0:
            set_bit(self.has_prefix[level], self.node_counts[level])
            self.prefixes[level].append(bytes(keys[0][prefix_depth:depth]))
        set_bit(self.ls_louds_bits[level], node_start_pos)

        self.node_counts[level] += 1
        if self.node_counts[level] % WORD_SIZE == 0:
            self.has_prefix[level].append(0)

    def build_dense(self, sparse_start_level: int) -> None:
        """Build dense vectors for every level below ``sparse_start_level``."""
        self.sparse_start_level = sparse_start_level
        self.ld_labels = []
        self.ld_has_child = []
        self.ld_is_prefix = []
        for level in range(sparse_start_level):
            self._init_dense_vectors(level)
            if self.num_items(level) == 0:
                continue
            node_id = 0
            if self._is_terminator(level, 0):
                set_bit(self.ld_is_prefix[level], 0)
            else:
                self._set_label_and_has_child(level, node_id, 0)
            for pos in range(1, self.num_items(level)):
                if self._is_start_of_node(level, pos):
                    node_id += 1
                    if self._is_terminator(level, pos):
                        set_bit(self.ld_is_prefix[level], node_id)
                        continue
                self._set_label_and_has_child(level, node_id, pos)

    def determine_cutoff_level(self, bits_per_key_hint: int) -> int:
        """Choose the first sparse level so the filter fits the size hint."""
        height = self.tree_height()
        if height == 0:
            return self.sparse_start_level
        size_hint = self.total_count * bits_per_key_hint
        suffix_size = self.total_count * self.suffix_len()
        prefix_size = sum(len(p) * 8 for level in self.prefixes for p in level)
        prefix_size += sum(self.node_counts)

        chosen = 0
        for level in range(height - 1, 0, -1):
            sz = (
                self._dense_size_no_suffix(level)
                + self._sparse_size_no_suffix(level)
                + suffix_size
                + prefix_size
            )
            if sz <= size_hint:
                chosen = level
                break
        self.sparse_start_level = chosen
        return chosen

    # ------------------------------------------------------------ helpers

    def _dense_size_no_suffix(self, level: int) -> int:
        total = 0
        for lv in range(level):
            total += 2 * DENSE_FANOUT * self.node_counts[lv]
            if lv > 0:
                total += self.node_counts[lv - 1]
        return total

    def _sparse_size_no_suffix(self, level: int) -> int:
        return sum(len(self.ls_labels[lv]) * 10 for lv in range(level, self.tree_height()))

    def _ensure_level(self, level: int) -> None:
        if level >= self.tree_height():
            self._add_level()

    def _add_level(self) -> None:
        self.ls_labels.append(bytearray())
        self.ls_has_child.append([0])
        self.ls_louds_bits.append([0])
        self.has_prefix.append([0])
        self.suffixes.append([])
        self.suffix_counts.append(0)
        self.values.append(bytearray())
        self.value_counts.append(0)
        self.prefixes.append([])
        self.node_counts.append(0)
        self.is_last_item_terminator.append(False)

    def _move_to_next_item_slot(self, level: int) -> None:
        if self.num_items(level) % WORD_SIZE == 0:
            self.ls_has_child[level].append(0)
            self.ls_louds_bits[level].append(0)

    def _insert_suffix(self, key: bytes, level: int, depth: int) -> None:
        self._ensure_level(level)
        suffix = construct_suffix(key, depth + 1, self.real_suffix_len, self.hash_suffix_len)
        suffix_len = self.suffix_len()
        words = self.suffixes[level]
        pos = self.suffix_counts[level] * suffix_len
        if pos == len(words) * WORD_SIZE:
            words.append(0)
        word_id, offset = divmod(pos, WORD_SIZE)
        remain = WORD_SIZE - offset
        words[word_id] |= (suffix << offset) & MASK64
        if suffix_len > remain:
            words.append(suffix >> remain)
        self.suffix_counts[level] += 1

    def _insert_value(self, value: bytes, level: int) -> None:
        if len(value) < self.value_size:
            raise ValueError(f"value shorter than {self.value_size} bytes")
        self.values[level] += value[: self.value_size]
        self.value_counts[level] += 1

    def _set_label_and_has_child(self, level: int, node_id: int, pos: int) -> None:
        label = self.ls_labels[level][pos]
        bit = node_id * DENSE_FANOUT + label
        set_bit(self.ld_labels[level], bit)
        if read_bit(self.ls_has_child[level], pos):
            set_bit(self.ld_has_child[level], bit)

    def _init_dense_vectors(self, level: int) -> None:
        count = self.node_counts[level]
        vec_len = count * (DENSE_FANOUT // WORD_SIZE)
        prefix_len = (count + WORD_SIZE - 1) // WORD_SIZE
        self.ld_labels.append([0] * vec_len)
        self.ld_has_child.append([0] * vec_len)
        self.ld_is_prefix.append([0] * prefix_len)

    def _is_start_of_node(self, level: int, pos: int) -> bool:
        return read_bit(self.ls_louds_bits[level], pos)

    def _is_terminator(self, level: int, pos: int) -> bool:
        return self.ls_labels[level][pos] == LABEL_TERMINATOR and not read_bit(
            self.ls_has_child[level], pos
        )