"""Rank/select bit vectors, a LOUDS trie builder and the dense trie levels of a range filter."""

__all__ = ["bits", "bitvec", "vectors", "builder", "louds_dense"]