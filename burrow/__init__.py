"""Succinct range filter building blocks: bit vectors, trie builder and dense trie levels."""

__version__ = "0.1.0"