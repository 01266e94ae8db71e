"""Synchronized red-black tree map and chained hash table."""

from . import config, contracts, core
from .core import HashTable, ReadWriteSync, Traversal, TreeMap

__all__ = [
    "HashTable",
    "ReadWriteSync",
    "Traversal",
    "TreeMap",
    "config",
    "contracts",
    "core",
]
