from .functions import (
    default_equals,
    fnv1a_hash,
    identity_hash,
    key_to_str,
    natural_compare,
    pair_to_str,
)
from .hashtable import (
    DEFAULT_INITIAL_CAPACITY,
    GROW_FACTOR,
    LOAD_FACTOR,
    HashTable,
    TableCursor,
)
from .sync import ReadWriteSync, reads, writes
from .treemap import BLACK, RED, Color, Traversal, TreeCursor, TreeMap
from .verify import verify_table, verify_tree

__all__ = [
    "BLACK",
    "RED",
    "Color",
    "DEFAULT_INITIAL_CAPACITY",
    "GROW_FACTOR",
    "HashTable",
    "LOAD_FACTOR",
    "ReadWriteSync",
    "TableCursor",
    "Traversal",
    "TreeCursor",
    "TreeMap",
    "default_equals",
    "fnv1a_hash",
    "identity_hash",
    "key_to_str",
    "natural_compare",
    "pair_to_str",
    "reads",
    "verify_table",
    "verify_tree",
    "writes",
]
