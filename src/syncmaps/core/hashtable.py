"""Separate-chaining hash table with power-of-two capacities."""

from __future__ import annotations

import logging
import sys
import weakref
from dataclasses import dataclass
from typing import Any, Callable, Iterator, List, Optional, TextIO, Tuple

from syncmaps.config import TablePolicy
from syncmaps.contracts.error import (
    ConcurrentModificationError,
    PolicyError,
    require_callable,
    require_key,
)

from .sync import ReadWriteSync, reads, writes

logger = logging.getLogger("syncmaps.core")

DEFAULT_INITIAL_CAPACITY = 16
LOAD_FACTOR = 0.75
GROW_FACTOR = 2

Hasher = Callable[[Any], int]
Equaler = Callable[[Any, Any], bool]
PairFormatter = Callable[[Any, Any], str]


@dataclass(slots=True)
class _Bucket:
    key: Any
    value: Any
    hash: int
    next: Optional[_Bucket] = None


def _check_policy(policy: TablePolicy) -> None:
    cap = policy.initial_capacity
    if cap < 1 or (cap & (cap - 1)) != 0:
        raise ValueError("initial_capacity must be a power of two")
    grow = policy.grow_factor
    if grow < 2 or (grow & (grow - 1)) != 0:
        raise ValueError("grow_factor must be a power of two >= 2")
    if not 0.0 < policy.load_factor <= 1.0:
        raise ValueError("load_factor must be in (0, 1]")


class HashTable:
    """Hash table keyed through a user hasher and equaler."""

    __slots__ = (
        "_buckets",
        "_capacity",
        "_size",
        "_hash",
        "_equals",
        "_to_str",
        "_policy",
        "_sync",
        "_version",
        "_fail_fast",
        "__weakref__",
    )

    def __init__(
        self,
        hasher: Hasher,
        equaler: Equaler,
        to_str: Optional[PairFormatter] = None,
        *,
        policy: Optional[TablePolicy] = None,
        fail_fast: bool = True,
    ) -> None:
        require_callable(hasher, "hasher")
        require_callable(equaler, "equaler")
        if to_str is not None:
            require_callable(to_str, "stringifier")
        self._policy = policy or TablePolicy(
            initial_capacity=DEFAULT_INITIAL_CAPACITY,
            load_factor=LOAD_FACTOR,
            grow_factor=GROW_FACTOR,
        )
        _check_policy(self._policy)
        self._capacity = self._policy.initial_capacity
        self._buckets: List[Optional[_Bucket]] = [None] * self._capacity
        self._size = 0
        self._hash = hasher
        self._equals = equaler
        self._to_str = to_str
        self._sync = ReadWriteSync()
        self._version = 0
        self._fail_fast = fail_fast

    @property
    def hasher(self) -> Hasher:
        return self._hash

    @property
    def equaler(self) -> Equaler:
        return self._equals

    @property
    def stringifier(self) -> Optional[PairFormatter]:
        return self._to_str

    @property
    def policy(self) -> TablePolicy:
        return self._policy

    @property
    def sync(self) -> ReadWriteSync:
        return self._sync

    @property
    def capacity(self) -> int:
        return self._capacity

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @reads
    def get(self, key: Any, default: Any = None) -> Any:
        bucket = self._search(key)
        return default if bucket is None else bucket.value

    @reads
    def contains(self, key: Any) -> bool:
        return self._search(key) is not None

    def __contains__(self, key: object) -> bool:
        return self.contains(key)

    @reads
    def size(self) -> int:
        return self._size

    def __len__(self) -> int:
        return self.size()

    @reads
    def is_empty(self) -> bool:
        return self._size == 0

    @reads
    def load_factor(self) -> float:
        return self._size / self._capacity

    @reads
    def max_chain_len(self) -> int:
        longest = 0
        for bucket in self._buckets:
            length = 0
            while bucket is not None:
                length += 1
                bucket = bucket.next
            longest = max(longest, length)
        return longest

    @reads
    def collision_rate(self) -> float:
        """0.0 when every entry has its own slot, 1.0 when all share one."""
        if self._size <= 1:
            return 0.0
        occupied = sum(1 for bucket in self._buckets if bucket is not None)
        return 1.0 - (occupied - 1) / (self._size - 1)

    @reads
    def entries(self) -> List[Tuple[Any, Any]]:
        return list(TableCursor(self))

    items = entries

    @reads
    def keys(self) -> List[Any]:
        return [key for key, _ in TableCursor(self)]

    @reads
    def values(self) -> List[Any]:
        return [value for _, value in TableCursor(self)]

    def __iter__(self) -> Iterator[Any]:
        return iter(self.keys())

    @reads
    def cursor(self) -> TableCursor:
        return TableCursor(self)

    @reads
    def clone(self) -> HashTable:
        copy = HashTable(
            self._hash,
            self._equals,
            self._to_str,
            policy=self._policy,
            fail_fast=self._fail_fast,
        )
        copy._capacity = self._capacity
        copy._buckets = [None] * self._capacity
        tails: List[Optional[_Bucket]] = [None] * self._capacity
        for head in self._buckets:
            bucket = head
            while bucket is not None:
                copy._link(tails, _Bucket(bucket.key, bucket.value, bucket.hash))
                bucket = bucket.next
        copy._size = self._size
        logger.debug("Cloned hash table (size=%d, capacity=%d)", self._size, self._capacity)
        return copy

    @reads
    def render(self) -> str:
        if self._to_str is None:
            raise PolicyError("render requires a pair stringifier")
        to_str = self._to_str
        return "[" + ", ".join(to_str(key, value) for key, value in TableCursor(self)) + "]"

    def print(self, file: Optional[TextIO] = None) -> None:
        print(self.render(), file=file or sys.stdout)

    def __repr__(self) -> str:
        return f"HashTable(size={self._size}, capacity={self._capacity})"

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------
    @writes
    def put(self, key: Any, value: Any) -> Any:
        """Insert or overwrite; returns the previous value or None."""
        require_key(key)
        if (self._size + 1) / self._capacity > self._policy.load_factor:
            self._resize(self._size + 1)

        h = self._hash(key)
        index = h & (self._capacity - 1)
        bucket = self._buckets[index]
        if bucket is None:
            self._buckets[index] = _Bucket(key, value, h)
        else:
            while True:
                if bucket.hash == h and (bucket.key is key or self._equals(key, bucket.key)):
                    previous = bucket.value
                    bucket.value = value
                    self._version += 1
                    return previous
                if bucket.next is None:
                    break
                bucket = bucket.next
            bucket.next = _Bucket(key, value, h)
        self._size += 1
        self._version += 1
        return None

    @writes
    def remove(self, key: Any) -> bool:
        require_key(key)
        h = self._hash(key)
        index = h & (self._capacity - 1)
        trailing: Optional[_Bucket] = None
        bucket = self._buckets[index]
        while bucket is not None:
            if bucket.hash == h and (bucket.key is key or self._equals(key, bucket.key)):
                if trailing is None:
                    self._buckets[index] = bucket.next
                else:
                    trailing.next = bucket.next
                bucket.next = None
                self._size -= 1
                self._version += 1
                return True
            trailing = bucket
            bucket = bucket.next
        return False

    @writes
    def resize(self, min_capacity: int) -> None:
        """Re-bucket so that ``min_capacity`` entries fit under the load factor."""
        self._resize(min_capacity)

    grow = resize

    @writes
    def shrink(self) -> None:
        self._resize(self._size)

    @writes
    def clear(self) -> None:
        for index, head in enumerate(self._buckets):
            bucket = head
            while bucket is not None:
                following = bucket.next
                bucket.next = None
                bucket = following
            self._buckets[index] = None
        logger.debug("Cleared hash table (size=%d, capacity=%d)", self._size, self._capacity)
        self._size = 0
        self._version += 1

    # ------------------------------------------------------------------
    # Internals (callers already hold a frame)
    # ------------------------------------------------------------------
    def _search(self, key: Any) -> Optional[_Bucket]:
        require_key(key)
        h = self._hash(key)
        bucket = self._buckets[h & (self._capacity - 1)]
        while bucket is not None:
            if bucket.hash == h and (bucket.key is key or self._equals(key, bucket.key)):
                return bucket
            bucket = bucket.next
        return None

    def _regulate_capacity(self, min_capacity: int) -> int:
        needed = max(min_capacity, self._size)
        target = self._policy.initial_capacity
        while needed / target > self._policy.load_factor:
            target *= self._policy.grow_factor
        return target

    def _link(self, tails: List[Optional[_Bucket]], bucket: _Bucket) -> None:
        """Append ``bucket`` to its slot's chain using the cached hash."""
        index = bucket.hash & (self._capacity - 1)
        tail = tails[index]
        if tail is None:
            self._buckets[index] = bucket
        else:
            tail.next = bucket
        tails[index] = bucket

    def _resize(self, min_capacity: int) -> None:
        target = self._regulate_capacity(min_capacity)
        if target == self._capacity:
            return
        if self._size >= self._policy.large_table_warn_threshold:
            logger.warning(
                "Large table resize (size=%d, capacity %d -> %d)",
                self._size,
                self._capacity,
                target,
            )
        old = self._buckets
        old_capacity = self._capacity
        self._capacity = target
        self._buckets = [None] * target
        tails: List[Optional[_Bucket]] = [None] * target
        for head in old:
            bucket = head
            while bucket is not None:
                following = bucket.next
                bucket.next = None
                self._link(tails, bucket)
                bucket = following
        self._version += 1
        logger.debug("Resized hash table %d -> %d (size=%d)", old_capacity, target, self._size)


class TableCursor:
    """Forward cursor over every (key, value) pair of a :class:`HashTable`.

    Order follows slot index then chain position. Single-thread only; with
    ``fail_fast`` enabled, advancing after a mutation raises
    :class:`ConcurrentModificationError`.
    """

    __slots__ = ("_table_ref", "_index", "_bucket", "_visited", "_version", "_fail_fast")

    def __init__(self, table: HashTable) -> None:
        self._table_ref = weakref.ref(table)
        self._index = 0
        self._bucket: Optional[_Bucket] = None
        self._visited = 0
        self._version = table._version
        self._fail_fast = table._fail_fast

    @property
    def visited(self) -> int:
        return self._visited

    def _table(self) -> HashTable:
        table = self._table_ref()
        if table is None:
            raise PolicyError("cursor outlived its table")
        if self._fail_fast and table._version != self._version:
            raise ConcurrentModificationError("table was mutated after the cursor was created")
        return table

    def has_next(self) -> bool:
        table = self._table()
        if self._bucket is not None:
            return True
        buckets = table._buckets
        index = self._index
        while index < len(buckets):
            if buckets[index] is not None:
                return True
            index += 1
        return False

    def __iter__(self) -> TableCursor:
        return self

    def __next__(self) -> Tuple[Any, Any]:
        table = self._table()
        if self._bucket is None:
            buckets = table._buckets
            index = self._index
            while index < len(buckets) and buckets[index] is None:
                index += 1
            if index >= len(buckets):
                self._index = index
                raise StopIteration
            self._bucket = buckets[index]
            self._index = index + 1
        bucket = self._bucket
        assert bucket is not None
        self._bucket = bucket.next
        self._visited += 1
        return bucket.key, bucket.value


__all__ = [
    "DEFAULT_INITIAL_CAPACITY",
    "GROW_FACTOR",
    "LOAD_FACTOR",
    "HashTable",
    "TableCursor",
]
