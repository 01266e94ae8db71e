"""Ordered map backed by a red-black tree.

Red-black properties maintained by every mutation:

1. Every node is RED or BLACK.
2. The root is BLACK.
3. RED nodes only have BLACK (or absent) children.
4. Every root-to-nil path crosses the same number of BLACK nodes.

Keys are ordered by a user comparator returning a negative, zero or
positive int. Parent links are back-pointers maintained alongside the
child links; detached nodes have all three links cleared.
"""

from __future__ import annotations

import logging
import sys
import weakref
from collections import deque
from enum import Enum
from typing import Any, Callable, Deque, Dict, Iterator, List, Optional, TextIO, Tuple

from syncmaps.contracts.error import (
    ConcurrentModificationError,
    InvariantError,
    PolicyError,
    require_callable,
    require_key,
)

from .sync import ReadWriteSync, reads, writes

logger = logging.getLogger("syncmaps.core")

Comparator = Callable[[Any, Any], int]
PairFormatter = Callable[[Any, Any], str]


class Color(Enum):
    RED = "R"
    BLACK = "B"


RED = Color.RED
BLACK = Color.BLACK


class Traversal(Enum):
    IN_ORDER = "in-order"
    PRE_ORDER = "pre-order"
    POST_ORDER = "post-order"


class _Node:
    __slots__ = ("key", "value", "color", "left", "right", "parent")

    def __init__(self, key: Any, value: Any, color: Color, parent: Optional[_Node] = None) -> None:
        self.key = key
        self.value = value
        self.color = color
        self.left: Optional[_Node] = None
        self.right: Optional[_Node] = None
        self.parent = parent

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"<{self.color.value} {self.key!r}:{self.value!r}>"


def _is_red(node: Optional[_Node]) -> bool:
    return node is not None and node.color is RED


class TreeMap:
    """Red-black tree map guarded by a reader/writer sync handle."""

    __slots__ = ("_root", "_size", "_compare", "_to_str", "_sync", "_version", "_fail_fast", "__weakref__")

    def __init__(
        self,
        compare: Comparator,
        to_str: Optional[PairFormatter] = None,
        *,
        fail_fast: bool = True,
    ) -> None:
        require_callable(compare, "comparator")
        if to_str is not None:
            require_callable(to_str, "stringifier")
        self._root: Optional[_Node] = None
        self._size = 0
        self._compare = compare
        self._to_str = to_str
        self._sync = ReadWriteSync()
        self._version = 0
        self._fail_fast = fail_fast

    @property
    def comparator(self) -> Comparator:
        return self._compare

    @property
    def stringifier(self) -> Optional[PairFormatter]:
        return self._to_str

    @property
    def sync(self) -> ReadWriteSync:
        return self._sync

    @property
    def fail_fast(self) -> bool:
        return self._fail_fast

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @reads
    def get(self, key: Any, default: Any = None) -> Any:
        node = self._find(key)
        return default if node is None else node.value

    @reads
    def contains(self, key: Any) -> bool:
        return self._find(key) is not None

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
    def height(self) -> int:
        """Number of levels, counted breadth-first (0 for an empty map)."""
        return self._height()

    @reads
    def min_key(self) -> Any:
        node = self._root
        if node is None:
            return None
        while node.left is not None:
            node = node.left
        return node.key

    @reads
    def max_key(self) -> Any:
        node = self._root
        if node is None:
            return None
        while node.right is not None:
            node = node.right
        return node.key

    @reads
    def items(self) -> List[Tuple[Any, Any]]:
        return [(node.key, node.value) for node in TreeCursor(self)._nodes()]

    @reads
    def keys(self) -> List[Any]:
        return [node.key for node in TreeCursor(self)._nodes()]

    @reads
    def values(self) -> List[Any]:
        return [node.value for node in TreeCursor(self)._nodes()]

    def __iter__(self) -> Iterator[Any]:
        return iter(self.keys())

    @reads
    def cursor(self, mode: Traversal = Traversal.IN_ORDER) -> TreeCursor:
        return TreeCursor(self, mode)

    @reads
    def clone(self) -> TreeMap:
        """Copy the map node for node, preserving shape and colours."""
        copy = TreeMap(self._compare, self._to_str, fail_fast=self._fail_fast)
        twins: Dict[int, _Node] = {}
        for node in TreeCursor(self, Traversal.PRE_ORDER)._nodes():
            twin = _Node(node.key, node.value, node.color)
            parent = node.parent
            if parent is None:
                copy._root = twin
            else:
                twin_parent = twins[id(parent)]
                twin.parent = twin_parent
                if parent.left is node:
                    twin_parent.left = twin
                else:
                    twin_parent.right = twin
            twins[id(node)] = twin
        copy._size = self._size
        logger.debug("Cloned tree map (size=%d)", self._size)
        return copy

    @reads
    def render(self) -> str:
        return self._render()

    def print(self, file: Optional[TextIO] = None) -> None:
        print(self.render(), file=file or sys.stdout)

    def __repr__(self) -> str:
        return f"TreeMap(size={self._size})"

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------
    @writes
    def put(self, key: Any, value: Any) -> Any:
        """Insert or replace; returns the previous value or None."""
        return self._put(key, value)

    @writes
    def remove(self, key: Any, default: Any = None) -> Any:
        """Remove ``key``; returns its value, or ``default`` when absent."""
        require_key(key)
        node = self._find(key)
        if node is None:
            return default
        removed = node.value
        if node.left is not None and node.right is not None:
            successor = node.right
            while successor.left is not None:
                successor = successor.left
            node.key, node.value = successor.key, successor.value
            node = successor
        self._unlink(node)
        self._size -= 1
        self._version += 1
        return removed

    @writes
    def clear(self) -> None:
        # Post-order: children are released before their parent.
        for node in TreeCursor(self, Traversal.POST_ORDER)._nodes():
            node.left = node.right = node.parent = None
        logger.debug("Cleared tree map (size=%d)", self._size)
        self._root = None
        self._size = 0
        self._version += 1

    # ------------------------------------------------------------------
    # Internals (callers already hold a frame)
    # ------------------------------------------------------------------
    def _find(self, key: Any) -> Optional[_Node]:
        require_key(key)
        node = self._root
        while node is not None:
            cmp = self._compare(key, node.key)
            if cmp < 0:
                node = node.left
            elif cmp > 0:
                node = node.right
            else:
                return node
        return None

    def _put(self, key: Any, value: Any) -> Any:
        require_key(key)
        if self._root is None:
            self._root = _Node(key, value, BLACK)
            self._size = 1
            self._version += 1
            return None

        node = self._root
        while True:
            cmp = self._compare(key, node.key)
            if cmp == 0:
                previous = node.value
                node.value = value
                self._version += 1
                return previous
            child = node.left if cmp < 0 else node.right
            if child is None:
                break
            node = child

        fresh = _Node(key, value, RED, parent=node)
        if cmp < 0:
            node.left = fresh
        else:
            node.right = fresh
        self._size += 1
        self._version += 1
        self._repair_red_red(fresh)
        return None

    def _rotate_up(self, node: _Node) -> None:
        """Rotate ``node`` above its parent, refreshing the root if needed."""
        parent = node.parent
        assert parent is not None
        grandparent = parent.parent
        if node is parent.left:
            inner = node.right
            parent.left = inner
            node.right = parent
        else:
            inner = node.left
            parent.right = inner
            node.left = parent
        if inner is not None:
            inner.parent = parent
        parent.parent = node
        node.parent = grandparent
        if grandparent is None:
            self._root = node
        elif grandparent.left is parent:
            grandparent.left = node
        else:
            grandparent.right = node

    def _repair_red_red(self, child: _Node) -> None:
        while child.parent is not None and child.parent.color is RED:
            parent = child.parent
            grandparent = parent.parent
            if grandparent is None:  # red root, fixed below
                break
            parent_is_left = parent is grandparent.left
            uncle = grandparent.right if parent_is_left else grandparent.left

            if _is_red(uncle):
                assert uncle is not None
                uncle.color = BLACK
                parent.color = BLACK
                if grandparent.parent is None:
                    break
                grandparent.color = RED
                child = grandparent
                continue

            if (child is parent.left) != parent_is_left:
                # Inner grandchild: straighten the zig-zag first.
                self._rotate_up(child)
                child, parent = parent, child

            self._rotate_up(parent)
            grandparent.color = RED
            parent.color = BLACK
            break

        assert self._root is not None
        self._root.color = BLACK

    def _repair_double_black(self, node: _Node) -> None:
        while node.parent is not None:
            parent = node.parent
            on_left = node is parent.left
            sibling = parent.right if on_left else parent.left
            if sibling is None:
                raise InvariantError("double-black node has no sibling")

            if sibling.color is RED:
                self._rotate_up(sibling)
                parent.color = RED
                sibling.color = BLACK
                continue

            near = sibling.left if on_left else sibling.right
            far = sibling.right if on_left else sibling.left

            if _is_red(far):
                assert far is not None
                self._rotate_up(sibling)
                sibling.color = parent.color if sibling.parent is not None else BLACK
                parent.color = BLACK
                far.color = BLACK
                return

            if _is_red(near):
                assert near is not None
                self._rotate_up(near)
                near.color = BLACK
                sibling.color = RED
                continue

            sibling.color = RED
            if parent.color is RED:
                parent.color = BLACK
                return
            node = parent

    def _unlink(self, target: _Node) -> None:
        """Remove a node that has at most one child."""
        if target.left is not None and target.right is not None:
            raise InvariantError("cannot unlink a node with two children")
        child = target.left if target.left is not None else target.right

        # A BLACK node with one child always has a RED child; recolouring
        # that child restores the black height, so only leaves need repair.
        if target.color is BLACK and target.parent is not None and child is None:
            self._repair_double_black(target)

        parent = target.parent
        if parent is None:
            self._root = child
        elif parent.left is target:
            parent.left = child
        else:
            parent.right = child
        if child is not None:
            child.parent = parent
            child.color = BLACK
        target.left = target.right = target.parent = None

    def _height(self) -> int:
        if self._root is None:
            return 0
        queue: Deque[_Node] = deque([self._root])
        height = 0
        while queue:
            for _ in range(len(queue)):
                node = queue.popleft()
                if node.left is not None:
                    queue.append(node.left)
                if node.right is not None:
                    queue.append(node.right)
            height += 1
        return height

    def _cell(self, node: _Node) -> str:
        assert self._to_str is not None
        label = str(self._to_str(node.key, node.value))[:2]
        return f"{label:>2}{node.color.value}"

    def _render(self) -> str:
        if self._to_str is None:
            raise PolicyError("render requires a pair stringifier")
        header = f"Red Black Tree - Size: {self._size}"
        height = self._height()
        if height == 0:
            return header

        lines = [header]
        width = 4 << (height - 1)
        row: List[Optional[_Node]] = [self._root]
        for level in range(1, height + 1):
            # Each cell of this row sits above ``span`` bottom-row cells.
            span = 1 << (height - level)
            cells = [" "] * width
            for index, node in enumerate(row):
                center = 4 * span * index + 2 * span - 1
                text = " . " if node is None else self._cell(node)
                for offset, char in enumerate(text):
                    cells[center - 1 + offset] = char
            lines.append("".join(cells).rstrip())
            if level == height:
                break

            arms = [" "] * width
            reach = max(1, span // 2)
            below: List[Optional[_Node]] = []
            for index, node in enumerate(row):
                if node is None:
                    below.extend((None, None))
                    continue
                center = 4 * span * index + 2 * span - 1
                below.extend((node.left, node.right))
                if node.left is not None:
                    arms[center - reach] = "/"
                if node.right is not None:
                    arms[center + reach] = "\\"
            lines.append("".join(arms).rstrip())
            row = below
        return "\n".join(lines)


class TreeCursor:
    """Stack-driven traversal over a :class:`TreeMap`.

    Single-thread only. The cursor holds a weak reference to its map and
    must not be used after the map is mutated; with ``fail_fast`` enabled
    that misuse raises :class:`ConcurrentModificationError`.
    """

    __slots__ = ("_map_ref", "_mode", "_stack", "_last", "_version", "_fail_fast")

    def __init__(self, tree: TreeMap, mode: Traversal = Traversal.IN_ORDER) -> None:
        if not isinstance(mode, Traversal):
            raise PolicyError(f"unknown traversal mode: {mode!r}")
        self._map_ref = weakref.ref(tree)
        self._mode = mode
        self._stack: Deque[_Node] = deque()
        self._last: Optional[_Node] = None
        self._version = tree._version
        self._fail_fast = tree._fail_fast
        root = tree._root
        if root is None:
            return
        if mode is Traversal.IN_ORDER:
            self._push_left_spine(root)
        else:
            self._stack.append(root)

    @property
    def mode(self) -> Traversal:
        return self._mode

    def has_next(self) -> bool:
        self._check()
        return bool(self._stack)

    def __iter__(self) -> TreeCursor:
        return self

    def __next__(self) -> Tuple[Any, Any]:
        self._check()
        node = self._advance()
        return node.key, node.value

    def _check(self) -> None:
        tree = self._map_ref()
        if tree is None:
            raise PolicyError("cursor outlived its map")
        if self._fail_fast and tree._version != self._version:
            raise ConcurrentModificationError("map was mutated after the cursor was created")

    def _nodes(self) -> Iterator[_Node]:
        while self._stack:
            yield self._advance()

    def _push_left_spine(self, node: Optional[_Node]) -> None:
        while node is not None:
            self._stack.append(node)
            node = node.left

    def _advance(self) -> _Node:
        stack = self._stack
        if not stack:
            raise StopIteration
        if self._mode is Traversal.PRE_ORDER:
            node = stack.pop()
            if node.right is not None:
                stack.append(node.right)
            if node.left is not None:
                stack.append(node.left)
        elif self._mode is Traversal.IN_ORDER:
            node = stack.pop()
            self._push_left_spine(node.right)
        else:
            node = self._next_post_order()
        self._last = node
        return node

    def _next_post_order(self) -> _Node:
        # A subtree is finished exactly when its root was the last node
        # emitted, so identity with ``_last`` decides descend vs emit.
        stack = self._stack
        last = self._last
        while True:
            top = stack[-1]
            if top.right is not None and top.right is last:
                break
            if top.left is not None and top.left is last:
                if top.right is None:
                    break
                stack.append(top.right)
            elif top.left is not None:
                stack.append(top.left)
            elif top.right is not None:
                stack.append(top.right)
            else:
                break
        return stack.pop()


__all__ = ["BLACK", "RED", "Color", "Traversal", "TreeCursor", "TreeMap"]
