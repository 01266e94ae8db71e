"""Structural invariant checks for both containers.

Each checker runs inside a read frame and returns ``(ok, messages)``;
messages describe every violation found, plus a summary line when
``verbose`` is set.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from .hashtable import HashTable
from .treemap import BLACK, RED, TreeMap, _Node


def _check_subtree(
    tree: TreeMap,
    node: Optional[_Node],
    parent: Optional[_Node],
    low: Optional[_Node],
    high: Optional[_Node],
    msgs: List[str],
) -> Tuple[int, int]:
    """Return (black height, node count) of the subtree rooted at ``node``."""
    if node is None:
        return 1, 0
    if node.color not in (RED, BLACK):
        msgs.append(f"Node {node.key!r} has no colour")
    if node.parent is not parent:
        msgs.append(f"Node {node.key!r} has a stale parent link")
    if low is not None and tree.comparator(node.key, low.key) <= 0:
        msgs.append(f"Order violated: {node.key!r} is not greater than {low.key!r}")
    if high is not None and tree.comparator(node.key, high.key) >= 0:
        msgs.append(f"Order violated: {node.key!r} is not less than {high.key!r}")
    if node.color is RED:
        for child in (node.left, node.right):
            if child is not None and child.color is RED:
                msgs.append(f"Red node {node.key!r} has red child {child.key!r}")

    left_black, left_count = _check_subtree(tree, node.left, node, low, node, msgs)
    right_black, right_count = _check_subtree(tree, node.right, node, node, high, msgs)
    if left_black != right_black:
        msgs.append(
            f"Black height differs under {node.key!r}: left={left_black}, right={right_black}"
        )
    own = 1 if node.color is BLACK else 0
    return max(left_black, right_black) + own, left_count + right_count + 1


def verify_tree(tree: TreeMap, verbose: bool = False) -> Tuple[bool, List[str]]:
    msgs: List[str] = []
    with tree.sync.read():
        root = tree._root
        if root is not None and root.color is not BLACK:
            msgs.append("Root is not black")
        if root is not None and root.parent is not None:
            msgs.append("Root has a parent link")
        black_height, count = _check_subtree(tree, root, None, None, None, msgs)
        if count != tree._size:
            msgs.append(f"Size mismatch: size={tree._size}, counted={count}")
        ok = not msgs
        if verbose:
            msgs.append(
                f"Size={tree._size}, Height={tree._height()}, BlackHeight={black_height}"
            )
    return ok, msgs


def verify_table(table: HashTable, verbose: bool = False) -> Tuple[bool, List[str]]:
    msgs: List[str] = []
    with table.sync.read():
        cap = table._capacity
        if cap < 1 or (cap & (cap - 1)) != 0:
            msgs.append(f"Capacity {cap} is not a power of two")
        if len(table._buckets) != cap:
            msgs.append(f"Bucket array length {len(table._buckets)} != capacity {cap}")
        total = 0
        for index, head in enumerate(table._buckets):
            bucket = head
            while bucket is not None:
                total += 1
                if bucket.hash & (cap - 1) != index:
                    msgs.append(f"Key {bucket.key!r} cached in slot {index} but hashes elsewhere")
                actual = table.hasher(bucket.key)
                if actual != bucket.hash:
                    msgs.append(f"Key {bucket.key!r} cached hash {bucket.hash} != {actual}")
                bucket = bucket.next
        if total != table._size:
            msgs.append(f"Size mismatch: size={table._size}, summed={total}")
        load = table._size / cap if cap else 0.0
        if load > table.policy.load_factor:
            msgs.append(f"Load factor {load:.3f} exceeds {table.policy.load_factor:.3f}")
        ok = not msgs
        if verbose:
            msgs.append(f"Capacity={cap}, Size={table._size}, LF={load:.3f}")
    return ok, msgs


__all__ = ["verify_table", "verify_tree"]
