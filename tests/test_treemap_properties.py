from __future__ import annotations

from typing import Dict, Tuple

from hypothesis import given, settings, strategies as st

from syncmaps.core.functions import natural_compare
from syncmaps.core.treemap import Traversal, TreeMap
from syncmaps.core.verify import verify_tree


def _operation_strategy() -> st.SearchStrategy[Tuple[str, int, int | None]]:
    key = st.integers(-40, 40)
    value = st.integers(-1_000, 1_000)
    put_op = st.tuples(st.just("put"), key, value)
    get_op = st.tuples(st.just("get"), key, st.none())
    remove_op = st.tuples(st.just("remove"), key, st.none())
    return st.one_of(put_op, put_op, get_op, remove_op)


@settings(max_examples=150, deadline=None)
@given(st.lists(_operation_strategy(), min_size=1, max_size=150))
def test_tree_map_behaves_like_dict(operations: list[Tuple[str, int, int | None]]) -> None:
    tree = TreeMap(natural_compare)
    model: Dict[int, int] = {}

    for op, key, maybe_value in operations:
        if op == "put":
            assert maybe_value is not None
            assert tree.put(key, maybe_value) == model.get(key)
            model[key] = maybe_value
        elif op == "remove":
            assert tree.remove(key) == model.pop(key, None)
        else:  # get
            assert tree.get(key) == model.get(key)
            assert tree.contains(key) is (key in model)

        ok, msgs = verify_tree(tree)
        assert ok, msgs
        assert len(tree) == len(model)

    # In-order traversal is the sorted oracle.
    assert tree.items() == sorted(model.items())


@settings(max_examples=75, deadline=None)
@given(st.lists(st.integers(-500, 500), unique=True, max_size=80))
def test_clone_matches_source_structure(keys: list[int]) -> None:
    tree = TreeMap(natural_compare)
    for key in keys:
        tree.put(key, key * 2)
    copy = tree.clone()

    def pre_order(t: TreeMap) -> list[tuple[int, int]]:
        return list(t.cursor(Traversal.PRE_ORDER))

    assert pre_order(copy) == pre_order(tree)
    assert copy.height() == tree.height()
    ok, msgs = verify_tree(copy)
    assert ok, msgs


@settings(max_examples=75, deadline=None)
@given(st.lists(st.integers(-200, 200), max_size=80))
def test_post_order_visits_children_first(keys: list[int]) -> None:
    tree = TreeMap(natural_compare)
    for key in keys:
        tree.put(key, None)
    post = [k for k, _ in tree.cursor(Traversal.POST_ORDER)]
    pre = [k for k, _ in tree.cursor(Traversal.PRE_ORDER)]
    assert sorted(post) == sorted(pre) == tree.keys()
    if post:
        # The root closes a post-order walk and opens a pre-order one.
        assert post[-1] == pre[0]
