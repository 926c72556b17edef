from typing import List, Optional

import pytest

from locuswalk.contract import LocusWalker, tree_reduce
from locuswalk.engine import reduce_window, traverse


class SumWalker(LocusWalker[int, int]):
    def __init__(self) -> None:
        self.window_order: List[int] = []
        self.done: Optional[int] = None

    def map(self, item: int) -> Optional[int]:
        return None if item < 0 else item

    def reduce_init(self) -> int:
        return 0

    def reduce(self, value: Optional[int], acc: int) -> int:
        return acc if value is None else acc + value

    def tree_reduce(self, lhs: int, rhs: int) -> int:
        return lhs + rhs

    def on_window_done(self, window, partial: int) -> int:
        self.window_order.append(window[0])
        return partial

    def on_traversal_done(self, result: int) -> None:
        self.done = result


class ListSource:
    def iter_window(self, window):
        return iter(window)


def test_tree_reduce_empty_returns_empty():
    assert tree_reduce([], lambda a, b: a + b, 0) == 0


def test_tree_reduce_matches_left_fold_for_associative_combine():
    parts = [[1], [2], [3], [4], [5]]
    assert tree_reduce(parts, lambda a, b: a + b, []) == [1, 2, 3, 4, 5]


def test_reduce_window_skips_none_values():
    assert reduce_window(SumWalker(), ListSource(), [1, -5, 2]) == 3


@pytest.mark.parametrize("threads", [1, 4])
def test_traverse_result_independent_of_threads(threads: int):
    windows = [[i * 10 + j for j in range(10)] for i in range(12)]
    walker = SumWalker()
    result = traverse(walker, ListSource(), windows, threads=threads, progress=False)
    assert result == sum(range(120))
    assert walker.done == result
    # partials reach the window hook in window order
    assert walker.window_order == [w[0] for w in windows]


def test_traverse_no_windows():
    walker = SumWalker()
    assert traverse(walker, ListSource(), [], progress=False) == 0
    assert walker.done == 0


class FailingSource:
    def iter_window(self, window):
        if window == "bad":
            raise OSError("cannot read window")
        return iter([1])


def test_traverse_propagates_errors_and_skips_done_hook():
    walker = SumWalker()
    with pytest.raises(OSError):
        traverse(walker, FailingSource(), ["ok", "bad", "ok"], threads=2, progress=False)
    assert walker.done is None
