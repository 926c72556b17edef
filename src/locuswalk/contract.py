"""Map/reduce contract shared by all walkers.

A walker turns each traversal item (a locus or a VCF record) into an optional
value with :meth:`LocusWalker.map`, folds values into a per-window partial with
:meth:`LocusWalker.reduce`, and combines partials with
:meth:`LocusWalker.tree_reduce`. ``tree_reduce`` must be associative and
commutative: the engine runs windows on worker threads and combines the
partials pairwise in whatever grouping it chooses.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Generic, List, Optional, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


class LocusWalker(ABC, Generic[T, R]):
    """Base class for per-item analyzers driven by :func:`locuswalk.engine.traverse`."""

    #: Keep reads with a deletion at the locus in the pileup handed to ``map``.
    include_deletions: bool = False

    @abstractmethod
    def map(self, item: Any) -> Optional[T]:
        ...

    @abstractmethod
    def reduce_init(self) -> R:
        ...

    @abstractmethod
    def reduce(self, value: Optional[T], acc: R) -> R:
        ...

    @abstractmethod
    def tree_reduce(self, lhs: R, rhs: R) -> R:
        ...

    def on_window_done(self, window: Any, partial: R) -> R:
        """Called on the traversal thread, in window order, once a window is reduced."""
        return partial

    def on_traversal_done(self, result: R) -> None:
        return None


def tree_reduce(partials: Sequence[R], combine: Callable[[R, R], R], empty: R) -> R:
    """Combine partial results pairwise, round by round.

    ``[a, b, c, d, e]`` reduces as ``((a+b) + (c+d)) + e``. With an associative
    ``combine`` the result equals a left fold over the same partials.
    """
    level: List[R] = list(partials)
    if not level:
        return empty
    while len(level) > 1:
        nxt: List[R] = []
        for i in range(0, len(level) - 1, 2):
            nxt.append(combine(level[i], level[i + 1]))
        if len(level) % 2 == 1:
            nxt.append(level[-1])
        level = nxt
    return level[0]
