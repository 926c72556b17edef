from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable, Iterator, List, Optional, Protocol, Sequence, TypeVar

from tqdm import tqdm

from .contract import LocusWalker, tree_reduce

logger = logging.getLogger(__name__)

R = TypeVar("R")


class WindowSource(Protocol):
    def iter_window(self, window: Any) -> Iterator[Any]:
        ...


def reduce_window(walker: LocusWalker[Any, R], source: WindowSource, window: Any) -> R:
    """Fold every item of one window into a fresh partial result."""
    acc = walker.reduce_init()
    for item in source.iter_window(window):
        acc = walker.reduce(walker.map(item), acc)
    return acc


def traverse(
    walker: LocusWalker[Any, R],
    source: WindowSource,
    windows: Sequence[Any],
    *,
    threads: int = 1,
    progress: bool = True,
    desc: Optional[str] = None,
) -> R:
    """Run a walker over windows and return the tree-reduced result.

    Windows are reduced on a pool of ``threads`` workers. Partials reach
    ``walker.on_window_done`` in window order on the calling thread, then are
    combined with ``walker.tree_reduce``. Any exception aborts the traversal;
    ``on_traversal_done`` only runs after every window succeeded.
    """
    t0 = time.time()
    partials: List[R] = []
    with ThreadPoolExecutor(max_workers=threads) as pool:
        it: Iterable[R] = pool.map(lambda w: reduce_window(walker, source, w), windows)
        if progress:
            it = tqdm(it, total=len(windows), unit="window", desc=desc or type(walker).__name__)
        for window, partial in zip(windows, it):
            partials.append(walker.on_window_done(window, partial))

    result = tree_reduce(partials, walker.tree_reduce, walker.reduce_init())
    logger.debug("Traversed %d windows in %.2fs", len(windows), time.time() - t0)
    walker.on_traversal_done(result)
    return result
