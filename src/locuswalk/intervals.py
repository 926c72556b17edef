from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from .errors import AccumulatorFinalizedError, IntervalWriteError
from .models import GenomicInterval

logger = logging.getLogger(__name__)


def merge_intervals(
    intervals: Iterable[GenomicInterval],
    contig_order: Optional[Sequence[str]] = None,
) -> List[GenomicInterval]:
    """Sort by contig then start and merge overlapping or abutting intervals.

    Contigs follow ``contig_order`` when given (unknown contigs go last,
    alphabetically), otherwise alphabetical order.
    """
    rank: Dict[str, int] = {c: i for i, c in enumerate(contig_order or ())}
    n = len(rank)

    def key(iv: GenomicInterval):
        return (rank.get(iv.contig, n), iv.contig, iv.start, iv.end)

    merged: List[GenomicInterval] = []
    for iv in sorted(intervals, key=key):
        if merged:
            last = merged[-1]
            if last.contig == iv.contig and iv.start <= last.end + 1:
                if iv.end > last.end:
                    merged[-1] = GenomicInterval(last.contig, last.start, iv.end)
                continue
        merged.append(iv)
    return merged


class IntervalAccumulator:
    """Collects padded seed intervals; merged once by :meth:`finalize`.

    ``add`` and ``combine`` take the accumulator's lock, so one instance may be
    fed from several worker threads. ``a + b`` returns a new accumulator with
    the union of both collections: the finalized result does not depend on the
    order or grouping in which partial accumulators are combined.
    """

    def __init__(self, intervals: Iterable[GenomicInterval] = (), seeds: int = 0) -> None:
        self._lock = threading.Lock()
        self._intervals: List[GenomicInterval] = list(intervals)
        self._seeds = seeds
        self._finalized: Optional[List[GenomicInterval]] = None

    @property
    def seeds(self) -> int:
        return self._seeds

    @property
    def is_finalized(self) -> bool:
        return self._finalized is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._intervals)

    def add(self, seed: GenomicInterval, window: int) -> None:
        padded = seed.pad(window, window)
        if padded.start < 1:
            padded = GenomicInterval(padded.contig, 1, padded.end)
        with self._lock:
            if self._finalized is not None:
                raise AccumulatorFinalizedError("Cannot add intervals after finalize()")
            self._intervals.append(padded)
            self._seeds += 1

    def snapshot(self) -> List[GenomicInterval]:
        with self._lock:
            return list(self._intervals)

    def combine(self, other: "IntervalAccumulator") -> "IntervalAccumulator":
        with self._lock:
            left, left_seeds = list(self._intervals), self._seeds
        with other._lock:
            right, right_seeds = list(other._intervals), other._seeds
        return IntervalAccumulator(left + right, left_seeds + right_seeds)

    __add__ = combine

    def finalize(self, contig_order: Optional[Sequence[str]] = None) -> List[GenomicInterval]:
        with self._lock:
            if self._finalized is None:
                self._finalized = merge_intervals(self._intervals, contig_order)
                self._intervals = list(self._finalized)
            return list(self._finalized)


def _format_gatk(iv: GenomicInterval) -> str:
    if iv.length == 1:
        return f"{iv.contig}:{iv.start}"
    return f"{iv.contig}:{iv.start}-{iv.end}"


def write_intervals(
    intervals: Sequence[GenomicInterval],
    out_path: str | Path,
    *,
    sam_header: Optional[str] = None,
) -> int:
    """Write intervals and return the total number of base pairs covered.

    ``.interval_list`` outputs get the SAM header text followed by
    ``contig  start  end  +  .`` rows; any other extension gets one
    ``contig:start-end`` per line.
    """
    out_path = Path(out_path)
    interval_list = out_path.suffix == ".interval_list"
    logger.info("Writing the results in %s", out_path)
    total_bp = 0
    try:
        with open(out_path, "wt", encoding="utf-8") as fh:
            if interval_list and sam_header:
                fh.write(sam_header if sam_header.endswith("\n") else sam_header + "\n")
            for iv in intervals:
                total_bp += max(iv.length, 0)
                if interval_list:
                    fh.write(f"{iv.contig}\t{iv.start}\t{iv.end}\t+\t.\n")
                else:
                    fh.write(_format_gatk(iv) + "\n")
    except OSError as e:
        raise IntervalWriteError(
            f"Error writing out intervals to file: {out_path.resolve()}", path=out_path, cause=e
        ) from e
    logger.info(
        "A total of %s intervals (%s bp) were identified",
        f"{len(intervals):,}",
        f"{total_bp:,}",
    )
    return total_bp
