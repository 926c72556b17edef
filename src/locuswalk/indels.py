"""Identify regions with indels from pileup evidence.

At every locus the deletion lengths and insertion markers of the pileup are
counted. A locus yields a seed interval when some deletion length, or failing
that the insertion marker, is observed at least ``minimum_count`` times:

* deletions: ``[pos, pos + length - 1]`` for the longest qualifying length;
* insertions: a zero-length interval right after ``pos``.

Seeds are padded by ``indel_window`` on both sides and merged once the whole
traversal is done.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from .contract import LocusWalker
from .intervals import IntervalAccumulator, write_intervals
from .models import GenomicInterval, IndelEvidenceHistogram, Locus
from .options import IndelRegionOptions

logger = logging.getLogger(__name__)


def detect_indel_region(
    histogram: IndelEvidenceHistogram,
    min_count: int,
    contig: str,
    position: int,
) -> Optional[GenomicInterval]:
    """Seed interval for one locus, or None if no indel has enough support.

    Deletion evidence takes precedence over insertion evidence. A deletion of
    length N spans ``N - 1`` bases after the locus; this is the convention of
    the later revision of the tool (the earlier one used ``N``).
    """
    extent = -1
    for length, count in histogram.deletion_bins():
        if count >= min_count:
            extent = max(extent, length - 1)
    if extent >= 0:
        return GenomicInterval(contig, position, position + extent)
    if histogram.insertion_count > 0 and histogram.insertion_count >= min_count:
        return GenomicInterval(contig, position + 1, position)
    return None


class IndelRegionWalker(LocusWalker[GenomicInterval, IntervalAccumulator]):
    """Walker emitting padded, merged intervals around supported indels."""

    include_deletions = True

    def __init__(
        self,
        *,
        options: IndelRegionOptions,
        contig_order: Optional[Sequence[str]] = None,
        out_path: Optional[str | Path] = None,
        sam_header: Optional[str] = None,
    ) -> None:
        self.options = options
        self.contig_order = list(contig_order) if contig_order is not None else None
        self.out_path = out_path
        self.sam_header = sam_header
        self.intervals: List[GenomicInterval] = []
        self.total_bp = 0

    def map(self, item: Locus) -> Optional[GenomicInterval]:
        if len(item.column) == 0:
            return None
        histogram = IndelEvidenceHistogram.from_column(item.column)
        if histogram.is_empty():
            return None
        return detect_indel_region(histogram, self.options.minimum_count, item.contig, item.position)

    def reduce_init(self) -> IntervalAccumulator:
        return IntervalAccumulator()

    def reduce(self, value: Optional[GenomicInterval], acc: IntervalAccumulator) -> IntervalAccumulator:
        if value is not None:
            acc.add(value, self.options.indel_window)
        return acc

    def tree_reduce(self, lhs: IntervalAccumulator, rhs: IntervalAccumulator) -> IntervalAccumulator:
        return lhs + rhs

    def on_traversal_done(self, result: IntervalAccumulator) -> None:
        logger.info("Found %s positions with indels", f"{result.seeds:,}")
        self.intervals = result.finalize(self.contig_order)
        if self.out_path is not None:
            self.total_bp = write_intervals(self.intervals, self.out_path, sam_header=self.sam_header)
