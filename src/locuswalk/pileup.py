from __future__ import annotations

import logging
import re
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Set, Tuple

import pysam

from .models import GenomicInterval, Locus, PileupColumn, PileupEntry

logger = logging.getLogger(__name__)

_REGION_RE = re.compile(r"^(?P<contig>[^:]+)(?::(?P<start>[\d,]+)(?:-(?P<end>[\d,]+))?)?$")

_CIGAR_DEL = 2


def sample_names(header: Mapping[str, object]) -> Set[str]:
    """Sample names (SM) declared in the read groups of a BAM header dict."""
    return {rg["SM"] for rg in header.get("RG", []) if "SM" in rg}  # type: ignore[union-attr]


def read_group_samples(header: Mapping[str, object]) -> Dict[str, str]:
    return {rg["ID"]: rg["SM"] for rg in header.get("RG", []) if "SM" in rg}  # type: ignore[union-attr]


def bam_contigs(bam_path: str) -> List[Tuple[str, int]]:
    with pysam.AlignmentFile(bam_path, "rb") as bam:
        return list(zip(bam.references, bam.lengths))


def deletion_length_at(read: pysam.AlignedSegment, pos0: int) -> int:
    """Length of the CIGAR deletion covering reference position ``pos0`` (0 if none)."""
    if read.cigartuples is None:
        return 0
    ref_pos = read.reference_start
    for op, length in read.cigartuples:
        if op in (0, 2, 3, 7, 8):  # M, D, N, =, X consume the reference
            if op == _CIGAR_DEL and ref_pos <= pos0 < ref_pos + length:
                return length
            ref_pos += length
            if ref_pos > pos0:
                break
    return 0


def parse_region(region: str, contig_lengths: Mapping[str, int]) -> GenomicInterval:
    """Parse ``contig``, ``contig:pos`` or ``contig:start-end`` (1-based, inclusive)."""
    m = _REGION_RE.match(region.strip())
    if m is None:
        raise ValueError(f"Malformed region: {region!r} (expected contig[:start[-end]])")
    contig = m.group("contig")
    if contig not in contig_lengths:
        raise ValueError(f"Region contig {contig!r} is not in the BAM header")
    length = contig_lengths[contig]
    if m.group("start") is None:
        return GenomicInterval(contig, 1, length)
    start = int(m.group("start").replace(",", ""))
    end = int(m.group("end").replace(",", "")) if m.group("end") else start
    if start < 1 or end < start:
        raise ValueError(f"Invalid coordinates in region: {region!r}")
    return GenomicInterval(contig, start, min(end, length))


def make_windows(
    contigs: Sequence[Tuple[str, int]],
    window_size: int,
    regions: Sequence[str] = (),
) -> List[GenomicInterval]:
    """Tile the requested regions (whole contigs by default) into windows."""
    lengths = dict(contigs)
    if regions:
        targets = [parse_region(r, lengths) for r in regions]
    else:
        targets = [GenomicInterval(name, 1, length) for name, length in contigs if length > 0]

    windows: List[GenomicInterval] = []
    for t in targets:
        start = t.start
        while start <= t.end:
            end = min(start + window_size - 1, t.end)
            windows.append(GenomicInterval(t.contig, start, end))
            start = end + 1
    logger.debug("Split %d target(s) into %d windows of up to %d bp", len(targets), len(windows), window_size)
    return windows


class PileupSource:
    """Per-locus pileup supplier over a BAM and its reference.

    Every reference position of a window is yielded, with an empty column where
    nothing passes the filters. Handles are opened per window, so windows may be
    processed from different threads.
    """

    def __init__(
        self,
        bam_path: str,
        ref_path: str,
        *,
        include_deletions: bool = False,
        min_base_quality: int = 0,
        min_mapping_quality: int = 0,
        max_depth: int = 8000,
    ) -> None:
        self.bam_path = bam_path
        self.ref_path = ref_path
        self.include_deletions = include_deletions
        self.min_base_quality = min_base_quality
        self.min_mapping_quality = min_mapping_quality
        self.max_depth = max_depth

        with pysam.AlignmentFile(bam_path, "rb") as bam:
            header = bam.header.to_dict()
        self._rg_samples = read_group_samples(header)
        samples = sample_names(header)
        self._default_sample: Optional[str] = next(iter(samples)) if len(samples) == 1 else None

    def _sample_for(self, read: pysam.AlignedSegment) -> Optional[str]:
        if read.has_tag("RG"):
            return self._rg_samples.get(str(read.get_tag("RG")), self._default_sample)
        return self._default_sample

    def column_entries(self, column: pysam.PileupColumn) -> Tuple[PileupEntry, ...]:
        pos0 = column.reference_pos
        entries: List[PileupEntry] = []
        for pr in column.pileups:
            read = pr.alignment
            if read.mapping_quality < self.min_mapping_quality:
                continue
            if pr.is_refskip:
                continue
            if pr.is_del:
                if self.include_deletions:
                    length = deletion_length_at(read, pos0)
                    if length > 0:
                        entries.append(PileupEntry(self._sample_for(read), deletion_length=length))
                continue
            qpos = pr.query_position
            seq = read.query_sequence
            if qpos is None or seq is None:
                continue
            quals = read.query_qualities
            bq = int(quals[qpos]) if quals is not None else 0
            if bq < self.min_base_quality:
                continue
            entries.append(
                PileupEntry(
                    self._sample_for(read),
                    base=seq[qpos].upper(),
                    before_insertion=pr.indel > 0,
                )
            )
        return tuple(entries)

    def iter_window(self, window: GenomicInterval) -> Iterator[Locus]:
        start0, end0 = window.start - 1, window.end
        with pysam.AlignmentFile(self.bam_path, "rb") as bam, pysam.FastaFile(self.ref_path) as fasta:
            ref_seq = fasta.fetch(window.contig, start0, end0)
            columns = bam.pileup(
                window.contig,
                start0,
                end0,
                truncate=True,
                min_base_quality=0,
                ignore_orphans=False,
                ignore_overlaps=False,
                max_depth=self.max_depth,
            )
            nxt = next(columns, None)
            for offset, ref_base in enumerate(ref_seq):
                pos0 = start0 + offset
                entries: Tuple[PileupEntry, ...] = ()
                while nxt is not None and nxt.reference_pos < pos0:
                    nxt = next(columns, None)
                if nxt is not None and nxt.reference_pos == pos0:
                    entries = self.column_entries(nxt)
                    nxt = next(columns, None)
                yield Locus(
                    contig=window.contig,
                    position=pos0 + 1,
                    ref_base=ref_base,
                    column=PileupColumn(window.contig, pos0 + 1, entries),
                )
