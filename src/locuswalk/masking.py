"""Mask genotypes of specific samples.

Each sample given on the command line is paired with a BED mask. Any called
genotype of that sample at a position inside its mask (or outside it, with
``filter_not_in_mask``) is set to a no-call. With ``minimum_coverage`` set,
genotypes with a lower (or missing) DP are masked as well.

Records whose genotypes are all missing after masking are dropped unless
``preserve_all`` is set.
"""

from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

import pysam

from .contract import LocusWalker
from .errors import PreconditionError
from .models import GenomicInterval
from .options import MaskingOptions
from .utils import open_textmaybe_gzip

logger = logging.getLogger(__name__)

MASKED_FORMAT_TAG = "MGT"

# Contig length used when a VCF header does not declare one.
UNKNOWN_CONTIG_LENGTH = 2**29

VcfWindow = Union[None, str, GenomicInterval]


@dataclass(frozen=True)
class BedMask:
    """Merged BED intervals, stored 1-based inclusive per contig."""

    source: str
    starts: Dict[str, List[int]]
    ends: Dict[str, List[int]]

    def contains(self, contig: str, pos: int) -> bool:
        starts = self.starts.get(contig)
        if not starts:
            return False
        i = bisect.bisect_right(starts, pos) - 1
        return i >= 0 and self.ends[contig][i] >= pos


def load_bed_mask(path: str | Path) -> BedMask:
    by_contig: Dict[str, List[Tuple[int, int]]] = {}
    with open_textmaybe_gzip(path, "rt") as fh:
        for line in fh:
            if not line.strip() or line.startswith(("#", "track", "browser")):
                continue
            fields = line.rstrip("\n").split("\t")
            if len(fields) < 3:
                raise ValueError(f"Malformed BED line in {path}: {line.strip()!r}")
            contig, start0, end0 = fields[0], int(fields[1]), int(fields[2])
            by_contig.setdefault(contig, []).append((start0 + 1, end0))

    starts: Dict[str, List[int]] = {}
    ends: Dict[str, List[int]] = {}
    for contig, ivs in by_contig.items():
        ivs.sort()
        s_list: List[int] = []
        e_list: List[int] = []
        for s, e in ivs:
            if s_list and s <= e_list[-1] + 1:
                e_list[-1] = max(e_list[-1], e)
            else:
                s_list.append(s)
                e_list.append(e)
        starts[contig] = s_list
        ends[contig] = e_list
    return BedMask(source=str(path), starts=starts, ends=ends)


def build_sample_masks(
    vcf_samples: Sequence[str],
    mask_paths: Sequence[str],
    sample_names: Sequence[str],
    options: MaskingOptions,
) -> Dict[str, BedMask]:
    """Pair each sample with its mask, validating against the VCF samples."""
    if len(mask_paths) != len(sample_names):
        raise PreconditionError("--mask and --sample-name must be a 1-to-1 mapping")
    present = set(vcf_samples)
    masks: Dict[str, BedMask] = {}
    for sample, path in zip(sample_names, mask_paths):
        if sample in present:
            logger.info(
                "Masking %s with positions %s %s file",
                sample,
                "not in" if options.filter_not_in_mask else "in",
                path,
            )
            masks[sample] = load_bed_mask(path)
        elif options.allow_nonoverlapping_samples:
            logger.warning("Sample %s not found in the input file(s) and will be ignored", sample)
        else:
            raise PreconditionError(
                f"One sample entered on command line (through --sample-name) is not present in the VCF: "
                f"{sample}\n\nTo ignore this error, run with --allow-nonoverlapping-samples"
            )
    return masks


def vcf_is_indexed(vcf_path: str | Path) -> bool:
    p = str(vcf_path)
    return Path(p + ".tbi").exists() or Path(p + ".csi").exists()


def vcf_windows(vcf_path: str, window_size: int) -> List[VcfWindow]:
    """Windows over the VCF header contigs, or a single whole-file pass if unindexed.

    A contig whose header line has no length is one whole-contig window (its name).
    """
    if not vcf_is_indexed(vcf_path):
        logger.info("VCF %s is not indexed; masking in a single pass", vcf_path)
        return [None]
    windows: List[VcfWindow] = []
    with pysam.VariantFile(vcf_path) as vcf:
        for name, contig in vcf.header.contigs.items():
            length = contig.length
            if not length:
                windows.append(name)
                continue
            start = 1
            while start <= length:
                end = min(start + window_size - 1, length)
                windows.append(GenomicInterval(name, start, end))
                start = end + 1
    return windows


class VariantSource:
    """Yields the VCF records starting in a window.

    ``None`` means every record of the file and a bare contig name every record of that contig.
    """

    def __init__(self, vcf_path: str) -> None:
        self.vcf_path = vcf_path

    def iter_window(self, window: VcfWindow) -> Iterator[pysam.VariantRecord]:
        with pysam.VariantFile(self.vcf_path) as vcf:
            if window is None:
                yield from vcf
                return
            if isinstance(window, str):
                yield from vcf.fetch(window)
                return
            for rec in vcf.fetch(window.contig, window.start - 1, window.end):
                if window.start <= rec.pos <= window.end:
                    yield rec


def _genotype(sample: pysam.VariantRecordSample) -> Tuple[Optional[int], ...]:
    if "GT" not in sample:
        return ()
    gt = sample["GT"]
    return tuple(gt) if gt is not None else ()


def _genotype_string(sample: pysam.VariantRecordSample, gt: Tuple[Optional[int], ...]) -> str:
    sep = "|" if sample.phased else "/"
    return sep.join("." if i is None else str(i) for i in gt)


@dataclass(frozen=True)
class MaskingStatistics:
    """Counters combined with ``+``; ``masked_by_sample`` replaces a process-wide tally."""

    records: int = 0
    written: int = 0
    dropped: int = 0
    masked_by_sample: Dict[str, int] = field(default_factory=dict)

    def __add__(self, other: "MaskingStatistics") -> "MaskingStatistics":
        merged = dict(self.masked_by_sample)
        for k, v in other.masked_by_sample.items():
            merged[k] = merged.get(k, 0) + v
        return MaskingStatistics(
            records=self.records + other.records,
            written=self.written + other.written,
            dropped=self.dropped + other.dropped,
            masked_by_sample=merged,
        )


@dataclass(frozen=True)
class MaskedRecord:
    record: Optional[pysam.VariantRecord]
    masked_samples: Tuple[str, ...] = ()


@dataclass
class MaskingPartial:
    stats: MaskingStatistics = field(default_factory=MaskingStatistics)
    pending: List[pysam.VariantRecord] = field(default_factory=list)


def masking_header(in_header: pysam.VariantHeader, options: MaskingOptions) -> pysam.VariantHeader:
    header = in_header.copy()
    if options.keep_masked_gt and MASKED_FORMAT_TAG not in header.formats:
        header.formats.add(MASKED_FORMAT_TAG, 1, "String", "Genotype before masking")
    return header


class MaskingWalker(LocusWalker[MaskedRecord, MaskingPartial]):
    """Walker over VCF records applying the per-sample masks."""

    def __init__(
        self,
        *,
        masks: Dict[str, BedMask],
        options: MaskingOptions,
        header: pysam.VariantHeader,
        writer: Optional[pysam.VariantFile] = None,
    ) -> None:
        self.masks = masks
        self.options = options
        self.header = header
        self.writer = writer

    def _should_mask(self, name: str, sample: pysam.VariantRecordSample, contig: str, pos: int) -> bool:
        if self.options.minimum_coverage > 0:
            dp = sample["DP"] if "DP" in sample else None
            if dp is None or dp < self.options.minimum_coverage:
                return True
        mask = self.masks.get(name)
        if mask is None:
            return False
        inside = mask.contains(contig, pos)
        return not inside if self.options.filter_not_in_mask else inside

    def map(self, item: pysam.VariantRecord) -> MaskedRecord:
        rec = item
        rec.translate(self.header)
        masked: List[str] = []
        missing = 0
        n_samples = len(rec.samples)
        for name in rec.samples:
            sample = rec.samples[name]
            gt = _genotype(sample)
            called = any(i is not None for i in gt)
            if called and self._should_mask(name, sample, rec.contig, rec.pos):
                if self.options.keep_masked_gt:
                    sample[MASKED_FORMAT_TAG] = _genotype_string(sample, gt)
                sample["GT"] = (None,) * len(gt)
                masked.append(name)
                called = False
            if gt and not called:
                missing += 1

        if n_samples > 0 and missing >= n_samples:
            if self.options.preserve_all:
                logger.warning("All missing genotypes preserved at %s:%d.", rec.contig, rec.pos)
            else:
                logger.debug("Missing genotypes at %s:%d.", rec.contig, rec.pos)
                return MaskedRecord(None, tuple(masked))
        return MaskedRecord(rec, tuple(masked))

    def reduce_init(self) -> MaskingPartial:
        return MaskingPartial()

    def reduce(self, value: Optional[MaskedRecord], acc: MaskingPartial) -> MaskingPartial:
        if value is None:
            return acc
        by_sample: Dict[str, int] = {}
        for name in value.masked_samples:
            by_sample[name] = by_sample.get(name, 0) + 1
        if value.record is None:
            stats = MaskingStatistics(records=1, dropped=1, masked_by_sample=by_sample)
        else:
            stats = MaskingStatistics(records=1, written=1, masked_by_sample=by_sample)
            acc.pending.append(value.record)
        acc.stats = acc.stats + stats
        return acc

    def tree_reduce(self, lhs: MaskingPartial, rhs: MaskingPartial) -> MaskingPartial:
        return MaskingPartial(stats=lhs.stats + rhs.stats, pending=lhs.pending + rhs.pending)

    def on_window_done(self, window: object, partial: MaskingPartial) -> MaskingPartial:
        if self.writer is not None:
            for rec in partial.pending:
                self.writer.write(rec)
            partial.pending = []
        return partial

    def on_traversal_done(self, result: MaskingPartial) -> None:
        logger.info("%s records processed.", f"{result.stats.records:,}")
        for sample in sorted(self.masks):
            logger.info(
                "%s genotypes called as missing for %s",
                result.stats.masked_by_sample.get(sample, 0),
                sample,
            )
