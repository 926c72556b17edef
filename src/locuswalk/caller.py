"""Single-sample genotype caller driven by deterministic coverage/allele-count rules.

Each locus is called independently from its filtered pileup column:

* no coverage gives an empty ("no information") call;
* coverage below ``minimum_coverage`` adds the ``LowCov`` filter;
* one observed allele gives a homozygous call;
* two observed alleles give a call carrying the ``Poly`` filter;
* more than two observed alleles cannot be represented by a diploid
  single-sample genotype and the locus is skipped.

The walker keeps no shared state: calls are buffered per window and written
in window order by :meth:`GenotypeCallerWalker.on_window_done`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from .contract import LocusWalker
from .errors import InternalConsistencyError, PreconditionError
from .models import BASES, Allele, AlleleTally, FilterLabel, GenotypeCall, Locus, NoCall
from .options import CallerOptions
from .vcf import CallVcfWriter

logger = logging.getLogger(__name__)

CallOutcome = Union[GenotypeCall, NoCall]


def reference_allele(ref_base: str) -> Optional[Allele]:
    """Reference allele for a base, or None for ambiguous symbols (N, IUPAC codes)."""
    base = ref_base.upper()
    if base not in BASES:
        return None
    return Allele(base, True)


def call_genotype(
    tally: AlleleTally,
    reference: Allele,
    min_coverage: int,
    *,
    sample: Optional[str] = None,
) -> CallOutcome:
    """Call the genotype for one sample from its allele tally.

    Parameters
    ----------
    tally:
        Allele counts at the locus, from a pileup restricted to one sample.
    reference:
        Reference allele at the locus.
    min_coverage:
        Depth below which the call is flagged ``LowCov``.
    sample:
        Sample name used when the tally carries none (e.g. zero coverage).

    Returns
    -------
    GenotypeCall, or NoCall when more than two alleles are observed.

    Raises
    ------
    PreconditionError
        If the tally spans more than one sample.
    """
    if len(tally.samples) > 1:
        raise PreconditionError(
            f"Pileup should be sample specific; found samples: {sorted(tally.samples)}"
        )
    sample_name = next(iter(tally.samples)) if tally.samples else sample
    if sample_name is None:
        raise PreconditionError("Cannot call a genotype without a sample name")

    depth = tally.depth
    if depth == 0:
        return GenotypeCall(sample=sample_name, depth=0)

    filters = set()
    if depth < min_coverage:
        filters.add(FilterLabel.LOW_COVERAGE)

    alleles = tally.observed()
    if len(alleles) == 0:
        raise InternalConsistencyError(f"No alleles in a tally with depth {depth}")
    if len(alleles) == 1:
        pair = (alleles[0], alleles[0])
    elif len(alleles) == 2:
        pair = (alleles[0], alleles[1])
        filters.add(FilterLabel.POLYMORPHIC)
    else:
        return NoCall(sample=sample_name, depth=depth, n_alleles=len(alleles))

    alts = [a for a in alleles if not a.is_reference]
    ref_count = tally.count(reference)
    alt_count = tally.count(alts[0]) if alts else 0

    return GenotypeCall(
        sample=sample_name,
        depth=depth,
        alleles=pair,
        allele_depths=(ref_count, alt_count),
        filters=frozenset(filters),
    )


@dataclass(frozen=True)
class CallStatistics:
    """Scan counters; ``+`` is a field-wise sum."""

    loci: int = 0
    emitted: int = 0
    suppressed: int = 0
    no_calls: int = 0
    ambiguous_reference: int = 0
    filter_counts: Dict[str, int] = field(default_factory=dict)

    def __add__(self, other: "CallStatistics") -> "CallStatistics":
        merged = dict(self.filter_counts)
        for k, v in other.filter_counts.items():
            merged[k] = merged.get(k, 0) + v
        return CallStatistics(
            loci=self.loci + other.loci,
            emitted=self.emitted + other.emitted,
            suppressed=self.suppressed + other.suppressed,
            no_calls=self.no_calls + other.no_calls,
            ambiguous_reference=self.ambiguous_reference + other.ambiguous_reference,
            filter_counts=merged,
        )

    def as_dict(self) -> Dict[str, object]:
        return {
            "loci": self.loci,
            "emitted": self.emitted,
            "suppressed": self.suppressed,
            "no_calls": self.no_calls,
            "ambiguous_reference": self.ambiguous_reference,
            "filter_counts": dict(sorted(self.filter_counts.items())),
        }


@dataclass(frozen=True)
class CallSite:
    """Outcome of mapping one locus; ``reference`` is None for an ambiguous reference base."""

    contig: str
    position: int
    reference: Optional[Allele]
    outcome: Optional[CallOutcome] = None


@dataclass
class CallerPartial:
    stats: CallStatistics = field(default_factory=CallStatistics)
    pending: List[CallSite] = field(default_factory=list)


class GenotypeCallerWalker(LocusWalker[CallSite, CallerPartial]):
    """Walker producing one genotype call per locus for a single-sample BAM."""

    def __init__(
        self,
        *,
        sample: str,
        options: CallerOptions,
        writer: Optional[CallVcfWriter] = None,
    ) -> None:
        self.sample = sample
        self.options = options
        self.writer = writer

    def map(self, item: Locus) -> CallSite:
        reference = reference_allele(item.ref_base)
        if reference is None:
            logger.debug("Found %s at reference position %s:%d", item.ref_base, item.contig, item.position)
            return CallSite(item.contig, item.position, None)
        tally = AlleleTally.from_column(item.column, reference)
        outcome = call_genotype(tally, reference, self.options.minimum_coverage, sample=self.sample)
        if isinstance(outcome, NoCall):
            logger.debug(
                "Skipping %s:%d: %d alleles observed (only biallelic sites are supported)",
                item.contig,
                item.position,
                outcome.n_alleles,
            )
        return CallSite(item.contig, item.position, reference, outcome)

    def reduce_init(self) -> CallerPartial:
        return CallerPartial()

    def reduce(self, value: Optional[CallSite], acc: CallerPartial) -> CallerPartial:
        if value is None:
            return acc
        stats = CallStatistics(loci=1)
        outcome = value.outcome
        if value.reference is None:
            stats = CallStatistics(loci=1, ambiguous_reference=1)
        elif isinstance(outcome, NoCall):
            stats = CallStatistics(loci=1, no_calls=1)
        elif isinstance(outcome, GenotypeCall):
            counts = {f.value: 1 for f in outcome.filters}
            if self.options.output_mode.emit(outcome):
                stats = CallStatistics(loci=1, emitted=1, filter_counts=counts)
                acc.pending.append(value)
            else:
                stats = CallStatistics(loci=1, suppressed=1, filter_counts=counts)
        acc.stats = acc.stats + stats
        return acc

    def tree_reduce(self, lhs: CallerPartial, rhs: CallerPartial) -> CallerPartial:
        return CallerPartial(stats=lhs.stats + rhs.stats, pending=lhs.pending + rhs.pending)

    def on_window_done(self, window: object, partial: CallerPartial) -> CallerPartial:
        if self.writer is not None:
            for site in partial.pending:
                assert site.reference is not None and isinstance(site.outcome, GenotypeCall)
                self.writer.write(site.contig, site.position, site.reference, site.outcome)
            partial.pending = []
        return partial

    def on_traversal_done(self, result: CallerPartial) -> None:
        s = result.stats
        logger.info(
            "%s loci visited; %s calls written, %s suppressed by output mode, "
            "%s non-biallelic sites skipped, %s ambiguous reference bases",
            f"{s.loci:,}",
            f"{s.emitted:,}",
            f"{s.suppressed:,}",
            f"{s.no_calls:,}",
            f"{s.ambiguous_reference:,}",
        )
