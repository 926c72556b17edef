from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple

# Order used for tallying and for listing alternate alleles.
BASES: Tuple[str, ...] = ("A", "C", "G", "T")


@dataclass(frozen=True)
class Allele:
    """A single-base allele at one locus."""

    base: str
    is_reference: bool = False

    def __str__(self) -> str:
        return self.base + ("*" if self.is_reference else "")


class FilterLabel(str, Enum):
    """Filters attached to a genotype call; the value is the VCF FILTER id."""

    LOW_COVERAGE = "LowCov"
    POLYMORPHIC = "Poly"


@dataclass(frozen=True)
class PileupEntry:
    """One aligned read at one locus, after quality filtering.

    Attributes
    ----------
    sample:
        Sample name from the read group, if known.
    base:
        Uppercase aligned base; ``None`` when the read has a deletion here.
    deletion_length:
        Length of the deletion covering this locus (0 when not a deletion).
    before_insertion:
        True when the read has an insertion right after this locus.
    """

    sample: Optional[str]
    base: Optional[str] = None
    deletion_length: int = 0
    before_insertion: bool = False

    @property
    def is_deletion(self) -> bool:
        return self.deletion_length > 0


@dataclass(frozen=True)
class PileupColumn:
    """Filtered pileup at a 1-based reference position."""

    contig: str
    position: int
    entries: Tuple[PileupEntry, ...] = ()

    def __iter__(self) -> Iterator[PileupEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def samples(self) -> FrozenSet[str]:
        return frozenset(e.sample for e in self.entries if e.sample is not None)


@dataclass(frozen=True)
class Locus:
    """Item handed to pileup walkers: reference context plus the filtered column."""

    contig: str
    position: int
    ref_base: str
    column: PileupColumn


@dataclass(frozen=True)
class GenomicInterval:
    """1-based closed interval; ``end == start - 1`` marks a zero-length interval."""

    contig: str
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def pad(self, left: int, right: int) -> "GenomicInterval":
        return GenomicInterval(self.contig, self.start - left, self.end + right)

    def __str__(self) -> str:
        return f"{self.contig}:{self.start}-{self.end}"


@dataclass
class AlleleTally:
    """Observed bases at one locus, keyed by allele."""

    counts: Dict[Allele, int] = field(default_factory=dict)
    samples: FrozenSet[str] = frozenset()

    @classmethod
    def from_column(cls, column: Iterable[PileupEntry], reference: Allele) -> "AlleleTally":
        counts: Dict[Allele, int] = {}
        samples = set()
        for entry in column:
            if entry.is_deletion or entry.base not in BASES:
                continue
            allele = Allele(entry.base, entry.base == reference.base)
            counts[allele] = counts.get(allele, 0) + 1
            if entry.sample is not None:
                samples.add(entry.sample)
        return cls(counts=counts, samples=frozenset(samples))

    @property
    def depth(self) -> int:
        return sum(self.counts.values())

    def observed(self) -> List[Allele]:
        """Alleles with a non-zero count, reference first then in A/C/G/T order."""
        present = [a for a, n in self.counts.items() if n > 0]
        return sorted(present, key=lambda a: (not a.is_reference, BASES.index(a.base)))

    def count(self, allele: Allele) -> int:
        return self.counts.get(allele, 0)


@dataclass(frozen=True)
class GenotypeCall:
    """Single-sample diploid call for one locus."""

    sample: str
    depth: int
    alleles: Tuple[Allele, ...] = ()
    allele_depths: Tuple[int, int] = (0, 0)
    filters: FrozenSet[FilterLabel] = frozenset()

    @property
    def is_called(self) -> bool:
        return len(self.alleles) > 0

    @property
    def is_homozygous(self) -> bool:
        return self.is_called and len(set(self.alleles)) == 1


@dataclass(frozen=True)
class NoCall:
    """Unsupported site: more than two alleles observed."""

    sample: str
    depth: int
    n_alleles: int


@dataclass
class IndelEvidenceHistogram:
    """Observation counts by event length (0 = insertion, N > 0 = deletion of length N)."""

    counts: Dict[int, int] = field(default_factory=dict)

    @classmethod
    def from_column(cls, column: Iterable[PileupEntry]) -> "IndelEvidenceHistogram":
        hist = cls()
        for entry in column:
            if entry.is_deletion:
                hist.increment(entry.deletion_length)
            elif entry.before_insertion:
                hist.increment(0)
        return hist

    def increment(self, length: int, by: int = 1) -> None:
        self.counts[length] = self.counts.get(length, 0) + by

    @property
    def insertion_count(self) -> int:
        return self.counts.get(0, 0)

    def deletion_bins(self) -> List[Tuple[int, int]]:
        return sorted((k, v) for k, v in self.counts.items() if k > 0)

    def is_empty(self) -> bool:
        return not any(self.counts.values())
