from pathlib import Path

from locuswalk.engine import traverse
from locuswalk.indels import IndelRegionWalker, detect_indel_region
from locuswalk.intervals import IntervalAccumulator
from locuswalk.models import (
    GenomicInterval,
    IndelEvidenceHistogram,
    Locus,
    PileupColumn,
    PileupEntry,
)
from locuswalk.options import IndelRegionOptions


def hist(**counts: int) -> IndelEvidenceHistogram:
    h = IndelEvidenceHistogram()
    for key, n in counts.items():
        h.increment(int(key[1:]), n)
    return h


def test_deletion_seed_spans_length_minus_one():
    iv = detect_indel_region(hist(d3=2), 1, "chr1", 100)
    assert iv == GenomicInterval("chr1", 100, 102)


def test_longest_qualifying_deletion_wins():
    iv = detect_indel_region(hist(d2=3, d5=3, d9=1), 2, "chr1", 100)
    assert iv == GenomicInterval("chr1", 100, 104)


def test_single_base_deletion_is_single_position():
    iv = detect_indel_region(hist(d1=1), 1, "chr1", 7)
    assert iv == GenomicInterval("chr1", 7, 7)
    assert iv.length == 1


def test_insertion_seed_is_zero_length_after_position():
    iv = detect_indel_region(hist(d0=2), 2, "chr1", 50)
    assert iv == GenomicInterval("chr1", 51, 50)
    assert iv.length == 0


def test_deletion_takes_precedence_over_insertion():
    iv = detect_indel_region(hist(d0=10, d2=1), 1, "chr1", 50)
    assert iv == GenomicInterval("chr1", 50, 51)


def test_below_minimum_count_yields_nothing():
    assert detect_indel_region(hist(d0=1, d4=1), 2, "chr1", 50) is None


def test_histogram_from_column():
    entries = (
        PileupEntry("S1", deletion_length=3),
        PileupEntry("S1", deletion_length=3),
        PileupEntry("S1", base="A", before_insertion=True),
        PileupEntry("S1", base="C"),
    )
    h = IndelEvidenceHistogram.from_column(PileupColumn("chr1", 1, entries))
    assert h.deletion_bins() == [(3, 2)]
    assert h.insertion_count == 1
    assert not h.is_empty()


class FakeLocusSource:
    """Windows are lists of (position, entries) pairs on chr1."""

    def iter_window(self, window):
        for pos, entries in window:
            yield Locus("chr1", pos, "A", PileupColumn("chr1", pos, tuple(entries)))


def test_walker_end_to_end_writes_merged_intervals(tmp_path: Path):
    deletion = [PileupEntry("S1", deletion_length=2)] * 2
    insertion = [PileupEntry("S1", base="A", before_insertion=True)] * 2
    windows = [
        [(10, deletion), (11, [PileupEntry("S1", base="A")])],
        [(14, deletion)],
        [(200, insertion), (400, [PileupEntry("S1", deletion_length=1)])],
    ]
    out = tmp_path / "regions.list"
    walker = IndelRegionWalker(
        options=IndelRegionOptions(minimum_count=2, indel_window=2),
        out_path=out,
    )
    acc = traverse(walker, FakeLocusSource(), windows, threads=2, progress=False)
    assert acc.seeds == 3
    assert walker.intervals == [
        GenomicInterval("chr1", 8, 17),
        GenomicInterval("chr1", 199, 202),
    ]
    assert out.read_text().splitlines() == ["chr1:8-17", "chr1:199-202"]
    assert walker.total_bp == 14


def test_walker_ignores_empty_columns():
    walker = IndelRegionWalker(options=IndelRegionOptions())
    locus = Locus("chr1", 5, "A", PileupColumn("chr1", 5, ()))
    assert walker.map(locus) is None


def test_padded_deletion_example():
    seed = detect_indel_region(hist(d3=2), 2, "chr1", 100)
    assert str(seed) == "chr1:100-102"
    acc = IntervalAccumulator()
    acc.add(seed, 5)
    assert acc.finalize() == [GenomicInterval("chr1", 95, 107)]
