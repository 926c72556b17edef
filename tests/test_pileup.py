from pathlib import Path
from typing import List, Optional, Tuple

import pysam
import pytest

from locuswalk.models import GenomicInterval
from locuswalk.pileup import (
    PileupSource,
    deletion_length_at,
    make_windows,
    parse_region,
    sample_names,
)
from locuswalk.toy_data import (
    DELETION_LENGTH,
    DELETION_POS0,
    HOM_ALT_POS0,
    INSERTION_AFTER_POS0,
    REF_LENGTH,
    make_toy_data,
)


def make_read(
    seq: str,
    start: int = 100,
    cigar: Optional[List[Tuple[int, int]]] = None,
) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment()
    a.query_name = "r1"
    a.query_sequence = seq
    a.flag = 0
    a.reference_start = start
    a.mapping_quality = 60
    a.cigartuples = cigar or [(0, len(seq))]
    a.query_qualities = pysam.qualitystring_to_array("I" * len(seq))
    return a


def test_deletion_length_at_positions():
    read = make_read("ACGTAACGTA", start=100, cigar=[(0, 5), (2, 3), (0, 5)])
    assert deletion_length_at(read, 104) == 0
    assert deletion_length_at(read, 105) == 3
    assert deletion_length_at(read, 107) == 3
    assert deletion_length_at(read, 108) == 0


def test_deletion_length_after_refskip():
    read = make_read("ACGTAACGTA", start=0, cigar=[(0, 3), (3, 100), (0, 2), (2, 4), (0, 5)])
    assert deletion_length_at(read, 50) == 0
    assert deletion_length_at(read, 105) == 4


def test_parse_region_forms():
    lengths = {"chr1": 1000}
    assert parse_region("chr1", lengths) == GenomicInterval("chr1", 1, 1000)
    assert parse_region("chr1:10", lengths) == GenomicInterval("chr1", 10, 10)
    assert parse_region("chr1:1,000-2,000", lengths) == GenomicInterval("chr1", 1000, 1000)
    assert parse_region("chr1:5-20", lengths) == GenomicInterval("chr1", 5, 20)


@pytest.mark.parametrize("region", ["chr2:1-10", "chr1:20-10", "chr1:0-5", "chr1:a-b"])
def test_parse_region_rejects_bad_input(region: str):
    with pytest.raises(ValueError):
        parse_region(region, {"chr1": 1000})


def test_make_windows_tiles_contigs():
    windows = make_windows([("chr1", 25), ("chr2", 10), ("empty", 0)], 10)
    assert [str(w) for w in windows] == [
        "chr1:1-10",
        "chr1:11-20",
        "chr1:21-25",
        "chr2:1-10",
    ]


def test_make_windows_from_regions():
    windows = make_windows([("chr1", 100)], 10, regions=["chr1:15-30"])
    assert [str(w) for w in windows] == ["chr1:15-24", "chr1:25-30"]


def test_sample_names_from_header():
    header = {"RG": [{"ID": "a", "SM": "S1"}, {"ID": "b", "SM": "S1"}, {"ID": "c"}]}
    assert sample_names(header) == {"S1"}


def _toy_loci(toy, **kwargs):
    source = PileupSource(toy["bam"], toy["ref_fa"], **kwargs)
    window = GenomicInterval("chr1", 1, REF_LENGTH)
    return {locus.position: locus for locus in source.iter_window(window)}


def test_every_reference_position_is_visited(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    loci = _toy_loci(toy)
    assert sorted(loci) == list(range(1, REF_LENGTH + 1))
    assert len(loci[1].column) == 0
    assert loci[281].ref_base == "N"


def test_snv_column_has_sample_and_alt_bases(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    locus = _toy_loci(toy)[HOM_ALT_POS0 + 1]
    assert len(locus.column) == 8
    assert locus.column.samples == frozenset({"S1"})
    assert {e.base for e in locus.column} == {"A"}


def test_deletions_only_kept_when_requested(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    pos = DELETION_POS0 + 1
    without = _toy_loci(toy)[pos]
    assert len(without.column) == 0

    with_dels = _toy_loci(toy, include_deletions=True)[pos]
    assert len(with_dels.column) == 6
    assert {e.deletion_length for e in with_dels.column} == {DELETION_LENGTH}


def test_insertion_marker(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    locus = _toy_loci(toy, include_deletions=True)[INSERTION_AFTER_POS0 + 1]
    assert len(locus.column) == 6
    assert all(e.before_insertion for e in locus.column)


def test_mapping_quality_filter(tmp_path: Path):
    toy = make_toy_data(outdir=tmp_path / "toy")
    locus = _toy_loci(toy, min_mapping_quality=61)[HOM_ALT_POS0 + 1]
    assert len(locus.column) == 0
