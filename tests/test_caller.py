import pytest

from locuswalk.caller import (
    CallStatistics,
    GenotypeCallerWalker,
    call_genotype,
    reference_allele,
)
from locuswalk.errors import PreconditionError
from locuswalk.models import (
    Allele,
    AlleleTally,
    FilterLabel,
    GenotypeCall,
    Locus,
    NoCall,
    PileupColumn,
    PileupEntry,
)
from locuswalk.options import CallerOptions, OutputMode

REF_A = Allele("A", True)


def column(*bases: str, sample: str = "S1", pos: int = 10) -> PileupColumn:
    return PileupColumn("chr1", pos, tuple(PileupEntry(sample, base=b) for b in bases))


def tally(*bases: str, sample: str = "S1") -> AlleleTally:
    return AlleleTally.from_column(column(*bases, sample=sample), REF_A)


def test_zero_coverage_is_empty_call():
    call = call_genotype(AlleleTally(), REF_A, min_coverage=5, sample="S1")
    assert isinstance(call, GenotypeCall)
    assert call.sample == "S1"
    assert call.depth == 0
    assert not call.is_called
    assert call.filters == frozenset()


def test_single_allele_is_homozygous():
    call = call_genotype(tally("A", "A", "A"), REF_A, min_coverage=1)
    assert call.alleles == (REF_A, REF_A)
    assert call.is_homozygous
    assert call.allele_depths == (3, 0)
    assert call.depth == 3
    assert call.filters == frozenset()


def test_homozygous_alt_depths():
    call = call_genotype(tally("C", "C", "C", "C"), REF_A, min_coverage=1)
    assert call.alleles == (Allele("C"), Allele("C"))
    assert call.allele_depths == (0, 4)


def test_two_alleles_polymorphic_ref_first():
    call = call_genotype(tally("G", "A", "G"), REF_A, min_coverage=1)
    assert call.alleles == (REF_A, Allele("G"))
    assert call.allele_depths == (1, 2)
    assert call.filters == frozenset({FilterLabel.POLYMORPHIC})


def test_low_coverage_and_polymorphic_filters_combine():
    call = call_genotype(tally("A", "T"), REF_A, min_coverage=5)
    assert call.filters == frozenset({FilterLabel.LOW_COVERAGE, FilterLabel.POLYMORPHIC})


def test_depth_equal_to_threshold_is_not_low_coverage():
    call = call_genotype(tally("A", "A", "A"), REF_A, min_coverage=3)
    assert FilterLabel.LOW_COVERAGE not in call.filters


def test_two_alt_alleles_first_alt_in_base_order():
    call = call_genotype(tally("T", "C", "T"), REF_A, min_coverage=1)
    assert call.alleles == (Allele("C"), Allele("T"))
    assert call.allele_depths == (0, 1)
    assert FilterLabel.POLYMORPHIC in call.filters


def test_more_than_two_alleles_is_nocall():
    out = call_genotype(tally("A", "C", "G"), REF_A, min_coverage=1)
    assert isinstance(out, NoCall)
    assert out.n_alleles == 3
    assert out.depth == 3


def test_multi_sample_tally_rejected():
    entries = (PileupEntry("S1", base="A"), PileupEntry("S2", base="A"))
    t = AlleleTally.from_column(PileupColumn("chr1", 1, entries), REF_A)
    with pytest.raises(PreconditionError):
        call_genotype(t, REF_A, min_coverage=1)


def test_tally_skips_deletions_and_ambiguous_bases():
    entries = (
        PileupEntry("S1", base="A"),
        PileupEntry("S1", base="N"),
        PileupEntry("S1", deletion_length=2),
    )
    t = AlleleTally.from_column(PileupColumn("chr1", 1, entries), REF_A)
    assert t.depth == 1
    assert t.observed() == [REF_A]


def test_reference_allele_ambiguous():
    assert reference_allele("n") is None
    assert reference_allele("R") is None
    assert reference_allele("g") == Allele("G", True)


def _walk(walker, loci):
    acc = walker.reduce_init()
    for locus in loci:
        acc = walker.reduce(walker.map(locus), acc)
    return acc


def _loci():
    return [
        Locus("chr1", 1, "A", column("A", "A", pos=1)),
        Locus("chr1", 2, "A", column("A", "C", pos=2)),
        Locus("chr1", 3, "A", column(pos=3)),
        Locus("chr1", 4, "N", column("A", pos=4)),
        Locus("chr1", 5, "A", column("A", "C", "G", pos=5)),
        Locus("chr1", 6, "a", column("G", "G", pos=6)),
    ]


def test_walker_confident_mode_counts():
    walker = GenotypeCallerWalker(sample="S1", options=CallerOptions())
    acc = _walk(walker, _loci())
    s = acc.stats
    assert s.loci == 6
    assert s.emitted == 2  # hom-ref at 1, hom-alt at 6
    assert s.suppressed == 2  # Poly at 2, no coverage at 3
    assert s.no_calls == 1
    assert s.ambiguous_reference == 1
    assert [site.position for site in acc.pending] == [1, 6]


def test_walker_all_sites_mode_emits_everything_callable():
    options = CallerOptions(output_mode=OutputMode.EMIT_ALL_SITES)
    walker = GenotypeCallerWalker(sample="S1", options=options)
    acc = _walk(walker, _loci())
    assert [site.position for site in acc.pending] == [1, 2, 3, 6]
    assert acc.stats.filter_counts == {"Poly": 1}


def test_walker_partials_combine_like_single_pass():
    walker = GenotypeCallerWalker(sample="S1", options=CallerOptions())
    loci = _loci()
    whole = _walk(walker, loci)
    left, right = _walk(walker, loci[:3]), _walk(walker, loci[3:])
    combined = walker.tree_reduce(left, right)
    assert combined.stats == whole.stats
    assert [s.position for s in combined.pending] == [s.position for s in whole.pending]


def test_call_statistics_sum_is_commutative():
    a = CallStatistics(loci=2, emitted=1, filter_counts={"Poly": 1})
    b = CallStatistics(loci=3, suppressed=2, filter_counts={"Poly": 1, "LowCov": 2})
    assert a + b == b + a
    assert (a + b).filter_counts == {"Poly": 2, "LowCov": 2}


def test_homozygous_non_reference_example():
    ref_c = Allele("C", True)
    t = AlleleTally.from_column(column(*"AAAAA"), ref_c)
    call = call_genotype(t, ref_c, min_coverage=2)
    assert call.alleles == (Allele("A"), Allele("A"))
    assert call.depth == 5
    assert call.filters == frozenset()
    assert call.allele_depths == (0, 5)


def test_output_mode_gates_low_coverage_call():
    call = call_genotype(tally("A"), REF_A, min_coverage=2)
    assert call.filters == frozenset({FilterLabel.LOW_COVERAGE})
    assert not OutputMode.CONFIDENT_VARIANTS.emit(call)
    assert OutputMode.EMIT_ALL_SITES.emit(call)
