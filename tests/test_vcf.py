from pathlib import Path

import pysam

from locuswalk.models import Allele, FilterLabel, GenotypeCall
from locuswalk.options import OutputMode
from locuswalk.vcf import CallVcfWriter

REF_A = Allele("A", True)


def _write(out: Path, *sites) -> None:
    with CallVcfWriter(
        out,
        contigs=[("chr1", 100)],
        sample="S1",
        output_mode=OutputMode.EMIT_ALL_SITES,
        minimum_coverage=2,
    ) as writer:
        for pos, call in sites:
            writer.write("chr1", pos, REF_A, call)
    assert writer.records_written == len(sites)


def test_homozygous_reference_and_empty_calls_are_written(tmp_path: Path):
    out = tmp_path / "calls.vcf"
    _write(
        out,
        (3, GenotypeCall("S1", 3, (REF_A, REF_A), (3, 0))),
        (4, GenotypeCall("S1", 0)),
    )
    with pysam.VariantFile(str(out)) as vcf:
        recs = list(vcf)
    lines = [line for line in out.read_text().splitlines() if not line.startswith("#")]

    assert [r.pos for r in recs] == [3, 4]
    assert all(r.ref == "A" for r in recs)
    assert [line.split("\t")[4] for line in lines] == [".", "."]
    assert recs[0].samples["S1"]["GT"] == (0, 0)
    assert recs[0].samples["S1"]["AD"] == (3, 0)
    assert recs[0].samples["S1"]["DP"] == 3
    assert recs[1].samples["S1"]["GT"] == (None, None)
    assert recs[1].info["DP"] == 0


def test_filtered_het_call_indexes_alt_allele(tmp_path: Path):
    out = tmp_path / "calls.vcf"
    call = GenotypeCall(
        "S1",
        1,
        (REF_A, Allele("G")),
        (0, 1),
        frozenset({FilterLabel.POLYMORPHIC, FilterLabel.LOW_COVERAGE}),
    )
    _write(out, (7, call))
    with pysam.VariantFile(str(out)) as vcf:
        rec = next(iter(vcf))
    assert rec.alleles == ("A", "G")
    assert rec.samples["S1"]["GT"] == (0, 1)
    assert sorted(rec.filter.keys()) == ["LowCov", "Poly"]
