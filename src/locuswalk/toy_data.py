from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import pysam

from .utils import ensure_outdir, write_json

CONTIG = "chr1"
REF_LENGTH = 300
SAMPLE = "S1"

# 0-based positions of the planted events
HOM_ALT_POS0 = 50
HET_POS0 = 55
DELETION_POS0 = 120
DELETION_LENGTH = 3
INSERTION_AFTER_POS0 = 199
INSERTION_SEQ = "TT"
AMBIGUOUS_POS0 = 280
TRIALLELIC_POS0 = 270


def toy_reference() -> str:
    seq = list(("ACGT" * (REF_LENGTH // 4 + 1))[:REF_LENGTH])
    seq[AMBIGUOUS_POS0] = "N"
    return "".join(seq)


def _write_fasta(path: Path, contig: str, seq: str) -> None:
    lines = [f">{contig}"]
    for i in range(0, len(seq), 60):
        lines.append(seq[i : i + 60])
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _mutate_base(base: str, skip: Sequence[str] = ()) -> str:
    for alt in ["A", "C", "G", "T"]:
        if alt != base and alt not in skip:
            return alt
    return "A"


def _make_read(
    name: str,
    start0: int,
    seq: str,
    *,
    cigar: Optional[List[Tuple[int, int]]] = None,
    read_group: str = "rg1",
    mapq: int = 60,
) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment()
    a.query_name = name
    a.query_sequence = seq
    a.flag = 0
    a.reference_id = 0
    a.reference_start = start0
    a.mapping_quality = mapq
    a.cigartuples = cigar if cigar is not None else [(0, len(seq))]
    a.query_qualities = pysam.qualitystring_to_array("I" * len(seq))
    a.set_tag("RG", read_group)
    return a


def _sample_reads(ref_seq: str) -> List[pysam.AlignedSegment]:
    reads: List[pysam.AlignedSegment] = []
    hom_alt = _mutate_base(ref_seq[HOM_ALT_POS0])
    het_alt = _mutate_base(ref_seq[HET_POS0])

    # SNVs: homozygous alt at HOM_ALT_POS0, heterozygous at HET_POS0; depth 8
    for i in range(8):
        start0 = 20 + i
        seq = list(ref_seq[start0 : start0 + 40])
        seq[HOM_ALT_POS0 - start0] = hom_alt
        if i % 2 == 0:
            seq[HET_POS0 - start0] = het_alt
        reads.append(_make_read(f"snv_{i}", start0, "".join(seq)))

    # 3 bp deletion starting at DELETION_POS0; depth 6
    for i in range(6):
        start0 = 100 + i
        left = DELETION_POS0 - start0
        right = 40 - left
        after = DELETION_POS0 + DELETION_LENGTH
        seq = ref_seq[start0:DELETION_POS0] + ref_seq[after : after + right]
        reads.append(
            _make_read(
                f"del_{i}",
                start0,
                seq,
                cigar=[(0, left), (2, DELETION_LENGTH), (0, right)],
            )
        )

    # 2 bp insertion after INSERTION_AFTER_POS0; depth 6
    for i in range(6):
        start0 = 180 + i
        left = INSERTION_AFTER_POS0 + 1 - start0
        right = 40 - len(INSERTION_SEQ) - left
        after = INSERTION_AFTER_POS0 + 1
        seq = ref_seq[start0:after] + INSERTION_SEQ + ref_seq[after : after + right]
        reads.append(
            _make_read(
                f"ins_{i}",
                start0,
                seq,
                cigar=[(0, left), (1, len(INSERTION_SEQ)), (0, right)],
            )
        )

    # low coverage block over the ambiguous base, with three alleles at TRIALLELIC_POS0
    ref_base = ref_seq[TRIALLELIC_POS0]
    alt1 = _mutate_base(ref_base)
    alt2 = _mutate_base(ref_base, skip=(alt1,))
    for i, base in enumerate([ref_base, alt1, alt2]):
        start0 = 265
        seq = list(ref_seq[start0 : start0 + 30])
        seq[TRIALLELIC_POS0 - start0] = base
        reads.append(_make_read(f"low_{i}", start0, "".join(seq)))

    reads.sort(key=lambda r: r.reference_start)
    return reads


def _write_bam(path: Path, header: Dict[str, object], reads: List[pysam.AlignedSegment]) -> None:
    with pysam.AlignmentFile(str(path), "wb", header=header) as bam:
        for r in reads:
            bam.write(r)
    pysam.index(str(path))


# (1-based position, {sample: (GT, DP)})
_COHORT_RECORDS = [
    (10, {"S1": ((0, 1), 20), "S2": ((0, 0), 3), "S3": ((1, 1), 15)}),
    (60, {"S1": ((0, 1), 12), "S2": ((0, 1), 12), "S3": ((None, None), None)}),
    (150, {"S1": ((1, 1), 30), "S2": ((None, None), None), "S3": ((None, None), None)}),
    (250, {"S1": ((0, 0), 8), "S2": ((1, 1), 8), "S3": ((0, 1), 8)}),
]

# BED (0-based, half-open) masks per sample
_COHORT_MASKS = {
    "S1": [(140, 160)],
    "S2": [(0, 100)],
}


def _write_cohort_vcf(path: Path, ref_seq: str) -> None:
    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    header.contigs.add(CONTIG, length=len(ref_seq))
    header.formats.add("GT", number=1, type="String", description="Genotype")
    header.formats.add("DP", number=1, type="Integer", description="Depth")
    for sample in ["S1", "S2", "S3"]:
        header.add_sample(sample)

    with pysam.VariantFile(str(path), "w", header=header) as vcf:
        for pos, genotypes in _COHORT_RECORDS:
            ref_base = ref_seq[pos - 1]
            rec = vcf.new_record(
                contig=CONTIG,
                start=pos - 1,
                stop=pos,
                alleles=(ref_base, _mutate_base(ref_base)),
                qual=50,
                filter="PASS",
            )
            for sample, (gt, dp) in genotypes.items():
                rec.samples[sample]["GT"] = gt
                if dp is not None:
                    rec.samples[sample]["DP"] = dp
            vcf.write(rec)


def make_toy_data(*, outdir: str | Path) -> Dict[str, str]:
    """Create a tiny reference, BAMs, a cohort VCF and BED masks for demos/tests.

    The outputs include:
    - toy_ref.fa (+ .fai), 300 bp of chr1 with an N at 281
    - sample.bam (+ .bai), sample S1 with a hom-alt SNV at 51, a het SNV at 56,
      a 3 bp deletion at 121-123, a 2 bp insertion after 200 and a depth-3
      triallelic site at 271
    - multi.bam (+ .bai), reads from two samples
    - cohort.vcf.gz (+ .tbi) and cohort.vcf, samples S1-S3 with GT/DP
    - mask_S1.bed, mask_S2.bed

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)

    ref_seq = toy_reference()
    ref_fa = outdir_p / "toy_ref.fa"
    _write_fasta(ref_fa, CONTIG, ref_seq)
    pysam.faidx(str(ref_fa))

    bam_path = outdir_p / "sample.bam"
    header = {
        "HD": {"VN": "1.6", "SO": "coordinate"},
        "SQ": [{"SN": CONTIG, "LN": len(ref_seq)}],
        "RG": [{"ID": "rg1", "SM": SAMPLE}],
    }
    _write_bam(bam_path, header, _sample_reads(ref_seq))

    multi_path = outdir_p / "multi.bam"
    multi_header = {
        "HD": {"VN": "1.6", "SO": "coordinate"},
        "SQ": [{"SN": CONTIG, "LN": len(ref_seq)}],
        "RG": [{"ID": "rgA", "SM": "S1"}, {"ID": "rgB", "SM": "S2"}],
    }
    multi_reads = [
        _make_read("a_0", 10, ref_seq[10:40], read_group="rgA"),
        _make_read("b_0", 12, ref_seq[12:42], read_group="rgB"),
    ]
    _write_bam(multi_path, multi_header, multi_reads)

    vcf_path = outdir_p / "cohort.vcf"
    _write_cohort_vcf(vcf_path, ref_seq)
    vcf_gz = outdir_p / "cohort.vcf.gz"
    pysam.tabix_compress(str(vcf_path), str(vcf_gz), force=True)
    pysam.tabix_index(str(vcf_gz), preset="vcf", force=True)

    summary = {
        "ref_fa": str(ref_fa),
        "bam": str(bam_path),
        "multi_sample_bam": str(multi_path),
        "vcf": str(vcf_gz),
        "vcf_plain": str(vcf_path),
        "outdir": str(outdir_p),
    }
    for sample, intervals in _COHORT_MASKS.items():
        bed = outdir_p / f"mask_{sample}.bed"
        bed.write_text(
            "".join(f"{CONTIG}\t{s}\t{e}\n" for s, e in intervals),
            encoding="utf-8",
        )
        summary[f"mask_{sample}"] = str(bed)

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
