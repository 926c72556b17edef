from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Mapping, Sequence

import pysam

from .errors import PreconditionError
from .pileup import sample_names

logger = logging.getLogger(__name__)


_UCSC_PREFIX = "chr"


def check_bam_index(bam_path: str | Path) -> None:
    """Ensure a BAM has an index; raise ValueError with fix instructions."""
    bam = Path(bam_path)
    bai1 = bam.with_suffix(bam.suffix + ".bai")
    bai2 = bam.with_suffix(".bai")
    csi = bam.with_suffix(bam.suffix + ".csi")
    if bai1.exists() or bai2.exists() or csi.exists():
        return
    raise ValueError(
        "BAM is not indexed. Run: samtools index " + str(bam)
    )


def check_fasta_index(ref_path: str | Path) -> None:
    """Ensure a reference FASTA has a .fai index; raise ValueError with fix instructions."""
    ref = Path(ref_path)
    if not ref.with_suffix(ref.suffix + ".fai").exists():
        raise ValueError("Reference FASTA is not indexed. Run: samtools faidx " + str(ref))


def check_vcf_index(vcf_path: str | Path) -> None:
    """Log how a VCF will be traversed (windowed with an index, single pass without)."""
    vcf = Path(vcf_path)
    if vcf.suffixes[-2:] == [".vcf", ".gz"]:
        tbi = vcf.with_suffix(vcf.suffix + ".tbi")
        csi = vcf.with_suffix(vcf.suffix + ".csi")
        if not tbi.exists() and not csi.exists():
            logger.info(
                "VCF is not tabix indexed; it will be processed in a single pass. "
                "Run: tabix -p vcf %s to enable multi-threaded masking.",
                vcf,
            )
    elif vcf.suffix == ".vcf":
        logger.info(
            "VCF is uncompressed (.vcf). This is supported but slower; "
            "consider bgzip+tabix for large files."
        )


def require_single_sample(header: Mapping[str, object], tool: str) -> str:
    """Return the only sample of a BAM header, or raise PreconditionError."""
    samples = sample_names(header)
    if len(samples) != 1:
        raise PreconditionError(
            f"{tool} only works with single-sample BAM files "
            f"(found {len(samples)} samples in the read groups: {sorted(samples)})"
        )
    return next(iter(samples))


def detect_contig_style(contigs: Iterable[str]) -> str:
    """Infer contig style: 'ucsc' if most contigs start with 'chr', else 'ensembl'."""
    names = [c for c in contigs if c]
    if not names:
        return "unknown"
    chr_like = [c for c in names if c.startswith(_UCSC_PREFIX)]
    if len(chr_like) >= max(1, int(0.5 * len(names))):
        return "ucsc"
    return "ensembl"


def check_reference_contigs(bam_contigs: Sequence[str], ref_path: str | Path) -> List[str]:
    """Return the BAM contigs present in the reference FASTA; fail if there are none."""
    with pysam.FastaFile(str(ref_path)) as fasta:
        ref_contigs = list(fasta.references)
    missing = [c for c in bam_contigs if c not in set(ref_contigs)]
    if not missing:
        return list(bam_contigs)
    if len(missing) == len(bam_contigs):
        raise ValueError(
            "Contig mismatch between BAM and reference "
            f"(BAM style: {detect_contig_style(bam_contigs)}, "
            f"reference style: {detect_contig_style(ref_contigs)})."
        )
    logger.warning(
        "%d BAM contigs are missing from the reference and will be skipped: %s",
        len(missing),
        ", ".join(missing[:5]) + (" ..." if len(missing) > 5 else ""),
    )
    return [c for c in bam_contigs if c not in set(missing)]
