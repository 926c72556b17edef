from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

import pysam

from . import __version__
from .models import Allele, FilterLabel, GenotypeCall
from .options import OutputMode
from .utils import vcf_write_mode

logger = logging.getLogger(__name__)


def build_call_header(
    *,
    contigs: Sequence[Tuple[str, int]],
    sample: str,
    output_mode: OutputMode,
    minimum_coverage: int,
) -> pysam.VariantHeader:
    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    header.add_meta("source", f"locuswalk-{__version__}")
    for name, length in contigs:
        header.contigs.add(name, length=length)
    header.info.add("DP", 1, "Integer", "Approximate read depth; some reads may have been filtered")
    header.formats.add("GT", 1, "String", "Genotype")
    header.formats.add("DP", 1, "Integer", "Approximate read depth (reads with MQ=255 or with bad mates are filtered)")
    header.formats.add(
        "AD", ".", "Integer", "Allelic depths for the ref and the first alt allele"
    )
    # confident mode never writes filtered records
    if output_mode is not OutputMode.CONFIDENT_VARIANTS:
        header.filters.add(
            FilterLabel.LOW_COVERAGE.value,
            None,
            None,
            f"Coverage lower than {minimum_coverage} (user threshold)",
        )
        header.filters.add(FilterLabel.POLYMORPHIC.value, None, None, "Polymorphic site")
    header.add_sample(sample)
    return header


def _record_alleles(reference: Allele, call: GenotypeCall) -> Tuple[List[str], Dict[str, int]]:
    alleles = [reference.base]
    for a in call.alleles:
        if not a.is_reference and a.base not in alleles:
            alleles.append(a.base)
    if len(alleles) == 1:
        # VCF records need at least two alleles; "." is the missing ALT
        alleles.append(".")
    return alleles, {b: i for i, b in enumerate(alleles)}


class CallVcfWriter:
    """Writes GenotypeCalls as single-sample VCF records (bgzipped when the path ends in .gz)."""

    def __init__(
        self,
        path: str | Path,
        *,
        contigs: Sequence[Tuple[str, int]],
        sample: str,
        output_mode: OutputMode,
        minimum_coverage: int,
    ) -> None:
        self.path = str(path)
        self.sample = sample
        header = build_call_header(
            contigs=contigs,
            sample=sample,
            output_mode=output_mode,
            minimum_coverage=minimum_coverage,
        )
        self._vcf = pysam.VariantFile(self.path, vcf_write_mode(self.path), header=header)
        self.records_written = 0

    def write(self, contig: str, position: int, reference: Allele, call: GenotypeCall) -> None:
        alleles, index = _record_alleles(reference, call)
        rec = self._vcf.new_record(
            contig=contig,
            start=position - 1,
            stop=position,
            alleles=tuple(alleles),
        )
        rec.info["DP"] = call.depth
        if call.filters:
            for label in sorted(call.filters, key=lambda f: f.value):
                rec.filter.add(label.value)
        else:
            rec.filter.add("PASS")

        fmt = rec.samples[self.sample]
        if call.is_called:
            fmt["GT"] = tuple(index[a.base] for a in call.alleles)
            fmt["AD"] = tuple(call.allele_depths)
        else:
            fmt["GT"] = (None, None)
        fmt["DP"] = call.depth

        self._vcf.write(rec)
        self.records_written += 1

    def close(self) -> None:
        self._vcf.close()
        logger.info("Wrote %s records to %s", f"{self.records_written:,}", self.path)

    def __enter__(self) -> "CallVcfWriter":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
