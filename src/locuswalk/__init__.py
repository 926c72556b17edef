"""locuswalk: per-locus pileup walkers for single-sample genotyping and indel regions.

Public API is intentionally small; most users should use the CLI:

    locuswalk call --bam ... --ref ... --out calls.vcf.gz
    locuswalk indel-regions --bam ... --ref ... --out indels.interval_list

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.3.0"
