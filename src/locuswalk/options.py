from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Tuple

from .models import GenotypeCall


class OutputMode(str, Enum):
    """Which genotype calls are written out."""

    CONFIDENT_VARIANTS = "confident"
    EMIT_ALL_SITES = "all-sites"

    def emit(self, call: GenotypeCall) -> bool:
        if self is OutputMode.EMIT_ALL_SITES:
            return True
        return call.is_called and not call.filters


@dataclass(frozen=True)
class CallerOptions:
    """Thresholds for the single-sample genotype caller.

    Base and mapping quality are applied by the pileup supplier; the caller only
    sees entries that already passed them.
    """

    minimum_coverage: int = 1
    minimum_base_quality: int = 1
    minimum_mapping_quality: int = 1
    output_mode: OutputMode = OutputMode.CONFIDENT_VARIANTS

    def __post_init__(self) -> None:
        if self.minimum_coverage < 0:
            raise ValueError("minimum_coverage must be >= 0")
        if self.minimum_base_quality < 0 or self.minimum_mapping_quality < 0:
            raise ValueError("minimum base/mapping quality must be >= 0")


@dataclass(frozen=True)
class IndelRegionOptions:
    minimum_count: int = 1
    indel_window: int = 5

    def __post_init__(self) -> None:
        if self.minimum_count < 1:
            raise ValueError("minimum_count must be >= 1")
        if self.indel_window < 0:
            raise ValueError("indel_window must be >= 0")


@dataclass(frozen=True)
class MaskingOptions:
    minimum_coverage: int = 0
    filter_not_in_mask: bool = False
    preserve_all: bool = False
    keep_masked_gt: bool = False
    allow_nonoverlapping_samples: bool = False

    def __post_init__(self) -> None:
        if self.minimum_coverage < 0:
            raise ValueError("minimum_coverage must be >= 0")


@dataclass(frozen=True)
class TraversalOptions:
    threads: int = 1
    window_size: int = 100_000
    regions: Tuple[str, ...] = ()
    max_depth: int = 8000
    progress: bool = True

    def __post_init__(self) -> None:
        if self.threads < 1:
            raise ValueError("threads must be >= 1")
        if self.window_size < 1:
            raise ValueError("window_size must be >= 1")
