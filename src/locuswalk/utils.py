from __future__ import annotations

import gzip
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, TextIO

import pysam

logger = logging.getLogger(__name__)


def ensure_outdir(path: str | Path) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def open_textmaybe_gzip(path: str | Path, mode: str = "rt") -> TextIO:
    p = str(path)
    if p.endswith(".gz"):
        return gzip.open(p, mode)  # type: ignore[return-value]
    return open(p, mode)


def vcf_write_mode(path: str | Path) -> str:
    """pysam mode for a VCF output: bgzipped when the name ends in .gz."""
    return "wz" if str(path).endswith(".gz") else "w"


def index_vcf_if_bgzipped(path: str | Path) -> bool:
    p = str(path)
    if not p.endswith(".gz"):
        return False
    pysam.tabix_index(p, preset="vcf", force=True)
    logger.info("Indexed %s", p)
    return True


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def write_json(path: str | Path, obj: Any) -> None:
    with open(path, "wt", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=True, default=_json_default)
