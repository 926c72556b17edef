from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Sequence

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402

logger = logging.getLogger(__name__)


def plot_call_outcomes(
    *,
    stats: Dict[str, object],
    out_png: str | Path,
    title: str = "Genotype call outcomes",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    filter_counts = dict(stats.get("filter_counts", {}))  # type: ignore[arg-type]
    labels = ["Written", "Suppressed", "Non-biallelic", "Ambiguous ref"]
    values = [
        int(stats.get("emitted", 0)),  # type: ignore[arg-type]
        int(stats.get("suppressed", 0)),  # type: ignore[arg-type]
        int(stats.get("no_calls", 0)),  # type: ignore[arg-type]
        int(stats.get("ambiguous_reference", 0)),  # type: ignore[arg-type]
    ]
    for name in sorted(filter_counts):
        labels.append(f"FILTER {name}")
        values.append(int(filter_counts[name]))

    plt.figure()
    plt.bar(labels, values)
    plt.ylabel("Loci")
    plt.title(title)
    plt.xticks(rotation=20, ha="right")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def interval_length_histogram(lengths: Sequence[int], nbins: int = 30) -> Dict[str, list]:
    """Histogram of interval lengths as ``{"bin_edges": [...], "counts": [...]}``."""
    if len(lengths) == 0:
        return {"bin_edges": [0.0, 1.0], "counts": [0]}
    arr = np.asarray(lengths, dtype=np.int64)
    counts, edges = np.histogram(arr, bins=min(nbins, max(1, int(arr.max() - arr.min()) + 1)))
    return {"bin_edges": edges.tolist(), "counts": counts.tolist()}


def plot_interval_lengths(
    *,
    hist: Dict[str, list],
    out_png: str | Path,
    title: str = "Indel region lengths",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    bin_edges = hist["bin_edges"]
    counts = hist["counts"]
    widths = [bin_edges[i + 1] - bin_edges[i] for i in range(len(counts))]
    centers = [bin_edges[i] + widths[i] / 2.0 for i in range(len(counts))]

    plt.figure()
    plt.bar(centers, counts, width=widths, align="center")
    plt.xlabel("Merged interval length (bp)")
    plt.ylabel("Interval count")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_masked_by_sample(
    *,
    masked_by_sample: Dict[str, int],
    out_png: str | Path,
    title: str = "Genotypes masked per sample",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    names = sorted(masked_by_sample)
    plt.figure()
    plt.bar(names, [int(masked_by_sample[n]) for n in names])
    plt.ylabel("Masked genotypes")
    plt.title(title)
    plt.xticks(rotation=15, ha="right")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
