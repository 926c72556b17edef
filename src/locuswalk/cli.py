from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pysam

from . import __version__
from .caller import GenotypeCallerWalker
from .engine import traverse
from .indels import IndelRegionWalker
from .masking import (
    UNKNOWN_CONTIG_LENGTH,
    MaskingWalker,
    VariantSource,
    build_sample_masks,
    masking_header,
    vcf_is_indexed,
    vcf_windows,
)
from .options import (
    CallerOptions,
    IndelRegionOptions,
    MaskingOptions,
    OutputMode,
    TraversalOptions,
)
from .pileup import PileupSource, make_windows
from .plotting import (
    interval_length_histogram,
    plot_call_outcomes,
    plot_interval_lengths,
    plot_masked_by_sample,
)
from .report import render_report
from .toy_data import make_toy_data
from .utils import ensure_outdir, index_vcf_if_bgzipped, vcf_write_mode, write_json
from .validation import (
    check_bam_index,
    check_fasta_index,
    check_reference_contigs,
    check_vcf_index,
    require_single_sample,
)
from .vcf import CallVcfWriter


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _log_path(report_dir: Optional[str], name: str) -> Optional[Path]:
    if report_dir is None:
        return None
    return Path(report_dir).expanduser().resolve() / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    msg = f"{err.__class__.__name__}: {err}"
    sys.stderr.write(msg + "\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def _traversal_options(args: argparse.Namespace) -> TraversalOptions:
    return TraversalOptions(
        threads=int(args.threads),
        window_size=int(args.window_size),
        regions=tuple(args.region or ()),
        max_depth=int(getattr(args, "max_depth", 8000)),
        progress=not bool(args.no_progress),
    )


def _bam_info(bam_path: str) -> Tuple[Dict[str, Any], List[Tuple[str, int]], str]:
    with pysam.AlignmentFile(bam_path, "rb") as bam:
        return bam.header.to_dict(), list(zip(bam.references, bam.lengths)), str(bam.header)


def _usable_contigs(contigs: List[Tuple[str, int]], ref_path: str) -> List[Tuple[str, int]]:
    usable = set(check_reference_contigs([c for c, _ in contigs], ref_path))
    return [(c, n) for c, n in contigs if c in usable]


def _write_run_report(
    *,
    report_dir: Optional[str],
    command: str,
    summary: Dict[str, Any],
    plot_name: Optional[str] = None,
    plot_fn: Any = None,
) -> Optional[Path]:
    if report_dir is None:
        return None
    outdir = ensure_outdir(Path(report_dir).expanduser().resolve())
    write_json(outdir / "summary.json", summary)
    plot_rel = None
    if plot_fn is not None and plot_name is not None:
        plots_dir = outdir / "plots"
        plots_dir.mkdir(parents=True, exist_ok=True)
        plot_fn(plots_dir / plot_name)
        plot_rel = str(Path("plots") / plot_name)
    return render_report(
        outdir=outdir,
        version=__version__,
        command=command,
        summary=summary,
        plot=plot_rel,
    )


def _add_traversal_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--region",
        action="append",
        default=None,
        help="Restrict to contig[:start[-end]] (1-based, inclusive). Repeatable.",
    )
    p.add_argument("--threads", type=int, default=1, help="Worker threads (windows processed in parallel).")
    p.add_argument(
        "--window-size",
        type=int,
        default=100_000,
        help="Bases per traversal window (unit of parallel work).",
    )
    p.add_argument(
        "--report-dir",
        default=None,
        help="Write summary.json, a plot, report.html and a log file into this directory.",
    )
    p.add_argument("--no-progress", action="store_true", help="Disable the progress bar.")
    p.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="locuswalk",
        description=(
            "locuswalk: per-locus pileup walkers for single-sample genotype calling, "
            "indel region detection and sample-specific genotype masking."
        ),
    )
    p.add_argument("--version", action="version", version=f"locuswalk {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for common scenarios.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny reference, BAM, VCF and BED masks for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # call
    # -----------------
    c = sub.add_parser(
        "call",
        help="Call genotypes at every locus of a single-sample BAM using coverage/allele-count rules.",
    )
    c.add_argument("--bam", required=True, type=_path_exists, help="Input BAM (sorted, indexed, one sample).")
    c.add_argument("--ref", required=True, type=_path_exists, help="Reference FASTA (faidx indexed).")
    c.add_argument("--out", required=True, help="Output VCF (.vcf or .vcf.gz).")
    c.add_argument(
        "--min-coverage",
        type=int,
        default=1,
        help="Depth below which a call gets the LowCov filter.",
    )
    c.add_argument("--min-base-quality", type=int, default=1, help="Minimum base quality for a base to count.")
    c.add_argument("--min-mapping-quality", type=int, default=1, help="Minimum mapping quality for a read to count.")
    c.add_argument(
        "--output-mode",
        choices=[m.value for m in OutputMode],
        default=OutputMode.CONFIDENT_VARIANTS.value,
        help="confident: only unfiltered calls; all-sites: every locus with a call.",
    )
    c.add_argument("--max-depth", type=int, default=8000, help="Maximum pileup depth per locus.")
    _add_traversal_args(c)

    # -----------------
    # indel-regions
    # -----------------
    i = sub.add_parser(
        "indel-regions",
        help="Find padded, merged intervals around indels supported by the reads.",
    )
    i.add_argument("--bam", required=True, type=_path_exists, help="Input BAM (sorted, indexed).")
    i.add_argument("--ref", required=True, type=_path_exists, help="Reference FASTA (faidx indexed).")
    i.add_argument(
        "--out",
        required=True,
        help="Output intervals: .interval_list (with SAM header) or any other extension for contig:start-end.",
    )
    i.add_argument(
        "--minimum-count",
        type=int,
        default=1,
        help="Reads supporting an indel needed to report it.",
    )
    i.add_argument("--indel-window", type=int, default=5, help="Bases padded on both sides of each indel.")
    i.add_argument("--max-depth", type=int, default=8000, help="Maximum pileup depth per locus.")
    _add_traversal_args(i)

    # -----------------
    # mask
    # -----------------
    m = sub.add_parser(
        "mask",
        help="Set genotypes of given samples to missing inside (or outside) per-sample BED masks.",
    )
    m.add_argument("--vcf", required=True, type=_path_exists, help="Input VCF (.vcf/.vcf.gz).")
    m.add_argument(
        "--mask",
        action="append",
        default=[],
        type=_path_exists,
        help="BED mask (.bed/.bed.gz); paired in order with --sample-name. Repeatable.",
    )
    m.add_argument(
        "--sample-name",
        action="append",
        default=[],
        help="Sample to mask; paired in order with --mask. Repeatable.",
    )
    m.add_argument("--out", required=True, help="Output VCF (.vcf or .vcf.gz).")
    m.add_argument(
        "--filter-not-in-mask",
        action="store_true",
        help="Mask genotypes outside the BED intervals instead of inside.",
    )
    m.add_argument(
        "--preserve-all",
        action="store_true",
        help="Keep records where every genotype is missing.",
    )
    m.add_argument(
        "--min-coverage",
        type=int,
        default=0,
        help=(
            "Also mask genotypes with FORMAT/DP below this value, or with no DP at all "
            "(0 disables, so genotypes without DP are kept)."
        ),
    )
    m.add_argument(
        "--keep-masked-gt",
        action="store_true",
        help="Keep the original genotype in FORMAT/MGT.",
    )
    m.add_argument(
        "--allow-nonoverlapping-samples",
        action="store_true",
        help="Ignore --sample-name values that are not in the VCF instead of failing.",
    )
    _add_traversal_args(m)

    return p


def cmd_quickstart() -> int:
    lines = [
        "locuswalk quickstart (copy/paste):",
        "",
        "0) Toy data to try the commands below:",
        "   locuswalk make-toy-data --outdir toy/",
        "",
        "1) Single-sample genotype calls:",
        "   locuswalk call \\",
        "     --bam toy/sample.bam \\",
        "     --ref toy/toy_ref.fa \\",
        "     --out calls.vcf.gz \\",
        "     --output-mode all-sites --min-coverage 3 \\",
        "     --threads 4 --report-dir call_report/",
        "   Outputs: calls.vcf.gz (+ .tbi), call_report/report.html, call_report/summary.json",
        "",
        "2) Regions around indels:",
        "   locuswalk indel-regions \\",
        "     --bam toy/sample.bam \\",
        "     --ref toy/toy_ref.fa \\",
        "     --out indels.interval_list \\",
        "     --minimum-count 2 --indel-window 10",
        "   Outputs: indels.interval_list (use any other extension for chr:start-end lines)",
        "",
        "3) Sample-specific masking:",
        "   locuswalk mask \\",
        "     --vcf toy/cohort.vcf.gz \\",
        "     --mask toy/mask_S1.bed --sample-name S1 \\",
        "     --mask toy/mask_S2.bed --sample-name S2 \\",
        "     --out masked.vcf.gz --keep-masked-gt",
        "",
        "Tip: add -v for progress logs, or --region chr1:1-1000 to restrict the run.",
    ]
    print("\n".join(lines))
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0
    summary = make_toy_data(outdir=outdir)
    print(json.dumps(summary, indent=2))
    return 0


def cmd_call(args: argparse.Namespace) -> int:
    log_path = _log_path(args.report_dir, "call.log")
    _setup_logging(args.verbose, logfile=log_path)
    logger = logging.getLogger("locuswalk")
    logger.info("locuswalk %s: call", __version__)
    t0 = time.time()

    try:
        options = CallerOptions(
            minimum_coverage=int(args.min_coverage),
            minimum_base_quality=int(args.min_base_quality),
            minimum_mapping_quality=int(args.min_mapping_quality),
            output_mode=OutputMode(args.output_mode),
        )
        traversal = _traversal_options(args)

        check_bam_index(args.bam)
        check_fasta_index(args.ref)
        header, contigs, _ = _bam_info(args.bam)
        sample = require_single_sample(header, "call")
        contigs = _usable_contigs(contigs, args.ref)
        windows = make_windows(contigs, traversal.window_size, traversal.regions)
        logger.info("Calling sample %s over %d windows", sample, len(windows))

        source = PileupSource(
            args.bam,
            args.ref,
            include_deletions=GenotypeCallerWalker.include_deletions,
            min_base_quality=options.minimum_base_quality,
            min_mapping_quality=options.minimum_mapping_quality,
            max_depth=traversal.max_depth,
        )
        with CallVcfWriter(
            args.out,
            contigs=contigs,
            sample=sample,
            output_mode=options.output_mode,
            minimum_coverage=options.minimum_coverage,
        ) as writer:
            walker = GenotypeCallerWalker(sample=sample, options=options, writer=writer)
            result = traverse(
                walker,
                source,
                windows,
                threads=traversal.threads,
                progress=traversal.progress,
                desc="call",
            )
        index_vcf_if_bgzipped(args.out)

        stats = result.stats.as_dict()
        summary = {
            "command": "call",
            "version": __version__,
            "inputs": {"bam": args.bam, "ref": args.ref, "sample": sample},
            "options": {
                "minimum_coverage": options.minimum_coverage,
                "minimum_base_quality": options.minimum_base_quality,
                "minimum_mapping_quality": options.minimum_mapping_quality,
                "output_mode": options.output_mode.value,
                "threads": traversal.threads,
                "window_size": traversal.window_size,
                "regions": list(traversal.regions),
            },
            "counts": stats,
            "output": args.out,
            "runtime_seconds": time.time() - t0,
        }
        report = _write_run_report(
            report_dir=args.report_dir,
            command="call",
            summary=summary,
            plot_name="call_outcomes.png",
            plot_fn=lambda png: plot_call_outcomes(stats=stats, out_png=png),
        )
        logger.info("locuswalk call done in %.1fs", time.time() - t0)
        print(str(report) if report is not None else args.out)
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def cmd_indel_regions(args: argparse.Namespace) -> int:
    log_path = _log_path(args.report_dir, "indel_regions.log")
    _setup_logging(args.verbose, logfile=log_path)
    logger = logging.getLogger("locuswalk")
    logger.info("locuswalk %s: indel-regions", __version__)
    t0 = time.time()

    try:
        options = IndelRegionOptions(
            minimum_count=int(args.minimum_count),
            indel_window=int(args.indel_window),
        )
        traversal = _traversal_options(args)

        check_bam_index(args.bam)
        check_fasta_index(args.ref)
        _, all_contigs, sam_header = _bam_info(args.bam)
        contigs = _usable_contigs(all_contigs, args.ref)
        windows = make_windows(contigs, traversal.window_size, traversal.regions)

        source = PileupSource(
            args.bam,
            args.ref,
            include_deletions=IndelRegionWalker.include_deletions,
            max_depth=traversal.max_depth,
        )
        walker = IndelRegionWalker(
            options=options,
            contig_order=[c for c, _ in all_contigs],
            out_path=args.out,
            sam_header=sam_header,
        )
        result = traverse(
            walker,
            source,
            windows,
            threads=traversal.threads,
            progress=traversal.progress,
            desc="indel-regions",
        )

        lengths = [iv.length for iv in walker.intervals]
        summary = {
            "command": "indel-regions",
            "version": __version__,
            "inputs": {"bam": args.bam, "ref": args.ref},
            "options": {
                "minimum_count": options.minimum_count,
                "indel_window": options.indel_window,
                "threads": traversal.threads,
                "window_size": traversal.window_size,
                "regions": list(traversal.regions),
            },
            "counts": {
                "indel_positions": result.seeds,
                "intervals": len(walker.intervals),
                "total_bp": walker.total_bp,
            },
            "interval_length_hist": interval_length_histogram(lengths),
            "output": args.out,
            "runtime_seconds": time.time() - t0,
        }
        report = _write_run_report(
            report_dir=args.report_dir,
            command="indel-regions",
            summary=summary,
            plot_name="interval_lengths.png",
            plot_fn=lambda png: plot_interval_lengths(hist=summary["interval_length_hist"], out_png=png),
        )
        logger.info("locuswalk indel-regions done in %.1fs", time.time() - t0)
        print(str(report) if report is not None else args.out)
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def cmd_mask(args: argparse.Namespace) -> int:
    log_path = _log_path(args.report_dir, "mask.log")
    _setup_logging(args.verbose, logfile=log_path)
    logger = logging.getLogger("locuswalk")
    logger.info("locuswalk %s: mask", __version__)
    t0 = time.time()

    try:
        options = MaskingOptions(
            minimum_coverage=int(args.min_coverage),
            filter_not_in_mask=bool(args.filter_not_in_mask),
            preserve_all=bool(args.preserve_all),
            keep_masked_gt=bool(args.keep_masked_gt),
            allow_nonoverlapping_samples=bool(args.allow_nonoverlapping_samples),
        )
        traversal = _traversal_options(args)

        check_vcf_index(args.vcf)
        with pysam.VariantFile(args.vcf) as vcf:
            in_header = vcf.header
            vcf_samples = list(in_header.samples)
            header = masking_header(in_header, options)
            vcf_contigs = [(name, c.length or UNKNOWN_CONTIG_LENGTH) for name, c in in_header.contigs.items()]

        masks = build_sample_masks(vcf_samples, args.mask, args.sample_name, options)

        windows: List[Any]
        if traversal.regions:
            windows = list(make_windows(vcf_contigs, traversal.window_size, traversal.regions))
            if not vcf_is_indexed(args.vcf):
                raise ValueError("--region requires an indexed VCF. Run: tabix -p vcf " + args.vcf)
        else:
            windows = vcf_windows(args.vcf, traversal.window_size)
        threads = traversal.threads if windows != [None] else 1

        with pysam.VariantFile(args.out, vcf_write_mode(args.out), header=header) as out:
            walker = MaskingWalker(masks=masks, options=options, header=out.header, writer=out)
            result = traverse(
                walker,
                VariantSource(args.vcf),
                windows,
                threads=threads,
                progress=traversal.progress,
                desc="mask",
            )
        index_vcf_if_bgzipped(args.out)

        stats = result.stats
        summary = {
            "command": "mask",
            "version": __version__,
            "inputs": {
                "vcf": args.vcf,
                "masks": dict(zip(args.sample_name, args.mask)),
            },
            "options": {
                "minimum_coverage": options.minimum_coverage,
                "filter_not_in_mask": options.filter_not_in_mask,
                "preserve_all": options.preserve_all,
                "keep_masked_gt": options.keep_masked_gt,
                "threads": threads,
            },
            "counts": {
                "records": stats.records,
                "written": stats.written,
                "dropped": stats.dropped,
                "masked_by_sample": {s: stats.masked_by_sample.get(s, 0) for s in sorted(masks)},
            },
            "output": args.out,
            "runtime_seconds": time.time() - t0,
        }
        report = _write_run_report(
            report_dir=args.report_dir,
            command="mask",
            summary=summary,
            plot_name="masked_by_sample.png",
            plot_fn=lambda png: plot_masked_by_sample(
                masked_by_sample=summary["counts"]["masked_by_sample"], out_png=png
            ),
        )
        logger.info("locuswalk mask done in %.1fs", time.time() - t0)
        print(str(report) if report is not None else args.out)
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "call":
        return cmd_call(args)
    if args.cmd == "indel-regions":
        return cmd_indel_regions(args)
    if args.cmd == "mask":
        return cmd_mask(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
