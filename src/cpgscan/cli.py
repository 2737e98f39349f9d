from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import pysam

from . import __version__
from .config import MethyltestConfig
from .errors import CpgScanError
from .eventalign import EventAlignmentTable, PrecomputedEventAligner
from .methyltest import run_methyltest
from .pore_model import load_models_fofn
from .reference import FastaReference
from .report import render_plots, render_report
from .scorer import KmerMixtureScorer, load_scorer
from .toy_data import make_toy_data
from .utils import ensure_outdir, read_json
from .validation import check_bam_index, check_contigs, check_fasta_index


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


def _positive_int(v: str) -> int:
    n = int(v)
    if n < 1:
        raise argparse.ArgumentTypeError(f"Expected a positive integer, got {v}")
    return n


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    if isinstance(err, CpgScanError):
        msg = str(err)
    else:
        msg = f"{err.__class__.__name__}: {err}"

    sys.stderr.write(msg + "\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def _bam_contigs(bam_path: str) -> list[str]:
    with pysam.AlignmentFile(bam_path, "rb") as bam:
        return list(bam.references)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="cpgscan",
        description=(
            "cpgscan: per-read CpG methylation testing for nanopore reads. "
            "Scores each CpG window of a read under unmethylated and methylated "
            "hypotheses and reports windows, strands, extremal regions and reads."
        ),
    )
    p.add_argument("--version", action="version", version=f"cpgscan {__version__}")

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
        help="Generate a small reference, BAM, pore models and event table for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # methyltest
    # -----------------
    m = sub.add_parser(
        "methyltest",
        help="Score CpG methylation per read.",
    )
    m.add_argument("--bam", required=True, type=_path_exists, help="Aligned reads (BAM).")
    m.add_argument(
        "--eventalign",
        required=True,
        type=_path_exists,
        help="Event alignment table (.tsv/.tsv.gz) with read names and event levels.",
    )
    m.add_argument("--genome", required=True, type=_path_exists, help="Reference FASTA (faidx-indexed).")
    m.add_argument(
        "--models-fofn",
        required=True,
        type=_path_exists,
        help="File listing one pore model file per line.",
    )
    m.add_argument("--outdir", required=True, help="Output directory.")
    m.add_argument("--region", default=None, help="Only test reads in this region (needs a BAM index).")
    m.add_argument("-t", "--threads", type=_positive_int, default=1, help="Worker threads.")
    m.add_argument("--batch-size", type=_positive_int, default=128, help="Reads dispatched per batch.")
    m.add_argument(
        "--scorer",
        default=None,
        help="Profile scorer as module:attribute (default: built-in kmer mixture scorer).",
    )
    m.add_argument("--band", type=int, default=2, help="Kmer band of the built-in scorer.")
    m.add_argument(
        "--template-model",
        default="template",
        help="Model name for template strands the event table does not name.",
    )
    m.add_argument(
        "--complement-model",
        default="complement",
        help="Model name for complement strands the event table does not name.",
    )
    m.add_argument("--include-secondary", action="store_true", help="Include secondary alignments.")
    m.add_argument("--include-supplementary", action="store_true", help="Include supplementary alignments.")
    m.add_argument(
        "--fail-fast",
        action="store_true",
        help="Abort the run when a read needs an unregistered pore model.",
    )
    m.add_argument("--gzip", action="store_true", help="Write methyltest.tsv.gz instead of methyltest.tsv.")
    m.add_argument("--no-report", action="store_true", help="Skip plots and report.html.")
    m.add_argument("--no-progress", action="store_true", help="Disable the progress bar.")
    m.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    m.add_argument("--resume", action="store_true", help="Skip if outputs already exist.")
    m.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # report
    # -----------------
    r = sub.add_parser(
        "report",
        help="Re-render plots and report.html from an existing summary.json.",
    )
    r.add_argument("--outdir", required=True, type=_path_exists, help="Directory of a methyltest run.")
    r.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    return p


# -----------------
# Command handlers
# -----------------

def cmd_quickstart() -> int:
    lines = [
        "cpgscan quickstart (copy/paste):",
        "",
        "1) Try it on synthetic data:",
        "   cpgscan make-toy-data --outdir toy/",
        "   cpgscan methyltest \\",
        "     --bam toy/toy_reads.bam \\",
        "     --eventalign toy/toy_eventalign.tsv \\",
        "     --genome toy/toy_ref.fa \\",
        "     --models-fofn toy/models.fofn \\",
        "     --outdir toy_run/",
        "   Outputs: toy_run/methyltest.tsv, toy_run/summary.json, toy_run/report.html",
        "",
        "2) Real reads (eventalign table from nanopolish --print-read-names):",
        "   cpgscan methyltest \\",
        "     --bam reads.sorted.bam \\",
        "     --eventalign eventalign.tsv.gz \\",
        "     --genome ref.fa \\",
        "     --models-fofn models.fofn \\",
        "     --outdir results/ -t 8 --gzip",
        "",
        "3) One region with your own scorer:",
        "   cpgscan methyltest ... --region chr20:5000000-5100000 \\",
        "     --scorer mypackage.hmm:ProfileHMMScorer --outdir region_run/",
        "",
        "Tip: use --dry-run to validate inputs before a long run.",
    ]
    print("\n".join(lines))
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    try:
        summary = make_toy_data(outdir=outdir)
    except Exception as e:
        return _handle_error(e)
    print(json.dumps(summary, indent=2))
    return 0


def _write_report(outdir: Path, run: dict) -> Path:
    plots_rel = render_plots(outdir=outdir, run=run)
    return render_report(outdir=outdir, version=__version__, run=run, plots=plots_rel)


def cmd_methyltest(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "methyltest.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("cpgscan")
    logger.info("cpgscan %s", __version__)

    output_name = "methyltest.tsv.gz" if args.gzip else "methyltest.tsv"

    try:
        config = MethyltestConfig(
            batch_size=args.batch_size,
            threads=args.threads,
            include_secondary=bool(args.include_secondary),
            include_supplementary=bool(args.include_supplementary),
            fail_fast=bool(args.fail_fast),
            strand_model_names=(args.template_model, args.complement_model),
        )

        if args.region:
            check_bam_index(args.bam)
        check_fasta_index(args.genome)

        with FastaReference(args.genome, alphabet=config.alphabet) as reference:
            shared = check_contigs(_bam_contigs(args.bam), reference.references)
            models = load_models_fofn(args.models_fofn)

            if args.dry_run:
                print("Dry-run: inputs look OK.")
                print(f"Contigs shared by BAM and reference: {len(shared)}")
                print(f"Pore models: {', '.join(sorted(models))}")
                print("Planned outputs:")
                print(f"  {output_name} -> {outdir / output_name}")
                print(f"  summary.json -> {outdir / 'summary.json'}")
                if not args.no_report:
                    print(f"  report.html -> {outdir / 'report.html'}")
                return 0

            outdir = ensure_outdir(outdir)

            if args.resume and (outdir / "summary.json").exists():
                logger.info("Resume enabled: summary.json already exists in %s", outdir)
                print(str(outdir / output_name))
                return 0

            table = EventAlignmentTable.load(args.eventalign, default_model_names=config.strand_model_names)
            scorer = load_scorer(args.scorer) if args.scorer else KmerMixtureScorer(band=args.band)

            run = run_methyltest(
                bam_path=args.bam,
                table=table,
                models=models,
                aligner=PrecomputedEventAligner(table),
                reference=reference,
                scorer=scorer,
                outdir=outdir,
                config=config,
                region=args.region,
                output_name=output_name,
                progress=not args.no_progress,
            )

        if not args.no_report:
            report_path = _write_report(outdir, run)
            logger.info("Report written: %s", report_path)

        print(run["output_tsv"])
        return 0
    except Exception as e:
        return _handle_error(e, log_path=None if args.dry_run else log_path)


def cmd_report(args: argparse.Namespace) -> int:
    _setup_logging(args.verbose)
    outdir = Path(args.outdir).expanduser().resolve()
    try:
        summary_path = outdir / "summary.json"
        if not summary_path.exists():
            raise FileNotFoundError(f"No summary.json in {outdir}; run 'cpgscan methyltest' first")
        report_path = _write_report(outdir, read_json(summary_path))
    except Exception as e:
        return _handle_error(e)
    print(str(report_path))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "methyltest":
        return cmd_methyltest(args)
    if args.cmd == "report":
        return cmd_report(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
