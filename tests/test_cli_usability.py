import json
import subprocess
import sys
from pathlib import Path

import pysam

from cpgscan.toy_data import make_toy_data


def _run_cli(args: list[str]) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-m", "cpgscan"] + args,
        check=False,
        capture_output=True,
        text=True,
    )


def _methyltest_args(toy: dict, outdir: Path, *extra: str) -> list[str]:
    return [
        "methyltest",
        "--bam",
        toy["bam"],
        "--eventalign",
        toy["eventalign"],
        "--genome",
        toy["ref_fa"],
        "--models-fofn",
        toy["models_fofn"],
        "--outdir",
        str(outdir),
        "--no-progress",
        *extra,
    ]


def test_quickstart_output() -> None:
    cp = _run_cli(["quickstart"])
    assert cp.returncode == 0
    assert "cpgscan make-toy-data" in cp.stdout
    assert "cpgscan methyltest" in cp.stdout


def test_methyltest_dry_run_does_not_write_outputs(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    outdir = tmp_path / "run"
    cp = _run_cli(_methyltest_args(toy, outdir, "--dry-run"))
    assert cp.returncode == 0
    assert "Dry-run" in cp.stdout
    assert "complement, template" in cp.stdout
    assert not (outdir / "summary.json").exists()


def test_make_toy_data_and_methyltest(tmp_path: Path) -> None:
    toy_dir = tmp_path / "toy"
    cp = _run_cli(["make-toy-data", "--outdir", str(toy_dir)])
    assert cp.returncode == 0
    toy = json.loads((toy_dir / "toy_summary.json").read_text())

    outdir = tmp_path / "run"
    cp = _run_cli(_methyltest_args(toy, outdir))
    assert cp.returncode == 0, cp.stderr
    assert (outdir / "report.html").exists()
    assert (outdir / "logs" / "methyltest.log").exists()

    lines = (outdir / "methyltest.tsv").read_text().splitlines()
    kinds = {line.split("\t")[0] for line in lines}
    assert {"SITE", "STRAND", "MIN_REGION", "MAX_REGION", "READ"} <= kinds
    widths = {"SITE": 9, "STRAND": 4, "MIN_REGION": 6, "MAX_REGION": 6, "READ": 4}
    assert all(len(line.split("\t")) == widths[line.split("\t")[0]] for line in lines)
    assert not any("read_06" in line for line in lines)

    summary = json.loads((outdir / "summary.json").read_text())
    counts = summary["counts"]
    assert counts["reads_total"] == 7
    assert counts["reads_scored"] == 6
    assert counts["reads_without_events"] == 1
    assert counts["reads_failed"] == 0
    assert counts["windows_scored"] == sum(1 for line in lines if line.startswith("SITE\t"))


def test_repeated_runs_are_identical(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    out_a = tmp_path / "a"
    out_b = tmp_path / "b"
    assert _run_cli(_methyltest_args(toy, out_a, "--no-report")).returncode == 0
    assert _run_cli(_methyltest_args(toy, out_b, "--no-report", "-t", "3", "--batch-size", "2")).returncode == 0
    assert (out_a / "methyltest.tsv").read_bytes() == (out_b / "methyltest.tsv").read_bytes()
    assert not (out_a / "report.html").exists()


def test_report_rerenders_from_summary(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    outdir = tmp_path / "run"
    assert _run_cli(_methyltest_args(toy, outdir, "--no-report", "--gzip")).returncode == 0
    assert (outdir / "methyltest.tsv.gz").exists()

    cp = _run_cli(["report", "--outdir", str(outdir)])
    assert cp.returncode == 0
    assert (outdir / "report.html").exists()
    assert (outdir / "plots" / "site_score_hist.png").exists()


def test_missing_model(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    fofn = tmp_path / "toy" / "template_only.fofn"
    fofn.write_text("models/template.model\n", encoding="utf-8")
    toy = dict(toy, models_fofn=str(fofn))

    outdir = tmp_path / "run"
    cp = _run_cli(_methyltest_args(toy, outdir, "--no-report"))
    assert cp.returncode == 0
    summary = json.loads((outdir / "summary.json").read_text())
    assert summary["counts"]["reads_failed"] == 6
    assert summary["counts"]["reads_scored"] == 0

    cp = _run_cli(_methyltest_args(toy, tmp_path / "run_ff", "--no-report", "--fail-fast"))
    assert cp.returncode == 2
    assert "Model not found: 'complement'" in cp.stderr
    # an aborted run leaves no truncated records file behind
    assert not (tmp_path / "run_ff" / "methyltest.tsv").exists()
    assert not (tmp_path / "run_ff" / "partial.methyltest.tsv").exists()
    assert (outdir / "methyltest.tsv").exists()
    assert not (outdir / "partial.methyltest.tsv").exists()


def test_contig_mismatch_message(tmp_path: Path) -> None:
    toy = make_toy_data(outdir=tmp_path / "toy")
    other = tmp_path / "other.fa"
    other.write_text(">1\nACGTACGTACGT\n", encoding="utf-8")
    pysam.faidx(str(other))
    toy = dict(toy, ref_fa=str(other))

    cp = _run_cli(_methyltest_args(toy, tmp_path / "run"))
    assert cp.returncode != 0
    assert "Contig mismatch" in cp.stderr
