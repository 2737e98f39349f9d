"""HTML run report for ``cpgscan methyltest``."""

from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict

from jinja2 import Template

from .plotting import plot_read_outcomes, plot_score_hist, plot_windows_per_read

logger = logging.getLogger(__name__)

PLOT_NAMES = ("site_score_hist", "read_score_hist", "read_outcomes", "windows_per_read")

_COUNT_LABELS = [
    ("reads_total", "BAM records read"),
    ("reads_unmapped", "Unmapped"),
    ("reads_skipped_secondary", "Secondary, skipped"),
    ("reads_skipped_supplementary", "Supplementary, skipped"),
    ("reads_without_events", "No events in table"),
    ("reads_failed", "Failed: pore model missing"),
    ("reads_scored", "Reads scored"),
    ("strands_scored", "Strands scored"),
    ("windows_scored", "CpG windows scored"),
    ("cpg_sites_scored", "CpG sites in scored windows"),
]

_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>cpgscan: {{ bam_path }}</title>
<style>
  body { font-family: Helvetica, Arial, sans-serif; max-width: 1100px; margin: 2em auto; color: #222; }
  header { border-bottom: 2px solid #2471a3; margin-bottom: 1em; }
  dl { display: grid; grid-template-columns: max-content auto; gap: 4px 16px; }
  dt { font-weight: bold; }
  table.counts td:last-child { text-align: right; font-variant-numeric: tabular-nums; }
  table.counts td { padding: 3px 12px; border-bottom: 1px solid #e5e5e5; }
  .plots { display: flex; flex-wrap: wrap; gap: 12px; }
  .plots figure { flex: 1 1 45%; margin: 0; }
  .plots img { width: 100%; }
  .muted { color: #777; font-size: 0.85em; }
  .failed { color: #c0392b; }
</style>
</head>
<body>
<header>
  <h1>cpgscan methyltest</h1>
  <p class="muted">cpgscan {{ version }}, generated {{ generated_at }}, runtime {{ "%.1f"|format(runtime_seconds) }} s</p>
</header>

<section>
  <h2>Inputs</h2>
  <dl>
    <dt>BAM</dt><dd><code>{{ bam_path }}</code></dd>
    <dt>Region</dt><dd>{{ region or "whole file" }}</dd>
    <dt>Records</dt><dd><code>{{ output_tsv }}</code></dd>
    <dt>Window gap / span</dt><dd>{{ config.min_separation }} / &lt; {{ config.max_cluster_span }} bp</dd>
    <dt>Threads / batch</dt><dd>{{ config.threads }} / {{ config.batch_size }}</dd>
    <dt>Alphabet</dt><dd>{{ config.alphabet }}</dd>
  </dl>
</section>

<section>
  <h2>Counts</h2>
  <table class="counts">
  {% for key, label in count_labels %}
    <tr><td>{{ label }}</td><td>{{ counts.get(key, 0) }}</td></tr>
  {% endfor %}
  </table>
  {% if failed_reads %}
  <p class="failed">First failed reads: {{ failed_reads|join(", ") }}</p>
  {% endif %}
</section>

<section>
  <h2>Distributions</h2>
  <div class="plots">
  {% for name in plot_names %}
    <figure><img src="{{ plots[name] }}" alt="{{ name }}"></figure>
  {% endfor %}
  </div>
  <p class="muted">
    Positive scores favour methylation. Windows whose padded start lies within
    {{ config.min_separation }} bp of the strand's first aligned base are not scored.
  </p>
</section>
</body>
</html>"""
)


def render_plots(*, outdir: str | Path, run: Dict[str, Any]) -> Dict[str, str]:
    """Write the report's PNGs under ``outdir/plots``; paths returned are relative to ``outdir``."""
    plots_dir = Path(outdir) / "plots"
    paths = {name: plots_dir / f"{name}.png" for name in PLOT_NAMES}

    site_hist = run["site_score_hist"]
    read_hist = run["read_score_hist"]
    plot_score_hist(
        bin_edges=site_hist["bin_edges"],
        counts=site_hist["counts"],
        out_png=paths["site_score_hist"],
    )
    plot_score_hist(
        bin_edges=read_hist["bin_edges"],
        counts=read_hist["counts"],
        out_png=paths["read_score_hist"],
        ylabel="Reads",
        title="Read log-likelihood ratio (sum over windows)",
    )
    plot_read_outcomes(counts=run["counts"], out_png=paths["read_outcomes"])
    plot_windows_per_read(windows_hist=run.get("windows_per_read_hist", {}), out_png=paths["windows_per_read"])

    return {name: str(p.relative_to(outdir)) for name, p in paths.items()}


def render_report(
    *,
    outdir: str | Path,
    version: str,
    run: Dict[str, Any],
    plots: Dict[str, str],
) -> Path:
    outdir = Path(outdir)
    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        bam_path=run.get("bam_path"),
        region=run.get("region"),
        output_tsv=run.get("output_tsv"),
        config=run.get("config", {}),
        counts=run.get("counts", {}),
        count_labels=_COUNT_LABELS,
        failed_reads=run.get("failed_reads", [])[:10],
        runtime_seconds=float(run.get("runtime_seconds", 0.0)),
        plot_names=[n for n in PLOT_NAMES if n in plots],
        plots=plots,
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    logger.info("Report written: %s", out_path)
    return out_path
