from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Sequence

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402

_UNMETH_COLOR = "#2471a3"
_METH_COLOR = "#c0392b"


def _save(fig: "plt.Figure", out_png: str | Path) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(out_png, dpi=160)
    plt.close(fig)


def plot_score_hist(
    *,
    bin_edges: Sequence[float],
    counts: Sequence[int],
    out_png: str | Path,
    ylabel: str = "CpG windows",
    title: str = "Window log-likelihood ratio",
) -> None:
    """Precomputed-bin histogram, coloured by which hypothesis a bin favours.

    Values outside the edges were clipped into the outer bins upstream.
    """
    lefts = list(bin_edges[:-1])
    widths = [hi - lo for lo, hi in zip(bin_edges[:-1], bin_edges[1:])]
    colors = [_METH_COLOR if lo >= 0 else _UNMETH_COLOR for lo in lefts]

    fig, ax = plt.subplots(figsize=(6.4, 4.0))
    ax.bar(lefts, list(counts), width=widths, align="edge", color=colors, edgecolor="white", linewidth=0.3)
    ax.axvline(0.0, color="black", linewidth=0.8)
    ax.set_xlabel("log P(methylated) - log P(unmethylated)")
    ax.set_ylabel(ylabel)
    ax.set_title(title)
    _save(fig, out_png)


def plot_read_outcomes(*, counts: Dict[str, int], out_png: str | Path) -> None:
    outcomes = [
        ("scored", counts.get("reads_scored", 0)),
        ("no events", counts.get("reads_without_events", 0)),
        ("model missing", counts.get("reads_failed", 0)),
        ("unmapped", counts.get("reads_unmapped", 0)),
        (
            "secondary/suppl.",
            counts.get("reads_skipped_secondary", 0) + counts.get("reads_skipped_supplementary", 0),
        ),
    ]

    fig, ax = plt.subplots(figsize=(6.4, 3.6))
    ax.barh([name for name, _ in outcomes][::-1], [int(n) for _, n in outcomes][::-1], color="#5d6d7e")
    ax.set_xlabel("BAM records")
    ax.set_title("Read outcomes")
    _save(fig, out_png)


def plot_windows_per_read(
    *,
    windows_hist: Dict[str, int],
    out_png: str | Path,
    max_windows: int = 30,
) -> None:
    # anything above max_windows shares the last bar
    heights: List[int] = [0] * (max_windows + 2)
    for n_windows, n_reads in windows_hist.items():
        heights[min(int(n_windows), max_windows + 1)] += int(n_reads)
    if heights[-1] == 0:
        heights.pop()

    labels = [str(i) for i in range(len(heights))]
    if len(heights) == max_windows + 2:
        labels[-1] = f">{max_windows}"

    fig, ax = plt.subplots(figsize=(6.4, 4.0))
    ax.bar(range(len(heights)), heights, color="#48c9b0")
    ax.set_xticks(range(0, len(heights), 5))
    ax.set_xticklabels(labels[::5])
    ax.set_xlabel("Scored CpG windows")
    ax.set_ylabel("Reads")
    ax.set_title("Windows per scored read")
    _save(fig, out_png)
