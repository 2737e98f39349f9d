from __future__ import annotations

from dataclasses import dataclass
from functools import reduce
from typing import Iterator, Optional, Sequence, Tuple

from .models import RegionSummary, SiteScore


@dataclass(frozen=True)
class _RangeSum:
    r_start: int
    r_end: int  # exclusive
    score: float
    num_sites: int


def _iter_range_sums(scores: Sequence[SiteScore]) -> Iterator[_RangeSum]:
    """Every ``[r_start, r_end)`` with ``r_start < r_end <= n``, scanning r_start then r_end."""
    n = len(scores)
    for r_start in range(n):
        total = 0.0
        count = 0
        for r_end in range(r_start + 1, n + 1):
            total += scores[r_end - 1].diff
            count += scores[r_end - 1].num_sites
            yield _RangeSum(r_start, r_end, total, count)


def _step(
    best: Tuple[Optional[_RangeSum], Optional[_RangeSum]], cur: _RangeSum
) -> Tuple[Optional[_RangeSum], Optional[_RangeSum]]:
    lo, hi = best
    # strict comparisons keep the first range seen on ties
    if lo is None or cur.score < lo.score:
        lo = cur
    if hi is None or cur.score > hi.score:
        hi = cur
    return lo, hi


def _summarize(r: _RangeSum, scores: Sequence[SiteScore]) -> RegionSummary:
    first = scores[r.r_start]
    last = scores[r.r_end - 1]
    return RegionSummary(
        score=r.score,
        num_sites=r.num_sites,
        contig=first.contig,
        start=first.start,
        end=last.end,
        first_record=r.r_start,
        end_record=r.r_end,
    )


def find_extremal_regions(
    scores: Sequence[SiteScore],
) -> Optional[Tuple[RegionSummary, RegionSummary]]:
    """Return (min_region, max_region) over all contiguous runs of score records.

    The search is exhaustive and quadratic in the number of records, which is
    a few dozen per strand. Fewer than two records gives None.
    """
    if len(scores) < 2:
        return None
    lo, hi = reduce(_step, _iter_range_sums(scores), (None, None))
    assert lo is not None and hi is not None
    return _summarize(lo, scores), _summarize(hi, scores)
