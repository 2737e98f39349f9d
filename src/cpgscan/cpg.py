from __future__ import annotations

import logging
from typing import Iterator, List, Sequence

from .models import CpGCluster

logger = logging.getLogger(__name__)

MIN_SEPARATION = 10
MAX_CLUSTER_SPAN = 200


def find_cpg_sites(seq: str) -> List[int]:
    """0-based offsets of every C that is immediately followed by a G."""
    return [i for i in range(len(seq) - 1) if seq[i] == "C" and seq[i + 1] == "G"]


def cluster_cpg_sites(sites: Sequence[int], *, max_separation: int = MIN_SEPARATION) -> List[List[int]]:
    """Greedily group sorted sites; a gap larger than ``max_separation`` starts a new group."""
    clusters: List[List[int]] = []
    for site in sites:
        if clusters and site - clusters[-1][-1] <= max_separation:
            clusters[-1].append(site)
        else:
            clusters.append([site])
    return clusters


def accepted_clusters(
    seq: str,
    *,
    min_separation: int = MIN_SEPARATION,
    max_span: int = MAX_CLUSTER_SPAN,
) -> Iterator[CpGCluster]:
    """Yield the scoreable CpG windows of a reference slice, in slice order.

    A window is padded by ``min_separation`` on both sides. It is skipped when
    the padded start is not strictly greater than ``min_separation`` or when
    its sites span ``max_span`` bases or more.
    """
    for group in cluster_cpg_sites(find_cpg_sites(seq), max_separation=min_separation):
        sub_start = group[0] - min_separation
        sub_end = group[-1] + min_separation
        if sub_start <= min_separation or group[-1] - group[0] >= max_span:
            logger.debug("Skipping CpG window [%d, %d] (%d sites)", group[0], group[-1], len(group))
            continue
        yield CpGCluster(sites=tuple(group), sub_start=sub_start, sub_end=sub_end)
