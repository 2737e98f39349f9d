"""Score CpG windows under the unmethylated and methylated hypotheses."""

from __future__ import annotations

import logging
import math
from typing import Iterable, List, Optional, Protocol

from .alphabet import Alphabet
from .models import CpGCluster, EventAlignment, EventWindow, HypothesisSequence, SiteScore, SquiggleRead
from .projection import EventPositionMap

logger = logging.getLogger(__name__)


class ProfileScorer(Protocol):
    """Log-likelihood of a read's events given a candidate sequence."""

    def score(self, sequence: HypothesisSequence, data: EventWindow) -> float:
        ...


def score_difference(methylated: float, unmethylated: float) -> float:
    """methylated - unmethylated, defined as 0.0 when both hypotheses have zero probability."""
    if math.isinf(methylated) and math.isinf(unmethylated) and methylated == unmethylated:
        return 0.0
    return methylated - unmethylated


def build_hypotheses(subseq: str, alphabet: Alphabet) -> tuple[HypothesisSequence, HypothesisSequence]:
    unmethylated = HypothesisSequence(subseq, alphabet.reverse_complement(subseq))
    mseq = alphabet.methylate(subseq)
    methylated = HypothesisSequence(mseq, alphabet.reverse_complement(mseq))
    return unmethylated, methylated


def event_window_for_cluster(
    cluster: CpGCluster,
    *,
    event_map: EventPositionMap,
    ref_start: int,
    read: SquiggleRead,
    strand_idx: int,
    rc: bool,
) -> Optional[EventWindow]:
    """Map a window's padded reference span onto the read's events.

    Returns None if either end falls past the aligned range.
    """
    start = event_map.lookup_event_for_position(cluster.sub_start + ref_start)
    stop = event_map.lookup_event_for_position(cluster.sub_end + ref_start)
    if start is None or stop is None:
        return None
    stride = 1 if start.event_idx < stop.event_idx else -1
    return EventWindow(
        read=read,
        strand_idx=strand_idx,
        rc=rc,
        event_start_idx=start.event_idx,
        event_stop_idx=stop.event_idx,
        event_stride=stride,
    )


def score_cluster(
    cluster: CpGCluster,
    *,
    ref_seq: str,
    ref_start: int,
    contig: str,
    event_map: EventPositionMap,
    read: SquiggleRead,
    strand_idx: int,
    rc: bool,
    scorer: ProfileScorer,
    alphabet: Alphabet,
    context_flank: int = 3,
) -> Optional[SiteScore]:
    """Score one window under both hypotheses; None if it has no events."""
    data = event_window_for_cluster(
        cluster,
        event_map=event_map,
        ref_start=ref_start,
        read=read,
        strand_idx=strand_idx,
        rc=rc,
    )
    if data is None:
        logger.debug(
            "%s strand %d: window at %s:%d outside aligned events",
            read.name,
            strand_idx,
            contig,
            cluster.first + ref_start,
        )
        return None

    subseq = ref_seq[cluster.sub_start : cluster.sub_end + 1]
    unmethylated, methylated = build_hypotheses(subseq, alphabet)

    unmethylated_score = float(scorer.score(unmethylated, data))
    methylated_score = float(scorer.score(methylated, data))

    context = ref_seq[cluster.first - context_flank : cluster.first + 2]

    return SiteScore(
        contig=contig,
        start=cluster.first + ref_start,
        end=cluster.last + ref_start,
        context=context,
        num_sites=cluster.num_sites,
        unmethylated_score=unmethylated_score,
        methylated_score=methylated_score,
        diff=score_difference(methylated_score, unmethylated_score),
    )


def score_clusters(
    clusters: Iterable[CpGCluster],
    *,
    ref_seq: str,
    ref_start: int,
    alignment: EventAlignment,
    event_map: EventPositionMap,
    read: SquiggleRead,
    strand_idx: int,
    scorer: ProfileScorer,
    alphabet: Alphabet,
    context_flank: int = 3,
) -> List[SiteScore]:
    """Score every window that maps onto events, in window order."""
    out: List[SiteScore] = []
    for cluster in clusters:
        site = score_cluster(
            cluster,
            ref_seq=ref_seq,
            ref_start=ref_start,
            contig=alignment.contig,
            event_map=event_map,
            read=read,
            strand_idx=strand_idx,
            rc=alignment.rc,
            scorer=scorer,
            alphabet=alphabet,
            context_flank=context_flank,
        )
        if site is not None:
            out.append(site)
    return out
