from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Tuple

import numpy as np

if TYPE_CHECKING:
    from .pore_model import PoreModel

STRAND_NAMES = ("template", "complement")
NUM_STRANDS = len(STRAND_NAMES)


@dataclass(frozen=True)
class AlignedPair:
    """One (reference position, event index) correspondence."""

    ref_pos: int
    event_idx: int


@dataclass(frozen=True)
class EventAlignment:
    """Event-to-reference alignment of one strand of one read.

    ``pairs`` are in the order the aligner emitted them, which is increasing
    reference position. ``rc`` tells whether the strand's events run against
    the reference orientation.
    """

    contig: str
    rc: bool
    pairs: Tuple[AlignedPair, ...] = ()

    def __len__(self) -> int:
        return len(self.pairs)

    def __bool__(self) -> bool:
        return bool(self.pairs)


@dataclass(frozen=True)
class CpGCluster:
    """A run of nearby CpG sites scored as one window.

    Offsets are 0-based into the reference slice the sites were found in;
    ``sub_start``/``sub_end`` are the inclusive padded bounds.
    """

    sites: Tuple[int, ...]
    sub_start: int
    sub_end: int

    @property
    def first(self) -> int:
        return self.sites[0]

    @property
    def last(self) -> int:
        return self.sites[-1]

    @property
    def num_sites(self) -> int:
        return len(self.sites)

    @property
    def span(self) -> int:
        return self.last - self.first


@dataclass
class SquiggleRead:
    """Per-strand event levels of one read plus the emission models in use.

    ``event_levels[strand]`` is indexed by event index; events the source did
    not report are NaN. ``pore_models`` starts empty and is filled per task by
    the orchestrator, so one instance must not be shared across workers.
    """

    name: str
    event_levels: Tuple[np.ndarray, np.ndarray]
    model_names: Tuple[str, str]
    pore_models: List[Optional["PoreModel"]] = field(default_factory=lambda: [None, None])

    def event_level(self, strand_idx: int, event_idx: int) -> float:
        levels = self.event_levels[strand_idx]
        if event_idx < 0 or event_idx >= len(levels):
            return float("nan")
        return float(levels[event_idx])

    def replace_pore_model(self, strand_idx: int, model: "PoreModel") -> None:
        self.pore_models[strand_idx] = model


@dataclass(frozen=True)
class HypothesisSequence:
    """A candidate sequence and its reverse complement, as handed to a scorer."""

    forward: str
    reverse_complement: str


@dataclass(frozen=True)
class EventWindow:
    """The slice of a read's events a window is scored against.

    Events run from ``event_start_idx`` to ``event_stop_idx`` inclusive in
    steps of ``event_stride`` (+1 or -1).
    """

    read: SquiggleRead
    strand_idx: int
    rc: bool
    event_start_idx: int
    event_stop_idx: int
    event_stride: int

    def event_indices(self) -> range:
        return range(self.event_start_idx, self.event_stop_idx + self.event_stride, self.event_stride)


@dataclass(frozen=True)
class SiteScore:
    """Score record for one CpG window (absolute 0-based reference coordinates)."""

    contig: str
    start: int
    end: int
    context: str
    num_sites: int
    unmethylated_score: float
    methylated_score: float
    diff: float


@dataclass(frozen=True)
class RegionSummary:
    """A contiguous run of score records with extremal summed differential."""

    score: float
    num_sites: int
    contig: str
    start: int
    end: int
    first_record: int
    end_record: int  # exclusive


@dataclass(frozen=True)
class StrandResult:
    strand_idx: int
    contig: str
    sites: Tuple[SiteScore, ...]
    min_region: Optional[RegionSummary]
    max_region: Optional[RegionSummary]

    @property
    def score(self) -> float:
        return float(sum(s.diff for s in self.sites))

    @property
    def num_windows(self) -> int:
        return len(self.sites)


@dataclass(frozen=True)
class ReadResult:
    """Everything produced for one read; ``error`` is set if the read was aborted."""

    read_name: str
    strands: Tuple[StrandResult, ...] = ()
    lines: Tuple[str, ...] = ()
    error: Optional[str] = None

    @property
    def score(self) -> float:
        return float(sum(s.score for s in self.strands))

    @property
    def num_windows(self) -> int:
        return sum(s.num_windows for s in self.strands)

    @property
    def failed(self) -> bool:
        return self.error is not None

