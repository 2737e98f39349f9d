"""Precomputed event alignments.

Reads a tab-separated event alignment table in the layout written by
``nanopolish eventalign --print-read-names`` (optionally gzipped). Each row
aligns one event of one strand of one read to a reference position and
carries the event's mean level, which is all the signal the scorer needs.

Required columns: contig, position, read_name, strand, event_index,
event_level_mean. An optional model_name column names the pore model of the
row's strand.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple

import numpy as np
import pysam

from .errors import EventAlignmentFormatError
from .models import NUM_STRANDS, STRAND_NAMES, AlignedPair, EventAlignment, SquiggleRead
from .utils import open_textmaybe_gzip

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("contig", "position", "read_name", "strand", "event_index", "event_level_mean")

_STRAND_CODES = {
    "t": 0,
    "template": 0,
    "0": 0,
    "c": 1,
    "complement": 1,
    "1": 1,
}


def parse_strand(value: str) -> int:
    try:
        return _STRAND_CODES[value.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown strand '{value}' (expected t/c)") from None


def strand_is_rc(record: pysam.AlignedSegment, strand_idx: int) -> bool:
    """Whether a strand's events run against the reference.

    The template strand follows the basecalled read; the complement strand
    was sequenced from the opposite DNA strand.
    """
    if strand_idx == 0:
        return bool(record.is_reverse)
    return not bool(record.is_reverse)


class EventAligner(Protocol):
    def align(self, record: pysam.AlignedSegment, read: SquiggleRead, strand_idx: int) -> EventAlignment:
        ...


@dataclass
class _StrandRows:
    contigs: List[str] = field(default_factory=list)
    positions: List[int] = field(default_factory=list)
    events: List[int] = field(default_factory=list)
    levels: Dict[int, float] = field(default_factory=dict)
    model_name: Optional[str] = None


@dataclass
class EventAlignmentTable:
    """All rows of an event alignment table, grouped by read and strand."""

    rows: Dict[str, List[_StrandRows]]
    default_model_names: Tuple[str, str] = STRAND_NAMES
    _levels: Dict[str, Tuple[np.ndarray, np.ndarray]] = field(default_factory=dict, repr=False)

    @classmethod
    def load(
        cls,
        path: str | Path,
        *,
        default_model_names: Tuple[str, str] = STRAND_NAMES,
    ) -> "EventAlignmentTable":
        path = str(path)
        rows: Dict[str, List[_StrandRows]] = {}
        n_rows = 0

        with open_textmaybe_gzip(path, "rt") as fh:
            header_line = fh.readline()
            if not header_line:
                raise EventAlignmentFormatError("empty file", path=path)
            header = header_line.rstrip("\n").split("\t")
            missing = [c for c in REQUIRED_COLUMNS if c not in header]
            if missing:
                raise EventAlignmentFormatError(f"missing column(s): {', '.join(missing)}", path=path, line_no=1)
            col = {name: i for i, name in enumerate(header)}
            model_col = col.get("model_name")

            for line_no, line in enumerate(fh, start=2):
                line = line.rstrip("\n")
                if not line:
                    continue
                fields = line.split("\t")
                if len(fields) < len(header):
                    raise EventAlignmentFormatError(
                        f"expected {len(header)} fields, found {len(fields)}", path=path, line_no=line_no
                    )
                try:
                    strand_idx = parse_strand(fields[col["strand"]])
                    position = int(fields[col["position"]])
                    event_idx = int(fields[col["event_index"]])
                    level = float(fields[col["event_level_mean"]])
                except ValueError as e:
                    raise EventAlignmentFormatError(str(e), path=path, line_no=line_no) from e

                read_name = fields[col["read_name"]]
                strands = rows.get(read_name)
                if strands is None:
                    strands = [_StrandRows() for _ in range(NUM_STRANDS)]
                    rows[read_name] = strands
                s = strands[strand_idx]
                s.contigs.append(fields[col["contig"]])
                s.positions.append(position)
                s.events.append(event_idx)
                s.levels[event_idx] = level
                if model_col is not None and fields[model_col]:
                    s.model_name = fields[model_col]
                n_rows += 1

        logger.info("Loaded %d aligned events for %d reads from %s", n_rows, len(rows), path)
        return cls(rows=rows, default_model_names=tuple(default_model_names))  # type: ignore[arg-type]

    def __contains__(self, read_name: str) -> bool:
        return read_name in self.rows

    def __len__(self) -> int:
        return len(self.rows)

    def _event_levels(self, read_name: str) -> Tuple[np.ndarray, np.ndarray]:
        cached = self._levels.get(read_name)
        if cached is not None:
            return cached
        arrays = []
        for s in self.rows[read_name]:
            n = max(s.levels) + 1 if s.levels else 0
            arr = np.full(n, np.nan, dtype=np.float64)
            for idx, level in s.levels.items():
                if idx >= 0:
                    arr[idx] = level
            arrays.append(arr)
        levels = (arrays[0], arrays[1])
        self._levels[read_name] = levels
        return levels

    def squiggle_read(self, read_name: str) -> Optional[SquiggleRead]:
        """A fresh per-task read object, or None if the table has no events for it."""
        if read_name not in self.rows:
            return None
        strands = self.rows[read_name]
        names = tuple(s.model_name or self.default_model_names[i] for i, s in enumerate(strands))
        return SquiggleRead(
            name=read_name,
            event_levels=self._event_levels(read_name),
            model_names=names,  # type: ignore[arg-type]
        )

    def preload(self) -> None:
        """Build every read's level arrays up front so worker threads only read."""
        for read_name in self.rows:
            self._event_levels(read_name)


@dataclass
class PrecomputedEventAligner:
    """Serves alignments from an :class:`EventAlignmentTable` instead of aligning."""

    table: EventAlignmentTable

    def align(self, record: pysam.AlignedSegment, read: SquiggleRead, strand_idx: int) -> EventAlignment:
        contig = record.reference_name
        rc = strand_is_rc(record, strand_idx)
        strands = self.table.rows.get(read.name)
        if strands is None or contig is None:
            return EventAlignment(contig=contig or "*", rc=rc)
        s = strands[strand_idx]
        pairs = tuple(
            AlignedPair(ref_pos=pos, event_idx=ev)
            for c, pos, ev in zip(s.contigs, s.positions, s.events)
            if c == contig
        )
        return EventAlignment(contig=contig, rc=rc, pairs=pairs)
