from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .models import AlignedPair, EventAlignment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventPositionMap:
    """Reference position -> event index lookup for one aligned strand.

    ``positions`` is sorted ascending and aligned with ``pairs``.
    """

    pairs: List[AlignedPair]
    positions: List[int]

    @classmethod
    def from_pairs(cls, pairs: Iterable[AlignedPair]) -> "EventPositionMap":
        pairs = list(pairs)
        positions = [p.ref_pos for p in pairs]
        if any(positions[i] > positions[i + 1] for i in range(len(positions) - 1)):
            # reverse-complement strands usually arrive in descending order
            logger.debug("Event alignment not sorted by reference position; sorting %d pairs", len(pairs))
            pairs.sort(key=lambda p: p.ref_pos)
            positions = [p.ref_pos for p in pairs]
        return cls(pairs=pairs, positions=positions)

    @classmethod
    def from_alignment(cls, alignment: EventAlignment) -> "EventPositionMap":
        return cls.from_pairs(alignment.pairs)

    def __len__(self) -> int:
        return len(self.pairs)

    @property
    def ref_start(self) -> int:
        return self.positions[0]

    @property
    def ref_end(self) -> int:
        return self.positions[-1]

    def lookup_event_for_position(self, position: int) -> Optional[AlignedPair]:
        """First pair whose reference position is >= ``position``, or None past the end."""
        i = bisect.bisect_left(self.positions, position)
        if i >= len(self.pairs):
            return None
        return self.pairs[i]
