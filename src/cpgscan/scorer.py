"""Baseline profile scorer.

:class:`KmerMixtureScorer` approximates the likelihood of a window's events
given a candidate sequence without a full profile HMM. Events are assumed to
advance through the sequence's kmers at a constant rate; each event is scored
as a uniform mixture of the Gaussian level distributions of the kmers within
``band`` positions of where that rate puts it.

Anything with a ``score(sequence, data) -> float`` method can stand in for it
(see :func:`load_scorer`).
"""

from __future__ import annotations

import importlib
import logging
import math
from typing import Any, List, Optional, Tuple

from .alphabet import MCPG_ALPHABET, Alphabet
from .kmers import rank_for_strand
from .models import EventWindow, HypothesisSequence
from .pore_model import PoreModel
from .scoring import ProfileScorer
from .utils import LOG_ZERO, add_logs

logger = logging.getLogger(__name__)

_LOG_SQRT_2PI = 0.5 * math.log(2.0 * math.pi)
_DNA = frozenset("ACGT")


def log_normal_pdf(x: float, mean: float, stdv: float) -> float:
    z = (x - mean) / stdv
    return -_LOG_SQRT_2PI - math.log(stdv) - 0.5 * z * z


class KmerMixtureScorer:
    def __init__(self, band: int = 2, *, alphabet: Alphabet = MCPG_ALPHABET) -> None:
        if band < 0:
            raise ValueError("band must be >= 0")
        self.band = band
        self.alphabet = alphabet

    def kmer_levels(self, sequence: HypothesisSequence, model: PoreModel, rc: bool) -> List[Tuple[float, float]]:
        """Expected (mean, stdv) per kmer along the forward sequence.

        Windows are walked from the event at their reference start to the
        event at their reference end, so on either strand events meet the
        kmers in forward reference order; ``rc`` only changes which strand's
        kmer is expected at each position.
        """
        k = model.k
        fwd = sequence.forward
        rcs = sequence.reverse_complement
        n = len(fwd) - k + 1
        levels: List[Tuple[float, float]] = []
        for i in range(max(n, 0)):
            kmer = fwd[i : i + k]
            if _DNA.issuperset(kmer):
                levels.append(model.level_for_rank(rank_for_strand(kmer, k, rc)))
            elif rc:
                # kmer i of the forward strand is kmer n-1-i of the reverse complement
                j = n - 1 - i
                levels.append(model.level(rcs[j : j + k], methyl_symbol=self.alphabet.methyl_symbol))
            else:
                levels.append(model.level(kmer, methyl_symbol=self.alphabet.methyl_symbol))
        return levels

    def score(self, sequence: HypothesisSequence, data: EventWindow) -> float:
        model: Optional[PoreModel] = data.read.pore_models[data.strand_idx]
        if model is None:
            raise ValueError(f"No pore model installed for {data.read.name} strand {data.strand_idx}")

        levels = self.kmer_levels(sequence, model, data.rc)
        observed = [data.read.event_level(data.strand_idx, e) for e in data.event_indices()]
        observed = [x for x in observed if not math.isnan(x)]
        if not levels or not observed:
            return LOG_ZERO

        m = len(levels)
        n = len(observed)
        scale = (m - 1) / max(n - 1, 1)
        total = 0.0
        for j, x in enumerate(observed):
            centre = int(round(j * scale))
            lo = max(0, centre - self.band)
            hi = min(m - 1, centre + self.band)
            log_w = -math.log(hi - lo + 1)
            ll = LOG_ZERO
            for i in range(lo, hi + 1):
                mean, stdv = levels[i]
                ll = add_logs(ll, log_w + log_normal_pdf(x, mean, stdv))
            total += ll
        return total


def load_scorer(spec: str) -> ProfileScorer:
    """Resolve ``module:attribute`` to a scorer.

    A class or factory is called with no arguments; anything else must
    already have a ``score`` method.
    """
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Scorer must look like 'module:attribute', got '{spec}'")
    module = importlib.import_module(module_name)
    obj: Any = module
    for part in attr.split("."):
        obj = getattr(obj, part)
    if not hasattr(obj, "score") or isinstance(obj, type):
        obj = obj()
    if not callable(getattr(obj, "score", None)):
        raise TypeError(f"{spec} does not provide a score(sequence, data) method")
    logger.info("Using scorer %s", spec)
    return obj
