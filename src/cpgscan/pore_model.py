"""
Pore models: expected event level per kmer, one model per strand type.

Model files follow the nanopolish layout: ``#key<TAB>value`` header lines
followed by ``kmer level_mean level_stdv [sd_mean sd_stdv]`` rows. Kmers
over ACGT are stored in rank-indexed arrays; kmers with other symbols (the
methylated ones) are kept in a side table.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np

from .errors import ModelRegistryError
from .kmers import forward_rank
from .utils import open_textmaybe_gzip

logger = logging.getLogger(__name__)

_DNA = frozenset("ACGT")


@dataclass
class PoreModel:
    """Gaussian level parameters for every kmer of one pore model."""

    name: str
    k: int
    level_mean: np.ndarray
    level_stdv: np.ndarray
    extra_levels: Dict[str, Tuple[float, float]] = field(default_factory=dict)
    metadata: Dict[str, str] = field(default_factory=dict)

    def level_for_rank(self, rank: int) -> Tuple[float, float]:
        return float(self.level_mean[rank]), float(self.level_stdv[rank])

    def level(self, kmer: str, *, methyl_symbol: Optional[str] = None) -> Tuple[float, float]:
        """(mean, stdv) for a kmer string.

        A kmer with symbols beyond ACGT missing from the model falls back to
        its canonical form (``methyl_symbol`` read as C).
        """
        if _DNA.issuperset(kmer):
            return self.level_for_rank(forward_rank(kmer, self.k))
        hit = self.extra_levels.get(kmer)
        if hit is not None:
            return hit
        canonical = kmer.replace(methyl_symbol, "C") if methyl_symbol else kmer
        return self.level_for_rank(forward_rank(canonical, self.k))

    def __len__(self) -> int:
        return int(np.count_nonzero(~np.isnan(self.level_mean))) + len(self.extra_levels)


def _parse_header(line: str, metadata: Dict[str, str]) -> None:
    parts = line[1:].strip().split(None, 1)
    if len(parts) == 2:
        metadata[parts[0]] = parts[1].strip()


def load_pore_model(path: str | Path, *, name: Optional[str] = None) -> PoreModel:
    """Read one model file; ``name`` overrides ``#model_name`` and the file name."""
    path = Path(path)
    metadata: Dict[str, str] = {}
    rows: List[Tuple[str, float, float]] = []

    with open_textmaybe_gzip(path, "rt") as fh:
        for line_no, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            if line.startswith("#"):
                _parse_header(line, metadata)
                continue
            parts = line.split()
            if parts[0] == "kmer":
                continue
            if len(parts) < 3:
                raise ModelRegistryError(f"{path}:{line_no}: expected kmer, level_mean, level_stdv")
            try:
                rows.append((parts[0].upper(), float(parts[1]), float(parts[2])))
            except ValueError as e:
                raise ModelRegistryError(f"{path}:{line_no}: {e}") from e

    if not rows:
        raise ModelRegistryError(f"{path}: no kmer rows")

    k = int(metadata.get("k", len(rows[0][0])))
    n_ranks = 4**k
    level_mean = np.full(n_ranks, np.nan, dtype=np.float64)
    level_stdv = np.full(n_ranks, np.nan, dtype=np.float64)
    extra: Dict[str, Tuple[float, float]] = {}

    for kmer, mean, stdv in rows:
        if len(kmer) != k:
            raise ModelRegistryError(f"{path}: kmer '{kmer}' is not {k} bases")
        if stdv <= 0 or math.isnan(stdv):
            raise ModelRegistryError(f"{path}: kmer '{kmer}' has non-positive level_stdv")
        if _DNA.issuperset(kmer):
            r = forward_rank(kmer, k)
            level_mean[r] = mean
            level_stdv[r] = stdv
        else:
            extra[kmer] = (mean, stdv)

    missing = int(np.count_nonzero(np.isnan(level_mean)))
    if missing:
        logger.warning("%s: %d of %d canonical kmers missing; using the model mean for them", path, missing, n_ranks)
        fill_mean = float(np.nanmean(level_mean)) if missing < n_ranks else 0.0
        fill_stdv = float(np.nanmean(level_stdv)) if missing < n_ranks else 1.0
        level_mean[np.isnan(level_mean)] = fill_mean
        level_stdv[np.isnan(level_stdv)] = fill_stdv

    model_name = name or metadata.get("model_name") or path.name
    logger.debug("Loaded pore model %s (k=%d, %d extra kmers)", model_name, k, len(extra))
    return PoreModel(
        name=model_name,
        k=k,
        level_mean=level_mean,
        level_stdv=level_stdv,
        extra_levels=extra,
        metadata=metadata,
    )


def load_models_fofn(fofn_path: str | Path) -> Dict[str, PoreModel]:
    """Load every model listed in a file-of-filenames into a name -> model registry.

    Relative paths are resolved against the FOFN's directory.
    """
    fofn_path = Path(fofn_path)
    registry: Dict[str, PoreModel] = {}
    with open(fofn_path, "rt", encoding="utf-8") as fh:
        for line in fh:
            entry = line.strip()
            if not entry or entry.startswith("#"):
                continue
            model_path = Path(entry)
            if not model_path.is_absolute():
                model_path = fofn_path.parent / model_path
            if not model_path.exists():
                raise ModelRegistryError(f"Model file listed in {fofn_path} does not exist: {model_path}")
            model = load_pore_model(model_path)
            if model.name in registry:
                raise ModelRegistryError(f"Duplicate model name '{model.name}' in {fofn_path}")
            registry[model.name] = model

    if not registry:
        raise ModelRegistryError(f"No models listed in {fofn_path}")
    logger.info("Loaded %d pore models: %s", len(registry), ", ".join(sorted(registry)))
    return registry


def write_pore_model(path: str | Path, model_name: str, k: int, levels: Dict[str, Tuple[float, float]]) -> Path:
    """Write a model file readable by :func:`load_pore_model`."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [f"#model_name\t{model_name}", f"#k\t{k}", "kmer\tlevel_mean\tlevel_stdv"]
    for kmer in sorted(levels):
        mean, stdv = levels[kmer]
        lines.append(f"{kmer}\t{mean:.4f}\t{stdv:.4f}")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path
