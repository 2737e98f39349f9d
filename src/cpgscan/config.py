"""
Run configuration for methylation testing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple

from .alphabet import MCPG_ALPHABET, Alphabet


@dataclass(frozen=True)
class MethyltestConfig:
    """Parameters of one ``methyltest`` run."""

    # CpG windowing
    min_separation: int = 10      # max gap between sites in a window; also the padding
    max_cluster_span: int = 200   # windows spanning this many bases or more are not scored
    context_flank: int = 3        # bases before the first CpG shown in SITE lines

    # Batching
    batch_size: int = 128
    threads: int = 1

    # Read filters
    include_secondary: bool = False
    include_supplementary: bool = False

    # Missing model aborts the whole run instead of the read
    fail_fast: bool = False

    # Model name used for a strand when the event table does not name one
    strand_model_names: Tuple[str, str] = ("template", "complement")

    alphabet: Alphabet = field(default=MCPG_ALPHABET)

    def __post_init__(self) -> None:
        if self.min_separation < 1:
            raise ValueError("min_separation must be >= 1")
        if self.max_cluster_span < 1:
            raise ValueError("max_cluster_span must be >= 1")
        if not 0 <= self.context_flank <= self.min_separation:
            raise ValueError("context_flank must be within [0, min_separation]")
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.threads < 1:
            raise ValueError(f"invalid number of threads: {self.threads}")
        if self.alphabet.methyl_symbol is None:
            raise ValueError(f"Alphabet '{self.alphabet.name}' cannot represent methylation")
        if len(self.strand_model_names) != 2:
            raise ValueError("strand_model_names needs one name per strand")
