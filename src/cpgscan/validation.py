from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List

logger = logging.getLogger(__name__)


_UCSC_PREFIX = "chr"


def check_bam_index(bam_path: str | Path) -> None:
    """Ensure a BAM has an index; raise ValueError with fix instructions."""
    bam = Path(bam_path)
    bai1 = bam.with_suffix(bam.suffix + ".bai")
    bai2 = bam.with_suffix(".bai")
    if bai1.exists() or bai2.exists():
        return
    raise ValueError(
        "BAM is not indexed. Run: samtools index " + str(bam)
    )


def check_fasta_index(fasta_path: str | Path) -> None:
    """Ensure a FASTA has a .fai index; raise ValueError with fix instructions."""
    fa = Path(fasta_path)
    fai = fa.with_suffix(fa.suffix + ".fai")
    if fai.exists():
        return
    raise ValueError(
        "Reference FASTA is not indexed. Run: samtools faidx " + str(fa)
    )


def check_contigs(bam_contigs: Iterable[str], fasta_contigs: Iterable[str]) -> List[str]:
    """Return the contigs shared by BAM and FASTA; raise ValueError if there are none."""
    bam_list = list(bam_contigs)
    fasta = set(fasta_contigs)
    shared = [c for c in bam_list if c in fasta]
    if not shared:
        hint = ""
        if any(c.startswith(_UCSC_PREFIX) for c in bam_list) != any(c.startswith(_UCSC_PREFIX) for c in fasta):
            hint = " (e.g., chr1 vs 1)"
        raise ValueError(
            f"Contig mismatch between BAM and reference FASTA{hint}. "
            "Use the reference the reads were aligned to."
        )
    if len(shared) < len(bam_list):
        logger.warning("%d BAM contigs are absent from the reference", len(bam_list) - len(shared))
    return shared
