"""2-bit kmer ranks used for emission model lookups.

Bases are ranked A=0, C=1, G=2, T=3 and packed most-significant-first, so a
kmer of length ``k`` maps into ``[0, 4**k)``. Any other symbol ranks as 0.
"""

from __future__ import annotations

BASE_RANK = {"A": 0, "C": 1, "G": 2, "T": 3}
RANK_TO_BASE = "ACGT"


def base_rank(base: str) -> int:
    return BASE_RANK.get(base, 0)


def forward_rank(seq: str, k: int) -> int:
    """Rank of the first ``k`` bases of ``seq`` read 5' to 3'."""
    rank = 0
    for i in range(k):
        rank |= base_rank(seq[i]) << 2 * (k - i - 1)
    return rank


def reverse_complement_rank(seq: str, k: int) -> int:
    """Rank of the reverse complement of the first ``k`` bases of ``seq``.

    Equal to ``forward_rank(revcomp(seq[:k]), k)`` for ACGT input, computed
    without building the reverse-complemented string.
    """
    rank = 0
    for i in range(k - 1, -1, -1):
        rank |= (3 - base_rank(seq[i])) << 2 * i
    return rank


def rank_for_strand(seq: str, k: int, rc: bool) -> int:
    """Select the encoding matching the read orientation."""
    if rc:
        return reverse_complement_rank(seq, k)
    return forward_rank(seq, k)


def kmer_from_rank(rank: int, k: int) -> str:
    bases = []
    for _ in range(k):
        bases.append(RANK_TO_BASE[rank & 3])
        rank >>= 2
    return "".join(reversed(bases))
