"""Nucleotide alphabets.

An :class:`Alphabet` is a plain value passed to whatever needs sequence
transformations; there is no process-wide "current" alphabet.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

_COMPLEMENT = str.maketrans("ACGTN", "TGCAN")

# IUPAC codes resolve to the lexicographically smallest base they stand for.
_IUPAC_RESOLVE = {
    "A": "A",
    "C": "C",
    "G": "G",
    "T": "T",
    "U": "T",
    "R": "A",  # A/G
    "Y": "C",  # C/T
    "S": "C",  # C/G
    "W": "A",  # A/T
    "K": "G",  # G/T
    "M": "A",  # A/C
    "B": "C",  # C/G/T
    "D": "A",  # A/G/T
    "H": "A",  # A/C/T
    "V": "A",  # A/C/G
    "N": "A",
}


@dataclass(frozen=True)
class Alphabet:
    """Symbols plus the sequence operations that depend on them.

    Attributes
    ----------
    name:
        Short identifier, used in logs and summaries.
    symbols:
        Ordered symbol set.
    methyl_symbol:
        Symbol that marks a methylated cytosine, or None for plain DNA.
    """

    name: str
    symbols: str
    methyl_symbol: Optional[str] = None

    def complement(self, seq: str) -> str:
        if self.methyl_symbol is not None:
            seq = seq.replace(self.methyl_symbol, "C")
        return seq.translate(_COMPLEMENT)

    def reverse_complement(self, seq: str) -> str:
        rc = self.complement(seq)[::-1]
        if self.methyl_symbol is None or self.methyl_symbol not in seq:
            return rc
        # A methylated CpG is symmetric: the C of the opposite strand's CpG
        # is methylated too.
        n = len(seq)
        out = list(rc)
        for i in range(n - 1):
            if seq[i] == self.methyl_symbol and seq[i + 1] == "G":
                j = n - 1 - (i + 1)
                out[j] = self.methyl_symbol
        return "".join(out)

    def methylate(self, seq: str) -> str:
        """Mark every cytosine of a CpG with the methylation symbol."""
        if self.methyl_symbol is None:
            raise ValueError(f"Alphabet '{self.name}' has no methylation symbol")
        out = list(seq)
        for i in range(len(seq) - 1):
            if seq[i] == "C" and seq[i + 1] == "G":
                out[i] = self.methyl_symbol
        return "".join(out)

    def disambiguate(self, seq: str) -> str:
        return "".join(_IUPAC_RESOLVE.get(b, "A") for b in seq.upper())

    def is_valid(self, seq: str) -> bool:
        return all(b in self.symbols for b in seq)


DNA_ALPHABET = Alphabet(name="dna", symbols="ACGT")
MCPG_ALPHABET = Alphabet(name="cpg", symbols="ACGMT", methyl_symbol="M")
