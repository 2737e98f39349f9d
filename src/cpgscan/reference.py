from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import List, Protocol

import pysam

from .alphabet import DNA_ALPHABET, Alphabet

logger = logging.getLogger(__name__)


class ReferenceFetcher(Protocol):
    def fetch(self, contig: str, start: int, end: int) -> str:
        """Bases of ``contig`` over the inclusive 0-based interval [start, end]."""
        ...


class FastaReference:
    """Indexed FASTA access with ambiguity codes resolved.

    pysam.FastaFile handles must not be shared between threads, so each
    thread that fetches gets its own handle. Use as a context manager, or
    call :meth:`close`, to release them.
    """

    def __init__(self, path: str | Path, *, alphabet: Alphabet = DNA_ALPHABET) -> None:
        self.path = str(path)
        self.alphabet = alphabet
        self._local = threading.local()
        self._handles: List[pysam.FastaFile] = []
        self._lock = threading.Lock()
        # Open once up front so a bad path fails here, not in a worker.
        self._handle()

    def _handle(self) -> pysam.FastaFile:
        fh = getattr(self._local, "fh", None)
        if fh is None:
            fh = pysam.FastaFile(self.path)
            self._local.fh = fh
            with self._lock:
                self._handles.append(fh)
        return fh

    @property
    def references(self) -> List[str]:
        return list(self._handle().references)

    def fetch(self, contig: str, start: int, end: int) -> str:
        seq = self._handle().fetch(contig, start, end + 1)
        return self.alphabet.disambiguate(seq)

    def close(self) -> None:
        with self._lock:
            for fh in self._handles:
                fh.close()
            self._handles.clear()
        self._local = threading.local()

    def __enter__(self) -> "FastaReference":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
