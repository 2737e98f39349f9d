"""Exceptions raised by cpgscan.

Only conditions the caller has to decide about are exceptions. Reads that
fail to align, windows outside the alignment and the like are skipped
without raising.
"""

from __future__ import annotations

from typing import Optional


class CpgScanError(RuntimeError):
    """Base class for cpgscan errors."""


class ModelNotFoundError(CpgScanError):
    """No emission model is registered under a strand's model name."""

    def __init__(self, model_name: str, *, read_name: Optional[str] = None, strand_idx: Optional[int] = None) -> None:
        msg = f"Model not found: '{model_name}'"
        if read_name is not None:
            msg += f" (read {read_name}, strand {strand_idx})"
        msg += ". Check the names listed in --models-fofn."
        super().__init__(msg)
        self.model_name = model_name
        self.read_name = read_name
        self.strand_idx = strand_idx


class ModelRegistryError(CpgScanError):
    """A pore model file or FOFN could not be parsed."""


class EventAlignmentFormatError(CpgScanError):
    """The event alignment table is missing columns or has malformed rows."""

    def __init__(self, message: str, *, path: Optional[str] = None, line_no: Optional[int] = None) -> None:
        where = ""
        if path is not None:
            where = f"{path}:{line_no}: " if line_no is not None else f"{path}: "
        super().__init__(where + message)
        self.path = path
        self.line_no = line_no
