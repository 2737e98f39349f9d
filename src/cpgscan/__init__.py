"""cpgscan: CpG methylation testing of nanopore reads from aligned signal events.

Public API is intentionally small; most users should use the CLI:

    cpgscan methyltest --bam ... --eventalign ... --genome ... --models-fofn ... --outdir ...

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.3.0"
