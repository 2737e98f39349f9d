from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Tuple

import numpy as np
import pysam

from .alphabet import MCPG_ALPHABET
from .kmers import kmer_from_rank
from .models import STRAND_NAMES, HypothesisSequence
from .pore_model import PoreModel, load_pore_model, write_pore_model
from .scorer import KmerMixtureScorer
from .utils import ensure_outdir, write_json

TOY_K = 5
TOY_CONTIG = "chr1"
TOY_LENGTH = 900

# 0-based C positions of the CpGs placed in the toy contig
TOY_CPG_SITES = [150, 156, 300, 420, 428, 433, 560, 700, 706]

# (name, start, length, is_reverse, methylated)
TOY_READS = [
    ("read_00", 60, 420, False, True),
    ("read_01", 80, 420, True, False),
    ("read_02", 100, 420, False, False),
    ("read_03", 240, 420, True, True),
    ("read_04", 260, 420, False, True),
    ("read_05", 400, 420, True, False),
]
# In the BAM but absent from the event table
TOY_READ_WITHOUT_EVENTS = ("read_06", 120, 300)


def _write_fasta(path: Path, contig: str, seq: str) -> None:
    lines = [f">{contig}"]
    for i in range(0, len(seq), 60):
        lines.append(seq[i : i + 60])
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def _toy_reference(rng: np.random.Generator) -> str:
    bases = list("".join(rng.choice(list("ACGT"), size=TOY_LENGTH)))
    # background carries no CpGs of its own
    for i in range(len(bases) - 1):
        if bases[i] == "C" and bases[i + 1] == "G":
            bases[i + 1] = "A"
    for pos in TOY_CPG_SITES:
        bases[pos] = "C"
        bases[pos + 1] = "G"
        if bases[pos - 1] == "C":
            bases[pos - 1] = "T"
        if pos + 2 < len(bases) and bases[pos + 2] == "G":
            bases[pos + 2] = "A"
    return "".join(bases)


def _toy_levels(rng: np.random.Generator, shift: float) -> Dict[str, Tuple[float, float]]:
    levels: Dict[str, Tuple[float, float]] = {}
    for rank in range(4**TOY_K):
        kmer = kmer_from_rank(rank, TOY_K)
        mean = float(rng.normal(90.0, 15.0)) + shift
        stdv = float(rng.uniform(1.0, 2.0))
        levels[kmer] = (mean, stdv)

    methyl = MCPG_ALPHABET.methyl_symbol
    for kmer, (mean, stdv) in list(levels.items()):
        variants = {MCPG_ALPHABET.methylate(kmer)}
        if kmer.endswith("C"):
            variants.add(MCPG_ALPHABET.methylate(kmer)[:-1] + methyl)
        for v in variants:
            if methyl in v:
                levels[v] = (mean + 4.0 * v.count(methyl), stdv)
    return levels


def _make_read(name: str, start0: int, seq: str, is_reverse: bool) -> pysam.AlignedSegment:
    a = pysam.AlignedSegment()
    a.query_name = name
    a.query_sequence = seq
    a.flag = 16 if is_reverse else 0
    a.reference_id = 0
    a.reference_start = start0
    a.mapping_quality = 60
    a.cigartuples = [(0, len(seq))]
    a.query_qualities = pysam.qualitystring_to_array("I" * len(seq))
    return a


def _expected_levels(
    model: PoreModel,
    seq: str,
    *,
    rc: bool,
    methylated: bool,
) -> List[Tuple[float, float]]:
    if methylated:
        seq = MCPG_ALPHABET.methylate(seq)
    hyp = HypothesisSequence(seq, MCPG_ALPHABET.reverse_complement(seq))
    return KmerMixtureScorer().kmer_levels(hyp, model, rc)


def make_toy_data(*, outdir: str | Path) -> Dict[str, str]:
    """Create a tiny methylation test set suitable for quick demos/tests.

    The outputs include:
    - toy_ref.fa (+ .fai)
    - toy_reads.bam (+ .bai), reads on both orientations
    - models/template.model, models/complement.model and models.fofn
    - toy_eventalign.tsv with synthetic event levels

    Half of the reads carry methylated signal. One read is in the BAM only,
    so it has no events.

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)
    rng = np.random.default_rng(7)

    ref_seq = _toy_reference(rng)
    ref_fa = outdir_p / "toy_ref.fa"
    _write_fasta(ref_fa, TOY_CONTIG, ref_seq)
    pysam.faidx(str(ref_fa))

    # Pore models
    models_dir = outdir_p / "models"
    model_paths = []
    for strand_idx, model_name in enumerate(STRAND_NAMES):
        levels = _toy_levels(rng, shift=5.0 * strand_idx)
        model_paths.append(write_pore_model(models_dir / f"{model_name}.model", model_name, TOY_K, levels))
    fofn = outdir_p / "models.fofn"
    fofn.write_text(
        "\n".join(str(p.relative_to(outdir_p)) for p in model_paths) + "\n",
        encoding="utf-8",
    )

    models = [load_pore_model(p) for p in model_paths]

    # BAM
    bam_path = outdir_p / "toy_reads.bam"
    header = {
        "HD": {"VN": "1.6", "SO": "coordinate"},
        "SQ": [{"SN": TOY_CONTIG, "LN": len(ref_seq)}],
    }
    reads: List[pysam.AlignedSegment] = []
    for name, start0, length, is_reverse, _ in TOY_READS:
        end0 = min(start0 + length, len(ref_seq))
        reads.append(_make_read(name, start0, ref_seq[start0:end0], is_reverse))
    name, start0, length = TOY_READ_WITHOUT_EVENTS
    reads.append(_make_read(name, start0, ref_seq[start0 : start0 + length], False))
    reads.sort(key=lambda r: (r.reference_start, r.query_name))

    with pysam.AlignmentFile(str(bam_path), "wb", header=header) as bam:
        for r in reads:
            bam.write(r)
    pysam.index(str(bam_path))

    # Event alignments: one event per reference position; events of a strand
    # that runs against the reference are numbered from the far end.
    eventalign = outdir_p / "toy_eventalign.tsv"
    rows = ["\t".join(["contig", "position", "reference_kmer", "read_name", "strand", "event_index",
                       "event_level_mean", "event_stdv", "model_name"])]
    for name, start0, length, is_reverse, methylated in TOY_READS:
        end0 = min(start0 + length, len(ref_seq)) - TOY_K + 1
        for strand_idx, model in enumerate(models):
            rc = is_reverse if strand_idx == 0 else not is_reverse
            expected = _expected_levels(model, ref_seq[start0 : end0 + TOY_K - 1], rc=rc, methylated=methylated)
            n_events = end0 - start0
            for offset in range(n_events):
                mean, stdv = expected[offset]
                level = float(rng.normal(mean, stdv))
                event_idx = n_events - 1 - offset if rc else offset
                pos = start0 + offset
                rows.append(
                    "\t".join(
                        [
                            TOY_CONTIG,
                            str(pos),
                            ref_seq[pos : pos + TOY_K],
                            name,
                            "t" if strand_idx == 0 else "c",
                            str(event_idx),
                            f"{level:.3f}",
                            f"{stdv:.3f}",
                            model.name,
                        ]
                    )
                )
    eventalign.write_text("\n".join(rows) + "\n", encoding="utf-8")

    summary = {
        "ref_fa": str(ref_fa),
        "bam": str(bam_path),
        "eventalign": str(eventalign),
        "models_fofn": str(fofn),
        "outdir": str(outdir_p),
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
