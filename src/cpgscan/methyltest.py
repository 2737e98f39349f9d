from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, replace
from functools import partial
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

import numpy as np
import pysam
from tqdm import tqdm

from .config import MethyltestConfig
from .cpg import accepted_clusters
from .errors import ModelNotFoundError
from .eventalign import EventAligner, EventAlignmentTable
from .models import NUM_STRANDS, ReadResult, RegionSummary, SiteScore, SquiggleRead, StrandResult
from .pore_model import PoreModel
from .projection import EventPositionMap
from .reference import ReferenceFetcher
from .regions import find_extremal_regions
from .scoring import ProfileScorer, score_clusters
from .utils import chunked, ensure_outdir, open_textmaybe_gzip, write_json

logger = logging.getLogger(__name__)

SCORE_HIST_EDGES = np.linspace(-25.0, 25.0, 51)


def format_site_line(site: SiteScore) -> str:
    return (
        f"SITE\t{site.contig}\t{site.start}\t{site.end}\t{site.context}\t{site.num_sites}\t"
        f"{site.unmethylated_score:.2f}\t{site.methylated_score:.2f}\t{site.diff:.2f}"
    )


def format_strand_line(read_name: str, strand: StrandResult) -> str:
    return f"STRAND\t{read_name}\t{strand.strand_idx}\t{strand.score:.2f}"


def format_region_line(kind: str, region: RegionSummary) -> str:
    return f"{kind}\t{region.score:.2f}\t{region.num_sites}\t{region.contig}\t{region.start}\t{region.end}"


def format_read_line(result: ReadResult) -> str:
    return f"READ\t{result.read_name}\t{result.score:.2f}\t{result.num_windows}"


def format_read_lines(result: ReadResult) -> List[str]:
    """All output lines of one read, in emission order."""
    lines: List[str] = []
    for strand in result.strands:
        lines.extend(format_site_line(s) for s in strand.sites)
        lines.append(format_strand_line(result.read_name, strand))
        if strand.min_region is not None and strand.max_region is not None:
            lines.append(format_region_line("MIN_REGION", strand.min_region))
            lines.append(format_region_line("MAX_REGION", strand.max_region))
    lines.append(format_read_line(result))
    return lines


def install_strand_model(read: SquiggleRead, strand_idx: int, models: Mapping[str, PoreModel]) -> PoreModel:
    model_name = read.model_names[strand_idx]
    model = models.get(model_name)
    if model is None:
        raise ModelNotFoundError(model_name, read_name=read.name, strand_idx=strand_idx)
    read.replace_pore_model(strand_idx, model)
    return model


def score_strand(
    record: pysam.AlignedSegment,
    read: SquiggleRead,
    strand_idx: int,
    *,
    models: Mapping[str, PoreModel],
    aligner: EventAligner,
    reference: ReferenceFetcher,
    scorer: ProfileScorer,
    config: MethyltestConfig,
) -> Optional[StrandResult]:
    """Score one strand; None when the strand has no aligned events."""
    install_strand_model(read, strand_idx, models)

    alignment = aligner.align(record, read, strand_idx)
    if not alignment:
        logger.debug("%s strand %d: no aligned events", read.name, strand_idx)
        return None

    event_map = EventPositionMap.from_alignment(alignment)
    ref_start = event_map.ref_start
    ref_seq = reference.fetch(alignment.contig, ref_start, event_map.ref_end)

    clusters = accepted_clusters(
        ref_seq,
        min_separation=config.min_separation,
        max_span=config.max_cluster_span,
    )
    sites = score_clusters(
        clusters,
        ref_seq=ref_seq,
        ref_start=ref_start,
        alignment=alignment,
        event_map=event_map,
        read=read,
        strand_idx=strand_idx,
        scorer=scorer,
        alphabet=config.alphabet,
        context_flank=config.context_flank,
    )

    regions = find_extremal_regions(sites)
    min_region, max_region = regions if regions is not None else (None, None)
    return StrandResult(
        strand_idx=strand_idx,
        contig=alignment.contig,
        sites=tuple(sites),
        min_region=min_region,
        max_region=max_region,
    )


def score_read(
    record: pysam.AlignedSegment,
    read: SquiggleRead,
    *,
    models: Mapping[str, PoreModel],
    aligner: EventAligner,
    reference: ReferenceFetcher,
    scorer: ProfileScorer,
    config: MethyltestConfig,
) -> ReadResult:
    """Score both strands of a read.

    Raises ModelNotFoundError if a strand's pore model is not registered.
    """
    strands: List[StrandResult] = []
    for strand_idx in range(NUM_STRANDS):
        res = score_strand(
            record,
            read,
            strand_idx,
            models=models,
            aligner=aligner,
            reference=reference,
            scorer=scorer,
            config=config,
        )
        if res is not None:
            strands.append(res)

    result = ReadResult(read_name=read.name, strands=tuple(strands))
    return replace(result, lines=tuple(format_read_lines(result)))


def process_read(
    record: pysam.AlignedSegment,
    *,
    table: EventAlignmentTable,
    models: Mapping[str, PoreModel],
    aligner: EventAligner,
    reference: ReferenceFetcher,
    scorer: ProfileScorer,
    config: MethyltestConfig,
) -> Optional[ReadResult]:
    """Worker task for one BAM record.

    Returns None for reads without signal events. A missing pore model fails
    only this read unless ``config.fail_fast`` is set.
    """
    read = table.squiggle_read(str(record.query_name))
    if read is None:
        return None
    try:
        return score_read(
            record,
            read,
            models=models,
            aligner=aligner,
            reference=reference,
            scorer=scorer,
            config=config,
        )
    except ModelNotFoundError as e:
        if config.fail_fast:
            raise
        logger.error("%s", e)
        return ReadResult(read_name=read.name, error=str(e))


def _keep_record(read: pysam.AlignedSegment, config: MethyltestConfig, counts: Dict[str, int]) -> bool:
    if read.is_unmapped:
        counts["reads_unmapped"] += 1
        return False
    if read.is_secondary and not config.include_secondary:
        counts["reads_skipped_secondary"] += 1
        return False
    if read.is_supplementary and not config.include_supplementary:
        counts["reads_skipped_supplementary"] += 1
        return False
    return True


def _histogram(values: Iterable[float]) -> np.ndarray:
    vals = np.clip(np.fromiter(values, dtype=np.float64), SCORE_HIST_EDGES[0], SCORE_HIST_EDGES[-1])
    return np.histogram(vals, bins=SCORE_HIST_EDGES)[0]


def run_methyltest(
    *,
    bam_path: str,
    table: EventAlignmentTable,
    models: Mapping[str, PoreModel],
    aligner: EventAligner,
    reference: ReferenceFetcher,
    scorer: ProfileScorer,
    outdir: str | Path,
    config: Optional[MethyltestConfig] = None,
    region: Optional[str] = None,
    output_name: str = "methyltest.tsv",
    progress: bool = True,
) -> Dict[str, object]:
    """Main workhorse: iterate the BAM in batches, score reads in parallel, write outputs.

    Returns the run summary, which is also written to ``outdir/summary.json``.
    """
    t0 = time.time()
    config = config or MethyltestConfig()
    outdir_path = ensure_outdir(outdir)
    out_tsv = outdir_path / output_name

    counts = {
        "reads_total": 0,
        "reads_unmapped": 0,
        "reads_skipped_secondary": 0,
        "reads_skipped_supplementary": 0,
        "reads_without_events": 0,
        "reads_scored": 0,
        "reads_failed": 0,
        "strands_scored": 0,
        "windows_scored": 0,
        "cpg_sites_scored": 0,
    }
    site_hist = np.zeros(len(SCORE_HIST_EDGES) - 1, dtype=np.int64)
    read_hist = np.zeros(len(SCORE_HIST_EDGES) - 1, dtype=np.int64)
    windows_per_read: Dict[int, int] = {}
    failed_reads: List[str] = []

    table.preload()
    worker = partial(
        process_read,
        table=table,
        models=models,
        aligner=aligner,
        reference=reference,
        scorer=scorer,
        config=config,
    )

    bam = pysam.AlignmentFile(bam_path, "rb")
    # rows go to a partial file that only becomes out_tsv once the run completes
    partial_tsv = out_tsv.with_name("partial." + out_tsv.name)
    tsv_fh = open_textmaybe_gzip(partial_tsv, "wt")
    try:
        with bam, tsv_fh, ThreadPoolExecutor(max_workers=config.threads) as pool:
            it: Iterable[pysam.AlignedSegment]
            if region:
                it = bam.fetch(region=region)
            else:
                it = bam.fetch(until_eof=True)
            if progress:
                it = tqdm(it, unit="read", desc="Testing reads")

            def _records() -> Iterable[pysam.AlignedSegment]:
                for rec in it:
                    counts["reads_total"] += 1
                    if _keep_record(rec, config, counts):
                        yield rec

            for batch in chunked(_records(), config.batch_size):
                if config.threads == 1:
                    results = [worker(rec) for rec in batch]
                else:
                    results = list(pool.map(worker, batch))

                for res in results:
                    if res is None:
                        counts["reads_without_events"] += 1
                        continue
                    if res.failed:
                        counts["reads_failed"] += 1
                        if len(failed_reads) < 100:
                            failed_reads.append(res.read_name)
                        continue

                    counts["reads_scored"] += 1
                    counts["strands_scored"] += len(res.strands)
                    counts["windows_scored"] += res.num_windows
                    diffs = [s.diff for strand in res.strands for s in strand.sites]
                    counts["cpg_sites_scored"] += sum(s.num_sites for strand in res.strands for s in strand.sites)
                    if diffs:
                        site_hist += _histogram(diffs)
                    read_hist += _histogram([res.score])
                    windows_per_read[res.num_windows] = windows_per_read.get(res.num_windows, 0) + 1

                    # one write per read keeps its lines together
                    tsv_fh.write("".join(line + "\n" for line in res.lines))
    except Exception:
        partial_tsv.unlink(missing_ok=True)
        raise
    partial_tsv.replace(out_tsv)

    dt = time.time() - t0
    logger.info(
        "Scored %d reads (%d windows) in %.1f s; %d failed",
        counts["reads_scored"],
        counts["windows_scored"],
        dt,
        counts["reads_failed"],
    )

    cfg = asdict(config)
    cfg["alphabet"] = config.alphabet.name
    summary = {
        "bam_path": bam_path,
        "region": region,
        "output_tsv": str(out_tsv),
        "config": cfg,
        "counts": counts,
        "failed_reads": failed_reads,
        "site_score_hist": {
            "bin_edges": SCORE_HIST_EDGES.tolist(),
            "counts": site_hist.tolist(),
        },
        "read_score_hist": {
            "bin_edges": SCORE_HIST_EDGES.tolist(),
            "counts": read_hist.tolist(),
        },
        "windows_per_read_hist": {str(k): v for k, v in sorted(windows_per_read.items())},
        "runtime_seconds": float(dt),
    }

    write_json(outdir_path / "summary.json", summary)
    return summary
