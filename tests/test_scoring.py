from types import SimpleNamespace

import numpy as np
import pytest

from cpgscan.alphabet import MCPG_ALPHABET
from cpgscan.config import MethyltestConfig
from cpgscan.errors import ModelNotFoundError
from cpgscan.kmers import forward_rank
from cpgscan.methyltest import format_read_lines, process_read, score_read
from cpgscan.models import AlignedPair, CpGCluster, EventAlignment, EventWindow, HypothesisSequence, SquiggleRead
from cpgscan.pore_model import PoreModel
from cpgscan.projection import EventPositionMap
from cpgscan.scorer import KmerMixtureScorer, load_scorer
from cpgscan.scoring import build_hypotheses, event_window_for_cluster, score_difference
from cpgscan.utils import LOG_ZERO

CONTIG = "chr1"
REF_START = 1000
REF_SEQ = "A" * 30 + "CG" + "A" * 28


class FixedScorer:
    """-118 for the methylated hypothesis, -120 otherwise."""

    def score(self, sequence, data):
        return -118.0 if MCPG_ALPHABET.methyl_symbol in sequence.forward else -120.0


class SliceReference:
    def __init__(self, seq, offset):
        self.seq = seq
        self.offset = offset

    def fetch(self, contig, start, end):
        return self.seq[start - self.offset : end - self.offset + 1]


class TemplateOnlyAligner:
    def __init__(self, ref_seq=REF_SEQ):
        self.ref_seq = ref_seq

    def align(self, record, read, strand_idx):
        if strand_idx != 0:
            return EventAlignment(contig=CONTIG, rc=True)
        pairs = tuple(AlignedPair(REF_START + i, i) for i in range(len(self.ref_seq)))
        return EventAlignment(contig=CONTIG, rc=False, pairs=pairs)


class OneReadTable:
    def __init__(self, read):
        self.read = read

    def squiggle_read(self, name):
        return self.read if name == self.read.name else None


def _read(name="read1"):
    return SquiggleRead(
        name=name,
        event_levels=(np.zeros(len(REF_SEQ)), np.zeros(0)),
        model_names=("template", "complement"),
    )


def _score(read, models, config=None, ref_seq=REF_SEQ):
    return score_read(
        SimpleNamespace(query_name=read.name),
        read,
        models=models,
        aligner=TemplateOnlyAligner(ref_seq),
        reference=SliceReference(ref_seq, REF_START),
        scorer=FixedScorer(),
        config=config or MethyltestConfig(),
    )


MODELS = {"template": object(), "complement": object()}


def test_single_window_read():
    result = _score(_read(), MODELS)

    assert len(result.strands) == 1
    strand = result.strands[0]
    assert strand.num_windows == 1
    site = strand.sites[0]
    assert site.diff == pytest.approx(2.0)
    assert (site.start, site.end) == (1030, 1030)
    assert site.context == "AAACG"
    assert strand.min_region is None and strand.max_region is None

    assert list(result.lines) == [
        "SITE\tchr1\t1030\t1030\tAAACG\t1\t-120.00\t-118.00\t2.00",
        "STRAND\tread1\t0\t2.00",
        "READ\tread1\t2.00\t1",
    ]


def test_window_past_alignment_end_is_not_scored():
    # second window pads to offset 62, past the last aligned base at 59
    ref_seq = "A" * 30 + "CG" + "A" * 20 + "CG" + "A" * 6
    result = _score(_read(), MODELS, ref_seq=ref_seq)

    strand = result.strands[0]
    assert [s.start for s in strand.sites] == [1030]
    assert strand.num_windows == 1
    assert [line for line in result.lines if line.startswith("SITE")] == [
        "SITE\tchr1\t1030\t1030\tAAACG\t1\t-120.00\t-118.00\t2.00",
    ]
    assert "READ\tread1\t2.00\t1" in result.lines


def _rc_event_map():
    # events ascend while reference positions descend
    return EventPositionMap.from_pairs(AlignedPair(REF_START + 59 - i, i) for i in range(60))


def test_event_window_on_rc_strand_counts_down():
    window = event_window_for_cluster(
        CpGCluster(sites=(30,), sub_start=20, sub_end=40),
        event_map=_rc_event_map(),
        ref_start=REF_START,
        read=_read(),
        strand_idx=0,
        rc=True,
    )
    assert (window.event_start_idx, window.event_stop_idx, window.event_stride) == (39, 19, -1)
    assert list(window.event_indices())[:3] == [39, 38, 37]


def test_event_window_past_alignment_end_is_none():
    window = event_window_for_cluster(
        CpGCluster(sites=(55,), sub_start=45, sub_end=65),
        event_map=_rc_event_map(),
        ref_start=REF_START,
        read=_read(),
        strand_idx=0,
        rc=True,
    )
    assert window is None


def test_rescoring_gives_identical_lines():
    first = _score(_read(), MODELS)
    second = _score(_read(), MODELS)
    assert first.lines == second.lines
    assert format_read_lines(first) == list(first.lines)


def test_missing_model_fails_only_the_read():
    read = _read()
    models = {"template": object()}
    out = process_read(
        SimpleNamespace(query_name=read.name),
        table=OneReadTable(read),
        models=models,
        aligner=TemplateOnlyAligner(),
        reference=SliceReference(REF_SEQ, REF_START),
        scorer=FixedScorer(),
        config=MethyltestConfig(),
    )
    assert out.failed
    assert "complement" in out.error
    assert out.lines == ()


def test_missing_model_with_fail_fast_raises():
    read = _read()
    with pytest.raises(ModelNotFoundError):
        process_read(
            SimpleNamespace(query_name=read.name),
            table=OneReadTable(read),
            models={"template": object()},
            aligner=TemplateOnlyAligner(),
            reference=SliceReference(REF_SEQ, REF_START),
            scorer=FixedScorer(),
            config=MethyltestConfig(fail_fast=True),
        )


def test_read_without_events_is_skipped():
    out = process_read(
        SimpleNamespace(query_name="other"),
        table=OneReadTable(_read()),
        models=MODELS,
        aligner=TemplateOnlyAligner(),
        reference=SliceReference(REF_SEQ, REF_START),
        scorer=FixedScorer(),
        config=MethyltestConfig(),
    )
    assert out is None


def test_score_difference_both_impossible():
    assert score_difference(LOG_ZERO, LOG_ZERO) == 0.0
    assert score_difference(-1.0, LOG_ZERO) == float("inf")


def test_build_hypotheses():
    unmeth, meth = build_hypotheses("AACGTT", MCPG_ALPHABET)
    assert unmeth.forward == "AACGTT"
    assert unmeth.reverse_complement == "AACGTT"
    assert meth.forward == "AAMGTT"
    assert meth.reverse_complement == "AAMGTT"


def _toy_model(seq: str, k: int) -> PoreModel:
    n = 4**k
    mseq = MCPG_ALPHABET.methylate(seq)
    extra = {}
    for i in range(len(mseq) - k + 1):
        kmer = mseq[i : i + k]
        if "M" in kmer:
            canonical = forward_rank(kmer.replace("M", "C"), k)
            extra[kmer] = (60.0 + canonical + 10.0, 1.0)
    return PoreModel(
        name="template",
        k=k,
        level_mean=np.arange(n, dtype=np.float64) + 60.0,
        level_stdv=np.ones(n),
        extra_levels=extra,
    )


def test_kmer_mixture_scorer_prefers_matching_hypothesis():
    seq = "AACGTTACGA"
    k = 3
    model = _toy_model(seq, k)
    scorer = KmerMixtureScorer(band=0)
    unmeth, meth = build_hypotheses(seq, MCPG_ALPHABET)

    expected = [mean for mean, _ in scorer.kmer_levels(meth, model, rc=False)]
    read = SquiggleRead(
        name="r",
        event_levels=(np.array(expected), np.zeros(0)),
        model_names=("template", "complement"),
    )
    read.replace_pore_model(0, model)
    window = EventWindow(read=read, strand_idx=0, rc=False, event_start_idx=0,
                         event_stop_idx=len(expected) - 1, event_stride=1)

    assert scorer.score(meth, window) > scorer.score(unmeth, window)


def test_kmer_mixture_scorer_needs_model_and_events():
    scorer = KmerMixtureScorer()
    read = SquiggleRead(name="r", event_levels=(np.full(5, np.nan), np.zeros(0)),
                        model_names=("template", "complement"))
    window = EventWindow(read=read, strand_idx=0, rc=False, event_start_idx=0,
                         event_stop_idx=4, event_stride=1)
    seq = HypothesisSequence("AACGT", "ACGTT")
    with pytest.raises(ValueError):
        scorer.score(seq, window)

    read.replace_pore_model(0, _toy_model("AACGT", 3))
    assert scorer.score(seq, window) == LOG_ZERO


def test_event_window_walks_backwards_on_rc():
    window = EventWindow(read=_read(), strand_idx=0, rc=True, event_start_idx=5,
                         event_stop_idx=2, event_stride=-1)
    assert list(window.event_indices()) == [5, 4, 3, 2]


def test_load_scorer():
    scorer = load_scorer("cpgscan.scorer:KmerMixtureScorer")
    assert isinstance(scorer, KmerMixtureScorer)
    with pytest.raises(ValueError):
        load_scorer("cpgscan.scorer")
