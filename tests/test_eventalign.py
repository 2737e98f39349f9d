import logging
import math
from pathlib import Path
from types import SimpleNamespace

import pytest

from cpgscan.errors import EventAlignmentFormatError
from cpgscan.eventalign import EventAlignmentTable, PrecomputedEventAligner, parse_strand, strand_is_rc
from cpgscan.models import AlignedPair
from cpgscan.projection import EventPositionMap

HEADER = "contig\tposition\treference_kmer\tread_name\tstrand\tevent_index\tevent_level_mean\tmodel_name\n"


def _write_table(path: Path) -> Path:
    rows = [
        "chr1\t100\tAACGT\tr1\tt\t0\t80.5\tr9_template",
        "chr1\t101\tACGTA\tr1\tt\t1\t82.0\tr9_template",
        "chr1\t103\tGTAAC\tr1\tt\t3\t79.0\tr9_template",
        "chr1\t100\tAACGT\tr1\tc\t2\t70.0\t",
        "chr1\t101\tACGTA\tr1\tc\t1\t71.0\t",
        "chr1\t102\tCGTAA\tr1\tc\t0\t72.0\t",
        "chr2\t500\tTTTTT\tr1\tc\t5\t60.0\t",
    ]
    path.write_text(HEADER + "\n".join(rows) + "\n", encoding="utf-8")
    return path


def test_parse_strand():
    assert parse_strand("t") == 0
    assert parse_strand("complement") == 1
    with pytest.raises(ValueError):
        parse_strand("x")


def test_strand_orientation_follows_record():
    fwd = SimpleNamespace(is_reverse=False)
    rev = SimpleNamespace(is_reverse=True)
    assert (strand_is_rc(fwd, 0), strand_is_rc(fwd, 1)) == (False, True)
    assert (strand_is_rc(rev, 0), strand_is_rc(rev, 1)) == (True, False)


def test_table_builds_squiggle_reads(tmp_path: Path):
    table = EventAlignmentTable.load(_write_table(tmp_path / "ea.tsv"))
    assert "r1" in table
    assert len(table) == 1
    assert table.squiggle_read("missing") is None

    read = table.squiggle_read("r1")
    assert read.model_names == ("r9_template", "complement")
    assert read.event_level(0, 1) == pytest.approx(82.0)
    assert math.isnan(read.event_level(0, 2))
    assert math.isnan(read.event_level(0, 99))
    assert read.event_level(1, 5) == pytest.approx(60.0)
    assert read.pore_models == [None, None]

    # each call hands out its own object
    assert table.squiggle_read("r1") is not read


def test_aligner_filters_to_record_contig(tmp_path: Path):
    table = EventAlignmentTable.load(_write_table(tmp_path / "ea.tsv"))
    aligner = PrecomputedEventAligner(table)
    record = SimpleNamespace(reference_name="chr1", is_reverse=False)
    read = table.squiggle_read("r1")

    template = aligner.align(record, read, 0)
    assert not template.rc
    assert [p.ref_pos for p in template.pairs] == [100, 101, 103]

    complement = aligner.align(record, read, 1)
    assert complement.rc
    assert [(p.ref_pos, p.event_idx) for p in complement.pairs] == [(100, 2), (101, 1), (102, 0)]


def test_missing_columns(tmp_path: Path):
    path = tmp_path / "bad.tsv"
    path.write_text("contig\tposition\tread_name\n", encoding="utf-8")
    with pytest.raises(EventAlignmentFormatError, match="event_index"):
        EventAlignmentTable.load(path)


def test_malformed_row_reports_line(tmp_path: Path):
    path = tmp_path / "bad.tsv"
    path.write_text(HEADER + "chr1\tNaN-ish\tAACGT\tr1\tt\t0\t80.5\tm\n", encoding="utf-8")
    with pytest.raises(EventAlignmentFormatError, match=":2:"):
        EventAlignmentTable.load(path)


def test_position_lookup():
    pairs = [AlignedPair(100, 0), AlignedPair(101, 1), AlignedPair(104, 2)]
    m = EventPositionMap.from_pairs(pairs)
    assert (m.ref_start, m.ref_end) == (100, 104)
    assert m.lookup_event_for_position(101).event_idx == 1
    # a gap resolves to the next aligned position
    assert m.lookup_event_for_position(102).event_idx == 2
    assert m.lookup_event_for_position(50).event_idx == 0
    assert m.lookup_event_for_position(105) is None


def test_position_map_sorts_unsorted_input():
    m = EventPositionMap.from_pairs([AlignedPair(5, 1), AlignedPair(3, 0)])
    assert m.positions == [3, 5]


def test_descending_strand_sorts_quietly(caplog):
    caplog.set_level(logging.WARNING, logger="cpgscan.projection")
    m = EventPositionMap.from_pairs(AlignedPair(1059 - i, i) for i in range(60))
    assert m.ref_start == 1000 and m.ref_end == 1059
    assert m.lookup_event_for_position(1000).event_idx == 59
    assert caplog.records == []
