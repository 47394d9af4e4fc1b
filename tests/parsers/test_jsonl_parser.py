"""Tests for the line-delimited beads parser."""

import json

import pytest

from seebeads.bead_schemas import SourceFormat, Status
from seebeads.exceptions import SourceError
from seebeads.parsers import parse_line, parse_source
from seebeads.parsers.jsonl import parse_jsonl, parse_lines

from tests.conftest import bead_record


def encode(*records):
    return [(r if isinstance(r, str) else json.dumps(r)).encode("utf-8") + b"\n" for r in records]


class TestParseLine:
    """Single record parsing."""

    def test_valid_record(self):
        bead = parse_line(json.dumps(bead_record("bd-3.1", blocks=["bd-9"], related=["bd-4"])))
        assert bead.id == "bd-3.1"
        assert bead.parent_id == "bd-3"
        assert bead.blocker_ids == ["bd-9"]
        assert len(bead.dependencies) == 2

    def test_malformed_json(self):
        with pytest.raises(ValueError, match="invalid JSON"):
            parse_line("{not json")

    def test_non_object(self):
        with pytest.raises(ValueError, match="expected a JSON object"):
            parse_line("[1, 2]")

    def test_missing_title(self):
        with pytest.raises(ValueError, match="title"):
            parse_line(json.dumps({"id": "bd-1"}))


class TestParseLines:
    """Per-line error recovery, de-duplication and tombstones."""

    def test_errors_carry_line_numbers(self):
        lines = encode(
            bead_record("bd-1"),
            "{broken",
            {"title": "no id"},
            {"id": "bd-4"},
            bead_record("bd-5"),
        )
        beads, errors = parse_lines(lines)
        assert [b.id for b in beads] == ["bd-1", "bd-5"]
        assert [e.line for e in errors] == [2, 3, 4]
        assert all(e.message == "failed to parse bead" for e in errors)

    def test_blank_lines_skipped_but_counted(self):
        lines = [b"\n", b"   \n"] + encode("{broken")
        beads, errors = parse_lines(lines)
        assert beads == []
        assert errors[0].line == 3

    def test_undecodable_line(self):
        beads, errors = parse_lines([b"\xff\xfe\n"] + encode(bead_record("bd-1")))
        assert [b.id for b in beads] == ["bd-1"]
        assert errors[0].line == 1
        assert errors[0].message == "failed to decode line"

    def test_duplicate_last_wins(self):
        lines = encode(
            bead_record("bd-1", title="first"),
            bead_record("bd-2"),
            bead_record("bd-1", title="second"),
        )
        beads, errors = parse_lines(lines)
        assert [b.id for b in beads] == ["bd-1", "bd-2"]
        assert beads[0].title == "second"
        assert len(errors) == 1
        assert errors[0].line == 1
        assert "duplicate id 'bd-1'" in str(errors[0])
        assert "superseded by line 3" in str(errors[0])

    def test_tombstones_dropped(self):
        lines = encode(bead_record("bd-1"), bead_record("bd-2", status="tombstone"))
        beads, errors = parse_lines(lines)
        assert [b.id for b in beads] == ["bd-1"]
        assert errors == []

    def test_later_tombstone_deletes_record(self):
        lines = encode(bead_record("bd-1"), bead_record("bd-1", status="tombstone"))
        beads, _ = parse_lines(lines)
        assert beads == []


class TestParseJsonl:
    """File-level parsing."""

    def test_parse_file(self, write_jsonl):
        path = write_jsonl(
            [
                bead_record("bd-1", status="in_progress", labels=["ui"]),
                bead_record("bd-1.1"),
                "",
                "not json",
            ]
        )
        result = parse_jsonl(str(path))
        assert result.source_format == SourceFormat.JSONL
        assert result.source_path == str(path)
        assert result.file_size == path.stat().st_size
        assert [b.id for b in result.beads] == ["bd-1", "bd-1.1"]
        assert result.beads[0].status == Status.IN_PROGRESS
        assert result.beads[0].labels == ["ui"]
        assert len(result.errors) == 1
        assert result.errors[0].line == 4

    def test_missing_file(self, tmp_path):
        missing = tmp_path / "nope.jsonl"
        with pytest.raises(SourceError) as exc_info:
            parse_jsonl(str(missing))
        assert exc_info.value.path == str(missing)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "beads.jsonl"
        path.write_text("")
        result = parse_jsonl(str(path))
        assert result.beads == []
        assert result.errors == []
        assert result.file_size == 0

    def test_parse_source_dispatches_by_name(self, write_jsonl):
        path = write_jsonl([bead_record("bd-1")])
        result = parse_source(path)
        assert result.source_format == SourceFormat.JSONL
        assert len(result.beads) == 1
