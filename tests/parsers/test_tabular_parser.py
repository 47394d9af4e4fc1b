"""Tests for the SQLite beads parser and its schema inference."""

from datetime import datetime, timedelta, timezone

import pytest

from seebeads.bead_schemas import BeadType, SourceFormat, Status
from seebeads.exceptions import NoTableFoundError, SourceError
from seebeads.parsers import detect_source_format, parse_source
from seebeads.parsers.tabular import (
    find_issues_table,
    parse_sqlite,
    parse_timestamp,
    resolve_columns,
)


class TestFindIssuesTable:
    """Table selection."""

    def test_prefers_conventional_names_in_order(self):
        assert find_issues_table(["beads", "issues", "config"]) == "issues"
        assert find_issues_table(["config", "Tasks", "bead"]) == "bead"

    def test_falls_back_to_first_non_system_table(self):
        assert find_issues_table(["sqlite_sequence", "schema_migrations", "work_items"]) == "work_items"

    def test_no_usable_table(self):
        with pytest.raises(NoTableFoundError) as exc_info:
            find_issues_table(["sqlite_sequence", "schema_migrations"])
        assert exc_info.value.available == ["sqlite_sequence", "schema_migrations"]
        assert "sqlite_sequence" in str(exc_info.value)


class TestResolveColumns:
    """Column alias resolution."""

    def test_canonical_names(self):
        mapping = resolve_columns(["id", "title", "status", "priority", "issue_type"])
        assert mapping["id"] == "id"
        assert mapping["issue_type"] == "issue_type"
        assert mapping["assignee"] is None

    def test_aliases_in_preference_order(self):
        mapping = resolve_columns(["bead_id", "Name", "state", "kind", "type", "owner", "body"])
        assert mapping["id"] == "bead_id"
        assert mapping["title"] == "name"
        assert mapping["status"] == "state"
        assert mapping["issue_type"] == "type"
        assert mapping["assignee"] == "owner"
        assert mapping["description"] == "body"
        assert mapping["priority"] is None


class TestParseTimestamp:
    """Stored timestamp formats."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("2026-10-17T08:00:00Z", datetime(2026, 10, 17, 8, tzinfo=timezone.utc)),
            ("2026-10-17T08:00:00.250000+00:00", datetime(2026, 10, 17, 8, 0, 0, 250000, tzinfo=timezone.utc)),
            ("2026-10-17T08:00:00", datetime(2026, 10, 17, 8, tzinfo=timezone.utc)),
            ("2026-10-17 08:00:00", datetime(2026, 10, 17, 8, tzinfo=timezone.utc)),
            ("2026-10-17 08:00:00.5", datetime(2026, 10, 17, 8, 0, 0, 500000, tzinfo=timezone.utc)),
            ("2026-10-17", datetime(2026, 10, 17, tzinfo=timezone.utc)),
            (
                "2025-01-15T10:30:00.123456789-08:00",
                datetime(2025, 1, 15, 10, 30, 0, 123456, tzinfo=timezone(timedelta(hours=-8))),
            ),
            (
                "2025-01-15 10:30:00.123456-08:00",
                datetime(2025, 1, 15, 10, 30, 0, 123456, tzinfo=timezone(timedelta(hours=-8))),
            ),
            ("2025-01-15 10:30:00+02:00", datetime(2025, 1, 15, 10, 30, tzinfo=timezone(timedelta(hours=2)))),
        ],
    )
    def test_formats(self, value, expected):
        assert parse_timestamp(value) == expected

    @pytest.mark.parametrize("value", [None, "", "   ", "yesterday"])
    def test_unset_or_unparseable(self, value):
        assert parse_timestamp(value) is None


class TestParseSqlite:
    """End-to-end reads of SQLite sources."""

    def test_standard_schema(self, beads_db):
        result = parse_sqlite(str(beads_db))
        assert result.source_format == SourceFormat.SQLITE
        assert result.file_size == beads_db.stat().st_size
        assert result.errors == []

        beads = {b.id: b for b in result.beads}
        assert set(beads) == {"bd-1", "bd-1.1", "bd-2"}

        child = beads["bd-1.1"]
        assert child.parent_id == "bd-1"
        assert child.assignee == "ada"
        assert sorted(child.labels) == ["backend", "urgent"]
        assert child.blocker_ids == ["bd-2"]
        assert {d.dep_type for d in child.dependencies} == {"blocks", "related"}
        assert child.created_at == datetime(2026, 10, 10, 9, tzinfo=timezone.utc)

        assert beads["bd-1"].issue_type == BeadType.EPIC
        assert beads["bd-1"].priority == 1
        assert beads["bd-2"].status == Status.CLOSED
        assert beads["bd-2"].closed_at == datetime(2026, 10, 16, tzinfo=timezone.utc)

    def test_alias_schema_with_defaults(self, make_sqlite):
        path = make_sqlite(
            [
                "CREATE TABLE tasks (bead_id TEXT, name TEXT, state TEXT, kind TEXT, parent TEXT)",
                "CREATE TABLE labels (issue_id TEXT, name TEXT)",
            ],
            [
                (
                    "INSERT INTO tasks VALUES (:id, :name, :state, :kind, :parent)",
                    {"id": "t-1", "name": "Root", "state": None, "kind": "feature", "parent": None},
                ),
                (
                    "INSERT INTO tasks VALUES (:id, :name, :state, :kind, :parent)",
                    {"id": "t-2", "name": "Sub", "state": "in_progress", "kind": None, "parent": "t-1"},
                ),
                ("INSERT INTO labels VALUES (:a, :l)", {"a": "t-2", "l": "ops"}),
            ],
            name="legacy.sqlite",
        )
        result = parse_sqlite(str(path))
        beads = {b.id: b for b in result.beads}

        assert beads["t-1"].status == Status.OPEN
        assert beads["t-1"].priority == 2
        assert beads["t-1"].issue_type == BeadType.FEATURE
        assert beads["t-2"].status == Status.IN_PROGRESS
        assert beads["t-2"].issue_type == BeadType.TASK
        assert beads["t-2"].parent_id == "t-1"
        assert beads["t-2"].labels == ["ops"]
        assert beads["t-2"].blocker_ids == []

    def test_offset_and_nanosecond_timestamps(self, make_sqlite):
        path = make_sqlite(
            ["CREATE TABLE issues (id TEXT, title TEXT, created_at TEXT, updated_at TEXT)"],
            [
                (
                    "INSERT INTO issues VALUES (:id, :title, :created, :updated)",
                    {
                        "id": "bd-1",
                        "title": "Go export",
                        "created": "2025-01-15T10:30:00.123456789-08:00",
                        "updated": "2025-01-15 10:30:00.123456-08:00",
                    },
                ),
            ],
        )
        bead = parse_sqlite(str(path)).beads[0]
        expected = datetime(2025, 1, 15, 18, 30, 0, 123456, tzinfo=timezone.utc)
        assert bead.created_at == expected
        assert bead.updated_at == expected

    def test_bad_rows_are_recoverable(self, make_sqlite):
        path = make_sqlite(
            ["CREATE TABLE issues (id TEXT, title TEXT, status TEXT)"],
            [
                ("INSERT INTO issues VALUES ('bd-1', 'ok', 'open')", {}),
                ("INSERT INTO issues VALUES ('', 'no id', 'open')", {}),
                ("INSERT INTO issues VALUES ('bd-3', 'weird', 'wontfix')", {}),
            ],
        )
        result = parse_sqlite(str(path))
        assert [b.id for b in result.beads] == ["bd-1"]
        assert [e.line for e in result.errors] == [2, 3]
        assert all(e.message == "failed to scan row" for e in result.errors)

    def test_no_table(self, make_sqlite):
        path = make_sqlite(["CREATE TABLE schema_migrations (version INTEGER)"])
        with pytest.raises(NoTableFoundError) as exc_info:
            parse_sqlite(str(path))
        assert exc_info.value.path == str(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(SourceError):
            parse_sqlite(str(tmp_path / "missing.db"))

    def test_database_not_modified(self, beads_db):
        before = beads_db.read_bytes()
        parse_sqlite(str(beads_db))
        assert beads_db.read_bytes() == before

    def test_detect_and_dispatch(self, beads_db):
        assert detect_source_format(beads_db) == SourceFormat.SQLITE
        assert detect_source_format("x/beads.jsonl") == SourceFormat.JSONL
        result = parse_source(beads_db)
        assert len(result.beads) == 3
