"""Pytest configuration and fixtures for seebeads tests"""

import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Ensure src directory is in Python path before any imports
project_root = Path(__file__).resolve().parent.parent
src_path = project_root / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from sqlalchemy import create_engine, text

NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)


def iso(dt: datetime) -> str:
    return dt.isoformat().replace("+00:00", "Z")


def bead_record(bead_id, title=None, **fields):
    """Build one JSONL record; ``blocks``/``related`` become dependency edges."""
    record = {
        "id": bead_id,
        "title": title or f"Bead {bead_id}",
        "status": "open",
        "priority": 2,
        "issue_type": "task",
        "created_at": iso(NOW - timedelta(days=1)),
        "updated_at": iso(NOW - timedelta(days=1)),
    }
    deps = []
    for target in fields.pop("blocks", []):
        deps.append({"issue_id": bead_id, "depends_on_id": target, "type": "blocks"})
    for target in fields.pop("related", []):
        deps.append({"issue_id": bead_id, "depends_on_id": target, "type": "related"})
    if deps:
        record["dependencies"] = deps
    record.update(fields)
    return record


@pytest.fixture
def write_jsonl(tmp_path):
    """Factory writing records (dicts or raw strings) to a beads.jsonl file"""

    def _write(records, name="beads.jsonl", directory=None):
        path = (directory or tmp_path) / name
        lines = [r if isinstance(r, str) else json.dumps(r) for r in records]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write


BEADS_SCHEMA = [
    """CREATE TABLE issues (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        status TEXT NOT NULL DEFAULT 'open',
        priority INTEGER NOT NULL DEFAULT 2,
        issue_type TEXT NOT NULL DEFAULT 'task',
        assignee TEXT,
        created_at DATETIME,
        updated_at DATETIME,
        closed_at DATETIME
    )""",
    """CREATE TABLE dependencies (
        issue_id TEXT NOT NULL,
        depends_on_id TEXT NOT NULL,
        type TEXT NOT NULL DEFAULT 'blocks',
        created_at DATETIME,
        created_by TEXT NOT NULL DEFAULT ''
    )""",
    """CREATE TABLE labels (
        issue_id TEXT NOT NULL,
        label TEXT NOT NULL
    )""",
]


@pytest.fixture
def make_sqlite(tmp_path):
    """Factory creating a SQLite file from DDL and (sql, params) inserts"""

    def _make(statements, rows=(), name="beads.db"):
        path = tmp_path / name
        engine = create_engine(f"sqlite:///{path}")
        try:
            with engine.begin() as conn:
                for ddl in statements:
                    conn.execute(text(ddl))
                for sql, params in rows:
                    conn.execute(text(sql), params)
        finally:
            engine.dispose()
        return path

    return _make


@pytest.fixture
def beads_db(make_sqlite):
    """A beads.db in the standard beads schema"""
    insert_issue = (
        "INSERT INTO issues (id, title, description, status, priority, issue_type, assignee, "
        "created_at, updated_at, closed_at) VALUES (:id, :title, :description, :status, :priority, "
        ":issue_type, :assignee, :created_at, :updated_at, :closed_at)"
    )
    issue = {
        "description": "",
        "status": "open",
        "priority": 2,
        "issue_type": "task",
        "assignee": None,
        "created_at": "2026-10-10 09:00:00",
        "updated_at": "2026-10-17T08:00:00Z",
        "closed_at": None,
    }
    rows = [
        (insert_issue, {**issue, "id": "bd-1", "title": "Epic", "issue_type": "epic", "priority": 1}),
        (insert_issue, {**issue, "id": "bd-1.1", "title": "Child", "assignee": "ada"}),
        (
            insert_issue,
            {**issue, "id": "bd-2", "title": "Done", "status": "closed", "closed_at": "2026-10-16"},
        ),
        (insert_issue, {**issue, "id": "bd-3", "title": "Gone", "status": "tombstone"}),
        (
            "INSERT INTO dependencies (issue_id, depends_on_id, type) VALUES (:a, :b, :t)",
            {"a": "bd-1.1", "b": "bd-2", "t": "blocks"},
        ),
        (
            "INSERT INTO dependencies (issue_id, depends_on_id, type) VALUES (:a, :b, :t)",
            {"a": "bd-1.1", "b": "bd-1", "t": "related"},
        ),
        ("INSERT INTO labels (issue_id, label) VALUES (:a, :l)", {"a": "bd-1.1", "l": "backend"}),
        ("INSERT INTO labels (issue_id, label) VALUES (:a, :l)", {"a": "bd-1.1", "l": "urgent"}),
    ]
    return make_sqlite(BEADS_SCHEMA, rows)
