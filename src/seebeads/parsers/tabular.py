"""SQLite beads parser with schema inference.

Beads databases come from several tool versions, so neither the table nor
the column names are fixed. Resolution is driven by the declarative tables
below:

- ``TABLE_CANDIDATES``: conventional table names, best first. Falls back to
  the first non-system table.
- ``COLUMN_ALIASES``: canonical field -> acceptable column names, best first.
  A field with no matching column takes its ``COLUMN_DEFAULTS`` literal.
- ``LABEL_SOURCES`` / ``DEPENDENCY_SOURCES``: optional side tables. The first
  shape that can be queried wins; if none can, enrichment is skipped without
  a diagnostic.

The database is opened read-only and never written.
"""

import logging
import os
import re
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote

from pydantic import ValidationError
from sqlalchemy import column, create_engine, func, inspect, literal, select, table
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from ..bead_schemas import Bead, Dependency, ParseError, ParseResult, SourceFormat
from ..exceptions import NoTableFoundError, SourceError

logger = logging.getLogger(__name__)

TABLE_CANDIDATES: Tuple[str, ...] = ("issues", "beads", "issue", "bead", "tasks")
SYSTEM_TABLES: Tuple[str, ...] = ("schema_migrations",)

COLUMN_ALIASES: Dict[str, Tuple[str, ...]] = {
    "id": ("id", "issue_id", "bead_id"),
    "title": ("title", "name", "summary"),
    "description": ("description", "body", "content", "details"),
    "design": ("design",),
    "acceptance_criteria": ("acceptance_criteria",),
    "notes": ("notes",),
    "status": ("status", "state"),
    "issue_type": ("issue_type", "type", "kind", "category"),
    "priority": ("priority", "importance", "severity"),
    "assignee": ("assignee", "assigned_to", "owner"),
    "close_reason": ("close_reason",),
    "created_by": ("created_by",),
    "created_at": ("created_at", "created", "create_time"),
    "updated_at": ("updated_at", "updated", "update_time", "modified_at"),
    "closed_at": ("closed_at", "closed", "resolved_at"),
    "due_at": ("due_at", "due"),
    "defer_until": ("defer_until",),
    "parent_id": ("parent_id", "parent", "epic_id"),
}

COLUMN_DEFAULTS: Dict[str, object] = {
    "priority": 2,
    "status": "open",
    "issue_type": "task",
}

TIMESTAMP_FIELDS = ("created_at", "updated_at", "closed_at", "due_at", "defer_until")

TIMESTAMP_FORMATS: Tuple[str, ...] = (
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S.%f%z",
    "%Y-%m-%d %H:%M:%S%z",
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
)

# strptime takes at most six fractional digits
_EXCESS_FRACTION = re.compile(r"(\.\d{6})\d+")

# (table, issue id column, label column)
LABEL_SOURCES: Tuple[Tuple[str, str, str], ...] = (
    ("issue_labels", "issue_id", "label"),
    ("labels", "issue_id", "label"),
    ("labels", "issue_id", "name"),
)

# (table, issue id column, target column, kind column)
DEPENDENCY_SOURCES: Tuple[Tuple[str, str, str, str], ...] = (
    ("dependencies", "issue_id", "depends_on_id", "type"),
)

TOMBSTONE = "tombstone"


def find_issues_table(table_names: Iterable[str]) -> str:
    """
    Pick the table holding the issues.

    Args:
        table_names: Table names present in the database

    Returns:
        Lower-cased name of the chosen table

    Raises:
        NoTableFoundError: If no candidate or non-system table exists
    """
    tables = [name.lower() for name in table_names]

    for known in TABLE_CANDIDATES:
        if known in tables:
            return known

    for name in tables:
        if not name.startswith("sqlite_") and name not in SYSTEM_TABLES:
            return name

    raise NoTableFoundError(f"no suitable table found, available: {tables}", available=tables)


def resolve_columns(available: Iterable[str]) -> Dict[str, Optional[str]]:
    """
    Map each canonical field to the first alias column that exists.

    Args:
        available: Column names of the issues table

    Returns:
        Dict of canonical field -> column name, or None when the field
        must fall back to its default
    """
    columns = {name.lower() for name in available}
    resolved: Dict[str, Optional[str]] = {}
    for field_name, aliases in COLUMN_ALIASES.items():
        resolved[field_name] = next((alias for alias in aliases if alias in columns), None)
    return resolved


def parse_timestamp(value: object) -> Optional[datetime]:
    """Parse a stored timestamp. Unparseable values yield None."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    text = _EXCESS_FRACTION.sub(r"\1", text)
    for fmt in TIMESTAMP_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


def _sqlite_readonly_url(db_path: str) -> str:
    return f"sqlite:///file:{quote(os.path.abspath(db_path))}?mode=ro&uri=true"


def _build_select(table_name: str, mapping: Mapping[str, Optional[str]]):
    used = sorted({col for col in mapping.values() if col})
    issues = table(table_name, *(column(col) for col in used))

    parts = []
    for field_name, col in mapping.items():
        default = COLUMN_DEFAULTS.get(field_name, "")
        if col:
            parts.append(func.coalesce(issues.c[col], default).label(field_name))
        else:
            parts.append(literal(default).label(field_name))

    stmt = select(*parts).select_from(issues)
    status_col = mapping.get("status")
    if status_col:
        stmt = stmt.where(func.coalesce(issues.c[status_col], "") != TOMBSTONE)
    return stmt


def _row_to_bead(row: Mapping[str, object]) -> Bead:
    data = dict(row)
    parent_id = str(data.pop("parent_id") or "")
    for field_name in TIMESTAMP_FIELDS:
        data[field_name] = parse_timestamp(data.get(field_name))
    for key in ("id", "title"):
        if data.get(key) is not None:
            data[key] = str(data[key])
    bead = Bead.model_validate(data)
    bead.derive_relationships(parent_id=parent_id)
    return bead


def _query_pairs(conn: Connection, sources: Sequence[Tuple[str, ...]]) -> Optional[List[Tuple]]:
    """Run the first side-table query that succeeds."""
    for source in sources:
        table_name, *cols = source
        side = table(table_name, *(column(c) for c in cols))
        stmt = select(*(side.c[c] for c in cols))
        try:
            return [tuple(row) for row in conn.execute(stmt)]
        except DBAPIError:
            conn.rollback()
            continue
    return None


def load_labels(conn: Connection, beads: Sequence[Bead]) -> int:
    """Attach labels from a side table. Returns the number attached."""
    rows = _query_pairs(conn, LABEL_SOURCES)
    if rows is None:
        return 0

    by_id = {bead.id: bead for bead in beads}
    attached = 0
    for issue_id, label in rows:
        bead = by_id.get(str(issue_id))
        if bead is not None and label is not None:
            bead.labels.append(str(label))
            attached += 1
    return attached


def load_dependencies(conn: Connection, beads: Sequence[Bead]) -> int:
    """Attach dependency edges from a side table. Returns the number attached."""
    rows = _query_pairs(conn, DEPENDENCY_SOURCES)
    if rows is None:
        return 0

    by_id = {bead.id: bead for bead in beads}
    touched = set()
    for issue_id, depends_on_id, dep_type in rows:
        bead = by_id.get(str(issue_id))
        if bead is None or not depends_on_id:
            continue
        bead.dependencies.append(
            Dependency(issue_id=str(issue_id), depends_on_id=str(depends_on_id), dep_type=dep_type)
        )
        touched.add(bead.id)

    for bead_id in touched:
        bead = by_id[bead_id]
        bead.derive_relationships(parent_id=bead.parent_id)
    return len(touched)


def parse_sqlite(db_path: str) -> ParseResult:
    """
    Read beads from a SQLite database.

    Args:
        db_path: Path to ``beads.db``

    Returns:
        ParseResult with every valid, non-tombstoned bead

    Raises:
        SourceError: If the file cannot be stat'd or opened
        NoTableFoundError: If no usable table exists
    """
    try:
        file_size = os.stat(db_path).st_size
    except OSError as e:
        raise SourceError(f"failed to stat database {db_path}: {e}", path=db_path) from e

    engine: Engine = create_engine(_sqlite_readonly_url(db_path))
    result = ParseResult(file_size=file_size, source_path=db_path, source_format=SourceFormat.SQLITE)

    try:
        with engine.connect() as conn:
            inspector = inspect(conn)
            try:
                table_name = find_issues_table(inspector.get_table_names())
            except NoTableFoundError as e:
                e.path = db_path
                raise

            columns = [col["name"] for col in inspector.get_columns(table_name)]
            mapping = resolve_columns(columns)
            missing = [name for name, col in mapping.items() if col is None]
            logger.debug(f"[Parser] Table '{table_name}' columns resolved, defaulted: {missing}")

            by_id: Dict[str, Tuple[int, Bead]] = {}
            for row_num, row in enumerate(conn.execute(_build_select(table_name, mapping)), start=1):
                try:
                    bead = _row_to_bead(row._mapping)
                except (ValidationError, ValueError, TypeError) as e:
                    result.errors.append(ParseError(row_num, "failed to scan row", str(e)))
                    continue
                previous = by_id.get(bead.id)
                if previous is not None:
                    result.errors.append(
                        ParseError(previous[0], f"duplicate id '{bead.id}'", f"superseded by row {row_num}")
                    )
                by_id[bead.id] = (row_num, bead)

            result.beads = [bead for _, bead in by_id.values() if not bead.is_tombstone()]

            load_labels(conn, result.beads)
            load_dependencies(conn, result.beads)
    except SourceError:
        raise
    except SQLAlchemyError as e:
        raise SourceError(f"failed to read database {db_path}: {e}", path=db_path) from e
    finally:
        engine.dispose()

    if result.errors:
        logger.warning(f"[Parser] {db_path}: {len(result.errors)} row(s) skipped or superseded")

    logger.info(f"[Parser] Loaded {len(result.beads)} beads from {db_path} table '{table_name}'")
    return result
