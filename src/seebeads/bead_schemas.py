"""Schemas for beads issues, their relationships, and graph query results.

A bead is one issue/task record. The fields mirror the on-disk record so a
line of ``beads.jsonl`` validates straight into ``Bead``. Relationship fields
are derived: ``parent_id`` and ``blocker_ids`` at parse time, the resolved ID
lists by the graph builder. Relationships are plain ID lists resolved through
the graph's identity map, never object references.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_PRIORITY = 2
STALE_WINDOW = timedelta(days=7)


class Status(str, Enum):
    """Workflow status of a bead."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DEFERRED = "deferred"
    CLOSED = "closed"
    TOMBSTONE = "tombstone"
    PINNED = "pinned"
    HOOKED = "hooked"


class BeadType(str, Enum):
    """Kind of work a bead represents."""

    TASK = "task"
    BUG = "bug"
    FEATURE = "feature"
    EPIC = "epic"
    CHORE = "chore"
    MESSAGE = "message"
    MERGE_REQUEST = "merge-request"
    MOLECULE = "molecule"
    GATE = "gate"
    EVENT = "event"


class DependencyType(str, Enum):
    """Known relationship kinds between beads.

    Sources may carry kinds outside this list; those are kept on the
    dependency as plain strings and treated as informational.
    """

    BLOCKS = "blocks"
    PARENT_CHILD = "parent-child"
    CONDITIONAL_BLOCKS = "conditional-blocks"
    WAITS_FOR = "waits-for"
    RELATED = "related"
    DISCOVERED_FROM = "discovered-from"
    REPLIES_TO = "replies-to"
    RELATES_TO = "relates-to"
    DUPLICATES = "duplicates"
    SUPERSEDES = "supersedes"

    @property
    def affects_ready(self) -> bool:
        return self.value in READY_AFFECTING_TYPES


READY_AFFECTING_TYPES = frozenset(
    {
        DependencyType.BLOCKS.value,
        DependencyType.PARENT_CHILD.value,
        DependencyType.CONDITIONAL_BLOCKS.value,
        DependencyType.WAITS_FOR.value,
    }
)


def affects_ready(dep_type: str) -> bool:
    """True if a dependency of this kind gates readiness."""
    return str(dep_type) in READY_AFFECTING_TYPES


def _normalize_timestamp(value: Optional[datetime]) -> Optional[datetime]:
    # Go-style producers write the zero time for "unset"
    if value is None or value.year <= 1:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Dependency(BaseModel):
    """A declared edge from one bead to another."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    issue_id: str = ""
    depends_on_id: str = ""
    dep_type: str = Field(default=DependencyType.BLOCKS.value, alias="type")
    created_at: Optional[datetime] = None
    created_by: str = ""
    metadata: str = ""
    thread_id: str = ""

    @field_validator("created_at", mode="after")
    @classmethod
    def _normalize_created_at(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _normalize_timestamp(value)

    @field_validator("dep_type", mode="before")
    @classmethod
    def _default_type(cls, value):
        return value or DependencyType.BLOCKS.value

    @field_validator("issue_id", "depends_on_id", "created_by", "metadata", "thread_id", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value

    @property
    def affects_ready(self) -> bool:
        return affects_ready(self.dep_type)


class Comment(BaseModel):
    """A comment attached to a bead."""

    model_config = ConfigDict(extra="ignore")

    id: int = 0
    issue_id: str = ""
    author: str = ""
    text: str = ""
    created_at: Optional[datetime] = None

    @field_validator("created_at", mode="after")
    @classmethod
    def _normalize_created_at(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _normalize_timestamp(value)


class Bead(BaseModel):
    """A single issue/task record."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    title: str
    description: str = ""
    design: str = ""
    acceptance_criteria: str = ""
    notes: str = ""

    status: Status = Status.OPEN
    priority: int = DEFAULT_PRIORITY
    issue_type: BeadType = BeadType.TASK
    close_reason: str = ""

    assignee: str = ""
    estimated_minutes: Optional[int] = None

    created_at: Optional[datetime] = None
    created_by: str = ""
    updated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    due_at: Optional[datetime] = None
    defer_until: Optional[datetime] = None

    external_ref: Optional[str] = None

    labels: List[str] = Field(default_factory=list)
    dependencies: List[Dependency] = Field(default_factory=list)
    comments: List[Comment] = Field(default_factory=list)

    deleted_at: Optional[datetime] = None
    deleted_by: str = ""
    delete_reason: str = ""

    # Derived at parse time
    parent_id: str = ""
    blocker_ids: List[str] = Field(default_factory=list, exclude=True)

    # Resolved by the graph builder
    child_ids: List[str] = Field(default_factory=list, exclude=True)
    resolved_blocker_ids: List[str] = Field(default_factory=list, exclude=True)
    blocked_ids: List[str] = Field(default_factory=list, exclude=True)

    @field_validator("id", "title", mode="after")
    @classmethod
    def _required_non_empty(cls, value: str, info) -> str:
        if not value.strip():
            raise ValueError(f"bead missing required field '{info.field_name}'")
        return value

    @field_validator("status", "issue_type", mode="before")
    @classmethod
    def _empty_to_default(cls, value, info):
        if value is None or value == "":
            return Status.OPEN if info.field_name == "status" else BeadType.TASK
        return value

    @field_validator("priority", mode="before")
    @classmethod
    def _default_priority(cls, value):
        return DEFAULT_PRIORITY if value is None or value == "" else value

    @field_validator(
        "description",
        "design",
        "acceptance_criteria",
        "notes",
        "close_reason",
        "assignee",
        "created_by",
        "deleted_by",
        "delete_reason",
        "parent_id",
        mode="before",
    )
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value

    @field_validator("labels", "dependencies", "comments", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return [] if value is None else value

    @field_validator(
        "created_at", "updated_at", "closed_at", "due_at", "defer_until", "deleted_at", mode="after"
    )
    @classmethod
    def _normalize_timestamps(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _normalize_timestamp(value)

    def derive_relationships(self, parent_id: Optional[str] = None) -> None:
        """Compute the parse-time relationship fields.

        Args:
            parent_id: Explicit parent from the source. When empty the parent
                is derived from the hierarchical ID.
        """
        self.parent_id = parent_id or derive_parent_id(self.id)
        self.blocker_ids = extract_blocker_ids(self.dependencies)

    def reset_links(self) -> None:
        """Clear builder-resolved links before (re)linking."""
        self.child_ids = []
        self.resolved_blocker_ids = []
        self.blocked_ids = []

    def is_tombstone(self) -> bool:
        return self.status == Status.TOMBSTONE

    def is_closed(self) -> bool:
        """Closed or tombstoned; such beads never block others."""
        return self.status in (Status.CLOSED, Status.TOMBSTONE)

    def is_ready(self, blockers: Iterable["Bead"], now: Optional[datetime] = None) -> bool:
        """Check whether the bead can be worked on.

        Args:
            blockers: The resolved beads blocking this one
            now: Reference time for the defer check (defaults to current UTC)

        Returns:
            True if the bead is open, not deferred into the future, and every
            blocker is closed or tombstoned
        """
        if self.status != Status.OPEN:
            return False
        now = now or utcnow()
        if self.defer_until is not None and self.defer_until > now:
            return False
        return all(blocker.is_closed() for blocker in blockers)

    def is_stale(self, now: Optional[datetime] = None, window: timedelta = STALE_WINDOW) -> bool:
        """Not closed and not updated within the trailing window."""
        if self.status == Status.CLOSED:
            return False
        now = now or utcnow()
        return self.updated_at is None or self.updated_at < now - window


def derive_parent_id(bead_id: str) -> str:
    """Derive the parent ID from a hierarchical ID.

    ``bd-12.1`` -> ``bd-12``, ``bd-12.1.2`` -> ``bd-12.1``, ``bd-12`` -> ``""``
    """
    parent, dot, _ = bead_id.rpartition(".")
    return parent if dot else ""


def extract_blocker_ids(dependencies: Iterable[Dependency]) -> List[str]:
    """IDs of the beads this one declares ready-affecting dependencies on."""
    return [dep.depends_on_id for dep in dependencies if dep.affects_ready and dep.depends_on_id]


class SourceFormat(str, Enum):
    """On-disk encodings a beads source can use."""

    JSONL = "jsonl"
    SQLITE = "sqlite"


@dataclass
class ParseError:
    """A recoverable problem with one line or row of a source."""

    line: int
    message: str
    detail: str = ""

    def __str__(self) -> str:
        if self.detail:
            return f"line {self.line}: {self.message}: {self.detail}"
        return f"line {self.line}: {self.message}"


@dataclass
class ParseResult:
    """Beads and per-record diagnostics from one parse pass."""

    beads: List[Bead] = field(default_factory=list)
    errors: List[ParseError] = field(default_factory=list)
    file_size: int = 0
    source_path: str = ""
    source_format: SourceFormat = SourceFormat.JSONL


@dataclass
class BeadFilter:
    """Query options for ``BeadsGraph.query``.

    Empty collections mean "no constraint". ``labels`` uses AND semantics.
    A ``limit`` of zero or less returns everything after ``offset``.
    """

    statuses: List[str] = field(default_factory=list)
    types: List[str] = field(default_factory=list)
    priorities: List[int] = field(default_factory=list)
    labels: List[str] = field(default_factory=list)
    search: str = ""
    ready: bool = False
    limit: int = 0
    offset: int = 0


class Velocity(BaseModel):
    """Creation/closure counts over the trailing window."""

    created_7d: int = 0
    closed_7d: int = 0


class Stats(BaseModel):
    """Aggregate statistics, computed fresh on every request."""

    model_config = ConfigDict(populate_by_name=True)

    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict, serialization_alias="byStatus")
    by_type: dict[str, int] = Field(default_factory=dict, serialization_alias="byType")
    by_priority: dict[str, int] = Field(default_factory=dict, serialization_alias="byPriority")
    blocked: int = 0
    ready: int = 0
    stale: int = 0
    velocity: Velocity = Field(default_factory=Velocity)


class EpicProgress(BaseModel):
    """An epic with direct-children completion counts."""

    bead: Bead
    total_children: int = 0
    closed_children: int = 0

    def to_dict(self) -> dict:
        """Flatten into the bead's JSON with progress counters added."""
        data = self.bead.model_dump(mode="json")
        data["totalChildren"] = self.total_children
        data["closedChildren"] = self.closed_children
        return data


@dataclass
class BeadDetail:
    """A bead together with its resolved neighbours."""

    bead: Bead
    parent: Optional[Bead] = None
    children: List[Bead] = field(default_factory=list)
    blockers: List[Bead] = field(default_factory=list)
    blocked: List[Bead] = field(default_factory=list)
