"""In-memory beads graph: construction, reconciliation, and queries.

Architecture:
- ``build_graph`` links a ParseResult into identity map, roots and indices
- ``BeadsGraph.rebuild`` re-parses the same source off-lock and swaps the
  whole state in under the write lock, so readers see either the old graph
  or the new one, never a mix
- Read methods take the shared lock for one call; separate calls may see
  different generations

Relationships are ID lists on each bead resolved through ``beads`` (the
identity map). Links are only valid for the generation that built them.
"""

import logging
import os
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple, Union

from .bead_schemas import (
    Bead,
    BeadDetail,
    BeadFilter,
    BeadType,
    EpicProgress,
    ParseResult,
    SourceFormat,
    STALE_WINDOW,
    Stats,
    Status,
    utcnow,
)
from .parsers import detect_source_format, parse_source
from .rwlock import ReadWriteLock

logger = logging.getLogger(__name__)

PRIORITY_LABELS = {0: "p0", 1: "p1", 2: "p2", 3: "p3", 4: "p4"}


def priority_label(priority: int) -> str:
    """Stats bucket for a priority; out-of-range values count as p2."""
    return PRIORITY_LABELS.get(priority, "p2")


def _sort_key(bead: Bead) -> Tuple[int, float]:
    # Priority ascending, then newest first; beads without a creation time sort last
    created = bead.created_at.timestamp() if bead.created_at else float("-inf")
    return (bead.priority, -created)


@dataclass
class _Snapshot:
    """Fully linked graph state produced off-lock by one build."""

    beads: Dict[str, Bead] = field(default_factory=dict)
    root_beads: List[Bead] = field(default_factory=list)
    by_status: Dict[Status, List[Bead]] = field(default_factory=dict)
    by_type: Dict[BeadType, List[Bead]] = field(default_factory=dict)
    by_priority: Dict[int, List[Bead]] = field(default_factory=dict)
    by_label: Dict[str, List[Bead]] = field(default_factory=dict)


def _link(result: ParseResult) -> _Snapshot:
    snapshot = _Snapshot()
    beads = snapshot.beads

    # Step 1: identity map (last-seen wins)
    for bead in result.beads:
        bead.reset_links()
        beads[bead.id] = bead

    # Step 2: parent/child
    for bead in beads.values():
        parent = beads.get(bead.parent_id) if bead.parent_id else None
        if parent is None or parent is bead:
            snapshot.root_beads.append(bead)
        else:
            parent.child_ids.append(bead.id)

    # Step 3: blocker/blocked; dangling targets are dropped
    for bead in beads.values():
        for blocker_id in bead.blocker_ids:
            blocker = beads.get(blocker_id)
            if blocker is None:
                continue
            bead.resolved_blocker_ids.append(blocker_id)
            blocker.blocked_ids.append(bead.id)

    # Step 4: secondary indices
    by_status = defaultdict(list)
    by_type = defaultdict(list)
    by_priority = defaultdict(list)
    by_label = defaultdict(list)
    for bead in beads.values():
        by_status[bead.status].append(bead)
        by_type[bead.issue_type].append(bead)
        by_priority[bead.priority].append(bead)
        for label in bead.labels:
            by_label[label].append(bead)

    snapshot.by_status = dict(by_status)
    snapshot.by_type = dict(by_type)
    snapshot.by_priority = dict(by_priority)
    snapshot.by_label = dict(by_label)
    return snapshot


class BeadsGraph:
    """Lock-guarded, versioned container for the current beads graph.

    Attributes:
        beads: ID -> Bead identity map
        root_beads: Beads without a resolvable parent
        by_status / by_type / by_priority / by_label: Secondary indices
        source_path: Source the graph is (re)built from
        source_format: Encoding of the source
        file_size: Source size in bytes at the last successful read
        last_updated: When the current state was swapped in
        generation: Incremented on every successful swap
    """

    def __init__(self, source_path: str = "", source_format: SourceFormat = SourceFormat.JSONL):
        self._lock = ReadWriteLock()
        self.source_path = source_path
        self.source_format = SourceFormat(source_format)

        self.beads: Dict[str, Bead] = {}
        self.root_beads: List[Bead] = []
        self.by_status: Dict[Status, List[Bead]] = {}
        self.by_type: Dict[BeadType, List[Bead]] = {}
        self.by_priority: Dict[int, List[Bead]] = {}
        self.by_label: Dict[str, List[Bead]] = {}

        self.file_size = 0
        self.last_updated: Optional[datetime] = None
        self.generation = 0

    # Construction / reconciliation

    def _swap(self, snapshot: _Snapshot, result: ParseResult) -> None:
        with self._lock.write_lock():
            self.beads = snapshot.beads
            self.root_beads = snapshot.root_beads
            self.by_status = snapshot.by_status
            self.by_type = snapshot.by_type
            self.by_priority = snapshot.by_priority
            self.by_label = snapshot.by_label
            self.file_size = result.file_size
            self.last_updated = datetime.now(timezone.utc)
            self.generation += 1

    def apply(self, result: ParseResult) -> None:
        """Link a parse result and swap it in as the current state."""
        self._swap(_link(result), result)

    def rebuild(self) -> ParseResult:
        """
        Re-parse the source and atomically replace the graph state.

        Parsing and linking happen before the write lock is taken, so
        readers of the previous state are not stalled by a slow read.

        Returns:
            The ParseResult that was applied (for diagnostics)

        Raises:
            SourceError: If the source cannot be read; state is left untouched
        """
        result = parse_source(self.source_path, self.source_format)
        snapshot = _link(result)
        self._swap(snapshot, result)
        logger.info(
            f"[Graph] Rebuilt from {self.source_path}: {len(snapshot.beads)} beads, "
            f"{len(result.errors)} diagnostics (generation {self.generation})"
        )
        return result

    # Point lookups

    def get_bead(self, bead_id: str) -> Optional[Bead]:
        """Return the bead with this ID, or None if absent."""
        with self._lock.read_lock():
            return self.beads.get(bead_id)

    def _resolve(self, ids: List[str]) -> List[Bead]:
        return [self.beads[i] for i in ids if i in self.beads]

    def _parent(self, bead: Bead) -> Optional[Bead]:
        if not bead.parent_id:
            return None
        parent = self.beads.get(bead.parent_id)
        return parent if parent is not bead else None

    def parent_of(self, bead_id: str) -> Optional[Bead]:
        with self._lock.read_lock():
            bead = self.beads.get(bead_id)
            return self._parent(bead) if bead else None

    def children_of(self, bead_id: str) -> List[Bead]:
        with self._lock.read_lock():
            bead = self.beads.get(bead_id)
            return self._resolve(bead.child_ids) if bead else []

    def blockers_of(self, bead_id: str) -> List[Bead]:
        with self._lock.read_lock():
            bead = self.beads.get(bead_id)
            return self._resolve(bead.resolved_blocker_ids) if bead else []

    def blocked_by(self, bead_id: str) -> List[Bead]:
        """Beads that the given bead blocks."""
        with self._lock.read_lock():
            bead = self.beads.get(bead_id)
            return self._resolve(bead.blocked_ids) if bead else []

    def _is_ready(self, bead: Bead, now: datetime) -> bool:
        return bead.is_ready(self._resolve(bead.resolved_blocker_ids), now=now)

    def is_ready(self, bead: Union[str, Bead], now: Optional[datetime] = None) -> bool:
        """Readiness against the live status of the bead's blockers."""
        with self._lock.read_lock():
            if isinstance(bead, str):
                found = self.beads.get(bead)
                if found is None:
                    return False
                bead = found
            return self._is_ready(bead, now or utcnow())

    def get_detail(self, bead_id: str) -> Optional[BeadDetail]:
        """Return a bead with its parent, children, blockers and blocked beads."""
        with self._lock.read_lock():
            bead = self.beads.get(bead_id)
            if bead is None:
                return None
            return BeadDetail(
                bead=bead,
                parent=self._parent(bead),
                children=self._resolve(bead.child_ids),
                blockers=self._resolve(bead.resolved_blocker_ids),
                blocked=self._resolve(bead.blocked_ids),
            )

    # Filtering

    def _matches(self, bead: Bead, flt: BeadFilter, now: datetime) -> bool:
        if flt.statuses and bead.status.value not in flt.statuses:
            return False
        if flt.types and bead.issue_type.value not in flt.types:
            return False
        if flt.priorities and bead.priority not in flt.priorities:
            return False
        if flt.labels and not all(label in bead.labels for label in flt.labels):
            return False
        if flt.search:
            needle = flt.search.lower()
            if not (
                needle in bead.id.lower()
                or needle in bead.title.lower()
                or needle in bead.description.lower()
            ):
                return False
        if flt.ready and not self._is_ready(bead, now):
            return False
        return True

    def query(self, flt: Optional[BeadFilter] = None, now: Optional[datetime] = None) -> Tuple[List[Bead], int]:
        """
        Filter, sort and paginate beads.

        Args:
            flt: Filter options (None matches everything)
            now: Reference time for the readiness check

        Returns:
            (page, total) where total counts matches before pagination
        """
        flt = flt or BeadFilter()
        now = now or utcnow()
        with self._lock.read_lock():
            matches = [bead for bead in self.beads.values() if self._matches(bead, flt, now)]

        matches.sort(key=_sort_key)
        total = len(matches)

        offset = max(flt.offset, 0)
        page = matches[offset:]
        if flt.limit > 0:
            page = page[: flt.limit]
        return page, total

    def get_beads(self, flt: Optional[BeadFilter] = None) -> List[Bead]:
        return self.query(flt)[0]

    # Aggregates

    def get_stats(self, now: Optional[datetime] = None) -> Stats:
        """Compute aggregate statistics in a single pass over the graph."""
        now = now or utcnow()
        window_start = now - STALE_WINDOW
        stats = Stats()

        with self._lock.read_lock():
            stats.total = len(self.beads)
            for bead in self.beads.values():
                status = bead.status.value
                stats.by_status[status] = stats.by_status.get(status, 0) + 1
                bead_type = bead.issue_type.value
                stats.by_type[bead_type] = stats.by_type.get(bead_type, 0) + 1
                bucket = priority_label(bead.priority)
                stats.by_priority[bucket] = stats.by_priority.get(bucket, 0) + 1

                blockers = self._resolve(bead.resolved_blocker_ids)
                if bead.status != Status.CLOSED and any(not b.is_closed() for b in blockers):
                    stats.blocked += 1

                if bead.is_ready(blockers, now=now):
                    stats.ready += 1
                if bead.is_stale(now=now):
                    stats.stale += 1

                if bead.created_at and bead.created_at > window_start:
                    stats.velocity.created_7d += 1
                if bead.closed_at and bead.closed_at > window_start:
                    stats.velocity.closed_7d += 1

        return stats

    def get_epics(self) -> List[EpicProgress]:
        """Epics with counts over their direct children (not recursive)."""
        with self._lock.read_lock():
            epics = []
            for bead in self.beads.values():
                if bead.issue_type != BeadType.EPIC:
                    continue
                children = self._resolve(bead.child_ids)
                epics.append(
                    EpicProgress(
                        bead=bead,
                        total_children=len(children),
                        closed_children=sum(1 for c in children if c.status == Status.CLOSED),
                    )
                )
        epics.sort(key=lambda e: _sort_key(e.bead))
        return epics

    def index_sizes(self) -> Dict[str, Dict[str, int]]:
        """Bucket sizes of every secondary index."""
        with self._lock.read_lock():
            return {
                "status": {k.value: len(v) for k, v in self.by_status.items()},
                "type": {k.value: len(v) for k, v in self.by_type.items()},
                "priority": {str(k): len(v) for k, v in self.by_priority.items()},
                "label": {k: len(v) for k, v in self.by_label.items()},
            }

    def health(self) -> dict:
        """Basic liveness info; exposes only the source basename."""
        with self._lock.read_lock():
            return {
                "status": "ok",
                "beadsFile": os.path.basename(self.source_path),
                "lastUpdated": self.last_updated.isoformat() if self.last_updated else None,
                "totalBeads": len(self.beads),
                "generation": self.generation,
            }


def build_graph(result: ParseResult) -> BeadsGraph:
    """
    Build a graph from an already-parsed source.

    Args:
        result: Output of one of the parsers

    Returns:
        BeadsGraph whose rebuilds re-read ``result.source_path``
    """
    graph = BeadsGraph(source_path=result.source_path, source_format=result.source_format)
    graph.apply(result)
    return graph


def load(source_path: str, source_format: Optional[SourceFormat] = None) -> BeadsGraph:
    """
    Initial synchronous ingestion of a beads source.

    Args:
        source_path: Path to ``beads.jsonl`` or ``beads.db``
        source_format: Encoding; derived from the file name when None

    Returns:
        Fully built BeadsGraph

    Raises:
        SourceError: If the source cannot be read at all
    """
    source_format = SourceFormat(source_format) if source_format else detect_source_format(source_path)
    result = parse_source(source_path, source_format)
    graph = build_graph(result)
    logger.info(
        f"[Graph] Loaded {len(graph.beads)} beads from {source_path} "
        f"({len(graph.root_beads)} roots, {len(result.errors)} diagnostics)"
    )
    return graph
