"""seebeads - live, queryable view of a Beads issue log.

    >>> from seebeads import load, start_watcher, NotificationHub
    >>> graph = load(".beads/beads.jsonl")
    >>> page, total = graph.query(BeadFilter(statuses=["open"], limit=20))
"""

from .bead_schemas import (
    Bead,
    BeadFilter,
    BeadType,
    Dependency,
    DependencyType,
    EpicProgress,
    ParseError,
    ParseResult,
    SourceFormat,
    Stats,
    Status,
)
from .events import EventKind, HubEvent, NotificationHub, Subscriber
from .exceptions import NoTableFoundError, SeeBeadsError, SourceError, WatcherError
from .graph import BeadsGraph, build_graph, load
from .watcher import ChangeWatcher, WatchMode, WatcherState, start_watcher

__version__ = "0.3.0"

__all__ = [
    "Bead",
    "BeadFilter",
    "BeadType",
    "BeadsGraph",
    "ChangeWatcher",
    "Dependency",
    "DependencyType",
    "EpicProgress",
    "EventKind",
    "HubEvent",
    "NoTableFoundError",
    "NotificationHub",
    "ParseError",
    "ParseResult",
    "SeeBeadsError",
    "SourceError",
    "SourceFormat",
    "Stats",
    "Status",
    "Subscriber",
    "WatchMode",
    "WatcherError",
    "WatcherState",
    "build_graph",
    "load",
    "start_watcher",
]
