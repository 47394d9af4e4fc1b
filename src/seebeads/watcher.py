"""Change watcher: keeps a BeadsGraph in sync with its source file.

The parent directory is watched rather than the file itself, since the
usual safe-write pattern (write a temp file, rename it over the target)
replaces the inode and would silently end a file-level watch. Events for
other files in the directory are ignored.

States:
- IDLE: no change pending
- DEBOUNCING: a change arrived, waiting for the debounce window to pass
  with no further changes
- RECONCILING: rebuilding the graph

Every relevant event (re)arms one debounce timer. When the timer elapses the
graph is rebuilt; on success ``on_change`` fires, on failure the error is
logged and watching continues with the previous graph.

The loop is a single thread doing one multiplexed wait on its inbox
(filesystem events and the stop signal) with the pending timer as timeout.
"""

import logging
import os
import queue
import threading
import time
from enum import Enum
from typing import Callable, Optional

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .exceptions import SourceError, WatcherError

logger = logging.getLogger(__name__)

INTERACTIVE_DEBOUNCE_SECONDS = 0.1
AGENT_DEBOUNCE_SECONDS = 2.0

RELEVANT_EVENT_TYPES = (EVENT_TYPE_CREATED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED)

_CHANGED = "changed"
_STOP = "stop"


class WatchMode(str, Enum):
    """Debounce operating point."""

    INTERACTIVE = "interactive"  # short window, responsive UI
    AGENT = "agent"  # long window, absorbs bursts of automated writes


class WatcherState(Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    RECONCILING = "reconciling"
    STOPPED = "stopped"


class _SourceEventHandler(FileSystemEventHandler):
    """Forwards create/modify/rename events that touch the source file."""

    def __init__(self, file_name: str, notify: Callable[[], None]):
        super().__init__()
        self.file_name = file_name
        self._notify = notify

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in RELEVANT_EVENT_TYPES:
            return
        paths = [event.src_path, getattr(event, "dest_path", "")]
        if any(p and os.path.basename(os.fsdecode(p)) == self.file_name for p in paths):
            logger.debug(f"[Watcher] File event: {event.event_type} {os.fsdecode(event.src_path)}")
            self._notify()


class ChangeWatcher:
    """Debounced watcher that rebuilds a graph when its source changes.

    Example:
        >>> watcher = ChangeWatcher(".beads/beads.jsonl", graph, on_change=publish_update)
        >>> watcher.start()
        >>> watcher.set_mode(WatchMode.AGENT)
        >>> watcher.stop()

    Attributes:
        source_path: Absolute path of the watched source file
        graph: Object with a ``rebuild()`` method (normally a BeadsGraph)
        on_change: Called after each successful rebuild
        rebuild_count: Successful rebuilds so far
        failure_count: Failed rebuilds so far
    """

    def __init__(
        self,
        source_path: str,
        graph,
        mode: WatchMode = WatchMode.INTERACTIVE,
        on_change: Optional[Callable[[], None]] = None,
        interactive_debounce: float = INTERACTIVE_DEBOUNCE_SECONDS,
        agent_debounce: float = AGENT_DEBOUNCE_SECONDS,
    ):
        self.source_path = os.path.abspath(source_path)
        self.file_name = os.path.basename(self.source_path)
        self.dir_path = os.path.dirname(self.source_path)
        self.graph = graph
        self.on_change = on_change

        self._intervals = {
            WatchMode.INTERACTIVE: interactive_debounce,
            WatchMode.AGENT: agent_debounce,
        }
        self._mode = WatchMode(mode)
        self._mode_lock = threading.Lock()

        self._inbox: "queue.Queue[str]" = queue.Queue()
        self._state = WatcherState.IDLE
        self._observer: Optional[Observer] = None
        self._thread: Optional[threading.Thread] = None
        self._lifecycle_lock = threading.Lock()
        self._stopped = False

        self.rebuild_count = 0
        self.failure_count = 0

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def mode(self) -> WatchMode:
        with self._mode_lock:
            return self._mode

    @property
    def debounce_seconds(self) -> float:
        with self._mode_lock:
            return self._intervals[self._mode]

    def set_mode(self, mode: WatchMode) -> None:
        """Switch debounce interval; applies from the next debounce window."""
        with self._mode_lock:
            self._mode = WatchMode(mode)
            interval = self._intervals[self._mode]
        logger.info(f"[Watcher] Mode set to {self._mode.value} (debounce {interval}s)")

    def start(self) -> None:
        """
        Begin watching the source's directory.

        Raises:
            WatcherError: If the OS watch cannot be established
        """
        with self._lifecycle_lock:
            if self._stopped:
                raise WatcherError("watcher has been stopped and cannot be restarted")
            if self._thread is not None:
                return
            if not os.path.isdir(self.dir_path):
                raise WatcherError(f"directory does not exist: {self.dir_path}")

            handler = _SourceEventHandler(self.file_name, self.notify)
            observer = Observer()
            try:
                observer.schedule(handler, self.dir_path, recursive=False)
                observer.start()
            except Exception as e:
                raise WatcherError(f"failed to watch {self.dir_path}: {e}") from e

            self._observer = observer
            self._thread = threading.Thread(target=self._run, name="seebeads-watcher", daemon=True)
            self._thread.start()

        logger.info(f"[Watcher] Watching directory: {self.dir_path} for changes to {self.file_name}")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop watching. Idempotent; no callbacks fire after this returns."""
        with self._lifecycle_lock:
            if self._stopped:
                return
            self._stopped = True
            observer, thread = self._observer, self._thread

        if observer is not None:
            observer.stop()
        self._inbox.put(_STOP)
        if thread is not None:
            thread.join(timeout)
        if observer is not None:
            observer.join(timeout)

        self._state = WatcherState.STOPPED
        logger.info("[Watcher] Stopped")

    def notify(self) -> None:
        """Record one relevant change to the source file."""
        self._inbox.put(_CHANGED)

    def _run(self) -> None:
        deadline: Optional[float] = None
        while True:
            timeout = None if deadline is None else max(0.0, deadline - time.monotonic())
            try:
                message = self._inbox.get(timeout=timeout)
            except queue.Empty:
                message = None

            if message == _STOP:
                break

            if message is None:
                # Debounce window elapsed with no further changes
                deadline = None
                self._reconcile()
                self._state = WatcherState.IDLE
                continue

            deadline = time.monotonic() + self.debounce_seconds
            self._state = WatcherState.DEBOUNCING

        self._state = WatcherState.STOPPED

    def _reconcile(self) -> bool:
        self._state = WatcherState.RECONCILING
        logger.info("[Watcher] File changed, reloading graph...")
        try:
            self.graph.rebuild()
        except SourceError as e:
            self.failure_count += 1
            logger.error(f"[Watcher] Error rebuilding graph: {e}")
            return False
        except Exception as e:
            self.failure_count += 1
            logger.exception(f"[Watcher] Unexpected error rebuilding graph: {e}")
            return False

        self.rebuild_count += 1
        if self._stopped:
            # stop() was called while rebuilding; stay silent
            return True
        if self.on_change is not None:
            try:
                self.on_change()
            except Exception as e:
                logger.exception(f"[Watcher] Change callback failed: {e}")
        return True


def start_watcher(
    source_path: str,
    graph,
    mode: WatchMode = WatchMode.INTERACTIVE,
    on_change: Optional[Callable[[], None]] = None,
    interactive_debounce: float = INTERACTIVE_DEBOUNCE_SECONDS,
    agent_debounce: float = AGENT_DEBOUNCE_SECONDS,
) -> ChangeWatcher:
    """
    Create and start a watcher for a graph's source.

    Raises:
        WatcherError: If the OS watch cannot be established
    """
    watcher = ChangeWatcher(
        source_path,
        graph,
        mode=mode,
        on_change=on_change,
        interactive_debounce=interactive_debounce,
        agent_debounce=agent_debounce,
    )
    watcher.start()
    return watcher
