"""Notification hub: single-writer, many-reader fan-out of graph events.

A single coordinating thread owns the subscriber registry and processes, in
arrival order, registrations, deregistrations and broadcast requests, plus a
periodic heartbeat. Nothing else touches the registry.

Delivery never blocks a producer:
- ``publish`` enqueues onto a bounded inbound buffer; when it is full the
  event is dropped and logged
- fan-out does a non-blocking put onto each subscriber's bounded queue; a
  subscriber whose queue is full misses that event, others still get it
"""

import itertools
import logging
import queue
import threading
import time
from collections import deque
from typing import Deque, Dict, Iterator, Optional, Tuple

from .event_types import HubEvent

logger = logging.getLogger(__name__)

DEFAULT_HEARTBEAT_INTERVAL = 30.0
DEFAULT_SUBSCRIBER_BUFFER = 64
DEFAULT_BROADCAST_BUFFER = 256

_POLL_INTERVAL = 0.25

_REGISTER = "register"
_UNREGISTER = "unregister"
_BROADCAST = "broadcast"


class Subscriber:
    """One connected consumer and its bounded outbound queue.

    Attributes:
        subscriber_id: Opaque per-connection identifier
        dropped: Events skipped because the queue was full
    """

    def __init__(self, subscriber_id: str, buffer_size: int = DEFAULT_SUBSCRIBER_BUFFER):
        self.subscriber_id = subscriber_id
        self._queue: "queue.Queue[HubEvent]" = queue.Queue(maxsize=buffer_size)
        self._closed = threading.Event()
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def offer(self, event: HubEvent) -> bool:
        """Non-blocking enqueue. Returns False if the event was dropped."""
        if self._closed.is_set():
            return False
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            self.dropped += 1
            return False
        return True

    def close(self) -> None:
        self._closed.set()

    def get(self, timeout: Optional[float] = None) -> Optional[HubEvent]:
        """
        Wait for the next event.

        Args:
            timeout: Seconds to wait; None waits until an event arrives or
                the subscriber is closed

        Returns:
            The next event, or None on timeout or once closed and drained
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if self._closed.is_set() and self._queue.empty():
                return None
            wait = _POLL_INTERVAL
            if deadline is not None:
                wait = min(wait, deadline - time.monotonic())
                if wait <= 0:
                    return None
            try:
                return self._queue.get(timeout=wait)
            except queue.Empty:
                continue

    def events(self, cancel: Optional[threading.Event] = None) -> Iterator[HubEvent]:
        """Yield events until closed and drained, or until ``cancel`` is set."""
        while cancel is None or not cancel.is_set():
            event = self.get(timeout=_POLL_INTERVAL)
            if event is not None:
                yield event
            elif self.closed:
                return


class NotificationHub:
    """Broadcast channel from the graph to live subscribers.

    Example:
        >>> hub = NotificationHub()
        >>> hub.start()
        >>> sub_id, subscriber = hub.subscribe()
        >>> hub.publish(HubEvent.update({"total": 3}))
        >>> subscriber.get(timeout=1.0)
        >>> hub.unsubscribe(sub_id)
        >>> hub.stop()
    """

    def __init__(
        self,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
        subscriber_buffer: int = DEFAULT_SUBSCRIBER_BUFFER,
        broadcast_buffer: int = DEFAULT_BROADCAST_BUFFER,
    ) -> None:
        self.heartbeat_interval = heartbeat_interval
        self.subscriber_buffer = subscriber_buffer
        self.broadcast_buffer = broadcast_buffer

        self._cond = threading.Condition()
        self._inbox: Deque[Tuple[str, object]] = deque()
        self._pending_broadcasts = 0
        self._stopping = False
        self._thread: Optional[threading.Thread] = None
        self._ids = itertools.count(1)

        # Owned by the hub thread
        self._subscribers: Dict[str, Subscriber] = {}

        self.dropped_broadcasts = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def start(self) -> None:
        """Start the hub thread. No-op if already running."""
        with self._cond:
            if self._thread is not None:
                return
            self._stopping = False
            self._thread = threading.Thread(target=self._run, name="seebeads-hub", daemon=True)
            self._thread.start()
        logger.info(f"[Hub] Started (heartbeat every {self.heartbeat_interval}s)")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the hub thread and close every subscriber. Safe to call twice."""
        with self._cond:
            thread = self._thread
            if thread is None:
                return
            self._stopping = True
            self._cond.notify_all()
        thread.join(timeout)
        with self._cond:
            self._thread = None
        logger.info("[Hub] Stopped")

    def subscribe(self) -> Tuple[str, Subscriber]:
        """Register a new subscriber.

        Returns:
            (subscriber_id, subscriber); read events from the subscriber
        """
        subscriber = Subscriber(f"sub_{next(self._ids)}", self.subscriber_buffer)
        with self._cond:
            if self._thread is None or self._stopping:
                # No loop will ever register it
                subscriber.close()
                return subscriber.subscriber_id, subscriber
            self._inbox.append((_REGISTER, subscriber))
            self._cond.notify()
        return subscriber.subscriber_id, subscriber

    def unsubscribe(self, subscriber_id: str) -> None:
        """Deregister and close a subscriber. Unknown IDs are ignored."""
        self._submit(_UNREGISTER, subscriber_id)

    def publish(self, event: HubEvent) -> bool:
        """
        Queue an event for every subscriber without blocking.

        Returns:
            False if the inbound buffer was full and the event was dropped
        """
        with self._cond:
            if self._pending_broadcasts >= self.broadcast_buffer:
                self.dropped_broadcasts += 1
                logger.warning(f"[Hub] Broadcast buffer full, dropping {event.kind.value} event")
                return False
            self._pending_broadcasts += 1
            self._inbox.append((_BROADCAST, event))
            self._cond.notify()
        return True

    def _submit(self, kind: str, payload: object) -> None:
        with self._cond:
            self._inbox.append((kind, payload))
            self._cond.notify()

    def _run(self) -> None:
        next_heartbeat = time.monotonic() + self.heartbeat_interval
        while True:
            with self._cond:
                while not (self._stopping or self._inbox):
                    remaining = next_heartbeat - time.monotonic()
                    if remaining <= 0:
                        break
                    self._cond.wait(remaining)
                if self._stopping:
                    break
                batch = list(self._inbox)
                self._inbox.clear()
                self._pending_broadcasts = 0

            for kind, payload in batch:
                if kind == _REGISTER:
                    self._register(payload)
                elif kind == _UNREGISTER:
                    self._unregister(payload)
                else:
                    self._fan_out(payload)

            if time.monotonic() >= next_heartbeat:
                self._fan_out(HubEvent.heartbeat())
                next_heartbeat = time.monotonic() + self.heartbeat_interval

        with self._cond:
            late = [payload for kind, payload in self._inbox if kind == _REGISTER]
            self._inbox.clear()
            self._pending_broadcasts = 0
        for subscriber in list(self._subscribers.values()) + late:
            subscriber.close()
        self._subscribers.clear()

    def _register(self, subscriber: Subscriber) -> None:
        self._subscribers[subscriber.subscriber_id] = subscriber
        logger.info(
            f"[Hub] Subscriber connected: {subscriber.subscriber_id} "
            f"(total: {len(self._subscribers)})"
        )

    def _unregister(self, subscriber_id: str) -> None:
        subscriber = self._subscribers.pop(subscriber_id, None)
        if subscriber is None:
            return
        subscriber.close()
        logger.info(
            f"[Hub] Subscriber disconnected: {subscriber_id} (total: {len(self._subscribers)})"
        )

    def _fan_out(self, event: HubEvent) -> None:
        for subscriber in self._subscribers.values():
            if not subscriber.offer(event):
                logger.debug(
                    f"[Hub] Subscriber {subscriber.subscriber_id} queue full, "
                    f"skipped {event.kind.value} event"
                )
