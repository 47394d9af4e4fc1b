"""Live change notifications for seebeads.

The hub fans graph-change and heartbeat events out to any number of
subscribers (one per SSE connection in the HTTP layer).

Quick Start:
    >>> from seebeads.events import NotificationHub, HubEvent
    >>> hub = NotificationHub()
    >>> hub.start()
    >>> sub_id, subscriber = hub.subscribe()
    >>> hub.publish(HubEvent.update(graph.get_stats().model_dump(by_alias=True)))
    >>> for event in subscriber.events(cancel):
    ...     send(event.to_sse())
"""

from .event_types import EventKind, HubEvent
from .hub import NotificationHub, Subscriber

__all__ = [
    "EventKind",
    "HubEvent",
    "NotificationHub",
    "Subscriber",
]
