"""Event types carried by the notification hub."""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class EventKind(str, Enum):
    """Discriminator of a hub event."""

    INIT = "init"
    UPDATE = "update"
    HEARTBEAT = "heartbeat"

    @classmethod
    def from_string(cls, value: str) -> "EventKind":
        """Look up an event kind by its wire value.

        Raises:
            ValueError: If the value is not a known kind
        """
        for kind in cls:
            if kind.value == value:
                return kind
        raise ValueError(f"Unknown event kind: {value}")


@dataclass
class HubEvent:
    """A change or liveness notification for subscribers.

    Attributes:
        kind: What happened
        data: JSON-serializable payload (stats snapshot, or a timestamp)
    """

    kind: EventKind
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def init(cls, stats: Dict[str, Any]) -> "HubEvent":
        return cls(EventKind.INIT, {"stats": stats})

    @classmethod
    def update(cls, stats: Dict[str, Any]) -> "HubEvent":
        return cls(EventKind.UPDATE, {"stats": stats})

    @classmethod
    def heartbeat(cls, now: Optional[datetime] = None) -> "HubEvent":
        now = now or datetime.now(timezone.utc)
        return cls(EventKind.HEARTBEAT, {"timestamp": now.isoformat()})

    def to_sse(self) -> str:
        """Render as one Server-Sent Events frame."""
        return f"event: {self.kind.value}\ndata: {json.dumps(self.data, default=str)}\n\n"
