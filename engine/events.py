"""
Outbound event channel.

The engine and scheduler write typed events here; transport (websocket,
queue, log file) belongs to whoever registers a sink.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ArenaEvent:
    kind: str
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utc_now)

    def to_json(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


class EventSink(Protocol):
    def publish(self, event: ArenaEvent) -> None: ...


class EventChannel:
    """Fan-out to registered sinks. A failing sink never reaches the producer."""

    def __init__(self, sinks: Optional[List[EventSink]] = None) -> None:
        self._sinks: List[EventSink] = list(sinks or [])

    def subscribe(self, sink: EventSink) -> None:
        self._sinks.append(sink)

    def unsubscribe(self, sink: EventSink) -> None:
        if sink in self._sinks:
            self._sinks.remove(sink)

    def emit(self, kind: str, **payload: Any) -> ArenaEvent:
        event = ArenaEvent(kind=kind, payload=payload)
        for sink in list(self._sinks):
            try:
                sink.publish(event)
            except Exception:
                logger.exception("Event sink %r failed on %s", sink, kind)
        return event


class MemorySink:
    def __init__(self) -> None:
        self.events: List[ArenaEvent] = []

    def publish(self, event: ArenaEvent) -> None:
        self.events.append(event)

    def kinds(self) -> List[str]:
        return [e.kind for e in self.events]

    def of_kind(self, kind: str) -> List[ArenaEvent]:
        return [e for e in self.events if e.kind == kind]


class LoggingSink:
    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self.log = log or logging.getLogger("arena.events")

    def publish(self, event: ArenaEvent) -> None:
        self.log.info("%s %s", event.kind, event.payload)
