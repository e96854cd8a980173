"""
Codex Event Infrastructure

Typed notifications emitted by the ledger for out-of-band indexing.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        EVENT INFRASTRUCTURE                          │
    │                                                                      │
    │  Event Bus               Event Log                                   │
    │  ├─ Typed events         ├─ Append-only                              │
    │  ├─ Priorities/filters   ├─ Sequence numbers                         │
    │  └─ Error isolation      └─ Resume from position                     │
    │                                                                      │
    │  Ledger Events                     Governance Events                 │
    │  ├─ EntryArchived                  ├─ CuratorTransferInitiated       │
    │  └─ EntryDeprecated                └─ CuratorTransferAccepted        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Design Principles
─────────────────

    Immutable Events: Events are facts about committed state changes.
    They are published only after the change is applied.

    Isolation: A failing handler never fails or rolls back the mutation
    that produced the event.

    Ordering: Events are delivered and logged in commit order.

Usage
─────

    from codex.events import EntryArchived, EventBus

    bus = EventBus()

    @bus.subscribe(EntryArchived)
    def index_entry(event: EntryArchived):
        print(f"entry {event.index} v{event.version_index}")

    ledger = Ledger(curator, event_bus=bus)

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Type

from codex.core import canonical_json_bytes
from codex.observability import correlation_id_var

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════
# EVENT BASE
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class Event:
    """
    Base class for all codex events.

    Each event has a unique ID, a UTC timestamp, and the correlation id that
    was active when it was created.
    """

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    correlation_id: Optional[str] = field(default_factory=lambda: correlation_id_var.get() or None)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def event_type(self) -> str:
        """Get the event type name."""
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        """Serialize event to dictionary."""
        data = asdict(self)
        data["event_type"] = self.event_type
        return data

    def to_json(self) -> str:
        """Serialize event to JSON for display/transport (not for digest computation)."""
        return json.dumps(self.to_dict(), default=str, sort_keys=True)

    def digest(self) -> str:
        """Compute deterministic digest of event content using canonical JSON."""
        return hashlib.sha256(canonical_json_bytes(self.to_dict())).hexdigest()


# ════════════════════════════════════════════════════════════════════════════
# DOMAIN EVENTS
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class EntryArchived(Event):
    """Emitted when a new entry is appended to the ledger."""
    index: int = 0
    version_index: int = 0


@dataclass
class EntryDeprecated(Event):
    """Emitted when an entry is superseded by a newer version."""
    index: int = 0


@dataclass
class CuratorTransferInitiated(Event):
    """Emitted when the curator nominates a successor."""
    previous_curator: str = ""
    nominee: str = ""


@dataclass
class CuratorTransferAccepted(Event):
    """Emitted when the nominee accepts and becomes curator."""
    previous_curator: str = ""
    new_curator: str = ""


# ════════════════════════════════════════════════════════════════════════════
# EVENT HANDLERS
# ════════════════════════════════════════════════════════════════════════════


EventHandler = Callable[[Event], None]


@dataclass
class EventHandlerRegistration:
    """Registration for an event handler."""
    handler: EventHandler
    event_types: Set[Type[Event]]
    priority: int = 0
    filter_func: Optional[Callable[[Event], bool]] = None


class EventHandlerError(Exception):
    """Error during event handling."""
    def __init__(self, event: Event, handler: EventHandler, cause: Exception):
        self.event = event
        self.handler = handler
        self.cause = cause
        name = getattr(handler, "__name__", repr(handler))
        super().__init__(f"Handler {name} failed for {event.event_type}: {cause}")


# ════════════════════════════════════════════════════════════════════════════
# EVENT BUS
# ════════════════════════════════════════════════════════════════════════════


class EventBus:
    """
    In-memory synchronous event bus.

    Supports typed subscriptions, filters and priorities.
    Thread-safe for concurrent publishing and subscribing.

    Example:
        bus = EventBus()

        @bus.subscribe(EntryArchived, EntryDeprecated)
        def handle_entry_events(event):
            print(f"Entry event: {event.event_type}")
    """

    def __init__(self, on_error: Optional[Callable[[EventHandlerError], None]] = None):
        self._handlers: List[EventHandlerRegistration] = []
        self._lock = threading.RLock()
        self._on_error = on_error
        self._published_count = 0
        self._handled_count = 0
        self._error_count = 0

    def subscribe(
        self,
        *event_types: Type[Event],
        priority: int = 0,
        filter_func: Optional[Callable[[Event], bool]] = None,
    ) -> Callable[[EventHandler], EventHandler]:
        """
        Decorator to subscribe a handler to event types.

        Args:
            event_types: Event types to subscribe to (none = all events)
            priority: Handler priority (higher = earlier)
            filter_func: Optional filter function
        """
        def decorator(handler: EventHandler) -> EventHandler:
            registration = EventHandlerRegistration(
                handler=handler,
                event_types=set(event_types) if event_types else {Event},
                priority=priority,
                filter_func=filter_func,
            )
            with self._lock:
                self._handlers.append(registration)
                self._handlers.sort(key=lambda r: -r.priority)
            return handler
        return decorator

    def unsubscribe(self, handler: EventHandler) -> bool:
        """Unsubscribe a handler."""
        with self._lock:
            original_len = len(self._handlers)
            self._handlers = [r for r in self._handlers if r.handler != handler]
            return len(self._handlers) < original_len

    def publish(self, event: Event) -> None:
        """Publish an event to all matching subscribers in priority order."""
        with self._lock:
            self._published_count += 1
            handlers_to_call = [
                r for r in self._handlers
                if any(isinstance(event, t) for t in r.event_types)
                and (r.filter_func is None or r.filter_func(event))
            ]

        for registration in handlers_to_call:
            self._call_handler(registration.handler, event)

    def _call_handler(self, handler: EventHandler, event: Event) -> None:
        """Call a handler, isolating its failure from the publisher."""
        try:
            handler(event)
            with self._lock:
                self._handled_count += 1
        except Exception as e:
            with self._lock:
                self._error_count += 1
            error = EventHandlerError(event, handler, e)
            logger.error("%s", error, exc_info=True)
            if self._on_error:
                self._on_error(error)

    @property
    def metrics(self) -> Dict[str, int]:
        """Get event bus metrics."""
        with self._lock:
            return {
                "published_count": self._published_count,
                "handled_count": self._handled_count,
                "error_count": self._error_count,
                "handler_count": len(self._handlers),
            }


# ════════════════════════════════════════════════════════════════════════════
# EVENT LOG
# ════════════════════════════════════════════════════════════════════════════


@dataclass
class EventRecord:
    """A logged event with its global position."""
    sequence_number: int
    event: Event
    recorded_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "sequence_number": self.sequence_number,
            "event": self.event.to_dict(),
            "recorded_at": self.recorded_at,
        }


class EventLog:
    """
    Append-only log of every event a ledger emitted.

    An indexer remembers the last sequence number it processed and resumes
    with ``read_all(from_position=last)``.

    Example:
        log = EventLog()
        log.attach(bus)
        ...
        for record in log.read_all(from_position=10):
            reindex(record.event)
    """

    def __init__(self):
        self._records: List[EventRecord] = []
        self._lock = threading.RLock()

    def append(self, event: Event) -> EventRecord:
        with self._lock:
            record = EventRecord(sequence_number=len(self._records) + 1, event=event)
            self._records.append(record)
            return record

    def attach(self, bus: EventBus, priority: int = 1000) -> None:
        """Record every event published on ``bus`` before other handlers run."""
        bus.subscribe(priority=priority)(self.append)

    def read_all(self, from_position: int = 0, max_count: int = 1000) -> List[EventRecord]:
        """Read records after ``from_position`` (a sequence number, 0 = start)."""
        with self._lock:
            return self._records[from_position:from_position + max_count]

    @property
    def current_position(self) -> int:
        """Sequence number of the last record."""
        with self._lock:
            return len(self._records)


__all__ = [
    "Event",
    "EntryArchived",
    "EntryDeprecated",
    "CuratorTransferInitiated",
    "CuratorTransferAccepted",
    "EventHandler",
    "EventHandlerRegistration",
    "EventHandlerError",
    "EventBus",
    "EventRecord",
    "EventLog",
]
