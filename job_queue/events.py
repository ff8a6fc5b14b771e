"""
Event sinks — where the Processor sends lifecycle notifications.

The Processor only knows the EventSink protocol (dispatch(name, data)).
EventManager is the usual implementation: listeners subscribe by name
(or "*" for everything) and are called synchronously, in registration
order. A failing listener is logged and skipped; it never reaches the
code that emitted the event.
"""
from __future__ import annotations

import threading
from collections import defaultdict
from typing import Any, Callable, Mapping, Optional, Protocol, runtime_checkable

import structlog

from job_queue.errors import describe_error
from models.schemas import Event

logger = structlog.get_logger()

Listener = Callable[[Event], Any]

WILDCARD = "*"


@runtime_checkable
class EventSink(Protocol):
    def dispatch(self, name: str, data: Mapping[str, Any]) -> None:
        ...


class NullEventSink:
    """Discards every notification. Default when no sink is injected."""

    def dispatch(self, name: str, data: Mapping[str, Any]) -> None:
        return None


class RecordingEventSink:
    """Keeps (name, data) pairs in arrival order. Handy in tests and debugging sessions."""

    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []
        self._lock = threading.Lock()

    def dispatch(self, name: str, data: Mapping[str, Any]) -> None:
        with self._lock:
            self.events.append((name, dict(data)))

    @property
    def names(self) -> list[str]:
        with self._lock:
            return [name for name, _ in self.events]

    def last(self, name: str) -> Optional[dict[str, Any]]:
        with self._lock:
            snapshot = list(self.events)
        for event_name, data in reversed(snapshot):
            if event_name == name:
                return data
        return None

    def clear(self):
        with self._lock:
            self.events.clear()


class EventManager:
    """
    Name-based publish/subscribe for processor notifications.

    Usage:
        events = EventManager(prefix="Processor")
        events.on("message.exception", lambda e: metrics.incr("jobs.failed"))
        processor = Processor(events=events)

    With a prefix, listeners may subscribe either to the short name
    ("message.seen") or to the full one ("Processor.message.seen").
    """

    def __init__(self, prefix: str = "", subject: Any = None):
        self.prefix = prefix.rstrip(".")
        self.subject = subject
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self._lock = threading.Lock()

    def full_name(self, name: str) -> str:
        if not self.prefix or name.startswith(self.prefix + "."):
            return name
        return f"{self.prefix}.{name}"

    # ── Subscription ──────────────────────────────────

    def on(self, name: str, listener: Listener) -> Listener:
        """Subscribe listener to name. Returns listener so it can be used as a decorator target."""
        with self._lock:
            self._listeners[self.full_name(name) if name != WILDCARD else name].append(listener)
        return listener

    def off(self, name: str, listener: Optional[Listener] = None):
        """Remove one listener, or all listeners for name when listener is None."""
        key = self.full_name(name) if name != WILDCARD else name
        with self._lock:
            if listener is None:
                self._listeners.pop(key, None)
            elif listener in self._listeners.get(key, []):
                self._listeners[key].remove(listener)

    def listeners(self, name: str) -> list[Listener]:
        key = self.full_name(name)
        with self._lock:
            return list(self._listeners.get(key, [])) + list(self._listeners.get(WILDCARD, []))

    # ── Dispatch ──────────────────────────────────────

    def dispatch(self, name: str, data: Mapping[str, Any]) -> None:
        event = Event(name=self.full_name(name), subject=self.subject, data=dict(data))
        for listener in self.listeners(name):
            try:
                listener(event)
            except Exception as e:
                logger.error("event_listener_error",
                             event_name=event.name,
                             listener=getattr(listener, "__qualname__", repr(listener)),
                             error=describe_error(e),
                             exc_info=True)
