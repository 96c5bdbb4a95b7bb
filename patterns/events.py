# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Reverie Event Bus — decoupled pub/sub for pattern-engine notifications.

Aggregators emit what they did; anything interested subscribes without
the aggregators knowing about it:

    from patterns.events import bus, Events

    bus.on(Events.CYCLE_CREATED, my_handler)
    bus.emit(Events.CYCLE_CREATED, {"user_id": "u1", "cycle_id": "..."})

Handlers run inline, in subscription order. Handler errors are logged
and never reach the emitter.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger("reverie.events")

# Recursion safety — max emit depth before refusing
_MAX_EMIT_DEPTH = 3


# ============================================================================
# EVENT TYPES
# ============================================================================

class Events:
    """Registry of all event types. Use these constants, not raw strings."""

    # --- Analysis ---
    DREAM_ANALYZED = "dream_analyzed"
    CLASSIFIER_FALLBACK = "classifier_fallback"
    COLLABORATOR_UNAVAILABLE = "collaborator_unavailable"

    # --- Aggregation ---
    THEME_RECORDED = "theme_recorded"
    THEME_DROPPED = "theme_dropped"
    NIGHTMARE_RECORDED = "nightmare_recorded"
    CYCLE_CREATED = "cycle_created"
    CYCLE_MATCHED = "cycle_matched"
    AGGREGATION_FAILED = "aggregation_failed"

    # --- Settings ---
    SETTINGS_UPDATED = "settings_updated"


@dataclass
class Event:
    """A single emitted event."""
    type: str
    data: Dict[str, Any]
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    source: Optional[str] = None  # module that emitted


# ============================================================================
# EVENT BUS
# ============================================================================

class EventBus:
    """Pub/sub with bounded history. Thread-safe via lock."""

    def __init__(self, history_size: int = 100):
        self._subscribers: Dict[str, List[Callable[[Event], Any]]] = {}
        self._history: List[Event] = []
        self._history_size = history_size
        self._lock = threading.Lock()
        self._local = threading.local()  # per-thread emit depth

    def on(self, event_type: str, callback: Callable[[Event], Any]) -> None:
        """Subscribe a callback."""
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(callback)

    def off(self, event_type: str, callback: Callable) -> bool:
        """Unsubscribe a callback. Returns True if found and removed."""
        with self._lock:
            subs = self._subscribers.get(event_type)
            if not subs:
                return False
            kept = [cb for cb in subs if cb is not callback]
            self._subscribers[event_type] = kept
            return len(kept) < len(subs)

    def emit(
        self,
        event_type: str,
        data: Optional[Dict[str, Any]] = None,
        source: Optional[str] = None,
    ) -> Event:
        """Record the event and call its subscribers inline."""
        event = Event(type=event_type, data=data or {}, source=source)

        depth = getattr(self._local, "depth", 0) + 1
        self._local.depth = depth
        try:
            if depth > _MAX_EMIT_DEPTH:
                logger.warning("Event recursion depth exceeded for %s, skipping", event_type)
                return event

            with self._lock:
                self._history.append(event)
                if len(self._history) > self._history_size:
                    self._history = self._history[-self._history_size:]
                subs = list(self._subscribers.get(event_type, []))

            for callback in subs:
                try:
                    callback(event)
                except Exception as e:
                    logger.error("Event handler error: %s -> %s: %s",
                                 event_type, getattr(callback, "__name__", "?"), e)
            return event
        finally:
            self._local.depth = depth - 1

    def history(self, event_type: Optional[str] = None, limit: int = 20) -> List[Dict[str, Any]]:
        """Recent events, oldest first."""
        with self._lock:
            events = self._history
            if event_type:
                events = [e for e in events if e.type == event_type]
            return [
                {"type": e.type, "data": e.data, "timestamp": e.timestamp, "source": e.source}
                for e in events[-limit:]
            ]

    def reset(self) -> None:
        """Clear all subscribers and history. For testing."""
        with self._lock:
            self._subscribers.clear()
            self._history.clear()


# ============================================================================
# SINGLETON — the global event bus
# ============================================================================

bus = EventBus()
