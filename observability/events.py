"""
Structured event emission.

Every event is one JSON line with a fixed envelope

    ts, session_id, component, event_type, severity, correlation_id, pii

followed by event-specific fields. Lines go to stdout for log shipping and
into the in-memory event store for the control read API.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, TextIO

from .event_store import EventStore, event_store


class Component(str, Enum):
    GATEWAY = "gateway"
    TURN_PIPELINE = "turn_pipeline"


class Severity(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


NO_PII = {"contains_pii": False, "fields": [], "handling": "none"}
# Turn events are keyed by the caller's phone number
CALLER_PII = {"contains_pii": True, "fields": ["session_id"], "handling": "restricted"}


def build_event(
    component: Component,
    event_type: str,
    session_id: str,
    severity: Severity = Severity.INFO,
    correlation_id: Optional[str] = None,
    pii: Optional[Dict[str, Any]] = None,
    fields: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Envelope plus fields; fields set to None are left out."""
    event: Dict[str, Any] = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "session_id": session_id,
        "component": component.value,
        "event_type": event_type,
        "severity": severity.value,
        "correlation_id": correlation_id or session_id,
        "pii": dict(pii or NO_PII),
    }
    for key, value in (fields or {}).items():
        if value is not None:
            event[key] = value
    return event


class EventEmitter:
    def __init__(
        self,
        component: Component,
        store: Optional[EventStore] = None,
        stream: Optional[TextIO] = None,
    ):
        self.component = component
        self._store = store
        self._stream = stream

    def emit(
        self,
        event_type: str,
        session_id: str,
        severity: Severity = Severity.INFO,
        correlation_id: Optional[str] = None,
        pii: Optional[Dict[str, Any]] = None,
        **fields: Any,
    ) -> Dict[str, Any]:
        event = build_event(self.component, event_type, session_id, severity, correlation_id, pii, fields)

        # Resolved per call so that redirected stdout (tests, capture) is honoured
        stream = self._stream or sys.stdout
        stream.write(json.dumps(event, ensure_ascii=False, default=str) + "\n")
        stream.flush()

        (self._store or event_store).record(event)
        return event
