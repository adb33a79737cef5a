"""
In-memory event log, indexed by caller.

Events are kept per session_id (the caller phone for turn events) in a
bounded deque, and the number of sessions tracked is bounded as well: the
caller seen least recently is dropped first. Backs the control read API;
stdout remains the durable record.
"""

from __future__ import annotations

from collections import OrderedDict, deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Iterable, List, Optional

ENVELOPE_FIELDS = ("ts", "session_id", "component", "event_type", "severity", "correlation_id", "pii")

TURN_OUTCOMES = {"turn.completed": "completed", "turn.failed": "failed"}


@dataclass(frozen=True)
class StoredEvent:
    ts: datetime
    session_id: str
    component: str
    event_type: str
    severity: str
    correlation_id: str
    pii: Dict[str, Any]
    fields: Dict[str, Any]

    @classmethod
    def from_envelope(cls, event: Dict[str, Any]) -> "StoredEvent":
        raw_ts = event.get("ts")
        ts = (
            datetime.fromisoformat(raw_ts.replace("Z", "+00:00"))
            if isinstance(raw_ts, str)
            else datetime.now(timezone.utc)
        )
        session_id = event.get("session_id", "")
        return cls(
            ts=ts,
            session_id=session_id,
            component=event.get("component", "unknown"),
            event_type=event.get("event_type", "unknown"),
            severity=event.get("severity", "info"),
            correlation_id=event.get("correlation_id") or session_id,
            pii=event.get("pii") or {"contains_pii": False, "fields": [], "handling": "none"},
            fields={k: v for k, v in event.items() if k not in ENVELOPE_FIELDS},
        )

    def matches(
        self,
        event_type: Optional[str],
        component: Optional[str],
        correlation_id: Optional[str],
        since: Optional[datetime],
        until: Optional[datetime],
    ) -> bool:
        if event_type and self.event_type != event_type:
            return False
        if component and self.component != component:
            return False
        if correlation_id and self.correlation_id != correlation_id:
            return False
        if since and self.ts < since:
            return False
        if until and self.ts > until:
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ts": self.ts.isoformat(),
            "session_id": self.session_id,
            "component": self.component,
            "event_type": self.event_type,
            "severity": self.severity,
            "correlation_id": self.correlation_id,
            "pii": self.pii,
            **self.fields,
        }


class EventStore:
    def __init__(self, max_events_per_session: int = 500, max_sessions: int = 1000):
        self.max_events_per_session = max_events_per_session
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, Deque[StoredEvent]]" = OrderedDict()

    def record(self, event: Dict[str, Any]) -> StoredEvent:
        stored = StoredEvent.from_envelope(event)
        events = self._sessions.get(stored.session_id)
        if events is None:
            events = self._sessions[stored.session_id] = deque(maxlen=self.max_events_per_session)
            while len(self._sessions) > self.max_sessions:
                self._sessions.popitem(last=False)
        else:
            self._sessions.move_to_end(stored.session_id)
        events.append(stored)
        return stored

    def _candidates(self, session_id: Optional[str]) -> Iterable[StoredEvent]:
        if session_id is not None:
            return list(self._sessions.get(session_id, ()))
        merged = [e for events in self._sessions.values() for e in events]
        merged.sort(key=lambda e: e.ts)
        return merged

    def query(
        self,
        session_id: Optional[str] = None,
        event_type: Optional[str] = None,
        component: Optional[str] = None,
        correlation_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Matching events, oldest first. since/until are inclusive."""
        results = []
        for event in self._candidates(session_id or None):
            if not event.matches(event_type, component, correlation_id, since, until):
                continue
            results.append(event.to_dict())
            if limit and len(results) >= limit:
                break
        return results

    def turns(self, session_id: str) -> List[Dict[str, Any]]:
        """
        One summary per turn of a caller, oldest first:
        {turn_id, started_at, outcome, intent, category, latency_ms}.
        outcome is "in_progress" until turn.completed / turn.failed is seen.
        """
        summaries: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        for event in self._sessions.get(session_id, ()):
            if event.event_type == "turn.started":
                summaries[event.correlation_id] = {
                    "turn_id": event.correlation_id,
                    "started_at": event.ts.isoformat(),
                    "outcome": "in_progress",
                }
            elif event.event_type in TURN_OUTCOMES and event.correlation_id in summaries:
                summary = summaries[event.correlation_id]
                summary["outcome"] = TURN_OUTCOMES[event.event_type]
                for key in ("intent", "category", "latency_ms"):
                    if key in event.fields:
                        summary[key] = event.fields[key]
        return list(summaries.values())

    def clear(self) -> None:
        self._sessions.clear()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "sessions": len(self._sessions),
            "total_events": sum(len(events) for events in self._sessions.values()),
            "max_events_per_session": self.max_events_per_session,
            "max_sessions": self.max_sessions,
        }


event_store = EventStore()
