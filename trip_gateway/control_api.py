"""
Control read API.

- GET /control/sessions/{phone}         current TripState (404 if absent or expired)
- GET /control/sessions/{phone}/events  turn events for that caller
- GET /control/sessions/{phone}/turns   one summary per turn (outcome, intent, latency)
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from trip_pipeline.errors import SessionStoreError
from trip_pipeline.runtime import PipelineServices
from observability.event_store import event_store
from .routes import get_services

router = APIRouter(prefix="/control", tags=["control"])


def _parse_timestamp(value: Optional[str], name: str) -> Optional[datetime]:
    """ISO timestamp with or without timezone; naive values are taken as UTC."""
    if not value:
        return None
    try:
        # FastAPI may hand us '+' decoded as a space
        clean = value.replace(" ", "+").replace("Z", "+00:00")
        if "+" not in clean and "-" not in clean[-6:]:
            clean += "+00:00"
        return datetime.fromisoformat(clean)
    except (ValueError, AttributeError):
        raise HTTPException(status_code=400, detail=f"Invalid {name} timestamp: {value}")


@router.get("/sessions/{phone}")
async def get_session(phone: str, services: PipelineServices = Depends(get_services)) -> dict:
    try:
        state = await services.sessions.get(phone)
    except SessionStoreError:
        raise HTTPException(status_code=502, detail="session_store_unavailable")
    if state is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return {"phone": phone, "tripState": state.to_dict()}


@router.get("/sessions/{phone}/events")
async def get_session_events(
    phone: str,
    event_type: Optional[str] = Query(None, description="Filter by event_type"),
    turn_id: Optional[str] = Query(None, description="Filter by turn (correlation_id)"),
    since: Optional[str] = Query(None, description="ISO timestamp (inclusive)"),
    until: Optional[str] = Query(None, description="ISO timestamp (inclusive)"),
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Max events to return"),
) -> dict:
    events = event_store.query(
        session_id=phone,
        event_type=event_type,
        correlation_id=turn_id,
        since=_parse_timestamp(since, "since"),
        until=_parse_timestamp(until, "until"),
        limit=limit,
    )
    return {
        "phone": phone,
        "events": events,
        "count": len(events),
    }


@router.get("/sessions/{phone}/turns")
async def get_session_turns(phone: str) -> dict:
    turns = event_store.turns(phone)
    return {"phone": phone, "turns": turns, "count": len(turns)}
