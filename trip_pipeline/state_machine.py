"""
Conversation state machine guard.

The reasoning model chooses the next intent. The orchestrator never invents
transitions; it only enforces what must hold regardless of model output:

- the caller binding (phone) never changes inside a session
- tripCreated is carried over from the session; only a confirmed booking
  sets it, and it never reverts from true to false
- a one-way trip's end date defaults to its start date
- CREATE_TRIP is only reachable with every mandatory slot filled

Slot priority (what the reasoning prompt is asked to follow):
    greeting > missing mandatory slot (source, destination, trip type,
    start date, end date if round trip) > missing preferences >
    unconfirmed-but-complete > explicit confirmation > domain question > fallback
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from .state import Intent, TripState, TripType, VehicleType

# (slot name, intent that asks for it), in prompting order
MANDATORY_SLOT_ORDER = (
    ("source", Intent.ASK_SOURCE),
    ("destination", Intent.ASK_DESTINATION),
    ("tripType", Intent.ASK_TRIP_TYPE),
    ("tripStartDate", Intent.ASK_DATE),
    ("tripEndDate", Intent.ASK_DATE),
)


def missing_mandatory_slots(state: TripState) -> List[str]:
    """Mandatory slots still empty, in prompting order."""
    missing = []
    if not state.source:
        missing.append("source")
    if not state.destination:
        missing.append("destination")
    if state.trip_type == TripType.NOT_DECIDED:
        missing.append("tripType")
    if not state.trip_start_date:
        missing.append("tripStartDate")
    if state.trip_type == TripType.ROUND_TRIP and not state.trip_end_date:
        missing.append("tripEndDate")
    return missing


def is_booking_ready(state: TripState) -> bool:
    return not missing_mandatory_slots(state)


def next_slot_intent(state: TripState) -> Optional[Intent]:
    """Intent asking for the first missing mandatory slot, or None when complete."""
    missing = missing_mandatory_slots(state)
    if not missing:
        return None
    return dict(MANDATORY_SLOT_ORDER)[missing[0]]


def expected_intent(state: TripState, *, greeting: bool = False, confirmed: bool = False) -> Intent:
    """
    Intent the slot-priority order prescribes for `state`.

    Reference for the reasoning contract; question/fallback handling
    (GENERAL, UNKNOWN) depends on the utterance and is left to the model.
    """
    if greeting:
        return Intent.GREET
    slot_intent = next_slot_intent(state)
    if slot_intent is not None:
        return slot_intent
    if state.preferences.vehicle_type == VehicleType.NONE:
        return Intent.ASK_PREFERENCES
    if confirmed and not state.trip_created:
        return Intent.CREATE_TRIP
    if state.trip_created:
        return Intent.GENERAL
    return Intent.CONFIRM_TRIP


def infer_one_way_end_date(state: TripState) -> bool:
    """Set tripEndDate = tripStartDate for one-way trips. Returns True if changed."""
    if state.trip_type == TripType.ONE_WAY and state.trip_start_date and not state.trip_end_date:
        state.trip_end_date = state.trip_start_date
        return True
    return False


@dataclass
class GuardResult:
    state: TripState
    corrections: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.corrections)


def guard_transition(current: TripState, candidate: TripState) -> GuardResult:
    """
    Enforce session invariants on the reasoning model's candidate state.

    Returns a copy of the candidate with corrections applied and the list of
    corrections made (for observability).
    """
    state = candidate.model_copy(deep=True)
    corrections: List[str] = []

    if state.user != current.user:
        state.user = current.user.model_copy()
        corrections.append("user_rebound")

    # Only the booking gate sets tripCreated; the model's value is ignored
    if state.trip_created != current.trip_created:
        corrections.append(
            "trip_created_monotonic" if current.trip_created else "trip_created_without_booking"
        )
        state.trip_created = current.trip_created

    if infer_one_way_end_date(state):
        corrections.append("one_way_end_date")

    if state.intent == Intent.CREATE_TRIP:
        slot_intent = next_slot_intent(state)
        if slot_intent is not None:
            state.intent = slot_intent
            corrections.append(f"create_trip_blocked:{missing_mandatory_slots(state)[0]}")

    return GuardResult(state=state, corrections=corrections)


def should_book(state: TripState) -> bool:
    """Booking gate: CREATE_TRIP, not yet created, all mandatory slots filled."""
    return (
        state.intent == Intent.CREATE_TRIP
        and not state.trip_created
        and is_booking_ready(state)
    )
