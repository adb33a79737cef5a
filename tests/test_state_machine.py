"""
State machine guard tests: slot ordering, one-way inference, booking
readiness, monotonic tripCreated and immutable caller binding.
"""
import pytest

from trip_pipeline.state import Intent, TripState, TripType, User, VehicleType, initial_state
from trip_pipeline.state_machine import (
    expected_intent,
    guard_transition,
    infer_one_way_end_date,
    is_booking_ready,
    missing_mandatory_slots,
    next_slot_intent,
    should_book,
)


def make_state(**fields) -> TripState:
    base = initial_state("u1", "Asha", "9999999999").to_dict()
    base.update(fields)
    return TripState.model_validate(base)


def complete(**fields) -> TripState:
    values = {
        "source": "Connaught Place",
        "destination": "Jaipur",
        "tripType": "one_way",
        "tripStartDate": "2026-10-21T09:00:00+05:30",
    }
    values.update(fields)
    return make_state(**values)


class TestSlotOrder:

    def test_empty_state_asks_source_first(self):
        state = make_state()
        assert missing_mandatory_slots(state) == ["source", "destination", "tripType", "tripStartDate"]
        assert next_slot_intent(state) == Intent.ASK_SOURCE

    @pytest.mark.parametrize("fields, expected", [
        ({"source": "A"}, Intent.ASK_DESTINATION),
        ({"source": "A", "destination": "B"}, Intent.ASK_TRIP_TYPE),
        ({"source": "A", "destination": "B", "tripType": "round_trip"}, Intent.ASK_DATE),
        ({"source": "A", "destination": "B", "tripType": "round_trip",
          "tripStartDate": "2026-10-21T09:00:00"}, Intent.ASK_DATE),
    ])
    def test_first_missing_slot(self, fields, expected):
        assert next_slot_intent(make_state(**fields)) == expected

    def test_round_trip_requires_end_date(self):
        state = complete(tripType="round_trip")
        assert missing_mandatory_slots(state) == ["tripEndDate"]
        assert not is_booking_ready(state)

    def test_one_way_does_not_require_end_date(self):
        state = complete()
        assert state.trip_end_date == ""
        assert is_booking_ready(state)
        assert next_slot_intent(state) is None


class TestExpectedIntent:

    def test_greeting_wins(self):
        assert expected_intent(make_state(), greeting=True) == Intent.GREET

    def test_preferences_after_mandatory_slots(self):
        assert expected_intent(complete()) == Intent.ASK_PREFERENCES

    def test_confirm_when_complete(self):
        state = complete(preferences={"vehicleType": "sedan", "language": "en"})
        assert expected_intent(state) == Intent.CONFIRM_TRIP

    def test_create_after_confirmation(self):
        state = complete(preferences={"vehicleType": "sedan", "language": "en"})
        assert expected_intent(state, confirmed=True) == Intent.CREATE_TRIP


class TestOneWayInference:

    def test_end_date_copied_from_start(self):
        state = complete()
        assert infer_one_way_end_date(state) is True
        assert state.trip_end_date == state.trip_start_date

    def test_existing_end_date_kept(self):
        state = complete(tripEndDate="2026-10-22T18:00:00+05:30")
        assert infer_one_way_end_date(state) is False
        assert state.trip_end_date == "2026-10-22T18:00:00+05:30"

    def test_round_trip_untouched(self):
        state = complete(tripType="round_trip")
        assert infer_one_way_end_date(state) is False
        assert state.trip_end_date == ""


class TestGuardTransition:

    def test_caller_binding_is_immutable(self):
        current = make_state()
        candidate = make_state(user={"id": "x", "name": "Mallory", "phone": "1111111111"})

        result = guard_transition(current, candidate)

        assert result.state.user == User(id="u1", name="Asha", phone="9999999999")
        assert "user_rebound" in result.corrections

    def test_trip_created_never_reverts(self):
        current = complete(tripCreated=True, intent="general")
        candidate = complete(tripCreated=False, intent="general")

        result = guard_transition(current, candidate)

        assert result.state.trip_created is True
        assert "trip_created_monotonic" in result.corrections

    def test_trip_created_not_taken_from_model(self):
        current = complete(intent="confirm_trip")
        candidate = complete(tripCreated=True, intent="create_trip")

        result = guard_transition(current, candidate)

        assert result.state.trip_created is False
        assert result.state.intent == Intent.CREATE_TRIP
        assert "trip_created_without_booking" in result.corrections
        assert should_book(result.state)

    def test_create_trip_blocked_when_slot_missing(self):
        current = make_state(source="A")
        candidate = make_state(source="A", intent="create_trip")

        result = guard_transition(current, candidate)

        assert result.state.intent == Intent.ASK_DESTINATION
        assert not should_book(result.state)

    def test_create_trip_blocked_for_round_trip_without_return(self):
        candidate = complete(tripType="round_trip", intent="create_trip")

        result = guard_transition(make_state(), candidate)

        assert result.state.intent == Intent.ASK_DATE

    def test_one_way_create_trip_allowed_and_end_date_filled(self):
        candidate = complete(intent="create_trip")

        result = guard_transition(make_state(), candidate)

        assert result.state.intent == Intent.CREATE_TRIP
        assert result.state.trip_end_date == "2026-10-21T09:00:00+05:30"
        assert should_book(result.state)

    def test_clean_candidate_unchanged(self):
        current = make_state()
        candidate = make_state(intent="ask_destination", source="Delhi")

        result = guard_transition(current, candidate)

        assert not result.changed
        assert result.state == candidate

    def test_guard_does_not_mutate_candidate(self):
        candidate = complete(intent="create_trip")
        guard_transition(make_state(), candidate)
        assert candidate.trip_end_date == ""


def test_should_book_false_once_created():
    state = complete(intent="create_trip", tripCreated=True)
    assert should_book(state) is False


def test_vehicle_type_does_not_gate_booking():
    state = complete(intent="create_trip")
    assert state.preferences.vehicle_type == VehicleType.NONE
    assert state.trip_type == TripType.ONE_WAY
    assert should_book(state)
