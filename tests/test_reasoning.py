"""
Tests for reasoning output parsing and prompt scenarios.
"""
from datetime import datetime

import pytest

from trip_pipeline.errors import ReasoningError
from trip_pipeline.reasoning import (
    FALLBACK_PROMPT,
    PROMPT_TIMEZONE,
    Scenario,
    completion_content,
    load_scenario,
    parse_candidate,
)
from trip_pipeline.state import Intent, Language, TripType, initial_state


class TestParseCandidate:

    def test_plain_json(self):
        state = parse_candidate('{"intent": "ask_trip_type", "source": "Delhi", "destination": "Agra"}')
        assert state.intent == Intent.ASK_TRIP_TYPE
        assert state.destination == "Agra"
        assert state.trip_type == TripType.NOT_DECIDED

    def test_fenced_json(self):
        state = parse_candidate('```json\n{"intent": "GREET", "agentResponse": "Hi!"}\n```')
        assert state.intent == Intent.GREET
        assert state.agent_response == "Hi!"

    @pytest.mark.parametrize("raw", [None, "", "   ", "null", "[]", "not json at all", 42, {"intent": "greet"}])
    def test_unusable_output(self, raw):
        with pytest.raises(ReasoningError):
            parse_candidate(raw)

    def test_invalid_enum_names_the_field(self):
        with pytest.raises(ReasoningError) as exc_info:
            parse_candidate('{"intent": "greet", "tripType": "helicopter"}')
        assert "tripType" in str(exc_info.value)


class TestCompletionContent:

    def test_first_choice_content(self):
        body = {"choices": [{"message": {"content": "{}"}}, {"message": {"content": "other"}}]}
        assert completion_content(body) == "{}"

    @pytest.mark.parametrize("body", [{}, {"choices": []}, {"choices": [{"message": None}]}])
    def test_missing_content(self, body):
        assert completion_content(body) is None

    @pytest.mark.parametrize("body", [
        None,
        ["choices"],
        {"choices": "none"},
        {"choices": [None]},
        {"choices": [{"message": "text"}]},
    ])
    def test_malformed_body(self, body):
        with pytest.raises(ReasoningError):
            completion_content(body)


class TestScenario:

    def test_default_scenario_loads(self):
        scenario = load_scenario("default")
        assert scenario.name == "default"
        assert scenario.agent_name == "Raahi"
        assert "{transcript}" in scenario.prompt

    def test_unknown_scenario_falls_back_to_default(self):
        assert load_scenario("does_not_exist").name == "default"

    def test_render_prompt(self):
        scenario = load_scenario("default")
        state = initial_state("u1", "Asha", "9999999999")
        now = datetime(2026, 10, 19, 10, 30, tzinfo=PROMPT_TIMEZONE)

        prompt = scenario.render_prompt('I said "Jaipur"', state, "SUV costs 18rs/km.", now=now)

        assert "Raahi" in prompt
        assert "Monday 19 October 2026" in prompt
        assert "I said 'Jaipur'" in prompt
        assert '"tripType": "not_decided"' in prompt
        assert "SUV costs 18rs/km." in prompt

    def test_render_prompt_without_knowledge(self):
        scenario = Scenario(name="t", prompt=FALLBACK_PROMPT)
        prompt = scenario.render_prompt("hello", initial_state("", "User", "1"), "")
        assert "No specific policy found." in prompt

    def test_booking_messages_by_language(self):
        scenario = load_scenario("default")
        assert scenario.booking_success_message(Language.ENGLISH).startswith("Great!")
        assert scenario.booking_failure_message(Language.ENGLISH).startswith("Sorry")
        assert scenario.booking_failure_message(Language.HINDI) != scenario.booking_failure_message(Language.ENGLISH)
        # Unset language falls back to English
        assert scenario.booking_success_message(Language.UNSET) == scenario.booking_success_message(Language.ENGLISH)

    def test_from_dict_defaults(self):
        scenario = Scenario.from_dict({"name": "minimal"})
        assert scenario.prompt == FALLBACK_PROMPT
        assert scenario.booking_success_message(Language.HINDI).startswith("Great!")
