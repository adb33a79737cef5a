"""
Reasoning adapter: transcript + current state + knowledge -> next TripState.

The model is called through Groq's OpenAI-compatible chat completions API in
JSON mode at temperature 0. Its output must be the full next state; it is
parsed and coerced into TripState right here, and anything null,
non-JSON or outside the closed enum sets is a ReasoningError (fatal to the
turn).

Prompt scenarios are YAML files under prompts/, loaded with PyYAML's
safe_load (which also accepts pure JSON).
"""
from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

import yaml
from pydantic import ValidationError

from logging_setup import get_logger, Component
from .errors import ProviderError, ReasoningError, classify_error, redact_detail
from .http_pool import HttpPool, timeout
from .state import Language, TripState

logger = get_logger(Component.LLM)

PROMPT_TIMEZONE = ZoneInfo("Asia/Kolkata")

FALLBACK_PROMPT = """
You are "{agent_name}", a cab booking assistant.
Today: {today}
Caller said: "{transcript}"
Current trip state (JSON): {trip_state}
Knowledge base: {knowledge}
Return the full next trip state as JSON with the same keys, updating slots,
intent and agentResponse.
""".strip()

FALLBACK_SUCCESS = {"en": "Great! I have created your trip. Have a safe journey."}
FALLBACK_FAILURE = {"en": "Sorry, I could not book your trip because of a technical problem. Please confirm again."}


def _get_prompts_dir() -> Path:
    return Path(__file__).parent / "prompts"


@dataclass
class Scenario:
    name: str
    prompt: str
    agent_name: str = "Raahi"
    success_message: Dict[str, str] = field(default_factory=lambda: dict(FALLBACK_SUCCESS))
    failure_message: Dict[str, str] = field(default_factory=lambda: dict(FALLBACK_FAILURE))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Scenario":
        return cls(
            name=data.get("name", "default"),
            prompt=(data.get("prompt") or FALLBACK_PROMPT).strip(),
            agent_name=data.get("agent_name", "Raahi"),
            success_message=data.get("success_message") or dict(FALLBACK_SUCCESS),
            failure_message=data.get("failure_message") or dict(FALLBACK_FAILURE),
        )

    def render_prompt(self, transcript: str, state: TripState, knowledge: str, now: Optional[datetime] = None) -> str:
        now = now or datetime.now(PROMPT_TIMEZONE)
        return self.prompt.format(
            agent_name=self.agent_name,
            today=now.strftime("%A %d %B %Y, %H:%M %Z"),
            transcript=transcript.replace('"', "'"),
            trip_state=json.dumps(state.to_dict(), ensure_ascii=False),
            knowledge=knowledge or "No specific policy found.",
        )

    def _message(self, messages: Dict[str, str], language: Language) -> str:
        if language == Language.HINDI and messages.get("hi"):
            return messages["hi"]
        return messages.get("en") or next(iter(messages.values()))

    def booking_success_message(self, language: Language) -> str:
        return self._message(self.success_message, language)

    def booking_failure_message(self, language: Language) -> str:
        return self._message(self.failure_message, language)


def _load_file(path: Path) -> Dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Scenario file {path} must contain a mapping at top-level")
    return data


def load_scenario(scenario_name: str = "default") -> Scenario:
    """
    Resolution order:
    1) <name>.yaml / <name>.yml / <name>.json
    2) default.yaml / default.yml / default.json
    3) built-in fallback prompt
    """
    prompts_dir = _get_prompts_dir()
    for name in (scenario_name, "default"):
        for suffix in (".yaml", ".yml", ".json"):
            candidate = prompts_dir / f"{name}{suffix}"
            if candidate.exists():
                return Scenario.from_dict(_load_file(candidate))
    return Scenario(name="default", prompt=FALLBACK_PROMPT)


def completion_content(data) -> Optional[str]:
    """message.content of the first choice of a chat completions body."""
    if not isinstance(data, dict):
        raise ReasoningError("Reasoning response is not a JSON object")
    choices = data.get("choices")
    if not choices:
        return None
    if not isinstance(choices, list) or not isinstance(choices[0], dict):
        raise ReasoningError("Reasoning response has malformed choices")
    message = choices[0].get("message")
    if message is None:
        return None
    if not isinstance(message, dict):
        raise ReasoningError("Reasoning response has a malformed message")
    return message.get("content")


def parse_candidate(raw: Optional[str]) -> TripState:
    """Deserialize and coerce model output; any defect is a ReasoningError."""
    if raw is not None and not isinstance(raw, str):
        raise ReasoningError(f"Reasoning content is not text: {type(raw).__name__}")
    if raw is None or not raw.strip():
        raise ReasoningError("Reasoning returned no content")
    text = raw.strip()
    # Some models wrap JSON in a markdown fence even in JSON mode
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ReasoningError(f"Reasoning output is not JSON: {e.msg}") from e
    if not isinstance(data, dict):
        raise ReasoningError("Reasoning output is not a JSON object")
    try:
        return TripState.model_validate(data)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise ReasoningError(f"Reasoning output failed validation: {', '.join(fields)}") from e


class GroqReasoner:
    def __init__(
        self,
        *,
        pool: HttpPool,
        api_key: str,
        scenario: Scenario,
        model: str = "llama-3.3-70b-versatile",
        base_url: str = "https://api.groq.com/openai/v1",
        timeout_seconds: float = 20.0,
        max_tokens: int = 1024,
    ):
        self._pool = pool
        self._api_key = api_key
        self.scenario = scenario
        self._model = model
        self._url = f"{base_url.rstrip('/')}/chat/completions"
        self._timeout = timeout_seconds
        self._max_tokens = max_tokens

    async def next_state(self, transcript: str, state: TripState, knowledge: str) -> TripState:
        prompt = self.scenario.render_prompt(transcript, state, knowledge)
        payload = {
            "model": self._model,
            "temperature": 0,
            "max_tokens": self._max_tokens,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": "Respond with a single JSON object only."},
                {"role": "user", "content": prompt},
            ],
        }

        t_start = time.perf_counter()
        try:
            session = self._pool.session()
            async with session.post(
                self._url,
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=timeout(self._timeout),
            ) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise ProviderError("groq_llm", response.status, error_text[:200])
                data = await response.json()
        except Exception as e:
            logger.error(
                "Reasoning call failed",
                category=classify_error(e),
                error=redact_detail(e),
                error_type=type(e).__name__,
                latency_ms=int((time.perf_counter() - t_start) * 1000),
            )
            raise ReasoningError(f"Reasoning call failed: {type(e).__name__}") from e

        candidate = parse_candidate(completion_content(data))

        logger.info(
            "Reasoning completed",
            model=self._model,
            intent=candidate.intent.value,
            latency_ms=int((time.perf_counter() - t_start) * 1000),
        )
        return candidate
