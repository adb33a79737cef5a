"""
Turn orchestrator: one caller utterance in, one trip state out.

    load session -> STT -> knowledge -> reasoning -> guard -> booking gate
    -> persist -> TTS -> signal

Failure policy per step:
- fatal (abort, persist nothing): session store, transcription, reasoning
- degrade and continue: knowledge (empty context), TTS (default audio),
  signaling (logged)
- gated side effect: booking failure keeps tripCreated=false, tells the
  caller, and leaves the state eligible for a retry on the next confirmation

Turns for the same phone are serialized; turns for different phones run in
parallel. A turn keeps running to completion if the HTTP request that started
it goes away.
"""
from __future__ import annotations

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Set

from logging_setup import bind_turn, get_logger, Component
from .booking import BookingOutcome
from .errors import InvalidTurnInput, ReasoningError, TranscriptionError, TurnError
from .knowledge import KnowledgeIndex
from .observability import TurnObserver
from .reasoning import Scenario, load_scenario
from .session_store import SessionStore
from .signaling import build_signal_payload
from .state import Intent, Language, TripState, initial_state
from .state_machine import guard_transition, should_book
from .tts import detect_language_code

logger = get_logger(Component.ORCHESTRATOR)

DEFAULT_REPLY = "Okay."


class Transcriber(Protocol):
    async def transcribe(self, audio: bytes, mime_type: str = ..., filename: str = ...) -> str:
        ...


class Reasoner(Protocol):
    async def next_state(self, transcript: str, state: TripState, knowledge: str) -> Optional[TripState]:
        ...


class Synthesizer(Protocol):
    default_audio_file: str

    async def synthesize(self, text: str, language_code: Optional[str] = None) -> str:
        ...


class Booker(Protocol):
    async def create_trip(self, state: TripState) -> BookingOutcome:
        ...


class Signaler(Protocol):
    async def publish(self, phone: str, payload: Dict[str, Any]) -> bool:
        ...


@dataclass(frozen=True)
class TurnInput:
    audio: bytes
    phone: str
    caller_name: str = "User"
    caller_id: str = ""
    mime_type: str = "audio/webm"
    filename: str = "audio.webm"


@dataclass
class TurnResult:
    success: bool
    turn_id: str
    state: Optional[TripState] = None
    audio_file: Optional[str] = None
    error: Optional[str] = None
    error_category: Optional[str] = None
    http_status: int = 200


class KeyedLock:
    """
    asyncio.Lock per key, created on demand and dropped once no task holds
    or waits on it.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __contains__(self, key: str) -> bool:
        return key in self._locks


class TurnOrchestrator:
    def __init__(
        self,
        *,
        sessions: SessionStore,
        knowledge: KnowledgeIndex,
        transcriber: Transcriber,
        reasoner: Reasoner,
        synthesizer: Synthesizer,
        booking: Booker,
        signaler: Signaler,
        scenario: Optional[Scenario] = None,
        session_ttl_seconds: int = 300,
        knowledge_top_k: int = 2,
    ):
        self.sessions = sessions
        self.knowledge = knowledge
        self.transcriber = transcriber
        self.reasoner = reasoner
        self.synthesizer = synthesizer
        self.booking = booking
        self.signaler = signaler
        self.scenario = scenario or load_scenario()
        self.session_ttl_seconds = session_ttl_seconds
        self.knowledge_top_k = knowledge_top_k
        self._locks = KeyedLock()
        self._inflight: Set[asyncio.Task] = set()

    async def process_turn(self, turn: TurnInput) -> TurnResult:
        """
        Run one turn. The work runs in its own task behind asyncio.shield, so
        cancelling the caller does not cancel external calls mid-flight.
        """
        task = asyncio.ensure_future(self._run_serialized(turn))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)

    async def drain(self) -> None:
        """Wait for turns still running after their requests were dropped."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def _run_serialized(self, turn: TurnInput) -> TurnResult:
        obs = TurnObserver(turn.phone)
        with bind_turn(turn.phone, obs.turn_id):
            async with self._locks.hold(turn.phone):
                return await self._run(turn, obs)

    async def _run(self, turn: TurnInput, obs: TurnObserver) -> TurnResult:
        session_logger = obs.logger
        obs.turn_started(audio_bytes=len(turn.audio), mime_type=turn.mime_type)

        try:
            if not turn.phone:
                raise InvalidTurnInput("Phone required")

            # 1. Session
            obs.step()
            current = await self.sessions.get(turn.phone)
            new_session = current is None
            if new_session:
                current = initial_state(turn.caller_id, turn.caller_name, turn.phone)
                session_logger.info_pii("New session", phone=turn.phone, name=turn.caller_name)
            obs.session_loaded(new_session=new_session, intent=current.intent.value)

            # 2. STT
            obs.step()
            transcript = (await self.transcriber.transcribe(
                turn.audio, mime_type=turn.mime_type, filename=turn.filename
            ) or "").strip()
            if not transcript:
                raise TranscriptionError("Empty transcript")
            obs.stt_completed(text_length=len(transcript))
            session_logger.debug("Transcript", transcript=transcript)

            # 3. Knowledge (never fails the turn)
            obs.step()
            context = await self.knowledge.search(transcript, self.knowledge_top_k)
            obs.knowledge_retrieved(context_length=len(context))

            # 4. Reasoning
            obs.step()
            candidate = await self.reasoner.next_state(transcript, current, context)
            if candidate is None:
                raise ReasoningError("Reasoning returned no state")
            obs.reasoning_completed(from_intent=current.intent.value, to_intent=candidate.intent.value)

            guarded = guard_transition(current, candidate)
            state = guarded.state
            if guarded.changed:
                obs.state_guarded(guarded.corrections, intent=state.intent.value)
                session_logger.warning("Candidate state corrected", corrections=guarded.corrections)

            # 5. Booking gate
            state = await self.apply_booking_gate(state, obs, transcript=transcript)

            # 6. Persist, whatever the booking outcome
            obs.step()
            await self.sessions.put(turn.phone, state, self.session_ttl_seconds)
            obs.state_persisted(
                intent=state.intent.value,
                trip_created=state.trip_created,
                ttl_seconds=self.session_ttl_seconds,
            )
        except TurnError as e:
            obs.turn_failed(category=e.category, error_type=type(e).__name__)
            session_logger.error(
                "Turn failed",
                turn_id=obs.turn_id,
                category=e.category,
                error=str(e),
            )
            return TurnResult(
                success=False,
                turn_id=obs.turn_id,
                error=e.public_message,
                error_category=e.category,
                http_status=e.http_status,
            )
        except Exception as e:
            obs.turn_failed(category="turn.internal_error", error_type=type(e).__name__)
            session_logger.exception("Turn crashed", turn_id=obs.turn_id)
            raise

        reply = state.agent_response or DEFAULT_REPLY

        # 7. TTS (degrades to the default audio)
        obs.step()
        audio_file = await self._synthesize(reply, session_logger)
        obs.tts_completed(audio_file=audio_file, fallback=audio_file == self.synthesizer.default_audio_file)

        # 8. Signal, strictly after the state is durable
        obs.step()
        signalled = await self._signal(turn.phone, state, audio_file, reply, session_logger)
        obs.signal_sent(ok=signalled)

        obs.turn_completed(intent=state.intent.value, trip_created=state.trip_created)
        return TurnResult(success=True, turn_id=obs.turn_id, state=state, audio_file=audio_file)

    async def apply_booking_gate(
        self,
        state: TripState,
        obs: TurnObserver,
        transcript: str = "",
    ) -> TripState:
        """
        Invoke the booking side effect when the state asks for it.

        tripCreated flips to true only when the booking endpoint confirmed; a
        state that is already created is never booked again.
        """
        if state.intent != Intent.CREATE_TRIP:
            return state
        if state.trip_created:
            obs.booking_skipped("already_created")
            return state
        if not should_book(state):
            obs.booking_skipped("slots_missing")
            return state

        obs.booking_attempted()
        outcome = await self.booking.create_trip(state)
        obs.booking_completed(
            ok=outcome.ok,
            status=outcome.status,
            category=outcome.category,
            latency_ms=outcome.latency_ms,
        )

        language = self._reply_language(state, transcript)
        state = state.model_copy(deep=True)
        if outcome.ok:
            state.trip_created = True
            if not state.agent_response:
                state.agent_response = self.scenario.booking_success_message(language)
        else:
            state.trip_created = False
            state.agent_response = self.scenario.booking_failure_message(language)
        return state

    @staticmethod
    def _reply_language(state: TripState, transcript: str) -> Language:
        if state.preferences.language != Language.UNSET:
            return state.preferences.language
        if detect_language_code(transcript) == "hi-IN" or detect_language_code(state.agent_response) == "hi-IN":
            return Language.HINDI
        return Language.ENGLISH

    async def _synthesize(self, text: str, session_logger) -> str:
        try:
            return await self.synthesizer.synthesize(text)
        except Exception as e:
            session_logger.warning(
                "Synthesis raised; using default audio",
                error=str(e),
                error_type=type(e).__name__,
            )
            return self.synthesizer.default_audio_file

    async def _signal(self, phone: str, state: TripState, audio_file: str, text: str, session_logger) -> bool:
        try:
            return await self.signaler.publish(phone, build_signal_payload(state, audio_file, text))
        except Exception as e:
            session_logger.warning(
                "Signal raised; turn result stands",
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
