"""
Per-turn observability.

Emits OBS events for each pipeline step. session_id is the caller phone and
correlation_id the turn id, so one turn's events can be pulled from the
event store with a single query. Transcript and reply text are never put in
events; only lengths and outcomes.
"""
from __future__ import annotations

import time
import uuid
from typing import Callable, List, Optional

from logging_setup import get_logger, Component as LogComponent
from observability.events import CALLER_PII, Component as ObsComponent, EventEmitter, Severity

emitter = EventEmitter(ObsComponent.TURN_PIPELINE)


def new_turn_id() -> str:
    return f"turn_{uuid.uuid4().hex[:12]}"


class TurnObserver:
    def __init__(
        self,
        phone: str,
        turn_id: Optional[str] = None,
        *,
        now: Callable[[], float] = time.perf_counter,
    ):
        self.phone = phone
        self.turn_id = turn_id or new_turn_id()
        self.logger = get_logger(LogComponent.ORCHESTRATOR, session_id=phone)
        self._now = now
        self._turn_start = now()
        self._step_start = self._turn_start

    def _elapsed_ms(self, since: float) -> int:
        return int((self._now() - since) * 1000)

    def _emit(self, event_type: str, severity: Severity = Severity.INFO, **fields) -> None:
        emitter.emit(
            event_type,
            session_id=self.phone,
            severity=severity,
            correlation_id=self.turn_id,
            pii=CALLER_PII,
            **fields,
        )

    def step(self) -> None:
        """Mark the start of the next pipeline step."""
        self._step_start = self._now()

    def turn_started(self, audio_bytes: int, mime_type: str) -> None:
        self._emit("turn.started", audio_bytes=audio_bytes, mime_type=mime_type)

    def session_loaded(self, new_session: bool, intent: str) -> None:
        self._emit(
            "session.loaded",
            new_session=new_session,
            intent=intent,
            latency_ms=self._elapsed_ms(self._step_start),
        )

    def stt_completed(self, text_length: int) -> None:
        self._emit("stt.completed", text_length=text_length, latency_ms=self._elapsed_ms(self._step_start))

    def knowledge_retrieved(self, context_length: int) -> None:
        self._emit(
            "knowledge.retrieved",
            context_length=context_length,
            empty=context_length == 0,
            latency_ms=self._elapsed_ms(self._step_start),
        )

    def reasoning_completed(self, from_intent: str, to_intent: str) -> None:
        self._emit(
            "reasoning.completed",
            from_intent=from_intent,
            to_intent=to_intent,
            latency_ms=self._elapsed_ms(self._step_start),
        )

    def state_guarded(self, corrections: List[str], intent: str) -> None:
        self._emit("state.guarded", severity=Severity.WARN, corrections=corrections, intent=intent)

    def booking_attempted(self) -> None:
        self._emit("booking.attempted")

    def booking_completed(self, ok: bool, status: Optional[int], category: Optional[str], latency_ms: int) -> None:
        self._emit(
            "booking.completed",
            severity=Severity.INFO if ok else Severity.ERROR,
            ok=ok,
            status=status,
            category=category,
            latency_ms=latency_ms,
        )

    def booking_skipped(self, reason: str) -> None:
        self._emit("booking.skipped", reason=reason)

    def state_persisted(self, intent: str, trip_created: bool, ttl_seconds: int) -> None:
        self._emit(
            "state.persisted",
            intent=intent,
            trip_created=trip_created,
            ttl_seconds=ttl_seconds,
            latency_ms=self._elapsed_ms(self._step_start),
        )

    def tts_completed(self, audio_file: str, fallback: bool) -> None:
        self._emit(
            "tts.completed",
            severity=Severity.WARN if fallback else Severity.INFO,
            audio_file=audio_file,
            fallback=fallback,
            latency_ms=self._elapsed_ms(self._step_start),
        )

    def signal_sent(self, ok: bool) -> None:
        self._emit(
            "signal.sent" if ok else "signal.failed",
            severity=Severity.INFO if ok else Severity.WARN,
            latency_ms=self._elapsed_ms(self._step_start),
        )

    def turn_completed(self, intent: str, trip_created: bool) -> None:
        self._emit(
            "turn.completed",
            intent=intent,
            trip_created=trip_created,
            latency_ms=self._elapsed_ms(self._turn_start),
        )

    def turn_failed(self, category: str, error_type: str) -> None:
        self._emit(
            "turn.failed",
            severity=Severity.ERROR,
            category=category,
            error_type=error_type,
            latency_ms=self._elapsed_ms(self._turn_start),
        )
