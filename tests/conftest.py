"""
Shared fakes for pipeline and gateway tests. No network access.
"""
import hashlib
import math
from typing import Callable, List, Optional

import pytest

from observability.event_store import event_store
from trip_pipeline.booking import BookingOutcome
from trip_pipeline.errors import SessionStoreError
from trip_pipeline.knowledge import InMemoryVectorBackend, KnowledgeIndex
from trip_pipeline.orchestrator import TurnOrchestrator
from trip_pipeline.reasoning import load_scenario
from trip_pipeline.session_store import InMemorySessionStore, SessionStore
from trip_pipeline.state import TripState

EMBED_DIM = 16


class FakeEmbedder:
    """Deterministic bag-of-words hashing embedder."""

    dim = EMBED_DIM

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail:
            raise ConnectionError("embedding backend unreachable")
        vector = [0.0] * self.dim
        for word in text.lower().split():
            digest = hashlib.md5(word.strip(".,?!").encode()).digest()
            vector[digest[0] % self.dim] += 1.0
        norm = math.sqrt(sum(v * v for v in vector)) or 1.0
        return [v / norm for v in vector]


class FakeTranscriber:
    def __init__(self, text: str = "Hello", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.calls = 0

    async def transcribe(self, audio: bytes, mime_type: str = "audio/webm", filename: str = "audio.webm") -> str:
        self.calls += 1
        if self.error:
            raise self.error
        return self.text


class FakeReasoner:
    """Returns whatever `respond(transcript, state, knowledge)` builds."""

    def __init__(self, respond: Callable[[str, TripState, str], Optional[TripState]]):
        self.respond = respond
        self.calls: List[dict] = []

    async def next_state(self, transcript: str, state: TripState, knowledge: str) -> Optional[TripState]:
        self.calls.append({"transcript": transcript, "state": state, "knowledge": knowledge})
        return self.respond(transcript, state, knowledge)


class FakeSynthesizer:
    default_audio_file = "general.mp3"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.texts: List[str] = []

    async def synthesize(self, text: str, language_code: Optional[str] = None) -> str:
        self.texts.append(text)
        if self.fail:
            raise RuntimeError("tts down")
        return f"response_{len(self.texts)}.mp3"


class FakeBooker:
    """Answers with the given HTTP statuses in order (None = connection error)."""

    def __init__(self, *statuses: Optional[int]):
        self.statuses = list(statuses) or [200]
        self.calls: List[TripState] = []

    async def create_trip(self, state: TripState) -> BookingOutcome:
        self.calls.append(state)
        status = self.statuses[min(len(self.calls), len(self.statuses)) - 1]
        if status is None:
            return BookingOutcome(ok=False, category="provider.network_error")
        ok = 200 <= status < 300
        return BookingOutcome(ok=ok, status=status, category=None if ok else "booking.rejected")


class FakeSignaler:
    def __init__(self, fail: bool = False, raise_error: bool = False):
        self.fail = fail
        self.raise_error = raise_error
        self.published: List[tuple] = []

    async def publish(self, phone: str, payload: dict) -> bool:
        if self.raise_error:
            raise RuntimeError("livekit down")
        self.published.append((phone, payload))
        return not self.fail

    def issue_token(self, *, phone: str, name: str) -> str:
        return f"token-for-{phone}-{name}"


class UnreachableSessionStore(SessionStore):
    def __init__(self):
        self.puts = 0

    async def get(self, phone):
        raise SessionStoreError("connection refused")

    async def put(self, phone, state, ttl_seconds):
        self.puts += 1
        raise SessionStoreError("connection refused")


class Clock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def echo_state(intent: str = "greet", **changes) -> Callable[[str, TripState, str], TripState]:
    """Reasoner behaviour: current state with the given changes applied."""

    def respond(transcript: str, state: TripState, knowledge: str) -> TripState:
        data = state.to_dict()
        data["intent"] = intent
        data.update(changes)
        return TripState.model_validate(data)

    return respond


def booked_ready(**overrides) -> dict:
    """Changes that make a state complete and confirmed for booking."""
    changes = {
        "source": "Connaught Place",
        "destination": "Jaipur",
        "tripType": "one_way",
        "tripStartDate": "2026-10-21T09:00:00+05:30",
        "preferences": {"vehicleType": "suv", "language": "en"},
        "agentResponse": "",
    }
    changes.update(overrides)
    return changes


@pytest.fixture(autouse=True)
def clear_event_store():
    event_store.clear()
    yield
    event_store.clear()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def sessions(clock):
    return InMemorySessionStore(clock=clock)


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def knowledge(embedder):
    return KnowledgeIndex(embedder, InMemoryVectorBackend(dim=EMBED_DIM))


@pytest.fixture
def make_orchestrator(sessions, knowledge):
    def _make(
        reasoner,
        *,
        transcriber=None,
        booker=None,
        synthesizer=None,
        signaler=None,
        session_store=None,
    ) -> TurnOrchestrator:
        return TurnOrchestrator(
            sessions=session_store if session_store is not None else sessions,
            knowledge=knowledge,
            transcriber=transcriber or FakeTranscriber(),
            reasoner=reasoner,
            synthesizer=synthesizer or FakeSynthesizer(),
            booking=booker or FakeBooker(200),
            signaler=signaler or FakeSignaler(),
            scenario=load_scenario("default"),
            session_ttl_seconds=300,
            knowledge_top_k=2,
        )

    return _make

