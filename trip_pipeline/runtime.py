"""
Composition root: builds every client once at startup and wires them into
the orchestrator. Nothing in the pipeline creates its own clients.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from logging_setup import get_logger, Component
from .booking import BookingClient
from .config import PipelineConfig, get_config
from .embeddings import GoogleEmbeddingClient
from .http_pool import HttpPool
from .knowledge import InMemoryVectorBackend, KnowledgeIndex, RedisVectorBackend
from .orchestrator import TurnOrchestrator
from .reasoning import GroqReasoner, load_scenario
from .session_store import InMemorySessionStore, RedisSessionStore, SessionStore
from .signaling import LiveKitSignaler
from .stt import GroqTranscriber
from .tts import GoogleCloudTTS

logger = get_logger(Component.ORCHESTRATOR)


@dataclass
class PipelineServices:
    config: PipelineConfig
    pool: HttpPool
    sessions: SessionStore
    knowledge: KnowledgeIndex
    signaler: LiveKitSignaler
    synthesizer: GoogleCloudTTS
    orchestrator: TurnOrchestrator

    async def aclose(self) -> None:
        await self.orchestrator.drain()
        await self.sessions.aclose()
        await self.knowledge.aclose()
        await self.pool.aclose()


def _build_sessions(config: PipelineConfig) -> SessionStore:
    if config.session_backend == "memory":
        return InMemorySessionStore()
    return RedisSessionStore.from_url(config.redis_url, timeout=config.redis_timeout)


def _build_knowledge(config: PipelineConfig, pool: HttpPool) -> KnowledgeIndex:
    embedder = GoogleEmbeddingClient(
        pool=pool,
        api_key=config.google_api_key,
        model=config.embedding_model,
        dim=config.embedding_dim,
        timeout_seconds=config.embedding_timeout,
    )
    if config.knowledge_backend == "memory":
        backend = InMemoryVectorBackend(dim=config.embedding_dim)
    else:
        backend = RedisVectorBackend.from_url(
            config.redis_url,
            index_name=config.knowledge_index_name,
            dim=config.embedding_dim,
            timeout=config.redis_timeout,
        )
    return KnowledgeIndex(embedder, backend, default_k=config.knowledge_top_k)


def build_services(config: Optional[PipelineConfig] = None) -> PipelineServices:
    config = config or get_config()
    pool = HttpPool()
    scenario = load_scenario(config.agent_scenario)

    sessions = _build_sessions(config)
    knowledge = _build_knowledge(config, pool)
    signaler = LiveKitSignaler(
        url=config.livekit_url,
        api_key=config.livekit_api_key,
        api_secret=config.livekit_api_secret,
        timeout_seconds=config.signal_timeout,
    )
    synthesizer = GoogleCloudTTS(
        pool=pool,
        api_key=config.tts_api_key,
        audio_dir=config.audio_dir,
        voice_en=config.google_tts_voice,
        voice_hi=config.google_tts_voice_hi,
        default_audio_file=config.default_audio_file,
        timeout_seconds=config.tts_timeout,
    )
    orchestrator = TurnOrchestrator(
        sessions=sessions,
        knowledge=knowledge,
        transcriber=GroqTranscriber(
            pool=pool,
            api_key=config.groq_api_key,
            model=config.groq_model_stt,
            base_url=config.groq_base_url,
            timeout_seconds=config.stt_timeout,
        ),
        reasoner=GroqReasoner(
            pool=pool,
            api_key=config.groq_api_key,
            scenario=scenario,
            model=config.groq_model_llm,
            base_url=config.groq_base_url,
            timeout_seconds=config.llm_timeout,
        ),
        synthesizer=synthesizer,
        booking=BookingClient(pool=pool, url=config.booking_url, timeout_seconds=config.booking_timeout),
        signaler=signaler,
        scenario=scenario,
        session_ttl_seconds=config.session_ttl_seconds,
        knowledge_top_k=config.knowledge_top_k,
    )

    logger.info(
        "Pipeline services built",
        session_backend=config.session_backend,
        knowledge_backend=config.knowledge_backend,
        scenario=scenario.name,
        llm_model=config.groq_model_llm,
        stt_model=config.groq_model_stt,
    )
    return PipelineServices(
        config=config,
        pool=pool,
        sessions=sessions,
        knowledge=knowledge,
        signaler=signaler,
        synthesizer=synthesizer,
        orchestrator=orchestrator,
    )
