"""
Turn pipeline configuration.

Loads provider configuration from environment variables. `.env_local` /
`.env.local` at the repository root are loaded first (without overriding
variables that are already exported).
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent.parent


def load_env_files() -> None:
    for name in (".env_local", ".env.local"):
        p = ROOT_DIR / name
        if p.exists():
            load_dotenv(p, override=False)


def _clean_env(key: str) -> Optional[str]:
    """
    Read an environment variable, stripping trailing comments and whitespace.

    "300  # five minutes" -> "300"
    """
    value = os.environ.get(key)
    if not value:
        return None
    if "#" in value:
        value = value.split("#")[0]
    value = value.strip()
    return value or None


def _parse_int_env(key: str, default: int) -> int:
    value = _clean_env(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_float_env(key: str, default: float) -> float:
    value = _clean_env(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _parse_bool_env(key: str, default: bool) -> bool:
    value = _clean_env(key)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


@dataclass
class PipelineConfig:
    """Turn pipeline configuration."""

    # LiveKit (signaling + token issuance)
    livekit_url: str
    livekit_api_key: str
    livekit_api_secret: str

    # Groq (STT + reasoning)
    groq_api_key: str

    # Google (TTS + embeddings)
    google_api_key: str

    groq_model_llm: str = "llama-3.3-70b-versatile"
    groq_model_stt: str = "whisper-large-v3"
    groq_base_url: str = "https://api.groq.com/openai/v1"

    google_tts_api_key: Optional[str] = None
    google_tts_voice: str = "en-US-Chirp3-HD-Aoede"
    google_tts_voice_hi: str = "hi-IN-Chirp3-HD-Aoede"
    embedding_model: str = "text-embedding-004"
    embedding_dim: int = 768

    # Storage
    redis_url: str = "redis://localhost:6379/0"
    session_backend: str = "redis"  # "redis" | "memory"
    knowledge_backend: str = "redis"  # "redis" | "memory"
    knowledge_index_name: str = "cabswale_knowledge_idx"
    session_ttl_seconds: int = 300
    knowledge_top_k: int = 2

    # Booking side effect
    booking_url: str = "http://localhost:6969/createTrip"

    # Per-call timeouts in seconds
    stt_timeout: float = 15.0
    llm_timeout: float = 20.0
    embedding_timeout: float = 5.0
    tts_timeout: float = 10.0
    booking_timeout: float = 5.0
    signal_timeout: float = 5.0
    redis_timeout: float = 3.0

    # Audio storage
    audio_dir: str = str(ROOT_DIR / "audio")
    default_audio_file: str = "general.mp3"

    agent_scenario: str = "default"

    @property
    def tts_api_key(self) -> str:
        return self.google_tts_api_key or self.google_api_key

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Load configuration from environment variables."""
        return cls(
            livekit_url=os.environ["LIVEKIT_URL"],
            livekit_api_key=os.environ["LIVEKIT_API_KEY"],
            livekit_api_secret=os.environ["LIVEKIT_API_SECRET"],
            groq_api_key=os.environ["GROQ_API_KEY"],
            google_api_key=os.environ["GOOGLE_API_KEY"],
            groq_model_llm=os.environ.get("GROQ_MODEL_LLM", "llama-3.3-70b-versatile"),
            groq_model_stt=os.environ.get("GROQ_MODEL_STT", "whisper-large-v3"),
            groq_base_url=os.environ.get("GROQ_BASE_URL", "https://api.groq.com/openai/v1").rstrip("/"),
            google_tts_api_key=os.environ.get("GOOGLE_TTS_API_KEY"),
            google_tts_voice=os.environ.get("GOOGLE_TTS_VOICE", "en-US-Chirp3-HD-Aoede"),
            google_tts_voice_hi=os.environ.get("GOOGLE_TTS_VOICE_HI", "hi-IN-Chirp3-HD-Aoede"),
            embedding_model=os.environ.get("EMBEDDING_MODEL", "text-embedding-004"),
            embedding_dim=_parse_int_env("EMBEDDING_DIM", default=768),
            redis_url=os.environ.get("REDIS_URL", "redis://localhost:6379/0"),
            session_backend=os.environ.get("SESSION_BACKEND", "redis").lower(),
            knowledge_backend=os.environ.get("KNOWLEDGE_BACKEND", "redis").lower(),
            knowledge_index_name=os.environ.get("KNOWLEDGE_INDEX_NAME", "cabswale_knowledge_idx"),
            session_ttl_seconds=_parse_int_env("SESSION_TTL_SECONDS", default=300),
            knowledge_top_k=_parse_int_env("KNOWLEDGE_TOP_K", default=2),
            booking_url=os.environ.get("BOOKING_URL", "http://localhost:6969/createTrip"),
            stt_timeout=_parse_float_env("STT_TIMEOUT", default=15.0),
            llm_timeout=_parse_float_env("LLM_TIMEOUT", default=20.0),
            embedding_timeout=_parse_float_env("EMBEDDING_TIMEOUT", default=5.0),
            tts_timeout=_parse_float_env("TTS_TIMEOUT", default=10.0),
            booking_timeout=_parse_float_env("BOOKING_TIMEOUT", default=5.0),
            signal_timeout=_parse_float_env("SIGNAL_TIMEOUT", default=5.0),
            redis_timeout=_parse_float_env("REDIS_TIMEOUT", default=3.0),
            audio_dir=os.environ.get("AUDIO_DIR", str(ROOT_DIR / "audio")),
            default_audio_file=os.environ.get("DEFAULT_AUDIO_FILE", "general.mp3"),
            agent_scenario=os.environ.get("AGENT_SCENARIO", "default"),
        )


@dataclass
class GatewayConfig:
    """HTTP gateway settings."""

    host: str = "0.0.0.0"
    port: int = 8000
    cors_allow_origins: tuple = ("*",)
    log_level: str = "INFO"
    log_json: bool = True
    log_include_pii: bool = True
    knowledge_seed_file: str = str(ROOT_DIR / "trip_gateway" / "seed_documents.yaml")

    @classmethod
    def from_env(cls) -> "GatewayConfig":
        origins = os.environ.get("CORS_ALLOW_ORIGINS", "*")
        return cls(
            host=os.environ.get("HOST", "0.0.0.0"),
            port=_parse_int_env("PORT", default=8000),
            cors_allow_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            log_json=_parse_bool_env("LOG_JSON", default=True),
            log_include_pii=_parse_bool_env("LOG_INCLUDE_PII", default=True),
            knowledge_seed_file=os.environ.get(
                "KNOWLEDGE_SEED_FILE", str(ROOT_DIR / "trip_gateway" / "seed_documents.yaml")
            ),
        )


def get_config() -> PipelineConfig:
    """Get or create the global pipeline config instance."""
    global _config
    if _config is None:
        load_env_files()
        _config = PipelineConfig.from_env()
    return _config


def get_gateway_config() -> GatewayConfig:
    global _gateway_config
    if _gateway_config is None:
        load_env_files()
        _gateway_config = GatewayConfig.from_env()
    return _gateway_config


# Global config instances (lazy loaded)
_config: Optional[PipelineConfig] = None
_gateway_config: Optional[GatewayConfig] = None
