"""
Tests for pipeline and gateway configuration loading.
"""
import pytest

from trip_pipeline.config import GatewayConfig, PipelineConfig

REQUIRED = {
    "LIVEKIT_URL": "wss://trip.livekit.cloud",
    "LIVEKIT_API_KEY": "lk_key",
    "LIVEKIT_API_SECRET": "lk_secret",
    "GROQ_API_KEY": "gsk_key",
    "GOOGLE_API_KEY": "g_key",
}

OPTIONAL = (
    "REDIS_URL", "SESSION_BACKEND", "KNOWLEDGE_BACKEND", "SESSION_TTL_SECONDS", "KNOWLEDGE_TOP_K",
    "BOOKING_URL", "GOOGLE_TTS_API_KEY", "BOOKING_TIMEOUT", "DEFAULT_AUDIO_FILE", "GROQ_BASE_URL",
)


@pytest.fixture
def env(monkeypatch):
    for key in OPTIONAL:
        monkeypatch.delenv(key, raising=False)
    for key, value in REQUIRED.items():
        monkeypatch.setenv(key, value)
    return monkeypatch


def test_defaults(env):
    config = PipelineConfig.from_env()

    assert config.livekit_url == "wss://trip.livekit.cloud"
    assert config.session_ttl_seconds == 300
    assert config.knowledge_top_k == 2
    assert config.booking_url == "http://localhost:6969/createTrip"
    assert config.redis_url == "redis://localhost:6379/0"
    assert config.session_backend == "redis"
    assert config.default_audio_file == "general.mp3"
    assert config.tts_api_key == "g_key"


def test_overrides(env):
    env.setenv("SESSION_TTL_SECONDS", "600  # ten minutes")
    env.setenv("KNOWLEDGE_TOP_K", "4")
    env.setenv("SESSION_BACKEND", "MEMORY")
    env.setenv("BOOKING_TIMEOUT", "2.5")
    env.setenv("GOOGLE_TTS_API_KEY", "tts_key")
    env.setenv("GROQ_BASE_URL", "https://proxy.local/v1/")

    config = PipelineConfig.from_env()

    assert config.session_ttl_seconds == 600
    assert config.knowledge_top_k == 4
    assert config.session_backend == "memory"
    assert config.booking_timeout == 2.5
    assert config.tts_api_key == "tts_key"
    assert config.groq_base_url == "https://proxy.local/v1"


def test_invalid_numbers_fall_back(env):
    env.setenv("SESSION_TTL_SECONDS", "five minutes")
    env.setenv("BOOKING_TIMEOUT", "soon")

    config = PipelineConfig.from_env()

    assert config.session_ttl_seconds == 300
    assert config.booking_timeout == 5.0


@pytest.mark.parametrize("missing", sorted(REQUIRED))
def test_required_keys(env, missing):
    env.delenv(missing)
    with pytest.raises(KeyError):
        PipelineConfig.from_env()


def test_gateway_config(monkeypatch):
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "http://localhost:3000, https://app.example.com")
    monkeypatch.setenv("LOG_JSON", "false")
    monkeypatch.setenv("LOG_INCLUDE_PII", "no")

    config = GatewayConfig.from_env()

    assert config.port == 9000
    assert config.cors_allow_origins == ("http://localhost:3000", "https://app.example.com")
    assert config.log_json is False
    assert config.log_include_pii is False
