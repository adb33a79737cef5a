"""
Google Cloud Text-to-Speech via REST API (API key authentication).

Output: MP3 written to the audio directory; the adapter returns the file
name, which clients fetch from GET /audio/<name>. Synthesis never fails a
turn: on any error the shared default audio file name is returned.
"""
import asyncio
import base64
import re
import secrets
import time
from pathlib import Path

from logging_setup import get_logger, Component
from .errors import ProviderError, classify_error, redact_detail
from .http_pool import HttpPool, timeout

logger = get_logger(Component.TTS)

SYNTHESIZE_URL = "https://texttospeech.googleapis.com/v1/text:synthesize"

_DEVANAGARI = re.compile(r"[\u0900-\u097F]")


def detect_language_code(text: str) -> str:
    """hi-IN when the text contains Devanagari script, en-US otherwise."""
    return "hi-IN" if _DEVANAGARI.search(text or "") else "en-US"


def new_audio_filename() -> str:
    return f"response_{int(time.time() * 1000)}_{secrets.token_hex(3)}.mp3"


class GoogleCloudTTS:
    def __init__(
        self,
        *,
        pool: HttpPool,
        api_key: str,
        audio_dir: str,
        voice_en: str = "en-US-Chirp3-HD-Aoede",
        voice_hi: str = "hi-IN-Chirp3-HD-Aoede",
        default_audio_file: str = "general.mp3",
        timeout_seconds: float = 10.0,
        speaking_rate: float = 1.0,
    ):
        if not api_key:
            raise ValueError("Google Cloud TTS requires a valid API key in GOOGLE_TTS_API_KEY or GOOGLE_API_KEY")
        self._pool = pool
        self._api_key = api_key
        self.audio_dir = Path(audio_dir)
        self._voices = {"en-US": voice_en, "hi-IN": voice_hi}
        self.default_audio_file = default_audio_file
        self._timeout = timeout_seconds
        self._speaking_rate = speaking_rate

    async def synthesize(self, text: str, language_code: str = None) -> str:
        """Synthesize `text` and return the stored file name (or the default on failure)."""
        language_code = language_code or detect_language_code(text)
        payload = {
            "input": {"text": text},
            "voice": {
                "languageCode": language_code,
                "name": self._voices.get(language_code, self._voices["en-US"]),
            },
            "audioConfig": {
                "audioEncoding": "MP3",
                "speakingRate": self._speaking_rate,
            },
        }

        logger.debug("TTS call started", language=language_code, text_length=len(text))
        t_start = time.perf_counter()
        try:
            session = self._pool.session()
            async with session.post(
                SYNTHESIZE_URL,
                params={"key": self._api_key},
                json=payload,
                timeout=timeout(self._timeout),
            ) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise ProviderError("google_tts", response.status, error_text[:200])
                data = await response.json()

            audio_b64 = data.get("audioContent")
            if not audio_b64:
                raise ProviderError("google_tts", 200, "no audioContent in response")

            filename = new_audio_filename()
            await asyncio.to_thread(self._write, filename, base64.b64decode(audio_b64))
        except Exception as e:
            logger.warning(
                "TTS failed; using default audio",
                category=classify_error(e),
                error=redact_detail(e),
                error_type=type(e).__name__,
                default_audio=self.default_audio_file,
            )
            return self.default_audio_file

        logger.info(
            "TTS call completed",
            language=language_code,
            text_length=len(text),
            audio_file=filename,
            latency_ms=int((time.perf_counter() - t_start) * 1000),
        )
        return filename

    def _write(self, filename: str, audio: bytes) -> None:
        self.audio_dir.mkdir(parents=True, exist_ok=True)
        (self.audio_dir / filename).write_bytes(audio)
