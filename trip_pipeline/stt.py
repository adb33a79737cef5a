"""
Speech-to-text via Groq's OpenAI-compatible transcription endpoint (Whisper).

Input: one audio blob + mime type. Output: transcript text.
Any failure, including an empty transcript, is fatal to the turn.
"""
from __future__ import annotations

import time
from typing import Optional

import aiohttp

from logging_setup import get_logger, Component
from .errors import ProviderError, TranscriptionError, classify_error, redact_detail
from .http_pool import HttpPool, timeout

logger = get_logger(Component.STT)


class GroqTranscriber:
    def __init__(
        self,
        *,
        pool: HttpPool,
        api_key: str,
        model: str = "whisper-large-v3",
        base_url: str = "https://api.groq.com/openai/v1",
        timeout_seconds: float = 15.0,
        language: Optional[str] = None,
    ):
        self._pool = pool
        self._api_key = api_key
        self._model = model
        self._url = f"{base_url.rstrip('/')}/audio/transcriptions"
        self._timeout = timeout_seconds
        self._language = language

    async def transcribe(
        self,
        audio: bytes,
        mime_type: str = "audio/webm",
        filename: str = "audio.webm",
    ) -> str:
        if not audio:
            raise TranscriptionError("Empty audio")

        form = aiohttp.FormData()
        form.add_field("file", audio, filename=filename, content_type=mime_type or "application/octet-stream")
        form.add_field("model", self._model)
        form.add_field("response_format", "json")
        form.add_field("temperature", "0")
        if self._language:
            form.add_field("language", self._language)

        t_start = time.perf_counter()
        try:
            session = self._pool.session()
            async with session.post(
                self._url,
                data=form,
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=timeout(self._timeout),
            ) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise ProviderError("groq_stt", response.status, error_text[:200])
                data = await response.json()
        except TranscriptionError:
            raise
        except Exception as e:
            logger.error(
                "Transcription failed",
                category=classify_error(e),
                error=redact_detail(e),
                error_type=type(e).__name__,
                latency_ms=int((time.perf_counter() - t_start) * 1000),
            )
            raise TranscriptionError(f"Transcription failed: {type(e).__name__}") from e

        text = (data.get("text") or "").strip()
        if not text:
            logger.warning("Transcription returned no text", audio_bytes=len(audio))
            raise TranscriptionError("Empty transcript")

        logger.info(
            "Transcription completed",
            model=self._model,
            audio_bytes=len(audio),
            text_length=len(text),
            latency_ms=int((time.perf_counter() - t_start) * 1000),
        )
        return text
