"""
Real-time signaling over LiveKit.

Each caller has a room trip_<phone>. After every turn a reliable data packet
on topic "trip_intent" tells connected clients the new intent, the audio to
play, the reply text and the full trip state. Clients join with a token from
create_access_token().
"""
from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Dict

from livekit import api
from livekit.protocol import models as lk_models
from livekit.protocol import room as lk_room

from logging_setup import get_logger, Component
from .errors import classify_error, redact_detail
from .state import TripState

logger = get_logger(Component.SIGNALING)

SIGNAL_TOPIC = "trip_intent"


def room_name_for(phone: str) -> str:
    return f"trip_{phone}"


def build_signal_payload(state: TripState, audio_file: str, text: str) -> Dict[str, Any]:
    return {
        "type": SIGNAL_TOPIC,
        "intent": state.intent.value,
        "audioFile": audio_file,
        "audioUrl": f"/audio/{audio_file}",
        "text": text,
        "tripState": state.to_dict(),
    }


def create_access_token(api_key: str, api_secret: str, *, room: str, identity: str, name: str) -> str:
    """JWT allowing `identity` to join `room` and receive data packets."""
    return (
        api.AccessToken(api_key, api_secret)
        .with_identity(identity)
        .with_name(name)
        .with_grants(api.VideoGrants(room_join=True, room=room, can_subscribe=True, can_publish_data=True))
        .to_jwt()
    )


class LiveKitSignaler:
    def __init__(self, *, url: str, api_key: str, api_secret: str, timeout_seconds: float = 5.0):
        self._url = url
        self._api_key = api_key
        self._api_secret = api_secret
        self._timeout = timeout_seconds

    def issue_token(self, *, phone: str, name: str) -> str:
        return create_access_token(
            self._api_key,
            self._api_secret,
            room=room_name_for(phone),
            identity=phone,
            name=name,
        )

    async def _send(self, room: str, data: bytes) -> None:
        lk = api.LiveKitAPI(
            url=self._url,
            api_key=self._api_key,
            api_secret=self._api_secret,
        )
        try:
            await lk.room.send_data(lk_room.SendDataRequest(
                room=room,
                data=data,
                kind=lk_models.DataPacket.Kind.RELIABLE,
                topic=SIGNAL_TOPIC,
            ))
        finally:
            await lk.aclose()

    async def publish(self, phone: str, payload: Dict[str, Any]) -> bool:
        """
        Best-effort publish to the caller's room. Returns True on success;
        failures are logged and reported as False, never raised.
        """
        room = room_name_for(phone)
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        t_start = time.perf_counter()
        try:
            await asyncio.wait_for(self._send(room, data), timeout=self._timeout)
        except Exception as e:
            logger.warning(
                "Signal publish failed",
                room=room,
                category=classify_error(e),
                error=redact_detail(e),
                error_type=type(e).__name__,
                latency_ms=int((time.perf_counter() - t_start) * 1000),
            )
            return False

        logger.info(
            "Signal published",
            room=room,
            intent=payload.get("intent"),
            payload_bytes=len(data),
            latency_ms=int((time.perf_counter() - t_start) * 1000),
        )
        return True
