"""
Structured JSON logging shared by the gateway and the turn pipeline.

One JSON object per line: timestamp, severity, component and message,
then caller correlation and any keyword fields passed by the caller.

Correlation:
- `get_logger(component, session_id=phone)` / `.with_session(phone)` bind a
  caller explicitly.
- Inside `bind_turn(phone, turn_id)` every StructuredLogger record carries
  session_id and turn_id, including records from provider adapters that
  never see the caller. The binding is a contextvar, so it follows the
  turn's asyncio task and nothing else.

Caller phone and name are only logged through the *_pii helpers, which put
them in a separate "pii" field; `setup_logging(include_pii=False)` masks
its values.
"""

import contextvars
import json
import logging
import os
import re
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from functools import partialmethod
from typing import Any, Dict, Iterator, Optional


class Component(str, Enum):
    """System components for log tagging."""
    GATEWAY = "gateway"
    ORCHESTRATOR = "orchestrator"
    SESSION_STORE = "session_store"
    KNOWLEDGE = "knowledge"
    EMBEDDINGS = "embeddings"
    STT = "stt"
    LLM = "llm"
    TTS = "tts"
    BOOKING = "booking"
    SIGNALING = "signaling"


_turn_context: contextvars.ContextVar[Dict[str, str]] = contextvars.ContextVar("turn_context", default={})


@contextmanager
def bind_turn(phone: str, turn_id: str) -> Iterator[None]:
    """Tag every log record emitted in this context with the caller and turn."""
    token = _turn_context.set({"session_id": phone, "turn_id": turn_id})
    try:
        yield
    finally:
        _turn_context.reset(token)


def current_turn() -> Dict[str, str]:
    return dict(_turn_context.get())


# Attributes every LogRecord has; anything else on a record is a caller field
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message", "asctime", "component", "session_id",
}


def _color_enabled() -> bool:
    if os.environ.get("NO_COLOR", "").lower() in ("1", "true", "yes"):
        return False
    if os.environ.get("FORCE_COLOR", "").lower() in ("1", "true", "yes"):
        return True
    try:
        return sys.stdout.isatty()
    except (AttributeError, OSError):
        return False


class JSONFormatter(logging.Formatter):
    """
    Renders a record as a single JSON object.

    On a terminal latency_ms is shown as an orange "<n> ms"; with NO_COLOR
    set (or when not on a TTY) it stays a plain number so lines parse.
    """

    ORANGE = "\033[38;5;208m"
    RESET = "\033[0m"
    _LATENCY = re.compile(r'("latency_ms"\s*:\s*)(\d+)')

    def __init__(self, include_pii: bool = True):
        super().__init__()
        self.include_pii = include_pii

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "severity": record.levelname.lower(),
            "component": getattr(record, "component", record.name),
            "message": record.getMessage(),
        }
        if hasattr(record, "session_id"):
            entry["session_id"] = record.session_id
        entry.update((k, v) for k, v in vars(record).items() if k not in _RECORD_ATTRS)

        if not self.include_pii and isinstance(entry.get("pii"), dict):
            entry["pii"] = {key: "[masked]" for key in entry["pii"]}
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        line = json.dumps(entry, ensure_ascii=False, default=str)
        if "latency_ms" in entry and _color_enabled():
            line = self._LATENCY.sub(rf"\1{self.ORANGE}\2 ms{self.RESET}", line)
        return line


class StructuredLogger:
    """
    Component-tagged logger taking keyword fields.

        log = get_logger(Component.BOOKING)
        log.info("Trip creation response", status=201, latency_ms=84)
        log.info_pii("New session", phone="9999999999", name="Asha")

    Precedence for session_id: explicit keyword > bound session > turn context.
    """

    def __init__(
        self,
        component: str | Component,
        session_id: Optional[str] = None,
        logger_name: Optional[str] = None,
    ):
        self.component = component.value if isinstance(component, Component) else component
        self.session_id = session_id
        self.logger = logging.getLogger(logger_name or self.component)

    def _log(self, level: int, message: str, *, pii: Optional[Dict[str, Any]] = None, **fields):
        if not self.logger.isEnabledFor(level):
            return
        exc_info = fields.pop("exc_info", None)
        stack_info = fields.pop("stack_info", False)

        extra = {**current_turn(), "component": self.component}
        if self.session_id:
            extra["session_id"] = self.session_id
        extra.update(fields)
        if pii:
            extra["pii"] = pii

        self.logger.log(level, message, exc_info=exc_info, stack_info=stack_info, extra=extra)

    debug = partialmethod(_log, logging.DEBUG)
    info = partialmethod(_log, logging.INFO)
    warning = partialmethod(_log, logging.WARNING)
    error = partialmethod(_log, logging.ERROR)
    critical = partialmethod(_log, logging.CRITICAL)

    def exception(self, message: str, **fields):
        """error() with the active exception's traceback attached."""
        fields.setdefault("exc_info", True)
        self._log(logging.ERROR, message, **fields)

    def debug_pii(self, message: str, **pii_fields):
        self._log(logging.DEBUG, message, pii=pii_fields)

    def info_pii(self, message: str, **pii_fields):
        self._log(logging.INFO, message, pii=pii_fields)

    def with_session(self, session_id: str) -> "StructuredLogger":
        return StructuredLogger(self.component, session_id=session_id, logger_name=self.logger.name)


def setup_logging(
    level: str = "INFO",
    use_json: bool = True,
    include_timestamp: bool = True,
    include_pii: bool = True,
) -> None:
    """
    Replace the root logger's handlers with a single stdout handler.
    Call once at process startup.
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if use_json:
        formatter: logging.Formatter = JSONFormatter(include_pii=include_pii)
    else:
        fmt = "%(levelname)s - %(component)s - %(message)s"
        if include_timestamp:
            fmt = "%(asctime)s - " + fmt
        formatter = logging.Formatter(fmt, defaults={"component": "-"})

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))


def get_logger(component: str | Component, session_id: Optional[str] = None) -> StructuredLogger:
    return StructuredLogger(component, session_id=session_id)
