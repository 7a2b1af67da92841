"""
Structured logging for the practice simulation.

JSON logs for production, readable lines for dev.
Every line carries the current attempt_id when one is set.

Usage:
    from dooriq.logger import logger

    logger.set_attempt("a1b2c3")
    logger.info("Step accepted", state="DISCOVERY")
    logger.metric("reply_latency_ms", 420, state="OBJECTION")
"""

import logging
import json
import os
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from dooriq.settings import settings


# Context-local so parallel requests in the threadpool do not mix attempt ids
_attempt_id_var: ContextVar[Optional[str]] = ContextVar('attempt_id', default=None)
_extra_context_var: ContextVar[Optional[Dict[str, Any]]] = ContextVar('extra_context', default=None)


class StructuredLogger:
    """
    Structured logger with attempt tracing.

    - JSON format for production (LOG_FORMAT=json)
    - Readable format for development (default)
    - attempt_id added to every line
    - metric() and event() for analytics
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)

        if not self.logger.handlers:
            self._setup_logger()

    def _setup_logger(self) -> None:
        level_name = settings.get_nested("logging.level", "INFO")
        level = getattr(logging, level_name.upper(), logging.INFO)
        self.logger.setLevel(level)

        handler = logging.StreamHandler()
        handler.setLevel(level)

        log_format = os.environ.get("LOG_FORMAT", "readable")

        if log_format == "json":
            formatter = logging.Formatter("%(message)s")
        else:
            formatter = logging.Formatter(
                "[%(asctime)s] %(levelname)s - %(message)s",
                datefmt="%H:%M:%S"
            )

        handler.setFormatter(formatter)
        self.logger.addHandler(handler)

        self.logger.propagate = False

    @property
    def attempt_id(self) -> Optional[str]:
        return _attempt_id_var.get()

    def set_attempt(self, attempt_id: str) -> None:
        _attempt_id_var.set(attempt_id)

    def clear_attempt(self) -> None:
        _attempt_id_var.set(None)

    @property
    def _extra_context(self) -> Dict[str, Any]:
        ctx = _extra_context_var.get()
        if ctx is None:
            ctx = {}
            _extra_context_var.set(ctx)
        return ctx

    def set_context(self, **kwargs: Any) -> None:
        ctx = dict(self._extra_context)
        ctx.update(kwargs)
        _extra_context_var.set(ctx)

    def clear_context(self) -> None:
        _extra_context_var.set({})

    def _format_structured(self, level: str, message: str, **kwargs: Any) -> Dict[str, Any]:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level,
            "logger": self.name,
            "message": message,
        }

        if self.attempt_id:
            log_entry["attempt_id"] = self.attempt_id

        if self._extra_context:
            log_entry.update(self._extra_context)

        if kwargs:
            log_entry.update(kwargs)

        return log_entry

    def _should_use_json(self) -> bool:
        return os.environ.get("LOG_FORMAT", "readable") == "json"

    def _readable(self, message: str, **kwargs: Any) -> str:
        if kwargs:
            extras = ", ".join(f"{k}={v}" for k, v in kwargs.items())
            message = f"{message} [{extras}]"
        if self.attempt_id:
            message = f"[{self.attempt_id}] {message}"
        return message

    def _log(self, level: str, message: str, log_method, **kwargs: Any) -> None:
        if self._should_use_json():
            structured = self._format_structured(level, message, **kwargs)
            log_method(json.dumps(structured, ensure_ascii=False, default=str))
        else:
            log_method(self._readable(message, **kwargs))

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log("DEBUG", message, self.logger.debug, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log("INFO", message, self.logger.info, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log("WARNING", message, self.logger.warning, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log("ERROR", message, self.logger.error, **kwargs)

    def critical(self, message: str, **kwargs: Any) -> None:
        self._log("CRITICAL", message, self.logger.critical, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log with traceback"""
        if self._should_use_json():
            kwargs["traceback"] = traceback.format_exc()
            structured = self._format_structured("ERROR", message, **kwargs)
            self.logger.error(json.dumps(structured, ensure_ascii=False, default=str))
        else:
            self.logger.exception(self._readable(message, **kwargs))

    def metric(self, name: str, value: Any, **kwargs: Any) -> None:
        """
        Structured metric for analytics.

        Example:
            logger.metric("reply_latency_ms", 420, state="OBJECTION")
            logger.metric("session_score", 72, result="partial")
        """
        self._log("METRIC", name, self.logger.info, value=value, **kwargs)

    def event(self, event_type: str, **kwargs: Any) -> None:
        """
        Business event for analytics.

        Example:
            logger.event("state_transition", from_state="OPENING", to_state="DISCOVERY")
            logger.event("reply_fallback", reason="timeout")
        """
        self._log("EVENT", event_type, self.logger.info, **kwargs)


logger = StructuredLogger("dooriq")


def create_test_logger(name: str = "test") -> StructuredLogger:
    """Isolated logger for tests"""
    return StructuredLogger(f"dooriq.{name}")
