"""Structlog-based logging helpers with contextual enrichment."""

from __future__ import annotations

import contextlib
import contextvars
import logging
import os
import sys
from typing import Any, Dict, Iterator, Mapping, MutableMapping, Sequence, TextIO

import structlog
from opentelemetry import trace

from common.redaction import Redactor

__all__ = [
    "configure_logging",
    "get_logger",
    "bind_log_context",
    "clear_log_context",
    "get_log_context",
    "log_context",
    "mask_value",
]


_CONTEXT_FIELDS: tuple[str, ...] = ("trace_id", "app_id", "member_id")
_LOG_CONTEXT: contextvars.ContextVar[dict[str, str] | None] = contextvars.ContextVar(
    "log_context", default=None
)


def _deployment_environment() -> str:
    """Return the deployment environment from supported environment variables."""

    return (
        os.getenv("DEPLOY_ENV")
        or os.getenv("DEPLOYMENT_ENVIRONMENT")
        or "unknown"
    )


_SERVICE_CONTEXT: dict[str, str] = {
    "service.name": os.getenv("SERVICE_NAME", "resource-vault"),
    "service.version": os.getenv("SERVICE_VERSION", "unknown"),
    "deployment.environment": _deployment_environment(),
}

_TIME_STAMPER = structlog.processors.TimeStamper(fmt="iso", key="timestamp")
_JSON_RENDERER = structlog.processors.JSONRenderer()
_CONFIGURED = False
_REDACTOR: Redactor | None = None
_CONFIGURED_STREAM: TextIO | None = None


def get_log_context() -> dict[str, str]:
    """Return a copy of the active logging context."""

    current = _LOG_CONTEXT.get()
    return dict(current) if current else {}


def clear_log_context() -> None:
    """Clear all contextual values from the logging context."""

    _LOG_CONTEXT.set({})


def _filter_allowed(data: Dict[str, object]) -> dict[str, str]:
    filtered: dict[str, str] = {}
    for key, value in data.items():
        if key not in _CONTEXT_FIELDS or value is None:
            continue
        filtered[key] = str(value)
    return filtered


def bind_log_context(**kwargs: object) -> contextvars.Token[dict[str, str] | None]:
    """Bind values to the logging context and return the reset token."""

    current = get_log_context()
    filtered = _filter_allowed(kwargs)
    merged = {**current, **filtered}
    return _LOG_CONTEXT.set(merged)


def _reset_log_context(token: contextvars.Token[dict[str, str] | None]) -> None:
    try:
        _LOG_CONTEXT.reset(token)
    except ValueError:
        clear_log_context()


@contextlib.contextmanager
def log_context(**kwargs: object) -> Iterator[None]:
    """Context manager for temporarily binding logging metadata."""

    token = bind_log_context(**kwargs)
    try:
        yield
    finally:
        _reset_log_context(token)


def mask_value(value: str | None) -> str:
    """Mask identifiers unless unmasked context has been opted in."""

    if not value:
        return "-"
    value = str(value)
    if len(value) <= 4:
        return "***"
    return f"{value[:2]}***{value[-2:]}"


def _masking_enabled() -> bool:
    from django.conf import settings  # imported lazily to avoid circular import

    if not settings.configured:
        return True
    return not getattr(settings, "LOGGING_ALLOW_UNMASKED_CONTEXT", False)


def _context_values(existing: Mapping[str, object]) -> dict[str, str]:
    """Active context fields that ``existing`` does not already carry."""

    context = get_log_context()
    if not context:
        return {}

    mask = _masking_enabled()
    values: dict[str, str] = {}
    for field in _CONTEXT_FIELDS:
        raw_value = context.get(field)
        if raw_value is None or existing.get(field) not in (None, ""):
            continue
        values[field] = mask_value(raw_value) if mask else str(raw_value)
    return values


def _context_processor(
    _: structlog.typing.WrappedLogger,
    __: str,
    event_dict: MutableMapping[str, object],
) -> MutableMapping[str, object]:
    event_dict.update(_context_values(event_dict))
    return event_dict


def _service_processor(
    _: structlog.typing.WrappedLogger,
    __: str,
    event_dict: MutableMapping[str, object],
) -> MutableMapping[str, object]:
    for key, value in _SERVICE_CONTEXT.items():
        event_dict.setdefault(key, value)
    return event_dict


def _otel_trace_processor(
    _: structlog.typing.WrappedLogger,
    __: str,
    event_dict: MutableMapping[str, object],
) -> MutableMapping[str, object]:
    span_context = trace.get_current_span().get_span_context()

    if not span_context.is_valid:
        event_dict.setdefault("trace_id", None)
        event_dict.setdefault("span_id", None)
        return event_dict

    event_dict["trace_id"] = f"{span_context.trace_id:032x}"
    event_dict["span_id"] = f"{span_context.span_id:016x}"
    return event_dict


def _shared_processors(redactor: Redactor) -> list[structlog.types.Processor]:
    return [
        _service_processor,
        _context_processor,
        structlog.stdlib.add_log_level,
        _TIME_STAMPER,
        _otel_trace_processor,
        redactor,
    ]


class _ContextAwareBoundLogger(structlog.stdlib.BoundLogger):
    """Bound logger that adds the active log context before any processor runs.

    The context therefore also reaches ``structlog.testing.capture_logs``.
    """

    def _process_event(
        self,
        method_name: str,
        event: str | None,
        event_kw: dict[str, Any],
    ) -> tuple[Sequence[Any], Mapping[str, Any]]:
        enrichment = _context_values({**self._context, **event_kw})
        return super()._process_event(method_name, event, {**event_kw, **enrichment})


def _configure_stdlib_logging(
    level: int,
    redactor: Redactor,
    stream: TextIO,
) -> None:
    handler = logging.StreamHandler(stream)
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=_JSON_RENDERER,
            foreign_pre_chain=_shared_processors(redactor),
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)


def _log_level_from_env() -> int:
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def configure_logging(stream: TextIO | None = None) -> None:
    """Configure structlog and stdlib logging once.

    Later calls only re-point the root handler when ``stream`` changes.
    """

    global _CONFIGURED, _REDACTOR, _CONFIGURED_STREAM

    active_stream = stream or sys.stderr
    level = _log_level_from_env()

    if _CONFIGURED:
        _REDACTOR = _REDACTOR or Redactor()
        if _CONFIGURED_STREAM is not active_stream:
            _configure_stdlib_logging(level, _REDACTOR, active_stream)
            _CONFIGURED_STREAM = active_stream
        return

    redactor = Redactor()
    _configure_stdlib_logging(level, redactor, active_stream)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_shared_processors(redactor),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=_ContextAwareBoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _REDACTOR = redactor
    _CONFIGURED = True
    _CONFIGURED_STREAM = active_stream


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to service context."""

    logger = structlog.get_logger(name) if name else structlog.get_logger()
    return logger.bind(**_SERVICE_CONTEXT)
