# app/core/logging.py
from __future__ import annotations

import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any, Callable, Dict

import structlog

from app.core.request_id import get_request_id, get_run_id

EventDict = Dict[str, Any]
Processor = Callable[[Any, str, EventDict], EventDict]

# Model, gateway and datastore credentials never reach the logs.
_SECRET_KEYS = frozenset(
    {
        "authorization", "api_key", "apikey", "openai_api_key", "token",
        "access_token", "password", "secret", "service_role_key",
        "supabase_service_role_key", "database_url",
    }
)
_DSN_PASSWORD_RE = re.compile(r"(?P<head>[a-z][a-z0-9+.-]*://[^:/@\s]+:)[^@\s]+@", re.IGNORECASE)
# Raw model replies and page texts end up in error events.
MAX_LOGGED_CHARS = 2000


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _scrub(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    value = _DSN_PASSWORD_RE.sub(r"\g<head>***@", value)
    if len(value) > MAX_LOGGED_CHARS:
        value = value[:MAX_LOGGED_CHARS] + "…[truncated]"
    return value


def _base_fields(service_name: str) -> Processor:
    def _inner(_: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("ts", datetime.now(timezone.utc).isoformat(timespec="milliseconds"))
        event_dict["level"] = str(event_dict.get("level") or method_name or "info").lower()
        event_dict.setdefault("service", service_name)
        return event_dict

    return _inner


def _correlation_ids(_: Any, __: str, event_dict: EventDict) -> EventDict:
    for key, value in (("request_id", get_request_id()), ("run_id", get_run_id())):
        if value:
            event_dict.setdefault(key, value)
    return event_dict


def guard_secrets(_: Any, __: str, event_dict: EventDict) -> EventDict:
    """Redact credential keys; mask DSN passwords and cap long strings elsewhere."""
    for key, value in list(event_dict.items()):
        if str(key).lower() in _SECRET_KEYS:
            event_dict[key] = "***redacted***"
        else:
            event_dict[key] = _scrub(value)
    return event_dict


_logger: structlog.BoundLogger | None = None


def configure_logging(service_name: str = "api", *, level: int | str = logging.INFO) -> None:
    """One structlog JSON stack shared by the API and the ingest worker."""
    global _logger
    level = _resolve_level(level)

    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr, force=True)

    structlog.configure(
        processors=[
            _base_fields(service_name),
            _correlation_ids,
            guard_secrets,
            structlog.processors.EventRenamer("event"),
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _logger = structlog.get_logger()


def get_logger() -> structlog.BoundLogger:
    if _logger is None:
        configure_logging("api")
    return _logger


logger = get_logger()
