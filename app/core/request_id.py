# app/core/request_id.py
from __future__ import annotations

import contextvars
import re
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

_request_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)
_run_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("run_id", default=None)

# Caller-supplied ids are echoed in headers and logs; only short tokens pass.
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def normalize_request_id(raw: Optional[str]) -> str:
    """The X-Request-Id sent by the caller when it is a plain token, else a fresh one."""
    candidate = (raw or "").strip()
    if _REQUEST_ID_RE.match(candidate):
        return candidate
    return uuid.uuid4().hex


def get_request_id() -> Optional[str]:
    return _request_id_ctx.get()


@contextmanager
def request_scope(request_id: str) -> Iterator[str]:
    token = _request_id_ctx.set(request_id)
    try:
        yield request_id
    finally:
        _request_id_ctx.reset(token)


def get_run_id() -> Optional[str]:
    return _run_id_ctx.get()


@contextmanager
def with_run_id(run_id: Optional[str] = None, *, prefix: str = "ingest") -> Iterator[str]:
    """
    Tag every log line of one ingestion run:
        with with_run_id():
            await ingest_news()
    """
    rid = run_id or f"{prefix}-{uuid.uuid4().hex[:12]}"
    token = _run_id_ctx.set(rid)
    try:
        yield rid
    finally:
        _run_id_ctx.reset(token)
