from __future__ import annotations

import uuid
from contextvars import ContextVar

TRACE_HEADER = "X-Trace-Id"

_trace_id_var: ContextVar[str | None] = ContextVar("dealdesk_trace_id", default=None)


def new_trace_id() -> str:
    return uuid.uuid4().hex


def trace_id_from_header(candidate: str | None) -> str:
    value = (candidate or "").strip()
    return value[:128] if value else new_trace_id()


def bind_trace_id(trace_id: str) -> None:
    _trace_id_var.set(trace_id)


def current_trace_id() -> str:
    return _trace_id_var.get() or new_trace_id()


def bound_trace_id() -> str | None:
    return _trace_id_var.get()
