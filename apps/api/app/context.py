from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

from starlette.requests import Request

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


@contextmanager
def correlation_scope(correlation_id: str) -> Iterator[str]:
    """Bind ``correlation_id`` for log records, spans and events emitted inside the block."""

    token = _correlation_id.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _correlation_id.reset(token)


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def request_correlation_id(request: Request) -> str | None:
    return get_correlation_id() or getattr(getattr(request.state, "context", None), "correlation_id", None) or None
