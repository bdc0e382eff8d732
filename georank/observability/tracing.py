"""Tracing helpers for ranking runs and geocoder calls."""
from __future__ import annotations

import contextlib
import time
from typing import Iterator, Optional

import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars


def _logger():
    return structlog.get_logger("georank.trace")


def set_context(*, ranking_id: str, entity_count: int) -> None:
    bind_contextvars(ranking_id=ranking_id)
    _logger().debug("trace_context", ranking_id=ranking_id, entity_count=entity_count)


def clear_context() -> None:
    unbind_contextvars("ranking_id")


@contextlib.contextmanager
def span(*, name: str, query: Optional[str] = None) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        _logger().info("trace_span", span=name, query=query, elapsed_ms=elapsed_ms)


def log_retry(attempt: int, *, query: str, reason: str) -> None:
    _logger().warning("geocode_retry", attempt=attempt, query=query, reason=reason)


def log_geocode_result(*, query: str, status: int, matched: bool, elapsed_ms: int) -> None:
    _logger().info(
        "geocode_result",
        query=query,
        status=status,
        matched=matched,
        elapsed_ms=elapsed_ms,
    )
