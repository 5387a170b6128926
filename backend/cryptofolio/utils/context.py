# backend/cryptofolio/utils/context.py
"""
Execution context management for the portfolio analytics engine.

This module provides context-local storage for the correlation ID that
ties together every log line of one unit of work (an enhanced report,
a bulk refresh run, a single recompute).

Uses Python's contextvars. Worker threads do NOT inherit context
automatically: code that fans out to a thread pool must submit
`contextvars.copy_context().run` so the ID follows the work.

Usage:
    from cryptofolio.utils.context import correlation_scope, get_correlation_id

    with correlation_scope("report-42"):
        ...
        get_correlation_id()  # "report-42"
"""

import uuid
from collections.abc import Callable, Iterator
from concurrent.futures import Executor, Future
from contextlib import contextmanager
from contextvars import ContextVar, copy_context
from typing import Any, TypeVar

T = TypeVar("T")

# =============================================================================
# CONTEXT VARIABLES
# =============================================================================

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


# =============================================================================
# CORRELATION ID
# =============================================================================

def get_correlation_id() -> str | None:
    """
    Get the current correlation ID.

    Returns:
        The correlation ID for the current unit of work, or None if not set.
    """
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current context."""
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    """Clear the correlation ID."""
    _correlation_id_var.set(None)


def new_correlation_id(prefix: str | None = None) -> str:
    """Generate a short random correlation ID, optionally prefixed."""
    token = uuid.uuid4().hex[:12]
    return f"{prefix}-{token}" if prefix else token


@contextmanager
def correlation_scope(correlation_id: str | None = None) -> Iterator[str]:
    """
    Bind a correlation ID for the duration of a block.

    An ID already bound by an outer scope is kept, so nested units of
    work (a recompute inside a bulk run) log under the outer ID.

    Args:
        correlation_id: ID to bind. Generated when None.

    Yields:
        The active correlation ID.
    """
    current = _correlation_id_var.get()
    if current is not None:
        yield current
        return

    token = _correlation_id_var.set(correlation_id or new_correlation_id())
    try:
        yield _correlation_id_var.get()
    finally:
        _correlation_id_var.reset(token)


# =============================================================================
# THREAD POOL PROPAGATION
# =============================================================================

def submit_with_context(
        executor: Executor,
        fn: Callable[..., T],
        *args: Any,
        **kwargs: Any,
) -> Future[T]:
    """
    Submit work to an executor so it runs inside a copy of the caller's context.

    A Context can only be entered by one thread at a time, so every
    submission gets its own copy.
    """
    ctx = copy_context()
    return executor.submit(ctx.run, fn, *args, **kwargs)
