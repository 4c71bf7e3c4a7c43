"""Per-query correlation ids scoped through contextvars.

Each inbound query runs inside its own copied context, so the id set for it is
visible to every coroutine and callback reachable from that query (asyncio
tasks copy the current context when created) and invisible to every other
query being processed at the same time.
"""

from __future__ import annotations

import contextlib
import contextvars
import uuid
from typing import Any, Awaitable, Callable, Iterator, Optional, TypeVar

T = TypeVar("T")

_request_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "splitdns_request_id", default=None
)


def new_request_id() -> str:
    return str(uuid.uuid4())


def get_current_id() -> Optional[str]:
    """
    Brief: Return the correlation id of the enclosing request scope.

    Inputs:
      - None

    Outputs:
      - str id, or None when called outside any scope.
    """
    return _request_id.get()


@contextlib.contextmanager
def request_context(req_id: Optional[str] = None) -> Iterator[str]:
    """
    Brief: Scope a correlation id over a synchronous block.

    Inputs:
      - req_id: explicit id, or None to generate a fresh one.

    Outputs:
      - yields the active id; the previous id is restored on exit.

    Example:
        >>> with request_context("abc") as rid:
        ...     get_current_id() == rid
        True
        >>> get_current_id() is None
        True
    """
    rid = req_id or new_request_id()
    token = _request_id.set(rid)
    try:
        yield rid
    finally:
        _request_id.reset(token)


def with_new_context(fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Brief: Call fn inside a fresh context holding a new correlation id.

    Inputs:
      - fn: callable to run; its positional/keyword args follow.

    Outputs:
      - whatever fn returns. When fn is a coroutine function the returned
        coroutine keeps the context only for code run during this call; use
        with_new_context_async to scope the whole coroutine.
    """
    ctx = contextvars.copy_context()

    def _run() -> T:
        _request_id.set(new_request_id())
        return fn(*args, **kwargs)

    return ctx.run(_run)


async def with_new_context_async(
    fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
) -> T:
    """
    Brief: Await fn(*args, **kwargs) with a new correlation id in scope.

    Inputs:
      - fn: coroutine function.

    Outputs:
      - the awaited result of fn. The id covers every await in fn and every
        task fn creates, and is reset when fn finishes.
    """
    token = _request_id.set(new_request_id())
    try:
        return await fn(*args, **kwargs)
    finally:
        _request_id.reset(token)
