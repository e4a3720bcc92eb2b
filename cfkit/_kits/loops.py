import asyncio
from typing import Any, Coroutine, TypeVar

_T = TypeVar('_T')


def run(coro: Coroutine[Any, Any, _T]) -> _T:
    """
    Run a coroutine in a new, properly managed event loop, and close it after.

    If ``uvloop`` is installed, it is used. Otherwise, the stock asyncio loop is.

    This loop manager is usually used in CLI only, not deeper than that:
    the library's users run the clients in their own loops.
    """
    try:
        import uvloop
    except ImportError:
        return asyncio.run(coro)
    else:
        return uvloop.run(coro)
