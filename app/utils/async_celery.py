"""
Shared event loop for Celery tasks.

Celery workers call tasks synchronously; sync work is async end to end
(httpx, asyncpg). Reusing one loop per worker process keeps the asyncpg
connection pool bound to a live loop between task invocations.
"""
import asyncio
import logging
from typing import Any, Coroutine, TypeVar

logger = logging.getLogger(__name__)

_loop: asyncio.AbstractEventLoop | None = None

T = TypeVar("T")


def get_event_loop() -> asyncio.AbstractEventLoop:
    """Return the worker's shared loop, creating it if needed."""
    global _loop

    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
        asyncio.set_event_loop(_loop)
        logger.debug("Created shared event loop for Celery tasks")

    return _loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine to completion on the shared loop."""
    return get_event_loop().run_until_complete(coro)


def cleanup_event_loop() -> None:
    """Cancel pending tasks and close the shared loop (worker shutdown)."""
    global _loop

    if _loop is None or _loop.is_closed():
        _loop = None
        return

    try:
        pending = asyncio.all_tasks(_loop)
        for task in pending:
            task.cancel()
        if pending:
            _loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        _loop.close()
        logger.info("Shared event loop closed")
    finally:
        _loop = None
