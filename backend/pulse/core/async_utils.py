"""
Runs blocking analytics work off the event loop.

The services use a synchronous SQLAlchemy session and blocking HTTP calls to
the sentiment service. Request handlers and scheduler jobs hand that work to
one small shared thread pool; shutdown cancels whatever has not started.
"""
import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Callable, TypeVar, Optional, Set

logger = logging.getLogger(__name__)

T = TypeVar('T')

WORKERS = 2

_pool: Optional[ThreadPoolExecutor] = None
_in_flight: Set[asyncio.Future] = set()
_closing = False


def get_thread_pool() -> ThreadPoolExecutor:
    global _pool
    if _pool is None:
        _pool = ThreadPoolExecutor(max_workers=WORKERS, thread_name_prefix="pulse_worker_")
    return _pool


async def run_in_thread(func: Callable[..., T], *args, **kwargs) -> T:
    """
    Await `func(*args, **kwargs)` run on the worker pool.

    Example:
        summary = await run_in_thread(batch.run_alert_pass, workspace_id)

    Raises:
        asyncio.CancelledError: The pool is shutting down
    """
    if _closing:
        raise asyncio.CancelledError("Worker pool is shutting down")

    future = asyncio.get_running_loop().run_in_executor(get_thread_pool(), partial(func, *args, **kwargs))
    _in_flight.add(future)
    try:
        return await future
    finally:
        _in_flight.discard(future)


def shutdown_thread_pool(wait: bool = False):
    """Refuse new work, cancel queued work and stop the pool; `wait` blocks on running passes."""
    global _pool, _closing
    _closing = True
    if _pool is None:
        return

    cancelled = sum(1 for future in list(_in_flight) if future.cancel())
    _pool.shutdown(wait=wait, cancel_futures=True)
    _pool = None
    logger.info(f"Worker pool shut down ({cancelled} pending calls cancelled)")
