"""Indexer interface and the shared async worker pool."""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Any, Awaitable, Callable, Iterable, List, Optional, TypeVar

from ..errors import TimeoutNonFatal

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Indexer:
    """Abstract base class for code indexing."""

    async def update_for_files(self, paths: Iterable[str]) -> Any:
        raise NotImplementedError


# Provider calls that outlive their timeout keep running here, not in the
# event loop's default executor.
PROVIDER_POOL_WORKERS = 8
PROVIDER_POOL = ThreadPoolExecutor(max_workers=PROVIDER_POOL_WORKERS, thread_name_prefix="ragsmith-provider")


async def run_with_deadline(
    fn: Callable[..., T], *args: Any, timeout: float, label: str, executor: Optional[Executor] = None
) -> T:
    """Run a blocking call on the provider pool; raise TimeoutNonFatal past the deadline."""
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(executor or PROVIDER_POOL, fn, *args)
    try:
        return await asyncio.wait_for(future, timeout)
    except asyncio.TimeoutError as e:
        raise TimeoutNonFatal(f"{label} timed out after {timeout}s") from e


async def call_with_timeout(
    fn: Callable[..., T], *args: Any, timeout: float, label: str, executor: Optional[Executor] = None
) -> Optional[T]:
    """Like run_with_deadline, but a timeout or failure yields None.

    The caller leaves the field unset.
    """
    try:
        return await run_with_deadline(fn, *args, timeout=timeout, label=label, executor=executor)
    except TimeoutNonFatal as e:
        logger.warning(str(e))
    except Exception as e:
        logger.warning(f"{label} failed: {e}")
    return None


async def run_pool(items: List[T], worker_fn: Callable[[T], Awaitable[None]], concurrency: int = 4) -> None:
    """Process items with a fixed number of workers sharing one queue."""
    if not items:
        return
    queue: asyncio.Queue = asyncio.Queue()
    for item in items:
        queue.put_nowait(item)

    async def worker() -> None:
        while True:
            try:
                item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            await worker_fn(item)

    await asyncio.gather(*(worker() for _ in range(max(1, min(concurrency, len(items))))))
