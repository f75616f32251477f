"""Background sweep of expired idempotency entries.

The in-memory store already treats expired entries as absent when they are
accessed. Keys that are never touched again would still occupy memory until
the process ends, so this task periodically calls store.cleanup_expired().

Examples:
    Tie the task to the application lifespan::

        from contextlib import asynccontextmanager
        from fastapi import FastAPI

        store = MemoryIdempotencyStore()

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            task = await start_cleanup_task(store, config=IdempotencyConfig.from_env())
            yield
            await stop_cleanup_task(task)

        app = FastAPI(lifespan=lifespan)
"""

import asyncio

from idempotent_api.config import IdempotencyConfig
from idempotent_api.observability.logging import get_logger
from idempotent_api.observability.metrics import record_cleanup
from idempotent_api.storage.base import IdempotencyStore

logger = get_logger(__name__)


async def cleanup_loop(
    store: IdempotencyStore,
    interval_seconds: float = 300,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Sweep expired entries every ``interval_seconds`` until stopped.

    A failing sweep is logged and retried on the next interval; the loop only
    ends once ``stop_event`` is set.

    Args:
        store: Store to sweep
        interval_seconds: Time between sweeps
        stop_event: Event signalling the loop to stop
    """
    if stop_event is None:
        stop_event = asyncio.Event()

    logger.info("cleanup.started", interval_seconds=interval_seconds)

    while not stop_event.is_set():
        try:
            count = await store.cleanup_expired()
            record_cleanup(count)

            if count > 0:
                logger.info("cleanup.completed", records_removed=count)
            else:
                logger.debug("cleanup.completed", records_removed=0)

        except Exception as e:
            logger.error(
                "cleanup.failed",
                error=str(e),
                error_type=type(e).__name__,
            )

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            continue

    logger.info("cleanup.stopped")


async def start_cleanup_task(
    store: IdempotencyStore,
    config: IdempotencyConfig | None = None,
    interval_seconds: float | None = None,
) -> asyncio.Task[None]:
    """Start the cleanup loop as a background task.

    Args:
        store: Store to sweep
        config: Configuration supplying cleanup_interval_seconds
        interval_seconds: Time between sweeps, overriding the configuration

    Returns:
        The asyncio Task running the cleanup loop
    """
    if interval_seconds is None:
        interval_seconds = (config or IdempotencyConfig()).cleanup_interval_seconds

    stop_event = asyncio.Event()

    task = asyncio.create_task(
        cleanup_loop(store=store, interval_seconds=interval_seconds, stop_event=stop_event)
    )
    task._stop_event = stop_event  # type: ignore[attr-defined]

    return task


async def stop_cleanup_task(task: asyncio.Task[None], timeout: float = 5.0) -> None:
    """Signal the cleanup task to stop and wait for it.

    The task is cancelled if it does not stop within ``timeout`` seconds.
    """
    stop_event: asyncio.Event | None = getattr(task, "_stop_event", None)

    if stop_event:
        stop_event.set()

    try:
        await asyncio.wait_for(task, timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("cleanup.stop_timeout", timeout=timeout)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.debug("cleanup.cancelled")
