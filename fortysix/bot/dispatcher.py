"""Per-identity serialized dispatch of message jobs."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Awaitable, Callable

from loguru import logger

Job = Callable[[], Awaitable[None]]


class KeyedDispatcher:
    """
    Run jobs one at a time per key, concurrently across keys.

    Each key gets a worker task while it has queued jobs; the worker exits
    as soon as the queue is empty. A failing or self-cancelled job is logged
    and does not stop the jobs queued behind it. Cancelling the worker drops
    what is still queued for that key, with a warning.
    """

    def __init__(self) -> None:
        self._queues: dict[str, deque[Job]] = {}
        self._workers: dict[str, asyncio.Task] = {}

    def submit(self, key: str, job: Job) -> None:
        queue = self._queues.get(key)
        if queue is not None:
            queue.append(job)
            return
        queue = deque([job])
        self._queues[key] = queue
        self._workers[key] = asyncio.create_task(self._drain(key, queue))

    async def _drain(self, key: str, queue: deque[Job]) -> None:
        try:
            while queue:
                job = queue.popleft()
                try:
                    await job()
                except asyncio.CancelledError:
                    task = asyncio.current_task()
                    if task is not None and task.cancelling():
                        if queue:
                            logger.warning(f"Dropping {len(queue)} queued message(s) for {key}")
                        raise
                    logger.warning(f"Message job for {key} was cancelled; continuing")
                except Exception as e:
                    logger.exception(f"Error processing message for {key}: {e}")
        finally:
            # No await between the last empty check and here, so no job can slip in.
            self._queues.pop(key, None)
            self._workers.pop(key, None)

    @property
    def active_keys(self) -> list[str]:
        return list(self._workers)

    async def join(self) -> None:
        """Wait until every queued job has finished."""
        while self._workers:
            await asyncio.gather(*list(self._workers.values()), return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding work."""
        workers = list(self._workers.values())
        for task in workers:
            task.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)
        self._queues.clear()
        self._workers.clear()
