from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Set

from .constants import DEFAULT_TRUST_UPDATE_ATTEMPTS, DEFAULT_TRUST_UPDATE_BACKOFF_SECONDS

logger = logging.getLogger(__name__)

JobFactory = Callable[[], Awaitable[Any]]


class BackgroundTaskQueue:
    """Fire-and-forget jobs with retry, kept referenced until they settle so they can be drained."""

    def __init__(
        self,
        *,
        attempts: int = DEFAULT_TRUST_UPDATE_ATTEMPTS,
        backoff_seconds: float = DEFAULT_TRUST_UPDATE_BACKOFF_SECONDS,
        max_backoff_seconds: float = 30.0,
        failed_history: int = 100,
    ) -> None:
        self._attempts = max(1, int(attempts))
        self._backoff_seconds = max(0.0, float(backoff_seconds))
        self._max_backoff_seconds = max(self._backoff_seconds, float(max_backoff_seconds))
        self._tasks: Set["asyncio.Task[bool]"] = set()
        self.failed_jobs: Deque[str] = deque(maxlen=max(1, int(failed_history)))

    @property
    def pending_count(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    def submit(self, name: str, factory: JobFactory) -> "asyncio.Task[bool]":
        """Schedule ``factory()`` on the running loop; a fresh awaitable is built for every attempt."""
        task = asyncio.get_running_loop().create_task(self._run(name, factory), name=f"background:{name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(self, name: str, factory: JobFactory) -> bool:
        for attempt in range(1, self._attempts + 1):
            try:
                await factory()
                return True
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                if attempt >= self._attempts:
                    logger.error(
                        "BACKGROUND_JOB_FAILED job=%s attempts=%d error=%s",
                        name,
                        attempt,
                        exc,
                        exc_info=True,
                    )
                    self.failed_jobs.append(name)
                    return False
                delay = min(self._max_backoff_seconds, self._backoff_seconds * (2 ** (attempt - 1)))
                logger.warning(
                    "BACKGROUND_JOB_RETRY job=%s attempt=%d delay=%.2f error=%s",
                    name,
                    attempt,
                    delay,
                    exc,
                )
                await asyncio.sleep(delay)
        return False
