"""Detached background jobs with a retry policy.

Jobs started here are not tied to the request that submitted them: a client
disconnect cancels the streaming response but not the job.  Failures that
survive every retry are logged and recorded on the runner so they can be
observed (tests, health checks) instead of vanishing.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from loguru import logger

JobFactory = Callable[[], Awaitable[object]]


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently a job is retried.

    ``backoff[i]`` is the delay before attempt ``i + 2``; the last entry is
    reused when there are more attempts than delays.
    """

    max_attempts: int = 3
    backoff: tuple[float, ...] = (3.0, 3.0)

    def delay_before(self, attempt: int) -> float:
        """Delay before 1-based *attempt* (0 for the first one)."""
        if attempt <= 1 or not self.backoff:
            return 0.0
        return self.backoff[min(attempt - 2, len(self.backoff) - 1)]


NO_RETRY = RetryPolicy(max_attempts=1, backoff=())


@dataclass
class BackgroundFailure:
    name: str
    error: BaseException
    attempts: int
    failed_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class BackgroundTaskRunner:
    """Owns detached asyncio tasks and keeps strong references to them."""

    def __init__(self, on_failure: Callable[[BackgroundFailure], None] | None = None) -> None:
        self._tasks: set[asyncio.Task] = set()
        self.failures: list[BackgroundFailure] = []
        self._on_failure = on_failure

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, name: str, factory: JobFactory, retry: RetryPolicy = NO_RETRY) -> asyncio.Task:
        """Schedule *factory* to run in the background and return its task.

        *factory* is called once per attempt, so it must build a fresh
        awaitable every time.
        """
        task = asyncio.get_running_loop().create_task(self._run(name, factory, retry), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, name: str, factory: JobFactory, retry: RetryPolicy) -> None:
        for attempt in range(1, retry.max_attempts + 1):
            delay = retry.delay_before(attempt)
            if delay:
                await asyncio.sleep(delay)
            try:
                await factory()
            except Exception as exc:
                if attempt < retry.max_attempts:
                    logger.warning(
                        "Background job {} failed (attempt {}/{}): {}",
                        name,
                        attempt,
                        retry.max_attempts,
                        exc,
                    )
                    continue
                logger.opt(exception=exc).error(
                    "Background job {} gave up after {} attempt(s)", name, attempt
                )
                failure = BackgroundFailure(name=name, error=exc, attempts=attempt)
                self.failures.append(failure)
                if self._on_failure is not None:
                    self._on_failure(failure)
                return
            else:
                logger.debug("Background job {} done (attempt {})", name, attempt)
                return

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for all current jobs, cancelling whatever is left after *timeout*."""
        if not self._tasks:
            return
        tasks = list(self._tasks)
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Cancelled {} background job(s) still running at shutdown", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)
