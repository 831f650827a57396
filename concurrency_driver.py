"""
Concurrency Driver
==================
Fans a round of N simultaneous invocations out to a RequestExecutor and
fans the outcomes back in.

- WorkerPool scopes workers and transport to one round: whatever happens,
  leaving the pool cancels stragglers and releases the connection pool.
- OutcomeCollector is the single consumer of a round's outcomes; workers only
  enqueue, so the counters have exactly one writer.
- Invocations still running at the round's collection deadline are abandoned
  and appear in neither counter (RoundSummary.unaccounted).
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional

from load_config import ConfigurationError, LoadTestConfig
from load_results import DetailedRoundResult, InvocationOutcome, RoundSummary
from request_executor import RequestExecutor
from round_stats import mean_ms, summarize

logger = logging.getLogger(__name__)

_DONE = object()


class WorkerPool:
    """
    Round-scoped pool of at most `size` concurrently running workers.

    Use as `async with WorkerPool(executor, size) as pool:`; tasks started
    with spawn() that are still running when the block exits are cancelled.
    """

    def __init__(self, executor: RequestExecutor, size: int):
        if size < 1:
            raise ConfigurationError("Worker pool size must be at least 1", details={"size": size})
        self.size = size
        self._executor = executor
        self._semaphore = asyncio.Semaphore(size)
        self._tasks: List[asyncio.Task] = []
        self._transport = None

    async def __aenter__(self) -> "WorkerPool":
        self._transport = self._executor.connection_pool(self.size)
        await self._transport.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        try:
            await self.cancel_outstanding()
        finally:
            await self._transport.__aexit__(exc_type, exc, tb)
        return False

    def spawn(self, fn: Callable[..., Awaitable[Any]], *args) -> asyncio.Task:
        async def bounded():
            async with self._semaphore:
                return await fn(*args)

        task = asyncio.create_task(bounded())
        self._tasks.append(task)
        return task

    @property
    def outstanding(self) -> List[asyncio.Task]:
        return [t for t in self._tasks if not t.done()]

    async def cancel_outstanding(self) -> int:
        pending = self.outstanding
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        return len(pending)


class OutcomeCollector:
    """
    Tallies outcomes pushed by workers through a queue.

    An outcome counts as a success when it succeeded and, if timeout_ms is
    set, finished within it. A None outcome (rejected URL) is a failure
    without a duration.
    """

    def __init__(self, timeout_ms: Optional[int] = None):
        self.timeout_ms = timeout_ms
        self.success = 0
        self.failed = 0
        self.durations_ms: List[int] = []
        self.outcomes: List[InvocationOutcome] = []
        self._queue: asyncio.Queue = asyncio.Queue()
        self._consumer: Optional[asyncio.Task] = None

    def start(self) -> "OutcomeCollector":
        self._consumer = asyncio.create_task(self._consume())
        return self

    def submit(self, outcome: Optional[InvocationOutcome]) -> None:
        self._queue.put_nowait(outcome)

    async def close(self) -> None:
        """Drain everything submitted so far and stop the consumer."""
        self._queue.put_nowait(_DONE)
        if self._consumer is not None:
            await self._consumer

    @property
    def average_ms(self) -> Optional[int]:
        return mean_ms(self.durations_ms) if self.durations_ms else None

    async def _consume(self) -> None:
        while True:
            item = await self._queue.get()
            if item is _DONE:
                return
            self._tally(item)

    def _tally(self, outcome: Optional[InvocationOutcome]) -> None:
        if outcome is None:
            self.failed += 1
            return
        self.outcomes.append(outcome)
        self.durations_ms.append(outcome.duration_ms)
        within = self.timeout_ms is None or outcome.duration_ms <= self.timeout_ms
        if outcome.succeeded and within:
            self.success += 1
        else:
            self.failed += 1


class ConcurrencyDriver:
    """Runs single rounds of concurrent invocations against one executor."""

    def __init__(self, executor: RequestExecutor):
        self.executor = executor

    async def invoke(self, config: LoadTestConfig, worker_id: int) -> Optional[InvocationOutcome]:
        """
        One invocation behind the worker boundary: any exception from the
        executor becomes a failed outcome instead of propagating.
        """
        started_at = datetime.now(timezone.utc)
        start = time.perf_counter()
        try:
            outcome = await self.executor.execute(config.target, config.verbose, worker_id)
        except Exception as e:
            logger.debug("Worker %d raised %s", worker_id, type(e).__name__, exc_info=True)
            outcome = InvocationOutcome(
                duration_ms=int((time.perf_counter() - start) * 1000),
                succeeded=False,
                status_code=0,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
                worker_id=worker_id,
                error_message=f"{type(e).__name__}: {e}",
                url=config.target.url,
                method=config.target.method,
            )

        if config.verbose:
            if outcome is None:
                logger.info("[worker %d] rejected %s", worker_id, config.target.url)
            else:
                logger.info("%s", outcome)
        return outcome

    async def _fan_out(
        self,
        config: LoadTestConfig,
        width: int,
        deadline_s: float,
        timeout_ms: Optional[int],
    ) -> OutcomeCollector:
        collector = OutcomeCollector(timeout_ms).start()

        async def worker(worker_id: int):
            collector.submit(await self.invoke(config, worker_id))

        try:
            async with WorkerPool(self.executor, width) as pool:
                # Every invocation is launched before any is awaited
                tasks = [pool.spawn(worker, i) for i in range(width)]
                _, pending = await asyncio.wait(tasks, timeout=deadline_s)
                if pending:
                    logger.warning(
                        "%d of %d invocations still running after %.1fs, abandoning them",
                        len(pending), width, deadline_s,
                    )
        finally:
            await collector.close()
        return collector

    async def run_concurrent(self, config: LoadTestConfig, width: int) -> RoundSummary:
        """Basic round: counts and average duration, deadline round_deadline_s."""
        collector = await self._fan_out(config, width, config.round_deadline_s, config.timeout_ms)
        summary = RoundSummary(
            total=width,
            success=collector.success,
            failed=collector.failed,
            avg_response_time_ms=collector.average_ms,
        )
        logger.debug("Round finished: %s", summary.to_dict())
        return summary

    async def run_detailed(self, config: LoadTestConfig, width: int) -> DetailedRoundResult:
        """Detailed round: every returned outcome plus percentiles, deadline detailed_deadline_s."""
        started_at = datetime.now(timezone.utc)
        collector = await self._fan_out(config, width, config.detailed_deadline_s, None)
        finished_at = datetime.now(timezone.utc)
        return summarize(collector.outcomes, width=width, started_at=started_at, finished_at=finished_at)
