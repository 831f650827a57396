"""Shared fixtures: a scripted in-process executor and a default config."""

import asyncio
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

import pytest

# Ensure the project root is in sys.path for the flat module layout
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from load_config import LoadTestConfig  # noqa: E402
from load_results import InvocationOutcome  # noqa: E402
from request_executor import RequestExecutor  # noqa: E402

TARGET_URL = "http://api.test/items"


def make_outcome(
    duration_ms: int,
    succeeded: bool = True,
    status_code: int = 200,
    worker_id: int = 0,
    body: Optional[str] = "ok",
) -> InvocationOutcome:
    now = datetime.now(timezone.utc)
    return InvocationOutcome(
        duration_ms=duration_ms,
        succeeded=succeeded,
        status_code=status_code,
        started_at=now,
        finished_at=now,
        worker_id=worker_id,
        body=body,
        url=TARGET_URL,
    )


class ScriptedExecutor(RequestExecutor):
    """
    Executor that answers from a script instead of the network.

    duration_ms and body may be constants or callables of the worker id.
    Tracks how many calls ran and how many overlapped.
    """

    def __init__(
        self,
        delay_s: float = 0.0,
        duration_ms: Union[int, Callable[[int], int], None] = None,
        status: int = 200,
        body: Union[str, Callable[[int], str], None] = "ok",
        raises: Optional[Exception] = None,
        returns_none: bool = False,
        fail_workers: Iterable[int] = (),
    ):
        self.delay_s = delay_s
        self.duration_ms = duration_ms
        self.status = status
        self.body = body
        self.raises = raises
        self.returns_none = returns_none
        self.fail_workers = set(fail_workers)
        self.calls = 0
        self.in_flight = 0
        self.peak_in_flight = 0
        self.pool_sizes = []

    @asynccontextmanager
    async def connection_pool(self, size: int):
        self.pool_sizes.append(size)
        yield

    def _duration(self, worker_id: int) -> int:
        if callable(self.duration_ms):
            return self.duration_ms(worker_id)
        if self.duration_ms is not None:
            return self.duration_ms
        return int(self.delay_s * 1000)

    async def execute(self, target, verbose=False, worker_id=0):
        self.calls += 1
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.delay_s:
                await asyncio.sleep(self.delay_s)
            if self.raises is not None:
                raise self.raises
            if self.returns_none:
                return None

            status = 500 if worker_id in self.fail_workers else self.status
            body = self.body(worker_id) if callable(self.body) else self.body
            outcome = make_outcome(
                self._duration(worker_id),
                succeeded=200 <= status < 300,
                status_code=status,
                worker_id=worker_id,
                body=body,
            )
            return outcome
        finally:
            self.in_flight -= 1


@pytest.fixture
def config():
    return LoadTestConfig.for_url(TARGET_URL, timeout_ms=1000)
