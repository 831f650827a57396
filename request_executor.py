"""
Request Executors
=================
The single-request collaborator used by the concurrency driver.

RequestExecutor is the contract: one call, one InvocationOutcome (or None
when the URL is rejected before anything is sent). HttpRequestExecutor is the
aiohttp implementation with connection pooling, retries with exponential
backoff, and transport errors folded into failed outcomes.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional
from urllib.parse import urlparse

import aiohttp

from load_config import DEFAULT_HEADERS, TargetRequest
from load_results import InvocationOutcome

logger = logging.getLogger(__name__)

BODY_METHODS = ("POST", "PUT", "PATCH", "DELETE")


def is_valid_url(url: str) -> bool:
    """Only absolute http(s) URLs with a host are accepted."""
    try:
        parsed = urlparse(url)
    except (TypeError, ValueError):
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class RequestExecutor(ABC):
    """Performs one request round-trip and reports how it went."""

    @asynccontextmanager
    async def connection_pool(self, size: int) -> AsyncIterator[None]:
        """Scope shared transport resources to one round. No-op by default."""
        yield

    @abstractmethod
    async def execute(
        self,
        target: TargetRequest,
        verbose: bool = False,
        worker_id: int = 0,
    ) -> Optional[InvocationOutcome]:
        """
        Return the outcome of one request, or None if the URL is rejected.

        The driver logs every outcome when verbose is set; executors only need
        it for output of their own.
        """


class HttpRequestExecutor(RequestExecutor):
    """
    aiohttp-backed executor.

    Inside connection_pool(size) all calls share one ClientSession whose
    connector is limited to `size` connections; outside it each call opens a
    one-shot session. With retries, the outcome's duration covers every attempt
    and the backoff between them.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        retry_attempts: int = 0,
        retry_delay: float = 1.0,
    ):
        self.timeout = aiohttp.ClientTimeout(total=timeout, connect=10)
        self.verify_ssl = verify_ssl
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self._session: Optional[aiohttp.ClientSession] = None

    @asynccontextmanager
    async def connection_pool(self, size: int) -> AsyncIterator[None]:
        connector = aiohttp.TCPConnector(
            limit=size,
            limit_per_host=size,
            keepalive_timeout=30,
        )
        previous = self._session
        async with aiohttp.ClientSession(timeout=self.timeout, connector=connector) as session:
            self._session = session
            try:
                yield
            finally:
                self._session = previous

    @asynccontextmanager
    async def _session_scope(self) -> AsyncIterator[aiohttp.ClientSession]:
        if self._session is not None and not self._session.closed:
            yield self._session
            return
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            yield session

    async def execute(
        self,
        target: TargetRequest,
        verbose: bool = False,
        worker_id: int = 0,
    ) -> Optional[InvocationOutcome]:
        if not is_valid_url(target.url):
            logger.debug("Invalid URL rejected: %s", target.url)
            return None

        headers = {**DEFAULT_HEADERS, **(target.headers or {})}
        query = target.params if target.method not in BODY_METHODS else None
        payload = target.params if target.method in BODY_METHODS else None

        attempts = 0
        max_attempts = self.retry_attempts + 1
        # One invocation spans every attempt and backoff sleep
        started_at = datetime.now(timezone.utc)
        start = time.perf_counter()

        async with self._session_scope() as session:
            while True:
                status = 0
                body: Optional[str] = None
                size = 0
                error: Optional[str] = None

                try:
                    async with session.request(
                        target.method,
                        target.url,
                        headers=headers,
                        params=query,
                        json=payload,
                        ssl=self.verify_ssl,
                    ) as response:
                        raw = await response.read()
                        status = response.status
                        size = len(raw)
                        body = raw.decode("utf-8", errors="replace")
                except asyncio.TimeoutError:
                    error = "Timeout"
                except aiohttp.ClientConnectorError as e:
                    error = f"ConnectionError: {type(e).__name__}"
                except aiohttp.ClientError as e:
                    error = f"{type(e).__name__}: {e}"[:120]

                duration_ms = int((time.perf_counter() - start) * 1000)
                outcome = InvocationOutcome(
                    duration_ms=duration_ms,
                    succeeded=200 <= status < 300,
                    status_code=status,
                    started_at=started_at,
                    finished_at=datetime.now(timezone.utc),
                    worker_id=worker_id,
                    error_message=error,
                    body_size_bytes=size,
                    body=body,
                    url=target.url,
                    method=target.method,
                )

                attempts += 1
                if error is None or attempts >= max_attempts:
                    break

                # Exponential backoff
                await asyncio.sleep(self.retry_delay * (2 ** (attempts - 1)))

        if error:
            logger.debug("API call failed for %s: %s", target.url, error)
        else:
            logger.debug("API response (%s, %dms): %s", status, duration_ms, (body or "")[:200])
        return outcome
