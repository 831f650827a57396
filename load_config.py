"""
Load Test Configuration
=======================
Plain configuration values threaded through every engine call, plus the
error types and logging setup shared by the toolkit.

Nothing here is loaded from files: callers (or the CLI) build a
LoadTestConfig and hand it to the engine.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from rich.logging import RichHandler

SUPPORTED_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS")

DEFAULT_HEADERS = {"User-Agent": "LoadTest/2.0"}


class LoadTestError(Exception):
    """Base class for errors raised by the load test toolkit."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(LoadTestError):
    """
    The engine was asked to do something it cannot set up.

    Raised for invalid widths, rates, durations or thresholds. Never raised
    for a failing target: those end up in the statistics.
    """


@dataclass(frozen=True)
class TargetRequest:
    """The request every invocation sends."""
    url: str
    method: str = "GET"
    params: Optional[Dict[str, Any]] = None
    headers: Optional[Dict[str, str]] = None

    def __post_init__(self):
        method = self.method.upper()
        if method not in SUPPORTED_METHODS:
            raise ConfigurationError(
                f"Unsupported HTTP method: {self.method}",
                details={"method": self.method},
            )
        object.__setattr__(self, "method", method)


@dataclass(frozen=True)
class LoadTestConfig:
    """
    Per-run settings passed explicitly to the driver and strategies.

    timeout_ms classifies an individual invocation; the two deadlines bound
    how long a whole round waits before abandoning outstanding invocations.
    """
    target: TargetRequest
    timeout_ms: int = 1000
    verbose: bool = False
    round_deadline_s: float = 60.0
    detailed_deadline_s: float = 120.0

    def __post_init__(self):
        if self.timeout_ms < 0:
            raise ConfigurationError(
                "timeout_ms must be non-negative",
                details={"timeout_ms": self.timeout_ms},
            )
        if self.round_deadline_s <= 0 or self.detailed_deadline_s <= 0:
            raise ConfigurationError(
                "Collection deadlines must be positive",
                details={
                    "round_deadline_s": self.round_deadline_s,
                    "detailed_deadline_s": self.detailed_deadline_s,
                },
            )

    @classmethod
    def for_url(
        cls,
        url: str,
        method: str = "GET",
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        **kwargs,
    ) -> "LoadTestConfig":
        return cls(target=TargetRequest(url, method, params, headers), **kwargs)

    def with_overrides(self, **changes) -> "LoadTestConfig":
        return replace(self, **changes)


def configure_logging(verbose: bool = False) -> None:
    """Route toolkit logs through rich; INFO when verbose, WARNING otherwise."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
