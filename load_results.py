"""
Load Test Results
=================
Immutable value objects produced at the end of each round or strategy step.

Every result can be rendered as text (str()) and exported with to_dict()
for JSON reports.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

# Normal vs recovery success rate must stay within this band to count as resilient
RESILIENCE_TOLERANCE = 0.10


def _fmt_ms(value: Optional[int]) -> str:
    return "n/a" if value is None else f"{value}ms"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class InvocationOutcome:
    """Outcome of one request executed by one worker."""
    duration_ms: int
    succeeded: bool
    status_code: int
    started_at: datetime
    finished_at: datetime
    worker_id: int = 0
    error_message: Optional[str] = None
    body_size_bytes: int = 0
    body: Optional[str] = field(default=None, repr=False)
    url: str = ""
    method: str = "GET"

    def __post_init__(self):
        if self.duration_ms < 0:
            raise ValueError(f"duration_ms must be non-negative, got {self.duration_ms}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "worker_id": self.worker_id,
            "method": self.method,
            "url": self.url,
            "status_code": self.status_code,
            "succeeded": self.succeeded,
            "duration_ms": self.duration_ms,
            "body_size_bytes": self.body_size_bytes,
            "error_message": self.error_message,
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
        }

    def __str__(self) -> str:
        status = "OK" if self.succeeded else "FAIL"
        text = (
            f"[worker {self.worker_id}] {status} {self.method} {self.url} "
            f"status={self.status_code} time={self.duration_ms}ms size={self.body_size_bytes}B"
        )
        if self.error_message:
            text += f" error={self.error_message}"
        return text


@dataclass(frozen=True)
class RoundSummary:
    """
    Aggregate of one basic concurrency round.

    success + failed may be less than total: invocations still running at the
    round's collection deadline are abandoned and counted in neither. The gap
    is exposed as `unaccounted`.
    """
    total: int
    success: int
    failed: int
    avg_response_time_ms: Optional[int] = None

    def __post_init__(self):
        if self.success < 0 or self.failed < 0:
            raise ValueError("success and failed must be non-negative")
        if self.success + self.failed > self.total:
            raise ValueError(
                f"success ({self.success}) + failed ({self.failed}) exceeds total ({self.total})"
            )

    @property
    def unaccounted(self) -> int:
        return self.total - self.success - self.failed

    @property
    def success_rate(self) -> float:
        return self.success / self.total if self.total > 0 else 0.0

    @property
    def failure_rate(self) -> float:
        return self.failed / self.total if self.total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "success": self.success,
            "failed": self.failed,
            "unaccounted": self.unaccounted,
            "avg_response_time_ms": self.avg_response_time_ms,
            "success_rate": round(self.success_rate, 4),
        }

    def __str__(self) -> str:
        return (
            "=== Load Test Result ===\n"
            f"Total Requests: {self.total}\n"
            f"Successful:     {self.success}\n"
            f"Failed:         {self.failed}\n"
            f"Unaccounted:    {self.unaccounted}\n"
            f"Avg Time (ms):  {'n/a' if self.avg_response_time_ms is None else self.avg_response_time_ms}"
        )


@dataclass(frozen=True)
class DetailedRoundResult:
    """Full per-invocation record of a round plus latency statistics."""
    outcomes: Tuple[InvocationOutcome, ...]
    width: int
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    success_count: int = 0
    fail_count: int = 0
    min_ms: int = 0
    max_ms: int = 0
    avg_ms: int = 0
    median_ms: int = 0
    p95_ms: int = 0
    p99_ms: int = 0
    std_dev_ms: float = 0.0

    @property
    def durations_ms(self) -> List[int]:
        return [o.duration_ms for o in self.outcomes]

    @property
    def elapsed_seconds(self) -> float:
        if not (self.started_at and self.finished_at):
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self, include_outcomes: bool = False) -> Dict[str, Any]:
        data = {
            "width": self.width,
            "collected": len(self.outcomes),
            "success": self.success_count,
            "failed": self.fail_count,
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
            "latency_ms": {
                "min": self.min_ms,
                "max": self.max_ms,
                "average": self.avg_ms,
                "median": self.median_ms,
                "p95": self.p95_ms,
                "p99": self.p99_ms,
                "std_dev": round(self.std_dev_ms, 2),
            },
        }
        if include_outcomes:
            data["outcomes"] = [o.to_dict() for o in self.outcomes]
        return data

    def __str__(self) -> str:
        return (
            f"DetailedRoundResult(threads={self.width}, success={self.success_count}, "
            f"fail={self.fail_count}, min={self.min_ms}ms, max={self.max_ms}ms, "
            f"avg={self.avg_ms}ms, median={self.median_ms}ms, p95={self.p95_ms}ms, "
            f"p99={self.p99_ms}ms, std_dev={self.std_dev_ms:.2f}ms)"
        )


@dataclass(frozen=True)
class StressTestTrace:
    """Rounds of a stress test, one per concurrency step."""
    rounds: Tuple[RoundSummary, ...]
    acceptable_fail_rate: float
    halted_early: bool = False
    stop_reason: str = ""

    @property
    def widths(self) -> List[int]:
        return [r.total for r in self.rounds]

    @property
    def last_healthy_width(self) -> Optional[int]:
        """Largest width whose failure rate stayed within the acceptable rate."""
        healthy = [r.total for r in self.rounds if r.failure_rate <= self.acceptable_fail_rate]
        return max(healthy) if healthy else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "acceptable_fail_rate": self.acceptable_fail_rate,
            "halted_early": self.halted_early,
            "stop_reason": self.stop_reason,
            "last_healthy_width": self.last_healthy_width,
            "rounds": [r.to_dict() for r in self.rounds],
        }

    def __str__(self) -> str:
        lines = [
            f"StressTestTrace(rounds={len(self.rounds)}, acceptable_fail_rate={self.acceptable_fail_rate:.2%}, "
            f"halted_early={self.halted_early}, last_healthy_width={self.last_healthy_width})"
        ]
        for r in self.rounds:
            lines.append(
                f"  width={r.total} success={r.success} failed={r.failed} "
                f"avg={_fmt_ms(r.avg_response_time_ms)} fail_rate={r.failure_rate:.2%}"
            )
        if self.stop_reason:
            lines.append(f"  stopped: {self.stop_reason}")
        return "\n".join(lines)


@dataclass(frozen=True)
class CapacityDataPoint:
    thread_count: int
    success: int
    failed: int
    avg_response_time_ms: Optional[int]
    throughput: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "thread_count": self.thread_count,
            "success": self.success,
            "failed": self.failed,
            "avg_response_time_ms": self.avg_response_time_ms,
            "throughput": round(self.throughput, 2),
        }

    def __str__(self) -> str:
        return (
            f"CapacityDataPoint(threads={self.thread_count}, success={self.success}, "
            f"fail={self.failed}, avg_time={_fmt_ms(self.avg_response_time_ms)}, "
            f"throughput={self.throughput:.2f} req/s)"
        )


@dataclass(frozen=True)
class CapacityTestResult:
    data_points: Tuple[CapacityDataPoint, ...]
    optimal_thread_count: int
    max_throughput: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "optimal_thread_count": self.optimal_thread_count,
            "max_throughput": round(self.max_throughput, 2),
            "data_points": [p.to_dict() for p in self.data_points],
        }

    def __str__(self) -> str:
        lines = [
            f"CapacityTestResult(optimal_threads={self.optimal_thread_count}, "
            f"max_throughput={self.max_throughput:.2f} req/s, data_points={len(self.data_points)})"
        ]
        lines.extend(f"  {p}" for p in self.data_points)
        return "\n".join(lines)


@dataclass(frozen=True)
class SustainedLoadResult:
    """
    Counts and per-request durations of a fixed-rate run.

    actual_qps is derived from the wall-clock window, not from the target rate.
    """
    success: int
    failed: int
    response_times_ms: Tuple[int, ...]
    started_at: datetime
    finished_at: datetime
    target_qps: int

    @property
    def completed(self) -> int:
        return self.success + self.failed

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def actual_qps(self) -> float:
        return self.completed / self.duration_seconds if self.duration_seconds > 0 else 0.0

    @property
    def avg_response_time_ms(self) -> int:
        if not self.response_times_ms:
            return 0
        return sum(self.response_times_ms) // len(self.response_times_ms)

    @property
    def success_rate(self) -> float:
        return self.success / self.completed if self.completed > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "failed": self.failed,
            "target_qps": self.target_qps,
            "actual_qps": round(self.actual_qps, 2),
            "avg_response_time_ms": self.avg_response_time_ms,
            "success_rate": round(self.success_rate, 4),
            "duration_seconds": round(self.duration_seconds, 2),
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
            "samples": len(self.response_times_ms),
        }

    def __str__(self) -> str:
        return (
            f"SustainedLoadResult(success={self.success}, fail={self.failed}, "
            f"target_qps={self.target_qps}, actual_qps={self.actual_qps:.2f}, "
            f"avg_response={self.avg_response_time_ms}ms, success_rate={self.success_rate:.2%}, "
            f"duration={self.duration_seconds:.2f}s)"
        )


@dataclass(frozen=True)
class PeakLoadResult:
    """
    Normal, peak and recovery snapshots of a peak-load run.

    peak and recovery are None when the run was stopped before reaching them.
    """
    normal: RoundSummary
    peak: Optional[RoundSummary] = None
    recovery: Optional[RoundSummary] = None

    @property
    def completed(self) -> bool:
        return self.peak is not None and self.recovery is not None

    @property
    def is_resilient(self) -> bool:
        """Recovery success rate returned to within 10 points of normal."""
        if self.recovery is None:
            return False
        delta = abs(self.normal.success_rate - self.recovery.success_rate)
        return delta < RESILIENCE_TOLERANCE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "normal": self.normal.to_dict(),
            "peak": self.peak.to_dict() if self.peak else None,
            "recovery": self.recovery.to_dict() if self.recovery else None,
            "completed": self.completed,
            "resilient": self.is_resilient,
        }

    def __str__(self) -> str:
        def phase(summary: Optional[RoundSummary]) -> str:
            if summary is None:
                return "not run"
            return (
                f"{summary.success}/{summary.total} ok, "
                f"avg={_fmt_ms(summary.avg_response_time_ms)}"
            )

        return (
            f"PeakLoadResult(normal=[{phase(self.normal)}], peak=[{phase(self.peak)}], "
            f"recovery=[{phase(self.recovery)}], resilient={self.is_resilient})"
        )


@dataclass(frozen=True)
class StabilityResult:
    """
    Rounds of a stability run at a fixed width.

    stable is decided by the engine when the run ends: every per-round average
    stayed within the configured deviation from the mean of those averages.
    """
    rounds: Tuple[RoundSummary, ...]
    iterations_requested: int
    stable: bool
    interrupted: bool = False

    @property
    def total_failed(self) -> int:
        return sum(r.failed for r in self.rounds)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "iterations_requested": self.iterations_requested,
            "iterations_run": len(self.rounds),
            "interrupted": self.interrupted,
            "total_failed": self.total_failed,
            "stable": self.stable,
            "rounds": [r.to_dict() for r in self.rounds],
        }

    def __str__(self) -> str:
        lines = [
            f"StabilityResult(iterations={len(self.rounds)}/{self.iterations_requested}, "
            f"interrupted={self.interrupted}, total_failed={self.total_failed}, stable={self.stable})"
        ]
        for i, r in enumerate(self.rounds, 1):
            lines.append(
                f"  #{i} success={r.success} failed={r.failed} avg={_fmt_ms(r.avg_response_time_ms)}"
            )
        return "\n".join(lines)
