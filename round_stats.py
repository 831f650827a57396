"""
Round Statistics
================
Reduces the outcomes of a round into latency statistics.

Percentiles use the nearest-rank index clamp(ceil(p/100 * n) - 1, 0, n - 1)
over durations sorted ascending, so every reported value is an observed
duration (no interpolation). The median is percentile 50: the lower-middle
element for even counts.
"""

import math
import statistics
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from load_results import DetailedRoundResult, InvocationOutcome


def percentile_index(p: float, n: int) -> int:
    """Index of the p-th percentile in a sorted list of n values."""
    if n <= 0:
        raise ValueError("percentile_index needs at least one value")
    idx = math.ceil(p / 100 * n) - 1
    return max(0, min(idx, n - 1))


def percentile(sorted_values: Sequence[int], p: float) -> int:
    """p-th percentile of an ascending sequence; 0 when it is empty."""
    if not sorted_values:
        return 0
    return sorted_values[percentile_index(p, len(sorted_values))]


def mean_ms(values: Sequence[int]) -> int:
    """Integer (floored) arithmetic mean; 0 for no values."""
    return sum(values) // len(values) if values else 0


def standard_deviation(values: Sequence[float]) -> float:
    """Population standard deviation; 0.0 for no values."""
    return statistics.pstdev(values) if values else 0.0


def is_response_time_stable(values: Sequence[float], max_deviation: float) -> bool:
    """
    True when every value lies within max_deviation (a ratio, 0.2 = 20%) of the
    mean. Fewer than two values are always stable.
    """
    if len(values) < 2:
        return True
    avg = statistics.mean(values)
    if avg == 0:
        return all(v == 0 for v in values)
    return all(abs(v - avg) / avg <= max_deviation for v in values)


def responses_identical(bodies: List[str]) -> bool:
    """Consistency check: every collected body is the same text."""
    return len(set(bodies)) <= 1


def summarize(
    outcomes: Iterable[InvocationOutcome],
    width: Optional[int] = None,
    started_at: Optional[datetime] = None,
    finished_at: Optional[datetime] = None,
) -> DetailedRoundResult:
    """
    Build a DetailedRoundResult from a batch of outcomes.

    Statistics cover every outcome, failed ones included. An empty batch
    yields zeros everywhere.
    """
    ordered = tuple(sorted(outcomes, key=lambda o: o.duration_ms))
    durations = [o.duration_ms for o in ordered]
    success = sum(1 for o in ordered if o.succeeded)

    if not durations:
        return DetailedRoundResult(
            outcomes=ordered,
            width=width if width is not None else 0,
            started_at=started_at,
            finished_at=finished_at,
        )

    return DetailedRoundResult(
        outcomes=ordered,
        width=width if width is not None else len(ordered),
        started_at=started_at,
        finished_at=finished_at,
        success_count=success,
        fail_count=len(ordered) - success,
        min_ms=durations[0],
        max_ms=durations[-1],
        avg_ms=mean_ms(durations),
        median_ms=percentile(durations, 50),
        p95_ms=percentile(durations, 95),
        p99_ms=percentile(durations, 99),
        std_dev_ms=standard_deviation(durations),
    )
