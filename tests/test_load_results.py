from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_outcome
from load_results import (
    CapacityDataPoint,
    CapacityTestResult,
    InvocationOutcome,
    PeakLoadResult,
    RoundSummary,
    StabilityResult,
    StressTestTrace,
    SustainedLoadResult,
)
from round_stats import summarize


def test_round_summary_rejects_overcounting():
    with pytest.raises(ValueError):
        RoundSummary(total=10, success=8, failed=3)


def test_round_summary_exposes_abandoned_invocations():
    summary = RoundSummary(total=10, success=6, failed=2, avg_response_time_ms=40)
    assert summary.unaccounted == 2
    assert summary.success_rate == pytest.approx(0.6)
    assert summary.failure_rate == pytest.approx(0.2)
    assert summary.to_dict()["unaccounted"] == 2


def test_round_summary_rates_with_zero_total():
    summary = RoundSummary(total=0, success=0, failed=0)
    assert summary.success_rate == 0.0
    assert summary.failure_rate == 0.0


def test_round_summary_text():
    text = str(RoundSummary(total=3, success=3, failed=0))
    assert text.startswith("=== Load Test Result ===")
    assert "Avg Time (ms):  n/a" in text


def test_outcome_rejects_negative_duration():
    now = datetime.now(timezone.utc)
    with pytest.raises(ValueError):
        InvocationOutcome(duration_ms=-1, succeeded=True, status_code=200, started_at=now, finished_at=now)


def test_outcome_text_marks_failure():
    outcome = make_outcome(12, succeeded=False, status_code=0, worker_id=3)
    assert "[worker 3] FAIL" in str(outcome)
    assert "body" not in outcome.to_dict()


def test_peak_load_resilient_within_ten_points():
    normal = RoundSummary(total=100, success=95, failed=5)
    recovery = RoundSummary(total=100, success=90, failed=10)
    result = PeakLoadResult(normal=normal, peak=RoundSummary(total=500, success=200, failed=300), recovery=recovery)
    assert result.completed
    assert result.is_resilient


def test_peak_load_not_resilient_beyond_ten_points():
    normal = RoundSummary(total=100, success=95, failed=5)
    recovery = RoundSummary(total=100, success=80, failed=20)
    result = PeakLoadResult(normal=normal, peak=normal, recovery=recovery)
    assert not result.is_resilient


def test_peak_load_without_recovery_is_not_resilient():
    result = PeakLoadResult(normal=RoundSummary(total=10, success=10, failed=0))
    assert not result.completed
    assert not result.is_resilient
    assert result.to_dict()["recovery"] is None
    assert "not run" in str(result)


def test_sustained_load_derives_qps_from_wall_clock():
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    result = SustainedLoadResult(
        success=45,
        failed=5,
        response_times_ms=(10, 20, 31),
        started_at=start,
        finished_at=start + timedelta(seconds=10),
        target_qps=10,
    )
    assert result.completed == 50
    assert result.actual_qps == pytest.approx(5.0)
    assert result.avg_response_time_ms == 20
    assert result.success_rate == pytest.approx(0.9)


def test_sustained_load_empty_run():
    now = datetime.now(timezone.utc)
    result = SustainedLoadResult(0, 0, (), now, now, 10)
    assert result.avg_response_time_ms == 0
    assert result.actual_qps == 0.0
    assert result.success_rate == 0.0


def test_stress_trace_last_healthy_width():
    trace = StressTestTrace(
        rounds=(
            RoundSummary(total=10, success=10, failed=0),
            RoundSummary(total=20, success=19, failed=1),
            RoundSummary(total=30, success=15, failed=15),
        ),
        acceptable_fail_rate=0.1,
        halted_early=True,
    )
    assert trace.widths == [10, 20, 30]
    assert trace.last_healthy_width == 20


def test_stability_total_failed():
    result = StabilityResult(
        rounds=(RoundSummary(total=5, success=4, failed=1), RoundSummary(total=5, success=3, failed=2)),
        iterations_requested=3,
        stable=True,
        interrupted=True,
    )
    assert result.total_failed == 3
    assert result.to_dict()["iterations_run"] == 2


def test_capacity_result_serializes_data_points():
    point = CapacityDataPoint(thread_count=10, success=10, failed=0, avg_response_time_ms=None, throughput=12.3456)
    result = CapacityTestResult(data_points=(point,), optimal_thread_count=10, max_throughput=12.3456)
    data = result.to_dict()
    assert data["max_throughput"] == 12.35
    assert data["data_points"][0]["avg_response_time_ms"] is None
    assert "avg_time=n/a" in str(point)


def test_detailed_result_optionally_includes_outcomes():
    result = summarize([make_outcome(5, worker_id=1), make_outcome(9, worker_id=2)])
    assert "outcomes" not in result.to_dict()
    exported = result.to_dict(include_outcomes=True)["outcomes"]
    assert [o["worker_id"] for o in exported] == [1, 2]
