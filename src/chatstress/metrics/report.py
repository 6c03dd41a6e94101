from __future__ import annotations

from datetime import datetime

from chatstress.metrics.models import AggregateStats, RunReport, RunState

RULE = "=" * 40


def _pct(count: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return count * 100.0 / total


def build_report(
    run_id: str,
    state: RunState,
    stats: AggregateStats,
    elapsed_sec: float,
    total_requests: int,
    started_at: datetime,
    finished_at: datetime,
) -> RunReport:
    """Derive the run summary from a terminal counter snapshot.

    Rates are relative to the configured request count, so a timed-out run
    reports the share of the whole workload that actually succeeded.
    Throughput is completed requests per second and is None when no time
    elapsed.
    """
    if state not in (RunState.COMPLETED, RunState.TIMED_OUT):
        msg = f"cannot report a run in state {state.value}"
        raise ValueError(msg)
    completed = stats.completed_count
    rps = completed / elapsed_sec if elapsed_sec > 0 else None
    return RunReport(
        run_id=run_id,
        state=state,
        total_requests=total_requests,
        completed_requests=completed,
        success_count=stats.success_count,
        failure_count=stats.failure_count,
        transient_network_fault_count=stats.transient_network_fault_count,
        empty_response_count=stats.empty_response_count,
        other_failure_count=stats.other_failure_count,
        elapsed_sec=elapsed_sec,
        requests_per_sec=rps,
        success_rate_pct=_pct(stats.success_count, total_requests),
        failure_rate_pct=_pct(stats.failure_count, total_requests),
        transient_fault_rate_pct=_pct(stats.transient_network_fault_count, total_requests),
        started_at=started_at,
        finished_at=finished_at,
    )


def format_report(report: RunReport) -> str:
    rps = "n/a" if report.requests_per_sec is None else f"{report.requests_per_sec:.2f}"
    lines = [
        "",
        "=== TEST RESULTS ===",
        f"Run id: {report.run_id}",
        f"State: {report.state.value}",
        f"Total requests: {report.total_requests}",
        f"Completed requests: {report.completed_requests}",
        f"Successful requests: {report.success_count}",
        f"Failed requests: {report.failure_count}",
        f"  empty responses: {report.empty_response_count}",
        f"  transient network faults: {report.transient_network_fault_count}",
        f"  other failures: {report.other_failure_count}",
        f"Elapsed: {report.elapsed_sec:.3f}s",
        f"Requests/sec: {rps}",
        f"Success rate: {report.success_rate_pct:.2f}%",
        f"Failure rate: {report.failure_rate_pct:.2f}%",
        f"Transient fault rate: {report.transient_fault_rate_pct:.2f}%",
        f"Finished at: {report.finished_at:%Y-%m-%d %H:%M:%S}",
    ]
    if report.partial:
        outstanding = report.total_requests - report.completed_requests
        lines.append(f"Deadline expired: results are partial ({outstanding} requests outstanding)")
    if report.transient_network_fault_count > 0:
        lines.append("")
        lines.append(
            f"WARNING: detected {report.transient_network_fault_count} transient network faults "
            "(connection reset/closed or unexpected end of stream)"
        )
    lines.append(RULE)
    return "\n".join(lines)
