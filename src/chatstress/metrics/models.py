from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    EMPTY_RESPONSE = "empty_response"
    TRANSIENT_NETWORK_FAULT = "transient_network_fault"
    OTHER_FAILURE = "other_failure"


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    REPORTED = "reported"


@dataclass(frozen=True, slots=True)
class Outcome:
    request_id: int
    kind: OutcomeKind
    latency_ms: float = 0.0
    label: str | None = None
    message: str | None = None

    @property
    def is_success(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @property
    def is_transient(self) -> bool:
        return self.kind is OutcomeKind.TRANSIENT_NETWORK_FAULT


@dataclass(frozen=True, slots=True)
class AggregateStats:
    success_count: int = 0
    failure_count: int = 0
    transient_network_fault_count: int = 0
    empty_response_count: int = 0
    other_failure_count: int = 0

    @property
    def completed_count(self) -> int:
        return self.success_count + self.failure_count


@dataclass(frozen=True, slots=True)
class RunReport:
    run_id: str
    state: RunState
    total_requests: int
    completed_requests: int
    success_count: int
    failure_count: int
    transient_network_fault_count: int
    empty_response_count: int
    other_failure_count: int
    elapsed_sec: float
    requests_per_sec: float | None
    success_rate_pct: float
    failure_rate_pct: float
    transient_fault_rate_pct: float
    started_at: datetime
    finished_at: datetime

    @property
    def partial(self) -> bool:
        return self.state is RunState.TIMED_OUT
