from __future__ import annotations

import threading

from chatstress.metrics.models import AggregateStats, Outcome, OutcomeKind


class Aggregator:
    """Per-run outcome counters shared by every worker thread.

    Each record is one short critical section, so a snapshot never sees a
    failure without its transient-fault bump (or the reverse).
    """

    __slots__ = ("_lock", "_success", "_failure", "_transient", "_empty", "_other")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._success = 0
        self._failure = 0
        self._transient = 0
        self._empty = 0
        self._other = 0

    def record(self, outcome: Outcome) -> None:
        if outcome.is_success:
            self.record_success()
        else:
            self.record_failure(outcome.kind)

    def record_success(self) -> None:
        with self._lock:
            self._success += 1

    def record_failure(self, kind: OutcomeKind) -> None:
        if kind is OutcomeKind.SUCCESS:
            msg = "record_failure called with a success outcome"
            raise ValueError(msg)
        with self._lock:
            self._failure += 1
            if kind is OutcomeKind.TRANSIENT_NETWORK_FAULT:
                self._transient += 1
            elif kind is OutcomeKind.EMPTY_RESPONSE:
                self._empty += 1
            else:
                self._other += 1

    def snapshot(self) -> AggregateStats:
        with self._lock:
            return AggregateStats(
                success_count=self._success,
                failure_count=self._failure,
                transient_network_fault_count=self._transient,
                empty_response_count=self._empty,
                other_failure_count=self._other,
            )
