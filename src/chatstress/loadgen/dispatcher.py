from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Protocol

from chatstress.loadgen.classify import classify_error, error_label
from chatstress.metrics import Aggregator, Outcome, OutcomeKind

logger = logging.getLogger(__name__)


class Caller(Protocol):
    def call(self, request_id: int) -> Outcome:
        ...


class Dispatcher:
    """Runs one call task per request id on a fixed-size thread pool."""

    def __init__(
        self,
        client: Caller,
        aggregator: Aggregator,
        worker_pool_size: int,
        progress_every: int = 100,
    ) -> None:
        self._client = client
        self._aggregator = aggregator
        self._progress_every = progress_every
        self._executor = ThreadPoolExecutor(
            max_workers=worker_pool_size,
            thread_name_prefix="chatstress-worker",
        )
        self._futures: list[Future[Outcome]] = []

    def submit_all(self, concurrent_requests: int) -> list[Future[Outcome]]:
        futures = [self._executor.submit(self._run_one, request_id) for request_id in range(1, concurrent_requests + 1)]
        self._futures.extend(futures)
        return futures

    def _run_one(self, request_id: int) -> Outcome:
        start = time.perf_counter()
        try:
            outcome = self._client.call(request_id)
        except Exception as exc:
            logger.debug("request #%d raised", request_id, exc_info=True)
            outcome = Outcome(
                request_id=request_id,
                kind=classify_error(exc),
                latency_ms=(time.perf_counter() - start) * 1000.0,
                label=error_label(exc),
                message=str(exc),
            )
        self._aggregator.record(outcome)
        _log_outcome(outcome, self._progress_every)
        return outcome

    def shutdown(self, grace_sec: float) -> list[Future[Outcome]]:
        """Stop the pool, returning the calls still running afterwards.

        Queued tasks get ``grace_sec`` to finish and are then cancelled;
        running calls are left to their own per-call timeouts.
        """
        pending = [f for f in self._futures if not f.done()]
        if pending and grace_sec > 0:
            _, not_done = wait(pending, timeout=grace_sec)
            pending = list(not_done)
        self._executor.shutdown(wait=False, cancel_futures=True)
        return [f for f in pending if not f.done()]


def _log_outcome(outcome: Outcome, progress_every: int) -> None:
    if outcome.kind is OutcomeKind.SUCCESS:
        if outcome.request_id % progress_every == 0:
            logger.info("request #%d succeeded in %.0fms", outcome.request_id, outcome.latency_ms)
    elif outcome.kind is OutcomeKind.EMPTY_RESPONSE:
        logger.warning("request #%d returned an empty response", outcome.request_id)
    elif outcome.kind is OutcomeKind.TRANSIENT_NETWORK_FAULT:
        logger.warning(
            "request #%d TRANSIENT NETWORK FAULT (%s): %s",
            outcome.request_id,
            outcome.label,
            outcome.message,
        )
    else:
        logger.warning("request #%d failed (%s): %s", outcome.request_id, outcome.label, outcome.message)
