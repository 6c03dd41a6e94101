from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import Future, wait
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Sequence

from chatstress.config import RunConfig, TargetConfig
from chatstress.loadgen.client import BoundedClient
from chatstress.loadgen.dispatcher import Dispatcher
from chatstress.metrics import Aggregator, Outcome, RunReport, RunState, build_report

logger = logging.getLogger(__name__)

ClientFactory = Callable[[TargetConfig, RunConfig], BoundedClient]
ReportCallback = Callable[[RunReport], None]


def _new_run_id() -> str:
    return uuid.uuid4().hex


class RunController:
    """Drives a single run: idle -> running -> completed|timed_out -> reported.

    The overall deadline only bounds how long the controller waits. Calls
    still in flight when it expires keep running and may bump the counters
    after the snapshot the report was built from. ``on_report`` sees the
    report before teardown waits out the shutdown grace period.
    """

    def __init__(
        self,
        config: RunConfig,
        target: TargetConfig,
        client_factory: ClientFactory = BoundedClient,
    ) -> None:
        self.run_id = config.run_id or _new_run_id()
        self._config = replace(config, run_id=self.run_id)
        self._target = target
        self._client_factory = client_factory
        self._state = RunState.IDLE
        self.aggregator: Aggregator | None = None

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def config(self) -> RunConfig:
        return self._config

    def run(self, on_report: ReportCallback | None = None) -> RunReport:
        if self._state is not RunState.IDLE:
            msg = f"run {self.run_id} already started (state={self._state.value})"
            raise RuntimeError(msg)
        config = self._config
        client = self._client_factory(self._target, config)
        aggregator = Aggregator()
        self.aggregator = aggregator
        dispatcher = Dispatcher(client, aggregator, config.worker_pool_size, config.progress_every)

        started_at = datetime.now(timezone.utc)
        start = time.perf_counter()
        self._state = RunState.RUNNING
        logger.info(
            "run %s started: %d requests, %d workers, %d connections",
            self.run_id,
            config.concurrent_requests,
            config.worker_pool_size,
            config.connection_pool_limit,
        )
        try:
            futures = dispatcher.submit_all(config.concurrent_requests)
            _, not_done = wait(futures, timeout=config.overall_deadline_sec)
            if not_done:
                self._state = RunState.TIMED_OUT
                logger.warning(
                    "run %s hit its %.1fs deadline with %d requests unfinished",
                    self.run_id,
                    config.overall_deadline_sec,
                    len(not_done),
                )
            else:
                self._state = RunState.COMPLETED
            stats = aggregator.snapshot()
            elapsed = time.perf_counter() - start
            report = build_report(
                run_id=self.run_id,
                state=self._state,
                stats=stats,
                elapsed_sec=elapsed,
                total_requests=config.concurrent_requests,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
            )
            self._state = RunState.REPORTED
            if on_report is not None:
                on_report(report)
        finally:
            stragglers = dispatcher.shutdown(config.shutdown_grace_sec)
            if stragglers:
                logger.warning(
                    "%d calls still in flight after teardown; client closes when they finish",
                    len(stragglers),
                )
                _close_when_done(client, stragglers)
            else:
                client.close()
        return report


def _close_when_done(client: BoundedClient, futures: Sequence[Future[Outcome]]) -> None:
    remaining = len(futures)
    lock = threading.Lock()

    def on_done(_: Future[Outcome]) -> None:
        nonlocal remaining
        with lock:
            remaining -= 1
            last = remaining == 0
        if last:
            client.close()

    for future in futures:
        future.add_done_callback(on_done)
