from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import duckdb
import pandas as pd

from chatstress.config import RunConfig, TargetConfig
from chatstress.metrics import RunReport


def _utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass(slots=True)
class Storage:
    db_path: Path

    def __post_init__(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _connect(self) -> duckdb.DuckDBPyConnection:
        return duckdb.connect(str(self.db_path))

    def _init_schema(self) -> None:
        with self._connect() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS run_reports (
                    run_id TEXT PRIMARY KEY,
                    started_at TIMESTAMP,
                    finished_at TIMESTAMP,
                    state TEXT,
                    total_requests INTEGER,
                    completed_requests INTEGER,
                    success_count INTEGER,
                    failure_count INTEGER,
                    transient_network_fault_count INTEGER,
                    empty_response_count INTEGER,
                    other_failure_count INTEGER,
                    elapsed_sec DOUBLE,
                    requests_per_sec DOUBLE,
                    success_rate_pct DOUBLE,
                    failure_rate_pct DOUBLE,
                    transient_fault_rate_pct DOUBLE,
                    config_json TEXT,
                    notes TEXT
                );
                """
            )

    def report_exists(self, run_id: str) -> bool:
        with self._connect() as con:
            result = con.execute(
                "SELECT COUNT(*) FROM run_reports WHERE run_id = ?",
                [run_id],
            ).fetchone()
            return bool(result and result[0] > 0)

    def save_report(self, config: RunConfig, target: TargetConfig, report: RunReport) -> None:
        if self.report_exists(report.run_id):
            msg = f"Run {report.run_id} already exists"
            raise ValueError(msg)
        config_json = json.dumps({"run": dict(config.to_metadata()), "target": dict(target.to_metadata())})
        with self._connect() as con:
            con.execute(
                "INSERT INTO run_reports VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [
                    report.run_id,
                    _utc_naive(report.started_at),
                    _utc_naive(report.finished_at),
                    report.state.value,
                    report.total_requests,
                    report.completed_requests,
                    report.success_count,
                    report.failure_count,
                    report.transient_network_fault_count,
                    report.empty_response_count,
                    report.other_failure_count,
                    report.elapsed_sec,
                    report.requests_per_sec,
                    report.success_rate_pct,
                    report.failure_rate_pct,
                    report.transient_fault_rate_pct,
                    config_json,
                    config.notes,
                ],
            )

    def list_reports(self) -> pd.DataFrame:
        with self._connect() as con:
            return con.execute(
                "SELECT run_id, started_at, state, total_requests, success_count, failure_count, "
                "transient_network_fault_count, requests_per_sec, notes "
                "FROM run_reports ORDER BY started_at DESC"
            ).fetchdf()

    def load_report(self, run_id: str) -> dict[str, object] | None:
        with self._connect() as con:
            df = con.execute(
                "SELECT * FROM run_reports WHERE run_id = ?",
                [run_id],
            ).fetchdf()
        if df.empty:
            return None
        row = df.iloc[0].to_dict()
        row["config"] = json.loads(row.pop("config_json"))
        return row
