from __future__ import annotations

from chatstress.metrics.aggregator import Aggregator
from chatstress.metrics.models import AggregateStats, Outcome, OutcomeKind, RunReport, RunState
from chatstress.metrics.report import build_report, format_report

__all__ = [
    "AggregateStats",
    "Aggregator",
    "Outcome",
    "OutcomeKind",
    "RunReport",
    "RunState",
    "build_report",
    "format_report",
]
