from __future__ import annotations

from chatstress.loadgen.classify import TRANSIENT_FAULT_PATTERNS, classify_error, error_label
from chatstress.loadgen.client import BoundedClient
from chatstress.loadgen.dispatcher import Dispatcher
from chatstress.loadgen.runner import RunController
from chatstress.metrics import RunState

__all__ = [
    "TRANSIENT_FAULT_PATTERNS",
    "BoundedClient",
    "Dispatcher",
    "RunController",
    "RunState",
    "classify_error",
    "error_label",
]
