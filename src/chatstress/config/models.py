from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping


class ConfigError(ValueError):
    """Configuration is missing or unusable; the run must not start."""


DEFAULT_PROMPT = "Hello, this is test request #{request_id}. Please respond with a short message."


@dataclass(frozen=True, slots=True)
class TargetConfig:
    endpoint: str
    api_key: str
    deployment: str
    api_version: str = "2024-02-01"
    max_tokens: int = 50
    temperature: float = 0.0
    n: int = 1
    prompt_template: str = DEFAULT_PROMPT

    def prompt_for(self, request_id: int) -> str:
        return self.prompt_template.format(request_id=request_id)

    def to_metadata(self) -> Mapping[str, Any]:
        return {
            "endpoint": self.endpoint,
            "deployment": self.deployment,
            "api_version": self.api_version,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "n": self.n,
        }


@dataclass(frozen=True, slots=True)
class RunConfig:
    concurrent_requests: int = 5000
    worker_pool_size: int = 2000
    connection_pool_limit: int = 3000
    per_call_timeout_sec: float = 500.0
    overall_deadline_sec: float = 600.0
    pool_timeout_sec: float | None = None
    keepalive_expiry_sec: float = 2000.0
    shutdown_grace_sec: float = 30.0
    progress_every: int = 100
    run_id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    notes: str = ""

    def __post_init__(self) -> None:
        for name in ("concurrent_requests", "worker_pool_size", "connection_pool_limit", "progress_every"):
            value = getattr(self, name)
            if value <= 0:
                msg = f"{name} must be > 0, got {value}"
                raise ValueError(msg)
        for name in ("per_call_timeout_sec", "overall_deadline_sec", "keepalive_expiry_sec"):
            value = getattr(self, name)
            if value <= 0:
                msg = f"{name} must be > 0, got {value}"
                raise ValueError(msg)
        if self.pool_timeout_sec is not None and self.pool_timeout_sec <= 0:
            msg = f"pool_timeout_sec must be > 0 or None, got {self.pool_timeout_sec}"
            raise ValueError(msg)
        if self.shutdown_grace_sec < 0:
            msg = f"shutdown_grace_sec must be >= 0, got {self.shutdown_grace_sec}"
            raise ValueError(msg)

    def to_metadata(self) -> Mapping[str, Any]:
        return {
            "run_id": self.run_id or "",
            "created_at": self.created_at.isoformat(),
            "concurrent_requests": self.concurrent_requests,
            "worker_pool_size": self.worker_pool_size,
            "connection_pool_limit": self.connection_pool_limit,
            "per_call_timeout_sec": self.per_call_timeout_sec,
            "overall_deadline_sec": self.overall_deadline_sec,
            "pool_timeout_sec": self.pool_timeout_sec,
            "keepalive_expiry_sec": self.keepalive_expiry_sec,
            "shutdown_grace_sec": self.shutdown_grace_sec,
            "notes": self.notes,
        }
