from __future__ import annotations

import time
from typing import Any

import httpx

from chatstress.config import ConfigError, RunConfig, TargetConfig
from chatstress.loadgen.classify import classify_error, error_label
from chatstress.metrics import Outcome, OutcomeKind


def _validate_target(target: TargetConfig) -> httpx.URL:
    try:
        url = httpx.URL(target.endpoint)
    except httpx.InvalidURL as exc:
        msg = f"invalid endpoint {target.endpoint!r}: {exc}"
        raise ConfigError(msg) from exc
    if url.scheme not in ("http", "https") or not url.host:
        msg = f"endpoint must be an http(s) URL with a host, got {target.endpoint!r}"
        raise ConfigError(msg)
    if not target.api_key:
        raise ConfigError("api key is empty")
    if not target.deployment:
        raise ConfigError("deployment name is empty")
    return url


def _has_choices(resp: httpx.Response) -> bool:
    try:
        body = resp.json()
    except ValueError:
        return False
    if not isinstance(body, dict):
        return False
    choices = body.get("choices")
    return isinstance(choices, list) and len(choices) > 0


class BoundedClient:
    """Chat-completion caller with a capped connection pool.

    At most ``connection_pool_limit`` connections are open at once; callers
    beyond that wait inside httpx's pool. Connect, write and read each get
    the full per-call timeout. ``call`` is safe to use from many threads.
    """

    def __init__(
        self,
        target: TargetConfig,
        config: RunConfig,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        base_url = _validate_target(target)
        self._target = target
        self._path = f"/openai/deployments/{target.deployment}/chat/completions"
        self.limits = httpx.Limits(
            max_connections=config.connection_pool_limit,
            max_keepalive_connections=config.connection_pool_limit,
            keepalive_expiry=config.keepalive_expiry_sec,
        )
        self.timeout = httpx.Timeout(
            connect=config.per_call_timeout_sec,
            read=config.per_call_timeout_sec,
            write=config.per_call_timeout_sec,
            pool=config.pool_timeout_sec,
        )
        self._client = httpx.Client(
            base_url=base_url,
            headers={"api-key": target.api_key},
            params={"api-version": target.api_version},
            limits=self.limits,
            timeout=self.timeout,
            transport=transport,
        )

    def payload(self, request_id: int) -> dict[str, Any]:
        return {
            "messages": [{"role": "user", "content": self._target.prompt_for(request_id)}],
            "temperature": self._target.temperature,
            "n": self._target.n,
            "max_tokens": self._target.max_tokens,
        }

    def call(self, request_id: int) -> Outcome:
        start = time.perf_counter()
        try:
            resp = self._client.post(self._path, json=self.payload(request_id))
            resp.raise_for_status()
        except (httpx.HTTPError, OSError) as exc:
            return Outcome(
                request_id=request_id,
                kind=classify_error(exc),
                latency_ms=(time.perf_counter() - start) * 1000.0,
                label=error_label(exc),
                message=str(exc),
            )
        latency_ms = (time.perf_counter() - start) * 1000.0
        if _has_choices(resp):
            return Outcome(request_id=request_id, kind=OutcomeKind.SUCCESS, latency_ms=latency_ms)
        return Outcome(
            request_id=request_id,
            kind=OutcomeKind.EMPTY_RESPONSE,
            latency_ms=latency_ms,
            message="response carried no choices",
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> BoundedClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
