from __future__ import annotations

import json
from typing import Callable

import httpx
import pytest

from chatstress.config import RunConfig, TargetConfig
from chatstress.loadgen import BoundedClient

CHOICES_BODY = {"choices": [{"index": 0, "message": {"role": "assistant", "content": "hi"}}]}


def request_id_of(request: httpx.Request) -> int:
    content = json.loads(request.content)["messages"][0]["content"]
    return int(content.split("#", 1)[1].split(".", 1)[0])


@pytest.fixture
def target() -> TargetConfig:
    return TargetConfig(
        endpoint="https://stress.openai.azure.com/",
        api_key="test-key",
        deployment="gpt-test",
    )


@pytest.fixture
def client_factory() -> Callable[[Callable[[httpx.Request], httpx.Response]], Callable]:
    def make(handler: Callable[[httpx.Request], httpx.Response]):
        transport = httpx.MockTransport(handler)

        def factory(target: TargetConfig, config: RunConfig) -> BoundedClient:
            return BoundedClient(target, config, transport=transport)

        return factory

    return make
