"""
Hermes Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v

Upstream targets are simulated with httpx.MockTransport; nothing leaves
the process.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List

import httpx
import pytest

from hermes.engine.config import RelayConfig, ServerSettings
from hermes.engine.forwarder import ForwardingClient


UPSTREAM = "http://upstream.test"


class Upstream:
    """Records every outbound request and answers with ``responder``."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.responder: Callable[[httpx.Request], httpx.Response] = (
            lambda request: httpx.Response(200, json={"ok": True})
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self) -> Any:
        return json.loads(self.last.content)


def relay_config_data() -> Dict[str, Any]:
    return {
        "registers": [
            {
                "endpoint": "/simple",
                "method": "POST",
                "target": {"url": f"{UPSTREAM}/simple", "method": "POST"},
                "template": "{{a}}",
            },
            {
                "endpoint": "/greet",
                "method": "POST",
                "target": {
                    "url": f"{UPSTREAM}/greet",
                    "method": "put",
                    "headers": {"X-Token": "abc"},
                    "timeout_seconds": 7,
                },
                "template": '{"greeting": "Hello {{ name }}"}',
            },
            {
                "endpoint": "/wrap",
                "method": "POST",
                "target": {"url": f"{UPSTREAM}/wrap", "method": "PATCH"},
                "template": '{"value": {{ data }}}',
            },
            {
                "endpoint": "/bad-method",
                "method": "POST",
                "target": {"url": f"{UPSTREAM}/bad", "method": "TRACE"},
                "template": "{}",
            },
            {
                "endpoint": "/broken",
                "method": "POST",
                "target": {"url": f"{UPSTREAM}/broken", "method": "POST"},
                "template": '{"name": "{{ name }}"',
            },
            {
                "endpoint": "/render-fail",
                "method": "POST",
                "target": {"url": f"{UPSTREAM}/render-fail", "method": "POST"},
                "template": "{{ count | length }}",
            },
            {
                "endpoint": "/retrying",
                "method": "POST",
                "target": {"url": f"{UPSTREAM}/retrying", "method": "POST"},
                "template": "{}",
                "retry_config": {"attempts": 4, "delay_ms": 10, "backoff_multiplier": 3.0},
            },
            {
                "endpoint": "/nothing",
                "method": "POST",
                "target": {"url": f"{UPSTREAM}/nothing", "method": "POST"},
                "template": "null",
            },
            {
                "endpoint": "/nan",
                "method": "POST",
                "target": {"url": f"{UPSTREAM}/nan", "method": "POST"},
                "template": '{"x": NaN}',
            },
        ],
        "settings": {"retry_attempts": 2, "retry_delay_ms": 0},
    }


CONFIG_YAML = """\
registers:
  - endpoint: /github
    method: POST
    target:
      url: http://upstream.test/github
      method: POST
      headers:
        X-Source: hermes
    template: '{"text": "{{ message }}"}'
  - endpoint: /alerts
    method: post
    target:
      url: http://upstream.test/alerts
      method: PUT
      timeout_seconds: 5
    template: '{"level": "{{ level }}"}'
    retry_config:
      attempts: 5
      delay_ms: 200
      backoff_multiplier: 1.5
settings:
  retry_attempts: 4
"""


@pytest.fixture
def relay_config() -> RelayConfig:
    return RelayConfig(**relay_config_data())


@pytest.fixture
def config_file(tmp_path):
    """A valid config.yml on disk."""
    path = tmp_path / "config.yml"
    path.write_text(CONFIG_YAML, encoding="utf-8")
    return path


@pytest.fixture
def upstream() -> Upstream:
    return Upstream()


@pytest.fixture
def forwarder(upstream) -> ForwardingClient:
    client = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
    return ForwardingClient(timeout=30, client=client)


@pytest.fixture
def server_settings() -> ServerSettings:
    return ServerSettings(request_timeout=30)


@pytest.fixture
def app_client(relay_config, server_settings, forwarder):
    from fastapi.testclient import TestClient

    from hermes.server import create_app

    app = create_app(relay_config, server_settings, forwarder=forwarder)
    return TestClient(app)
