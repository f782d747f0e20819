"""Tests for hermes.server — routing, health gating and HTTP status mapping."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient

from hermes.engine.config import RelayConfig, ServerSettings
from hermes.engine.errors import HermesConfigError, TemplateCompileError
from hermes.server import create_app


class TestRelayRoute:
    def test_success(self, app_client, upstream):
        resp = app_client.post("/greet", content=b'{"name": "John"}')
        assert resp.status_code == 200
        assert resp.json() == {"status": "success", "target_response": {"ok": True}}
        assert upstream.last.method == "PUT"
        assert upstream.last.url == "http://upstream.test/greet"
        assert upstream.last_json() == {"greeting": "Hello John"}
        assert upstream.last.headers["x-token"] == "abc"
        assert upstream.last.headers["content-type"] == "application/json"

    def test_per_target_timeout(self, app_client, upstream):
        app_client.post("/greet", content=b"{}")
        assert upstream.last.extensions["timeout"]["read"] == 7
        app_client.post("/simple", content=b'{"a": 1}')
        assert upstream.last.extensions["timeout"]["read"] == 30

    @pytest.mark.parametrize("method", ["GET", "PUT", "DELETE", "PATCH"])
    def test_inbound_method_not_enforced(self, app_client, upstream, method):
        resp = app_client.request(method, "/simple", content=b'{"a": 1}')
        assert resp.status_code == 200
        assert upstream.last.method == "POST"

    @pytest.mark.parametrize("method", ["TRACE", "OPTIONS", "PURGE", "PROPFIND"])
    def test_any_verb_reaches_relay(self, app_client, upstream, method):
        resp = app_client.request(method, "/simple", content=b'{"a": 1}')
        assert resp.status_code == 200
        assert resp.json()["status"] == "success"
        assert upstream.last_json() == 1

    def test_any_verb_on_unknown_path_is_json_404(self, app_client):
        resp = app_client.request("TRACE", "/unknown", content=b"{}")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Endpoint not found"}

    def test_text_upstream_wrapped_as_string(self, app_client, upstream):
        upstream.responder = lambda request: httpx.Response(200, text="thanks")
        resp = app_client.post("/simple", content=b'{"a": 1}')
        assert resp.json()["target_response"] == "thanks"

    def test_not_found(self, app_client, upstream):
        resp = app_client.post("/unknown", content=b"{}")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Endpoint not found"}
        assert upstream.requests == []

    @pytest.mark.parametrize("path", ["/simple/", "/SIMPLE", "/", "/simple?x=1"])
    def test_path_matched_verbatim(self, app_client, path):
        resp = app_client.post(path, content=b'{"a": 1}')
        expected = 200 if path == "/simple?x=1" else 404
        assert resp.status_code == expected

    def test_invalid_json(self, app_client):
        resp = app_client.post("/simple", content=b"{not json")
        assert resp.status_code == 400
        assert resp.json()["error"].startswith("Invalid JSON")

    def test_empty_body(self, app_client):
        assert app_client.post("/simple").status_code == 400

    def test_render_failure(self, app_client):
        resp = app_client.post("/render-fail", content=b'{"count": 5}')
        assert resp.status_code == 500
        assert resp.json()["error"].startswith("Template rendering failed")

    def test_rendered_not_json(self, app_client):
        resp = app_client.post("/broken", content=b'{"name": "x"}')
        assert resp.status_code == 500
        assert resp.json()["error"].startswith("Rendered template is not valid JSON")

    @pytest.mark.parametrize("body", [b"NaN", b'{"a": Infinity}'])
    def test_non_finite_body_rejected(self, app_client, upstream, body):
        resp = app_client.post("/simple", content=body)
        assert resp.status_code == 400
        assert resp.json()["error"].startswith("Invalid JSON")
        assert upstream.requests == []

    def test_nan_in_rendered_output(self, app_client, upstream):
        resp = app_client.post("/nan", content=b"{}")
        assert resp.status_code == 500
        assert resp.headers["content-type"] == "application/json"
        assert resp.json()["error"].startswith("Rendered template is not valid JSON")
        assert upstream.requests == []

    def test_bare_string_substitution_not_json(self, app_client, upstream):
        resp = app_client.post("/simple", content=b'{"a": "O\'Brien"}')
        assert resp.status_code == 500
        assert resp.json()["error"].startswith("Rendered template is not valid JSON")
        assert upstream.requests == []

    def test_quote_in_value_breaks_rendered_json(self, app_client, upstream):
        resp = app_client.post("/greet", content=b'{"name": "say \\"hi\\""}')
        assert resp.status_code == 500
        assert resp.json()["error"].startswith("Rendered template is not valid JSON")
        assert upstream.requests == []

    def test_null_payload_forwarded(self, app_client, upstream):
        resp = app_client.post("/nothing", content=b"{}")
        assert resp.status_code == 200
        assert upstream.last.content == b"null"

    def test_unexpected_error_is_json_500(self, app_client):
        handler = app_client.app.state.handler
        failing = AsyncMock(side_effect=RuntimeError("boom"))
        with patch.object(handler._forwarder, "send_with_retry", failing):
            resp = app_client.post("/simple", content=b'{"a": 1}')
        assert resp.status_code == 500
        assert resp.headers["content-type"] == "application/json"
        assert resp.json() == {"error": "Internal server error"}

    def test_unsupported_target_method(self, app_client, upstream):
        resp = app_client.post("/bad-method", content=b"{}")
        assert resp.status_code == 500
        assert resp.json() == {"error": "Unsupported HTTP method: TRACE"}
        assert upstream.requests == []

    def test_upstream_unreachable(self, app_client, upstream):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        upstream.responder = refuse
        resp = app_client.post("/simple", content=b'{"a": 1}')
        assert resp.status_code == 500
        assert resp.json()["error"].startswith("Failed to send request to target")


class TestDebugRoute:
    def test_post_debug(self, app_client, upstream):
        resp = app_client.post("/debug", content=b"anything at all")
        assert resp.status_code == 200
        assert resp.json() == {"status": "success", "message": "Payload logged"}
        assert upstream.requests == []

    def test_get_debug_falls_through(self, app_client):
        assert app_client.get("/debug").status_code == 404


class TestHealthRoutes:
    def test_health(self, app_client):
        resp = app_client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["service"] == "hermes-rs"
        assert isinstance(data["timestamp"], int)

    def test_ready(self, app_client):
        resp = app_client.get("/ready")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ready"

    def test_disabled(self, relay_config, forwarder):
        settings = ServerSettings(health_check_enabled=False)
        client = TestClient(create_app(relay_config, settings, forwarder=forwarder))
        for path in ("/health", "/ready"):
            resp = client.get(path)
            assert resp.status_code == 404
            assert resp.json() == {"error": "Endpoint not found"}

    def test_registered_endpoint_cannot_shadow_health(self, forwarder):
        config = RelayConfig(registers=[{
            "endpoint": "/health",
            "method": "GET",
            "target": {"url": "http://upstream.test/h", "method": "POST"},
            "template": "{}",
        }])
        client = TestClient(create_app(config, ServerSettings(), forwarder=forwarder))
        assert client.get("/health").json()["status"] == "healthy"


class TestCreateApp:
    def test_state(self, relay_config, forwarder):
        app = create_app(relay_config, ServerSettings(), forwarder=forwarder)
        assert len(app.state.registry) == len(relay_config.registers)
        assert app.state.handler.registry is app.state.registry

    def test_no_docs_routes(self, app_client):
        assert app_client.get("/docs").status_code == 404
        assert app_client.get("/openapi.json").json() == {"error": "Endpoint not found"}

    def test_bad_template_fails_startup(self):
        config = RelayConfig(registers=[{
            "endpoint": "/x",
            "method": "POST",
            "target": {"url": "http://x", "method": "POST"},
            "template": "{{ nope",
        }])
        with pytest.raises(TemplateCompileError):
            create_app(config)

    def test_duplicate_endpoints_fail_startup(self):
        register = {
            "endpoint": "/x",
            "method": "POST",
            "target": {"url": "http://x", "method": "POST"},
            "template": "{}",
        }
        with pytest.raises(HermesConfigError):
            create_app(RelayConfig(registers=[register, register]))

    def test_lifespan_closes_forwarder(self, relay_config, forwarder):
        app = create_app(relay_config, ServerSettings(), forwarder=forwarder)
        client = forwarder._get_client()
        with TestClient(app) as tc:
            assert tc.get("/health").status_code == 200
        assert client.is_closed
