import asyncio
import json
from unittest.mock import patch

import httpx
import pytest

from conftest import BACKEND_URL
from nexuspay.api.main import create_app
from nexuspay.utils.retry import ExponentialBackoff, LinearBackoff
from nexuspay.webhooks.api import create_standalone_app
from nexuspay.webhooks.config import WebhookConfig
from nexuspay.webhooks.routing import (
    B2B_CALLBACK_ROUTE,
    KPLC_TOKEN_ROUTE,
    STK_CALLBACK_ROUTE,
    missing_required_fields,
    resolve_generic_path,
)

KPLC_PAYLOAD = {
    "accountNumber": "54405080323",
    "tokenMessage": "Token: 1234-5678-9012-3456-7890 Units: 34.5",
    "amount": 500,
}


class RecordingBackend:
    """MockTransport handler that records requests and answers with one response."""

    def __init__(self, response: httpx.Response | None = None, error: type[Exception] | None = None) -> None:
        self.response = response or httpx.Response(200, json={"received": True})
        self.error = error
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error("backend unreachable", request=request)
        return self.response

    @property
    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


@pytest.fixture
def relay_client(make_forwarder):
    """Build an ASGI client for the full app relaying to the given backend handler."""

    def factory(handler, backend_url: str | None = BACKEND_URL):
        forwarder = make_forwarder(handler)
        app = create_app(
            webhook_config=WebhookConfig(backend_url=backend_url, _env_file=None),
            forwarder=forwarder,
            create_tables=False,
        )
        client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
        return client, forwarder

    return factory


class TestWebhookConfig:
    """Relay configuration from the environment."""

    def test_defaults(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            config = WebhookConfig(_env_file=None)

        assert config.backend_url is None
        assert not config.is_configured
        assert config.max_attempts == 3
        assert config.retry_policy().backoff == LinearBackoff(step=1.0)

    def test_plain_backend_url_variable(self) -> None:
        with patch.dict("os.environ", {"BACKEND_URL": "https://api.nexuspay.test/"}, clear=True):
            config = WebhookConfig(_env_file=None)

        assert config.backend_url == "https://api.nexuspay.test"
        assert config.is_configured

    def test_prefixed_overrides(self) -> None:
        env = {
            "WEBHOOK_BACKEND_URL": "https://internal.nexuspay.test",
            "WEBHOOK_MAX_ATTEMPTS": "5",
            "WEBHOOK_BACKOFF_STRATEGY": "exponential",
            "WEBHOOK_BACKOFF_STEP_SECONDS": "2",
        }
        with patch.dict("os.environ", env, clear=True):
            config = WebhookConfig(_env_file=None)

        policy = config.retry_policy()
        assert policy.max_attempts == 5
        assert policy.backoff == ExponentialBackoff(multiplier=2.0)

    def test_blank_backend_url_is_not_configured(self) -> None:
        config = WebhookConfig(backend_url="   ", _env_file=None)

        assert config.backend_url is None
        assert config.validate()["errors"] == ["BACKEND_URL is not set"]

    def test_plain_http_is_a_warning(self) -> None:
        result = WebhookConfig(backend_url=BACKEND_URL, _env_file=None).validate()

        assert result["valid"]
        assert result["warnings"] == ["BACKEND_URL uses plain HTTP"]


class TestRouting:
    """Callback route table."""

    @pytest.mark.parametrize(
        "url, internal_path",
        [
            ("/api/webhook/stk-callback", "/api/mpesa/stk-callback"),
            ("/api/webhook/b2c-callback", "/api/mpesa/b2c-callback"),
            ("/api/webhook/b2b-callback", "/api/mpesa/b2b-callback"),
            ("/api/webhook/queue-timeout", "/api/mpesa/queue-timeout"),
            ("/api/webhook", "/api/mpesa/webhook"),
            ("/api/webhook/c2b-confirmation", "/api/mpesa/webhook"),
            ("/api/webhook?type=queue-timeout", "/api/mpesa/queue-timeout"),
        ],
    )
    def test_generic_path_resolution(self, url: str, internal_path: str) -> None:
        assert resolve_generic_path(url) == internal_path

    def test_route_variants(self) -> None:
        assert STK_CALLBACK_ROUTE.ack_first
        assert STK_CALLBACK_ROUTE.timeout == 30.0
        assert not B2B_CALLBACK_ROUTE.ack_first
        assert B2B_CALLBACK_ROUTE.timeout == 25.0

    def test_falsy_required_fields_are_missing(self) -> None:
        payload = {"accountNumber": "54405080323", "tokenMessage": "", "amount": 0}

        assert missing_required_fields(KPLC_TOKEN_ROUTE, payload) == ["tokenMessage", "amount"]


class TestAckFirstRoutes:
    """``/webhook`` and ``/stk-callback`` answer before forwarding."""

    @pytest.mark.asyncio
    async def test_acknowledges_before_forward_completes(self, relay_client) -> None:
        release = asyncio.Event()
        seen = []

        async def slow_backend(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            await release.wait()
            return httpx.Response(200)

        client, forwarder = relay_client(slow_backend)
        async with client:
            response = await client.post("/api/stk-callback", json={"Body": {"stkCallback": {"ResultCode": 0}}})

            assert response.status_code == 200
            body = response.json()
            assert body["success"] is True
            assert body["message"] == "Webhook received"
            assert "timestamp" in body
            assert forwarder.pending == 1

            release.set()
            await forwarder.drain()

        assert forwarder.pending == 0
        assert [request.url.path for request in seen] == ["/api/mpesa/stk-callback"]

    @pytest.mark.asyncio
    async def test_generic_entry_point_routes_by_url(self, relay_client) -> None:
        backend = RecordingBackend()
        client, forwarder = relay_client(backend)
        async with client:
            await client.post("/api/webhook/b2c-callback", json={"Result": {"ResultCode": 0}})
            await client.post("/api/webhook", json={"TransID": "QK12345"})
            await forwarder.drain()

        assert sorted(backend.paths) == ["/api/mpesa/b2c-callback", "/api/mpesa/webhook"]
        assert backend.requests[0].headers["user-agent"] == "NexusPay-MPesa-Webhook/2.0"

    @pytest.mark.asyncio
    async def test_generic_entry_point_routes_by_query(self, relay_client) -> None:
        backend = RecordingBackend()
        client, forwarder = relay_client(backend)
        async with client:
            await client.post("/api/webhook?type=stk-callback", json={"Body": {}})
            await forwarder.drain()

        assert backend.paths == ["/api/mpesa/stk-callback"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/api/stk-callback", "/api/webhook"])
    async def test_malformed_body_is_acknowledged(self, relay_client, error_logs, path: str) -> None:
        backend = RecordingBackend()
        client, forwarder = relay_client(backend)
        async with client:
            response = await client.post(
                path, content=b"{truncated", headers={"Content-Type": "application/json"}
            )

        assert response.status_code == 200
        assert response.json()["message"] == "Webhook received"
        assert forwarder.pending == 0
        assert backend.requests == []
        assert len(error_logs) == 1
        assert "INVALID_PAYLOAD" in error_logs[0]["message"]
        assert "{truncated" in error_logs[0]["message"]

    @pytest.mark.asyncio
    async def test_failing_backend_does_not_change_ack(self, relay_client, error_logs) -> None:
        backend = RecordingBackend(httpx.Response(500))
        client, forwarder = relay_client(backend)
        async with client:
            response = await client.post("/api/stk-callback", json={"Body": {}})
            await forwarder.drain()

        assert response.status_code == 200
        assert len(backend.requests) == 3
        assert len(error_logs) == 1

    @pytest.mark.asyncio
    async def test_not_configured_still_acknowledges(self, relay_client) -> None:
        backend = RecordingBackend()
        client, forwarder = relay_client(backend, backend_url=None)
        async with client:
            response = await client.post("/api/stk-callback", json={"Body": {}})

        assert response.status_code == 200
        assert forwarder.pending == 0
        assert backend.requests == []


class TestForwardThenRespondRoutes:
    """``/b2b-callback``, ``/queue-timeout`` and ``/kplc-token`` reflect the backend's answer."""

    @pytest.mark.asyncio
    async def test_kplc_token_relayed_verbatim(self, relay_client) -> None:
        backend = RecordingBackend(httpx.Response(201, json={"stored": True, "id": "tok_1"}))
        client, _ = relay_client(backend)
        async with client:
            response = await client.post("/api/kplc-token", json=KPLC_PAYLOAD)

        assert response.status_code == 201
        assert response.json() == {"stored": True, "id": "tok_1"}
        assert backend.paths == ["/api/kplc/webhook/token"]
        assert json.loads(backend.requests[0].content) == KPLC_PAYLOAD
        assert backend.requests[0].headers["user-agent"] == "NexusPay-KPLC-Token/1.0"

    @pytest.mark.asyncio
    async def test_kplc_token_missing_fields(self, relay_client) -> None:
        backend = RecordingBackend()
        client, _ = relay_client(backend)
        async with client:
            response = await client.post(
                "/api/kplc-token",
                json={"accountNumber": "54405080323", "tokenMessage": "Token: 1234"},
            )

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "MISSING_FIELDS"
        assert body["error"]["details"] == {"missing": ["amount"]}
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_kplc_token_form_encoded(self, relay_client) -> None:
        backend = RecordingBackend()
        client, _ = relay_client(backend)
        async with client:
            response = await client.post(
                "/api/kplc-token",
                data={"accountNumber": "54405080323", "tokenMessage": "Token: 1234", "amount": "500"},
            )

        assert response.status_code == 200
        assert json.loads(backend.requests[0].content) == {
            "accountNumber": "54405080323",
            "tokenMessage": "Token: 1234",
            "amount": "500",
        }

    @pytest.mark.asyncio
    async def test_upstream_error_status_is_relayed(self, relay_client) -> None:
        backend = RecordingBackend(httpx.Response(500, json={"error": "database unavailable"}))
        client, _ = relay_client(backend)
        async with client:
            response = await client.post("/api/b2b-callback", json={"Result": {"ResultCode": 1}})

        assert response.status_code == 500
        assert response.json() == {"error": "database unavailable"}
        assert len(backend.requests) == 1

    @pytest.mark.asyncio
    async def test_transport_failure_is_bad_gateway(self, relay_client) -> None:
        client, _ = relay_client(RecordingBackend(error=httpx.ConnectError))
        async with client:
            response = await client.post("/api/queue-timeout", json={"Result": {}})

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "FORWARDING_FAILED"

    @pytest.mark.asyncio
    async def test_not_configured(self, relay_client) -> None:
        backend = RecordingBackend()
        client, _ = relay_client(backend, backend_url=None)
        async with client:
            response = await client.post("/api/b2b-callback", json={"Result": {}})

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "WEBHOOK_NOT_CONFIGURED"
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_malformed_json(self, relay_client) -> None:
        backend = RecordingBackend()
        client, _ = relay_client(backend)
        async with client:
            response = await client.post(
                "/api/kplc-token",
                content=b"{not json",
                headers={"Content-Type": "application/json"},
            )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_PAYLOAD"
        assert backend.requests == []


class TestWebhookCORS:
    """Permissive CORS on callback routes."""

    @pytest.mark.asyncio
    async def test_preflight_is_empty_ok(self, relay_client) -> None:
        backend = RecordingBackend()
        client, _ = relay_client(backend)
        async with client:
            response = await client.options("/api/kplc-token")

        assert response.status_code == 200
        assert response.content == b""
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["access-control-allow-methods"] == "POST, OPTIONS"
        assert response.headers["access-control-allow-headers"] == "Content-Type"
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_generic_route_also_allows_get(self, relay_client) -> None:
        client, _ = relay_client(RecordingBackend())
        async with client:
            response = await client.options("/api/webhook/stk-callback")

        assert response.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"

    @pytest.mark.asyncio
    async def test_post_responses_carry_headers(self, relay_client) -> None:
        client, forwarder = relay_client(RecordingBackend())
        async with client:
            response = await client.post("/api/stk-callback", json={})
            await forwarder.drain()

        assert response.headers["access-control-allow-origin"] == "*"


class TestWebhookHealth:

    @pytest.mark.asyncio
    async def test_reports_configuration_and_backlog(self, relay_client) -> None:
        client, _ = relay_client(RecordingBackend())
        async with client:
            response = await client.get("/api/webhook/health")

        assert response.status_code == 200
        body = response.json()
        assert body["configured"] is True
        assert body["pendingForwards"] == 0
        assert body["retry"] == {"maxAttempts": 3, "plannedDelays": [1.0, 2.0]}

    @pytest.mark.asyncio
    async def test_standalone_app_serves_callbacks(self, make_forwarder) -> None:
        backend = RecordingBackend()
        forwarder = make_forwarder(backend)
        app = create_standalone_app(
            config=WebhookConfig(backend_url=BACKEND_URL, _env_file=None),
            forwarder=forwarder,
        )
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post("/kplc-token", json=KPLC_PAYLOAD)
            preflight = await client.options("/webhook")

        assert response.status_code == 200
        assert backend.paths == ["/api/kplc/webhook/token"]
        assert preflight.headers["access-control-allow-methods"] == "GET, POST, OPTIONS"
