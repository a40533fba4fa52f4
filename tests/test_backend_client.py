"""Tests for the hosted backend client."""

import json

import httpx
import pytest

from billsplit.clients.backend import BackendClient
from billsplit.exceptions import BackendAPIError
from billsplit.models import User


class Recorder:
    """MockTransport handler that records requests and replays canned responses."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


def make_client(*responses) -> tuple[BackendClient, Recorder]:
    recorder = Recorder(responses)
    client = BackendClient(
        "https://example.test/",
        anon_key="anon",
        transport=httpx.MockTransport(recorder),
    )
    return client, recorder


class TestRequests:
    def test_headers(self):
        client, recorder = make_client(httpx.Response(200, json=[]))
        with client:
            client.get_profile("u1")

        request = recorder.requests[0]
        assert request.headers["apikey"] == "anon"
        assert request.headers["Authorization"] == "Bearer anon"
        assert request.url.path == "/rest/v1/users"
        assert request.url.params["user_id"] == "eq.u1"
        assert request.url.params["select"] == "*"

    def test_access_token_switches_authorization(self):
        client, recorder = make_client(
            httpx.Response(200, json=[]), httpx.Response(200, json=[])
        )
        client.set_access_token("user-jwt")
        client.get_profile("u1")
        client.set_access_token(None)
        client.get_profile("u1")

        assert recorder.requests[0].headers["Authorization"] == "Bearer user-jwt"
        assert recorder.requests[1].headers["Authorization"] == "Bearer anon"

    def test_http_error_becomes_backend_error(self):
        client, _ = make_client(httpx.Response(401, text="JWT expired"))
        with pytest.raises(BackendAPIError) as exc_info:
            client.get_profile("u1")
        assert exc_info.value.status_code == 401
        assert "JWT expired" in str(exc_info.value)

    def test_transport_error_becomes_backend_error(self):
        def unreachable(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = BackendClient(
            "https://example.test", anon_key="anon", transport=httpx.MockTransport(unreachable)
        )
        with pytest.raises(BackendAPIError, match="connection refused"):
            client.get_profile("u1")


class TestAuth:
    def test_sign_in(self):
        client, recorder = make_client(
            httpx.Response(
                200,
                json={
                    "access_token": "jwt",
                    "refresh_token": "refresh",
                    "expires_in": 3600,
                    "user": {"id": "u1", "email": "ada@example.com"},
                },
            )
        )
        session = client.sign_in_with_password("ada@example.com", "secret")

        assert session.user_id == "u1"
        assert session.expires_at is not None
        assert recorder.requests[0].url.params["grant_type"] == "password"

    def test_sign_up_pending_confirmation(self):
        client, recorder = make_client(
            httpx.Response(200, json={"id": "u1", "email": "ada@example.com"})
        )
        assert client.sign_up("ada@example.com", "secret", "Ada") is None
        body = json.loads(recorder.requests[0].content)
        assert body["data"] == {"full_name": "Ada"}

    def test_upsert_profile_merges(self):
        client, recorder = make_client(
            httpx.Response(201, json=[{"user_id": "u1", "full_name": "Ada"}])
        )
        profile = client.upsert_profile(User(user_id="u1", full_name="Ada"))

        assert profile.full_name == "Ada"
        assert recorder.requests[0].headers["Prefer"] == (
            "resolution=merge-duplicates,return=representation"
        )

    def test_missing_profile(self):
        client, _ = make_client(httpx.Response(200, json=[]))
        assert client.get_profile("u1") is None


def test_process_receipt():
    client, recorder = make_client(
        httpx.Response(
            200,
            json={
                "ok": True,
                "parsed": {"total": 700, "items": [{"name": "Suya", "price": 700}]},
            },
        )
    )
    receipt = client.process_receipt("https://cdn.example.test/r.jpg")

    assert receipt.total == 70000
    assert recorder.requests[0].url.path == "/functions/v1/process-receipt"
