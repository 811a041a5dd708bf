"""Tests for the email API client."""

import json
from unittest.mock import patch

import httpx
import pytest

from saas_server.services.email import (
    EmailDeliveryError,
    EmailSender,
    password_reset_body,
)

API_URL = "https://mail.example.com/v1/send"


def _patched_client(handler):
    """Route EmailSender's httpx.AsyncClient through a MockTransport."""
    real_client = httpx.AsyncClient
    transport = httpx.MockTransport(handler)

    def factory(*args, **kwargs):
        kwargs["transport"] = transport
        return real_client(*args, **kwargs)

    return patch("saas_server.services.email.httpx.AsyncClient", side_effect=factory)


@pytest.mark.asyncio
async def test_send_posts_json_with_bearer_key():
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"success": True})

    with _patched_client(handler):
        await EmailSender(API_URL, "secret-key").send("a@example.com", "Hello", "<p>Hi</p>")

    assert len(requests) == 1
    request = requests[0]
    assert str(request.url) == API_URL
    assert request.headers["Authorization"] == "Bearer secret-key"
    assert json.loads(request.content) == {
        "to": "a@example.com",
        "subject": "Hello",
        "body": "<p>Hi</p>",
    }


@pytest.mark.asyncio
async def test_error_status_raises():
    with _patched_client(lambda request: httpx.Response(500)):
        with pytest.raises(EmailDeliveryError, match="HTTP 500"):
            await EmailSender(API_URL, "secret-key").send("a@example.com", "Hello", "body")


@pytest.mark.asyncio
async def test_transport_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with _patched_client(handler):
        with pytest.raises(EmailDeliveryError):
            await EmailSender(API_URL, "secret-key").send("a@example.com", "Hello", "body")


@pytest.mark.asyncio
async def test_missing_api_key_raises_without_request():
    with _patched_client(lambda request: pytest.fail("no request expected")):
        with pytest.raises(EmailDeliveryError, match="not configured"):
            await EmailSender(API_URL, "").send("a@example.com", "Hello", "body")


@pytest.mark.asyncio
async def test_password_reset_email():
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200)

    with _patched_client(handler):
        await EmailSender(API_URL, "k").send_password_reset(
            "a@example.com", "http://localhost:3000/auth/reset-password?token=abc"
        )

    assert bodies[0]["subject"] == "Password Reset Request"
    assert "token=abc" in bodies[0]["body"]


def test_links_are_escaped():
    body = password_reset_body('http://x/?token="><script>')

    assert "<script>" not in body
    assert "&quot;&gt;&lt;script&gt;" in body
