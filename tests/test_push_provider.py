"""Tests for Firebase Cloud Messaging delivery."""

import asyncio
import base64
import json
import time
from unittest.mock import MagicMock

import httpx
import pytest

from pushrelay.schemas.notification import NormalizedMessage
from pushrelay.services.push_provider import (
    DeliveryResult,
    FcmPushProvider,
    load_service_account_info,
)

FCM_ERROR_TYPE = "type.googleapis.com/google.firebase.fcm.v1.FcmError"

MESSAGE = NormalizedMessage(
    title="Ann mentioned you",
    body="Hi there",
    data={"noti_type": "mention", "destination_id": "42"},
)


def _fcm_error(status_code: int, status: str, error_code: str | None) -> httpx.Response:
    details = []
    if error_code:
        details.append({"@type": FCM_ERROR_TYPE, "errorCode": error_code})
    return httpx.Response(
        status_code,
        json={
            "error": {
                "code": status_code,
                "message": "error",
                "status": status,
                "details": details,
            }
        },
    )


def _provider(handler, credentials=None) -> FcmPushProvider:
    if credentials is None:
        credentials = MagicMock(valid=True, token="access-token")
    return FcmPushProvider(
        credentials=credentials,
        project_id="relay-project",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_send_delivered():
    """A 200 from FCM is a delivery; the request carries token and message."""
    captured = []

    def handler(request):
        captured.append(request)
        return httpx.Response(200, json={"name": "projects/relay-project/messages/1"})

    result = await _provider(handler).send("device-token", MESSAGE)

    assert result == DeliveryResult.DELIVERED
    request = captured[0]
    assert request.url.path == "/v1/projects/relay-project/messages:send"
    assert request.headers["Authorization"] == "Bearer access-token"
    assert json.loads(request.content) == {
        "message": {
            "token": "device-token",
            "notification": {"title": "Ann mentioned you", "body": "Hi there"},
            "data": {"noti_type": "mention", "destination_id": "42"},
        }
    }


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        _fcm_error(404, "NOT_FOUND", "UNREGISTERED"),
        _fcm_error(403, "PERMISSION_DENIED", "SENDER_ID_MISMATCH"),
    ],
)
async def test_send_permanently_invalid_token(response):
    result = await _provider(lambda request: response).send("device-token", MESSAGE)
    assert result == DeliveryResult.PERMANENTLY_INVALID_TOKEN


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        _fcm_error(503, "UNAVAILABLE", "UNAVAILABLE"),
        _fcm_error(429, "RESOURCE_EXHAUSTED", "QUOTA_EXCEEDED"),
        _fcm_error(500, "INTERNAL", None),
        httpx.Response(502, text="Bad Gateway"),
    ],
)
async def test_send_transient_failure(response):
    result = await _provider(lambda request: response).send("device-token", MESSAGE)
    assert result == DeliveryResult.TRANSIENT_FAILURE


@pytest.mark.asyncio
async def test_send_timeout_is_transient():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    result = await _provider(handler).send("device-token", MESSAGE)
    assert result == DeliveryResult.TRANSIENT_FAILURE


@pytest.mark.asyncio
async def test_send_refreshes_expired_credentials():
    credentials = MagicMock(valid=False, token="fresh-token")
    captured = []

    def handler(request):
        captured.append(request)
        return httpx.Response(200, json={})

    result = await _provider(handler, credentials).send("device-token", MESSAGE)

    assert result == DeliveryResult.DELIVERED
    credentials.refresh.assert_called_once()
    assert captured[0].headers["Authorization"] == "Bearer fresh-token"


@pytest.mark.asyncio
async def test_concurrent_sends_refresh_credentials_once():
    """Deliveries racing on an expired token share a single refresh."""
    credentials = MagicMock(valid=False, token="fresh-token")

    def refresh(request):
        time.sleep(0.05)
        credentials.valid = True

    credentials.refresh.side_effect = refresh
    provider = _provider(lambda request: httpx.Response(200, json={}), credentials)

    results = await asyncio.gather(
        *(provider.send(f"device-{n}", MESSAGE) for n in range(3))
    )

    assert results == [DeliveryResult.DELIVERED] * 3
    credentials.refresh.assert_called_once()


@pytest.mark.asyncio
async def test_send_without_credentials_is_transient():
    provider = FcmPushProvider()
    assert not provider.is_configured
    assert await provider.send("device-token", MESSAGE) == DeliveryResult.TRANSIENT_FAILURE


def test_from_settings_without_credentials():
    assert not FcmPushProvider.from_settings().is_configured


def test_load_service_account_info():
    info = {"type": "service_account", "project_id": "p", "private_key": "k", "client_email": "e"}
    encoded = base64.b64encode(json.dumps(info).encode()).decode().rstrip("=")
    assert load_service_account_info(f'"{encoded}"') == info


@pytest.mark.parametrize(
    "encoded",
    ["%%%", base64.b64encode(b"not json").decode(), base64.b64encode(b'{"type": "x"}').decode()],
)
def test_load_service_account_info_rejects_bad_input(encoded):
    with pytest.raises(ValueError):
        load_service_account_info(encoded)
