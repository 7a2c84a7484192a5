"""Tests for the relay dispatcher."""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from pushrelay.exceptions import (
    DecryptionFailure,
    DownstreamTokenInvalid,
    DownstreamTransientFailure,
    InvalidSubscriptionData,
    MalformedPayload,
    MissingSubscriptionId,
    StoreUnavailable,
    SubscriptionNotFound,
)
from pushrelay.services.push_provider import DeliveryResult
from pushrelay.services.relay import RelayService
from pushrelay.services.webpush import encrypt

PAYLOAD = {
    "notification": {
        "type": "mention",
        "account": {"display_name": "Ann"},
        "status": {"id": "42", "visibility": "public"},
    }
}


def _delivery(key_material, payload=PAYLOAD):
    plaintext = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
    message = encrypt(plaintext, key_material.public_key, key_material.auth_secret)
    http = message.headers.to_http()
    return message.body, http["Encryption"], http["Crypto-Key"]


@pytest.fixture
def relay_service(store, push_provider):
    return RelayService(store, push_provider)


@pytest.mark.asyncio
async def test_relay_delivers_normalized_message(
    relay_service,
    push_provider,
    stored_record,
    key_material,
):
    body, encryption, crypto_key = _delivery(key_material)

    outcome = await relay_service.relay(stored_record.id, body, encryption, crypto_key)

    assert outcome.delivery == DeliveryResult.DELIVERED
    assert outcome.error is None
    token, message = push_provider.sent[0]
    assert token == "tok-1"
    assert message.title == "Ann mentioned you"
    assert message.data["noti_type"] == "mention"
    assert message.data["destination_id"] == "42"


@pytest.mark.asyncio
async def test_relay_missing_id(relay_service):
    with pytest.raises(MissingSubscriptionId):
        await relay_service.relay(None, b"", None, None)


@pytest.mark.asyncio
async def test_relay_unknown_subscription(relay_service, fake_redis, key_material):
    body, encryption, crypto_key = _delivery(key_material)

    with pytest.raises(SubscriptionNotFound):
        await relay_service.relay("unknown", body, encryption, crypto_key)

    assert fake_redis.calls == ["get"]


@pytest.mark.asyncio
async def test_relay_corrupt_record_stops_before_decryption(
    relay_service,
    fake_redis,
    stored_record,
    key_material,
):
    stored = stored_record.to_stored()
    del stored["receiver_private_key"]
    fake_redis.data[f"subscription:{stored_record.id}"] = json.dumps(stored)
    body, encryption, crypto_key = _delivery(key_material)

    with patch("pushrelay.services.relay.webpush.decrypt") as mock_decrypt:
        with pytest.raises(InvalidSubscriptionData):
            await relay_service.relay(stored_record.id, body, encryption, crypto_key)
        mock_decrypt.assert_not_called()


@pytest.mark.asyncio
async def test_relay_store_unavailable(relay_service, fake_redis):
    fake_redis.fail = True
    with pytest.raises(StoreUnavailable):
        await relay_service.relay("abc", b"\x00" * 32, "salt=x", "dh=y")


@pytest.mark.asyncio
async def test_relay_decryption_failure(relay_service, push_provider, stored_record, key_material):
    body, encryption, crypto_key = _delivery(key_material)
    tampered = body[:-1] + bytes([body[-1] ^ 0xFF])

    with pytest.raises(DecryptionFailure):
        await relay_service.relay(stored_record.id, tampered, encryption, crypto_key)
    assert push_provider.sent == []


@pytest.mark.asyncio
async def test_relay_malformed_payload(relay_service, push_provider, stored_record, key_material):
    body, encryption, crypto_key = _delivery(key_material, b"not json")

    with pytest.raises(MalformedPayload):
        await relay_service.relay(stored_record.id, body, encryption, crypto_key)
    assert push_provider.sent == []


@pytest.mark.asyncio
async def test_relay_invalid_token_deletes_record(
    relay_service,
    push_provider,
    store,
    stored_record,
    key_material,
):
    push_provider.result = DeliveryResult.PERMANENTLY_INVALID_TOKEN
    body, encryption, crypto_key = _delivery(key_material)

    outcome = await relay_service.relay(stored_record.id, body, encryption, crypto_key)

    assert outcome.delivery == DeliveryResult.PERMANENTLY_INVALID_TOKEN
    assert isinstance(outcome.error, DownstreamTokenInvalid)
    assert outcome.record_deleted is True
    assert await store.get(stored_record.id) is None


@pytest.mark.asyncio
async def test_relay_invalid_token_delete_failure_is_absorbed(
    relay_service,
    push_provider,
    store,
    stored_record,
    key_material,
):
    push_provider.result = DeliveryResult.PERMANENTLY_INVALID_TOKEN
    store.delete = AsyncMock(side_effect=StoreUnavailable("Subscription store is unavailable"))
    body, encryption, crypto_key = _delivery(key_material)

    outcome = await relay_service.relay(stored_record.id, body, encryption, crypto_key)

    assert outcome.record_deleted is False
    store.delete.assert_awaited_once_with(stored_record.id)


@pytest.mark.asyncio
async def test_relay_transient_failure_keeps_record(
    relay_service,
    push_provider,
    store,
    stored_record,
    key_material,
):
    push_provider.result = DeliveryResult.TRANSIENT_FAILURE
    body, encryption, crypto_key = _delivery(key_material)

    outcome = await relay_service.relay(stored_record.id, body, encryption, crypto_key)

    assert isinstance(outcome.error, DownstreamTransientFailure)
    assert outcome.record_deleted is False
    assert await store.get(stored_record.id) == stored_record


@pytest.mark.asyncio
async def test_relay_provider_exception_is_transient(
    relay_service,
    push_provider,
    stored_record,
    key_material,
):
    push_provider.send = AsyncMock(side_effect=RuntimeError("boom"))
    body, encryption, crypto_key = _delivery(key_material)

    outcome = await relay_service.relay(stored_record.id, body, encryption, crypto_key)

    assert outcome.delivery == DeliveryResult.TRANSIENT_FAILURE


@pytest.mark.asyncio
async def test_concurrent_deliveries_for_same_subscription(
    relay_service,
    push_provider,
    stored_record,
    key_material,
):
    """Deliveries share read-only key material and decrypt independently."""
    deliveries = [_delivery(key_material) for _ in range(5)]
    outcomes = await asyncio.gather(
        *(relay_service.relay(stored_record.id, *delivery) for delivery in deliveries)
    )

    assert all(outcome.delivery == DeliveryResult.DELIVERED for outcome in outcomes)
    assert len(push_provider.sent) == 5
