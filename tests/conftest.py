"""Pytest configuration and fixtures."""

import json

import httpx
import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from pushrelay.api.dependencies import get_mastodon_client, get_push_provider, get_store
from pushrelay.main import app
from pushrelay.models.subscription import SubscriptionRecord
from pushrelay.services import keys
from pushrelay.services.mastodon import MastodonClient
from pushrelay.services.push_provider import DeliveryResult
from pushrelay.services.store import SubscriptionStore


class FakeRedis:
    """In-memory stand-in for the async Redis commands the store uses."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.fail = False
        self.calls: list[str] = []

    def _check(self, command: str) -> None:
        self.calls.append(command)
        if self.fail:
            raise RedisConnectionError("Redis connection failed")

    async def get(self, key):
        self._check("get")
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self._check("set")
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        self._check("delete")
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                self.ttls.pop(key, None)
                removed += 1
        return removed


class FakePushProvider:
    """Records sent messages and answers with a configurable result."""

    def __init__(self, result: DeliveryResult = DeliveryResult.DELIVERED):
        self.result = result
        self.sent = []

    async def send(self, token, message):
        self.sent.append((token, message))
        return self.result


class UpstreamServer:
    """Mock upstream server capturing push subscription registrations."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.status_code = 200

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code >= 400:
            return httpx.Response(self.status_code, json={"error": "Invalid token"})
        body = json.loads(request.content)
        return httpx.Response(
            self.status_code,
            json={
                "id": 1,
                "endpoint": body["subscription"]["endpoint"],
                "alerts": body["data"]["alerts"],
                "server_key": "BExampleServerKey",
            },
        )

    @property
    def last_payload(self) -> dict:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def store(fake_redis):
    return SubscriptionStore(fake_redis, key_prefix="subscription:")


@pytest.fixture
def push_provider():
    return FakePushProvider()


@pytest.fixture
def upstream():
    return UpstreamServer()


@pytest.fixture
def mastodon_client(upstream):
    return MastodonClient(transport=httpx.MockTransport(upstream.handler))


@pytest.fixture
def key_material():
    return keys.generate()


@pytest.fixture
def stored_record(fake_redis, key_material):
    """A subscription record already persisted in the fake store."""
    record = SubscriptionRecord.create("tok-1", key_material)
    fake_redis.data[f"subscription:{record.id}"] = json.dumps(record.to_stored())
    fake_redis.ttls[f"subscription:{record.id}"] = 3600
    return record


@pytest.fixture
def client(store, push_provider, mastodon_client):
    """Create a test client with collaborator overrides."""
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_push_provider] = lambda: push_provider
    app.dependency_overrides[get_mastodon_client] = lambda: mastodon_client
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
