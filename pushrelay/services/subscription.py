"""Subscription registration: key generation, persistence and upstream export."""

import logging
from urllib.parse import urlencode

from pushrelay.config import get_settings
from pushrelay.exceptions import StoreUnavailable, UpstreamRegistrationError
from pushrelay.models.subscription import SubscriptionRecord
from pushrelay.services import keys
from pushrelay.services.encoding import encode_urlsafe
from pushrelay.services.mastodon import MastodonClient
from pushrelay.services.store import SubscriptionStore

logger = logging.getLogger(__name__)

NOTIFY_PATH = "/notify"


def build_webhook_url(base_url: str, subscription_id: str) -> str:
    """Build the webhook URL the upstream server delivers to."""
    return f"{base_url.rstrip('/')}{NOTIFY_PATH}?{urlencode({'id': subscription_id})}"


class SubscriptionService:
    """Creates subscriptions and registers them upstream."""

    def __init__(self, store: SubscriptionStore, upstream: MastodonClient) -> None:
        self.settings = get_settings()
        self.store = store
        self.upstream = upstream

    async def subscribe(
        self,
        push_token: str,
        upstream_auth_token: str,
        webhook_base_url: str,
        instance_url: str | None = None,
        alerts: dict[str, bool] | None = None,
    ) -> SubscriptionRecord:
        """Register a device and return its new subscription record.

        The record is stored before the public key is exported, so that the
        first delivery can always find it. If the upstream call fails the
        record is removed again.

        Raises:
            StoreUnavailable: if the record cannot be stored.
            UpstreamRegistrationError: if the upstream server rejects the subscription.
        """
        material = keys.generate()
        record = SubscriptionRecord.create(push_token, material)
        await self.store.set(record, self.settings.subscription_ttl_seconds)
        logger.info(f"Created subscription {record.id} for token {push_token[:12]}...")

        base_url = self.settings.public_base_url or webhook_base_url
        try:
            await self.upstream.register(
                access_token=upstream_auth_token,
                endpoint=build_webhook_url(base_url, record.id),
                p256dh=encode_urlsafe(material.public_key),
                auth=encode_urlsafe(material.auth_secret),
                instance_url=instance_url,
                alerts=alerts,
            )
        except UpstreamRegistrationError:
            await self._discard(record.id)
            raise

        return record

    async def _discard(self, subscription_id: str) -> None:
        try:
            await self.store.delete(subscription_id)
        except StoreUnavailable as e:
            logger.error(f"Could not discard unregistered subscription {subscription_id}: {e}")
