"""Relay dispatcher: lookup, decrypt, normalize, deliver."""

import logging
from dataclasses import dataclass

from pushrelay.exceptions import (
    DownstreamTokenInvalid,
    DownstreamTransientFailure,
    MissingSubscriptionId,
    RelayError,
    StoreUnavailable,
    SubscriptionNotFound,
)
from pushrelay.models.subscription import SubscriptionRecord
from pushrelay.schemas.notification import NormalizedMessage
from pushrelay.services import webpush
from pushrelay.services.normalizer import normalize
from pushrelay.services.push_provider import DeliveryResult, PushProvider
from pushrelay.services.store import SubscriptionStore

logger = logging.getLogger(__name__)


@dataclass
class RelayOutcome:
    """Result of a relayed delivery that got past decryption.

    ``error`` records a delivery-stage failure for diagnostics; it is never
    reported to the sender.
    """

    subscription_id: str
    message: NormalizedMessage
    delivery: DeliveryResult
    error: RelayError | None = None
    record_deleted: bool = False


class RelayService:
    """Handles one inbound webhook call at a time, holding no per-call state."""

    def __init__(self, store: SubscriptionStore, push_provider: PushProvider) -> None:
        self.store = store
        self.push_provider = push_provider

    async def relay(
        self,
        subscription_id: str | None,
        body: bytes,
        encryption: str | None,
        crypto_key: str | None,
        content_encoding: str | None = None,
    ) -> RelayOutcome:
        """Relay one encrypted delivery to the subscriber's device.

        Raises:
            MissingSubscriptionId: if no id was given.
            SubscriptionNotFound: if the store has no record for the id.
            InvalidSubscriptionData: if the stored record is corrupt.
            StoreUnavailable: if the store cannot be read.
            DecryptionFailure: if headers or body cannot be decrypted.
            MalformedPayload: if the plaintext is not a JSON object.
        """
        if not subscription_id:
            raise MissingSubscriptionId("Subscription ID is missing.")

        record = await self._lookup(subscription_id)

        headers = webpush.WebPushHeaders.from_http(encryption, crypto_key, content_encoding)
        plaintext = webpush.decrypt(record, headers, body)
        message = normalize(plaintext)

        return await self._deliver(record, message)

    async def _lookup(self, subscription_id: str) -> SubscriptionRecord:
        record = await self.store.get(subscription_id)
        if record is None:
            logger.info(f"No subscription found for {subscription_id}")
            raise SubscriptionNotFound("Subscription not found.")
        return record

    async def _deliver(
        self, record: SubscriptionRecord, message: NormalizedMessage
    ) -> RelayOutcome:
        try:
            result = await self.push_provider.send(record.push_token, message)
        except Exception as e:
            logger.error(f"Push provider raised for subscription {record.id}: {e}", exc_info=True)
            result = DeliveryResult.TRANSIENT_FAILURE

        outcome = RelayOutcome(subscription_id=record.id, message=message, delivery=result)

        if result == DeliveryResult.PERMANENTLY_INVALID_TOKEN:
            outcome.error = DownstreamTokenInvalid("Push token is no longer valid")
            outcome.record_deleted = await self._remove(record.id)
        elif result == DeliveryResult.TRANSIENT_FAILURE:
            outcome.error = DownstreamTransientFailure("Push delivery failed")
            logger.warning(f"Delivery for subscription {record.id} failed transiently")
        else:
            logger.info(f"Relayed {message.data.get('noti_type')} to subscription {record.id}")

        return outcome

    async def _remove(self, subscription_id: str) -> bool:
        """Best-effort removal of a subscription whose token was rejected."""
        try:
            await self.store.delete(subscription_id)
        except StoreUnavailable as e:
            logger.error(f"Could not remove subscription {subscription_id}: {e}")
            return False
        logger.info(f"Removed subscription {subscription_id} after token was rejected")
        return True
