"""Subscription record binding a webhook id to a push token and receiver keys."""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pushrelay.exceptions import InvalidSubscriptionData
from pushrelay.services.encoding import decode_urlsafe, encode_urlsafe
from pushrelay.services.keys import AUTH_SECRET_LENGTH, KeyMaterial, load_private_key

REQUIRED_FIELDS = ("id", "push_token", "receiver_private_key", "auth_secret")


@dataclass(frozen=True)
class SubscriptionRecord:
    """The unit persisted per subscription.

    Key material is set at creation and never mutated; the record is either
    read as-is or deleted.
    """

    id: str
    push_token: str
    receiver_private_key: bytes
    auth_secret: bytes
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def create(cls, push_token: str, keys: KeyMaterial) -> "SubscriptionRecord":
        """Build a new record with a random 128-bit identifier."""
        return cls(
            id=str(uuid.uuid4()),
            push_token=push_token,
            receiver_private_key=keys.private_key,
            auth_secret=keys.auth_secret,
        )

    def to_stored(self) -> dict[str, str]:
        """Serialize for the key-value store."""
        return {
            "id": self.id,
            "push_token": self.push_token,
            "receiver_private_key": encode_urlsafe(self.receiver_private_key),
            "auth_secret": encode_urlsafe(self.auth_secret),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_stored(cls, data: Any) -> "SubscriptionRecord":
        """Rebuild a record, rejecting anything unusable for decryption.

        Raises:
            InvalidSubscriptionData: if a field is missing or the key material is malformed.
        """
        if not isinstance(data, dict):
            raise InvalidSubscriptionData("Subscription record is not an object")

        missing = [name for name in REQUIRED_FIELDS if not data.get(name)]
        if missing:
            raise InvalidSubscriptionData(
                f"Subscription record is missing: {', '.join(missing)}"
            )

        if not all(isinstance(data[name], str) for name in REQUIRED_FIELDS):
            raise InvalidSubscriptionData("Subscription record fields must be strings")

        try:
            private_key = decode_urlsafe(data["receiver_private_key"])
            auth_secret = decode_urlsafe(data["auth_secret"])
        except ValueError as e:
            raise InvalidSubscriptionData(f"Subscription key material is not decodable: {e}") from e

        try:
            load_private_key(private_key)
        except ValueError as e:
            raise InvalidSubscriptionData(f"Subscription private key is invalid: {e}") from e

        if len(auth_secret) != AUTH_SECRET_LENGTH:
            raise InvalidSubscriptionData(
                f"Subscription auth secret must be {AUTH_SECRET_LENGTH} bytes"
            )

        created_at = datetime.now(UTC)
        if data.get("created_at"):
            try:
                created_at = datetime.fromisoformat(data["created_at"])
            except (TypeError, ValueError) as e:
                raise InvalidSubscriptionData(f"Subscription created_at is invalid: {e}") from e

        return cls(
            id=data["id"],
            push_token=data["push_token"],
            receiver_private_key=private_key,
            auth_secret=auth_secret,
            created_at=created_at,
        )
