"""Persisted records."""

from pushrelay.models.subscription import SubscriptionRecord

__all__ = ["SubscriptionRecord"]
