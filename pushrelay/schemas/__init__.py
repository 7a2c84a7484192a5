"""Pydantic schemas for API requests, responses and relayed messages."""

from pushrelay.schemas.notification import NormalizedMessage
from pushrelay.schemas.subscription import SubscribeRequest, SubscribeResponse

__all__ = [
    "NormalizedMessage",
    "SubscribeRequest",
    "SubscribeResponse",
]
