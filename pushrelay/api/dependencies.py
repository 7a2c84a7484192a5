"""FastAPI dependencies wiring process-wide collaborators into handlers."""

from typing import Annotated

from fastapi import Depends, Request

from pushrelay.services.mastodon import MastodonClient
from pushrelay.services.push_provider import PushProvider
from pushrelay.services.relay import RelayService
from pushrelay.services.store import SubscriptionStore
from pushrelay.services.subscription import SubscriptionService


def get_store(request: Request) -> SubscriptionStore:
    """Get the subscription store created at startup."""
    return request.app.state.store


def get_push_provider(request: Request) -> PushProvider:
    """Get the push provider created at startup."""
    return request.app.state.push_provider


def get_mastodon_client(request: Request) -> MastodonClient:
    """Get the upstream registration client created at startup."""
    return request.app.state.mastodon


def get_relay_service(
    store: Annotated[SubscriptionStore, Depends(get_store)],
    push_provider: Annotated[PushProvider, Depends(get_push_provider)],
) -> RelayService:
    """Get relay service with dependencies."""
    return RelayService(store, push_provider)


def get_subscription_service(
    store: Annotated[SubscriptionStore, Depends(get_store)],
    mastodon: Annotated[MastodonClient, Depends(get_mastodon_client)],
) -> SubscriptionService:
    """Get subscription service with dependencies."""
    return SubscriptionService(store, mastodon)
