"""Registration endpoint for new relay subscriptions."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from pushrelay.api.dependencies import get_subscription_service
from pushrelay.schemas.subscription import SubscribeRequest, SubscribeResponse
from pushrelay.services.subscription import SubscriptionService

router = APIRouter(tags=["subscriptions"])


@router.post("/subscribe", response_model=SubscribeResponse)
async def subscribe(
    subscription: SubscribeRequest,
    request: Request,
    subscription_service: Annotated[SubscriptionService, Depends(get_subscription_service)],
) -> SubscribeResponse:
    """Create a subscription and register its webhook upstream."""
    record = await subscription_service.subscribe(
        push_token=subscription.push_token,
        upstream_auth_token=subscription.upstream_auth_token,
        webhook_base_url=str(request.base_url),
        instance_url=subscription.instance_url,
        alerts=subscription.alerts,
    )
    return SubscribeResponse(subscription_id=record.id)
