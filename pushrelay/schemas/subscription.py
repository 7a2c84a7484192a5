"""Subscription-related Pydantic schemas."""

from pydantic import BaseModel, ConfigDict, Field


class SubscribeRequest(BaseModel):
    """Schema for registering a device with the relay."""

    model_config = ConfigDict(populate_by_name=True)

    push_token: str = Field(..., alias="pushToken", min_length=1)
    upstream_auth_token: str = Field(..., alias="upstreamAuthToken", min_length=1)
    instance_url: str | None = Field(None, alias="instanceUrl")
    alerts: dict[str, bool] | None = None


class SubscribeResponse(BaseModel):
    """Schema for subscription response."""

    model_config = ConfigDict(populate_by_name=True)

    subscription_id: str = Field(..., alias="subscriptionId")
