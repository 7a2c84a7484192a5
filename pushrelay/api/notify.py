"""Webhook endpoint receiving encrypted Web Push deliveries."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from pushrelay.api.dependencies import get_relay_service
from pushrelay.config import get_settings
from pushrelay.services.relay import RelayService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post("/notify")
async def notify(
    request: Request,
    relay_service: Annotated[RelayService, Depends(get_relay_service)],
    subscription_id: Annotated[str | None, Query(alias="id")] = None,
    encryption: Annotated[str | None, Header()] = None,
    crypto_key: Annotated[str | None, Header(alias="Crypto-Key")] = None,
    content_encoding: Annotated[str | None, Header(alias="Content-Encoding")] = None,
) -> dict:
    """Decrypt a delivery and forward it to the subscriber's device.

    Lookup and decryption failures are returned to the sender. Delivery
    failures are not: the sender has already done its part and must not retry.
    """
    body = await request.body()
    if len(body) > get_settings().max_body_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Payload too large",
        )

    outcome = await relay_service.relay(
        subscription_id, body, encryption, crypto_key, content_encoding
    )
    if outcome.error:
        logger.warning(f"Delivery for {outcome.subscription_id} absorbed: {outcome.error.kind}")

    return {"success": True, "delivery": outcome.delivery.value}
