"""Client for registering the relay webhook with an upstream Mastodon server."""

import logging

import httpx

from pushrelay.config import get_settings
from pushrelay.exceptions import UpstreamRegistrationError

logger = logging.getLogger(__name__)

DEFAULT_ALERTS = {
    "follow": True,
    "favourite": True,
    "reblog": True,
    "mention": True,
    "poll": True,
}


class MastodonClient:
    """Registers Web Push subscriptions through the Mastodon push API."""

    SUBSCRIPTION_PATH = "/api/v1/push/subscription"

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        settings = get_settings()
        self.default_instance_url = settings.default_instance_url
        self.timeout = settings.upstream_timeout_seconds
        self._transport = transport

    async def register(
        self,
        access_token: str,
        endpoint: str,
        p256dh: str,
        auth: str,
        instance_url: str | None = None,
        alerts: dict[str, bool] | None = None,
    ) -> dict:
        """Create or replace the push subscription for the token's user.

        Args:
            access_token: Bearer token of the upstream account
            endpoint: Webhook URL the server will deliver to
            p256dh: URL-safe base64 receiver public key
            auth: URL-safe base64 auth secret
            instance_url: Server base URL, defaults to the configured instance
            alerts: Which notification types to deliver

        Returns:
            The upstream subscription entity

        Raises:
            UpstreamRegistrationError: if the server rejects the request or is unreachable.
        """
        base_url = (instance_url or self.default_instance_url).rstrip("/")
        payload = {
            "subscription": {
                "endpoint": endpoint,
                "keys": {"p256dh": p256dh, "auth": auth},
            },
            "data": {"alerts": {**DEFAULT_ALERTS, **(alerts or {})}},
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{base_url}{self.SUBSCRIPTION_PATH}",
                    json=payload,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Upstream {base_url} rejected push subscription: "
                f"{e.response.status_code} {e.response.text}"
            )
            raise UpstreamRegistrationError(
                f"Upstream server responded with {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Upstream {base_url} push subscription request failed: {e}")
            raise UpstreamRegistrationError(f"Upstream server request failed: {e}") from e

        logger.info(f"Registered webhook with {base_url}")
        try:
            return response.json()
        except ValueError:
            return {}
