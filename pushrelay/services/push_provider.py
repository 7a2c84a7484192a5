"""Downstream push delivery through Firebase Cloud Messaging (HTTP v1 API)."""

import asyncio
import base64
import binascii
import json
import logging
from enum import Enum
from typing import Protocol

import google.auth.transport.requests
import httpx
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account

from pushrelay.config import get_settings
from pushrelay.schemas.notification import NormalizedMessage

logger = logging.getLogger(__name__)

FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"
FCM_SEND_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"

# FCM error codes meaning the token will never work again
PERMANENT_ERROR_CODES = {"UNREGISTERED", "SENDER_ID_MISMATCH"}


class DeliveryResult(str, Enum):
    """Outcome of a single delivery attempt."""

    DELIVERED = "delivered"
    PERMANENTLY_INVALID_TOKEN = "permanently_invalid_token"
    TRANSIENT_FAILURE = "transient_failure"


class PushProvider(Protocol):
    async def send(self, token: str, message: NormalizedMessage) -> DeliveryResult: ...


def load_service_account_info(encoded: str) -> dict:
    """Decode a base64 service account JSON document."""
    cleaned = encoded.strip().strip('"').strip("'")
    cleaned += "=" * (-len(cleaned) % 4)
    try:
        info = json.loads(base64.b64decode(cleaned).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"Firebase service account is not base64 JSON: {e}") from e

    required_fields = ["type", "project_id", "private_key", "client_email"]
    missing_fields = [f for f in required_fields if f not in info]
    if missing_fields:
        raise ValueError(f"Firebase service account is missing: {', '.join(missing_fields)}")
    return info


class FcmPushProvider:
    """Sends normalized messages to device tokens via FCM.

    Credentials are created once when the provider is built; access tokens
    are refreshed on demand. Build one instance per process and share it.
    """

    def __init__(
        self,
        credentials: service_account.Credentials | None = None,
        project_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = get_settings().push_timeout_seconds
        self._credentials = credentials
        self.project_id = project_id
        self._transport = transport
        self._refresh_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls) -> "FcmPushProvider":
        """Build the provider from FIREBASE_SERVICE_ACCOUNT_BASE64, if configured."""
        settings = get_settings()
        if not settings.firebase_service_account_base64:
            logger.info("Firebase credentials not configured, push delivery disabled")
            return cls(project_id=settings.fcm_project_id)

        info = load_service_account_info(settings.firebase_service_account_base64)
        credentials = service_account.Credentials.from_service_account_info(
            info, scopes=[FCM_SCOPE]
        )
        logger.info("Firebase Cloud Messaging initialized")
        return cls(
            credentials=credentials,
            project_id=settings.fcm_project_id or info["project_id"],
        )

    @property
    def is_configured(self) -> bool:
        """Check if FCM credentials are available."""
        return self._credentials is not None and bool(self.project_id)

    async def _access_token(self) -> str:
        if not self._credentials.valid:
            async with self._refresh_lock:
                # Another delivery may have refreshed while this one waited
                if not self._credentials.valid:
                    request = google.auth.transport.requests.Request()
                    await asyncio.to_thread(self._credentials.refresh, request)
        return self._credentials.token

    async def send(self, token: str, message: NormalizedMessage) -> DeliveryResult:
        """Deliver one message to one device token."""
        if not self.is_configured:
            logger.warning("Push delivery not available, dropping message")
            return DeliveryResult.TRANSIENT_FAILURE

        payload = {
            "message": {
                "token": token,
                "notification": {"title": message.title, "body": message.body},
                "data": message.data,
            }
        }

        try:
            access_token = await self._access_token()
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    FCM_SEND_URL.format(project_id=self.project_id),
                    json=payload,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except GoogleAuthError as e:
            logger.error(f"Failed to obtain FCM access token: {e}")
            return DeliveryResult.TRANSIENT_FAILURE
        except httpx.TimeoutException:
            logger.warning(f"FCM request timed out for token {token[:12]}...")
            return DeliveryResult.TRANSIENT_FAILURE
        except httpx.HTTPError as e:
            logger.error(f"FCM request failed for token {token[:12]}...: {e}")
            return DeliveryResult.TRANSIENT_FAILURE

        return self._classify(token, response)

    def _classify(self, token: str, response: httpx.Response) -> DeliveryResult:
        if response.is_success:
            logger.info(f"FCM accepted message for token {token[:12]}...")
            return DeliveryResult.DELIVERED

        error_codes = _error_codes(response)
        if error_codes & PERMANENT_ERROR_CODES:
            logger.warning(
                f"FCM reports token {token[:12]}... as invalid: {', '.join(sorted(error_codes))}"
            )
            return DeliveryResult.PERMANENTLY_INVALID_TOKEN

        logger.error(f"FCM rejected message for token {token[:12]}...: {response.status_code}")
        return DeliveryResult.TRANSIENT_FAILURE


def _error_codes(response: httpx.Response) -> set[str]:
    """Collect FcmError codes from an error response body."""
    try:
        error = response.json().get("error", {})
    except (ValueError, AttributeError):
        return set()
    if not isinstance(error, dict):
        return set()

    codes = set()
    for detail in error.get("details") or []:
        if isinstance(detail, dict) and detail.get("errorCode"):
            codes.add(detail["errorCode"])
    return codes
