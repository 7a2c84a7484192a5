"""Turn decrypted upstream notifications into provider-agnostic messages."""

import html
import json
import logging
import re
from typing import Any

from pushrelay.exceptions import MalformedPayload
from pushrelay.schemas.notification import NormalizedMessage

logger = logging.getLogger(__name__)

UNKNOWN_ACTOR = "Someone"
UNKNOWN_TYPE = "unknown"
UNKNOWN_VISIBILITY = "none"
MAX_BODY_LENGTH = 200

# Title templates keyed by upstream notification type; {actor} is the display name
TITLES = {
    "mention": "{actor} mentioned you",
    "status": "{actor} just posted",
    "reblog": "{actor} boosted your post",
    "favourite": "{actor} favourited your post",
    "follow": "{actor} followed you",
    "follow_request": "{actor} requested to follow you",
    "poll": "A poll has ended",
    "update": "{actor} edited a post",
    "admin.sign_up": "{actor} signed up",
    "admin.report": "{actor} filed a report",
}
DEFAULT_TITLE = "New notification from {actor}"

_TAG_RE = re.compile(r"<[^>]+>")
_BREAK_RE = re.compile(r"<br\s*/?>|</p>\s*<p>", re.IGNORECASE)


def normalize(plaintext: bytes | str) -> NormalizedMessage:
    """Map a decrypted notification document to a NormalizedMessage.

    Two shapes are understood: an object holding a full ``notification``
    entity (type, account, status), and the flat Web Push payload
    (``notification_type``, ``notification_id``, ``title``, ``body``).
    Missing optional fields fall back to defaults instead of failing.

    Raises:
        MalformedPayload: if the plaintext is not a UTF-8 JSON object.
    """
    try:
        document = json.loads(plaintext)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedPayload(f"Decrypted payload is not JSON: {e}") from e

    if not isinstance(document, dict):
        raise MalformedPayload("Decrypted payload is not a JSON object")

    notification = _as_dict(document.get("notification"))
    account = _as_dict(notification.get("account"))
    status = _as_dict(notification.get("status"))

    noti_type = _text(notification.get("type")) or _text(document.get("notification_type"))
    noti_type = noti_type or UNKNOWN_TYPE
    actor = _text(account.get("display_name")) or _text(account.get("username")) or UNKNOWN_ACTOR

    title = _text(document.get("title")) or TITLES.get(noti_type, DEFAULT_TITLE).format(actor=actor)
    body = _text(document.get("body")) or _status_text(status) or _account_text(account)

    account_id = _text(account.get("id"))
    data = {
        "noti_type": noti_type,
        "notification_id": _text(notification.get("id")) or _text(document.get("notification_id")),
        "destination_id": _text(status.get("id")) or account_id,
        "account_id": account_id,
        "visibility": _text(status.get("visibility")) or UNKNOWN_VISIBILITY,
    }

    if noti_type == UNKNOWN_TYPE:
        logger.info("Relaying notification without a recognised type")

    return NormalizedMessage(title=title, body=_truncate(body), data=data)


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _text(value: Any) -> str:
    """Stringify scalars; ids arrive as strings or integers depending on the server."""
    if value is None or isinstance(value, (dict, list)):
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    return str(value).strip()


def _status_text(status: dict) -> str:
    spoiler = _text(status.get("spoiler_text"))
    if spoiler:
        return spoiler
    return strip_html(_text(status.get("content")))


def _account_text(account: dict) -> str:
    acct = _text(account.get("acct"))
    return f"@{acct}" if acct else ""


def strip_html(content: str) -> str:
    """Reduce status HTML to plain text."""
    text = _BREAK_RE.sub("\n", content)
    text = _TAG_RE.sub("", text)
    return html.unescape(text).strip()


def _truncate(text: str) -> str:
    if len(text) <= MAX_BODY_LENGTH:
        return text
    return text[: MAX_BODY_LENGTH - 1].rstrip() + "…"
