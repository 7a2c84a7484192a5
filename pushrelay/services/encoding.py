"""URL-safe base64 without padding.

This is the only variant the upstream server and the Web Push headers speak;
all key material exchanged or stored at rest goes through these helpers.
"""

import base64
import binascii
import re

_URLSAFE_RE = re.compile(r"[A-Za-z0-9_-]*={0,2}")


def encode_urlsafe(data: bytes) -> str:
    """Encode bytes as URL-safe base64 with the ``=`` padding stripped."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def decode_urlsafe(value: str) -> bytes:
    """Decode padded or unpadded URL-safe base64.

    Raises:
        ValueError: if the string uses characters outside the URL-safe alphabet,
            has an impossible length, or is not the canonical encoding of its bytes.
    """
    if not isinstance(value, str) or not _URLSAFE_RE.fullmatch(value):
        raise ValueError("value is not URL-safe base64")

    stripped = value.rstrip("=")
    if len(stripped) % 4 == 1:
        raise ValueError("value has an invalid base64 length")

    try:
        decoded = base64.urlsafe_b64decode(stripped + "=" * (-len(stripped) % 4))
    except binascii.Error as e:
        raise ValueError(f"value is not URL-safe base64: {e}") from e

    # Unused trailing bits must be zero, otherwise two strings map to one value
    if encode_urlsafe(decoded) != stripped:
        raise ValueError("value is not canonically encoded")
    return decoded
