#!/usr/bin/env python3
"""Send an encrypted test notification to a relay webhook.

Plays the part of the upstream server: encrypts a JSON payload for the
keys that were exported at subscription time and POSTs it to the webhook.

Usage:
    python scripts/send_test_notification.py \
        --url "http://localhost:8000/notify?id=<subscription id>" \
        --p256dh <exported public key> --auth <exported auth secret>

    # Custom payload:
    python scripts/send_test_notification.py ... --payload '{"notification": {"type": "follow"}}'
"""

import argparse
import json
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import httpx

from pushrelay.services.encoding import decode_urlsafe
from pushrelay.services.webpush import encrypt

DEFAULT_PAYLOAD = {
    "notification": {
        "id": "1",
        "type": "mention",
        "account": {"id": "7", "display_name": "Ann", "acct": "ann@example.social"},
        "status": {"id": "42", "visibility": "public", "content": "<p>Hello from the relay</p>"},
    }
}


def main() -> int:
    parser = argparse.ArgumentParser(description="Send an encrypted Web Push test delivery")
    parser.add_argument("--url", required=True, help="Webhook URL including ?id=")
    parser.add_argument("--p256dh", required=True, help="Receiver public key (URL-safe base64)")
    parser.add_argument("--auth", required=True, help="Auth secret (URL-safe base64)")
    parser.add_argument("--payload", help="JSON payload, defaults to a sample mention")
    parser.add_argument("--padding", type=int, default=0, help="Padding bytes to add")
    args = parser.parse_args()

    payload = json.loads(args.payload) if args.payload else DEFAULT_PAYLOAD
    message = encrypt(
        json.dumps(payload).encode("utf-8"),
        receiver_public_key=decode_urlsafe(args.p256dh),
        auth_secret=decode_urlsafe(args.auth),
        padding=args.padding,
    )

    response = httpx.post(args.url, content=message.body, headers=message.headers.to_http())
    print(f"{response.status_code} {response.text}")
    return 0 if response.is_success else 1


if __name__ == "__main__":
    sys.exit(main())
