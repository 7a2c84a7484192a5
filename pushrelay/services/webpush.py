"""Web Push message decryption (``aesgcm`` content encoding).

A delivery arrives as a raw body plus two headers::

    Encryption: salt=<urlsafe-base64>[;rs=<record size>]
    Crypto-Key: dh=<urlsafe-base64 sender public key>

The receiver combines its stored private key and auth secret with the
sender's ephemeral public key to recover the content-encryption key and
nonce, then opens a single AES-128-GCM record.
"""

import os
import struct
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from pushrelay.exceptions import DecryptionFailure, MultiRecordCiphertext
from pushrelay.models.subscription import SubscriptionRecord
from pushrelay.services.encoding import decode_urlsafe, encode_urlsafe
from pushrelay.services.keys import load_private_key, load_public_key, public_key_bytes

CONTENT_ENCODING = "aesgcm"

AUTH_INFO = b"Content-Encoding: auth\x00"
KEY_INFO = b"Content-Encoding: aesgcm\x00"
NONCE_INFO = b"Content-Encoding: nonce\x00"
CURVE_LABEL = b"P-256\x00"

SALT_LENGTH = 16
KEY_LENGTH = 16
NONCE_LENGTH = 12
TAG_LENGTH = 16
PADDING_PREFIX_LENGTH = 2
DEFAULT_RECORD_SIZE = 4096


@dataclass(frozen=True)
class WebPushHeaders:
    """Per-message parameters carried in the HTTP headers."""

    salt: bytes
    sender_public_key: bytes
    record_size: int = DEFAULT_RECORD_SIZE

    @classmethod
    def from_http(
        cls,
        encryption: str | None,
        crypto_key: str | None,
        content_encoding: str | None = None,
    ) -> "WebPushHeaders":
        """Parse the ``Encryption`` and ``Crypto-Key`` header values.

        Raises:
            DecryptionFailure: if a header is missing or malformed, or the body
                uses a content encoding other than ``aesgcm``.
        """
        if content_encoding and content_encoding.strip().lower() != CONTENT_ENCODING:
            raise DecryptionFailure(f"Unsupported content encoding: {content_encoding}")
        if not encryption:
            raise DecryptionFailure("Missing Encryption header")
        if not crypto_key:
            raise DecryptionFailure("Missing Crypto-Key header")

        encryption_params = parse_header_params(encryption)
        crypto_key_params = parse_header_params(crypto_key)

        if "salt" not in encryption_params:
            raise DecryptionFailure("Encryption header has no salt parameter")
        if "dh" not in crypto_key_params:
            raise DecryptionFailure("Crypto-Key header has no dh parameter")

        try:
            salt = decode_urlsafe(encryption_params["salt"])
            sender_public_key = decode_urlsafe(crypto_key_params["dh"])
        except ValueError as e:
            raise DecryptionFailure(f"Malformed header value: {e}") from e

        if len(salt) != SALT_LENGTH:
            raise DecryptionFailure(f"Salt must be {SALT_LENGTH} bytes, got {len(salt)}")

        record_size = DEFAULT_RECORD_SIZE
        if "rs" in encryption_params:
            try:
                record_size = int(encryption_params["rs"])
            except ValueError as e:
                raise DecryptionFailure("Record size is not an integer") from e
            if record_size <= PADDING_PREFIX_LENGTH:
                raise DecryptionFailure(f"Record size {record_size} is too small")

        return cls(salt=salt, sender_public_key=sender_public_key, record_size=record_size)

    def to_http(self) -> dict[str, str]:
        """Render the headers a sender attaches to the request."""
        encryption = f"salt={encode_urlsafe(self.salt)}"
        if self.record_size != DEFAULT_RECORD_SIZE:
            encryption += f";rs={self.record_size}"
        return {
            "Content-Encoding": CONTENT_ENCODING,
            "Encryption": encryption,
            "Crypto-Key": f"dh={encode_urlsafe(self.sender_public_key)}",
        }


def parse_header_params(value: str) -> dict[str, str]:
    """Parse ``name=value`` pairs separated by ``;`` or ``,``.

    Names are lower-cased and surrounding quotes stripped. The first
    occurrence of a name wins.
    """
    params: dict[str, str] = {}
    for part in value.replace(",", ";").split(";"):
        name, sep, param = part.partition("=")
        if not sep:
            continue
        name = name.strip().lower()
        if name and name not in params:
            params[name] = param.strip().strip('"')
    return params


def _hkdf(salt: bytes, ikm: bytes, info: bytes, length: int) -> bytes:
    return HKDF(algorithm=hashes.SHA256(), length=length, salt=salt, info=info).derive(ikm)


def _context(receiver_public_key: bytes, sender_public_key: bytes) -> bytes:
    return (
        CURVE_LABEL
        + struct.pack("!H", len(receiver_public_key))
        + receiver_public_key
        + struct.pack("!H", len(sender_public_key))
        + sender_public_key
    )


def derive_key_and_nonce(
    shared_secret: bytes,
    auth_secret: bytes,
    salt: bytes,
    receiver_public_key: bytes,
    sender_public_key: bytes,
) -> tuple[bytes, bytes]:
    """Derive the AES-128-GCM key and nonce for one record."""
    prk = _hkdf(auth_secret, shared_secret, AUTH_INFO, 32)
    context = _context(receiver_public_key, sender_public_key)
    key = _hkdf(salt, prk, KEY_INFO + context, KEY_LENGTH)
    nonce = _hkdf(salt, prk, NONCE_INFO + context, NONCE_LENGTH)
    return key, nonce


def decrypt(record: SubscriptionRecord, headers: WebPushHeaders, body: bytes) -> bytes:
    """Recover the plaintext of a single-record Web Push message.

    Raises:
        MultiRecordCiphertext: if the body is longer than one record.
        DecryptionFailure: on malformed input, tag mismatch or bad padding.
    """
    if len(body) < TAG_LENGTH:
        raise DecryptionFailure(f"Body is {len(body)} bytes, shorter than one tag")
    if len(body) > headers.record_size + TAG_LENGTH:
        raise MultiRecordCiphertext(
            f"Body of {len(body)} bytes spans more than one {headers.record_size}-byte record"
        )

    try:
        receiver_key = load_private_key(record.receiver_private_key)
        sender_key = load_public_key(headers.sender_public_key)
    except ValueError as e:
        raise DecryptionFailure(f"Unusable key: {e}") from e

    shared_secret = receiver_key.exchange(ec.ECDH(), sender_key)
    key, nonce = derive_key_and_nonce(
        shared_secret,
        record.auth_secret,
        headers.salt,
        public_key_bytes(receiver_key),
        headers.sender_public_key,
    )

    try:
        padded = AESGCM(key).decrypt(nonce, body, None)
    except InvalidTag as e:
        raise DecryptionFailure("Authentication tag mismatch") from e

    return _strip_padding(padded)


def _strip_padding(padded: bytes) -> bytes:
    if len(padded) < PADDING_PREFIX_LENGTH:
        raise DecryptionFailure("Record is too short to hold the padding length")
    (pad_length,) = struct.unpack("!H", padded[:PADDING_PREFIX_LENGTH])
    end = PADDING_PREFIX_LENGTH + pad_length
    if end > len(padded):
        raise DecryptionFailure(f"Padding length {pad_length} overruns the record")
    if any(padded[PADDING_PREFIX_LENGTH:end]):
        raise DecryptionFailure("Padding bytes are not zero")
    return padded[end:]


@dataclass(frozen=True)
class EncryptedMessage:
    """What a sender puts on the wire."""

    headers: WebPushHeaders
    body: bytes


def encrypt(
    plaintext: bytes,
    receiver_public_key: bytes,
    auth_secret: bytes,
    salt: bytes | None = None,
    sender_private_key: ec.EllipticCurvePrivateKey | None = None,
    padding: int = 0,
    record_size: int = DEFAULT_RECORD_SIZE,
) -> EncryptedMessage:
    """Encrypt a payload the way an upstream server does for one subscription.

    Used by the sender simulator script and the tests; the relay itself only decrypts.

    Raises:
        ValueError: if the salt is not 16 bytes or the plaintext does not fit
            in one record.
    """
    if PADDING_PREFIX_LENGTH + padding + len(plaintext) > record_size:
        raise ValueError("Plaintext does not fit in a single record")

    if salt is None:
        salt = os.urandom(SALT_LENGTH)
    elif len(salt) != SALT_LENGTH:
        raise ValueError(f"Salt must be {SALT_LENGTH} bytes, got {len(salt)}")
    if sender_private_key is None:
        sender_private_key = ec.generate_private_key(ec.SECP256R1())
    sender_public_key = public_key_bytes(sender_private_key)

    shared_secret = sender_private_key.exchange(ec.ECDH(), load_public_key(receiver_public_key))
    key, nonce = derive_key_and_nonce(
        shared_secret, auth_secret, salt, receiver_public_key, sender_public_key
    )

    padded = struct.pack("!H", padding) + b"\x00" * padding + plaintext
    body = AESGCM(key).encrypt(nonce, padded, None)
    headers = WebPushHeaders(
        salt=salt, sender_public_key=sender_public_key, record_size=record_size
    )
    return EncryptedMessage(headers=headers, body=body)
