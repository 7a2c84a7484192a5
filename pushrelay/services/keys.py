"""Key material generated for each new subscription."""

import os
from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

AUTH_SECRET_LENGTH = 16
PRIVATE_KEY_LENGTH = 32
PUBLIC_KEY_LENGTH = 65


@dataclass(frozen=True)
class KeyMaterial:
    """A P-256 key pair plus the Web Push authentication secret."""

    public_key: bytes  # uncompressed point, 65 bytes
    private_key: bytes  # big-endian scalar, 32 bytes
    auth_secret: bytes  # 16 bytes


def generate() -> KeyMaterial:
    """Generate a fresh receiver key pair and authentication secret."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    return KeyMaterial(
        public_key=public_key_bytes(private_key),
        private_key=private_key_bytes(private_key),
        auth_secret=os.urandom(AUTH_SECRET_LENGTH),
    )


def private_key_bytes(private_key: ec.EllipticCurvePrivateKey) -> bytes:
    """Serialize the private scalar as 32 raw big-endian bytes."""
    return private_key.private_numbers().private_value.to_bytes(PRIVATE_KEY_LENGTH, "big")


def public_key_bytes(key: ec.EllipticCurvePrivateKey | ec.EllipticCurvePublicKey) -> bytes:
    """Serialize the public point in X9.62 uncompressed form."""
    if isinstance(key, ec.EllipticCurvePrivateKey):
        key = key.public_key()
    return key.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )


def load_private_key(raw: bytes) -> ec.EllipticCurvePrivateKey:
    """Rebuild a private key from its raw scalar.

    The public point is recomputed from the scalar, so it never has to be stored.

    Raises:
        ValueError: if the bytes are not a valid P-256 scalar.
    """
    if len(raw) != PRIVATE_KEY_LENGTH:
        raise ValueError(f"private key must be {PRIVATE_KEY_LENGTH} bytes, got {len(raw)}")
    return ec.derive_private_key(int.from_bytes(raw, "big"), ec.SECP256R1())


def load_public_key(raw: bytes) -> ec.EllipticCurvePublicKey:
    """Load an uncompressed P-256 public point.

    Raises:
        ValueError: if the bytes are not an uncompressed point on the curve.
    """
    if len(raw) != PUBLIC_KEY_LENGTH or raw[0] != 0x04:
        raise ValueError("public key must be a 65-byte uncompressed P-256 point")
    return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), raw)
