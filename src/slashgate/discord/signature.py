"""Ed25519 request signature verification for the webhook transport."""

from __future__ import annotations

import binascii
from typing import Optional, Protocol

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from .errors import DiscordConfigError


class SignatureVerifier(Protocol):
    def verify(self, timestamp: bytes, body: bytes, signature: bytes) -> bool: ...


def verify_signature(
    timestamp: bytes, body: bytes, signature: bytes, public_key: bytes
) -> bool:
    """Return True only if `signature` validates over `timestamp || body`.

    Inputs are the exact bytes received; nothing is re-encoded.
    """
    try:
        key = Ed25519PublicKey.from_public_bytes(public_key)
    except ValueError:
        return False
    try:
        key.verify(signature, timestamp + body)
    except (InvalidSignature, ValueError):
        return False
    return True


def decode_hex(value: Optional[str]) -> Optional[bytes]:
    if not value:
        return None
    try:
        return binascii.unhexlify(value.strip())
    except (binascii.Error, ValueError):
        return None


class Ed25519Verifier:
    """Verifier bound to one application public key, built once at startup."""

    def __init__(self, public_key_hex: str) -> None:
        key_bytes = decode_hex(public_key_hex)
        if key_bytes is None:
            raise DiscordConfigError("Discord public key must be hex encoded")
        try:
            self._key = Ed25519PublicKey.from_public_bytes(key_bytes)
        except ValueError as exc:
            raise DiscordConfigError(f"Invalid Discord public key: {exc}") from exc

    def verify(self, timestamp: bytes, body: bytes, signature: bytes) -> bool:
        try:
            self._key.verify(signature, timestamp + body)
        except (InvalidSignature, ValueError):
            return False
        return True


def verify_request(
    verifier: SignatureVerifier,
    *,
    timestamp: Optional[bytes],
    signature_hex: Optional[str],
    body: bytes,
) -> bool:
    """Check the webhook headers against the raw body; missing headers fail.

    `timestamp` is the header value as it arrived on the wire.
    """
    if not timestamp:
        return False
    signature = decode_hex(signature_hex)
    if signature is None:
        return False
    return verifier.verify(timestamp, body, signature)
