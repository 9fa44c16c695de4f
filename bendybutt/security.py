"""Cryptographic helpers: ed25519 keys, HMAC-scoped signing and hashing."""

from __future__ import annotations

import binascii
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives import hmac as crypto_hmac
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from .constants import FORMAT_NAME, HMAC_KEY_LENGTH
from .uri import feed_id
from .utils import b64_decode, b64_encode, canonical_b64_decode, sha256

KeyMaterial = dict[str, str] | Ed25519PrivateKey | bytes | str


class SecurityError(ValueError):
    """Raised when security operations fail."""


def generate_keys(feed_format: str = FORMAT_NAME) -> dict[str, str]:
    return _keys_from_private(Ed25519PrivateKey.generate(), feed_format)


def keys_from_seed(seed: bytes, feed_format: str = FORMAT_NAME) -> dict[str, str]:
    if len(seed) != 32:
        raise SecurityError(f"ed25519 seed must be 32 bytes, got {len(seed)}")
    return _keys_from_private(Ed25519PrivateKey.from_private_bytes(seed), feed_format)


def hash_bytes(data: bytes) -> bytes:
    return sha256(data)


def normalize_hmac_key(hmac_key: bytes | str | None) -> bytes | None:
    """Return the raw 32-byte HMAC key, or None when no key is configured."""
    if hmac_key is None:
        return None
    if isinstance(hmac_key, str):
        raw = canonical_b64_decode(hmac_key)
        if raw is None:
            raise SecurityError(f"invalid hmac key: {hmac_key!r}, expected string to be base64 encoded")
    elif isinstance(hmac_key, (bytes, bytearray)):
        raw = bytes(hmac_key)
    else:
        raise SecurityError(f"invalid hmac key: must be bytes or base64 text, got {type(hmac_key).__name__}")

    if len(raw) != HMAC_KEY_LENGTH:
        raise SecurityError(f"invalid hmac key: length {len(raw)}, expected {HMAC_KEY_LENGTH} bytes")
    return raw


def sign(keys: KeyMaterial, hmac_key: bytes | str | None, data: bytes) -> bytes:
    """Sign ``data`` (HMAC-scoped first when a key is given) and return the 64-byte signature."""
    signing_key = load_private_key(keys)
    return signing_key.sign(_scoped(data, normalize_hmac_key(hmac_key)))


def verify(
    public_key: bytes | Ed25519PublicKey,
    signature: bytes,
    hmac_key: bytes | str | None,
    data: bytes,
) -> bool:
    verify_key = load_public_key(public_key)
    try:
        verify_key.verify(signature, _scoped(data, normalize_hmac_key(hmac_key)))
        return True
    except InvalidSignature:
        return False


def public_key_bytes(keys: KeyMaterial) -> bytes:
    return load_private_key(keys).public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def load_private_key(value: KeyMaterial) -> Ed25519PrivateKey:
    if isinstance(value, Ed25519PrivateKey):
        return value

    if isinstance(value, dict):
        private = value.get("private")
        if not isinstance(private, str) or not private:
            raise SecurityError("keys.private missing")
        return load_private_key(private)

    if isinstance(value, str):
        text = value.strip()
        if text.endswith(".ed25519"):
            text = text[: -len(".ed25519")]
        try:
            raw = b64_decode(text)
        except (binascii.Error, ValueError) as exc:
            raise SecurityError("private key is not valid base64") from exc
        return load_private_key(raw)

    if isinstance(value, bytes):
        # 64-byte secret keys are seed || public key.
        if len(value) == 64:
            return Ed25519PrivateKey.from_private_bytes(value[:32])
        if len(value) == 32:
            return Ed25519PrivateKey.from_private_bytes(value)
        raise SecurityError(f"ed25519 private key must be 32 or 64 bytes, got {len(value)}")

    raise SecurityError("unsupported Ed25519 private key format")


def load_public_key(value: bytes | str | Ed25519PublicKey) -> Ed25519PublicKey:
    if isinstance(value, Ed25519PublicKey):
        return value

    if isinstance(value, str):
        text = value.strip()
        if text.endswith(".ed25519"):
            text = text[: -len(".ed25519")]
        try:
            value = b64_decode(text)
        except (binascii.Error, ValueError) as exc:
            raise SecurityError("public key is not valid base64") from exc

    if isinstance(value, bytes):
        if len(value) != 32:
            raise SecurityError(f"ed25519 public key must be 32 bytes, got {len(value)}")
        return Ed25519PublicKey.from_public_bytes(value)

    raise SecurityError("unsupported Ed25519 public key format")


def _keys_from_private(private_key: Ed25519PrivateKey, feed_format: str) -> dict[str, Any]:
    seed = private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_raw = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )

    if feed_format == "classic":
        identifier = f"@{b64_encode(public_raw)}.ed25519"
    else:
        identifier = feed_id(public_raw, feed_format)

    return {
        "curve": "ed25519",
        "public": f"{b64_encode(public_raw)}.ed25519",
        "private": f"{b64_encode(seed + public_raw)}.ed25519",
        "id": identifier,
    }


def _scoped(data: bytes, hmac_key: bytes | None) -> bytes:
    if hmac_key is None:
        return data
    # libsodium crypto_auth: HMAC-SHA-512 truncated to 32 bytes.
    mac = crypto_hmac.HMAC(hmac_key, hashes.SHA512())
    mac.update(data)
    return mac.finalize()[:32]
