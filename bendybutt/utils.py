"""Small utility helpers."""

from __future__ import annotations

import base64
import binascii
import hashlib
import time


def now_ms() -> int:
    return int(time.time() * 1000)


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def b64_encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64_decode(data: str) -> bytes:
    return base64.b64decode(data.encode("ascii"), validate=True)


def b64url_encode(data: bytes) -> str:
    """URL-safe base64 that keeps its padding, as identifier URIs do."""
    return base64.urlsafe_b64encode(data).decode("ascii")


def b64url_decode(data: str) -> bytes:
    return b64_decode(data.replace("-", "+").replace("_", "/"))


def canonical_b64_decode(data: str) -> bytes | None:
    """Decode standard base64 only when re-encoding reproduces ``data`` exactly."""
    try:
        raw = b64_decode(data)
    except (binascii.Error, UnicodeEncodeError, ValueError):
        return None
    if b64_encode(raw) != data:
        return None
    return raw
