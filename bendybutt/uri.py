"""Identifier URIs of the form ``ssb:<type>/<format>/<data>``."""

from __future__ import annotations

import binascii
import re
from dataclasses import dataclass

from .constants import FORMAT_NAME
from .utils import b64_decode, b64url_decode, b64url_encode

_URI_RE = re.compile(r"^ssb:(?P<type>[a-z0-9-]+)/(?P<format>[a-z0-9.-]+)/(?P<data>[A-Za-z0-9_=-]+)$")


class URIError(ValueError):
    """Raised when an identifier URI cannot be composed or parsed."""


@dataclass(frozen=True, slots=True)
class URIParts:
    type: str
    format: str
    data: str

    @property
    def raw(self) -> bytes:
        """Data bytes carried by the URI."""
        return b64url_decode(self.data)


def compose(*, type: str, format: str, data: str) -> str:
    """Build a URI; ``data`` is standard or url-safe base64."""
    if not type or not format:
        raise URIError("type and format are required")
    safe = data.replace("+", "-").replace("/", "_")
    uri = f"ssb:{type}/{format}/{safe}"
    if not _URI_RE.fullmatch(uri):
        raise URIError(f"cannot compose URI from data {data!r}")
    return uri


def decompose(uri: str) -> URIParts:
    match = _URI_RE.fullmatch(uri) if isinstance(uri, str) else None
    if match is None:
        raise URIError(f"not an identifier URI: {uri!r}")
    return URIParts(type=match["type"], format=match["format"], data=match["data"])


def feed_id(public_key: bytes, feed_format: str = FORMAT_NAME) -> str:
    return compose(type="feed", format=feed_format, data=b64url_encode(public_key))


def message_id(digest: bytes, feed_format: str = FORMAT_NAME) -> str:
    return compose(type="message", format=feed_format, data=b64url_encode(digest))


def is_feed_uri(value: object, feed_format: str = FORMAT_NAME) -> bool:
    return _has_32_bytes(value, "feed", feed_format)


def is_message_uri(value: object, feed_format: str = FORMAT_NAME) -> bool:
    return _has_32_bytes(value, "message", feed_format)


def public_key_of(feed: str) -> bytes:
    """Return the raw ed25519 public key of a feed URI or classic ``@`` id."""
    if feed.startswith("@") and feed.endswith(".ed25519"):
        return b64_decode(feed[1 : -len(".ed25519")])
    parts = decompose(feed)
    if parts.type != "feed":
        raise URIError(f"not a feed identifier: {feed!r}")
    return parts.raw


def _has_32_bytes(value: object, kind: str, feed_format: str) -> bool:
    if not isinstance(value, str):
        return False
    try:
        parts = decompose(value)
        raw = parts.raw
    except (URIError, binascii.Error, ValueError):
        return False
    if parts.type != kind or parts.format != feed_format or len(raw) != 32:
        return False
    # canonical encodings only
    return b64url_encode(raw) == parts.data
