"""Construction of signed envelopes and the feed-format facade."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from typing import Any

from . import bfe, codec, envelope
from .constants import FORMAT_NAME
from .identity import ExtractCache, extract_fields, get_feed_id, get_msg_id, get_sequence
from .security import KeyMaterial, sign
from .uri import is_feed_uri
from .utils import now_ms
from .validation import ValidationError, validate

logger = logging.getLogger(__name__)

# (author token, bencoded content section, previous token, recipients) -> boxed string or box token
Boxer = Callable[[bytes, bytes, bytes, Sequence[Any]], str | bytes]

_SIGNATURE_TAG = bfe.TypeFormat.SIGNATURE_ED25519.tag


def encode_new(
    content: dict[str, Any] | list[Any] | str,
    content_keys: KeyMaterial | None,
    keys: dict[str, str],
    sequence: int,
    previous: str | None,
    timestamp: int,
    hmac_key: bytes | str | None = None,
    boxer: Boxer | None = None,
) -> bytes:
    """Build and sign a new envelope.

    ``keys`` sign the payload and name the author; ``content_keys`` (the
    sub-feed's keys, defaulting to ``keys``) sign the content. Content with
    ``recps`` is passed through ``boxer`` and replaced by its ciphertext.
    """
    if isinstance(sequence, bool) or not isinstance(sequence, int) or sequence < 1:
        raise ValueError(f"sequence must be an integer >= 1, got {sequence!r}")
    author_token = _author_token(keys)
    previous_token = _previous_token(previous, sequence)
    timestamp = _as_timestamp(timestamp)

    if bfe.is_boxed_string(content):
        content_section: Any = bfe.encode_string(content)
    elif isinstance(content, (dict, list)):
        content_section = _signed_content_section(content, content_keys or keys, hmac_key)
        recipients = content.get("recps") if isinstance(content, dict) else None
        if recipients:
            if boxer is None:
                raise ValueError("content declares recps but no boxer was given")
            boxed = boxer(author_token, codec.encode(content_section), previous_token, recipients)
            content_section = _box_token(boxed)
    else:
        raise ValueError("content must be an object, a list or a boxed string")

    payload = [author_token, sequence, previous_token, timestamp, content_section]
    payload_signature = sign(keys, hmac_key, codec.encode(payload))
    native = codec.encode([payload, _SIGNATURE_TAG + payload_signature])
    logger.debug("created message %s sequence=%d size=%d", keys["id"], sequence, len(native))
    return native


def new_native_msg(
    keys: dict[str, str],
    content: dict[str, Any] | list[Any] | str,
    *,
    previous: bytes | None = None,
    content_keys: KeyMaterial | None = None,
    timestamp: int | None = None,
    hmac_key: bytes | str | None = None,
    boxer: Boxer | None = None,
) -> bytes:
    """Create the envelope that follows ``previous`` (or starts the feed when it is None)."""
    if previous is None:
        sequence, previous_id = 1, None
    else:
        sequence, previous_id = get_sequence(previous) + 1, get_msg_id(previous)
    return encode_new(
        content,
        content_keys,
        keys,
        sequence,
        previous_id,
        now_ms() if timestamp is None else timestamp,
        hmac_key,
        boxer,
    )


def to_plaintext_bytes(
    content: dict[str, Any],
    keys: KeyMaterial,
    content_keys: KeyMaterial | None = None,
    hmac_key: bytes | str | None = None,
) -> bytes:
    """Bencoded ``[content, content_signature]`` section, as handed to an external encrypter."""
    return codec.encode(_signed_content_section(content, content_keys or keys, hmac_key))


class FeedFormat:
    """Entry points a feed-format registry or store uses for this format."""

    name = FORMAT_NAME

    def __init__(self, cache: ExtractCache | None = None) -> None:
        self.cache = cache

    def is_native_msg(self, value: Any) -> bool:
        if not isinstance(value, bytes) or not value:
            return False
        try:
            author = extract_fields(value, self.cache).author
        except codec.DecodeError:
            return False
        return bfe.is_encoded(author, bfe.TypeFormat.FEED_BENDYBUTT)

    def is_author(self, author: Any) -> bool:
        return is_feed_uri(author)

    def get_feed_id(self, native: bytes) -> str:
        return get_feed_id(native, self.cache)

    def get_msg_id(self, native: bytes) -> str:
        return get_msg_id(native)

    def get_sequence(self, native: bytes) -> int:
        return get_sequence(native, self.cache)

    def to_structured(self, native: bytes) -> dict[str, Any]:
        return envelope.decode(native)

    def from_structured(self, message: dict[str, Any]) -> bytes:
        return envelope.encode(message)

    def from_decrypted(self, plaintext: bytes, native: bytes) -> dict[str, Any]:
        return envelope.from_decrypted(plaintext, native)

    def to_plaintext_bytes(self, content: dict[str, Any], keys: KeyMaterial, **kwargs: Any) -> bytes:
        return to_plaintext_bytes(content, keys, **kwargs)

    def validate(
        self,
        native: bytes,
        previous: bytes | None = None,
        hmac_key: bytes | str | None = None,
    ) -> ValidationError | None:
        return validate(native, previous, hmac_key, cache=self.cache)

    def encode_new(self, *args: Any, **kwargs: Any) -> bytes:
        return encode_new(*args, **kwargs)

    def new_native_msg(self, keys: dict[str, str], content: dict[str, Any] | list[Any] | str, **kwargs: Any) -> bytes:
        return new_native_msg(keys, content, **kwargs)


def _signed_content_section(
    content: dict[str, Any] | list[Any],
    content_keys: KeyMaterial,
    hmac_key: bytes | str | None,
) -> list[Any]:
    content_token = bfe.encode(content)
    signed = envelope.content_signing_input(content)
    return [content_token, _SIGNATURE_TAG + sign(content_keys, hmac_key, signed)]


def _author_token(keys: dict[str, str]) -> bytes:
    author = keys.get("id") if isinstance(keys, dict) else None
    token = bfe.encode_string(author) if isinstance(author, str) else None
    if not bfe.is_encoded(token, bfe.TypeFormat.FEED_BENDYBUTT):
        raise ValueError(f"keys.id must be a {FORMAT_NAME} feed id, got {author!r}")
    return token


def _previous_token(previous: str | None, sequence: int) -> bytes:
    if previous is None:
        if sequence != 1:
            raise ValueError(f"sequence {sequence} requires a previous message id")
        return bfe.TypeFormat.NIL.tag
    token = bfe.encode_string(previous) if isinstance(previous, str) else None
    if not bfe.is_encoded(token, bfe.TypeFormat.MESSAGE_BENDYBUTT):
        raise ValueError(f"previous must be a {FORMAT_NAME} message id, got {previous!r}")
    if sequence == 1:
        raise ValueError("the first message of a feed cannot have a previous message")
    return token


def _as_timestamp(timestamp: Any) -> int:
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        raise ValueError(f"timestamp must be a number, got {timestamp!r}")
    if not math.isfinite(timestamp) or timestamp < 0:
        raise ValueError(f"timestamp must be a finite non-negative number, got {timestamp!r}")
    return int(timestamp)


def _box_token(boxed: str | bytes) -> bytes:
    if isinstance(boxed, str) and bfe.is_boxed_string(boxed):
        return bfe.encode_string(boxed)
    if bfe.is_box_token(boxed):
        return boxed
    raise ValueError("boxer must return a .box/.box2 string or a box token")
