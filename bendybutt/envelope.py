"""Envelope encoding and decoding.

An envelope is the bencoded list ``[payload, signature]`` where the
payload is ``[author, sequence, previous, timestamp, content_section]``
and the content section is either a boxed ciphertext token or the pair
``[content, content_signature]``. Every leaf is a BFE token.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from . import bfe, codec
from .codec import DecodeError
from .constants import CONTENT_SIG_PREFIX, ENVELOPE_LENGTH, PAYLOAD_LENGTH

REQUIRED_FIELDS = ("author", "sequence", "previous", "timestamp", "signature", "content")


class EnvelopeError(ValueError):
    """Raised when a structured message cannot be encoded."""


@dataclass(frozen=True, slots=True)
class ExtractedFields:
    """Raw (still BFE-encoded) fields of an envelope, plus the payload bytes as received."""

    payload: bytes
    author: Any
    sequence: Any
    previous: Any
    timestamp: Any
    content_section: Any
    signature: Any


def encode(message: dict[str, Any]) -> bytes:
    """Serialize a structured message; identical input always gives identical bytes."""
    if not isinstance(message, dict):
        raise EnvelopeError("message must be an object")
    missing = [key for key in REQUIRED_FIELDS if key not in message]
    if missing:
        raise EnvelopeError(f"missing required fields: {missing}")

    content = message["content"]
    if bfe.is_boxed_string(content):
        content_section: Any = content
    else:
        if "content_signature" not in message:
            raise EnvelopeError("missing required fields: ['content_signature']")
        content_section = [content, message["content_signature"]]

    payload = [
        message["author"],
        message["sequence"],
        message["previous"],
        message["timestamp"],
        content_section,
    ]
    return codec.encode(bfe.encode([payload, message["signature"]]))


def decode(native: bytes) -> dict[str, Any]:
    top = codec.decode(native)
    _check_layers(top)
    payload, signature = top
    author, sequence, previous, timestamp, content_section = payload

    message: dict[str, Any] = {
        "author": bfe.decode(author),
        "sequence": bfe.decode(sequence),
        "previous": bfe.decode(previous),
        "timestamp": bfe.decode(timestamp),
        "signature": bfe.decode(signature),
    }
    message.update(decode_content_section(content_section))
    return message


def decode_content_section(content_section: Any) -> dict[str, Any]:
    """Decode a raw content section into ``content`` (and ``content_signature``)."""
    if bfe.is_box_token(content_section):
        return {"content": bfe.decode_token(content_section)}
    if isinstance(content_section, list) and len(content_section) == 2:
        content, content_signature = content_section
        return {
            "content": bfe.decode(content),
            "content_signature": bfe.decode(content_signature),
        }
    raise DecodeError("content section must be a boxed token or a [content, signature] pair")


def from_decrypted(plaintext: bytes, native: bytes) -> dict[str, Any]:
    """Decode ``native`` and replace its boxed content with the decrypted section."""
    message = decode(native)
    section = codec.decode(plaintext)
    if not isinstance(section, list) or len(section) != 2:
        raise DecodeError("decrypted content section must be a [content, signature] pair")
    message.update(decode_content_section(section))
    return message


def extract(native: bytes) -> ExtractedFields:
    """Split an envelope into its raw fields without decoding the content."""
    items = codec.split_list(native)
    if len(items) != ENVELOPE_LENGTH:
        raise DecodeError(f"expected a list of length {ENVELOPE_LENGTH}, got {len(items)}")
    raw_payload, raw_signature = items

    payload = codec.decode(raw_payload)
    if not isinstance(payload, list) or len(payload) != PAYLOAD_LENGTH:
        raise DecodeError(f"expected payload to be a list of length {PAYLOAD_LENGTH}")
    author, sequence, previous, timestamp, content_section = payload

    return ExtractedFields(
        payload=raw_payload,
        author=author,
        sequence=sequence,
        previous=previous,
        timestamp=timestamp,
        content_section=content_section,
        signature=codec.decode(raw_signature),
    )


def content_signing_input(content: Any) -> bytes:
    return CONTENT_SIG_PREFIX + codec.encode(bfe.encode(content))


def _check_layers(top: Any) -> None:
    if not isinstance(top, list) or len(top) != ENVELOPE_LENGTH:
        raise DecodeError(f"expected a list of length {ENVELOPE_LENGTH}")
    if not isinstance(top[0], list) or len(top[0]) != PAYLOAD_LENGTH:
        raise DecodeError(f"expected payload to be a list of length {PAYLOAD_LENGTH}")
