"""Binary field encoding (BFE).

Every identifier, signature and scalar is carried as a token
``[type byte][format byte][data]``. Decoding is a closed lookup over
:class:`TypeFormat`; any other tag is rejected.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from .codec import CodecError, DecodeError
from .uri import URIError, decompose, feed_id, message_id
from .utils import b64_encode, b64url_decode, b64url_encode, canonical_b64_decode


class BFEError(CodecError):
    """Raised when a value cannot be converted to BFE."""


class BFEDecodeError(BFEError, DecodeError):
    """Raised when a token is malformed or carries an unknown tag."""


class TypeFormat(Enum):
    FEED_CLASSIC = (0x00, 0x00)
    FEED_GABBYGROVE = (0x00, 0x01)
    FEED_BENDYBUTT = (0x00, 0x03)
    MESSAGE_CLASSIC = (0x01, 0x00)
    MESSAGE_GABBYGROVE = (0x01, 0x01)
    MESSAGE_BENDYBUTT = (0x01, 0x04)
    BLOB_CLASSIC = (0x02, 0x00)
    SIGNATURE_ED25519 = (0x04, 0x00)
    BOX1 = (0x05, 0x00)
    BOX2 = (0x05, 0x01)
    STRING = (0x06, 0x00)
    BOOLEAN = (0x06, 0x01)
    NIL = (0x06, 0x02)
    BYTES = (0x06, 0x03)

    @property
    def tag(self) -> bytes:
        return bytes(self.value)

    @property
    def data_length(self) -> int | None:
        return _DATA_LENGTHS.get(self)

    @classmethod
    def from_tag(cls, tag: bytes) -> TypeFormat:
        try:
            return _BY_TAG[bytes(tag)]
        except KeyError:
            raise BFEDecodeError(f"unknown BFE type-format 0x{bytes(tag).hex()}") from None


_BY_TAG = {member.tag: member for member in TypeFormat}

_DATA_LENGTHS = {
    TypeFormat.FEED_CLASSIC: 32,
    TypeFormat.FEED_GABBYGROVE: 32,
    TypeFormat.FEED_BENDYBUTT: 32,
    TypeFormat.MESSAGE_CLASSIC: 32,
    TypeFormat.MESSAGE_GABBYGROVE: 32,
    TypeFormat.MESSAGE_BENDYBUTT: 32,
    TypeFormat.BLOB_CLASSIC: 32,
    TypeFormat.SIGNATURE_ED25519: 64,
    TypeFormat.BOOLEAN: 1,
    TypeFormat.NIL: 0,
}

_URI_TYPE_FORMATS = {
    ("feed", "bendybutt-v1"): TypeFormat.FEED_BENDYBUTT,
    ("feed", "gabbygrove-v1"): TypeFormat.FEED_GABBYGROVE,
    ("message", "bendybutt-v1"): TypeFormat.MESSAGE_BENDYBUTT,
    ("message", "gabbygrove-v1"): TypeFormat.MESSAGE_GABBYGROVE,
}

_B64_32 = r"[A-Za-z0-9+/]{43}="
_B64_64 = r"[A-Za-z0-9+/]{86}=="
_B64_ANY = r"(?:[A-Za-z0-9+/]{4})*(?:[A-Za-z0-9+/]{2}==|[A-Za-z0-9+/]{3}=)?"

# Order matters: ".box2" must be tried before ".box".
_SIGIL_PATTERNS = [
    (re.compile(rf"^@({_B64_32})\.ed25519$"), TypeFormat.FEED_CLASSIC),
    (re.compile(rf"^%({_B64_32})\.sha256$"), TypeFormat.MESSAGE_CLASSIC),
    (re.compile(rf"^&({_B64_32})\.sha256$"), TypeFormat.BLOB_CLASSIC),
    (re.compile(rf"^({_B64_64})\.sig\.ed25519$"), TypeFormat.SIGNATURE_ED25519),
    (re.compile(rf"^({_B64_ANY})\.box2$"), TypeFormat.BOX2),
    (re.compile(rf"^({_B64_ANY})\.box$"), TypeFormat.BOX1),
]


def encode(value: Any) -> Any:
    """Convert a structured value into BFE tokens, recursing into lists and dicts."""
    if value is None:
        return TypeFormat.NIL.tag
    if isinstance(value, bool):
        return TypeFormat.BOOLEAN.tag + (b"\x01" if value else b"\x00")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return encode_string(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return TypeFormat.BYTES.tag + bytes(value)
    if isinstance(value, (list, tuple)):
        return [encode(item) for item in value]
    if isinstance(value, dict):
        converted: dict[str, Any] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise BFEError(f"object keys must be strings, got {type(key).__name__}")
            converted[key] = encode(item)
        return converted
    raise BFEError(f"cannot BFE-encode value of type {type(value).__name__}")


def encode_string(value: str) -> bytes:
    """Encode text, recognising identifier forms before falling back to a generic string."""
    token = _encode_identifier(value)
    if token is not None:
        return token
    return TypeFormat.STRING.tag + value.encode("utf-8")


def decode(value: Any) -> Any:
    """Inverse of :func:`encode` over bencode-decoded values."""
    if isinstance(value, bytes):
        return decode_token(value)
    if isinstance(value, bool):
        raise BFEDecodeError("unexpected boolean outside a token")
    if isinstance(value, int):
        return value
    if isinstance(value, list):
        return [decode(item) for item in value]
    if isinstance(value, dict):
        return {key: decode(item) for key, item in value.items()}
    raise BFEDecodeError(f"cannot BFE-decode value of type {type(value).__name__}")


def decode_token(token: bytes) -> Any:
    if len(token) < 2:
        raise BFEDecodeError(f"BFE token too short: {len(token)} bytes")

    type_format = TypeFormat.from_tag(token[:2])
    data = token[2:]
    expected = type_format.data_length
    if expected is not None and len(data) != expected:
        raise BFEDecodeError(
            f"BFE {type_format.name} data is {len(data)} bytes, expected {expected}"
        )

    if type_format is TypeFormat.FEED_BENDYBUTT:
        return feed_id(data)
    if type_format is TypeFormat.FEED_GABBYGROVE:
        return feed_id(data, "gabbygrove-v1")
    if type_format is TypeFormat.FEED_CLASSIC:
        return f"@{b64_encode(data)}.ed25519"
    if type_format is TypeFormat.MESSAGE_BENDYBUTT:
        return message_id(data)
    if type_format is TypeFormat.MESSAGE_GABBYGROVE:
        return message_id(data, "gabbygrove-v1")
    if type_format is TypeFormat.MESSAGE_CLASSIC:
        return f"%{b64_encode(data)}.sha256"
    if type_format is TypeFormat.BLOB_CLASSIC:
        return f"&{b64_encode(data)}.sha256"
    if type_format is TypeFormat.SIGNATURE_ED25519:
        return f"{b64_encode(data)}.sig.ed25519"
    if type_format is TypeFormat.BOX1:
        return f"{b64_encode(data)}.box"
    if type_format is TypeFormat.BOX2:
        return f"{b64_encode(data)}.box2"
    if type_format is TypeFormat.STRING:
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise BFEDecodeError("BFE string is not valid UTF-8") from exc
    if type_format is TypeFormat.BOOLEAN:
        if data not in (b"\x00", b"\x01"):
            raise BFEDecodeError(f"BFE boolean must be 0x00 or 0x01, got 0x{data.hex()}")
        return data == b"\x01"
    if type_format is TypeFormat.NIL:
        return None
    if type_format is TypeFormat.BYTES:
        return data
    raise BFEDecodeError(f"unhandled BFE type-format {type_format.name}")  # pragma: no cover


def is_encoded(token: Any, type_format: TypeFormat) -> bool:
    """True when ``token`` carries exactly ``type_format`` with a well-sized payload."""
    if not isinstance(token, bytes) or token[:2] != type_format.tag:
        return False
    expected = type_format.data_length
    return expected is None or len(token) == 2 + expected


def tag_hex(token: Any) -> str:
    """Render a token's type-format for error messages."""
    if not isinstance(token, bytes):
        return f"<{type(token).__name__}>"
    return f"0x{token[:2].hex()}"


def is_boxed_string(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    token = _encode_identifier(value)
    return token is not None and token[:2] in (TypeFormat.BOX1.tag, TypeFormat.BOX2.tag)


def is_box_token(token: Any) -> bool:
    return is_encoded(token, TypeFormat.BOX1) or is_encoded(token, TypeFormat.BOX2)


def _encode_identifier(value: str) -> bytes | None:
    if value.startswith("ssb:"):
        return _encode_uri(value)

    for pattern, type_format in _SIGIL_PATTERNS:
        match = pattern.fullmatch(value)
        if match is None:
            continue
        data = canonical_b64_decode(match.group(1))
        if data is None:
            return None
        return type_format.tag + data
    return None


def _encode_uri(value: str) -> bytes | None:
    try:
        parts = decompose(value)
    except URIError:
        return None
    type_format = _URI_TYPE_FORMATS.get((parts.type, parts.format))
    if type_format is None:
        return None
    try:
        data = b64url_decode(parts.data)
    except ValueError:
        return None
    if len(data) != type_format.data_length or b64url_encode(data) != parts.data:
        return None
    return type_format.tag + data
