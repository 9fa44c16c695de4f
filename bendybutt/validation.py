"""Validation of an envelope as the next link of a feed.

Stages run in a fixed order and stop at the first failure; later stages
rely on what earlier ones established. Rejections are
:class:`ValidationError` subclasses carrying a stable ``code``. Bytes that
are not bencode at all raise :class:`~bendybutt.codec.DecodeError`.
"""

from __future__ import annotations

import logging
from typing import Any

from . import bfe, codec
from .constants import (
    ENVELOPE_LENGTH,
    FEED_TOKEN_LENGTH,
    MAX_MESSAGE_SIZE,
    PAYLOAD_LENGTH,
)
from .envelope import content_signing_input
from .identity import ExtractCache, extract_fields, get_msg_id_token, get_sequence
from .security import SecurityError, normalize_hmac_key, verify
from .uri import public_key_of

logger = logging.getLogger(__name__)


class ValidationError(ValueError):
    """Base class for rejected messages."""

    code = "invalid"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.details = details


class ShapeError(ValidationError):
    code = "shape"


class HmacKeyError(ValidationError):
    code = "hmac_key"


class SizeError(ValidationError):
    code = "size"


class AuthorFormatError(ValidationError):
    code = "author_format"


class PreviousError(ValidationError):
    code = "previous"


class PreviousFormatError(PreviousError):
    code = "previous_format"


class PreviousMissingError(PreviousError):
    code = "previous_missing"


class PreviousUnexpectedError(PreviousError):
    code = "previous_unexpected"


class PreviousMismatchError(PreviousError):
    code = "previous_mismatch"


class PreviousAuthorError(PreviousError):
    code = "previous_author"


class SequenceError(ValidationError):
    code = "sequence"


class TimestampError(ValidationError):
    code = "timestamp"


class SignatureFormatError(ValidationError):
    code = "signature_format"


class SignatureVerificationError(ValidationError):
    code = "signature"


class ContentShapeError(ValidationError):
    code = "content_shape"


def validate(
    native: bytes,
    previous: bytes | None = None,
    hmac_key: bytes | str | None = None,
    *,
    cache: ExtractCache | None = None,
) -> ValidationError | None:
    """Return None when ``native`` may follow ``previous``, else the rejection."""
    try:
        ensure_valid(native, previous, hmac_key, cache=cache)
    except ValidationError as exc:
        logger.debug("rejected message [%s]: %s", exc.code, exc)
        return exc
    return None


def ensure_valid(
    native: bytes,
    previous: bytes | None = None,
    hmac_key: bytes | str | None = None,
    *,
    cache: ExtractCache | None = None,
) -> None:
    """Raising twin of :func:`validate`."""
    native = _validate_shape(native)
    key = _validate_hmac_key(hmac_key)
    _validate_size(native)

    fields = extract_fields(native, cache)
    _validate_author(fields.author)

    sequence = fields.sequence
    if not isinstance(sequence, int) or sequence < 1:
        raise SequenceError(
            f"invalid message: sequence is {sequence!r}, expected an integer >= 1",
            sequence=sequence,
        )
    if sequence == 1:
        _validate_first_previous(fields.previous, previous)
    else:
        _validate_previous(fields.previous, fields.author, previous, cache)
        _validate_sequence(sequence, previous, cache)

    _validate_timestamp(fields.timestamp)
    _validate_signature(fields.signature, fields.author, fields.payload, key)
    _validate_content_section(fields.content_section)


def _validate_shape(native: Any) -> bytes:
    if isinstance(native, bytearray):
        native = bytes(native)
    if not isinstance(native, bytes):
        raise ShapeError(f"invalid message: expected bytes, got {type(native).__name__}")

    top = codec.decode(native)
    if not isinstance(top, list) or len(top) != ENVELOPE_LENGTH:
        raise ShapeError(f"invalid message: expected a bencode list of length {ENVELOPE_LENGTH}")
    if not isinstance(top[0], list) or len(top[0]) != PAYLOAD_LENGTH:
        raise ShapeError(f"invalid message: expected payload to be a bencode list of length {PAYLOAD_LENGTH}")
    return native


def _validate_hmac_key(hmac_key: bytes | str | None) -> bytes | None:
    try:
        return normalize_hmac_key(hmac_key)
    except SecurityError as exc:
        raise HmacKeyError(str(exc)) from exc


def _validate_size(native: bytes) -> None:
    if len(native) > MAX_MESSAGE_SIZE:
        raise SizeError(
            f"invalid message size: {len(native)} bytes, must not be greater than {MAX_MESSAGE_SIZE} bytes",
            size=len(native),
        )


def _validate_author(author: Any) -> None:
    if not isinstance(author, bytes):
        raise AuthorFormatError("invalid message: expected author to be a byte string")
    if author[:2] != bfe.TypeFormat.FEED_BENDYBUTT.tag:
        raise AuthorFormatError(
            f"invalid message: author type-format {bfe.tag_hex(author)} is incorrect, expected 0x0003",
            tag=author[:2].hex(),
        )
    if len(author) != FEED_TOKEN_LENGTH:
        raise AuthorFormatError(
            f"invalid message: author type-format-data length of {len(author)} bytes is incorrect, "
            f"expected {FEED_TOKEN_LENGTH} bytes"
        )


def _validate_first_previous(previous_token: Any, previous: bytes | None) -> None:
    if not bfe.is_encoded(previous_token, bfe.TypeFormat.NIL):
        raise PreviousFormatError(
            f"invalid message: previous type-format {bfe.tag_hex(previous_token)} is incorrect, "
            "expected 0x0602 (nil) because sequence is 1",
            tag=previous_token[:2].hex() if isinstance(previous_token, bytes) else None,
        )
    if previous is not None:
        raise PreviousUnexpectedError("invalid message: sequence cannot be 1 if there exists a previous message")


def _validate_previous(
    previous_token: Any,
    author: bytes,
    previous: bytes | None,
    cache: ExtractCache | None,
) -> None:
    if not bfe.is_encoded(previous_token, bfe.TypeFormat.MESSAGE_BENDYBUTT):
        raise PreviousFormatError(
            f"invalid message: previous type-format {bfe.tag_hex(previous_token)} is incorrect, "
            "expected 0x0104 with 32 bytes of data",
            tag=previous_token[:2].hex() if isinstance(previous_token, bytes) else None,
        )
    if previous is None:
        raise PreviousMissingError("invalid previous message: value must not be None if sequence > 1")

    computed = get_msg_id_token(previous)
    if previous_token != computed:
        claimed_id = bfe.decode_token(previous_token)
        computed_id = bfe.decode_token(computed)
        raise PreviousMismatchError(
            f'invalid message: previous is "{claimed_id}" but the computed hash of the previous message '
            f'is "{computed_id}", expected values to be identical',
            claimed=claimed_id,
            computed=computed_id,
        )

    previous_author = extract_fields(previous, cache).author
    if previous_author != author:
        raise PreviousAuthorError(
            f'invalid message: author is "{bfe.decode_token(author)}" but previous message author is '
            f'"{_describe(previous_author)}", expected values to be identical'
        )


def _validate_sequence(sequence: int, previous: bytes, cache: ExtractCache | None) -> None:
    previous_sequence = get_sequence(previous, cache)
    if sequence != previous_sequence + 1:
        raise SequenceError(
            f"invalid message: sequence is {sequence} but previous message sequence is {previous_sequence}, "
            "expected sequence to be previous sequence + 1",
            sequence=sequence,
            previous_sequence=previous_sequence,
        )


def _validate_timestamp(timestamp: Any) -> None:
    # bencode only carries integers, so NaN and infinities cannot occur here.
    if isinstance(timestamp, bool) or not isinstance(timestamp, int) or timestamp < 0:
        raise TimestampError(
            f"invalid message: timestamp is {timestamp!r}, expected a non-negative number",
            timestamp=timestamp,
        )


def _validate_signature(signature_token: Any, author: bytes, payload: bytes, hmac_key: bytes | None) -> None:
    if not bfe.is_encoded(signature_token, bfe.TypeFormat.SIGNATURE_ED25519):
        raise SignatureFormatError(
            f"invalid message: signature type-format {bfe.tag_hex(signature_token)} is incorrect, "
            "expected a 66-byte 0x0400 token"
        )
    if not verify(author[2:], signature_token[2:], hmac_key, payload):
        raise SignatureVerificationError("invalid message: signature must correctly sign the payload")


def _validate_content_section(content_section: Any) -> None:
    if bfe.is_box_token(content_section):
        return
    if not isinstance(content_section, list) or len(content_section) != 2:
        raise ContentShapeError("invalid message: content section should be a list with two items or a boxed token")

    content, content_signature = content_section
    if not isinstance(content, (dict, list)):
        raise ContentShapeError("invalid message: content should be an object or a list")
    if not bfe.is_encoded(content_signature, bfe.TypeFormat.SIGNATURE_ED25519):
        raise ContentShapeError(
            f"invalid message: content signature type-format {bfe.tag_hex(content_signature)} is incorrect, "
            "expected a 66-byte 0x0400 token"
        )


def _describe(token: Any) -> str:
    try:
        return str(bfe.decode(token))
    except codec.DecodeError:
        return bfe.tag_hex(token)


def verify_content_signature(
    message: dict[str, Any],
    signer: bytes | str,
    hmac_key: bytes | str | None = None,
) -> bool:
    """Check the content signature of a decoded message.

    :func:`validate` only checks that the content signature is well formed;
    callers that know who should have signed the content (``signer``, a
    feed id or raw public key) use this once the content is in the clear.
    """
    content = message.get("content")
    content_signature = message.get("content_signature")
    if not isinstance(content, (dict, list)) or not isinstance(content_signature, str):
        return False
    token = bfe.encode_string(content_signature)
    if not bfe.is_encoded(token, bfe.TypeFormat.SIGNATURE_ED25519):
        return False
    public_key = public_key_of(signer) if isinstance(signer, str) else signer
    return verify(public_key, token[2:], normalize_hmac_key(hmac_key), content_signing_input(content))
