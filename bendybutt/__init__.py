"""bendybutt-v1 feed message format."""

from .bfe import BFEDecodeError, BFEError, TypeFormat
from .chain import ChainError, FeedWriter, validate_chain
from .codec import CodecError, DecodeError
from .envelope import EnvelopeError, ExtractedFields, decode, encode, extract, from_decrypted
from .feed import FeedFormat, encode_new, new_native_msg, to_plaintext_bytes
from .identity import ExtractCache, get_feed_id, get_msg_id, get_sequence
from .security import SecurityError, generate_keys, keys_from_seed
from .validation import (
    AuthorFormatError,
    ContentShapeError,
    HmacKeyError,
    PreviousAuthorError,
    PreviousError,
    PreviousFormatError,
    PreviousMismatchError,
    PreviousMissingError,
    PreviousUnexpectedError,
    SequenceError,
    ShapeError,
    SignatureFormatError,
    SignatureVerificationError,
    SizeError,
    TimestampError,
    ValidationError,
    ensure_valid,
    validate,
    verify_content_signature,
)

bendybutt_v1 = FeedFormat()

__all__ = [
    "AuthorFormatError",
    "BFEDecodeError",
    "BFEError",
    "ChainError",
    "CodecError",
    "ContentShapeError",
    "DecodeError",
    "EnvelopeError",
    "ExtractCache",
    "ExtractedFields",
    "FeedFormat",
    "FeedWriter",
    "HmacKeyError",
    "PreviousAuthorError",
    "PreviousError",
    "PreviousFormatError",
    "PreviousMismatchError",
    "PreviousMissingError",
    "PreviousUnexpectedError",
    "SecurityError",
    "SequenceError",
    "ShapeError",
    "SignatureFormatError",
    "SignatureVerificationError",
    "SizeError",
    "TimestampError",
    "TypeFormat",
    "ValidationError",
    "bendybutt_v1",
    "decode",
    "encode",
    "encode_new",
    "ensure_valid",
    "extract",
    "from_decrypted",
    "generate_keys",
    "get_feed_id",
    "get_msg_id",
    "get_sequence",
    "keys_from_seed",
    "new_native_msg",
    "to_plaintext_bytes",
    "validate",
    "validate_chain",
    "verify_content_signature",
]

__version__ = "0.1.0"
