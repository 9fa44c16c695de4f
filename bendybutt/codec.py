"""Bencode encoding/decoding on top of fastbencode.

Only the subset used by the feed format is supported: byte strings,
integers, lists and dictionaries. Decoding is strict: the input must be
the canonical encoding of the value it decodes to, so a given value has
exactly one accepted byte representation.
"""

from __future__ import annotations

from typing import Any

from fastbencode import bdecode, bencode

from .constants import MAX_DEPTH


class CodecError(ValueError):
    """Raised on encoding/decoding failures."""


class DecodeError(CodecError):
    """Raised when bytes are not a well-formed encoding."""


def encode(value: Any, *, max_depth: int = MAX_DEPTH) -> bytes:
    return bencode(_to_wire(value, 0, max_depth))


def decode(data: bytes, *, max_depth: int = MAX_DEPTH) -> Any:
    return _from_wire(_decode_canonical(data, max_depth))


def split_list(data: bytes, *, max_depth: int = MAX_DEPTH) -> list[bytes]:
    """Return the raw encoded bytes of each element of a top-level list.

    The slices are taken from ``data`` as received, so they can be used
    for signature verification without re-encoding.
    """
    view = _as_bytes(data)
    raw = _decode_canonical(view, max_depth)
    if not isinstance(raw, list):
        raise DecodeError("expected a list")

    # canonical input: each element occupies exactly its own encoding
    items: list[bytes] = []
    pos = 1
    for item in raw:
        end = pos + len(bencode(item))
        items.append(view[pos:end])
        pos = end
    return items


def _as_bytes(data: Any) -> bytes:
    if isinstance(data, (bytearray, memoryview)):
        return bytes(data)
    if not isinstance(data, bytes):
        raise DecodeError(f"expected bytes, got {type(data).__name__}")
    return data


def _decode_canonical(data: Any, max_depth: int) -> Any:
    view = _as_bytes(data)
    try:
        raw = bdecode(view)
    except RecursionError as exc:
        raise DecodeError("nesting exceeds max_depth") from exc
    except (ValueError, TypeError, IndexError, KeyError) as exc:
        raise DecodeError(f"malformed bencode: {exc}") from exc

    _check_depth(raw, 0, max_depth)
    if bencode(raw) != view:
        raise DecodeError("not a canonical encoding (leading zeros, unsorted keys or trailing data)")
    return raw


def _check_depth(value: Any, depth: int, max_depth: int) -> None:
    if depth > max_depth:
        raise DecodeError("nesting exceeds max_depth")
    if isinstance(value, list):
        for item in value:
            _check_depth(item, depth + 1, max_depth)
    elif isinstance(value, dict):
        for item in value.values():
            _check_depth(item, depth + 1, max_depth)


def _to_wire(value: Any, depth: int, max_depth: int) -> Any:
    if depth > max_depth:
        raise CodecError("nesting exceeds max_depth")
    if isinstance(value, bool) or value is None or isinstance(value, float):
        raise CodecError(f"cannot bencode value of type {type(value).__name__}")

    if isinstance(value, int):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (list, tuple)):
        return [_to_wire(item, depth + 1, max_depth) for item in value]
    if isinstance(value, dict):
        converted: dict[bytes, Any] = {}
        for key, item in value.items():
            if isinstance(key, str):
                raw_key = key.encode("utf-8")
            elif isinstance(key, bytes):
                raw_key = key
            else:
                raise CodecError(f"dictionary keys must be text or bytes, got {type(key).__name__}")
            if raw_key in converted:
                raise CodecError(f"duplicate dictionary key: {raw_key!r}")
            converted[raw_key] = _to_wire(item, depth + 1, max_depth)
        return converted
    raise CodecError(f"cannot bencode value of type {type(value).__name__}")


def _from_wire(value: Any) -> Any:
    if isinstance(value, list):
        return [_from_wire(item) for item in value]
    if isinstance(value, dict):
        result: dict[str, Any] = {}
        for raw_key, item in value.items():
            try:
                key = raw_key.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise DecodeError(f"dictionary key is not UTF-8: {raw_key!r}") from exc
            result[key] = _from_wire(item)
        return result
    return value
