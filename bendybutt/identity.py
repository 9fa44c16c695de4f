"""Message and feed identity derived from envelope bytes."""

from __future__ import annotations

import threading
from collections import OrderedDict

from . import bfe
from .codec import DecodeError
from .constants import FEED_TOKEN_LENGTH
from .envelope import ExtractedFields, extract
from .security import hash_bytes
from .uri import message_id

_FEED_PREFIX = b"ll%d:" % FEED_TOKEN_LENGTH


class ExtractCache:
    """LRU cache of extracted envelope fields keyed by the SHA-256 of the bytes.

    Owned by the caller; safe to share between threads.
    """

    def __init__(self, max_entries: int = 1024) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self._store: OrderedDict[bytes, ExtractedFields] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def extract(self, native: bytes) -> ExtractedFields:
        key = hash_bytes(native)
        with self._lock:
            cached = self._store.get(key)
            if cached is not None:
                self._store.move_to_end(key)
                return cached

        fields = extract(native)
        with self._lock:
            self._store[key] = fields
            self._store.move_to_end(key)
            while len(self._store) > self.max_entries:
                self._store.popitem(last=False)
        return fields

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


def extract_fields(native: bytes, cache: ExtractCache | None = None) -> ExtractedFields:
    if cache is not None:
        return cache.extract(native)
    return extract(native)


def get_msg_id(native: bytes) -> str:
    return message_id(hash_bytes(native))


def get_msg_id_token(native: bytes) -> bytes:
    return bfe.TypeFormat.MESSAGE_BENDYBUTT.tag + hash_bytes(native)


def get_feed_id(native: bytes, cache: ExtractCache | None = None) -> str:
    """Author of ``native``; reads the leading author token when it is in canonical position."""
    if native[: len(_FEED_PREFIX)] == _FEED_PREFIX and len(native) >= len(_FEED_PREFIX) + FEED_TOKEN_LENGTH:
        token = native[len(_FEED_PREFIX) : len(_FEED_PREFIX) + FEED_TOKEN_LENGTH]
    else:
        token = extract_fields(native, cache).author
    return bfe.decode(token)


def get_sequence(native: bytes, cache: ExtractCache | None = None) -> int:
    sequence = extract_fields(native, cache).sequence
    if not isinstance(sequence, int):
        raise DecodeError("sequence is not an integer")
    return sequence
