"""Walking and extending a single feed's hash chain."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import Any

from .feed import Boxer, new_native_msg
from .identity import ExtractCache, get_feed_id, get_msg_id, get_sequence
from .security import KeyMaterial
from .validation import ValidationError, ensure_valid


class ChainError(ValueError):
    """Raised when a batch of messages does not form a valid chain."""

    def __init__(self, index: int, error: ValidationError) -> None:
        super().__init__(f"message {index}: {error}")
        self.index = index
        self.error = error


def validate_chain(
    messages: Iterable[bytes],
    hmac_key: bytes | str | None = None,
    *,
    previous: bytes | None = None,
    cache: ExtractCache | None = None,
) -> bytes | None:
    """Validate ``messages`` in order, each against the one before it.

    ``previous`` is the already-trusted message preceding the batch, if
    any. Returns the last message of the chain (the new feed head).
    """
    head = previous
    for index, native in enumerate(messages):
        try:
            ensure_valid(native, head, hmac_key, cache=cache)
        except ValidationError as exc:
            raise ChainError(index, exc) from exc
        head = native
    return head


class FeedWriter:
    """Append-only writer that keeps track of a feed's latest message."""

    def __init__(
        self,
        keys: dict[str, str],
        *,
        hmac_key: bytes | str | None = None,
        head: bytes | None = None,
        boxer: Boxer | None = None,
    ) -> None:
        if head is not None and get_feed_id(head) != keys.get("id"):
            raise ValueError("head message was not authored by these keys")
        self.keys = keys
        self.hmac_key = hmac_key
        self.boxer = boxer
        self._head = head
        self._lock = threading.Lock()

    @property
    def head(self) -> bytes | None:
        return self._head

    @property
    def sequence(self) -> int:
        return 0 if self._head is None else get_sequence(self._head)

    @property
    def head_id(self) -> str | None:
        return None if self._head is None else get_msg_id(self._head)

    def append(
        self,
        content: dict[str, Any] | list[Any] | str,
        *,
        content_keys: KeyMaterial | None = None,
        timestamp: int | None = None,
    ) -> bytes:
        with self._lock:
            native = new_native_msg(
                self.keys,
                content,
                previous=self._head,
                content_keys=content_keys,
                timestamp=timestamp,
                hmac_key=self.hmac_key,
                boxer=self.boxer,
            )
            self._head = native
            return native
