from __future__ import annotations

import base64
import unittest
from typing import Any

from bendybutt import bendybutt_v1, codec, envelope
from bendybutt.codec import CodecError
from bendybutt.feed import FeedFormat, encode_new, new_native_msg, to_plaintext_bytes
from bendybutt.identity import ExtractCache, get_msg_id, get_msg_id_token
from bendybutt.validation import verify_content_signature

from tests.test_helpers import (
    HMAC_KEY,
    MAIN_KEYS,
    METAFEED_KEYS,
    main_content,
    make_first_message,
    make_second_message,
)


class RecordingBoxer:
    def __init__(self, result: str | bytes | None = None) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.result = result

    def __call__(self, author: bytes, plaintext: bytes, previous: bytes, recipients: Any) -> str | bytes:
        self.calls.append((author, plaintext, previous, recipients))
        if self.result is not None:
            return self.result
        return base64.b64encode(b"sealed:" + plaintext[:8]).decode("ascii") + ".box2"


class EncodeNewTests(unittest.TestCase):
    def test_new_native_msg_fills_sequence_and_previous(self) -> None:
        first = make_first_message()
        second = make_second_message(first)
        message = envelope.decode(second)
        self.assertEqual(message["sequence"], 2)
        self.assertEqual(message["previous"], get_msg_id(first))
        self.assertEqual(message["timestamp"], 23456)

    def test_construction_is_deterministic(self) -> None:
        self.assertEqual(make_first_message(), make_first_message())

    def test_default_timestamp_is_now(self) -> None:
        native = new_native_msg(METAFEED_KEYS, {"type": "x"})
        self.assertGreater(envelope.decode(native)["timestamp"], 1_600_000_000_000)

    def test_float_timestamp_is_truncated(self) -> None:
        native = encode_new({"type": "x"}, None, METAFEED_KEYS, 1, None, 12345.9)
        self.assertEqual(envelope.decode(native)["timestamp"], 12345)

    def test_encode_new_matches_new_native_msg(self) -> None:
        direct = encode_new(main_content(), MAIN_KEYS, METAFEED_KEYS, 1, None, 12345, HMAC_KEY)
        self.assertEqual(direct, make_first_message(hmac_key=HMAC_KEY))

    def test_rejects_bad_arguments(self) -> None:
        cases = [
            dict(sequence=0, previous=None, timestamp=1),
            dict(sequence=True, previous=None, timestamp=1),
            dict(sequence=2, previous=None, timestamp=1),
            dict(sequence=1, previous=get_msg_id(make_first_message()), timestamp=1),
            dict(sequence=2, previous="%notanid.sha256", timestamp=1),
            dict(sequence=1, previous=None, timestamp=-1),
            dict(sequence=1, previous=None, timestamp=float("nan")),
            dict(sequence=1, previous=None, timestamp="now"),
        ]
        for case in cases:
            with self.subTest(case=case):
                with self.assertRaises(ValueError):
                    encode_new({"type": "x"}, None, METAFEED_KEYS, case["sequence"], case["previous"], case["timestamp"])

    def test_author_must_be_bendybutt_feed(self) -> None:
        with self.assertRaises(ValueError):
            new_native_msg(MAIN_KEYS, {"type": "x"}, timestamp=1)

    def test_content_must_be_structured_or_boxed(self) -> None:
        for content in ("plain text", 7, None):
            with self.subTest(content=content):
                with self.assertRaises(ValueError):
                    new_native_msg(METAFEED_KEYS, content, timestamp=1)

    def test_list_content(self) -> None:
        native = new_native_msg(METAFEED_KEYS, ["a", "b"], timestamp=1)
        message = envelope.decode(native)
        self.assertEqual(message["content"], ["a", "b"])
        self.assertIsNone(bendybutt_v1.validate(native))
        self.assertTrue(verify_content_signature(message, METAFEED_KEYS["id"]))

    def test_too_deeply_nested_content_is_refused(self) -> None:
        content: Any = {"type": "x"}
        for _ in range(64):
            content = [content]
        with self.assertRaises(CodecError):
            new_native_msg(METAFEED_KEYS, content, timestamp=1)


class BoxedContentTests(unittest.TestCase):
    def test_recps_require_boxer(self) -> None:
        with self.assertRaises(ValueError):
            new_native_msg(METAFEED_KEYS, {"type": "x", "recps": [MAIN_KEYS["id"]]}, timestamp=1)

    def test_boxer_receives_plaintext_section(self) -> None:
        first = make_first_message()
        boxer = RecordingBoxer()
        content = {"type": "x", "recps": [MAIN_KEYS["id"]]}
        native = new_native_msg(METAFEED_KEYS, content, previous=first, timestamp=2, boxer=boxer)

        self.assertEqual(len(boxer.calls), 1)
        author, plaintext, previous, recipients = boxer.calls[0]
        self.assertEqual(author[:2], b"\x00\x03")
        self.assertEqual(previous, get_msg_id_token(first))
        self.assertEqual(recipients, [MAIN_KEYS["id"]])

        message = envelope.decode(native)
        self.assertTrue(message["content"].endswith(".box2"))
        self.assertNotIn("content_signature", message)
        self.assertIsNone(bendybutt_v1.validate(native, first))

        opened = envelope.from_decrypted(plaintext, native)
        self.assertEqual(opened["content"], content)
        self.assertTrue(verify_content_signature(opened, METAFEED_KEYS["id"]))

    def test_boxer_may_return_token_bytes(self) -> None:
        boxer = RecordingBoxer(b"\x05\x00" + b"sealed")
        native = new_native_msg(METAFEED_KEYS, {"type": "x", "recps": ["a"]}, timestamp=1, boxer=boxer)
        self.assertEqual(codec.decode(native)[0][4], b"\x05\x00sealed")

    def test_bad_boxer_result(self) -> None:
        boxer = RecordingBoxer("not a box")
        with self.assertRaises(ValueError):
            new_native_msg(METAFEED_KEYS, {"type": "x", "recps": ["a"]}, timestamp=1, boxer=boxer)

    def test_already_boxed_content(self) -> None:
        boxed = base64.b64encode(b"opaque").decode("ascii") + ".box"
        native = new_native_msg(METAFEED_KEYS, boxed, timestamp=1)
        self.assertEqual(envelope.decode(native)["content"], boxed)
        self.assertIsNone(bendybutt_v1.validate(native))

    def test_to_plaintext_bytes(self) -> None:
        plaintext = to_plaintext_bytes(main_content(), METAFEED_KEYS, content_keys=MAIN_KEYS)
        self.assertEqual(plaintext, codec.encode(codec.decode(make_first_message())[0][4]))


class FeedFormatTests(unittest.TestCase):
    def test_facade(self) -> None:
        feed_format = FeedFormat(cache=ExtractCache())
        first = make_first_message()
        second = make_second_message(first)

        self.assertEqual(feed_format.name, "bendybutt-v1")
        self.assertTrue(feed_format.is_native_msg(first))
        self.assertFalse(feed_format.is_native_msg(b"garbage"))
        self.assertFalse(feed_format.is_native_msg({"author": METAFEED_KEYS["id"]}))
        self.assertTrue(feed_format.is_author(METAFEED_KEYS["id"]))
        self.assertFalse(feed_format.is_author(MAIN_KEYS["id"]))
        self.assertEqual(feed_format.get_feed_id(second), METAFEED_KEYS["id"])
        self.assertEqual(feed_format.get_msg_id(second), get_msg_id(second))
        self.assertEqual(feed_format.get_sequence(second), 2)
        self.assertIsNone(feed_format.validate(second, first))

    def test_structured_roundtrip(self) -> None:
        native = make_first_message()
        structured = bendybutt_v1.to_structured(native)
        self.assertEqual(structured["content"], main_content())
        self.assertEqual(bendybutt_v1.from_structured(structured), native)

    def test_facade_construction(self) -> None:
        native = bendybutt_v1.new_native_msg(METAFEED_KEYS, main_content(), content_keys=MAIN_KEYS, timestamp=12345)
        self.assertEqual(native, make_first_message())
        again = bendybutt_v1.encode_new(main_content(), MAIN_KEYS, METAFEED_KEYS, 1, None, 12345)
        self.assertEqual(again, native)
        plaintext = bendybutt_v1.to_plaintext_bytes(main_content(), METAFEED_KEYS, content_keys=MAIN_KEYS)
        self.assertEqual(bendybutt_v1.from_decrypted(plaintext, native), bendybutt_v1.to_structured(native))


if __name__ == "__main__":
    unittest.main()
