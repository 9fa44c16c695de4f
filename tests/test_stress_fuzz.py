from __future__ import annotations

import random
import unittest

from bendybutt import envelope
from bendybutt.codec import DecodeError
from bendybutt.validation import ValidationError, validate

from tests.test_helpers import make_first_message, make_second_message


class StressAndFuzzTests(unittest.TestCase):
    def test_byte_mutation_fuzz_does_not_crash_validator(self) -> None:
        random.seed(1337)
        first = make_first_message()
        second = make_second_message(first)

        def mutate(native: bytes) -> bytes:
            data = bytearray(native)
            op = random.choice(["flip", "set", "truncate", "insert", "delete"])
            index = random.randrange(len(data))
            if op == "flip":
                data[index] ^= 1 << random.randrange(8)
            elif op == "set":
                data[index] = random.randrange(256)
            elif op == "truncate":
                del data[index:]
            elif op == "insert":
                data.insert(index, random.randrange(256))
            else:
                del data[index]
            return bytes(data)

        accepted = 0
        for _ in range(400):
            mutated = mutate(second)
            if mutated == second:
                continue
            try:
                result = validate(mutated, first)
            except DecodeError:
                continue
            self.assertTrue(result is None or isinstance(result, ValidationError))
            if result is None:
                accepted += 1
        self.assertEqual(accepted, 0)

    def test_decoder_fuzz_raises_only_decode_errors(self) -> None:
        random.seed(4242)
        native = make_first_message()
        for _ in range(400):
            data = bytearray(native)
            for _ in range(random.randint(1, 4)):
                data[random.randrange(len(data))] = random.randrange(256)
            try:
                envelope.decode(bytes(data))
            except DecodeError:
                pass

    def test_random_bytes_never_validate(self) -> None:
        random.seed(99)
        for _ in range(200):
            blob = bytes(random.randrange(256) for _ in range(random.randint(0, 200)))
            try:
                self.assertIsNotNone(validate(b"l" + blob + b"e"))
            except DecodeError:
                pass


if __name__ == "__main__":
    unittest.main()
