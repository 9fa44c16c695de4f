from __future__ import annotations

import io
import json
import pathlib
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout

from bendybutt.cli import main
from bendybutt.identity import get_feed_id, get_msg_id

from tests.test_helpers import HMAC_KEY, MAIN_KEYS


def run(argv: list[str]) -> tuple[int, str, str]:
    stdout, stderr = io.StringIO(), io.StringIO()
    with redirect_stdout(stdout), redirect_stderr(stderr):
        code = main(argv)
    return code, stdout.getvalue(), stderr.getvalue()


class CLITests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = pathlib.Path(self._tmp.name)
        self.keys_file = str(self.root / "keys.json")
        code, out, _ = run(["keygen", "--out-file", self.keys_file])
        self.assertEqual(code, 0)
        self.feed_id = out.strip()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def create(self, name: str, *extra: str) -> str:
        path = str(self.root / name)
        code, out, err = run(
            ["create", "--keys", self.keys_file, "--content-json", '{"type": "x"}', "--out-file", path, *extra]
        )
        self.assertEqual(code, 0, err)
        self.assertEqual(out.strip(), get_msg_id(pathlib.Path(path).read_bytes()))
        return path

    def test_keygen_writes_keys(self) -> None:
        keys = json.loads(pathlib.Path(self.keys_file).read_text(encoding="utf-8"))
        self.assertEqual(keys["id"], self.feed_id)
        self.assertTrue(self.feed_id.startswith("ssb:feed/bendybutt-v1/"))
        self.assertEqual(keys["curve"], "ed25519")

    def test_create_and_validate_chain(self) -> None:
        first = self.create("1.bb", "--timestamp", "1")
        second = self.create("2.bb", "--previous", first, "--timestamp", "2")
        self.assertEqual(get_feed_id(pathlib.Path(second).read_bytes()), self.feed_id)

        code, out, _ = run(["validate", first, second])
        self.assertEqual(code, 0)
        self.assertEqual(out.strip(), "valid")

        code, out, _ = run(["validate", second, "--previous", first])
        self.assertEqual(code, 0)

    def test_validate_reports_rejection(self) -> None:
        first = self.create("1.bb", "--timestamp", "1")
        second = self.create("2.bb", "--previous", first, "--timestamp", "2")
        code, _, err = run(["validate", second])
        self.assertEqual(code, 1)
        self.assertIn(f"{second}: invalid [previous_missing]", err)

    def test_hmac_key_from_file(self) -> None:
        key_file = self.root / "hmac.txt"
        key_file.write_text(HMAC_KEY + "\n", encoding="utf-8")
        first = self.create("1.bb", "--hmac-key", str(key_file))

        self.assertEqual(run(["validate", first, "--hmac-key", HMAC_KEY])[0], 0)
        code, _, err = run(["validate", first])
        self.assertEqual(code, 1)
        self.assertIn("[signature]", err)

    def test_decode_encode_and_msgid(self) -> None:
        first = self.create("1.bb", "--timestamp", "7")
        code, out, _ = run(["decode", "--in-file", first])
        self.assertEqual(code, 0)
        decoded = json.loads(out)
        self.assertEqual(decoded["author"], self.feed_id)
        self.assertEqual(decoded["content"], {"type": "x"})
        self.assertIsNone(decoded["previous"])

        json_file = self.root / "1.json"
        json_file.write_text(out, encoding="utf-8")
        copy_file = str(self.root / "copy.bb")
        code, out, _ = run(["encode", "--in-file", str(json_file), "--out-file", copy_file])
        self.assertEqual(code, 0)
        self.assertEqual(pathlib.Path(copy_file).read_bytes(), pathlib.Path(first).read_bytes())

        code, out, _ = run(["msgid", "--in-file", first])
        self.assertEqual(out.strip(), get_msg_id(pathlib.Path(first).read_bytes()))

    def test_decode_rejects_garbage(self) -> None:
        garbage = self.root / "garbage.bb"
        garbage.write_bytes(b"not bencode")
        code, _, err = run(["decode", "--in-file", str(garbage)])
        self.assertEqual(code, 1)
        self.assertIn("failed to decode", err)

    def test_create_with_classic_keys_fails(self) -> None:
        classic = self.root / "classic.json"
        classic.write_text(json.dumps(MAIN_KEYS), encoding="utf-8")
        code, _, err = run(
            ["create", "--keys", str(classic), "--content-json", "{}", "--out-file", str(self.root / "x.bb")]
        )
        self.assertEqual(code, 2)
        self.assertIn("failed to create message", err)


if __name__ == "__main__":
    unittest.main()
