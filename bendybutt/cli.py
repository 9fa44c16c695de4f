"""CLI entrypoint for bendybutt feeds."""

from __future__ import annotations

import argparse
import json
import logging
import pathlib
import sys
from typing import Any

from .chain import ChainError, validate_chain
from .codec import CodecError
from .envelope import EnvelopeError, decode, encode
from .feed import new_native_msg
from .identity import get_msg_id
from .security import SecurityError, generate_keys
from .utils import b64_encode


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="bendybutt", description="bendybutt-v1 feed message tool")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output to stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    keygen = subparsers.add_parser("keygen", help="Generate an ed25519 feed keypair")
    keygen.add_argument("--out-file", required=True, help="Where to write the keys JSON")
    keygen.add_argument(
        "--feed-format",
        choices=["bendybutt-v1", "gabbygrove-v1", "classic"],
        default="bendybutt-v1",
        help="Format of the generated feed id",
    )
    keygen.set_defaults(func=_cmd_keygen)

    create = subparsers.add_parser("create", help="Create and sign the next message of a feed")
    create.add_argument("--keys", required=True, help="Keys JSON file of the feed author")
    create.add_argument("--content-keys", help="Keys JSON file that signs the content (defaults to --keys)")
    content_source = create.add_mutually_exclusive_group(required=True)
    content_source.add_argument("--content-json", help="Inline JSON object or list")
    content_source.add_argument("--content-file", help="JSON file holding the content object or list")
    create.add_argument("--previous", help="Previous message file; omit for the first message")
    create.add_argument("--timestamp", type=int, help="Timestamp in milliseconds (default: now)")
    create.add_argument("--hmac-key", help="Base64 HMAC key or a file containing it")
    create.add_argument("--out-file", required=True, help="Where to write the message bytes")
    create.set_defaults(func=_cmd_create)

    decode_cmd = subparsers.add_parser("decode", help="Print a message as JSON")
    decode_cmd.add_argument("--in-file", required=True, help="Message file")
    decode_cmd.set_defaults(func=_cmd_decode)

    encode_cmd = subparsers.add_parser("encode", help="Encode a JSON message into its binary form")
    encode_cmd.add_argument("--in-file", required=True, help="JSON message file")
    encode_cmd.add_argument("--out-file", required=True, help="Where to write the message bytes")
    encode_cmd.set_defaults(func=_cmd_encode)

    msgid = subparsers.add_parser("msgid", help="Print the id of a message")
    msgid.add_argument("--in-file", required=True, help="Message file")
    msgid.set_defaults(func=_cmd_msgid)

    validate_cmd = subparsers.add_parser("validate", help="Validate messages of one feed, in order")
    validate_cmd.add_argument("in_files", nargs="+", help="Message files in sequence order")
    validate_cmd.add_argument("--previous", help="Trusted message preceding the first file")
    validate_cmd.add_argument("--hmac-key", help="Base64 HMAC key or a file containing it")
    validate_cmd.set_defaults(func=_cmd_validate)

    args = parser.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    return args.func(args)


def _cmd_keygen(args: argparse.Namespace) -> int:
    keys = generate_keys(args.feed_format)
    out_file = pathlib.Path(args.out_file)
    out_file.parent.mkdir(parents=True, exist_ok=True)
    out_file.write_text(json.dumps(keys, indent=2) + "\n", encoding="utf-8")
    print(keys["id"])
    return 0


def _cmd_create(args: argparse.Namespace) -> int:
    try:
        keys = _load_keys(args.keys)
        content_keys = _load_keys(args.content_keys) if args.content_keys else None
        if args.content_json is not None:
            content = json.loads(args.content_json)
        else:
            content = json.loads(pathlib.Path(args.content_file).read_text(encoding="utf-8"))
        previous = pathlib.Path(args.previous).read_bytes() if args.previous else None
        native = new_native_msg(
            keys,
            content,
            previous=previous,
            content_keys=content_keys,
            timestamp=args.timestamp,
            hmac_key=_load_hmac_key(args.hmac_key),
        )
    except (OSError, json.JSONDecodeError, SecurityError, CodecError, ValueError) as exc:
        print(f"failed to create message: {exc}", file=sys.stderr)
        return 2

    pathlib.Path(args.out_file).write_bytes(native)
    print(get_msg_id(native))
    return 0


def _cmd_decode(args: argparse.Namespace) -> int:
    raw = pathlib.Path(args.in_file).read_bytes()
    try:
        message = decode(raw)
    except CodecError as exc:
        print(f"failed to decode message: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(message, indent=2, ensure_ascii=False, default=_json_default))
    return 0


def _cmd_encode(args: argparse.Namespace) -> int:
    try:
        message = json.loads(pathlib.Path(args.in_file).read_text(encoding="utf-8"))
        native = encode(message)
    except (json.JSONDecodeError, EnvelopeError, CodecError) as exc:
        print(f"failed to encode message: {exc}", file=sys.stderr)
        return 1
    pathlib.Path(args.out_file).write_bytes(native)
    print(get_msg_id(native))
    return 0


def _cmd_msgid(args: argparse.Namespace) -> int:
    print(get_msg_id(pathlib.Path(args.in_file).read_bytes()))
    return 0


def _cmd_validate(args: argparse.Namespace) -> int:
    messages = [pathlib.Path(path).read_bytes() for path in args.in_files]
    previous = pathlib.Path(args.previous).read_bytes() if args.previous else None
    try:
        validate_chain(messages, _load_hmac_key(args.hmac_key), previous=previous)
    except ChainError as exc:
        print(f"{args.in_files[exc.index]}: invalid [{exc.error.code}] {exc.error}", file=sys.stderr)
        return 1
    except CodecError as exc:
        print(f"malformed message: {exc}", file=sys.stderr)
        return 1
    print("valid")
    return 0


def _load_keys(path: str) -> dict[str, str]:
    decoded = json.loads(pathlib.Path(path).read_text(encoding="utf-8"))
    if not isinstance(decoded, dict) or not isinstance(decoded.get("private"), str):
        raise ValueError(f"{path}: keys file must be an object with a private key")
    return decoded


def _load_hmac_key(value: str | None) -> str | None:
    if value is None:
        return None
    path = pathlib.Path(value)
    if path.exists() and path.is_file():
        return path.read_text(encoding="utf-8").strip()
    return value.strip()


def _json_default(value: Any) -> Any:
    if isinstance(value, bytes):
        return b64_encode(value)
    raise TypeError(f"cannot serialize {type(value).__name__}")


if __name__ == "__main__":
    raise SystemExit(main())
