from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from jwt import exceptions as jwt_exceptions

from .core import decode, decode_unverified, encode
from .keys import DEFAULT_METHOD, DEFAULT_PORT, KeyFetchOptions
from .logging_config import configure_logging
from .samples import DEFAULT_KEY_SIZE, DEFAULT_SAMPLE_KID, generate_sample
from .version import __version__


def _ensure_dict(obj: Any, context: str) -> dict[str, Any]:
    if not isinstance(obj, dict):
        raise SystemExit(f"{context} must be a JSON object")
    return obj


def _load_claims(args: argparse.Namespace) -> dict[str, Any]:
    if args.claims and args.claims_file:
        raise SystemExit("use only one of --claims or --claims-file")
    if args.claims_file:
        obj = json.loads(Path(args.claims_file).read_text(encoding="utf-8"))
        return _ensure_dict(obj, "claims")
    if args.claims:
        obj = json.loads(args.claims)
        return _ensure_dict(obj, "claims")
    raise SystemExit("missing claims: use --claims or --claims-file")


def _print_json(obj: object) -> None:
    print(json.dumps(obj, indent=2, sort_keys=True))


def _load_token(token_arg: str) -> str:
    if token_arg != "-":
        return token_arg
    token = sys.stdin.read().strip()
    if not token:
        raise ValueError("stdin is empty; expected token")
    return token


def _load_text(text_arg: str, label: str) -> str:
    if text_arg != "-":
        return text_arg
    text = sys.stdin.read()
    if not text.strip():
        raise ValueError(f"stdin is empty; expected {label}")
    return text


def _parse_headers(values: list[str] | None) -> dict[str, str] | None:
    if not values:
        return None
    headers: dict[str, str] = {}
    for raw in values:
        name, sep, value = raw.partition(":")
        if not sep or not name.strip():
            raise ValueError(f"invalid --header {raw!r}; expected NAME:VALUE")
        headers[name.strip()] = value.strip()
    return headers


def _fetch_options(args: argparse.Namespace) -> KeyFetchOptions:
    return KeyFetchOptions.from_mapping(
        {
            "host": args.host,
            "path": args.path,
            "port": args.port,
            "method": args.method,
            "scheme": args.scheme,
            "headers": _parse_headers(args.header),
            "timeout": args.timeout,
        }
    )


def _cmd_encode(args: argparse.Namespace) -> int:
    if args.key and args.key_text is not None:
        raise ValueError("use only one of --key or --key-text")
    if args.key:
        private_key = Path(args.key).read_text(encoding="utf-8")
    elif args.key_text is not None:
        private_key = _load_text(args.key_text, "private key")
    else:
        raise ValueError("missing key material; provide --key or --key-text")
    print(encode(private_key, args.kid, _load_claims(args)))
    return 0


def _cmd_decode(args: argparse.Namespace) -> int:
    options = _fetch_options(args)
    token = _load_token(args.token)
    claims = asyncio.run(decode(token, options))
    _print_json(claims)
    return 0


def _cmd_inspect(args: argparse.Namespace) -> int:
    header, claims = decode_unverified(_load_token(args.token))
    _print_json({"header": header, "claims": claims, "verified": False})
    return 0


def _cmd_sample(args: argparse.Namespace) -> int:
    _print_json(generate_sample(kid=args.kid, key_size=int(args.key_size)))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="jws-validator")
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "--verbose", action="store_true", help="Log key lookups and cache activity to stderr"
    )

    sub = parser.add_subparsers(dest="cmd", required=True)

    p_encode = sub.add_parser("encode", help="Sign claims into an RS256 token")
    p_encode.add_argument("--key", help="Path to PEM private key")
    p_encode.add_argument("--key-text", help="PEM private key text (use '-' to read from stdin)")
    p_encode.add_argument("--kid", required=True, help="Key id placed in the token header")
    p_encode.add_argument("--claims", help="JSON claims object")
    p_encode.add_argument("--claims-file", help="Path to JSON claims file")
    p_encode.set_defaults(func=_cmd_encode)

    p_decode = sub.add_parser(
        "decode", help="Verify a token against a remote key document and print its claims"
    )
    p_decode.add_argument(
        "--token", required=True, help="Token string (use '-' to read from stdin)"
    )
    p_decode.add_argument("--host", required=True, help="Key endpoint host")
    p_decode.add_argument("--path", required=True, help="Key endpoint path")
    p_decode.add_argument(
        "--port",
        type=int,
        default=DEFAULT_PORT,
        help=f"Key endpoint port (default: {DEFAULT_PORT})",
    )
    p_decode.add_argument(
        "--method", default=DEFAULT_METHOD, help=f"HTTP method (default: {DEFAULT_METHOD})"
    )
    p_decode.add_argument(
        "--scheme", choices=["https", "http"], default="https", help="URL scheme (default: https)"
    )
    p_decode.add_argument(
        "--header",
        action="append",
        help="Request header as NAME:VALUE (repeatable; replaces the default Content-Type)",
    )
    p_decode.add_argument(
        "--timeout", type=float, help="Key fetch timeout in seconds (default: transport default)"
    )
    p_decode.set_defaults(func=_cmd_decode)

    p_inspect = sub.add_parser("inspect", help="Show header and claims without verifying")
    p_inspect.add_argument(
        "--token", required=True, help="Token string (use '-' to read from stdin)"
    )
    p_inspect.set_defaults(func=_cmd_inspect)

    p_sample = sub.add_parser(
        "sample", help="Generate a demo key pair, token and key document (no network)"
    )
    p_sample.add_argument(
        "--kid", default=DEFAULT_SAMPLE_KID, help=f"Key id (default: {DEFAULT_SAMPLE_KID})"
    )
    p_sample.add_argument(
        "--key-size",
        type=int,
        default=DEFAULT_KEY_SIZE,
        help=f"RSA key size in bits (default: {DEFAULT_KEY_SIZE})",
    )
    p_sample.set_defaults(func=_cmd_sample)

    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose)
    try:
        return int(args.func(args))
    except KeyboardInterrupt:
        return 130
    except (ValueError, jwt_exceptions.PyJWTError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
