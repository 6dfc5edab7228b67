from __future__ import annotations

import base64
import json
import re
from collections.abc import Mapping
from typing import Any

from cryptography.hazmat.primitives.asymmetric import rsa
from jwt import algorithms
from jwt import exceptions as jwt_exceptions

from .errors import (
    InvalidTokenFormatError,
    JsonParseError,
    KeyNotFoundError,
    SignatureVerificationError,
)
from .keys import (
    CachedKeyResolver,
    FetchOptionsLike,
    clear_public_key_cache,
    coerce_fetch_options,
)
from .logging_config import get_logger

ALGORITHM = "RS256"

# The algorithm is fixed here and never read from the token header.
_RS256 = algorithms.RSAAlgorithm(algorithms.RSAAlgorithm.SHA256)

_NON_ALPHABET = re.compile(r"[^A-Za-z0-9+/]")

logger = get_logger(__name__)

_default_resolver: CachedKeyResolver | None = None

__all__ = [
    "ALGORITHM",
    "clear_public_key_cache",
    "decode",
    "decode_unverified",
    "encode",
]


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode_lenient(segment: str) -> bytes:
    data = _NON_ALPHABET.sub("", segment.split("=", 1)[0])
    if len(data) % 4 == 1:
        # A lone trailing sextet carries no complete byte.
        data = data[:-1]
    return base64.b64decode(data + "=" * (-len(data) % 4))


def _to_json(obj: Any) -> bytes:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _split_token(token: str) -> tuple[str, str, str]:
    if not isinstance(token, str):
        raise InvalidTokenFormatError("token must be a string")
    parts = token.strip().split(".")
    if len(parts) != 3 or not all(parts):
        raise InvalidTokenFormatError("invalid token: expected three non-empty dot-separated parts")
    return parts[0], parts[1], parts[2]


def _segment_text(segment: str) -> str:
    return _b64decode_lenient(segment).decode("utf-8", errors="replace")


def _parse_json(text: str, stage: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise JsonParseError(stage, str(exc)) from exc


def _parse_header(header_text: str) -> dict[str, Any]:
    header = _parse_json(header_text, "header")
    if not isinstance(header, dict):
        raise InvalidTokenFormatError("invalid token: header must be a JSON object")
    return header


def _signing_key(private_key: str | bytes) -> rsa.RSAPrivateKey:
    key = _RS256.prepare_key(private_key)
    if not isinstance(key, rsa.RSAPrivateKey):
        raise jwt_exceptions.InvalidKeyError(f"{ALGORITHM} signing requires an RSA private key")
    return key


def _verification_key(public_key: Any) -> rsa.RSAPublicKey:
    try:
        key = _RS256.prepare_key(public_key)
    except (jwt_exceptions.InvalidKeyError, TypeError, ValueError) as exc:
        raise SignatureVerificationError(
            f"unable to verify token - unusable public key: {exc}"
        ) from exc
    if isinstance(key, rsa.RSAPrivateKey):
        key = key.public_key()
    if not isinstance(key, rsa.RSAPublicKey):
        raise SignatureVerificationError("unable to verify token - public key is not an RSA key")
    return key


def _verify_signature(signing_input: str, signature_segment: str, public_key: Any) -> None:
    key = _verification_key(public_key)
    signature = _b64decode_lenient(signature_segment)
    # Only padding may be omitted; any other variant of the segment is rejected.
    if signature_segment.rstrip("=") != _b64encode(signature).rstrip("="):
        raise SignatureVerificationError()
    if not _RS256.verify(signing_input.encode("utf-8"), key, signature):
        raise SignatureVerificationError()


def encode(private_key: str | bytes, key_id: str, claims: Mapping[str, Any]) -> str:
    encoded_header = _b64encode(_to_json({"alg": ALGORITHM, "kid": key_id}))
    encoded_claims = _b64encode(_to_json(claims))
    signing_input = f"{encoded_header}.{encoded_claims}"
    signature = _RS256.sign(signing_input.encode("ascii"), _signing_key(private_key))
    return f"{signing_input}.{_b64encode(signature)}"


def decode_unverified(token: str) -> tuple[dict[str, Any], Any]:
    # Debug view only: no key lookup and no signature check.
    encoded_header, encoded_claims, _ = _split_token(token)
    header = _parse_header(_segment_text(encoded_header))
    claims = _parse_json(_segment_text(encoded_claims), "claims")
    return header, claims


def _get_default_resolver() -> CachedKeyResolver:
    global _default_resolver
    if _default_resolver is None:
        _default_resolver = CachedKeyResolver()
    return _default_resolver


async def decode(
    token: str,
    fetch_options: FetchOptionsLike,
    *,
    resolver: CachedKeyResolver | None = None,
) -> Any:
    """Verify ``token`` with the key its ``kid`` names and return the claims.

    The key is fetched from the endpoint described by ``fetch_options`` unless
    the resolver already holds it. Claims are parsed only after the signature
    checks out.

    Raises:
        InvalidTokenFormatError: the token is not three non-empty segments, or
            its header is not a JSON object.
        JsonParseError: the header or claims segment is not valid JSON.
        KeyNotFoundError: the key endpoint has no key for the token's kid.
        SignatureVerificationError: the signature does not match.
        ConfigurationError, TransportError, HttpStatusError: key lookup failed.
    """
    encoded_header, encoded_claims, encoded_signature = _split_token(token)
    header_text = _segment_text(encoded_header)
    claims_text = _segment_text(encoded_claims)

    header = _parse_header(header_text)
    key_id = header.get("kid")
    if not isinstance(key_id, str) or not key_id:
        raise KeyNotFoundError(key_id)

    options = coerce_fetch_options(fetch_options)
    public_key = await (resolver or _get_default_resolver()).resolve(key_id, options)
    if not public_key:
        raise KeyNotFoundError(key_id)

    try:
        _verify_signature(f"{encoded_header}.{encoded_claims}", encoded_signature, public_key)
    except SignatureVerificationError:
        logger.info("token_signature_rejected", key_id=key_id, host=options.host)
        raise

    return _parse_json(claims_text, "claims")
