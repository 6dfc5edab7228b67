from __future__ import annotations

from .core import ALGORITHM, clear_public_key_cache, decode, decode_unverified, encode
from .errors import (
    ConfigurationError,
    HttpStatusError,
    InvalidInvocationError,
    InvalidTokenFormatError,
    JsonParseError,
    KeyNotFoundError,
    SignatureVerificationError,
    TokenValidatorError,
    TransportError,
)
from .keys import (
    CachedKeyResolver,
    KeyFetchOptions,
    PublicKeyCache,
    default_public_key_cache,
    retrieve_public_key,
)
from .memo import memoize_async
from .version import __version__

__all__ = [
    "ALGORITHM",
    "CachedKeyResolver",
    "ConfigurationError",
    "HttpStatusError",
    "InvalidInvocationError",
    "InvalidTokenFormatError",
    "JsonParseError",
    "KeyFetchOptions",
    "KeyNotFoundError",
    "PublicKeyCache",
    "SignatureVerificationError",
    "TokenValidatorError",
    "TransportError",
    "__version__",
    "clear_public_key_cache",
    "decode",
    "decode_unverified",
    "default_public_key_cache",
    "encode",
    "memoize_async",
    "retrieve_public_key",
]
