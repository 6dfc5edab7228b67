"""Error types raised while issuing, resolving and validating tokens.

Hierarchy:
    TokenValidatorError (jwt.exceptions.PyJWTError)
    ├── InvalidInvocationError      # memoize_async() given a non-coroutine function
    ├── ConfigurationError          # key endpoint options missing host/path
    ├── TransportError              # connection, TLS or timeout failure
    ├── HttpStatusError             # key endpoint answered with a non-200 status
    ├── JsonParseError              # header, claims or key document is not valid JSON
    ├── InvalidTokenFormatError     # token is not three non-empty segments
    ├── KeyNotFoundError            # key endpoint has no key for the token's kid
    └── SignatureVerificationError  # RS256 signature does not match
"""

from __future__ import annotations

from jwt import exceptions as jwt_exceptions


class TokenValidatorError(jwt_exceptions.PyJWTError):
    pass


class InvalidInvocationError(TokenValidatorError, TypeError):
    pass


class ConfigurationError(TokenValidatorError, ValueError):
    pass


class TransportError(TokenValidatorError):
    """The key endpoint could not be reached; the original error is ``__cause__``."""

    def __init__(self, url: str, reason: object) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"unable to reach public key endpoint {url}: {reason}")


class HttpStatusError(TokenValidatorError):
    def __init__(self, status_code: int, url: str | None = None) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(f"public key endpoint returned response code: {status_code}")


class JsonParseError(TokenValidatorError, ValueError):
    """Raised when a JSON document cannot be parsed.

    ``stage`` names what was being parsed: ``"header"``, ``"claims"`` or
    ``"key document"``.
    """

    def __init__(self, stage: str, detail: str) -> None:
        self.stage = stage
        self.detail = detail
        super().__init__(f"invalid JSON in {stage}: {detail}")


class InvalidTokenFormatError(TokenValidatorError, jwt_exceptions.DecodeError):
    pass


class KeyNotFoundError(TokenValidatorError):
    def __init__(self, key_id: object) -> None:
        self.key_id = key_id
        super().__init__(f"unable to verify token - no public key found for id {key_id!r}")


class SignatureVerificationError(TokenValidatorError, jwt_exceptions.InvalidSignatureError):
    def __init__(self, message: str = "unable to verify token") -> None:
        super().__init__(message)
