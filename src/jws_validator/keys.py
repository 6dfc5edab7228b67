from __future__ import annotations

import asyncio
import http.client
import json
import urllib.error
import urllib.request
from collections.abc import Awaitable, Callable, Iterator, Mapping, MutableMapping
from dataclasses import dataclass, field, fields
from typing import Any, Union
from weakref import WeakSet

from .errors import ConfigurationError, HttpStatusError, JsonParseError, TransportError
from .logging_config import get_logger
from .memo import memoize_async

logger = get_logger(__name__)

DEFAULT_PORT = 443
DEFAULT_METHOD = "GET"
_SUPPORTED_SCHEMES = frozenset({"http", "https"})


def _default_headers() -> dict[str, str]:
    return {"Content-Type": "application/x-www-form-urlencoded"}


@dataclass(frozen=True)
class KeyFetchOptions:
    """Where to fetch the ``{kid: public key PEM}`` document from."""

    host: str
    path: str
    port: int = DEFAULT_PORT
    method: str = DEFAULT_METHOD
    headers: Mapping[str, str] = field(default_factory=_default_headers)
    scheme: str = "https"
    timeout: float | None = None

    def __post_init__(self) -> None:
        if not self.host or not self.path:
            raise ConfigurationError('missing required options "host" and/or "path"')
        if self.scheme not in _SUPPORTED_SCHEMES:
            raise ConfigurationError("key endpoint scheme must be http(s)")
        try:
            port = int(self.port)
        except (TypeError, ValueError):
            raise ConfigurationError(f"invalid key endpoint port: {self.port!r}") from None
        object.__setattr__(self, "port", port)
        object.__setattr__(self, "method", str(self.method).upper())
        object.__setattr__(self, "headers", dict(self.headers))

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> KeyFetchOptions:
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ConfigurationError(f"unknown key endpoint options: {', '.join(unknown)}")
        if options.get("host") is None or options.get("path") is None:
            raise ConfigurationError('missing required options "host" and/or "path"')
        supplied = {name: value for name, value in options.items() if value is not None}
        return cls(**supplied)

    @property
    def url(self) -> str:
        path = self.path if self.path.startswith("/") else f"/{self.path}"
        return f"{self.scheme}://{self.host}:{self.port}{path}"


FetchOptionsLike = Union[KeyFetchOptions, Mapping[str, Any]]


def coerce_fetch_options(options: FetchOptionsLike) -> KeyFetchOptions:
    if isinstance(options, KeyFetchOptions):
        return options
    if isinstance(options, Mapping):
        return KeyFetchOptions.from_mapping(options)
    raise ConfigurationError("key endpoint options must be KeyFetchOptions or a mapping")


class _RefuseRedirects(urllib.request.HTTPRedirectHandler):
    # A 3xx surfaces as HTTPError and so as HttpStatusError.
    def redirect_request(self, req, fp, code, msg, headers, newurl):  # type: ignore[no-untyped-def]
        return None


_opener = urllib.request.build_opener(_RefuseRedirects)


def _fetch_key_document(options: KeyFetchOptions) -> bytes:
    url = options.url
    req = urllib.request.Request(url, headers=dict(options.headers), method=options.method)
    open_kwargs: dict[str, Any] = {}
    if options.timeout is not None:
        open_kwargs["timeout"] = options.timeout
    try:
        with _opener.open(req, **open_kwargs) as response:
            status = response.status
            body = response.read() if status == 200 else b""
    except urllib.error.HTTPError as exc:
        exc.close()
        raise HttpStatusError(exc.code, url) from exc
    except urllib.error.URLError as exc:
        raise TransportError(url, exc.reason) from exc
    except http.client.HTTPException as exc:
        # Truncated bodies and malformed status lines.
        raise TransportError(url, exc) from exc
    except OSError as exc:
        # Timeouts and resets after the connection was established.
        raise TransportError(url, exc) from exc
    if status != 200:
        raise HttpStatusError(status, url)
    return body


def _parse_key_document(body: bytes) -> dict[str, Any]:
    try:
        document = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise JsonParseError("key document", str(exc)) from exc
    if not isinstance(document, dict):
        raise JsonParseError("key document", "expected a JSON object mapping key ids to keys")
    return document


async def retrieve_public_key(key_id: str, fetch_options: FetchOptionsLike) -> str | None:
    """Fetch the key document and return the entry for ``key_id``.

    Returns ``None`` when the document has no such id; callers decide whether
    that is an error.
    """
    options = coerce_fetch_options(fetch_options)
    log = logger.bind(host=options.host, path=options.path, key_id=key_id)
    log.debug("public_key_fetch_started", method=options.method, port=options.port)
    try:
        body = await asyncio.to_thread(_fetch_key_document, options)
        document = _parse_key_document(body)
    except HttpStatusError as exc:
        log.warning("public_key_fetch_failed", status_code=exc.status_code)
        raise
    except (TransportError, JsonParseError) as exc:
        log.warning("public_key_fetch_failed", error=str(exc))
        raise
    key = document.get(key_id)
    log.debug("public_key_fetched", found=key is not None, key_count=len(document))
    return key


def public_key_cache_key(key_id: object, fetch_options: FetchOptionsLike) -> str:
    options = coerce_fetch_options(fetch_options)
    return f"{options.host}:{options.path}:{key_id}"


class PublicKeyCache(MutableMapping[str, str]):
    """Resolved public keys by ``host:path:kid``.

    Entries never expire. ``clear()`` empties the store in place so that every
    resolver sharing this object sees the reset, and makes those resolvers
    drop fetches started before the clear.
    """

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}
        self._resolvers: WeakSet[CachedKeyResolver] = WeakSet()

    def __getitem__(self, key: str) -> str:
        return self._entries[key]

    def __setitem__(self, key: str, value: str) -> None:
        self._entries[key] = value

    def __delitem__(self, key: str) -> None:
        del self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def attach(self, resolver: CachedKeyResolver) -> None:
        self._resolvers.add(resolver)

    def clear(self) -> None:
        count = len(self._entries)
        self._entries.clear()
        for resolver in list(self._resolvers):
            resolver.discard_in_flight()
        logger.debug("public_key_cache_cleared", entries=count)


default_public_key_cache = PublicKeyCache()


def _has_key_material(key: str | None) -> bool:
    return bool(key)


class CachedKeyResolver:
    """``retrieve_public_key`` behind an at-most-once cache."""

    def __init__(
        self,
        cache: PublicKeyCache | None = None,
        fetch: Callable[[str, FetchOptionsLike], Awaitable[str | None]] = retrieve_public_key,
    ) -> None:
        self.cache = default_public_key_cache if cache is None else cache
        self._resolve = memoize_async(
            fetch,
            public_key_cache_key,
            self.cache,
            should_cache=_has_key_material,
        )
        self.cache.attach(self)

    def discard_in_flight(self) -> None:
        self._resolve.invalidate()  # type: ignore[attr-defined]

    async def resolve(self, key_id: str, fetch_options: FetchOptionsLike) -> str | None:
        options = coerce_fetch_options(fetch_options)
        cache_key = public_key_cache_key(key_id, options)
        if cache_key in self.cache:
            logger.debug(
                "public_key_cache_hit", host=options.host, path=options.path, key_id=key_id
            )
        return await self._resolve(key_id, options)


def clear_public_key_cache(cache: PublicKeyCache | None = None) -> None:
    (default_public_key_cache if cache is None else cache).clear()
