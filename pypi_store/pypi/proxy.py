"""Pull-through cache in front of an upstream package index.

Every lookup is forwarded to the origin. Successful responses are written to
the backing store under a key derived from the request path and returned;
unsuccessful ones are mirrored to the client and never cached.

Two behaviours are opt-in:

- stale read-through: when the origin fails, a previously cached value is
  served instead of the failure;
- single-flight: concurrent lookups of the same key share one origin fetch.
  Without it, N concurrent lookups make N fetches and N writes.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

import httpx
from starlette.responses import Response
from typing_extensions import override

from pypi_store.backends import AbstractBackendInterface, StorageKey
from pypi_store.errors import OriginUnavailableError
from pypi_store.logger import logger

from .utils import is_artifact_path, pypi_normalize

T = TypeVar('T')

# Headers describing the origin's framing of the body, which is not forwarded
_UNFORWARDED_HEADERS = frozenset(
    {
        'connection',
        'content-encoding',
        'content-length',
        'keep-alive',
        'transfer-encoding',
    }
)


@dataclass(frozen=True)
class OriginResponse:
    """Status, headers and body returned by the origin."""

    status_code: int
    headers: Sequence[tuple[str, str]]
    content: bytes

    @property
    def success(self) -> bool:
        return 200 <= self.status_code < 300  # noqa: PLR2004

    def header(self, name: str) -> str | None:
        """Return the first value of a header, matched case-insensitively."""
        return next((value for key, value in self.headers if key.lower() == name.lower()), None)


class AbstractOrigin(ABC):
    """The upstream index a pull-through cache fetches from."""

    @abstractmethod
    async def fetch(self, request_line: str) -> OriginResponse:
        """Send a GET request for a path (and query) to the origin.

        Args:
            request_line: The path and query to request.

        Raises:
            OriginUnavailableError: If no response could be obtained.
        """


class HttpxOrigin(AbstractOrigin):
    """Origin reached over HTTP with httpx.

    Attributes:
        base_url: URL request lines are resolved against.
        timeout: Request timeout in seconds, None for no timeout.
    """

    base_url: str
    timeout: float | None

    def __init__(self, base_url: str, *, timeout: float | None = None) -> None:
        self.base_url = base_url
        self.timeout = timeout

    @override
    async def fetch(self, request_line: str) -> OriginResponse:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                follow_redirects=True,
            ) as client:
                response = await client.get(request_line)
        except httpx.HTTPError as e:
            raise OriginUnavailableError(request_line) from e

        return OriginResponse(
            status_code=response.status_code,
            headers=list(response.headers.multi_items()),
            content=response.content,
        )


class SingleFlight(Generic[T]):
    """Collapse concurrent calls for the same key into one call."""

    def __init__(self) -> None:
        self._calls: dict[str, asyncio.Future[T]] = {}

    async def do(self, key: str, func: Callable[[], Awaitable[T]]) -> T:
        """Await ``func()``, or the call already running for ``key``."""
        call = self._calls.get(key)
        if call is None:
            call = asyncio.ensure_future(func())
            self._calls[key] = call
            call.add_done_callback(lambda _: self._calls.pop(key, None))
        # A cancelled caller must not cancel the call shared with the others
        return await asyncio.shield(call)


# Shared by every ProxyCache so concurrent requests see each other's fetches
origin_fetches: SingleFlight[OriginResponse] = SingleFlight()


def cache_key_from_path(path: str) -> StorageKey:
    """Derive the storage key for a proxied request path.

    Artifact paths are used unchanged so the file can be fetched again by its
    exact name. For index paths the last segment is normalized, so different
    spellings of a project share one cache entry.

    Raises:
        InvalidNameError: If the last segment of an index path is not a valid
            project name.
    """
    key = StorageKey.from_path(path)
    if is_artifact_path(path):
        return key
    return StorageKey((*key.parts[:-1], pypi_normalize(key.name)))


def default_content_type(path: str) -> str:
    return 'multipart/form-data' if is_artifact_path(path) else 'text/html'


class ProxyCache:
    """Serve lookups from the origin, caching successful responses.

    Attributes:
        backend: The backing store used as cache.
        origin: The upstream index.
        stale_on_error: Serve the cached value when the origin fails.
        single_flight: Group used to share concurrent fetches, or None to
            fetch once per lookup.
    """

    backend: AbstractBackendInterface
    origin: AbstractOrigin
    stale_on_error: bool
    single_flight: SingleFlight[OriginResponse] | None

    def __init__(
        self,
        backend: AbstractBackendInterface,
        origin: AbstractOrigin,
        *,
        stale_on_error: bool = False,
        single_flight: SingleFlight[OriginResponse] | None = None,
    ) -> None:
        self.backend = backend
        self.origin = origin
        self.stale_on_error = stale_on_error
        self.single_flight = single_flight

    async def lookup(self, path: str, query: str = '') -> Response:
        """Serve a GET request for a path through the cache.

        Args:
            path: The request path.
            query: The raw query string, forwarded to the origin.

        Returns:
            ``200`` with the origin body on success, the origin's status and
            headers on failure, or ``502`` if the origin is unreachable.
        """
        key = cache_key_from_path(path)
        request_line = f'{path}?{query}' if query else path

        try:
            if self.single_flight is None:
                origin_response = await self._fetch_and_store(key, request_line)
            else:
                # Requests differing in case or query reach the origin separately
                origin_response = await self.single_flight.do(
                    request_line,
                    lambda: self._fetch_and_store(key, request_line),
                )
        except OriginUnavailableError:
            logger.warning(
                'proxy_origin_unavailable',
                extra={
                    'request_line': request_line,
                    'key': str(key),
                },
                exc_info=True,
            )
            return await self._stale_or(key, path, Response(status_code=502))

        if origin_response.success:
            return Response(
                content=origin_response.content,
                status_code=200,
                media_type=origin_response.header('content-type') or default_content_type(path),
            )

        logger.info(
            'proxy_origin_unsuccessful',
            extra={
                'request_line': request_line,
                'key': str(key),
                'status_code': origin_response.status_code,
            },
        )
        mirrored = Response(status_code=origin_response.status_code)
        for name, value in origin_response.headers:
            if name.lower() not in _UNFORWARDED_HEADERS:
                mirrored.headers.append(name, value)
        return await self._stale_or(key, path, mirrored)

    async def _fetch_and_store(self, key: StorageKey, request_line: str) -> OriginResponse:
        origin_response = await self.origin.fetch(request_line)
        if origin_response.success:
            await self.backend.put(key, origin_response.content)
            logger.info(
                'proxy_cache_stored',
                extra={
                    'request_line': request_line,
                    'key': str(key),
                    'size': len(origin_response.content),
                },
            )
        return origin_response

    async def _stale_or(self, key: StorageKey, path: str, response: Response) -> Response:
        if not self.stale_on_error:
            return response

        cached = await self.backend.get(key)
        if cached is None:
            return response

        logger.info(
            'proxy_serving_stale',
            extra={
                'key': str(key),
                'origin_status_code': response.status_code,
            },
        )
        return Response(content=cached, status_code=200, media_type=default_content_type(path))
