"""Request handlers selected by the dispatch rules in ``router.py``.

Each handler receives the request path relative to the router, always with
a leading ``/``, so that keys in the backing store mirror request paths.
"""

import re
from dataclasses import dataclass
from pathlib import Path

from fastapi import HTTPException, Request, Response, status
from fastapi.templating import Jinja2Templates
from starlette.responses import RedirectResponse

from pypi_store.backends import AbstractBackendInterface, StorageKey
from pypi_store.config import PypiStoreConfig
from pypi_store.logger import logger

from .multipart import read_body
from .proxy import HttpxOrigin, ProxyCache, origin_fetches
from .search import search_project
from .upload import UploadPipeline
from .utils import pypi_normalize

DISPATCH_ROUTE_NAME = 'pypi_dispatch'
FULL_PATH_HEADER = 'X-FullPath'

templates = Jinja2Templates(
    directory=Path(__file__).parent / 'templates',
)


@dataclass(frozen=True)
class RequestContext:
    """Everything a handler needs to serve one request."""

    request: Request
    path: str
    config: PypiStoreConfig
    backend: AbstractBackendInterface

    @property
    def key(self) -> StorageKey:
        """The storage key mirroring the request path."""
        return StorageKey.from_path(self.path)


def _not_found(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


async def download_artifact(ctx: RequestContext) -> Response:
    """Serve a stored distribution file as-is."""
    key = ctx.key
    content = None if key.hidden else await ctx.backend.get(key)
    if content is None:
        raise _not_found(f'File {key.name} not found.')

    return Response(
        content=content,
        media_type='application/octet-stream',
        headers={
            'Content-Disposition': f'attachment; filename="{key.name}"',
        },
    )


async def upload_artifact(ctx: RequestContext) -> Response:
    """Accept a ``multipart/form-data`` upload below the request path."""
    routing_base = ctx.key
    if routing_base.hidden:
        raise _not_found(f'Upload location /{routing_base} not found.')

    pipeline = UploadPipeline(ctx.backend, max_upload_bytes=ctx.config.max_upload_bytes)
    _ = await pipeline.run(
        routing_base,
        ctx.request.headers.get('content-type'),
        ctx.request.stream(),
    )
    return Response(status_code=status.HTTP_201_CREATED)


async def legacy_search(ctx: RequestContext) -> Response:
    """Answer an XML-RPC ``search`` call for the projects below the request path."""
    body = await read_body(ctx.request.stream(), ctx.config.max_upload_bytes)
    return Response(
        content=await search_project(ctx.backend, ctx.key, body),
        media_type='text/xml',
    )


def handle_project_not_found(config: PypiStoreConfig, project_name: str) -> RedirectResponse:
    """Redirect to the fallback index, or raise 404 when fallback is disabled."""
    if config.fallback_enabled:
        fallback_url = config.fallback_url.rstrip('/')
        return RedirectResponse(
            url=f'{fallback_url}/{project_name}/',
        )
    raise _not_found(f'Project {project_name} not found.')


async def index_listing(ctx: RequestContext) -> Response:
    """Render the simple index page for the request path.

    Keys directly below the path are listed as files. Deeper keys are
    collapsed into one link per sub-directory, so the root page lists
    projects and a project page lists its files.
    """
    prefix = ctx.key
    keys = [] if prefix.hidden else await ctx.backend.list(prefix)

    files: list[StorageKey] = []
    projects: dict[str, StorageKey] = {}
    for key in keys:
        relative = key.relative_to(prefix)
        if len(relative) == 1:
            files.append(key)
        else:
            _ = projects.setdefault(relative[0], prefix.joinpath(relative[0]))

    if prefix.parts and not files and not projects:
        return handle_project_not_found(ctx.config, prefix.name)

    def url_for(key: StorageKey) -> str:
        return str(ctx.request.url_for(DISPATCH_ROUTE_NAME, path=str(key)))

    return templates.TemplateResponse(
        request=ctx.request,
        name='simple_index.html',
        context={
            'title': prefix.name or 'Simple index',
            'project_links': [(f'{url_for(key)}/', name) for name, key in projects.items()],
            'file_links': [(url_for(key), key.name) for key in files],
        },
    )


async def redirect_to_normalized(ctx: RequestContext) -> Response:
    """Redirect to the same path with its last segment normalized.

    A proxy in front of the index can pass the full public path in the
    ``X-FullPath`` header; the redirect is then built from that path.
    """
    last = ctx.key.name
    normalized = pypi_normalize(last)
    full_path = ctx.request.headers.get(FULL_PATH_HEADER, ctx.request.url.path)
    location = re.sub(f'{re.escape(last)}/?$', normalized, full_path)

    logger.debug(
        'redirect_to_normalized',
        extra={
            'request_path': ctx.path,
            'location': location,
        },
    )
    return RedirectResponse(url=location, status_code=status.HTTP_301_MOVED_PERMANENTLY)


async def proxy_lookup(ctx: RequestContext) -> Response:
    """Serve a GET request through the pull-through cache."""
    if ctx.key.hidden:
        raise _not_found(f'/{ctx.key} not found.')

    config = ctx.config
    cache = ProxyCache(
        ctx.backend,
        HttpxOrigin(config.proxy_origin_url, timeout=config.proxy_timeout),
        stale_on_error=config.proxy_stale_on_error,
        single_flight=origin_fetches if config.proxy_single_flight else None,
    )
    return await cache.lookup(ctx.path, ctx.request.url.query)
