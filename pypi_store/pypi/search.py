"""Minimal legacy XML-RPC ``search`` endpoint.

Only exact project name lookups are supported: the queried name is
normalized and the releases stored for it are returned.
"""

import xmlrpc.client
from collections.abc import Sequence
from typing import Any
from xml.parsers.expat import ExpatError

from pypi_store.backends import AbstractBackendInterface, StorageKey
from pypi_store.errors import InvalidFilenameError, InvalidSearchQueryError

from .utils import parse_filename, pypi_normalize


def parse_search_query(body: bytes) -> str:
    """Return the project name queried by an XML-RPC ``search`` call.

    Raises:
        InvalidSearchQueryError: If the body is not a ``search`` call with a
            ``name`` criterion.
    """
    try:
        params, method_name = xmlrpc.client.loads(body)
    except (ExpatError, ValueError) as e:
        msg = 'Invalid XML-RPC request.'
        raise InvalidSearchQueryError(msg) from e

    spec = params[0] if params else None
    if method_name != 'search' or not isinstance(spec, dict):
        msg = 'Expected a search call with a query specification.'
        raise InvalidSearchQueryError(msg)

    name: Any = spec.get('name')
    if isinstance(name, list):
        name = name[0] if name else None
    if not isinstance(name, str) or not name:
        msg = 'Invalid XML-RPC request, project name not found.'
        raise InvalidSearchQueryError(msg)
    return name


def _release_versions(keys: Sequence[StorageKey]) -> list[str]:
    versions: set[str] = set()
    for key in keys:
        try:
            versions.add(parse_filename(key.name).version)
        except InvalidFilenameError:
            continue
    return sorted(versions)


async def search_project(
    backend: AbstractBackendInterface,
    routing_base: StorageKey,
    body: bytes,
) -> bytes:
    """Answer a legacy ``search`` call from the releases in the store.

    Returns:
        The XML-RPC method response, an array with one struct per stored
        version of the project, empty if the project is unknown.
    """
    name = pypi_normalize(parse_search_query(body))
    keys = await backend.list(routing_base.joinpath(name))
    results = [
        {
            'name': name,
            'version': version,
            'summary': '',
            '_pypi_ordering': False,
        }
        for version in _release_versions(keys)
    ]
    return xmlrpc.client.dumps((results,), methodresponse=True).encode('utf-8')
