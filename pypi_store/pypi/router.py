import re
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass

from fastapi import APIRouter, HTTPException, Request, Response, status

from pypi_store.backends import StorageUnavailableError
from pypi_store.config import PypiStoreConfig
from pypi_store.errors import BadRequestError
from pypi_store.get_backend import get_backend
from pypi_store.logger import logger

from . import package_rbac
from .handlers import (
    DISPATCH_ROUTE_NAME,
    RequestContext,
    download_artifact,
    index_listing,
    legacy_search,
    proxy_lookup,
    redirect_to_normalized,
    upload_artifact,
)
from .package_rbac import OperationType, ProjectRBACDecisionInput
from .utils import ARTIFACT_PATH_PATTERN, INDEX_PATH_PATTERN, infer_project_name_from_path

Handler = Callable[[RequestContext], Awaitable[Response]]

_ANY_PATH = re.compile(r'.*')
_READ_METHODS = frozenset({'GET', 'HEAD'})


@dataclass(frozen=True)
class Rule:
    """Route a request to a handler when method, path and header all match.

    Attributes:
        methods: Accepted HTTP methods.
        path_pattern: Pattern the whole request path must match.
        handler: Handler serving matching requests.
        operation_type: Operation checked against the RBAC hook.
        header: Name of a header to match, or None to ignore headers.
        header_pattern: Pattern the header value must start with.
    """

    methods: frozenset[str]
    path_pattern: re.Pattern[str]
    handler: Handler
    operation_type: OperationType = 'read'
    header: str | None = None
    header_pattern: re.Pattern[str] | None = None

    def matches(self, method: str, path: str, headers: Mapping[str, str]) -> bool:
        if method not in self.methods or self.path_pattern.fullmatch(path) is None:
            return False
        if self.header is None or self.header_pattern is None:
            return True
        value = headers.get(self.header)
        return value is not None and self.header_pattern.match(value) is not None


@dataclass(frozen=True)
class RuleTable:
    """Ordered dispatch rules, the first matching rule wins.

    Attributes:
        rules: The rules, in priority order.
        not_found_methods: Unmatched requests with these methods get
            ``404``, any other unmatched request ``405``.
    """

    rules: tuple[Rule, ...]
    not_found_methods: frozenset[str] = _READ_METHODS

    def select(self, method: str, path: str, headers: Mapping[str, str]) -> Rule:
        """Return the first rule matching the request.

        Raises:
            HTTPException: ``404`` or ``405`` if no rule matches.
        """
        for rule in self.rules:
            if rule.matches(method, path, headers):
                return rule
        if method in self.not_found_methods:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f'{path} not found.')
        raise HTTPException(
            status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
            detail=f'Method {method} not allowed for {path}.',
        )


HOSTED_RULES = RuleTable(
    rules=(
        Rule(
            methods=_READ_METHODS,
            path_pattern=ARTIFACT_PATH_PATTERN,
            handler=download_artifact,
        ),
        Rule(
            methods=frozenset({'POST'}),
            path_pattern=_ANY_PATH,
            handler=upload_artifact,
            operation_type='write',
            header='content-type',
            header_pattern=re.compile(r'multipart/', re.IGNORECASE),
        ),
        Rule(
            methods=frozenset({'POST'}),
            path_pattern=_ANY_PATH,
            handler=legacy_search,
            header='content-type',
            header_pattern=re.compile(r'text/', re.IGNORECASE),
        ),
        Rule(
            methods=frozenset({'GET'}),
            path_pattern=INDEX_PATH_PATTERN,
            handler=index_listing,
        ),
        Rule(
            methods=frozenset({'GET'}),
            path_pattern=_ANY_PATH,
            handler=redirect_to_normalized,
        ),
    ),
)

PROXY_RULES = RuleTable(
    rules=(
        Rule(
            methods=frozenset({'GET'}),
            path_pattern=_ANY_PATH,
            handler=proxy_lookup,
        ),
    ),
)


pypi_router = APIRouter()


@pypi_router.api_route(
    '/{path:path}',
    methods=['GET', 'HEAD', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS'],
    name=DISPATCH_ROUTE_NAME,
    include_in_schema=False,
)
async def dispatch(request: Request, path: str) -> Response:
    """Serve any request below the router by dispatching over the rule table."""
    cfg = PypiStoreConfig.from_env()
    request_path = f'/{path}'
    rule_table = PROXY_RULES if cfg.mode == 'proxy' else HOSTED_RULES
    rule = rule_table.select(request.method, request_path, request.headers)

    await package_rbac.check_and_raise_project_rbac(
        rbac_input=ProjectRBACDecisionInput(
            operation_type=rule.operation_type,
            project_name=infer_project_name_from_path(request_path) if request.method in _READ_METHODS else None,
            request=request,
        ),
    )

    ctx = RequestContext(
        request=request,
        path=request_path,
        config=cfg,
        backend=get_backend(cfg),
    )
    try:
        return await rule.handler(ctx)
    except BadRequestError as e:
        logger.warning(
            'request_rejected',
            extra={
                'request_method': request.method,
                'request_path': request_path,
                'handler': rule.handler.__name__,
                'error': str(e),
            },
        )
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except StorageUnavailableError as e:
        logger.exception(
            'storage_unavailable',
            extra={
                'request_method': request.method,
                'request_path': request_path,
                'operation': e.operation,
                'key': str(e.key),
            },
        )
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e
