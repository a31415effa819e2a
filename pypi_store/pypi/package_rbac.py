from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal

from fastapi import HTTPException, Request, status

from pypi_store.logger import logger

OperationType = Literal['read', 'write']


@dataclass
class ProjectRBACDecisionInput:
    """Input for project RBAC decision.

    ``project_name`` is inferred from the request path as written, or None
    when the request does not name a project (index root, uploads and
    searches, whose project is only known from the body).
    """

    operation_type: OperationType
    project_name: str | None
    request: Request


class PackageNotAuthorizedException(HTTPException):
    """Exception raised when a caller may not perform an operation on a project.

    Args:
        rbac_input: Input for the RBAC decision function.
    """

    def __init__(self, rbac_input: ProjectRBACDecisionInput) -> None:
        target = f'project {rbac_input.project_name}' if rbac_input.project_name else 'this index'
        detail = f'You do not have permission to {rbac_input.operation_type} {target}.'
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


RBACDecisionFunc = Callable[[ProjectRBACDecisionInput], Awaitable[bool]]


async def _project_decision_noop(
    _: ProjectRBACDecisionInput,
) -> bool:
    """Allow everything."""
    return True


__project_decision_func: RBACDecisionFunc = _project_decision_noop


def get_project_rbac_decision_func() -> RBACDecisionFunc:
    """Get the project RBAC decision function currently in use."""
    return __project_decision_func


def set_project_rbac_decision_func(func: RBACDecisionFunc) -> None:
    """Replace the project RBAC decision function.

    Args:
        func: Async callable returning True when the request is allowed.
    """
    global __project_decision_func  # noqa: PLW0603
    __project_decision_func = func


def reset_project_rbac_decision_func() -> None:
    """Reset the project RBAC decision function to allow everything."""
    set_project_rbac_decision_func(_project_decision_noop)


async def check_and_raise_project_rbac(rbac_input: ProjectRBACDecisionInput) -> None:
    """Ask the decision function about a request and raise if it is denied.

    Args:
        rbac_input: Input for the RBAC decision function.

    Raises:
        PackageNotAuthorizedException: If the decision function denies the request.
    """
    decision = await get_project_rbac_decision_func()(rbac_input)
    if not decision:
        logger.warning(
            'rbac_check_failed',
            extra={
                'operation_type': rbac_input.operation_type,
                'project_name': rbac_input.project_name,
                'request_method': rbac_input.request.method,
                'request_path': rbac_input.request.url.path,
            },
        )
        raise PackageNotAuthorizedException(rbac_input)
