from .router import pypi_router
from .utils import parse_filename, pypi_normalize

__all__ = [
    'parse_filename',
    'pypi_normalize',
    'pypi_router',
]
