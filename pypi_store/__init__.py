from .pypi import pypi_router

__all__ = ['pypi_router']
