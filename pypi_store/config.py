import os
from typing import Literal

from pydantic import BaseModel, PositiveFloat, PositiveInt


class PypiStoreConfig(BaseModel):
    """General configuration for the package index."""

    backend: Literal['localfs', 'azure_blob']
    mode: Literal['hosted', 'proxy'] = 'hosted'
    fallback_enabled: bool = False
    fallback_url: str = 'https://pypi.org/simple/'
    max_upload_bytes: PositiveInt = 512 * 1024 * 1024

    # Pull-through cache settings, only used in proxy mode
    proxy_origin_url: str = 'https://pypi.org/'
    proxy_timeout: PositiveFloat | None = None
    proxy_stale_on_error: bool = False
    proxy_single_flight: bool = False

    @classmethod
    def from_env(cls) -> 'PypiStoreConfig':
        """Create a PypiStoreConfig instance from environment variables."""
        env_dict = {
            'backend': os.getenv('PYPI_STORE_BACKEND', 'localfs'),
            'mode': os.getenv('PYPI_STORE_MODE', 'hosted'),
            'fallback_enabled': os.getenv('PYPI_STORE_FALLBACK_ENABLED', 'false').lower() == 'true',
            'fallback_url': os.getenv('PYPI_STORE_FALLBACK_URL'),
            'max_upload_bytes': os.getenv('PYPI_STORE_MAX_UPLOAD_BYTES'),
            'proxy_origin_url': os.getenv('PYPI_STORE_PROXY_ORIGIN_URL'),
            'proxy_timeout': os.getenv('PYPI_STORE_PROXY_TIMEOUT'),
            'proxy_stale_on_error': os.getenv('PYPI_STORE_PROXY_STALE_ON_ERROR', 'false').lower() == 'true',
            'proxy_single_flight': os.getenv('PYPI_STORE_PROXY_SINGLE_FLIGHT', 'false').lower() == 'true',
        }
        return PypiStoreConfig.model_validate({key: val for key, val in env_dict.items() if val is not None})
