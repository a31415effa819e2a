import os
import re
from typing import Annotated, Literal, cast

from pydantic import BaseModel, Field, SecretStr

# <account url>/<container name>/<optional base path ending in '/'>
_DESTINATION_PATH_PATTERN = re.compile(r'^(https?://[^/]+(?::\d+)?)/([^/]+)/((?:[^/]+/)*)$')


class AzureBlobConfig(BaseModel):
    """Configuration for the azure blob backend.

    ``destination_path`` names the account URL, the container and an optional
    base path, e.g. ``https://<account>.blob.core.windows.net/<container>/pypi/``.
    Every storage key is stored as a blob named ``<base path><key>``.
    """

    destination_path: Annotated[
        str,
        Field(pattern=_DESTINATION_PATH_PATTERN),
    ]
    # Without a connection string the connection_method credential is used
    connection_string: SecretStr | None = None
    connection_method: Literal['default', 'managed_identity'] = 'default'

    @classmethod
    def from_env(cls) -> 'AzureBlobConfig':
        """Create an AzureBlobConfig instance from environment variables."""
        return AzureBlobConfig.model_validate(
            {
                'destination_path': os.getenv('PYPI_STORE_AZURE_BLOB_DESTINATION_PATH'),
                'connection_string': os.getenv('PYPI_STORE_AZURE_BLOB_CONNECTION_STRING'),
                'connection_method': os.getenv('PYPI_STORE_AZURE_BLOB_CONNECTION_METHOD', 'default'),
            }
        )

    def parse_destination_path(self) -> tuple[str, str, str]:
        """Split the destination path into account URL, container name and base path."""
        # The field pattern guarantees a match
        match = cast(
            're.Match[str]',
            _DESTINATION_PATH_PATTERN.match(self.destination_path),
        )
        account_url, container_name, base_path = match.groups()
        return account_url, container_name, base_path
