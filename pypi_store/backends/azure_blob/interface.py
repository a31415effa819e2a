from collections.abc import Sequence

from azure.core.exceptions import AzureError
from typing_extensions import override

from pypi_store.backends import AbstractBackendInterface, StorageKey
from pypi_store.backends.interface import storage_errors
from pypi_store.config import PypiStoreConfig
from pypi_store.logger import logger

from .azure_blob_utils import azure_blob_container_client, blob_name, blob_prefix
from .config import AzureBlobConfig


class AzureBlobBackend(AbstractBackendInterface):
    """Interface for the azure blob backend."""

    config: AzureBlobConfig

    def __init__(self, config: AzureBlobConfig, general_config: PypiStoreConfig) -> None:
        self.config = config
        super().__init__(general_config=general_config)

    @override
    async def put(self, key: StorageKey, content: bytes) -> None:
        """Upload content as the blob for a key, overwriting any existing blob."""
        with storage_errors('put', key, AzureError):
            async with azure_blob_container_client(config=self.config) as (container_client, base_path):
                _ = await container_client.get_blob_client(blob_name(base_path, key)).upload_blob(
                    data=content,
                    overwrite=True,
                )

    @override
    async def get(self, key: StorageKey) -> bytes | None:
        """Download the blob for a key.

        Returns:
            The blob contents, or None if the blob does not exist.
        """
        with storage_errors('get', key, AzureError):
            async with azure_blob_container_client(config=self.config) as (container_client, base_path):
                blob_client = container_client.get_blob_client(blob_name(base_path, key))
                if not await blob_client.exists():
                    logger.debug(
                        'azure_blob_get_not_found',
                        extra={
                            'key': str(key),
                            'blob_name': blob_client.blob_name,
                        },
                    )
                    return None

                return await (await blob_client.download_blob()).readall()

    @override
    async def exists(self, key: StorageKey) -> bool:
        with storage_errors('exists', key, AzureError):
            async with azure_blob_container_client(config=self.config) as (container_client, base_path):
                return await container_client.get_blob_client(blob_name(base_path, key)).exists()

    @override
    async def move(self, source: StorageKey, destination: StorageKey) -> None:
        """Move a blob by copying its content to the destination and deleting the source."""
        with storage_errors('move', source, AzureError):
            async with azure_blob_container_client(config=self.config) as (container_client, base_path):
                source_client = container_client.get_blob_client(blob_name(base_path, source))
                content = await (await source_client.download_blob()).readall()
                _ = await container_client.get_blob_client(blob_name(base_path, destination)).upload_blob(
                    data=content,
                    overwrite=True,
                )
                await source_client.delete_blob()

    @override
    async def delete(self, key: StorageKey) -> bool:
        """Delete the blob for a key.

        Returns:
            bool: True if the blob was deleted, False if it did not exist.
        """
        with storage_errors('delete', key, AzureError):
            async with azure_blob_container_client(config=self.config) as (container_client, base_path):
                blob_client = container_client.get_blob_client(blob_name(base_path, key))
                if not await blob_client.exists():
                    logger.warning(
                        'azure_blob_delete_not_found',
                        extra={
                            'key': str(key),
                            'blob_name': blob_client.blob_name,
                        },
                    )
                    return False

                await blob_client.delete_blob()
        return True

    @override
    async def list(self, prefix: StorageKey) -> Sequence[StorageKey]:
        """List all blobs below a prefix, skipping hidden keys."""
        if prefix.hidden:
            return []

        with storage_errors('list', prefix, AzureError):
            async with azure_blob_container_client(config=self.config) as (container_client, base_path):
                names = [
                    name
                    async for name in container_client.list_blob_names(
                        name_starts_with=blob_prefix(base_path, prefix),
                    )
                ]

        keys = (StorageKey.from_path(name.removeprefix(base_path)) for name in names)
        return sorted((key for key in keys if not key.hidden), key=lambda k: k.parts)
