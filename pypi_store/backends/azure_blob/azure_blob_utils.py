from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from azure.identity.aio import DefaultAzureCredential, ManagedIdentityCredential
from azure.storage.blob.aio import ContainerClient

from pypi_store.backends.interface import StorageKey

from .config import AzureBlobConfig


def blob_name(base_path: str, key: StorageKey) -> str:
    """Return the blob name a storage key is stored under."""
    return f'{base_path}{key}'


def blob_prefix(base_path: str, key: StorageKey) -> str:
    """Return the blob name prefix matching every key below ``key``."""
    return f'{base_path}{key}/' if key.parts else base_path


@asynccontextmanager
async def azure_blob_container_client(
    config: AzureBlobConfig,
) -> AsyncIterator[tuple[ContainerClient, str]]:
    """Open a container client for the configured destination.

    Yields:
        The container client and the base path blob names are prefixed with.
    """
    account_url, container_name, base_path = config.parse_destination_path()
    if config.connection_string:
        async with ContainerClient.from_connection_string(
            conn_str=config.connection_string.get_secret_value(),
            container_name=container_name,
        ) as client:
            yield client, base_path
            return

    credential = (
        ManagedIdentityCredential() if config.connection_method == 'managed_identity' else DefaultAzureCredential()
    )
    async with (
        credential,
        ContainerClient(
            account_url=account_url,
            container_name=container_name,
            credential=credential,
        ) as client,
    ):
        yield client, base_path
