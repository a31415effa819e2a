import secrets
import tempfile
from collections.abc import Iterator
from pathlib import Path

import pytest
from azure.storage.blob import ContainerClient
from docker.errors import DockerException
from pydantic import SecretStr
from testcontainers.azurite import AzuriteContainer  # pyright: ignore[reportMissingTypeStubs]

from pypi_store.backends.azure_blob.config import AzureBlobConfig
from pypi_store.backends.azure_blob.interface import AzureBlobBackend
from pypi_store.backends.localfs.config import LocalFSConfig
from pypi_store.backends.localfs.interface import LocalFSBackend
from pypi_store.config import PypiStoreConfig


@pytest.fixture
def localfs_backend() -> Iterator[LocalFSBackend]:
    """Fixture to set up a local file system backend for testing."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield LocalFSBackend(
            config=LocalFSConfig(
                root_path=Path(temp_dir) / 'pypi_store' / 'localfs-tests',
            ),
            general_config=PypiStoreConfig(backend='localfs'),
        )


@pytest.fixture(scope='session')
def azurite_container() -> Iterator[AzuriteContainer]:
    """Fixture to set up an Azurite container for testing Azure Blob Storage."""
    try:
        container = AzuriteContainer().start()
    except DockerException as e:
        pytest.skip(f'Docker is not available: {e}')

    try:
        yield container
    finally:
        container.stop()


@pytest.fixture
def azure_blob_backend(
    azurite_container: AzuriteContainer,
) -> Iterator[AzureBlobBackend]:
    """Fixture to set up an azure blob backend below a base path of a fresh container."""
    container_name = 'blobtest' + secrets.token_hex(2)
    base_path = 'pypi_store/azureblob_tests/'

    azurite_host = azurite_container.get_container_host_ip()
    azurite_blob_port = azurite_container.get_exposed_port(10000)
    azurite_connection_string = azurite_container.get_connection_string()

    container_client = ContainerClient.from_connection_string(
        conn_str=azurite_connection_string,
        container_name=container_name,
    )
    _ = container_client.create_container()

    yield AzureBlobBackend(
        config=AzureBlobConfig(
            destination_path=f'http://{azurite_host}:{azurite_blob_port}/{container_name}/{base_path}',
            connection_string=SecretStr(azurite_connection_string),
        ),
        general_config=PypiStoreConfig(backend='azure_blob'),
    )

    container_client.delete_container()
