from .backends import AbstractBackendInterface
from .config import PypiStoreConfig


def get_backend(general_config: PypiStoreConfig) -> AbstractBackendInterface:
    """Build the storage backend selected by an already parsed configuration.

    Only the backend specific settings are read from the environment.
    """
    if general_config.backend == 'localfs':
        from pypi_store.backends.localfs.config import LocalFSConfig
        from pypi_store.backends.localfs.interface import LocalFSBackend

        return LocalFSBackend(
            config=LocalFSConfig.from_env(),
            general_config=general_config,
        )
    if general_config.backend == 'azure_blob':
        from pypi_store.backends.azure_blob.config import AzureBlobConfig
        from pypi_store.backends.azure_blob.interface import AzureBlobBackend

        return AzureBlobBackend(
            config=AzureBlobConfig.from_env(),
            general_config=general_config,
        )

    msg = f"Backend '{general_config.backend}' is not implemented."
    raise NotImplementedError(msg)
