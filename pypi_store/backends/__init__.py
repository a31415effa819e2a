from .interface import (
    AbstractBackendInterface,
    InvalidStorageKeyError,
    StorageKey,
    StorageUnavailableError,
)

__all__ = [
    'AbstractBackendInterface',
    'InvalidStorageKeyError',
    'StorageKey',
    'StorageUnavailableError',
]
