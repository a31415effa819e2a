from collections.abc import Sequence
from pathlib import Path

import aiofiles
import aioshutil
from aiofiles import os as aiofiles_os
from typing_extensions import override

from pypi_store.backends import AbstractBackendInterface, StorageKey
from pypi_store.backends.interface import storage_errors
from pypi_store.config import PypiStoreConfig
from pypi_store.logger import logger

from .config import LocalFSConfig


class LocalFSBackend(AbstractBackendInterface):
    """Interface for the local file system backend.

    Each key maps to a file below ``config.root_path``; key segments become
    directories.
    """

    config: LocalFSConfig

    def __init__(self, config: LocalFSConfig, general_config: PypiStoreConfig) -> None:
        self.config = config
        super().__init__(general_config=general_config)

    def _path(self, key: StorageKey) -> Path:
        return self.config.root_path.joinpath(*key.parts)

    @override
    async def put(self, key: StorageKey, content: bytes) -> None:
        """Write content to the file for a key, creating parent directories."""
        file_path = self._path(key)
        with storage_errors('put', key, OSError):
            await aiofiles_os.makedirs(file_path.parent, exist_ok=True)
            async with aiofiles.open(file_path, 'wb') as f:
                _ = await f.write(content)

    @override
    async def get(self, key: StorageKey) -> bytes | None:
        """Read the file for a key.

        Returns:
            The file contents, or None if the file does not exist.
        """
        file_path = self._path(key)
        with storage_errors('get', key, OSError):
            if not await aiofiles_os.path.isfile(file_path):
                logger.debug(
                    'localfs_get_not_found',
                    extra={
                        'key': str(key),
                        'file_path': str(file_path),
                    },
                )
                return None

            async with aiofiles.open(file_path, mode='rb') as f:
                return await f.read()

    @override
    async def exists(self, key: StorageKey) -> bool:
        with storage_errors('exists', key, OSError):
            return await aiofiles_os.path.isfile(self._path(key))

    @override
    async def move(self, source: StorageKey, destination: StorageKey) -> None:
        """Move a file to the path of another key, replacing any file there."""
        destination_path = self._path(destination)
        with storage_errors('move', source, OSError):
            await aiofiles_os.makedirs(destination_path.parent, exist_ok=True)
            _ = await aioshutil.move(self._path(source), destination_path)

    @override
    async def delete(self, key: StorageKey) -> bool:
        """Delete the file for a key.

        Returns:
            bool: True if the file was deleted, False if it did not exist.
        """
        file_path = self._path(key)
        with storage_errors('delete', key, OSError):
            if not await aiofiles_os.path.isfile(file_path):
                logger.warning(
                    'localfs_delete_not_found',
                    extra={
                        'key': str(key),
                        'file_path': str(file_path),
                    },
                )
                return False

            await aiofiles_os.remove(file_path)
        return True

    @override
    async def list(self, prefix: StorageKey) -> Sequence[StorageKey]:
        """List all files below the directory for a prefix.

        Dot-prefixed files and directories are skipped.
        """
        if prefix.hidden:
            return []

        keys: list[StorageKey] = []
        with storage_errors('list', prefix, OSError):
            if not await aiofiles_os.path.isdir(self._path(prefix)):
                return []

            pending = [prefix]
            while pending:
                current = pending.pop()
                for entry in await aiofiles_os.scandir(self._path(current)):
                    if entry.name.startswith('.'):
                        continue
                    if entry.is_dir():
                        pending.append(current.joinpath(entry.name))
                    elif entry.is_file():
                        keys.append(current.joinpath(entry.name))

        return sorted(keys, key=lambda k: k.parts)
