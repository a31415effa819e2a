from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass

from pypi_store.config import PypiStoreConfig
from pypi_store.errors import BadRequestError, PypiStoreError

_FORBIDDEN_SEGMENTS = frozenset({'', '.', '..'})


@dataclass(frozen=True)
class StorageKey:
    """Key of an object in the backing store, as ordered path segments.

    Segments can not be empty, ``.`` or ``..`` and can not contain path
    separators, so a key never escapes the store root.
    """

    parts: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        for part in self.parts:
            if part in _FORBIDDEN_SEGMENTS or '/' in part or '\\' in part:
                raise InvalidStorageKeyError(part)

    @classmethod
    def from_path(cls, path: str) -> 'StorageKey':
        """Create a key from a slash separated path, ignoring empty segments."""
        return cls(tuple(part for part in path.split('/') if part))

    def joinpath(self, *parts: str) -> 'StorageKey':
        """Return a new key with the given segments appended."""
        return StorageKey((*self.parts, *parts))

    @property
    def name(self) -> str:
        """The last segment of the key, or an empty string for the root key."""
        return self.parts[-1] if self.parts else ''

    @property
    def hidden(self) -> bool:
        """Whether any segment is a dotfile, e.g. the upload scratch area."""
        return any(part.startswith('.') for part in self.parts)

    def relative_to(self, prefix: 'StorageKey') -> tuple[str, ...]:
        """Return the segments of this key below ``prefix``."""
        if self.parts[: len(prefix.parts)] != prefix.parts:
            msg = f'{self} is not below {prefix}'
            raise ValueError(msg)
        return self.parts[len(prefix.parts) :]

    def __str__(self) -> str:
        return '/'.join(self.parts)


class InvalidStorageKeyError(BadRequestError, ValueError):
    """Raised when a storage key segment would escape its parent.

    Attributes:
        segment: The rejected segment.
    """

    segment: str

    def __init__(self, segment: str) -> None:
        super().__init__(f'Invalid storage key segment {segment!r}.')
        self.segment = segment


class StorageUnavailableError(PypiStoreError):
    """Raised when the backing store fails an I/O operation.

    Attributes:
        operation: The backend operation that failed.
        key: The key the operation was applied to.
    """

    operation: str
    key: StorageKey

    def __init__(self, operation: str, key: StorageKey) -> None:
        super().__init__(f'Storage operation {operation} failed for key {key}.')
        self.operation = operation
        self.key = key


@contextmanager
def storage_errors(
    operation: str,
    key: StorageKey,
    *error_types: type[BaseException],
) -> Iterator[None]:
    """Translate backend specific I/O errors into StorageUnavailableError.

    Args:
        operation: Name of the backend operation, used in the message.
        key: The key being operated on.
        error_types: The backend's native error types.
    """
    try:
        yield
    except error_types as e:
        raise StorageUnavailableError(operation=operation, key=key) from e


class AbstractBackendInterface(ABC):
    """Abstract base class for backend interfaces.

    This class defines the key/value contract the package index relies on:
    put, get, exists, move, delete and recursive listing by prefix.

    Attributes:
        general_config: General pypi_store configuration.
    """

    general_config: PypiStoreConfig

    def __init__(self, *, general_config: PypiStoreConfig) -> None:
        """Initialize the backend interface.

        Args:
            general_config: General pypi_store configuration.
        """
        self.general_config = general_config

    @abstractmethod
    async def put(self, key: StorageKey, content: bytes) -> None:
        """Store content under a key, replacing any existing value.

        Args:
            key: The key to write.
            content: The bytes to store.
        """

    @abstractmethod
    async def get(self, key: StorageKey) -> bytes | None:
        """Get the content stored under a key.

        Args:
            key: The key to read.

        Returns:
            The stored bytes, or None if the key does not exist.
        """

    @abstractmethod
    async def exists(self, key: StorageKey) -> bool:
        """Check whether a value is stored under a key.

        Args:
            key: The key to check.
        """

    @abstractmethod
    async def move(self, source: StorageKey, destination: StorageKey) -> None:
        """Move a value to another key, replacing any value stored there.

        Args:
            source: The key to move from. It no longer exists afterwards.
            destination: The key to move to.
        """

    @abstractmethod
    async def delete(self, key: StorageKey) -> bool:
        """Delete the value stored under a key.

        Args:
            key: The key to delete.

        Returns:
            bool: True if a value was deleted, False if none existed.
        """

    @abstractmethod
    async def list(self, prefix: StorageKey) -> Sequence[StorageKey]:
        """List all keys below a prefix, recursively.

        Hidden keys (see StorageKey.hidden) are never returned.

        Args:
            prefix: The key prefix to list.

        Returns:
            A sorted sequence of keys.
        """
