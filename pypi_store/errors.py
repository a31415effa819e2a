class PypiStoreError(Exception):
    """Base class for all errors raised by pypi_store."""


class BadRequestError(PypiStoreError):
    """Base class for errors caused by the client's request.

    These are surfaced to the client as ``400 Bad Request``.
    """


class InvalidNameError(BadRequestError, ValueError):
    """Raised when a project name contains characters outside ``[A-Za-z0-9._-]``.

    Attributes:
        name: The rejected name.
    """

    name: str

    def __init__(self, name: str) -> None:
        super().__init__(f'Invalid project name {name!r}.')
        self.name = name


class InvalidFilenameError(BadRequestError, ValueError):
    """Raised when a filename matches neither the archive nor the wheel grammar.

    Attributes:
        filename: The rejected filename.
    """

    filename: str

    def __init__(self, filename: str) -> None:
        super().__init__(
            f'Invalid distribution filename {filename!r}, expected <name>-<version>.<ext> '
            'or <name>-<version>(-<build>)?-<pytag>-<abitag>-<platformtag>.whl.',
        )
        self.filename = filename


class MultipartError(BadRequestError):
    """Base class for malformed ``multipart/form-data`` requests."""


class MissingBoundaryError(MultipartError):
    """Raised when the request has no ``Content-Type`` boundary parameter."""

    def __init__(self, content_type: str | None) -> None:
        super().__init__(f'Boundary not specified in Content-Type {content_type!r}.')


class NoFileDataError(MultipartError):
    """Raised when no part of the multipart body carries a filename."""

    def __init__(self) -> None:
        super().__init__('Body has no file data.')


class MalformedMultipartError(MultipartError):
    """Raised when the multipart body is truncated or structurally invalid."""


class UploadTooLargeError(MultipartError):
    """Raised when the request body exceeds the configured upload size.

    Attributes:
        max_size: The maximum accepted body size in bytes.
    """

    max_size: int

    def __init__(self, max_size: int) -> None:
        super().__init__(f'Upload exceeds the maximum size of {max_size} bytes.')
        self.max_size = max_size


class ArchiveError(BadRequestError):
    """Base class for errors while reading package metadata from an archive."""


class UnsupportedArchiveTypeError(ArchiveError):
    """Raised when the filename suffix is not a supported archive format.

    Attributes:
        filename: The filename with the unsupported suffix.
    """

    filename: str

    def __init__(self, filename: str) -> None:
        super().__init__(f'Unsupported archive type for {filename!r}.')
        self.filename = filename


class ArchiveParseFailedError(ArchiveError):
    """Raised when an archive cannot be decompressed or read.

    The original error is available as ``__cause__``.
    """

    def __init__(self, filename: str) -> None:
        super().__init__(f'Failed to parse python package {filename!r}.')


class MetadataNotFoundError(ArchiveError):
    """Raised when an archive holds no ``PKG-INFO`` or ``METADATA`` entry."""

    def __init__(self, filename: str) -> None:
        super().__init__(f'Package metadata file not found in {filename!r}.')


class MetadataFieldNotFoundError(ArchiveError):
    """Raised when the metadata record lacks a required header.

    Attributes:
        field: The missing header name.
    """

    field: str

    def __init__(self, field: str) -> None:
        super().__init__(f'Invalid metadata file, header {field} not found.')
        self.field = field


class FilenameMetadataMismatchError(BadRequestError):
    """Raised when the uploaded filename disagrees with the embedded metadata."""

    def __init__(self, filename: str, name: str, version: str) -> None:
        super().__init__(
            f'Filename {filename!r} does not match metadata (name={name!r}, version={version!r}).',
        )


class UploadStorageError(BadRequestError):
    """Raised when staging or committing an upload fails in the backing store."""


class OriginUnavailableError(PypiStoreError):
    """Raised when the upstream index cannot be reached.

    Attributes:
        request_line: The request that was sent to the origin.
    """

    request_line: str

    def __init__(self, request_line: str) -> None:
        super().__init__(f'Origin request {request_line!r} failed.')
        self.request_line = request_line


class InvalidSearchQueryError(BadRequestError):
    """Raised when a legacy search request is not a usable XML-RPC call."""
