"""Package metadata extraction from distribution archives.

Source distributions carry a ``PKG-INFO`` record, wheels and eggs a
``METADATA`` record. Both are RFC 822 style header blocks parsed with
``pkginfo``; only the ``Name`` and ``Version`` fields are used.
"""

import bz2
import enum
import gzip
import io
import tarfile
import zipfile
import zlib
from dataclasses import dataclass

from pkginfo import Distribution
from unlzw3 import unlzw

from pypi_store.errors import (
    ArchiveParseFailedError,
    MetadataFieldNotFoundError,
    MetadataNotFoundError,
    UnsupportedArchiveTypeError,
)
from pypi_store.logger import logger

_METADATA_ENTRY_NAMES = ('PKG-INFO', 'METADATA')
_SUPPORTED_ZIP_COMPRESSION = frozenset(
    {zipfile.ZIP_STORED, zipfile.ZIP_DEFLATED, zipfile.ZIP_BZIP2, zipfile.ZIP_LZMA},
)
# Raised by the decompressors and archive readers on corrupt input
_READ_ERRORS = (
    OSError,
    EOFError,
    ValueError,
    NotImplementedError,
    zlib.error,
    zipfile.BadZipFile,
    tarfile.TarError,
)


@dataclass(frozen=True)
class PackageMetadata:
    """Name and version declared in a package's metadata record."""

    name: str
    version: str

    @classmethod
    def from_record(cls, record: str) -> 'PackageMetadata':
        """Parse the ``Name`` and ``Version`` fields of a metadata record.

        Raises:
            MetadataFieldNotFoundError: If either field is missing or empty.
        """
        distribution = Distribution()
        distribution.parse(record)
        name = (distribution.name or '').strip()
        if not name:
            raise MetadataFieldNotFoundError('Name')
        version = (distribution.version or '').strip()
        if not version:
            raise MetadataFieldNotFoundError('Version')
        return cls(name=name, version=version)


class Container(enum.Enum):
    """The archive layout found once the outer compression is removed."""

    ZIP = 'zip'
    TAR = 'tar'
    # Plain .tar uploads are read as whatever their content turns out to be
    SNIFF = 'sniff'


class ArchiveFormat(enum.Enum):
    """Supported distribution archive formats, keyed by filename suffix."""

    TAR = ('.tar', Container.SNIFF)
    ZIP = ('.zip', Container.ZIP)
    WHEEL = ('.whl', Container.ZIP)
    EGG = ('.egg', Container.ZIP)
    TAR_GZ = ('.tar.gz', Container.TAR)
    TAR_Z = ('.tar.Z', Container.TAR)
    TAR_BZ2 = ('.tar.bz2', Container.TAR)

    def __init__(self, suffix: str, container: Container) -> None:
        self.suffix = suffix
        self.container = container

    @classmethod
    def from_filename(cls, filename: str) -> 'ArchiveFormat':
        """Select the format by filename suffix.

        Raises:
            UnsupportedArchiveTypeError: If no supported suffix matches.
        """
        for archive_format in cls:
            if filename.endswith(archive_format.suffix):
                return archive_format
        raise UnsupportedArchiveTypeError(filename)

    def decompress(self, content: bytes) -> bytes:
        """Undo the outer compression layer, yielding a zip or tar archive."""
        if self is ArchiveFormat.TAR_GZ:
            return gzip.decompress(content)
        if self is ArchiveFormat.TAR_Z:
            return unlzw(content)
        if self is ArchiveFormat.TAR_BZ2:
            return bz2.decompress(content)
        return content


def _scan_zip(archive: zipfile.ZipFile) -> str | None:
    for info in archive.infolist():
        # Encrypted members and unknown compression methods can not be read
        if info.is_dir() or info.flag_bits & 0x1 or info.compress_type not in _SUPPORTED_ZIP_COMPRESSION:
            continue
        if any(name in info.filename for name in _METADATA_ENTRY_NAMES):
            return archive.read(info).decode('utf-8', errors='replace')
    return None


def _scan_tar(archive: tarfile.TarFile) -> str | None:
    for member in archive:
        if not member.isfile():
            continue
        if any(name in member.name for name in _METADATA_ENTRY_NAMES):
            entry = archive.extractfile(member)
            if entry is None:
                continue
            with entry:
                return entry.read().decode('utf-8', errors='replace')
    return None


def _find_metadata_record(archive_bytes: bytes, container: Container) -> str | None:
    buffer = io.BytesIO(archive_bytes)
    tar_mode = 'r:'
    if container is Container.SNIFF:
        container = Container.ZIP if zipfile.is_zipfile(buffer) else Container.TAR
        tar_mode = 'r:*'
        buffer.seek(0)
    if container is Container.ZIP:
        with zipfile.ZipFile(buffer) as archive:
            return _scan_zip(archive)
    with tarfile.open(fileobj=buffer, mode=tar_mode) as archive:
        return _scan_tar(archive)


def read_package_metadata(content: bytes, filename: str) -> PackageMetadata:
    """Read the package name and version embedded in a distribution archive.

    This is blocking, CPU bound work; async callers should run it in a
    worker thread.

    Args:
        content: The raw archive bytes.
        filename: The declared filename, used to select the archive format.

    Returns:
        The metadata declared by the first ``PKG-INFO`` or ``METADATA`` entry.

    Raises:
        UnsupportedArchiveTypeError: If the filename suffix is not supported.
        ArchiveParseFailedError: If the archive can not be decompressed or read.
        MetadataNotFoundError: If the archive has no metadata record.
        MetadataFieldNotFoundError: If the record lacks a name or version.
    """
    archive_format = ArchiveFormat.from_filename(filename)
    try:
        record = _find_metadata_record(archive_format.decompress(content), archive_format.container)
    except _READ_ERRORS as e:
        logger.warning(
            'archive_parse_failed',
            extra={
                'file_name': filename,
                'archive_format': archive_format.name,
                'error': repr(e),
            },
        )
        raise ArchiveParseFailedError(filename) from e

    if record is None:
        raise MetadataNotFoundError(filename)
    return PackageMetadata.from_record(record)
