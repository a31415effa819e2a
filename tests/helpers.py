import bz2
import gzip
import io
import tarfile
import zipfile
from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from typing_extensions import override

from pypi_store.backends import AbstractBackendInterface, StorageKey
from pypi_store.config import PypiStoreConfig

# "compress" magic, then block mode with 16 bit codes at most
_LZW_HEADER = b'\x1f\x9d\x90'
_LZW_MAX_BITS = 16


def metadata_record(name: str, version: str) -> bytes:
    """Build a minimal ``PKG-INFO``/``METADATA`` record."""
    return f'Metadata-Version: 2.1\nName: {name}\nVersion: {version}\nSummary: A test project\n'.encode()


def build_zip(entries: Mapping[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w') as archive:
        for entry_name, content in entries.items():
            archive.writestr(entry_name, content)
    return buffer.getvalue()


def build_zip_with_compress_type(entry_name: str, content: bytes, compress_type: int) -> bytes:
    """Build a single member zip whose compression method is rewritten to ``compress_type``."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w', compression=zipfile.ZIP_STORED) as archive:
        archive.writestr(entry_name, content)

    # The method lives in both the local and the central directory header
    raw = bytearray(buffer.getvalue())
    local_method = raw.index(b'PK\x03\x04') + 8
    central_method = raw.index(b'PK\x01\x02') + 10
    raw[local_method : local_method + 2] = compress_type.to_bytes(2, 'little')
    raw[central_method : central_method + 2] = compress_type.to_bytes(2, 'little')
    return bytes(raw)


def build_tar(entries: Mapping[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode='w') as archive:
        for entry_name, content in entries.items():
            info = tarfile.TarInfo(entry_name)
            info.size = len(content)
            archive.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


def lzw_compress(data: bytes) -> bytes:
    """Encode data in the ``compress`` (``.Z``) format using literal codes only.

    The decoder grows the code width as its table fills, one entry per code
    after the first, so the encoder widens codes at the same positions. Each
    width is used for a power of two number of codes, which keeps every
    width change on the byte boundary the format requires.
    """
    out = bytearray(_LZW_HEADER)
    acc = 0
    acc_bits = 0
    width = 9
    next_widening = 256
    codes_at_width = 512

    for index, byte in enumerate(data):
        if index == next_widening and width < _LZW_MAX_BITS:
            width += 1
            next_widening += codes_at_width
            codes_at_width *= 2
        acc |= byte << acc_bits
        acc_bits += width
        while acc_bits >= 8:  # noqa: PLR2004
            out.append(acc & 0xFF)
            acc >>= 8
            acc_bits -= 8

    if acc_bits:
        out.append(acc & 0xFF)
    return bytes(out)


@dataclass(frozen=True)
class DistributionFixture:
    """A distribution file and the metadata embedded in it."""

    filename: str
    content: bytes


def build_distribution(filename: str, name: str, version: str) -> DistributionFixture:
    """Build a distribution archive for any supported suffix.

    Source distributions carry ``<name>-<version>/PKG-INFO``, wheels and eggs
    a ``METADATA`` record in their metadata directory.
    """
    record = metadata_record(name, version)
    if filename.endswith('.whl'):
        content = build_zip({f'{name}-{version}.dist-info/METADATA': record, f'{name}/__init__.py': b''})
    elif filename.endswith('.egg'):
        content = build_zip({'EGG-INFO/PKG-INFO': record})
    elif filename.endswith('.zip'):
        content = build_zip({f'{name}-{version}/PKG-INFO': record})
    else:
        tar = build_tar({f'{name}-{version}/PKG-INFO': record, f'{name}-{version}/setup.py': b''})
        if filename.endswith('.tar.gz'):
            content = gzip.compress(tar)
        elif filename.endswith('.tar.bz2'):
            content = bz2.compress(tar)
        elif filename.endswith('.tar.Z'):
            content = lzw_compress(tar)
        else:
            content = tar
    return DistributionFixture(filename=filename, content=content)


def multipart_body(
    boundary: str,
    filename: str | None,
    content: bytes,
    fields: Sequence[tuple[str, str]] = (),
) -> bytes:
    """Build a ``multipart/form-data`` body the way publishing tools send it.

    Plain form fields come first, then the file part named ``content``. With
    ``filename=None`` the file part carries no filename.
    """
    delimiter = f'--{boundary}'.encode()
    body = bytearray()
    for name, value in fields:
        body += delimiter + b'\r\n'
        body += f'Content-Disposition: form-data; name="{name}"\r\n\r\n'.encode()
        body += value.encode() + b'\r\n'

    disposition = 'form-data; name="content"'
    if filename is not None:
        disposition += f'; filename="{filename}"'
    body += delimiter + b'\r\n'
    body += f'Content-Disposition: {disposition}\r\n'.encode()
    body += b'Content-Type: application/octet-stream\r\n\r\n'
    body += content + b'\r\n'
    body += delimiter + b'--\r\n'
    return bytes(body)


UPLOAD_FIELDS = (
    (':action', 'file_upload'),
    ('protocol_version', '1'),
    ('metadata_version', '2.1'),
)


async def single_chunk(body: bytes) -> AsyncIterator[bytes]:
    """Async body stream yielding the whole body at once."""
    yield body


@dataclass
class InMemoryBackend(AbstractBackendInterface):
    """Dictionary backed store used to observe what the pipeline writes."""

    objects: dict[StorageKey, bytes] = field(default_factory=dict)
    general_config: PypiStoreConfig = field(default_factory=lambda: PypiStoreConfig(backend='localfs'))

    @override
    async def put(self, key: StorageKey, content: bytes) -> None:
        self.objects[key] = content

    @override
    async def get(self, key: StorageKey) -> bytes | None:
        return self.objects.get(key)

    @override
    async def exists(self, key: StorageKey) -> bool:
        return key in self.objects

    @override
    async def move(self, source: StorageKey, destination: StorageKey) -> None:
        self.objects[destination] = self.objects.pop(source)

    @override
    async def delete(self, key: StorageKey) -> bool:
        return self.objects.pop(key, None) is not None

    @override
    async def list(self, prefix: StorageKey) -> Sequence[StorageKey]:
        keys = [
            key
            for key in self.objects
            if len(key.parts) > len(prefix.parts) and key.parts[: len(prefix.parts)] == prefix.parts and not key.hidden
        ]
        return sorted(keys, key=lambda k: k.parts)


def store_file(root_path: Path, key: str, content: bytes = b'') -> None:
    """Write a file into a local file system backend root."""
    file_path = root_path / key
    file_path.parent.mkdir(parents=True, exist_ok=True)
    _ = file_path.write_bytes(content)
