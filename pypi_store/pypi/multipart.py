"""Extraction of the uploaded file from a ``multipart/form-data`` request body.

Publishing tools (twine, uv, poetry) send the distribution as one file part
next to a number of plain form fields. Only the first part that carries a
``filename`` is of interest; everything after it is ignored.

The body is buffered in full before it is handed to python-multipart's
callback parser, bounded by a maximum size.
"""

import enum
from collections.abc import AsyncIterable
from dataclasses import dataclass, field

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from pypi_store.errors import (
    MalformedMultipartError,
    MissingBoundaryError,
    NoFileDataError,
    UploadTooLargeError,
)


@dataclass(frozen=True)
class StagedArtifact:
    """The file part of an upload: its declared filename and raw bytes."""

    filename: str
    content: bytes


class _ScanState(enum.Enum):
    PREAMBLE = enum.auto()
    HEADERS = enum.auto()
    BODY = enum.auto()
    DONE = enum.auto()


def parse_boundary(content_type: str | None) -> bytes:
    """Read the ``boundary`` parameter of a ``Content-Type`` header value.

    Parameter names are matched case-insensitively and the value may be
    quoted.

    Args:
        content_type: The raw header value, or None if the header is absent.

    Returns:
        The boundary as bytes.

    Raises:
        MissingBoundaryError: If the header or its boundary parameter is missing.
    """
    _, options = parse_options_header(content_type)
    boundary = options.get(b'boundary')
    if not boundary:
        raise MissingBoundaryError(content_type)
    return boundary


async def read_body(stream: AsyncIterable[bytes], max_size: int) -> bytes:
    """Materialize a request body stream.

    Args:
        stream: The body chunks, e.g. ``Request.stream()``.
        max_size: The maximum number of bytes accepted.

    Raises:
        UploadTooLargeError: If the body is larger than ``max_size``.
    """
    body = bytearray()
    async for chunk in stream:
        body.extend(chunk)
        if len(body) > max_size:
            raise UploadTooLargeError(max_size)
    return bytes(body)


@dataclass
class _FirstFilePart:
    """Parser callbacks that keep the first part carrying a filename."""

    state: _ScanState = _ScanState.PREAMBLE
    header_field: bytearray = field(default_factory=bytearray)
    header_value: bytearray = field(default_factory=bytearray)
    filename: str | None = None
    data: bytearray = field(default_factory=bytearray)
    artifact: StagedArtifact | None = None

    def callbacks(self) -> dict:
        return {
            'on_part_begin': self.on_part_begin,
            'on_header_field': self.on_header_field,
            'on_header_value': self.on_header_value,
            'on_header_end': self.on_header_end,
            'on_headers_finished': self.on_headers_finished,
            'on_part_data': self.on_part_data,
            'on_part_end': self.on_part_end,
            'on_end': self.on_end,
        }

    def on_part_begin(self) -> None:
        self.state = _ScanState.HEADERS
        self.filename = None
        self.data.clear()

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self.header_field += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self.header_value += data[start:end]

    def on_header_end(self) -> None:
        if bytes(self.header_field).strip().lower() == b'content-disposition':
            _, options = parse_options_header(bytes(self.header_value))
            if b'filename' in options:
                self.filename = options[b'filename'].decode('utf-8', errors='replace')
        self.header_field.clear()
        self.header_value.clear()

    def on_headers_finished(self) -> None:
        self.state = _ScanState.BODY

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        if self.filename is not None and self.artifact is None:
            self.data += data[start:end]

    def on_part_end(self) -> None:
        if self.filename is not None and self.artifact is None:
            self.artifact = StagedArtifact(filename=self.filename, content=bytes(self.data))
        self.state = _ScanState.HEADERS

    def on_end(self) -> None:
        self.state = _ScanState.DONE


def _skip_preamble(delimiter: bytes, body: bytes) -> bytes:
    # The first delimiter is at the very start or after a line break
    if body.startswith(delimiter):
        return body
    start = body.find(b'\r\n' + delimiter)
    if start == -1:
        raise NoFileDataError
    return body[start + 2 :]


def decode_multipart(boundary: bytes, body: bytes) -> StagedArtifact:
    """Return the first file part of a multipart body.

    Args:
        boundary: The boundary from the request's ``Content-Type``.
        body: The complete request body.

    Returns:
        The filename and the verbatim content of the first part whose
        ``Content-Disposition`` carries a ``filename`` attribute.

    Raises:
        NoFileDataError: If no part carries a filename.
        MalformedMultipartError: If a part is truncated or unterminated.
    """
    collector = _FirstFilePart()
    parser = MultipartParser(boundary, collector.callbacks())
    try:
        parser.write(_skip_preamble(b'--' + boundary, body))
        parser.finalize()
    except MultipartParseError as e:
        # Anything after a complete file part is of no interest
        if collector.artifact is not None:
            return collector.artifact
        raise MalformedMultipartError(str(e)) from e

    if collector.artifact is not None:
        return collector.artifact
    if collector.state is not _ScanState.DONE:
        msg = f'Multipart body ended while reading {collector.state.name.lower()}.'
        raise MalformedMultipartError(msg)
    raise NoFileDataError
