from collections.abc import AsyncIterator

import pytest

from pypi_store.errors import (
    MalformedMultipartError,
    MissingBoundaryError,
    NoFileDataError,
    UploadTooLargeError,
)
from pypi_store.pypi.multipart import StagedArtifact, decode_multipart, parse_boundary, read_body
from tests.helpers import UPLOAD_FIELDS, multipart_body, single_chunk

BOUNDARY = 'pypi-store-boundary'


@pytest.mark.parametrize(
    ('content_type', 'expected'),
    [
        ('multipart/form-data; boundary=abc123', b'abc123'),
        ('multipart/form-data; boundary="quoted boundary"', b'quoted boundary'),
        ('multipart/form-data; charset=utf-8; BOUNDARY=upper', b'upper'),
        ('multipart/form-data;boundary=nospace', b'nospace'),
    ],
)
def test_parse_boundary(content_type: str, expected: bytes) -> None:
    assert parse_boundary(content_type) == expected


@pytest.mark.parametrize(
    'content_type',
    [None, 'multipart/form-data', 'multipart/form-data; boundary=', 'multipart/form-data; charset=utf-8'],
)
def test_parse_boundary_missing(content_type: str | None) -> None:
    with pytest.raises(MissingBoundaryError):
        _ = parse_boundary(content_type)


@pytest.mark.asyncio
async def test_read_body_joins_chunks() -> None:
    async def chunks() -> AsyncIterator[bytes]:
        yield b'abc'
        yield b''
        yield b'def'

    assert await read_body(chunks(), max_size=6) == b'abcdef'


@pytest.mark.asyncio
async def test_read_body_too_large() -> None:
    with pytest.raises(UploadTooLargeError) as exc_info:
        _ = await read_body(single_chunk(b'x' * 11), max_size=10)

    assert exc_info.value.max_size == 10  # noqa: PLR2004


def test_decode_multipart_returns_first_file_part() -> None:
    content = b'\x00\x01binary\r\ncontent--with dashes\r\n'
    body = multipart_body(BOUNDARY, 'pkg-0.1.tar.gz', content, fields=UPLOAD_FIELDS)

    artifact = decode_multipart(BOUNDARY.encode(), body)

    assert artifact == StagedArtifact(filename='pkg-0.1.tar.gz', content=content)


def test_decode_multipart_with_preamble_and_later_parts() -> None:
    body = (
        b'this is a preamble\r\n'
        + multipart_body(BOUNDARY, 'first-1.0.zip', b'first', fields=UPLOAD_FIELDS).removesuffix(
            f'--{BOUNDARY}--\r\n'.encode()
        )
        + f'--{BOUNDARY}\r\n'.encode()
        + b'Content-Disposition: form-data; name="other"; filename="second-1.0.zip"\r\n\r\n'
        + b'second\r\n'
        + f'--{BOUNDARY}--\r\n'.encode()
    )

    artifact = decode_multipart(BOUNDARY.encode(), body)

    assert artifact == StagedArtifact(filename='first-1.0.zip', content=b'first')


def test_decode_multipart_part_without_headers() -> None:
    body = (
        f'--{BOUNDARY}\r\n\r\nno headers here\r\n'.encode()
        + multipart_body(BOUNDARY, 'pkg-0.1.tar', b'tar bytes')
    )

    artifact = decode_multipart(BOUNDARY.encode(), body)

    assert artifact.content == b'tar bytes'


def test_decode_multipart_no_file_part() -> None:
    body = multipart_body(BOUNDARY, None, b'not a file', fields=UPLOAD_FIELDS)

    with pytest.raises(NoFileDataError):
        _ = decode_multipart(BOUNDARY.encode(), body)


def test_decode_multipart_no_delimiter() -> None:
    with pytest.raises(NoFileDataError):
        _ = decode_multipart(BOUNDARY.encode(), b'just some bytes')


@pytest.mark.parametrize(
    'body',
    [
        # Body never terminated by a delimiter
        f'--{BOUNDARY}\r\nContent-Disposition: form-data; name="content"; filename="a-1.0.zip"\r\n\r\ntruncated',
        # Header block never terminated
        f'--{BOUNDARY}\r\nContent-Disposition: form-data; name="content"; filename="a-1.0.zip"\r\n',
        # Garbage after the delimiter
        f'--{BOUNDARY}garbage\r\n\r\nbody\r\n--{BOUNDARY}--\r\n',
    ],
)
def test_decode_multipart_malformed(body: str) -> None:
    with pytest.raises(MalformedMultipartError):
        _ = decode_multipart(BOUNDARY.encode(), body.encode())


def test_decode_multipart_filename_only_from_content_disposition() -> None:
    body = (
        f'--{BOUNDARY}\r\n'.encode()
        + b'Content-Disposition: form-data; name="comment"\r\n'
        + b'X-Note: filename="decoy-1.0.zip"\r\n\r\n'
        + b'not a file\r\n'
        + f'--{BOUNDARY}--\r\n'.encode()
    )

    with pytest.raises(NoFileDataError):
        _ = decode_multipart(BOUNDARY.encode(), body)
