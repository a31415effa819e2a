"""Upload intake: decode, stage, extract metadata, validate, commit.

An upload is first written to a scratch key below ``.upload/`` so that a
rejected upload never becomes visible in the index. The scratch key is
removed on every exit path that does not end in a successful move to the
final key.
"""

import uuid
from collections.abc import AsyncIterable, Awaitable, Callable
from contextlib import AsyncExitStack

from starlette.concurrency import run_in_threadpool

from pypi_store.backends import AbstractBackendInterface, StorageKey, StorageUnavailableError
from pypi_store.errors import FilenameMetadataMismatchError, UploadStorageError
from pypi_store.logger import logger

from .archive import PackageMetadata, read_package_metadata
from .multipart import StagedArtifact, decode_multipart, parse_boundary, read_body
from .utils import parse_filename, pypi_normalize

SCRATCH_PREFIX = StorageKey(('.upload',))


def validate_filename(filename: str, metadata: PackageMetadata) -> None:
    """Check that a distribution filename agrees with its embedded metadata.

    Names are compared after normalization, versions literally.

    Raises:
        InvalidFilenameError: If the filename does not match its grammar.
        InvalidNameError: If either name is not a valid project name.
        FilenameMetadataMismatchError: If name or version disagree.
    """
    descriptor = parse_filename(filename)
    if (
        pypi_normalize(descriptor.name) != pypi_normalize(metadata.name)
        or descriptor.version != metadata.version
    ):
        raise FilenameMetadataMismatchError(
            filename=filename,
            name=metadata.name,
            version=metadata.version,
        )


class UploadPipeline:
    """Accept one uploaded distribution into the backing store.

    Attributes:
        backend: The backing store.
        max_upload_bytes: The largest request body accepted.
    """

    backend: AbstractBackendInterface
    max_upload_bytes: int

    def __init__(self, backend: AbstractBackendInterface, *, max_upload_bytes: int) -> None:
        self.backend = backend
        self.max_upload_bytes = max_upload_bytes

    async def run(
        self,
        routing_base: StorageKey,
        content_type: str | None,
        body: AsyncIterable[bytes],
    ) -> StorageKey:
        """Run the pipeline for one request.

        Args:
            routing_base: Key prefix the project directory is created under.
            content_type: The request's ``Content-Type`` header value.
            body: The request body stream.

        Returns:
            The key the distribution was committed to,
            ``<routing base>/<normalized project name>/<filename>``.

        Raises:
            BadRequestError: If the upload is rejected at any step.
        """
        boundary = parse_boundary(content_type)
        artifact = decode_multipart(boundary, await read_body(body, self.max_upload_bytes))
        scratch_key = SCRATCH_PREFIX.joinpath(uuid.uuid4().hex)

        async with AsyncExitStack() as rollback:
            await self._guard_storage('stage', lambda: self.backend.put(scratch_key, artifact.content))
            rollback.push_async_callback(self._discard, scratch_key)

            metadata = await run_in_threadpool(read_package_metadata, artifact.content, artifact.filename)
            validate_filename(artifact.filename, metadata)

            final_key = routing_base.joinpath(pypi_normalize(metadata.name), artifact.filename)
            await self._guard_storage('commit', lambda: self.backend.move(scratch_key, final_key))
            # The scratch key no longer exists once the move succeeded
            _ = rollback.pop_all()

        self._log_committed(artifact, metadata, final_key)
        return final_key

    async def _guard_storage(self, step: str, operation: Callable[[], Awaitable[None]]) -> None:
        try:
            await operation()
        except StorageUnavailableError as e:
            logger.exception(
                'upload_storage_failed',
                extra={
                    'step': step,
                    'key': str(e.key),
                },
            )
            msg = f'Failed to {step} the upload.'
            raise UploadStorageError(msg) from e

    async def _discard(self, scratch_key: StorageKey) -> None:
        try:
            _ = await self.backend.delete(scratch_key)
        except StorageUnavailableError:
            logger.exception(
                'upload_scratch_cleanup_failed',
                extra={
                    'key': str(scratch_key),
                },
            )

    @staticmethod
    def _log_committed(artifact: StagedArtifact, metadata: PackageMetadata, key: StorageKey) -> None:
        logger.info(
            'upload_committed',
            extra={
                'project_name': metadata.name,
                'version': metadata.version,
                'file_name': artifact.filename,
                'key': str(key),
                'size': len(artifact.content),
            },
        )
