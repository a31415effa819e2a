import re
from dataclasses import dataclass

from pypi_store.errors import InvalidFilenameError, InvalidNameError

# Pattern for normalizing package names
__VALID_NAME_PATTERN = re.compile(r'[A-Za-z0-9._-]+', re.ASCII)
__NORMALIZE_PATTERN = re.compile(r'[-_.]+', re.ASCII)

# Distribution filename grammars. The version group is deliberately loose
# (digits, lowercase letters, dots) so pre-release suffixes are accepted.
__ARCHIVE_FILENAME_PATTERN = re.compile(
    r'(?P<name>.*)-(?P<version>[0-9a-z.]+?)\.(?P<ext>tar|tar\.gz|tar\.Z|tar\.bz2|zip|egg)',
)
__WHEEL_FILENAME_PATTERN = re.compile(
    r'(?P<name>.+?)-(?P<version>[0-9a-z.]+)(?:-(?P<build>\d+))?'
    r'-(?P<pytag>[^-]+)-(?P<abitag>[^-]+)-(?P<platformtag>[^-]+)\.whl',
)

# Request path patterns
ARTIFACT_PATH_PATTERN = re.compile(r'.*\.(whl|tar\.gz|zip|tar\.bz2|tar\.Z|tar|egg)')
INDEX_PATH_PATTERN = re.compile(r'(^/$)|(.*/[a-z0-9\-]+?/?$)')


@dataclass(frozen=True)
class FilenameDescriptor:
    """Project name and version recovered from a distribution filename.

    The name is returned as written in the filename, not normalized.
    """

    name: str
    version: str


def pypi_normalize(name: str) -> str:
    """Normalize a PyPI package name.

    This function replaces any sequence of hyphens, underscores, or dots
    with a single hyphen and converts the name to lowercase.

    Args:
        name: The name of the package to normalize.

    Returns:
        The normalized package name.

    Raises:
        InvalidNameError: If the name contains characters other than ASCII
            letters, digits, ``.``, ``-`` and ``_``.
    """
    if not __VALID_NAME_PATTERN.fullmatch(name):
        raise InvalidNameError(name)
    return __NORMALIZE_PATTERN.sub('-', name).lower()


def parse_filename(filename: str) -> FilenameDescriptor:
    """Recover the project name and version from a distribution filename.

    Wheels (``.whl``) are parsed with the PEP 427 grammar
    ``<name>-<version>(-<build>)?-<pytag>-<abitag>-<platformtag>.whl``, every
    other file with ``<name>-<version>.<ext>``, splitting on the last ``-``
    before the extension.

    Args:
        filename: The bare filename, without any directory.

    Returns:
        The name and version as they appear in the filename.

    Raises:
        InvalidFilenameError: If the filename does not match its grammar.
    """
    pattern = __WHEEL_FILENAME_PATTERN if filename.endswith('.whl') else __ARCHIVE_FILENAME_PATTERN
    match = pattern.fullmatch(filename)
    if match is None or not match.group('name'):
        raise InvalidFilenameError(filename)
    return FilenameDescriptor(name=match.group('name'), version=match.group('version'))


def is_artifact_path(path: str) -> bool:
    """Whether a request path names a distribution file."""
    return ARTIFACT_PATH_PATTERN.fullmatch(path) is not None


def infer_project_name_from_path(path: str) -> str | None:
    """Infer the project name a request path refers to.

    Artifact paths (``.../<project>/<filename>``) yield the parent segment,
    index paths their last segment. The root path yields None.

    Args:
        path: The request path, relative to the router.

    Returns:
        str | None: The project name as written in the path, or None.
    """
    segments = [segment for segment in path.split('/') if segment]
    if not segments:
        return None
    if is_artifact_path(path):
        return segments[-2] if len(segments) > 1 else None
    return segments[-1]
