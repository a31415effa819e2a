import tempfile
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pytest_mock import MockerFixture

from pypi_store import pypi_router


@pytest.fixture
def localfs_root(monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Fixture to point the router at an empty local file system backend."""
    with tempfile.TemporaryDirectory() as temp_dir:
        root_path = Path(temp_dir) / 'pypi_store' / 'router-tests'
        monkeypatch.setenv('PYPI_STORE_BACKEND', 'localfs')
        monkeypatch.setenv('PYPI_STORE_MODE', 'hosted')
        monkeypatch.setenv('PYPI_STORE_LOCALFS_ROOT_PATH', str(root_path))
        monkeypatch.delenv('PYPI_STORE_FALLBACK_ENABLED', raising=False)
        yield root_path


@pytest.fixture
def pypi_store_test_app() -> FastAPI:
    """Fixture to create a FastAPI app with the package index router for testing."""
    app = FastAPI()
    app.include_router(pypi_router, prefix='/pypi')
    return app


@pytest.fixture
def pypi_store_testclient(pypi_store_test_app: FastAPI, localfs_root: Path) -> TestClient:  # noqa: ARG001
    """Fixture to create a TestClient for the FastAPI app, backed by localfs."""
    return TestClient(pypi_store_test_app)


@pytest.fixture
def check_rbac_mock(mocker: MockerFixture) -> AsyncMock:
    """Fixture to mock the RBAC check function."""
    return mocker.patch('pypi_store.pypi.package_rbac.check_and_raise_project_rbac')
