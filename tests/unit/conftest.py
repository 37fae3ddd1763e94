"""Pytest configuration and fixtures for spunnel unit tests."""

import sys
from collections.abc import Generator
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
import yaml

tests_root = Path(__file__).parent.parent.parent
if str(tests_root) not in sys.path:
    sys.path.insert(0, str(tests_root))

from spunnel.services.session_store import FileRecordBackend, SessionStore  # noqa: E402
from tests.fakes import FakeRecordBackend  # noqa: E402


@pytest.fixture(autouse=True)
def clean_spunnel_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep unit tests independent of the caller's SLURM and spunnel environment.

    Parameters
    ----------
    monkeypatch : pytest.MonkeyPatch
        Pytest monkeypatch fixture
    """
    for name in (
        "SPUNNEL_CONFIG",
        "SPUNNEL_DEBUG",
        "SLURM_JOB_ID",
        "SLURM_JOB_NODELIST",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_backend() -> FakeRecordBackend:
    """In-memory record backend.

    Returns
    -------
    FakeRecordBackend
        Empty backend
    """
    return FakeRecordBackend()


@pytest.fixture
def store(fake_backend: FakeRecordBackend) -> SessionStore:
    """Session store for user alice backed by memory.

    Parameters
    ----------
    fake_backend : FakeRecordBackend
        Backend from fake_backend fixture

    Returns
    -------
    SessionStore
        Store with no records
    """
    return SessionStore(fake_backend, "alice")


@pytest.fixture
def file_store(tmp_path: Path) -> SessionStore:
    """Session store for user alice backed by files in a temp directory.

    Parameters
    ----------
    tmp_path : Path
        Pytest temporary directory path

    Returns
    -------
    SessionStore
        Store with no records
    """
    return SessionStore(FileRecordBackend(tmp_path), "alice")


@pytest.fixture
def mock_popen() -> MagicMock:
    """Stand-in for subprocess.Popen that never starts a process.

    Returns
    -------
    MagicMock
        Mock returning a fake process that exits 0 once backgrounded
    """
    process = MagicMock(pid=4242)
    process.wait.return_value = 0
    return MagicMock(return_value=process)


@pytest.fixture
def mock_runner() -> MagicMock:
    """Stand-in for subprocess.run reporting success.

    Returns
    -------
    MagicMock
        Mock returning a completed process with returncode 0
    """
    return MagicMock(return_value=MagicMock(returncode=0))


@pytest.fixture
def config_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[Path, None, None]:
    """Create a temporary config file path exported as SPUNNEL_CONFIG.

    Parameters
    ----------
    tmp_path : Path
        Pytest temporary directory path
    monkeypatch : pytest.MonkeyPatch
        Pytest monkeypatch fixture

    Yields
    ------
    Path
        Path to temporary config file
    """
    config_path = tmp_path / "spunnel.yaml"
    monkeypatch.setenv("SPUNNEL_CONFIG", str(config_path))
    yield config_path


@pytest.fixture
def write_config(config_file: Path):
    """Helper fixture to write config data to file.

    Parameters
    ----------
    config_file : Path
        Path to config file from config_file fixture

    Returns
    -------
    callable
        Function that takes config_data dict and writes to file
    """

    def _write(config_data: dict[str, Any]) -> None:
        with open(config_file, "w") as f:
            yaml.dump(config_data, f)

    return _write
