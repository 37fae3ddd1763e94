"""Tests for spunnel utility functions."""

from pathlib import Path
from unittest.mock import patch

import pytest

from spunnel.utils import atomic_file_write, get_acting_user


class TestGetActingUser:
    """Tests for acting user detection."""

    def test_prefers_user_variable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test $USER names the acting user."""
        monkeypatch.setenv("USER", "alice")

        assert get_acting_user() == "alice"

    def test_falls_back_to_login_name(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the process login name is used without $USER."""
        monkeypatch.delenv("USER", raising=False)

        with patch("spunnel.utils.getpass.getuser", return_value="bob"):
            assert get_acting_user() == "bob"


class TestAtomicFileWrite:
    """Tests for atomic file write operations."""

    def test_writes_file(self, tmp_path: Path) -> None:
        target_path = tmp_path / "alice-host.tunnel"

        atomic_file_write(target_path, "exec01\n")

        assert target_path.read_text() == "exec01\n"

    def test_leaves_no_temp_or_lock_file(self, tmp_path: Path) -> None:
        target_path = tmp_path / "alice-host.tunnel"

        atomic_file_write(target_path, "exec01\n")

        assert sorted(p.name for p in tmp_path.iterdir()) == ["alice-host.tunnel"]

    def test_overwrites_existing_file(self, tmp_path: Path) -> None:
        target_path = tmp_path / "alice-host.tunnel"
        target_path.write_text("exec01\n")

        atomic_file_write(target_path, "exec02\n")

        assert target_path.read_text() == "exec02\n"

    def test_missing_directory_raises(self, tmp_path: Path) -> None:
        """Test the OSError reaches the caller."""
        with pytest.raises(OSError):
            atomic_file_write(tmp_path / "missing" / "alice-host.tunnel", "exec01\n")
