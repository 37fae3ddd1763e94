"""Per-user session records shared by the establish and exit hooks.

The job start hook and the job exit hook run in unrelated processes. The only
state they share is a handful of small records keyed by the acting user:

- host record: the execution node the tunnel connects to
- control record: the SSH multiplexing control socket (created by ssh itself)
- exit flag record: marks that the exit hook already fired once

Records live behind a :class:`RecordBackend` so tests can swap the filesystem
for an in-memory backend.

Classes
-------
RecordBackend
    Protocol for key-value record storage
FileRecordBackend
    One file per record under a state directory
SessionStore
    Typed access to one user's records

Examples
--------
>>> store = SessionStore(FileRecordBackend("/tmp"), "alice")
>>> store.write(RecordKind.HOST, "exec01")
>>> store.read(RecordKind.HOST)
'exec01'
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from spunnel.constants import (
    DEFAULT_STATE_DIR,
    RECORD_KEY_PATTERN,
    RecordKind,
    TeardownState,
)
from spunnel.exceptions import (
    RecordNotFound,
    SessionAlreadyActive,
    StoreError,
    StoreWriteFailed,
)
from spunnel.utils import atomic_file_write

logger = logging.getLogger(__name__)


class RecordBackend(Protocol):
    """Protocol for session record storage."""

    def put(self, key: str, value: str) -> None:
        """Create or replace a record."""
        ...

    def get(self, key: str) -> str:
        """Return a record's value, raising RecordNotFound if absent."""
        ...

    def exists(self, key: str) -> bool:
        """Return True if the record exists."""
        ...

    def delete(self, key: str) -> None:
        """Remove a record; removing an absent record is not an error."""
        ...

    def locate(self, key: str) -> str:
        """Return the filesystem path backing the record."""
        ...


class FileRecordBackend:
    """Session records stored as files in a single directory.

    Parameters
    ----------
    state_dir : str | Path
        Directory holding the record files (default: /tmp)
    """

    def __init__(self, state_dir: str | Path = DEFAULT_STATE_DIR) -> None:
        self.state_dir = Path(state_dir)

    def _path(self, key: str) -> Path:
        return self.state_dir / key

    def put(self, key: str, value: str) -> None:
        path = self._path(key)

        try:
            atomic_file_write(path, value)
        except OSError as e:
            raise StoreWriteFailed(f"unable to create file {path}: {e}") from e

    def get(self, key: str) -> str:
        path = self._path(key)

        try:
            return path.read_text()
        except FileNotFoundError:
            raise RecordNotFound(f"record {path} does not exist") from None
        except OSError as e:
            raise StoreError(f"unable to read file {path}: {e}") from e

    def exists(self, key: str) -> bool:
        path = self._path(key)

        try:
            return path.exists()
        except OSError as e:
            raise StoreError(f"unable to check file {path}: {e}") from e

    def delete(self, key: str) -> None:
        path = self._path(key)

        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise StoreError(f"unable to remove file {path}: {e}") from e

    def locate(self, key: str) -> str:
        return str(self._path(key))


class SessionStore:
    """Typed access to the session records of one user.

    Parameters
    ----------
    backend : RecordBackend
        Record storage
    user : str
        Acting user identity; the only partitioning key

    Attributes
    ----------
    backend : RecordBackend
        Record storage
    user : str
        Acting user identity
    """

    def __init__(self, backend: RecordBackend, user: str) -> None:
        self.backend = backend
        self.user = user

    def key(self, kind: RecordKind) -> str:
        """Return the record key for a record kind.

        Parameters
        ----------
        kind : RecordKind
            Record kind

        Returns
        -------
        str
            Key such as ``alice-host.tunnel``
        """
        return RECORD_KEY_PATTERN.format(user=self.user, kind=kind.value)

    @property
    def control_path(self) -> str:
        """Path of the SSH control socket for this user."""
        return self.backend.locate(self.key(RecordKind.CONTROL))

    def write(self, kind: RecordKind, value: str = "") -> None:
        """Create or replace a record.

        Host records are written as one line. Overwriting an existing host
        record logs a warning since it means an earlier tunnel was never torn
        down.

        Parameters
        ----------
        kind : RecordKind
            Record kind
        value : str
            Record content; empty for presence markers

        Raises
        ------
        StoreWriteFailed
            If the record cannot be written
        """
        key = self.key(kind)

        if kind is RecordKind.HOST:
            if self.backend.exists(key):
                logger.warning(
                    "The hostname file %s exists and will be overwritten. "
                    "There may be stray ssh processes that should be killed.",
                    self.backend.locate(key),
                )
            value = f"{value}\n"

        self.backend.put(key, value)

    def read(self, kind: RecordKind) -> str:
        """Return a record's value.

        Reading the host record consumes it: the value is returned and the
        record removed, so a hostname is handed to teardown at most once.

        Parameters
        ----------
        kind : RecordKind
            Record kind

        Returns
        -------
        str
            Record value; for the host record, its first line

        Raises
        ------
        RecordNotFound
            If the record does not exist, or the host record is empty
        StoreError
            If the record exists but cannot be read or removed
        """
        key = self.key(kind)
        value = self.backend.get(key)

        if kind is not RecordKind.HOST:
            return value

        self.backend.delete(key)
        lines = value.splitlines()
        host = lines[0].strip() if lines else ""

        if not host:
            raise RecordNotFound(f"host record {self.backend.locate(key)} is empty")

        return host

    def exists(self, kind: RecordKind) -> bool:
        """Return True if the record exists."""
        return self.backend.exists(self.key(kind))

    def remove(self, kind: RecordKind) -> None:
        """Remove a record if present."""
        self.backend.delete(self.key(kind))

    def try_acquire(self) -> str:
        """Claim the tunnel slot for this user.

        This is an existence check on the control socket, not an atomic
        lock: two establishers racing for the same user can both pass it.

        Returns
        -------
        str
            Control socket path to hand to the SSH master

        Raises
        ------
        SessionAlreadyActive
            If the control socket already exists
        """
        control_path = self.control_path

        if self.exists(RecordKind.CONTROL):
            raise SessionAlreadyActive(control_path)

        return control_path

    def teardown_state(self) -> TeardownState:
        """Return the exit hook state persisted by the exit flag record."""
        if self.exists(RecordKind.EXIT_FLAG):
            return TeardownState.ARMED
        return TeardownState.FRESH
