"""Utility functions for spunnel."""

import fcntl
import getpass
import os
from pathlib import Path


def get_acting_user() -> str:
    """Return the identity that partitions session records.

    Uses ``$USER`` like the job environment does, falling back to the login
    name of the current process.

    Returns
    -------
    str
        User name
    """
    user = os.environ.get("USER")
    if user:
        return user

    return getpass.getuser()


def atomic_file_write(path: Path, content: str) -> None:
    """Write file atomically using temp file and rename with file locking.

    Readers in another process see either the previous content or the new
    content, never a partially written record.

    Parameters
    ----------
    path : Path
        Target file path
    content : str
        File content to write

    Raises
    ------
    OSError
        Propagated from the write after the temp file is removed
    """
    temp_path = path.with_name(path.name + ".tmp")
    lock_path = path.with_name(path.name + ".lock")

    try:
        with open(lock_path, "w") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                with open(temp_path, "w") as f:
                    f.write(content)
                temp_path.rename(path)
            except OSError:
                if temp_path.exists():
                    temp_path.unlink()
                raise
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
    finally:
        try:
            lock_path.unlink()
        except OSError:
            pass
