"""Exception hierarchy for spunnel."""

from __future__ import annotations


class SpunnelError(Exception):
    """Base exception for all spunnel errors."""


class TunnelSpecError(SpunnelError, ValueError):
    """Invalid ``--tunnel`` option value.

    Parameters
    ----------
    message : str
        Human readable description
    token : str | None
        Offending ``local:remote`` token, if known
    """

    def __init__(self, message: str, token: str | None = None) -> None:
        super().__init__(message)
        self.token = token


class MalformedSpec(TunnelSpecError):
    """Port pair is not of the form ``local:remote``."""


class NonNumericPort(TunnelSpecError):
    """Port is not a positive integer."""


class PrivilegedPort(TunnelSpecError):
    """Port is below the unprivileged port range."""


class PortOutOfRange(TunnelSpecError):
    """Port is above the largest valid TCP port."""


class PortUnavailable(SpunnelError):
    """Local port cannot be bound on the submission host.

    Parameters
    ----------
    port : int
        The unavailable local port
    """

    def __init__(self, port: int) -> None:
        super().__init__(f"port {port} is in use or unavailable")
        self.port = port


class SessionAlreadyActive(SpunnelError):
    """A control socket for this user already exists.

    Parameters
    ----------
    control_path : str
        Path of the existing control socket
    """

    def __init__(self, control_path: str) -> None:
        super().__init__(
            f"ssh control file {control_path} already exists. Either you already "
            "have a tunnel in place, or one did not terminate correctly. "
            "Please remove this file."
        )
        self.control_path = control_path


class LaunchFailed(SpunnelError):
    """The SSH master process could not be started."""


class StoreError(SpunnelError):
    """A session record could not be accessed."""


class StoreWriteFailed(StoreError):
    """A session record could not be written."""


class RecordNotFound(StoreError, LookupError):
    """A session record does not exist."""


__all__ = [
    "SpunnelError",
    "TunnelSpecError",
    "MalformedSpec",
    "NonNumericPort",
    "PrivilegedPort",
    "PortOutOfRange",
    "PortUnavailable",
    "SessionAlreadyActive",
    "LaunchFailed",
    "StoreError",
    "StoreWriteFailed",
    "RecordNotFound",
]
