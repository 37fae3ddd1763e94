"""SSH tunnel establishment on job start.

The tunnel is an OpenSSH multiplexing master started in the background with
one ``-L`` forward per port pair. The master outlives the process that starts
it; the only trace kept of it is the control socket and the host record in
the session store, which the exit hook later uses to ask it to exit.

Classes
-------
TunnelRequest
    Port forwarding rules plus the SSH command settings
TunnelHandle
    Record of an established tunnel
TunnelEstablisher
    Builds and launches the SSH master command

Examples
--------
>>> store = SessionStore(FileRecordBackend(), "alice")
>>> request = TunnelRequest(rules=[PortForwardRule(9000, 9001)])
>>> TunnelEstablisher(store).establish("exec01", request)
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from spunnel.cli.parsing import PortForwardRule
from spunnel.constants import (
    CONTROL_SOCKET_FLAG,
    DEFAULT_SSH_ARGS,
    DEFAULT_SSH_COMMAND,
    LAUNCH_WAIT_SECONDS,
    MASTER_FLAGS,
    RecordKind,
)
from spunnel.exceptions import LaunchFailed, StoreError
from spunnel.services.session_store import SessionStore

if TYPE_CHECKING:
    from spunnel.core.config import PluginConfig

logger = logging.getLogger(__name__)


@dataclass
class TunnelRequest:
    """Forwarding rules for one job plus operator supplied SSH settings.

    Attributes
    ----------
    rules : list[PortForwardRule]
        Forwarding rules, applied in order
    ssh_command : str
        SSH client command
    extra_args : str
        Extra SSH arguments placed before the ``-L`` directives
    """

    rules: list[PortForwardRule] = field(default_factory=list)
    ssh_command: str = DEFAULT_SSH_COMMAND
    extra_args: str = DEFAULT_SSH_ARGS

    @classmethod
    def from_config(
        cls, rules: list[PortForwardRule], config: PluginConfig
    ) -> TunnelRequest:
        """Build a request using the SSH settings from plugin configuration."""
        return cls(
            rules=list(rules),
            ssh_command=config.ssh_command,
            extra_args=config.extra_args,
        )

    @property
    def is_empty(self) -> bool:
        """True when there is nothing to forward."""
        return not self.rules

    def forward_args(self) -> list[str]:
        """Return the ``-L`` options for every rule, in rule order."""
        args: list[str] = []
        for rule in self.rules:
            args.extend(["-L", rule.directive()])
        return args


@dataclass(frozen=True)
class TunnelHandle:
    """What an establish call committed to the session store.

    Attributes
    ----------
    user : str
        Acting user identity
    node : str
        Execution node the tunnel connects to
    control_path : str
        SSH control socket path
    command : tuple[str, ...]
        Command that was launched
    """

    user: str
    node: str
    control_path: str
    command: tuple[str, ...]


class TunnelEstablisher:
    """Start the SSH master for a job and record it in the session store.

    Parameters
    ----------
    store : SessionStore
        Session records of the acting user
    popen_factory : Callable[..., Any]
        Process launcher (default: subprocess.Popen)
    """

    def __init__(
        self,
        store: SessionStore,
        popen_factory: Callable[..., Any] = subprocess.Popen,
    ) -> None:
        self.store = store
        self.popen_factory = popen_factory

    def build_command(
        self, node: str, request: TunnelRequest, control_path: str
    ) -> list[str]:
        """Build the SSH master command line.

        Parameters
        ----------
        node : str
            Execution node to connect to
        request : TunnelRequest
            Forwarding rules and SSH settings
        control_path : str
            Control socket path for the multiplexing master

        Returns
        -------
        list[str]
            ``<ssh> <node> <extra args> -L ... -f -N -M -S <control path>``
        """
        return [
            *shlex.split(request.ssh_command),
            node,
            *shlex.split(request.extra_args),
            *request.forward_args(),
            *MASTER_FLAGS,
            CONTROL_SOCKET_FLAG,
            control_path,
        ]

    def establish(self, node: str, request: TunnelRequest) -> TunnelHandle:
        """Launch the SSH master and record the session.

        Parameters
        ----------
        node : str
            First node allocated to the job
        request : TunnelRequest
            Non-empty forwarding request

        Returns
        -------
        TunnelHandle
            Record of the established session

        Raises
        ------
        ValueError
            If the request has no rules
        SessionAlreadyActive
            If a control socket already exists for this user
        LaunchFailed
            If the SSH process cannot be started
        StoreError
            If the session records cannot be updated
        """
        if request.is_empty:
            raise ValueError("tunnel request has no port forwarding rules")

        control_path = self.store.try_acquire()
        cmd = self.build_command(node, request, control_path)

        logger.info("Connecting to %s: %s", node, shlex.join(cmd))

        try:
            process = self.popen_factory(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            raise LaunchFailed(
                f"unable to connect node {node} with command {shlex.join(cmd)}: {e}"
            ) from e

        self._wait_for_background(node, process)

        try:
            self.store.write(RecordKind.HOST, node)
            self.store.remove(RecordKind.EXIT_FLAG)
        except StoreError:
            logger.warning(
                "ssh was started for %s but its session could not be recorded; "
                "the tunnel will not be torn down automatically",
                node,
            )
            raise

        for rule in request.rules:
            logger.info(
                "SSH tunnel requested: localhost:%s -> %s:%s",
                rule.local_port,
                node,
                rule.remote_port,
            )

        return TunnelHandle(
            user=self.store.user,
            node=node,
            control_path=control_path,
            command=tuple(cmd),
        )

    def _wait_for_background(self, node: str, process: Any) -> None:
        """Reap the foreground ssh once it has forked the master away.

        With ``-f`` the launched process exits as soon as the master is up,
        so the wait is short on success. A process still running after
        LAUNCH_WAIT_SECONDS is left alone.
        """
        try:
            status = process.wait(timeout=LAUNCH_WAIT_SECONDS)
        except subprocess.TimeoutExpired:
            logger.warning(
                "ssh to %s did not go to the background within %ss; leaving it running",
                node,
                LAUNCH_WAIT_SECONDS,
            )
            return

        if status != 0:
            logger.warning(
                "ssh to %s exited with status %s; the tunnel may not be up", node, status
            )
