"""Tunnel teardown on job exit.

SLURM fires the exit hook more than once for a job, and the first firing comes
before the tunnel may be touched. The coordinator therefore only arms itself
on the first call, persisting that through the exit flag record, and acts on
the next one.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Callable
from typing import Any

from spunnel.constants import (
    CONTROL_EXIT_COMMAND,
    CONTROL_SOCKET_FLAG,
    DEFAULT_SSH_COMMAND,
    RecordKind,
    TeardownOutcome,
    TeardownState,
)
from spunnel.exceptions import RecordNotFound, StoreError
from spunnel.services.session_store import SessionStore

logger = logging.getLogger(__name__)


class TeardownCoordinator:
    """Arm-then-act state machine over the exit flag and control records.

    Parameters
    ----------
    store : SessionStore
        Session records of the acting user
    ssh_command : str
        SSH client command (default: ssh)
    runner : Callable[..., Any]
        Command runner (default: subprocess.run)
    """

    def __init__(
        self,
        store: SessionStore,
        ssh_command: str = DEFAULT_SSH_COMMAND,
        runner: Callable[..., Any] = subprocess.run,
    ) -> None:
        self.store = store
        self.ssh_command = ssh_command
        self.runner = runner

    def build_command(self, host: str) -> list[str]:
        """Build the command asking the multiplexing master to exit.

        Parameters
        ----------
        host : str
            Host the tunnel was established to

        Returns
        -------
        list[str]
            ``<ssh> <host> -S <control path> -O exit``
        """
        return [
            *shlex.split(self.ssh_command),
            host,
            CONTROL_SOCKET_FLAG,
            self.store.control_path,
            *CONTROL_EXIT_COMMAND,
        ]

    def run(self) -> TeardownOutcome:
        """Handle one exit hook invocation.

        Returns
        -------
        TeardownOutcome
            What this invocation did. Never raises for missing records,
            store failures or a failing teardown command.
        """
        try:
            return self._step()
        except StoreError as e:
            logger.error("tunnel: unable to access session records: %s", e)
            return TeardownOutcome.STORE_ERROR

    def _step(self) -> TeardownOutcome:
        if self.store.teardown_state() is TeardownState.FRESH:
            self.store.write(RecordKind.EXIT_FLAG)
            logger.debug("Exit hook armed for %s", self.store.user)
            return TeardownOutcome.ARMED

        if not self.store.exists(RecordKind.CONTROL):
            logger.debug("No control socket %s, nothing to tear down", self.store.control_path)
            return TeardownOutcome.NO_SESSION

        try:
            host = self.store.read(RecordKind.HOST)
        except RecordNotFound:
            logger.warning(
                "tunnel: control socket %s exists but no host is recorded. "
                "You may need to manually kill ssh tunnel processes.",
                self.store.control_path,
            )
            return TeardownOutcome.NO_HOST

        outcome = self._run_exit_command(host)
        self.store.remove(RecordKind.EXIT_FLAG)
        return outcome

    def _run_exit_command(self, host: str) -> TeardownOutcome:
        cmd = self.build_command(host)
        logger.debug("Tearing down tunnel: %s", shlex.join(cmd))

        try:
            result = self.runner(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
        except OSError as e:
            logger.error("tunnel: unable to exec kill cmd %s: %s", shlex.join(cmd), e)
            return TeardownOutcome.COMMAND_FAILED

        if result.returncode != 0:
            logger.warning(
                "tunnel: kill cmd %s exited with status %s",
                shlex.join(cmd),
                result.returncode,
            )
            return TeardownOutcome.COMMAND_FAILED

        logger.info("SSH tunnel to %s closed", host)
        return TeardownOutcome.TORN_DOWN
