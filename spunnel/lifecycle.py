"""SPANK hook implementations for the tunnel plugin.

Each hook runs in its own short-lived process. The option callback and the
local user init hook run in the submitting ``srun``/``salloc``; the exit hook
runs once or more after the job ends. Nothing is shared between them except
the session store.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable
from typing import Any

from spunnel.cli.parsing import PortForwardRule, parse_tunnel_spec
from spunnel.constants import (
    EXIT_NO_JOB_INFO,
    EXIT_NO_NODES,
    EXIT_SUCCESS,
    RecordKind,
)
from spunnel.core.config import ConfigLoader, PluginConfig
from spunnel.services.nodes import first_node, get_job_nodelist
from spunnel.services.portprobe import port_available
from spunnel.services.session_store import FileRecordBackend, RecordBackend, SessionStore
from spunnel.services.teardown import TeardownCoordinator
from spunnel.services.tunnel import TunnelEstablisher, TunnelHandle, TunnelRequest
from spunnel.utils import get_acting_user

logger = logging.getLogger(__name__)


class SpunnelPlugin:
    """Tunnel plugin state for one hook invocation.

    Parameters
    ----------
    config : PluginConfig | None
        Resolved plugin configuration (default: built-in defaults)
    user : str | None
        Acting user identity (default: from the environment)
    backend : RecordBackend | None
        Session record storage (default: files under config.state_dir)
    prober : Callable[[int], bool]
        Local port availability check
    popen_factory : Callable[..., Any]
        Launcher for the SSH master
    runner : Callable[..., Any]
        Runner for the teardown command
    nodelist_lookup : Callable[[str], str | None]
        Maps a job id to its allocated hostlist

    Attributes
    ----------
    config : PluginConfig
        Resolved plugin configuration
    rules : list[PortForwardRule]
        Rules collected from ``--tunnel`` options so far
    store : SessionStore
        Session records of the acting user
    """

    def __init__(
        self,
        config: PluginConfig | None = None,
        user: str | None = None,
        backend: RecordBackend | None = None,
        prober: Callable[[int], bool] = port_available,
        popen_factory: Callable[..., Any] = subprocess.Popen,
        runner: Callable[..., Any] = subprocess.run,
        nodelist_lookup: Callable[[str], str | None] = get_job_nodelist,
    ) -> None:
        self.config = config or PluginConfig()
        self.rules: list[PortForwardRule] = []
        self.prober = prober
        self.popen_factory = popen_factory
        self.runner = runner
        self.nodelist_lookup = nodelist_lookup
        self.store = SessionStore(
            backend if backend is not None else FileRecordBackend(self.config.state_dir),
            user or get_acting_user(),
        )

    @classmethod
    def from_plugin_args(
        cls, argv: list[str] | tuple[str, ...], **kwargs: Any
    ) -> SpunnelPlugin:
        """Build a plugin from plugstack.conf arguments.

        Parameters
        ----------
        argv : list[str] | tuple[str, ...]
            ``key=value`` arguments following the plugin path in plugstack.conf
        **kwargs : Any
            Forwarded to the constructor

        Returns
        -------
        SpunnelPlugin
            Plugin configured from defaults, the YAML file and argv
        """
        loader = ConfigLoader()
        config = loader.get_plugin_config(
            loader.load_config(), loader.parse_plugin_args(argv)
        )
        return cls(config=config, **kwargs)

    def process_tunnel_option(self, optarg: str | None) -> int:
        """Handle one ``--tunnel`` option value.

        Parameters
        ----------
        optarg : str | None
            Comma-separated ``submit port:exec port`` pairs

        Returns
        -------
        int
            EXIT_SUCCESS

        Raises
        ------
        TunnelSpecError
            If the value is malformed
        PortUnavailable
            If a submit host port is already in use
        """
        if optarg is None:
            logger.error("--tunnel requires an argument, e.g. 8888:8888")
            return EXIT_SUCCESS

        self.rules.extend(parse_tunnel_spec(optarg, prober=self.prober))
        return EXIT_SUCCESS

    def build_request(self) -> TunnelRequest:
        """Return the tunnel request collected so far."""
        return TunnelRequest.from_config(self.rules, self.config)

    def local_user_init(
        self,
        nodelist: str | list[str] | tuple[str, ...] | None = None,
        job_id: str | int | None = None,
        remote: bool = False,
    ) -> int:
        """Establish the tunnel once the job's allocation is known.

        Parameters
        ----------
        nodelist : str | list[str] | tuple[str, ...] | None
            Nodes allocated to the job; looked up from job_id when None
        job_id : str | int | None
            SLURM job id
        remote : bool
            True when running on the execution node, where there is nothing
            to do

        Returns
        -------
        int
            EXIT_SUCCESS, or a non-zero status if the allocation is unknown

        Raises
        ------
        SessionAlreadyActive
            If a tunnel is already recorded for this user
        LaunchFailed
            If ssh cannot be started
        StoreError
            If the session cannot be recorded
        """
        if remote:
            return EXIT_SUCCESS

        request = self.build_request()
        if request.is_empty:
            return EXIT_SUCCESS

        if nodelist is None:
            if job_id is None:
                logger.error("unable to get job infos")
                return EXIT_NO_JOB_INFO

            nodelist = self.nodelist_lookup(str(job_id))

        node = first_node(nodelist)
        if node is None:
            logger.error("job has no allocated nodes defined")
            return EXIT_NO_NODES

        self.establish(node, request)
        return EXIT_SUCCESS

    def establish(self, node: str, request: TunnelRequest) -> TunnelHandle:
        """Start the tunnel to a node."""
        establisher = TunnelEstablisher(self.store, popen_factory=self.popen_factory)
        return establisher.establish(node, request)

    def exit(self) -> int:
        """Handle one firing of the job exit hook.

        Returns
        -------
        int
            Always EXIT_SUCCESS; teardown problems are logged only
        """
        coordinator = TeardownCoordinator(
            self.store, ssh_command=self.config.ssh_command, runner=self.runner
        )
        outcome = coordinator.run()
        logger.debug("Exit hook outcome for %s: %s", self.store.user, outcome.value)
        return EXIT_SUCCESS

    def status(self) -> dict[str, Any]:
        """Report which session records exist without consuming any.

        Returns
        -------
        dict[str, Any]
            User, control socket path, record presence and exit hook state
        """
        return {
            "user": self.store.user,
            "control_path": self.store.control_path,
            "host_record": self.store.exists(RecordKind.HOST),
            "control_record": self.store.exists(RecordKind.CONTROL),
            "exit_flag": self.store.exists(RecordKind.EXIT_FLAG),
            "teardown_state": self.store.teardown_state().value,
        }
