#!/usr/bin/env python3
"""Spunnel - forward execution node ports to the SLURM submit host."""

from __future__ import annotations

import os
import sys
from collections.abc import Callable

from spunnel.cli.main import main
from spunnel.constants import EXIT_ERROR
from spunnel.core.config import ConfigLoader, PluginConfig
from spunnel.lifecycle import SpunnelPlugin
from spunnel.services.portprobe import port_available


class Spunnel:
    """Command line front end for the plugin hooks.

    Every command runs one hook in its own process, the way the SPANK stack
    calls them: ``establish`` at job start, ``exit`` at each exit hook firing.

    Parameters
    ----------
    config : str | None
        YAML configuration file (default: $SPUNNEL_CONFIG or spunnel.yaml)
    ssh_cmd : str | None
        SSH command override, ``|`` stands for a space
    args : str | None
        Extra SSH arguments override, ``|`` stands for a space
    state_dir : str | None
        Session record directory override
    plugin_factory : Callable[[PluginConfig], SpunnelPlugin] | None
        Factory for the plugin (for testing)
    """

    def __init__(
        self,
        config: str | None = None,
        ssh_cmd: str | None = None,
        args: str | None = None,
        state_dir: str | None = None,
        plugin_factory: Callable[[PluginConfig], SpunnelPlugin] | None = None,
    ) -> None:
        self._config_loader = ConfigLoader()
        file_config = self._config_loader.load_config(config)
        overrides = {
            "ssh_cmd": None if ssh_cmd is None else str(ssh_cmd),
            "args": None if args is None else str(args),
            "state_dir": None if state_dir is None else str(state_dir),
        }
        self._config = self._config_loader.get_plugin_config(file_config, overrides)
        self._plugin_factory = plugin_factory or SpunnelPlugin

    def _plugin(self) -> SpunnelPlugin:
        return self._plugin_factory(self._config)

    def establish(
        self,
        tunnel: str | None = None,
        nodes: str | list[str] | None = None,
        job_id: str | None = None,
    ) -> None:
        """Open the tunnel for a starting job.

        Parameters
        ----------
        tunnel : str | None
            ``submit port:exec port[,...]`` pairs
        nodes : str | list[str] | None
            Allocated nodes (default: $SLURM_JOB_NODELIST)
        job_id : str | None
            Job id used to look up nodes (default: $SLURM_JOB_ID)
        """
        plugin = self._plugin()

        # absent --tunnel means no tunnel
        if tunnel is not None:
            plugin.process_tunnel_option(str(tunnel))

        if nodes is None:
            nodes = os.environ.get("SLURM_JOB_NODELIST")
        elif not isinstance(nodes, (list, tuple)):
            nodes = str(nodes)

        if job_id is None:
            job_id = os.environ.get("SLURM_JOB_ID")

        status = plugin.local_user_init(nodelist=nodes, job_id=job_id)
        if status:
            sys.exit(status)

    def exit(self) -> None:
        """Run the job exit hook once."""
        self._plugin().exit()

    def probe(self, port: int) -> None:
        """Check whether a local port can be bound.

        Parameters
        ----------
        port : int
            Local port number
        """
        if port_available(int(port)):
            print(f"port {port} is available")
            return

        print(f"port {port} is in use or unavailable", file=sys.stderr)
        sys.exit(EXIT_ERROR)

    def status(self) -> None:
        """Show the session records of the current user."""
        for key, value in self._plugin().status().items():
            print(f"{key}: {value}")


if __name__ == "__main__":
    main()
