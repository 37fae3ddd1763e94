import copy
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from omegaconf import OmegaConf
from omegaconf.errors import InterpolationResolutionError

from spunnel.cli.parsing import parse_plugin_value
from spunnel.constants import DEFAULT_SSH_ARGS, DEFAULT_SSH_COMMAND, DEFAULT_STATE_DIR

logger = logging.getLogger(__name__)

PLUGIN_ARG_KEYS = ("ssh_cmd", "args", "state_dir")


@dataclass(frozen=True)
class PluginConfig:
    """Resolved plugin settings threaded into establish and teardown.

    Attributes
    ----------
    ssh_command : str
        SSH client command, may contain options (e.g. ``ssh -q``)
    extra_args : str
        Extra SSH arguments placed before the ``-L`` directives
    state_dir : str
        Directory holding the session records
    """

    ssh_command: str = DEFAULT_SSH_COMMAND
    extra_args: str = DEFAULT_SSH_ARGS
    state_dir: str = DEFAULT_STATE_DIR


class ConfigLoader:
    """Load and merge YAML configuration and plugstack arguments with defaults."""

    def __init__(self) -> None:
        self.BUILT_IN_DEFAULTS = {
            "ssh_cmd": DEFAULT_SSH_COMMAND,
            "args": DEFAULT_SSH_ARGS,
            "state_dir": DEFAULT_STATE_DIR,
        }

    def load_config(self, config_path: str | None = None) -> dict[str, Any]:
        """Load configuration from YAML file.

        Parameters
        ----------
        config_path : str | None
            Path to YAML config file. If None, checks SPUNNEL_CONFIG env var,
            then falls back to spunnel.yaml

        Returns
        -------
        dict[str, Any]
            Parsed configuration with all variable interpolations resolved,
            or an empty dict when the file does not exist

        Raises
        ------
        ValueError
            If the file is not valid YAML or variables cannot be resolved
        RuntimeError
            If the file exists but cannot be read
        """
        if config_path is None:
            config_path = os.environ.get("SPUNNEL_CONFIG", "spunnel.yaml")

        config_file = Path(config_path)

        if not config_file.exists():
            return {}

        try:
            cfg = OmegaConf.load(config_file)
        except yaml.YAMLError as e:
            logger.error("Failed to parse YAML config file %s: %s", config_file, e)
            raise ValueError(f"Invalid YAML in {config_file}: {e}") from e
        except OSError as e:
            logger.error("Failed to read config file %s: %s", config_file, e)
            raise RuntimeError(f"Failed to read config file {config_file}: {e}") from e

        if cfg is None:
            return {}

        try:
            config = OmegaConf.to_container(cfg, resolve=True, throw_on_missing=True)
        except InterpolationResolutionError as e:
            logger.error("Failed to resolve configuration variables: %s", e)
            raise ValueError(f"Configuration variable resolution error: {e}") from e

        if not isinstance(config, dict):
            raise ValueError(f"Configuration in {config_file} must be a mapping")

        return config

    def parse_plugin_args(self, argv: list[str] | tuple[str, ...]) -> dict[str, str]:
        """Parse plugstack.conf style ``key=value`` arguments.

        Parameters
        ----------
        argv : list[str] | tuple[str, ...]
            Arguments such as ``["ssh_cmd=ssh|-q", "args=-o|BatchMode=yes"]``

        Returns
        -------
        dict[str, str]
            Recognised settings with ``|`` translated to spaces
        """
        settings: dict[str, str] = {}

        for elt in argv:
            key, sep, value = elt.partition("=")

            if not sep or key not in PLUGIN_ARG_KEYS:
                logger.debug("Ignoring unknown plugin argument: %s", elt)
                continue

            settings[key] = parse_plugin_value(value)

        return settings

    def get_plugin_config(
        self,
        config: dict[str, Any] | None = None,
        plugin_args: dict[str, str] | None = None,
    ) -> PluginConfig:
        """Merge defaults, YAML settings and plugin arguments.

        Parameters
        ----------
        config : dict[str, Any] | None
            Settings loaded from YAML
        plugin_args : dict[str, str] | None
            Settings from plugstack arguments or the command line, which win

        Returns
        -------
        PluginConfig
            Validated configuration

        Raises
        ------
        ValueError
            If a setting has the wrong type or the SSH command is empty
        """
        merged = copy.deepcopy(self.BUILT_IN_DEFAULTS)

        for source in (config or {}, plugin_args or {}):
            for key, value in source.items():
                if key in PLUGIN_ARG_KEYS and value is not None:
                    merged[key] = value

        self.validate_config(merged)

        return PluginConfig(
            ssh_command=parse_plugin_value(merged["ssh_cmd"]),
            extra_args=parse_plugin_value(merged["args"]),
            state_dir=merged["state_dir"],
        )

    def validate_config(self, config: dict[str, Any]) -> None:
        """Validate configuration has correct types.

        Parameters
        ----------
        config : dict[str, Any]
            Configuration to validate

        Raises
        ------
        ValueError
            If configuration is invalid
        """
        for field in PLUGIN_ARG_KEYS:
            if not isinstance(config.get(field), str):
                raise ValueError(f"{field} must be a string")

        if not config["ssh_cmd"].strip():
            raise ValueError("ssh_cmd is required")

        if not config["state_dir"].strip():
            raise ValueError("state_dir is required")
