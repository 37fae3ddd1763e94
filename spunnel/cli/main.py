"""CLI entry point for Spunnel."""

from __future__ import annotations

import logging
import os
import sys

import fire

from spunnel.constants import EXIT_CONFIG_ERROR, EXIT_ERROR
from spunnel.exceptions import (
    LaunchFailed,
    PortUnavailable,
    SessionAlreadyActive,
    StoreError,
    TunnelSpecError,
)
from spunnel.logging import StreamFormatter, StreamRoutingFilter


def get_spunnel_class() -> type:
    """Get Spunnel class on-demand to avoid circular imports.

    Returns
    -------
    type
        Spunnel command class
    """
    from spunnel.__main__ import Spunnel

    return Spunnel


def handle_tunnel_option_error(
    error: TunnelSpecError | PortUnavailable, debug_mode: bool
) -> None:
    """Handle an invalid ``--tunnel`` value.

    Parameters
    ----------
    error : TunnelSpecError | PortUnavailable
        The parsing or port availability error
    debug_mode : bool
        Whether debug mode is enabled

    Raises
    ------
    TunnelSpecError, PortUnavailable
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    print(f"Tunnel option error: {error}", file=sys.stderr)
    sys.exit(EXIT_CONFIG_ERROR)


def handle_session_active_error(error: SessionAlreadyActive, debug_mode: bool) -> None:
    """Handle an existing tunnel session for the user.

    Parameters
    ----------
    error : SessionAlreadyActive
        The error carrying the control socket path
    debug_mode : bool
        Whether debug mode is enabled

    Raises
    ------
    SessionAlreadyActive
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    print("Tunnel already active\n", file=sys.stderr)
    print(f"{error}\n", file=sys.stderr)
    print("This usually means:", file=sys.stderr)
    print("  - Another job of yours already has a tunnel open", file=sys.stderr)
    print("  - An earlier tunnel was not torn down\n", file=sys.stderr)
    print("Fix it:", file=sys.stderr)
    print(f"  ssh -S {error.control_path} -O exit <node>", file=sys.stderr)
    print(f"  rm -f {error.control_path}", file=sys.stderr)
    sys.exit(EXIT_ERROR)


def handle_launch_error(error: LaunchFailed, debug_mode: bool) -> None:
    """Handle an SSH process that could not be started.

    Parameters
    ----------
    error : LaunchFailed
        The launch error
    debug_mode : bool
        Whether debug mode is enabled

    Raises
    ------
    LaunchFailed
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    print(f"SSH launch error: {error}\n", file=sys.stderr)
    print("Check that the configured ssh_cmd exists on the submit host.", file=sys.stderr)
    sys.exit(EXIT_ERROR)


def handle_store_error(error: StoreError, debug_mode: bool) -> None:
    """Handle a session record that could not be accessed.

    Parameters
    ----------
    error : StoreError
        The store error
    debug_mode : bool
        Whether debug mode is enabled

    Raises
    ------
    StoreError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    print(f"Session state error: {error}", file=sys.stderr)
    sys.exit(EXIT_ERROR)


def handle_value_error(error: ValueError, debug_mode: bool) -> None:
    """Handle invalid configuration.

    Parameters
    ----------
    error : ValueError
        The configuration error
    debug_mode : bool
        Whether debug mode is enabled

    Raises
    ------
    ValueError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    print(f"Configuration error: {error}", file=sys.stderr)
    sys.exit(EXIT_CONFIG_ERROR)


def handle_runtime_error(error: RuntimeError, debug_mode: bool) -> None:
    """Handle unexpected runtime error.

    Parameters
    ----------
    error : RuntimeError
        The runtime error that was raised
    debug_mode : bool
        Whether debug mode is enabled

    Raises
    ------
    RuntimeError
        Re-raised if debug mode is enabled
    """
    if debug_mode:
        raise

    print(f"Unexpected error: {error}", file=sys.stderr)
    sys.exit(EXIT_ERROR)


def configure_logging(debug_mode: bool) -> None:
    """Route log records to stdout and stderr.

    Parameters
    ----------
    debug_mode : bool
        Log at DEBUG instead of INFO
    """
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(StreamFormatter("%(message)s"))
    stdout_handler.addFilter(StreamRoutingFilter("stdout"))

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(StreamFormatter("%(message)s"))
    stderr_handler.addFilter(StreamRoutingFilter("stderr"))

    logging.basicConfig(
        level=logging.DEBUG if debug_mode else logging.INFO,
        handlers=[stdout_handler, stderr_handler],
    )


def main() -> None:
    """Entry point for Fire CLI with graceful error handling.

    Fire maps the Spunnel constructor arguments to global flags and its
    methods to commands, e.g.::

        spunnel --ssh_cmd="ssh|-q" establish --tunnel 8888:8888 --nodes exec01
        spunnel exit
    """
    debug_mode = os.environ.get("SPUNNEL_DEBUG") == "1"
    configure_logging(debug_mode)

    try:
        fire.Fire(get_spunnel_class())
    except (TunnelSpecError, PortUnavailable) as e:
        handle_tunnel_option_error(e, debug_mode)
    except SessionAlreadyActive as e:
        handle_session_active_error(e, debug_mode)
    except LaunchFailed as e:
        handle_launch_error(e, debug_mode)
    except StoreError as e:
        handle_store_error(e, debug_mode)
    except ValueError as e:
        handle_value_error(e, debug_mode)
    except RuntimeError as e:
        handle_runtime_error(e, debug_mode)
