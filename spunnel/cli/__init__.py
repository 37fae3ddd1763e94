"""CLI argument parsing and handling."""

from __future__ import annotations

from spunnel.cli.parsing import (
    PortForwardRule,
    parse_plugin_value,
    parse_tunnel_spec,
)

__all__ = [
    "PortForwardRule",
    "parse_tunnel_spec",
    "parse_plugin_value",
]
