"""CLI argument parsing and parameter conversion utilities."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from spunnel.constants import (
    FORWARD_BIND_HOST,
    MAX_VALID_PORT,
    MIN_UNPRIVILEGED_PORT,
    PLUGIN_VALUE_SPACE_ESCAPE,
)
from spunnel.exceptions import (
    MalformedSpec,
    NonNumericPort,
    PortOutOfRange,
    PortUnavailable,
    PrivilegedPort,
)
from spunnel.services.portprobe import port_available


@dataclass(frozen=True)
class PortForwardRule:
    """One ``submit port:exec port`` forwarding pair.

    Attributes
    ----------
    local_port : int
        Port bound on the submission host
    remote_port : int
        Port on the execution node
    """

    local_port: int
    remote_port: int

    def directive(self) -> str:
        """Render the argument of an ``ssh -L`` option.

        Returns
        -------
        str
            ``local:localhost:remote``
        """
        return f"{self.local_port}:{FORWARD_BIND_HOST}:{self.remote_port}"


def _parse_port(value: str, token: str) -> int:
    value = value.strip()

    if not value:
        raise MalformedSpec(
            f"--tunnel parameter needs two numeric ports separated by a colon, got '{token}'",
            token=token,
        )

    if not (value.isascii() and value.isdigit()) or int(value) == 0:
        raise NonNumericPort(
            f"--tunnel parameter requires two numeric ports separated by a colon, "
            f"'{value}' is not a positive integer",
            token=token,
        )

    port = int(value)

    if port > MAX_VALID_PORT:
        raise PortOutOfRange(
            f"--tunnel port {port} is larger than {MAX_VALID_PORT}", token=token
        )

    if port < MIN_UNPRIVILEGED_PORT:
        raise PrivilegedPort(
            f"--tunnel cannot be used for privileged ports (< {MIN_UNPRIVILEGED_PORT}), "
            f"got {port}",
            token=token,
        )

    return port


def parse_tunnel_spec(
    raw: str | None, prober: Callable[[int], bool] = port_available
) -> list[PortForwardRule]:
    """Parse a ``--tunnel`` value into forwarding rules.

    Parameters
    ----------
    raw : str | None
        Comma-separated ``local:remote`` pairs, e.g. ``"8888:8888,9000:9001"``
    prober : Callable[[int], bool]
        Local port availability check (default: port_available)

    Returns
    -------
    list[PortForwardRule]
        Rules in the order given; empty for an empty or blank value

    Raises
    ------
    MalformedSpec
        If a token has no colon or an empty side, including empty tokens
        produced by stray commas
    NonNumericPort
        If either side is not a positive integer
    PortOutOfRange
        If either side is above 65535
    PrivilegedPort
        If either side is below 1024
    PortUnavailable
        If a local port cannot be bound right now
    """
    if raw is None or not raw.strip():
        return []

    rules: list[PortForwardRule] = []

    for token in raw.strip().split(","):
        local_str, sep, remote_str = token.partition(":")

        if not sep:
            raise MalformedSpec(
                f"--tunnel parameter needs two numeric ports separated by a colon, "
                f"got '{token}'",
                token=token,
            )

        rules.append(
            PortForwardRule(
                local_port=_parse_port(local_str, token),
                remote_port=_parse_port(remote_str, token),
            )
        )

    for rule in rules:
        if not prober(rule.local_port):
            raise PortUnavailable(rule.local_port)

    return rules


def parse_plugin_value(value: str) -> str:
    """Translate the plugstack.conf space escape into literal spaces.

    Parameters
    ----------
    value : str
        Raw ``key=value`` value, e.g. ``"ssh|-q"``

    Returns
    -------
    str
        Value with every ``|`` replaced by a space
    """
    return value.replace(PLUGIN_VALUE_SPACE_ESCAPE, " ")


__all__ = [
    "PortForwardRule",
    "parse_tunnel_spec",
    "parse_plugin_value",
]
