"""Global constants for spunnel.

This module contains values shared by the option parser, the session store
and the SSH command builders. Paths and defaults here match the on-disk layout
used by earlier plugin releases so that state left behind by either one is
recognised by the other.
"""

from enum import Enum

DEFAULT_SSH_COMMAND = "ssh"
"""SSH client used to build the tunnel and the teardown commands.

Overridden by the ``ssh_cmd=`` plugin argument.
"""

DEFAULT_SSH_ARGS = ""
"""Extra SSH arguments inserted before the ``-L`` directives.

Overridden by the ``args=`` plugin argument.
"""

DEFAULT_STATE_DIR = "/tmp"
"""Directory holding the per-user session records on the submission host."""

RECORD_KEY_PATTERN = "{user}-{kind}.tunnel"
"""File name pattern for session records, parameterised by user and kind."""

PLUGIN_VALUE_SPACE_ESCAPE = "|"
"""Character standing in for a space in plugstack.conf argument values."""

MIN_UNPRIVILEGED_PORT = 1024
"""Lowest port number accepted on either side of a port pair."""

MAX_VALID_PORT = 65535
"""Highest valid TCP port number."""

FORWARD_BIND_HOST = "localhost"
"""Host part of every ``-L local:host:remote`` directive."""

MASTER_FLAGS = ("-f", "-N", "-M")
"""Background, no remote command, multiplexing master."""

CONTROL_SOCKET_FLAG = "-S"
"""Flag naming the multiplexing control socket path."""

CONTROL_EXIT_COMMAND = ("-O", "exit")
"""Control command asking a multiplexing master to exit."""

LAUNCH_WAIT_SECONDS = 30
"""How long establish waits for ``ssh -f`` to fork the master into the background."""

EXIT_SUCCESS = 0
"""Status returned by hooks that completed or had nothing to do."""

EXIT_ERROR = 1
"""Status for a failed establish or an unexpected error."""

EXIT_CONFIG_ERROR = 2
"""Status for invalid ``--tunnel`` values or plugin configuration."""

EXIT_NO_JOB_INFO = 3
"""Status when the job's allocation could not be looked up."""

EXIT_NO_NODES = 4
"""Status when the job has no allocated nodes."""


class RecordKind(str, Enum):
    """Kinds of session records kept per user."""

    HOST = "host"
    CONTROL = "control"
    EXIT_FLAG = "exitflag"


class TeardownState(str, Enum):
    """Exit hook state persisted through the exit flag record."""

    FRESH = "fresh"
    ARMED = "armed"


class TeardownOutcome(str, Enum):
    """What a single exit hook invocation did."""

    ARMED = "armed"
    NO_SESSION = "no_session"
    NO_HOST = "no_host"
    TORN_DOWN = "torn_down"
    COMMAND_FAILED = "command_failed"
    STORE_ERROR = "store_error"
