"""Local TCP port availability check.

Known limitation: the probe binds and immediately releases the port, so
another process can take it between the check and the moment the SSH master
binds it. The result is a best-effort sanity check for user input, not a
reservation.
"""

import logging
import socket

logger = logging.getLogger(__name__)


def port_available(port: int) -> bool:
    """Check whether a local TCP port can currently be bound.

    Parameters
    ----------
    port : int
        Local port number

    Returns
    -------
    bool
        True if a listening socket could be bound on the wildcard address
        and closed again, False on any socket, bind or close failure
    """
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    except OSError as e:
        logger.debug("Error getting socket for port check: %s", e)
        return False

    available = True

    try:
        sock.bind(("", port))
    except OSError as e:
        logger.debug("Port %s is not bindable: %s", port, e)
        available = False

    try:
        sock.close()
    except OSError as e:
        logger.debug("Close of socket during port test failed: %s", e)
        available = False

    return available
