"""Local port allocation for the loopback endpoint."""

from __future__ import annotations

import logging
import socket

from loopauth.exceptions import ResourceError

logger = logging.getLogger(__name__)

LOOPBACK_HOST = "127.0.0.1"

MAX_PRIVILEGED_PORT = 1024


def allocate_port(host: str = LOOPBACK_HOST) -> int:
    """Return a TCP port on *host* that was free a moment ago.

    Binds a throwaway socket to port 0 so the OS picks an ephemeral port,
    reads the number back and releases the socket straight away. Another
    process can still take the port before the listener binds it; that
    surfaces later as :class:`~loopauth.exceptions.BindError`.

    Args:
        host: Interface to probe. Defaults to the IPv4 loopback address.

    Returns:
        The allocated port number, always above :data:`MAX_PRIVILEGED_PORT`.

    Raises:
        ResourceError: If the probe socket cannot be bound or the OS hands
            out a privileged port.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind((host, 0))
            port: int = s.getsockname()[1]
    except OSError as exc:
        raise ResourceError(f"Cannot allocate a local port on {host}: {exc}") from exc

    if port <= MAX_PRIVILEGED_PORT:
        raise ResourceError(f"Cannot allocate a local port on {host}: got privileged port {port}")

    logger.debug("Allocated loopback port %d", port)
    return port
