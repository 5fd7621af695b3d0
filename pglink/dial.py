"""Opening the raw byte stream to the server.

The default strategy, :class:`Dialer`, understands the two networks produced
by :meth:`pglink.config.ConnConfig.network_address`:

* ``"unix"``: ``address`` is the socket file path.
* ``"tcp"``:  ``address`` is ``host:port`` (IPv6 hosts may be bracketed).

Socket errors are raised as‑is.
"""

from __future__ import annotations

import logging
import socket
from typing import Optional

from pglink.exceptions import ConfigurationError

logger = logging.getLogger("pglink.dial")


def split_host_port(address: str) -> tuple[str, int]:
    """Split ``host:port`` on the last colon, unbracketing IPv6 literals."""
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ConfigurationError(f"Invalid TCP address: {address!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, int(port)


class Dialer:
    """Default dial strategy: blocking stream sockets with TCP keep‑alive.

    Parameters
    ----------
    keepalive:
        Keep‑alive probe period in seconds, used for both the idle time and
        the probe interval where the platform allows it.  ``None`` or ``0``
        leaves keep‑alive off.
    connect_timeout:
        Timeout for the connect call only.  The returned socket is blocking.
    """

    def __init__(
        self,
        *,
        keepalive: Optional[float] = 300.0,
        connect_timeout: Optional[float] = None,
    ) -> None:
        self.keepalive = keepalive
        self.connect_timeout = connect_timeout

    def __call__(self, network: str, address: str) -> socket.socket:
        logger.debug("Dialing %s %s", network, address)
        if network == "unix":
            return self._dial_unix(address)
        if network == "tcp":
            return self._dial_tcp(address)
        raise ConfigurationError(f"Unsupported network: {network!r}")

    # -- private -----------------------------------------------------------

    def _dial_unix(self, path: str) -> socket.socket:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.settimeout(self.connect_timeout)
            sock.connect(path)
            sock.settimeout(None)
        except BaseException:
            sock.close()
            raise
        return sock

    def _dial_tcp(self, address: str) -> socket.socket:
        host, port = split_host_port(address)
        sock = socket.create_connection((host, port), timeout=self.connect_timeout)
        try:
            sock.settimeout(None)
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            if self.keepalive:
                self._enable_keepalive(sock)
        except BaseException:
            sock.close()
            raise
        return sock

    def _enable_keepalive(self, sock: socket.socket) -> None:
        period = max(1, int(self.keepalive or 0))
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
        # Linux names the idle option TCP_KEEPIDLE, macOS TCP_KEEPALIVE.
        idle_opt = getattr(socket, "TCP_KEEPIDLE", None) or getattr(socket, "TCP_KEEPALIVE", None)
        if idle_opt is not None:
            sock.setsockopt(socket.IPPROTO_TCP, idle_opt, period)
        if hasattr(socket, "TCP_KEEPINTVL"):
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, period)
        logger.debug("TCP keep-alive enabled (period=%ds)", period)
