"""In‑band TLS upgrade.

Wire format::

    Client → Server
        [4B big‑endian length = 8][4B big‑endian code = 80877103]
    Server → Client
        [1B 'S' (accept) | anything else (refuse)]

On ``'S'`` the plain socket is wrapped with the caller's ``ssl.SSLContext``
and the TLS handshake runs immediately.  There is exactly one attempt.
"""

from __future__ import annotations

import logging
import socket
import ssl
import struct
from typing import Optional

from pglink.exceptions import ConnectionClosedError, TLSRefusedError

logger = logging.getLogger("pglink.tls")

SSL_REQUEST_CODE = 80877103
SSL_REQUEST = struct.pack("!ii", 8, SSL_REQUEST_CODE)
_ACCEPT = b"S"


def negotiate_tls(
    sock: socket.socket,
    context: ssl.SSLContext,
    server_hostname: Optional[str] = None,
) -> ssl.SSLSocket:
    """Ask the server to switch *sock* to TLS and return the wrapped socket.

    Raises :class:`TLSRefusedError` if the server answers anything but
    ``'S'``; in that case no TLS handshake is attempted.
    """
    sock.sendall(SSL_REQUEST)

    response = sock.recv(1)
    if not response:
        raise ConnectionClosedError("stream closed while waiting for TLS response")
    if response != _ACCEPT:
        logger.debug("Server refused TLS (response=%r)", response)
        raise TLSRefusedError(response)

    logger.debug("Server accepted TLS; starting handshake")
    return context.wrap_socket(sock, server_hostname=server_hostname)
