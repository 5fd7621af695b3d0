"""Message channel over a byte stream.

``Frontend`` wraps a connected (and possibly TLS‑wrapped) socket and turns it
into a sequence of decoded backend messages.  It owns no session state; see
:class:`pglink.conn.PgConn` for that.

Bytes are consumed from the internal buffer only once a whole frame has
arrived, so a socket timeout in the middle of a frame loses nothing: the
next :meth:`Frontend.receive` picks up where the last one stopped.
"""

from __future__ import annotations

import logging
import socket
from typing import Optional

from pglink.exceptions import ConnectionClosedError
from pglink.messages import (
    HEADER_SIZE,
    BackendMessage,
    FrontendMessage,
    decode_backend,
    unpack_header,
)

logger = logging.getLogger("pglink.frontend")

_CHUNK_SIZE = 65_536


class Frontend:
    """Reads backend frames from, and writes frontend frames to, *stream*.

    Not thread‑safe.  The stream must not be read by anyone else while the
    frontend is in use, because reads are buffered.
    """

    def __init__(self, stream: socket.socket) -> None:
        self._stream = stream
        self._buf = bytearray()
        self._chunk = bytearray(_CHUNK_SIZE)

    # -- public ------------------------------------------------------------

    def receive(self) -> BackendMessage:
        """Block until one full frame has been read and return it decoded."""
        frame = self._take_frame()
        while frame is None:
            self._fill()
            frame = self._take_frame()

        msg_type, body = frame
        msg = decode_backend(msg_type, body)
        logger.debug("Received %s (%d bytes)", type(msg).__name__, len(body))
        return msg

    def send(self, msg: FrontendMessage) -> None:
        """Encode *msg* and write it to the stream."""
        self._stream.sendall(msg.encode())
        logger.debug("Sent %s", type(msg).__name__)

    def close(self) -> None:
        """Drop buffered input.  The stream itself is left open."""
        self._buf.clear()

    # -- private -----------------------------------------------------------

    def _take_frame(self) -> Optional[tuple[bytes, bytes]]:
        if len(self._buf) < HEADER_SIZE:
            return None
        msg_type, body_len = unpack_header(bytes(self._buf[:HEADER_SIZE]))
        end = HEADER_SIZE + body_len
        if len(self._buf) < end:
            return None
        body = bytes(self._buf[HEADER_SIZE:end])
        del self._buf[:end]
        return msg_type, body

    def _fill(self) -> None:
        # Timeouts and other socket errors propagate with the buffer intact.
        n = self._stream.recv_into(self._chunk)
        if n == 0:
            raise ConnectionClosedError(
                f"stream closed mid-frame ({len(self._buf)} bytes buffered)"
            )
        self._buf += self._chunk[:n]
