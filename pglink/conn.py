"""Low‑level PostgreSQL session handle and the startup handshake.

``connect()`` runs the whole bring‑up sequence:

    defaults → resolve address → dial → [TLS] → startup frame
    → authentication round(s) → ReadyForQuery → ``PgConn``

If any step fails the stream is closed and the error propagates unchanged;
a half‑built ``PgConn`` never reaches the caller.
"""

from __future__ import annotations

import logging
import socket
from typing import Any, Callable, Optional

from pglink.auth import respond_to_challenge
from pglink.config import ConnConfig
from pglink.exceptions import ConfigurationError, PgError, UnexpectedMessageError
from pglink.frontend import Frontend
from pglink.messages import (
    PROTOCOL_VERSION,
    Authentication,
    BackendKeyData,
    BackendMessage,
    ErrorResponse,
    FrontendMessage,
    ParameterStatus,
    ReadyForQuery,
    StartupMessage,
    Terminate,
)
from pglink.tls import negotiate_tls

logger = logging.getLogger("pglink.conn")

FrontendFactory = Callable[[socket.socket], Any]


class PgConn:
    """An authenticated session, ready for queries.

    Attributes
    ----------
    stream:
        The underlying TCP, Unix or TLS socket.  Owned by this object.
    pid:
        Backend process id.
    secret_key:
        Key for cancel requests (used by external cancellation code).
    tx_status:
        Transaction status from the latest ReadyForQuery (``"I"``, ``"T"``
        or ``"E"``).
    config:
        The defaulted settings this session was opened with.

    Not safe for concurrent use.
    """

    def __init__(self, stream: socket.socket, frontend: Any, config: ConnConfig) -> None:
        self.stream = stream
        self.frontend = frontend
        self.config = config
        self.pid = 0
        self.secret_key = 0
        self.tx_status = ""
        self._parameter_statuses: dict[str, str] = {}
        self._closed = False

    # -- public ------------------------------------------------------------

    def receive_message(self) -> BackendMessage:
        """Block for the next backend message and return it.

        ReadyForQuery and ParameterStatus also update :attr:`tx_status` and
        the parameter table before being returned.
        """
        msg = self.frontend.receive()

        if isinstance(msg, ReadyForQuery):
            self.tx_status = msg.tx_status
        elif isinstance(msg, ParameterStatus):
            self._parameter_statuses[msg.name] = msg.value

        return msg

    def send_message(self, msg: FrontendMessage) -> None:
        self.frontend.send(msg)

    def parameter_status(self, key: str) -> str:
        """Return a server‑reported parameter (e.g. ``server_version``), or ``""``."""
        return self._parameter_statuses.get(key, "")

    @property
    def parameter_statuses(self) -> dict[str, str]:
        """Copy of every parameter the server has reported so far."""
        return dict(self._parameter_statuses)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Send Terminate and close the stream.  Safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        try:
            self.frontend.send(Terminate())
        except Exception:
            logger.warning("Error sending terminate to pid=%d", self.pid, exc_info=True)

        self._close_stream()
        logger.debug("Connection to pid=%d closed", self.pid)

    # -- context manager ---------------------------------------------------

    def __enter__(self) -> "PgConn":
        return self

    def __exit__(self, *_exc: Any) -> None:
        self.close()

    # -- handshake ---------------------------------------------------------

    def _startup(self) -> None:
        """Send the startup frame and drive the handshake to ReadyForQuery."""
        cfg = self.config
        params = dict(cfg.runtime_params)
        params["user"] = cfg.user
        if cfg.database:
            params["database"] = cfg.database

        self.send_message(StartupMessage(protocol_version=PROTOCOL_VERSION, parameters=params))

        while True:
            msg = self.receive_message()

            if isinstance(msg, BackendKeyData):
                self.pid = msg.process_id
                self.secret_key = msg.secret_key
            elif isinstance(msg, Authentication):
                respond_to_challenge(
                    msg,
                    user=cfg.user,
                    password=cfg.password,
                    send=self.send_message,
                )
            elif isinstance(msg, ReadyForQuery):
                return
            elif isinstance(msg, ParameterStatus):
                # Recorded by receive_message.
                pass
            elif isinstance(msg, ErrorResponse):
                raise PgError.from_response(msg)
            else:
                raise UnexpectedMessageError(msg)

    def _close_stream(self) -> None:
        try:
            self.frontend.close()
        except Exception:
            logger.debug("Error releasing frontend", exc_info=True)
        try:
            self.stream.close()
        except OSError:
            logger.debug("Error closing stream", exc_info=True)


def connect(
    config: ConnConfig,
    *,
    frontend_factory: Optional[FrontendFactory] = None,
) -> PgConn:
    """Open, authenticate and return a new :class:`PgConn`.

    *frontend_factory* builds the message channel from the (possibly TLS)
    socket; it defaults to :class:`pglink.frontend.Frontend`.
    """
    cfg = config.with_defaults()
    dial = cfg.dial
    if dial is None:
        raise ConfigurationError("No dial strategy configured")
    network, address = cfg.network_address()

    stream = dial(network, address)
    try:
        if cfg.ssl_context is not None:
            stream = negotiate_tls(stream, cfg.ssl_context, cfg.server_hostname(network))
        frontend = (frontend_factory or Frontend)(stream)
    except BaseException:
        stream.close()
        raise

    conn = PgConn(stream, frontend, cfg)
    try:
        conn._startup()
    except BaseException:
        conn._closed = True
        conn._close_stream()
        raise

    logger.info(
        "Connected to %s %s (user=%s, pid=%d, server_version=%s)",
        network,
        address,
        cfg.user,
        conn.pid,
        conn.parameter_status("server_version") or "unknown",
    )
    return conn
