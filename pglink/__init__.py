"""pglink: PostgreSQL connection establishment and authentication.

Quick start::

    import pglink

    conn = pglink.connect(host="/var/run/postgresql", database="app")
    print(conn.pid, conn.parameter_status("server_version"))
    conn.close()

    # TLS, from the libpq environment variables
    import ssl
    cfg = pglink.ConnConfig.from_environ(ssl_context=ssl.create_default_context())
    with pglink.connect(cfg) as conn:
        msg = conn.receive_message()
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pglink.config import ConnConfig
from pglink.conn import PgConn
from pglink.conn import connect as _connect
from pglink.dial import Dialer
from pglink.exceptions import (
    ConfigurationError,
    ConnectionClosedError,
    PgError,
    PgLinkError,
    ProtocolError,
    TLSRefusedError,
    UnexpectedMessageError,
    UnknownAuthenticationError,
)

logger = logging.getLogger("pglink")


def connect(config: Optional[ConnConfig] = None, **kwargs: Any) -> PgConn:
    """Open an authenticated session.

    Parameters
    ----------
    config : ConnConfig, optional
        Full settings.  When omitted, a :class:`ConnConfig` is built from
        *kwargs*.
    **kwargs
        ``ConnConfig`` fields (``host``, ``port``, ``database``, ``user``,
        ``password``, ``ssl_context``, ``dial``, ``runtime_params`` …).

    Returns
    -------
    PgConn
        Session that has received its first ReadyForQuery.

    Examples
    --------
    >>> import pglink
    >>> with pglink.connect(host="localhost", user="postgres") as conn:
    ...     conn.parameter_status("server_version")
    """
    if config is None:
        config = ConnConfig(**kwargs)
    elif kwargs:
        raise TypeError("Pass either a ConnConfig or keyword settings, not both")
    return _connect(config)


__all__ = [
    # Convenience functions
    "connect",
    # Session
    "ConnConfig",
    "PgConn",
    "Dialer",
    # Exceptions
    "PgLinkError",
    "ConfigurationError",
    "ConnectionClosedError",
    "TLSRefusedError",
    "ProtocolError",
    "UnexpectedMessageError",
    "UnknownAuthenticationError",
    "PgError",
]

__version__ = "0.1.0"
