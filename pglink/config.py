"""Connection settings, address resolution and defaulting.

``ConnConfig`` is a plain keyword‑constructed settings object.  Before dialing,
:meth:`ConnConfig.with_defaults` fills in the user, port and dialer; the
caller's instance is never modified.
"""

from __future__ import annotations

import dataclasses
import getpass
import logging
import os
import socket
import ssl
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional

from pglink.dial import Dialer
from pglink.exceptions import ConfigurationError

logger = logging.getLogger("pglink.config")

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

_DEFAULT_HOST = "localhost"
_DEFAULT_PORT = 5432
_DEFAULT_KEEPALIVE = 300.0  # seconds

SOCKET_FILE_PREFIX = ".s.PGSQL."

DialFunc = Callable[[str, str], socket.socket]
"""``dial(network, address)`` → connected stream socket."""

IdentityProvider = Callable[[], str]
"""Returns the name of the current OS user."""


def os_user() -> str:
    """Default identity provider: the user this process runs as."""
    try:
        return getpass.getuser()
    except (OSError, KeyError, ImportError) as exc:
        raise ConfigurationError(f"Cannot determine current OS user: {exc}") from exc


@dataclass
class ConnConfig:
    """Settings for a single connection attempt.

    Parameters
    ----------
    host:
        Host name or IP address, or the path to a Unix socket directory
        (e.g. ``/var/run/postgresql``) or socket file.
    port:
        Server port; ``0`` means 5432.
    database:
        Database name.  Empty lets the server pick (usually the user name).
    user:
        Role name.  Empty means the current OS user.
    password:
        Used for cleartext and MD5 authentication.
    ssl_context:
        TLS policy.  ``None`` disables TLS.
    tls_server_name:
        Host name used for SNI and certificate checks.  Defaults to *host*
        for TCP connections.
    dial:
        Opens the raw stream.  Defaults to :class:`pglink.dial.Dialer`.
    runtime_params:
        Run‑time parameters sent as session defaults (e.g. ``search_path``
        or ``application_name``).
    identity:
        Supplies the user name when *user* is empty.
    """

    host: str = _DEFAULT_HOST
    port: int = 0
    database: str = ""
    user: str = ""
    password: str = field(default="", repr=False)
    ssl_context: Optional[ssl.SSLContext] = None
    tls_server_name: Optional[str] = None
    dial: Optional[DialFunc] = None
    runtime_params: dict[str, str] = field(default_factory=dict)
    identity: IdentityProvider = os_user

    # -- construction ------------------------------------------------------

    @classmethod
    def from_environ(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: object,
    ) -> "ConnConfig":
        """Build a config from the libpq ``PG*`` environment variables.

        Recognised: ``PGHOST``, ``PGPORT``, ``PGDATABASE``, ``PGUSER``,
        ``PGPASSWORD`` and ``PGAPPNAME``.  Keyword *overrides* win over the
        environment.
        """
        env = os.environ if environ is None else environ
        kwargs: dict[str, object] = {}

        if env.get("PGHOST"):
            kwargs["host"] = env["PGHOST"]
        if env.get("PGPORT"):
            try:
                kwargs["port"] = int(env["PGPORT"])
            except ValueError as exc:
                raise ConfigurationError(f"Invalid PGPORT: {env['PGPORT']!r}") from exc
        if env.get("PGDATABASE"):
            kwargs["database"] = env["PGDATABASE"]
        if env.get("PGUSER"):
            kwargs["user"] = env["PGUSER"]
        if env.get("PGPASSWORD"):
            kwargs["password"] = env["PGPASSWORD"]
        if env.get("PGAPPNAME"):
            kwargs["runtime_params"] = {"application_name": env["PGAPPNAME"]}

        kwargs.update(overrides)
        return cls(**kwargs)  # type: ignore[arg-type]

    # -- public ------------------------------------------------------------

    def network_address(self) -> tuple[str, str]:
        """Return ``(network, address)`` for :attr:`dial`.

        If *host* is an existing filesystem path the network is ``"unix"``
        and ``.s.PGSQL.<port>`` is appended unless already present.
        Otherwise ``("tcp", "host:port")``.
        """
        try:
            os.stat(self.host)
        except (OSError, ValueError):
            return "tcp", f"{self.host}:{self.port}"

        address = self.host
        if "/" + SOCKET_FILE_PREFIX not in address:
            address = os.path.join(address, SOCKET_FILE_PREFIX) + str(self.port)
        return "unix", address

    def with_defaults(self) -> "ConnConfig":
        """Return a copy with user, port and dialer filled in.  Idempotent."""
        user = self.user or self.identity()
        if not user:
            raise ConfigurationError("No user given and the OS user name is empty")
        port = self.port or _DEFAULT_PORT
        dial = self.dial
        if dial is None:
            dial = Dialer(keepalive=_DEFAULT_KEEPALIVE)

        logger.debug("Config defaults resolved (user=%s, port=%d)", user, port)
        return dataclasses.replace(
            self,
            user=user,
            port=port,
            dial=dial,
            runtime_params=dict(self.runtime_params),
        )

    def server_hostname(self, network: str) -> Optional[str]:
        """Host name to present during the TLS handshake, if any."""
        if self.tls_server_name is not None:
            return self.tls_server_name
        return self.host if network == "tcp" else None
