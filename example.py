#!/usr/bin/env python3
"""Example usage of pglink.

``connect()`` returns once the server has sent its first ReadyForQuery.
The handle exposes the backend pid/secret key, the transaction status and
every parameter the server reported during startup.
"""

import logging
import ssl

import pglink

logging.basicConfig(level=logging.DEBUG)

# ── Unix socket, OS user, trust/peer auth ───────────────────────────────
with pglink.connect(host="/var/run/postgresql", database="postgres") as conn:
    print("UNIX:", conn.pid, conn.tx_status, conn.parameter_status("server_version"))

# ── TCP with password auth and session defaults ─────────────────────────
conn = pglink.connect(
    host="localhost",
    port=5432,
    user="postgres",
    password="postgres",
    database="app",
    runtime_params={"application_name": "pglink-example", "search_path": "app,public"},
)
try:
    print("TCP:", conn.parameter_statuses)
finally:
    conn.close()

# ── TLS, settings from PGHOST / PGUSER / PGPASSWORD … ───────────────────
ctx = ssl.create_default_context()
try:
    with pglink.connect(pglink.ConnConfig.from_environ(ssl_context=ctx)) as conn:
        print("TLS:", conn.stream.version())
except pglink.TLSRefusedError:
    print("TLS: server does not accept encrypted connections")
except pglink.PgError as exc:
    print("TLS: server said", exc.code, exc.message)
