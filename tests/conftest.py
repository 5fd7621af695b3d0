"""pytest fixtures and helpers shared by the pglink tests.

Provides:
- backend frame builders (``auth_ok``, ``ready_for_query`` …)
- ``ServerPair``: a socketpair whose far end plays the server
- ``FakeFrontend``: scripted message channel, no sockets involved
"""

from __future__ import annotations

import socket
import struct
from collections.abc import Iterator
from typing import Any

import pytest

from pglink.config import ConnConfig
from pglink.messages import AuthType

# ---------------------------------------------------------------------------
# Frame builders
# ---------------------------------------------------------------------------


def backend_msg(msg_type: bytes, payload: bytes = b"") -> bytes:
    return msg_type + struct.pack("!I", len(payload) + 4) + payload


def auth_ok() -> bytes:
    return backend_msg(b"R", struct.pack("!I", AuthType.OK))


def auth_cleartext() -> bytes:
    return backend_msg(b"R", struct.pack("!I", AuthType.CLEARTEXT_PASSWORD))


def auth_md5(salt: bytes) -> bytes:
    return backend_msg(b"R", struct.pack("!I", AuthType.MD5_PASSWORD) + salt)


def auth_sasl() -> bytes:
    return backend_msg(b"R", struct.pack("!I", AuthType.SASL) + b"SCRAM-SHA-256\x00\x00")


def backend_key(pid: int, secret: int) -> bytes:
    return backend_msg(b"K", struct.pack("!II", pid, secret))


def param_status(name: str, value: str) -> bytes:
    return backend_msg(b"S", name.encode() + b"\x00" + value.encode() + b"\x00")


def ready_for_query(status: bytes = b"I") -> bytes:
    return backend_msg(b"Z", status)


def error_response(fields: dict[str, str]) -> bytes:
    payload = bytearray()
    for code, value in fields.items():
        payload += code.encode() + value.encode() + b"\x00"
    payload += b"\x00"
    return backend_msg(b"E", bytes(payload))


def read_frontend_frames(data: bytes) -> list[tuple[bytes, bytes]]:
    """Split typed frontend frames (everything after the startup frame)."""
    frames = []
    pos = 0
    while pos < len(data):
        msg_type = data[pos : pos + 1]
        (length,) = struct.unpack_from("!I", data, pos + 1)
        frames.append((msg_type, data[pos + 5 : pos + 1 + length]))
        pos += 1 + length
    return frames


def split_startup(data: bytes) -> tuple[int, dict[str, str], bytes]:
    """Return ``(protocol, params, rest)`` from bytes the client wrote."""
    (length, protocol) = struct.unpack_from("!II", data)
    fields = data[8:length].split(b"\x00")
    params: dict[str, str] = {}
    for i in range(0, len(fields) - 2, 2):
        if not fields[i]:
            break
        params[fields[i].decode()] = fields[i + 1].decode()
    return protocol, params, data[length:]


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class ServerPair:
    """Two connected sockets; ``client`` is handed to pglink via ``dial``.

    Server replies are queued up front, so no thread is needed: everything
    the client writes stays buffered in ``server`` until ``written()``.
    """

    def __init__(self) -> None:
        self.client, self.server = socket.socketpair()
        self.dialed: list[tuple[str, str]] = []

    def reply(self, *frames: bytes) -> None:
        self.server.sendall(b"".join(frames))

    def dial(self, network: str, address: str) -> socket.socket:
        self.dialed.append((network, address))
        return self.client

    def written(self) -> bytes:
        self.server.setblocking(False)
        chunks = []
        while True:
            try:
                chunk = self.server.recv(65536)
            except BlockingIOError:
                break
            if not chunk:
                break
            chunks.append(chunk)
        self.server.setblocking(True)
        return b"".join(chunks)

    def close(self) -> None:
        self.client.close()
        self.server.close()


class FakeFrontend:
    """Scripted message channel that records what was sent."""

    def __init__(self, messages: list[Any]) -> None:
        self._messages = list(messages)
        self.sent: list[Any] = []
        self.closed = False

    def receive(self) -> Any:
        if not self._messages:
            raise AssertionError("FakeFrontend ran out of scripted messages")
        return self._messages.pop(0)

    def send(self, msg: Any) -> None:
        self.sent.append(msg)

    def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def server() -> Iterator[ServerPair]:
    pair = ServerPair()
    yield pair
    pair.close()


@pytest.fixture
def make_config(server: ServerPair):
    """Build a ConnConfig that dials into the ``server`` fixture."""

    def _make(**kwargs: Any) -> ConnConfig:
        kwargs.setdefault("host", "db.invalid")
        kwargs.setdefault("user", "alice")
        kwargs.setdefault("identity", lambda: "os-user")
        return ConnConfig(dial=server.dial, **kwargs)

    return _make
