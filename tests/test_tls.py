"""Tests for the in-band TLS upgrade."""

from __future__ import annotations

import socket
import ssl
from unittest import mock

import pytest

from pglink.conn import connect
from pglink.exceptions import ConnectionClosedError, TLSRefusedError
from pglink.tls import SSL_REQUEST, negotiate_tls

from conftest import ServerPair


def test_ssl_request_frame_bytes() -> None:
    assert SSL_REQUEST == b"\x00\x00\x00\x08\x04\xd2\x16/"


@pytest.mark.parametrize("response", [b"N", b"E", b"\x00", b"s"])
def test_refusal_never_starts_tls(server: ServerPair, response: bytes) -> None:
    context = mock.Mock(spec=ssl.SSLContext)
    server.reply(response)

    with pytest.raises(TLSRefusedError) as excinfo:
        negotiate_tls(server.client, context, "db.example.com")

    assert excinfo.value.response == response
    assert str(excinfo.value) == "server refused TLS connection"
    context.wrap_socket.assert_not_called()
    assert server.written() == SSL_REQUEST


def test_accept_wraps_the_stream(server: ServerPair) -> None:
    context = mock.Mock(spec=ssl.SSLContext)
    server.reply(b"S")

    wrapped = negotiate_tls(server.client, context, "db.example.com")

    context.wrap_socket.assert_called_once_with(server.client, server_hostname="db.example.com")
    assert wrapped is context.wrap_socket.return_value


def test_eof_instead_of_response(server: ServerPair) -> None:
    context = mock.Mock(spec=ssl.SSLContext)
    server.server.shutdown(socket.SHUT_WR)

    with pytest.raises(ConnectionClosedError):
        negotiate_tls(server.client, context)
    context.wrap_socket.assert_not_called()


def test_connect_propagates_refusal_and_closes_stream(server: ServerPair, make_config) -> None:
    context = mock.Mock(spec=ssl.SSLContext)
    server.reply(b"N")

    with pytest.raises(TLSRefusedError):
        connect(make_config(ssl_context=context))

    context.wrap_socket.assert_not_called()
    assert server.client.fileno() == -1


def test_connect_uses_host_as_server_name(server: ServerPair, make_config) -> None:
    context = mock.Mock(spec=ssl.SSLContext)
    context.wrap_socket.side_effect = ssl.SSLError("handshake failed")
    server.reply(b"S")

    with pytest.raises(ssl.SSLError):
        connect(make_config(host="db.example.com", ssl_context=context))

    _, kwargs = context.wrap_socket.call_args
    assert kwargs["server_hostname"] == "db.example.com"
    assert server.client.fileno() == -1
