"""Exceptions raised while establishing a PostgreSQL session.

All exceptions inherit from PgLinkError to allow catching any library error.
Transport failures (``OSError`` and friends) are *not* wrapped:
they reach the caller exactly as the socket raised them.
Secrets (passwords, password digests) are never included in exception messages.
"""

from __future__ import annotations

from typing import Any


class PgLinkError(Exception):
    """Base exception for all pglink errors."""


class ConfigurationError(PgLinkError):
    """Raised when a connection setting is invalid or cannot be defaulted."""


class TLSRefusedError(PgLinkError):
    """Raised when TLS was requested and the server declined to upgrade."""

    def __init__(self, response: bytes = b"") -> None:
        super().__init__("server refused TLS connection")
        self.response = response


class ConnectionClosedError(PgLinkError):
    """Raised when the stream ends in the middle of a frame."""


class ProtocolError(PgLinkError):
    """Raised when the server violates the expected message flow."""


class UnexpectedMessageError(ProtocolError):
    """Raised when a message arrives that the current state cannot handle."""

    def __init__(self, message: Any) -> None:
        super().__init__(f"unexpected message: {type(message).__name__}")
        self.message = message


class UnknownAuthenticationError(ProtocolError):
    """Raised when the server asks for an authentication method we do not speak."""

    def __init__(self, auth_type: int) -> None:
        super().__init__(f"received unknown authentication message (type {auth_type})")
        self.auth_type = auth_type


class PgError(PgLinkError):
    """An error reported by the server in an ErrorResponse frame.

    See https://www.postgresql.org/docs/current/protocol-error-fields.html for
    a description of each field.
    """

    def __init__(
        self,
        *,
        severity: str = "",
        code: str = "",
        message: str = "",
        detail: str = "",
        hint: str = "",
        position: int = 0,
        internal_position: int = 0,
        internal_query: str = "",
        where: str = "",
        schema_name: str = "",
        table_name: str = "",
        column_name: str = "",
        data_type_name: str = "",
        constraint_name: str = "",
        file: str = "",
        line: int = 0,
        routine: str = "",
    ) -> None:
        super().__init__(f"{severity}: {message} (SQLSTATE {code})")
        self.severity = severity
        self.code = code
        self.message = message
        self.detail = detail
        self.hint = hint
        self.position = position
        self.internal_position = internal_position
        self.internal_query = internal_query
        self.where = where
        self.schema_name = schema_name
        self.table_name = table_name
        self.column_name = column_name
        self.data_type_name = data_type_name
        self.constraint_name = constraint_name
        self.file = file
        self.line = line
        self.routine = routine

    @classmethod
    def from_response(cls, response: Any) -> "PgError":
        """Build from a decoded :class:`pglink.messages.ErrorResponse`."""
        return cls(
            severity=response.severity,
            code=response.code,
            message=response.message,
            detail=response.detail,
            hint=response.hint,
            position=response.position,
            internal_position=response.internal_position,
            internal_query=response.internal_query,
            where=response.where,
            schema_name=response.schema_name,
            table_name=response.table_name,
            column_name=response.column_name,
            data_type_name=response.data_type_name,
            constraint_name=response.constraint_name,
            file=response.file,
            line=response.line,
            routine=response.routine,
        )

