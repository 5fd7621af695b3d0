"""PostgreSQL frontend/backend protocol frames.

Only the frames that take part in session establishment are modelled.
Backend frames are decoded by :func:`decode_backend`; anything this module
does not know about comes back as :class:`UnknownMessage` so callers can
decide what to do with it.

Wire format (backend)::

    [1B type][4B big-endian length, self-inclusive][length - 4 B body]

The startup frame is the only one without a type byte.
"""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field
from typing import Union

from pglink.exceptions import ProtocolError

PROTOCOL_VERSION = 196608  # 3.0

_HEADER_FMT = "!cI"
HEADER_SIZE = struct.calcsize(_HEADER_FMT)

# Max backend frame length guard (the server caps a single field at 1 GiB).
MAX_FRAME_LENGTH: int = 1 << 30


class AuthType(enum.IntEnum):
    """Discriminant of an Authentication ('R') frame."""

    OK = 0
    KERBEROS_V5 = 2
    CLEARTEXT_PASSWORD = 3
    MD5_PASSWORD = 5
    GSS = 7
    GSS_CONTINUE = 8
    SSPI = 9
    SASL = 10
    SASL_CONTINUE = 11
    SASL_FINAL = 12


class TxStatus:
    """Transaction status codes carried by ReadyForQuery."""

    IDLE = "I"
    IN_TRANSACTION = "T"
    FAILED = "E"


# ---------------------------------------------------------------------------
# Backend messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Authentication:
    type: int
    salt: bytes = b""


@dataclass(frozen=True, slots=True)
class BackendKeyData:
    process_id: int
    secret_key: int


@dataclass(frozen=True, slots=True)
class ParameterStatus:
    name: str
    value: str


@dataclass(frozen=True, slots=True)
class ReadyForQuery:
    tx_status: str


@dataclass(frozen=True, slots=True)
class _ResponseFields:
    """Fields shared by ErrorResponse and NoticeResponse.  Missing fields are empty."""

    severity: str = ""
    code: str = ""
    message: str = ""
    detail: str = ""
    hint: str = ""
    position: int = 0
    internal_position: int = 0
    internal_query: str = ""
    where: str = ""
    schema_name: str = ""
    table_name: str = ""
    column_name: str = ""
    data_type_name: str = ""
    constraint_name: str = ""
    file: str = ""
    line: int = 0
    routine: str = ""
    unknown_fields: dict[str, str] = field(default_factory=dict, compare=False)


@dataclass(frozen=True, slots=True)
class ErrorResponse(_ResponseFields):
    pass


@dataclass(frozen=True, slots=True)
class NoticeResponse(_ResponseFields):
    pass


@dataclass(frozen=True, slots=True)
class UnknownMessage:
    type: bytes
    body: bytes


BackendMessage = Union[
    Authentication,
    BackendKeyData,
    ParameterStatus,
    ReadyForQuery,
    ErrorResponse,
    NoticeResponse,
    UnknownMessage,
]


# Field type byte -> (attribute, is_int).  'V' (non-localized severity) is
# folded into severity when 'S' is absent.
_ERROR_FIELDS: dict[str, tuple[str, bool]] = {
    "S": ("severity", False),
    "V": ("severity", False),
    "C": ("code", False),
    "M": ("message", False),
    "D": ("detail", False),
    "H": ("hint", False),
    "P": ("position", True),
    "p": ("internal_position", True),
    "q": ("internal_query", False),
    "W": ("where", False),
    "s": ("schema_name", False),
    "t": ("table_name", False),
    "c": ("column_name", False),
    "d": ("data_type_name", False),
    "n": ("constraint_name", False),
    "F": ("file", False),
    "L": ("line", True),
    "R": ("routine", False),
}


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def _split_cstrings(body: bytes, count: int) -> list[str]:
    parts = body.split(b"\x00")
    if len(parts) < count + 1:
        raise ProtocolError(f"expected {count} null-terminated strings, got {len(parts) - 1}")
    return [p.decode("utf-8", errors="replace") for p in parts[:count]]


def _decode_authentication(body: bytes) -> Authentication:
    if len(body) < 4:
        raise ProtocolError("authentication frame too short")
    (auth_type,) = struct.unpack_from("!I", body)
    if auth_type == AuthType.MD5_PASSWORD:
        if len(body) != 8:
            raise ProtocolError("MD5 authentication frame must carry a 4-byte salt")
        return Authentication(type=auth_type, salt=body[4:8])
    return Authentication(type=auth_type, salt=b"")


def _decode_backend_key_data(body: bytes) -> BackendKeyData:
    if len(body) != 8:
        raise ProtocolError(f"backend key data must be 8 bytes, got {len(body)}")
    pid, key = struct.unpack("!II", body)
    return BackendKeyData(process_id=pid, secret_key=key)


def _decode_ready_for_query(body: bytes) -> ReadyForQuery:
    if len(body) != 1:
        raise ProtocolError(f"ready for query must be 1 byte, got {len(body)}")
    return ReadyForQuery(tx_status=body.decode("latin-1"))


def _decode_error_fields(body: bytes) -> dict:
    kwargs: dict = {}
    unknown: dict[str, str] = {}
    pos = 0
    while pos < len(body):
        code = chr(body[pos])
        if code == "\x00":
            break
        end = body.find(b"\x00", pos + 1)
        if end < 0:
            raise ProtocolError("unterminated error field")
        value = body[pos + 1 : end].decode("utf-8", errors="replace")
        pos = end + 1

        entry = _ERROR_FIELDS.get(code)
        if entry is None:
            unknown[code] = value
            continue
        attr, is_int = entry
        if code == "V" and "severity" in kwargs:
            continue
        if is_int:
            try:
                kwargs[attr] = int(value)
            except ValueError as exc:
                raise ProtocolError(f"error field {code!r} is not an integer: {value!r}") from exc
        else:
            kwargs[attr] = value
    kwargs["unknown_fields"] = unknown
    return kwargs


def decode_backend(msg_type: bytes, body: bytes) -> BackendMessage:
    """Decode one backend frame body according to its type byte."""
    if msg_type == b"R":
        return _decode_authentication(body)
    if msg_type == b"K":
        return _decode_backend_key_data(body)
    if msg_type == b"S":
        name, value = _split_cstrings(body, 2)
        return ParameterStatus(name=name, value=value)
    if msg_type == b"Z":
        return _decode_ready_for_query(body)
    if msg_type == b"E":
        return ErrorResponse(**_decode_error_fields(body))
    if msg_type == b"N":
        return NoticeResponse(**_decode_error_fields(body))
    return UnknownMessage(type=msg_type, body=body)


def unpack_header(header: bytes) -> tuple[bytes, int]:
    """Return ``(type, body_length)`` for a 5-byte backend frame header."""
    msg_type, length = struct.unpack(_HEADER_FMT, header)
    if length < 4 or length > MAX_FRAME_LENGTH:
        raise ProtocolError(f"invalid frame length {length} for type {msg_type!r}")
    return msg_type, length - 4


# ---------------------------------------------------------------------------
# Frontend messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StartupMessage:
    protocol_version: int
    parameters: dict[str, str]

    def encode(self) -> bytes:
        body = bytearray(struct.pack("!I", self.protocol_version))
        for name, value in self.parameters.items():
            body += name.encode("utf-8") + b"\x00"
            body += value.encode("utf-8") + b"\x00"
        body += b"\x00"
        return struct.pack("!I", len(body) + 4) + bytes(body)


@dataclass(frozen=True, slots=True)
class PasswordMessage:
    password: str

    def encode(self) -> bytes:
        payload = self.password.encode("utf-8") + b"\x00"
        return b"p" + struct.pack("!I", len(payload) + 4) + payload

    def __repr__(self) -> str:
        return "PasswordMessage(password=<redacted>)"


@dataclass(frozen=True, slots=True)
class Terminate:
    def encode(self) -> bytes:
        return b"X\x00\x00\x00\x04"


FrontendMessage = Union[StartupMessage, PasswordMessage, Terminate]
