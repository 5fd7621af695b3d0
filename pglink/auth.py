"""Answering the server's authentication challenges.

Supported methods:

* ``AuthenticationOk``:                nothing to send.
* ``AuthenticationCleartextPassword``: send the password as‑is.
* ``AuthenticationMD5Password``:       send ``"md5" + md5hex(md5hex(password + user) + salt)``.

Every other method raises :class:`UnknownAuthenticationError`.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Callable

from pglink.exceptions import UnknownAuthenticationError
from pglink.messages import Authentication, AuthType, FrontendMessage, PasswordMessage

logger = logging.getLogger("pglink.auth")

_MD5_PREFIX = "md5"


def hex_md5(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


def md5_password(password: str, user: str, salt: bytes) -> str:
    """Return the salted MD5 credential the server compares against."""
    inner = hex_md5((password + user).encode("utf-8"))
    return _MD5_PREFIX + hex_md5(inner.encode("ascii") + salt)


def respond_to_challenge(
    challenge: Authentication,
    *,
    user: str,
    password: str,
    send: Callable[[FrontendMessage], None],
) -> None:
    """Send the reply *challenge* asks for, if any.

    At most one frame is written through *send*.
    """
    if challenge.type == AuthType.OK:
        logger.debug("Authentication accepted")
        return

    if challenge.type == AuthType.CLEARTEXT_PASSWORD:
        logger.debug("Server requested cleartext password for user=%s", user)
        send(PasswordMessage(password))
        return

    if challenge.type == AuthType.MD5_PASSWORD:
        logger.debug("Server requested MD5 password for user=%s", user)
        send(PasswordMessage(md5_password(password, user, challenge.salt)))
        return

    raise UnknownAuthenticationError(challenge.type)
