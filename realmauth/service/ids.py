from __future__ import annotations

import secrets
import string
import time
import uuid
from typing import Callable

_SHORT_ALPHABET = string.ascii_lowercase + string.digits
SHORT_ID_LENGTH = 12


def short_id(length: int = SHORT_ID_LENGTH) -> str:
    """Random lowercase alphanumeric id, used for client ids and challenges."""
    return "".join(secrets.choice(_SHORT_ALPHABET) for _ in range(length))


def opaque_token() -> str:
    """Random bearer token. Opaque: it carries no claims and is not signed."""
    return uuid.uuid4().hex + secrets.token_hex(8)


def now_seconds() -> int:
    return int(time.time())


class IdGenerator:
    """Source of random identifiers, swappable in tests."""

    def __init__(
        self,
        *,
        short: Callable[[], str] = short_id,
        token: Callable[[], str] = opaque_token,
    ) -> None:
        self._short = short
        self._token = token

    def short_id(self) -> str:
        return self._short()

    def opaque_token(self) -> str:
        return self._token()


__all__ = ["short_id", "opaque_token", "now_seconds", "IdGenerator", "SHORT_ID_LENGTH"]
