from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from enum import Enum, IntEnum
from typing import Any, Dict, Optional

from realmauth.service.scope import SCOPE_API_ADMIN, has_scope


class AccountStatus(IntEnum):
    """Lifecycle states of an account. Negative values disallow logins."""

    UNCONFIRMED = -3
    BLOCKED = -2
    DEACTIVATED = -1
    LOGGED_OUT = 0
    ACTIVE = 1


class TokenType(str, Enum):
    USER = "user"
    APP = "app"
    API = "api"
    BOT = "bot"


DEFAULT_TOKEN_TYPE = TokenType.USER


def named_key(part1: str, part2: str) -> str:
    return f"{part1}.{part2}"


def _from_doc(cls, data: Dict[str, Any]):
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class Account:
    """An identity within a realm: a user, an app or a bot.

    ``token`` holds either the confirmation challenge (``ac.`` prefix after a
    reset) or the temporary token that is swapped for an authorization
    (``tt.`` prefix). It is empty while nothing is pending.
    """

    realm: str
    user_id: str
    client_id: str
    status: AccountStatus = AccountStatus.UNCONFIRMED
    token: str = ""
    expires: int = 0  # 0 == never
    confirmed: int = 0
    last_login: int = 0
    login_count: int = 0
    login_from: str = ""
    created: int = 0
    updated: int = 0

    def key(self) -> str:
        return named_key(self.realm, self.client_id)

    def equal(self, other: Optional["Account"]) -> bool:
        if other is None:
            return False
        return (
            self.realm == other.realm
            and self.client_id == other.client_id
            and self.user_id == other.user_id
        )

    def to_doc(self) -> Dict[str, Any]:
        doc = asdict(self)
        doc["status"] = int(self.status)
        return doc

    @classmethod
    def from_doc(cls, data: Dict[str, Any]) -> "Account":
        account = _from_doc(cls, data)
        account.status = AccountStatus(int(account.status))
        return account


@dataclass
class Authorization:
    """A bearer credential for one (realm, client_id) and its scopes."""

    realm: str
    client_id: str
    user_id: str
    token: str
    token_type: TokenType = DEFAULT_TOKEN_TYPE
    scope: str = ""
    expires: int = 0  # 0 == never
    revoked: bool = False
    created: int = 0
    updated: int = 0

    def key(self) -> str:
        return named_key(self.realm, self.client_id)

    def equal(self, other: Optional["Authorization"]) -> bool:
        if other is None:
            return False
        return (
            self.token == other.token
            and self.realm == other.realm
            and self.client_id == other.client_id
            and self.user_id == other.user_id
        )

    def is_valid(self, now: int) -> bool:
        if self.revoked:
            return False
        return self.expires == 0 or self.expires >= now

    def has_admin_scope(self) -> bool:
        return has_scope(self.scope, SCOPE_API_ADMIN)

    def to_doc(self) -> Dict[str, Any]:
        doc = asdict(self)
        doc["token_type"] = TokenType(self.token_type).value
        return doc

    @classmethod
    def from_doc(cls, data: Dict[str, Any]) -> "Authorization":
        auth = _from_doc(cls, data)
        auth.token_type = TokenType(auth.token_type)
        auth.revoked = bool(auth.revoked)
        return auth


@dataclass
class AuthorizationRequest:
    """A login or token exchange request from a user, app or bot."""

    realm: str
    user_id: str
    client_id: str = ""
    token: str = ""
    scope: str = ""
