from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Optional

from realmauth.logging import get_logger
from realmauth.service.errors import (
    BadRequestError,
    NoScopeError,
    NoSuchEntityError,
    NoTokenError,
    NotAuthorizedError,
)
from realmauth.service.ids import now_seconds
from realmauth.service.notify import Notifier
from realmauth.service.scope import DEFAULT_SCOPE, has_scope, normalize_scope
from realmauth.storage.accounts import AccountStore
from realmauth.storage.authorizations import SECONDS_PER_DAY, AuthorizationStore
from realmauth.storage.models import (
    Account,
    AccountStatus,
    Authorization,
    AuthorizationRequest,
)

logger = get_logger(__name__)

DEFAULT_AUTHENTICATION_EXPIRATION = 10  # minutes, challenge and temporary token
DEFAULT_AUTHORIZATION_EXPIRATION = 90  # days, bearer token


class AuthStatus(IntEnum):
    """Outcome of a protocol operation, numbered like the HTTP status it maps to."""

    OK = 200
    CREATED = 201
    NO_CONTENT = 204
    TEMPORARY_REDIRECT = 307
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404


@dataclass
class AuthResult:
    status: AuthStatus
    reason: str = ""
    account: Optional[Account] = None
    authorization: Optional[Authorization] = None

    @property
    def ok(self) -> bool:
        return self.status < 400


def extract_bearer_token(header: Optional[str]) -> str:
    """Return the token of an ``Authorization: Bearer <token>`` header."""
    if not header:
        raise NoTokenError()
    parts = header.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        raise NoTokenError()
    return parts[1]


class TokenExchangeProtocol:
    """Login, confirmation, token exchange, logout and block transitions.

    Account lifecycle::

        UNCONFIRMED --confirm--> LOGGED_OUT --exchange--> ACTIVE
             ^                      ^   |                   |
             +---- login request    |   +-- login request   |
                                    +------- logout --------+
        any --block--> BLOCKED

    Result discipline:
    - lookups that find nothing yield ``None`` internally and map to a
      NOT_FOUND or UNAUTHORIZED result, never an exception
    - unmet preconditions return an ``AuthResult`` with a 4xx status
    - an entity that must exist but does not raises ``NoSuchEntityError``
    - malformed input raises ``BadRequestError``/``NoTokenError``/``NoScopeError``
    - storage and notification failures propagate unchanged

    The account and the authorization are written separately. A failure
    between the two writes leaves them inconsistent; nothing here retries.
    """

    def __init__(
        self,
        accounts: AccountStore,
        authorizations: AuthorizationStore,
        notifier: Notifier,
        *,
        clock: Callable[[], int] = now_seconds,
        authentication_expiration: int = DEFAULT_AUTHENTICATION_EXPIRATION,
        authorization_expiration: int = DEFAULT_AUTHORIZATION_EXPIRATION,
        default_scope: str = DEFAULT_SCOPE,
    ) -> None:
        self.accounts = accounts
        self.authorizations = authorizations
        self.notifier = notifier
        self.clock = clock
        self.authentication_expiration = authentication_expiration
        self.authorization_expiration = authorization_expiration
        self.default_scope = default_scope

    @staticmethod
    def _require(realm: str, user_id: str) -> None:
        if not realm or not user_id:
            raise BadRequestError("realm and user_id are required")

    def login_request(self, realm: str, user_id: str) -> AuthResult:
        """Start a login for (realm, user_id).

        CREATED: a new account was created or an unconfirmed one got a new
        challenge. NO_CONTENT: a confirmed, logged out account was sent a
        temporary token. FORBIDDEN: the account is already logged in or is
        disabled.

        A BLOCKED or DEACTIVATED account is refused before any other check,
        so a disabled account that never confirmed gets FORBIDDEN rather than
        a renewed challenge.
        """
        self._require(realm, user_id)
        account = self.accounts.find_account_by_user_id(realm, user_id)

        if account is None:
            account = self.accounts.create_account(
                realm, user_id, self.authentication_expiration
            )
            self.notifier.send_challenge(account)
            return AuthResult(AuthStatus.CREATED, "account_created", account=account)

        if account.status in (AccountStatus.BLOCKED, AccountStatus.DEACTIVATED):
            logger.warning(
                "login_rejected_disabled",
                realm=realm,
                client_id=account.client_id,
                status=int(account.status),
            )
            return AuthResult(AuthStatus.FORBIDDEN, "account_disabled", account=account)

        if account.confirmed == 0:
            account = self.accounts.reset_account_challenge(
                account, self.authentication_expiration
            )
            self.notifier.send_challenge(account)
            logger.info("challenge_renewed", realm=realm, client_id=account.client_id)
            return AuthResult(AuthStatus.CREATED, "challenge_renewed", account=account)

        if account.status != AccountStatus.LOGGED_OUT:
            return AuthResult(AuthStatus.FORBIDDEN, "already_authorized", account=account)

        account = self.accounts.reset_temporary_token(
            account, self.authentication_expiration
        )
        self.notifier.send_token(account)
        logger.info("temporary_token_issued", realm=realm, client_id=account.client_id)
        return AuthResult(AuthStatus.NO_CONTENT, "token_sent", account=account)

    def confirm_challenge(self, token: str) -> AuthResult:
        """Consume a confirmation challenge.

        Raises NoTokenError for an empty token. UNAUTHORIZED if no account
        holds the token, FORBIDDEN if it expired (nothing is changed).
        """
        if not token:
            raise NoTokenError()
        account = self.accounts.find_account_by_token(token)
        if account is None:
            return AuthResult(AuthStatus.UNAUTHORIZED, "unknown_token")

        now = self.clock()
        if account.expires < now:
            return AuthResult(AuthStatus.FORBIDDEN, "token_expired", account=account)

        account.confirmed = now
        account.expires = 0
        account.status = AccountStatus.LOGGED_OUT
        account.token = ""
        self.accounts.update_account(account)
        logger.info("challenge_confirmed", realm=account.realm, client_id=account.client_id)
        return AuthResult(AuthStatus.NO_CONTENT, "confirmed", account=account)

    def confirm_login(self, token: str) -> AuthResult:
        """Confirm a challenge and immediately send a temporary token.

        This is the flow behind the confirmation link: on success the
        returned account carries the new ``tt.`` token.
        """
        result = self.confirm_challenge(token)
        if result.status != AuthStatus.NO_CONTENT:
            return result
        account = self.accounts.reset_temporary_token(
            result.account, self.authentication_expiration
        )
        self.notifier.send_token(account)
        return AuthResult(AuthStatus.NO_CONTENT, "token_sent", account=account)

    def exchange_token(
        self, request: AuthorizationRequest, login_from: str = ""
    ) -> AuthResult:
        """Swap a temporary token for a bearer authorization.

        NOT_FOUND if there is no account, FORBIDDEN if it is blocked or
        deactivated, UNAUTHORIZED if the token is wrong or expired. Raises
        NoScopeError on a first exchange without scope. On OK the result
        carries the authorization with its rotated token.
        """
        self._require(request.realm, request.user_id)
        if not request.token:
            raise BadRequestError("token is required")

        account = self.accounts.find_account_by_user_id(request.realm, request.user_id)
        if account is None:
            return AuthResult(AuthStatus.NOT_FOUND, "unknown_account")

        if account.status in (AccountStatus.BLOCKED, AccountStatus.DEACTIVATED):
            logger.warning(
                "exchange_rejected_disabled",
                realm=request.realm,
                client_id=account.client_id,
                status=int(account.status),
            )
            return AuthResult(AuthStatus.FORBIDDEN, "account_disabled", account=account)

        now = self.clock()
        if account.expires < now or account.token != request.token:
            logger.warning(
                "exchange_rejected", realm=request.realm, client_id=account.client_id
            )
            return AuthResult(AuthStatus.UNAUTHORIZED, "invalid_token")

        auth = self.authorizations.lookup_authorization(account.realm, account.client_id)
        if auth is None:
            scope = normalize_scope(request.scope)
            if not scope:
                raise NoScopeError()
            auth = self.authorizations.new_authorization(
                dataclasses.replace(request, client_id=account.client_id, scope=scope),
                self.authorization_expiration,
            )
        auth.token = self.authorizations.ids.opaque_token()
        auth.revoked = False
        auth.expires = now + self.authorization_expiration * SECONDS_PER_DAY
        self.authorizations.create_or_update_authorization(auth)

        account.status = AccountStatus.ACTIVE
        account.last_login = now
        account.login_count += 1
        account.login_from = login_from
        account.token = ""
        account.expires = 0
        self.accounts.update_account(account)

        logger.info(
            "token_exchanged",
            realm=account.realm,
            client_id=account.client_id,
            login_count=account.login_count,
        )
        return AuthResult(AuthStatus.OK, "authorized", account=account, authorization=auth)

    def _revoke(self, account: Account) -> Optional[Authorization]:
        auth = self.authorizations.lookup_authorization(account.realm, account.client_id)
        if auth is not None:
            auth.revoked = True
            self.authorizations.create_or_update_authorization(auth)
        return auth

    def logout(self, realm: str, client_id: str) -> AuthResult:
        """Log an account out and revoke its authorization.

        Raises NoSuchEntityError if the account does not exist. FORBIDDEN
        for blocked, deactivated or unconfirmed accounts.
        """
        account = self.accounts.lookup_account(realm, client_id)
        if account is None:
            raise NoSuchEntityError(detail={"realm": realm, "client_id": client_id})
        if account.status < 0:
            return AuthResult(AuthStatus.FORBIDDEN, "account_disabled", account=account)

        account.status = AccountStatus.LOGGED_OUT
        self.accounts.update_account(account)
        auth = self._revoke(account)
        logger.info("account_logged_out", realm=realm, client_id=client_id)
        return AuthResult(
            AuthStatus.NO_CONTENT, "logged_out", account=account, authorization=auth
        )

    def logout_with_token(self, realm: str, user_id: str, bearer: str) -> AuthResult:
        """Log out the account behind ``bearer`` after checking it is (realm, user_id)'s."""
        self._require(realm, user_id)
        auth = self.authorizations.find_authorization_by_token(bearer)
        if auth is None:
            raise NotAuthorizedError()
        if auth.realm != realm or auth.user_id != user_id:
            raise BadRequestError("token does not belong to this account")
        return self.logout(auth.realm, auth.client_id)

    def block(self, realm: str, client_id: str) -> AuthResult:
        """Block an account, revoke its authorization and drop any pending token."""
        account = self.accounts.lookup_account(realm, client_id)
        if account is None:
            raise NoSuchEntityError(detail={"realm": realm, "client_id": client_id})

        auth = self._revoke(account)
        account.status = AccountStatus.BLOCKED
        account.token = ""
        account.expires = 0
        self.accounts.update_account(account)
        logger.warning("account_blocked", realm=realm, client_id=client_id)
        return AuthResult(
            AuthStatus.NO_CONTENT, "blocked", account=account, authorization=auth
        )

    def delete_account(self, realm: str, client_id: str) -> AuthResult:
        """Administrative delete of an account and its authorization."""
        account = self.accounts.delete_account(realm, client_id)
        auth = None
        if self.authorizations.lookup_authorization(realm, client_id) is not None:
            auth = self.authorizations.delete_authorization(realm, client_id)
        return AuthResult(
            AuthStatus.NO_CONTENT, "deleted", account=account, authorization=auth
        )

    def check_authorization(self, bearer: str, scope: str) -> Authorization:
        """Gate an API call: the bearer must be valid, active and hold ``scope``.

        Raises NotAuthorizedError otherwise.
        """
        auth = self.authorizations.find_authorization_by_token(bearer)
        if auth is None or not auth.is_valid(self.clock()):
            raise NotAuthorizedError()

        account = self.accounts.find_account_by_user_id(auth.realm, auth.user_id)
        if account is None or account.status != AccountStatus.ACTIVE:
            raise NotAuthorizedError("not logged in")

        if not has_scope(auth.scope, scope):
            logger.info(
                "scope_denied", realm=auth.realm, client_id=auth.client_id, scope=scope
            )
            raise NotAuthorizedError("insufficient scope")
        return auth


__all__ = [
    "AuthStatus",
    "AuthResult",
    "TokenExchangeProtocol",
    "extract_bearer_token",
    "DEFAULT_AUTHENTICATION_EXPIRATION",
    "DEFAULT_AUTHORIZATION_EXPIRATION",
]
