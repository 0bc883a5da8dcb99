from __future__ import annotations

import dataclasses
import json
from typing import Callable, Dict, Optional

from realmauth.logging import get_logger
from realmauth.service.errors import AccountExistsError, NoSuchEntityError
from realmauth.service.ids import IdGenerator, now_seconds
from realmauth.storage.documents import (
    ACCOUNTS,
    DocumentStore,
    decode_key,
    native_key,
)
from realmauth.storage.errors import ConsistencyError
from realmauth.storage.loader import DEFAULT_TTL_SECONDS, Loader
from realmauth.storage.models import Account, AccountStatus, named_key

logger = get_logger(__name__)

CHALLENGE_PREFIX = "ac."
TEMPORARY_TOKEN_PREFIX = "tt."


def _user_key(realm: str, user_id: str) -> str:
    # either part may contain "."
    return json.dumps([realm, user_id])


class AccountStore:
    """Accounts with a cached primary lookup and a cached user id index.

    Caches:
    - ``loader``: native key -> Account, invalidated by every write.
    - ``user_ids``: JSON ``[realm, user_id]`` -> native key. Ordinary updates
      leave it alone because they never change the mapping; only deletes
      drop it.

    Lookups by token are not cached: the token changes on every challenge
    reset and is only consulted during the short confirmation window.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        clock: Callable[[], int] = now_seconds,
        ids: Optional[IdGenerator] = None,
        cache_ttl_seconds: float = DEFAULT_TTL_SECONDS,
    ) -> None:
        self.store = store
        self.clock = clock
        self.ids = ids or IdGenerator()
        self.loader: Loader[Account] = Loader(
            self._load_account, cache_ttl_seconds, name="accounts"
        )
        self.user_ids: Loader[str] = Loader(
            self._resolve_user_id, cache_ttl_seconds, name="account_user_ids"
        )

    # loader functions

    def _load_account(self, encoded_key: str) -> Optional[Account]:
        collection, key = decode_key(encoded_key)
        doc = self.store.get(collection, key)
        if doc is None:
            return None
        return Account.from_doc(doc)

    def _resolve_user_id(self, user_key: str) -> Optional[str]:
        realm, user_id = json.loads(user_key)
        docs = self.store.query(ACCOUNTS, realm=realm, user_id=user_id)
        if not docs:
            return None
        if len(docs) > 1:
            raise ConsistencyError(
                "multiple accounts for user id",
                {"realm": realm, "matches": len(docs)},
            )
        account = Account.from_doc(docs[0])
        return native_key(ACCOUNTS, account.key())

    # queries

    def lookup_account(self, realm: str, client_id: str) -> Optional[Account]:
        """Return the account for (realm, client_id) or None if there is none."""
        account = self.loader.load(native_key(ACCOUNTS, named_key(realm, client_id)))
        # callers get their own copy; the cached instance is never mutated
        return dataclasses.replace(account) if account is not None else None

    def find_account_by_user_id(self, realm: str, user_id: str) -> Optional[Account]:
        key = self.user_ids.load(_user_key(realm, user_id))
        if key is None:
            return None
        account = self.loader.load(key)
        return dataclasses.replace(account) if account is not None else None

    def find_account_by_token(self, token: str) -> Optional[Account]:
        if not token:
            return None
        docs = self.store.query(ACCOUNTS, token=token)
        if not docs:
            return None
        if len(docs) > 1:
            raise ConsistencyError("multiple accounts share a token", {"matches": len(docs)})
        return Account.from_doc(docs[0])

    # commands

    def create_account(
        self, realm: str, user_id: str, challenge_ttl_minutes: int
    ) -> Account:
        """Create an unconfirmed account with a fresh challenge token.

        Raises AccountExistsError if (realm, user_id) is taken. The client id
        is drawn at random until an unused one is found; there is no upper
        bound on the number of attempts.
        """
        if self.find_account_by_user_id(realm, user_id) is not None:
            raise AccountExistsError(detail={"realm": realm})

        attempts = 0
        while True:
            attempts += 1
            client_id = self.ids.short_id()
            if self.lookup_account(realm, client_id) is None:
                break
        if attempts > 1:
            logger.warning("client_id_collision", realm=realm, attempts=attempts)

        now = self.clock()
        account = Account(
            realm=realm,
            user_id=user_id,
            client_id=client_id,
            status=AccountStatus.UNCONFIRMED,
            token=self.ids.short_id(),
            expires=now + challenge_ttl_minutes * 60,
            confirmed=0,
            created=now,
            updated=now,
        )
        self.update_account(account)
        logger.info("account_created", realm=realm, client_id=client_id)
        return account

    def update_account(self, account: Account) -> None:
        """Persist ``account`` and drop its primary cache entry.

        Between the write and the invalidation there is a small window in
        which the cache still serves the previous version.
        """
        key = native_key(ACCOUNTS, account.key())
        account.updated = self.clock()
        self.store.put(ACCOUNTS, account.key(), account.to_doc())
        self.loader.invalidate(key)

    def reset_account_challenge(self, account: Account, ttl_minutes: int) -> Account:
        account.token = CHALLENGE_PREFIX + self.ids.short_id()
        account.expires = self.clock() + ttl_minutes * 60
        account.status = AccountStatus.UNCONFIRMED
        self.update_account(account)
        return account

    def reset_temporary_token(self, account: Account, ttl_minutes: int) -> Account:
        account.token = TEMPORARY_TOKEN_PREFIX + self.ids.short_id()
        account.expires = self.clock() + ttl_minutes * 60
        account.status = AccountStatus.LOGGED_OUT
        self.update_account(account)
        return account

    def delete_account(self, realm: str, client_id: str) -> Account:
        """Remove an account; raises NoSuchEntityError if it does not exist."""
        account = self.lookup_account(realm, client_id)
        if account is None:
            raise NoSuchEntityError(detail={"realm": realm, "client_id": client_id})
        self.store.delete(ACCOUNTS, account.key())
        self.loader.invalidate(native_key(ACCOUNTS, account.key()))
        self.user_ids.invalidate(_user_key(account.realm, account.user_id))
        logger.info("account_deleted", realm=realm, client_id=client_id)
        return account

    def stats(self) -> Dict[str, dict]:
        return {
            "accounts": self.loader.snapshot(),
            "account_user_ids": self.user_ids.snapshot(),
        }


__all__ = ["AccountStore", "CHALLENGE_PREFIX", "TEMPORARY_TOKEN_PREFIX"]
