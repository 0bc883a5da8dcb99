from __future__ import annotations

import dataclasses
from typing import Callable, Dict, Optional

from realmauth.logging import get_logger
from realmauth.service.errors import NoSuchEntityError, NotAuthorizedError
from realmauth.service.ids import IdGenerator, now_seconds
from realmauth.storage.documents import (
    AUTHORIZATIONS,
    DocumentStore,
    decode_key,
    native_key,
)
from realmauth.storage.errors import ConsistencyError
from realmauth.storage.loader import DEFAULT_TTL_SECONDS, Loader
from realmauth.storage.models import (
    DEFAULT_TOKEN_TYPE,
    Authorization,
    AuthorizationRequest,
    named_key,
)

logger = get_logger(__name__)

SECONDS_PER_DAY = 86400


class AuthorizationStore:
    """Authorizations with a primary cache and a token cache.

    The token cache sits on the request path of every scope check, so it is
    keyed by the bearer token itself. Every write or delete drops the entries
    for both the stored and the new token.
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
        self.loader: Loader[Authorization] = Loader(
            self._load_authorization, cache_ttl_seconds, name="authorizations"
        )
        self.tokens: Loader[Authorization] = Loader(
            self._load_by_token, cache_ttl_seconds, name="authorization_tokens"
        )

    def _load_authorization(self, encoded_key: str) -> Optional[Authorization]:
        collection, key = decode_key(encoded_key)
        doc = self.store.get(collection, key)
        if doc is None:
            return None
        return Authorization.from_doc(doc)

    def _load_by_token(self, token: str) -> Optional[Authorization]:
        docs = self.store.query(AUTHORIZATIONS, token=token)
        if not docs:
            return None
        if len(docs) > 1:
            raise ConsistencyError(
                "multiple authorizations share a token", {"matches": len(docs)}
            )
        return Authorization.from_doc(docs[0])

    def new_authorization(
        self, request: AuthorizationRequest, expires_days: int
    ) -> Authorization:
        now = self.clock()
        return Authorization(
            realm=request.realm,
            client_id=request.client_id,
            user_id=request.user_id,
            token=self.ids.opaque_token(),
            token_type=DEFAULT_TOKEN_TYPE,
            scope=request.scope,
            expires=now + expires_days * SECONDS_PER_DAY,
            revoked=False,
            created=now,
            updated=now,
        )

    def lookup_authorization(self, realm: str, client_id: str) -> Optional[Authorization]:
        auth = self.loader.load(native_key(AUTHORIZATIONS, named_key(realm, client_id)))
        return dataclasses.replace(auth) if auth is not None else None

    def find_authorization_by_token(self, token: str) -> Optional[Authorization]:
        if not token:
            return None
        auth = self.tokens.load(token)
        return dataclasses.replace(auth) if auth is not None else None

    def create_or_update_authorization(self, auth: Authorization) -> None:
        """Overwrite the stored authorization with ``auth``.

        This is not a partial update: callers read, modify and write back.
        """
        key = auth.key()
        previous = self.store.get(AUTHORIZATIONS, key)
        auth.updated = self.clock()
        self.store.put(AUTHORIZATIONS, key, auth.to_doc())
        self.loader.invalidate(native_key(AUTHORIZATIONS, key))
        if previous is not None and previous.get("token"):
            self.tokens.invalidate(previous["token"])
        self.tokens.invalidate(auth.token)

    def delete_authorization(self, realm: str, client_id: str) -> Authorization:
        """Remove an authorization; raises NoSuchEntityError if absent."""
        auth = self.lookup_authorization(realm, client_id)
        if auth is None:
            raise NoSuchEntityError(detail={"realm": realm, "client_id": client_id})
        self.store.delete(AUTHORIZATIONS, auth.key())
        self.loader.invalidate(native_key(AUTHORIZATIONS, auth.key()))
        self.tokens.invalidate(auth.token)
        logger.info("authorization_deleted", realm=realm, client_id=client_id)
        return auth

    def get_client_id(self, token: str) -> str:
        auth = self.find_authorization_by_token(token)
        if auth is None:
            raise NotAuthorizedError()
        return auth.client_id

    def stats(self) -> Dict[str, dict]:
        return {
            "authorizations": self.loader.snapshot(),
            "authorization_tokens": self.tokens.snapshot(),
        }


__all__ = ["AuthorizationStore", "SECONDS_PER_DAY"]
