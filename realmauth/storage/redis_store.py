from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from redis import Redis

from realmauth.logging import get_logger
from realmauth.storage.documents import matches

logger = get_logger(__name__)


class RedisStore:
    """Redis-backed document store.

    Each collection is one hash (``<prefix>:<collection>``) whose fields are
    document keys and whose values are JSON documents. ``query`` walks the
    hash with HSCAN and filters client-side, which is fine for the
    at-most-one-row lookups done by the account and authorization stores.
    """

    DEFAULT_OPERATION_TIMEOUT = 5.0  # seconds

    def __init__(
        self,
        redis_url: Optional[str] = None,
        *,
        client: Optional[Redis] = None,
        prefix: str = "realmauth",
        socket_timeout: float = DEFAULT_OPERATION_TIMEOUT,
    ) -> None:
        if client is None and not redis_url:
            raise ValueError("RedisStore needs a redis_url or a client")
        self.redis_url = redis_url
        self.prefix = prefix
        # socket timeouts are the deadline for every storage call
        self.client = client or Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    def _hash(self, collection: str) -> str:
        return f"{self.prefix}:{collection}"

    def verify_connection(self) -> None:
        """Assert Redis connectivity before serving requests."""
        self.client.ping()

    def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        raw = self.client.hget(self._hash(collection), key)
        if raw is None:
            return None
        return json.loads(raw)

    def put(self, collection: str, key: str, doc: Dict[str, Any]) -> None:
        self.client.hset(self._hash(collection), key, json.dumps(doc, sort_keys=True))

    def delete(self, collection: str, key: str) -> bool:
        return bool(self.client.hdel(self._hash(collection), key))

    def query(self, collection: str, **filters: Any) -> List[Dict[str, Any]]:
        results: List[Dict[str, Any]] = []
        for _, raw in self.client.hscan_iter(self._hash(collection)):
            try:
                doc = json.loads(raw)
            except json.JSONDecodeError:
                logger.error("redis_store_corrupt_document", collection=collection)
                raise
            if matches(doc, filters):
                results.append(doc)
        return results

    def close(self) -> None:
        self.client.close()


__all__ = ["RedisStore"]
