from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

ACCOUNTS = "ACCOUNTS"
AUTHORIZATIONS = "AUTHORIZATIONS"


class DocumentStore(Protocol):
    """Storage collaborator: documents addressed by (collection, key).

    ``put`` overwrites (last write wins); ``query`` applies exact-match
    equality filters on document fields.
    """

    def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]: ...

    def put(self, collection: str, key: str, doc: Dict[str, Any]) -> None: ...

    def delete(self, collection: str, key: str) -> bool: ...

    def query(self, collection: str, **filters: Any) -> List[Dict[str, Any]]: ...


def native_key(collection: str, key: str) -> str:
    """Encode a collection-qualified key, e.g. ``ACCOUNTS/realm.client``."""
    return f"{collection}/{key}"


def decode_key(encoded: str) -> tuple[str, str]:
    collection, sep, key = encoded.partition("/")
    if not sep or not collection or not key:
        raise ValueError(f"invalid encoded key: {encoded!r}")
    return collection, key


def matches(doc: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    return all(doc.get(field) == value for field, value in filters.items())


__all__ = [
    "ACCOUNTS",
    "AUTHORIZATIONS",
    "DocumentStore",
    "native_key",
    "decode_key",
    "matches",
]
