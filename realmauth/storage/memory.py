from __future__ import annotations

import copy
import json
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from realmauth.logging import get_logger
from realmauth.storage.documents import ACCOUNTS, AUTHORIZATIONS, matches


class MemoryStore:
    """In-memory document store for tests and single-process deployments.

    When ``fs_root`` is set, every write snapshots the full state to
    ``<fs_root>/state/documents.json`` and the constructor reloads it.
    """

    def __init__(self, fs_root: Optional[str] = None) -> None:
        self.logger = get_logger(__name__)
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {
            ACCOUNTS: {},
            AUTHORIZATIONS: {},
        }
        # RLock for all data operations to ensure thread safety
        self._data_lock = threading.RLock()
        self.fs_root = Path(fs_root) if fs_root else None
        if self.fs_root is not None:
            self.fs_root.mkdir(parents=True, exist_ok=True)
            if self._load_state():
                self.logger.info(
                    "memory_store_state_loaded",
                    accounts=len(self.collections[ACCOUNTS]),
                    authorizations=len(self.collections[AUTHORIZATIONS]),
                )

    def _state_path(self) -> Path:
        assert self.fs_root is not None
        state_dir = self.fs_root / "state"
        state_dir.mkdir(parents=True, exist_ok=True)
        return state_dir / "documents.json"

    def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        with self._data_lock:
            doc = self.collections.get(collection, {}).get(key)
            # hand out copies so callers never mutate stored state in place
            return copy.deepcopy(doc) if doc is not None else None

    def put(self, collection: str, key: str, doc: Dict[str, Any]) -> None:
        with self._data_lock:
            self.collections.setdefault(collection, {})[key] = copy.deepcopy(doc)
            self._persist_state()

    def delete(self, collection: str, key: str) -> bool:
        with self._data_lock:
            removed = self.collections.get(collection, {}).pop(key, None)
            if removed is None:
                return False
            self._persist_state()
            return True

    def query(self, collection: str, **filters: Any) -> List[Dict[str, Any]]:
        with self._data_lock:
            return [
                copy.deepcopy(doc)
                for doc in self.collections.get(collection, {}).values()
                if matches(doc, filters)
            ]

    def count(self, collection: str) -> int:
        with self._data_lock:
            return len(self.collections.get(collection, {}))

    def _persist_state(self) -> None:
        if self.fs_root is None:
            return
        path = self._state_path()
        try:
            path.write_text(json.dumps(self.collections, indent=2, sort_keys=True))
        except Exception as exc:
            raise RuntimeError(f"failed to persist in-memory state: {exc}") from exc

    def _load_state(self) -> bool:
        path = self._state_path()
        # Use try-except instead of exists() to avoid TOCTOU race condition
        try:
            data = json.loads(path.read_text())
        except FileNotFoundError:
            return False
        for collection, docs in data.items():
            self.collections[collection] = dict(docs)
        return True


__all__ = ["MemoryStore"]
