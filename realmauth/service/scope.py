from __future__ import annotations

from typing import FrozenSet

DEFAULT_SCOPE = "api:read,api:write"
SCOPE_API_READ = "api:read"
SCOPE_API_WRITE = "api:write"
SCOPE_API_ADMIN = "api:admin"


def parse_scope(scopes: str) -> FrozenSet[str]:
    """Split a comma separated scope list into a set of trimmed, non-empty scopes."""
    if not scopes:
        return frozenset()
    return frozenset(part.strip() for part in scopes.split(",") if part.strip())


def has_scope(granted: str, requested: str) -> bool:
    """Return True if every scope in ``requested`` is granted.

    Both arguments are comma separated lists. Matching is exact per scope, so
    ``api:read`` is not satisfied by a grant of ``api:reading``. Empty input on
    either side never grants anything.
    """
    granted_set = parse_scope(granted)
    requested_set = parse_scope(requested)
    if not granted_set or not requested_set:
        return False
    return requested_set <= granted_set


def normalize_scope(scopes: str) -> str:
    """Canonical comma separated form: trimmed, de-duplicated, order kept."""
    seen: list[str] = []
    for part in (scopes or "").split(","):
        part = part.strip()
        if part and part not in seen:
            seen.append(part)
    return ",".join(seen)


__all__ = [
    "DEFAULT_SCOPE",
    "SCOPE_API_READ",
    "SCOPE_API_WRITE",
    "SCOPE_API_ADMIN",
    "parse_scope",
    "has_scope",
    "normalize_scope",
]
