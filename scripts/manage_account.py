#!/usr/bin/env python3
"""Inspect, block or delete an account.

Usage:
    python scripts/manage_account.py show --realm acme --user-id ann@example.com
    python scripts/manage_account.py block --realm acme --user-id ann@example.com
    python scripts/manage_account.py delete --realm acme --user-id ann@example.com --dry-run

Environment Variables:
    REDIS_URL: Redis connection string (optional, uses memory store if not set)
    SHARED_FS_ROOT: Snapshot directory for the memory store
"""
from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

COMMANDS = ("show", "block", "delete")


def _describe(runtime, account) -> dict:
    from realmauth.logging import redact_token

    auth = runtime.authorizations.lookup_authorization(account.realm, account.client_id)
    doc = account.to_doc()
    doc["token"] = redact_token(doc["token"])
    result = {"account": doc, "authorization": None}
    if auth is not None:
        auth_doc = auth.to_doc()
        auth_doc["token"] = redact_token(auth_doc["token"])
        result["authorization"] = auth_doc
    return result


def manage_account(runtime, command: str, realm: str, user_id: str, dry_run: bool = False) -> dict:
    """Run ``command`` for (realm, user_id).

    Returns a dict with ``status`` one of 'shown', 'blocked', 'deleted',
    'dry_run' or 'not_found'.
    """
    account = runtime.accounts.find_account_by_user_id(realm, user_id)
    if account is None:
        print(f"No account for {user_id} in realm {realm}")
        return {"status": "not_found", "realm": realm, "user_id": user_id}

    if command == "show":
        return {"status": "shown", **_describe(runtime, account)}

    if dry_run:
        print(f"[DRY RUN] Would {command} account {account.client_id} in realm {realm}")
        return {"status": "dry_run", "client_id": account.client_id}

    if command == "block":
        runtime.protocol.block(realm, account.client_id)
        print(f"Blocked account {account.client_id} in realm {realm}")
        return {"status": "blocked", "client_id": account.client_id}

    runtime.protocol.delete_account(realm, account.client_id)
    print(f"Deleted account {account.client_id} in realm {realm}")
    return {"status": "deleted", "client_id": account.client_id}


def main(argv=None, runtime=None) -> int:
    parser = argparse.ArgumentParser(
        description="Manage realmauth accounts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("--realm", required=True)
    parser.add_argument("--user-id", required=True)
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without making changes",
    )
    args = parser.parse_args(argv)

    if runtime is None:
        if not os.environ.get("REDIS_URL"):
            os.environ["USE_MEMORY_STORE"] = "true"
            print("Note: Using in-memory store (set REDIS_URL for persistence)")

        # Import here to avoid loading config before env vars are set
        from realmauth.service.runtime import Runtime

        runtime = Runtime()

    try:
        result = manage_account(runtime, args.command, args.realm, args.user_id, args.dry_run)
    finally:
        runtime.close()

    if result["status"] == "shown":
        print(json.dumps({k: v for k, v in result.items() if k != "status"}, indent=2))
    return 1 if result["status"] == "not_found" else 0


if __name__ == "__main__":
    sys.exit(main())
