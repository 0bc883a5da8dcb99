import os
import sys
import tempfile
from itertools import count
from pathlib import Path

# Configure the environment before any realmauth import reads it
_test_tmp_dir = tempfile.mkdtemp(prefix="realmauth_test_")
os.environ.setdefault("SHARED_FS_ROOT", _test_tmp_dir)
os.environ.setdefault("TEST_MODE", "true")
os.environ.setdefault("USE_MEMORY_STORE", "true")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from realmauth.app import create_app  # noqa: E402
from realmauth.config import Settings, reset_settings_cache  # noqa: E402
from realmauth.service.ids import IdGenerator  # noqa: E402
from realmauth.service.notify import LoggingNotifier  # noqa: E402
from realmauth.service.protocol import TokenExchangeProtocol  # noqa: E402
from realmauth.service.runtime import Runtime  # noqa: E402
from realmauth.storage.accounts import AccountStore  # noqa: E402
from realmauth.storage.authorizations import AuthorizationStore  # noqa: E402
from realmauth.storage.memory import MemoryStore  # noqa: E402

START = 1_700_000_000


class FakeClock:
    """Settable clock in whole seconds."""

    def __init__(self, now: float = START) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def sequential_ids() -> IdGenerator:
    """Deterministic, unique short ids and tokens."""
    shorts = count(1)
    tokens = count(1)
    return IdGenerator(
        short=lambda: f"id{next(shorts):06d}",
        token=lambda: f"bearer{next(tokens):06d}",
    )


@pytest.fixture(autouse=True)
def reset_settings():
    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ids():
    return sequential_ids()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def accounts(store, clock, ids):
    return AccountStore(store, clock=clock, ids=ids)


@pytest.fixture
def authorizations(store, clock, ids):
    return AuthorizationStore(store, clock=clock, ids=ids)


@pytest.fixture
def notifier():
    return LoggingNotifier()


@pytest.fixture
def protocol(accounts, authorizations, notifier, clock):
    return TokenExchangeProtocol(accounts, authorizations, notifier, clock=clock)


@pytest.fixture
def settings():
    return Settings(use_memory_store=True, auth_endpoint="https://auth.example.test/")


@pytest.fixture
def runtime(settings, store, notifier, clock, ids):
    return Runtime(settings, store=store, notifier=notifier, clock=clock, ids=ids)


@pytest.fixture
def client(runtime):
    with TestClient(create_app(runtime)) as test_client:
        yield test_client
