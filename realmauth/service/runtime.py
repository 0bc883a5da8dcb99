from __future__ import annotations

from typing import Callable, Dict, Optional
from urllib.parse import urlparse, urlunparse

from realmauth.config import Settings, get_settings
from realmauth.logging import get_logger
from realmauth.service.ids import IdGenerator, now_seconds
from realmauth.service.notify import EmailNotifier, Notifier
from realmauth.service.protocol import TokenExchangeProtocol
from realmauth.storage.accounts import AccountStore
from realmauth.storage.authorizations import AuthorizationStore
from realmauth.storage.documents import DocumentStore
from realmauth.storage.memory import MemoryStore
from realmauth.storage.redis_store import RedisStore

logger = get_logger(__name__)


def _mask_url_password(url: Optional[str]) -> Optional[str]:
    """Mask the password in a URL for safe logging.

    Example: redis://:mypassword@localhost:6379 -> redis://:***@localhost:6379
    """
    if not url:
        return url
    try:
        parsed = urlparse(url)
        if parsed.password:
            netloc = parsed.hostname or ""
            if parsed.port:
                netloc = f"{netloc}:{parsed.port}"
            if parsed.username:
                netloc = f"{parsed.username}:***@{netloc}"
            else:
                netloc = f":***@{netloc}"
            return urlunparse((
                parsed.scheme,
                netloc,
                parsed.path,
                parsed.params,
                parsed.query,
                parsed.fragment,
            ))
        return url
    except ValueError:
        return "***url_parse_error***"


def build_store(settings: Settings) -> DocumentStore:
    if settings.use_memory_store or not settings.redis_url:
        if not settings.use_memory_store:
            logger.warning(
                "redis_url_missing_memory_fallback",
                message="USE_MEMORY_STORE=false but REDIS_URL is unset; using memory store",
            )
        return MemoryStore(fs_root=settings.shared_fs_root)
    store = RedisStore(settings.redis_url)
    try:
        store.verify_connection()
    except Exception as exc:
        logger.error(
            "runtime_store_init_failed",
            store_type="redis",
            redis_url=_mask_url_password(settings.redis_url),
            error_type=type(exc).__name__,
            error=str(exc),
        )
        raise
    return store


def build_notifier(settings: Settings) -> Notifier:
    return EmailNotifier(
        smtp_host=settings.smtp_host,
        smtp_port=settings.smtp_port,
        smtp_user=settings.smtp_user,
        smtp_password=settings.smtp_password,
        smtp_use_tls=settings.smtp_use_tls,
        from_email=settings.email_from_address,
        from_name=settings.email_from_name,
        base_url=settings.auth_endpoint,
    )


class Runtime:
    """Wires settings, storage, caches, notifier and protocol together.

    Every collaborator can be passed in; anything omitted is built from
    ``settings``. Nothing is registered globally.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        store: Optional[DocumentStore] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], int] = now_seconds,
        ids: Optional[IdGenerator] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store if store is not None else build_store(self.settings)
        self.notifier = notifier if notifier is not None else build_notifier(self.settings)
        self.clock = clock
        self.ids = ids or IdGenerator()
        self.accounts = AccountStore(
            self.store,
            clock=clock,
            ids=self.ids,
            cache_ttl_seconds=self.settings.cache_ttl_seconds,
        )
        self.authorizations = AuthorizationStore(
            self.store,
            clock=clock,
            ids=self.ids,
            cache_ttl_seconds=self.settings.cache_ttl_seconds,
        )
        self.protocol = TokenExchangeProtocol(
            self.accounts,
            self.authorizations,
            self.notifier,
            clock=clock,
            authentication_expiration=self.settings.authentication_expiration_minutes,
            authorization_expiration=self.settings.authorization_expiration_days,
            default_scope=self.settings.default_scope,
        )
        logger.info(
            "runtime_initialized",
            store_type=type(self.store).__name__,
            notifier=type(self.notifier).__name__,
            test_mode=self.settings.test_mode,
        )

    def cache_stats(self) -> Dict[str, dict]:
        return {**self.accounts.stats(), **self.authorizations.stats()}

    def close(self) -> None:
        close = getattr(self.store, "close", None)
        if callable(close):
            close()
