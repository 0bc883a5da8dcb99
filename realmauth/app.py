from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from realmauth.api.error_handling import register_exception_handlers
from realmauth.api.routes import router
from realmauth.logging import get_logger, set_correlation_id
from realmauth.service.runtime import Runtime

logger = get_logger(__name__)

__version__ = "0.1.0"


def create_app(runtime: Optional[Runtime] = None) -> FastAPI:
    """Build the HTTP application.

    Without a ``runtime`` one is built from the environment at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "runtime", None) is None:
            app.state.runtime = Runtime()
        yield
        try:
            app.state.runtime.close()
            logger.info("runtime_cleanup_complete")
        except Exception as exc:
            logger.error("shutdown_failed", error=str(exc))

    app = FastAPI(title="realmauth", version=__version__, lifespan=lifespan)
    app.state.runtime = runtime

    @app.middleware("http")
    async def add_correlation_id(request, call_next):
        """Tag each request with the client's X-Request-ID or a fresh one."""
        correlation_id = set_correlation_id(request.headers.get("X-Request-ID"))
        response = await call_next(request)
        response.headers["X-Request-ID"] = correlation_id
        return response

    @app.middleware("http")
    async def add_cache_headers(request, call_next):
        response = await call_next(request)
        if request.url.path.startswith("/v1/"):
            response.headers.setdefault(
                "Cache-Control", "no-store, no-cache, must-revalidate, private"
            )
        return response

    register_exception_handlers(app)
    app.include_router(router)
    return app


app = create_app()
