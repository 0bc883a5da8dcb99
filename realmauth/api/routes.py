from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response
from fastapi.responses import RedirectResponse

from realmauth.api.schemas import (
    AuthorizationInfo,
    Envelope,
    LoginRequest,
    LogoutRequest,
    TokenRequest,
    TokenResponse,
)
from realmauth.logging import get_logger
from realmauth.service.protocol import AuthResult, AuthStatus, extract_bearer_token
from realmauth.service.runtime import Runtime
from realmauth.service.scope import SCOPE_API_READ
from realmauth.storage.models import AuthorizationRequest

logger = get_logger(__name__)

router = APIRouter(prefix="/v1")

_REASON_CODES = {
    AuthStatus.BAD_REQUEST: "validation_error",
    AuthStatus.UNAUTHORIZED: "unauthorized",
    AuthStatus.FORBIDDEN: "forbidden",
    AuthStatus.NOT_FOUND: "not_found",
}


def _http_error(
    code: str, message: str, status_code: int, details: Optional[dict | str] = None
) -> HTTPException:
    payload: dict[str, object] = {
        "status": "error",
        "error": {"code": code, "message": message},
    }
    if details is not None:
        payload["error"]["details"] = details  # type: ignore[index]
    return HTTPException(status_code=status_code, detail=payload)


def _raise_for_result(result: AuthResult) -> None:
    if result.ok:
        return
    code = _REASON_CODES.get(result.status, "server_error")
    raise _http_error(
        code,
        result.reason.replace("_", " ") or "request rejected",
        int(result.status),
        details={"reason": result.reason},
    )


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def _client_host(request: Request) -> str:
    return request.client.host if request.client else ""


@router.get("/healthz", tags=["health"])
def healthz(runtime: Runtime = Depends(get_runtime)):
    return Envelope(
        status="ok",
        data={"store": type(runtime.store).__name__, "caches": runtime.cache_stats()},
    )


@router.post("/auth/login", tags=["auth"])
def login(body: LoginRequest, runtime: Runtime = Depends(get_runtime)):
    """Request a login for (realm, user_id).

    201 when a challenge was sent, 204 when a temporary token was sent,
    403 when the account is already logged in or disabled.
    """
    result = runtime.protocol.login_request(body.realm, body.user_id)
    _raise_for_result(result)
    return Response(status_code=int(result.status))


@router.get("/auth/login/{token}", tags=["auth"])
def confirm(token: str, runtime: Runtime = Depends(get_runtime)):
    """Target of the confirmation link sent with a challenge."""
    result = runtime.protocol.confirm_login(token)
    _raise_for_result(result)
    return RedirectResponse(
        url=f"{runtime.settings.auth_endpoint}/confirmed",
        status_code=int(AuthStatus.TEMPORARY_REDIRECT),
    )


@router.post("/auth/token", response_model=Envelope, tags=["auth"])
def token(
    body: TokenRequest,
    request: Request,
    runtime: Runtime = Depends(get_runtime),
):
    """Exchange a temporary token for a bearer token with the default scope."""
    result = runtime.protocol.exchange_token(
        AuthorizationRequest(
            realm=body.realm,
            user_id=body.user_id,
            token=body.token,
            scope=runtime.settings.default_scope,
        ),
        login_from=_client_host(request),
    )
    _raise_for_result(result)
    auth = result.authorization
    return Envelope(
        status="ok",
        data=TokenResponse(
            realm=auth.realm,
            user_id=auth.user_id,
            client_id=auth.client_id,
            token=auth.token,
            token_type=auth.token_type.value,
            scope=auth.scope,
            expires=auth.expires,
        ),
    )


@router.post("/auth/logout", tags=["auth"])
def logout(
    body: LogoutRequest,
    authorization: Optional[str] = Header(None),
    runtime: Runtime = Depends(get_runtime),
):
    bearer = extract_bearer_token(authorization)
    result = runtime.protocol.logout_with_token(body.realm, body.user_id, bearer)
    _raise_for_result(result)
    return Response(status_code=int(result.status))


@router.get("/auth/whoami", response_model=Envelope, tags=["auth"])
def whoami(
    authorization: Optional[str] = Header(None),
    runtime: Runtime = Depends(get_runtime),
):
    auth = runtime.protocol.check_authorization(
        extract_bearer_token(authorization), SCOPE_API_READ
    )
    return Envelope(
        status="ok",
        data=AuthorizationInfo(
            realm=auth.realm,
            user_id=auth.user_id,
            client_id=auth.client_id,
            token_type=auth.token_type.value,
            scope=auth.scope,
            expires=auth.expires,
            admin=auth.has_admin_scope(),
        ),
    )
