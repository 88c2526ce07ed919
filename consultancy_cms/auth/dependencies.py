"""FastAPI dependencies for authentication.

The session token is read from the ``Authorization: Bearer`` header first
and from the session cookie otherwise. Guard failures are mapped to 401
(sign in) and 403 (insufficient privileges).
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from consultancy_cms.auth.schemas import AuthSession
from consultancy_cms.auth.session import SessionService
from consultancy_cms.config import get_settings
from consultancy_cms.core.context import set_user_id
from consultancy_cms.core.exceptions import AppError, to_http_exception


def get_session_token(request: Request) -> str | None:
    """Extract the session token from the Bearer header or cookie."""
    auth_header = request.headers.get("Authorization")
    if auth_header:
        scheme, _, token = auth_header.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()

    return request.cookies.get(get_settings().auth_session_cookie_name)


async def get_session_service(request: Request) -> SessionService:
    service = getattr(request.app.state, "session_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session service not available",
        )
    return service


SessionTokenDep = Annotated[str | None, Depends(get_session_token)]
SessionServiceDep = Annotated[SessionService, Depends(get_session_service)]


async def get_optional_session(
    token: SessionTokenDep, service: SessionServiceDep
) -> AuthSession | None:
    """Current session if signed in, None otherwise."""
    session = await service.get_session(token)
    if session:
        set_user_id(session.user.id)
    return session


async def get_current_session(
    token: SessionTokenDep, service: SessionServiceDep
) -> AuthSession:
    """Signed-in session or 401."""
    try:
        session = await service.require_session(token)
    except AppError as e:
        raise to_http_exception(e) from e
    set_user_id(session.user.id)
    return session


async def get_admin_session(
    token: SessionTokenDep, service: SessionServiceDep
) -> AuthSession:
    """Administrator session, 401 without a session and 403 without privileges."""
    try:
        session = await service.require_admin(token)
    except AppError as e:
        raise to_http_exception(e) from e
    set_user_id(session.user.id)
    return session


async def get_super_admin_session(
    token: SessionTokenDep, service: SessionServiceDep
) -> AuthSession:
    try:
        session = await service.require_super_admin(token)
    except AppError as e:
        raise to_http_exception(e) from e
    set_user_id(session.user.id)
    return session


OptionalSession = Annotated[AuthSession | None, Depends(get_optional_session)]
CurrentSession = Annotated[AuthSession, Depends(get_current_session)]
AdminSession = Annotated[AuthSession, Depends(get_admin_session)]
SuperAdminSession = Annotated[AuthSession, Depends(get_super_admin_session)]
