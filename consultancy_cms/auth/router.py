"""Session endpoints for the signed-in user."""

from fastapi import APIRouter, Response, status

from consultancy_cms.auth.dependencies import (
    CurrentSession,
    OptionalSession,
    SessionServiceDep,
    SessionTokenDep,
)
from consultancy_cms.auth.schemas import AuthSession
from consultancy_cms.config import get_settings
from consultancy_cms.core.exceptions import AppError, to_http_exception


router = APIRouter(prefix="/v1/auth", tags=["auth"])


@router.get("/session", response_model=AuthSession | None, summary="Current session")
async def read_session(session: OptionalSession) -> AuthSession | None:
    """Return the current session, or null when signed out."""
    return session


@router.delete(
    "/session", status_code=status.HTTP_204_NO_CONTENT, summary="Sign out"
)
async def sign_out(
    _session: CurrentSession,
    token: SessionTokenDep,
    service: SessionServiceDep,
    response: Response,
) -> Response:
    """Delete the current session and clear the cookie."""
    try:
        await service.end_session(token)
    except AppError as e:
        raise to_http_exception(e) from e
    response.status_code = status.HTTP_204_NO_CONTENT
    response.delete_cookie(get_settings().auth_session_cookie_name)
    return response
