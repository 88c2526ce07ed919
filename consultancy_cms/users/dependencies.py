"""FastAPI dependencies for user administration."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import UserAdminService


async def get_user_admin_service(request: Request) -> UserAdminService:
    service = getattr(request.app.state, "user_admin_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="User administration not available",
        )
    return service


UserAdminServiceDep = Annotated[UserAdminService, Depends(get_user_admin_service)]
