"""FastAPI dependencies for comment moderation."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import ModerationService


async def get_moderation_service(request: Request) -> ModerationService:
    """Get moderation service from app state."""
    service = getattr(request.app.state, "moderation_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Comment service not available",
        )
    return service


ModerationServiceDep = Annotated[ModerationService, Depends(get_moderation_service)]
