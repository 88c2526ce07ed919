"""User administration endpoints. Every route requires an admin session."""

from uuid import UUID

from fastapi import APIRouter, Query

from consultancy_cms.auth.dependencies import AdminSession
from consultancy_cms.core.exceptions import AppError, to_http_exception

from .dependencies import UserAdminServiceDep
from .schemas import (
    AdminUserResponse,
    AuditLogResponse,
    BulkActionResponse,
    BulkUserActionRequest,
    UpdateUserRoleRequest,
    UpdateUserStatusRequest,
)


router = APIRouter(prefix="/v1/admin/users", tags=["users-admin"])


@router.post("/bulk", response_model=BulkActionResponse, summary="Bulk user action")
async def bulk_user_action(
    data: BulkUserActionRequest,
    service: UserAdminServiceDep,
    session: AdminSession,
) -> BulkActionResponse:
    """Change role or status of several users, or queue an email to them."""
    try:
        result = await service.bulk_action(
            session.user,
            data.action,
            data.user_ids,
            role=data.role,
            status=data.status,
        )
    except AppError as e:
        raise to_http_exception(e) from e
    return BulkActionResponse.from_result(result)


@router.patch(
    "/{user_id}/role", response_model=AdminUserResponse, summary="Change user role"
)
async def update_user_role(
    user_id: UUID,
    data: UpdateUserRoleRequest,
    service: UserAdminServiceDep,
    session: AdminSession,
) -> AdminUserResponse:
    try:
        user = await service.update_role(session.user, user_id, data.role)
    except AppError as e:
        raise to_http_exception(e) from e
    return AdminUserResponse.from_user(user)


@router.patch(
    "/{user_id}/status",
    response_model=AdminUserResponse,
    summary="Change user status",
)
async def update_user_status(
    user_id: UUID,
    data: UpdateUserStatusRequest,
    service: UserAdminServiceDep,
    session: AdminSession,
) -> AdminUserResponse:
    """Inactive and suspended users are signed out everywhere."""
    try:
        user = await service.update_status(session.user, user_id, data.status)
    except AppError as e:
        raise to_http_exception(e) from e
    return AdminUserResponse.from_user(user)


@router.get("/audit", response_model=AuditLogResponse, summary="Admin audit trail")
async def list_audit_log(
    service: UserAdminServiceDep,
    _session: AdminSession,
    limit: int = Query(50, ge=1, le=200),
) -> AuditLogResponse:
    entries = await service.list_audit_entries(limit)
    return AuditLogResponse.from_entries(entries)
