"""Pydantic schemas for user administration."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from consultancy_cms.auth.models import AdminAuditEntry, User
from consultancy_cms.auth.permissions import Role, UserStatus

from .service import BulkAction, BulkActionResult


class BulkUserActionRequest(BaseModel):
    """Request to apply one action to several users."""

    action: BulkAction
    user_ids: list[UUID] = Field(default_factory=list)
    role: Role | None = None
    status: UserStatus | None = None


class UpdateUserRoleRequest(BaseModel):
    role: Role


class UpdateUserStatusRequest(BaseModel):
    status: UserStatus


class BulkActionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    action: BulkAction
    requested: int
    updated: int
    sessions_revoked: int
    message: str

    @classmethod
    def from_result(cls, result: BulkActionResult) -> "BulkActionResponse":
        return cls.model_validate(result)


class AdminUserResponse(BaseModel):
    """User as shown to administrators."""

    id: UUID
    email: str
    name: str | None
    role: Role
    status: UserStatus
    updated_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "AdminUserResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            status=user.status,
            updated_at=user.updated_at,
        )


class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    entry_id: UUID
    actor_id: UUID
    action: str
    target_ids: list[UUID]
    message: str
    created_at: datetime


class AuditLogResponse(BaseModel):
    items: list[AuditEntryResponse]

    @classmethod
    def from_entries(cls, entries: list[AdminAuditEntry]) -> "AuditLogResponse":
        return cls(items=[AuditEntryResponse.model_validate(e) for e in entries])
