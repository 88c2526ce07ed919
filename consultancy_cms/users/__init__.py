"""Administrator user management."""

from .service import BulkAction, BulkActionResult, UserAdminService


__all__ = ["BulkAction", "BulkActionResult", "UserAdminService"]
