"""Role-based access control and admin permissions."""

import logging
from enum import Enum
from typing import Annotated, Any, Callable

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.api.deps import get_current_active_user
from tourbook.config import settings
from tourbook.core.exceptions import AuthorizationError
from tourbook.database import get_db
from tourbook.models.user import AdminPermission, User
from tourbook.services.audit_service import audit_service

logger = logging.getLogger(__name__)


class UserRole(str, Enum):
    """User roles in the system."""

    CUSTOMER = "customer"
    ADMIN = "admin"
    DRIVER = "driver"
    GUIDE = "guide"


class AdminCapability(str, Enum):
    """Grants carried by an AdminPermission record."""

    MANAGE_BOOKINGS = "can_manage_bookings"
    MANAGE_PRICES = "can_manage_prices"
    VERIFY_PAYMENTS = "can_verify_payments"


def resolve_admin_capability(
    record: AdminPermission | None,
    capability: AdminCapability,
    default: str,
) -> tuple[bool, bool]:
    """Decide whether an admin holds ``capability``.

    Args:
        record: The admin's permission record, if one exists
        capability: Capability being checked
        default: ``admin_permission_default`` setting ("deny" or "allow")

    Returns:
        Tuple of (granted, used_default)
    """
    if record is None:
        return default == "allow", True
    return bool(getattr(record, capability.value)), False


def require_role(*allowed_roles: UserRole) -> Callable[..., Any]:
    """Dependency to require specific roles."""

    async def role_checker(
        current_user: Annotated[User, Depends(get_current_active_user)],
    ) -> User:
        try:
            user_role = UserRole(current_user.role)
        except ValueError:
            raise AuthorizationError(f"Role '{current_user.role}' is not recognised")
        if user_role not in allowed_roles:
            raise AuthorizationError(
                f"Role '{current_user.role}' is not authorized for this action"
            )
        return current_user

    return role_checker


def require_admin_capability(capability: AdminCapability) -> Callable[..., Any]:
    """Dependency to require an admin holding a specific capability."""

    async def capability_checker(
        current_user: Annotated[User, Depends(get_current_active_user)],
        db: Annotated[AsyncSession, Depends(get_db)],
    ) -> User:
        if current_user.role != UserRole.ADMIN.value:
            raise AuthorizationError("Admin access required")

        result = await db.execute(
            select(AdminPermission).where(AdminPermission.user_id == current_user.id)
        )
        record = result.scalar_one_or_none()

        granted, used_default = resolve_admin_capability(
            record, capability, settings.admin_permission_default
        )
        if used_default:
            logger.warning(
                "Admin %s has no permission record; applying default '%s' for %s",
                current_user.id,
                settings.admin_permission_default,
                capability.value,
            )
            if granted:
                await audit_service.log_action(
                    db=db,
                    actor_id=current_user.id,
                    action="admin_permission_default_applied",
                    resource_type="admin_permission",
                    resource_id=current_user.id,
                    new_values={"capability": capability.value, "default": "allow"},
                )

        if not granted:
            raise AuthorizationError(
                f"Permission '{capability.value}' is required for this action"
            )
        return current_user

    return capability_checker


# Convenience dependencies
require_customer = require_role(UserRole.CUSTOMER)
require_resource = require_role(UserRole.DRIVER, UserRole.GUIDE)
require_booking_manager = require_admin_capability(AdminCapability.MANAGE_BOOKINGS)
require_price_manager = require_admin_capability(AdminCapability.MANAGE_PRICES)
require_payment_verifier = require_admin_capability(AdminCapability.VERIFY_PAYMENTS)
