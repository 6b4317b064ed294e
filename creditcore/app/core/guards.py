"""
Role guards for operator endpoints.
"""

from typing import List
from fastapi import Depends
from creditcore.app.models.enums import AccountRole
from creditcore.app.core.dependencies import get_current_user
from creditcore.app.core.exceptions import InsufficientPermissionsError


def require_role(allowed_roles: List[AccountRole]):
    """
    Dependency factory: the caller's token must carry one of `allowed_roles`.

    Usage:
        @router.post("/admin/accounts/{account_id}/adjust")
        async def adjust(admin: dict = Depends(require_role([AccountRole.ADMIN]))):
            ...

    Raises:
        InsufficientPermissionsError (403) for a missing, unknown or disallowed role
    """
    allowed = {role.value for role in allowed_roles}

    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        role = current_user.get("role")
        if role not in allowed:
            raise InsufficientPermissionsError(
                f"Access denied. Required role: {', '.join(sorted(allowed))}",
                details={"role": role}
            )
        return current_user

    return role_checker


require_admin = require_role([AccountRole.ADMIN])
