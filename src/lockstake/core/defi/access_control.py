"""
Role-based access control for pool administration.

The pool's restricted operations (fee rate, schedule pause, hoard address,
fee withdrawal and manual unstaking) are reachable only through an
is-authorized check against these roles.

Security features:
- Only admins can grant/revoke roles
- Audit trail for all role changes
"""

from __future__ import annotations

import functools
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Set

from ..pool_exceptions import AuthorizationError

logger = logging.getLogger(__name__)


class Role(Enum):
    """Standard roles for pool access control."""
    ADMIN = "admin"
    OPERATOR = "operator"


@dataclass
class RoleBasedAccessControl:
    """
    Role assignments with an admin who can grant and revoke them.

    The admin address always holds every role it needs: it starts with
    ADMIN and OPERATOR.
    """

    # Role assignments: role -> set of addresses
    roles: Dict[str, Set[str]] = field(default_factory=dict)

    # Admin address (can grant/revoke roles)
    admin_address: str = ""

    # Audit log
    role_changes: list = field(default_factory=list)

    def __post_init__(self) -> None:
        """Initialize roles."""
        for role in Role:
            if role.value not in self.roles:
                self.roles[role.value] = set()

        if self.admin_address:
            self.admin_address = self.admin_address.lower()
            self.roles[Role.ADMIN.value].add(self.admin_address)
            self.roles[Role.OPERATOR.value].add(self.admin_address)

    def grant_role(self, caller: str, role: Role, address: str) -> bool:
        """
        Grant a role to an address.

        Args:
            caller: Must hold ADMIN
            role: Role to grant
            address: Address to grant role to

        Returns:
            True if role granted

        Raises:
            AuthorizationError: If caller is not admin
        """
        self.require_role(caller, Role.ADMIN)

        address_norm = address.lower()
        self.roles.setdefault(role.value, set()).add(address_norm)
        self._audit("granted", role, address_norm, caller)
        return True

    def revoke_role(self, caller: str, role: Role, address: str) -> bool:
        """Revoke a role from an address (admin only)."""
        self.require_role(caller, Role.ADMIN)

        address_norm = address.lower()
        self.roles.get(role.value, set()).discard(address_norm)
        self._audit("revoked", role, address_norm, caller)
        return True

    def has_role(self, role: Role, address: str) -> bool:
        return address.lower() in self.roles.get(role.value, set())

    def require_role(self, caller: str, role: Role) -> None:
        """
        Raise if caller does not hold role.

        Raises:
            AuthorizationError: If the role is not assigned to caller
        """
        if not self.has_role(role, caller):
            logger.warning(
                "Access denied: role not assigned",
                extra={
                    "event": "rbac.role_not_assigned",
                    "address": caller.lower()[:10],
                    "required_role": role.value,
                }
            )
            raise AuthorizationError(
                f"Unauthorized: caller {caller[:10]} does not have role '{role.value}'",
                details={"caller": caller, "role": role.value},
            )

    def get_role_members(self, role: Role) -> Set[str]:
        """Get all addresses with a given role."""
        return self.roles.get(role.value, set()).copy()

    def _audit(self, action: str, role: Role, address: str, caller: str) -> None:
        self.role_changes.append({
            "action": action,
            "role": role.value,
            "address": address,
            "admin": caller.lower(),
            "timestamp": time.time(),
        })
        logger.info(
            "Role %s",
            action,
            extra={
                "event": f"rbac.role_{action}",
                "role": role.value,
                "address": address[:10],
                "admin": caller.lower()[:10],
            }
        )


def requires_role(role: Role):
    """
    Decorator for pool methods whose first argument is the caller address.

    Usage:
        @requires_role(Role.OPERATOR)
        def set_fee(self, caller: str, fee_bps: int):
            ...

    The decorated object must expose its RoleBasedAccessControl as ``self.access``.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(self, caller: str, *args, **kwargs):
            self.access.require_role(caller, role)
            return func(self, caller, *args, **kwargs)
        return wrapper
    return decorator
