"""
Role-Based Access Gate for the staking cores.

Caller identity is authenticated outside the ledger; the cores only ask
"is this caller a privileged operator?" before configure, set_rewards,
set_cooldown_period, set_sanctions_fee and the other operator calls.

Provides:
- AccessGate: the protocol the cores depend on
- RoleBasedAccessControl: roles (admin, operator) with an audit trail of
  role changes
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Protocol, Set, runtime_checkable

from ..staking_exceptions import InvalidAddressError, UnauthorizedError
from ..config import ZERO_ADDRESS

logger = logging.getLogger(__name__)


class Role(Enum):
    """Roles recognised by the staking ledger."""
    ADMIN = "admin"
    OPERATOR = "operator"


@runtime_checkable
class AccessGate(Protocol):
    """Answers whether an authenticated caller may run privileged operations."""

    def is_operator(self, caller: str) -> bool:
        ...


@dataclass
class RoleBasedAccessControl:
    """
    Role assignments with admin-managed grants.

    The admin holds both the admin and operator roles. Only admins can
    grant or revoke roles.

    Usage:
        rbac = RoleBasedAccessControl(admin_address="0xowner")
        rbac.grant_role("0xowner", Role.OPERATOR.value, "0xscheduler")
        rbac.is_operator("0xscheduler")  # True
    """

    # Role assignments: role -> set of addresses
    roles: Dict[str, Set[str]] = field(default_factory=dict)

    # Admin address (can grant/revoke roles)
    admin_address: str = ""

    # Audit log
    role_changes: list = field(default_factory=list)

    def __post_init__(self) -> None:
        for role in Role:
            if role.value not in self.roles:
                self.roles[role.value] = set()

        if self.admin_address:
            admin = self.admin_address.lower()
            self.roles[Role.ADMIN.value].add(admin)
            self.roles[Role.OPERATOR.value].add(admin)

    def grant_role(self, caller: str, role: str, address: str) -> bool:
        """
        Grant a role to an address.

        Raises:
            UnauthorizedError: If caller is not admin
            InvalidAddressError: If address is the zero address
        """
        self._require_admin(caller)
        address_norm = self._validate_address(address)

        self.roles.setdefault(role, set()).add(address_norm)
        self._audit("grant", role, address_norm, caller)

        logger.info(
            "Role granted",
            extra={
                "event": "rbac.role_granted",
                "role": role,
                "address": address_norm[:10],
                "admin": caller.lower()[:10],
            }
        )
        return True

    def revoke_role(self, caller: str, role: str, address: str) -> bool:
        """
        Revoke a role from an address.

        Raises:
            UnauthorizedError: If caller is not admin
        """
        self._require_admin(caller)
        address_norm = address.lower()

        if role in self.roles:
            self.roles[role].discard(address_norm)
        self._audit("revoke", role, address_norm, caller)

        logger.info(
            "Role revoked",
            extra={
                "event": "rbac.role_revoked",
                "role": role,
                "address": address_norm[:10],
                "admin": caller.lower()[:10],
            }
        )
        return True

    def has_role(self, role: str, address: str) -> bool:
        return address.lower() in self.roles.get(role, set())

    def is_operator(self, caller: str) -> bool:
        return self.has_role(Role.OPERATOR.value, caller)

    def get_role_members(self, role: str) -> Set[str]:
        """Get all addresses with a given role."""
        return self.roles.get(role, set()).copy()

    def _require_admin(self, caller: str) -> None:
        if not self.has_role(Role.ADMIN.value, caller):
            logger.warning(
                "Access denied: role not assigned",
                extra={
                    "event": "rbac.role_not_assigned",
                    "address": caller.lower()[:10],
                    "required_role": Role.ADMIN.value,
                }
            )
            raise UnauthorizedError(
                f"Unauthorized: caller {caller[:10]} is not an admin",
                details={"caller": caller},
            )

    def _validate_address(self, address: str) -> str:
        address_norm = address.lower()
        if not address_norm or address_norm == ZERO_ADDRESS:
            raise InvalidAddressError("Cannot grant a role to the zero address")
        return address_norm

    def _audit(self, action: str, role: str, address: str, admin: str) -> None:
        self.role_changes.append({
            "action": action,
            "role": role,
            "address": address,
            "admin": admin.lower(),
            "timestamp": time.time(),
        })


def require_operator(gate: AccessGate, caller: str, operation: str) -> None:
    """
    Raise UnauthorizedError unless caller is a privileged operator.

    Args:
        gate: Access gate answering the privilege question
        caller: Authenticated caller identity
        operation: Operation name, for the error and the log
    """
    if not gate.is_operator(caller):
        logger.warning(
            "Unauthorized privileged call",
            extra={
                "event": "rbac.unauthorized",
                "operation": operation,
                "caller": caller.lower()[:10],
            }
        )
        raise UnauthorizedError(
            f"Unauthorized: caller {caller[:10]} may not call {operation}",
            details={"caller": caller, "operation": operation},
        )
