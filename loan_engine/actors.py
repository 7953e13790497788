"""
Actor Module

The authenticated caller of an engine entry point. Identity is resolved by
the upstream auth layer and passed in explicitly; the engine only checks
role and ownership.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import UnauthorizedError


class Role(Enum):
    """Platform roles"""
    SYSTEM_ADMIN = "SYSTEM_ADMIN"
    LENDER = "LENDER"
    LOAN_MANAGER = "LOAN_MANAGER"
    BORROWER = "BORROWER"


@dataclass(frozen=True)
class Actor:
    """Already-authenticated actor identity"""
    user_id: str
    role: Role
    lender_id: Optional[str] = None     # Lender profile the actor acts for

    @classmethod
    def borrower(cls, user_id: str) -> 'Actor':
        return cls(user_id=user_id, role=Role.BORROWER)

    @classmethod
    def lender(cls, user_id: str, lender_id: Optional[str] = None) -> 'Actor':
        return cls(user_id=user_id, role=Role.LENDER, lender_id=lender_id or user_id)

    @property
    def acting_lender_id(self) -> Optional[str]:
        if self.role in (Role.LENDER, Role.LOAN_MANAGER):
            return self.lender_id or self.user_id
        return None


def require_role(actor: Actor, *roles: Role, action: str = "perform this action") -> None:
    """Raise UnauthorizedError unless the actor holds one of the roles"""
    if actor.role not in roles:
        allowed = " or ".join(r.value.lower() for r in roles)
        raise UnauthorizedError(f"Only {allowed} users can {action}")


def require_lender(actor: Actor, lender_id: str, action: str = "access this resource") -> None:
    """Raise UnauthorizedError unless the actor acts for the given lender"""
    require_role(actor, Role.LENDER, Role.LOAN_MANAGER, action=action)
    if actor.acting_lender_id != lender_id:
        raise UnauthorizedError(f"You can only {action} for your own organization")
