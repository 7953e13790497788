"""
Request dependencies: the lending system and the calling actor
"""

from typing import Optional
from fastapi import Header, HTTPException, status

from ..actors import Actor, Role
from ..system import LendingSystem


# Global lending system instance, built on first use
lending_system: Optional[LendingSystem] = None


def get_lending_system() -> LendingSystem:
    global lending_system
    if lending_system is None:
        lending_system = LendingSystem()
    return lending_system


def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
    x_lender_id: Optional[str] = Header(None)
) -> Actor:
    """
    Resolve the actor forwarded by the upstream auth layer

    Identity is trusted as given; this service does not authenticate.
    """
    if not x_actor_id or not x_actor_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Actor-Id and X-Actor-Role headers are required"
        )

    try:
        role = Role(x_actor_role.upper())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown role: {x_actor_role}"
        )

    if role in (Role.LENDER, Role.LOAN_MANAGER):
        return Actor(user_id=x_actor_id, role=role, lender_id=x_lender_id or x_actor_id)
    return Actor(user_id=x_actor_id, role=role)
