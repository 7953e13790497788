"""
Administrative endpoints: lender directory, loan configuration, audit
"""

from fastapi import APIRouter, Depends, status

from ..actors import Actor, Role, require_role
from ..money import optional_decimal, to_decimal
from ..system import LendingSystem
from .dependencies import get_actor, get_lending_system
from .schemas import (
    LoanConfigurationRequest, RegisterLenderRequest, UpdateLenderRequest, lender_to_dict
)


router = APIRouter()


@router.post("/lenders", status_code=status.HTTP_201_CREATED)
def register_lender(
    request: RegisterLenderRequest,
    actor: Actor = Depends(get_actor),
    system: LendingSystem = Depends(get_lending_system)
):
    """Register a lender profile"""
    require_role(actor, Role.SYSTEM_ADMIN, action="register lenders")
    lender = system.lenders.register_lender(
        organization_name=request.organization_name,
        interest_rate=to_decimal(request.interest_rate),
        processing_fee=to_decimal(request.processing_fee),
        supported_tenures=request.supported_tenures,
        is_verified=request.is_verified,
        is_active=request.is_active,
        lender_id=request.lender_id,
        actor=actor
    )
    return {**lender_to_dict(lender), "message": "Lender registered successfully"}


@router.put("/lenders/{lender_id}")
def update_lender(
    lender_id: str,
    request: UpdateLenderRequest,
    actor: Actor = Depends(get_actor),
    system: LendingSystem = Depends(get_lending_system)
):
    """Update lender terms or flags"""
    require_role(actor, Role.SYSTEM_ADMIN, action="update lenders")
    lender = system.lenders.update_terms(
        lender_id,
        interest_rate=optional_decimal(request.interest_rate),
        processing_fee=optional_decimal(request.processing_fee),
        supported_tenures=request.supported_tenures,
        is_verified=request.is_verified,
        is_active=request.is_active,
        actor=actor
    )
    return lender_to_dict(lender)


@router.put("/loan-configuration")
def set_loan_configuration(
    request: LoanConfigurationRequest,
    actor: Actor = Depends(get_actor),
    system: LendingSystem = Depends(get_lending_system)
):
    """Replace the active late-fee configuration"""
    require_role(actor, Role.SYSTEM_ADMIN, action="change the loan configuration")
    configuration = system.lenders.set_configuration(
        late_fee_amount=to_decimal(request.late_fee_amount),
        grace_period_days=request.grace_period_days,
        reminder_before_due_days=request.reminder_before_due_days,
        actor=actor
    )
    return {
        "configuration_id": configuration.id,
        "late_fee_amount": str(configuration.late_fee_amount),
        "grace_period_days": configuration.grace_period_days,
        "reminder_before_due_days": configuration.reminder_before_due_days
    }


@router.get("/audit/verify")
def verify_audit_trail(
    actor: Actor = Depends(get_actor),
    system: LendingSystem = Depends(get_lending_system)
):
    """Verify the audit hash chain"""
    require_role(actor, Role.SYSTEM_ADMIN, action="verify the audit trail")
    return system.audit_trail.verify_integrity()
