"""
Borrower endpoints
"""

from fastapi import APIRouter, Depends, Query, status

from ..actors import Actor
from ..money import to_decimal
from ..system import LendingSystem
from .dependencies import get_actor, get_lending_system
from .schemas import (
    ApplyLoanRequest, MakePaymentRequest,
    application_to_dict, lender_to_dict, loan_details_to_dict, payment_response_to_dict,
    payment_to_dict, preview_to_dict, schedule_to_dict
)


router = APIRouter()


@router.get("/loan/lenders")
def list_lenders(system: LendingSystem = Depends(get_lending_system)):
    """List verified, active lenders"""
    lenders = system.lenders.list_active_lenders()
    return {
        "lenders": [lender_to_dict(lender) for lender in lenders],
        "count": len(lenders)
    }


@router.get("/loan/lenders/{lender_id}/emi-preview")
def preview_emi(
    lender_id: str,
    principal: str = Query(..., description="Requested amount, processing fee included"),
    tenure: int = Query(..., description="Tenure in months"),
    system: LendingSystem = Depends(get_lending_system)
):
    """Preview EMI and totals for a lender's terms"""
    preview = system.preview_emi(lender_id, to_decimal(principal), tenure)
    return preview_to_dict(preview)


@router.post("/loan/apply/{lender_id}", status_code=status.HTTP_201_CREATED)
def apply_loan(
    lender_id: str,
    request: ApplyLoanRequest,
    actor: Actor = Depends(get_actor),
    system: LendingSystem = Depends(get_lending_system)
):
    """Submit a loan application"""
    application = system.apply_loan(actor, lender_id, request.to_request())
    return {
        **application_to_dict(application),
        "message": "Loan application submitted successfully"
    }


@router.put("/loan/applications/withdraw")
def withdraw_loan(
    actor: Actor = Depends(get_actor),
    system: LendingSystem = Depends(get_lending_system)
):
    """Withdraw the latest pending application"""
    application = system.withdraw_loan(actor)
    return {
        **application_to_dict(application),
        "message": "Loan application withdrawn successfully"
    }


@router.get("/loan/applications/my")
def my_applications(
    actor: Actor = Depends(get_actor),
    system: LendingSystem = Depends(get_lending_system)
):
    """The borrower's applications, most recent first"""
    applications = system.list_borrower_applications(actor)
    return {
        "applications": [application_to_dict(a) for a in applications],
        "count": len(applications)
    }


@router.get("/loan/my")
def my_loans(
    actor: Actor = Depends(get_actor),
    system: LendingSystem = Depends(get_lending_system)
):
    """The borrower's loans"""
    loans = system.list_borrower_loans(actor)
    return {
        "loans": [loan_details_to_dict(loan) for loan in loans],
        "count": len(loans)
    }


@router.get("/loan/{loan_id}")
def get_loan(
    loan_id: str,
    actor: Actor = Depends(get_actor),
    system: LendingSystem = Depends(get_lending_system)
):
    """Loan details"""
    return loan_details_to_dict(system.get_loan_details(actor, loan_id))


@router.get("/loan/{loan_id}/schedule")
def get_schedule(
    loan_id: str,
    actor: Actor = Depends(get_actor),
    system: LendingSystem = Depends(get_lending_system)
):
    """Repayment schedule"""
    schedule = system.get_schedule(actor, loan_id)
    return schedule_to_dict(loan_id, schedule)


@router.get("/loan/{loan_id}/payments/history")
def payment_history(
    loan_id: str,
    actor: Actor = Depends(get_actor),
    system: LendingSystem = Depends(get_lending_system)
):
    """Payment attempts, newest first"""
    payments = system.get_payment_history(actor, loan_id)
    return {
        "loan_id": loan_id,
        "payments": [payment_to_dict(p) for p in payments],
        "count": len(payments)
    }


@router.post("/loan/{loan_id}/payments")
def make_payment(
    loan_id: str,
    request: MakePaymentRequest,
    actor: Actor = Depends(get_actor),
    system: LendingSystem = Depends(get_lending_system)
):
    """Pay the next pending installment"""
    response = system.make_payment(actor, loan_id, request.to_request())
    return payment_response_to_dict(response)
