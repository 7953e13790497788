"""
Lender endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, status

from ..actors import Actor
from ..models import ApplicationStatus, LoanStatus
from ..system import LendingSystem
from .dependencies import get_actor, get_lending_system
from .schemas import application_to_dict, loan_details_to_dict, portfolio_to_dict, receipt_to_dict


router = APIRouter()


@router.put("/applications/{application_id}/approve")
def approve_application(
    application_id: str,
    actor: Actor = Depends(get_actor),
    system: LendingSystem = Depends(get_lending_system)
):
    """Approve a pending application"""
    application = system.approve_loan(actor, application_id)
    return {
        **application_to_dict(application),
        "message": "Loan application approved"
    }


@router.put("/applications/{application_id}/reject")
def reject_application(
    application_id: str,
    actor: Actor = Depends(get_actor),
    system: LendingSystem = Depends(get_lending_system)
):
    """Reject a pending application"""
    application = system.reject_loan(actor, application_id)
    return {
        **application_to_dict(application),
        "message": "Loan application rejected"
    }


@router.post("/applications/{application_id}/disburse")
def disburse_application(
    application_id: str,
    actor: Actor = Depends(get_actor),
    system: LendingSystem = Depends(get_lending_system)
):
    """Disburse an approved application"""
    receipt = system.disburse_loan(actor, application_id)
    return receipt_to_dict(receipt)


@router.get("/applications")
def list_applications(
    actor: Actor = Depends(get_actor),
    system: LendingSystem = Depends(get_lending_system)
):
    """All applications addressed to the lender"""
    applications = system.list_lender_applications(actor)
    return {
        "applications": [application_to_dict(a) for a in applications],
        "count": len(applications)
    }


@router.get("/applications/status/{application_status}")
def list_applications_by_status(
    application_status: str,
    actor: Actor = Depends(get_actor),
    system: LendingSystem = Depends(get_lending_system)
):
    """Applications addressed to the lender in one status"""
    try:
        wanted = ApplicationStatus(application_status.upper())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown application status: {application_status}"
        )

    applications = system.list_lender_applications(actor, wanted)
    return {
        "status": wanted.value,
        "applications": [application_to_dict(a) for a in applications],
        "count": len(applications)
    }


@router.get("/loan/active")
def active_loans(
    actor: Actor = Depends(get_actor),
    system: LendingSystem = Depends(get_lending_system)
):
    """Loans still being repaid"""
    loans = system.list_lender_loans(actor, LoanStatus.DISBURSED)
    return {
        "loans": [loan_details_to_dict(loan) for loan in loans],
        "count": len(loans)
    }


@router.get("/loan/completed")
def completed_loans(
    actor: Actor = Depends(get_actor),
    system: LendingSystem = Depends(get_lending_system)
):
    """Fully repaid loans"""
    loans = system.list_lender_loans(actor, LoanStatus.CLOSED)
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


@router.get("/portfolio")
def portfolio(
    actor: Actor = Depends(get_actor),
    system: LendingSystem = Depends(get_lending_system)
):
    """Portfolio summary"""
    return portfolio_to_dict(system.lender_portfolio(actor))
