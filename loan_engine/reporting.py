"""
Reporting Module

Read-only summaries over applications, loans and payments.
"""

from dataclasses import dataclass
from decimal import Decimal

from .actors import Actor, Role, require_role
from .applications import LoanApplicationManager
from .lenders import LenderDirectory
from .loans import LoanManager
from .models import ApplicationStatus, LoanApplication, LoanStatus
from .money import ZERO


@dataclass(frozen=True)
class LenderPortfolio:
    """Application counts and money totals for one lender"""
    lender_name: str
    pending_applications: int
    approved_applications: int
    disbursed_loans: int
    rejected_applications: int
    completed_loans: int
    total_disbursed_amount: Decimal
    total_outstanding_amount: Decimal
    total_collected_amount: Decimal


def lender_portfolio(
    actor: Actor,
    lenders: LenderDirectory,
    applications: LoanApplicationManager,
    loans: LoanManager
) -> LenderPortfolio:
    """
    Summarize a lender's book

    Collected is what has been repaid against the schedule (total to repay
    minus remaining); late fees are not included.
    """
    require_role(actor, Role.LENDER, Role.LOAN_MANAGER, action="view the portfolio")
    lender = lenders.get_lender(actor.acting_lender_id)

    lender_applications = applications.records.find_records(
        LoanApplication, applications.applications_table, {"lender_id": lender.id}
    )
    counts = {status: 0 for status in ApplicationStatus}
    for application in lender_applications:
        counts[application.status] += 1

    active_loans = loans.list_lender_loans(actor, LoanStatus.DISBURSED)
    closed_loans = loans.list_lender_loans(actor, LoanStatus.CLOSED)
    all_loans = active_loans + closed_loans

    total_disbursed = sum((loan.principal_amount for loan in all_loans), ZERO)
    total_outstanding = sum((loan.remaining_amount for loan in active_loans), ZERO)
    total_collected = sum(
        (loan.total_amount_to_repay - loan.remaining_amount for loan in all_loans), ZERO
    )

    return LenderPortfolio(
        lender_name=lender.organization_name,
        pending_applications=counts[ApplicationStatus.PENDING],
        approved_applications=counts[ApplicationStatus.APPROVED],
        disbursed_loans=len(active_loans),
        rejected_applications=counts[ApplicationStatus.REJECTED],
        completed_loans=len(closed_loans),
        total_disbursed_amount=total_disbursed,
        total_outstanding_amount=total_outstanding,
        total_collected_amount=total_collected
    )
