"""
Pydantic schemas for API requests and responses
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from ..applications import EmiPreview, LoanApplicationRequest
from ..loans import DisbursementReceipt, LoanDetails
from ..models import Installment, Lender, LoanApplication, LoanPayment, PaymentMethod
from ..money import to_decimal
from ..payments import PaymentRequest, PaymentResponse
from ..reporting import LenderPortfolio


def _amount(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def _iso(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


# Borrower schemas
class ApplyLoanRequest(BaseModel):
    amount: str = Field(..., description="Requested amount as decimal string, processing fee included")
    tenure: int = Field(..., description="Tenure in months")
    purpose: str
    income_source: str
    monthly_income: str = Field(..., description="Monthly income as decimal string")

    def to_request(self) -> LoanApplicationRequest:
        return LoanApplicationRequest(
            amount=to_decimal(self.amount),
            tenure=self.tenure,
            purpose=self.purpose,
            income_source=self.income_source,
            monthly_income=to_decimal(self.monthly_income)
        )


class MakePaymentRequest(BaseModel):
    amount: str = Field(..., description="Exact installment amount due, as decimal string")
    payment_method: PaymentMethod
    remarks: Optional[str] = None

    def to_request(self) -> PaymentRequest:
        return PaymentRequest(
            amount=to_decimal(self.amount),
            payment_method=self.payment_method,
            remarks=self.remarks
        )


# Admin schemas
class RegisterLenderRequest(BaseModel):
    organization_name: str
    interest_rate: str
    processing_fee: str
    supported_tenures: str = Field(..., description="Comma-separated months, e.g. '6,12,24'")
    is_verified: bool = False
    is_active: bool = True
    lender_id: Optional[str] = None


class UpdateLenderRequest(BaseModel):
    interest_rate: Optional[str] = None
    processing_fee: Optional[str] = None
    supported_tenures: Optional[str] = None
    is_verified: Optional[bool] = None
    is_active: Optional[bool] = None


class LoanConfigurationRequest(BaseModel):
    late_fee_amount: str
    grace_period_days: int
    reminder_before_due_days: int = 3


# Response builders
def lender_to_dict(lender: Lender) -> Dict[str, Any]:
    return {
        "lender_id": lender.id,
        "organization_name": lender.organization_name,
        "interest_rate": str(lender.interest_rate),
        "processing_fee": str(lender.processing_fee),
        "supported_tenures": lender.supported_tenures,
        "is_verified": lender.is_verified,
        "is_active": lender.is_active
    }


def preview_to_dict(preview: EmiPreview) -> Dict[str, Any]:
    return {
        "organization": preview.organization,
        "principal": str(preview.principal),
        "net_principal": str(preview.net_principal),
        "processing_fee": str(preview.processing_fee),
        "interest_rate": str(preview.interest_rate),
        "tenure": preview.tenure,
        "emi": str(preview.emi),
        "total_payable": str(preview.total_payable),
        "total_interest": str(preview.total_interest)
    }


def application_to_dict(application: LoanApplication) -> Dict[str, Any]:
    return {
        "application_id": application.id,
        "borrower_id": application.borrower_id,
        "lender_id": application.lender_id,
        "gross_amount": str(application.gross_amount),
        "loan_requested": str(application.loan_requested),
        "processing_fee": str(application.processing_fee),
        "interest_rate": str(application.interest_rate),
        "tenure": application.tenure,
        "emi_amount": str(application.emi_amount),
        "purpose": application.purpose,
        "income_source": application.income_source,
        "monthly_income": str(application.monthly_income),
        "status": application.status.value,
        "applied_at": _iso(application.applied_at),
        "closed_at": _iso(application.closed_at),
        "loan_id": application.loan_id
    }


def receipt_to_dict(receipt: DisbursementReceipt) -> Dict[str, Any]:
    return {
        "loan_id": receipt.loan_id,
        "application_id": receipt.application_id,
        "disbursed_amount": str(receipt.disbursed_amount),
        "emi": str(receipt.emi),
        "total_amount": str(receipt.total_amount),
        "total_interest": str(receipt.total_interest),
        "first_due_date": receipt.first_due_date.isoformat(),
        "transaction_id": receipt.transaction_id,
        "message": receipt.message
    }


def loan_details_to_dict(details: LoanDetails) -> Dict[str, Any]:
    return {
        "loan_id": details.loan_id,
        "application_id": details.application_id,
        "borrower_id": details.borrower_id,
        "lender_id": details.lender_id,
        "principal_amount": str(details.principal_amount),
        "total_amount_to_repay": str(details.total_amount_to_repay),
        "remaining_amount": str(details.remaining_amount),
        "total_interest_amount": str(details.total_interest_amount),
        "emi_amount": str(details.emi_amount),
        "interest_rate": str(details.interest_rate),
        "total_installments": details.total_installments,
        "paid_installments": details.paid_installments,
        "remaining_installments": details.remaining_installments,
        "completion_percentage": str(details.completion_percentage),
        "next_due_date": _iso(details.next_due_date),
        "status": details.status.value,
        "disbursed_at": _iso(details.disbursed_at),
        "fully_repaid_at": _iso(details.fully_repaid_at),
        "is_fully_repaid": details.is_fully_repaid
    }


def installment_to_dict(installment: Installment) -> Dict[str, Any]:
    return {
        "installment_id": installment.id,
        "installment_number": installment.installment_number,
        "emi_amount": str(installment.emi_amount),
        "principal_amount": str(installment.principal_amount),
        "interest_amount": str(installment.interest_amount),
        "late_fee": str(installment.late_fee),
        "total_amount_due": str(installment.total_amount_due),
        "due_date": installment.due_date.isoformat(),
        "paid_date": _iso(installment.paid_date),
        "total_amount_paid": _amount(installment.total_amount_paid),
        "status": installment.status.value
    }


def schedule_to_dict(loan_id: str, schedule: List[Installment]) -> Dict[str, Any]:
    return {
        "loan_id": loan_id,
        "installments": [installment_to_dict(i) for i in schedule],
        "count": len(schedule)
    }


def payment_to_dict(payment: LoanPayment) -> Dict[str, Any]:
    return {
        "payment_id": payment.id,
        "transaction_id": payment.transaction_id,
        "gateway_transaction_id": payment.gateway_transaction_id,
        "installment_number": payment.installment_number,
        "amount": str(payment.amount),
        "payment_method": payment.payment_method.value,
        "status": payment.status.value,
        "failure_reason": payment.failure_reason,
        "remarks": payment.remarks,
        "created_at": _iso(payment.created_at),
        "paid_at": _iso(payment.paid_at)
    }


def payment_response_to_dict(response: PaymentResponse) -> Dict[str, Any]:
    return {
        "payment_id": response.payment_id,
        "transaction_id": response.transaction_id,
        "gateway_transaction_id": response.gateway_transaction_id,
        "status": response.status.value,
        "amount": str(response.amount),
        "late_fee": str(response.late_fee),
        "installment_number": response.installment_number,
        "remaining_amount": str(response.remaining_amount),
        "next_due_date": _iso(response.next_due_date),
        "failure_reason": response.failure_reason,
        "message": response.message
    }


def portfolio_to_dict(portfolio: LenderPortfolio) -> Dict[str, Any]:
    return {
        "lender_name": portfolio.lender_name,
        "pending_applications": portfolio.pending_applications,
        "approved_applications": portfolio.approved_applications,
        "disbursed_loans": portfolio.disbursed_loans,
        "rejected_applications": portfolio.rejected_applications,
        "completed_loans": portfolio.completed_loans,
        "total_disbursed_amount": str(portfolio.total_disbursed_amount),
        "total_outstanding_amount": str(portfolio.total_outstanding_amount),
        "total_collected_amount": str(portfolio.total_collected_amount)
    }
