"""
Domain Model Module

Records and status enums for lenders, loan applications, loans, installments
and payment attempts. Records reference each other by id only; the managers
load related records explicitly.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from .money import ZERO, to_decimal, optional_decimal
from .storage import StorageRecord


class ApplicationStatus(Enum):
    """Loan application lifecycle states"""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    DISBURSED = "DISBURSED"
    WITHDRAWN = "WITHDRAWN"


class LoanStatus(Enum):
    """Disbursed loan lifecycle states"""
    DISBURSED = "DISBURSED"
    CLOSED = "CLOSED"


class InstallmentStatus(Enum):
    """Repayment schedule entry states"""
    PENDING = "PENDING"
    PAID = "PAID"
    LATE_PAID = "LATE_PAID"


class PaymentStatus(Enum):
    """Settlement outcome of a payment attempt"""
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class PaymentMethod(Enum):
    """Payment instruments accepted for repayment"""
    UPI = "UPI"
    NET_BANKING = "NET_BANKING"
    DEBIT_CARD = "DEBIT_CARD"
    CREDIT_CARD = "CREDIT_CARD"
    WALLET = "WALLET"


# Statuses that count towards the single active-loan rule
ACTIVE_APPLICATION_STATUSES = (
    ApplicationStatus.PENDING,
    ApplicationStatus.APPROVED,
    ApplicationStatus.DISBURSED,
)


def _parse_date(value: Any) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(value)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _base_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'id': data['id'],
        'created_at': _parse_datetime(data['created_at']),
        'updated_at': _parse_datetime(data['updated_at']),
    }


@dataclass
class Lender(StorageRecord):
    """Lender profile terms offered to borrowers"""
    organization_name: str
    interest_rate: Decimal              # Annual rate in percent, e.g. 14.5
    processing_fee: Decimal
    supported_tenures: List[int] = field(default_factory=list)
    is_verified: bool = False
    is_active: bool = True

    @property
    def accepts_applications(self) -> bool:
        return self.is_verified and self.is_active

    @property
    def supported_tenures_csv(self) -> str:
        return ",".join(str(t) for t in self.supported_tenures)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Lender':
        return cls(
            **_base_fields(data),
            organization_name=data['organization_name'],
            interest_rate=to_decimal(data['interest_rate']),
            processing_fee=to_decimal(data['processing_fee']),
            supported_tenures=[int(t) for t in data.get('supported_tenures', [])],
            is_verified=data.get('is_verified', False),
            is_active=data.get('is_active', True),
        )


@dataclass
class LoanConfiguration(StorageRecord):
    """Late-fee and grace-period settings; one configuration is active"""
    late_fee_amount: Decimal
    grace_period_days: int
    reminder_before_due_days: int = 3
    active: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanConfiguration':
        return cls(
            **_base_fields(data),
            late_fee_amount=to_decimal(data['late_fee_amount']),
            grace_period_days=int(data['grace_period_days']),
            reminder_before_due_days=int(data.get('reminder_before_due_days', 3)),
            active=data.get('active', True),
        )


@dataclass
class LoanApplication(StorageRecord):
    """A borrower's request to one lender, with the lender's terms snapshotted"""
    borrower_id: str
    lender_id: str
    loan_requested: Decimal             # Net of processing fee
    interest_rate: Decimal
    processing_fee: Decimal
    tenure: int
    emi_amount: Decimal
    purpose: str
    income_source: str
    monthly_income: Decimal
    status: ApplicationStatus = ApplicationStatus.PENDING
    applied_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    loan_id: Optional[str] = None

    @property
    def gross_amount(self) -> Decimal:
        """Amount the borrower asked for, before the processing fee"""
        return self.loan_requested + self.processing_fee

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanApplication':
        return cls(
            **_base_fields(data),
            borrower_id=data['borrower_id'],
            lender_id=data['lender_id'],
            loan_requested=to_decimal(data['loan_requested']),
            interest_rate=to_decimal(data['interest_rate']),
            processing_fee=to_decimal(data['processing_fee']),
            tenure=int(data['tenure']),
            emi_amount=to_decimal(data['emi_amount']),
            purpose=data['purpose'],
            income_source=data['income_source'],
            monthly_income=to_decimal(data['monthly_income']),
            status=ApplicationStatus(data['status']),
            applied_at=_parse_datetime(data.get('applied_at')),
            closed_at=_parse_datetime(data.get('closed_at')),
            loan_id=data.get('loan_id'),
        )


@dataclass
class Loan(StorageRecord):
    """Funded obligation created at disbursement"""
    application_id: str
    borrower_id: str
    lender_id: str
    principal_amount: Decimal
    total_amount_to_repay: Decimal
    remaining_amount: Decimal
    total_interest_amount: Decimal
    total_installments: int
    paid_installments: int = 0
    next_due_date: Optional[date] = None
    status: LoanStatus = LoanStatus.DISBURSED
    disbursed_at: Optional[datetime] = None
    fully_repaid_at: Optional[datetime] = None
    disbursement_transaction_id: Optional[str] = None

    @property
    def is_fully_repaid(self) -> bool:
        return self.paid_installments == self.total_installments

    @property
    def remaining_installments(self) -> int:
        return self.total_installments - self.paid_installments

    @property
    def completion_percentage(self) -> Decimal:
        if self.total_installments == 0:
            return ZERO
        ratio = Decimal(self.paid_installments) / Decimal(self.total_installments)
        return (ratio * 100).quantize(Decimal('0.01'))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        return cls(
            **_base_fields(data),
            application_id=data['application_id'],
            borrower_id=data['borrower_id'],
            lender_id=data['lender_id'],
            principal_amount=to_decimal(data['principal_amount']),
            total_amount_to_repay=to_decimal(data['total_amount_to_repay']),
            remaining_amount=to_decimal(data['remaining_amount']),
            total_interest_amount=to_decimal(data['total_interest_amount']),
            total_installments=int(data['total_installments']),
            paid_installments=int(data.get('paid_installments', 0)),
            next_due_date=_parse_date(data.get('next_due_date')),
            status=LoanStatus(data['status']),
            disbursed_at=_parse_datetime(data.get('disbursed_at')),
            fully_repaid_at=_parse_datetime(data.get('fully_repaid_at')),
            disbursement_transaction_id=data.get('disbursement_transaction_id'),
        )


@dataclass
class Installment(StorageRecord):
    """One entry of a loan's amortization table"""
    loan_id: str
    installment_number: int
    emi_amount: Decimal
    principal_amount: Decimal
    interest_amount: Decimal
    due_date: date
    status: InstallmentStatus = InstallmentStatus.PENDING
    paid_date: Optional[date] = None
    late_fee: Decimal = ZERO
    total_amount_paid: Optional[Decimal] = None

    def __post_init__(self):
        if self.emi_amount != self.principal_amount + self.interest_amount:
            raise ValueError(
                f"Installment {self.installment_number}: EMI {self.emi_amount} does not equal "
                f"principal {self.principal_amount} + interest {self.interest_amount}"
            )

    @property
    def is_paid(self) -> bool:
        return self.status in (InstallmentStatus.PAID, InstallmentStatus.LATE_PAID)

    @property
    def total_amount_due(self) -> Decimal:
        return self.emi_amount + (self.late_fee or ZERO)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Installment':
        return cls(
            **_base_fields(data),
            loan_id=data['loan_id'],
            installment_number=int(data['installment_number']),
            emi_amount=to_decimal(data['emi_amount']),
            principal_amount=to_decimal(data['principal_amount']),
            interest_amount=to_decimal(data['interest_amount']),
            due_date=_parse_date(data['due_date']),
            status=InstallmentStatus(data['status']),
            paid_date=_parse_date(data.get('paid_date')),
            late_fee=to_decimal(data.get('late_fee', '0.00')),
            total_amount_paid=optional_decimal(data.get('total_amount_paid')),
        )


@dataclass
class LoanPayment(StorageRecord):
    """Immutable record of one payment attempt"""
    loan_id: str
    installment_id: str
    installment_number: int
    amount: Decimal
    payment_method: PaymentMethod
    status: PaymentStatus
    transaction_id: str                 # Locally generated, unique
    gateway_transaction_id: Optional[str] = None
    failure_reason: Optional[str] = None
    remarks: Optional[str] = None
    paid_at: Optional[datetime] = None

    @property
    def is_successful(self) -> bool:
        return self.status == PaymentStatus.SUCCESS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanPayment':
        return cls(
            **_base_fields(data),
            loan_id=data['loan_id'],
            installment_id=data['installment_id'],
            installment_number=int(data['installment_number']),
            amount=to_decimal(data['amount']),
            payment_method=PaymentMethod(data['payment_method']),
            status=PaymentStatus(data['status']),
            transaction_id=data['transaction_id'],
            gateway_transaction_id=data.get('gateway_transaction_id'),
            failure_reason=data.get('failure_reason'),
            remarks=data.get('remarks'),
            paid_at=_parse_datetime(data.get('paid_at')),
        )
