"""
Payment Module

Applies a borrower's repayment to the next pending installment of a loan.
Every attempt is recorded; balances only move when the gateway reports
SUCCESS, and the payment row, installment and loan are written together.
"""

import logging
import random
import time
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional

from .actors import Actor, Role, require_role
from .audit import AuditTrail, AuditEventType
from .errors import OperationNotAllowedError, ValidationError
from .gateway import SettlementGateway
from .locks import KeyedLocks
from .loans import LoanManager
from .logging_config import log_action
from .models import LoanPayment, LoanStatus, PaymentMethod, PaymentStatus
from .money import ZERO, round_money, to_decimal
from .storage import StorageInterface, StorageManager


logger = logging.getLogger("loan_engine.payments")

STATUS_MESSAGES = {
    PaymentStatus.SUCCESS: "Payment processed successfully",
    PaymentStatus.FAILED: "Payment failed. Please try again",
    PaymentStatus.PENDING: "Payment is being processed",
    PaymentStatus.CANCELLED: "Payment was cancelled",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PaymentRequest:
    """Borrower repayment instruction"""
    amount: Decimal
    payment_method: PaymentMethod
    remarks: Optional[str] = None

    def __post_init__(self):
        self.amount = to_decimal(self.amount)
        if isinstance(self.payment_method, str):
            try:
                self.payment_method = PaymentMethod(self.payment_method)
            except ValueError:
                raise ValidationError(f"Unsupported payment method: {self.payment_method}")


@dataclass(frozen=True)
class PaymentResponse:
    """Outcome of one payment attempt"""
    payment_id: str
    transaction_id: str
    status: PaymentStatus
    amount: Decimal
    installment_number: int
    remaining_amount: Decimal
    next_due_date: Optional[date]
    message: str
    late_fee: Decimal = ZERO
    gateway_transaction_id: Optional[str] = None
    failure_reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == PaymentStatus.SUCCESS


class PaymentService:
    """
    Processes installment payments against the settlement gateway
    """

    def __init__(
        self,
        storage: StorageInterface,
        loans: LoanManager,
        gateway: SettlementGateway,
        audit_trail: AuditTrail,
        locks: Optional[KeyedLocks] = None,
        clock: Callable[[], datetime] = _utcnow
    ):
        self.storage = storage
        self.records = StorageManager(storage)
        self.loans = loans
        self.gateway = gateway
        self.audit_trail = audit_trail
        self.locks = locks or KeyedLocks()
        self.clock = clock

        self.payments_table = "loan_payments"

    def make_payment(self, actor: Actor, loan_id: str, request: PaymentRequest) -> PaymentResponse:
        """
        Pay the next pending installment of a loan

        The amount must equal the installment's EMI plus any late fee
        exactly. A non-success gateway outcome is recorded and returned, not
        raised.

        Args:
            actor: Borrower who owns the loan
            loan_id: Loan being repaid
            request: Amount and payment method

        Returns:
            PaymentResponse describing the attempt

        Raises:
            NotFoundError: Unknown loan
            UnauthorizedError: Actor is not the loan's borrower
            OperationNotAllowedError: Loan not open, nothing pending, or wrong amount
        """
        require_role(actor, Role.BORROWER, action="make loan payments")

        with self.locks.hold(f"loan:{loan_id}"):
            loan = self.loans.get_loan_for_actor(actor, loan_id)
            if loan.status != LoanStatus.DISBURSED:
                raise OperationNotAllowedError(f"Loan is not active for payments, loan is {loan.status.value}")

            installment = self.loans.next_pending_installment(loan.id)
            if installment is None:
                raise OperationNotAllowedError("No pending installments found")

            today = self.clock().date()
            self.loans.apply_late_fee(installment, today)

            amount_due = self.loans.amount_due(installment)
            amount = round_money(request.amount)
            if request.amount != amount or amount != amount_due:
                logger.warning(
                    f"Payment of {request.amount} rejected for loan {loan.id}, "
                    f"installment {installment.installment_number} requires {amount_due}"
                )
                raise OperationNotAllowedError(f"Payment amount must be exactly {amount_due}")

            result = self.gateway.settle_payment(
                amount=amount,
                payment_method=request.payment_method,
                loan_id=loan.id,
                installment_number=installment.installment_number
            )

            now = self.clock()
            payment = LoanPayment(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                loan_id=loan.id,
                installment_id=installment.id,
                installment_number=installment.installment_number,
                amount=amount,
                payment_method=request.payment_method,
                status=result.status,
                transaction_id=self._transaction_id(),
                gateway_transaction_id=result.transaction_id or None,
                failure_reason=result.failure_reason,
                remarks=request.remarks,
                paid_at=now if result.succeeded else None
            )

            closed_application = None
            with self.storage.atomic():
                self.records.save_record(payment, self.payments_table)
                if result.succeeded:
                    loan, installment, closed_application = self.loans.settle_installment(
                        loan, installment, amount, today
                    )

        self._audit_payment(actor, loan, payment)
        if closed_application is not None:
            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_CLOSED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "application_id": loan.application_id,
                    "total_amount_repaid": loan.total_amount_to_repay,
                    "fully_repaid_at": loan.fully_repaid_at
                },
                user_id=actor.user_id
            )
            logger.info(f"Loan {loan.id} fully repaid and closed")

        return PaymentResponse(
            payment_id=payment.id,
            transaction_id=payment.transaction_id,
            status=payment.status,
            amount=payment.amount,
            installment_number=payment.installment_number,
            remaining_amount=loan.remaining_amount,
            next_due_date=loan.next_due_date,
            message=STATUS_MESSAGES[payment.status],
            late_fee=installment.late_fee,
            gateway_transaction_id=payment.gateway_transaction_id,
            failure_reason=payment.failure_reason
        )

    def get_payment_history(self, actor: Actor, loan_id: str) -> List[LoanPayment]:
        """All payment attempts on a loan, newest first"""
        loan = self.loans.get_loan_for_actor(actor, loan_id)
        payments = self.records.find_records(LoanPayment, self.payments_table, {"loan_id": loan.id})
        payments.sort(key=lambda p: p.created_at, reverse=True)
        return payments

    def get_payment_by_transaction(self, transaction_id: str) -> Optional[LoanPayment]:
        found = self.records.find_records(
            LoanPayment, self.payments_table, {"transaction_id": transaction_id}
        )
        return found[0] if found else None

    def _transaction_id(self) -> str:
        """Local transaction id, TXN<millis>_<4 digits>, unique across attempts"""
        while True:
            candidate = f"TXN{int(time.time() * 1000)}_{random.randint(1000, 9999)}"
            if not self.storage.find(self.payments_table, {"transaction_id": candidate}):
                return candidate

    def _audit_payment(self, actor: Actor, loan, payment: LoanPayment) -> None:
        if payment.is_successful:
            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_PAYMENT_MADE,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "payment_id": payment.id,
                    "transaction_id": payment.transaction_id,
                    "installment_number": payment.installment_number,
                    "amount": payment.amount,
                    "payment_method": payment.payment_method,
                    "remaining_amount": loan.remaining_amount
                },
                user_id=actor.user_id
            )
            log_action(
                logger, "info", f"Payment applied to installment {payment.installment_number}",
                user_id=actor.user_id, action="make_payment", resource=payment.id,
                loan_id=loan.id, transaction_id=payment.transaction_id, amount=payment.amount
            )
        else:
            self.audit_trail.log_event(
                event_type=AuditEventType.LOAN_PAYMENT_FAILED,
                entity_type="loan",
                entity_id=loan.id,
                metadata={
                    "payment_id": payment.id,
                    "transaction_id": payment.transaction_id,
                    "installment_number": payment.installment_number,
                    "amount": payment.amount,
                    "status": payment.status,
                    "failure_reason": payment.failure_reason
                },
                user_id=actor.user_id
            )
            log_action(
                logger, "warning", f"Payment ended {payment.status.value}: {payment.failure_reason}",
                user_id=actor.user_id, action="make_payment", resource=payment.id,
                loan_id=loan.id, transaction_id=payment.transaction_id, amount=payment.amount
            )
