"""
Loan Module

Handles disbursement of approved applications, the installment schedule,
late fees and the settlement of installments through to loan closure.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from .actors import Actor, Role, require_lender, require_role
from .applications import LoanApplicationManager
from .audit import AuditTrail, AuditEventType
from .errors import GatewayFailure, InvalidStateError, NotFoundError, UnauthorizedError
from .gateway import SettlementGateway
from .lenders import LenderDirectory
from .locks import KeyedLocks
from .logging_config import log_action
from .models import (
    ApplicationStatus, Installment, InstallmentStatus, Loan, LoanApplication, LoanStatus
)
from .money import ZERO
from .schedule import generate_schedule, schedule_totals
from .storage import StorageInterface, StorageManager


logger = logging.getLogger("loan_engine.loans")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DisbursementReceipt:
    """Result of a successful disbursement"""
    loan_id: str
    application_id: str
    disbursed_amount: Decimal
    emi: Decimal
    total_amount: Decimal
    total_interest: Decimal
    first_due_date: date
    transaction_id: str
    message: str = "Loan disbursed successfully"


@dataclass(frozen=True)
class LoanDetails:
    """Read-only projection of a loan for borrowers and lenders"""
    loan_id: str
    application_id: str
    borrower_id: str
    lender_id: str
    principal_amount: Decimal
    total_amount_to_repay: Decimal
    remaining_amount: Decimal
    total_interest_amount: Decimal
    emi_amount: Decimal
    interest_rate: Decimal
    total_installments: int
    paid_installments: int
    remaining_installments: int
    completion_percentage: Decimal
    next_due_date: Optional[date]
    status: LoanStatus
    disbursed_at: Optional[datetime]
    fully_repaid_at: Optional[datetime]
    is_fully_repaid: bool


class LoanManager:
    """
    Manages loans from disbursement through closure
    """

    def __init__(
        self,
        storage: StorageInterface,
        applications: LoanApplicationManager,
        lenders: LenderDirectory,
        gateway: SettlementGateway,
        audit_trail: AuditTrail,
        locks: Optional[KeyedLocks] = None,
        clock: Callable[[], datetime] = _utcnow
    ):
        self.storage = storage
        self.records = StorageManager(storage)
        self.applications = applications
        self.lenders = lenders
        self.gateway = gateway
        self.audit_trail = audit_trail
        self.locks = locks or KeyedLocks()
        self.clock = clock

        self.loans_table = "loans"
        self.installments_table = "installments"

    def disburse(self, actor: Actor, application_id: str) -> DisbursementReceipt:
        """
        Disburse an approved application

        The loan and its schedule are built in memory and written together
        with the application only after the gateway reports SUCCESS. On any
        other outcome nothing is persisted and the application stays APPROVED.

        Args:
            actor: Lender (or loan manager) owning the application
            application_id: Application to disburse

        Returns:
            DisbursementReceipt

        Raises:
            InvalidStateError: Application is not APPROVED
            GatewayFailure: Gateway did not release the funds
        """
        require_role(actor, Role.LENDER, Role.LOAN_MANAGER, action="disburse loans")

        with self.locks.hold(f"application:{application_id}"):
            application = self.applications.get_application(application_id)
            require_lender(actor, application.lender_id, action="disburse loans")

            if application.status != ApplicationStatus.APPROVED:
                logger.warning(
                    f"Disbursement refused for application {application_id} in status {application.status.value}"
                )
                raise InvalidStateError(
                    f"Only approved applications can be disbursed, application is {application.status.value}"
                )

            now = self.clock()
            loan, schedule = self._build_loan(application, now)

            result = self.gateway.disburse(loan.id, application.borrower_id, loan.principal_amount)

            if not result.succeeded:
                self.audit_trail.log_event(
                    event_type=AuditEventType.LOAN_DISBURSEMENT_FAILED,
                    entity_type="application",
                    entity_id=application.id,
                    metadata={
                        "amount": loan.principal_amount,
                        "gateway_transaction_id": result.transaction_id,
                        "failure_reason": result.failure_reason
                    },
                    user_id=actor.user_id
                )
                logger.error(
                    f"Disbursement failed for application {application.id}: {result.failure_reason}"
                )
                raise GatewayFailure(
                    f"Disbursement failed: {result.failure_reason or 'unknown reason'}",
                    transaction_id=result.transaction_id,
                    reason=result.failure_reason
                )

            loan.disbursement_transaction_id = result.transaction_id
            application.status = ApplicationStatus.DISBURSED
            application.loan_id = loan.id
            application.touch(now)

            try:
                with self.storage.atomic():
                    self.records.save_record(loan, self.loans_table)
                    for installment in schedule:
                        self.records.save_record(installment, self.installments_table)
                    self.applications.save_application(application)
            except Exception:
                logger.exception(
                    f"Funds released (gateway transaction {result.transaction_id}) "
                    f"but loan {loan.id} could not be recorded"
                )
                raise

        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_DISBURSED,
            entity_type="loan",
            entity_id=loan.id,
            metadata={
                "application_id": application.id,
                "principal_amount": loan.principal_amount,
                "total_amount_to_repay": loan.total_amount_to_repay,
                "total_installments": loan.total_installments,
                "first_due_date": loan.next_due_date,
                "transaction_id": result.transaction_id
            },
            user_id=actor.user_id
        )
        log_action(
            logger, "info", f"Loan disbursed over {loan.total_installments} installments",
            user_id=actor.user_id, action="disburse_loan", resource=application.id,
            loan_id=loan.id, transaction_id=result.transaction_id, amount=loan.principal_amount
        )

        return DisbursementReceipt(
            loan_id=loan.id,
            application_id=application.id,
            disbursed_amount=loan.principal_amount,
            emi=application.emi_amount,
            total_amount=loan.total_amount_to_repay,
            total_interest=loan.total_interest_amount,
            first_due_date=schedule[0].due_date,
            transaction_id=result.transaction_id
        )

    def _build_loan(self, application: LoanApplication, now: datetime) -> Tuple[Loan, List[Installment]]:
        loan_id = str(uuid.uuid4())
        schedule = generate_schedule(
            loan_id=loan_id,
            principal=application.loan_requested,
            annual_rate=application.interest_rate,
            tenure_months=application.tenure,
            emi=application.emi_amount,
            disbursed_on=now.date(),
            now=now
        )
        # Totals come from the schedule so the balance reaches exactly zero
        total_to_repay, total_interest = schedule_totals(schedule)

        loan = Loan(
            id=loan_id,
            created_at=now,
            updated_at=now,
            application_id=application.id,
            borrower_id=application.borrower_id,
            lender_id=application.lender_id,
            principal_amount=application.loan_requested,
            total_amount_to_repay=total_to_repay,
            remaining_amount=total_to_repay,
            total_interest_amount=total_interest,
            total_installments=application.tenure,
            paid_installments=0,
            next_due_date=schedule[0].due_date,
            status=LoanStatus.DISBURSED,
            disbursed_at=now
        )
        return loan, schedule

    def next_pending_installment(self, loan_id: str) -> Optional[Installment]:
        """Lowest-numbered PENDING installment, or None when all are paid"""
        pending = self.records.find_records(
            Installment, self.installments_table,
            {"loan_id": loan_id, "status": InstallmentStatus.PENDING.value}
        )
        if not pending:
            return None
        return min(pending, key=lambda i: i.installment_number)

    @staticmethod
    def is_overdue(installment: Installment, today: date, grace_period_days: int) -> bool:
        """An installment is late once today is past its due date plus the grace period"""
        return today > installment.due_date + timedelta(days=grace_period_days)

    def apply_late_fee(self, installment: Installment, today: Optional[date] = None) -> bool:
        """
        Assess the late fee on an overdue installment

        The fee is set at most once per installment and never recomputed,
        even if the configuration changes later.

        Returns:
            True if a fee was assessed by this call
        """
        if installment.is_paid or installment.late_fee > ZERO:
            return False

        today = today or self.clock().date()
        configuration = self.lenders.active_configuration()
        if not self.is_overdue(installment, today, configuration.grace_period_days):
            return False
        if configuration.late_fee_amount <= ZERO:
            return False

        installment.late_fee = configuration.late_fee_amount
        installment.touch(self.clock())
        self.records.save_record(installment, self.installments_table)

        self.audit_trail.log_event(
            event_type=AuditEventType.LATE_FEE_APPLIED,
            entity_type="installment",
            entity_id=installment.id,
            metadata={
                "loan_id": installment.loan_id,
                "installment_number": installment.installment_number,
                "due_date": installment.due_date,
                "late_fee": installment.late_fee
            }
        )
        logger.info(
            f"Late fee {installment.late_fee} applied to installment "
            f"{installment.installment_number} of loan {installment.loan_id}"
        )
        return True

    @staticmethod
    def amount_due(installment: Installment) -> Decimal:
        """EMI plus any assessed late fee"""
        return installment.total_amount_due

    def settle_installment(
        self,
        loan: Loan,
        installment: Installment,
        amount: Decimal,
        today: Optional[date] = None
    ) -> Tuple[Loan, Installment, Optional[LoanApplication]]:
        """
        Mark an installment paid and move the loan balance

        Mutates and persists the records; callers wrap this in the same
        storage unit as the payment row.

        Returns:
            (loan, installment, application); application is set only when
            this payment closed the loan
        """
        if installment.is_paid:
            raise InvalidStateError(f"Installment {installment.installment_number} is already paid")
        if loan.status != LoanStatus.DISBURSED:
            raise InvalidStateError(f"Loan {loan.id} is {loan.status.value}")

        now = self.clock()
        today = today or now.date()
        grace_days = self.lenders.active_configuration().grace_period_days

        installment.status = (
            InstallmentStatus.LATE_PAID
            if self.is_overdue(installment, today, grace_days)
            else InstallmentStatus.PAID
        )
        installment.paid_date = today
        installment.total_amount_paid = amount
        installment.touch(now)
        self.records.save_record(installment, self.installments_table)

        loan.remaining_amount -= installment.emi_amount
        loan.paid_installments += 1
        loan.touch(now)

        application = None
        if loan.remaining_amount <= ZERO or loan.is_fully_repaid:
            loan.status = LoanStatus.CLOSED
            loan.next_due_date = None
            loan.fully_repaid_at = now

            application = self.applications.get_application(loan.application_id)
            application.closed_at = now
            application.touch(now)
            self.applications.save_application(application)
        else:
            following = self.next_pending_installment(loan.id)
            loan.next_due_date = following.due_date if following else None

        self.records.save_record(loan, self.loans_table)

        return loan, installment, application

    def get_loan(self, loan_id: str) -> Loan:
        """Load a loan or raise NotFoundError"""
        loan = self.records.load_record(Loan, self.loans_table, loan_id)
        if not loan:
            raise NotFoundError(f"Loan {loan_id} not found")
        return loan

    def get_loan_for_actor(self, actor: Actor, loan_id: str) -> Loan:
        """Load a loan owned by the borrower or held by the lender"""
        loan = self.get_loan(loan_id)
        if actor.role == Role.BORROWER:
            if loan.borrower_id != actor.user_id:
                raise UnauthorizedError("You can only access your own loans")
        elif actor.role in (Role.LENDER, Role.LOAN_MANAGER):
            if loan.lender_id != actor.acting_lender_id:
                raise UnauthorizedError("This loan does not belong to your organization")
        elif actor.role != Role.SYSTEM_ADMIN:
            raise UnauthorizedError("Not allowed to access loans")
        return loan

    def get_schedule(self, loan_id: str) -> List[Installment]:
        """Installments of a loan in number order"""
        installments = self.records.find_records(Installment, self.installments_table, {"loan_id": loan_id})
        installments.sort(key=lambda i: i.installment_number)
        return installments

    def loan_details(self, loan: Loan) -> LoanDetails:
        application = self.applications.get_application(loan.application_id)
        return LoanDetails(
            loan_id=loan.id,
            application_id=loan.application_id,
            borrower_id=loan.borrower_id,
            lender_id=loan.lender_id,
            principal_amount=loan.principal_amount,
            total_amount_to_repay=loan.total_amount_to_repay,
            remaining_amount=loan.remaining_amount,
            total_interest_amount=loan.total_interest_amount,
            emi_amount=application.emi_amount,
            interest_rate=application.interest_rate,
            total_installments=loan.total_installments,
            paid_installments=loan.paid_installments,
            remaining_installments=loan.remaining_installments,
            completion_percentage=loan.completion_percentage,
            next_due_date=loan.next_due_date,
            status=loan.status,
            disbursed_at=loan.disbursed_at,
            fully_repaid_at=loan.fully_repaid_at,
            is_fully_repaid=loan.is_fully_repaid
        )

    def list_lender_loans(self, actor: Actor, status: Optional[LoanStatus] = None) -> List[Loan]:
        """Loans held by the actor's lender, newest first"""
        require_role(actor, Role.LENDER, Role.LOAN_MANAGER, action="view loans")
        filters = {"lender_id": actor.acting_lender_id}
        if status is not None:
            filters["status"] = status.value
        loans = self.records.find_records(Loan, self.loans_table, filters)
        loans.sort(key=lambda loan: loan.disbursed_at or loan.created_at, reverse=True)
        return loans

    def list_borrower_loans(self, actor: Actor) -> List[Loan]:
        """The borrower's loans, newest first"""
        require_role(actor, Role.BORROWER, action="view their loans")
        loans = self.records.find_records(Loan, self.loans_table, {"borrower_id": actor.user_id})
        loans.sort(key=lambda loan: loan.disbursed_at or loan.created_at, reverse=True)
        return loans
