"""
Loan Application Module

Drives a borrower's request to a lender through submission, approval,
rejection and withdrawal. Lender terms and the EMI are snapshotted when the
application is submitted.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional

from .actors import Actor, Role, require_lender, require_role
from .audit import AuditTrail, AuditEventType
from .calculator import emi_breakdown
from .errors import (
    InvalidStateError, NotFoundError, OperationNotAllowedError,
    UnauthorizedError, ValidationError
)
from .lenders import LenderDirectory
from .locks import KeyedLocks
from .logging_config import log_action
from .models import ACTIVE_APPLICATION_STATUSES, ApplicationStatus, Lender, LoanApplication
from .money import ZERO, round_money, to_decimal
from .storage import StorageInterface, StorageManager


logger = logging.getLogger("loan_engine.applications")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LoanApplicationRequest:
    """Borrower-supplied fields of a loan application"""
    amount: Decimal                 # Requested amount, processing fee included
    tenure: int
    purpose: str
    income_source: str
    monthly_income: Decimal

    def __post_init__(self):
        self.amount = to_decimal(self.amount)
        self.monthly_income = to_decimal(self.monthly_income)


@dataclass(frozen=True)
class EmiPreview:
    """What a borrower would pay a lender for a requested amount"""
    organization: str
    principal: Decimal              # As requested
    net_principal: Decimal          # After processing fee; the amount financed
    emi: Decimal
    total_payable: Decimal
    total_interest: Decimal
    processing_fee: Decimal
    interest_rate: Decimal
    tenure: int


class LoanApplicationManager:
    """
    Manages the loan application state machine:
    PENDING -> APPROVED -> DISBURSED, PENDING -> REJECTED, PENDING -> WITHDRAWN
    """

    def __init__(
        self,
        storage: StorageInterface,
        lenders: LenderDirectory,
        audit_trail: AuditTrail,
        locks: Optional[KeyedLocks] = None,
        clock: Callable[[], datetime] = _utcnow
    ):
        self.storage = storage
        self.records = StorageManager(storage)
        self.lenders = lenders
        self.audit_trail = audit_trail
        self.locks = locks or KeyedLocks()
        self.clock = clock

        self.applications_table = "loan_applications"

    def preview_emi(self, lender_id: str, principal: Decimal, tenure: int) -> EmiPreview:
        """
        Show EMI and totals for a requested amount without creating anything

        Raises:
            NotFoundError: Unknown lender
            UnauthorizedError: Lender is not verified or not active
            OperationNotAllowedError: Lender does not offer the tenure
            ValidationError: Amount does not exceed the processing fee
        """
        lender = self._lender_accepting_applications(lender_id, tenure)
        principal = round_money(to_decimal(principal))
        net_principal = self._net_principal(principal, lender.processing_fee)

        breakdown = emi_breakdown(net_principal, lender.interest_rate, tenure)
        return EmiPreview(
            organization=lender.organization_name,
            principal=principal,
            net_principal=net_principal,
            emi=breakdown.emi,
            total_payable=breakdown.total_payable,
            total_interest=breakdown.total_interest,
            processing_fee=lender.processing_fee,
            interest_rate=lender.interest_rate,
            tenure=tenure
        )

    def apply_loan(self, actor: Actor, lender_id: str, request: LoanApplicationRequest) -> LoanApplication:
        """
        Submit a loan application

        Args:
            actor: Borrower submitting the request
            lender_id: Lender the application goes to
            request: Amount, tenure and income details

        Returns:
            Created LoanApplication in PENDING status
        """
        require_role(actor, Role.BORROWER, action="apply for loans")
        self._validate_request(request)

        with self.locks.hold(f"borrower:{actor.user_id}"):
            if self.has_active_application(actor.user_id):
                log_action(
                    logger, "warning", "Loan application refused: borrower already has an active loan",
                    user_id=actor.user_id, action="apply_loan", resource=lender_id
                )
                raise OperationNotAllowedError("Borrower already has an active loan")

            lender = self._lender_accepting_applications(lender_id, request.tenure)
            amount = round_money(request.amount)
            net_principal = self._net_principal(amount, lender.processing_fee)
            breakdown = emi_breakdown(net_principal, lender.interest_rate, request.tenure)

            now = self.clock()
            application = LoanApplication(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                borrower_id=actor.user_id,
                lender_id=lender.id,
                loan_requested=net_principal,
                interest_rate=lender.interest_rate,
                processing_fee=lender.processing_fee,
                tenure=request.tenure,
                emi_amount=breakdown.emi,
                purpose=request.purpose.strip(),
                income_source=request.income_source.strip(),
                monthly_income=round_money(request.monthly_income),
                status=ApplicationStatus.PENDING,
                applied_at=now
            )
            self.records.save_record(application, self.applications_table)

        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_APPLICATION_SUBMITTED,
            entity_type="application",
            entity_id=application.id,
            metadata={
                "lender_id": lender.id,
                "loan_requested": application.loan_requested,
                "processing_fee": application.processing_fee,
                "interest_rate": application.interest_rate,
                "tenure": application.tenure,
                "emi_amount": application.emi_amount
            },
            user_id=actor.user_id
        )
        log_action(
            logger, "info", f"Loan application submitted for {application.loan_requested}",
            user_id=actor.user_id, action="apply_loan", resource=application.id
        )

        return application

    def withdraw_loan(self, actor: Actor) -> LoanApplication:
        """Withdraw the borrower's most recent application while it is still PENDING"""
        require_role(actor, Role.BORROWER, action="withdraw loan applications")

        with self.locks.hold(f"borrower:{actor.user_id}"):
            applications = self.list_borrower_applications(actor)
            if not applications:
                raise NotFoundError("No loan application found")

            latest = applications[0]
            with self.locks.hold(f"application:{latest.id}"):
                # Reload under the application lock; a lender may have acted meanwhile
                application = self.get_application(latest.id)
                if application.status != ApplicationStatus.PENDING:
                    raise InvalidStateError(
                        f"Only pending applications can be withdrawn, application is {application.status.value}"
                    )

                application.status = ApplicationStatus.WITHDRAWN
                now = self.clock()
                application.closed_at = now
                application.touch(now)
                self.records.save_record(application, self.applications_table)

        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_APPLICATION_WITHDRAWN,
            entity_type="application",
            entity_id=application.id,
            metadata={"lender_id": application.lender_id},
            user_id=actor.user_id
        )
        logger.info(f"Loan application {application.id} withdrawn by borrower {actor.user_id}")

        return application

    def approve_loan(self, actor: Actor, application_id: str) -> LoanApplication:
        """PENDING -> APPROVED by the owning lender"""
        application = self._decide(actor, application_id, ApplicationStatus.APPROVED, "approve")

        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_APPLICATION_APPROVED,
            entity_type="application",
            entity_id=application.id,
            metadata={
                "borrower_id": application.borrower_id,
                "loan_requested": application.loan_requested
            },
            user_id=actor.user_id
        )
        log_action(
            logger, "info", "Loan application approved",
            user_id=actor.user_id, action="approve_loan", resource=application.id
        )
        return application

    def reject_loan(self, actor: Actor, application_id: str) -> LoanApplication:
        """PENDING -> REJECTED by the owning lender"""
        application = self._decide(actor, application_id, ApplicationStatus.REJECTED, "reject")

        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_APPLICATION_REJECTED,
            entity_type="application",
            entity_id=application.id,
            metadata={"borrower_id": application.borrower_id},
            user_id=actor.user_id
        )
        log_action(
            logger, "info", "Loan application rejected",
            user_id=actor.user_id, action="reject_loan", resource=application.id
        )
        return application

    def get_application(self, application_id: str) -> LoanApplication:
        """Load an application or raise NotFoundError"""
        application = self.records.load_record(LoanApplication, self.applications_table, application_id)
        if not application:
            raise NotFoundError(f"Loan application {application_id} not found")
        return application

    def save_application(self, application: LoanApplication) -> None:
        self.records.save_record(application, self.applications_table)

    def list_borrower_applications(self, actor: Actor) -> List[LoanApplication]:
        """The borrower's applications, most recent first"""
        require_role(actor, Role.BORROWER, action="view their applications")
        applications = self.records.find_records(
            LoanApplication, self.applications_table, {"borrower_id": actor.user_id}
        )
        return self._newest_first(applications)

    def list_lender_applications(
        self,
        actor: Actor,
        status: Optional[ApplicationStatus] = None
    ) -> List[LoanApplication]:
        """Applications addressed to the actor's lender, optionally filtered by status"""
        require_role(actor, Role.LENDER, Role.LOAN_MANAGER, action="view loan applications")
        filters = {"lender_id": actor.acting_lender_id}
        if status is not None:
            filters["status"] = status.value
        applications = self.records.find_records(LoanApplication, self.applications_table, filters)
        return self._newest_first(applications)

    def has_active_application(self, borrower_id: str) -> bool:
        """True while the borrower has a PENDING, APPROVED or DISBURSED application"""
        applications = self.records.find_records(
            LoanApplication, self.applications_table, {"borrower_id": borrower_id}
        )
        return any(a.status in ACTIVE_APPLICATION_STATUSES for a in applications)

    def _decide(
        self,
        actor: Actor,
        application_id: str,
        new_status: ApplicationStatus,
        verb: str
    ) -> LoanApplication:
        require_role(actor, Role.LENDER, Role.LOAN_MANAGER, action=f"{verb} loans")

        with self.locks.hold(f"application:{application_id}"):
            application = self.get_application(application_id)
            require_lender(actor, application.lender_id, action=f"{verb} loans")

            if application.status != ApplicationStatus.PENDING:
                logger.warning(
                    f"Cannot {verb} application {application_id} in status {application.status.value}"
                )
                raise InvalidStateError(
                    f"Only pending applications can be {new_status.value.lower()}, "
                    f"application is {application.status.value}"
                )

            now = self.clock()
            application.status = new_status
            if new_status == ApplicationStatus.REJECTED:
                application.closed_at = now
            application.touch(now)
            self.records.save_record(application, self.applications_table)

        return application

    def _lender_accepting_applications(self, lender_id: str, tenure: int) -> Lender:
        lender = self.lenders.get_lender(lender_id)
        if not lender.accepts_applications:
            raise UnauthorizedError("Lender is not verified or active")
        if not self.lenders.is_tenure_supported(lender, tenure):
            raise OperationNotAllowedError(
                f"Tenure of {tenure} months is not supported by {lender.organization_name}; "
                f"supported tenures: {lender.supported_tenures_csv}"
            )
        return lender

    @staticmethod
    def _net_principal(amount: Decimal, processing_fee: Decimal) -> Decimal:
        if amount <= ZERO:
            raise ValidationError("Loan amount must be positive")
        if amount <= processing_fee:
            raise ValidationError(
                f"Loan amount {amount} must exceed the processing fee {processing_fee}"
            )
        return amount - processing_fee

    @staticmethod
    def _validate_request(request: LoanApplicationRequest) -> None:
        if request.amount <= ZERO:
            raise ValidationError("Loan amount must be positive")
        if request.tenure is None or request.tenure <= 0:
            raise ValidationError("Tenure must be at least one month")
        if not request.purpose or not request.purpose.strip():
            raise ValidationError("Loan purpose is required")
        if not request.income_source or not request.income_source.strip():
            raise ValidationError("Income source is required")
        if request.monthly_income <= ZERO:
            raise ValidationError("Monthly income must be positive")

    @staticmethod
    def _newest_first(applications: List[LoanApplication]) -> List[LoanApplication]:
        return sorted(
            applications,
            key=lambda a: a.applied_at or a.created_at,
            reverse=True
        )
