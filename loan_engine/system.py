"""
Lending System Module

Wires storage, audit, lender directory, gateway and the managers together
and exposes the engine entry points. Every entry point takes the
authenticated Actor explicitly.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional

from .actors import Actor
from .applications import EmiPreview, LoanApplicationManager, LoanApplicationRequest
from .audit import AuditTrail
from .config import LoanEngineConfig, get_config
from .gateway import SettlementGateway, create_gateway
from .lenders import LenderDirectory
from .locks import KeyedLocks
from .loans import DisbursementReceipt, LoanDetails, LoanManager
from .models import ApplicationStatus, Installment, LoanApplication, LoanPayment, LoanStatus
from .payments import PaymentRequest, PaymentResponse, PaymentService
from .reporting import LenderPortfolio, lender_portfolio
from .storage import StorageInterface, create_storage


logger = logging.getLogger("loan_engine.system")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LendingSystem:
    """Loan engine with all components initialized"""

    def __init__(
        self,
        storage: Optional[StorageInterface] = None,
        gateway: Optional[SettlementGateway] = None,
        config: Optional[LoanEngineConfig] = None,
        clock: Callable[[], datetime] = _utcnow
    ):
        self.config = config or get_config()

        # Initialize storage
        self.storage = storage or create_storage(self.config.storage_backend, self.config.database_path)
        self.gateway = gateway or self._create_gateway()
        self.locks = KeyedLocks()
        self.clock = clock

        # Initialize core components
        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.lenders = LenderDirectory(self.storage, self.audit_trail, self.config, clock)
        self.applications = LoanApplicationManager(
            self.storage, self.lenders, self.audit_trail, self.locks, clock
        )
        self.loans = LoanManager(
            self.storage, self.applications, self.lenders, self.gateway,
            self.audit_trail, self.locks, clock
        )
        self.payments = PaymentService(
            self.storage, self.loans, self.gateway, self.audit_trail, self.locks, clock
        )

        logger.info(
            f"Lending system initialized: storage={type(self.storage).__name__}, "
            f"gateway={type(self.gateway).__name__}"
        )

    def _create_gateway(self) -> SettlementGateway:
        """Create the settlement gateway from configuration"""
        return create_gateway(
            mode=self.config.gateway_mode,
            url=self.config.gateway_url,
            api_key=self.config.gateway_api_key,
            timeout=self.config.gateway_timeout_seconds,
            payment_success_rate=self.config.gateway_payment_success_rate,
            disbursement_success_rate=self.config.gateway_disbursement_success_rate,
            latency_seconds=self.config.gateway_simulated_latency_seconds,
            seed=self.config.gateway_seed
        )

    # Borrower entry points

    def preview_emi(self, lender_id: str, principal: Decimal, tenure: int) -> EmiPreview:
        return self.applications.preview_emi(lender_id, principal, tenure)

    def apply_loan(self, actor: Actor, lender_id: str, request: LoanApplicationRequest) -> LoanApplication:
        return self.applications.apply_loan(actor, lender_id, request)

    def withdraw_loan(self, actor: Actor) -> LoanApplication:
        return self.applications.withdraw_loan(actor)

    def make_payment(self, actor: Actor, loan_id: str, request: PaymentRequest) -> PaymentResponse:
        return self.payments.make_payment(actor, loan_id, request)

    # Lender entry points

    def approve_loan(self, actor: Actor, application_id: str) -> LoanApplication:
        return self.applications.approve_loan(actor, application_id)

    def reject_loan(self, actor: Actor, application_id: str) -> LoanApplication:
        return self.applications.reject_loan(actor, application_id)

    def disburse_loan(self, actor: Actor, application_id: str) -> DisbursementReceipt:
        return self.loans.disburse(actor, application_id)

    # Read-only projections

    def get_schedule(self, actor: Actor, loan_id: str) -> List[Installment]:
        loan = self.loans.get_loan_for_actor(actor, loan_id)
        return self.loans.get_schedule(loan.id)

    def get_payment_history(self, actor: Actor, loan_id: str) -> List[LoanPayment]:
        return self.payments.get_payment_history(actor, loan_id)

    def get_loan_details(self, actor: Actor, loan_id: str) -> LoanDetails:
        loan = self.loans.get_loan_for_actor(actor, loan_id)
        return self.loans.loan_details(loan)

    def list_borrower_applications(self, actor: Actor) -> List[LoanApplication]:
        return self.applications.list_borrower_applications(actor)

    def list_lender_applications(
        self,
        actor: Actor,
        status: Optional[ApplicationStatus] = None
    ) -> List[LoanApplication]:
        return self.applications.list_lender_applications(actor, status)

    def list_lender_loans(self, actor: Actor, status: Optional[LoanStatus] = None) -> List[LoanDetails]:
        return [self.loans.loan_details(loan) for loan in self.loans.list_lender_loans(actor, status)]

    def list_borrower_loans(self, actor: Actor) -> List[LoanDetails]:
        return [self.loans.loan_details(loan) for loan in self.loans.list_borrower_loans(actor)]

    def lender_portfolio(self, actor: Actor) -> LenderPortfolio:
        return lender_portfolio(actor, self.lenders, self.applications, self.loans)

    def close(self) -> None:
        """Release storage and gateway resources"""
        self.gateway.close()
        self.storage.close()
