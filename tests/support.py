"""
Shared builders for the loan engine test suite
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from loan_engine.actors import Actor, Role
from loan_engine.applications import LoanApplicationRequest
from loan_engine.config import LoanEngineConfig
from loan_engine.gateway import MockSettlementGateway, SettlementGateway
from loan_engine.storage import InMemoryStorage, StorageInterface
from loan_engine.system import LendingSystem


ADMIN = Actor(user_id="admin-1", role=Role.SYSTEM_ADMIN)


class FrozenClock:
    """Controllable clock; each reading advances one microsecond so timestamps stay ordered"""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current += timedelta(microseconds=1)
        return self.current

    def set_date(self, day: date) -> None:
        self.current = datetime(day.year, day.month, day.day, 10, 0, tzinfo=timezone.utc)

    def advance(self, days: int = 0) -> None:
        self.current += timedelta(days=days)


def make_config(**overrides) -> LoanEngineConfig:
    settings = dict(
        storage_backend="memory",
        database_path=":memory:",
        default_late_fee="500.00",
        default_grace_period_days=3,
        default_reminder_before_due_days=3,
        gateway_mode="simulated",
        enable_audit_logging=True
    )
    settings.update(overrides)
    return LoanEngineConfig(**settings)


def make_system(
    gateway: Optional[SettlementGateway] = None,
    clock: Optional[FrozenClock] = None,
    storage: Optional[StorageInterface] = None
) -> LendingSystem:
    return LendingSystem(
        storage=storage or InMemoryStorage(),
        gateway=gateway or MockSettlementGateway(),
        config=make_config(),
        clock=clock or FrozenClock()
    )


def register_lender(
    system: LendingSystem,
    lender_id: str = "lender-1",
    interest_rate: str = "12",
    processing_fee: str = "1000.00",
    tenures: str = "3,6,12,24",
    verified: bool = True,
    active: bool = True,
    name: str = "Acme Finance"
):
    return system.lenders.register_lender(
        organization_name=name,
        interest_rate=Decimal(interest_rate),
        processing_fee=Decimal(processing_fee),
        supported_tenures=tenures,
        is_verified=verified,
        is_active=active,
        lender_id=lender_id,
        actor=ADMIN
    )


def loan_request(amount: str = "121000.00", tenure: int = 12) -> LoanApplicationRequest:
    return LoanApplicationRequest(
        amount=Decimal(amount),
        tenure=tenure,
        purpose="Home renovation",
        income_source="Salary",
        monthly_income=Decimal("85000.00")
    )


def disbursed_loan(
    system: LendingSystem,
    borrower: Actor,
    lender: Actor,
    amount: str = "121000.00",
    tenure: int = 12
):
    """Apply, approve and disburse; returns (application, receipt)"""
    application = system.apply_loan(borrower, lender.acting_lender_id, loan_request(amount, tenure))
    system.approve_loan(lender, application.id)
    receipt = system.disburse_loan(lender, application.id)
    return application, receipt
