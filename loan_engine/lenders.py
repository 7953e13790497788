"""
Lender Directory Module

Lender profiles (rate, processing fee, supported tenures) and the active
late-fee/grace-period configuration. Terms changes only affect applications
submitted afterwards; existing applications keep their snapshot.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Union

from .actors import Actor
from .audit import AuditTrail, AuditEventType
from .config import LoanEngineConfig, get_config
from .errors import NotFoundError, ValidationError
from .models import Lender, LoanConfiguration
from .money import ZERO, round_money, to_decimal
from .storage import StorageInterface, StorageManager


logger = logging.getLogger("loan_engine.lenders")

TenureSpec = Union[str, Iterable[int]]


def parse_supported_tenures(tenures: TenureSpec) -> List[int]:
    """
    Parse a tenure set into a sorted list of distinct month counts

    Accepts either a comma-separated string ("12, 24,36") or an iterable of
    integers.

    Raises:
        ValidationError: On empty input, non-integers or non-positive values
    """
    if tenures is None:
        raise ValidationError("Supported tenures are required")

    if isinstance(tenures, str):
        parts = [p.strip() for p in tenures.split(",") if p.strip()]
    else:
        parts = list(tenures)

    values = set()
    for part in parts:
        try:
            value = int(part)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid tenure value: {part!r}")
        if value <= 0:
            raise ValidationError(f"Tenure must be a positive number of months: {value}")
        values.add(value)

    if not values:
        raise ValidationError("At least one supported tenure is required")

    return sorted(values)


def is_tenure_supported(lender: Lender, tenure: int) -> bool:
    """Check whether the lender offers a given tenure"""
    return tenure in lender.supported_tenures


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LenderDirectory:
    """
    Supplies lender terms and the active loan configuration
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        config: Optional[LoanEngineConfig] = None,
        clock: Callable[[], datetime] = _utcnow
    ):
        self.storage = storage
        self.records = StorageManager(storage)
        self.audit_trail = audit_trail
        self.config = config or get_config()
        self.clock = clock

        self.lenders_table = "lenders"
        self.configurations_table = "loan_configurations"

    def register_lender(
        self,
        organization_name: str,
        interest_rate: Decimal,
        processing_fee: Decimal,
        supported_tenures: TenureSpec,
        is_verified: bool = False,
        is_active: bool = True,
        lender_id: Optional[str] = None,
        actor: Optional[Actor] = None
    ) -> Lender:
        """
        Register a lender profile

        Args:
            organization_name: Display name
            interest_rate: Annual rate in percent
            processing_fee: Flat fee deducted from the requested amount
            supported_tenures: CSV string or iterable of months
            is_verified: Verification flag set by platform admins
            is_active: Whether the lender accepts new applications
            lender_id: Explicit id (e.g. the lender user's id); generated if omitted
            actor: Who performed the registration

        Returns:
            Created Lender
        """
        if not organization_name or not organization_name.strip():
            raise ValidationError("Organization name is required")

        rate = to_decimal(interest_rate)
        fee = round_money(to_decimal(processing_fee))
        self._validate_terms(rate, fee)
        tenures = parse_supported_tenures(supported_tenures)

        now = self.clock()
        lender = Lender(
            id=lender_id or str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            organization_name=organization_name.strip(),
            interest_rate=rate,
            processing_fee=fee,
            supported_tenures=tenures,
            is_verified=is_verified,
            is_active=is_active
        )

        if self.storage.exists(self.lenders_table, lender.id):
            raise ValidationError(f"Lender {lender.id} is already registered")

        self.records.save_record(lender, self.lenders_table)

        self.audit_trail.log_event(
            event_type=AuditEventType.LENDER_REGISTERED,
            entity_type="lender",
            entity_id=lender.id,
            metadata={
                "organization_name": lender.organization_name,
                "interest_rate": rate,
                "processing_fee": fee,
                "supported_tenures": lender.supported_tenures_csv
            },
            user_id=actor.user_id if actor else None
        )
        logger.info(f"Registered lender {lender.organization_name} ({lender.id})")

        return lender

    def get_lender(self, lender_id: str) -> Lender:
        """Load a lender or raise NotFoundError"""
        lender = self.records.load_record(Lender, self.lenders_table, lender_id)
        if not lender:
            raise NotFoundError(f"Lender {lender_id} not found")
        return lender

    def update_terms(
        self,
        lender_id: str,
        interest_rate: Optional[Decimal] = None,
        processing_fee: Optional[Decimal] = None,
        supported_tenures: Optional[TenureSpec] = None,
        is_verified: Optional[bool] = None,
        is_active: Optional[bool] = None,
        actor: Optional[Actor] = None
    ) -> Lender:
        """Change a lender's terms or flags; applications already submitted are unaffected"""
        lender = self.get_lender(lender_id)
        changes = {}

        if interest_rate is not None:
            lender.interest_rate = to_decimal(interest_rate)
            changes["interest_rate"] = lender.interest_rate
        if processing_fee is not None:
            lender.processing_fee = round_money(to_decimal(processing_fee))
            changes["processing_fee"] = lender.processing_fee
        if supported_tenures is not None:
            lender.supported_tenures = parse_supported_tenures(supported_tenures)
            changes["supported_tenures"] = lender.supported_tenures_csv
        if is_verified is not None:
            lender.is_verified = is_verified
            changes["is_verified"] = is_verified
        if is_active is not None:
            lender.is_active = is_active
            changes["is_active"] = is_active

        self._validate_terms(lender.interest_rate, lender.processing_fee)

        if not changes:
            return lender

        lender.touch(self.clock())
        self.records.save_record(lender, self.lenders_table)

        self.audit_trail.log_event(
            event_type=AuditEventType.LENDER_TERMS_UPDATED,
            entity_type="lender",
            entity_id=lender.id,
            metadata=changes,
            user_id=actor.user_id if actor else None
        )
        logger.info(f"Updated terms for lender {lender.id}: {sorted(changes)}")

        return lender

    def list_active_lenders(self) -> List[Lender]:
        """Verified, active lenders ordered by name"""
        lenders = self.records.load_all_records(Lender, self.lenders_table)
        active = [lender for lender in lenders if lender.accepts_applications]
        active.sort(key=lambda lender: lender.organization_name.lower())
        return active

    def parse_supported_tenures(self, tenures: TenureSpec) -> List[int]:
        return parse_supported_tenures(tenures)

    def is_tenure_supported(self, lender: Lender, tenure: int) -> bool:
        return is_tenure_supported(lender, tenure)

    def set_configuration(
        self,
        late_fee_amount: Decimal,
        grace_period_days: int,
        reminder_before_due_days: int = 3,
        actor: Optional[Actor] = None
    ) -> LoanConfiguration:
        """
        Store a new active configuration, deactivating the previous one

        The new late fee only applies to installments that have not yet had
        a fee assessed.
        """
        fee = round_money(to_decimal(late_fee_amount))
        if fee < ZERO:
            raise ValidationError("Late fee cannot be negative")
        if grace_period_days < 0:
            raise ValidationError("Grace period cannot be negative")
        if reminder_before_due_days < 0:
            raise ValidationError("Reminder days cannot be negative")

        now = self.clock()
        configuration = LoanConfiguration(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            late_fee_amount=fee,
            grace_period_days=grace_period_days,
            reminder_before_due_days=reminder_before_due_days,
            active=True
        )

        with self.storage.atomic():
            for existing in self.records.find_records(
                LoanConfiguration, self.configurations_table, {"active": True}
            ):
                existing.active = False
                existing.touch(now)
                self.records.save_record(existing, self.configurations_table)
            self.records.save_record(configuration, self.configurations_table)

        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_CONFIGURATION_UPDATED,
            entity_type="configuration",
            entity_id=configuration.id,
            metadata={
                "late_fee_amount": fee,
                "grace_period_days": grace_period_days,
                "reminder_before_due_days": reminder_before_due_days
            },
            user_id=actor.user_id if actor else None
        )
        logger.info(f"Loan configuration updated: late_fee={fee}, grace_days={grace_period_days}")

        return configuration

    def active_configuration(self) -> LoanConfiguration:
        """The stored active configuration, or defaults from settings"""
        active = self.records.find_records(
            LoanConfiguration, self.configurations_table, {"active": True}
        )
        if active:
            return max(active, key=lambda c: c.created_at)

        now = self.clock()
        return LoanConfiguration(
            id="default",
            created_at=now,
            updated_at=now,
            late_fee_amount=round_money(to_decimal(self.config.default_late_fee)),
            grace_period_days=self.config.default_grace_period_days,
            reminder_before_due_days=self.config.default_reminder_before_due_days,
            active=True
        )

    @staticmethod
    def _validate_terms(interest_rate: Decimal, processing_fee: Decimal) -> None:
        if interest_rate <= 0:
            raise ValidationError("Interest rate must be positive")
        if processing_fee < ZERO:
            raise ValidationError("Processing fee cannot be negative")
