"""
Test suite for the lender directory and loan configuration
"""

import pytest
from datetime import date
from decimal import Decimal

from loan_engine.audit import AuditEventType
from loan_engine.errors import NotFoundError, ValidationError
from loan_engine.lenders import is_tenure_supported, parse_supported_tenures

from support import ADMIN, FrozenClock, make_system, register_lender


class TestParseSupportedTenures:
    """Test tenure set parsing"""

    def test_csv(self):
        assert parse_supported_tenures("24, 6,12") == [6, 12, 24]

    def test_duplicates_removed(self):
        assert parse_supported_tenures("12,12,6") == [6, 12]

    def test_iterable(self):
        assert parse_supported_tenures([36, 12]) == [12, 36]

    @pytest.mark.parametrize("value", ["", " , ", "12,abc", "0", "-6", None])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            parse_supported_tenures(value)


class TestLenderDirectory:
    """Test lender registration and terms"""

    def setup_method(self):
        self.system = make_system()
        self.lenders = self.system.lenders

    def test_register_and_get(self):
        lender = register_lender(self.system, tenures="12,6")
        loaded = self.lenders.get_lender("lender-1")

        assert loaded == lender
        assert loaded.supported_tenures == [6, 12]
        assert loaded.supported_tenures_csv == "6,12"
        assert loaded.processing_fee == Decimal('1000.00')
        assert loaded.accepts_applications

    def test_registration_is_audited(self):
        register_lender(self.system)
        events = self.system.audit_trail.get_events_for_entity("lender", "lender-1")
        assert [e.event_type for e in events] == [AuditEventType.LENDER_REGISTERED]
        assert events[0].user_id == ADMIN.user_id

    def test_duplicate_id_rejected(self):
        register_lender(self.system)
        with pytest.raises(ValidationError):
            register_lender(self.system)

    def test_unknown_lender(self):
        with pytest.raises(NotFoundError):
            self.lenders.get_lender("nobody")

    @pytest.mark.parametrize("rate,fee", [("0", "100"), ("-1", "100"), ("12", "-1")])
    def test_invalid_terms(self, rate, fee):
        with pytest.raises(ValidationError):
            register_lender(self.system, interest_rate=rate, processing_fee=fee)

    def test_update_terms(self):
        register_lender(self.system)
        updated = self.lenders.update_terms(
            "lender-1", interest_rate=Decimal('13.5'), supported_tenures="36", actor=ADMIN
        )
        assert updated.interest_rate == Decimal('13.5')
        assert updated.supported_tenures == [36]
        assert self.lenders.get_lender("lender-1").interest_rate == Decimal('13.5')

        events = self.system.audit_trail.get_events_by_type(AuditEventType.LENDER_TERMS_UPDATED)
        assert events[0].metadata["supported_tenures"] == "36"

    def test_update_stamped_from_clock(self):
        clock = FrozenClock()
        system = make_system(clock=clock)
        lender = register_lender(system)
        assert lender.created_at.date() == date(2025, 1, 15)

        clock.set_date(date(2025, 3, 1))
        updated = system.lenders.update_terms("lender-1", processing_fee=Decimal('750.00'), actor=ADMIN)
        assert updated.updated_at.date() == date(2025, 3, 1)
        assert system.lenders.get_lender("lender-1").updated_at == updated.updated_at

    def test_update_without_changes_is_not_audited(self):
        register_lender(self.system)
        self.lenders.update_terms("lender-1")
        assert self.system.audit_trail.get_events_by_type(AuditEventType.LENDER_TERMS_UPDATED) == []

    def test_list_active_lenders(self):
        register_lender(self.system, lender_id="b", name="Beta Loans")
        register_lender(self.system, lender_id="a", name="alpha credit")
        register_lender(self.system, lender_id="u", name="Unverified", verified=False)
        register_lender(self.system, lender_id="i", name="Inactive", active=False)

        names = [lender.organization_name for lender in self.lenders.list_active_lenders()]
        assert names == ["alpha credit", "Beta Loans"]

    def test_tenure_support(self):
        lender = register_lender(self.system, tenures="6,12")
        assert is_tenure_supported(lender, 12)
        assert not self.lenders.is_tenure_supported(lender, 24)


class TestLoanConfiguration:
    """Test late-fee configuration"""

    def setup_method(self):
        self.system = make_system()
        self.lenders = self.system.lenders

    def test_defaults_from_settings(self):
        configuration = self.lenders.active_configuration()
        assert configuration.late_fee_amount == Decimal('500.00')
        assert configuration.grace_period_days == 3
        assert configuration.reminder_before_due_days == 3

    def test_set_configuration_replaces_active(self):
        first = self.lenders.set_configuration(Decimal('250'), 5, actor=ADMIN)
        second = self.lenders.set_configuration(Decimal('750.00'), 2, actor=ADMIN)

        active = self.lenders.active_configuration()
        assert active.id == second.id
        assert active.late_fee_amount == Decimal('750.00')
        assert active.grace_period_days == 2

        stored_first = self.lenders.records.load_record(
            type(first), self.lenders.configurations_table, first.id
        )
        assert stored_first.active is False

    @pytest.mark.parametrize("fee,grace", [("-1", 3), ("100", -1)])
    def test_invalid_configuration(self, fee, grace):
        with pytest.raises(ValidationError):
            self.lenders.set_configuration(Decimal(fee), grace)
