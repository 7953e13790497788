"""
Test suite for amortization schedule generation

Checks installment numbering, monthly due dates and that the reducing
balance closes at exactly zero.
"""

import pytest
from decimal import Decimal
from datetime import date

from loan_engine.errors import ValidationError
from loan_engine.models import Installment, InstallmentStatus
from loan_engine.schedule import add_months, generate_schedule, schedule_totals


class TestAddMonths:
    """Test calendar month arithmetic"""

    def test_simple(self):
        assert add_months(date(2025, 1, 15), 1) == date(2025, 2, 15)

    def test_year_rollover(self):
        assert add_months(date(2025, 11, 30), 3) == date(2026, 2, 28)

    def test_clamps_to_month_end(self):
        assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2025, 1, 31), 3) == date(2025, 4, 30)

    def test_anchored_to_start_day(self):
        """Month 2 from Jan 31 is Mar 31, not Mar 28"""
        assert add_months(date(2025, 1, 31), 2) == date(2025, 3, 31)


class TestGenerateSchedule:
    """Test equal-installment amortization"""

    def setup_method(self):
        self.disbursed_on = date(2025, 1, 15)
        self.schedule = generate_schedule(
            loan_id="loan-1",
            principal=Decimal('120000.00'),
            annual_rate=Decimal('12'),
            tenure_months=12,
            emi=Decimal('10661.85'),
            disbursed_on=self.disbursed_on
        )

    def test_length_and_numbering(self):
        assert len(self.schedule) == 12
        assert [i.installment_number for i in self.schedule] == list(range(1, 13))

    def test_monthly_due_dates(self):
        for installment in self.schedule:
            assert installment.due_date == add_months(self.disbursed_on, installment.installment_number)
        assert self.schedule[0].due_date == date(2025, 2, 15)
        assert self.schedule[-1].due_date == date(2026, 1, 15)

    def test_first_installment(self):
        first = self.schedule[0]
        assert first.interest_amount == Decimal('1200.00')
        assert first.principal_amount == Decimal('9461.85')
        assert first.emi_amount == Decimal('10661.85')

    def test_second_installment_on_reduced_balance(self):
        second = self.schedule[1]
        assert second.interest_amount == Decimal('1105.38')
        assert second.principal_amount == Decimal('9556.47')

    def test_last_installment_absorbs_residue(self):
        last = self.schedule[-1]
        assert last.principal_amount == Decimal('10556.35')
        assert last.interest_amount == Decimal('105.56')
        assert last.emi_amount == Decimal('10661.91')

    def test_all_installments_pending(self):
        for installment in self.schedule:
            assert installment.status == InstallmentStatus.PENDING
            assert installment.late_fee == Decimal('0.00')
            assert installment.paid_date is None
            assert installment.loan_id == "loan-1"

    def test_emi_equals_principal_plus_interest(self):
        for installment in self.schedule:
            assert installment.emi_amount == installment.principal_amount + installment.interest_amount

    def test_principal_sums_to_loan_amount(self):
        assert sum(i.principal_amount for i in self.schedule) == Decimal('120000.00')

    def test_interest_sums_to_total_paid_minus_principal(self):
        total_emi, total_interest = schedule_totals(self.schedule)
        assert total_emi == Decimal('127942.26')
        assert total_interest == Decimal('7942.26')
        assert total_interest == total_emi - Decimal('120000.00')

    def test_ids_are_unique(self):
        assert len({i.id for i in self.schedule}) == 12


class TestScheduleVariants:
    """Test other amounts, rates and tenures"""

    @pytest.mark.parametrize("principal,rate,tenure,emi,last_emi,total_interest", [
        ('1000.00', '10', 3, '338.90', '338.91', '16.71'),
        ('50000.00', '14.5', 24, '2412.47', '2412.52', '7899.33'),
        ('9000.00', '12', 6, '1552.94', '1552.91', '317.61'),
    ])
    def test_closes_at_zero(self, principal, rate, tenure, emi, last_emi, total_interest):
        schedule = generate_schedule(
            loan_id="loan-x",
            principal=Decimal(principal),
            annual_rate=Decimal(rate),
            tenure_months=tenure,
            emi=Decimal(emi),
            disbursed_on=date(2025, 3, 31)
        )
        assert len(schedule) == tenure
        assert schedule[-1].emi_amount == Decimal(last_emi)
        assert sum(i.principal_amount for i in schedule) == Decimal(principal)
        _, interest = schedule_totals(schedule)
        assert interest == Decimal(total_interest)

    def test_small_loan_first_row(self):
        schedule = generate_schedule(
            "loan-s", Decimal('1000.00'), Decimal('10'), 3, Decimal('338.90'), date(2025, 1, 1)
        )
        assert schedule[0].interest_amount == Decimal('8.33')
        assert schedule[0].principal_amount == Decimal('330.57')

    def test_month_end_disbursement(self):
        schedule = generate_schedule(
            "loan-m", Decimal('1000.00'), Decimal('10'), 3, Decimal('338.90'), date(2025, 1, 31)
        )
        assert [i.due_date for i in schedule] == [date(2025, 2, 28), date(2025, 3, 31), date(2025, 4, 30)]

    def test_invalid_tenure(self):
        with pytest.raises(ValidationError):
            generate_schedule("loan-z", Decimal('1000'), Decimal('10'), 0, Decimal('338.90'), date(2025, 1, 1))

    def test_invalid_principal(self):
        with pytest.raises(ValidationError):
            generate_schedule("loan-z", Decimal('0'), Decimal('10'), 3, Decimal('338.90'), date(2025, 1, 1))


class TestInstallmentInvariant:
    """An installment cannot be built with a mismatched EMI"""

    def test_mismatch_rejected(self):
        from datetime import datetime, timezone
        now = datetime.now(timezone.utc)
        with pytest.raises(ValueError):
            Installment(
                id="i-1", created_at=now, updated_at=now, loan_id="loan-1",
                installment_number=1, emi_amount=Decimal('100.00'),
                principal_amount=Decimal('90.00'), interest_amount=Decimal('9.99'),
                due_date=date(2025, 2, 1)
            )
