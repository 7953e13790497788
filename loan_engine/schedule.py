"""
Amortization Schedule Module

Builds the ordered installment table for a disbursed loan on a reducing
balance. The final installment takes the exact remaining principal so the
balance closes at zero; its EMI is recomputed from that principal.
"""

import calendar
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional

from .calculator import monthly_rate
from .errors import ValidationError
from .models import Installment, InstallmentStatus
from .money import ZERO, round_money


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, handling month-end edge cases"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def generate_schedule(
    loan_id: str,
    principal: Decimal,
    annual_rate: Decimal,
    tenure_months: int,
    emi: Decimal,
    disbursed_on: date,
    now: Optional[datetime] = None
) -> List[Installment]:
    """
    Generate the equal-installment amortization schedule

    Args:
        loan_id: Loan the installments belong to
        principal: Disbursed principal
        annual_rate: Annual interest rate in percent
        tenure_months: Number of installments
        emi: Nominal EMI from the calculator
        disbursed_on: Disbursement date; installment i is due i months later
        now: Timestamp for the created records

    Returns:
        Installments numbered 1..N in order
    """
    if tenure_months <= 0:
        raise ValidationError("Tenure must be at least one month")
    if principal <= 0:
        raise ValidationError("Principal must be a positive amount")

    now = now or datetime.now(timezone.utc)
    rate = monthly_rate(annual_rate)
    remaining_balance = principal
    schedule: List[Installment] = []

    for number in range(1, tenure_months + 1):
        interest_amount = round_money(remaining_balance * rate)

        if number == tenure_months:
            # Final installment absorbs the cumulative rounding residue
            principal_amount = remaining_balance
            emi_amount = principal_amount + interest_amount
        else:
            principal_amount = emi - interest_amount
            emi_amount = emi

        schedule.append(Installment(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            loan_id=loan_id,
            installment_number=number,
            emi_amount=emi_amount,
            principal_amount=principal_amount,
            interest_amount=interest_amount,
            due_date=add_months(disbursed_on, number),
            status=InstallmentStatus.PENDING,
            late_fee=ZERO,
        ))

        remaining_balance -= principal_amount

    return schedule


def schedule_totals(schedule: List[Installment]) -> tuple:
    """Return (total EMI, total interest) across a schedule"""
    total_emi = sum((i.emi_amount for i in schedule), ZERO)
    total_interest = sum((i.interest_amount for i in schedule), ZERO)
    return total_emi, total_interest
