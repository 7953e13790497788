"""
EMI Calculator Module

Pure functions for equated monthly installments on a reducing balance.
Monthly rate is carried at 10 fractional digits; every reported amount is
rounded to 2 places with ROUND_HALF_UP.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from .errors import ValidationError
from .money import round_money

RATE_PLACES = Decimal('0.0000000001')
MONTHS_PER_YEAR_PERCENT = Decimal('1200')


@dataclass(frozen=True)
class EmiBreakdown:
    """EMI with totals over the full tenure"""
    emi: Decimal
    total_payable: Decimal
    total_interest: Decimal


def monthly_rate(annual_rate: Decimal) -> Decimal:
    """Convert an annual percentage rate to a monthly fraction, e.g. 12 -> 0.01"""
    return (annual_rate / MONTHS_PER_YEAR_PERCENT).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)


def _validate(principal: Optional[Decimal], annual_rate: Optional[Decimal], tenure_months: int) -> None:
    if principal is None or principal <= 0:
        raise ValidationError("Principal must be a positive amount")
    if annual_rate is None or annual_rate <= 0:
        raise ValidationError("Annual interest rate must be positive")
    if tenure_months is None or tenure_months <= 0:
        raise ValidationError("Tenure must be at least one month")


def calculate_emi(principal: Decimal, annual_rate: Decimal, tenure_months: int) -> Decimal:
    """
    Calculate EMI: P * r * (1+r)^N / ((1+r)^N - 1)

    Args:
        principal: Loan amount
        annual_rate: Annual interest rate in percent, e.g. 14.5
        tenure_months: Number of monthly installments

    Returns:
        EMI rounded to 2 decimal places

    Raises:
        ValidationError: On missing or non-positive inputs
    """
    _validate(principal, annual_rate, tenure_months)

    r = monthly_rate(annual_rate)
    growth = (Decimal('1') + r) ** tenure_months
    numerator = principal * r * growth
    denominator = growth - Decimal('1')

    return round_money(numerator / denominator)


def calculate_total_payable(emi: Decimal, tenure_months: int) -> Decimal:
    """Total repayment over the tenure (EMI x N)"""
    return round_money(emi * Decimal(tenure_months))


def calculate_total_interest(emi: Decimal, principal: Decimal, tenure_months: int) -> Decimal:
    """Total interest over the tenure (EMI x N - P)"""
    return round_money(emi * Decimal(tenure_months) - principal)


def emi_breakdown(principal: Decimal, annual_rate: Decimal, tenure_months: int) -> EmiBreakdown:
    """Compute EMI, total payable and total interest together"""
    emi = calculate_emi(principal, annual_rate, tenure_months)
    return EmiBreakdown(
        emi=emi,
        total_payable=calculate_total_payable(emi, tenure_months),
        total_interest=calculate_total_interest(emi, principal, tenure_months),
    )
