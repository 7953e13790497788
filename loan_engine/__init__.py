"""
Loan Lifecycle & Repayment Engine

Loan applications, disbursement, amortized repayment with late-fee handling,
and settlement through a synchronous payment gateway. All money uses Decimal.
"""

__version__ = "1.0.0"
