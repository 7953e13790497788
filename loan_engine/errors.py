"""
Error Taxonomy Module

Typed business outcomes raised by the engine. Each kind is handled distinctly
by callers; anything else escaping the engine is an unexpected system error.
"""

from typing import Optional


class LoanEngineError(Exception):
    """Base exception for all expected engine outcomes"""


class ValidationError(LoanEngineError, ValueError):
    """Malformed or out-of-range input, rejected before touching persisted state"""


class NotFoundError(LoanEngineError):
    """A loan, application, installment or lender id does not resolve"""


class InvalidStateError(LoanEngineError):
    """Requested transition is not legal from the current status"""


class UnauthorizedError(LoanEngineError):
    """Actor lacks the role, or the resource does not belong to the actor"""


class OperationNotAllowedError(LoanEngineError):
    """Business-rule violation that is not a plain state mismatch"""


class GatewayFailure(LoanEngineError):
    """Settlement gateway returned a non-success outcome"""

    def __init__(self, message: str, transaction_id: Optional[str] = None,
                 reason: Optional[str] = None):
        super().__init__(message)
        self.transaction_id = transaction_id
        self.reason = reason
