"""
Settlement Gateway Module

Synchronous adapter to the external payment/disbursement processor. Every
call returns a terminal outcome; timeouts and transport errors come back as
FAILED results rather than exceptions. The engine moves balances only on
SUCCESS.
"""

import httpx
import logging
import random
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Deque, Iterable, Optional

from .models import PaymentMethod, PaymentStatus

logger = logging.getLogger("loan_engine.gateway")

FAILURE_REASONS = (
    "Insufficient funds",
    "Card declined",
    "Network timeout",
    "Account blocked",
    "Invalid credentials",
    "Transaction limit exceeded",
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DisbursementResult:
    """Outcome of releasing loan funds to the borrower"""
    transaction_id: str
    status: PaymentStatus  # SUCCESS or FAILED
    amount: Decimal
    failure_reason: Optional[str] = None
    timestamp: datetime = field(default_factory=_now)

    @property
    def succeeded(self) -> bool:
        return self.status == PaymentStatus.SUCCESS


@dataclass
class GatewayPaymentResult:
    """Outcome of settling one repayment"""
    transaction_id: str
    status: PaymentStatus
    amount: Decimal
    payment_method: PaymentMethod
    failure_reason: Optional[str] = None
    timestamp: datetime = field(default_factory=_now)

    @property
    def succeeded(self) -> bool:
        return self.status == PaymentStatus.SUCCESS


class SettlementGateway(ABC):
    """Interface the engine uses to move money"""

    @abstractmethod
    def disburse(self, loan_id: str, borrower_account_ref: str, amount: Decimal) -> DisbursementResult:
        """Release funds to the borrower"""
        pass

    @abstractmethod
    def settle_payment(
        self,
        amount: Decimal,
        payment_method: PaymentMethod,
        loan_id: str,
        installment_number: int
    ) -> GatewayPaymentResult:
        """Collect one installment payment"""
        pass

    def close(self) -> None:
        """Release gateway resources"""
        pass


class SimulatedSettlementGateway(SettlementGateway):
    """Stand-in processor with configurable success rates"""

    def __init__(
        self,
        payment_success_rate: float = 0.90,
        disbursement_success_rate: float = 0.95,
        latency_seconds: float = 0.0,
        seed: Optional[int] = None
    ):
        self.payment_success_rate = payment_success_rate
        self.disbursement_success_rate = disbursement_success_rate
        self.latency_seconds = latency_seconds
        self._random = random.Random(seed)
        self._lock = threading.Lock()

    def _transaction_id(self) -> str:
        with self._lock:
            suffix = self._random.randint(100000, 999999)
        return f"GW{int(time.time() * 1000)}_{suffix}"

    def _roll(self, success_rate: float) -> bool:
        with self._lock:
            return self._random.random() < success_rate

    def _simulate_latency(self) -> None:
        if self.latency_seconds > 0:
            time.sleep(self.latency_seconds)

    def disburse(self, loan_id: str, borrower_account_ref: str, amount: Decimal) -> DisbursementResult:
        logger.info(f"Processing disbursement: amount={amount}, loan_id={loan_id}")
        self._simulate_latency()

        success = self._roll(self.disbursement_success_rate)
        result = DisbursementResult(
            transaction_id=self._transaction_id(),
            status=PaymentStatus.SUCCESS if success else PaymentStatus.FAILED,
            amount=amount,
            failure_reason=None if success else "Insufficient funds in lender account"
        )

        logger.info(f"Disbursement processed: transaction_id={result.transaction_id}, status={result.status.value}")
        return result

    def settle_payment(
        self,
        amount: Decimal,
        payment_method: PaymentMethod,
        loan_id: str,
        installment_number: int
    ) -> GatewayPaymentResult:
        logger.info(
            f"Processing payment: amount={amount}, method={payment_method.value}, "
            f"loan_id={loan_id}, installment={installment_number}"
        )
        self._simulate_latency()

        success = self._roll(self.payment_success_rate)
        failure_reason = None
        if not success:
            with self._lock:
                failure_reason = self._random.choice(FAILURE_REASONS)

        result = GatewayPaymentResult(
            transaction_id=self._transaction_id(),
            status=PaymentStatus.SUCCESS if success else PaymentStatus.FAILED,
            amount=amount,
            payment_method=payment_method,
            failure_reason=failure_reason
        )

        logger.info(f"Payment processed: transaction_id={result.transaction_id}, status={result.status.value}")
        return result


class HttpSettlementGateway(SettlementGateway):
    """REST client for a settlement processor"""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,  # Bounded so a hung processor never blocks a payment forever
        api_key: Optional[str] = None,
        client: Optional[httpx.Client] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.api_key = api_key
        self._client = client or httpx.Client(timeout=timeout)

    def _headers(self) -> dict:
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _post(self, path: str, payload: dict) -> tuple:
        """POST and return (data, failure_reason); exactly one is None"""
        try:
            response = self._client.post(
                f"{self.base_url}{path}",
                json=payload,
                headers=self._headers()
            )
        except httpx.TimeoutException as e:
            logger.error(f"Settlement gateway timed out on {path}: {e}")
            return None, "Gateway timeout"
        except httpx.HTTPError as e:
            logger.error(f"Settlement gateway connection failed on {path}: {e}")
            return None, "Gateway unavailable"

        if response.status_code != 200:
            logger.warning(f"Settlement gateway returned {response.status_code}: {response.text}")
            return None, f"Gateway error {response.status_code}"

        try:
            data = response.json()
        except ValueError:
            logger.error(f"Settlement gateway returned a non-JSON body on {path}")
            return None, "Malformed gateway response"

        if not isinstance(data, dict):
            logger.error(f"Settlement gateway returned a non-object body on {path}")
            return None, "Malformed gateway response"

        try:
            data["amount"] = Decimal(str(data.get("amount", payload["amount"])))
        except InvalidOperation:
            data["amount"] = None
        if data["amount"] is None or not data["amount"].is_finite():
            logger.error(f"Settlement gateway returned an unreadable amount on {path}")
            return None, "Malformed gateway response"

        return data, None

    @staticmethod
    def _status(value: Optional[str]) -> PaymentStatus:
        try:
            return PaymentStatus(str(value or "").upper())
        except ValueError:
            return PaymentStatus.FAILED

    @staticmethod
    def _timestamp(value: Optional[str]) -> datetime:
        if value:
            try:
                return datetime.fromisoformat(value)
            except (TypeError, ValueError):
                pass
        return _now()

    def disburse(self, loan_id: str, borrower_account_ref: str, amount: Decimal) -> DisbursementResult:
        data, failure = self._post("/disbursements", {
            "loan_id": loan_id,
            "borrower_account": borrower_account_ref,
            "amount": str(amount)
        })
        if failure:
            return DisbursementResult(
                transaction_id="",
                status=PaymentStatus.FAILED,
                amount=amount,
                failure_reason=failure
            )

        status = self._status(data.get("status"))
        if status not in (PaymentStatus.SUCCESS, PaymentStatus.FAILED):
            # Disbursement has no pending state in this contract
            status = PaymentStatus.FAILED
        return DisbursementResult(
            transaction_id=data.get("transaction_id", ""),
            status=status,
            amount=data["amount"],
            failure_reason=data.get("failure_reason"),
            timestamp=self._timestamp(data.get("timestamp"))
        )

    def settle_payment(
        self,
        amount: Decimal,
        payment_method: PaymentMethod,
        loan_id: str,
        installment_number: int
    ) -> GatewayPaymentResult:
        data, failure = self._post("/payments", {
            "loan_id": loan_id,
            "installment_number": installment_number,
            "payment_method": payment_method.value,
            "amount": str(amount)
        })
        if failure:
            return GatewayPaymentResult(
                transaction_id="",
                status=PaymentStatus.FAILED,
                amount=amount,
                payment_method=payment_method,
                failure_reason=failure
            )

        return GatewayPaymentResult(
            transaction_id=data.get("transaction_id", ""),
            status=self._status(data.get("status")),
            amount=data["amount"],
            payment_method=payment_method,
            failure_reason=data.get("failure_reason"),
            timestamp=self._timestamp(data.get("timestamp"))
        )

    def close(self) -> None:
        """Close the HTTP client"""
        self._client.close()


class MockSettlementGateway(SettlementGateway):
    """Deterministic gateway for testing: replays scripted outcomes, then succeeds"""

    def __init__(
        self,
        payment_outcomes: Iterable[PaymentStatus] = (),
        disbursement_outcomes: Iterable[PaymentStatus] = ()
    ):
        self._payment_outcomes: Deque[PaymentStatus] = deque(payment_outcomes)
        self._disbursement_outcomes: Deque[PaymentStatus] = deque(disbursement_outcomes)
        self._counter = 0
        self._lock = threading.Lock()
        self.payment_calls = []
        self.disbursement_calls = []

    def queue_payment(self, *statuses: PaymentStatus) -> None:
        self._payment_outcomes.extend(statuses)

    def queue_disbursement(self, *statuses: PaymentStatus) -> None:
        self._disbursement_outcomes.extend(statuses)

    def _next(self, outcomes: Deque[PaymentStatus]) -> tuple:
        with self._lock:
            self._counter += 1
            status = outcomes.popleft() if outcomes else PaymentStatus.SUCCESS
            return status, f"GW-MOCK-{self._counter:06d}"

    def disburse(self, loan_id: str, borrower_account_ref: str, amount: Decimal) -> DisbursementResult:
        status, transaction_id = self._next(self._disbursement_outcomes)
        self.disbursement_calls.append((loan_id, borrower_account_ref, amount))
        return DisbursementResult(
            transaction_id=transaction_id,
            status=status,
            amount=amount,
            failure_reason=None if status == PaymentStatus.SUCCESS else "Insufficient funds in lender account"
        )

    def settle_payment(
        self,
        amount: Decimal,
        payment_method: PaymentMethod,
        loan_id: str,
        installment_number: int
    ) -> GatewayPaymentResult:
        status, transaction_id = self._next(self._payment_outcomes)
        self.payment_calls.append((amount, payment_method, loan_id, installment_number))
        return GatewayPaymentResult(
            transaction_id=transaction_id,
            status=status,
            amount=amount,
            payment_method=payment_method,
            failure_reason=None if status == PaymentStatus.SUCCESS else "Card declined"
        )


def create_gateway(
    mode: str = "simulated",
    url: str = "",
    api_key: str = "",
    timeout: float = 10.0,
    payment_success_rate: float = 0.90,
    disbursement_success_rate: float = 0.95,
    latency_seconds: float = 0.0,
    seed: Optional[int] = None
) -> SettlementGateway:
    """Build a gateway from configuration values"""
    if mode == "http":
        if not url:
            raise ValueError("gateway_url is required for the http gateway")
        return HttpSettlementGateway(base_url=url, timeout=timeout, api_key=api_key or None)
    if mode == "simulated":
        return SimulatedSettlementGateway(
            payment_success_rate=payment_success_rate,
            disbursement_success_rate=disbursement_success_rate,
            latency_seconds=latency_seconds,
            seed=seed
        )
    raise ValueError(f"Unsupported gateway mode: {mode}")
