"""
Integration tests for the Loan Engine API
Tests end-to-end workflows using FastAPI TestClient
"""

import pytest
from fastapi.testclient import TestClient

import loan_engine.api.dependencies as dependencies
from loan_engine.api import app
from loan_engine.gateway import MockSettlementGateway
from loan_engine.models import PaymentStatus

from support import FrozenClock, make_system


ADMIN_HEADERS = {"X-Actor-Id": "admin-1", "X-Actor-Role": "SYSTEM_ADMIN"}
BORROWER_HEADERS = {"X-Actor-Id": "borrower-1", "X-Actor-Role": "BORROWER"}
LENDER_HEADERS = {"X-Actor-Id": "officer-1", "X-Actor-Role": "LENDER", "X-Lender-Id": "lender-1"}

APPLICATION_BODY = {
    "amount": "121000.00",
    "tenure": 12,
    "purpose": "Home renovation",
    "income_source": "Salary",
    "monthly_income": "85000.00"
}


@pytest.fixture
def gateway():
    return MockSettlementGateway()


@pytest.fixture
def client(gateway):
    """Test client backed by an in-memory lending system"""
    original_system = dependencies.lending_system
    dependencies.lending_system = make_system(gateway=gateway, clock=FrozenClock())

    yield TestClient(app)

    dependencies.lending_system = original_system


def register_lender(client, **overrides):
    body = {
        "organization_name": "Acme Finance",
        "interest_rate": "12",
        "processing_fee": "1000.00",
        "supported_tenures": "3,6,12,24",
        "is_verified": True,
        "lender_id": "lender-1"
    }
    body.update(overrides)
    r = client.post("/v1/admin/lenders", json=body, headers=ADMIN_HEADERS)
    assert r.status_code == 201
    return r.json()


def submit_application(client, headers=BORROWER_HEADERS):
    r = client.post("/v1/borrower/loan/apply/lender-1", json=APPLICATION_BODY, headers=headers)
    assert r.status_code == 201
    return r.json()


def disburse(client):
    application = submit_application(client)
    application_id = application["application_id"]
    r = client.put(f"/v1/lender/applications/{application_id}/approve", headers=LENDER_HEADERS)
    assert r.status_code == 200
    r = client.post(f"/v1/lender/applications/{application_id}/disburse", headers=LENDER_HEADERS)
    assert r.status_code == 200
    return r.json()


class TestHealthEndpoints:
    """Test basic health and root endpoints"""

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        data = r.json()
        assert data["name"] == "Loan Engine API"
        assert "borrower" in data["endpoints"]


class TestActorHeaders:
    """Test actor resolution"""

    def test_missing_headers(self, client):
        r = client.get("/v1/borrower/loan/my")
        assert r.status_code == 401

    def test_unknown_role(self, client):
        r = client.get("/v1/borrower/loan/my", headers={"X-Actor-Id": "x", "X-Actor-Role": "WIZARD"})
        assert r.status_code == 400


class TestAdminFlow:
    """Lender directory and configuration administration"""

    def test_register_lender(self, client):
        data = register_lender(client)
        assert data["lender_id"] == "lender-1"
        assert data["supported_tenures"] == [3, 6, 12, 24]
        assert data["message"] == "Lender registered successfully"

    def test_only_admin_registers(self, client):
        r = client.post("/v1/admin/lenders", json={
            "organization_name": "Rogue", "interest_rate": "12",
            "processing_fee": "0", "supported_tenures": "12"
        }, headers=BORROWER_HEADERS)
        assert r.status_code == 403

    def test_invalid_terms(self, client):
        r = client.post("/v1/admin/lenders", json={
            "organization_name": "Zero Rate", "interest_rate": "0",
            "processing_fee": "0", "supported_tenures": "12"
        }, headers=ADMIN_HEADERS)
        assert r.status_code == 422
        assert r.json()["error"] == "ValidationError"

    def test_update_lender(self, client):
        register_lender(client)
        r = client.put("/v1/admin/lenders/lender-1", json={"supported_tenures": "36"}, headers=ADMIN_HEADERS)
        assert r.status_code == 200
        assert r.json()["supported_tenures"] == [36]

    def test_update_unknown_lender(self, client):
        r = client.put("/v1/admin/lenders/missing", json={"is_active": False}, headers=ADMIN_HEADERS)
        assert r.status_code == 404

    def test_loan_configuration(self, client):
        r = client.put("/v1/admin/loan-configuration", json={
            "late_fee_amount": "750.00", "grace_period_days": 5
        }, headers=ADMIN_HEADERS)
        assert r.status_code == 200
        assert r.json()["late_fee_amount"] == "750.00"
        assert r.json()["grace_period_days"] == 5

    def test_audit_verify(self, client):
        register_lender(client)
        r = client.get("/v1/admin/audit/verify", headers=ADMIN_HEADERS)
        assert r.status_code == 200
        assert r.json()["valid"] is True
        assert r.json()["total_events"] == 1


class TestBorrowerFlow:
    """End-to-end borrower workflow"""

    def test_list_lenders(self, client):
        register_lender(client)
        register_lender(client, lender_id="lender-2", organization_name="Hidden", is_verified=False)

        r = client.get("/v1/borrower/loan/lenders")
        assert r.status_code == 200
        assert r.json()["count"] == 1
        assert r.json()["lenders"][0]["organization_name"] == "Acme Finance"

    def test_emi_preview(self, client):
        register_lender(client)
        r = client.get("/v1/borrower/loan/lenders/lender-1/emi-preview",
                       params={"principal": "121000", "tenure": 12})
        assert r.status_code == 200
        data = r.json()
        assert data["net_principal"] == "120000.00"
        assert data["emi"] == "10661.85"
        assert data["total_payable"] == "127942.20"

    def test_emi_preview_unsupported_tenure(self, client):
        register_lender(client)
        r = client.get("/v1/borrower/loan/lenders/lender-1/emi-preview",
                       params={"principal": "121000", "tenure": 18})
        assert r.status_code == 400

    def test_apply_loan(self, client):
        register_lender(client)
        data = submit_application(client)

        assert data["status"] == "PENDING"
        assert data["loan_requested"] == "120000.00"
        assert data["emi_amount"] == "10661.85"
        assert data["message"] == "Loan application submitted successfully"

    def test_apply_twice(self, client):
        register_lender(client)
        submit_application(client)
        r = client.post("/v1/borrower/loan/apply/lender-1", json=APPLICATION_BODY, headers=BORROWER_HEADERS)
        assert r.status_code == 400
        assert "active loan" in r.json()["detail"]

    def test_apply_with_unknown_lender(self, client):
        r = client.post("/v1/borrower/loan/apply/missing", json=APPLICATION_BODY, headers=BORROWER_HEADERS)
        assert r.status_code == 404

    def test_lender_cannot_apply(self, client):
        register_lender(client)
        r = client.post("/v1/borrower/loan/apply/lender-1", json=APPLICATION_BODY, headers=LENDER_HEADERS)
        assert r.status_code == 403

    def test_withdraw(self, client):
        register_lender(client)
        submit_application(client)

        r = client.put("/v1/borrower/loan/applications/withdraw", headers=BORROWER_HEADERS)
        assert r.status_code == 200
        assert r.json()["status"] == "WITHDRAWN"

        r = client.get("/v1/borrower/loan/applications/my", headers=BORROWER_HEADERS)
        assert r.json()["count"] == 1

    def test_withdraw_approved_conflicts(self, client):
        register_lender(client)
        application = submit_application(client)
        client.put(f"/v1/lender/applications/{application['application_id']}/approve", headers=LENDER_HEADERS)

        r = client.put("/v1/borrower/loan/applications/withdraw", headers=BORROWER_HEADERS)
        assert r.status_code == 409

    def test_full_repayment_cycle(self, client):
        register_lender(client)
        receipt = disburse(client)
        loan_id = receipt["loan_id"]

        assert receipt["disbursed_amount"] == "120000.00"
        assert receipt["total_amount"] == "127942.26"
        assert receipt["first_due_date"] == "2025-02-15"

        r = client.get(f"/v1/borrower/loan/{loan_id}/schedule", headers=BORROWER_HEADERS)
        assert r.status_code == 200
        schedule = r.json()
        assert schedule["count"] == 12
        assert schedule["installments"][0]["interest_amount"] == "1200.00"
        assert schedule["installments"][11]["emi_amount"] == "10661.91"

        r = client.post(f"/v1/borrower/loan/{loan_id}/payments", json={
            "amount": "10661.85", "payment_method": "UPI"
        }, headers=BORROWER_HEADERS)
        assert r.status_code == 200
        payment = r.json()
        assert payment["status"] == "SUCCESS"
        assert payment["installment_number"] == 1
        assert payment["remaining_amount"] == "117280.41"
        assert payment["next_due_date"] == "2025-03-15"

        r = client.get(f"/v1/borrower/loan/{loan_id}/payments/history", headers=BORROWER_HEADERS)
        assert r.json()["count"] == 1
        assert r.json()["payments"][0]["transaction_id"] == payment["transaction_id"]

        r = client.get(f"/v1/borrower/loan/{loan_id}", headers=BORROWER_HEADERS)
        assert r.json()["paid_installments"] == 1
        assert r.json()["remaining_installments"] == 11

    def test_wrong_payment_amount(self, client):
        register_lender(client)
        loan_id = disburse(client)["loan_id"]

        r = client.post(f"/v1/borrower/loan/{loan_id}/payments", json={
            "amount": "10000.00", "payment_method": "UPI"
        }, headers=BORROWER_HEADERS)
        assert r.status_code == 400
        assert "10661.85" in r.json()["detail"]

    def test_unsupported_payment_method(self, client):
        register_lender(client)
        loan_id = disburse(client)["loan_id"]

        r = client.post(f"/v1/borrower/loan/{loan_id}/payments", json={
            "amount": "10661.85", "payment_method": "CHEQUE"
        }, headers=BORROWER_HEADERS)
        assert r.status_code == 422

    def test_malformed_amount_rejected(self, client):
        register_lender(client)
        loan_id = disburse(client)["loan_id"]

        r = client.post(f"/v1/borrower/loan/{loan_id}/payments", json={
            "amount": "1066abc1.85", "payment_method": "UPI"
        }, headers=BORROWER_HEADERS)
        assert r.status_code == 422

        r = client.get(f"/v1/borrower/loan/{loan_id}/payments/history", headers=BORROWER_HEADERS)
        assert r.json()["payments"] == []

    def test_failed_payment_is_reported(self, client, gateway):
        register_lender(client)
        loan_id = disburse(client)["loan_id"]
        gateway.queue_payment(PaymentStatus.FAILED)

        r = client.post(f"/v1/borrower/loan/{loan_id}/payments", json={
            "amount": "10661.85", "payment_method": "DEBIT_CARD"
        }, headers=BORROWER_HEADERS)
        assert r.status_code == 200
        assert r.json()["status"] == "FAILED"
        assert r.json()["remaining_amount"] == "127942.26"

    def test_other_borrower_cannot_view_loan(self, client):
        register_lender(client)
        loan_id = disburse(client)["loan_id"]

        r = client.get(f"/v1/borrower/loan/{loan_id}",
                       headers={"X-Actor-Id": "borrower-2", "X-Actor-Role": "BORROWER"})
        assert r.status_code == 403


class TestLenderFlow:
    """Lender decisions, disbursement and reporting"""

    def test_reject(self, client):
        register_lender(client)
        application = submit_application(client)

        r = client.put(f"/v1/lender/applications/{application['application_id']}/reject", headers=LENDER_HEADERS)
        assert r.status_code == 200
        assert r.json()["status"] == "REJECTED"
        assert r.json()["closed_at"] is not None

    def test_approve_unknown_application(self, client):
        register_lender(client)
        r = client.put("/v1/lender/applications/missing/approve", headers=LENDER_HEADERS)
        assert r.status_code == 404

    def test_list_by_status(self, client):
        register_lender(client)
        submit_application(client)

        r = client.get("/v1/lender/applications/status/pending", headers=LENDER_HEADERS)
        assert r.status_code == 200
        assert r.json()["status"] == "PENDING"
        assert r.json()["count"] == 1

        r = client.get("/v1/lender/applications/status/bogus", headers=LENDER_HEADERS)
        assert r.status_code == 400

    def test_disbursement_gateway_failure(self, client, gateway):
        register_lender(client)
        application = submit_application(client)
        application_id = application["application_id"]
        client.put(f"/v1/lender/applications/{application_id}/approve", headers=LENDER_HEADERS)
        gateway.queue_disbursement(PaymentStatus.FAILED)

        r = client.post(f"/v1/lender/applications/{application_id}/disburse", headers=LENDER_HEADERS)
        assert r.status_code == 502
        body = r.json()
        assert body["error"] == "GatewayFailure"
        assert body["transaction_id"] == "GW-MOCK-000001"
        assert body["reason"] == "Insufficient funds in lender account"

        r = client.get("/v1/lender/applications/status/approved", headers=LENDER_HEADERS)
        assert r.json()["count"] == 1

    def test_loans_and_portfolio(self, client):
        register_lender(client)
        loan_id = disburse(client)["loan_id"]

        r = client.get("/v1/lender/loan/active", headers=LENDER_HEADERS)
        assert [loan["loan_id"] for loan in r.json()["loans"]] == [loan_id]

        r = client.get("/v1/lender/loan/completed", headers=LENDER_HEADERS)
        assert r.json()["count"] == 0

        r = client.get(f"/v1/lender/loan/{loan_id}", headers=LENDER_HEADERS)
        assert r.json()["status"] == "DISBURSED"

        r = client.get("/v1/lender/portfolio", headers=LENDER_HEADERS)
        assert r.status_code == 200
        portfolio = r.json()
        assert portfolio["lender_name"] == "Acme Finance"
        assert portfolio["disbursed_loans"] == 1
        assert portfolio["total_disbursed_amount"] == "120000.00"
        assert portfolio["total_outstanding_amount"] == "127942.26"

    def test_borrower_cannot_view_portfolio(self, client):
        register_lender(client)
        r = client.get("/v1/lender/portfolio", headers=BORROWER_HEADERS)
        assert r.status_code == 403
