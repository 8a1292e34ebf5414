"""
Tests for the payment and webhook endpoints.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi.testclient import TestClient

from app.api.deps import (
    compute_webhook_signature,
    get_auth_client,
    get_current_subject,
    get_payment_service,
)
from app.config import settings
from app.errors import InvalidStateTransition, LockContention, LockUnavailable, NotFound
from app.fsm.states import PaymentStatus
from app.main import app
from app.services.auth_client import AuthClient
from app.services.payment_service import PaymentService

REFERENCE_ID = "PAY-1700000000000-ABCDEF12"

CREATE_PAYLOAD = {
    "amount": 1000,
    "currency": "UGX",
    "payment_method": "MOBILE_MONEY",
    "customer_phone": "+256700000000",
}

WEBHOOK_PAYLOAD = {
    "payment_reference_id": REFERENCE_ID,
    "status": "SUCCESS",
    "provider_transaction_id": "TXN1",
    "timestamp": "2024-01-01T12:00:00Z",
}


def make_payment(status: PaymentStatus = PaymentStatus.PENDING, **overrides) -> SimpleNamespace:
    now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    fields = dict(
        reference_id=REFERENCE_ID,
        customer_phone="+256700000000",
        customer_email=None,
        amount=Decimal("1000.00"),
        status=status.value,
        payment_status=status,
        payment_method_name="MOBILE_MONEY",
        currency_name="UGX",
        provider_transaction_id="TXN1",
        provider_name="MTN_UGANDA",
        created_at=now,
        updated_at=now,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.fixture
def service():
    return AsyncMock(spec=PaymentService)


@pytest.fixture
def client(service):
    app.dependency_overrides[get_payment_service] = lambda: service
    app.dependency_overrides[get_current_subject] = lambda: "user-1"
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestCreatePaymentEndpoint:
    """Tests for POST /payments."""

    def test_created(self, client, service):
        service.create_payment.return_value = make_payment()

        response = client.post("/payments", json=CREATE_PAYLOAD)

        assert response.status_code == 201
        body = response.json()
        assert body["reference_id"] == REFERENCE_ID
        assert body["status"] == "PENDING"
        assert body["amount"] == 1000.0
        assert body["currency"] == "UGX"
        assert body["payment_method"] == "MOBILE_MONEY"
        assert body["provider_name"] == "MTN_UGANDA"

        kwargs = service.create_payment.await_args.kwargs
        assert kwargs["amount"] == Decimal("1000")
        assert kwargs["currency"] == "UGX"

    def test_unknown_currency(self, client, service):
        service.create_payment.side_effect = NotFound(
            "Currency XYZ not found", operation="create_payment"
        )

        response = client.post("/payments", json={**CREATE_PAYLOAD, "currency": "XYZ"})

        assert response.status_code == 404
        body = response.json()
        assert body["status"] == "error"
        assert body["error"] == "NotFound"
        assert body["message"] == "Currency XYZ not found"

    @pytest.mark.parametrize(
        "payload",
        [
            {**CREATE_PAYLOAD, "amount": 0},
            {**CREATE_PAYLOAD, "amount": -10},
            {**CREATE_PAYLOAD, "customer_phone": ""},
            {**CREATE_PAYLOAD, "customer_email": "not-an-email"},
            {k: v for k, v in CREATE_PAYLOAD.items() if k != "currency"},
        ],
    )
    def test_invalid_body(self, client, service, payload):
        response = client.post("/payments", json=payload)

        assert response.status_code == 400
        service.create_payment.assert_not_called()

    def test_invalid_body_error_shape(self, client):
        response = client.post("/payments", json={**CREATE_PAYLOAD, "amount": 0})

        body = response.json()
        assert body["status"] == "error"
        assert body["error"] == "ValidationError"
        assert body["retryable"] is False
        assert "amount" in body["message"]

    def test_requires_token(self, service):
        app.dependency_overrides[get_payment_service] = lambda: service
        app.dependency_overrides[get_auth_client] = lambda: AuthClient(base_url="http://auth")
        try:
            response = TestClient(app).post("/payments", json=CREATE_PAYLOAD)
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 401
        assert response.json()["detail"] == "No token provided"


class TestGetPaymentEndpoint:
    """Tests for GET /payments/{reference}."""

    def test_found(self, client, service):
        service.get_payment_by_reference.return_value = make_payment(PaymentStatus.SUCCESS)

        response = client.get(f"/payments/{REFERENCE_ID}")

        assert response.status_code == 200
        assert response.json()["status"] == "SUCCESS"
        service.get_payment_by_reference.assert_awaited_once_with(REFERENCE_ID)

    def test_not_found(self, client, service):
        service.get_payment_by_reference.side_effect = NotFound(
            f"Payment with reference {REFERENCE_ID} not found",
            reference_id=REFERENCE_ID,
        )

        response = client.get(f"/payments/{REFERENCE_ID}")

        assert response.status_code == 404
        assert response.json()["reference_id"] == REFERENCE_ID


class TestCallbackEndpoint:
    """Tests for POST /payments/callback."""

    def test_valid_transition(self, client, service):
        service.update_payment_status.return_value = make_payment(PaymentStatus.SUCCESS)

        response = client.post(
            "/payments/callback",
            json={"payment_reference_id": REFERENCE_ID, "status": "SUCCESS"},
        )

        assert response.status_code == 200
        service.update_payment_status.assert_awaited_once_with(
            reference_id=REFERENCE_ID,
            status=PaymentStatus.SUCCESS,
            provider_transaction_id=None,
        )

    def test_invalid_transition(self, client, service):
        service.update_payment_status.side_effect = InvalidStateTransition(
            PaymentStatus.FAILED, PaymentStatus.SUCCESS, reference_id=REFERENCE_ID
        )

        response = client.post(
            "/payments/callback",
            json={"payment_reference_id": REFERENCE_ID, "status": "SUCCESS"},
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid state transition from FAILED to SUCCESS"

    def test_unknown_status(self, client):
        response = client.post(
            "/payments/callback",
            json={"payment_reference_id": REFERENCE_ID, "status": "REFUNDED"},
        )

        assert response.status_code == 400


class TestReconcileEndpoint:

    def test_reconcile(self, client, service):
        service.reconcile_payment.return_value = make_payment(PaymentStatus.FAILED)

        response = client.post(f"/payments/{REFERENCE_ID}/reconcile")

        assert response.status_code == 200
        assert response.json()["status"] == "FAILED"


class TestWebhookEndpoint:
    """Tests for POST /payments/webhook."""

    def test_processed(self, client, service):
        service.handle_webhook.return_value = make_payment(PaymentStatus.SUCCESS)

        response = client.post("/payments/webhook", json=WEBHOOK_PAYLOAD)

        assert response.status_code == 200
        assert response.json()["status"] == "SUCCESS"
        kwargs = service.handle_webhook.await_args.kwargs
        assert kwargs["reference_id"] == REFERENCE_ID
        assert kwargs["status"] == PaymentStatus.SUCCESS
        assert kwargs["timestamp"] == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_redelivery_returns_current_payment(self, client, service):
        service.handle_webhook.return_value = make_payment(PaymentStatus.SUCCESS)

        first = client.post("/payments/webhook", json=WEBHOOK_PAYLOAD)
        second = client.post("/payments/webhook", json=WEBHOOK_PAYLOAD)

        assert first.status_code == second.status_code == 200
        assert first.json() == second.json()

    def test_no_auth_required(self, service):
        """Webhooks are public; only the signature protects them."""
        service.handle_webhook.return_value = make_payment(PaymentStatus.SUCCESS)
        app.dependency_overrides[get_payment_service] = lambda: service
        try:
            response = TestClient(app).post("/payments/webhook", json=WEBHOOK_PAYLOAD)
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 200

    def test_invalid_transition(self, client, service):
        service.handle_webhook.side_effect = InvalidStateTransition(
            PaymentStatus.FAILED, PaymentStatus.SUCCESS, reference_id=REFERENCE_ID
        )

        response = client.post("/payments/webhook", json=WEBHOOK_PAYLOAD)

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidStateTransition"

    def test_unknown_payment(self, client, service):
        service.handle_webhook.side_effect = NotFound("Payment not found", reference_id=REFERENCE_ID)

        response = client.post("/payments/webhook", json=WEBHOOK_PAYLOAD)

        assert response.status_code == 404

    def test_concurrent_delivery_is_retryable(self, client, service):
        service.handle_webhook.side_effect = LockContention(
            f"Processing already in progress for webhook:{REFERENCE_ID}",
            reference_id=REFERENCE_ID,
        )

        response = client.post("/payments/webhook", json=WEBHOOK_PAYLOAD)

        assert response.status_code == 409
        assert response.headers["Retry-After"] == "1"
        assert response.json()["retryable"] is True

    def test_lock_backend_down_is_retryable(self, client, service):
        service.handle_webhook.side_effect = LockUnavailable(
            f"Lock backend unavailable for webhook:{REFERENCE_ID}",
            reference_id=REFERENCE_ID,
            operation="handle_webhook",
        )

        response = client.post("/payments/webhook", json=WEBHOOK_PAYLOAD)

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "1"
        assert response.json()["reference_id"] == REFERENCE_ID

    @pytest.mark.parametrize(
        "field,value",
        [("status", "UNKNOWN"), ("timestamp", "not-a-date"), ("provider_transaction_id", "")],
    )
    def test_malformed_payload(self, client, service, field, value):
        response = client.post("/payments/webhook", json={**WEBHOOK_PAYLOAD, field: value})

        assert response.status_code == 400
        service.handle_webhook.assert_not_called()


class TestWebhookSignature:
    """Tests for HMAC webhook signatures."""

    @pytest.fixture(autouse=True)
    def webhook_secret(self, monkeypatch):
        monkeypatch.setattr(settings, "webhook_secret", "s3cret")

    def test_valid_signature(self, client, service):
        service.handle_webhook.return_value = make_payment(PaymentStatus.SUCCESS)
        body = json.dumps(WEBHOOK_PAYLOAD).encode()

        response = client.post(
            "/payments/webhook",
            content=body,
            headers={
                "Content-Type": "application/json",
                "X-Webhook-Signature": compute_webhook_signature(body, "s3cret"),
            },
        )

        assert response.status_code == 200

    def test_wrong_signature(self, client, service):
        body = json.dumps(WEBHOOK_PAYLOAD).encode()

        response = client.post(
            "/payments/webhook",
            content=body,
            headers={
                "Content-Type": "application/json",
                "X-Webhook-Signature": compute_webhook_signature(body, "other"),
            },
        )

        assert response.status_code == 401
        service.handle_webhook.assert_not_called()

    def test_missing_signature(self, client, service):
        response = client.post("/payments/webhook", json=WEBHOOK_PAYLOAD)

        assert response.status_code == 401
        service.handle_webhook.assert_not_called()


class TestTokenVerification:
    """The bearer token is checked against the auth service."""

    @pytest.fixture
    def auth_client(self):
        def handler(request: httpx.Request) -> httpx.Response:
            token = json.loads(request.content)["token"]
            if token == "good-token":
                return httpx.Response(200, json={"valid": True, "user": {"id": 42}})
            return httpx.Response(200, json={"valid": False, "error": "Token expired"})

        return AuthClient(base_url="http://auth", transport=httpx.MockTransport(handler))

    @pytest.fixture
    def authed_client(self, service, auth_client):
        app.dependency_overrides[get_payment_service] = lambda: service
        app.dependency_overrides[get_auth_client] = lambda: auth_client
        yield TestClient(app)
        app.dependency_overrides.clear()

    def test_valid_token(self, authed_client, service):
        service.get_payment_by_reference.return_value = make_payment()

        response = authed_client.get(
            f"/payments/{REFERENCE_ID}",
            headers={"Authorization": "Bearer good-token"},
        )

        assert response.status_code == 200

    def test_rejected_token(self, authed_client, service):
        response = authed_client.get(
            f"/payments/{REFERENCE_ID}",
            headers={"Authorization": "Bearer stale-token"},
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Token expired"
        service.get_payment_by_reference.assert_not_called()

    def test_wrong_scheme(self, authed_client):
        response = authed_client.get(
            f"/payments/{REFERENCE_ID}",
            headers={"Authorization": "Basic abc"},
        )

        assert response.status_code == 401
