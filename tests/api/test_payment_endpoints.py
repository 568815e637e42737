"""
Integration tests for checkout, verification and webhook reconciliation
"""
import pytest
from db.models.payment import Payment
from db.models.subscription import Subscription


def _create_order(client, headers, amount=299.0, currency="INR"):
    response = client.post("/api/payments/create-order", json={"amount": amount, "currency": currency}, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


def _subscriptions(db_session, user_id):
    db_session.expire_all()
    return db_session.query(Subscription).filter(Subscription.user_id == user_id).order_by(Subscription.id).all()


def _payment(db_session, order_id):
    db_session.expire_all()
    return db_session.query(Payment).filter(Payment.provider_order_id == order_id).first()


class TestPrice:
    def test_price(self, client):
        response = client.get("/api/subscriptions/price")
        assert response.status_code == 200
        assert response.json() == {"price": 299.0, "currency": "INR", "price_in_minor_units": 29900}


class TestCreateOrder:
    def test_create_order_records_pending_payment(self, client, make_user, db_session):
        user, headers = make_user()
        data = _create_order(client, headers)

        assert data["order_id"] == "order_test1"
        assert data["amount"] == 29900
        assert data["currency"] == "INR"
        assert data["key_id"] == "rzp_test_key"

        payment = _payment(db_session, data["order_id"])
        assert payment.id == data["payment_id"]
        assert payment.status == "pending"
        assert payment.user_id == user.id
        assert payment.email == user.email
        assert payment.amount == 299.0

    def test_create_order_requires_amount(self, client, user_headers):
        response = client.post("/api/payments/create-order", json={}, headers=user_headers)
        assert response.status_code == 400

    @pytest.mark.parametrize("amount", [0, -1])
    def test_create_order_rejects_invalid_amount(self, client, user_headers, razorpay_client, amount):
        response = client.post("/api/payments/create-order", json={"amount": amount}, headers=user_headers)
        assert response.status_code == 400
        razorpay_client.order.create.assert_not_called()

    def test_create_order_accepts_any_positive_amount(self, client, make_user, db_session):
        _, headers = make_user()
        data = _create_order(client, headers, amount=100.0)

        assert data["amount"] == 10000
        payment = _payment(db_session, data["order_id"])
        assert payment.status == "pending"
        assert payment.amount == 100.0

    def test_create_order_passes_currency_through(self, client, user_headers, razorpay_client):
        data = _create_order(client, user_headers, amount=5.5, currency="usd")

        assert data["currency"] == "USD"
        assert data["amount"] == 550
        sent = razorpay_client.order.create.call_args.kwargs["data"]
        assert sent["currency"] == "USD"
        assert sent["amount"] == 550

    def test_create_order_requires_auth(self, client):
        response = client.post("/api/payments/create-order", json={"amount": 299.0})
        assert response.status_code == 401

    def test_gateway_failure_is_500(self, client, user_headers, razorpay_client, db_session):
        from razorpay.errors import ServerError

        razorpay_client.order.create.side_effect = ServerError("Internal error")
        response = client.post("/api/payments/create-order", json={"amount": 299.0}, headers=user_headers)
        assert response.status_code == 500
        assert "Payment gateway error" in response.json()["detail"]
        assert db_session.query(Payment).count() == 0


class TestVerifyPayment:
    def test_verify_completes_payment_and_activates(self, client, make_user, db_session, sign_payment):
        user, headers = make_user()
        order = _create_order(client, headers)
        response = client.post(
            "/api/payments/verify",
            json={
                "razorpay_order_id": order["order_id"],
                "razorpay_payment_id": "pay_abc",
                "razorpay_signature": sign_payment(order["order_id"], "pay_abc"),
            },
            headers=headers,
        )
        assert response.status_code == 200, response.text
        data = response.json()
        assert data["status"] == "completed"
        assert data["provider_payment_id"] == "pay_abc"

        subs = _subscriptions(db_session, user.id)
        assert len(subs) == 1
        assert subs[0].status == "active"

        me = client.get("/api/subscriptions/me", headers=headers).json()
        assert me["is_active"] is True

    def test_verify_twice_renews_once(self, client, make_user, db_session, sign_payment):
        user, headers = make_user()
        order = _create_order(client, headers)
        body = {
            "order_id": order["order_id"],
            "payment_id": "pay_abc",
            "signature": sign_payment(order["order_id"], "pay_abc"),
        }
        assert client.post("/api/payments/verify", json=body, headers=headers).status_code == 200
        second = client.post("/api/payments/verify", json=body, headers=headers)
        assert second.status_code == 200
        assert second.json()["status"] == "completed"
        assert len(_subscriptions(db_session, user.id)) == 1

    def test_verify_bad_signature(self, client, make_user, db_session):
        user, headers = make_user()
        order = _create_order(client, headers)
        response = client.post(
            "/api/payments/verify",
            json={"order_id": order["order_id"], "payment_id": "pay_abc", "signature": "deadbeef"},
            headers=headers,
        )
        assert response.status_code == 400
        assert _payment(db_session, order["order_id"]).status == "pending"
        assert _subscriptions(db_session, user.id) == []

    def test_verify_unknown_order(self, client, user_headers, sign_payment):
        response = client.post(
            "/api/payments/verify",
            json={"order_id": "order_missing", "payment_id": "pay_abc", "signature": sign_payment("order_missing", "pay_abc")},
            headers=user_headers,
        )
        assert response.status_code == 404

    def test_verify_other_users_order(self, client, make_user, db_session, sign_payment):
        owner, owner_headers = make_user(email="owner@example.com")
        _, other_headers = make_user(email="other@example.com")
        order = _create_order(client, owner_headers)
        response = client.post(
            "/api/payments/verify",
            json={
                "order_id": order["order_id"],
                "payment_id": "pay_abc",
                "signature": sign_payment(order["order_id"], "pay_abc"),
            },
            headers=other_headers,
        )
        assert response.status_code == 403
        assert _payment(db_session, order["order_id"]).status == "pending"

    def test_verify_missing_fields(self, client, user_headers):
        response = client.post("/api/payments/verify", json={"order_id": "order_test1"}, headers=user_headers)
        assert response.status_code == 400

    def test_verify_after_failed_webhook(self, client, make_user, signed_webhook, sign_payment):
        _, headers = make_user()
        order = _create_order(client, headers)
        body, hook_headers = signed_webhook("payment.failed", order["order_id"])
        client.post("/api/payments/webhook", content=body, headers=hook_headers)
        response = client.post(
            "/api/payments/verify",
            json={
                "order_id": order["order_id"],
                "payment_id": "pay_abc",
                "signature": sign_payment(order["order_id"], "pay_abc"),
            },
            headers=headers,
        )
        assert response.status_code == 400


class TestWebhook:
    def test_captured_completes_and_renews(self, client, make_user, db_session, signed_webhook):
        user, headers = make_user()
        order = _create_order(client, headers)
        body, hook_headers = signed_webhook("payment.captured", order["order_id"], "pay_hook")

        response = client.post("/api/payments/webhook", content=body, headers=hook_headers)

        assert response.status_code == 200
        assert response.json() == {"status": "success"}
        payment = _payment(db_session, order["order_id"])
        assert payment.status == "completed"
        assert payment.provider_payment_id == "pay_hook"
        assert [s.status for s in _subscriptions(db_session, user.id)] == ["active"]

    def test_duplicate_captured_is_a_no_op(self, client, make_user, db_session, signed_webhook):
        user, headers = make_user()
        order = _create_order(client, headers)
        body, hook_headers = signed_webhook("payment.captured", order["order_id"], "pay_hook")

        first = client.post("/api/payments/webhook", content=body, headers=hook_headers)
        subs_after_first = [(s.id, s.status, s.end_date) for s in _subscriptions(db_session, user.id)]
        second = client.post("/api/payments/webhook", content=body, headers=hook_headers)

        assert first.status_code == 200
        assert second.status_code == 200
        assert [(s.id, s.status, s.end_date) for s in _subscriptions(db_session, user.id)] == subs_after_first

    def test_verify_then_webhook_renews_once(self, client, make_user, db_session, signed_webhook, sign_payment):
        user, headers = make_user()
        order = _create_order(client, headers)
        client.post(
            "/api/payments/verify",
            json={
                "order_id": order["order_id"],
                "payment_id": "pay_abc",
                "signature": sign_payment(order["order_id"], "pay_abc"),
            },
            headers=headers,
        )
        body, hook_headers = signed_webhook("payment.captured", order["order_id"], "pay_abc")
        assert client.post("/api/payments/webhook", content=body, headers=hook_headers).status_code == 200
        assert len(_subscriptions(db_session, user.id)) == 1

    def test_failed_marks_payment_failed(self, client, make_user, db_session, signed_webhook):
        user, headers = make_user()
        order = _create_order(client, headers)
        body, hook_headers = signed_webhook("payment.failed", order["order_id"])

        response = client.post("/api/payments/webhook", content=body, headers=hook_headers)

        assert response.status_code == 200
        assert _payment(db_session, order["order_id"]).status == "failed"
        assert _subscriptions(db_session, user.id) == []

    def test_failed_after_completed_does_not_downgrade(self, client, make_user, db_session, signed_webhook):
        _, headers = make_user()
        order = _create_order(client, headers)
        body, hook_headers = signed_webhook("payment.captured", order["order_id"])
        client.post("/api/payments/webhook", content=body, headers=hook_headers)
        body, hook_headers = signed_webhook("payment.failed", order["order_id"])
        client.post("/api/payments/webhook", content=body, headers=hook_headers)
        assert _payment(db_session, order["order_id"]).status == "completed"

    def test_bad_signature_is_rejected(self, client, make_user, db_session, signed_webhook):
        _, headers = make_user()
        order = _create_order(client, headers)
        body, hook_headers = signed_webhook("payment.captured", order["order_id"])
        hook_headers["x-razorpay-signature"] = "0" * 64

        response = client.post("/api/payments/webhook", content=body, headers=hook_headers)

        assert response.status_code == 400
        assert _payment(db_session, order["order_id"]).status == "pending"

    def test_missing_signature_is_rejected(self, client, signed_webhook):
        body, _ = signed_webhook("payment.captured", "order_test1")
        response = client.post("/api/payments/webhook", content=body, headers={"Content-Type": "application/json"})
        assert response.status_code == 400

    @pytest.mark.parametrize("body", [b"not json{", b"[1, 2]", b'"payment.captured"'])
    def test_signed_body_that_is_not_an_event_is_rejected(self, client, sign_webhook, body):
        headers = {"x-razorpay-signature": sign_webhook(body), "Content-Type": "application/json"}

        response = client.post("/api/payments/webhook", content=body, headers=headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid webhook payload"

    def test_unknown_order_still_succeeds(self, client, signed_webhook):
        body, hook_headers = signed_webhook("payment.captured", "order_unknown")
        response = client.post("/api/payments/webhook", content=body, headers=hook_headers)
        assert response.status_code == 200
        assert response.json() == {"status": "success"}

    def test_other_events_are_ignored(self, client, make_user, db_session, signed_webhook):
        _, headers = make_user()
        order = _create_order(client, headers)
        body, hook_headers = signed_webhook("order.paid", order["order_id"])
        assert client.post("/api/payments/webhook", content=body, headers=hook_headers).status_code == 200
        assert _payment(db_session, order["order_id"]).status == "pending"

    def test_processing_error_still_succeeds(self, client, make_user, db_session, signed_webhook):
        from unittest.mock import patch

        _, headers = make_user()
        order = _create_order(client, headers)
        body, hook_headers = signed_webhook("payment.captured", order["order_id"])
        with patch(
            "api.services.subscription_service.SubscriptionService.renew_subscription",
            side_effect=RuntimeError("database went away"),
        ):
            response = client.post("/api/payments/webhook", content=body, headers=hook_headers)
        assert response.status_code == 200
        assert response.json() == {"status": "success"}
        # Rolled back, so a later delivery can still settle it
        assert _payment(db_session, order["order_id"]).status == "pending"

    def test_captured_after_user_deleted(self, client, make_user, admin_headers, db_session, signed_webhook):
        user, headers = make_user()
        order = _create_order(client, headers)
        assert client.delete(f"/api/admin/users/{user.id}", headers=admin_headers).status_code == 200
        body, hook_headers = signed_webhook("payment.captured", order["order_id"])
        assert client.post("/api/payments/webhook", content=body, headers=hook_headers).status_code == 200
        payment = _payment(db_session, order["order_id"])
        assert payment.status == "completed"
        assert payment.user_id is None
        assert payment.email == "user@example.com"
