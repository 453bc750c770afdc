from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import requests

from core.config import settings
from models.order import OrderStatus, PaymentStatus
from models.payment import Payment
from services import payments, sslcommerz
from services.exceptions import ValidationFailed

GATEWAY_OK = {"status": "SUCCESS", "GatewayPageURL": "https://sandbox.sslcommerz.com/pay/xyz", "sessionkey": "xyz"}


def _signed(payload: dict) -> dict:
    payload = dict(payload)
    payload["verify_key"] = ",".join(k for k in payload if k not in ("verify_key",))
    payload["verify_sign"] = sslcommerz.compute_signature(payload, settings.SSLCOMMERZ_STORE_PASSWORD)
    return payload


@pytest.fixture
def online_order(make_order, bottle):
    return make_order([(bottle, 2)], payment_method="ONLINE")


@pytest.fixture
def payment(db, online_order, monkeypatch):
    monkeypatch.setattr(sslcommerz, "init_session", lambda *a, **kw: GATEWAY_OK)
    _, tran_id = payments.start_payment(db, online_order)
    db.commit()
    return db.query(Payment).filter(Payment.reference == tran_id).one()


def _validation(order, **overrides):
    data = {"status": "VALID", "amount": str(order.total), "card_type": "BKASH-BKash", "tran_id": "x"}
    data.update(overrides)
    return data


class TestSignature:
    def test_roundtrip(self):
        payload = _signed({"tran_id": "PN1-abcd", "val_id": "v1", "amount": "130.00", "status": "VALID"})
        assert sslcommerz.verify_ipn_signature(payload)

    def test_tampered_amount(self):
        payload = _signed({"tran_id": "PN1-abcd", "val_id": "v1", "amount": "130.00", "status": "VALID"})
        payload["amount"] = "1.00"
        assert not sslcommerz.verify_ipn_signature(payload)

    def test_missing_fields(self):
        assert not sslcommerz.verify_ipn_signature({"tran_id": "PN1-abcd"})

    def test_keys_sorted_and_password_hashed(self):
        import hashlib

        payload = {"verify_key": "b,a", "a": "1", "b": "2"}
        password_md5 = hashlib.md5(b"secret").hexdigest()
        expected = hashlib.md5(f"a=1&b=2&store_passwd={password_md5}".encode()).hexdigest()
        assert sslcommerz.compute_signature(payload, "secret") == expected


class TestStartPayment:
    def test_creates_initialized_payment(self, db, online_order, payment):
        assert payment.status == "initialized"
        assert payment.amount == online_order.total
        assert payment.reference.startswith(f"PN{online_order.id}-")

    def test_gateway_request(self, db, online_order):
        response = MagicMock()
        response.json.return_value = GATEWAY_OK
        with patch("services.sslcommerz.requests.post", return_value=response) as post:
            url, tran_id = payments.start_payment(db, online_order)
        assert url == GATEWAY_OK["GatewayPageURL"]
        sent = post.call_args.kwargs["data"]
        assert sent["tran_id"] == tran_id
        assert sent["total_amount"] == "175.00"
        assert sent["currency"] == "BDT"
        assert sent["ipn_url"].endswith("/payments/ipn")
        assert sent["value_a"] == str(online_order.id)

    def test_gateway_rejection(self, db, online_order, monkeypatch):
        monkeypatch.setattr(sslcommerz, "init_session", lambda *a, **kw: {"status": "FAILED", "failedreason": "Store inactive"})
        with pytest.raises(ValidationFailed, match="Store inactive"):
            payments.start_payment(db, online_order)

    def test_gateway_unreachable(self, db, online_order, monkeypatch):
        def _boom(*args, **kwargs):
            raise requests.ConnectionError("down")

        monkeypatch.setattr(sslcommerz, "init_session", _boom)
        with pytest.raises(ValidationFailed) as exc:
            payments.start_payment(db, online_order)
        assert exc.value.status_code == 502

    def test_cod_order_not_payable(self, db, make_order, bottle):
        order = make_order([(bottle, 2)])
        with pytest.raises(ValidationFailed, match="not payable online"):
            payments.start_payment(db, order)

    def test_retry_after_failure_resets_status(self, db, online_order, payment, monkeypatch):
        payments.record_failure(db, payment, "declined")
        assert online_order.payment_status == PaymentStatus.FAILED
        monkeypatch.setattr(sslcommerz, "init_session", lambda *a, **kw: GATEWAY_OK)
        payments.start_payment(db, online_order)
        assert online_order.payment_status == PaymentStatus.PENDING


class TestIPN:
    def _post(self, client, payment, status="VALID", **extra):
        body = _signed({"tran_id": payment.reference, "val_id": "VAL123", "status": status, **extra})
        return client.post("/payments/ipn", data=body)

    def test_valid_ipn_marks_paid(self, client, db, payment, online_order):
        with patch("services.sslcommerz.validate_transaction", return_value=_validation(online_order)):
            resp = self._post(client, payment)
        assert resp.status_code == 200
        assert resp.json() == {"status": "success", "tran_id": payment.reference}
        db.refresh(online_order)
        assert online_order.payment_status == PaymentStatus.PAID
        assert online_order.status == OrderStatus.PAID
        assert payment.val_id == "VAL123"

    def test_redelivered_ipn_is_idempotent(self, client, db, payment, online_order):
        with patch("services.sslcommerz.validate_transaction", return_value=_validation(online_order)) as validate:
            self._post(client, payment)
            resp = self._post(client, payment)
        assert resp.json()["status"] == "success"
        assert validate.call_count == 1
        assert [h.status for h in online_order.history].count(OrderStatus.PAID) == 1

    def test_amount_mismatch_fails(self, client, db, payment, online_order):
        with patch("services.sslcommerz.validate_transaction", return_value=_validation(online_order, amount="10.00")):
            resp = self._post(client, payment)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Validation failed"
        db.refresh(online_order)
        assert online_order.payment_status == PaymentStatus.FAILED

    def test_small_rounding_difference_accepted(self, client, db, payment, online_order):
        amount = str(Decimal(str(online_order.total)) - Decimal("0.50"))
        with patch("services.sslcommerz.validate_transaction", return_value=_validation(online_order, amount=amount)):
            resp = self._post(client, payment)
        assert resp.json()["status"] == "success"

    def test_invalid_signature(self, client, payment):
        body = _signed({"tran_id": payment.reference, "val_id": "VAL123", "status": "VALID"})
        body["verify_sign"] = "0" * 32
        resp = client.post("/payments/ipn", data=body)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid signature"

    def test_unknown_transaction(self, client):
        body = _signed({"tran_id": "PN999-ffff", "val_id": "v", "status": "VALID"})
        resp = client.post("/payments/ipn", data=body)
        assert resp.status_code == 404

    @pytest.mark.parametrize("status,expected", [("FAILED", "failed"), ("CANCELLED", "cancelled")])
    def test_failure_statuses(self, client, db, payment, online_order, status, expected):
        resp = self._post(client, payment, status=status)
        assert resp.json()["status"] == expected
        db.refresh(online_order)
        assert online_order.payment_status == PaymentStatus.FAILED
        assert payment.status == expected

    def test_unknown_status(self, client, payment):
        resp = self._post(client, payment, status="UNATTEMPTED")
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Unknown payment status"

    def test_status_lookup_owner_only(self, client, payment, customer_headers, make_user, auth_for):
        resp = client.get(f"/payments/ipn?tran_id={payment.reference}", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "initialized"
        other = auth_for(make_user())
        assert client.get(f"/payments/ipn?tran_id={payment.reference}", headers=other).status_code == 404


class TestCallbacks:
    def test_success_redirect(self, client, db, payment, online_order):
        with patch("services.sslcommerz.validate_transaction", return_value=_validation(online_order)):
            resp = client.post("/payments/success", data={"tran_id": payment.reference, "val_id": "VAL1"})
        data = resp.json()
        assert data["status"] == "success"
        assert data["redirect_url"] == f"{settings.APP_BASE_URL}/orders/{online_order.id}?payment=success"
        db.refresh(online_order)
        assert online_order.payment_status == PaymentStatus.PAID

    def test_success_without_val_id(self, client, payment):
        resp = client.post("/payments/success", data={"tran_id": payment.reference})
        assert resp.json()["status"] == "invalid"

    def test_success_unknown_tran(self, client):
        resp = client.post("/payments/success", data={"tran_id": "nope", "val_id": "x"})
        assert resp.json()["status"] == "not_found"
        assert resp.json()["redirect_url"].endswith("/checkout/error?reason=not_found")

    def test_fail_callback(self, client, db, payment, online_order):
        resp = client.post("/payments/fail", data={"tran_id": payment.reference, "error": "Card declined"})
        assert resp.json()["status"] == "failed"
        db.refresh(online_order)
        assert online_order.payment_status == PaymentStatus.FAILED

    def test_cancel_callback_keeps_order_pending(self, client, db, payment, online_order):
        resp = client.post("/payments/cancel", data={"tran_id": payment.reference})
        assert resp.json()["status"] == "cancelled"
        db.refresh(online_order)
        assert online_order.payment_status == PaymentStatus.PENDING
        assert payment.status == "cancelled"

    def test_init_endpoint(self, client, online_order, customer_headers, monkeypatch):
        monkeypatch.setattr(sslcommerz, "init_session", lambda *a, **kw: GATEWAY_OK)
        resp = client.post("/payments/init", json={"order_id": online_order.id}, headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json()["gateway_url"] == GATEWAY_OK["GatewayPageURL"]
