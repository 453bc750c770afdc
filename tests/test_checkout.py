from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from models.cart import Cart
from models.order import JarDeposit, Order
from models.promo import PromoCode
from services import site_settings
from services.exceptions import ValidationFailed
from services.pricing import compute_totals, price_line


def _fill_cart(client, headers, *lines):
    for product, quantity, *rest in lines:
        body = {"product_id": product.id, "quantity": quantity}
        if rest:
            body["exchange_jars"] = rest[0]
        resp = client.post("/cart/items", json=body, headers=headers)
        assert resp.status_code == 201, resp.text


class TestPricing:
    """Line and order totals."""

    def test_bottle_has_no_deposit(self, bottle):
        line = price_line(bottle, 3, exchange_jars=2)
        assert line["line_total"] == Decimal("150.00")
        assert line["deposit"] == Decimal("0.00")
        assert line["exchange_jars"] == 0

    def test_jar_deposit_for_new_jars_only(self, jar):
        line = price_line(jar, 3, exchange_jars=1)
        assert line["new_jars"] == 2
        assert line["deposit"] == Decimal("600.00")

    def test_exchange_jars_clamped(self, jar):
        line = price_line(jar, 2, exchange_jars=5)
        assert line["exchange_jars"] == 2
        assert line["new_jars"] == 0
        assert line["deposit"] == Decimal("0.00")

    def test_cod_totals(self, db, bottle):
        totals = compute_totals(db, [(bottle, 2, 0)], payment_method="COD")
        # 100 subtotal, 15% VAT, 60 delivery + 20 COD fee
        assert totals["subtotal"] == Decimal("100.00")
        assert totals["vat"] == Decimal("15.00")
        assert totals["delivery_fee"] == Decimal("80.00")
        assert totals["total"] == Decimal("195.00")

    def test_free_shipping_threshold(self, db, bottle):
        totals = compute_totals(db, [(bottle, 20, 0)], payment_method="ONLINE")
        assert totals["subtotal"] == Decimal("1000.00")
        assert totals["delivery_fee"] == Decimal("0.00")

    def test_free_shipping_product(self, db, vendor, make_product):
        product = make_product(vendor.brands[0], "free-ship-pack", price="60.00", free_shipping=True)
        totals = compute_totals(db, [(product, 2, 0)], payment_method="ONLINE")
        assert totals["delivery_fee"] == Decimal("0.00")

    def test_discount_reduces_vat_base(self, db, bottle):
        totals = compute_totals(db, [(bottle, 4, 0)], payment_method="ONLINE", discount=Decimal("50.00"))
        # (200 - 50) * 15% = 22.50
        assert totals["vat"] == Decimal("22.50")
        assert totals["total"] == Decimal("232.50")

    def test_settings_drive_rates(self, db, bottle):
        site_settings.update_settings(db, {"order.vatRate": "5", "shipping.defaultRate": "40"})
        totals = compute_totals(db, [(bottle, 2, 0)], payment_method="ONLINE")
        assert totals["vat"] == Decimal("5.00")
        assert totals["delivery_fee"] == Decimal("40.00")


class TestCheckout:
    def test_place_cod_order(self, client, db, customer_headers, address, bottle, jar, mock_email_send):
        _fill_cart(client, customer_headers, (bottle, 2), (jar, 2, 1))
        resp = client.post(
            "/orders/",
            json={"address_id": address.id, "payment_method": "COD", "delivery_slot": "9am-12pm"},
            headers=customer_headers,
        )
        assert resp.status_code == 201, resp.text
        data = resp.json()
        order = data["order"]
        assert data["payment_url"] is None
        assert order["status"] == "PENDING"
        assert order["payment_status"] == "PENDING"
        # 100 + 240 subtotal, one new jar (300 deposit), VAT 51, delivery 60 + COD 20
        assert order["subtotal"] == 340.0
        assert order["deposit_total"] == 300.0
        assert order["vat"] == 51.0
        assert order["delivery_fee"] == 80.0
        assert order["total"] == 771.0
        assert order["shipping_city"] == "Dhaka"
        assert [h["status"] for h in order["history"]] == ["PENDING"]
        assert {i["brand_name"] for i in order["items"]} == {"Fresh Springs"}

        db.expire_all()
        assert db.query(Cart).one().items == []
        deposits = db.query(JarDeposit).all()
        assert len(deposits) == 1 and deposits[0].quantity == 1
        assert any("received" in m["subject"] for m in mock_email_send)

    def test_stock_decremented(self, client, db, customer_headers, address, bottle):
        _fill_cart(client, customer_headers, (bottle, 3))
        client.post("/orders/", json={"address_id": address.id}, headers=customer_headers)
        db.refresh(bottle)
        assert bottle.stock == 97

    def test_empty_cart(self, client, customer_headers, address):
        resp = client.post("/orders/", json={"address_id": address.id}, headers=customer_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Cart is empty"

    def test_foreign_address(self, client, customer_headers, make_user, bottle, db):
        from models.address import Address

        stranger = make_user()
        other = Address(
            user_id=stranger.id, name="Other", phone="01799999999", address="Somewhere far away",
            city="Chittagong", district="Chittagong",
        )
        db.add(other)
        db.commit()
        _fill_cart(client, customer_headers, (bottle, 2))
        resp = client.post("/orders/", json={"address_id": other.id}, headers=customer_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid address"

    def test_insufficient_stock_rolls_back(self, client, db, customer_headers, address, bottle):
        _fill_cart(client, customer_headers, (bottle, 5))
        bottle.stock = 3
        db.commit()
        resp = client.post("/orders/", json={"address_id": address.id}, headers=customer_headers)
        assert resp.status_code == 400
        assert "out of stock" in resp.json()["detail"]
        assert db.query(Order).count() == 0

    def test_minimum_order_value(self, client, customer_headers, address, bottle):
        _fill_cart(client, customer_headers, (bottle, 1))
        resp = client.post("/orders/", json={"address_id": address.id}, headers=customer_headers)
        assert resp.status_code == 400
        assert "Minimum order value" in resp.json()["detail"]

    def test_cod_disabled(self, client, db, customer_headers, address, bottle):
        site_settings.update_settings(db, {"shipping.enableCOD": "false"})
        db.commit()
        _fill_cart(client, customer_headers, (bottle, 2))
        resp = client.post("/orders/", json={"address_id": address.id, "payment_method": "COD"}, headers=customer_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Cash on delivery is not available"

    def test_online_order_returns_gateway_url(self, client, customer_headers, address, bottle, monkeypatch):
        from services import sslcommerz

        monkeypatch.setattr(
            sslcommerz, "init_session",
            lambda *args, **kwargs: {"status": "SUCCESS", "GatewayPageURL": "https://sandbox.sslcommerz.com/pay/abc", "sessionkey": "abc"},
        )
        _fill_cart(client, customer_headers, (bottle, 2))
        resp = client.post("/orders/", json={"address_id": address.id, "payment_method": "ONLINE"}, headers=customer_headers)
        assert resp.status_code == 201
        data = resp.json()
        assert data["payment_url"] == "https://sandbox.sslcommerz.com/pay/abc"
        # no COD fee for online payment
        assert data["order"]["delivery_fee"] == 60.0

    def test_requires_auth(self, client, address):
        resp = client.post("/orders/", json={"address_id": address.id})
        assert resp.status_code == 401


class TestPromoAtCheckout:
    @pytest.fixture
    def promo(self, db):
        promo = PromoCode(
            code="SAVE10", discount_type="percentage", discount_value=Decimal("10"),
            max_discount=Decimal("100"), is_active=True, usage_count=0,
        )
        db.add(promo)
        db.commit()
        return promo

    def test_percentage_discount_applied(self, client, db, customer_headers, address, bottle, promo):
        _fill_cart(client, customer_headers, (bottle, 4))
        resp = client.post(
            "/orders/", json={"address_id": address.id, "payment_method": "COD", "promo_code": "save10"},
            headers=customer_headers,
        )
        assert resp.status_code == 201, resp.text
        order = resp.json()["order"]
        assert order["discount"] == 20.0
        assert order["vat"] == 27.0
        db.refresh(promo)
        assert promo.usage_count == 1

    def test_validate_endpoint(self, client, customer_headers, promo):
        resp = client.post("/promos/validate", json={"code": "SAVE10", "subtotal": 2000}, headers=customer_headers)
        assert resp.status_code == 200
        # capped by max_discount
        assert resp.json()["discount"] == 100.0

    @pytest.mark.parametrize(
        "changes,message",
        [
            ({"is_active": False}, "Invalid promo code"),
            ({"starts_at": datetime.utcnow() + timedelta(days=1)}, "Promo code is not active yet"),
            ({"expires_at": datetime.utcnow() - timedelta(days=1)}, "Promo code has expired"),
            ({"usage_limit": 1, "usage_count": 1}, "Promo code usage limit reached"),
            ({"min_order": Decimal("500")}, "Minimum order of ৳500 required for this promo code"),
        ],
    )
    def test_promo_rejections(self, db, customer, promo, changes, message):
        from services.promo import validate_promo

        for field, value in changes.items():
            setattr(promo, field, value)
        db.commit()
        with pytest.raises(ValidationFailed) as exc:
            validate_promo(db, "SAVE10", Decimal("200"), customer.id)
        assert exc.value.message == message

    def test_per_user_limit(self, db, customer, promo, make_order, bottle):
        from services.promo import validate_promo

        promo.per_user_limit = 1
        db.commit()
        make_order([(bottle, 2)], promo_code="SAVE10")
        with pytest.raises(ValidationFailed, match="already used"):
            validate_promo(db, "SAVE10", Decimal("200"), customer.id)


class TestCustomerOrders:
    def test_list_and_detail(self, client, customer_headers, make_order, bottle):
        first = make_order([(bottle, 2)])
        second = make_order([(bottle, 3)])
        resp = client.get("/orders/", headers=customer_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 2
        assert [o["id"] for o in data["items"]] == [second.id, first.id]

        detail = client.get(f"/orders/{first.id}", headers=customer_headers)
        assert detail.json()["order_number"] == first.order_number

    def test_other_users_order_hidden(self, client, make_order, bottle, make_user, auth_for):
        order = make_order([(bottle, 2)])
        stranger = make_user()
        resp = client.get(f"/orders/{order.id}", headers=auth_for(stranger))
        assert resp.status_code == 404

    def test_customer_cancel(self, client, db, customer_headers, make_order, bottle):
        order = make_order([(bottle, 4)])
        resp = client.post(f"/orders/{order.id}/cancel", json={"reason": "Ordered twice"}, headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "CANCELLED"
        db.refresh(bottle)
        assert bottle.stock == 100

    def test_customer_cannot_cancel_paid_order(self, client, db, customer_headers, make_order, bottle):
        from services.order_lifecycle import mark_order_paid

        order = make_order([(bottle, 2)])
        mark_order_paid(db, order)
        db.commit()
        resp = client.post(f"/orders/{order.id}/cancel", headers=customer_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Cannot cancel order that is already being processed"
