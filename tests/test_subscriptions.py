from datetime import datetime

import pytest

from services.subscriptions import next_delivery_date


class TestNextDelivery:
    @pytest.mark.parametrize(
        "frequency,expected",
        [
            ("DAILY", datetime(2024, 1, 31, 9)),
            ("ALTERNATE", datetime(2024, 2, 1, 9)),
            ("WEEKLY", datetime(2024, 2, 6, 9)),
            ("MONTHLY", datetime(2024, 2, 29, 9)),
        ],
    )
    def test_steps(self, frequency, expected):
        assert next_delivery_date(frequency, datetime(2024, 1, 30, 9)) == expected


class TestSubscriptionRoutes:
    def _create(self, client, headers, address, product, **extra):
        body = {"items": [{"product_id": product.id, "quantity": 2}], "address_id": address.id, **extra}
        return client.post("/subscriptions/", json=body, headers=headers)

    def test_create_and_list(self, client, customer_headers, address, jar):
        resp = self._create(client, customer_headers, address, jar, frequency="DAILY")
        assert resp.status_code == 201
        data = resp.json()
        assert data["status"] == "ACTIVE"
        assert data["frequency"] == "DAILY"
        assert data["items"][0]["quantity"] == 2

        listed = client.get("/subscriptions/", headers=customer_headers).json()
        assert [s["id"] for s in listed] == [data["id"]]

    def test_unknown_product(self, client, customer_headers, address, bottle):
        body = {"items": [{"product_id": 9999, "quantity": 1}], "address_id": address.id}
        resp = client.post("/subscriptions/", json=body, headers=customer_headers)
        assert resp.status_code == 404

    def test_pause_resume_cancel(self, client, customer_headers, address, jar):
        sub_id = self._create(client, customer_headers, address, jar).json()["id"]

        resp = client.patch(f"/subscriptions/{sub_id}", json={"action": "pause"}, headers=customer_headers)
        assert resp.json()["status"] == "PAUSED"

        resp = client.patch(f"/subscriptions/{sub_id}", json={"action": "pause"}, headers=customer_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Only active subscriptions can be paused"

        resp = client.patch(f"/subscriptions/{sub_id}", json={"action": "resume"}, headers=customer_headers)
        assert resp.json()["status"] == "ACTIVE"

        resp = client.patch(f"/subscriptions/{sub_id}", json={"action": "cancel"}, headers=customer_headers)
        assert resp.json()["status"] == "CANCELLED"

        resp = client.patch(f"/subscriptions/{sub_id}", json={"action": "resume"}, headers=customer_headers)
        assert resp.json()["detail"] == "Subscription has been cancelled"

    def test_foreign_subscription(self, client, customer_headers, address, jar, make_user, auth_for):
        sub_id = self._create(client, customer_headers, address, jar).json()["id"]
        other = auth_for(make_user())
        resp = client.patch(f"/subscriptions/{sub_id}", json={"action": "cancel"}, headers=other)
        assert resp.status_code == 404
