from models.order_item import ItemStatus
from models.review import Review
from services.order_lifecycle import update_item_status


def _deliver(db, order):
    for item in order.items:
        for status in (ItemStatus.PROCESSING, ItemStatus.SHIPPED, ItemStatus.DELIVERED):
            update_item_status(db, item, status)
    db.commit()


class TestSubmitReview:
    def test_verified_purchase(self, client, db, customer_headers, make_order, bottle):
        _deliver(db, make_order([(bottle, 2)]))
        resp = client.post(
            "/reviews/",
            json={"product_id": bottle.id, "rating": 5, "title": "Crisp", "content": "Tastes clean"},
            headers=customer_headers,
        )
        assert resp.status_code == 201
        assert resp.json()["is_verified"] is True

    def test_undelivered_purchase_not_verified(self, client, customer_headers, make_order, bottle):
        make_order([(bottle, 2)])
        resp = client.post("/reviews/", json={"product_id": bottle.id, "rating": 4}, headers=customer_headers)
        assert resp.json()["is_verified"] is False

    def test_one_review_per_product(self, client, customer_headers, bottle):
        client.post("/reviews/", json={"product_id": bottle.id, "rating": 4}, headers=customer_headers)
        resp = client.post("/reviews/", json={"product_id": bottle.id, "rating": 2}, headers=customer_headers)
        assert resp.status_code == 409
        assert resp.json()["detail"] == "You have already reviewed this product"

    def test_content_is_sanitized(self, client, db, customer_headers, bottle):
        resp = client.post(
            "/reviews/",
            json={"product_id": bottle.id, "rating": 3, "content": "<script>alert(1)</script>Fine"},
            headers=customer_headers,
        )
        assert "<script>" not in db.get(Review, resp.json()["id"]).content

    def test_rating_bounds(self, client, customer_headers, bottle):
        resp = client.post("/reviews/", json={"product_id": bottle.id, "rating": 6}, headers=customer_headers)
        assert resp.status_code == 422

    def test_pending_reviews_hidden(self, client, customer_headers, bottle):
        client.post("/reviews/", json={"product_id": bottle.id, "rating": 4}, headers=customer_headers)
        data = client.get(f"/reviews/product/{bottle.id}").json()
        assert data["total"] == 0
        assert data["stats"]["average"] == 0.0


class TestModeration:
    """Approval recomputes the product rating and notifies the author."""

    def _review(self, db, user, product, rating):
        review = Review(user_id=user.id, product_id=product.id, rating=rating, is_approved=False, is_verified=False)
        db.add(review)
        db.commit()
        return review

    def test_approve_updates_rating(self, client, db, admin_headers, customer, make_user, bottle, mock_email_send):
        first = self._review(db, customer, bottle, 5)
        second = self._review(db, make_user(), bottle, 2)

        for review in (first, second):
            resp = client.patch(f"/admin/reviews/{review.id}", json={"action": "approve"}, headers=admin_headers)
            assert resp.status_code == 200
            assert resp.json()["is_approved"] is True

        db.refresh(bottle)
        assert bottle.review_count == 2
        assert float(bottle.avg_rating) == 3.5
        assert mock_email_send[-1]["subject"] == "Your review has been moderated"

        data = client.get(f"/reviews/product/{bottle.id}?sort=lowest").json()
        assert [r["rating"] for r in data["items"]] == [2, 5]
        assert data["stats"]["distribution"]["5"] == 1

    def test_reject_sets_reason(self, client, db, admin_headers, customer, bottle):
        review = self._review(db, customer, bottle, 1)
        resp = client.patch(f"/admin/reviews/{review.id}", json={"action": "reject"}, headers=admin_headers)
        assert resp.json()["rejection_reason"] == "Does not meet review guidelines"

        listed = client.get("/admin/reviews?state=rejected", headers=admin_headers).json()
        assert [r["id"] for r in listed["items"]] == [review.id]

    def test_delete_recomputes(self, client, db, admin_headers, customer, bottle):
        review = self._review(db, customer, bottle, 4)
        client.patch(f"/admin/reviews/{review.id}", json={"action": "approve"}, headers=admin_headers)
        resp = client.delete(f"/admin/reviews/{review.id}", headers=admin_headers)
        assert resp.status_code == 204
        db.refresh(bottle)
        assert bottle.review_count == 0

    def test_customer_cannot_moderate(self, client, db, customer_headers, customer, bottle):
        review = self._review(db, customer, bottle, 4)
        resp = client.patch(f"/admin/reviews/{review.id}", json={"action": "approve"}, headers=customer_headers)
        assert resp.status_code == 403
