class TestWishlist:
    def test_add_list_remove(self, client, customer_headers, bottle):
        resp = client.post("/wishlist/", json={"product_id": bottle.id}, headers=customer_headers)
        assert resp.status_code == 201
        assert resp.json()["available"] is True

        listed = client.get("/wishlist/", headers=customer_headers).json()
        assert [e["product"]["id"] for e in listed] == [bottle.id]

        assert client.delete(f"/wishlist/{bottle.id}", headers=customer_headers).status_code == 204
        assert client.get("/wishlist/", headers=customer_headers).json() == []

    def test_duplicate(self, client, customer_headers, bottle):
        client.post("/wishlist/", json={"product_id": bottle.id}, headers=customer_headers)
        resp = client.post("/wishlist/", json={"product_id": bottle.id}, headers=customer_headers)
        assert resp.status_code == 409
        assert resp.json()["detail"] == "Product already in wishlist"

    def test_inactive_product(self, client, db, customer_headers, bottle):
        bottle.is_active = False
        db.commit()
        resp = client.post("/wishlist/", json={"product_id": bottle.id}, headers=customer_headers)
        assert resp.status_code == 404

    def test_out_of_stock_flagged(self, client, db, customer_headers, bottle):
        client.post("/wishlist/", json={"product_id": bottle.id}, headers=customer_headers)
        bottle.stock = 0
        db.commit()
        assert client.get("/wishlist/", headers=customer_headers).json()[0]["available"] is False

    def test_remove_missing(self, client, customer_headers, bottle):
        resp = client.delete(f"/wishlist/{bottle.id}", headers=customer_headers)
        assert resp.status_code == 404

    def test_requires_login(self, client):
        assert client.get("/wishlist/").status_code == 401
