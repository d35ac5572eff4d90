from models.order import OrderStatus, PaymentStatus


class TestOrderHistory:
    """Signed-in order history"""

    def test_requires_authentication(self, client):
        assert client.get("/orders/").status_code == 401
        assert client.get("/orders/stats").status_code == 401

    def test_list_own_orders(self, client, make_order, test_user, other_user, auth_headers):
        mine = [make_order(user=test_user) for _ in range(3)]
        make_order(user=other_user)
        make_order()

        response = client.get("/orders/", headers=auth_headers, params={"limit": 2})

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert data["limit"] == 2
        assert data["offset"] == 0
        assert data["hasMore"] is True
        assert [o["id"] for o in data["orders"]] == [mine[2].id, mine[1].id]
        assert data["orders"][0]["items"][0]["productName"] == "Pleated Linen Trouser"
        assert data["orders"][0]["totalAmount"] == 315.0

    def test_last_page(self, client, make_order, test_user, auth_headers):
        for _ in range(3):
            make_order(user=test_user)

        data = client.get("/orders/", headers=auth_headers, params={"limit": 2, "offset": 2}).json()

        assert len(data["orders"]) == 1
        assert data["hasMore"] is False

    def test_limit_bounds(self, client, auth_headers):
        assert client.get("/orders/", headers=auth_headers, params={"limit": 0}).status_code == 422
        assert client.get("/orders/", headers=auth_headers, params={"limit": 101}).status_code == 422

    def test_stats(self, client, make_order, test_user, other_user, auth_headers):
        make_order(user=test_user)
        make_order(user=test_user, payment_status=PaymentStatus.COMPLETED, status=OrderStatus.PROCESSING, total="200.00")
        make_order(user=test_user, payment_status=PaymentStatus.COMPLETED, status=OrderStatus.DELIVERED, total="100.50")
        make_order(user=other_user, payment_status=PaymentStatus.COMPLETED, status=OrderStatus.DELIVERED)

        response = client.get("/orders/stats", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {
            "total": 3,
            "pending": 1,
            "processing": 1,
            "completed": 1,
            "cancelled": 0,
            "revenue": 300.5,
        }


class TestOrderLookup:
    """Single order lookups by id or order number"""

    def test_owner_can_read_order(self, client, make_order, test_user, auth_headers):
        order = make_order(user=test_user)

        response = client.get(f"/orders/{order.id}", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["orderNumber"] == order.order_number
        assert data["shippingAddress"]["city"] == "Accra"

    def test_other_users_order_is_hidden(self, client, make_order, other_user, auth_headers):
        order = make_order(user=other_user)

        response = client.get(f"/orders/{order.id}", headers=auth_headers)

        assert response.status_code == 404
        assert response.json() == {"error": "Order not found"}
        assert client.get(f"/orders/number/{order.order_number}", headers=auth_headers).status_code == 404

    def test_guest_lookup_by_number(self, client, make_order):
        order = make_order()

        response = client.get(f"/orders/number/{order.order_number}")

        assert response.status_code == 200
        assert response.json()["id"] == order.id

    def test_missing_order(self, client):
        assert client.get("/orders/424242").status_code == 404
        assert client.get("/orders/number/SOG-NOPE").status_code == 404
