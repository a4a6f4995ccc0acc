"""
Order processor tests: validation, stock adjustment, best-effort
notifications and pay/deliver transitions.
"""

from bson import ObjectId

from tests.helpers import ADDRESS, make_product, order_line, place_order, register


def _stock(client, product):
    return client.get(f"/api/products/{product['id']}").json()["count_in_stock"]


class TestCreateOrder:
    def test_empty_items_rejected_and_nothing_persisted(self, client, db, buyer):
        resp = place_order(client, buyer[0], [])
        assert resp.status_code == 400
        assert resp.json()["detail"] == "No order items"
        assert db["order"].count_documents({}) == 0

    def test_pricing_computed_server_side(self, client, seller, buyer):
        product = make_product(client, seller[0], price=500, count_in_stock=5)
        resp = place_order(client, buyer[0], [order_line(product, 2)])
        assert resp.status_code == 201
        order = resp.json()
        assert order["items_price"] == 1000
        assert order["tax_price"] == 180
        assert order["shipping_price"] == 0
        assert order["total_price"] == 1180
        assert order["status"] == "Pending"
        assert order["is_paid"] is False
        assert order["payment_method"] == "COD"

    def test_client_pricing_is_ignored(self, client, seller, buyer):
        product = make_product(client, seller[0], price=100)
        resp = client.post(
            "/api/orders",
            json={
                "order_items": [order_line(product)],
                "shipping_address": ADDRESS,
                "payment_method": "Stripe",
                "pricing": {"items_price": 1, "tax_price": 0, "shipping_price": 0, "total_price": 1},
            },
            headers=buyer[0],
        )
        assert resp.status_code == 201
        assert resp.json()["total_price"] == 168

    def test_stock_decremented_by_ordered_quantity(self, client, seller, buyer):
        a = make_product(client, seller[0], name="A", count_in_stock=10)
        b = make_product(client, seller[0], name="B", count_in_stock=4)
        resp = place_order(client, buyer[0], [order_line(a, 3), order_line(b, 4)])
        assert resp.status_code == 201
        assert _stock(client, a) == 7
        assert _stock(client, b) == 0

    def test_insufficient_stock_rejected(self, client, db, seller, buyer):
        product = make_product(client, seller[0], count_in_stock=2)
        resp = place_order(client, buyer[0], [order_line(product, 3)])
        assert resp.status_code == 400
        assert "Insufficient stock" in resp.json()["detail"]
        assert db["order"].count_documents({}) == 0
        assert _stock(client, product) == 2

    def test_duplicate_lines_count_against_stock_together(self, client, seller, buyer):
        product = make_product(client, seller[0], count_in_stock=3)
        resp = place_order(client, buyer[0], [order_line(product, 2), order_line(product, 2)])
        assert resp.status_code == 400

    def test_unknown_product_rejected(self, client, buyer):
        line = {"product": str(ObjectId()), "name": "Ghost", "qty": 1, "price": 10}
        assert place_order(client, buyer[0], [line]).status_code == 404

    def test_missing_address_field_rejected(self, client, seller, buyer):
        product = make_product(client, seller[0])
        address = dict(ADDRESS)
        del address["phone_number"]
        resp = client.post(
            "/api/orders",
            json={"order_items": [order_line(product)], "shipping_address": address, "payment_method": "COD"},
            headers=buyer[0],
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "shippingAddress.phoneNumber: Field required"

    def test_missing_items_key_rejected(self, client, buyer):
        resp = client.post("/api/orders", json={"shipping_address": ADDRESS, "payment_method": "COD"}, headers=buyer[0])
        assert resp.status_code == 400
        assert resp.json()["detail"].startswith("orderItems")

    def test_camel_case_body(self, client, seller, buyer):
        product = make_product(client, seller[0], price=100)
        address = dict(ADDRESS)
        address["postalCode"] = address.pop("postal_code")
        address["phoneNumber"] = address.pop("phone_number")
        resp = client.post(
            "/api/orders",
            json={"orderItems": [order_line(product)], "shippingAddress": address, "paymentMethod": "COD"},
            headers=buyer[0],
        )
        assert resp.status_code == 201
        assert resp.json()["shipping_address"]["postal_code"] == "560001"
        assert resp.json()["total_price"] == 168

    def test_line_price_taken_from_catalog(self, client, db, seller, buyer):
        product = make_product(client, seller[0], price=250)
        line = dict(order_line(product), price=0.01, name="Cheap Chair")
        resp = place_order(client, buyer[0], [line])
        assert resp.status_code == 201
        body = resp.json()
        assert body["order_items"][0]["price"] == 250
        assert body["order_items"][0]["name"] == "Teak Chair"
        assert body["items_price"] == 250

    def test_inactive_product_rejected(self, client, db, seller, buyer):
        product = make_product(client, seller[0], is_active=False)
        resp = place_order(client, buyer[0], [order_line(product)])
        assert resp.status_code == 404
        assert db["order"].count_documents({}) == 0
        assert db["product"].find_one({"_id": ObjectId(product["id"])})["count_in_stock"] == 10

    def test_order_snapshot_independent_of_cart(self, client, seller, buyer):
        product = make_product(client, seller[0], price=100)
        client.post("/api/cart/items", json={"product_id": product["id"]}, headers=buyer[0])
        order = place_order(client, buyer[0], [order_line(product, 1)]).json()
        client.delete("/api/cart", headers=buyer[0])
        fetched = client.get(f"/api/orders/{order['id']}", headers=buyer[0]).json()
        assert fetched["order_items"][0]["name"] == "Teak Chair"


class TestNotifications:
    def test_buyer_and_owner_notified(self, client, db, services, seller, buyer):
        product = make_product(client, seller[0], name="Lamp")
        order = place_order(client, buyer[0], [order_line(product, 2)]).json()

        recipients = [m["to"] for m in services.mailer.sent]
        assert "buyer@example.com" in recipients
        assert "seller@example.com" in recipients

        system = list(db["message"].find({"message_type": "system"}))
        assert len(system) == 1
        assert system[0]["recipient"] == seller[1]
        assert system[0]["sender"] == buyer[1]
        assert system[0]["order"] == order["id"]
        assert "Lamp (Qty: 2)" in system[0]["message"]

    def test_one_failing_owner_does_not_block_others(self, client, db, services, buyer):
        first = register(client, "Alpha")
        second = register(client, "Beta")
        a = make_product(client, first[0], name="A", count_in_stock=5)
        b = make_product(client, second[0], name="B", count_in_stock=5)
        services.mailer.fail_for.add("alpha@example.com")

        resp = place_order(client, buyer[0], [order_line(a, 1), order_line(b, 2)])
        assert resp.status_code == 201
        assert _stock(client, a) == 4
        assert _stock(client, b) == 3
        assert "beta@example.com" in [m["to"] for m in services.mailer.sent]
        assert db["message"].count_documents({"message_type": "system"}) == 2

    def test_buyer_email_failure_does_not_fail_order(self, client, db, services, seller, buyer):
        product = make_product(client, seller[0])
        services.mailer.fail_for.add("buyer@example.com")
        resp = place_order(client, buyer[0], [order_line(product)])
        assert resp.status_code == 201
        assert db["order"].count_documents({}) == 1

    def test_sms_channel_dormant_by_default(self, client, services, seller, buyer):
        product = make_product(client, seller[0])
        place_order(client, buyer[0], [order_line(product)])
        assert services.sms.enabled is False

    def test_order_discards_buy_now_selection(self, client, db, seller, buyer):
        product = make_product(client, seller[0])
        client.post("/api/cart/buy-now", json={"product_id": product["id"]}, headers=buyer[0])
        place_order(client, buyer[0], [order_line(product)])
        assert db["checkoutselection"].count_documents({"user": buyer[1]}) == 0


class TestReadAccess:
    def test_buyer_and_seller_can_read(self, client, seller, buyer):
        product = make_product(client, seller[0])
        order = place_order(client, buyer[0], [order_line(product)]).json()
        for headers in (buyer[0], seller[0]):
            resp = client.get(f"/api/orders/{order['id']}", headers=headers)
            assert resp.status_code == 200
            assert resp.json()["buyer"]["name"] == "Buyer"

    def test_stranger_forbidden(self, client, seller, buyer):
        product = make_product(client, seller[0])
        order = place_order(client, buyer[0], [order_line(product)]).json()
        stranger = register(client, "Stranger")
        assert client.get(f"/api/orders/{order['id']}", headers=stranger[0]).status_code == 403

    def test_missing_order_is_404(self, client, buyer):
        assert client.get(f"/api/orders/{ObjectId()}", headers=buyer[0]).status_code == 404

    def test_my_orders(self, client, seller, buyer):
        product = make_product(client, seller[0])
        place_order(client, buyer[0], [order_line(product)])
        place_order(client, buyer[0], [order_line(product)])
        assert len(client.get("/api/orders/myorders", headers=buyer[0]).json()) == 2
        assert client.get("/api/orders/myorders", headers=seller[0]).json() == []


class TestTransitions:
    def _order(self, client, seller, buyer):
        product = make_product(client, seller[0])
        return place_order(client, buyer[0], [order_line(product)], payment_method="Stripe").json()

    def test_mark_paid(self, client, seller, buyer):
        order = self._order(client, seller, buyer)
        payment = {"id": "pi_123", "status": "succeeded", "update_time": "now", "email_address": "buyer@example.com"}
        resp = client.put(f"/api/orders/{order['id']}/pay", json=payment, headers=buyer[0])
        assert resp.status_code == 200
        body = resp.json()
        assert body["is_paid"] is True
        assert body["paid_at"] is not None
        assert body["payment_result"]["id"] == "pi_123"
        assert body["status"] == "Paid"

    def test_paying_twice_rejected(self, client, seller, buyer):
        order = self._order(client, seller, buyer)
        client.put(f"/api/orders/{order['id']}/pay", json={"id": "pi_1"}, headers=buyer[0])
        resp = client.put(f"/api/orders/{order['id']}/pay", json={"id": "pi_2"}, headers=buyer[0])
        assert resp.status_code == 400

    def test_only_buyer_pays(self, client, seller, buyer):
        order = self._order(client, seller, buyer)
        assert client.put(f"/api/orders/{order['id']}/pay", json={}, headers=seller[0]).status_code == 403

    def test_seller_marks_delivered(self, client, seller, buyer):
        order = self._order(client, seller, buyer)
        resp = client.put(f"/api/orders/{order['id']}/deliver", headers=seller[0])
        assert resp.status_code == 200
        assert resp.json()["is_delivered"] is True
        assert resp.json()["status"] == "Delivered"
        assert client.put(f"/api/orders/{order['id']}/deliver", headers=seller[0]).status_code == 400

    def test_buyer_cannot_mark_delivered(self, client, seller, buyer):
        order = self._order(client, seller, buyer)
        assert client.put(f"/api/orders/{order['id']}/deliver", headers=buyer[0]).status_code == 403

    def test_paying_after_delivery_keeps_delivered_status(self, client, seller, buyer):
        order = self._order(client, seller, buyer)
        client.put(f"/api/orders/{order['id']}/deliver", headers=seller[0])
        body = client.put(f"/api/orders/{order['id']}/pay", json={"id": "cod"}, headers=buyer[0]).json()
        assert body["is_paid"] is True
        assert body["status"] == "Delivered"

    def test_transition_on_missing_order_is_404(self, client, buyer):
        assert client.put(f"/api/orders/{ObjectId()}/pay", json={}, headers=buyer[0]).status_code == 404
