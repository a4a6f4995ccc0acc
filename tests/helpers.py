"""Request helpers shared by the API tests."""

CHAIR_IMAGE = "https://res.cloudinary.com/demo/image/upload/v1700000000/shop/chair.jpg"

ADDRESS = {
    "address": "12 MG Road",
    "city": "Bengaluru",
    "state": "KA",
    "postal_code": "560001",
    "country": "India",
    "phone_number": "9876543210",
}


def register(client, name, email=None):
    email = email or f"{name.lower()}@example.com"
    resp = client.post("/api/auth/register", json={"name": name, "email": email, "password": "secret123"})
    assert resp.status_code == 201, resp.text
    body = resp.json()
    return {"Authorization": f"Bearer {body['token']}"}, body["user"]["id"]


def make_product(client, headers, **overrides):
    payload = {
        "name": "Teak Chair",
        "description": "Solid teak dining chair",
        "price": 250.0,
        "image": CHAIR_IMAGE,
        "category": "Furniture",
        "brand": "WoodWorks",
        "count_in_stock": 10,
    }
    payload.update(overrides)
    resp = client.post("/api/admin/products", json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def order_line(product, qty=1):
    return {
        "product": product["id"],
        "name": product["name"],
        "qty": qty,
        "image": product.get("image"),
        "price": product["price"],
    }


def place_order(client, headers, lines, payment_method="COD"):
    return client.post(
        "/api/orders",
        json={"order_items": lines, "shipping_address": ADDRESS, "payment_method": payment_method},
        headers=headers,
    )
