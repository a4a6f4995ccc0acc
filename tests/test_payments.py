"""Stripe intent/session creation with the Stripe client patched out."""

from types import SimpleNamespace

import pytest
import stripe

from config import Settings
from errors import InvalidInput, ServerFault
from payments import StripeGateway, to_minor_units


def test_minor_units():
    assert to_minor_units(345.5) == 34550
    assert to_minor_units(0.1 + 0.2) == 30


def test_methods_listed(client):
    methods = client.get("/api/payment/methods").json()["methods"]
    assert [m["id"] for m in methods] == ["COD", "Stripe"]


class TestIntent:
    def test_creates_intent(self, client, buyer, monkeypatch):
        captured = {}

        def create(**kwargs):
            captured.update(kwargs)
            return SimpleNamespace(id="pi_123", client_secret="pi_123_secret")

        monkeypatch.setattr(stripe.PaymentIntent, "create", create)
        resp = client.post("/api/payment/create-stripe-intent", json={"amount": 19.99}, headers=buyer[0])
        assert resp.status_code == 200
        assert resp.json() == {"client_secret": "pi_123_secret", "payment_intent_id": "pi_123"}
        assert captured["amount"] == 1999
        assert captured["currency"] == "usd"
        assert captured["api_key"] == "sk_test_dummy"

    def test_stripe_error_is_generic_500(self, client, buyer, monkeypatch):
        def create(**kwargs):
            raise stripe.StripeError("card network down")

        monkeypatch.setattr(stripe.PaymentIntent, "create", create)
        resp = client.post("/api/payment/create-stripe-intent", json={"amount": 10}, headers=buyer[0])
        assert resp.status_code == 500
        assert resp.json()["detail"] == "Error creating payment intent"

    def test_non_positive_amount(self, client, buyer):
        resp = client.post("/api/payment/create-stripe-intent", json={"amount": 0}, headers=buyer[0])
        assert resp.status_code == 400

    def test_requires_auth(self, client):
        assert client.post("/api/payment/create-stripe-intent", json={"amount": 5}).status_code == 401


class TestSession:
    def test_creates_session_for_user_email(self, client, buyer, monkeypatch):
        captured = {}

        def create(**kwargs):
            captured.update(kwargs)
            return SimpleNamespace(id="cs_123", url="https://checkout.stripe.com/cs_123")

        monkeypatch.setattr(stripe.checkout.Session, "create", create)
        resp = client.post("/api/payment/create-stripe-session", json={"amount": 345}, headers=buyer[0])
        assert resp.status_code == 200
        assert resp.json()["session_id"] == "cs_123"
        assert captured["customer_email"] == "buyer@example.com"
        assert captured["line_items"][0]["price_data"]["unit_amount"] == 34500
        assert captured["line_items"][0]["price_data"]["currency"] == "inr"
        assert captured["success_url"].startswith("http://shop.test/order-confirmation/stripe-success")


class TestUnconfigured:
    def test_missing_key(self):
        gateway = StripeGateway(Settings())
        with pytest.raises(ServerFault):
            gateway.create_intent(10)

    def test_amount_checked(self):
        gateway = StripeGateway(Settings(stripe_secret_key="sk_test_dummy"))
        with pytest.raises(InvalidInput):
            gateway.create_session(-5)
