"""
Stripe payment integration.

The gateway only creates intents/sessions for the client to complete; the
order itself is marked paid through ``PUT /api/orders/{id}/pay``.
"""
from typing import Any, Dict, List, Optional

import stripe

from config import Settings
from errors import InvalidInput, ServerFault
from logger import get_logger

logger = get_logger("payments")

PAYMENT_METHODS: List[Dict[str, Any]] = [
    {
        "id": "COD",
        "name": "Cash on Delivery",
        "description": "Pay when you receive your order",
    },
    {
        "id": "Stripe",
        "name": "Online Payment (Credit/Debit Cards)",
        "description": "Pay securely with Visa, Mastercard, American Express, and RuPay cards",
        "supported_methods": [
            "Credit Cards (Visa, Mastercard, American Express)",
            "Debit Cards (Visa, Mastercard, RuPay)",
            "International Cards (Visa, Mastercard, Amex)",
        ],
    },
]


def to_minor_units(amount: float) -> int:
    """Stripe expects amounts in the smallest currency unit (cents, paise)."""
    return int(round(amount * 100))


class StripeGateway:
    def __init__(self, settings: Settings):
        self.api_key = settings.stripe_secret_key
        self.client_url = settings.client_url.rstrip("/")

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _check(self, amount: float) -> None:
        if not self.enabled:
            logger.error("STRIPE_SECRET_KEY not set; payment request rejected")
            raise ServerFault("Payments are not configured")
        if amount is None or amount <= 0:
            raise InvalidInput("Amount must be greater than 0")

    def create_intent(self, amount: float, currency: str = "usd") -> Dict[str, str]:
        self._check(amount)
        try:
            intent = stripe.PaymentIntent.create(
                amount=to_minor_units(amount),
                currency=currency,
                metadata={"integration_check": "accept_a_payment"},
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            logger.error("Stripe payment intent error: %s", e)
            raise ServerFault("Error creating payment intent")
        return {"client_secret": intent.client_secret, "payment_intent_id": intent.id}

    def create_session(self, amount: float, currency: str = "inr", customer_email: Optional[str] = None) -> Dict[str, str]:
        self._check(amount)
        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                payment_method_types=["card"],
                line_items=[{
                    "price_data": {
                        "currency": currency,
                        "product_data": {
                            "name": "Multi Vendor Shop Order",
                            "description": "Secure payment via Credit/Debit Cards",
                        },
                        "unit_amount": to_minor_units(amount),
                    },
                    "quantity": 1,
                }],
                payment_method_options={"card": {"request_three_d_secure": "automatic"}},
                customer_email=customer_email,
                billing_address_collection="required",
                success_url=self.client_url + "/order-confirmation/stripe-success?session_id={CHECKOUT_SESSION_ID}",
                cancel_url=self.client_url + "/checkout",
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            logger.error("Stripe session error: %s", e)
            raise ServerFault("Error creating Stripe session")
        return {"session_id": session.id, "url": session.url}

    @staticmethod
    def methods() -> List[Dict[str, Any]]:
        return PAYMENT_METHODS
