"""Order pricing: 18% tax, flat shipping under the free-shipping threshold."""

from pricing import calculate_pricing, items_subtotal
from schemas import OrderItem


class TestCalculatePricing:
    def test_free_shipping_above_threshold(self):
        p = calculate_pricing(1000)
        assert p.items_price == 1000
        assert p.tax_price == 180.00
        assert p.shipping_price == 0
        assert p.total_price == 1180.00

    def test_flat_shipping_below_threshold(self):
        p = calculate_pricing(100)
        assert p.tax_price == 18.00
        assert p.shipping_price == 50
        assert p.total_price == 168.00

    def test_threshold_itself_is_not_free(self):
        """Shipping is free only strictly above 500."""
        assert calculate_pricing(500).shipping_price == 50
        assert calculate_pricing(500.01).shipping_price == 0

    def test_as_dict(self):
        assert calculate_pricing(100).as_dict() == {
            "items_price": 100,
            "tax_price": 18.0,
            "shipping_price": 50.0,
            "total_price": 168.0,
        }

    def test_tax_rounds_half_up(self):
        # 0.25 * 0.18 = 0.045 -> 0.05
        assert calculate_pricing(0.25).tax_price == 0.05

    def test_custom_rates(self):
        p = calculate_pricing(200, tax_rate=0.1, free_shipping_threshold=100, shipping_fee=20)
        assert p.tax_price == 20
        assert p.shipping_price == 0
        assert p.total_price == 220


def test_items_subtotal():
    items = [
        OrderItem(product="a" * 24, name="A", qty=2, price=10.5),
        OrderItem(product="b" * 24, name="B", qty=1, price=4.25),
    ]
    assert items_subtotal(items) == 25.25
