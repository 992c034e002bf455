"""Tests for checkout price arithmetic."""

from decimal import Decimal

from services.pricing import calculate_prices, items_total, totals_match


class TestCalculatePrices:
    def test_two_items_with_shipping(self):
        prices = calculate_prices([(25.00, 2)], shipping_price=5.00)
        assert prices.items_price == Decimal("50.00")
        assert prices.tax_price == Decimal("3.50")
        assert prices.shipping_price == Decimal("5.00")
        assert prices.total_price == Decimal("58.50")
        assert prices.to_minor_units() == 5850

    def test_default_shipping_when_not_given(self):
        prices = calculate_prices([(10.00, 1)])
        assert prices.shipping_price == Decimal("10.00")
        assert prices.total_price == Decimal("20.70")

    def test_zero_shipping_is_passed_through(self):
        prices = calculate_prices([(10.00, 1)], shipping_price=0)
        assert prices.shipping_price == Decimal("0.00")
        assert prices.total_price == Decimal("10.70")

    def test_tax_rounds_half_up_to_cents(self):
        # 0.35 * 0.07 = 0.0245 -> 0.02 ; 0.50 * 0.07 = 0.035 -> 0.04
        assert calculate_prices([(0.35, 1)], shipping_price=0).tax_price == Decimal("0.02")
        assert calculate_prices([(0.50, 1)], shipping_price=0).tax_price == Decimal("0.04")

    def test_total_is_sum_of_parts(self):
        prices = calculate_prices([(19.99, 3), (4.05, 7)], shipping_price=7.25)
        assert prices.total_price == prices.items_price + prices.tax_price + prices.shipping_price

    def test_float_noise_does_not_change_minor_units(self):
        prices = calculate_prices([(0.1, 3)], shipping_price=0.2)
        assert prices.items_price == Decimal("0.30")
        assert prices.to_minor_units() == 52

    def test_as_floats(self):
        assert calculate_prices([(25.00, 2)], shipping_price=5.00).as_floats() == {
            "items_price": 50.0,
            "tax_price": 3.5,
            "shipping_price": 5.0,
            "total_price": 58.5,
        }


def test_items_total_empty():
    assert items_total([]) == Decimal("0.00")


def test_totals_match_tolerates_one_cent():
    assert totals_match(50, 3.5, 5, 58.5)
    assert totals_match(50, 3.5, 5, 58.51)
    assert not totals_match(50, 3.5, 5, 60)
