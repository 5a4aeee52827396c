"""
Pricing engine tests.

Verifies:
- B&W and color formulas, maintenance fee, 2-place rounding
- Duplicate page ids count once; copies multiply
- Invalid inputs raise PricingError
"""

from decimal import Decimal

import pytest

from printdesk.errors import ValidationError
from printdesk.schemas import PrintOptions
from printdesk.services.pricing_service import PricingError, price, price_page_count, quote


class TestPriceFormula:
    def test_black_and_white(self):
        b = price([1, 2, 3, 4, 5], color=False, copies=2)
        assert b.total_pages == 10
        assert b.bw_pages == 10
        assert b.color_pages == 0
        assert b.subtotal == Decimal("10.00")
        assert b.maintenance_fee == Decimal("2.00")
        assert b.total == Decimal("12.00")

    def test_color(self):
        b = price([1, 2, 3], color=True, copies=1)
        assert b.color_pages == 3
        assert b.bw_pages == 0
        assert b.subtotal == Decimal("6.00")
        assert b.maintenance_fee == Decimal("0.60")
        assert b.total == Decimal("6.60")

    def test_duplicates_count_once(self):
        assert price([1, 1, 2, 2, 2], color=False, copies=1).total_pages == 2

    def test_empty_selection_is_all_zero(self):
        b = price([], color=True, copies=3)
        assert b.total_pages == 0
        assert b.total == Decimal("0.00")

    def test_amounts_have_two_places(self):
        b = price_page_count(7, color=False, copies=3)
        assert b.maintenance_fee == Decimal("4.20")
        assert b.total.as_tuple().exponent == -2

    def test_deterministic(self):
        assert price([3, 1, 2], color=True, copies=2) == price([1, 2, 3], color=True, copies=2)

    def test_quote_uses_print_options(self):
        options = PrintOptions(color=True, double_sided=True, copies=2)
        assert quote([1, 2], options).total == Decimal("8.80")

    def test_to_dict_renders_strings(self):
        data = price([1], color=False, copies=1).to_dict()
        assert data["total"] == "1.20"
        assert data["maintenanceFee"] == "0.20"


class TestInvalidInputs:
    @pytest.mark.parametrize("copies", [0, -1])
    def test_copies_below_one(self, copies):
        with pytest.raises(PricingError):
            price([1], color=False, copies=copies)

    def test_negative_page_id(self):
        with pytest.raises(PricingError):
            price([1, -2], color=False, copies=1)

    def test_print_options_reject_zero_copies(self):
        with pytest.raises(ValidationError):
            PrintOptions(copies=0)

    def test_print_options_from_camel_case(self):
        options = PrintOptions.from_payload({"color": "true", "doubleSided": False, "copies": "3"})
        assert options == PrintOptions(color=True, double_sided=False, copies=3)
