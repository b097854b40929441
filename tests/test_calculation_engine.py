"""
Tests for calculation_engine.py

Tests the pricing and tax engine:
- Currency rounding (half-to-even)
- Base price, tax amount and public price
- Line items and document totals
- Totals consistency check
"""

import pytest
from decimal import Decimal
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from calculation_engine import (
    CalculationError,
    InvalidAmount,
    InvalidInput,
    round_to_currency,
    is_valid_currency_amount,
    calculate_base_price,
    calculate_tax_amount,
    calculate_public_price,
    calculate_product_pricing,
    create_default_tax_config,
    calculate_line_item,
    calculate_multiple_line_items,
    calculate_document_totals,
    validate_document_totals,
)
from calculation_models import (
    TaxConfiguration,
    TaxType,
    LineItemInput,
    DocumentTotals,
    DEFAULT_IVA_RATE,
)


IVA = {"type": "percentage", "rate": 0.16, "is_active": True}


# =============================================================================
# ROUNDING
# =============================================================================

class TestRoundToCurrency:
    """Tests for round_to_currency."""

    @pytest.mark.parametrize("amount,expected", [
        (100.125, "100.12"),
        (100.135, "100.14"),
        (1.005, "1.00"),
        (1.015, "1.02"),
        (2.225, "2.22"),
        (2.235, "2.24"),
    ])
    def test_half_to_even_table(self, amount, expected):
        assert round_to_currency(amount) == Decimal(expected)

    @pytest.mark.parametrize("amount", [0, 1, 0.1, 19.999, -3.455, "116.00", Decimal("7.125")])
    def test_idempotent(self, amount):
        once = round_to_currency(amount)
        assert round_to_currency(once) == once

    def test_returns_two_decimal_places(self):
        assert str(round_to_currency(5)) == "5.00"

    def test_numeric_string_accepted(self):
        """PostgREST numeric columns may arrive as strings."""
        assert round_to_currency("10.505") == Decimal("10.50")

    @pytest.mark.parametrize("amount", [float("nan"), float("inf"), float("-inf"), None, True, "abc", [1]])
    def test_invalid_amount_raises(self, amount):
        with pytest.raises(InvalidAmount):
            round_to_currency(amount)

    def test_invalid_amount_is_calculation_error(self):
        with pytest.raises(CalculationError) as exc_info:
            round_to_currency(float("nan"))
        assert exc_info.value.code == "INVALID_AMOUNT"


class TestIsValidCurrencyAmount:

    def test_two_decimals_valid(self):
        assert is_valid_currency_amount(Decimal("10.50")) is True
        assert is_valid_currency_amount(3) is True

    def test_three_decimals_invalid(self):
        assert is_valid_currency_amount(10.505) is False

    def test_non_numbers_invalid(self):
        assert is_valid_currency_amount(None) is False
        assert is_valid_currency_amount(float("nan")) is False


# =============================================================================
# CATALOG PRICING
# =============================================================================

class TestCalculateBasePrice:

    def test_applies_margin(self):
        assert calculate_base_price(100, 0.30) == Decimal("130.00")

    def test_zero_margin(self):
        assert calculate_base_price(Decimal("80.50"), 0) == Decimal("80.50")

    def test_rounds_result(self):
        # 33.33 * 1.15 = 38.3295
        assert calculate_base_price(33.33, 0.15) == Decimal("38.33")

    def test_negative_cost_raises(self):
        with pytest.raises(InvalidInput) as exc_info:
            calculate_base_price(-1, 0.1)
        assert exc_info.value.field == "cost_price"

    def test_negative_margin_raises(self):
        with pytest.raises(InvalidInput):
            calculate_base_price(10, -0.1)


class TestCalculateTaxAmount:

    def test_percentage(self):
        assert calculate_tax_amount(100, IVA) == Decimal("16.00")

    def test_percentage_rounds(self):
        # 33.33 * 0.16 = 5.3328
        assert calculate_tax_amount(33.33, IVA) == Decimal("5.33")

    def test_fixed_amount_ignores_base(self):
        config = {"type": "fixed_amount", "amount": 12.5, "is_active": True}
        assert calculate_tax_amount(100, config) == Decimal("12.50")
        assert calculate_tax_amount(0, config) == Decimal("12.50")

    @pytest.mark.parametrize("config", [
        {"type": "percentage", "rate": 0.16, "is_active": False},
        {"type": "percentage", "rate": 1, "is_active": False},
        {"type": "fixed_amount", "amount": 50, "is_active": False},
    ])
    def test_inactive_is_zero(self, config):
        assert calculate_tax_amount(100, config) == Decimal("0")

    def test_missing_rate_is_zero(self):
        assert calculate_tax_amount(100, {"type": "percentage"}) == Decimal("0")

    def test_accepts_model(self):
        config = TaxConfiguration(id="t1", name="IEPS 8%", type=TaxType.PERCENTAGE, rate=Decimal("0.08"))
        assert calculate_tax_amount(250, config) == Decimal("20.00")

    def test_negative_base_raises(self):
        with pytest.raises(InvalidInput):
            calculate_tax_amount(-10, IVA)

    def test_inactive_without_type_is_zero(self):
        assert calculate_tax_amount(100, {"is_active": False, "rate": 0.16}) == Decimal("0")

    @pytest.mark.parametrize("config", [
        {"type": "percentage", "rate": "abc", "is_active": True},
        {"type": "percentage", "rate": float("nan"), "is_active": True},
        {"type": "percentage", "rate": -0.16, "is_active": True},
        {"rate": 0.16, "is_active": True},
        {"type": "vat", "rate": 0.16},
    ])
    def test_malformed_config_raises_invalid_input(self, config):
        with pytest.raises(InvalidInput) as exc_info:
            calculate_tax_amount(100, config)
        assert exc_info.value.field == "tax_config"

    def test_non_mapping_config_raises(self):
        with pytest.raises(InvalidInput):
            calculate_tax_amount(100, 0.16)


class TestCalculatePublicPrice:

    def test_tax_added(self):
        assert calculate_public_price(100, IVA, tax_included=False) == Decimal("116.00")

    def test_tax_included_returns_base(self):
        assert calculate_public_price(Decimal("116.00"), IVA, tax_included=True) == Decimal("116.00")

    def test_inactive_tax(self):
        config = dict(IVA, is_active=False)
        assert calculate_public_price(100, config, tax_included=False) == Decimal("100.00")


class TestCalculateProductPricing:

    def test_full_chain(self):
        pricing = calculate_product_pricing(100, 0.30, create_default_tax_config())

        assert pricing.cost_price == Decimal("100.00")
        assert pricing.base_price == Decimal("130.00")
        assert pricing.public_price == Decimal("150.80")
        assert pricing.tax_id == "default-iva-16"
        assert pricing.tax_included is False

    def test_tax_included(self):
        pricing = calculate_product_pricing(100, 0.30, IVA, tax_included=True)
        assert pricing.public_price == pricing.base_price
        assert pricing.tax_id is None


class TestDefaultTaxConfig:

    def test_is_iva_16(self):
        config = create_default_tax_config()
        assert config.type == TaxType.PERCENTAGE
        assert config.rate == DEFAULT_IVA_RATE
        assert config.is_default is True
        assert config.is_active is True


# =============================================================================
# LINE ITEMS AND TOTALS
# =============================================================================

class TestCalculateLineItem:

    def test_reference_example(self):
        item = calculate_line_item(5, 100, 0.16)

        assert item.subtotal == Decimal("500.00")
        assert item.tax_amount == Decimal("80.00")
        assert item.total == Decimal("580.00")

    def test_fractional_quantity(self):
        # 2.5 kg * 19.99 = 49.975 -> 49.98 (8 is even)
        item = calculate_line_item(2.5, 19.99, 0)
        assert item.subtotal == Decimal("49.98")
        assert item.tax_amount == Decimal("0.00")
        assert item.total == Decimal("49.98")

    def test_total_is_subtotal_plus_tax(self):
        item = calculate_line_item(3, 33.33, 0.16)
        assert item.total == item.subtotal + item.tax_amount

    def test_result_is_frozen(self):
        item = calculate_line_item(1, 10, 0.16)
        with pytest.raises(Exception):
            item.total = Decimal("0")

    @pytest.mark.parametrize("args", [(-1, 10, 0.16), (1, -10, 0.16), (1, 10, -0.16)])
    def test_negative_inputs_raise(self, args):
        with pytest.raises(InvalidInput):
            calculate_line_item(*args)

    def test_non_finite_raises(self):
        with pytest.raises(InvalidAmount):
            calculate_line_item(float("inf"), 10, 0.16)


class TestCalculateMultipleLineItems:

    def test_batch(self):
        items = calculate_multiple_line_items([
            {"quantity": 1, "unit_price": 100},
            LineItemInput(quantity=Decimal("2"), unit_price=Decimal("50"), tax_rate=Decimal("0")),
        ])

        assert [i.total for i in items] == [Decimal("116.00"), Decimal("100.00")]

    def test_not_a_list_raises(self):
        with pytest.raises(InvalidInput):
            calculate_multiple_line_items({"quantity": 1, "unit_price": 1})


class TestCalculateDocumentTotals:

    def test_empty_is_zero(self):
        totals = calculate_document_totals([])

        assert totals.subtotal == 0
        assert totals.tax_amount == 0
        assert totals.total == 0

    def test_sums_line_items(self):
        totals = calculate_document_totals([
            calculate_line_item(5, 100, 0.16),
            calculate_line_item(1, 100, 0.16),
        ])

        assert totals.subtotal == Decimal("600.00")
        assert totals.tax_amount == Decimal("96.00")
        assert totals.total == Decimal("696.00")

    def test_accepts_row_dicts(self):
        totals = calculate_document_totals([
            {"subtotal": "100.00", "tax_amount": "16.00"},
            {"subtotal": 0.1, "tax_amount": 0.2},
        ])
        assert totals.total == Decimal("116.30")

    @pytest.mark.parametrize("rows", [
        [(1, 0.01, 0.16)],
        [(3, 33.33, 0.16), (7, 1.11, 0.08)],
        [(2.5, 19.99, 0.16), (1, 0.05, 0.16), (12, 3.333, 0)],
    ])
    def test_total_matches_within_tolerance(self, rows):
        totals = calculate_document_totals([calculate_line_item(*row) for row in rows])
        assert abs(totals.total - (totals.subtotal + totals.tax_amount)) <= Decimal("0.01")

    def test_not_a_list_raises(self):
        with pytest.raises(InvalidInput):
            calculate_document_totals("items")


class TestValidateDocumentTotals:

    def test_consistent(self):
        assert validate_document_totals(DocumentTotals(
            subtotal=Decimal("100"), tax_amount=Decimal("16"), total=Decimal("116")
        )) is True

    def test_within_one_cent(self):
        assert validate_document_totals({"subtotal": 100, "tax_amount": 16, "total": 116.01}) is True

    def test_off_by_more_than_one_cent(self):
        assert validate_document_totals({"subtotal": 100, "tax_amount": 16, "total": 116.02}) is False

    def test_malformed_never_raises(self):
        assert validate_document_totals({"subtotal": None}) is False
        assert validate_document_totals(object()) is False
