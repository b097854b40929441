"""
Pricing and Tax Calculation Engine

Pure functions for every monetary calculation of the quotation system:
- Currency rounding (banker's rounding, 2 decimal places)
- Catalog pricing chain: cost price -> base price -> public price
- Tax amounts for percentage and fixed-amount tax configurations
- Line item and document totals

All amounts are Decimal. Floats are converted through str() so the literal
the caller wrote is what gets rounded (1.005 -> 1.00, not 1.0049999...).

No database access here. The engine is the single source of truth for
rounding semantics; services import it, never the other way around.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN
from collections.abc import Mapping
from typing import Any, List, Optional, Sequence, Union

from pydantic import ValidationError

from calculation_models import (
    TaxConfiguration,
    TaxType,
    LineItemInput,
    LineItemCalculation,
    DocumentTotals,
    ProductPricing,
    DEFAULT_IVA_RATE,
    ROUNDING_TOLERANCE,
)


Number = Union[Decimal, int, float, str]

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


# ============================================================================
# ERRORS
# ============================================================================

class CalculationError(Exception):
    """Base error for the calculation engine."""

    code = "CALCULATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class InvalidAmount(CalculationError):
    """Amount is not a finite real number."""
    code = "INVALID_AMOUNT"


class InvalidInput(CalculationError):
    """Argument is out of domain (negative money, wrong container type)."""
    code = "INVALID_INPUT"


# ============================================================================
# HELPERS
# ============================================================================

def to_decimal(value: Any, field: Optional[str] = None) -> Decimal:
    """
    Convert a number to a finite Decimal.

    Accepts Decimal, int, float and numeric strings (PostgREST may return
    numeric columns as strings). Booleans and None are rejected.

    Raises:
        InvalidAmount: if the value is not a finite real number
    """
    if value is None or isinstance(value, bool):
        raise InvalidAmount("Amount must be a valid number", field)

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, (float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise InvalidAmount("Amount must be a valid number", field)
    else:
        raise InvalidAmount("Amount must be a valid number", field)

    if not result.is_finite():
        raise InvalidAmount("Amount must be a finite number", field)
    return result


def _non_negative(value: Any, field: str, label: str) -> Decimal:
    amount = to_decimal(value, field)
    if amount < 0:
        raise InvalidInput(f"{label} cannot be negative", field)
    return amount


def _as_tax_config(tax_config: Union[TaxConfiguration, Mapping]) -> TaxConfiguration:
    if isinstance(tax_config, TaxConfiguration):
        return tax_config
    if not isinstance(tax_config, Mapping):
        raise InvalidInput("Tax configuration must be a mapping", "tax_config")
    try:
        return TaxConfiguration(**tax_config)
    except ValidationError as e:
        raise InvalidInput(f"Invalid tax configuration: {e.errors()[0].get('msg')}", "tax_config")


def _is_inactive(tax_config: Union[TaxConfiguration, Mapping]) -> bool:
    if isinstance(tax_config, TaxConfiguration):
        return not tax_config.is_active
    return isinstance(tax_config, Mapping) and tax_config.get("is_active", True) is False


# ============================================================================
# ROUNDING
# ============================================================================

def round_to_currency(amount: Number) -> Decimal:
    """
    Round amount to peso precision (2 decimals) with round-half-to-even.

    Examples:
        >>> round_to_currency(1.005)
        Decimal('1.00')
        >>> round_to_currency(1.015)
        Decimal('1.02')

    Raises:
        InvalidAmount: if amount is NaN, infinite or not a number
    """
    return to_decimal(amount, "amount").quantize(CENTS, rounding=ROUND_HALF_EVEN)


def is_valid_currency_amount(amount: Any) -> bool:
    """True if amount is a finite number already at peso precision."""
    try:
        value = to_decimal(amount)
    except InvalidAmount:
        return False
    return value == value.quantize(CENTS, rounding=ROUND_HALF_EVEN)


# ============================================================================
# CATALOG PRICING
# ============================================================================

def calculate_base_price(cost_price: Number, profit_margin: Number) -> Decimal:
    """
    Base price = cost_price * (1 + profit_margin), rounded.

    Args:
        cost_price: Cost in pesos (>= 0)
        profit_margin: Margin as fraction, 0.30 = 30% (>= 0)
    """
    cost = _non_negative(cost_price, "cost_price", "Cost price")
    margin = _non_negative(profit_margin, "profit_margin", "Profit margin")
    return round_to_currency(cost * (1 + margin))


def calculate_tax_amount(
    base_amount: Number,
    tax_config: Union[TaxConfiguration, Mapping]
) -> Decimal:
    """
    Tax contributed by a tax configuration on base_amount.

    Inactive configurations always contribute zero. Fixed-amount taxes ignore
    the base amount.
    """
    base = _non_negative(base_amount, "base_amount", "Base amount")

    if _is_inactive(tax_config):
        return ZERO

    config = _as_tax_config(tax_config)

    if config.type == TaxType.PERCENTAGE:
        rate = to_decimal(config.rate, "rate") if config.rate is not None else Decimal("0")
        return round_to_currency(base * rate)

    amount = to_decimal(config.amount, "amount") if config.amount is not None else Decimal("0")
    return round_to_currency(amount)


def calculate_public_price(
    base_price: Number,
    tax_config: Union[TaxConfiguration, Mapping],
    tax_included: bool
) -> Decimal:
    """Public price: base price as-is when tax is included, else base + tax."""
    base = _non_negative(base_price, "base_price", "Base price")

    if tax_included:
        return base

    tax_amount = calculate_tax_amount(base, tax_config)
    return round_to_currency(base + tax_amount)


def calculate_product_pricing(
    cost_price: Number,
    profit_margin: Number,
    tax_config: Union[TaxConfiguration, Mapping],
    tax_included: bool = False
) -> ProductPricing:
    """Full catalog pricing record for a product."""
    base_price = calculate_base_price(cost_price, profit_margin)
    public_price = calculate_public_price(base_price, tax_config, tax_included)
    if isinstance(tax_config, TaxConfiguration):
        tax_id = tax_config.id
    else:
        tax_id = tax_config.get("id") if isinstance(tax_config, Mapping) else None

    return ProductPricing(
        cost_price=round_to_currency(cost_price),
        profit_margin=to_decimal(profit_margin, "profit_margin"),
        base_price=base_price,
        public_price=public_price,
        tax_id=tax_id,
        tax_included=tax_included,
    )


def create_default_tax_config() -> TaxConfiguration:
    """Default Mexican tax configuration (IVA 16%)."""
    return TaxConfiguration(
        id="default-iva-16",
        name="IVA 16%",
        type=TaxType.PERCENTAGE,
        rate=DEFAULT_IVA_RATE,
        is_default=True,
        is_active=True,
    )


# ============================================================================
# LINE ITEMS AND DOCUMENT TOTALS
# ============================================================================

def calculate_line_item(
    quantity: Number,
    unit_price: Number,
    tax_rate: Number
) -> LineItemCalculation:
    """
    Calculate subtotal, tax and total for one line.

    subtotal = round(quantity * unit_price)
    tax_amount = round(subtotal * tax_rate)
    total = round(subtotal + tax_amount)

    Example:
        >>> item = calculate_line_item(5, 100, 0.16)
        >>> (item.subtotal, item.tax_amount, item.total)
        (Decimal('500.00'), Decimal('80.00'), Decimal('580.00'))
    """
    qty = _non_negative(quantity, "quantity", "Quantity")
    price = _non_negative(unit_price, "unit_price", "Unit price")
    rate = _non_negative(tax_rate, "tax_rate", "Tax rate")

    subtotal = round_to_currency(qty * price)
    tax_amount = round_to_currency(subtotal * rate)
    total = round_to_currency(subtotal + tax_amount)

    return LineItemCalculation(
        quantity=qty,
        unit_price=price,
        tax_rate=rate,
        subtotal=subtotal,
        tax_amount=tax_amount,
        total=total,
    )


def calculate_multiple_line_items(
    items: Sequence[Union[LineItemInput, Mapping]]
) -> List[LineItemCalculation]:
    """Batch version of calculate_line_item."""
    if not isinstance(items, (list, tuple)):
        raise InvalidInput("Line items must be a list", "items")

    results = []
    for item in items:
        if not isinstance(item, LineItemInput):
            item = LineItemInput(**item)
        results.append(calculate_line_item(item.quantity, item.unit_price, item.tax_rate))
    return results


def calculate_document_totals(
    line_items: Sequence[Union[LineItemCalculation, Mapping]]
) -> DocumentTotals:
    """
    Sum line items into document totals. Empty input yields zeros.

    Accepts LineItemCalculation models or row dicts with subtotal/tax_amount.

    Raises:
        InvalidInput: if line_items is not a list or tuple
    """
    if not isinstance(line_items, (list, tuple)):
        raise InvalidInput("Line items must be a list", "line_items")

    subtotal = Decimal("0")
    tax_amount = Decimal("0")
    for item in line_items:
        if isinstance(item, Mapping):
            subtotal += to_decimal(item.get("subtotal", 0), "subtotal")
            tax_amount += to_decimal(item.get("tax_amount", 0), "tax_amount")
        else:
            subtotal += to_decimal(item.subtotal, "subtotal")
            tax_amount += to_decimal(item.tax_amount, "tax_amount")

    subtotal = round_to_currency(subtotal)
    tax_amount = round_to_currency(tax_amount)

    return DocumentTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        total=round_to_currency(subtotal + tax_amount),
    )


def validate_document_totals(totals: Union[DocumentTotals, Mapping]) -> bool:
    """
    Check total == subtotal + tax_amount within one cent.

    Never raises; malformed totals are simply invalid.
    """
    try:
        if isinstance(totals, Mapping):
            subtotal = to_decimal(totals.get("subtotal"))
            tax_amount = to_decimal(totals.get("tax_amount"))
            total = to_decimal(totals.get("total"))
        else:
            subtotal = to_decimal(totals.subtotal)
            tax_amount = to_decimal(totals.tax_amount)
            total = to_decimal(totals.total)
    except (CalculationError, AttributeError):
        return False

    return abs(subtotal + tax_amount - total) <= ROUNDING_TOLERANCE
