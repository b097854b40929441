"""
Quotation Platform - Calculation Models
Pydantic models for pricing, tax and line item calculations (Mexican pesos)
"""

from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field, validator
from enum import Enum


# ============================================================================
# CONSTANTS
# ============================================================================

DEFAULT_IVA_RATE = Decimal("0.16")
CURRENCY_DECIMAL_PLACES = 2
QUANTITY_DECIMAL_PLACES = 3
ROUNDING_TOLERANCE = Decimal("0.01")
MAX_PROFIT_MARGIN = Decimal("10")  # 1000%
MAX_TAX_RATE = Decimal("1")  # 100%


# ============================================================================
# ENUMS
# ============================================================================

class TaxType(str, Enum):
    """How a tax configuration contributes to a price"""
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


# ============================================================================
# INPUT MODELS
# ============================================================================

class TaxConfiguration(BaseModel):
    """Tax configuration (row of the taxes table)"""
    id: Optional[str] = Field(default=None, description="Tax configuration ID")
    name: str = Field(default="", description="Display name, e.g. 'IVA 16%'")
    type: TaxType = Field(..., description="percentage or fixed_amount")
    rate: Optional[Decimal] = Field(default=None, ge=0, description="Rate as fraction (0.16 = 16%)")
    amount: Optional[Decimal] = Field(default=None, ge=0, description="Fixed tax amount in pesos")
    is_default: bool = Field(default=False)
    is_active: bool = Field(default=True)

    @validator('rate', 'amount', pre=True)
    def float_through_str(cls, v):
        if isinstance(v, float):
            return str(v)
        return v


class LineItemInput(BaseModel):
    """Raw inputs for one quotation/order line"""
    quantity: Decimal = Field(..., description="Quantity (can be fractional, e.g. kg)")
    unit_price: Decimal = Field(..., description="Unit price snapshot")
    tax_rate: Decimal = Field(default=DEFAULT_IVA_RATE, description="Tax rate snapshot as fraction")

    @validator('quantity', 'unit_price', 'tax_rate', pre=True)
    def float_through_str(cls, v):
        """Floats go through str() so 0.1 stays 0.1"""
        if isinstance(v, float):
            return str(v)
        return v


# ============================================================================
# RESULT MODELS
# ============================================================================

class LineItemCalculation(BaseModel):
    """Calculated line item. Immutable once computed."""
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal
    subtotal: Decimal = Field(..., description="quantity * unit_price")
    tax_amount: Decimal = Field(..., description="subtotal * tax_rate")
    total: Decimal = Field(..., description="subtotal + tax_amount")

    class Config:
        frozen = True


class DocumentTotals(BaseModel):
    """Document-level totals"""
    subtotal: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    total: Decimal = Decimal("0")


class ProductPricing(BaseModel):
    """Catalog pricing chain: cost -> base -> public"""
    cost_price: Decimal
    profit_margin: Decimal
    base_price: Decimal
    public_price: Decimal
    tax_id: Optional[str]
    tax_included: bool
