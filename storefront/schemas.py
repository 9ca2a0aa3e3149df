"""Pydantic schemas for API request / response validation.

JSON keys are camelCase on the wire; snake_case is accepted on input.
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated, Literal, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

DONATION_FREQUENCIES = ("one-time", "monthly", "quarterly", "annually")
SUPPORTED_CURRENCIES = ("GHS", "USD", "EUR", "GBP")
VARIATION_TYPES = ("color", "size", "style")
AVAILABILITY = ("in_stock", "low_stock", "out_of_stock", "preorder")

CENT = Decimal("0.01")
# Stripe's per-charge ceiling in major units
MAX_AMOUNT = Decimal("999999.99")


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _email(value: str) -> str:
    try:
        return validate_email((value or "").strip(), check_deliverability=False).normalized
    except EmailNotValidError:
        raise ValueError("Valid email address is required")


def _currency(value: str) -> str:
    value = (value or "").strip().upper()
    if value not in SUPPORTED_CURRENCIES:
        raise ValueError("Invalid currency")
    return value


def _charge_amount(value: Decimal, message: str) -> Decimal:
    """Round to cents; the result must be chargeable."""
    value = value.quantize(CENT, rounding=ROUND_HALF_UP)
    if not CENT <= value <= MAX_AMOUNT:
        raise ValueError(message)
    return value


def _price(value: Decimal) -> Decimal:
    value = value.quantize(CENT, rounding=ROUND_HALF_UP)
    if value < 0 or value > MAX_AMOUNT:
        raise ValueError(f"Price must be between 0 and {MAX_AMOUNT}")
    return value


def _inventory(value: int) -> int:
    if value < 0:
        raise ValueError("Inventory must not be negative")
    return value


def _availability(value: str) -> str:
    if value not in AVAILABILITY:
        raise ValueError("Invalid availability")
    return value


Email = Annotated[str, AfterValidator(_email)]
Currency = Annotated[str, AfterValidator(_currency)]
Price = Annotated[Decimal, AfterValidator(_price)]
Inventory = Annotated[int, AfterValidator(_inventory)]
Availability = Annotated[str, AfterValidator(_availability)]


# ── Request models ──────────────────────────────────────────────────────────


class LoginIn(CamelModel):
    email: str
    password: str


class ShippingAddress(CamelModel):
    line1: str
    line2: Optional[str] = None
    city: str
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: str = "GH"


class OrderItemIn(CamelModel):
    product_id: int
    product_name: Optional[str] = None
    quantity: int = Field(default=1)
    price: Optional[Decimal] = None
    selected_variations: dict[str, str] = Field(default_factory=dict)

    @field_validator("quantity")
    @classmethod
    def _positive_quantity(cls, v):
        if v < 1:
            raise ValueError("Item quantity must be at least 1")
        return v


class OrderPaymentIn(CamelModel):
    items: list[OrderItemIn]
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    shipping_address: Optional[ShippingAddress] = None
    total_amount: Optional[Decimal] = None
    currency: Currency = "GHS"

    @field_validator("items")
    @classmethod
    def _non_empty(cls, v):
        if not v:
            raise ValueError("Order must contain at least one item")
        return v

    @field_validator("total_amount")
    @classmethod
    def _total(cls, v):
        if v is None:
            return v
        return _charge_amount(v, "Invalid order amount")

    @field_validator("customer_email")
    @classmethod
    def _customer_email(cls, v):
        # optional until the customer fills in checkout details
        return _email(v) if v else v


class DonationPaymentIn(CamelModel):
    amount: Decimal
    currency: Currency = "GHS"
    donor_email: Email
    donor_name: str
    frequency: str = "one-time"
    message: Optional[str] = None
    anonymous: bool = False

    @field_validator("amount")
    @classmethod
    def _amount(cls, v):
        return _charge_amount(v, "Invalid donation amount")

    @field_validator("donor_name")
    @classmethod
    def _name(cls, v):
        if not v or not v.strip():
            raise ValueError("Donor name is required")
        return v.strip()

    @field_validator("frequency")
    @classmethod
    def _frequency(cls, v):
        v = v or "one-time"
        if v not in DONATION_FREQUENCIES:
            raise ValueError("Invalid donation frequency")
        return v

    @field_validator("message")
    @classmethod
    def _message(cls, v):
        return (v.strip() or None) if v else None


class CustomerInfoIn(CamelModel):
    customer_email: Email
    customer_name: str
    shipping_address: Optional[ShippingAddress] = None


class VariationOption(CamelModel):
    value: str
    label: str
    price_modifier: Optional[float] = None
    inventory: Optional[int] = None
    images: Optional[list[str]] = None

    @field_validator("value", "label")
    @classmethod
    def _not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("Variation option must have a valid value and label")
        return v

    @field_validator("inventory")
    @classmethod
    def _inventory(cls, v):
        if v is not None and v < 0:
            raise ValueError("Variation option inventory must be a non-negative number")
        return v


class ProductVariation(CamelModel):
    type: str
    name: str
    options: list[VariationOption]

    @field_validator("type")
    @classmethod
    def _type(cls, v):
        if v not in VARIATION_TYPES:
            raise ValueError(f"Invalid variation type: {v}. Must be 'color', 'size', or 'style'.")
        return v

    @field_validator("name")
    @classmethod
    def _name(cls, v):
        if not v or not v.strip():
            raise ValueError("Variation must have a valid name")
        return v

    @field_validator("options")
    @classmethod
    def _options(cls, v):
        if not v:
            raise ValueError("Variation must have at least one option")
        return v


class ProductIn(CamelModel):
    slug: str
    name: str
    category: str
    price: Price
    currency: Currency = "GHS"
    tags: list[str] = Field(default_factory=list)
    impact_statement: Optional[str] = None
    description: str
    images: list[str] = Field(default_factory=list)
    availability: Availability = "in_stock"
    inventory: Inventory = 0
    variations: list[ProductVariation] = Field(default_factory=list)


class ProductUpdate(CamelModel):
    """Partial update; only the keys present in the request are written."""

    slug: Optional[str] = None
    name: Optional[str] = None
    category: Optional[str] = None
    price: Optional[Price] = None
    currency: Optional[Currency] = None
    tags: Optional[list[str]] = None
    impact_statement: Optional[str] = None
    description: Optional[str] = None
    images: Optional[list[str]] = None
    availability: Optional[Availability] = None
    inventory: Optional[Inventory] = None
    variations: Optional[list[ProductVariation]] = None

    @field_validator(
        "slug", "name", "category", "price", "currency", "tags",
        "description", "images", "availability", "inventory", "variations",
    )
    @classmethod
    def _not_null(cls, v, info: ValidationInfo):
        if v is None:
            raise ValueError(f"{to_camel(info.field_name)} cannot be null")
        return v


class OrderUpdateIn(CamelModel):
    status: Literal["unfulfilled", "processing", "shipped", "delivered"]
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[str] = None


class EmailTestIn(CamelModel):
    email: Email


# ── Response models ─────────────────────────────────────────────────────────


class AdminOut(CamelModel):
    id: int
    email: str
    name: str
    created_at: datetime


class AdminEnvelope(CamelModel):
    admin: AdminOut


class ProductOut(CamelModel):
    id: int
    slug: str
    name: str
    category: str
    price: float
    currency: str
    tags: list[str]
    impact_statement: Optional[str] = None
    description: str
    images: list[str]
    availability: str
    inventory: int
    variations: list[dict]
    created_at: datetime
    updated_at: datetime


class OrderOut(CamelModel):
    id: int
    order_number: str
    customer_email: str
    customer_name: str
    items: list[dict]
    total_amount: float
    currency: str
    stripe_payment_intent_id: Optional[str] = None
    status: str
    fulfillment_status: str
    tracking_number: Optional[str] = None
    shipping_address: Optional[dict] = None
    created_at: datetime
    updated_at: datetime


class DonationOut(CamelModel):
    id: int
    donor_email: str
    donor_name: str
    amount: float
    currency: str
    frequency: str
    message: Optional[str] = None
    anonymous: bool
    stripe_payment_intent_id: Optional[str] = None
    status: str
    created_at: datetime


class PaymentIntentOut(CamelModel):
    client_secret: str
    order_id: Optional[int] = None
    donation_id: Optional[int] = None


class HealthOut(BaseModel):
    status: str
    timestamp: str
    environment: str
    services: dict[str, str]
