from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, Numeric, String, Text

from storefront import config
from storefront.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    REFUNDED = "refunded"


class FulfillmentStatus(str, Enum):
    UNFULFILLED = "unfulfilled"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"


class Admin(Base):
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password = Column(String(255), nullable=False)   # bcrypt hash
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    slug = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    category = Column(String(120), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="GHS")
    tags = Column(JSON, nullable=False, default=list)
    impact_statement = Column(Text)
    description = Column(Text, nullable=False)
    images = Column(JSON, nullable=False, default=list)
    availability = Column(String(40), nullable=False, default="in_stock")
    inventory = Column(Integer, nullable=False, default=0)
    variations = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_email = Column(String(255), nullable=False)
    customer_name = Column(String(255), nullable=False)
    items = Column(JSON, nullable=False)              # [{productId, productName, quantity, price, selectedVariations}]
    total_amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="GHS")
    stripe_payment_intent_id = Column(String(120), unique=True, index=True)
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True)
    fulfillment_status = Column(String(20), nullable=False, default=FulfillmentStatus.UNFULFILLED.value)
    tracking_number = Column(String(120))
    shipping_address = Column(JSON)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def order_number(self):
        return f"{config.ORDER_NUMBER_PREFIX}-{self.id:08d}"

    @property
    def amount(self) -> Decimal:
        return self.total_amount


class Donation(Base):
    __tablename__ = "donations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    donor_email = Column(String(255), nullable=False)
    donor_name = Column(String(255), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    frequency = Column(String(20), nullable=False, default="one-time")
    message = Column(Text)
    anonymous = Column(Boolean, nullable=False, default=False)
    stripe_payment_intent_id = Column(String(120), unique=True, index=True)
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class StripeEvent(Base):
    """Ledger of webhook events already applied."""

    __tablename__ = "stripe_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(120), unique=True, index=True, nullable=False)   # evt_...
    type = Column(String(120), index=True, nullable=False)
    object_id = Column(String(120), index=True)                              # pi_... or ch_...
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
