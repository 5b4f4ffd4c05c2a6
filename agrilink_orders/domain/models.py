import secrets
import string
import time
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Literal, Optional, Union
from pydantic import BaseModel, Field, model_validator


CENTS = Decimal("0.01")


class Role(str, Enum):
    CONSUMER = "consumer"
    INSTITUTIONAL_BUYER = "institutional_buyer"
    FARMER = "farmer"
    ADMIN = "admin"


class Segment(str, Enum):
    B2B = "b2b"
    B2C = "b2c"


class OrderStatus(str, Enum):
    PAYMENT_PENDING = "payment_pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    PAYMENT_FAILED = "payment_failed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class ChargeStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


# Fulfillment moves made by the farmer or an admin. CONFIRMED is absent as a
# target: only settlement reaches it.
FULFILLMENT_TRANSITIONS = {
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
}



def quantize(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Decimal cedis -> integer pesewas, as the gateway expects"""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount_minor: int) -> Decimal:
    return quantize(Decimal(amount_minor) / 100)


def generate_order_number() -> str:
    alphabet = string.ascii_uppercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(9))
    return f"AGR-{int(time.time() * 1000)}-{suffix}"


def segment_for_role(role: Role) -> Segment:
    """Business rule: institutional buyers shop the b2b marketplace, everyone else b2c"""
    return Segment.B2B if role == Role.INSTITUTIONAL_BUYER else Segment.B2C


class Principal(BaseModel):
    """Authenticated caller, as handed over by the auth layer"""
    id: str
    role: Role
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class B2BPricing(BaseModel):
    segment: Literal[Segment.B2B] = Segment.B2B
    price: Decimal
    min_quantity: int = 0
    unit: str = "kg"


class B2CPricing(BaseModel):
    segment: Literal[Segment.B2C] = Segment.B2C
    price: Decimal
    unit: str = "kg"


SegmentPricing = Union[B2BPricing, B2CPricing]


class ProductPricing(BaseModel):
    b2b: Optional[B2BPricing] = None
    b2c: Optional[B2CPricing] = None

    def for_segment(self, segment: Segment) -> Optional[SegmentPricing]:
        return self.b2b if segment == Segment.B2B else self.b2c


class Inventory(BaseModel):
    total_quantity: int = 0
    available_quantity: int = 0
    reserved_quantity: int = 0


class Product(BaseModel):
    """Value object: catalog entry as seen by ordering"""
    id: str
    name: str
    farmer_id: str
    pricing: ProductPricing
    inventory: Inventory


class CartLine(BaseModel):
    product_id: str
    quantity: int = Field(gt=0)


class OrderItem(BaseModel):
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    unit: str
    segment: Segment

    @property
    def line_total(self) -> Decimal:
        return quantize(self.unit_price * self.quantity)


class ValidatedCart(BaseModel):
    farmer_id: str
    items: list[OrderItem]
    subtotal: Decimal


class Address(BaseModel):
    street: str
    city: str
    region: str
    postal_code: Optional[str] = None
    phone: Optional[str] = None


class Shipping(BaseModel):
    method: str = "standard"
    cost: Decimal = Field(default=Decimal("0"), ge=0)


class PaymentRecord(BaseModel):
    method: Optional[str] = None
    status: PaymentStatus = PaymentStatus.PENDING
    reference: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: str = "GHS"
    paid_at: Optional[datetime] = None
    transaction_id: Optional[str] = None
    gateway_response: Optional[str] = None
    failure_reason: Optional[str] = None
    authorization_url: Optional[str] = None
    access_code: Optional[str] = None

    @property
    def is_settled(self) -> bool:
        return self.status != PaymentStatus.PENDING


class Order(BaseModel):
    """Domain entity: one buyer purchasing from one farmer"""
    id: str
    order_number: str
    buyer_id: str
    farmer_id: str
    items: list[OrderItem]
    subtotal: Decimal
    shipping: Shipping
    total: Decimal
    delivery_address: Address
    notes: Optional[str] = None
    status: OrderStatus
    payment: PaymentRecord
    # Set when a verified payment could not be settled; an operator resolves it
    settlement_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def _totals_match_snapshot(self):
        expected_subtotal = quantize(sum((item.line_total for item in self.items), Decimal("0")))
        if quantize(self.subtotal) != expected_subtotal:
            raise ValueError(f"subtotal {self.subtotal} does not match items ({expected_subtotal})")
        if quantize(self.total) != quantize(self.subtotal + self.shipping.cost):
            raise ValueError(f"total {self.total} does not match subtotal plus shipping")
        return self

    def is_visible_to(self, principal: Principal) -> bool:
        return principal.is_admin or principal.id in (self.buyer_id, self.farmer_id)

    def can_be_managed_by(self, principal: Principal) -> bool:
        """Only the order's farmer or an admin may move its status"""
        return principal.is_admin or (principal.role == Role.FARMER and principal.id == self.farmer_id)

    def can_transition_to(self, target: OrderStatus) -> bool:
        return target in FULFILLMENT_TRANSITIONS.get(self.status, set())

    def can_be_paid(self) -> bool:
        return self.status == OrderStatus.PAYMENT_PENDING and not self.payment.is_settled


class ChargeAuthorization(BaseModel):
    reference: str
    authorization_url: str
    access_code: str


class ChargeOutcome(BaseModel):
    """Gateway verdict for a charge reference"""
    reference: str
    status: ChargeStatus
    amount_minor: Optional[int] = None
    currency: Optional[str] = None
    paid_at: Optional[datetime] = None
    transaction_id: Optional[str] = None
    gateway_response: Optional[str] = None
