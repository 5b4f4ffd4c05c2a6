from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from agrilink_orders.domain.models import (
    Address, CartLine, OrderItem, OrderStatus, PaymentStatus, Shipping
)


class CreateOrderRequest(BaseModel):
    items: List[CartLine]
    delivery_address: Address
    notes: Optional[str] = None
    shipping: Shipping = Field(default_factory=Shipping)


class UpdateStatusRequest(BaseModel):
    status: OrderStatus


class InitializePaymentRequest(BaseModel):
    order_id: str
    email: str = Field(min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")


class PaymentResponse(BaseModel):
    method: Optional[str] = None
    status: PaymentStatus
    reference: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: str
    paid_at: Optional[datetime] = None
    transaction_id: Optional[str] = None
    failure_reason: Optional[str] = None


class OrderResponse(BaseModel):
    id: str
    order_number: str
    buyer_id: str
    farmer_id: str
    items: List[OrderItem]
    subtotal: Decimal
    shipping: Shipping
    total: Decimal
    delivery_address: Address
    notes: Optional[str] = None
    status: OrderStatus
    payment: PaymentResponse
    settlement_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, order):
        return cls(
            id=order.id,
            order_number=order.order_number,
            buyer_id=order.buyer_id,
            farmer_id=order.farmer_id,
            items=order.items,
            subtotal=order.subtotal,
            shipping=order.shipping,
            total=order.total,
            delivery_address=order.delivery_address,
            notes=order.notes,
            status=order.status,
            payment=PaymentResponse(
                method=order.payment.method,
                status=order.payment.status,
                reference=order.payment.reference,
                amount=order.payment.amount,
                currency=order.payment.currency,
                paid_at=order.payment.paid_at,
                transaction_id=order.payment.transaction_id,
                failure_reason=order.payment.failure_reason
            ),
            settlement_error=order.settlement_error,
            created_at=order.created_at,
            updated_at=order.updated_at
        )


class OrderListResponse(BaseModel):
    orders: List[OrderResponse]
    total: int
    total_pages: int
    current_page: int


class PaymentInitResponse(BaseModel):
    authorization_url: str
    access_code: str
    reference: str


class PaymentStatusResponse(BaseModel):
    order_id: str
    order_number: str
    status: OrderStatus
    payment: PaymentResponse


class ErrorResponse(BaseModel):
    detail: str
