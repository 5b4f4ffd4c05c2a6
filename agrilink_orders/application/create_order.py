import logging
from pydantic import BaseModel, Field
from datetime import datetime, timezone
from typing import List, Optional
import uuid

from agrilink_orders.domain.models import (
    Order, OrderStatus, PaymentRecord, Principal, CartLine, Address, Shipping,
    generate_order_number, quantize
)
from agrilink_orders.application.pricing import PricingEngine


logger = logging.getLogger(__name__)


class CreateOrderDTO(BaseModel):
    buyer: Principal
    items: List[CartLine]
    delivery_address: Address
    notes: Optional[str] = None
    shipping: Shipping = Field(default_factory=Shipping)


class CreateOrderUseCase:
    def __init__(self, unit_of_work, currency: str = "GHS"):
        self._uow = unit_of_work
        self._currency = currency

    async def __call__(self, order_data: CreateOrderDTO) -> Order:
        logger.info(f"Creating order for buyer {order_data.buyer.id}, {len(order_data.items)} cart lines")

        async with self._uow() as uow:
            # 1. Pricing and stock checks against the catalog
            cart = await PricingEngine(uow.products).validate(order_data.items, order_data.buyer)

            # 2. Snapshot everything into a payment_pending order, inventory untouched
            total = quantize(cart.subtotal + order_data.shipping.cost)
            now = datetime.now(timezone.utc)
            order = Order(
                id=str(uuid.uuid4()),
                order_number=generate_order_number(),
                buyer_id=order_data.buyer.id,
                farmer_id=cart.farmer_id,
                items=cart.items,
                subtotal=cart.subtotal,
                shipping=order_data.shipping,
                total=total,
                delivery_address=order_data.delivery_address,
                notes=order_data.notes,
                status=OrderStatus.PAYMENT_PENDING,
                payment=PaymentRecord(amount=total, currency=self._currency),
                created_at=now,
                updated_at=now,
            )
            await uow.orders.create(order)
            await uow.commit()

        logger.info(f"Order created: {order.order_number} ({order.id}), total {order.total} {self._currency}")
        return order
