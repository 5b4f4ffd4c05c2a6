import logging

from agrilink_orders.domain.models import Order, OrderStatus, Principal
from agrilink_orders.domain.exceptions import (
    OrderNotFoundError, NotAuthorizedError, InvalidTransitionError
)

logger = logging.getLogger(__name__)


class UpdateOrderStatusUseCase:
    """Fulfillment moves: confirmed -> processing -> shipped -> delivered, or cancel
    before shipping. Confirmation itself belongs to payment settlement."""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, new_status: OrderStatus, actor: Principal) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(f"Order {order_id} not found")

            if not order.can_be_managed_by(actor):
                raise NotAuthorizedError("Not authorized to update this order")

            if new_status == OrderStatus.CONFIRMED:
                raise InvalidTransitionError(
                    order.status, new_status, "orders are confirmed only by a verified payment"
                )
            if not order.can_transition_to(new_status):
                raise InvalidTransitionError(order.status, new_status)

            updated = await uow.orders.update_status(order_id, expected=order.status, status=new_status)
            if not updated:
                # Someone else moved the order between our read and write
                current = await uow.orders.get_by_id(order_id)
                raise InvalidTransitionError(current.status, new_status, "order changed concurrently")

            await uow.commit()
            order = await uow.orders.get_by_id(order_id)

        logger.info(f"Order {order.order_number} moved to {new_status.value} by {actor.role.value} {actor.id}")
        return order
