from typing import List, Optional, Tuple

from agrilink_orders.domain.models import Order, OrderStatus, Principal, Role
from agrilink_orders.domain.exceptions import OrderNotFoundError, NotAuthorizedError


class GetOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, principal: Principal) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(f"Order {order_id} not found")
            if not order.is_visible_to(principal):
                raise NotAuthorizedError("Not authorized to view this order")
            return order


class ListOrdersUseCase:
    """Buyers see their purchases, farmers their sales, admins everything."""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(
        self,
        principal: Principal,
        status: Optional[OrderStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Order], int]:
        filters = {}
        if principal.role == Role.FARMER:
            filters["farmer_id"] = principal.id
        elif not principal.is_admin:
            filters["buyer_id"] = principal.id

        async with self._uow() as uow:
            return await uow.orders.list(
                status=status, limit=limit, offset=(page - 1) * limit, **filters
            )


class GetPaymentStatusUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, principal: Principal) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(f"Order {order_id} not found")
            if order.buyer_id != principal.id and not principal.is_admin:
                raise NotAuthorizedError("Not authorized")
            return order
