from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Tuple
from sqlalchemy import select, insert, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from agrilink_orders.domain.models import (
    Order, OrderItem, OrderStatus, PaymentStatus, PaymentRecord, Address, Shipping,
    Product, ProductPricing, B2BPricing, B2CPricing, Inventory
)
from agrilink_orders.infrastructure.db_schema import orders_tbl, order_items_tbl, products_tbl
from agrilink_orders.application.interfaces import OrderRepository, ProductRepository


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands timestamps back naive; they are written in UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SQLAlchemyProductRepository(ProductRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, product_id: str) -> Optional[Product]:
        result = await self._session.execute(
            select(products_tbl).where(products_tbl.c.id == product_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def move_to_reserved(self, product_id: str, quantity: int, allow_negative: bool = False) -> bool:
        stmt = update(products_tbl).where(products_tbl.c.id == product_id)
        if not allow_negative:
            stmt = stmt.where(products_tbl.c.available_quantity >= quantity)
        stmt = stmt.values(
            available_quantity=products_tbl.c.available_quantity - quantity,
            reserved_quantity=products_tbl.c.reserved_quantity + quantity,
            updated_at=datetime.now(timezone.utc)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    def _to_domain(self, row) -> Product:
        """DB row -> domain"""
        b2b = None
        if row.b2b_price is not None:
            b2b = B2BPricing(price=row.b2b_price, min_quantity=row.b2b_min_quantity, unit=row.b2b_unit)
        b2c = None
        if row.b2c_price is not None:
            b2c = B2CPricing(price=row.b2c_price, unit=row.b2c_unit)
        return Product(
            id=row.id,
            name=row.name,
            farmer_id=row.farmer_id,
            pricing=ProductPricing(b2b=b2b, b2c=b2c),
            inventory=Inventory(
                total_quantity=row.total_quantity,
                available_quantity=row.available_quantity,
                reserved_quantity=row.reserved_quantity
            )
        )


class SQLAlchemyOrderRepository(OrderRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        return await self._get_one(orders_tbl.c.id == order_id)

    async def get_by_payment_reference(self, reference: str) -> Optional[Order]:
        return await self._get_one(orders_tbl.c.payment_reference == reference)

    async def list(
        self,
        buyer_id: Optional[str] = None,
        farmer_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Order], int]:
        conditions = []
        if buyer_id is not None:
            conditions.append(orders_tbl.c.buyer_id == buyer_id)
        if farmer_id is not None:
            conditions.append(orders_tbl.c.farmer_id == farmer_id)
        if status is not None:
            conditions.append(orders_tbl.c.status == status)

        count_query = select(func.count()).select_from(orders_tbl)
        query = select(orders_tbl)
        if conditions:
            count_query = count_query.where(*conditions)
            query = query.where(*conditions)

        total = await self._session.scalar(count_query)
        result = await self._session.execute(
            query
            .order_by(orders_tbl.c.created_at.desc(), orders_tbl.c.id)
            .limit(limit)
            .offset(offset)
        )
        return await self._with_items(result.fetchall()), total or 0

    async def list_payment_pending(self, created_before: datetime, limit: int = 20) -> List[Order]:
        # Never-swept orders first, then the longest unvisited, so a batch of
        # stuck orders cannot starve the rest
        result = await self._session.execute(
            select(orders_tbl)
            .where(
                orders_tbl.c.status == OrderStatus.PAYMENT_PENDING,
                orders_tbl.c.payment_status == PaymentStatus.PENDING,
                orders_tbl.c.settlement_error.is_(None),
                orders_tbl.c.created_at <= created_before
            )
            .order_by(
                orders_tbl.c.last_swept_at.asc().nulls_first(),
                orders_tbl.c.created_at.asc()
            )
            .limit(limit)
        )
        return await self._with_items(result.fetchall())

    async def mark_swept(self, order_ids: List[str], swept_at: datetime) -> None:
        if not order_ids:
            return
        await self._session.execute(
            update(orders_tbl)
            .where(orders_tbl.c.id.in_(order_ids))
            .values(last_swept_at=swept_at)
        )

    async def flag_settlement_error(self, order_id: str, reason: str) -> bool:
        stmt = (
            update(orders_tbl)
            .where(
                orders_tbl.c.id == order_id,
                orders_tbl.c.payment_status == PaymentStatus.PENDING,
                orders_tbl.c.status == OrderStatus.PAYMENT_PENDING
            )
            .values(settlement_error=reason, updated_at=datetime.now(timezone.utc))
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def create(self, order: Order) -> None:
        stmt = insert(orders_tbl).values(
            id=order.id,
            order_number=order.order_number,
            buyer_id=order.buyer_id,
            farmer_id=order.farmer_id,
            subtotal=order.subtotal,
            shipping_method=order.shipping.method,
            shipping_cost=order.shipping.cost,
            total=order.total,
            delivery_address=order.delivery_address.model_dump(),
            notes=order.notes,
            status=order.status,
            payment_method=order.payment.method,
            payment_status=order.payment.status,
            payment_reference=order.payment.reference,
            payment_amount=order.payment.amount,
            payment_currency=order.payment.currency,
            created_at=order.created_at,
            updated_at=order.updated_at
        )
        await self._session.execute(stmt)
        await self._session.execute(
            insert(order_items_tbl),
            [
                {
                    "order_id": order.id,
                    "position": position,
                    "product_id": item.product_id,
                    "product_name": item.product_name,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price,
                    "unit": item.unit,
                    "segment": item.segment
                }
                for position, item in enumerate(order.items)
            ]
        )

    async def attach_payment(
        self,
        order_id: str,
        reference: str,
        method: str,
        amount: Decimal,
        currency: str,
        authorization_url: str,
        access_code: str,
    ) -> bool:
        stmt = (
            update(orders_tbl)
            .where(
                orders_tbl.c.id == order_id,
                orders_tbl.c.payment_reference.is_(None),
                orders_tbl.c.payment_status == PaymentStatus.PENDING,
                orders_tbl.c.status == OrderStatus.PAYMENT_PENDING
            )
            .values(
                payment_reference=reference,
                payment_method=method,
                payment_amount=amount,
                payment_currency=currency,
                authorization_url=authorization_url,
                access_code=access_code,
                updated_at=datetime.now(timezone.utc)
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def settle_payment(
        self,
        order_id: str,
        payment_status: PaymentStatus,
        order_status: OrderStatus,
        amount: Optional[Decimal] = None,
        currency: Optional[str] = None,
        paid_at: Optional[datetime] = None,
        transaction_id: Optional[str] = None,
        gateway_response: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> bool:
        values = {
            "payment_status": payment_status,
            "status": order_status,
            "settlement_error": None,
            "updated_at": datetime.now(timezone.utc)
        }
        optional = {
            "payment_amount": amount,
            "payment_currency": currency,
            "paid_at": paid_at,
            "transaction_id": transaction_id,
            "gateway_response": gateway_response,
            "failure_reason": failure_reason
        }
        values.update({column: value for column, value in optional.items() if value is not None})

        # The WHERE on payment_status is the settlement lock: of two racing
        # callers exactly one sees rowcount == 1.
        stmt = (
            update(orders_tbl)
            .where(
                orders_tbl.c.id == order_id,
                orders_tbl.c.payment_status == PaymentStatus.PENDING,
                orders_tbl.c.status == OrderStatus.PAYMENT_PENDING
            )
            .values(**values)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def update_status(self, order_id: str, expected: OrderStatus, status: OrderStatus) -> bool:
        stmt = (
            update(orders_tbl)
            .where(orders_tbl.c.id == order_id, orders_tbl.c.status == expected)
            .values(status=status, updated_at=datetime.now(timezone.utc))
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def _get_one(self, condition) -> Optional[Order]:
        result = await self._session.execute(select(orders_tbl).where(condition))
        row = result.fetchone()
        if not row:
            return None
        orders = await self._with_items([row])
        return orders[0]

    async def _with_items(self, rows) -> List[Order]:
        if not rows:
            return []
        result = await self._session.execute(
            select(order_items_tbl)
            .where(order_items_tbl.c.order_id.in_([row.id for row in rows]))
            .order_by(order_items_tbl.c.order_id, order_items_tbl.c.position)
        )
        items = defaultdict(list)
        for item_row in result.fetchall():
            items[item_row.order_id].append(
                OrderItem(
                    product_id=item_row.product_id,
                    product_name=item_row.product_name,
                    quantity=item_row.quantity,
                    unit_price=item_row.unit_price,
                    unit=item_row.unit,
                    segment=item_row.segment
                )
            )
        return [self._to_domain(row, items[row.id]) for row in rows]

    def _to_domain(self, row, items: List[OrderItem]) -> Order:
        """DB row -> domain"""
        return Order(
            id=row.id,
            order_number=row.order_number,
            buyer_id=row.buyer_id,
            farmer_id=row.farmer_id,
            items=items,
            subtotal=row.subtotal,
            shipping=Shipping(method=row.shipping_method, cost=row.shipping_cost),
            total=row.total,
            delivery_address=Address(**row.delivery_address),
            notes=row.notes,
            status=OrderStatus(row.status),
            payment=PaymentRecord(
                method=row.payment_method,
                status=PaymentStatus(row.payment_status),
                reference=row.payment_reference,
                amount=row.payment_amount,
                currency=row.payment_currency,
                paid_at=_utc(row.paid_at),
                transaction_id=row.transaction_id,
                gateway_response=row.gateway_response,
                failure_reason=row.failure_reason,
                authorization_url=row.authorization_url,
                access_code=row.access_code
            ),
            settlement_error=row.settlement_error,
            created_at=_utc(row.created_at),
            updated_at=_utc(row.updated_at)
        )
