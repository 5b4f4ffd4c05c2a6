import re
from decimal import Decimal

import pytest
from sqlalchemy import update

from agrilink_orders.application.get_order import GetOrderUseCase, ListOrdersUseCase
from agrilink_orders.domain.exceptions import (
    BelowMinimumQuantityError, MixedFarmerCartError, NotAuthorizedError, OrderNotFoundError
)
from agrilink_orders.domain.models import OrderStatus, PaymentStatus, Principal, Role, Segment, Shipping
from agrilink_orders.infrastructure.db_schema import products_tbl


class TestCreateOrder:
    @pytest.mark.asyncio
    async def test_order_awaits_payment_without_touching_stock(self, seed_product, read_product, place_order, consumer):
        await seed_product("P1", b2c_price="20.00", available=100)

        order = await place_order(consumer, [("P1", 5)])

        assert order.status == OrderStatus.PAYMENT_PENDING
        assert order.payment.status == PaymentStatus.PENDING
        assert order.payment.reference is None
        assert order.subtotal == Decimal("100.00")
        assert order.total == Decimal("100.00")
        assert order.farmer_id == "farmer-kofi"

        product = await read_product("P1")
        assert product.inventory.available_quantity == 100
        assert product.inventory.reserved_quantity == 0

    @pytest.mark.asyncio
    async def test_total_includes_shipping(self, seed_product, place_order, consumer):
        await seed_product("P1", b2c_price="12.50")

        order = await place_order(consumer, [("P1", 3)], shipping=Shipping(method="express", cost=Decimal("15")))

        assert order.subtotal == Decimal("37.50")
        assert order.total == Decimal("52.50")
        assert order.payment.amount == Decimal("52.50")
        assert order.payment.currency == "GHS"

    @pytest.mark.asyncio
    async def test_order_number_format(self, seed_product, place_order, consumer):
        await seed_product("P1")

        order = await place_order(consumer, [("P1", 1)])

        assert re.fullmatch(r"AGR-\d+-[A-Z0-9]{9}", order.order_number)

    @pytest.mark.asyncio
    async def test_item_prices_are_snapshots(self, seed_product, place_order, session_factory, uow, consumer):
        await seed_product("P1", b2c_price="20.00")
        order = await place_order(consumer, [("P1", 5)])

        async with session_factory() as session:
            await session.execute(
                update(products_tbl).where(products_tbl.c.id == "P1").values(b2c_price=Decimal("35.00"))
            )
            await session.commit()

        stored = await GetOrderUseCase(uow)(order.id, consumer)
        assert stored.items[0].unit_price == Decimal("20.00")
        assert stored.total == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_b2b_order_uses_b2b_snapshot(self, seed_product, place_order, institution):
        await seed_product("P1", b2c_price="20.00", b2b_price="16.00", b2b_min_quantity=50, available=500)

        order = await place_order(institution, [("P1", 50)])

        assert order.items[0].segment == Segment.B2B
        assert order.total == Decimal("800.00")

    @pytest.mark.asyncio
    async def test_rejected_cart_creates_nothing(self, seed_product, place_order, uow, institution, admin):
        await seed_product("P1", b2b_price="16.00", b2b_min_quantity=50)

        with pytest.raises(BelowMinimumQuantityError):
            await place_order(institution, [("P1", 10)])

        orders, total = await ListOrdersUseCase(uow)(admin)
        assert orders == []
        assert total == 0

    @pytest.mark.asyncio
    async def test_mixed_farmer_cart(self, seed_product, place_order, consumer):
        await seed_product("P1")
        await seed_product("P2", farmer_id="farmer-abena")

        with pytest.raises(MixedFarmerCartError):
            await place_order(consumer, [("P1", 1), ("P2", 1)])


class TestReadOrders:
    @pytest.mark.asyncio
    async def test_buyer_farmer_and_admin_can_view(self, seed_product, place_order, uow, consumer, farmer, admin):
        await seed_product("P1")
        order = await place_order(consumer, [("P1", 2)])

        for principal in (consumer, farmer, admin):
            found = await GetOrderUseCase(uow)(order.id, principal)
            assert found.id == order.id
            assert found.items[0].product_name == "Product P1"

    @pytest.mark.asyncio
    async def test_stranger_cannot_view(self, seed_product, place_order, uow, consumer):
        await seed_product("P1")
        order = await place_order(consumer, [("P1", 2)])
        stranger = Principal(id="buyer-yaw", role=Role.CONSUMER)

        with pytest.raises(NotAuthorizedError):
            await GetOrderUseCase(uow)(order.id, stranger)

    @pytest.mark.asyncio
    async def test_missing_order(self, uow, admin):
        with pytest.raises(OrderNotFoundError):
            await GetOrderUseCase(uow)("no-such-order", admin)

    @pytest.mark.asyncio
    async def test_list_is_scoped_by_role(self, seed_product, place_order, uow, consumer, institution, farmer, admin):
        await seed_product("P1", b2b_price="15.00", b2b_min_quantity=1)
        await seed_product("P2", farmer_id="farmer-abena")
        await place_order(consumer, [("P1", 1)])
        await place_order(consumer, [("P2", 1)])
        await place_order(institution, [("P1", 2)])

        _, consumer_total = await ListOrdersUseCase(uow)(consumer)
        farmer_orders, farmer_total = await ListOrdersUseCase(uow)(farmer)
        _, admin_total = await ListOrdersUseCase(uow)(admin)

        assert consumer_total == 2
        assert farmer_total == 2
        assert all(o.farmer_id == farmer.id for o in farmer_orders)
        assert admin_total == 3

    @pytest.mark.asyncio
    async def test_list_pagination_and_status_filter(self, seed_product, place_order, uow, consumer):
        await seed_product("P1")
        for _ in range(5):
            await place_order(consumer, [("P1", 1)])

        page, total = await ListOrdersUseCase(uow)(consumer, page=2, limit=2)
        assert total == 5
        assert len(page) == 2

        last_page, _ = await ListOrdersUseCase(uow)(consumer, page=3, limit=2)
        assert len(last_page) == 1

        confirmed, confirmed_total = await ListOrdersUseCase(uow)(consumer, status=OrderStatus.CONFIRMED)
        assert confirmed == []
        assert confirmed_total == 0
