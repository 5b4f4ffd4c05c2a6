import pytest

from agrilink_orders.application.reconcile_payment import ReconcilePaymentUseCase
from agrilink_orders.application.update_status import UpdateOrderStatusUseCase
from agrilink_orders.domain.exceptions import InvalidTransitionError, NotAuthorizedError, OrderNotFoundError
from agrilink_orders.domain.models import OrderStatus, Principal, Role


@pytest.fixture
def update_status(uow):
    return UpdateOrderStatusUseCase(uow)


@pytest.fixture
def confirmed_order(seed_product, place_order, start_payment, gateway, uow, consumer):
    async def _confirmed():
        await seed_product("P1", available=100)
        order = await place_order(consumer, [("P1", 5)])
        reference = await start_payment(order, consumer)
        return await ReconcilePaymentUseCase(uow)(reference, gateway.succeed(reference, amount_minor=10000))

    return _confirmed


class TestForwardTransitions:
    @pytest.mark.asyncio
    async def test_farmer_walks_order_to_delivery(self, confirmed_order, update_status, farmer):
        order = await confirmed_order()

        for target in (OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
            order = await update_status(order.id, target, farmer)
            assert order.status == target

    @pytest.mark.asyncio
    async def test_admin_cancels_confirmed_order(self, confirmed_order, update_status, admin):
        order = await confirmed_order()

        cancelled = await update_status(order.id, OrderStatus.CANCELLED, admin)

        assert cancelled.status == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_while_processing(self, confirmed_order, update_status, farmer):
        order = await confirmed_order()
        await update_status(order.id, OrderStatus.PROCESSING, farmer)

        cancelled = await update_status(order.id, OrderStatus.CANCELLED, farmer)

        assert cancelled.status == OrderStatus.CANCELLED


class TestRejectedTransitions:
    @pytest.mark.asyncio
    async def test_no_way_back_from_shipped(self, confirmed_order, update_status, farmer):
        order = await confirmed_order()
        await update_status(order.id, OrderStatus.PROCESSING, farmer)
        await update_status(order.id, OrderStatus.SHIPPED, farmer)

        with pytest.raises(InvalidTransitionError):
            await update_status(order.id, OrderStatus.PROCESSING, farmer)
        with pytest.raises(InvalidTransitionError):
            await update_status(order.id, OrderStatus.CANCELLED, farmer)

    @pytest.mark.asyncio
    async def test_delivered_is_final(self, confirmed_order, update_status, admin):
        order = await confirmed_order()
        for target in (OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
            await update_status(order.id, target, admin)

        with pytest.raises(InvalidTransitionError) as exc:
            await update_status(order.id, OrderStatus.CANCELLED, admin)

        assert exc.value.current == OrderStatus.DELIVERED
        assert exc.value.target == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cannot_confirm_by_hand(self, seed_product, place_order, update_status, consumer, admin):
        await seed_product("P1")
        order = await place_order(consumer, [("P1", 5)])

        with pytest.raises(InvalidTransitionError) as exc:
            await update_status(order.id, OrderStatus.CONFIRMED, admin)

        assert "verified payment" in str(exc.value)

    @pytest.mark.asyncio
    async def test_unpaid_order_cannot_be_processed(self, seed_product, place_order, update_status, consumer, farmer):
        await seed_product("P1")
        order = await place_order(consumer, [("P1", 5)])

        with pytest.raises(InvalidTransitionError):
            await update_status(order.id, OrderStatus.PROCESSING, farmer)

    @pytest.mark.asyncio
    async def test_failed_payment_is_final(
        self, seed_product, place_order, start_payment, gateway, uow, update_status, consumer, admin
    ):
        await seed_product("P1")
        order = await place_order(consumer, [("P1", 5)])
        reference = await start_payment(order, consumer)
        await ReconcilePaymentUseCase(uow)(reference, gateway.fail(reference))

        with pytest.raises(InvalidTransitionError):
            await update_status(order.id, OrderStatus.CANCELLED, admin)


class TestStatusPermissions:
    @pytest.mark.asyncio
    async def test_buyer_cannot_move_status(self, confirmed_order, update_status, consumer):
        order = await confirmed_order()

        with pytest.raises(NotAuthorizedError):
            await update_status(order.id, OrderStatus.PROCESSING, consumer)

    @pytest.mark.asyncio
    async def test_other_farmer_cannot_move_status(self, confirmed_order, update_status):
        order = await confirmed_order()
        other = Principal(id="farmer-abena", role=Role.FARMER)

        with pytest.raises(NotAuthorizedError):
            await update_status(order.id, OrderStatus.PROCESSING, other)

    @pytest.mark.asyncio
    async def test_missing_order(self, update_status, admin):
        with pytest.raises(OrderNotFoundError):
            await update_status("no-such-order", OrderStatus.PROCESSING, admin)
