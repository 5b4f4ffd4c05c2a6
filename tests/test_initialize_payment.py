from decimal import Decimal

import pytest

from agrilink_orders.application.initialize_payment import InitializePaymentUseCase, InitializePaymentDTO
from agrilink_orders.application.reconcile_payment import ReconcilePaymentUseCase
from agrilink_orders.domain.exceptions import (
    ChargeAmountTooSmallError,
    GatewayError,
    InvalidTransitionError,
    NotAuthorizedError,
    OrderNotFoundError,
    PaymentAlreadyCompletedError,
)
from agrilink_orders.domain.models import Principal, Role


@pytest.fixture
def initialize(uow, gateway):
    return InitializePaymentUseCase(uow, gateway, callback_base_url="https://agrilink.example/")


def _dto(order, payer):
    return InitializePaymentDTO(order_id=order.id, email=payer.email, payer=payer)


class TestInitializePayment:
    @pytest.mark.asyncio
    async def test_charges_order_total_in_pesewas(self, seed_product, place_order, initialize, gateway, uow, consumer):
        await seed_product("P1", b2c_price="20.00")
        order = await place_order(consumer, [("P1", 5)])

        authorization = await initialize(_dto(order, consumer))

        assert authorization.reference.startswith(f"{order.order_number}-")
        assert authorization.authorization_url == f"https://checkout.paystack.com/{authorization.reference}"
        charge = gateway.initialized[0]
        assert charge["amount_minor"] == 10000
        assert charge["currency"] == "GHS"
        assert charge["email"] == "ama@example.com"
        assert charge["metadata"]["orderId"] == order.id
        assert charge["callback_url"] == (
            f"https://agrilink.example/customer?payment=verify&reference={authorization.reference}"
        )

        async with uow() as tx:
            stored = await tx.orders.get_by_id(order.id)
        assert stored.payment.reference == authorization.reference
        assert stored.payment.method == "paystack"
        assert stored.payment.amount == Decimal("100.00")
        assert stored.payment.access_code == authorization.access_code

    @pytest.mark.asyncio
    async def test_second_call_reuses_checkout(self, seed_product, place_order, initialize, gateway, consumer):
        await seed_product("P1")
        order = await place_order(consumer, [("P1", 5)])

        first = await initialize(_dto(order, consumer))
        second = await initialize(_dto(order, consumer))

        assert second == first
        assert len(gateway.initialized) == 1

    @pytest.mark.asyncio
    async def test_only_the_buyer_can_pay(self, seed_product, place_order, initialize, gateway, consumer):
        await seed_product("P1")
        order = await place_order(consumer, [("P1", 5)])
        someone = Principal(id="buyer-yaw", role=Role.CONSUMER, email="yaw@example.com")

        with pytest.raises(NotAuthorizedError):
            await initialize(_dto(order, someone))
        assert gateway.initialized == []

    @pytest.mark.asyncio
    async def test_missing_order(self, initialize, consumer):
        dto = InitializePaymentDTO(order_id="no-such-order", email="ama@example.com", payer=consumer)
        with pytest.raises(OrderNotFoundError):
            await initialize(dto)

    @pytest.mark.asyncio
    async def test_below_minimum_charge(self, seed_product, place_order, initialize, gateway, consumer):
        await seed_product("P1", b2c_price="0.45")
        order = await place_order(consumer, [("P1", 2)])

        with pytest.raises(ChargeAmountTooSmallError) as exc:
            await initialize(_dto(order, consumer))

        assert exc.value.amount_minor == 90
        assert str(exc.value) == "Minimum payment amount is ₵1.00"
        assert gateway.initialized == []

    @pytest.mark.asyncio
    async def test_gateway_failure_leaves_order_unreferenced(
        self, seed_product, place_order, initialize, gateway, uow, consumer
    ):
        await seed_product("P1")
        order = await place_order(consumer, [("P1", 5)])
        gateway.error = GatewayError("Payment gateway unavailable")

        with pytest.raises(GatewayError):
            await initialize(_dto(order, consumer))

        async with uow() as tx:
            stored = await tx.orders.get_by_id(order.id)
        assert stored.payment.reference is None


class TestSettledOrders:
    @pytest.mark.asyncio
    async def test_paid_order(self, seed_product, place_order, initialize, gateway, uow, consumer):
        await seed_product("P1")
        order = await place_order(consumer, [("P1", 5)])
        authorization = await initialize(_dto(order, consumer))
        reference = authorization.reference
        await ReconcilePaymentUseCase(uow)(reference, gateway.succeed(reference, amount_minor=10000))

        with pytest.raises(PaymentAlreadyCompletedError):
            await initialize(_dto(order, consumer))

    @pytest.mark.asyncio
    async def test_failed_order_needs_a_new_order(self, seed_product, place_order, initialize, gateway, uow, consumer):
        await seed_product("P1")
        order = await place_order(consumer, [("P1", 5)])
        authorization = await initialize(_dto(order, consumer))
        await ReconcilePaymentUseCase(uow)(authorization.reference, gateway.fail(authorization.reference))

        with pytest.raises(InvalidTransitionError):
            await initialize(_dto(order, consumer))
        assert len(gateway.initialized) == 1
