import logging
from collections import defaultdict
from datetime import datetime, timezone

from agrilink_orders.domain.models import (
    Order, OrderStatus, PaymentStatus, ChargeOutcome, ChargeStatus, from_minor_units
)
from agrilink_orders.domain.exceptions import (
    OrderNotFoundError, InventoryExhaustedError, GatewayError
)
from agrilink_orders.application.interfaces import PaymentGateway

logger = logging.getLogger(__name__)


class ReconcilePaymentUseCase:
    """Applies a verified gateway outcome to its order exactly once.

    Success claims the order (payment -> success, status -> confirmed) and
    moves every item's quantity from available to reserved stock. Anything
    else marks the payment failed and leaves inventory alone. The claim is a
    conditional update on payment_status, so repeated or concurrent calls for
    one reference settle it once and all return the resulting order.

    The claim and the stock moves share one transaction: if any product cannot
    be moved, nothing is kept and InventoryExhaustedError is raised. The order
    then stays payment_pending with settlement_error set, which takes it out of
    the sweep until an operator restocks and verifies it again.
    """

    def __init__(self, unit_of_work, allow_negative_inventory: bool = False):
        self._uow = unit_of_work
        self._allow_negative_inventory = allow_negative_inventory

    async def __call__(self, reference: str, outcome: ChargeOutcome) -> Order:
        logger.info(f"Reconciling payment {reference}: {outcome.status.value}")
        try:
            return await self._settle(reference, outcome)
        except InventoryExhaustedError as e:
            await self._flag(reference, str(e))
            raise

    async def _settle(self, reference: str, outcome: ChargeOutcome) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_payment_reference(reference)
            if not order:
                raise OrderNotFoundError(f"Order not found for payment {reference}")

            # Idempotency
            if order.payment.is_settled:
                logger.info(f"Payment {reference} already settled as {order.payment.status.value}")
                return order

            if outcome.status == ChargeStatus.SUCCESS:
                claimed = await self._confirm(uow, order, outcome)
            else:
                claimed = await self._fail(uow, order, outcome)

            if not claimed:
                # Another caller settled it between our read and the claim
                await uow.rollback()
                logger.info(f"Payment {reference} settled concurrently, returning current state")
                return await uow.orders.get_by_id(order.id)

            await uow.commit()
            settled = await uow.orders.get_by_id(order.id)

        logger.info(f"Order {settled.order_number} settled: {settled.status.value}")
        return settled

    async def _confirm(self, uow, order: Order, outcome: ChargeOutcome) -> bool:
        if outcome.amount_minor is not None:
            amount = from_minor_units(outcome.amount_minor)
        else:
            amount = order.total
        if amount != order.total:
            logger.warning(
                f"Order {order.order_number}: gateway amount {amount} differs from order total {order.total}"
            )

        claimed = await uow.orders.settle_payment(
            order.id,
            payment_status=PaymentStatus.SUCCESS,
            order_status=OrderStatus.CONFIRMED,
            amount=amount,
            currency=outcome.currency,
            paid_at=outcome.paid_at or datetime.now(timezone.utc),
            transaction_id=outcome.transaction_id,
            gateway_response=outcome.gateway_response
        )
        if not claimed:
            return False

        # One move per product, in product id order, so concurrent settlements
        # lock product rows in the same sequence
        quantities = defaultdict(int)
        for item in order.items:
            quantities[item.product_id] += item.quantity

        for product_id in sorted(quantities):
            quantity = quantities[product_id]
            moved = await uow.products.move_to_reserved(
                product_id, quantity, allow_negative=self._allow_negative_inventory
            )
            if not moved:
                logger.error(
                    f"Order {order.order_number} ({order.payment.reference}): cannot reserve "
                    f"{quantity} of {product_id}, settlement rolled back"
                )
                raise InventoryExhaustedError(product_id, quantity)
        return True

    async def _flag(self, reference: str, reason: str) -> None:
        """Verified payment, no stock: keep the order pending but out of the sweep"""
        async with self._uow() as uow:
            order = await uow.orders.get_by_payment_reference(reference)
            if order and await uow.orders.flag_settlement_error(order.id, reason):
                await uow.commit()
                logger.error(f"Order {order.order_number} held for operator review: {reason}")

    async def _fail(self, uow, order: Order, outcome: ChargeOutcome) -> bool:
        return await uow.orders.settle_payment(
            order.id,
            payment_status=PaymentStatus.FAILED,
            order_status=OrderStatus.PAYMENT_FAILED,
            transaction_id=outcome.transaction_id,
            gateway_response=outcome.gateway_response,
            failure_reason=outcome.gateway_response or "Payment failed"
        )


class VerifyPaymentUseCase:
    """Client redirect and gateway webhook both land here."""

    def __init__(self, unit_of_work, gateway: PaymentGateway, reconcile: ReconcilePaymentUseCase):
        self._uow = unit_of_work
        self._gateway = gateway
        self._reconcile = reconcile

    async def __call__(self, reference: str) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_payment_reference(reference)
        if not order:
            raise OrderNotFoundError(f"Order not found for payment {reference}")
        if order.payment.is_settled:
            return order

        try:
            outcome = await self._gateway.verify_charge(reference)
        except GatewayError as e:
            logger.error(f"Verification of {reference} (order {order.order_number}) failed: {e}")
            raise

        if outcome.status == ChargeStatus.PENDING:
            logger.info(f"Payment {reference} still in progress at the gateway")
            return order

        return await self._reconcile(reference, outcome)
