import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from pydantic import BaseModel

from agrilink_orders.domain.models import Order, OrderStatus, PaymentStatus, ChargeStatus
from agrilink_orders.domain.exceptions import DomainException, GatewayError
from agrilink_orders.application.interfaces import PaymentGateway
from agrilink_orders.application.reconcile_payment import ReconcilePaymentUseCase

logger = logging.getLogger(__name__)


class SweepReport(BaseModel):
    checked: int = 0
    settled: int = 0
    expired: int = 0
    errors: int = 0


class SweepPendingOrdersUseCase:
    """Polls the gateway for payment_pending orders and expires the stale ones."""

    def __init__(
        self,
        unit_of_work,
        gateway: PaymentGateway,
        reconcile: ReconcilePaymentUseCase,
        stale_after: timedelta,
        min_age: timedelta = timedelta(minutes=5),
        batch_size: int = 20,
    ):
        self._uow = unit_of_work
        self._gateway = gateway
        self._reconcile = reconcile
        self._stale_after = stale_after
        self._min_age = min_age
        self._batch_size = batch_size

    async def __call__(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or datetime.now(timezone.utc)
        report = SweepReport()

        async with self._uow() as uow:
            pending = await uow.orders.list_payment_pending(created_before=now - self._min_age, limit=self._batch_size)
            # Rotates the batch: orders visited now go behind every unvisited one
            await uow.orders.mark_swept([order.id for order in pending], swept_at=now)
            await uow.commit()

        for order in pending:
            report.checked += 1
            stale = order.created_at <= now - self._stale_after
            reference = order.payment.reference

            if reference:
                try:
                    outcome = await self._gateway.verify_charge(reference)
                except GatewayError as e:
                    logger.warning(f"Sweep could not verify {reference} (order {order.order_number}): {e}")
                    report.errors += 1
                    continue

                if outcome.status != ChargeStatus.PENDING:
                    try:
                        await self._reconcile(reference, outcome)
                        report.settled += 1
                    except DomainException as e:
                        logger.error(f"Sweep could not settle {reference}: {e}")
                        report.errors += 1
                    continue

            if not stale:
                continue
            try:
                if await self._expire(order):
                    report.expired += 1
            except DomainException as e:
                logger.error(f"Sweep could not expire order {order.order_number}: {e}")
                report.errors += 1

        if report.checked:
            logger.info(
                f"Sweep checked {report.checked} pending orders: "
                f"{report.settled} settled, {report.expired} expired, {report.errors} errors"
            )
        return report

    async def _expire(self, order: Order) -> bool:
        minutes = int(self._stale_after.total_seconds() // 60)
        async with self._uow() as uow:
            # Same compare-and-set as settlement: a verification that wins first keeps the order
            expired = await uow.orders.settle_payment(
                order.id,
                payment_status=PaymentStatus.FAILED,
                order_status=OrderStatus.CANCELLED,
                failure_reason=f"expired: no verified payment within {minutes} minutes"
            )
            if expired:
                await uow.commit()
        if expired:
            logger.info(f"Order {order.order_number} expired after {minutes} minutes without payment")
        return expired
