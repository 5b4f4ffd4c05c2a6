import asyncio
import logging
from datetime import timedelta

from agrilink_orders.config import settings
from agrilink_orders.infrastructure.context import ServiceContext
from agrilink_orders.application.reconcile_payment import ReconcilePaymentUseCase
from agrilink_orders.application.sweep_pending import SweepPendingOrdersUseCase

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_sweep(context: ServiceContext) -> SweepPendingOrdersUseCase:
    uow = context.unit_of_work()
    return SweepPendingOrdersUseCase(
        unit_of_work=uow,
        gateway=context.gateway,
        reconcile=ReconcilePaymentUseCase(uow, allow_negative_inventory=context.settings.ALLOW_NEGATIVE_INVENTORY),
        stale_after=timedelta(minutes=context.settings.PAYMENT_PENDING_TTL_MINUTES),
        min_age=timedelta(seconds=context.settings.SWEEP_MIN_AGE_SECONDS),
        batch_size=context.settings.SWEEP_BATCH_SIZE
    )


async def sweep_worker():
    """Worker that resolves or expires payment_pending orders"""
    logger.info("Pending payment sweep started")
    context = await ServiceContext.open(settings)
    use_case = build_sweep(context)

    try:
        while True:
            try:
                await use_case()
                await asyncio.sleep(settings.SWEEP_INTERVAL_SECONDS)
            except Exception as e:
                logger.error(f"Sweep iteration failed: {e}", exc_info=True)
                await asyncio.sleep(10)
    finally:
        await context.close()


async def main():
    await sweep_worker()


if __name__ == "__main__":
    asyncio.run(main())
