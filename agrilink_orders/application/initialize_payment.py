import logging
import time
from typing import Optional
from pydantic import BaseModel

from agrilink_orders.domain.models import (
    ChargeAuthorization, OrderStatus, PaymentStatus, Principal, to_minor_units
)
from agrilink_orders.domain.exceptions import (
    OrderNotFoundError,
    NotAuthorizedError,
    PaymentAlreadyCompletedError,
    InvalidTransitionError,
    ChargeAmountTooSmallError,
    GatewayError,
)
from agrilink_orders.application.interfaces import PaymentGateway

logger = logging.getLogger(__name__)


class InitializePaymentDTO(BaseModel):
    order_id: str
    email: str
    payer: Principal


class InitializePaymentUseCase:
    def __init__(
        self,
        unit_of_work,
        gateway: PaymentGateway,
        currency: str = "GHS",
        callback_base_url: Optional[str] = None,
        min_charge_minor: int = 100,
        method: str = "paystack",
    ):
        self._uow = unit_of_work
        self._gateway = gateway
        self._currency = currency
        self._callback_base_url = callback_base_url
        self._min_charge_minor = min_charge_minor
        self._method = method

    async def __call__(self, dto: InitializePaymentDTO) -> ChargeAuthorization:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(dto.order_id)
        if not order:
            raise OrderNotFoundError(f"Order {dto.order_id} not found")
        if order.buyer_id != dto.payer.id:
            raise NotAuthorizedError("Not authorized to pay for this order")
        if order.payment.status == PaymentStatus.SUCCESS:
            raise PaymentAlreadyCompletedError("Order has already been paid")
        if not order.can_be_paid():
            raise InvalidTransitionError(
                order.status, OrderStatus.CONFIRMED, "order is no longer awaiting payment, start a new order"
            )

        # A reference is attached once; asking again returns the same checkout
        if order.payment.reference:
            logger.info(f"Order {order.order_number} already has payment {order.payment.reference}")
            return ChargeAuthorization(
                reference=order.payment.reference,
                authorization_url=order.payment.authorization_url or "",
                access_code=order.payment.access_code or ""
            )

        amount_minor = to_minor_units(order.total)
        if amount_minor < self._min_charge_minor:
            raise ChargeAmountTooSmallError(amount_minor, self._min_charge_minor)

        reference = f"{order.order_number}-{int(time.time() * 1000)}"
        callback_url = None
        if self._callback_base_url:
            callback_url = f"{self._callback_base_url.rstrip('/')}/customer?payment=verify&reference={reference}"

        try:
            authorization = await self._gateway.initialize_charge(
                reference=reference,
                amount_minor=amount_minor,
                currency=self._currency,
                payer_email=dto.email,
                metadata={
                    "orderId": order.id,
                    "orderNumber": order.order_number,
                    "buyerId": order.buyer_id
                },
                callback_url=callback_url
            )
        except GatewayError as e:
            # Order stays payment_pending without a reference, so a retry starts clean
            logger.error(f"Payment initialization for order {order.order_number} failed: {e}")
            raise

        async with self._uow() as uow:
            attached = await uow.orders.attach_payment(
                order.id,
                reference=reference,
                method=self._method,
                amount=order.total,
                currency=self._currency,
                authorization_url=authorization.authorization_url,
                access_code=authorization.access_code
            )
            if not attached:
                current = await uow.orders.get_by_id(order.id)
                if current.payment.reference and current.can_be_paid():
                    logger.info(f"Order {order.order_number} got payment {current.payment.reference} concurrently")
                    return ChargeAuthorization(
                        reference=current.payment.reference,
                        authorization_url=current.payment.authorization_url or "",
                        access_code=current.payment.access_code or ""
                    )
                raise InvalidTransitionError(current.status, OrderStatus.CONFIRMED, "order is no longer awaiting payment")
            await uow.commit()

        logger.info(f"Payment initialized for order {order.order_number}: {reference}")
        return ChargeAuthorization(
            reference=reference,
            authorization_url=authorization.authorization_url,
            access_code=authorization.access_code
        )
