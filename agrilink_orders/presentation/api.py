import json
import logging
import math
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse
from starlette.datastructures import URL

from agrilink_orders.presentation.schemas import (
    CreateOrderRequest, UpdateStatusRequest, InitializePaymentRequest,
    OrderResponse, OrderListResponse, PaymentInitResponse, PaymentStatusResponse, ErrorResponse
)
from agrilink_orders.application.create_order import CreateOrderUseCase, CreateOrderDTO
from agrilink_orders.application.get_order import GetOrderUseCase, ListOrdersUseCase, GetPaymentStatusUseCase
from agrilink_orders.application.update_status import UpdateOrderStatusUseCase
from agrilink_orders.application.initialize_payment import InitializePaymentUseCase, InitializePaymentDTO
from agrilink_orders.application.reconcile_payment import ReconcilePaymentUseCase, VerifyPaymentUseCase
from agrilink_orders.domain.models import OrderStatus, PaymentStatus, Principal, Role
from agrilink_orders.domain.exceptions import (
    DomainException,
    ValidationError,
    NotFoundError,
    OrderNotFoundError,
    NotAuthorizedError,
    InvalidTransitionError,
    InventoryExhaustedError,
    GatewayError,
    PersistenceError,
)
from agrilink_orders.infrastructure.context import ServiceContext
from agrilink_orders.infrastructure.http_clients import is_valid_signature

logger = logging.getLogger(__name__)

router = APIRouter()

_ERROR_STATUS = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotAuthorizedError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (InventoryExhaustedError, status.HTTP_409_CONFLICT),
    (GatewayError, status.HTTP_502_BAD_GATEWAY),
    (PersistenceError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def _http_error(error: DomainException) -> HTTPException:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))


def get_context(request: Request) -> ServiceContext:
    return request.app.state.context


def get_principal(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
    x_user_email: Optional[str] = Header(default=None),
) -> Principal:
    """The auth layer in front of this service sets these headers"""
    if not x_user_id or not x_user_role:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    try:
        role = Role(x_user_role)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Unknown role: {x_user_role}")
    return Principal(id=x_user_id, role=role, email=x_user_email)


# Use case factories
def get_create_order_use_case(ctx: ServiceContext = Depends(get_context)):
    return CreateOrderUseCase(ctx.unit_of_work(), currency=ctx.settings.CURRENCY)


def get_get_order_use_case(ctx: ServiceContext = Depends(get_context)):
    return GetOrderUseCase(ctx.unit_of_work())


def get_list_orders_use_case(ctx: ServiceContext = Depends(get_context)):
    return ListOrdersUseCase(ctx.unit_of_work())


def get_update_status_use_case(ctx: ServiceContext = Depends(get_context)):
    return UpdateOrderStatusUseCase(ctx.unit_of_work())


def get_initialize_payment_use_case(ctx: ServiceContext = Depends(get_context)):
    return InitializePaymentUseCase(
        ctx.unit_of_work(),
        ctx.gateway,
        currency=ctx.settings.CURRENCY,
        callback_base_url=ctx.settings.PAYSTACK_CALLBACK_URL or None,
        min_charge_minor=ctx.settings.MIN_CHARGE_MINOR_UNITS
    )


def get_verify_payment_use_case(ctx: ServiceContext = Depends(get_context)):
    uow = ctx.unit_of_work()
    reconcile = ReconcilePaymentUseCase(uow, allow_negative_inventory=ctx.settings.ALLOW_NEGATIVE_INVENTORY)
    return VerifyPaymentUseCase(uow, ctx.gateway, reconcile)


def get_payment_status_use_case(ctx: ServiceContext = Depends(get_context)):
    return GetPaymentStatusUseCase(ctx.unit_of_work())


@router.post(
    "/orders",
    response_model=OrderResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    status_code=status.HTTP_201_CREATED
)
async def create_order(
    request: CreateOrderRequest,
    principal: Principal = Depends(get_principal),
    use_case: CreateOrderUseCase = Depends(get_create_order_use_case)
):
    """Create an order awaiting payment"""
    try:
        dto = CreateOrderDTO(
            buyer=principal,
            items=request.items,
            delivery_address=request.delivery_address,
            notes=request.notes,
            shipping=request.shipping
        )
        order = await use_case(dto)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise _http_error(e)


@router.get("/orders", response_model=OrderListResponse)
async def list_orders(
    order_status: Optional[OrderStatus] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    principal: Principal = Depends(get_principal),
    use_case: ListOrdersUseCase = Depends(get_list_orders_use_case)
):
    """Orders visible to the caller, newest first"""
    try:
        orders, total = await use_case(principal, status=order_status, page=page, limit=limit)
    except DomainException as e:
        raise _http_error(e)
    return OrderListResponse(
        orders=[OrderResponse.from_domain(o) for o in orders],
        total=total,
        total_pages=math.ceil(total / limit),
        current_page=page
    )


@router.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)
async def get_order(
    order_id: str,
    principal: Principal = Depends(get_principal),
    use_case: GetOrderUseCase = Depends(get_get_order_use_case)
):
    try:
        order = await use_case(order_id, principal)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise _http_error(e)


@router.put(
    "/orders/{order_id}/status",
    response_model=OrderResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def update_order_status(
    order_id: str,
    request: UpdateStatusRequest,
    principal: Principal = Depends(get_principal),
    use_case: UpdateOrderStatusUseCase = Depends(get_update_status_use_case)
):
    """Fulfillment step by the order's farmer or an admin"""
    try:
        order = await use_case(order_id, request.status, principal)
        return OrderResponse.from_domain(order)
    except DomainException as e:
        raise _http_error(e)


@router.post(
    "/payments/initialize",
    response_model=PaymentInitResponse,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 502: {"model": ErrorResponse}}
)
async def initialize_payment(
    request: InitializePaymentRequest,
    principal: Principal = Depends(get_principal),
    use_case: InitializePaymentUseCase = Depends(get_initialize_payment_use_case)
):
    """Start a Paystack checkout for the order"""
    try:
        authorization = await use_case(
            InitializePaymentDTO(order_id=request.order_id, email=request.email, payer=principal)
        )
    except DomainException as e:
        raise _http_error(e)
    return PaymentInitResponse(
        authorization_url=authorization.authorization_url,
        access_code=authorization.access_code,
        reference=authorization.reference
    )


@router.get(
    "/payments/verify/{reference}",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}}
)
async def verify_payment(
    reference: str,
    redirect: Optional[str] = Query(default=None),
    ctx: ServiceContext = Depends(get_context),
    use_case: VerifyPaymentUseCase = Depends(get_verify_payment_use_case)
):
    """Buyer returns from checkout; safe to call repeatedly.

    With ?redirect= the browser is sent back to the storefront with the
    outcome in the query string. Only the PAYSTACK_CALLBACK_URL origin is
    accepted as a target.
    """
    if redirect is not None and not _is_allowed_redirect(redirect, ctx.settings.PAYSTACK_CALLBACK_URL):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Redirect target not allowed")

    try:
        order = await use_case(reference)
    except DomainException as e:
        raise _http_error(e)

    if redirect is None:
        return OrderResponse.from_domain(order)
    target = URL(redirect).include_query_params(
        reference=reference, status=_redirect_status(order), orderId=order.id
    )
    return RedirectResponse(str(target), status_code=status.HTTP_302_FOUND)


def _is_allowed_redirect(target: str, callback_url: str) -> bool:
    if not callback_url:
        return False
    allowed, requested = URL(callback_url), URL(target)
    return requested.scheme in ("http", "https") and (requested.scheme, requested.netloc) == (allowed.scheme, allowed.netloc)


def _redirect_status(order) -> str:
    if order.payment.status == PaymentStatus.SUCCESS:
        return "success"
    if order.payment.status == PaymentStatus.FAILED:
        return "failed"
    return "pending"


@router.post("/payments/webhook")
async def paystack_webhook(
    request: Request,
    x_paystack_signature: Optional[str] = Header(default=None),
    ctx: ServiceContext = Depends(get_context),
    use_case: VerifyPaymentUseCase = Depends(get_verify_payment_use_case)
):
    """Paystack server-to-server notification"""
    body = await request.body()
    if not is_valid_signature(ctx.settings.PAYSTACK_SECRET_KEY, body, x_paystack_signature):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        event = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed event")
    if not isinstance(event, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed event")

    if event.get("event") != "charge.success":
        return {"status": "ignored"}

    reference = (event.get("data") or {}).get("reference")
    if not reference:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Event has no reference")

    # The event body is only a hint; the outcome comes from verify_charge
    try:
        order = await use_case(reference)
    except OrderNotFoundError:
        logger.warning(f"Webhook for unknown payment {reference}")
        return {"status": "ignored"}
    except DomainException as e:
        raise _http_error(e)
    return {"status": "ok", "order_status": order.status.value}


@router.get(
    "/payments/status/{order_id}",
    response_model=PaymentStatusResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)
async def payment_status(
    order_id: str,
    principal: Principal = Depends(get_principal),
    use_case: GetPaymentStatusUseCase = Depends(get_payment_status_use_case)
):
    try:
        order = await use_case(order_id, principal)
    except DomainException as e:
        raise _http_error(e)
    return PaymentStatusResponse(
        order_id=order.id,
        order_number=order.order_number,
        status=order.status,
        payment=OrderResponse.from_domain(order).payment
    )
