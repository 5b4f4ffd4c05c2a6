from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy import insert

from agrilink_orders.application.create_order import CreateOrderUseCase, CreateOrderDTO
from agrilink_orders.application.initialize_payment import InitializePaymentUseCase, InitializePaymentDTO
from agrilink_orders.application.interfaces import PaymentGateway
from agrilink_orders.database import create_engine, create_session_factory, init_db
from agrilink_orders.domain.exceptions import GatewayError
from agrilink_orders.domain.models import (
    Address, CartLine, ChargeAuthorization, ChargeOutcome, ChargeStatus, Principal, Role
)
from agrilink_orders.infrastructure.db_schema import products_tbl
from agrilink_orders.infrastructure.unit_of_work import UnitOfWork

FARMER_ID = "farmer-kofi"
OTHER_FARMER_ID = "farmer-abena"


class FakeGateway(PaymentGateway):
    """In-memory Paystack stand-in; outcomes are queued per reference"""

    def __init__(self):
        self.outcomes = {}
        self.initialized = []
        self.verified = []
        self.error: Optional[GatewayError] = None
        self.broken = {}

    async def initialize_charge(self, reference, amount_minor, currency, payer_email, metadata, callback_url=None):
        if self.error:
            raise self.error
        self.initialized.append(
            {
                "reference": reference,
                "amount_minor": amount_minor,
                "currency": currency,
                "email": payer_email,
                "metadata": metadata,
                "callback_url": callback_url,
            }
        )
        return ChargeAuthorization(
            reference=reference,
            authorization_url=f"https://checkout.paystack.com/{reference}",
            access_code=f"access-{len(self.initialized)}",
        )

    async def verify_charge(self, reference):
        self.verified.append(reference)
        if self.error:
            raise self.error
        if reference in self.broken:
            raise self.broken[reference]
        return self.outcomes.get(reference, ChargeOutcome(reference=reference, status=ChargeStatus.PENDING))

    def succeed(self, reference, amount_minor, transaction_id="tx-1"):
        outcome = ChargeOutcome(
            reference=reference,
            status=ChargeStatus.SUCCESS,
            amount_minor=amount_minor,
            currency="GHS",
            paid_at=datetime(2026, 10, 17, 10, 30, tzinfo=timezone.utc),
            transaction_id=transaction_id,
            gateway_response="Approved",
        )
        self.outcomes[reference] = outcome
        return outcome

    def fail(self, reference, gateway_response="Declined"):
        outcome = ChargeOutcome(reference=reference, status=ChargeStatus.FAILED, gateway_response=gateway_response)
        self.outcomes[reference] = outcome
        return outcome


@pytest.fixture
def consumer():
    return Principal(id="buyer-ama", role=Role.CONSUMER, email="ama@example.com")


@pytest.fixture
def institution():
    return Principal(id="buyer-school", role=Role.INSTITUTIONAL_BUYER, email="procurement@school.edu.gh")


@pytest.fixture
def farmer():
    return Principal(id=FARMER_ID, role=Role.FARMER)


@pytest.fixture
def admin():
    return Principal(id="admin-1", role=Role.ADMIN)


@pytest.fixture
def address():
    return Address(street="12 Ring Road", city="Accra", region="Greater Accra")


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def uow(session_factory):
    return UnitOfWork(session_factory)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def seed_product(session_factory):
    async def _seed(
        product_id,
        farmer_id=FARMER_ID,
        name=None,
        b2c_price="20.00",
        b2b_price=None,
        b2b_min_quantity=0,
        available=100,
        reserved=0,
    ):
        async with session_factory() as session:
            await session.execute(
                insert(products_tbl).values(
                    id=product_id,
                    name=name or f"Product {product_id}",
                    farmer_id=farmer_id,
                    b2b_price=Decimal(b2b_price) if b2b_price is not None else None,
                    b2b_min_quantity=b2b_min_quantity,
                    b2b_unit="kg",
                    b2c_price=Decimal(b2c_price) if b2c_price is not None else None,
                    b2c_unit="kg",
                    total_quantity=available + reserved,
                    available_quantity=available,
                    reserved_quantity=reserved,
                )
            )
            await session.commit()

    return _seed


@pytest.fixture
def read_product(uow):
    async def _read(product_id):
        async with uow() as tx:
            return await tx.products.get_by_id(product_id)

    return _read


@pytest.fixture
def place_order(uow, address):
    async def _place(buyer, lines, **kwargs):
        dto = CreateOrderDTO(
            buyer=buyer,
            items=[CartLine(product_id=product_id, quantity=quantity) for product_id, quantity in lines],
            delivery_address=address,
            **kwargs,
        )
        return await CreateOrderUseCase(uow)(dto)

    return _place


@pytest.fixture
def start_payment(uow, gateway):
    async def _start(order, payer):
        use_case = InitializePaymentUseCase(uow, gateway)
        authorization = await use_case(
            InitializePaymentDTO(order_id=order.id, email=payer.email or "buyer@example.com", payer=payer)
        )
        return authorization.reference

    return _start
