from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Tuple
from agrilink_orders.domain.models import (
    Order, OrderStatus, PaymentStatus, Product, ChargeAuthorization, ChargeOutcome
)


class CatalogReader(ABC):
    @abstractmethod
    async def get_by_id(self, product_id: str) -> Optional[Product]:
        pass


class ProductRepository(CatalogReader):
    @abstractmethod
    async def move_to_reserved(self, product_id: str, quantity: int, allow_negative: bool = False) -> bool:
        """Shift quantity from available to reserved; False if the product is
        missing or, unless allow_negative, has less than quantity available."""
        pass


class OrderRepository(ABC):
    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_by_payment_reference(self, reference: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def list(
        self,
        buyer_id: Optional[str] = None,
        farmer_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Order], int]:
        pass

    @abstractmethod
    async def list_payment_pending(self, created_before: datetime, limit: int = 20) -> List[Order]:
        """Unflagged pending orders, least recently swept first"""
        pass

    @abstractmethod
    async def mark_swept(self, order_ids: List[str], swept_at: datetime) -> None:
        pass

    @abstractmethod
    async def flag_settlement_error(self, order_id: str, reason: str) -> bool:
        """Park a still-pending order for an operator; False if it was settled meanwhile."""
        pass

    @abstractmethod
    async def create(self, order: Order) -> None:
        pass

    @abstractmethod
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
        pass

    @abstractmethod
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
        """Compare-and-set on payment status: applies only while it is still pending."""
        pass

    @abstractmethod
    async def update_status(self, order_id: str, expected: OrderStatus, status: OrderStatus) -> bool:
        pass


class UnitOfWork(ABC):
    @property
    @abstractmethod
    def orders(self) -> OrderRepository:
        pass

    @property
    @abstractmethod
    def products(self) -> ProductRepository:
        pass

    @abstractmethod
    async def __call__(self):
        pass

    @abstractmethod
    async def commit(self):
        pass

    @abstractmethod
    async def rollback(self):
        pass


class PaymentGateway(ABC):
    @abstractmethod
    async def initialize_charge(
        self,
        reference: str,
        amount_minor: int,
        currency: str,
        payer_email: str,
        metadata: dict,
        callback_url: Optional[str] = None,
    ) -> ChargeAuthorization:
        pass

    @abstractmethod
    async def verify_charge(self, reference: str) -> ChargeOutcome:
        pass
