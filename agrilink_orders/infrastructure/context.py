import logging
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from agrilink_orders.config import Settings
from agrilink_orders.database import create_engine, create_session_factory
from agrilink_orders.application.interfaces import PaymentGateway
from agrilink_orders.infrastructure.http_clients import HTTPPaystackClient
from agrilink_orders.infrastructure.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


class ServiceContext:
    """Process-wide handles: database engine, session factory, gateway client.

    Built once at startup with open() and released with close().
    """

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: PaymentGateway,
        engine: Optional[AsyncEngine] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self.session_factory = session_factory
        self.gateway = gateway
        self.engine = engine
        self._http_client = http_client

    @classmethod
    async def open(cls, settings: Settings) -> "ServiceContext":
        engine = create_engine(settings.DATABASE_URL)
        http_client = httpx.AsyncClient()
        gateway = HTTPPaystackClient(
            http_client,
            base_url=settings.PAYSTACK_BASE_URL,
            secret_key=settings.PAYSTACK_SECRET_KEY,
            timeout=settings.GATEWAY_TIMEOUT,
            max_retries=settings.GATEWAY_MAX_RETRIES,
            retry_delay=settings.GATEWAY_RETRY_DELAY
        )
        if not settings.PAYSTACK_SECRET_KEY:
            logger.warning("PAYSTACK_SECRET_KEY not set, payment features disabled")
        logger.info("Service context opened")
        return cls(settings, create_session_factory(engine), gateway, engine=engine, http_client=http_client)

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
        if self.engine is not None:
            await self.engine.dispose()
        logger.info("Service context closed")

    def unit_of_work(self) -> UnitOfWork:
        return UnitOfWork(self.session_factory)
