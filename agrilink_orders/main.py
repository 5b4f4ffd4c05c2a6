import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from agrilink_orders.config import settings
from agrilink_orders.database import init_db
from agrilink_orders.infrastructure.context import ServiceContext
from agrilink_orders.presentation.api import router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open shared handles at startup, release them at shutdown"""
    context = await ServiceContext.open(settings)
    await init_db(context.engine)
    logger.info("Tables ready")
    app.state.context = context

    yield

    logger.info("Order service shutting down...")
    await context.close()


app = FastAPI(
    title="AgriLink Orders",
    description="Order lifecycle and payment settlement for the AgriLink marketplace",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(router, prefix="/api")


@app.get("/health")
async def health():
    return {"status": "healthy"}
