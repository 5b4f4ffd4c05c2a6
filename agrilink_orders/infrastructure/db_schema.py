from sqlalchemy import (
    Table, Column, String, Integer, Numeric, Text, Enum, DateTime, JSON, MetaData, ForeignKey, Index
)
from sqlalchemy.sql import func

from agrilink_orders.domain.models import OrderStatus, PaymentStatus, Segment

metadata = MetaData()


def _enum(enum_cls, name: str) -> Enum:
    return Enum(enum_cls, name=name, values_callable=lambda members: [m.value for m in members])


# Catalog rows are owned by the product service; ordering reads pricing and
# moves stock between available and reserved.
products_tbl = Table(
    "products",
    metadata,
    Column("id", String, primary_key=True),
    Column("name", String, nullable=False),
    Column("farmer_id", String, nullable=False, index=True),
    Column("b2b_price", Numeric(12, 2), nullable=True),
    Column("b2b_min_quantity", Integer, nullable=False, default=0),
    Column("b2b_unit", String, nullable=False, default="kg"),
    Column("b2c_price", Numeric(12, 2), nullable=True),
    Column("b2c_unit", String, nullable=False, default="kg"),
    Column("total_quantity", Integer, nullable=False, default=0),
    Column("available_quantity", Integer, nullable=False, default=0),
    Column("reserved_quantity", Integer, nullable=False, default=0),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
)


orders_tbl = Table(
    "orders",
    metadata,
    Column("id", String, primary_key=True),
    Column("order_number", String, nullable=False, unique=True),
    Column("buyer_id", String, nullable=False, index=True),
    Column("farmer_id", String, nullable=False, index=True),
    Column("subtotal", Numeric(12, 2), nullable=False),
    Column("shipping_method", String, nullable=False, default="standard"),
    Column("shipping_cost", Numeric(12, 2), nullable=False, default=0),
    Column("total", Numeric(12, 2), nullable=False),
    Column("delivery_address", JSON, nullable=False),
    Column("notes", Text, nullable=True),
    Column("status", _enum(OrderStatus, "order_status"), nullable=False, default=OrderStatus.PAYMENT_PENDING),
    Column("payment_method", String, nullable=True),
    Column("payment_status", _enum(PaymentStatus, "payment_status"), nullable=False, default=PaymentStatus.PENDING),
    Column("payment_reference", String, nullable=True, unique=True),
    Column("payment_amount", Numeric(12, 2), nullable=True),
    Column("payment_currency", String(3), nullable=False, default="GHS"),
    Column("paid_at", DateTime(timezone=True), nullable=True),
    Column("transaction_id", String, nullable=True),
    Column("gateway_response", String, nullable=True),
    Column("failure_reason", String, nullable=True),
    Column("authorization_url", String, nullable=True),
    Column("access_code", String, nullable=True),
    Column("settlement_error", String, nullable=True),
    Column("last_swept_at", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), onupdate=func.now()),
    Index("ix_orders_pending_sweep", "status", "created_at"),
)


order_items_tbl = Table(
    "order_items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("order_id", String, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("position", Integer, nullable=False),
    Column("product_id", String, nullable=False),
    Column("product_name", String, nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("unit_price", Numeric(12, 2), nullable=False),
    Column("unit", String, nullable=False),
    Column("segment", _enum(Segment, "segment"), nullable=False)
)
