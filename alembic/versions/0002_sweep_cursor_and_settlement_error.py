"""sweep cursor and settlement error on orders

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-17 15:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("orders", sa.Column("settlement_error", sa.String(), nullable=True))
    op.add_column("orders", sa.Column("last_swept_at", sa.DateTime(timezone=True), nullable=True))


def downgrade() -> None:
    op.drop_column("orders", "last_swept_at")
    op.drop_column("orders", "settlement_error")
