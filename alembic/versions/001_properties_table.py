"""Properties table — tracked listings with price history

Revision ID: 001_properties_table
Revises: None
Create Date: 2026-10-17
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers
revision: str = "001_properties_table"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "properties",
        sa.Column("zpid", sa.String(), primary_key=True, comment="External listing identifier"),
        sa.Column("price", sa.DECIMAL(14, 2), nullable=False, server_default="0", comment="0 = never observed"),
        sa.Column("raw_home_status_cd", sa.String(), nullable=True),
        sa.Column("time_on_zillow", sa.String(), nullable=True),
        sa.Column("price_changes", JSONB(), nullable=True, comment="Chronological price history"),
        sa.Column("update_at", sa.String(), nullable=True, comment="Last price change, whole-second UTC"),
        sa.Column("inserted_at", sa.TIMESTAMP(timezone=True), nullable=True, server_default=sa.func.now()),
        sa.Column("address", sa.String(), nullable=True),
        sa.Column("address_city", sa.String(), nullable=True),
        sa.Column("address_state", sa.String(), nullable=True),
        sa.Column("address_zipcode", sa.String(), nullable=True),
        sa.Column("beds", sa.INTEGER(), nullable=True),
        sa.Column("baths", sa.INTEGER(), nullable=True),
        sa.Column("area", sa.INTEGER(), nullable=True),
        sa.Column("year_built", sa.INTEGER(), nullable=True),
        sa.Column("broker_name", sa.String(), nullable=True),
        sa.Column("detail_url", sa.String(), nullable=True),
        sa.Column("note", sa.String(), nullable=True),
    )
    # Candidate query: WHERE price = 0
    op.create_index("ix_properties_price", "properties", ["price"])


def downgrade() -> None:
    op.drop_index("ix_properties_price", table_name="properties")
    op.drop_table("properties")
