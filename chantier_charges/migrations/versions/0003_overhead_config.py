"""Add monthly overhead configuration

Revision ID: 0003_overhead_config
Revises: 0002_transport_fee_unique
Create Date: 2025-10-20 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0003_overhead_config"
down_revision: Union[str, None] = "0002_transport_fee_unique"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "overhead_config",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("financial_costs", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("loan", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("accounting", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("rent", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("general_costs", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("social_charges", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "custom",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )


def downgrade() -> None:
    op.drop_table("overhead_config")
