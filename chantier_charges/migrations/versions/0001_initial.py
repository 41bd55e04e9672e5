"""Initial job site charges schema

Revision ID: 0001_initial
Revises:
Create Date: 2025-09-01 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

job_site_status = postgresql.ENUM(
    "ACTIVE",
    "PROVISIONAL",
    "CLOSED",
    "CANCELLED",
    name="job_site_status",
    create_type=False,
)
charge_category = postgresql.ENUM(
    "PURCHASE",
    "EXTERNAL_SERVICE",
    "TEMP_LABOR",
    "PERSONNEL",
    "FIXED_COST",
    "OTHER",
    name="charge_category",
    create_type=False,
)


def upgrade() -> None:
    bind = op.get_bind()
    job_site_status.create(bind, checkfirst=True)
    charge_category.create(bind, checkfirst=True)

    op.create_table(
        "job_sites",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("client", sa.String(length=255), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("status", job_site_status, nullable=False, server_default="ACTIVE"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )

    op.create_table(
        "workers",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("registration_number", sa.String(length=64), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("hourly_rate", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("has_vehicle", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.UniqueConstraint("registration_number", name="uq_workers_registration_number"),
    )

    op.create_table(
        "charges",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("job_site_id", sa.Integer(), nullable=False),
        sa.Column("category", charge_category, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("amount", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("charge_date", sa.Date(), nullable=True),
        sa.Column(
            "payload",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["job_site_id"], ["job_sites.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_charges_job_site_id", "charges", ["job_site_id"], unique=False)
    op.create_index("ix_charges_category", "charges", ["category"], unique=False)

    op.create_table(
        "transport_fee_config",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("truck", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("insurance", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("fuel", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "custom",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )


def downgrade() -> None:
    op.drop_table("transport_fee_config")
    op.drop_index("ix_charges_category", table_name="charges")
    op.drop_index("ix_charges_job_site_id", table_name="charges")
    op.drop_table("charges")
    op.drop_table("workers")
    op.drop_table("job_sites")

    bind = op.get_bind()
    charge_category.drop(bind, checkfirst=True)
    job_site_status.drop(bind, checkfirst=True)
