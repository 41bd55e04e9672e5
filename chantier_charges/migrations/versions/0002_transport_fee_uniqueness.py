"""Add transport fee markers and one-fee-per-site-per-day constraint

Revision ID: 0002_transport_fee_unique
Revises: 0001_initial
Create Date: 2025-10-06 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0002_transport_fee_unique"
down_revision: Union[str, None] = "0001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("charges", sa.Column("fee_kind", sa.String(length=32), nullable=True))
    op.add_column("charges", sa.Column("fee_date", sa.Date(), nullable=True))

    # Rows written before the markers existed carry the date in their payload.
    op.execute(
        """
        UPDATE charges
        SET fee_kind = 'TRANSPORT',
            fee_date = (payload -> 'transport_fee' ->> 'date')::date
        WHERE category = 'FIXED_COST'
          AND payload -> 'transport_fee' IS NOT NULL
          AND id IN (
              SELECT MIN(id)
              FROM charges
              WHERE category = 'FIXED_COST' AND payload -> 'transport_fee' IS NOT NULL
              GROUP BY job_site_id, payload -> 'transport_fee' ->> 'date'
          )
        """
    )

    op.create_unique_constraint(
        "uq_charges_site_fee_kind_date",
        "charges",
        ["job_site_id", "fee_kind", "fee_date"],
    )


def downgrade() -> None:
    op.drop_constraint("uq_charges_site_fee_kind_date", "charges", type_="unique")
    op.drop_column("charges", "fee_date")
    op.drop_column("charges", "fee_kind")
