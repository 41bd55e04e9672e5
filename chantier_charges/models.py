from __future__ import annotations

import enum
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from chantier_charges.db import Base

TRANSPORT_FEE_KIND = "TRANSPORT"
OVERHEAD_FEE_KIND = "OVERHEAD"


class JobSiteStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    PROVISIONAL = "PROVISIONAL"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class ChargeCategory(str, enum.Enum):
    PURCHASE = "PURCHASE"
    EXTERNAL_SERVICE = "EXTERNAL_SERVICE"
    TEMP_LABOR = "TEMP_LABOR"
    PERSONNEL = "PERSONNEL"
    FIXED_COST = "FIXED_COST"
    OTHER = "OTHER"


class JobSite(Base):
    __tablename__ = "job_sites"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    client: Mapped[str | None] = mapped_column(String(255), nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[JobSiteStatus] = mapped_column(
        Enum(JobSiteStatus, name="job_site_status"),
        nullable=False,
        default=JobSiteStatus.ACTIVE,
        server_default=JobSiteStatus.ACTIVE.value,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    charges: Mapped[list[Charge]] = relationship(back_populates="job_site")


class Worker(Base):
    __tablename__ = "workers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    registration_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    hourly_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default=text("0"))
    has_vehicle: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))


class Charge(Base):
    __tablename__ = "charges"
    __table_args__ = (
        UniqueConstraint(
            "job_site_id",
            "fee_kind",
            "fee_date",
            name="uq_charges_site_fee_kind_date",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_site_id: Mapped[int] = mapped_column(
        ForeignKey("job_sites.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category: Mapped[ChargeCategory] = mapped_column(
        Enum(ChargeCategory, name="charge_category"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default=text("0"))
    charge_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )
    fee_kind: Mapped[str | None] = mapped_column(String(32), nullable=True)
    fee_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    job_site: Mapped[JobSite] = relationship(back_populates="charges")


class TransportFeeConfig(Base):
    __tablename__ = "transport_fee_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    truck: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default=text("0"))
    insurance: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default=text("0"))
    fuel: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default=text("0"))
    custom: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        server_default=text("'[]'::jsonb"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class OverheadConfig(Base):
    __tablename__ = "overhead_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    financial_costs: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default=text("0"))
    loan: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default=text("0"))
    accounting: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default=text("0"))
    rent: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default=text("0"))
    general_costs: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default=text("0"))
    social_charges: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default=text("0"))
    custom: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        server_default=text("'[]'::jsonb"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )
