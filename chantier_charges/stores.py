"""Persistence collaborators used by the billing engine.

The engine only talks to the four protocols below. The SQLAlchemy
implementations translate driver and schema failures into
``StoreUnavailableError`` and let ``IntegrityError`` through so callers can
react to the storage-level uniqueness guarantees. A failed commit is always
rolled back first, so the session stays usable for the next write.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Any, Protocol

from fastapi import Depends
from sqlalchemy import and_, or_, select
from sqlalchemy.exc import InterfaceError, OperationalError, ProgrammingError, SQLAlchemyError
from sqlalchemy.orm import Session

from chantier_charges.db import get_db
from chantier_charges.errors import NotFoundError, StoreUnavailableError
from chantier_charges.models import (
    TRANSPORT_FEE_KIND,
    Charge,
    ChargeCategory,
    JobSite,
    JobSiteStatus,
    OverheadConfig,
    TransportFeeConfig,
    Worker,
)
from chantier_charges.settings import get_settings


class ChargeStore(Protocol):
    def list_personnel_charges(self) -> list[Charge]: ...

    def list_site_charges(self, job_site_id: int) -> list[Charge]: ...

    def get_charge_by_id(self, charge_id: int) -> Charge | None: ...

    def create_charge(self, charge: Charge) -> Charge: ...

    def update_charge(self, charge_id: int, values: dict[str, Any]) -> Charge: ...

    def delete_charge(self, charge_id: int) -> None: ...

    def find_transport_fee(self, job_site_id: int, fee_date: date) -> Charge | None: ...

    def find_fee_charge(self, job_site_id: int, fee_kind: str, fee_date: date) -> Charge | None: ...


class JobSiteStore(Protocol):
    def get_by_id(self, job_site_id: int) -> JobSite | None: ...

    def list_active(self) -> list[JobSite]: ...


class WorkerStore(Protocol):
    def get_by_id(self, worker_id: int) -> Worker | None: ...

    def list_vehicle_equipped(self) -> list[Worker]: ...


class TransportFeeConfigStore(Protocol):
    def get_config(self) -> list[dict[str, Any]]: ...

    def get_or_create(self) -> TransportFeeConfig: ...

    def save(self, config: TransportFeeConfig) -> TransportFeeConfig: ...


class OverheadConfigStore(Protocol):
    def get_or_create(self) -> OverheadConfig: ...

    def save(self, config: OverheadConfig) -> OverheadConfig: ...


@dataclass(slots=True)
class EngineStores:
    charges: ChargeStore
    job_sites: JobSiteStore
    workers: WorkerStore
    transport_config: TransportFeeConfigStore
    overhead_config: OverheadConfigStore


def custom_components(config: TransportFeeConfig | OverheadConfig) -> list[dict[str, Any]]:
    components: list[dict[str, Any]] = []
    for item in config.custom or []:
        if not isinstance(item, dict):
            continue
        try:
            amount = float(item.get("amount") or 0)
        except (TypeError, ValueError):
            amount = 0.0
        components.append({"label": str(item.get("label") or "custom"), "amount": amount})
    return components


def config_components(config: TransportFeeConfig) -> list[dict[str, Any]]:
    return [
        {"label": "truck", "amount": float(config.truck or 0)},
        {"label": "insurance", "amount": float(config.insurance or 0)},
        {"label": "fuel", "amount": float(config.fuel or 0)},
        *custom_components(config),
    ]


@contextmanager
def _store_errors(db: Session, operation: str) -> Iterator[None]:
    try:
        yield
    except (OperationalError, ProgrammingError, InterfaceError) as exc:
        db.rollback()
        raise StoreUnavailableError(f"Charge store unavailable during {operation}.") from exc


def _commit_or_rollback(db: Session) -> None:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise


class SqlChargeStore:
    def __init__(self, db: Session):
        self.db = db

    def list_personnel_charges(self) -> list[Charge]:
        with _store_errors(self.db, "list_personnel_charges"):
            stmt = (
                select(Charge)
                .where(Charge.category == ChargeCategory.PERSONNEL)
                .order_by(Charge.id.asc())
            )
            return list(self.db.scalars(stmt).all())

    def list_site_charges(self, job_site_id: int) -> list[Charge]:
        with _store_errors(self.db, "list_site_charges"):
            stmt = (
                select(Charge)
                .where(Charge.job_site_id == job_site_id)
                .order_by(Charge.charge_date.desc().nulls_last(), Charge.id.desc())
            )
            return list(self.db.scalars(stmt).all())

    def get_charge_by_id(self, charge_id: int) -> Charge | None:
        with _store_errors(self.db, "get_charge_by_id"):
            return self.db.get(Charge, charge_id)

    def create_charge(self, charge: Charge) -> Charge:
        with _store_errors(self.db, "create_charge"):
            self.db.add(charge)
            _commit_or_rollback(self.db)
            self.db.refresh(charge)
            return charge

    def update_charge(self, charge_id: int, values: dict[str, Any]) -> Charge:
        with _store_errors(self.db, "update_charge"):
            charge = self.db.get(Charge, charge_id)
            if charge is None:
                raise NotFoundError("Charge not found")
            for field_name, value in values.items():
                setattr(charge, field_name, value)
            _commit_or_rollback(self.db)
            self.db.refresh(charge)
            return charge

    def delete_charge(self, charge_id: int) -> None:
        with _store_errors(self.db, "delete_charge"):
            charge = self.db.get(Charge, charge_id)
            if charge is None:
                raise NotFoundError("Charge not found")
            self.db.delete(charge)
            _commit_or_rollback(self.db)

    def find_transport_fee(self, job_site_id: int, fee_date: date) -> Charge | None:
        charge_name = get_settings().transport_fee_charge_name
        with _store_errors(self.db, "find_transport_fee"):
            stmt = (
                select(Charge)
                .where(
                    Charge.job_site_id == job_site_id,
                    Charge.category == ChargeCategory.FIXED_COST,
                    or_(
                        and_(Charge.fee_kind == TRANSPORT_FEE_KIND, Charge.fee_date == fee_date),
                        and_(
                            Charge.name == charge_name,
                            Charge.payload["transport_fee"]["date"].astext == fee_date.isoformat(),
                        ),
                    ),
                )
                .order_by(Charge.id.asc())
                .limit(1)
            )
            return self.db.scalar(stmt)

    def find_fee_charge(self, job_site_id: int, fee_kind: str, fee_date: date) -> Charge | None:
        with _store_errors(self.db, "find_fee_charge"):
            stmt = (
                select(Charge)
                .where(
                    Charge.job_site_id == job_site_id,
                    Charge.fee_kind == fee_kind,
                    Charge.fee_date == fee_date,
                )
                .order_by(Charge.id.asc())
                .limit(1)
            )
            return self.db.scalar(stmt)


class SqlJobSiteStore:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, job_site_id: int) -> JobSite | None:
        with _store_errors(self.db, "get_job_site"):
            return self.db.get(JobSite, job_site_id)

    def list_active(self) -> list[JobSite]:
        with _store_errors(self.db, "list_active_job_sites"):
            stmt = select(JobSite).where(JobSite.status == JobSiteStatus.ACTIVE).order_by(JobSite.id.asc())
            return list(self.db.scalars(stmt).all())


class SqlWorkerStore:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, worker_id: int) -> Worker | None:
        with _store_errors(self.db, "get_worker"):
            return self.db.get(Worker, worker_id)

    def list_vehicle_equipped(self) -> list[Worker]:
        with _store_errors(self.db, "list_vehicle_equipped"):
            stmt = select(Worker).where(Worker.has_vehicle.is_(True)).order_by(Worker.id.asc())
            return list(self.db.scalars(stmt).all())


class SqlTransportFeeConfigStore:
    def __init__(self, db: Session):
        self.db = db

    def get_or_create(self) -> TransportFeeConfig:
        with _store_errors(self.db, "get_transport_fee_config"):
            config = self.db.scalar(select(TransportFeeConfig).order_by(TransportFeeConfig.id.asc()).limit(1))
            if config is None:
                config = TransportFeeConfig(truck=0.0, insurance=0.0, fuel=0.0, custom=[])
                self.db.add(config)
                _commit_or_rollback(self.db)
                self.db.refresh(config)
            return config

    def get_config(self) -> list[dict[str, Any]]:
        return config_components(self.get_or_create())

    def save(self, config: TransportFeeConfig) -> TransportFeeConfig:
        with _store_errors(self.db, "save_transport_fee_config"):
            self.db.add(config)
            _commit_or_rollback(self.db)
            self.db.refresh(config)
            return config


class SqlOverheadConfigStore:
    def __init__(self, db: Session):
        self.db = db

    def get_or_create(self) -> OverheadConfig:
        with _store_errors(self.db, "get_overhead_config"):
            config = self.db.scalar(select(OverheadConfig).order_by(OverheadConfig.id.asc()).limit(1))
            if config is None:
                config = OverheadConfig(
                    financial_costs=0.0,
                    loan=0.0,
                    accounting=0.0,
                    rent=0.0,
                    general_costs=0.0,
                    social_charges=0.0,
                    custom=[],
                )
                self.db.add(config)
                _commit_or_rollback(self.db)
                self.db.refresh(config)
            return config

    def save(self, config: OverheadConfig) -> OverheadConfig:
        with _store_errors(self.db, "save_overhead_config"):
            self.db.add(config)
            _commit_or_rollback(self.db)
            self.db.refresh(config)
            return config


def build_sql_stores(db: Session) -> EngineStores:
    return EngineStores(
        charges=SqlChargeStore(db),
        job_sites=SqlJobSiteStore(db),
        workers=SqlWorkerStore(db),
        transport_config=SqlTransportFeeConfigStore(db),
        overhead_config=SqlOverheadConfigStore(db),
    )


def get_stores(db: Session = Depends(get_db)) -> EngineStores:
    return build_sql_stores(db)
