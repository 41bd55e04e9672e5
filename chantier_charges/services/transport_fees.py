from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chantier_charges.db import SessionLocal
from chantier_charges.errors import NotFoundError, ValidationError
from chantier_charges.models import TRANSPORT_FEE_KIND, Charge, ChargeCategory, TransportFeeConfig, Worker
from chantier_charges.schemas import (
    CostComponent,
    TransportFeeConfigRead,
    TransportFeeConfigUpdate,
)
from chantier_charges.services.ownership import PersonnelChargeLike, load_personnel_assignments
from chantier_charges.settings import get_settings
from chantier_charges.stores import EngineStores, build_sql_stores, config_components, custom_components

logger = logging.getLogger("chantier_charges.transport_fees")


@dataclass(frozen=True, slots=True)
class SiteChargeFailure:
    job_site_id: int
    error: str


@dataclass(frozen=True, slots=True)
class PlannedTransportFee:
    job_site_id: int
    amount: float
    worker_ids: tuple[int, ...]


@dataclass(slots=True)
class TransportFeeResult:
    fee_date: date
    amount: float
    created_count: int = 0
    skipped_count: int = 0
    failures: list[SiteChargeFailure] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fee_date": self.fee_date.isoformat(),
            "amount": self.amount,
            "created_count": self.created_count,
            "skipped_count": self.skipped_count,
            "failed_count": self.failed_count,
            "failures": [
                {"job_site_id": item.job_site_id, "error": item.error}
                for item in self.failures
            ],
        }


def resolve_transport_amount(stores: EngineStores, explicit_amount: float | None) -> float:
    if explicit_amount is not None and explicit_amount > 0:
        return round(float(explicit_amount), 2)

    configured = round(
        sum(float(component.get("amount") or 0) for component in stores.transport_config.get_config()),
        2,
    )
    if configured <= 0:
        raise ValidationError("No positive transport fee amount could be resolved.")
    return configured


def resolve_vehicle_cohort(stores: EngineStores, worker_id: int | None = None) -> list[Worker]:
    workers = stores.workers.list_vehicle_equipped()
    if worker_id is None:
        return workers
    selected = [worker for worker in workers if worker.id == worker_id]
    if not selected:
        raise NotFoundError("Vehicle-equipped worker not found")
    return selected


def sites_by_worker(
    personnel_charges: Iterable[PersonnelChargeLike],
    worker_ids: set[int],
    fee_date: date,
) -> dict[int, list[int]]:
    """Distinct job sites per worker with a billable day on ``fee_date``, oldest charge first."""
    result: dict[int, list[int]] = {}
    for charge in sorted(personnel_charges, key=lambda item: item.id):
        job_site_id = getattr(charge, "job_site_id", None)
        if job_site_id is None:
            continue
        for assignment in load_personnel_assignments(charge):
            if assignment.is_fee or assignment.worker_id not in worker_ids:
                continue
            if not any(day.billable and day.day_date == fee_date for day in assignment.days):
                continue
            worker_sites = result.setdefault(assignment.worker_id, [])
            if job_site_id not in worker_sites:
                worker_sites.append(job_site_id)
    return result


def plan_transport_fees(site_map: dict[int, list[int]], amount: float) -> list[PlannedTransportFee]:
    """Split the amount evenly over each worker's sites; the first share per site wins."""
    planned: dict[int, PlannedTransportFee] = {}
    for worker_id in sorted(site_map):
        job_site_ids = site_map[worker_id]
        if not job_site_ids:
            continue
        share = round(amount / len(job_site_ids), 2)
        if share <= 0:
            continue
        for job_site_id in job_site_ids:
            if job_site_id in planned:
                logger.info(
                    "transport_fee_share_dropped",
                    extra={
                        "job_site_id": job_site_id,
                        "worker_id": worker_id,
                        "share": share,
                    },
                )
                continue
            planned[job_site_id] = PlannedTransportFee(
                job_site_id=job_site_id,
                amount=share,
                worker_ids=(worker_id,),
            )
    return list(planned.values())


def _build_transport_charge(planned: PlannedTransportFee, *, fee_date: date, daily_amount: float) -> Charge:
    return Charge(
        job_site_id=planned.job_site_id,
        category=ChargeCategory.FIXED_COST,
        name=get_settings().transport_fee_charge_name,
        description=f"Frais de transport du {fee_date.isoformat()} (vehicule de chantier).",
        amount=planned.amount,
        charge_date=fee_date,
        payload={
            "transport_fee": {
                "date": fee_date.isoformat(),
                "worker_ids": list(planned.worker_ids),
                "daily_amount": daily_amount,
            }
        },
        fee_kind=TRANSPORT_FEE_KIND,
        fee_date=fee_date,
    )


def apply_transport_fees(
    stores: EngineStores,
    fee_date: date,
    explicit_amount: float | None = None,
    *,
    worker_id: int | None = None,
) -> TransportFeeResult:
    amount = resolve_transport_amount(stores, explicit_amount)
    cohort = resolve_vehicle_cohort(stores, worker_id)
    result = TransportFeeResult(fee_date=fee_date, amount=amount)
    if not cohort:
        logger.info("transport_fee_no_vehicle_workers", extra={"fee_date": fee_date})
        return result

    site_map = sites_by_worker(
        stores.charges.list_personnel_charges(),
        {worker.id for worker in cohort},
        fee_date,
    )

    for planned in plan_transport_fees(site_map, amount):
        try:
            if stores.charges.find_transport_fee(planned.job_site_id, fee_date) is not None:
                result.skipped_count += 1
                continue
            created = stores.charges.create_charge(
                _build_transport_charge(planned, fee_date=fee_date, daily_amount=amount)
            )
        except IntegrityError:
            result.skipped_count += 1
            logger.info(
                "transport_fee_duplicate_rejected",
                extra={"job_site_id": planned.job_site_id, "fee_date": fee_date},
            )
            continue
        except Exception as exc:
            result.failures.append(SiteChargeFailure(job_site_id=planned.job_site_id, error=str(exc)[:500]))
            logger.exception(
                "transport_fee_create_failed",
                extra={"job_site_id": planned.job_site_id, "fee_date": fee_date},
            )
            continue

        result.created_count += 1
        logger.info(
            "transport_fee_created",
            extra={
                "charge_id": created.id,
                "job_site_id": planned.job_site_id,
                "fee_date": fee_date,
                "amount": planned.amount,
            },
        )

    logger.info("transport_fee_run_complete", extra=result.to_dict())
    return result


def run_daily_transport_fees(
    now_utc: datetime | None = None,
    *,
    db: Session | None = None,
) -> TransportFeeResult | None:
    if db is None:
        with SessionLocal() as managed_db:
            return run_daily_transport_fees(now_utc, db=managed_db)

    reference_utc = now_utc or datetime.now(timezone.utc)
    fee_date = reference_utc.astimezone(timezone.utc).date()
    try:
        return apply_transport_fees(build_sql_stores(db), fee_date)
    except ValidationError as exc:
        logger.info(
            "transport_fee_run_skipped",
            extra={"fee_date": fee_date, "reason": exc.message},
        )
        return None


def _config_read(config: TransportFeeConfig) -> TransportFeeConfigRead:
    return TransportFeeConfigRead(
        truck=float(config.truck or 0),
        insurance=float(config.insurance or 0),
        fuel=float(config.fuel or 0),
        custom=[
            CostComponent(label=item["label"], amount=max(0.0, item["amount"]))
            for item in custom_components(config)
        ],
        daily_total=round(sum(item["amount"] for item in config_components(config)), 2),
    )


def get_transport_fee_config(stores: EngineStores) -> TransportFeeConfigRead:
    return _config_read(stores.transport_config.get_or_create())


def update_transport_fee_config(
    stores: EngineStores,
    payload: TransportFeeConfigUpdate,
) -> TransportFeeConfigRead:
    config = stores.transport_config.get_or_create()
    config.truck = payload.truck
    config.insurance = payload.insurance
    config.fuel = payload.fuel
    config.custom = [item.model_dump() for item in payload.custom]
    saved = stores.transport_config.save(config)
    result = _config_read(saved)
    logger.info("transport_fee_config_updated", extra={"daily_total": result.daily_total})
    return result
