from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

from chantier_charges.errors import NotFoundError, StoreUnavailableError, ValidationError
from chantier_charges.models import Charge, ChargeCategory, JobSite
from chantier_charges.schemas import (
    PersonnelAssignment,
    PersonnelChargeCreate,
    PersonnelChargeUpdate,
    WorkDay,
)
from chantier_charges.services.billing_mode import BillingMode, resolve_billing_mode
from chantier_charges.services.ownership import load_personnel_assignments, preview_billable, resolve_ownership
from chantier_charges.services.personnel_cost import compute_costs
from chantier_charges.settings import get_settings
from chantier_charges.stores import EngineStores

logger = logging.getLogger("chantier_charges.personnel")


@dataclass(frozen=True, slots=True)
class PersonnelPricing:
    job_site_id: int
    mode: BillingMode
    assignments: list[PersonnelAssignment]
    total_amount: float

    def to_payload(self) -> dict[str, Any]:
        return {
            "billing_mode": self.mode.value,
            "personnel": [item.model_dump(mode="json") for item in self.assignments],
        }


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _require_job_site(stores: EngineStores, job_site_id: int | None) -> JobSite:
    if job_site_id is None:
        raise ValidationError("job_site_id is required to price personnel charges.")
    job_site = stores.job_sites.get_by_id(job_site_id)
    if job_site is None:
        raise NotFoundError("Job site not found")
    return job_site


def _refresh_worker_rates(
    stores: EngineStores,
    assignments: Iterable[PersonnelAssignment],
) -> list[PersonnelAssignment]:
    refreshed: list[PersonnelAssignment] = []
    for assignment in assignments:
        if assignment.is_fee or assignment.worker_id is None:
            refreshed.append(assignment)
            continue

        try:
            worker = stores.workers.get_by_id(assignment.worker_id)
        except StoreUnavailableError as exc:
            logger.warning(
                "worker_rate_lookup_failed",
                extra={
                    "worker_id": assignment.worker_id,
                    "fallback_rate": assignment.hourly_rate,
                    "error": exc.message,
                },
            )
            refreshed.append(assignment)
            continue

        if worker is None:
            logger.warning(
                "worker_rate_lookup_missing",
                extra={
                    "worker_id": assignment.worker_id,
                    "fallback_rate": assignment.hourly_rate,
                },
            )
            refreshed.append(assignment)
            continue

        refreshed.append(
            assignment.model_copy(
                update={
                    "hourly_rate": float(worker.hourly_rate or 0),
                    "worker_name": assignment.worker_name or worker.full_name,
                }
            )
        )
    return refreshed


def normalize_and_price(
    stores: EngineStores,
    job_site_id: int | None,
    assignments: Iterable[PersonnelAssignment],
    excluding_charge_id: int | None = None,
) -> PersonnelPricing:
    job_site = _require_job_site(stores, job_site_id)
    incoming = _refresh_worker_rates(stores, assignments)

    mode = resolve_billing_mode(
        job_site.start_date,
        job_site.end_date,
        incoming,
        threshold_days=get_settings().duration_inference_threshold_days,
    )
    existing_charges = stores.charges.list_personnel_charges()
    annotated = resolve_ownership(incoming, excluding_charge_id, existing_charges, mode=mode)
    normalized, total_amount = compute_costs(annotated, mode)

    logger.info(
        "personnel_charge_priced",
        extra={
            "job_site_id": job_site.id,
            "excluding_charge_id": excluding_charge_id,
            "billing_mode": mode.value,
            "assignment_count": len(normalized),
            "scanned_charge_count": len(existing_charges),
            "total_amount": total_amount,
        },
    )
    return PersonnelPricing(
        job_site_id=job_site.id,
        mode=mode,
        assignments=normalized,
        total_amount=total_amount,
    )


def evaluate_billable(
    stores: EngineStores,
    entries: Iterable[tuple[int, Iterable[date]]],
    excluding_charge_id: int | None = None,
    job_site_id: int | None = None,
) -> dict[tuple[int, date], bool]:
    materialized = [(worker_id, list(dates)) for worker_id, dates in entries]

    mode: BillingMode | None = None
    if job_site_id is not None:
        job_site = _require_job_site(stores, job_site_id)
        candidates = [
            PersonnelAssignment(worker_id=worker_id, days=[WorkDay(day_date=item) for item in dates])
            for worker_id, dates in materialized
        ]
        mode = resolve_billing_mode(
            job_site.start_date,
            job_site.end_date,
            candidates,
            threshold_days=get_settings().duration_inference_threshold_days,
        )

    return preview_billable(
        materialized,
        stores.charges.list_personnel_charges(),
        excluding_charge_id=excluding_charge_id,
        mode=mode,
    )


def _log_client_amount_mismatch(submitted: float | None, computed: float, *, charge_id: int | None) -> None:
    if submitted is None or abs(submitted - computed) < 0.005:
        return
    logger.info(
        "personnel_client_amount_overridden",
        extra={
            "charge_id": charge_id,
            "submitted_amount": submitted,
            "computed_amount": computed,
        },
    )


def _stored_fee_lines(
    charge: Charge,
    submitted: Iterable[PersonnelAssignment],
) -> list[PersonnelAssignment]:
    stored = [item for item in load_personnel_assignments(charge) if item.is_fee]
    ignored = sum(1 for item in submitted if item.is_fee)
    if ignored:
        logger.info(
            "personnel_fee_lines_ignored",
            extra={
                "charge_id": charge.id,
                "submitted_count": ignored,
                "stored_count": len(stored),
            },
        )
    return stored


def create_personnel_charge(stores: EngineStores, payload: PersonnelChargeCreate) -> Charge:
    if any(item.is_fee for item in payload.assignments):
        raise ValidationError("Fee lines cannot be submitted with a new personnel charge.")

    pricing = normalize_and_price(stores, payload.job_site_id, payload.assignments)
    _log_client_amount_mismatch(payload.amount, pricing.total_amount, charge_id=None)

    charge = Charge(
        job_site_id=pricing.job_site_id,
        category=ChargeCategory.PERSONNEL,
        name=payload.name,
        description=payload.description,
        amount=pricing.total_amount,
        charge_date=payload.charge_date or _utc_today(),
        payload=pricing.to_payload(),
    )
    created = stores.charges.create_charge(charge)
    logger.info(
        "personnel_charge_created",
        extra={
            "charge_id": created.id,
            "job_site_id": created.job_site_id,
            "amount": created.amount,
            "billing_mode": pricing.mode.value,
        },
    )
    return created


def update_personnel_charge(
    stores: EngineStores,
    charge_id: int,
    payload: PersonnelChargeUpdate,
) -> Charge:
    existing = stores.charges.get_charge_by_id(charge_id)
    if existing is None:
        raise NotFoundError("Charge not found")
    if existing.category != ChargeCategory.PERSONNEL:
        raise ValidationError("Only personnel charges can be repriced.")

    job_site_id = payload.job_site_id or existing.job_site_id
    assignments = [item for item in payload.assignments if not item.is_fee]
    assignments.extend(_stored_fee_lines(existing, payload.assignments))
    pricing = normalize_and_price(
        stores,
        job_site_id,
        assignments,
        excluding_charge_id=charge_id,
    )
    _log_client_amount_mismatch(payload.amount, pricing.total_amount, charge_id=charge_id)

    values: dict[str, Any] = {
        "job_site_id": pricing.job_site_id,
        "amount": pricing.total_amount,
        "payload": pricing.to_payload(),
    }
    if payload.name is not None:
        values["name"] = payload.name
    if payload.description is not None:
        values["description"] = payload.description
    if payload.charge_date is not None:
        values["charge_date"] = payload.charge_date

    updated = stores.charges.update_charge(charge_id, values)
    logger.info(
        "personnel_charge_updated",
        extra={
            "charge_id": updated.id,
            "job_site_id": updated.job_site_id,
            "amount": updated.amount,
            "billing_mode": pricing.mode.value,
        },
    )
    return updated


def delete_charge(stores: EngineStores, charge_id: int) -> None:
    existing = stores.charges.get_charge_by_id(charge_id)
    if existing is None:
        raise NotFoundError("Charge not found")
    stores.charges.delete_charge(charge_id)
    logger.info(
        "charge_deleted",
        extra={
            "charge_id": charge_id,
            "job_site_id": existing.job_site_id,
            "category": existing.category.value,
        },
    )


def list_site_charges(stores: EngineStores, job_site_id: int) -> list[Charge]:
    _require_job_site(stores, job_site_id)
    return stores.charges.list_site_charges(job_site_id)
