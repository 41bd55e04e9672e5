from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date
from typing import Any, Protocol

from pydantic import ValidationError as PydanticValidationError

from chantier_charges.schemas import PersonnelAssignment, WorkDay
from chantier_charges.services.billing_mode import BillingMode
from chantier_charges.services.holiday_calendar import is_working_day

logger = logging.getLogger("chantier_charges.ownership")

OwnerKey = tuple[int, date]


class PersonnelChargeLike(Protocol):
    id: int
    payload: dict[str, Any]


def load_personnel_assignments(charge: PersonnelChargeLike) -> list[PersonnelAssignment]:
    raw_items = (charge.payload or {}).get("personnel")
    if not isinstance(raw_items, list):
        return []

    assignments: list[PersonnelAssignment] = []
    for position, raw_item in enumerate(raw_items):
        try:
            assignments.append(PersonnelAssignment.model_validate(raw_item))
        except PydanticValidationError as exc:
            logger.warning(
                "personnel_payload_entry_skipped",
                extra={
                    "charge_id": charge.id,
                    "position": position,
                    "error": str(exc)[:500],
                },
            )
    return assignments


def referenced_work_dates(assignments: Iterable[PersonnelAssignment]) -> set[date]:
    return {
        day.day_date
        for assignment in assignments
        if not assignment.is_fee
        for day in assignment.days
        if day.day_date is not None
    }


def build_ownership_index(
    existing_charges: Iterable[PersonnelChargeLike],
    dates: set[date],
    *,
    excluding_charge_id: int | None = None,
) -> dict[OwnerKey, int]:
    """Map each (worker_id, date) to the lowest charge id referencing it."""
    index: dict[OwnerKey, int] = {}
    if not dates:
        return index

    for charge in existing_charges:
        if charge.id is None or charge.id == excluding_charge_id:
            continue
        for assignment in load_personnel_assignments(charge):
            if assignment.is_fee or assignment.worker_id is None:
                continue
            for day in assignment.days:
                if day.day_date is None or day.day_date not in dates:
                    continue
                key = (assignment.worker_id, day.day_date)
                current = index.get(key)
                if current is None or charge.id < current:
                    index[key] = charge.id
    return index


def _claims_day(
    key: OwnerKey,
    *,
    index: dict[OwnerKey, int],
    excluding_charge_id: int | None,
) -> bool:
    owner_id = index.get(key)
    if owner_id is None:
        return True
    # The charge being edited competes with its own id.
    return excluding_charge_id is not None and excluding_charge_id <= owner_id


def resolve_ownership(
    assignments: Iterable[PersonnelAssignment],
    excluding_charge_id: int | None,
    existing_charges: Iterable[PersonnelChargeLike],
    *,
    mode: BillingMode | None = None,
) -> list[PersonnelAssignment]:
    incoming = list(assignments)
    index = build_ownership_index(
        existing_charges,
        referenced_work_dates(incoming),
        excluding_charge_id=excluding_charge_id,
    )

    claimed: set[OwnerKey] = set()
    resolved: list[PersonnelAssignment] = []
    for assignment in incoming:
        if assignment.is_fee or assignment.worker_id is None:
            resolved.append(assignment.model_copy(deep=True))
            continue

        days: list[WorkDay] = []
        for day in assignment.days:
            billable = False
            if day.day_date is not None:
                key = (assignment.worker_id, day.day_date)
                if key not in claimed and _claims_day(
                    key,
                    index=index,
                    excluding_charge_id=excluding_charge_id,
                ):
                    claimed.add(key)
                    billable = True
                if billable and mode is BillingMode.LONG and not is_working_day(day.day_date):
                    billable = False
            days.append(day.model_copy(update={"billable": billable}))

        resolved.append(assignment.model_copy(update={"days": days}))
    return resolved


def preview_billable(
    entries: Iterable[tuple[int, Iterable[date]]],
    existing_charges: Iterable[PersonnelChargeLike],
    *,
    excluding_charge_id: int | None = None,
    mode: BillingMode | None = None,
) -> dict[OwnerKey, bool]:
    candidates = [
        PersonnelAssignment(
            worker_id=worker_id,
            days=[WorkDay(day_date=day_date) for day_date in dates],
        )
        for worker_id, dates in entries
    ]
    resolved = resolve_ownership(candidates, excluding_charge_id, existing_charges, mode=mode)

    result: dict[OwnerKey, bool] = {}
    for assignment in resolved:
        if assignment.worker_id is None:
            continue
        for day in assignment.days:
            if day.day_date is None:
                continue
            key = (assignment.worker_id, day.day_date)
            result[key] = result.get(key, False) or day.billable
    return result
