from __future__ import annotations

from collections.abc import Iterable

from chantier_charges.schemas import PersonnelAssignment
from chantier_charges.services.billing_mode import BillingMode
from chantier_charges.services.holiday_calendar import is_working_day
from chantier_charges.settings import get_settings


def _round_money(value: float) -> float:
    return round(value, 2)


def short_mode_billed_days(assignment: PersonnelAssignment) -> int:
    return sum(1 for day in assignment.days if day.billable and day.has_valid_hours())


def long_mode_billed_days(assignment: PersonnelAssignment) -> int:
    return sum(1 for day in assignment.days if day.billable and is_working_day(day.day_date))


def real_hours(assignment: PersonnelAssignment) -> float:
    return sum(day.worked_hours() for day in assignment.days)


def compute_costs(
    assignments: Iterable[PersonnelAssignment],
    mode: BillingMode,
    *,
    billed_hours_per_day: float | None = None,
    daily_rate: float | None = None,
) -> tuple[list[PersonnelAssignment], float]:
    """Price billable days and return the normalized entries with their total.

    SHORT bills a flat number of hours per billable day with valid hours,
    whatever was actually recorded; ``real_hours`` is kept for reporting only.
    LONG bills a flat daily rate per billable working day and does not track
    hours. Fee lines keep their stored total.
    """
    settings = get_settings()
    if billed_hours_per_day is None:
        billed_hours_per_day = settings.short_engagement_billed_hours
    if daily_rate is None:
        daily_rate = settings.long_engagement_daily_rate

    normalized: list[PersonnelAssignment] = []
    aggregate = 0.0
    for assignment in assignments:
        if assignment.is_fee:
            normalized.append(assignment.model_copy(deep=True))
            aggregate += assignment.total
            continue

        if mode is BillingMode.LONG:
            total = daily_rate * long_mode_billed_days(assignment)
            hours = 0.0
        else:
            total = assignment.hourly_rate * short_mode_billed_days(assignment) * billed_hours_per_day
            hours = real_hours(assignment)

        total = _round_money(total)
        normalized.append(
            assignment.model_copy(update={"total": total, "real_hours": round(hours, 2)})
        )
        aggregate += total

    return normalized, _round_money(aggregate)
