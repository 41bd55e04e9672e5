from __future__ import annotations

import enum
from collections.abc import Iterable
from datetime import date

from chantier_charges.schemas import PersonnelAssignment

DEFAULT_INFERENCE_THRESHOLD_DAYS = 7


class BillingMode(str, enum.Enum):
    SHORT = "SHORT"
    LONG = "LONG"


def inclusive_day_count(start_date: date, end_date: date) -> int:
    return (end_date - start_date).days + 1


def _referenced_dates(assignments: Iterable[PersonnelAssignment]) -> list[date]:
    found: list[date] = []
    for assignment in assignments:
        if assignment.start_date is not None:
            found.append(assignment.start_date)
        if assignment.end_date is not None:
            found.append(assignment.end_date)
        for day in assignment.days:
            if day.day_date is not None:
                found.append(day.day_date)
    return found


def resolve_billing_mode(
    start_date: date | None,
    end_date: date | None,
    assignments: Iterable[PersonnelAssignment],
    *,
    threshold_days: int = DEFAULT_INFERENCE_THRESHOLD_DAYS,
) -> BillingMode:
    """Classify a site's personnel billing as a short or long engagement.

    Site dates win when both are known: more than one calendar day is LONG.
    Otherwise the span of dates referenced by the line items is used as a
    heuristic, LONG only when it exceeds ``threshold_days``. Sites without
    any usable date are billed as SHORT.
    """
    if start_date is not None and end_date is not None:
        if inclusive_day_count(start_date, end_date) > 1:
            return BillingMode.LONG
        return BillingMode.SHORT

    referenced = _referenced_dates(assignments)
    if not referenced:
        return BillingMode.SHORT
    if inclusive_day_count(min(referenced), max(referenced)) > threshold_days:
        return BillingMode.LONG
    return BillingMode.SHORT
