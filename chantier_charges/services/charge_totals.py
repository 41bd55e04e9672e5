from __future__ import annotations

from chantier_charges.errors import NotFoundError
from chantier_charges.models import ChargeCategory
from chantier_charges.schemas import ChargeTotalsRead
from chantier_charges.stores import EngineStores

_CATEGORY_FIELDS: dict[ChargeCategory, str] = {
    ChargeCategory.PURCHASE: "purchase",
    ChargeCategory.EXTERNAL_SERVICE: "external_service",
    ChargeCategory.TEMP_LABOR: "temp_labor",
    ChargeCategory.PERSONNEL: "personnel",
    ChargeCategory.FIXED_COST: "fixed_cost",
    ChargeCategory.OTHER: "other",
}


def summarize_site_charges(stores: EngineStores, job_site_id: int) -> ChargeTotalsRead:
    if stores.job_sites.get_by_id(job_site_id) is None:
        raise NotFoundError("Job site not found")

    sums = {field_name: 0.0 for field_name in _CATEGORY_FIELDS.values()}
    for charge in stores.charges.list_site_charges(job_site_id):
        field_name = _CATEGORY_FIELDS.get(ChargeCategory(charge.category), "other")
        sums[field_name] += float(charge.amount or 0)

    rounded = {key: round(value, 2) for key, value in sums.items()}
    return ChargeTotalsRead(
        job_site_id=job_site_id,
        total=round(sum(sums.values()), 2),
        **rounded,
    )
