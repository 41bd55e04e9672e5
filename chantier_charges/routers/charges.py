from fastapi import APIRouter, Depends, status

from chantier_charges.models import Charge
from chantier_charges.schemas import (
    BillablePreviewItem,
    BillablePreviewRequest,
    BillablePreviewResponse,
    ChargeDeleteResponse,
    ChargeRead,
    ChargeTotalsRead,
    PersonnelChargeCreate,
    PersonnelChargeUpdate,
    PersonnelPricingRequest,
    PersonnelPricingResponse,
)
from chantier_charges.services.charge_totals import summarize_site_charges
from chantier_charges.services.personnel_charges import (
    create_personnel_charge,
    delete_charge,
    evaluate_billable,
    list_site_charges,
    normalize_and_price,
    update_personnel_charge,
)
from chantier_charges.stores import EngineStores, get_stores

router = APIRouter(tags=["charges"])


def _to_charge_read(charge: Charge) -> ChargeRead:
    return ChargeRead.model_validate(charge)


@router.post("/api/personnel-charges/price", response_model=PersonnelPricingResponse)
def price_personnel_charge(
    payload: PersonnelPricingRequest,
    stores: EngineStores = Depends(get_stores),
) -> PersonnelPricingResponse:
    pricing = normalize_and_price(
        stores,
        payload.job_site_id,
        payload.assignments,
        excluding_charge_id=payload.excluding_charge_id,
    )
    return PersonnelPricingResponse(
        billing_mode=pricing.mode.value,
        assignments=pricing.assignments,
        total_amount=pricing.total_amount,
    )


@router.post("/api/personnel-charges/billable-preview", response_model=BillablePreviewResponse)
def preview_personnel_billable(
    payload: BillablePreviewRequest,
    stores: EngineStores = Depends(get_stores),
) -> BillablePreviewResponse:
    verdicts = evaluate_billable(
        stores,
        [(entry.worker_id, entry.dates) for entry in payload.entries],
        excluding_charge_id=payload.excluding_charge_id,
        job_site_id=payload.job_site_id,
    )
    items = [
        BillablePreviewItem(worker_id=worker_id, day_date=day_date, billable=billable)
        for (worker_id, day_date), billable in sorted(verdicts.items())
    ]
    return BillablePreviewResponse(items=items)


@router.post(
    "/api/personnel-charges",
    response_model=ChargeRead,
    status_code=status.HTTP_201_CREATED,
)
def create_personnel_charge_endpoint(
    payload: PersonnelChargeCreate,
    stores: EngineStores = Depends(get_stores),
) -> ChargeRead:
    return _to_charge_read(create_personnel_charge(stores, payload))


@router.put("/api/personnel-charges/{charge_id}", response_model=ChargeRead)
def update_personnel_charge_endpoint(
    charge_id: int,
    payload: PersonnelChargeUpdate,
    stores: EngineStores = Depends(get_stores),
) -> ChargeRead:
    return _to_charge_read(update_personnel_charge(stores, charge_id, payload))


@router.delete("/api/charges/{charge_id}", response_model=ChargeDeleteResponse)
def delete_charge_endpoint(
    charge_id: int,
    stores: EngineStores = Depends(get_stores),
) -> ChargeDeleteResponse:
    delete_charge(stores, charge_id)
    return ChargeDeleteResponse(ok=True, id=charge_id)


@router.get("/api/job-sites/{job_site_id}/charges", response_model=list[ChargeRead])
def list_job_site_charges(
    job_site_id: int,
    stores: EngineStores = Depends(get_stores),
) -> list[ChargeRead]:
    return [_to_charge_read(charge) for charge in list_site_charges(stores, job_site_id)]


@router.get("/api/job-sites/{job_site_id}/charge-totals", response_model=ChargeTotalsRead)
def get_job_site_charge_totals(
    job_site_id: int,
    stores: EngineStores = Depends(get_stores),
) -> ChargeTotalsRead:
    return summarize_site_charges(stores, job_site_id)
