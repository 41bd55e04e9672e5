from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from chantier_charges.schemas import (
    OverheadConfigRead,
    OverheadConfigUpdate,
    OverheadDistributeRequest,
    OverheadDistributeResponse,
    SiteFailureRead,
)
from chantier_charges.services.overhead_distribution import (
    distribute_overhead,
    get_overhead_config,
    update_overhead_config,
)
from chantier_charges.stores import EngineStores, get_stores

router = APIRouter(tags=["overhead"])


@router.post("/api/overhead/distribute", response_model=OverheadDistributeResponse)
def distribute_overhead_endpoint(
    payload: OverheadDistributeRequest,
    stores: EngineStores = Depends(get_stores),
) -> OverheadDistributeResponse:
    fee_date = payload.fee_date or datetime.now(timezone.utc).date()
    result = distribute_overhead(stores, fee_date)
    return OverheadDistributeResponse(
        fee_date=result.fee_date,
        daily_amount=result.daily_amount,
        share=result.share,
        site_count=result.site_count,
        created_count=result.created_count,
        skipped_count=result.skipped_count,
        failed_count=result.failed_count,
        failures=[
            SiteFailureRead(job_site_id=item.job_site_id, error=item.error)
            for item in result.failures
        ],
    )


@router.get("/api/overhead-config", response_model=OverheadConfigRead)
def read_overhead_config(stores: EngineStores = Depends(get_stores)) -> OverheadConfigRead:
    return get_overhead_config(stores)


@router.put("/api/overhead-config", response_model=OverheadConfigRead)
def write_overhead_config(
    payload: OverheadConfigUpdate,
    stores: EngineStores = Depends(get_stores),
) -> OverheadConfigRead:
    return update_overhead_config(stores, payload)
