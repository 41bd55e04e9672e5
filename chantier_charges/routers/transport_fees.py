from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from chantier_charges.schemas import (
    SiteFailureRead,
    TransportFeeApplyRequest,
    TransportFeeApplyResponse,
    TransportFeeConfigRead,
    TransportFeeConfigUpdate,
)
from chantier_charges.services.transport_fees import (
    apply_transport_fees,
    get_transport_fee_config,
    update_transport_fee_config,
)
from chantier_charges.stores import EngineStores, get_stores

router = APIRouter(tags=["transport-fees"])


@router.post("/api/transport-fees/apply", response_model=TransportFeeApplyResponse)
def apply_transport_fees_endpoint(
    payload: TransportFeeApplyRequest,
    stores: EngineStores = Depends(get_stores),
) -> TransportFeeApplyResponse:
    fee_date = payload.fee_date or datetime.now(timezone.utc).date()
    result = apply_transport_fees(stores, fee_date, payload.amount, worker_id=payload.worker_id)
    return TransportFeeApplyResponse(
        fee_date=result.fee_date,
        amount=result.amount,
        created_count=result.created_count,
        skipped_count=result.skipped_count,
        failed_count=result.failed_count,
        failures=[
            SiteFailureRead(job_site_id=item.job_site_id, error=item.error)
            for item in result.failures
        ],
    )


@router.get("/api/transport-fee-config", response_model=TransportFeeConfigRead)
def read_transport_fee_config(stores: EngineStores = Depends(get_stores)) -> TransportFeeConfigRead:
    return get_transport_fee_config(stores)


@router.put("/api/transport-fee-config", response_model=TransportFeeConfigRead)
def write_transport_fee_config(
    payload: TransportFeeConfigUpdate,
    stores: EngineStores = Depends(get_stores),
) -> TransportFeeConfigRead:
    return update_transport_fee_config(stores, payload)
