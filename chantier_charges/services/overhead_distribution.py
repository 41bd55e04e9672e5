"""Daily distribution of the monthly company overhead across active job sites.

The monthly total is spread over a fixed-length month, and the resulting
daily amount is split evenly across every ACTIVE job site as one FIXED_COST
charge per site and day. The (job_site_id, fee_kind, fee_date) unique
constraint makes a second run on the same day a no-op.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chantier_charges.db import SessionLocal
from chantier_charges.errors import ValidationError
from chantier_charges.models import OVERHEAD_FEE_KIND, Charge, ChargeCategory, JobSite, OverheadConfig
from chantier_charges.schemas import CostComponent, OverheadConfigRead, OverheadConfigUpdate
from chantier_charges.services.transport_fees import SiteChargeFailure
from chantier_charges.settings import get_settings
from chantier_charges.stores import EngineStores, build_sql_stores, custom_components

logger = logging.getLogger("chantier_charges.overhead")

OVERHEAD_FIELDS: tuple[str, ...] = (
    "financial_costs",
    "loan",
    "accounting",
    "rent",
    "general_costs",
    "social_charges",
)


@dataclass(slots=True)
class OverheadDistributionResult:
    fee_date: date
    daily_amount: float
    share: float = 0.0
    site_count: int = 0
    created_count: int = 0
    skipped_count: int = 0
    failures: list[SiteChargeFailure] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fee_date": self.fee_date.isoformat(),
            "daily_amount": self.daily_amount,
            "share": self.share,
            "site_count": self.site_count,
            "created_count": self.created_count,
            "skipped_count": self.skipped_count,
            "failed_count": self.failed_count,
            "failures": [
                {"job_site_id": item.job_site_id, "error": item.error}
                for item in self.failures
            ],
        }


def monthly_overhead_total(config: OverheadConfig) -> float:
    fixed = sum(float(getattr(config, name) or 0) for name in OVERHEAD_FIELDS)
    custom = sum(max(0.0, item["amount"]) for item in custom_components(config))
    return round(fixed + custom, 2)


def daily_overhead_amount(config: OverheadConfig) -> float:
    days = max(1, int(get_settings().overhead_days_per_month))
    return round(monthly_overhead_total(config) / days, 2)


def _build_overhead_charge(
    job_site: JobSite,
    *,
    fee_date: date,
    share: float,
    monthly_total: float,
    daily_amount: float,
    site_count: int,
) -> Charge:
    return Charge(
        job_site_id=job_site.id,
        category=ChargeCategory.FIXED_COST,
        name=get_settings().overhead_charge_name,
        description=(
            f"Distribution automatique des frais generaux du {fee_date.isoformat()}. "
            f"Montant mensuel total: {monthly_total:.2f}, reparti sur {site_count} chantier(s)."
        ),
        amount=share,
        charge_date=fee_date,
        payload={
            "overhead": {
                "date": fee_date.isoformat(),
                "monthly_total": monthly_total,
                "daily_amount": daily_amount,
                "site_count": site_count,
            }
        },
        fee_kind=OVERHEAD_FEE_KIND,
        fee_date=fee_date,
    )


def distribute_overhead(stores: EngineStores, fee_date: date) -> OverheadDistributionResult:
    config = stores.overhead_config.get_or_create()
    monthly_total = monthly_overhead_total(config)
    daily_amount = daily_overhead_amount(config)
    if daily_amount <= 0:
        raise ValidationError("No positive overhead amount is configured.")

    result = OverheadDistributionResult(fee_date=fee_date, daily_amount=daily_amount)
    job_sites = stores.job_sites.list_active()
    if not job_sites:
        logger.info("overhead_no_active_job_sites", extra={"fee_date": fee_date})
        return result

    result.site_count = len(job_sites)
    result.share = round(daily_amount / len(job_sites), 2)

    for job_site in job_sites:
        try:
            if stores.charges.find_fee_charge(job_site.id, OVERHEAD_FEE_KIND, fee_date) is not None:
                result.skipped_count += 1
                continue
            created = stores.charges.create_charge(
                _build_overhead_charge(
                    job_site,
                    fee_date=fee_date,
                    share=result.share,
                    monthly_total=monthly_total,
                    daily_amount=daily_amount,
                    site_count=result.site_count,
                )
            )
        except IntegrityError:
            result.skipped_count += 1
            logger.info(
                "overhead_duplicate_rejected",
                extra={"job_site_id": job_site.id, "fee_date": fee_date},
            )
            continue
        except Exception as exc:
            result.failures.append(SiteChargeFailure(job_site_id=job_site.id, error=str(exc)[:500]))
            logger.exception(
                "overhead_create_failed",
                extra={"job_site_id": job_site.id, "fee_date": fee_date},
            )
            continue

        result.created_count += 1
        logger.info(
            "overhead_charge_created",
            extra={
                "charge_id": created.id,
                "job_site_id": job_site.id,
                "fee_date": fee_date,
                "amount": result.share,
            },
        )

    logger.info("overhead_run_complete", extra=result.to_dict())
    return result


def run_daily_overhead_distribution(
    now_utc: datetime | None = None,
    *,
    db: Session | None = None,
) -> OverheadDistributionResult | None:
    if db is None:
        with SessionLocal() as managed_db:
            return run_daily_overhead_distribution(now_utc, db=managed_db)

    reference_utc = now_utc or datetime.now(timezone.utc)
    fee_date = reference_utc.astimezone(timezone.utc).date()
    try:
        return distribute_overhead(build_sql_stores(db), fee_date)
    except ValidationError as exc:
        logger.info(
            "overhead_run_skipped",
            extra={"fee_date": fee_date, "reason": exc.message},
        )
        return None


def _config_read(config: OverheadConfig) -> OverheadConfigRead:
    return OverheadConfigRead(
        **{name: float(getattr(config, name) or 0) for name in OVERHEAD_FIELDS},
        custom=[
            CostComponent(label=item["label"], amount=max(0.0, item["amount"]))
            for item in custom_components(config)
        ],
        monthly_total=monthly_overhead_total(config),
        daily_amount=daily_overhead_amount(config),
    )


def get_overhead_config(stores: EngineStores) -> OverheadConfigRead:
    return _config_read(stores.overhead_config.get_or_create())


def update_overhead_config(stores: EngineStores, payload: OverheadConfigUpdate) -> OverheadConfigRead:
    config = stores.overhead_config.get_or_create()
    for name in OVERHEAD_FIELDS:
        setattr(config, name, getattr(payload, name))
    config.custom = [item.model_dump() for item in payload.custom]
    saved = stores.overhead_config.save(config)
    result = _config_read(saved)
    logger.info(
        "overhead_config_updated",
        extra={"monthly_total": result.monthly_total, "daily_amount": result.daily_amount},
    )
    return result
