from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from chantier_charges.models import ChargeCategory


class WorkDay(BaseModel):
    day_date: date | None = None
    start_hour: float | None = Field(default=None, ge=0, le=24)
    end_hour: float | None = Field(default=None, ge=0, le=24)
    billable: bool = False

    @field_validator("day_date", mode="before")
    @classmethod
    def _blank_date_is_missing(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def has_valid_hours(self) -> bool:
        return (
            self.start_hour is not None
            and self.end_hour is not None
            and self.end_hour > self.start_hour
        )

    def worked_hours(self) -> float:
        if self.start_hour is None or self.end_hour is None or self.end_hour <= self.start_hour:
            return 0.0
        return self.end_hour - self.start_hour


class PersonnelAssignment(BaseModel):
    worker_id: int | None = Field(default=None, ge=1)
    worker_name: str | None = None
    hourly_rate: float = Field(default=0.0, ge=0)
    start_date: date | None = None
    end_date: date | None = None
    days: list[WorkDay] = Field(default_factory=list)
    total: float = Field(default=0.0, ge=0)
    real_hours: float = 0.0
    is_fee: bool = False
    label: str | None = None

    @model_validator(mode="after")
    def _validate_worker(self) -> "PersonnelAssignment":
        if not self.is_fee and self.worker_id is None:
            raise ValueError("worker_id is required unless the entry is a fee line.")
        return self


class PersonnelPricingRequest(BaseModel):
    job_site_id: int | None = Field(default=None, ge=1)
    assignments: list[PersonnelAssignment] = Field(min_length=1)
    excluding_charge_id: int | None = Field(default=None, ge=1)


class PersonnelPricingResponse(BaseModel):
    billing_mode: str
    assignments: list[PersonnelAssignment]
    total_amount: float


class PersonnelChargeCreate(BaseModel):
    job_site_id: int | None = Field(default=None, ge=1)
    name: str = Field(default="Charges de personnel", min_length=1, max_length=255)
    description: str | None = None
    charge_date: date | None = None
    assignments: list[PersonnelAssignment] = Field(min_length=1)
    amount: float | None = Field(default=None, ge=0)


class PersonnelChargeUpdate(BaseModel):
    job_site_id: int | None = Field(default=None, ge=1)
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    charge_date: date | None = None
    assignments: list[PersonnelAssignment] = Field(min_length=1)
    amount: float | None = Field(default=None, ge=0)


class BillablePreviewEntry(BaseModel):
    worker_id: int = Field(ge=1)
    dates: list[date] = Field(min_length=1)


class BillablePreviewRequest(BaseModel):
    entries: list[BillablePreviewEntry] = Field(min_length=1)
    excluding_charge_id: int | None = Field(default=None, ge=1)
    job_site_id: int | None = Field(default=None, ge=1)


class BillablePreviewItem(BaseModel):
    worker_id: int
    day_date: date
    billable: bool


class BillablePreviewResponse(BaseModel):
    items: list[BillablePreviewItem]


class ChargeRead(BaseModel):
    id: int
    job_site_id: int
    category: ChargeCategory
    name: str
    description: str | None = None
    amount: float
    charge_date: date | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ChargeDeleteResponse(BaseModel):
    ok: bool
    id: int


class ChargeTotalsRead(BaseModel):
    job_site_id: int
    purchase: float = 0.0
    external_service: float = 0.0
    temp_labor: float = 0.0
    personnel: float = 0.0
    fixed_cost: float = 0.0
    other: float = 0.0
    total: float = 0.0


class TransportFeeApplyRequest(BaseModel):
    fee_date: date | None = None
    amount: float | None = None
    worker_id: int | None = Field(default=None, ge=1)


class SiteFailureRead(BaseModel):
    job_site_id: int
    error: str


class TransportFeeApplyResponse(BaseModel):
    fee_date: date
    amount: float
    created_count: int
    skipped_count: int
    failed_count: int
    failures: list[SiteFailureRead] = Field(default_factory=list)


class CostComponent(BaseModel):
    label: str = Field(min_length=1, max_length=255)
    amount: float = Field(default=0.0, ge=0)


class TransportFeeConfigUpdate(BaseModel):
    truck: float = Field(default=0.0, ge=0)
    insurance: float = Field(default=0.0, ge=0)
    fuel: float = Field(default=0.0, ge=0)
    custom: list[CostComponent] = Field(default_factory=list)


class TransportFeeConfigRead(BaseModel):
    truck: float
    insurance: float
    fuel: float
    custom: list[CostComponent]
    daily_total: float


class OverheadConfigUpdate(BaseModel):
    financial_costs: float = Field(default=0.0, ge=0)
    loan: float = Field(default=0.0, ge=0)
    accounting: float = Field(default=0.0, ge=0)
    rent: float = Field(default=0.0, ge=0)
    general_costs: float = Field(default=0.0, ge=0)
    social_charges: float = Field(default=0.0, ge=0)
    custom: list[CostComponent] = Field(default_factory=list)


class OverheadConfigRead(BaseModel):
    financial_costs: float
    loan: float
    accounting: float
    rent: float
    general_costs: float
    social_charges: float
    custom: list[CostComponent]
    monthly_total: float
    daily_amount: float


class OverheadDistributeRequest(BaseModel):
    fee_date: date | None = None


class OverheadDistributeResponse(BaseModel):
    fee_date: date
    daily_amount: float
    share: float
    site_count: int
    created_count: int
    skipped_count: int
    failed_count: int
    failures: list[SiteFailureRead] = Field(default_factory=list)
