"""Wire data model for the sync API.

Every model shares one frozen configuration: camelCase on the wire, snake_case
accepted on input, unknown keys dropped (logged at debug). Timestamps are normalized to UTC on the
way in so that ``updated_at`` comparisons behave the same on every backend.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Annotated, Any, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


UtcDateTime = Annotated[datetime, AfterValidator(as_utc)]


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    @model_validator(mode="before")
    @classmethod
    def _log_ignored_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            known = set(cls.model_fields)
            known.update(field.alias for field in cls.model_fields.values() if field.alias)
            ignored = sorted(str(key) for key in data if key not in known)
            if ignored:
                logger.debug("%s ignored keys: %s", cls.__name__, ", ".join(ignored))
        return data


class EntityRecord(WireModel):
    id: str = Field(min_length=1, max_length=64)
    created_at: UtcDateTime = Field(default_factory=utc_now)
    updated_at: UtcDateTime
    is_deleted: bool = False

    def to_row(self) -> dict[str, Any]:
        return self.model_dump()


class WeighingTicketRecord(EntityRecord):
    model_config = {
        "json_schema_extra": {
            "example": {
                "id": "T1",
                "ticketNumber": "PC-20260115-0001",
                "vehiclePlate": "51A-12345",
                "firstWeight": 32500.0,
                "secondWeight": 12500.0,
                "netWeight": 20000.0,
                "firstWeighTime": "2026-01-15T08:10:00Z",
                "status": "completed",
                "stationId": "scale-station-01",
                "updatedAt": "2026-01-15T08:40:00Z",
            }
        }
    }
    ticket_number: str = ""
    vehicle_plate: str = ""
    vehicle_id: Optional[str] = None
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    product_id: Optional[str] = None
    product_name: Optional[str] = None
    first_weight: float = 0
    second_weight: float = 0
    net_weight: float = 0
    unit_price: Optional[float] = None
    total_amount: Optional[float] = None
    first_weigh_time: UtcDateTime
    second_weigh_time: Optional[UtcDateTime] = None
    status: Literal["pending", "completed", "cancelled"] = "pending"
    notes: Optional[str] = None
    first_weigh_image_url: Optional[str] = None
    second_weigh_image_url: Optional[str] = None
    operator_id: Optional[str] = None
    operator_name: Optional[str] = None
    station_id: str = "scale-station-01"
    is_synced: bool = True


class CustomerRecord(EntityRecord):
    code: str = ""
    name: str = ""
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    tax_code: Optional[str] = None
    contact_person: Optional[str] = None
    notes: Optional[str] = None
    customer_type: Literal["individual", "company"] = "individual"
    is_active: bool = True


class VehicleRecord(EntityRecord):
    plate_number: str = ""
    vehicle_type: Optional[str] = None
    tare_weight: Optional[float] = None
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    notes: Optional[str] = None
    is_active: bool = True


class ProductRecord(EntityRecord):
    code: str = ""
    name: str = ""
    description: Optional[str] = None
    unit: Optional[str] = "kg"
    default_price: Optional[float] = None
    category: Optional[str] = None
    is_active: bool = True


class SyncRequest(WireModel):
    model_config = {
        "json_schema_extra": {
            "example": {
                "lastSyncTime": "2026-01-15T00:00:00Z",
                "stationId": "scale-station-01",
                "vehicles": [
                    {
                        "id": "V1",
                        "plateNumber": "51A-12345",
                        "updatedAt": "2026-01-15T08:00:00Z",
                    }
                ],
            }
        }
    }
    last_sync_time: Optional[UtcDateTime] = None
    station_id: Optional[str] = None
    weighing_tickets: list[WeighingTicketRecord] = Field(default_factory=list)
    customers: list[CustomerRecord] = Field(default_factory=list)
    vehicles: list[VehicleRecord] = Field(default_factory=list)
    products: list[ProductRecord] = Field(default_factory=list)

    @field_validator("weighing_tickets", "customers", "vehicles", "products", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def record_count(self) -> int:
        return len(self.weighing_tickets) + len(self.customers) + len(self.vehicles) + len(self.products)


class ChangeSet(WireModel):
    sync_time: UtcDateTime
    weighing_tickets: list[WeighingTicketRecord] = Field(default_factory=list)
    customers: list[CustomerRecord] = Field(default_factory=list)
    vehicles: list[VehicleRecord] = Field(default_factory=list)
    products: list[ProductRecord] = Field(default_factory=list)
    total_changes: int = 0


class PushResult(WireModel):
    success: bool = True
    synced_count: int
    sync_time: UtcDateTime


class FullSyncResult(WireModel):
    success: bool = True
    pushed_count: int
    pulled_count: int
    sync_time: UtcDateTime
    server_changes: ChangeSet


class ApiResponse(WireModel):
    success: bool
    message: Optional[str] = None
    data: Any = None


class ReportPeriod(WireModel):
    from_date: date
    to_date: date


class TicketTotals(WireModel):
    total_tickets: int
    completed_tickets: int
    total_net_weight: float
    total_amount: float


class DailySummary(TicketTotals):
    day: date = Field(alias="date")
    pending_tickets: int
    cancelled_tickets: int
    average_weight: float
    tickets: list[WeighingTicketRecord]


class DailyTotals(WireModel):
    day: date = Field(alias="date")
    count: int
    total_weight: float
    total_amount: float


class RankedTotals(WireModel):
    name: str
    ticket_count: int
    total_weight: float
    total_amount: float


class StatisticsOverview(TicketTotals):
    total_customers: int
    total_vehicles: int
    total_products: int


class Statistics(WireModel):
    period: ReportPeriod
    overview: StatisticsOverview
    daily_stats: list[DailyTotals]
    top_customers: list[RankedTotals]
    top_products: list[RankedTotals]


class CustomerReport(WireModel):
    customer: CustomerRecord
    period: ReportPeriod
    summary: TicketTotals
    recent_tickets: list[WeighingTicketRecord]
