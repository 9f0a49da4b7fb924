from datetime import datetime, date
from typing import Optional, Literal, Dict, List, Any
from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID

from models import FeeMethod, InvoiceStatus, PaymentStatus


# =========================
# Invoices
# =========================
class InvoiceCreate(BaseModel):
    contract_id: int
    month: int = Field(ge=1, le=12)
    year: int
    rent_amount: float = 0.0
    water_amount: float = 0.0
    electric_amount: float = 0.0
    other_fees: float = 0.0
    discount: float = 0.0
    due_date: Optional[date] = None


class InvoiceUpdate(BaseModel):
    rent_amount: Optional[float] = None
    water_amount: Optional[float] = None
    electric_amount: Optional[float] = None
    other_fees: Optional[float] = None
    discount: Optional[float] = None
    due_date: Optional[date] = None


class InvoiceRead(BaseModel):
    id: UUID
    contract_id: int
    month: int
    year: int
    rent_amount: float
    water_amount: float
    electric_amount: float
    other_fees: float
    discount: float
    total_amount: float
    water_usage: Optional[float] = None
    electric_usage: Optional[float] = None
    status: InvoiceStatus
    due_date: Optional[date] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class InvoiceItemCreate(BaseModel):
    description: str = Field(min_length=1)
    amount: float


class InvoiceItemUpdate(BaseModel):
    description: Optional[str] = None
    amount: Optional[float] = None


class InvoiceItemRead(BaseModel):
    id: UUID
    invoice_id: UUID
    description: str
    amount: float
    is_deleted: bool
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class PaymentRead(BaseModel):
    id: UUID
    invoice_id: UUID
    amount: float
    source: str
    status: PaymentStatus
    paid_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class PaymentCreate(BaseModel):
    amount: float = Field(gt=0)
    reference: str = Field(min_length=1, max_length=128)  # slip / transfer reference
    paid_at: Optional[datetime] = None


class PaymentVerify(BaseModel):
    amount: Optional[float] = None  # amount read off the slip; a mismatch keeps the payment PENDING
    paid_at: Optional[datetime] = None


class InvoiceDetail(InvoiceRead):
    room_id: Optional[int] = None
    room_number: Optional[str] = None
    tenant_name: Optional[str] = None
    items: List[InvoiceItemRead] = []
    payments: List[PaymentRead] = []


class GenerateRequest(BaseModel):
    room_id: int
    month: int
    year: int


class SettleRequest(BaseModel):
    method: Literal["DEPOSIT", "CASH"]
    paid_at: Optional[datetime] = None


class PeriodRequest(BaseModel):
    month: int
    year: int


class RoomPeriodRequest(PeriodRequest):
    room_id: int


# =========================
# Auto-send
# =========================
class AutoSendConfigUpdate(BaseModel):
    enabled: Optional[bool] = None
    day_of_month: Optional[int] = None
    hour: Optional[int] = None
    minute: Optional[int] = None
    timezone: Optional[str] = None


class AutoSendConfigRead(BaseModel):
    enabled: bool
    day_of_month: int
    hour: int
    minute: int
    timezone: str
    last_run_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class AutoSendRunRequest(BaseModel):
    force: bool = True


# =========================
# Settings
# =========================
class TierRateIn(BaseModel):
    upto_unit: Optional[float] = None  # null = unbounded
    unit_price: float
    charge_type: Literal["PER_UNIT", "FLAT"] = "PER_UNIT"


class DormConfigUpdate(BaseModel):
    dorm_name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    bank_account: Optional[str] = None

    water_unit_price: Optional[float] = None
    water_fee_method: Optional[FeeMethod] = None
    water_flat_monthly_fee: Optional[float] = None
    water_flat_per_person_fee: Optional[float] = None
    water_min_amount: Optional[float] = None
    water_min_units: Optional[float] = None
    water_tiered_rates: Optional[List[TierRateIn]] = None

    electric_unit_price: Optional[float] = None
    electric_fee_method: Optional[FeeMethod] = None
    electric_flat_monthly_fee: Optional[float] = None
    electric_min_amount: Optional[float] = None
    electric_min_units: Optional[float] = None
    electric_tiered_rates: Optional[List[TierRateIn]] = None

    common_fee: Optional[float] = None
    monthly_due_day: Optional[int] = Field(default=None, ge=1, le=31)


class DormConfigRead(BaseModel):
    id: int
    dorm_name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    bank_account: Optional[str] = None

    water_unit_price: Optional[float] = None
    water_fee_method: FeeMethod
    water_flat_monthly_fee: Optional[float] = None
    water_flat_per_person_fee: Optional[float] = None
    water_min_amount: Optional[float] = None
    water_min_units: Optional[float] = None
    water_tiered_rates: Optional[List[Dict[str, Any]]] = None

    electric_unit_price: Optional[float] = None
    electric_fee_method: FeeMethod
    electric_flat_monthly_fee: Optional[float] = None
    electric_min_amount: Optional[float] = None
    electric_min_units: Optional[float] = None
    electric_tiered_rates: Optional[List[Dict[str, Any]]] = None

    common_fee: Optional[float] = None
    monthly_due_day: Optional[int] = None
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class RoomOverrideUpdate(BaseModel):
    water_override_amount: Optional[float] = None
    electric_override_amount: Optional[float] = None


class RoomRead(BaseModel):
    id: int
    building_id: Optional[int] = None
    number: str
    floor: int
    water_override_amount: Optional[float] = None
    electric_override_amount: Optional[float] = None
    model_config = ConfigDict(from_attributes=True)


# =========================
# Meter readings
# =========================
class MeterReadingUpsert(BaseModel):
    room_id: int
    month: int = Field(ge=1, le=12)
    year: int
    water_reading: float = Field(ge=0)
    electric_reading: float = Field(ge=0)


class MeterReadingRead(BaseModel):
    id: int
    room_id: int
    month: int
    year: int
    water_reading: float
    electric_reading: float
    is_deleted: bool
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


# =========================
# Contracts
# =========================
class ContractRead(BaseModel):
    id: int
    tenant_id: int
    room_id: int
    start_date: date
    end_date: Optional[date] = None
    deposit: float
    current_rent: float
    occupant_count: int
    is_active: bool
    model_config = ConfigDict(from_attributes=True)


class DepositAdjust(BaseModel):
    delta: float
    reason: str = ""


# =========================
# Activity
# =========================
class ActivityRead(BaseModel):
    id: int
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    details: Optional[Any] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)
