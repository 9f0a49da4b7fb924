from enum import Enum
import uuid

from tortoise import fields, models


class FeeMethod(str, Enum):
    METER_USAGE = "METER_USAGE"
    METER_USAGE_MIN_AMOUNT = "METER_USAGE_MIN_AMOUNT"
    METER_USAGE_MIN_UNITS = "METER_USAGE_MIN_UNITS"
    METER_USAGE_PLUS_BASE = "METER_USAGE_PLUS_BASE"
    METER_USAGE_TIERED = "METER_USAGE_TIERED"
    FLAT_MONTHLY = "FLAT_MONTHLY"
    FLAT_PER_PERSON = "FLAT_PER_PERSON"


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


# -------- Property hierarchy --------
class Building(models.Model):
    id = fields.IntField(pk=True)
    code = fields.CharField(max_length=32, unique=True, null=True, index=True)
    name = fields.CharField(max_length=200, index=True)

    class Meta:
        table = "buildings"

    def __str__(self) -> str:
        return self.name or (self.code or f"Building#{self.id}")


class Room(models.Model):
    id = fields.IntField(pk=True)
    building = fields.ForeignKeyField("models.Building", null=True, related_name="rooms", on_delete=fields.SET_NULL, index=True)
    number = fields.CharField(max_length=32, index=True)
    floor = fields.IntField(default=1)

    # absolute per-room unit prices; beat the dorm-wide unit price (and replace FLAT_MONTHLY fees)
    water_override_amount = fields.FloatField(null=True)
    electric_override_amount = fields.FloatField(null=True)

    created_at = fields.DatetimeField(auto_now_add=True, index=True)
    updated_at = fields.DatetimeField(auto_now=True, index=True)

    class Meta:
        table = "rooms"
        unique_together = ("building", "number")

    def __str__(self) -> str:
        return self.number


class Tenant(models.Model):
    id = fields.IntField(pk=True)
    name = fields.CharField(max_length=200, index=True)
    phone = fields.CharField(max_length=32, null=True)
    channel_id = fields.CharField(max_length=128, null=True, index=True)  # linked chat user id, null = no channel

    class Meta:
        table = "tenants"

    def __str__(self) -> str:
        return self.name


class Contract(models.Model):
    """
    Tenant <-> room binding. Exactly one active contract per room.
    `deposit` is a running ledger balance debited by deposit settlements.
    """
    id = fields.IntField(pk=True)
    tenant = fields.ForeignKeyField("models.Tenant", related_name="contracts", on_delete=fields.RESTRICT, index=True)
    room = fields.ForeignKeyField("models.Room", related_name="contracts", on_delete=fields.RESTRICT, index=True)
    start_date = fields.DateField()
    end_date = fields.DateField(null=True)
    deposit = fields.FloatField(default=0.0)
    current_rent = fields.FloatField(default=0.0)
    occupant_count = fields.IntField(default=1)
    is_active = fields.BooleanField(default=True, index=True)
    created_at = fields.DatetimeField(auto_now_add=True, index=True)
    updated_at = fields.DatetimeField(auto_now=True, index=True)

    class Meta:
        table = "contracts"

    def __str__(self) -> str:
        return f"Contract#{self.id} room={self.room_id} active={self.is_active}"


# -------- Metering --------
class MeterReading(models.Model):
    """Cumulative counters per room per billing period."""
    id = fields.IntField(pk=True)
    room = fields.ForeignKeyField("models.Room", related_name="meter_readings", on_delete=fields.CASCADE, index=True)
    month = fields.IntField()
    year = fields.IntField(index=True)
    water_reading = fields.FloatField(default=0.0)
    electric_reading = fields.FloatField(default=0.0)
    is_deleted = fields.BooleanField(default=False, index=True)
    created_at = fields.DatetimeField(auto_now_add=True, index=True)
    updated_at = fields.DatetimeField(auto_now=True, index=True)

    class Meta:
        table = "meter_readings"
        unique_together = ("room", "month", "year")


# -------- Settings --------
class DormConfig(models.Model):
    """Singleton pricing configuration for the property."""
    id = fields.IntField(pk=True)
    dorm_name = fields.CharField(max_length=200, null=True)
    address = fields.TextField(null=True)
    phone = fields.CharField(max_length=32, null=True)
    bank_account = fields.CharField(max_length=255, null=True)

    water_unit_price = fields.FloatField(null=True)
    water_fee_method = fields.CharEnumField(FeeMethod, default=FeeMethod.METER_USAGE)
    water_flat_monthly_fee = fields.FloatField(null=True)
    water_flat_per_person_fee = fields.FloatField(null=True)
    water_min_amount = fields.FloatField(null=True)
    water_min_units = fields.FloatField(null=True)
    water_tiered_rates = fields.JSONField(null=True)  # [{"upto_unit": 10, "unit_price": 5, "charge_type": "PER_UNIT"}, ...]

    electric_unit_price = fields.FloatField(null=True)
    electric_fee_method = fields.CharEnumField(FeeMethod, default=FeeMethod.METER_USAGE)
    electric_flat_monthly_fee = fields.FloatField(null=True)
    electric_min_amount = fields.FloatField(null=True)
    electric_min_units = fields.FloatField(null=True)
    electric_tiered_rates = fields.JSONField(null=True)

    common_fee = fields.FloatField(null=True)
    monthly_due_day = fields.IntField(null=True)  # also replaces the auto-send day when set

    updated_at = fields.DatetimeField(auto_now=True, index=True)

    class Meta:
        table = "dorm_config"


class AutoSendConfig(models.Model):
    """Singleton schedule for the monthly auto-send run."""
    id = fields.IntField(pk=True)
    enabled = fields.BooleanField(default=False)
    day_of_month = fields.IntField(default=1)
    hour = fields.IntField(default=9)
    minute = fields.IntField(default=0)
    timezone = fields.CharField(max_length=64, default="Asia/Bangkok")
    last_run_at = fields.DatetimeField(null=True)
    run_seq = fields.IntField(default=0)  # bumped by each claimed run
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "auto_send_config"


# ========================
# Invoices
# ========================
class Invoice(models.Model):
    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    contract = fields.ForeignKeyField("models.Contract", related_name="invoices", on_delete=fields.RESTRICT, index=True)
    month = fields.IntField()
    year = fields.IntField(index=True)

    rent_amount = fields.FloatField(default=0.0)
    water_amount = fields.FloatField(default=0.0)
    electric_amount = fields.FloatField(default=0.0)
    other_fees = fields.FloatField(default=0.0)
    discount = fields.FloatField(default=0.0)
    total_amount = fields.FloatField(default=0.0)  # derived, see services.invoice_lifecycle.compute_total

    # usage snapshot at generation time
    water_usage = fields.FloatField(null=True)
    electric_usage = fields.FloatField(null=True)

    status = fields.CharEnumField(InvoiceStatus, default=InvoiceStatus.DRAFT, index=True)
    due_date = fields.DateField(null=True, index=True)

    created_at = fields.DatetimeField(auto_now_add=True, index=True)
    updated_at = fields.DatetimeField(auto_now=True, index=True)

    items: fields.ReverseRelation["InvoiceItem"]
    payments: fields.ReverseRelation["Payment"]

    class Meta:
        table = "invoices"
        unique_together = ("contract", "month", "year")

    def __str__(self) -> str:
        return f"Invoice({self.contract_id} {self.month}/{self.year} {self.status})"


class InvoiceItem(models.Model):
    """Ad-hoc charge (positive) or credit (negative). Never hard-deleted."""
    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    invoice = fields.ForeignKeyField("models.Invoice", related_name="items", on_delete=fields.CASCADE, index=True)
    description = fields.CharField(max_length=255)
    amount = fields.FloatField(default=0.0)
    is_deleted = fields.BooleanField(default=False, index=True)
    created_at = fields.DatetimeField(auto_now_add=True, index=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "invoice_items"


class Payment(models.Model):
    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    invoice = fields.ForeignKeyField("models.Invoice", related_name="payments", on_delete=fields.CASCADE, index=True)
    amount = fields.FloatField()
    source = fields.CharField(max_length=128)  # 'DEPOSIT' | 'CASH' | external reference
    status = fields.CharEnumField(PaymentStatus, default=PaymentStatus.PENDING, index=True)
    paid_at = fields.DatetimeField(null=True, index=True)
    created_at = fields.DatetimeField(auto_now_add=True, index=True)

    class Meta:
        table = "payments"


# ========================
# Audit / delivery trail
# ========================
class ActivityLog(models.Model):
    id = fields.IntField(pk=True)
    action = fields.CharField(max_length=32, index=True)  # CREATE | UPDATE | DELETE | SETTLE | SEND | ...
    entity_type = fields.CharField(max_length=64, index=True)
    entity_id = fields.CharField(max_length=64, null=True, index=True)
    details = fields.JSONField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True, index=True)

    class Meta:
        table = "activity_logs"


class NotificationLog(models.Model):
    id = fields.IntField(pk=True)
    kind = fields.CharField(max_length=16, index=True)  # 'BILLING' | 'SETTLEMENT'
    channel_id = fields.CharField(max_length=128, index=True)
    invoice = fields.ForeignKeyField("models.Invoice", null=True, related_name="notifications", on_delete=fields.SET_NULL, index=True)
    delivered = fields.BooleanField(default=False, index=True)
    error = fields.TextField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True, index=True)

    class Meta:
        table = "notification_logs"
