"""
models.py
Domain records (dataclasses) and the enumerated values they use.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from decimal import Decimal

import utils

# Payment recurrence -> billing period length in months
MONTHLY = "monthly"
QUARTERLY = "quarterly"
SEMIANNUAL = "semiannual"

RECURRENCE_MONTHS = {
    MONTHLY: 1,
    QUARTERLY: 3,
    SEMIANNUAL: 6,
}

TRAINING_MODES = ("online", "in_person")

CLIENT_ACTIVE = "active"
CLIENT_INACTIVE = "inactive"
CLIENT_STATUSES = (CLIENT_ACTIVE, CLIENT_INACTIVE)

ENROLLMENT_ACTIVE = "active"
ENROLLMENT_EXPIRED = "expired"
ENROLLMENT_CANCELLED = "cancelled"
ENROLLMENT_STATUSES = (ENROLLMENT_ACTIVE, ENROLLMENT_EXPIRED, ENROLLMENT_CANCELLED)

PENDING = "pending"
PAID = "paid"
OVERDUE = "overdue"
PAYMENT_STATUSES = (PENDING, PAID, OVERDUE)

PRESENT = "present"
ABSENT = "absent"
ATTENDANCE_STATUSES = (PRESENT, ABSENT)

NOTIFY_OVERDUE = "overdue"
NOTIFY_EXPIRING = "expiring"
NOTIFY_MEDICAL_CERTIFICATE = "medical_certificate"


@dataclass(frozen=True)
class Client:
    id: int | None
    name: str
    phone: str
    email: str
    status: str = CLIENT_ACTIVE  # 'active' or 'inactive'
    birth_date: date | None = None
    goals: str = ""
    gender: str = ""
    medical_notes: str | None = None
    medical_certificate: str | None = None  # URL/reference of the uploaded file

    @classmethod
    def from_row(cls, row) -> "Client":
        return cls(
            id=row["id"],
            name=row["name"],
            phone=row["phone"],
            email=row["email"],
            status=row["status"],
            birth_date=utils.parse_optional_iso(row["birth_date"], "birth_date"),
            goals=row["goals"] or "",
            gender=row["gender"] or "",
            medical_notes=row["medical_notes"],
            medical_certificate=row["medical_certificate"],
        )


@dataclass(frozen=True)
class Enrollment:
    id: int | None
    client_id: int
    start_date: date
    duration_months: int
    fee_amount: Decimal
    recurrence: str  # monthly / quarterly / semiannual
    training_mode: str = "in_person"
    weekly_frequency: int = 3
    end_date: date | None = None
    status: str = ENROLLMENT_ACTIVE
    amendment_note: str | None = None

    @classmethod
    def from_row(cls, row) -> "Enrollment":
        return cls(
            id=row["id"],
            client_id=row["client_id"],
            start_date=utils.parse_iso(row["start_date"], "start_date"),
            duration_months=int(row["duration_months"]),
            fee_amount=utils.to_decimal(row["fee_amount"]),
            recurrence=row["recurrence"],
            training_mode=row["training_mode"],
            weekly_frequency=int(row["weekly_frequency"]),
            end_date=utils.parse_optional_iso(row["end_date"], "end_date"),
            status=row["status"],
            amendment_note=row["amendment_note"],
        )


@dataclass(frozen=True)
class PaymentObligation:
    id: int | None
    enrollment_id: int | None
    amount: Decimal
    due_date: date
    status: str = PENDING  # stored status; see billing.effective_status
    paid_date: date | None = None

    @classmethod
    def from_row(cls, row) -> "PaymentObligation":
        return cls(
            id=row["id"],
            enrollment_id=row["enrollment_id"],
            amount=utils.to_decimal(row["amount"]),
            due_date=utils.parse_iso(row["due_date"], "due_date"),
            status=row["status"],
            paid_date=utils.parse_optional_iso(row["paid_date"], "paid_date"),
        )


@dataclass(frozen=True)
class Attendance:
    id: int | None
    client_id: int
    training_date: date
    status: str  # 'present' or 'absent'
    note: str | None = None

    @classmethod
    def from_row(cls, row) -> "Attendance":
        return cls(
            id=row["id"],
            client_id=row["client_id"],
            training_date=utils.parse_iso(row["training_date"], "training_date"),
            status=row["status"],
            note=row["note"],
        )


@dataclass(frozen=True)
class Notification:
    id: str
    type: str  # overdue / expiring / medical_certificate
    message: str
    date: date
    client_id: int | None = None
    enrollment_id: int | None = None
    payment_id: int | None = None
    read: bool = False


@dataclass(frozen=True)
class BillingAggregates:
    received: Decimal = Decimal("0")
    pending: Decimal = Decimal("0")
    overdue: Decimal = Decimal("0")
    received_count: int = 0
    pending_count: int = 0
    overdue_count: int = 0

    def as_dict(self) -> dict:
        return asdict(self)
