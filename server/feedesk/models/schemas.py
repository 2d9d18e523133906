"""
feedesk/models/schemas.py
Pydantic schemas for the College Fee Desk API
"""
from __future__ import annotations

from enum import Enum
from typing import List, Optional, Dict, Any
from datetime import date, datetime

from pydantic import BaseModel, EmailStr, Field, computed_field, field_validator


MONTHS = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

REGISTRATION_MONTH = "Registration"


def _to_date(value: Any) -> Any:
    """Drop any time-of-day component so date arithmetic works on calendar days."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and len(value) > 10 and value[10] in ("T", " "):
        return value[:10]
    return value


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


# ============================================
# ENUMS
# ============================================

class FeeStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class ResolutionStatus(str, Enum):
    RESOLVED = "resolved"
    FEE_TABLE = "fee_table"
    UNRESOLVED = "unresolved"


class MatchStage(str, Enum):
    LINKED = "linked"
    EXACT = "exact"
    SUBSTRING = "substring"
    KEYWORD = "keyword"
    FEE_TABLE = "fee_table"
    EXCLUDED = "excluded"
    NONE = "none"


class ImportRowStatus(str, Enum):
    SUCCESS = "success"
    DUPLICATE = "duplicate"
    INVALID = "invalid"
    FAILED = "failed"


class DeliveryStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"


class PaymentOutcome(str, Enum):
    UPDATED = "updated"
    ALREADY_PAID = "already_paid"
    NOT_FOUND = "not_found"
    FAILED = "failed"


# ============================================
# AUTH MODELS
# ============================================

class AdminLogin(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class AdminSession(BaseModel):
    email: str
    expires_at: datetime

    @property
    def is_expired(self) -> bool:
        return self.expires_at <= datetime.now(self.expires_at.tzinfo)


# ============================================
# COURSE MODELS
# ============================================

class CourseBase(BaseModel):
    name: str = Field(..., min_length=1)
    monthly_fee: float = Field(..., ge=0)
    duration_months: int = Field(1, ge=0)
    category: str = "general"


class CourseCreate(CourseBase):
    pass


class CourseUpdate(BaseModel):
    name: Optional[str] = None
    monthly_fee: Optional[float] = Field(None, ge=0)
    duration_months: Optional[int] = Field(None, ge=0)
    category: Optional[str] = None


class Course(CourseBase):
    id: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, value):
        return str(value)

    @field_validator("category", mode="before")
    @classmethod
    def _category_default(cls, value):
        return value or "general"

    @property
    def total_fee(self) -> float:
        return self.monthly_fee * self.duration_months


class CourseResolution(BaseModel):
    """Outcome of matching a free-text course name against the catalog."""
    status: ResolutionStatus
    stage: MatchStage
    course: Optional[Course] = None
    monthly_fee: Optional[float] = None
    matched_on: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.status == ResolutionStatus.RESOLVED

    @property
    def has_fee(self) -> bool:
        return self.monthly_fee is not None and self.monthly_fee > 0


# ============================================
# FEE RECORD MODELS
# ============================================

class FeeRecord(BaseModel):
    id: str
    student_id: str
    amount: float
    month: str
    year: int
    academic_year: Optional[str] = None
    due_date: date
    status: FeeStatus = FeeStatus.PENDING
    payment_date: Optional[date] = None
    challan_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("id", "student_id", mode="before")
    @classmethod
    def _id_to_str(cls, value):
        return str(value)

    @field_validator("due_date", "payment_date", mode="before")
    @classmethod
    def _strip_time(cls, value):
        return _to_date(value)

    @field_validator("challan_number", "notes", mode="before")
    @classmethod
    def _blank(cls, value):
        return _blank_to_none(value)


class FeeCreate(BaseModel):
    student_id: str
    # Omitted amounts are derived from the student's course
    amount: Optional[float] = Field(None, gt=0)
    month: str
    year: int = Field(..., ge=2000, le=2100)
    status: FeeStatus = FeeStatus.PENDING
    challan_number: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("month")
    @classmethod
    def _known_month(cls, value: str) -> str:
        value = value.strip().title()
        if value not in MONTHS and value != REGISTRATION_MONTH:
            raise ValueError(f"Unknown month: {value}")
        return value


class FeeUpdate(BaseModel):
    amount: Optional[float] = Field(None, gt=0)
    due_date: Optional[date] = None
    challan_number: Optional[str] = None
    notes: Optional[str] = None


class FeePaymentMark(BaseModel):
    challan_number: Optional[str] = None


class FeeRecordWithStudent(FeeRecord):
    student_name: Optional[str] = None
    roll_number: Optional[str] = None
    course: Optional[str] = None


# ============================================
# STUDENT MODELS
# ============================================

class StudentBase(BaseModel):
    roll_number: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    father_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    course: Optional[str] = None
    course_id: Optional[str] = None
    class_time: Optional[str] = None
    enrollment_date: Optional[date] = None


class StudentCreate(StudentBase):
    pass


class StudentUpdate(BaseModel):
    roll_number: Optional[str] = None
    name: Optional[str] = None
    father_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    course: Optional[str] = None
    course_id: Optional[str] = None
    class_time: Optional[str] = None
    enrollment_date: Optional[date] = None


class Student(BaseModel):
    id: str
    roll_number: str
    name: str
    father_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    course: Optional[str] = None
    course_id: Optional[str] = None
    class_time: Optional[str] = None
    enrollment_date: Optional[date] = None
    deleted: bool = False
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, value):
        return str(value)

    @field_validator("course_id", mode="before")
    @classmethod
    def _optional_id(cls, value):
        value = _blank_to_none(value)
        return None if value is None else str(value)

    @field_validator("father_name", "email", "phone", "address", "course", "class_time", mode="before")
    @classmethod
    def _blank(cls, value):
        return _blank_to_none(value)

    @field_validator("enrollment_date", mode="before")
    @classmethod
    def _strip_time(cls, value):
        return _to_date(_blank_to_none(value))

    @field_validator("deleted", mode="before")
    @classmethod
    def _deleted_default(cls, value):
        return bool(value)


class StudentWithFees(Student):
    """Student row with its fee records and linked course eager-loaded."""
    fee_records: List[FeeRecord] = []
    linked_course: Optional[Course] = None


class StudentCreated(BaseModel):
    student: Student
    course_resolution: CourseResolution
    fee_records: List[FeeRecord] = []
    warnings: List[str] = []


class StudentDetail(BaseModel):
    student: Student
    fee_records: List[FeeRecord] = []
    total_pending: float = 0
    total_paid: float = 0


# ============================================
# DEFAULTER MODELS
# ============================================

class Defaulter(BaseModel):
    student_id: str
    roll_number: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    course: Optional[str] = None
    enrollment_date: Optional[date] = None
    total_pending: float
    overdue_days: int
    fee_records: List[FeeRecord] = []

    @computed_field
    @property
    def has_email(self) -> bool:
        return bool(self.email)

    @computed_field
    @property
    def has_phone(self) -> bool:
        return bool(self.phone)


class DefaulterSummary(BaseModel):
    count: int = 0
    total_pending: float = 0
    critical: int = 0
    recent: int = 0
    with_email: int = 0
    with_phone: int = 0


class DefaulterList(BaseModel):
    summary: DefaulterSummary
    defaulters: List[Defaulter]


# ============================================
# IMPORT MODELS
# ============================================

class ImportRow(BaseModel):
    line_number: int
    roll_number: str = ""
    name: str = ""
    father_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    course: Optional[str] = None
    class_time: Optional[str] = None


class ImportRowResult(BaseModel):
    line_number: int
    roll_number: str
    status: ImportRowStatus
    student_id: Optional[str] = None
    course_resolution: Optional[CourseResolution] = None
    fee_amount: Optional[float] = None
    errors: List[str] = []
    warnings: List[str] = []


class ImportSummary(BaseModel):
    total: int = 0
    success: int = 0
    duplicates: int = 0
    invalid: int = 0
    failed: int = 0
    rows: List[ImportRowResult] = []

    def add(self, row: ImportRowResult) -> None:
        self.rows.append(row)
        self.total += 1
        if row.status == ImportRowStatus.SUCCESS:
            self.success += 1
        elif row.status == ImportRowStatus.DUPLICATE:
            self.duplicates += 1
        elif row.status == ImportRowStatus.INVALID:
            self.invalid += 1
        else:
            self.failed += 1


# ============================================
# PAYMENT / CHALLAN MODELS
# ============================================

class BulkPaymentItem(BaseModel):
    fee_id: str
    challan_number: Optional[str] = None


class BulkPaymentRequest(BaseModel):
    items: List[BulkPaymentItem] = Field(..., min_length=1)


class BulkPaymentItemResult(BaseModel):
    fee_id: str
    outcome: PaymentOutcome
    amount: float = 0
    student_name: Optional[str] = None
    roll_number: Optional[str] = None
    error: Optional[str] = None


class BulkPaymentResult(BaseModel):
    requested: int = 0
    updated: int = 0
    already_paid: int = 0
    not_found: int = 0
    failed: int = 0
    total_amount: float = 0
    email_sent: bool = False
    items: List[BulkPaymentItemResult] = []

    def add(self, item: BulkPaymentItemResult) -> None:
        self.items.append(item)
        self.requested += 1
        if item.outcome == PaymentOutcome.UPDATED:
            self.updated += 1
            self.total_amount += item.amount
        elif item.outcome == PaymentOutcome.ALREADY_PAID:
            self.already_paid += 1
        elif item.outcome == PaymentOutcome.NOT_FOUND:
            self.not_found += 1
        else:
            self.failed += 1


class Challan(BaseModel):
    challan_number: str
    student_id: str
    student_name: str
    roll_number: str
    course: Optional[str] = None
    month: str
    year: int
    amount: Optional[float] = None
    due_date: date
    course_resolution: Optional[CourseResolution] = None
    existing_challan_number: Optional[str] = None
    generated_on: date


class ChallanBatchRequest(BaseModel):
    month: str
    year: int = Field(..., ge=2000, le=2100)

    @field_validator("month")
    @classmethod
    def _known_month(cls, value: str) -> str:
        value = value.strip().title()
        if value not in MONTHS:
            raise ValueError(f"Unknown month: {value}")
        return value


class ChallanBatchResult(BaseModel):
    month: str
    year: int
    created: int = 0
    skipped_existing: int = 0
    skipped_unresolved: int = 0
    total_amount: float = 0
    challans: List[Challan] = []
    unresolved_students: List[str] = []


# ============================================
# NOTIFICATION MODELS
# ============================================

DEFAULT_REMINDER_TEMPLATE = (
    "Dear {student_name},\n\n"
    "This is a reminder that your fee payment of {pending_amount} is pending "
    "({overdue_days} days overdue). Please visit the college office at your "
    "earliest convenience.\n\nRoll Number: {roll_number}"
)


class EmailResult(BaseModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class NotificationRequest(BaseModel):
    student_ids: List[str] = Field(..., min_length=1)
    message: str = DEFAULT_REMINDER_TEMPLATE


class ReminderRequest(BaseModel):
    message: str = DEFAULT_REMINDER_TEMPLATE


class NotificationItemResult(BaseModel):
    student_id: str
    name: Optional[str] = None
    status: DeliveryStatus
    message_id: Optional[str] = None
    error: Optional[str] = None


class NotificationBatchResult(BaseModel):
    requested: int = 0
    sent: int = 0
    failed: int = 0
    items: List[NotificationItemResult] = []

    def add(self, item: NotificationItemResult) -> None:
        self.items.append(item)
        self.requested += 1
        if item.status == DeliveryStatus.SENT:
            self.sent += 1
        else:
            self.failed += 1


class NotificationLog(BaseModel):
    id: str
    student_id: Optional[str] = None
    type: str = "email"
    status: DeliveryStatus
    message: Optional[str] = None
    error: Optional[str] = None
    message_id: Optional[str] = None
    sent_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, value):
        return str(value)


# ============================================
# REPORT MODELS
# ============================================

class DashboardStats(BaseModel):
    total_students: int = 0
    total_collected: float = 0
    total_pending: float = 0
    defaulters: int = 0


class MonthlyCollection(BaseModel):
    month: str
    year: int
    total: float = 0
    paid: float = 0
    pending: float = 0


class CourseReport(BaseModel):
    course: str
    total_students: int = 0
    total_collected: float = 0
    total_pending: float = 0
    collection_rate: int = 0


class YearlySummary(BaseModel):
    year: int
    total_collected: float = 0
    total_pending: float = 0
    student_count: int = 0


class TransactionReport(BaseModel):
    fee_id: str
    student_name: str = "Unknown"
    roll_number: Optional[str] = None
    amount: float = 0
    month: str = ""
    year: int = 0
    payment_date: Optional[date] = None
    status: FeeStatus
    challan_number: Optional[str] = None
