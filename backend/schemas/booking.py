"""
Схема данных для бронирований
"""
import re
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Российские номера: +7 / 8 и распространённые форматы записи
PHONE_RE = re.compile(r"^(\+?7|8)?[\s-]?\(?\d{3}\)?[\s-]?\d{3}[\s-]?\d{2}[\s-]?\d{2}$")
DIGITS_RE = re.compile(r"^\+?\d+$")
TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


class PaymentStatus(str, Enum):
    NOT_PAID = "not_paid"
    PREPAYMENT_PAID = "prepayment_paid"
    FULLY_PAID = "fully_paid"
    REFUNDED = "refunded"


class EventFormat(str, Enum):
    HOME = "home"
    KINDERGARTEN = "kindergarten"
    SCHOOL = "school"
    OFFICE = "office"
    CORPORATE = "corporate"
    OUTDOOR = "outdoor"


class ProposalStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ActorRole(str, Enum):
    CUSTOMER = "customer"
    PERFORMER = "performer"
    ADMIN = "admin"
    SYSTEM = "system"


def _check_time(v: str) -> str:
    if not TIME_RE.match(v):
        raise ValueError("Время должно быть в формате ЧЧ:ММ")
    return v


class BookingCreateRequest(BaseModel):
    customer_id: str
    performer_id: str
    booking_date: date
    booking_time: str
    address: str = Field(min_length=5, max_length=200)
    district_slug: str = Field(min_length=1)
    event_type: EventFormat
    children_count: int = Field(ge=1, le=50)
    children_ages: Optional[str] = Field(default=None, max_length=100)
    comment: Optional[str] = Field(default=None, max_length=1000)
    customer_name: str = Field(min_length=2, max_length=100)
    customer_phone: str
    customer_email: Optional[str] = None

    @field_validator("booking_time")
    @classmethod
    def validate_time(cls, v):
        return _check_time(v)

    @field_validator("customer_phone")
    @classmethod
    def validate_phone(cls, v):
        cleaned = re.sub(r"[\s-]", "", v)
        if PHONE_RE.match(v) or (9 <= len(cleaned) <= 15 and DIGITS_RE.match(cleaned)):
            return v
        raise ValueError("Введите корректный номер телефона")


class BookingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    customer_id: str
    performer_id: str
    booking_date: date
    booking_time: str
    address: str
    district_slug: str
    event_type: EventFormat
    children_count: int
    children_ages: Optional[str] = None
    comment: Optional[str] = None
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    price_total: int
    prepayment_amount: int
    performer_payment: int
    commission_rate: int
    status: BookingStatus
    payment_status: PaymentStatus
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[ActorRole] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class TransitionRequest(BaseModel):
    """Действие над бронированием от имени участника"""

    actor_id: str
    actor_role: ActorRole
    reason: Optional[str] = None


class ProposalItem(BaseModel):
    proposed_date: date
    proposed_time: str
    proposed_price: Optional[int] = None

    @field_validator("proposed_time")
    @classmethod
    def validate_time(cls, v):
        return _check_time(v)


class ProposalCreateRequest(BaseModel):
    performer_id: str
    proposals: List[ProposalItem] = Field(min_length=1)


class ProposalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    booking_id: str
    proposed_date: date
    proposed_time: str
    proposed_price: Optional[int] = None
    status: ProposalStatus
    created_at: datetime
    # сколько исполнитель получит на руки по этому варианту
    performer_net: Optional[int] = None


class CustomerActionRequest(BaseModel):
    customer_id: str


class CommissionRateUpdate(BaseModel):
    rate: int = Field(ge=0, le=1000)


class ReviewCreateRequest(BaseModel):
    customer_id: str
    rating: int = Field(ge=1, le=5)
    text: Optional[str] = Field(default=None, max_length=1000)


class ReviewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    booking_id: str
    performer_id: str
    customer_id: str
    rating: int
    text: Optional[str] = None
    created_at: datetime
