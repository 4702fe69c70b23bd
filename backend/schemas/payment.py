"""
Схема данных для платежей
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_validator


class GatewayStatus(str, Enum):
    """Статусы счёта в платёжном шлюзе ВТБ"""

    CREATED = "created"
    PENDING = "pending"
    PAID = "paid"
    EXPIRED = "expired"
    DECLINED = "declined"
    REFUNDED = "refunded"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value):
        return cls.UNKNOWN


class Amount(BaseModel):
    value: Decimal
    currency: str = "RUB"


class VtbWebhookPayload(BaseModel):
    invoice_id: str
    order_id: str  # это id бронирования
    status: GatewayStatus
    amount: Amount
    paid_at: Optional[datetime] = None
    transaction_id: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def map_unknown_status(cls, v):
        # неизвестный статус не отбрасываем, а помечаем как unknown
        if isinstance(v, str):
            return GatewayStatus(v.lower())
        return v


class PaymentRequest(BaseModel):
    booking_id: str


class PaymentResponse(BaseModel):
    booking_id: str
    invoice_id: str
    payment_url: str
    amount: int
    status: str
