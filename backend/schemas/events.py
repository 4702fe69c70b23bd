"""
Доменные события бронирований.

Ядро публикует их после фиксации транзакции; транспорт (SMS, push,
websocket, опрос) подписывается сам.
"""
from datetime import date, datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from schemas.booking import ActorRole, BookingStatus, PaymentStatus


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DomainEvent(BaseModel):
    event_type: str
    booking_id: str
    timestamp: datetime = Field(default_factory=_now)


class BookingCreated(DomainEvent):
    event_type: str = "booking.created"
    performer_id: str
    customer_name: str
    booking_date: date
    booking_time: str
    price_total: int


class BookingStatusChanged(DomainEvent):
    event_type: str = "booking.status_changed"
    old_status: BookingStatus
    new_status: BookingStatus
    payment_status: PaymentStatus
    actor_role: ActorRole
    reason: Optional[str] = None


class ProposalOffered(DomainEvent):
    event_type: str = "proposal.offered"
    proposal_ids: list[str]


class ProposalAccepted(DomainEvent):
    event_type: str = "proposal.accepted"
    proposal_id: str
    booking_date: date
    booking_time: str
    price_total: int


class PaymentConfirmed(DomainEvent):
    event_type: str = "payment.confirmed"
    invoice_id: str
    amount: float
    currency: str
