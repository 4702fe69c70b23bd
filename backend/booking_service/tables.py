"""
Таблицы бронирований, предложений, отзывов, настроек платформы и аудита
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from core.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PerformerProfile(Base):
    __tablename__ = "performer_profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    display_name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=True)
    email = Column(String(255), nullable=True)
    base_price = Column(Integer, nullable=False)
    # Поле профиля; в расчёте цены брони не участвует
    commission_rate = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    # пересчитываются при каждом новом отзыве
    rating_average = Column(Float, nullable=True)
    rating_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now)


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=_uuid)
    customer_id = Column(String(36), nullable=False, index=True)
    performer_id = Column(String(36), ForeignKey("performer_profiles.id"), nullable=False, index=True)
    booking_date = Column(Date, nullable=False)
    booking_time = Column(String(5), nullable=False)
    address = Column(String(200), nullable=False)
    district_slug = Column(String(100), nullable=False)
    event_type = Column(String(20), nullable=False)  # home, kindergarten, school, office, corporate, outdoor
    children_count = Column(Integer, nullable=False)
    children_ages = Column(String(100), nullable=True)
    comment = Column(Text, nullable=True)
    customer_name = Column(String(100), nullable=False)
    customer_phone = Column(String(20), nullable=False)
    customer_email = Column(String(255), nullable=True)

    # Снимок цены на момент создания
    price_total = Column(Integer, nullable=False)
    prepayment_amount = Column(Integer, nullable=False)
    performer_payment = Column(Integer, nullable=False)
    commission_rate = Column(Integer, nullable=False)

    status = Column(String(20), default="pending", nullable=False, index=True)  # pending, confirmed, cancelled, completed, no_show
    payment_status = Column(String(20), default="not_paid", nullable=False)  # not_paid, prepayment_paid, fully_paid, refunded
    cancellation_reason = Column(Text, nullable=True)
    cancelled_by = Column(String(20), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    performer = relationship("PerformerProfile")
    proposals = relationship("BookingProposal", back_populates="booking", order_by="BookingProposal.proposed_date")


class BookingProposal(Base):
    __tablename__ = "booking_proposals"

    id = Column(String(36), primary_key=True, default=_uuid)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, index=True)
    proposed_date = Column(Date, nullable=False)
    proposed_time = Column(String(5), nullable=False)
    proposed_price = Column(Integer, nullable=True)
    status = Column(String(20), default="pending", nullable=False)  # pending, accepted, rejected
    created_at = Column(DateTime(timezone=True), default=_now)

    booking = relationship("Booking", back_populates="proposals")


class Review(Base):
    """Отзыв клиента о завершённой брони, не больше одного на бронь"""

    __tablename__ = "reviews"

    id = Column(String(36), primary_key=True, default=_uuid)
    booking_id = Column(String(36), ForeignKey("bookings.id"), unique=True, nullable=False)
    performer_id = Column(String(36), ForeignKey("performer_profiles.id"), nullable=False, index=True)
    customer_id = Column(String(36), nullable=False)
    rating = Column(Integer, nullable=False)  # 1..5
    text = Column(Text, nullable=True)
    is_visible = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now)


class PlatformSetting(Base):
    __tablename__ = "platform_settings"

    id = Column(String(36), primary_key=True, default=_uuid)
    key = Column(String(100), unique=True, nullable=False)
    value = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now)


class AuditLog(Base):
    """Журнал только на добавление: строки не изменяются и не удаляются"""

    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False)
    action = Column(String(100), nullable=False, index=True)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(36), nullable=True, index=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now)


class NotificationLog(Base):
    __tablename__ = "notification_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    channel = Column(String(10), nullable=False)  # sms, email, push
    kind = Column(String(50), nullable=False)
    recipient = Column(String(255), nullable=True)
    booking_id = Column(String(36), nullable=True, index=True)
    message = Column(Text, nullable=False)
    status = Column(String(10), nullable=False)  # sent, failed, mocked
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now)
