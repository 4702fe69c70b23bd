"""Repositories - операции с базой для бронирований и связанных таблиц"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from booking_service.tables import (
    AuditLog,
    Booking,
    BookingProposal,
    NotificationLog,
    PerformerProfile,
    PlatformSetting,
    Review,
)
from core.errors import NotFoundError


class BookingRepository:
    """Бронирования. Изменение статуса только через compare_and_set"""

    @staticmethod
    def get(db: Session, booking_id: str) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.id == booking_id).first()

    @staticmethod
    def get_or_raise(db: Session, booking_id: str) -> Booking:
        booking = BookingRepository.get(db, booking_id)
        if not booking:
            raise NotFoundError(f"Бронирование {booking_id} не найдено")
        return booking

    @staticmethod
    def list_bookings(
        db: Session,
        customer_id: Optional[str] = None,
        performer_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> list[Booking]:
        query = db.query(Booking)
        if customer_id:
            query = query.filter(Booking.customer_id == customer_id)
        if performer_id:
            query = query.filter(Booking.performer_id == performer_id)
        if status:
            query = query.filter(Booking.status == status)
        return query.order_by(Booking.created_at.desc()).all()

    @staticmethod
    def list_confirmed_before(db: Session, day) -> list[Booking]:
        return (
            db.query(Booking)
            .filter(Booking.status == "confirmed", Booking.booking_date < day)
            .all()
        )

    @staticmethod
    def add(db: Session, booking: Booking) -> Booking:
        db.add(booking)
        db.flush()
        return booking

    @staticmethod
    def compare_and_set(
        db: Session,
        booking_id: str,
        expected_status: str,
        expected_payment_status: Optional[str] = None,
        **values,
    ) -> bool:
        """UPDATE ... WHERE id = :id AND status = :expected.

        Возвращает False, если строка уже не в ожидаемом состоянии
        (кто-то успел изменить бронь раньше).
        """
        stmt = update(Booking).where(Booking.id == booking_id, Booking.status == expected_status)
        if expected_payment_status is not None:
            stmt = stmt.where(Booking.payment_status == expected_payment_status)
        values.setdefault("updated_at", datetime.now(timezone.utc))
        result = db.execute(stmt.values(**values).execution_options(synchronize_session=False))
        return result.rowcount == 1


class ProposalRepository:

    @staticmethod
    def get(db: Session, proposal_id: str) -> Optional[BookingProposal]:
        return db.query(BookingProposal).filter(BookingProposal.id == proposal_id).first()

    @staticmethod
    def list_for_booking(db: Session, booking_id: str, status: Optional[str] = None) -> list[BookingProposal]:
        query = db.query(BookingProposal).filter(BookingProposal.booking_id == booking_id)
        if status:
            query = query.filter(BookingProposal.status == status)
        return query.order_by(BookingProposal.proposed_date.asc(), BookingProposal.proposed_time.asc()).all()

    @staticmethod
    def add_many(db: Session, proposals: list[BookingProposal]) -> list[BookingProposal]:
        db.add_all(proposals)
        db.flush()
        return proposals

    @staticmethod
    def accept_exclusive(db: Session, booking_id: str, proposal_id: str) -> bool:
        """Выбранное предложение -> accepted, остальные по этой брони -> rejected"""
        accepted = db.execute(
            update(BookingProposal)
            .where(BookingProposal.id == proposal_id, BookingProposal.status == "pending")
            .values(status="accepted")
            .execution_options(synchronize_session=False)
        )
        if accepted.rowcount != 1:
            return False
        db.execute(
            update(BookingProposal)
            .where(BookingProposal.booking_id == booking_id, BookingProposal.id != proposal_id)
            .values(status="rejected")
            .execution_options(synchronize_session=False)
        )
        return True

    @staticmethod
    def reject_pending(db: Session, booking_id: str) -> int:
        result = db.execute(
            update(BookingProposal)
            .where(BookingProposal.booking_id == booking_id, BookingProposal.status == "pending")
            .values(status="rejected")
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


class PerformerRepository:

    @staticmethod
    def get(db: Session, performer_id: str) -> Optional[PerformerProfile]:
        return db.query(PerformerProfile).filter(PerformerProfile.id == performer_id).first()

    @staticmethod
    def get_active_or_raise(db: Session, performer_id: str) -> PerformerProfile:
        performer = PerformerRepository.get(db, performer_id)
        if not performer or not performer.is_active:
            raise NotFoundError(f"Исполнитель {performer_id} не найден")
        return performer

    @staticmethod
    def update_rating(db: Session, performer_id: str, average: Optional[float], count: int) -> None:
        db.execute(
            update(PerformerProfile)
            .where(PerformerProfile.id == performer_id)
            .values(rating_average=average, rating_count=count)
            .execution_options(synchronize_session=False)
        )


class ReviewRepository:

    @staticmethod
    def get_for_booking(db: Session, booking_id: str) -> Optional[Review]:
        return db.query(Review).filter(Review.booking_id == booking_id).first()

    @staticmethod
    def add(db: Session, review: Review) -> Review:
        db.add(review)
        db.flush()
        return review

    @staticmethod
    def list_for_performer(db: Session, performer_id: str) -> list[Review]:
        return (
            db.query(Review)
            .filter(Review.performer_id == performer_id, Review.is_visible.is_(True))
            .order_by(Review.created_at.desc())
            .all()
        )

    @staticmethod
    def rating_summary(db: Session, performer_id: str) -> tuple[Optional[float], int]:
        """Средняя оценка и число видимых отзывов исполнителя"""
        average, count = (
            db.query(func.avg(Review.rating), func.count(Review.id))
            .filter(Review.performer_id == performer_id, Review.is_visible.is_(True))
            .one()
        )
        return (float(average) if average is not None else None), count


class SettingsRepository:

    @staticmethod
    def get_value(db: Session, key: str) -> Optional[str]:
        setting = db.query(PlatformSetting).filter(PlatformSetting.key == key).first()
        return setting.value if setting else None

    @staticmethod
    def set_value(db: Session, key: str, value: str, description: Optional[str] = None) -> PlatformSetting:
        setting = db.query(PlatformSetting).filter(PlatformSetting.key == key).first()
        if setting is None:
            setting = PlatformSetting(key=key, value=value, description=description)
            db.add(setting)
        else:
            setting.value = value
            setting.updated_at = datetime.now(timezone.utc)
        db.flush()
        return setting


class AuditRepository:
    """Только добавление и чтение"""

    @staticmethod
    def append(
        db: Session,
        user_id: str,
        action: str,
        entity_type: str,
        entity_id: Optional[str],
        details: Optional[dict] = None,
    ) -> AuditLog:
        entry = AuditLog(
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
        )
        db.add(entry)
        db.flush()
        return entry

    @staticmethod
    def list_entries(
        db: Session,
        entity_id: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = 100,
    ) -> list[AuditLog]:
        query = db.query(AuditLog)
        if entity_id:
            query = query.filter(AuditLog.entity_id == entity_id)
        if action:
            query = query.filter(AuditLog.action == action)
        return query.order_by(AuditLog.created_at.desc()).limit(limit).all()


class NotificationLogRepository:

    @staticmethod
    def append(db: Session, **fields) -> NotificationLog:
        entry = NotificationLog(**fields)
        db.add(entry)
        db.flush()
        return entry

    @staticmethod
    def recent(db: Session, limit: int = 100, booking_id: Optional[str] = None) -> list[NotificationLog]:
        query = db.query(NotificationLog)
        if booking_id:
            query = query.filter(NotificationLog.booking_id == booking_id)
        return query.order_by(NotificationLog.created_at.desc()).limit(limit).all()
