"""
Отзывы клиентов о завершённых бронях

Отзыв можно оставить только по брони в статусе completed, один на бронь.
После сохранения пересчитываются rating_average и rating_count исполнителя.
"""
import logging
from typing import Optional

from core.database import SessionFactory, session_scope
from core.errors import ConflictError, PermissionDeniedError, ValidationError
from schemas.booking import BookingStatus, ReviewResponse

from booking_service.repository import (
    AuditRepository,
    BookingRepository,
    PerformerRepository,
    ReviewRepository,
)
from booking_service.tables import Review

logger = logging.getLogger(__name__)


class ReviewService:

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    def submit_review(self, booking_id: str, customer_id: str, rating: int, text: Optional[str] = None) -> ReviewResponse:
        if not 1 <= rating <= 5:
            raise ValidationError("Оценка должна быть от 1 до 5")

        with session_scope(self.session_factory) as db:
            booking = BookingRepository.get_or_raise(db, booking_id)
            if booking.customer_id != customer_id:
                raise PermissionDeniedError("Это бронирование другого клиента")
            if booking.status != BookingStatus.COMPLETED.value:
                raise ConflictError("Отзыв можно оставить только после завершения визита")
            if ReviewRepository.get_for_booking(db, booking_id):
                raise ConflictError("Отзыв по этой брони уже оставлен")

            review = ReviewRepository.add(
                db,
                Review(
                    booking_id=booking.id,
                    performer_id=booking.performer_id,
                    customer_id=customer_id,
                    rating=rating,
                    text=(text or "").strip() or None,
                ),
            )
            average, count = ReviewRepository.rating_summary(db, booking.performer_id)
            PerformerRepository.update_rating(
                db, booking.performer_id, round(average, 2) if average is not None else None, count
            )
            AuditRepository.append(
                db,
                user_id=customer_id,
                action="review_submitted",
                entity_type="booking",
                entity_id=booking.id,
                details={"rating": rating, "rating_average": average, "rating_count": count},
            )
            result = ReviewResponse.model_validate(review)

        logger.info(f"⭐ Отзыв {rating}/5 по брони {booking_id}, у исполнителя теперь {count} отзыв(ов)")
        return result

    def list_reviews(self, performer_id: str) -> list[ReviewResponse]:
        with session_scope(self.session_factory) as db:
            PerformerRepository.get_active_or_raise(db, performer_id)
            return [ReviewResponse.model_validate(r) for r in ReviewRepository.list_for_performer(db, performer_id)]
