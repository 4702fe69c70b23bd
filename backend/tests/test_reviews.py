"""
Тесты отзывов и рейтинга исполнителя
"""
from datetime import date, timedelta

import pytest

from core.database import session_scope
from core.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from schemas.booking import ActorRole
from booking_service.tables import PerformerProfile

from conftest import CUSTOMER_ID, PERFORMER_ID, PERFORMER_USER_ID, booking_request


@pytest.fixture
def completed(services, performer, commission_40):
    """Бронь на вчера, подтверждённая и завершённая исполнителем"""

    def _completed():
        booking = services.lifecycle.create_booking(
            booking_request(booking_date=(date.today() - timedelta(days=1)).isoformat())
        )
        services.lifecycle.accept(booking.id, PERFORMER_USER_ID)
        services.lifecycle.complete(booking.id, PERFORMER_USER_ID, ActorRole.PERFORMER)
        return booking

    return _completed


def performer_rating(session_factory):
    with session_scope(session_factory) as db:
        profile = db.query(PerformerProfile).filter(PerformerProfile.id == PERFORMER_ID).one()
        return profile.rating_average, profile.rating_count


def test_review_after_completion(services, session_factory, completed):
    booking = completed()
    review = services.reviews.submit_review(booking.id, CUSTOMER_ID, 5, "  Дети в восторге!  ")

    assert review.rating == 5
    assert review.text == "Дети в восторге!"
    assert review.performer_id == PERFORMER_ID
    assert performer_rating(session_factory) == (5.0, 1)


def test_rating_is_recomputed(services, session_factory, completed):
    services.reviews.submit_review(completed().id, CUSTOMER_ID, 5)
    services.reviews.submit_review(completed().id, CUSTOMER_ID, 4)
    services.reviews.submit_review(completed().id, CUSTOMER_ID, 4)

    assert performer_rating(session_factory) == (4.33, 3)
    assert len(services.reviews.list_reviews(PERFORMER_ID)) == 3


def test_one_review_per_booking(services, session_factory, completed):
    booking = completed()
    services.reviews.submit_review(booking.id, CUSTOMER_ID, 5)
    with pytest.raises(ConflictError):
        services.reviews.submit_review(booking.id, CUSTOMER_ID, 1)
    assert performer_rating(session_factory) == (5.0, 1)


@pytest.mark.parametrize("status", ["pending", "confirmed", "cancelled", "no_show"])
def test_only_completed_bookings(services, booking, force_state, session_factory, status):
    force_state(booking.id, status=status)
    with pytest.raises(ConflictError):
        services.reviews.submit_review(booking.id, CUSTOMER_ID, 5)
    assert performer_rating(session_factory) == (None, 0)


@pytest.mark.parametrize("rating", [0, 6, -1])
def test_rating_range(services, completed, rating):
    with pytest.raises(ValidationError):
        services.reviews.submit_review(completed().id, CUSTOMER_ID, rating)


def test_other_customer(services, completed):
    with pytest.raises(PermissionDeniedError):
        services.reviews.submit_review(completed().id, "cust-2", 5)


def test_missing_booking(services, performer):
    with pytest.raises(NotFoundError):
        services.reviews.submit_review("missing", CUSTOMER_ID, 5)
