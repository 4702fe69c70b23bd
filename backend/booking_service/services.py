"""
Сборка сервисов бронирования поверх одной шины событий
"""
from dataclasses import dataclass
from typing import Optional

from core.database import SessionFactory

from booking_service.events import EventBus
from booking_service.lifecycle import BookingLifecycle
from booking_service.pricing import CommissionRateProvider
from booking_service.proposals import ProposalService
from booking_service.reviews import ReviewService


@dataclass
class BookingServices:
    session_factory: SessionFactory
    event_bus: EventBus
    rate_provider: CommissionRateProvider
    lifecycle: BookingLifecycle
    proposals: ProposalService
    reviews: ReviewService


def build_services(
    session_factory: SessionFactory,
    event_bus: Optional[EventBus] = None,
    rate_provider: Optional[CommissionRateProvider] = None,
) -> BookingServices:
    event_bus = event_bus or EventBus()
    rate_provider = rate_provider or CommissionRateProvider(session_factory)
    lifecycle = BookingLifecycle(session_factory, rate_provider, event_bus)
    proposals = ProposalService(session_factory, lifecycle, event_bus)
    reviews = ReviewService(session_factory)
    return BookingServices(session_factory, event_bus, rate_provider, lifecycle, proposals, reviews)
