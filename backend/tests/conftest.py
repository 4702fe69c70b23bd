from datetime import date, timedelta

import pytest
import requests

from core.database import Base, init_db, make_session_factory, session_scope
from schemas.booking import BookingCreateRequest

from booking_service.events import ALL_EVENTS, EventBus
from booking_service.services import build_services
from booking_service.tables import Booking, PerformerProfile, PlatformSetting
from notification_service.channels import SENT, Channel
from notification_service.dispatcher import NotificationDispatcher

CUSTOMER_ID = "cust-1"
PERFORMER_ID = "perf-1"
PERFORMER_USER_ID = "perf-user-1"
ADMIN_ID = "admin-1"


class RecordingChannel(Channel):
    """Канал, который запоминает сообщения вместо отправки"""

    def __init__(self, name: str, fail: bool = False):
        super().__init__(api_url="http://test", api_key="test")
        self.name = name
        self.fail = fail
        self.sent = []

    def send(self, recipient, message, **extra):
        if self.fail:
            raise requests.ConnectionError("gateway down")
        self.sent.append({"to": recipient, "message": message, **extra})
        return SENT


@pytest.fixture
def session_factory():
    factory = make_session_factory("sqlite://")
    init_db(factory)
    yield factory
    Base.metadata.drop_all(bind=factory.kw["bind"])


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def recorded_events(event_bus):
    events = []
    event_bus.subscribe(ALL_EVENTS, events.append)
    return events


@pytest.fixture
def channels():
    return {
        "sms": RecordingChannel("sms"),
        "email": RecordingChannel("email"),
        "push": RecordingChannel("push"),
    }


@pytest.fixture
def dispatcher(session_factory, channels):
    return NotificationDispatcher(session_factory, **channels)


@pytest.fixture
def services(session_factory, event_bus, dispatcher):
    dispatcher.register(event_bus)
    return build_services(session_factory, event_bus)


@pytest.fixture
def performer(session_factory):
    with session_scope(session_factory) as db:
        db.add(
            PerformerProfile(
                id=PERFORMER_ID,
                user_id=PERFORMER_USER_ID,
                display_name="Дед Мороз Николай",
                phone="+79160000001",
                base_price=5000,
                commission_rate=25,
            )
        )
    return PERFORMER_ID


@pytest.fixture
def commission_40(session_factory):
    with session_scope(session_factory) as db:
        db.add(PlatformSetting(key="commission_rate", value="40"))
    return 40


def booking_request(**overrides) -> BookingCreateRequest:
    data = {
        "customer_id": CUSTOMER_ID,
        "performer_id": PERFORMER_ID,
        "booking_date": (date.today() + timedelta(days=10)).isoformat(),
        "booking_time": "18:00",
        "address": "ул. Ленина, д. 1, кв. 5",
        "district_slug": "centralnyj",
        "event_type": "home",
        "children_count": 2,
        "children_ages": "4 и 7 лет",
        "customer_name": "Анна Петрова",
        "customer_phone": "+7 916 123-45-67",
        "customer_email": "anna@example.com",
    }
    data.update(overrides)
    return BookingCreateRequest.model_validate(data)


@pytest.fixture
def booking(services, performer, commission_40):
    return services.lifecycle.create_booking(booking_request())


@pytest.fixture
def force_state(session_factory):
    """Перевести бронь в нужное состояние в обход правил (подготовка данных)"""

    def _force(booking_id, status=None, payment_status=None):
        with session_scope(session_factory) as db:
            row = db.query(Booking).filter(Booking.id == booking_id).one()
            if status:
                row.status = status
            if payment_status:
                row.payment_status = payment_status

    return _force


@pytest.fixture
def read_booking(session_factory):
    def _read(booking_id):
        with session_scope(session_factory) as db:
            row = db.query(Booking).filter(Booking.id == booking_id).one()
            db.expunge(row)
            return row

    return _read
