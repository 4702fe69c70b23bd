"""
Тесты жизненного цикла брони: создание, переходы статусов, уведомления
"""
from datetime import date, timedelta

import pytest

from core.database import session_scope
from core.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from schemas.booking import ActorRole, BookingStatus, PaymentStatus
from booking_service.lifecycle import TRANSITIONS, Trigger, allowed_triggers
from booking_service.repository import AuditRepository, NotificationLogRepository
from booking_service.pricing import CommissionRateProvider

from conftest import ADMIN_ID, CUSTOMER_ID, PERFORMER_USER_ID, RecordingChannel, booking_request

ACTORS = {
    Trigger.ACCEPT: (PERFORMER_USER_ID, ActorRole.PERFORMER),
    Trigger.REJECT: (PERFORMER_USER_ID, ActorRole.PERFORMER),
    Trigger.PROPOSE: (PERFORMER_USER_ID, ActorRole.PERFORMER),
    Trigger.ACCEPT_PROPOSAL: (CUSTOMER_ID, ActorRole.CUSTOMER),
    Trigger.CANCEL: (CUSTOMER_ID, ActorRole.CUSTOMER),
    Trigger.COMPLETE: (ADMIN_ID, ActorRole.ADMIN),
    Trigger.MARK_NO_SHOW: (ADMIN_ID, ActorRole.ADMIN),
}


class TestCreateBooking:

    def test_new_booking_is_pending_and_not_paid(self, booking):
        assert booking.status == BookingStatus.PENDING
        assert booking.payment_status == PaymentStatus.NOT_PAID

    def test_pricing_snapshot_uses_platform_rate(self, booking):
        # у исполнителя в профиле 25%, но цену считаем по комиссии платформы
        assert booking.commission_rate == 40
        assert booking.price_total == 7000
        assert booking.prepayment_amount == 2000
        assert booking.performer_payment == 5000
        assert booking.prepayment_amount <= booking.price_total

    def test_snapshot_survives_rate_change(self, services, booking):
        services.rate_provider.set_rate(10)
        stored = services.lifecycle.get_booking(booking.id)
        assert stored.price_total == 7000
        assert stored.commission_rate == 40

        newer = services.lifecycle.create_booking(booking_request())
        assert newer.price_total == 5500

    def test_performer_is_notified(self, booking, channels):
        assert len(channels["sms"].sent) == 1
        sms = channels["sms"].sent[0]
        assert sms["to"] == "+79160000001"
        assert "Анна Петрова" in sms["message"]
        assert channels["push"].sent[0]["to"] == PERFORMER_USER_ID

    def test_unknown_performer(self, services, commission_40):
        with pytest.raises(NotFoundError):
            services.lifecycle.create_booking(booking_request(performer_id="nobody"))

    def test_creation_is_audited(self, session_factory, booking):
        with session_scope(session_factory) as db:
            entries = AuditRepository.list_entries(db, entity_id=booking.id, action="booking_created")
            assert len(entries) == 1
            assert entries[0].details["customer_price"] == 7000

    @pytest.mark.parametrize(
        "overrides",
        [
            {"address": "ул."},
            {"children_count": 0},
            {"children_count": 51},
            {"customer_name": "А"},
            {"customer_phone": "позвоните мне"},
            {"booking_time": "25:00"},
            {"event_type": "wedding"},
        ],
    )
    def test_request_validation(self, overrides):
        from pydantic import ValidationError as PayloadValidationError

        with pytest.raises(PayloadValidationError):
            booking_request(**overrides)


class TestPerformerDecision:

    def test_accept(self, services, booking, channels):
        result = services.lifecycle.accept(booking.id, PERFORMER_USER_ID)
        assert result.status == BookingStatus.CONFIRMED
        confirmed = [s for s in channels["sms"].sent if s["to"] == "+7 916 123-45-67"]
        assert len(confirmed) == 1
        assert "подтвердил" in confirmed[0]["message"]

    def test_reject_requires_reason(self, services, booking, read_booking):
        for reason in ("", "   ", None):
            with pytest.raises(ValidationError):
                services.lifecycle.reject(booking.id, PERFORMER_USER_ID, reason)
        assert read_booking(booking.id).status == "pending"

    def test_reject_with_reason(self, services, booking, channels):
        result = services.lifecycle.reject(booking.id, PERFORMER_USER_ID, "Заболел")
        assert result.status == BookingStatus.CANCELLED
        assert result.cancellation_reason == "Заболел"
        assert result.cancelled_by == ActorRole.PERFORMER
        rejected = [s for s in channels["sms"].sent if s["to"] == "+7 916 123-45-67"]
        assert "Причина: Заболел" in rejected[0]["message"]

    def test_other_performer_cannot_accept(self, services, booking):
        with pytest.raises(PermissionDeniedError):
            services.lifecycle.accept(booking.id, "someone-else")

    def test_customer_cannot_accept(self, services, booking):
        with pytest.raises(PermissionDeniedError):
            services.lifecycle.accept(booking.id, CUSTOMER_ID, ActorRole.CUSTOMER)

    def test_missing_booking(self, services, performer):
        with pytest.raises(NotFoundError):
            services.lifecycle.accept("missing", PERFORMER_USER_ID)


class TestCancel:

    def test_customer_cancels_pending(self, services, booking, channels):
        result = services.lifecycle.cancel(booking.id, CUSTOMER_ID, "Планы изменились")
        assert result.status == BookingStatus.CANCELLED
        assert result.cancelled_by == ActorRole.CUSTOMER
        to_performer = [s for s in channels["sms"].sent if s["to"] == "+79160000001"]
        assert "Планы изменились" in to_performer[-1]["message"]

    def test_customer_cancels_confirmed(self, services, booking):
        services.lifecycle.accept(booking.id, PERFORMER_USER_ID)
        result = services.lifecycle.cancel(booking.id, CUSTOMER_ID, "Уезжаем")
        assert result.status == BookingStatus.CANCELLED

    def test_cancel_requires_reason(self, services, booking, read_booking):
        with pytest.raises(ValidationError):
            services.lifecycle.cancel(booking.id, CUSTOMER_ID, "")
        assert read_booking(booking.id).status == "pending"

    def test_other_customer_cannot_cancel(self, services, booking):
        with pytest.raises(PermissionDeniedError):
            services.lifecycle.cancel(booking.id, "cust-2", "Не моё")


class TestStateMachineClosure:

    def test_allowed_triggers_match_table(self):
        assert allowed_triggers(BookingStatus.PENDING) == {
            Trigger.ACCEPT, Trigger.REJECT, Trigger.PROPOSE, Trigger.ACCEPT_PROPOSAL, Trigger.CANCEL,
        }
        assert allowed_triggers(BookingStatus.CONFIRMED) == {
            Trigger.CANCEL, Trigger.COMPLETE, Trigger.MARK_NO_SHOW,
        }
        assert allowed_triggers(BookingStatus.CANCELLED) == set()
        assert allowed_triggers(BookingStatus.COMPLETED) == set()
        assert allowed_triggers(BookingStatus.NO_SHOW) == set()

    @pytest.mark.parametrize("status", list(BookingStatus))
    def test_invalid_triggers_conflict_and_leave_status(self, services, booking, force_state, read_booking, status):
        force_state(booking.id, status=status.value)
        for trigger in set(TRANSITIONS) - allowed_triggers(status):
            actor_id, role = ACTORS[trigger]
            with pytest.raises(ConflictError):
                services.lifecycle.transition(booking.id, trigger, actor_id, role, reason="причина")
            assert read_booking(booking.id).status == status.value


class TestCompareAndSet:

    def test_lost_race_is_a_conflict(self, services, session_factory, booking, force_state, read_booking):
        stale = read_booking(booking.id)
        # исполнитель успел подтвердить бронь после нашего чтения
        force_state(booking.id, status="confirmed")
        with pytest.raises(ConflictError):
            with session_scope(session_factory) as db:
                services.lifecycle.apply_transition(
                    db, stale, Trigger.CANCEL, CUSTOMER_ID, ActorRole.CUSTOMER, reason="Передумали"
                )
        stored = read_booking(booking.id)
        assert stored.status == "confirmed"
        assert stored.cancellation_reason is None

    def test_second_accept_is_a_conflict(self, services, booking):
        services.lifecycle.accept(booking.id, PERFORMER_USER_ID)
        with pytest.raises(ConflictError) as exc:
            services.lifecycle.accept(booking.id, PERFORMER_USER_ID)
        assert "обновите страницу" in exc.value.message


class TestAfterEvent:

    def test_complete_and_no_show(self, services, performer, commission_40):
        today = services.lifecycle.create_booking(booking_request(booking_date=date.today().isoformat()))
        services.lifecycle.accept(today.id, PERFORMER_USER_ID)
        assert services.lifecycle.complete(today.id, ADMIN_ID).status == BookingStatus.COMPLETED

        other = services.lifecycle.create_booking(booking_request())
        services.lifecycle.accept(other.id, PERFORMER_USER_ID)
        result = services.lifecycle.mark_no_show(other.id, CUSTOMER_ID, ActorRole.CUSTOMER)
        assert result.status == BookingStatus.NO_SHOW

    def test_performer_completes_own_booking(self, services, performer, commission_40):
        past = services.lifecycle.create_booking(
            booking_request(booking_date=(date.today() - timedelta(days=1)).isoformat())
        )
        services.lifecycle.accept(past.id, PERFORMER_USER_ID)
        result = services.lifecycle.complete(past.id, PERFORMER_USER_ID, ActorRole.PERFORMER)
        assert result.status == BookingStatus.COMPLETED

    def test_other_performer_cannot_complete(self, services, performer, commission_40):
        past = services.lifecycle.create_booking(
            booking_request(booking_date=(date.today() - timedelta(days=1)).isoformat())
        )
        services.lifecycle.accept(past.id, PERFORMER_USER_ID)
        with pytest.raises(PermissionDeniedError):
            services.lifecycle.complete(past.id, "someone-else", ActorRole.PERFORMER)

    @pytest.mark.parametrize(
        "actor_id, role", [(PERFORMER_USER_ID, ActorRole.PERFORMER), (ADMIN_ID, ActorRole.ADMIN)]
    )
    def test_cannot_complete_before_event(self, services, booking, read_booking, actor_id, role):
        services.lifecycle.accept(booking.id, PERFORMER_USER_ID)
        with pytest.raises(ConflictError) as exc:
            services.lifecycle.complete(booking.id, actor_id, role)
        assert "ещё не состоялось" in exc.value.message
        assert read_booking(booking.id).status == "confirmed"

    def test_customer_cannot_complete(self, services, booking):
        services.lifecycle.accept(booking.id, PERFORMER_USER_ID)
        with pytest.raises(PermissionDeniedError):
            services.lifecycle.complete(booking.id, CUSTOMER_ID, ActorRole.CUSTOMER)

    def test_complete_past_bookings(self, services, performer, commission_40):
        past = services.lifecycle.create_booking(
            booking_request(booking_date=(date.today() - timedelta(days=1)).isoformat())
        )
        future = services.lifecycle.create_booking(booking_request())
        unconfirmed = services.lifecycle.create_booking(
            booking_request(booking_date=(date.today() - timedelta(days=2)).isoformat())
        )
        services.lifecycle.accept(past.id, PERFORMER_USER_ID)
        services.lifecycle.accept(future.id, PERFORMER_USER_ID)

        assert services.lifecycle.complete_past_bookings() == [past.id]
        assert services.lifecycle.get_booking(past.id).status == BookingStatus.COMPLETED
        assert services.lifecycle.get_booking(future.id).status == BookingStatus.CONFIRMED
        assert services.lifecycle.get_booking(unconfirmed.id).status == BookingStatus.PENDING

    def test_full_payment_after_prepayment(self, services, booking, force_state):
        force_state(booking.id, status="confirmed", payment_status="prepayment_paid")
        result = services.lifecycle.record_full_payment(booking.id, ADMIN_ID)
        assert result.payment_status == PaymentStatus.FULLY_PAID

    def test_full_payment_requires_prepayment(self, services, booking, force_state):
        force_state(booking.id, status="confirmed")
        with pytest.raises(ConflictError):
            services.lifecycle.record_full_payment(booking.id, ADMIN_ID)


class TestNotificationFailures:

    def test_failed_sms_does_not_roll_back(self, session_factory, event_bus, performer, commission_40):
        from booking_service.services import build_services
        from notification_service.dispatcher import NotificationDispatcher

        broken = RecordingChannel("sms", fail=True)
        NotificationDispatcher(
            session_factory, sms=broken, email=RecordingChannel("email"), push=RecordingChannel("push")
        ).register(event_bus)
        services = build_services(session_factory, event_bus, CommissionRateProvider(session_factory))

        booking = services.lifecycle.create_booking(booking_request())
        result = services.lifecycle.accept(booking.id, PERFORMER_USER_ID)
        assert result.status == BookingStatus.CONFIRMED

        with session_scope(session_factory) as db:
            logs = NotificationLogRepository.recent(db, booking_id=booking.id)
            sms_logs = [n for n in logs if n.channel == "sms"]
            assert sms_logs and all(n.status == "failed" for n in sms_logs)
            assert "gateway down" in sms_logs[0].error

    def test_status_change_event_published(self, services, booking, recorded_events):
        services.lifecycle.accept(booking.id, PERFORMER_USER_ID)
        changes = [e for e in recorded_events if e.event_type == "booking.status_changed"]
        assert len(changes) == 1
        assert changes[0].old_status == BookingStatus.PENDING
        assert changes[0].new_status == BookingStatus.CONFIRMED
