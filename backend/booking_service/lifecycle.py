"""
Жизненный цикл бронирования

Статусы брони:    pending -> confirmed -> completed | no_show
                  pending | confirmed -> cancelled
Статусы оплаты:   not_paid -> prepayment_paid -> fully_paid, refunded из оплаченных

Каждая смена статуса - UPDATE ... WHERE id = :id AND status = :ожидаемый.
Если строка не обновилась, значит бронь уже изменил кто-то другой:
поднимаем ConflictError, вызывающий перечитывает состояние.
"""
import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from core.database import SessionFactory, session_scope
from core.errors import ConflictError, PermissionDeniedError, ValidationError
from schemas.booking import (
    ActorRole,
    BookingCreateRequest,
    BookingResponse,
    BookingStatus,
    PaymentStatus,
)
from schemas.events import BookingCreated, BookingStatusChanged

from booking_service.events import EventBus
from booking_service.pricing import CommissionRateProvider, booking_pricing
from booking_service.repository import AuditRepository, BookingRepository, PerformerRepository
from booking_service.tables import Booking

logger = logging.getLogger(__name__)


class Trigger(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    PROPOSE = "propose"
    ACCEPT_PROPOSAL = "accept_proposal"
    CANCEL = "cancel"
    COMPLETE = "complete"
    MARK_NO_SHOW = "mark_no_show"


@dataclass(frozen=True)
class Transition:
    sources: frozenset
    target: BookingStatus
    roles: frozenset
    requires_reason: bool = False
    # нельзя выполнить раньше даты мероприятия
    after_event: bool = False


TRANSITIONS = {
    Trigger.ACCEPT: Transition(
        frozenset({BookingStatus.PENDING}),
        BookingStatus.CONFIRMED,
        frozenset({ActorRole.PERFORMER}),
    ),
    Trigger.REJECT: Transition(
        frozenset({BookingStatus.PENDING}),
        BookingStatus.CANCELLED,
        frozenset({ActorRole.PERFORMER}),
        requires_reason=True,
    ),
    Trigger.PROPOSE: Transition(
        frozenset({BookingStatus.PENDING}),
        BookingStatus.PENDING,
        frozenset({ActorRole.PERFORMER}),
    ),
    Trigger.ACCEPT_PROPOSAL: Transition(
        frozenset({BookingStatus.PENDING}),
        BookingStatus.CONFIRMED,
        frozenset({ActorRole.CUSTOMER}),
    ),
    Trigger.CANCEL: Transition(
        frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED}),
        BookingStatus.CANCELLED,
        frozenset({ActorRole.CUSTOMER, ActorRole.PERFORMER, ActorRole.ADMIN}),
        requires_reason=True,
    ),
    Trigger.COMPLETE: Transition(
        frozenset({BookingStatus.CONFIRMED}),
        BookingStatus.COMPLETED,
        frozenset({ActorRole.ADMIN, ActorRole.SYSTEM, ActorRole.PERFORMER}),
        after_event=True,
    ),
    Trigger.MARK_NO_SHOW: Transition(
        frozenset({BookingStatus.CONFIRMED}),
        BookingStatus.NO_SHOW,
        frozenset({ActorRole.ADMIN, ActorRole.CUSTOMER}),
    ),
}


def allowed_triggers(status: BookingStatus) -> set:
    return {trigger for trigger, t in TRANSITIONS.items() if status in t.sources}


def check_actor(booking: Booking, actor_id: str, actor_role: ActorRole) -> None:
    """Исполнитель и клиент могут действовать только со своими бронями"""
    if actor_role == ActorRole.PERFORMER:
        performer = booking.performer
        if performer is None or actor_id not in (performer.user_id, performer.id):
            raise PermissionDeniedError("Это бронирование другого исполнителя")
    elif actor_role == ActorRole.CUSTOMER:
        if actor_id != booking.customer_id:
            raise PermissionDeniedError("Это бронирование другого клиента")


def check_transition(
    booking: Booking,
    trigger: Trigger,
    actor_id: str,
    actor_role: ActorRole,
    reason: Optional[str] = None,
    today: Optional[date] = None,
) -> Transition:
    """Проверки в порядке: причина, роль, текущий статус, дата мероприятия"""
    transition = TRANSITIONS[trigger]
    if transition.requires_reason and not (reason and reason.strip()):
        raise ValidationError("Укажите причину")
    if actor_role not in transition.roles:
        raise PermissionDeniedError(f"Роль {actor_role.value} не может выполнить {trigger.value}")
    check_actor(booking, actor_id, actor_role)
    if BookingStatus(booking.status) not in transition.sources:
        raise ConflictError()
    if transition.after_event and booking.booking_date > (today or date.today()):
        raise ConflictError("Мероприятие ещё не состоялось, завершить бронь пока нельзя")
    return transition


class BookingLifecycle:
    """Создание бронирований и переходы между статусами"""

    def __init__(self, session_factory: SessionFactory, rate_provider: CommissionRateProvider, event_bus: EventBus):
        self.session_factory = session_factory
        self.rate_provider = rate_provider
        self.event_bus = event_bus

    def create_booking(self, req: BookingCreateRequest) -> BookingResponse:
        rate = self.rate_provider.get_rate()
        with session_scope(self.session_factory) as db:
            performer = PerformerRepository.get_active_or_raise(db, req.performer_id)
            pricing = booking_pricing(performer.base_price, rate)

            booking = Booking(
                **req.model_dump(),
                price_total=pricing.customer_price,
                prepayment_amount=pricing.prepayment,
                performer_payment=pricing.performer_payment,
                commission_rate=pricing.commission_rate,
                status=BookingStatus.PENDING.value,
                payment_status=PaymentStatus.NOT_PAID.value,
            )
            booking.event_type = req.event_type.value
            BookingRepository.add(db, booking)
            AuditRepository.append(
                db,
                user_id=req.customer_id,
                action="booking_created",
                entity_type="booking",
                entity_id=booking.id,
                details=pricing.model_dump(),
            )
            result = BookingResponse.model_validate(booking)

        logger.info(f"✅ Бронь создана: {result.id} за {result.price_total}₽ (предоплата {result.prepayment_amount}₽)")
        self.event_bus.publish(
            BookingCreated(
                booking_id=result.id,
                performer_id=result.performer_id,
                customer_name=result.customer_name,
                booking_date=result.booking_date,
                booking_time=result.booking_time,
                price_total=result.price_total,
            )
        )
        return result

    def get_booking(self, booking_id: str) -> BookingResponse:
        with session_scope(self.session_factory) as db:
            return BookingResponse.model_validate(BookingRepository.get_or_raise(db, booking_id))

    def list_bookings(self, **filters) -> list[BookingResponse]:
        with session_scope(self.session_factory) as db:
            return [BookingResponse.model_validate(b) for b in BookingRepository.list_bookings(db, **filters)]

    def apply_transition(
        self,
        db: Session,
        booking: Booking,
        trigger: Trigger,
        actor_id: str,
        actor_role: ActorRole,
        reason: Optional[str] = None,
        today: Optional[date] = None,
        **values,
    ) -> BookingStatusChanged:
        """Переход внутри уже открытой транзакции. Событие возвращается,
        публиковать его нужно после commit."""
        transition = check_transition(booking, trigger, actor_id, actor_role, reason, today)
        old_status = BookingStatus(booking.status)

        if transition.target == BookingStatus.CANCELLED:
            values["cancellation_reason"] = reason.strip()
            values["cancelled_by"] = actor_role.value

        if not BookingRepository.compare_and_set(
            db, booking.id, old_status.value, status=transition.target.value, **values
        ):
            logger.warning(f"⚠️ Бронь {booking.id} уже не в статусе {old_status.value}, {trigger.value} отклонён")
            raise ConflictError()
        db.refresh(booking)

        AuditRepository.append(
            db,
            user_id=actor_id,
            action="booking_status_changed",
            entity_type="booking",
            entity_id=booking.id,
            details={
                "trigger": trigger.value,
                "from": old_status.value,
                "to": transition.target.value,
                "actor_role": actor_role.value,
                "reason": reason,
            },
        )
        logger.info(f"🔄 Бронь {booking.id}: {old_status.value} -> {transition.target.value} ({trigger.value})")
        return BookingStatusChanged(
            booking_id=booking.id,
            old_status=old_status,
            new_status=transition.target,
            payment_status=PaymentStatus(booking.payment_status),
            actor_role=actor_role,
            reason=reason,
        )

    def transition(
        self,
        booking_id: str,
        trigger: Trigger,
        actor_id: str,
        actor_role: ActorRole,
        reason: Optional[str] = None,
        today: Optional[date] = None,
    ) -> BookingResponse:
        with session_scope(self.session_factory) as db:
            booking = BookingRepository.get_or_raise(db, booking_id)
            event = self.apply_transition(db, booking, trigger, actor_id, actor_role, reason, today=today)
            result = BookingResponse.model_validate(booking)
        self.event_bus.publish(event)
        return result

    def accept(self, booking_id: str, actor_id: str, actor_role: ActorRole = ActorRole.PERFORMER) -> BookingResponse:
        return self.transition(booking_id, Trigger.ACCEPT, actor_id, actor_role)

    def reject(self, booking_id: str, actor_id: str, reason: str, actor_role: ActorRole = ActorRole.PERFORMER) -> BookingResponse:
        return self.transition(booking_id, Trigger.REJECT, actor_id, actor_role, reason)

    def cancel(self, booking_id: str, actor_id: str, reason: str, actor_role: ActorRole = ActorRole.CUSTOMER) -> BookingResponse:
        return self.transition(booking_id, Trigger.CANCEL, actor_id, actor_role, reason)

    def complete(self, booking_id: str, actor_id: str, actor_role: ActorRole = ActorRole.ADMIN) -> BookingResponse:
        return self.transition(booking_id, Trigger.COMPLETE, actor_id, actor_role)

    def mark_no_show(self, booking_id: str, actor_id: str, actor_role: ActorRole = ActorRole.ADMIN) -> BookingResponse:
        return self.transition(booking_id, Trigger.MARK_NO_SHOW, actor_id, actor_role)

    def record_full_payment(self, booking_id: str, actor_id: str, actor_role: ActorRole = ActorRole.ADMIN) -> BookingResponse:
        """Исполнитель получил остаток наличными: prepayment_paid -> fully_paid"""
        if actor_role != ActorRole.ADMIN:
            raise PermissionDeniedError("Отметить полную оплату может только администратор")
        with session_scope(self.session_factory) as db:
            booking = BookingRepository.get_or_raise(db, booking_id)
            if booking.status not in (BookingStatus.CONFIRMED.value, BookingStatus.COMPLETED.value):
                raise ConflictError()
            if booking.payment_status != PaymentStatus.PREPAYMENT_PAID.value:
                raise ConflictError()
            if not BookingRepository.compare_and_set(
                db,
                booking.id,
                booking.status,
                expected_payment_status=PaymentStatus.PREPAYMENT_PAID.value,
                payment_status=PaymentStatus.FULLY_PAID.value,
            ):
                raise ConflictError()
            db.refresh(booking)
            AuditRepository.append(
                db,
                user_id=actor_id,
                action="booking_fully_paid",
                entity_type="booking",
                entity_id=booking.id,
                details={"price_total": booking.price_total},
            )
            result = BookingResponse.model_validate(booking)
        logger.info(f"💵 Бронь {booking_id} оплачена полностью")
        return result

    def complete_past_bookings(self, today: Optional[date] = None, actor_id: str = "system") -> list[str]:
        """Завершает подтверждённые брони, дата которых уже прошла"""
        today = today or date.today()
        with session_scope(self.session_factory) as db:
            due = [b.id for b in BookingRepository.list_confirmed_before(db, today)]

        completed = []
        for booking_id in due:
            try:
                self.transition(booking_id, Trigger.COMPLETE, actor_id, ActorRole.SYSTEM, today=today)
            except ConflictError:
                logger.info(f"ℹ️ Бронь {booking_id} изменилась до завершения, пропускаем")
                continue
            completed.append(booking_id)
        logger.info(f"🏁 Завершено броней: {len(completed)} из {len(due)}")
        return completed
