"""
Уведомления по событиям бронирований

Подписывается на шину событий. Все отправки - после commit, ошибки
доставки пишутся в notification_logs и в лог, но не пробрасываются.
"""
import logging
from datetime import date
from typing import Optional

from core.database import SessionFactory, session_scope
from schemas.booking import ActorRole, BookingStatus
from schemas.events import (
    BookingCreated,
    BookingStatusChanged,
    PaymentConfirmed,
    ProposalOffered,
)

from booking_service.events import EventBus
from booking_service.repository import BookingRepository, NotificationLogRepository
from notification_service.channels import FAILED, Channel, EmailChannel, PushChannel, SmsChannel

logger = logging.getLogger(__name__)

MONTHS = [
    "января", "февраля", "марта", "апреля", "мая", "июня",
    "июля", "августа", "сентября", "октября", "ноября", "декабря",
]


def format_booking_date(day: date) -> str:
    return f"{day.day} {MONTHS[day.month - 1]}"


class NotificationDispatcher:

    def __init__(
        self,
        session_factory: SessionFactory,
        sms: Optional[Channel] = None,
        email: Optional[Channel] = None,
        push: Optional[Channel] = None,
    ):
        self.session_factory = session_factory
        self.sms = sms or SmsChannel()
        self.email = email or EmailChannel()
        self.push = push or PushChannel()

    def register(self, event_bus: EventBus) -> None:
        event_bus.subscribe("booking.created", self.on_booking_created)
        event_bus.subscribe("booking.status_changed", self.on_status_changed)
        event_bus.subscribe("proposal.offered", self.on_proposal_offered)
        event_bus.subscribe("payment.confirmed", self.on_payment_confirmed)

    def _load(self, booking_id: str) -> Optional[dict]:
        with session_scope(self.session_factory) as db:
            booking = BookingRepository.get(db, booking_id)
            if not booking:
                logger.warning(f"⚠️ Бронь {booking_id} не найдена для уведомления")
                return None
            performer = booking.performer
            return {
                "id": booking.id,
                "date": format_booking_date(booking.booking_date),
                "time": booking.booking_time,
                "customer_id": booking.customer_id,
                "customer_name": booking.customer_name,
                "customer_phone": booking.customer_phone,
                "customer_email": booking.customer_email,
                "performer_name": performer.display_name if performer else "Исполнитель",
                "performer_phone": performer.phone if performer else None,
                "performer_user_id": performer.user_id if performer else None,
                "prepayment": booking.prepayment_amount,
            }

    def deliver(self, channel: Channel, kind: str, recipient: Optional[str], booking_id: Optional[str], message: str, **extra) -> str:
        if not recipient:
            logger.info(f"ℹ️ Нет получателя для {channel.name}/{kind} по брони {booking_id}")
            return FAILED

        error = None
        try:
            status = channel.send(recipient, message, **extra)
        except Exception as e:
            status, error = FAILED, str(e)
            logger.error(f"❌ {channel.name} {kind} для {recipient} не доставлено: {e}")

        try:
            with session_scope(self.session_factory) as db:
                NotificationLogRepository.append(
                    db,
                    channel=channel.name,
                    kind=kind,
                    recipient=recipient,
                    booking_id=booking_id,
                    message=message,
                    status=status,
                    error=error,
                )
        except Exception as e:
            logger.error(f"❌ Не удалось записать лог уведомления: {e}")
        return status

    def on_booking_created(self, event: BookingCreated) -> None:
        b = self._load(event.booking_id)
        if not b:
            return
        text = f"Новая заявка от {b['customer_name']} на {b['date']} в {b['time']}. Подтвердите в личном кабинете."
        self.deliver(self.sms, "new_booking_to_performer", b["performer_phone"], b["id"], text)
        self.deliver(
            self.push, "new_booking_to_performer", b["performer_user_id"], b["id"], text,
            title="Новая заявка", url="/performer/bookings", tag=f"booking-{b['id']}",
        )

    def on_status_changed(self, event: BookingStatusChanged) -> None:
        if event.new_status not in (BookingStatus.CANCELLED, BookingStatus.CONFIRMED):
            return
        b = self._load(event.booking_id)
        if not b:
            return

        if event.new_status == BookingStatus.CONFIRMED:
            if event.actor_role == ActorRole.PERFORMER:
                text = f"{b['performer_name']} подтвердил(а) визит {b['date']} в {b['time']}. Внесите предоплату {b['prepayment']} ₽."
                self.deliver(self.sms, "booking_confirmed_to_customer", b["customer_phone"], b["id"], text)
            elif event.actor_role == ActorRole.CUSTOMER:
                text = f"{b['customer_name']} выбрал(а) ваше предложение на {b['date']} в {b['time']}."
                self.deliver(
                    self.push, "proposal_accepted_to_performer", b["performer_user_id"], b["id"], text,
                    title="Клиент выбрал время", url="/performer/bookings", tag=f"proposal-accepted-{b['id']}",
                )
            return

        if event.actor_role == ActorRole.PERFORMER:
            text = f"{b['performer_name']} не сможет приехать {b['date']} в {b['time']}. Причина: {event.reason}"
            self.deliver(self.sms, "booking_rejected_to_customer", b["customer_phone"], b["id"], text)
        elif event.actor_role == ActorRole.CUSTOMER:
            text = f"{b['customer_name']} отменил(а) бронь на {b['date']} в {b['time']}. Причина: {event.reason}"
            self.deliver(self.sms, "booking_cancelled_to_performer", b["performer_phone"], b["id"], text)
            self.deliver(
                self.push, "booking_cancelled_to_performer", b["performer_user_id"], b["id"], text,
                title="Бронь отменена", url="/performer/bookings", tag=f"booking-cancelled-{b['id']}",
            )
        else:
            text = f"Бронь на {b['date']} в {b['time']} отменена. Причина: {event.reason or 'возврат оплаты'}"
            self.deliver(self.sms, "booking_cancelled_to_customer", b["customer_phone"], b["id"], text)
            self.deliver(self.sms, "booking_cancelled_to_performer", b["performer_phone"], b["id"], text)

    def on_proposal_offered(self, event: ProposalOffered) -> None:
        b = self._load(event.booking_id)
        if not b:
            return
        text = (
            f"{b['performer_name']} не может приехать {b['date']} в {b['time']} "
            f"и предлагает другое время ({len(event.proposal_ids)} вар.). Выберите в личном кабинете."
        )
        self.deliver(self.sms, "slot_proposal_to_customer", b["customer_phone"], b["id"], text)

    def on_payment_confirmed(self, event: PaymentConfirmed) -> None:
        b = self._load(event.booking_id)
        if not b:
            return
        text = f"Предоплата {b['prepayment']} ₽ получена. {b['performer_name']} приедет {b['date']} в {b['time']}!"
        self.deliver(self.sms, "payment_confirmed", b["customer_phone"], b["id"], text)
        self.deliver(
            self.email, "payment_confirmed", b["customer_email"], b["id"], text,
            subject="Оплата получена",
        )
