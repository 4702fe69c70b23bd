"""
Обработка webhook от платёжного шлюза ВТБ

- Статус счёта переводится в статус оплаты и статус брони
- Повтор того же webhook ничего не меняет и не шлёт уведомления повторно
- Каждый входящий webhook пишется в audit_logs, независимо от результата
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError as PayloadValidationError

from core.config import SYSTEM_USER_ID
from core.database import SessionFactory, session_scope
from core.errors import BookingError, ConflictError
from schemas.booking import ActorRole, BookingStatus, PaymentStatus
from schemas.events import BookingStatusChanged, PaymentConfirmed
from schemas.payment import GatewayStatus, VtbWebhookPayload

from booking_service.events import EventBus
from booking_service.repository import AuditRepository, BookingRepository

logger = logging.getLogger(__name__)

AUDIT_ACTION = "vtb_payment_webhook"
REFUND_REASON = "Возврат оплаты"

# статус шлюза -> (статус оплаты, статус брони или None без изменения)
STATUS_MAPPING = {
    GatewayStatus.PAID: (PaymentStatus.PREPAYMENT_PAID, BookingStatus.CONFIRMED),
    GatewayStatus.REFUNDED: (PaymentStatus.REFUNDED, BookingStatus.CANCELLED),
    GatewayStatus.DECLINED: (PaymentStatus.NOT_PAID, None),
    GatewayStatus.EXPIRED: (PaymentStatus.NOT_PAID, None),
}

# Статус оплаты меняется только вперёд
PAYMENT_MOVES = {
    PaymentStatus.NOT_PAID: {PaymentStatus.PREPAYMENT_PAID},
    PaymentStatus.PREPAYMENT_PAID: {PaymentStatus.FULLY_PAID, PaymentStatus.REFUNDED},
    PaymentStatus.FULLY_PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),
}

# Из каких статусов брони шлюз может её подтвердить или отменить
BOOKING_MOVES = {
    BookingStatus.CONFIRMED: {BookingStatus.PENDING, BookingStatus.CONFIRMED},
    BookingStatus.CANCELLED: {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
}

TERMINAL_STATUSES = {BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.NO_SHOW}

APPLIED = "applied"
UNCHANGED = "unchanged"
IGNORED = "ignored"
ACKNOWLEDGED = "acknowledged"


@dataclass
class WebhookResult:
    outcome: str
    booking_id: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None
    status: Optional[BookingStatus] = None


def resolve_target(status: GatewayStatus, booking_status: BookingStatus, payment_status: PaymentStatus):
    """Целевое состояние брони для статуса шлюза или None, если переход недопустим"""
    new_payment, new_status = STATUS_MAPPING[status]

    if new_payment != payment_status and new_payment not in PAYMENT_MOVES[payment_status]:
        return None

    if new_status is None:
        return new_payment, booking_status
    if booking_status in BOOKING_MOVES[new_status]:
        return new_payment, new_status
    # возврат по завершённой брони: статус не трогаем, фиксируем только оплату
    if status == GatewayStatus.REFUNDED and booking_status in TERMINAL_STATUSES:
        return new_payment, booking_status
    return None


class PaymentWebhookAdapter:

    def __init__(self, session_factory: SessionFactory, event_bus: EventBus):
        self.session_factory = session_factory
        self.event_bus = event_bus

    def handle(self, raw: dict) -> tuple[dict, int]:
        """Ответ для шлюза: 2xx - принято, иначе шлюз повторит запрос"""
        if not isinstance(raw, dict):
            raw = {"body": raw}
        received_at = datetime.now(timezone.utc).isoformat()
        try:
            payload = VtbWebhookPayload.model_validate(raw)
        except PayloadValidationError as e:
            logger.warning(f"⚠️ Некорректный webhook ВТБ: {e.error_count()} ошибок")
            self._audit_failure(raw, "invalid", "Некорректные данные webhook", received_at)
            return {"error": "Некорректные данные webhook"}, 400

        logger.info(f"💳 Webhook ВТБ: бронь {payload.order_id}, статус {payload.status.value}")
        try:
            result = self.apply(payload, raw, received_at)
        except BookingError as e:
            self._audit_failure(raw, type(e).__name__, e.message, received_at, payload)
            return e.to_dict(), e.status_code

        body = {"success": True}
        if result.outcome == ACKNOWLEDGED:
            body["message"] = "Status acknowledged"
        elif result.outcome != APPLIED:
            body["message"] = f"Status {result.outcome}"
        return body, 200

    def apply(self, payload: VtbWebhookPayload, raw: Optional[dict] = None, received_at: Optional[str] = None) -> WebhookResult:
        raw = raw if raw is not None else payload.model_dump(mode="json")
        received_at = received_at or datetime.now(timezone.utc).isoformat()

        if payload.status not in STATUS_MAPPING:
            if payload.status == GatewayStatus.UNKNOWN:
                logger.warning(f"⚠️ Неизвестный статус шлюза {raw.get('status')!r}, бронь {payload.order_id} не меняем")
            else:
                logger.info(f"ℹ️ Статус {payload.status.value} только подтверждаем")
            with session_scope(self.session_factory) as db:
                self._audit(db, payload, raw, received_at, ACKNOWLEDGED)
            return WebhookResult(outcome=ACKNOWLEDGED, booking_id=payload.order_id)

        events = []
        with session_scope(self.session_factory) as db:
            booking = BookingRepository.get_or_raise(db, payload.order_id)
            old_status = BookingStatus(booking.status)
            old_payment = PaymentStatus(booking.payment_status)
            target = resolve_target(payload.status, old_status, old_payment)

            if target is None:
                outcome = IGNORED
                new_payment, new_status = old_payment, old_status
                logger.warning(
                    f"⚠️ Webhook {payload.status.value} не применим к брони {booking.id} "
                    f"({old_status.value}/{old_payment.value}), пропускаем"
                )
            elif target == (old_payment, old_status):
                outcome = UNCHANGED
                new_payment, new_status = target
                logger.info(f"ℹ️ Повторный webhook по брони {booking.id}, состояние не меняется")
            else:
                outcome = APPLIED
                new_payment, new_status = target
                values = {"payment_status": new_payment.value, "status": new_status.value}
                if new_status == BookingStatus.CANCELLED and old_status != BookingStatus.CANCELLED:
                    values["cancellation_reason"] = REFUND_REASON
                    values["cancelled_by"] = ActorRole.SYSTEM.value
                if not BookingRepository.compare_and_set(
                    db, booking.id, old_status.value, expected_payment_status=old_payment.value, **values
                ):
                    raise ConflictError()
                logger.info(
                    f"✅ Бронь {booking.id}: payment_status={new_payment.value}, status={new_status.value}"
                )
                if new_status != old_status:
                    events.append(
                        BookingStatusChanged(
                            booking_id=booking.id,
                            old_status=old_status,
                            new_status=new_status,
                            payment_status=new_payment,
                            actor_role=ActorRole.SYSTEM,
                            reason=values.get("cancellation_reason"),
                        )
                    )
                if new_payment == PaymentStatus.PREPAYMENT_PAID:
                    events.append(
                        PaymentConfirmed(
                            booking_id=booking.id,
                            invoice_id=payload.invoice_id,
                            amount=float(payload.amount.value),
                            currency=payload.amount.currency,
                        )
                    )

            self._audit(db, payload, raw, received_at, outcome, new_payment)

        self.event_bus.publish_all(events)
        return WebhookResult(outcome=outcome, booking_id=payload.order_id, payment_status=new_payment, status=new_status)

    def _audit(self, db, payload: VtbWebhookPayload, raw: dict, received_at: str, outcome: str,
               payment_status: Optional[PaymentStatus] = None, error: Optional[str] = None) -> None:
        AuditRepository.append(
            db,
            user_id=SYSTEM_USER_ID,
            action=AUDIT_ACTION,
            entity_type="booking",
            entity_id=payload.order_id if payload else _order_id(raw),
            details={
                "invoice_id": payload.invoice_id if payload else raw.get("invoice_id"),
                "vtb_status": payload.status.value if payload else raw.get("status"),
                "amount": str(payload.amount.value) if payload else None,
                "currency": payload.amount.currency if payload else None,
                "paid_at": payload.paid_at.isoformat() if payload and payload.paid_at else None,
                "transaction_id": payload.transaction_id if payload else None,
                "payment_status": payment_status.value if payment_status else None,
                "outcome": outcome,
                "error": error,
                "received_at": received_at,
                "payload": raw,
            },
        )

    def _audit_failure(self, raw: dict, outcome: str, error: str, received_at: str,
                       payload: Optional[VtbWebhookPayload] = None) -> None:
        try:
            with session_scope(self.session_factory) as db:
                self._audit(db, payload, raw, received_at, outcome, error=error)
        except BookingError as e:
            logger.error(f"❌ Не удалось записать webhook в аудит: {e.message}")


def _order_id(raw) -> Optional[str]:
    order_id = raw.get("order_id")
    return order_id if isinstance(order_id, str) else None
