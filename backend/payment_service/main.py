"""
Payment Service - Сервис обработки платежей

- Создаёт счёт на предоплату брони в платёжном шлюзе ВТБ
- Обрабатывает webhook-и шлюза и меняет статус оплаты и брони
- Публикует события payment.confirmed / booking.status_changed
"""
import logging
from typing import Optional

from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS
import requests

from core.config import PAYMENT_SERVICE_PORT
from core.database import SessionFactory, SessionLocal, init_db, session_scope
from core.errors import ConflictError
from core.http import parse_body, register_error_handlers
from core.log_config import setup_logging
from schemas.booking import BookingStatus, PaymentStatus
from schemas.payment import PaymentRequest, PaymentResponse

from booking_service.events import EventBus
from booking_service.repository import AuditRepository, BookingRepository
from notification_service.dispatcher import NotificationDispatcher
from payment_service.gateways import PaymentGateway, get_gateway
from payment_service.webhook import PaymentWebhookAdapter

logger = logging.getLogger(__name__)

bp = Blueprint("payments", __name__)

PAYABLE_STATUSES = {BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value}


@bp.route("/api/payments", methods=["POST"])
def create_payment():
    """Счёт на предоплату (комиссию платформы) по брони"""
    req = parse_body(PaymentRequest)
    session_factory = current_app.extensions["session_factory"]
    gateway: PaymentGateway = current_app.extensions["payment_gateway"]

    with session_scope(session_factory) as db:
        booking = BookingRepository.get_or_raise(db, req.booking_id)
        if booking.status not in PAYABLE_STATUSES or booking.payment_status != PaymentStatus.NOT_PAID.value:
            raise ConflictError("Бронь уже оплачена или недоступна для оплаты")
        amount = booking.prepayment_amount
        customer_id = booking.customer_id
        customer_email, customer_phone = booking.customer_email, booking.customer_phone

    try:
        invoice = gateway.create_invoice(
            amount,
            req.booking_id,
            f"Предоплата за визит Деда Мороза, бронь {req.booking_id}",
            customer_email=customer_email,
            customer_phone=customer_phone,
        )
    except (requests.RequestException, ValueError) as e:
        logger.error(f"❌ Ошибка создания счёта ВТБ для брони {req.booking_id}: {e}")
        return jsonify({"error": "Платёжный шлюз недоступен, попробуйте позже"}), 502

    with session_scope(session_factory) as db:
        AuditRepository.append(
            db,
            user_id=customer_id,
            action="payment_invoice_created",
            entity_type="booking",
            entity_id=req.booking_id,
            details={"invoice_id": invoice["invoice_id"], "amount": amount},
        )
    logger.info(f"✅ Счёт {invoice['invoice_id']} на {amount}₽ создан для брони {req.booking_id}")

    resp = PaymentResponse(
        booking_id=req.booking_id,
        invoice_id=invoice["invoice_id"],
        payment_url=invoice["payment_url"],
        amount=amount,
        status=invoice["status"],
    )
    return jsonify(resp.model_dump()), 201


@bp.route("/api/payments/webhook/vtb", methods=["POST"])
def vtb_webhook():
    """Webhook от ВТБ. Не-2xx ответ - сигнал шлюзу повторить запрос"""
    adapter: PaymentWebhookAdapter = current_app.extensions["webhook_adapter"]
    body, code = adapter.handle(request.get_json(silent=True) or {})
    return jsonify(body), code


@bp.route("/health", methods=["GET"])
def health():
    return jsonify({"status": "healthy", "service": "payment"}), 200


def create_app(
    session_factory: SessionFactory = SessionLocal,
    event_bus: Optional[EventBus] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    gateway: Optional[PaymentGateway] = None,
) -> Flask:
    event_bus = event_bus or EventBus()
    (dispatcher or NotificationDispatcher(session_factory)).register(event_bus)

    app = Flask(__name__)
    CORS(app)
    app.extensions["session_factory"] = session_factory
    app.extensions["payment_gateway"] = gateway or get_gateway("vtb")
    app.extensions["webhook_adapter"] = PaymentWebhookAdapter(session_factory, event_bus)
    app.register_blueprint(bp)
    register_error_handlers(app)
    return app


if __name__ == "__main__":
    setup_logging()
    init_db()
    app = create_app()
    logger.info(f"🚀 Starting Payment Service on port {PAYMENT_SERVICE_PORT}")
    app.run(host="0.0.0.0", port=PAYMENT_SERVICE_PORT, debug=True)
