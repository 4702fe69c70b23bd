"""
Booking Service - Сервис управления бронированиями Дедов Морозов

- Создаёт брони с фиксацией цены по текущей комиссии платформы
- Принимает решения исполнителя: подтвердить, отклонить, предложить другое время
- Отмена, завершение, неявка, полная оплата
- Отзывы клиентов о завершённых визитах
- Публикует доменные события; уведомления подписаны на них в том же процессе
"""
import logging
from typing import Optional

from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS

from core.config import BOOKING_SERVICE_PORT
from core.database import SessionFactory, SessionLocal, init_db
from core.errors import ValidationError
from core.http import parse_body, register_error_handlers
from core.log_config import setup_logging
from schemas.booking import (
    BookingCreateRequest,
    BookingStatus,
    CommissionRateUpdate,
    CustomerActionRequest,
    ProposalCreateRequest,
    ProposalStatus,
    ReviewCreateRequest,
    TransitionRequest,
)

from booking_service.events import EventBus
from booking_service.lifecycle import Trigger
from booking_service.pricing import booking_pricing, format_price
from booking_service.services import BookingServices, build_services
from notification_service.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

bp = Blueprint("bookings", __name__)

ACTIONS = {
    "accept": Trigger.ACCEPT,
    "reject": Trigger.REJECT,
    "cancel": Trigger.CANCEL,
    "complete": Trigger.COMPLETE,
    "no-show": Trigger.MARK_NO_SHOW,
}


def services() -> BookingServices:
    return current_app.extensions["booking_services"]


@bp.route("/api/bookings", methods=["POST"])
def create_booking():
    """Создание новой брони с расчётом цены и публикацией booking.created"""
    req = parse_body(BookingCreateRequest)
    booking = services().lifecycle.create_booking(req)
    return jsonify(booking.model_dump(mode="json")), 201


@bp.route("/api/bookings", methods=["GET"])
def list_bookings():
    status = request.args.get("status")
    if status and status not in {s.value for s in BookingStatus}:
        raise ValidationError(f"Неизвестный статус: {status}")
    bookings = services().lifecycle.list_bookings(
        customer_id=request.args.get("customer_id"),
        performer_id=request.args.get("performer_id"),
        status=status,
    )
    return jsonify({"bookings": [b.model_dump(mode="json") for b in bookings], "total": len(bookings)}), 200


@bp.route("/api/bookings/<booking_id>", methods=["GET"])
def get_booking(booking_id: str):
    booking = services().lifecycle.get_booking(booking_id)
    return jsonify(booking.model_dump(mode="json")), 200


@bp.route("/api/bookings/<booking_id>/<action>", methods=["POST"])
def booking_action(booking_id: str, action: str):
    """accept / reject / cancel / complete / no-show"""
    trigger = ACTIONS.get(action)
    if trigger is None:
        return jsonify({"error": f"Неизвестное действие: {action}"}), 404
    req = parse_body(TransitionRequest)
    booking = services().lifecycle.transition(booking_id, trigger, req.actor_id, req.actor_role, req.reason)
    return jsonify(booking.model_dump(mode="json")), 200


@bp.route("/api/bookings/<booking_id>/full-payment", methods=["POST"])
def full_payment(booking_id: str):
    req = parse_body(TransitionRequest)
    booking = services().lifecycle.record_full_payment(booking_id, req.actor_id, req.actor_role)
    return jsonify(booking.model_dump(mode="json")), 200


@bp.route("/api/bookings/<booking_id>/proposals", methods=["POST"])
def create_proposals(booking_id: str):
    req = parse_body(ProposalCreateRequest)
    proposals = services().proposals.propose(booking_id, req.performer_id, req.proposals)
    return jsonify({"proposals": [p.model_dump(mode="json") for p in proposals]}), 201


@bp.route("/api/bookings/<booking_id>/proposals", methods=["GET"])
def list_proposals(booking_id: str):
    status = request.args.get("status")
    if status and status not in {s.value for s in ProposalStatus}:
        raise ValidationError(f"Неизвестный статус предложения: {status}")
    proposals = services().proposals.list_proposals(booking_id, ProposalStatus(status) if status else None)
    return jsonify({"proposals": [p.model_dump(mode="json") for p in proposals]}), 200


@bp.route("/api/bookings/<booking_id>/proposals/reject", methods=["POST"])
def reject_proposals(booking_id: str):
    req = parse_body(CustomerActionRequest)
    rejected = services().proposals.reject_all_proposals(booking_id, req.customer_id)
    return jsonify({"rejected": rejected}), 200


@bp.route("/api/proposals/<proposal_id>/accept", methods=["POST"])
def accept_proposal(proposal_id: str):
    req = parse_body(CustomerActionRequest)
    booking = services().proposals.accept_proposal(proposal_id, req.customer_id)
    return jsonify(booking.model_dump(mode="json")), 200


@bp.route("/api/bookings/<booking_id>/review", methods=["POST"])
def submit_review(booking_id: str):
    """Отзыв клиента после завершённого визита"""
    req = parse_body(ReviewCreateRequest)
    review = services().reviews.submit_review(booking_id, req.customer_id, req.rating, req.text)
    return jsonify(review.model_dump(mode="json")), 201


@bp.route("/api/performers/<performer_id>/reviews", methods=["GET"])
def list_reviews(performer_id: str):
    reviews = services().reviews.list_reviews(performer_id)
    return jsonify({"reviews": [r.model_dump(mode="json") for r in reviews], "total": len(reviews)}), 200


@bp.route("/api/pricing", methods=["GET"])
def get_pricing():
    """Цены для показа клиенту и исполнителю"""
    price = request.args.get("price", type=int)
    if price is None or price < 0:
        raise ValidationError("price должен быть неотрицательным целым числом")
    rate: Optional[int] = request.args.get("rate", type=int)
    if rate is None:
        rate = services().rate_provider.get_rate()

    pricing = booking_pricing(price, rate)
    return jsonify(
        {
            **pricing.model_dump(),
            "formatted": {
                "customer_price": format_price(pricing.customer_price),
                "prepayment": format_price(pricing.prepayment),
                "performer_payment": format_price(pricing.performer_payment),
            },
        }
    ), 200


@bp.route("/api/settings/commission-rate", methods=["GET"])
def get_commission_rate():
    return jsonify({"rate": services().rate_provider.get_rate()}), 200


@bp.route("/api/settings/commission-rate", methods=["PUT"])
def update_commission_rate():
    req = parse_body(CommissionRateUpdate)
    rate = services().rate_provider.set_rate(req.rate)
    return jsonify({"rate": rate}), 200


@bp.route("/health", methods=["GET"])
def health():
    return jsonify({"status": "healthy", "service": "booking"}), 200


def create_app(
    session_factory: SessionFactory = SessionLocal,
    event_bus: Optional[EventBus] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> Flask:
    event_bus = event_bus or EventBus()
    (dispatcher or NotificationDispatcher(session_factory)).register(event_bus)

    app = Flask(__name__)
    CORS(app)
    app.extensions["booking_services"] = build_services(session_factory, event_bus)
    app.register_blueprint(bp)
    register_error_handlers(app)
    return app


if __name__ == "__main__":
    setup_logging()
    init_db()
    app = create_app()
    logger.info(f"🚀 Starting Booking Service on port {BOOKING_SERVICE_PORT}")
    app.run(host="0.0.0.0", port=BOOKING_SERVICE_PORT, debug=True)
