"""
Notification Service - журнал уведомлений и ручная отправка

Сами уведомления по событиям отправляет NotificationDispatcher внутри
сервисов бронирования и платежей; здесь - просмотр и тестовая отправка.
"""
import logging

from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS

from core.config import NOTIFICATION_SERVICE_PORT
from core.database import SessionFactory, SessionLocal, init_db, session_scope
from core.http import register_error_handlers
from core.log_config import setup_logging

from booking_service.repository import NotificationLogRepository
from notification_service.channels import FAILED
from notification_service.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

bp = Blueprint("notifications", __name__)


@bp.route("/api/notifications", methods=["GET"])
def get_notifications():
    """Получить список уведомлений"""
    limit = request.args.get("limit", 100, type=int)
    booking_id = request.args.get("booking_id")
    with session_scope(current_app.extensions["session_factory"]) as db:
        rows = NotificationLogRepository.recent(db, limit=limit, booking_id=booking_id)
        notifications = [
            {
                "notification_id": n.id,
                "type": n.channel,
                "kind": n.kind,
                "to": n.recipient,
                "booking_id": n.booking_id,
                "message": n.message,
                "status": n.status,
                "error": n.error,
                "sent_at": n.created_at.isoformat() if n.created_at else None,
            }
            for n in rows
        ]
    return jsonify({"notifications": notifications, "total": len(notifications)}), 200


@bp.route("/api/notifications/send", methods=["POST"])
def send_notification():
    """Ручная отправка уведомления (для тестов)"""
    data = request.get_json(silent=True) or {}
    dispatcher: NotificationDispatcher = current_app.extensions["dispatcher"]
    notification_type = data.get("type")  # email или sms
    to = data.get("to")
    if not to:
        return jsonify({"error": "Укажите получателя"}), 400

    if notification_type == "email":
        status = dispatcher.deliver(
            dispatcher.email, "manual", to, None, data.get("body", ""), subject=data.get("subject", "Уведомление")
        )
    elif notification_type == "sms":
        status = dispatcher.deliver(dispatcher.sms, "manual", to, None, data.get("message", ""))
    else:
        return jsonify({"error": "Invalid type"}), 400

    if status == FAILED:
        return jsonify({"status": status}), 502
    return jsonify({"status": status}), 200


@bp.route("/health", methods=["GET"])
def health():
    """Health check"""
    dispatcher: NotificationDispatcher = current_app.extensions["dispatcher"]
    return jsonify(
        {
            "status": "healthy",
            "service": "notification",
            "sms_configured": dispatcher.sms.configured,
            "email_configured": dispatcher.email.configured,
            "push_configured": dispatcher.push.configured,
        }
    ), 200


def create_app(session_factory: SessionFactory = SessionLocal, dispatcher: NotificationDispatcher = None) -> Flask:
    app = Flask(__name__)
    CORS(app)
    app.extensions["session_factory"] = session_factory
    app.extensions["dispatcher"] = dispatcher or NotificationDispatcher(session_factory)
    app.register_blueprint(bp)
    register_error_handlers(app)
    return app


if __name__ == "__main__":
    setup_logging()
    init_db()
    app = create_app()
    logger.info(f"Starting Notification Service on port {NOTIFICATION_SERVICE_PORT}")
    app.run(host="0.0.0.0", port=NOTIFICATION_SERVICE_PORT, debug=True)
