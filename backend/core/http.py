"""
Общие хелперы Flask: разбор тела запроса и ответы с ошибками
"""
import logging
from typing import Type, TypeVar

from flask import Flask, jsonify, request
from pydantic import BaseModel
from pydantic import ValidationError as PayloadValidationError

from core.errors import BookingError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def parse_body(model: Type[M]) -> M:
    return model.model_validate(request.get_json(silent=True) or {})


def _describe(e: PayloadValidationError) -> str:
    parts = []
    for err in e.errors():
        field = ".".join(str(p) for p in err["loc"])
        parts.append(f"{field}: {err['msg']}" if field else err["msg"])
    return "; ".join(parts)


def register_error_handlers(app: Flask) -> None:

    @app.errorhandler(BookingError)
    def handle_booking_error(e: BookingError):
        if e.status_code >= 500:
            logger.error(f"❌ {type(e).__name__}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(PayloadValidationError)
    def handle_payload_error(e: PayloadValidationError):
        return jsonify({"error": _describe(e)}), 400
