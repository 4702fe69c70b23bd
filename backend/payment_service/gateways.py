"""
Интеграция с платёжным шлюзом ВТБ (API счетов)
Поддержка тестового (sandbox), продакшн режимов и заглушки
"""
import logging
import uuid
from enum import Enum
from typing import Dict, Optional

import requests

from core.config import (
    PAYMENT_ENV,
    REQUEST_TIMEOUT,
    SITE_URL,
    VTB_AUTH_URL,
    VTB_CLIENT_ID,
    VTB_CLIENT_SECRET,
    VTB_INVOICE_URL,
    VTB_MERCHANT_SITE_ID,
)

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    TEST = "test"
    PRODUCTION = "production"
    MOCK = "mock"  # Заглушка для локального тестирования


class PaymentGateway:
    """Базовый класс для платежных шлюзов"""

    def __init__(self, environment: Environment = Environment.MOCK):
        self.environment = environment

    def create_invoice(self, amount_rub: int, booking_id: str, description: str,
                       customer_email: Optional[str] = None, customer_phone: Optional[str] = None) -> Dict:
        """Создание счёта на оплату"""
        raise NotImplementedError


class VtbGateway(PaymentGateway):
    """Интеграция с ВТБ: OAuth client_credentials + создание счёта"""

    def __init__(self, environment: Environment = Environment.TEST,
                 client_id: Optional[str] = VTB_CLIENT_ID,
                 client_secret: Optional[str] = VTB_CLIENT_SECRET,
                 merchant_site_id: Optional[str] = VTB_MERCHANT_SITE_ID):
        super().__init__(environment)
        self.client_id = client_id
        self.client_secret = client_secret
        self.merchant_site_id = merchant_site_id

    def _mock_invoice(self, prefix: str = "vtb") -> Dict:
        invoice_id = str(uuid.uuid4())
        return {
            "invoice_id": f"{prefix}-{invoice_id}",
            "payment_url": f"https://payment-gateway.vtb.ru/pay/{invoice_id}",
            "status": "created",
        }

    def _get_access_token(self) -> str:
        response = requests.post(
            VTB_AUTH_URL,
            data={
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=REQUEST_TIMEOUT,
        )
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict) or not data.get("access_token"):
            raise ValueError("ВТБ не вернул access_token")
        return data["access_token"]

    @staticmethod
    def _parse_invoice(data) -> Dict:
        """Разбор ответа на создание счёта, без id или payment_url - ValueError"""
        if not isinstance(data, dict):
            raise ValueError(f"Некорректный ответ ВТБ: {data!r}")
        invoice_id = data.get("invoice_id") or data.get("id")
        if not invoice_id or not data.get("payment_url"):
            raise ValueError(f"Некорректный ответ ВТБ: нет invoice_id или payment_url ({sorted(data)})")
        return {
            "invoice_id": invoice_id,
            "payment_url": data["payment_url"],
            "status": data.get("status", "created"),
        }

    def create_invoice(self, amount_rub: int, booking_id: str, description: str,
                       customer_email: Optional[str] = None, customer_phone: Optional[str] = None) -> Dict:
        if self.environment == Environment.MOCK:
            return self._mock_invoice()

        if not self.merchant_site_id:
            raise ValueError("VTB_MERCHANT_SITE_ID не настроен")

        payload = {
            "merchant_site_id": self.merchant_site_id,
            "order_id": booking_id,
            "amount": {
                "value": amount_rub * 100,  # в копейках
                "currency": "RUB",
            },
            "description": description,
            "customer": {"email": customer_email, "phone": customer_phone},
            "success_url": f"{SITE_URL}/customer/bookings?payment=success&booking={booking_id}",
            "fail_url": f"{SITE_URL}/customer/bookings?payment=failed&booking={booking_id}",
            "notification_url": f"{SITE_URL}/api/payments/webhook/vtb",
        }

        try:
            token = self._get_access_token()
            response = requests.post(
                VTB_INVOICE_URL,
                json=payload,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                    "Idempotence-Key": str(uuid.uuid4()),
                },
                timeout=REQUEST_TIMEOUT,
            )
            response.raise_for_status()
            return self._parse_invoice(response.json())
        except requests.RequestException as e:
            # В песочнице возвращаем заглушку, в продакшене пробрасываем
            if self.environment == Environment.TEST:
                logger.warning(f"⚠️ Песочница ВТБ недоступна, счёт-заглушка: {e}")
                return self._mock_invoice("vtb-test")
            raise


def get_gateway(gateway_name: str = "vtb", environment: Environment = None) -> PaymentGateway:
    """Фабрика для получения экземпляра платежного шлюза"""
    if environment is None:
        environment = Environment(PAYMENT_ENV)

    gateways = {
        "vtb": VtbGateway,
    }

    gateway_class = gateways.get(gateway_name.lower())
    if not gateway_class:
        raise ValueError(f"Неизвестный платежный шлюз: {gateway_name}")

    return gateway_class(environment)
