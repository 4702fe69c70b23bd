"""
Каналы доставки уведомлений: SMS, email, push

Без ключа API канал работает как заглушка: сообщение только пишется в лог.
"""
import logging
from typing import Optional

import requests

from core.config import (
    EMAIL_API_KEY,
    EMAIL_API_URL,
    EMAIL_FROM_ADDRESS,
    PUSH_API_URL,
    REQUEST_TIMEOUT,
    SMS_API_KEY,
    SMS_API_URL,
)

logger = logging.getLogger(__name__)

SENT = "sent"
MOCKED = "mocked"
FAILED = "failed"


class Channel:
    """Базовый класс канала"""

    name = "base"

    def __init__(self, api_url: Optional[str], api_key: Optional[str] = None, timeout: int = REQUEST_TIMEOUT):
        self.api_url = api_url
        self.api_key = api_key
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_url and self.api_key)

    def send(self, recipient: str, message: str, **extra) -> str:
        """Возвращает sent или mocked; ошибка доставки - исключение requests"""
        if not self.configured:
            logger.info(f"[{self.name.upper()} MOCK] to={recipient}: {message}")
            return MOCKED
        resp = requests.post(
            self.api_url,
            json=self.build_payload(recipient, message, **extra),
            headers=self.headers(),
            timeout=self.timeout,
        )
        resp.raise_for_status()
        logger.info(f"✅ {self.name} отправлено {recipient}")
        return SENT

    def headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    def build_payload(self, recipient: str, message: str, **extra) -> dict:
        raise NotImplementedError


class SmsChannel(Channel):
    name = "sms"

    def __init__(self, api_url: Optional[str] = SMS_API_URL, api_key: Optional[str] = SMS_API_KEY, **kwargs):
        super().__init__(api_url, api_key, **kwargs)

    def headers(self) -> dict:
        return {"X-API-KEY": self.api_key, "Content-Type": "application/json"}

    def build_payload(self, recipient: str, message: str, **extra) -> dict:
        return {"phone": normalize_phone(recipient), "text": message}


class EmailChannel(Channel):
    name = "email"

    def __init__(self, api_url: Optional[str] = EMAIL_API_URL, api_key: Optional[str] = EMAIL_API_KEY, **kwargs):
        super().__init__(api_url, api_key, **kwargs)

    def build_payload(self, recipient: str, message: str, subject: str = "Уведомление", **extra) -> dict:
        return {"from": EMAIL_FROM_ADDRESS, "to": [recipient], "subject": subject, "text": message}


class PushChannel(Channel):
    name = "push"

    def __init__(self, api_url: Optional[str] = PUSH_API_URL, api_key: Optional[str] = None, **kwargs):
        super().__init__(api_url, api_key, **kwargs)

    @property
    def configured(self) -> bool:
        return bool(self.api_url)

    def headers(self) -> dict:
        return {"Content-Type": "application/json"}

    def build_payload(self, recipient: str, message: str, title: str = "Деды Морозы", url: str = "/", tag: str = None, **extra) -> dict:
        return {"userId": recipient, "title": title, "body": message, "url": url, "tag": tag}


def normalize_phone(phone: str) -> str:
    """'8 (916) 123-45-67' -> '79161234567'"""
    digits = "".join(ch for ch in phone if ch.isdigit())
    if len(digits) == 11 and digits.startswith("8"):
        digits = "7" + digits[1:]
    elif len(digits) == 10:
        digits = "7" + digits
    return digits
