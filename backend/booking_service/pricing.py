"""
Расчёт стоимости бронирования

Комиссия платформы - наценка сверх цены исполнителя:
- клиент платит: цена исполнителя + комиссия
- предоплата онлайн = комиссия платформы
- исполнитель получает свою цену целиком, наличными после мероприятия

Пример при комиссии 40%:
- цена исполнителя 5000 ₽
- клиент платит 7000 ₽, из них 2000 ₽ предоплата
- исполнитель получает 5000 ₽
"""
import logging
import threading
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from core.config import COMMISSION_RATE_KEY, DEFAULT_COMMISSION_RATE
from core.database import SessionFactory, session_scope
from core.errors import ConfigurationReadError, PersistenceError, ValidationError
from schemas.pricing import PricingSnapshot

from booking_service.repository import SettingsRepository

logger = logging.getLogger(__name__)


def _round(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _effective_rate(commission_rate: int) -> int:
    # отрицательная комиссия не должна уменьшать цену
    return max(commission_rate, 0)


def prepayment_percentage(commission_rate: int) -> int:
    """Доля предоплаты в итоговой цене для клиента, в процентах.

    Наценка считается от цены исполнителя, а клиенту показывается доля от
    итоговой суммы, поэтому 40% наценки дают ~29% предоплаты.
    """
    if commission_rate <= 0:
        return 0
    return _round(Decimal(100 * commission_rate) / Decimal(commission_rate + 100))


def customer_price(performer_price: int, commission_rate: int) -> int:
    rate = _effective_rate(commission_rate)
    return _round(Decimal(performer_price) * Decimal(100 + rate) / Decimal(100))


def prepayment_amount(performer_price: int, commission_rate: int) -> int:
    rate = _effective_rate(commission_rate)
    return _round(Decimal(performer_price) * Decimal(rate) / Decimal(100))


def performer_payment(performer_price: int) -> int:
    return performer_price


def booking_pricing(performer_price: int, commission_rate: int) -> PricingSnapshot:
    return PricingSnapshot(
        performer_price=performer_price,
        customer_price=customer_price(performer_price, commission_rate),
        prepayment=prepayment_amount(performer_price, commission_rate),
        performer_payment=performer_payment(performer_price),
        commission_rate=commission_rate,
        prepayment_percentage=prepayment_percentage(commission_rate),
    )


def split_customer_price(total: int, commission_rate: int) -> PricingSnapshot:
    """Обратный расчёт: клиент платит total, из него выделяем долю исполнителя.

    Нужен, когда итоговую цену назвали напрямую (цена в предложении
    исполнителя). Предоплата = total - доля исполнителя, не больше total.
    """
    rate = _effective_rate(commission_rate)
    performer_share = _round(Decimal(total) * Decimal(100) / Decimal(100 + rate))
    return PricingSnapshot(
        performer_price=performer_share,
        customer_price=total,
        prepayment=total - performer_share,
        performer_payment=performer_payment(performer_share),
        commission_rate=commission_rate,
        prepayment_percentage=prepayment_percentage(commission_rate),
    )


def format_price(amount: int) -> str:
    """7000 -> '7 000 ₽'"""
    return f"{amount:,}".replace(",", " ") + " ₽"


class CommissionRateProvider:
    """Комиссия платформы из platform_settings с кешем на время жизни процесса.

    Ошибка чтения не пробрасывается: пишем предупреждение в лог и отдаём
    значение по умолчанию, показ цен не должен падать.
    """

    def __init__(self, session_factory: SessionFactory, default_rate: int = DEFAULT_COMMISSION_RATE):
        self._session_factory = session_factory
        self.default_rate = default_rate
        self._cached: Optional[int] = None
        self._lock = threading.Lock()

    def get_rate(self) -> int:
        with self._lock:
            if self._cached is not None:
                return self._cached
        try:
            rate = self._read_rate()
        except ConfigurationReadError as e:
            logger.warning(f"⚠️ {e.message}, используем комиссию по умолчанию {self.default_rate}%")
            return self.default_rate
        with self._lock:
            self._cached = rate
        return rate

    def invalidate(self) -> None:
        with self._lock:
            self._cached = None

    def set_rate(self, commission_rate: int) -> int:
        if commission_rate < 0:
            raise ValidationError("Комиссия не может быть отрицательной")
        with session_scope(self._session_factory) as db:
            SettingsRepository.set_value(
                db,
                COMMISSION_RATE_KEY,
                str(commission_rate),
                description="Комиссия платформы, %",
            )
        self.invalidate()
        logger.info(f"💰 Комиссия платформы изменена: {commission_rate}%")
        return commission_rate

    def _read_rate(self) -> int:
        try:
            with session_scope(self._session_factory) as db:
                value = SettingsRepository.get_value(db, COMMISSION_RATE_KEY)
        except PersistenceError as e:
            raise ConfigurationReadError(f"Не удалось прочитать {COMMISSION_RATE_KEY}") from e

        if value is None:
            raise ConfigurationReadError(f"Настройка {COMMISSION_RATE_KEY} не задана")
        try:
            rate = int(value)
        except ValueError:
            raise ConfigurationReadError(f"Некорректное значение {COMMISSION_RATE_KEY}: {value!r}")
        if rate < 0:
            raise ConfigurationReadError(f"Отрицательная комиссия в настройках: {rate}")
        return rate
