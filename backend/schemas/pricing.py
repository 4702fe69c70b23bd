"""
Схема расчёта стоимости бронирования
"""
from pydantic import BaseModel


class PricingSnapshot(BaseModel):
    """Суммы, зафиксированные на момент создания брони"""

    performer_price: int
    customer_price: int
    prepayment: int
    performer_payment: int
    commission_rate: int
    prepayment_percentage: int
