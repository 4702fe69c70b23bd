"""
Тесты расчёта цены и кеша комиссии
"""
import logging

import pytest
from sqlalchemy.exc import OperationalError

from core.database import session_scope
from booking_service.pricing import (
    CommissionRateProvider,
    booking_pricing,
    customer_price,
    format_price,
    performer_payment,
    prepayment_amount,
    prepayment_percentage,
    split_customer_price,
)
from booking_service.tables import PlatformSetting


@pytest.mark.parametrize("price", [0, 1, 999, 5000, 12345])
@pytest.mark.parametrize("rate", [0, 15, 40, 100, 350])
def test_customer_price_is_performer_price_plus_prepayment(price, rate):
    assert customer_price(price, rate) >= price
    assert customer_price(price, rate) == price + prepayment_amount(price, rate)


def test_prepayment_percentage_boundaries():
    assert prepayment_percentage(0) == 0
    assert prepayment_percentage(40) == 29
    assert prepayment_percentage(100) == 50
    assert prepayment_percentage(-20) == 0
    assert prepayment_percentage(-100) == 0
    assert prepayment_percentage(1_000_000) == 100


def test_reference_scenario():
    pricing = booking_pricing(5000, 40)
    assert pricing.customer_price == 7000
    assert pricing.prepayment == 2000
    assert pricing.performer_payment == 5000
    assert pricing.prepayment_percentage == 29
    assert pricing.commission_rate == 40


def test_performer_always_gets_full_price():
    assert performer_payment(5000) == 5000
    assert booking_pricing(3333, 40).performer_payment == 3333


def test_rounding_is_half_up():
    # 25 * 10% = 2.5 -> 3
    assert prepayment_amount(25, 10) == 3
    assert customer_price(25, 10) == 28


def test_negative_rate_does_not_invert_price():
    assert customer_price(5000, -30) == 5000
    assert prepayment_amount(5000, -30) == 0


def test_very_large_rate():
    assert customer_price(1000, 10_000) == 101_000
    assert prepayment_amount(1000, 10_000) == 100_000


def test_split_customer_price_reverses_markup():
    snapshot = split_customer_price(7000, 40)
    assert (snapshot.performer_payment, snapshot.prepayment) == (5000, 2000)

    snapshot = split_customer_price(6000, 40)
    assert snapshot.customer_price == 6000
    assert snapshot.performer_payment == 4286
    assert snapshot.prepayment == 1714


@pytest.mark.parametrize("total", [0, 1, 999, 6000, 12345])
@pytest.mark.parametrize("rate", [-10, 0, 15, 40, 350])
def test_split_prepayment_never_exceeds_total(total, rate):
    snapshot = split_customer_price(total, rate)
    assert 0 <= snapshot.prepayment <= snapshot.customer_price
    assert snapshot.prepayment + snapshot.performer_payment == total


def test_format_price():
    assert format_price(7000) == "7 000 ₽"
    assert format_price(1250000) == "1 250 000 ₽"
    assert format_price(0) == "0 ₽"


class TestCommissionRateProvider:

    def test_reads_rate_from_settings(self, session_factory, commission_40):
        assert CommissionRateProvider(session_factory).get_rate() == 40

    def test_missing_setting_falls_back_to_default(self, session_factory, caplog):
        provider = CommissionRateProvider(session_factory, default_rate=40)
        with caplog.at_level(logging.WARNING):
            assert provider.get_rate() == 40
        assert "по умолчанию" in caplog.text

    def test_value_is_cached_until_invalidated(self, session_factory, commission_40):
        provider = CommissionRateProvider(session_factory)
        assert provider.get_rate() == 40

        with session_scope(session_factory) as db:
            db.query(PlatformSetting).filter(PlatformSetting.key == "commission_rate").update({"value": "30"})

        assert provider.get_rate() == 40
        provider.invalidate()
        assert provider.get_rate() == 30

    def test_set_rate_persists_and_invalidates(self, session_factory, commission_40):
        provider = CommissionRateProvider(session_factory)
        assert provider.get_rate() == 40
        provider.set_rate(25)
        assert provider.get_rate() == 25
        assert CommissionRateProvider(session_factory).get_rate() == 25

    def test_zero_rate_is_a_valid_setting(self, session_factory):
        provider = CommissionRateProvider(session_factory)
        provider.set_rate(0)
        assert provider.get_rate() == 0

    def test_garbage_value_falls_back_to_default(self, session_factory):
        with session_scope(session_factory) as db:
            db.add(PlatformSetting(key="commission_rate", value="сорок"))
        assert CommissionRateProvider(session_factory, default_rate=40).get_rate() == 40

    def test_store_failure_is_silent(self, caplog):
        class BrokenSession:
            def query(self, *args, **kwargs):
                raise OperationalError("SELECT", {}, Exception("connection refused"))

            def commit(self):
                pass

            def rollback(self):
                pass

            def close(self):
                pass

        provider = CommissionRateProvider(BrokenSession, default_rate=40)
        with caplog.at_level(logging.WARNING):
            assert provider.get_rate() == 40
        assert "commission_rate" in caplog.text

    def test_fallback_is_not_cached(self, session_factory):
        provider = CommissionRateProvider(session_factory, default_rate=40)
        assert provider.get_rate() == 40
        with session_scope(session_factory) as db:
            db.add(PlatformSetting(key="commission_rate", value="20"))
        assert provider.get_rate() == 20
