"""
Exchange Rate Provider Tests

ECB lookups with weekend/holiday fallback, the TTL cache, range prefetch, and the
converter's FALLBACK handling. HTTP is replaced by an in-memory ECB stand-in.
"""

import datetime
from decimal import Decimal
from urllib.parse import parse_qs, urlparse

import pytest
import requests

from tax_lot_engine.domain.enums import RateSource
from tax_lot_engine.domain.errors import RateUnavailable
from tax_lot_engine.utils import exchange_rate_provider as erp
from tax_lot_engine.utils.currency_converter import CurrencyConverter
from tax_lot_engine.utils.exchange_rate_provider import (
    ECBExchangeRateProvider, OfflineExchangeRateProvider, RateCache,
)
from tests.helpers.mock_providers import FakeClock, FakeResponse, MockExchangeRateProvider, ecb_payload


class FakeEcbApi:
    """Serves fixings {(currency, 'YYYY-MM-DD'): 'rate'} for the requested period, 404 when there are none."""

    def __init__(self, fixings):
        self.fixings = fixings
        self.urls = []

    def __call__(self, url, timeout=None, headers=None):
        self.urls.append(url)
        parsed = urlparse(url)
        currency = parsed.path.split("/")[-1].split(".")[1]
        query = parse_qs(parsed.query)
        start, end = query["startPeriod"][0], query["endPeriod"][0]
        observations = {day: rate for (cur, day), rate in self.fixings.items() if cur == currency and start <= day <= end}
        if not observations:
            return FakeResponse(status_code=404, text="No results found.")
        return FakeResponse(ecb_payload(observations))


@pytest.fixture
def ecb_api(monkeypatch):
    api = FakeEcbApi({
        ("USD", "2024-01-12"): "1.0950",
        ("USD", "2024-01-15"): "1.0945",
        ("CNY", "2024-01-15"): "7.8500",
    })
    monkeypatch.setattr(erp.requests, "get", api)
    return api


class TestEcbProvider:
    def test_rate_on_a_fixing_day(self, ecb_api):
        provider = ECBExchangeRateProvider()
        assert provider.get_rate(datetime.date(2024, 1, 15), "usd") == Decimal("1.0945")
        assert len(ecb_api.urls) == 1
        assert "D.USD.EUR.SP00.A" in ecb_api.urls[0]

    def test_weekend_falls_back_to_previous_fixing(self, ecb_api):
        provider = ECBExchangeRateProvider()
        sunday = datetime.date(2024, 1, 14)

        assert provider.get_rate(sunday, "USD") == Decimal("1.0950")
        assert len(ecb_api.urls) == 3 # Sunday, Saturday, Friday

        # Cached under both the target date and the fixing date
        assert provider.rate_cache.get("USD", sunday) == Decimal("1.0950")
        assert provider.rate_cache.get("USD", datetime.date(2024, 1, 12)) == Decimal("1.0950")

    def test_no_fixing_within_fallback_window_raises(self, ecb_api):
        provider = ECBExchangeRateProvider(max_fallback_days_override=2)
        with pytest.raises(RateUnavailable) as exc_info:
            provider.get_rate(datetime.date(2023, 6, 1), "USD")
        assert exc_info.value.currency_code == "USD"
        assert exc_info.value.searched_days == 2
        assert len(ecb_api.urls) == 3

    def test_home_currency_needs_no_request(self, ecb_api):
        assert ECBExchangeRateProvider().get_rate(datetime.date(2024, 1, 15), "EUR") == Decimal("1")
        assert ecb_api.urls == []

    def test_currency_code_mapping(self, ecb_api):
        provider = ECBExchangeRateProvider()
        assert provider.get_rate(datetime.date(2024, 1, 15), "CNH") == Decimal("7.85")
        assert "D.CNY.EUR" in ecb_api.urls[0]

    def test_network_errors_count_as_missing_fixings(self, monkeypatch):
        def failing_get(url, timeout=None, headers=None):
            raise requests.exceptions.ConnectionError("offline")
        monkeypatch.setattr(erp.requests, "get", failing_get)

        with pytest.raises(RateUnavailable):
            ECBExchangeRateProvider(max_fallback_days_override=1).get_rate(datetime.date(2024, 1, 15), "USD")

    def test_server_error_is_not_fatal(self, monkeypatch):
        monkeypatch.setattr(erp.requests, "get", lambda url, timeout=None, headers=None: FakeResponse(status_code=500, text="boom"))
        provider = ECBExchangeRateProvider(max_fallback_days_override=0)
        assert provider._fetch_rates_from_ecb(datetime.date(2024, 1, 15), datetime.date(2024, 1, 15), "USD") == {}


class TestRateCache:
    def test_cached_rate_avoids_second_request(self, ecb_api):
        provider = ECBExchangeRateProvider(rate_cache=RateCache(clock=FakeClock()))
        day = datetime.date(2024, 1, 15)
        provider.get_rate(day, "USD")
        provider.get_rate(day, "USD")
        assert len(ecb_api.urls) == 1

    def test_entries_expire_after_ttl(self, ecb_api):
        clock = FakeClock()
        provider = ECBExchangeRateProvider(rate_cache=RateCache(ttl_seconds=60, clock=clock))
        day = datetime.date(2024, 1, 15)

        provider.get_rate(day, "USD")
        clock.advance(59)
        provider.get_rate(day, "USD")
        assert len(ecb_api.urls) == 1

        clock.advance(1)
        provider.get_rate(day, "USD")
        assert len(ecb_api.urls) == 2

    def test_purge_expired(self):
        clock = FakeClock()
        cache = RateCache(ttl_seconds=10, clock=clock)
        cache.set("usd", datetime.date(2024, 1, 1), Decimal("1.1"))
        clock.advance(5)
        cache.set("USD", datetime.date(2024, 1, 2), Decimal("1.2"))
        clock.advance(5)

        assert cache.purge_expired() == 1
        assert len(cache) == 1
        assert cache.get("USD", datetime.date(2024, 1, 2)) == Decimal("1.2")


class TestPrefetch:
    def test_one_request_per_currency_then_served_from_cache(self, ecb_api):
        provider = ECBExchangeRateProvider()
        provider.prefetch_rates(datetime.date(2024, 1, 13), datetime.date(2024, 1, 15), ["usd", "EUR", "USD"])

        assert len(ecb_api.urls) == 1
        assert "startPeriod=2024-01-07" in ecb_api.urls[0] # Reaches back by the fallback window
        assert provider.get_rate(datetime.date(2024, 1, 15), "USD") == Decimal("1.0945")
        assert provider.get_rate(datetime.date(2024, 1, 14), "USD") == Decimal("1.0950")
        assert len(ecb_api.urls) == 1


class TestOfflineProvider:
    def test_only_home_currency_resolves(self):
        provider = OfflineExchangeRateProvider()
        assert provider.get_rate(datetime.date(2024, 1, 15), "eur") == Decimal("1")
        with pytest.raises(RateUnavailable):
            provider.get_rate(datetime.date(2024, 1, 15), "USD")


class TestCurrencyConverter:
    def test_live_rate(self):
        converter = CurrencyConverter(MockExchangeRateProvider(default_rates={"USD": "1.25"}))
        assert converter.rate_for("usd", datetime.date(2024, 1, 15)) == (Decimal("1.25"), RateSource.LIVE)
        assert converter.convert_to_eur(Decimal("100"), "USD", datetime.date(2024, 1, 15)) == Decimal("80")

    def test_home_currency_skips_provider(self):
        provider = MockExchangeRateProvider()
        converter = CurrencyConverter(provider)
        assert converter.rate_for("EUR", datetime.date(2024, 1, 15)) == (Decimal("1"), RateSource.LIVE)
        assert converter.rate_for("", datetime.date(2024, 1, 15)) == (Decimal("1"), RateSource.LIVE)
        assert provider.calls == []

    def test_missing_rate_falls_back_to_one(self, caplog):
        converter = CurrencyConverter(MockExchangeRateProvider())
        assert converter.rate_for("GBP", datetime.date(2024, 1, 15)) == (Decimal("1"), RateSource.FALLBACK)
        assert any("Falling back" in r.message for r in caplog.records)

    def test_non_positive_rate_falls_back(self):
        converter = CurrencyConverter(MockExchangeRateProvider(default_rates={"USD": "0"}))
        assert converter.rate_for("USD", datetime.date(2024, 1, 15)) == (Decimal("1"), RateSource.FALLBACK)

    def test_prefetch_passes_only_foreign_currencies(self):
        provider = MockExchangeRateProvider()
        CurrencyConverter(provider).prefetch(datetime.date(2024, 1, 1), datetime.date(2024, 2, 1), ["EUR", "usd", "", "USD", "GBP"])
        assert provider.prefetch_calls == [(datetime.date(2024, 1, 1), datetime.date(2024, 2, 1), ["GBP", "USD"])]

    def test_prefetch_skipped_for_home_currency_only(self):
        provider = MockExchangeRateProvider()
        CurrencyConverter(provider).prefetch(datetime.date(2024, 1, 1), datetime.date(2024, 2, 1), ["EUR"])
        assert provider.prefetch_calls == []
