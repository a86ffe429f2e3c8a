"""
Report Cache Tests

Lifetimes per report kind, explicit TTLs, user invalidation and the
interval-driven sweep. Time is driven by a fake monotonic clock.
"""

from tax_lot_engine import config
from tax_lot_engine.domain.enums import ReportKind
from tax_lot_engine.services.report_cache import ReportCache, NO_EXPIRATION, DEFAULT_EXPIRATION
from tests.helpers.mock_providers import FakeClock

DEFAULT_TTL = config.REPORT_CACHE_DEFAULT_EXPIRATION_SECONDS


class TestGetSet:
    def test_miss_then_hit(self, report_cache):
        assert report_cache.get(1, ReportKind.FEE_DETAILS) is None
        report_cache.set(1, ReportKind.FEE_DETAILS, ["fee"])
        assert report_cache.get(1, ReportKind.FEE_DETAILS) == ["fee"]

    def test_entries_are_per_user_and_kind(self, report_cache):
        report_cache.set(1, ReportKind.STOCK_SALES, "user 1 sales")
        report_cache.set(2, ReportKind.STOCK_SALES, "user 2 sales")
        report_cache.set(1, ReportKind.STOCK_HOLDINGS, "user 1 holdings")

        assert report_cache.get(1, ReportKind.STOCK_SALES) == "user 1 sales"
        assert report_cache.get(2, ReportKind.STOCK_SALES) == "user 2 sales"
        assert report_cache.get(2, ReportKind.STOCK_HOLDINGS) is None

    def test_empty_values_are_cached(self, report_cache):
        report_cache.set(1, ReportKind.STOCK_SALES, [])
        assert report_cache.get(1, ReportKind.STOCK_SALES) == []


class TestLifetimes:
    def test_resolver_outputs_never_expire(self, report_cache, clock):
        report_cache.set(1, ReportKind.STOCK_SALES, "sales")
        clock.advance(10 * DEFAULT_TTL)
        assert report_cache.get(1, ReportKind.STOCK_SALES) == "sales"

    def test_combined_views_use_default_expiration(self, report_cache, clock):
        report_cache.set(1, ReportKind.LATEST_UPLOAD_RESULT, "result")
        clock.advance(DEFAULT_TTL - 1)
        assert report_cache.get(1, ReportKind.LATEST_UPLOAD_RESULT) == "result"
        clock.advance(1)
        assert report_cache.get(1, ReportKind.LATEST_UPLOAD_RESULT) is None

    def test_explicit_ttl(self, report_cache, clock):
        report_cache.set(1, ReportKind.STOCK_SALES, "short lived", ttl=5)
        clock.advance(5)
        assert report_cache.get(1, ReportKind.STOCK_SALES) is None

    def test_explicit_sentinels(self, report_cache, clock):
        report_cache.set(1, ReportKind.DIVIDEND_METRICS, "forever", ttl=NO_EXPIRATION)
        report_cache.set(1, ReportKind.STOCK_SALES, "default", ttl=DEFAULT_EXPIRATION)
        clock.advance(DEFAULT_TTL)
        assert report_cache.get(1, ReportKind.DIVIDEND_METRICS) == "forever"
        assert report_cache.get(1, ReportKind.STOCK_SALES) is None

    def test_overwrite_resets_expiry(self, report_cache, clock):
        report_cache.set(1, ReportKind.DIVIDEND_SUMMARY, "old")
        clock.advance(DEFAULT_TTL - 10)
        report_cache.set(1, ReportKind.DIVIDEND_SUMMARY, "new")
        clock.advance(20)
        assert report_cache.get(1, ReportKind.DIVIDEND_SUMMARY) == "new"


class TestInvalidation:
    def test_invalidate_user_drops_only_that_user(self, report_cache):
        for kind in (ReportKind.STOCK_SALES, ReportKind.FEE_DETAILS, ReportKind.LATEST_UPLOAD_RESULT):
            report_cache.set(1, kind, kind.name)
        report_cache.set(2, ReportKind.STOCK_SALES, "other user")

        assert report_cache.invalidate_user(1) == 3
        assert report_cache.get(1, ReportKind.STOCK_SALES) is None
        assert report_cache.get(2, ReportKind.STOCK_SALES) == "other user"
        assert report_cache.invalidate_user(1) == 0

    def test_clear(self, report_cache):
        report_cache.set(1, ReportKind.STOCK_SALES, "x")
        report_cache.clear()
        assert len(report_cache) == 0


class TestSweep:
    def test_expired_entries_stay_until_swept(self, clock):
        cache = ReportCache(default_expiration_seconds=10, cleanup_interval_seconds=100, clock=clock)
        cache.set(1, ReportKind.LATEST_UPLOAD_RESULT, "result")
        cache.set(1, ReportKind.STOCK_SALES, "sales")
        clock.advance(10)

        assert cache.get(1, ReportKind.LATEST_UPLOAD_RESULT) is None
        assert len(cache) == 2
        assert cache.sweep() == 1
        assert len(cache) == 1

    def test_sweep_runs_once_per_interval(self):
        clock = FakeClock()
        cache = ReportCache(default_expiration_seconds=10, cleanup_interval_seconds=100, clock=clock)
        cache.set(1, ReportKind.LATEST_UPLOAD_RESULT, "result")

        clock.advance(50)
        assert cache.maybe_sweep() is False
        assert len(cache) == 1

        clock.advance(50)
        assert cache.get(2, ReportKind.STOCK_SALES) is None # Triggers the due sweep
        assert len(cache) == 0
        assert cache.maybe_sweep() is False
