# tests/conftest.py
import os
import tempfile
from decimal import getcontext, ROUND_HALF_UP

import pytest

from tax_lot_engine import config as app_config
from tax_lot_engine.processing.enrichment import TransactionEnricher
from tax_lot_engine.services.report_cache import ReportCache
from tax_lot_engine.storage.database import connect
from tax_lot_engine.storage.transaction_repository import TransactionRepository
from tax_lot_engine.utils.currency_converter import CurrencyConverter
from tests.helpers.mock_providers import MockExchangeRateProvider, FakeClock


@pytest.fixture(scope="session", autouse=True)
def set_decimal_precision_session_wide():
    """
    Set global decimal precision and rounding for all tests in the session.
    This mirrors setup_decimal_context in main.
    """
    getcontext().prec = app_config.INTERNAL_CALCULATION_PRECISION
    valid_rounding_modes = ["ROUND_CEILING", "ROUND_DOWN", "ROUND_FLOOR", "ROUND_HALF_DOWN",
                            "ROUND_HALF_EVEN", "ROUND_HALF_UP", "ROUND_UP", "ROUND_05UP"]
    if app_config.DECIMAL_ROUNDING_MODE in valid_rounding_modes:
        getcontext().rounding = app_config.DECIMAL_ROUNDING_MODE
    else:
        getcontext().rounding = ROUND_HALF_UP


@pytest.fixture
def temp_data_dir():
    """Temporary directory for databases and report files, removed after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def db_connection(temp_data_dir):
    connection = connect(os.path.join(temp_data_dir, "transactions.db"))
    yield connection
    connection.close()


@pytest.fixture
def repository(db_connection):
    return TransactionRepository(db_connection)


@pytest.fixture
def rate_provider():
    """USD at 1.25 per EUR (1 USD = 0.80 EUR) on every date."""
    return MockExchangeRateProvider(default_rates={"USD": "1.25"})


@pytest.fixture
def enricher(rate_provider):
    return TransactionEnricher(CurrencyConverter(rate_provider))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def report_cache(clock):
    return ReportCache(clock=clock)
