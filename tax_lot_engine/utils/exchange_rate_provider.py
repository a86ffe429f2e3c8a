# tax_lot_engine/utils/exchange_rate_provider.py
import datetime
import json
import logging
import threading
import time
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, Iterable, Optional, Tuple

import requests

from tax_lot_engine import config
from tax_lot_engine.domain.errors import RateUnavailable

logger = logging.getLogger(__name__)

# Default constants if not overridden by constructor arguments
DEFAULT_ECB_API_URL_TEMPLATE = "https://data-api.ecb.europa.eu/service/data/EXR/D.{currency_code}.EUR.SP00.A?startPeriod={start_date_str}&endPeriod={end_date_str}&format=jsondata"
DEFAULT_MAX_FALLBACK_DAYS = config.MAX_FALLBACK_DAYS_EXCHANGE_RATES
DEFAULT_REQUEST_TIMEOUT_SECONDS = config.ECB_REQUEST_TIMEOUT_SECONDS
DEFAULT_CURRENCY_CODE_MAPPING: Dict[str, str] = dict(config.CURRENCY_CODE_MAPPING_ECB)


class RateCache:
    """
    In-memory (currency, date) -> rate cache with a time-to-live per entry.
    One instance is created at start-up and handed to the provider(s) that use it.
    """
    def __init__(self,
                 ttl_seconds: float = config.EXCHANGE_RATE_CACHE_TTL_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Tuple[str, datetime.date], Tuple[Decimal, float]] = {}
        self._lock = threading.Lock()

    def get(self, currency_code: str, rate_date: datetime.date) -> Optional[Decimal]:
        key = (currency_code.upper(), rate_date)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            rate, stored_at = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[key]
                return None
            return rate

    def set(self, currency_code: str, rate_date: datetime.date, rate: Decimal) -> None:
        with self._lock:
            self._entries[(currency_code.upper(), rate_date)] = (rate, self._clock())

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, (_, stored_at) in self._entries.items() if now - stored_at >= self.ttl_seconds]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"Purged {len(expired)} expired exchange rate cache entries.")
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class ExchangeRateProvider:
    """
    Abstract base class for exchange rate providers.
    Rates are expressed the ECB way: foreign currency units per 1 EUR, so EUR = amount / rate.
    """
    def get_rate(self, date_of_conversion: datetime.date, currency_code: str) -> Decimal:
        """
        Returns the rate for currency_code on date_of_conversion.
        Raises RateUnavailable when no rate exists within the provider's fallback window.
        """
        raise NotImplementedError("Subclasses must implement get_rate")

    def prefetch_rates(self, start_date: datetime.date, end_date: datetime.date, currencies: Iterable[str]):
        """Optional bulk warm-up. Providers without a bulk backend keep this no-op."""
        logger.debug(f"{self.__class__.__name__} does not implement prefetch_rates or it's a no-op for this provider.")

    def get_max_fallback_days(self) -> int:
        raise NotImplementedError("Subclasses must implement get_max_fallback_days")


class ECBExchangeRateProvider(ExchangeRateProvider):
    def __init__(self,
                 rate_cache: Optional[RateCache] = None,
                 api_url_template_override: Optional[str] = None,
                 max_fallback_days_override: Optional[int] = None,
                 currency_code_mapping_override: Optional[Dict[str, str]] = None,
                 request_timeout_seconds_override: Optional[int] = None):
        self.rate_cache = rate_cache if rate_cache is not None else RateCache()
        self.api_url_template = api_url_template_override or DEFAULT_ECB_API_URL_TEMPLATE
        self.max_fallback_days = max_fallback_days_override if max_fallback_days_override is not None else DEFAULT_MAX_FALLBACK_DAYS
        self.currency_code_mapping = currency_code_mapping_override if currency_code_mapping_override is not None else DEFAULT_CURRENCY_CODE_MAPPING.copy()
        self.request_timeout_seconds = request_timeout_seconds_override or DEFAULT_REQUEST_TIMEOUT_SECONDS

    def _get_effective_currency_code(self, currency_code: str) -> str:
        return self.currency_code_mapping.get(currency_code.upper(), currency_code.upper())

    def _fetch_rates_from_ecb(self, start_date: datetime.date, end_date: datetime.date, original_currency_code: str) -> Dict[datetime.date, Decimal]:
        """
        Queries the ECB data API for a date range. Returns {observation date: rate}; empty when the
        range has no fixings or the request fails (failures are logged, never raised).
        """
        effective_currency_code = self._get_effective_currency_code(original_currency_code)
        start_date_str = start_date.strftime("%Y-%m-%d")
        end_date_str = end_date.strftime("%Y-%m-%d")
        url = self.api_url_template.format(currency_code=effective_currency_code, start_date_str=start_date_str, end_date_str=end_date_str)

        logger.debug(f"Attempting ECB fetch for {effective_currency_code} (original: {original_currency_code}) {start_date_str}..{end_date_str} from URL: {url}")
        response = None
        try:
            response = requests.get(url, timeout=self.request_timeout_seconds, headers={'Accept': 'application/json'})
            response.raise_for_status()

            if not response.content:
                logger.info(f"ECB API returned an empty response for {effective_currency_code} {start_date_str}..{end_date_str}. No data for this period.")
                return {}

            data = response.json()

            if not data.get("dataSets") or not data["dataSets"][0].get("series"):
                logger.info(f"ECB API response for {effective_currency_code} {start_date_str}..{end_date_str} has no series.")
                return {}

            series = data["dataSets"][0]["series"]
            series_key = list(series.keys())[0] # Usually '0:0:0:0:0'
            observations = series[series_key].get("observations") or {}
            if not observations:
                logger.info(f"No 'observations' in ECB response for {effective_currency_code} {start_date_str}..{end_date_str}.")
                return {}

            obs_dim_values = data.get("structure", {}).get("dimensions", {}).get("observation", [])
            time_periods = []
            for obs_struct_item in obs_dim_values:
                if obs_struct_item.get("id") == "TIME_PERIOD":
                    time_periods = [value_obj.get("id") for value_obj in obs_struct_item.get("values", [])]
                    break
            if not time_periods:
                logger.warning(f"ECB API response for {effective_currency_code} lacks the TIME_PERIOD observation dimension.")
                return {}

            rates: Dict[datetime.date, Decimal] = {}
            for index, obs_date_str in enumerate(time_periods):
                rate_value_list = observations.get(str(index))
                if not rate_value_list or rate_value_list[0] is None:
                    continue
                try:
                    rate_decimal = Decimal(str(rate_value_list[0]))
                    obs_date = datetime.datetime.strptime(obs_date_str, "%Y-%m-%d").date()
                except (InvalidOperation, ValueError, TypeError):
                    logger.error(f"Could not read ECB observation '{rate_value_list[0]}' on '{obs_date_str}' for {effective_currency_code}.")
                    continue
                if rate_decimal > 0:
                    rates[obs_date] = rate_decimal
            logger.debug(f"ECB returned {len(rates)} rates for {effective_currency_code} {start_date_str}..{end_date_str}.")
            return rates

        except requests.exceptions.HTTPError as http_err:
            status_code = http_err.response.status_code if http_err.response is not None else None
            if status_code == 404:
                # The ECB answers 404 for periods without any observation
                logger.info(f"ECB API returned 404 (no data) for {effective_currency_code} (orig: {original_currency_code}) {start_date_str}..{end_date_str}.")
            else:
                logger.error(f"HTTP error occurred while fetching rate for {effective_currency_code} (orig: {original_currency_code}) {start_date_str}..{end_date_str}: {http_err}. URL: {url}")
        except json.JSONDecodeError as json_err:
            response_text_on_json_error = response.text[:200] if response is not None else "No response object"
            logger.error(f"JSONDecodeError parsing ECB response for {effective_currency_code} on {start_date_str}: {json_err}. Response text: '{response_text_on_json_error}'. URL: {url}")
        except requests.exceptions.RequestException as req_err:
            logger.error(f"Request error occurred while fetching rate for {effective_currency_code} (orig: {original_currency_code}) on {start_date_str}: {req_err}. URL: {url}")
        except (KeyError, IndexError, TypeError, AttributeError) as parse_err:
            logger.error(f"Error parsing ECB API JSON structure for {effective_currency_code} (orig: {original_currency_code}) on {start_date_str}: {parse_err}")
        return {}

    def get_rate(self, date_of_conversion: datetime.date, currency_code: str) -> Decimal:
        original_currency_code_upper = currency_code.upper()
        if original_currency_code_upper == config.HOME_CURRENCY:
            return Decimal("1")

        effective_currency_code = self._get_effective_currency_code(original_currency_code_upper)

        for i in range(self.max_fallback_days + 1): # Day 0 (the date itself) up to max_fallback_days back
            current_search_date = date_of_conversion - datetime.timedelta(days=i)

            cached_rate = self.rate_cache.get(effective_currency_code, current_search_date)
            if cached_rate is not None:
                logger.debug(f"Rate for {effective_currency_code} on {current_search_date} (fallback {i} days for {date_of_conversion}) from cache: {cached_rate}")
                if i > 0:
                    self.rate_cache.set(effective_currency_code, date_of_conversion, cached_rate)
                return cached_rate

            fetched = self._fetch_rates_from_ecb(current_search_date, current_search_date, original_currency_code_upper)
            rate_decimal = fetched.get(current_search_date)
            if rate_decimal is None:
                logger.debug(f"No ECB fixing for {effective_currency_code} on {current_search_date}; trying the previous day.")
                continue

            self.rate_cache.set(effective_currency_code, current_search_date, rate_decimal)
            if i > 0:
                self.rate_cache.set(effective_currency_code, date_of_conversion, rate_decimal)
            logger.info(f"Using rate {rate_decimal} for {effective_currency_code} from {current_search_date} (target: {date_of_conversion}, fallback {i} days).")
            return rate_decimal

        logger.warning(f"Failed to get exchange rate for {effective_currency_code} (original: {original_currency_code_upper}) for target date {date_of_conversion} after checking back {self.max_fallback_days} days.")
        raise RateUnavailable(original_currency_code_upper, date_of_conversion, self.max_fallback_days)

    def prefetch_rates(self, start_date: datetime.date, end_date: datetime.date, currencies: Iterable[str]):
        """Loads every fixing of the period for each currency into the cache with one request per currency."""
        self.rate_cache.purge_expired()
        # Reach back far enough for the first dates of the period to find a fallback fixing
        range_start = start_date - datetime.timedelta(days=self.max_fallback_days)
        for currency_code in sorted({c.upper() for c in currencies if c}):
            if currency_code == config.HOME_CURRENCY:
                continue
            effective_currency_code = self._get_effective_currency_code(currency_code)
            rates = self._fetch_rates_from_ecb(range_start, end_date, currency_code)
            if not rates:
                logger.info(f"No ECB rates to prefetch for {effective_currency_code} ({range_start}..{end_date}).")
                continue

            # Days without a fixing get the latest prior fixing inside the fallback window
            last_fixing: Optional[Tuple[datetime.date, Decimal]] = None
            filled = 0
            current = range_start
            while current <= end_date:
                if current in rates:
                    last_fixing = (current, rates[current])
                    self.rate_cache.set(effective_currency_code, current, rates[current])
                elif last_fixing is not None and (current - last_fixing[0]).days <= self.max_fallback_days:
                    self.rate_cache.set(effective_currency_code, current, last_fixing[1])
                    filled += 1
                current += datetime.timedelta(days=1)
            logger.info(f"Prefetched {len(rates)} ECB rates for {effective_currency_code} ({range_start}..{end_date}), "
                        f"{filled} non-fixing days filled from earlier fixings.")

    def get_max_fallback_days(self) -> int:
        return self.max_fallback_days


class OfflineExchangeRateProvider(ExchangeRateProvider):
    """Provider for runs without network access: only EUR resolves, everything else is unavailable."""

    def get_rate(self, date_of_conversion: datetime.date, currency_code: str) -> Decimal:
        if currency_code.upper() == config.HOME_CURRENCY:
            return Decimal("1")
        raise RateUnavailable(currency_code.upper(), date_of_conversion)

    def get_max_fallback_days(self) -> int:
        return 0
