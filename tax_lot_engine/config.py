# tax_lot_engine/config.py

from decimal import Decimal

# Broker export defaults
DEFAULT_SOURCE = "degiro"
SUPPORTED_SOURCES = ("degiro",)

# Local store for processed transactions
DATABASE_FILE_PATH = "data/transactions.db"

# Home currency every amount is expressed in
HOME_CURRENCY = "EUR"

# Numerical Precision
INTERNAL_CALCULATION_PRECISION = 28
DECIMAL_ROUNDING_MODE = "ROUND_HALF_UP" # Python's decimal module uses strings like 'ROUND_HALF_UP', 'ROUND_HALF_EVEN'

# Output/Reporting Precisions (display only, never intermediate calculations)
OUTPUT_PRECISION_AMOUNTS: Decimal = Decimal("0.01")
OUTPUT_PRECISION_PER_SHARE: Decimal = Decimal("0.000001")
PRECISION_QUANTITY: Decimal = Decimal("0.00000001")

# Exchange rates
# Number of prior calendar days searched when a date has no ECB fixing (weekends, holidays)
MAX_FALLBACK_DAYS_EXCHANGE_RATES = 6
EXCHANGE_RATE_CACHE_TTL_SECONDS = 24 * 60 * 60
ECB_REQUEST_TIMEOUT_SECONDS = 15
CURRENCY_CODE_MAPPING_ECB: dict[str, str] = {"CNH": "CNY"}

# Report cache lifetimes
REPORT_CACHE_DEFAULT_EXPIRATION_SECONDS = 15 * 60
REPORT_CACHE_CLEANUP_INTERVAL_SECONDS = 30 * 60

# Marker for transactions without a resolvable jurisdiction
UNKNOWN_COUNTRY_CODE = "unknown"

# Date format of processed transactions (DD-MM-YYYY, as in the DeGiro export)
DATE_FORMAT_PROCESSED = "%d-%m-%Y"

# Source name for transactions entered by hand
MANUAL_SOURCE = "manual"

# Report metadata
REPORT_TITLE = "Portfolio Tax Lot Report"
TAXPAYER_NAME = "Jane Doe"  # Placeholder - Please update
