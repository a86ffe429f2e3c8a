# tax_lot_engine/utils/country_codes.py
import logging
from typing import Dict, Optional, Tuple

from tax_lot_engine import config

logger = logging.getLogger(__name__)

# ISIN country prefix (ISO 3166-1 alpha-2) -> (ISO 3166-1 numeric, ISO short name)
ISIN_PREFIX_COUNTRIES: Dict[str, Tuple[str, str]] = {
    "AR": ("032", "Argentina"),
    "AT": ("040", "Austria"),
    "AU": ("036", "Australia"),
    "BE": ("056", "Belgium"),
    "BM": ("060", "Bermuda"),
    "BR": ("076", "Brazil"),
    "CA": ("124", "Canada"),
    "CH": ("756", "Switzerland"),
    "CL": ("152", "Chile"),
    "CN": ("156", "China"),
    "CY": ("196", "Cyprus"),
    "CZ": ("203", "Czechia"),
    "DE": ("276", "Germany"),
    "DK": ("208", "Denmark"),
    "ES": ("724", "Spain"),
    "FI": ("246", "Finland"),
    "FR": ("250", "France"),
    "GB": ("826", "United Kingdom of Great Britain and Northern Ireland (the)"),
    "GG": ("831", "Guernsey"),
    "GR": ("300", "Greece"),
    "HK": ("344", "Hong Kong"),
    "HU": ("348", "Hungary"),
    "IE": ("372", "Ireland"),
    "IL": ("376", "Israel"),
    "IN": ("356", "India"),
    "IT": ("380", "Italy"),
    "JE": ("832", "Jersey"),
    "JP": ("392", "Japan"),
    "KR": ("410", "Korea (the Republic of)"),
    "KY": ("136", "Cayman Islands (the)"),
    "LU": ("442", "Luxembourg"),
    "MX": ("484", "Mexico"),
    "NL": ("528", "Netherlands (Kingdom of the)"),
    "NO": ("578", "Norway"),
    "NZ": ("554", "New Zealand"),
    "PL": ("616", "Poland"),
    "PT": ("620", "Portugal"),
    "SE": ("752", "Sweden"),
    "SG": ("702", "Singapore"),
    "TW": ("158", "Taiwan (Province of China)"),
    "US": ("840", "United States of America (the)"),
    "VG": ("092", "Virgin Islands (British)"),
    "ZA": ("710", "South Africa"),
}


def country_code_from_isin(isin: Optional[str]) -> str:
    """
    Jurisdiction string for an ISIN, e.g. "840 - United States of America (the)".
    Returns the unknown marker for empty or too short ISINs and "<XX> - Unknown" for
    prefixes outside the table.
    """
    if not isin or len(isin.strip()) < 2:
        return config.UNKNOWN_COUNTRY_CODE
    prefix = isin.strip()[:2].upper()
    entry = ISIN_PREFIX_COUNTRIES.get(prefix)
    if entry is None:
        logger.debug(f"No country mapping for ISIN prefix '{prefix}' (ISIN {isin}).")
        return f"{prefix} - Unknown"
    numeric, name = entry
    return f"{numeric} - {name}"


def is_known_jurisdiction(country_code: Optional[str]) -> bool:
    return bool(country_code) and country_code != config.UNKNOWN_COUNTRY_CODE
