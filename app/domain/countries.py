"""
app/domain/countries.py

Static country tables: canonical names, regions, postcode formats and the
tokens used to recognise a country from filenames and cell values.
"""

from __future__ import annotations

import re

COUNTRY_CODE_NAMES: dict[str, str] = {
    "US": "United States",
    "USA": "United States",
    "UK": "United Kingdom",
    "GB": "United Kingdom",
    "DE": "Germany",
    "FR": "France",
    "ES": "Spain",
    "IT": "Italy",
    "CA": "Canada",
    "AU": "Australia",
    "JP": "Japan",
    "CN": "China",
    "IN": "India",
    "BR": "Brazil",
    "MX": "Mexico",
    "NL": "Netherlands",
    "CH": "Switzerland",
}

_REGION_COUNTRIES: dict[str, tuple[str, ...]] = {
    "AMER": (
        "United States",
        "Canada",
        "Mexico",
        "Brazil",
        "Argentina",
        "Chile",
        "Colombia",
        "Peru",
    ),
    "EMEA": (
        "United Kingdom",
        "Germany",
        "France",
        "Spain",
        "Italy",
        "Netherlands",
        "Belgium",
        "Switzerland",
        "Austria",
        "Sweden",
        "Norway",
        "Denmark",
        "Finland",
        "Poland",
        "Czech Republic",
        "Hungary",
        "Romania",
        "Bulgaria",
        "Croatia",
        "Serbia",
        "Greece",
        "Turkey",
        "Russia",
        "Ukraine",
        "South Africa",
        "Nigeria",
        "Kenya",
        "Egypt",
        "Morocco",
        "Israel",
        "UAE",
        "Saudi Arabia",
    ),
    "APAC": (
        "Japan",
        "China",
        "South Korea",
        "India",
        "Australia",
        "New Zealand",
        "Singapore",
        "Malaysia",
        "Thailand",
        "Vietnam",
        "Philippines",
        "Indonesia",
        "Taiwan",
        "Hong Kong",
    ),
}

COUNTRY_REGIONS: dict[str, str] = {
    country: region for region, countries in _REGION_COUNTRIES.items() for country in countries
}

# Countries the inferrer can detect, keyed by the code it reports.
INFERABLE_COUNTRIES: dict[str, str] = {
    "DE": "Germany",
    "US": "United States",
    "UK": "United Kingdom",
    "FR": "France",
    "CA": "Canada",
    "AU": "Australia",
    "NL": "Netherlands",
    "IT": "Italy",
    "ES": "Spain",
    "CH": "Switzerland",
}

POSTCODE_PATTERNS: dict[str, re.Pattern[str]] = {
    "DE": re.compile(r"^\d{5}$"),
    "US": re.compile(r"^\d{5}(-\d{4})?$"),
    "UK": re.compile(r"^[A-Z]{1,2}\d[A-Z\d]?\s?\d[A-Z]{2}$", re.IGNORECASE),
    "FR": re.compile(r"^\d{5}$"),
    "CA": re.compile(r"^[A-Z]\d[A-Z]\s?\d[A-Z]\d$", re.IGNORECASE),
    "AU": re.compile(r"^\d{4}$"),
    "NL": re.compile(r"^\d{4}\s?[A-Z]{2}$", re.IGNORECASE),
    "IT": re.compile(r"^\d{5}$"),
    "ES": re.compile(r"^\d{5}$"),
    "CH": re.compile(r"^\d{4}$"),
}

# Country names, codes, demonyms and major cities as they appear in filenames.
FILENAME_TOKENS: dict[str, tuple[str, ...]] = {
    "DE": ("germany", "deutschland", "german", "de", "deu", "berlin", "munich", "hamburg", "cologne", "frankfurt"),
    "US": ("usa", "us", "united states", "america", "american", "new york", "california", "texas", "florida"),
    "UK": ("uk", "united kingdom", "britain", "british", "england", "london", "manchester", "birmingham", "glasgow"),
    "FR": ("france", "french", "fr", "fra", "paris", "lyon", "marseille", "toulouse"),
    "CA": ("canada", "canadian", "ca", "can", "toronto", "vancouver", "montreal", "calgary"),
    "AU": ("australia", "australian", "au", "aus", "sydney", "melbourne", "brisbane", "perth"),
    "NL": ("netherlands", "holland", "dutch", "nl", "nld", "amsterdam", "rotterdam", "utrecht", "eindhoven"),
    "IT": ("italy", "italian", "it", "ita", "rome", "milan", "naples", "turin"),
    "ES": ("spain", "spanish", "es", "esp", "madrid", "barcelona", "valencia", "seville"),
    "CH": ("switzerland", "swiss", "ch", "che", "zurich", "geneva", "basel", "bern"),
}

# State and region names seen in address cells.
REGION_TOKENS: dict[str, tuple[str, ...]] = {
    "DE": (
        "bayern",
        "bavaria",
        "nrw",
        "nordrhein-westfalen",
        "baden-württemberg",
        "niedersachsen",
        "hessen",
        "sachsen",
    ),
    "US": ("california", "texas", "florida", "new york", "pennsylvania", "illinois", "ohio"),
    "UK": ("england", "scotland", "wales", "northern ireland"),
    "FR": ("île-de-france", "provence", "rhône-alpes", "aquitaine", "languedoc", "bretagne", "normandie"),
    "CA": ("ontario", "quebec", "british columbia", "alberta", "manitoba", "saskatchewan", "nova scotia"),
}

USER_REGION_COUNTRIES: dict[str, str] = {
    "emea": "DE",
    "europe": "DE",
    "amer": "US",
    "americas": "US",
    "north america": "US",
    "apac": "AU",
    "asia pacific": "AU",
}

DEFAULT_COUNTRY_CODE = "DE"


def region_for_country(country: str | None) -> str | None:
    """
    Return AMER / EMEA / APAC for a canonical country name, or None.
    """

    if not country:
        return None
    return COUNTRY_REGIONS.get(country)


def country_name_for_code(code: str) -> str:
    return INFERABLE_COUNTRIES.get(code) or COUNTRY_CODE_NAMES.get(code, code)
