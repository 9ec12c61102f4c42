# hlrcheck/app/services/hlr_client.py
"""
Seven.io HLR lookup client (sync, safe for Celery workers).
"""

import logging
from typing import Dict, Any

import requests
from prometheus_client import Counter, Histogram

from hlrcheck.app.config import settings

logger = logging.getLogger(__name__)

SEVEN_IO_BASE = "https://gateway.seven.io/api"

HLR_LOOKUP_TOTAL = Counter(
    "hlr_lookup_total",
    "HLR provider lookups",
    ["result"]  # ok | http_error | network_error | not_configured
)

HLR_LOOKUP_LATENCY = Histogram(
    "hlr_lookup_latency_seconds",
    "Latency of HLR provider lookups"
)


class HlrLookupError(Exception):
    """Provider call failed; message is safe to store on the result row."""


def _headers() -> Dict[str, str]:
    return {
        "X-Api-Key": settings.SEVEN_IO_API_KEY,
        "Accept": "application/json",
    }


def lookup(number: str) -> Dict[str, Any]:
    """
    Perform an HLR lookup for an already normalised number.
    Raises HlrLookupError on any failure.
    """
    if not settings.SEVEN_IO_API_KEY:
        HLR_LOOKUP_TOTAL.labels(result="not_configured").inc()
        raise HlrLookupError("API key not configured")

    try:
        with HLR_LOOKUP_LATENCY.time():
            resp = requests.get(
                f"{SEVEN_IO_BASE}/lookup/hlr",
                params={"number": number},
                headers=_headers(),
                timeout=settings.PROVIDER_TIMEOUT_SECONDS,
            )
    except requests.RequestException as e:
        HLR_LOOKUP_TOTAL.labels(result="network_error").inc()
        logger.warning("HLR lookup network error: %s", e)
        raise HlrLookupError(f"Network error: {e}") from e

    if resp.status_code != 200:
        HLR_LOOKUP_TOTAL.labels(result="http_error").inc()
        logger.warning("HLR lookup returned %s", resp.status_code)
        raise HlrLookupError(f"API error: {resp.status_code}")

    try:
        data = resp.json()
    except ValueError as e:
        HLR_LOOKUP_TOTAL.labels(result="http_error").inc()
        raise HlrLookupError("Invalid JSON from provider") from e

    if not isinstance(data, dict):
        HLR_LOOKUP_TOTAL.labels(result="http_error").inc()
        raise HlrLookupError("Unexpected provider response")

    HLR_LOOKUP_TOTAL.labels(result="ok").inc()
    return data


def get_balance() -> Dict[str, Any]:
    """Account balance. Never raises; failures carry an error string."""
    if not settings.SEVEN_IO_API_KEY:
        return {"balance": 0, "currency": "EUR", "error": "API key not configured"}

    try:
        resp = requests.get(
            f"{SEVEN_IO_BASE}/balance",
            headers=_headers(),
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
        )
    except requests.RequestException:
        logger.exception("balance request failed")
        return {"balance": 0, "currency": "EUR", "error": "Network error"}

    if resp.status_code != 200:
        return {"balance": 0, "currency": "EUR", "error": "Failed to fetch balance"}

    data = resp.json()
    return {"balance": data.get("amount", 0), "currency": data.get("currency", "EUR")}


def flatten_lookup(number: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Map a provider payload onto HlrResult column names."""
    current = data.get("current_carrier") or {}
    original = data.get("original_carrier") or {}
    return {
        "phone_number": number,
        "international_format": data.get("international_format_number"),
        "national_format": data.get("national_format_number"),
        "country_code": data.get("country_code"),
        "country_name": data.get("country_name"),
        "country_prefix": _str(data.get("country_prefix")),
        "current_carrier_name": current.get("name"),
        "current_carrier_code": _str(current.get("network_code")),
        "current_carrier_country": current.get("country"),
        "current_network_type": current.get("network_type"),
        "original_carrier_name": original.get("name"),
        "original_carrier_code": _str(original.get("network_code")),
        "valid_number": data.get("valid_number"),
        "reachable": data.get("reachable"),
        "ported": data.get("ported"),
        "roaming": _roaming(data.get("roaming")),
        "gsm_code": _str(data.get("gsm_code")),
        "gsm_message": data.get("gsm_message"),
    }


def _str(v):
    return None if v is None else str(v)


def _roaming(v):
    # provider sends either a string or an object with a "status" key
    if isinstance(v, dict):
        return v.get("status")
    return v
