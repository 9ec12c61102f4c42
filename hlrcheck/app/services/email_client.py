# hlrcheck/app/services/email_client.py
"""
MillionVerifier client.

Result codes:
1 ok, 2 catch_all, 3 unknown, 4 error, 5 disposable, 6 invalid
"""

import time
import logging
from typing import Dict, Any, List

import requests
from prometheus_client import Counter

from hlrcheck.app.config import settings, EMAIL_BATCH_DELAY_SECONDS

logger = logging.getLogger(__name__)

MILLIONVERIFIER_BASE = "https://api.millionverifier.com/api/v3/"

EMAIL_VERIFY_TOTAL = Counter(
    "email_verify_total",
    "Email provider verifications",
    ["result"]
)

RESULT_DESCRIPTIONS: Dict[str, str] = {
    "ok": "Valid email address",
    "catch_all": "Catch-all domain (accepts all emails)",
    "unknown": "Could not verify (temporary error)",
    "invalid": "Invalid email address",
    "disposable": "Disposable/temporary email",
    "error": "Syntax error in email",
}

SUBRESULT_DESCRIPTIONS: Dict[str, str] = {
    "ok": "Email is valid and deliverable",
    "mailbox_full": "Mailbox is full",
    "mailbox_not_found": "Mailbox does not exist",
    "mailbox_disabled": "Mailbox is disabled",
    "no_mx_record": "Domain has no MX record",
    "dns_error": "DNS lookup failed",
    "syntax_error": "Invalid email syntax",
    "possible_typo": "Possible typo in email",
    "spam_trap": "Known spam trap",
    "role_account": "Role-based email (info@, support@)",
    "disposable": "Disposable email service",
    "timeout": "Verification timed out",
}

STATUS_MAP = {
    "ok": "valid",
    "invalid": "invalid",
    "error": "invalid",
    "catch_all": "risky",
    "disposable": "risky",
}


class EmailVerificationError(Exception):
    pass


def map_status(result: str | None) -> str:
    return STATUS_MAP.get(result or "", "unknown")


def verify_email(email: str, timeout: int = 10) -> Dict[str, Any]:
    if not settings.MILLIONVERIFIER_API_KEY:
        EMAIL_VERIFY_TOTAL.labels(result="not_configured").inc()
        raise EmailVerificationError("API key not configured")

    params = {"api": settings.MILLIONVERIFIER_API_KEY, "email": email, "timeout": timeout}
    try:
        resp = requests.get(MILLIONVERIFIER_BASE, params=params, timeout=timeout + 5)
    except requests.RequestException as e:
        EMAIL_VERIFY_TOTAL.labels(result="network_error").inc()
        logger.warning("MillionVerifier network error: %s", e)
        raise EmailVerificationError(f"Network error: {e}") from e

    if resp.status_code != 200:
        EMAIL_VERIFY_TOTAL.labels(result="http_error").inc()
        raise EmailVerificationError(f"MillionVerifier API error: {resp.status_code}")

    data = resp.json()
    if data.get("error"):
        EMAIL_VERIFY_TOTAL.labels(result="provider_error").inc()
        raise EmailVerificationError(f"MillionVerifier error: {data['error']}")

    EMAIL_VERIFY_TOTAL.labels(result=data.get("result") or "unknown").inc()
    return data


def verify_emails(emails: List[str]) -> List[Dict[str, Any]]:
    """Sequential verification with a short pause; failures become error results."""
    results = []
    emails = [e.strip() for e in emails if e and e.strip()]
    for i, email in enumerate(emails):
        try:
            results.append(verify_email(email))
        except EmailVerificationError as e:
            results.append({"email": email, "quality": "bad", "result": "error", "error": str(e)})
        if i < len(emails) - 1:
            time.sleep(EMAIL_BATCH_DELAY_SECONDS)
    return results


def get_credits() -> Dict[str, Any]:
    try:
        return {"credits": verify_email("test@example.com", timeout=5).get("credits", 0)}
    except EmailVerificationError as e:
        return {"credits": 0, "error": str(e)}


def flatten_verification(email: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Map a provider payload onto EmailResult column names."""
    return {
        "email": email,
        "quality": data.get("quality"),
        "result": data.get("result"),
        "subresult": data.get("subresult"),
        "result_code": data.get("resultcode"),
        "is_free": bool(data.get("free")),
        "is_role": bool(data.get("role")),
        "did_you_mean": data.get("didyoumean") or None,
        "verdict": map_status(data.get("result")),
    }
