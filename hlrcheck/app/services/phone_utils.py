# hlrcheck/app/services/phone_utils.py
"""
Phone number normalisation and pre-flight validation.

Numbers that fail here are never sent to the HLR provider, which is where
the "estimated savings" figure comes from.
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Dict, Any

from hlrcheck.app.config import settings

_NON_PHONE_CHARS = re.compile(r"[^\d+]")
_NON_DIGITS = re.compile(r"\D")
_LETTERS = re.compile(r"[a-zA-Zа-яА-ЯёЁ]")
_ALL_ZEROS = re.compile(r"^\+?0+$")
_REPEATED = re.compile(r"^\+?(\d)\1{6,}$")

INVALID_REASONS: Dict[str, str] = {
    "empty": "Empty value",
    "too_short": "Too short (less than 7 digits)",
    "too_long": "Too long (more than 15 digits)",
    "contains_letters": "Contains letters",
    "all_zeros": "All zeros",
    "repeated_digits": "Repeated digits",
}


@dataclass
class NormalizedNumber:
    original: str
    normalized: str
    is_valid: bool
    invalid_reason: Optional[str] = None


@dataclass
class BatchAnalysis:
    valid: List[NormalizedNumber] = field(default_factory=list)
    invalid: List[NormalizedNumber] = field(default_factory=list)
    duplicates: List[str] = field(default_factory=list)
    total_input: int = 0
    estimated_savings: float = 0.0

    @property
    def unique_valid(self) -> int:
        return len(self.valid)

    @property
    def invalid_count(self) -> int:
        return len(self.invalid)

    @property
    def duplicate_count(self) -> int:
        return len(self.duplicates)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": [n.normalized for n in self.valid],
            "invalid": [
                {"original": n.original, "reason": n.invalid_reason, "reason_text": invalid_reason_text(n.invalid_reason)}
                for n in self.invalid
            ],
            "duplicates": self.duplicates,
            "total_input": self.total_input,
            "unique_valid": self.unique_valid,
            "invalid_count": self.invalid_count,
            "duplicate_count": self.duplicate_count,
            "estimated_savings": self.estimated_savings,
            "currency": settings.COST_CURRENCY,
        }


# ---------------------------------------------------------
# Cost helper
# ---------------------------------------------------------
def _cost(count: int) -> float:
    per = Decimal(str(settings.COST_PER_LOOKUP))
    return float((per * Decimal(count)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


# ---------------------------------------------------------
# Normalisation
# ---------------------------------------------------------
def normalize_phone_number(phone: str) -> NormalizedNumber:
    """
    Normalise to E.164-ish form and validate.

    8XXXXXXXXXX  -> +7XXXXXXXXXX
    00XX...      -> +XX...
    XXXXXXXXXX+  -> +XXXXXXXXXX (10+ digits, country code assumed)
    """
    original = (phone or "").strip()
    if not original:
        return NormalizedNumber(original, "", False, "empty")

    cleaned = _NON_PHONE_CHARS.sub("", original)

    if cleaned.startswith("8") and len(cleaned) == 11:
        cleaned = "+7" + cleaned[1:]
    elif cleaned.startswith("00"):
        cleaned = "+" + cleaned[2:]
    elif not cleaned.startswith("+") and len(cleaned) >= 10:
        cleaned = "+" + cleaned

    digits = _NON_DIGITS.sub("", cleaned)

    if len(digits) < 7:
        return NormalizedNumber(original, cleaned, False, "too_short")
    if len(digits) > 15:
        return NormalizedNumber(original, cleaned, False, "too_long")
    if _LETTERS.search(original):
        return NormalizedNumber(original, cleaned, False, "contains_letters")
    if _ALL_ZEROS.match(cleaned):
        return NormalizedNumber(original, cleaned, False, "all_zeros")
    if _REPEATED.match(cleaned):
        return NormalizedNumber(original, cleaned, False, "repeated_digits")

    return NormalizedNumber(original, cleaned, True)


def invalid_reason_text(reason: Optional[str]) -> str:
    if not reason:
        return ""
    return INVALID_REASONS.get(reason, reason)


# ---------------------------------------------------------
# Batch analysis
# ---------------------------------------------------------
def analyze_batch(phone_numbers: List[str]) -> BatchAnalysis:
    """Split inputs into valid (first occurrence), invalid and duplicate entries."""
    analysis = BatchAnalysis(total_input=len(phone_numbers))
    seen = set()

    for phone in phone_numbers:
        n = normalize_phone_number(phone)
        if not n.is_valid:
            analysis.invalid.append(n)
            continue
        if n.normalized in seen:
            analysis.duplicates.append(n.original)
            continue
        seen.add(n.normalized)
        analysis.valid.append(n)

    analysis.estimated_savings = _cost(analysis.invalid_count + analysis.duplicate_count)
    return analysis


def analyze_numbers(phone_numbers: List[str]) -> Dict[str, Any]:
    """
    Duplicate tool. Counts occurrences by normalised value; invalid
    entries are compared by their trimmed text.
    """
    keys = []
    for phone in phone_numbers:
        if not (phone or "").strip():
            continue
        n = normalize_phone_number(phone)
        keys.append(n.normalized if n.is_valid else n.original)

    counts = Counter(keys)
    unique_numbers = list(counts.keys())
    duplicates = [{"number": k, "count": c} for k, c in counts.items() if c > 1]

    return {
        "total_input": len(keys),
        "unique_count": len(unique_numbers),
        "duplicate_count": len(keys) - len(unique_numbers),
        "duplicates": duplicates,
        "unique_numbers": unique_numbers,
        "estimated_cost": _cost(len(unique_numbers)),
        "currency": settings.COST_CURRENCY,
    }


def get_cost_estimate(count: int) -> Dict[str, Any]:
    return {
        "count": count,
        "cost_per_lookup": settings.COST_PER_LOOKUP,
        "total_cost": _cost(count),
        "currency": settings.COST_CURRENCY,
    }
