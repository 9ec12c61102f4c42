# hlrcheck/app/services/lookup_service.py
"""
Per-item verification path shared by single checks and the batch runner.

    normalise -> cache (redis/memory) -> recent DB rows -> provider
"""

import logging
from typing import Any, Dict, Optional, Tuple

from hlrcheck.app.models import HlrBatch, HlrResult, EmailBatch, EmailResult, User
from hlrcheck.app.models.base import utcnow
from hlrcheck.app.services import hlr_client, email_client
from hlrcheck.app.services.audit import log_action
from hlrcheck.app.services.cache import get_cached, set_cached
from hlrcheck.app.services.csv_parser import normalize_email
from hlrcheck.app.services.health_score import calculate_health_score
from hlrcheck.app.services.phone_utils import normalize_phone_number, invalid_reason_text
from hlrcheck.app.services.user_limits import ensure_within_limits, increment_user_checks

logger = logging.getLogger(__name__)

_NON_FIELD_COLUMNS = {"id", "batch_id", "created_at", "updated_at", "from_cache"}


class InvalidInputError(ValueError):
    def __init__(self, value: str, reason: str):
        super().__init__(reason)
        self.value = value
        self.reason = reason


# ---------------------------------------------------------
# Kinds
# ---------------------------------------------------------
class LookupKind:
    name: str
    batch_model: Any
    result_model: Any
    input_column: str
    provider_error: type
    counters = ("valid", "invalid")

    def normalize(self, raw: str) -> Optional[str]:
        raise NotImplementedError

    def invalid_reason(self, raw: str) -> str:
        raise NotImplementedError

    def fetch(self, value: str) -> Dict[str, Any]:
        raise NotImplementedError

    def outcome(self, fields: Dict[str, Any]) -> str:
        raise NotImplementedError

    def error_fields(self, value: str, message: str) -> Dict[str, Any]:
        return {self.input_column: value, "status": "error", "error_message": message[:1000]}

    def fields_from_row(self, row) -> Dict[str, Any]:
        return {
            c.key: getattr(row, c.key)
            for c in self.result_model.__table__.columns
            if c.key not in _NON_FIELD_COLUMNS
        }

    def counter_deltas(self, outcome: str) -> Dict[str, int]:
        deltas = {"processed": 1}
        if outcome in self.counters:
            deltas[outcome] = 1
        return deltas


class HlrKind(LookupKind):
    name = "hlr"
    batch_model = HlrBatch
    result_model = HlrResult
    input_column = "phone_number"
    provider_error = hlr_client.HlrLookupError

    def normalize(self, raw: str) -> Optional[str]:
        n = normalize_phone_number(raw)
        return n.normalized if n.is_valid else None

    def invalid_reason(self, raw: str) -> str:
        return invalid_reason_text(normalize_phone_number(raw).invalid_reason)

    def fetch(self, value: str) -> Dict[str, Any]:
        data = hlr_client.lookup(value)
        fields = hlr_client.flatten_lookup(value, data)
        fields["health_score"] = calculate_health_score(fields)
        fields["status"] = "success"
        fields["raw_response"] = data
        return fields

    def outcome(self, fields: Dict[str, Any]) -> str:
        if fields.get("status") == "success" and fields.get("valid_number") == "valid":
            return "valid"
        return "invalid"


class EmailKind(LookupKind):
    name = "email"
    batch_model = EmailBatch
    result_model = EmailResult
    input_column = "email"
    provider_error = email_client.EmailVerificationError
    counters = ("valid", "invalid", "risky", "unknown")

    def normalize(self, raw: str) -> Optional[str]:
        return normalize_email(raw)

    def invalid_reason(self, raw: str) -> str:
        return "Invalid email format"

    def fetch(self, value: str) -> Dict[str, Any]:
        data = email_client.verify_email(value)
        fields = email_client.flatten_verification(value, data)
        fields["status"] = "success"
        fields["raw_response"] = data
        return fields

    def error_fields(self, value: str, message: str) -> Dict[str, Any]:
        fields = super().error_fields(value, message)
        fields["verdict"] = "invalid"
        return fields

    def outcome(self, fields: Dict[str, Any]) -> str:
        if fields.get("status") != "success":
            return "invalid"
        return fields.get("verdict") or "unknown"


KINDS: Dict[str, LookupKind] = {"hlr": HlrKind(), "email": EmailKind()}


def get_kind(name: str) -> LookupKind:
    try:
        return KINDS[name]
    except KeyError:
        raise ValueError(f"unknown lookup kind: {name}")


# ---------------------------------------------------------
# Resolution
# ---------------------------------------------------------
def resolve(kind: LookupKind, value: str, recent: Optional[Dict[str, Any]] = None) -> Tuple[Dict[str, Any], bool]:
    """
    Returns (fields, from_cache). Provider failures become error fields
    and are never cached.
    """
    cached = get_cached(kind.name, value)
    if cached is not None:
        return dict(cached), True

    if recent and value in recent:
        fields = kind.fields_from_row(recent[value])
        set_cached(kind.name, value, fields)
        return fields, True

    try:
        fields = kind.fetch(value)
    except kind.provider_error as e:
        logger.warning("%s lookup failed for item: %s", kind.name, e)
        return kind.error_fields(value, str(e)), False

    set_cached(kind.name, value, fields)
    return fields, False


# ---------------------------------------------------------
# Single checks
# ---------------------------------------------------------
def check_single(db, user: User, kind_name: str, raw: str, request=None):
    """
    One lookup, stored as a completed one-item batch so it shows in history.
    Returns (result_row, from_cache). Provider failure raises kind.provider_error.
    """
    kind = get_kind(kind_name)
    value = kind.normalize(raw)
    if value is None:
        raise InvalidInputError(raw, kind.invalid_reason(raw))

    ensure_within_limits(user, 1)

    fields, from_cache = resolve(kind, value)
    if fields.get("status") == "error":
        raise kind.provider_error(fields.get("error_message") or "Lookup failed")

    outcome = kind.outcome(fields)
    deltas = kind.counter_deltas(outcome)
    batch = kind.batch_model(
        user_id=user.id,
        name=f"Single check: {value}",
        status="completed",
        input_items=[value],
        total=1,
        completed_at=utcnow(),
        **deltas,
    )
    db.add(batch)
    db.flush()

    row = kind.result_model(batch_id=batch.id, from_cache=from_cache, **fields)
    db.add(row)
    db.commit()
    db.refresh(row)

    increment_user_checks(db, user, 1)
    log_action(db, user.id, f"{kind.name}_single_check", f"Checked {value}", request)
    return row, from_cache
