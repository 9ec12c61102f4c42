# hlrcheck/app/services/batch_processor.py
"""
Batch runner and resume logic (HLR and email).

- one result row per item, written as soon as the item is resolved
- batch counters bumped in the same transaction with an atomic
  UPDATE ... SET processed = processed + 1
- cooperative pause: status is re-read before every item
- resume = stored/supplied inputs minus inputs already stored as rows
"""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from prometheus_client import Counter
from sqlalchemy.exc import IntegrityError

from hlrcheck.app.config import settings
from hlrcheck.app.db import SessionLocal, safe_commit, safe_rollback
from hlrcheck.app.models import User
from hlrcheck.app.models.base import utcnow
from hlrcheck.app.repositories.batch_repository import batch_repository_for
from hlrcheck.app.services.audit import log_action
from hlrcheck.app.services.cache import find_recent_results
from hlrcheck.app.services.lookup_service import get_kind, resolve, LookupKind
from hlrcheck.app.services.phone_utils import analyze_batch
from hlrcheck.app.services.user_limits import ensure_within_limits, increment_user_checks
from hlrcheck.app.services.ws_broker import ws_broker, batch_channel

logger = logging.getLogger(__name__)

BATCH_ITEMS_TOTAL = Counter(
    "batch_items_processed_total",
    "Batch items processed",
    ["kind", "outcome"]
)


class BatchNotFound(Exception):
    pass


class EmptyBatchError(ValueError):
    pass


class BatchPausedError(ValueError):
    pass


# ---------------------------------------------------------
# Active batch registry (health endpoint / shutdown log)
# ---------------------------------------------------------
_active_lock = threading.Lock()
_active_batches: Dict[Tuple[str, int], float] = {}


def _mark_active(kind: str, batch_id: int) -> None:
    with _active_lock:
        _active_batches[(kind, batch_id)] = time.time()


def _mark_inactive(kind: str, batch_id: int) -> None:
    with _active_lock:
        _active_batches.pop((kind, batch_id), None)


def active_batches() -> List[Dict[str, Any]]:
    with _active_lock:
        return [
            {"kind": kind, "batch_id": batch_id, "running_seconds": int(time.time() - started)}
            for (kind, batch_id), started in _active_batches.items()
        ]


# ---------------------------------------------------------
# Input preparation
# ---------------------------------------------------------
def prepare_inputs(kind: LookupKind, raw_inputs: Iterable[str]) -> Tuple[List[str], Dict[str, Any]]:
    """
    Normalise and dedupe. Returns (unique_valid_values, report).
    """
    raw_inputs = [r for r in raw_inputs if r is not None]
    if kind.name == "hlr":
        analysis = analyze_batch(raw_inputs)
        return [n.normalized for n in analysis.valid], analysis.to_dict()

    values: List[str] = []
    invalid: List[Dict[str, str]] = []
    duplicates: List[str] = []
    seen = set()
    for raw in raw_inputs:
        value = kind.normalize(raw)
        if value is None:
            if raw.strip():
                invalid.append({"original": raw, "reason": "invalid_format", "reason_text": kind.invalid_reason(raw)})
            continue
        if value in seen:
            duplicates.append(raw)
            continue
        seen.add(value)
        values.append(value)

    return values, {
        "valid": values,
        "invalid": invalid,
        "duplicates": duplicates,
        "total_input": len(raw_inputs),
        "unique_valid": len(values),
        "invalid_count": len(invalid),
        "duplicate_count": len(duplicates),
    }


def _normalize_all(kind: LookupKind, raw_inputs: Iterable[str]) -> List[str]:
    out = []
    for raw in raw_inputs:
        value = kind.normalize(raw) if raw is not None else None
        if value is not None:
            out.append(value)
    return list(dict.fromkeys(out))


# ---------------------------------------------------------
# Create
# ---------------------------------------------------------
def create_batch(db, user: User, kind_name: str, raw_inputs: List[str], name: Optional[str] = None, request=None):
    """
    Store a pending batch with its normalised input list.
    Returns (batch, report). Raises EmptyBatchError / LimitExceededError.
    """
    kind = get_kind(kind_name)
    values, report = prepare_inputs(kind, raw_inputs)
    if not values:
        raise EmptyBatchError("No valid entries to check")

    ensure_within_limits(user, len(values))

    repo = batch_repository_for(kind.name, db)
    batch = repo.create({
        "user_id": user.id,
        "name": (name or "").strip() or f"Batch {utcnow():%Y-%m-%d %H:%M}",
        "status": "pending",
        "input_items": values,
        "total": len(values),
    })

    increment_user_checks(db, user, len(values))
    log_action(
        db, user.id, "start_batch",
        f"{kind.name} batch #{batch.id}: {len(values)} items",
        request,
        meta={"kind": kind.name, "batch_id": batch.id, "total": len(values)},
    )
    return batch, report


# ---------------------------------------------------------
# Progress
# ---------------------------------------------------------
def progress_payload(batch, kind_name: str) -> Dict[str, Any]:
    total = batch.total or 0
    processed = batch.processed or 0
    return {
        "type": "batch_progress",
        "kind": kind_name,
        "batch_id": batch.id,
        "processed": processed,
        "total": total,
        "valid": batch.valid or 0,
        "invalid": batch.invalid or 0,
        "status": batch.status,
        "percentage": round(processed * 100 / total) if total else 0,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def _publish(db, repo, kind_name: str, batch_id: int) -> None:
    batch = repo.get(batch_id)
    if batch is None:
        return
    db.refresh(batch)
    ws_broker.publish_sync(batch_channel(kind_name, batch_id), progress_payload(batch, kind_name))


# ---------------------------------------------------------
# Runner
# ---------------------------------------------------------
def run_batch(kind_name: str, batch_id: int, items: Optional[List[str]] = None) -> Optional[Dict[str, Any]]:
    """
    Process every stored input (or the given subset) that has no result row yet.
    Intentionally synchronous (safe for Celery workers).
    """
    kind = get_kind(kind_name)
    db = SessionLocal()
    repo = batch_repository_for(kind.name, db)
    newly = 0
    _mark_active(kind.name, batch_id)

    try:
        batch = repo.get(batch_id)
        if batch is None:
            logger.error("%s batch not found: %s", kind.name, batch_id)
            return None

        if batch.status == "completed":
            logger.info("%s batch %s already completed, skipping", kind.name, batch_id)
            return {"batch_id": batch_id, "status": "completed", "newly_checked": 0}

        stored = list(batch.input_items or [])
        candidates = _normalize_all(kind, items) if items is not None else stored
        if stored:
            allowed = set(stored)
            candidates = [v for v in candidates if v in allowed]

        already = repo.checked_inputs(batch_id)
        remaining = [v for v in dict.fromkeys(candidates) if v not in already]

        if not repo.set_status_unless_paused(batch_id, "processing", error_message=None):
            logger.info("%s batch %s is paused, not starting", kind.name, batch_id)
            return {"batch_id": batch_id, "status": "paused", "newly_checked": 0}
        logger.info("%s batch %s: %d remaining, %d already checked", kind.name, batch_id, len(remaining), len(already))

        recent = find_recent_results(db, kind.result_model, kind.input_column, remaining)

        for i, value in enumerate(remaining, start=1):
            if repo.get_status(batch_id) == "paused":
                logger.info("%s batch %s paused after %d items", kind.name, batch_id, newly)
                _publish(db, repo, kind.name, batch_id)
                return {"batch_id": batch_id, "status": "paused", "newly_checked": newly}

            fields, from_cache = resolve(kind, value, recent)
            outcome = kind.outcome(fields)

            db.add(kind.result_model(batch_id=batch_id, from_cache=from_cache, **fields))
            repo.increment_counters(batch_id, **kind.counter_deltas(outcome))
            try:
                safe_commit(db)
            except IntegrityError:
                # (batch_id, input) is unique: a concurrent runner stored it first
                logger.info("%s batch %s: item already stored, skipping", kind.name, batch_id)
                continue

            newly += 1
            BATCH_ITEMS_TOTAL.labels(kind=kind.name, outcome=outcome).inc()

            if i % settings.PROGRESS_UPDATE_EVERY == 0:
                _publish(db, repo, kind.name, batch_id)

        done = repo.count_results(batch_id) >= (repo.get(batch_id).total or 0)
        if done:
            repo.set_status(batch_id, "completed", completed_at=utcnow())
            status = "completed"
        elif repo.set_status_unless_paused(batch_id, "pending"):
            # caller asked for a subset; the rest stays resumable
            status = "pending"
        else:
            status = "paused"
        _publish(db, repo, kind.name, batch_id)

        logger.info("%s batch %s finished run: %d new, status=%s", kind.name, batch_id, newly, status)
        return {"batch_id": batch_id, "status": status, "newly_checked": newly}

    except Exception as e:
        logger.exception("%s batch %s failed: %s", kind.name, batch_id, e)
        safe_rollback(db)
        repo.set_status(batch_id, "failed", error_message=str(e)[:1000])
        _publish(db, repo, kind.name, batch_id)
        raise

    finally:
        _mark_inactive(kind.name, batch_id)
        db.close()


# ---------------------------------------------------------
# Resume
# ---------------------------------------------------------
def get_owned_batch(db, user: User, kind_name: str, batch_id: int):
    """Batch or BatchNotFound. Non-admins only see their own batches."""
    batch = batch_repository_for(kind_name, db).get(batch_id)
    if batch is None or (user.role != "admin" and batch.user_id != user.id):
        raise BatchNotFound("Batch not found")
    return batch


def resume_batch(db, user: User, kind_name: str, batch_id: int, candidates: Optional[List[str]] = None, request=None) -> Dict[str, Any]:
    """
    Compute what is left to check. Does not run anything; the caller
    dispatches run_batch(kind, batch_id, items=result["items"]).
    """
    kind = get_kind(kind_name)
    repo = batch_repository_for(kind.name, db)
    batch = get_owned_batch(db, user, kind.name, batch_id)
    # only an admin lifts an admin pause
    if batch.status == "paused" and user.role != "admin":
        raise BatchPausedError("Batch was paused by an administrator")

    stored = list(batch.input_items or [])
    wanted = _normalize_all(kind, candidates) if candidates is not None else stored
    already = repo.checked_inputs(batch.id)
    remaining = [v for v in wanted if v not in already]

    if not remaining:
        if repo.count_results(batch.id) >= (batch.total or 0) and batch.status != "completed":
            repo.set_status(batch.id, "completed", completed_at=utcnow())
        return {
            "batch_id": batch.id,
            "resumed": False,
            "message": "All numbers already checked",
            "already_checked": len(already),
            "remaining": 0,
            "items": [],
        }

    # only inputs that were never part of the batch count against limits
    stored_set = set(stored)
    added = [v for v in remaining if v not in stored_set]
    if added:
        ensure_within_limits(user, len(added))
        batch.input_items = stored + added
        batch.total = len(batch.input_items)
        increment_user_checks(db, user, len(added))

    batch.status = "pending"
    db.add(batch)
    db.commit()

    log_action(
        db, user.id, "resume_batch",
        f"{kind.name} batch #{batch.id}: {len(remaining)} remaining, {len(already)} already checked",
        request,
        meta={"kind": kind.name, "batch_id": batch.id, "remaining": len(remaining)},
    )

    return {
        "batch_id": batch.id,
        "resumed": True,
        "message": f"Resuming {len(remaining)} unchecked items",
        "already_checked": len(already),
        "remaining": len(remaining),
        "items": remaining if candidates is not None else None,
    }


def get_incomplete_batches(db, kind_name: str, user_id: Optional[int] = None):
    return batch_repository_for(kind_name, db).list_incomplete(user_id)


# ---------------------------------------------------------
# Admin control
# ---------------------------------------------------------
def pause_batch(db, kind_name: str, batch_id: int):
    repo = batch_repository_for(kind_name, db)
    batch = repo.get(batch_id)
    if batch is None:
        raise BatchNotFound("Batch not found")
    if batch.status not in ("pending", "processing"):
        raise ValueError(f"Cannot pause a {batch.status} batch")
    repo.set_status(batch_id, "paused")
    db.refresh(batch)
    return batch


def unpause_batch(db, kind_name: str, batch_id: int):
    """Mark a paused batch pending again; the caller re-dispatches it."""
    repo = batch_repository_for(kind_name, db)
    batch = repo.get(batch_id)
    if batch is None:
        raise BatchNotFound("Batch not found")
    if batch.status != "paused":
        raise ValueError(f"Batch is {batch.status}, not paused")
    repo.set_status(batch_id, "pending")
    db.refresh(batch)
    return batch


def resume_and_run(db, user: User, kind_name: str, batch_id: int, candidates: Optional[List[str]] = None, request=None) -> Dict[str, Any]:
    """Resume and process the remainder in this process."""
    result = resume_batch(db, user, kind_name, batch_id, candidates, request)
    newly = 0
    if result["resumed"]:
        run = run_batch(kind_name, batch_id, result["items"]) or {}
        newly = run.get("newly_checked", 0)

    batch = batch_repository_for(kind_name, db).get(batch_id)
    db.refresh(batch)
    result.update({
        "newly_checked": newly,
        "total_processed": batch.processed or 0,
        "status": batch.status,
    })
    return result
