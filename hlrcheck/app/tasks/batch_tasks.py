# hlrcheck/app/tasks/batch_tasks.py
"""
Celery tasks that run stored HLR / email batches.

A batch is idempotent to re-run: items that already have a result row
are skipped, so acks_late redelivery and retries never double-check.
"""

from __future__ import annotations

import logging
from typing import Optional, List, Dict, Any

from hlrcheck.app.celery_app import celery_app
from hlrcheck.app.services.batch_processor import run_batch

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    name="batches.run_hlr",
    acks_late=True,
    autoretry_for=(ConnectionError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def run_hlr_batch_task(self, batch_id: int, items: Optional[List[str]] = None) -> Optional[Dict[str, Any]]:
    logger.info("run_hlr_batch_task start batch=%s items=%s", batch_id, None if items is None else len(items))
    return run_batch("hlr", batch_id, items)


@celery_app.task(
    bind=True,
    name="batches.run_email",
    acks_late=True,
    autoretry_for=(ConnectionError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def run_email_batch_task(self, batch_id: int, items: Optional[List[str]] = None) -> Optional[Dict[str, Any]]:
    logger.info("run_email_batch_task start batch=%s items=%s", batch_id, None if items is None else len(items))
    return run_batch("email", batch_id, items)


_TASKS = {"hlr": run_hlr_batch_task, "email": run_email_batch_task}


def enqueue_batch(kind: str, batch_id: int, items: Optional[List[str]] = None) -> bool:
    """
    Hand a batch to the worker queue. On broker failure the batch stays
    pending and can be resumed later; returns False.
    """
    try:
        _TASKS[kind].delay(batch_id, items)
        return True
    except Exception as e:
        logger.error("failed to enqueue %s batch %s: %s", kind, batch_id, e)
        return False
