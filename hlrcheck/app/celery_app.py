# hlrcheck/app/celery_app.py
"""
Celery application factory + shared singleton instance
with Prometheus worker instrumentation.
"""

from __future__ import annotations

import time
import logging
from celery import Celery, Task
from kombu import Exchange, Queue
from prometheus_client import Counter, Histogram

from hlrcheck.app.config import settings

logger = logging.getLogger(__name__)

BROKER_URL = settings.CELERY_BROKER_URL or settings.REDIS_URL or "memory://"


# ---------------------------------------------------------
# PROMETHEUS METRICS
# ---------------------------------------------------------
WORKER_TASK_TOTAL = Counter(
    "worker_tasks_total",
    "Worker tasks executed",
    ["task", "status"]
)

WORKER_TASK_LATENCY = Histogram(
    "worker_task_latency_seconds",
    "Latency of worker tasks",
    ["task"]
)


class InstrumentedTask(Task):
    """Counts started/success/failed runs and records latency per task."""

    def __call__(self, *args, **kwargs):
        task_name = self.name or "unknown"

        WORKER_TASK_TOTAL.labels(task=task_name, status="started").inc()
        start = time.time()

        try:
            result = self.run(*args, **kwargs)
            WORKER_TASK_TOTAL.labels(task=task_name, status="success").inc()
            return result

        except Exception:
            WORKER_TASK_TOTAL.labels(task=task_name, status="failed").inc()
            raise

        finally:
            WORKER_TASK_LATENCY.labels(task=task_name).observe(time.time() - start)


def make_celery_app(app_name: str = "hlrcheck") -> Celery:

    celery = Celery(
        app_name,
        broker=BROKER_URL,
        include=["hlrcheck.app.tasks.batch_tasks"],
        task_cls=InstrumentedTask,
    )

    celery.conf.update(
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        task_reject_on_worker_lost=True,
        worker_max_tasks_per_child=200,

        task_serializer="json",
        accept_content=["json"],
        task_ignore_result=True,

        timezone="UTC",
        enable_utc=True,

        task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
        task_eager_propagates=False,

        task_default_queue="default",
        task_default_exchange="default",
        task_default_routing_key="default",
    )

    celery.conf.task_queues = (
        [
            Queue("default", Exchange("default"), routing_key="default"),
            Queue("batches", Exchange("batches"), routing_key="batches"),
        ]
    )

    celery.conf.task_routes = {
        "batches.run_hlr": {"queue": "batches", "routing_key": "batches"},
        "batches.run_email": {"queue": "batches", "routing_key": "batches"},
    }

    return celery


celery_app = make_celery_app()
