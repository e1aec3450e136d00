from __future__ import annotations

import json
import os
from datetime import datetime

from celery import Celery
from celery.schedules import crontab
from celery.signals import task_failure, task_retry


_SIGNALS_BOUND = False

TASK_MODULES = ("app.tasks.marketplace_tasks", "app.tasks.notification_tasks")


def _broker_url() -> str:
    return (
        (os.getenv("CELERY_BROKER_URL") or "").strip()
        or (os.getenv("REDIS_URL") or "").strip()
        or "redis://localhost:6379/0"
    )


def _result_backend(broker_url: str) -> str:
    return (
        (os.getenv("CELERY_RESULT_BACKEND") or "").strip()
        or (os.getenv("REDIS_URL") or "").strip()
        or broker_url
    )


def _interval_seconds(name: str, default: int, *, minimum: int = 30) -> float:
    raw = (os.getenv(name) or str(default)).strip()
    try:
        value = int(raw)
    except ValueError:
        value = default
    return float(max(minimum, value))


def _beat_schedule() -> dict:
    return {
        "auto-payouts": {
            "task": "app.tasks.marketplace_tasks.run_auto_payouts",
            "schedule": _interval_seconds("PAYOUT_INTERVAL_SECONDS", 900),
        },
        "payout-status-check": {
            "task": "app.tasks.marketplace_tasks.check_payout_statuses",
            "schedule": _interval_seconds("PAYOUT_STATUS_INTERVAL_SECONDS", 3600),
        },
        "tracking-reminders": {
            "task": "app.tasks.marketplace_tasks.send_tracking_reminders",
            "schedule": crontab(minute=0, hour=9),
        },
        "indexing-queue": {
            "task": "app.tasks.marketplace_tasks.process_indexing_queue",
            "schedule": _interval_seconds("INDEXING_INTERVAL_SECONDS", 600),
        },
        "fraud-scan": {
            "task": "app.tasks.marketplace_tasks.scan_platform_for_fraud",
            "schedule": crontab(minute=30),
        },
        "expire-promotions": {
            "task": "app.tasks.marketplace_tasks.expire_promotions",
            "schedule": _interval_seconds("PROMOTION_EXPIRY_INTERVAL_SECONDS", 900),
        },
    }


def _bind_task_observers(flask_app) -> None:
    global _SIGNALS_BOUND
    if _SIGNALS_BOUND:
        return

    @task_failure.connect(weak=False)
    def _on_task_failure(sender=None, task_id=None, exception=None, args=None, kwargs=None, einfo=None, **extra):
        payload = {
            "event": "celery_task_failure",
            "task_name": getattr(sender, "name", "") if sender is not None else "",
            "task_id": str(task_id or ""),
            "exception": str(exception or ""),
            "timestamp": datetime.utcnow().isoformat(),
        }
        if einfo is not None:
            payload["einfo"] = str(einfo)
        flask_app.logger.error(json.dumps(payload))

    @task_retry.connect(weak=False)
    def _on_task_retry(request=None, reason=None, einfo=None, **extra):
        payload = {
            "event": "celery_task_retry",
            "task_name": str(getattr(request, "task", "") or ""),
            "task_id": str(getattr(request, "id", "") or ""),
            "reason": str(reason or ""),
            "retry_count": int(getattr(request, "retries", 0) or 0),
            "timestamp": datetime.utcnow().isoformat(),
        }
        flask_app.logger.warning(json.dumps(payload))

    _SIGNALS_BOUND = True


def create_celery_app(flask_app) -> Celery:
    broker = _broker_url()
    backend = _result_backend(broker)
    celery = Celery(flask_app.import_name, broker=broker, backend=backend, include=TASK_MODULES)
    celery.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        task_track_started=True,
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        broker_connection_retry_on_startup=True,
        timezone="UTC",
        enable_utc=True,
        beat_schedule=_beat_schedule(),
    )

    class FlaskContextTask(celery.Task):
        def __call__(self, *args, **kwargs):
            with flask_app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = FlaskContextTask
    _bind_task_observers(flask_app)
    return celery
