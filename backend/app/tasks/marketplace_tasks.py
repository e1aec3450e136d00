"""Periodic marketplace jobs driven by celery beat."""
from __future__ import annotations

import time

from celery import shared_task

from app.extensions import db
from app.services import fraud, indexing, payouts, promotions, tracking_reminders
from app.tasks._logging import task_log


def _run(name: str, fn):
    started = time.perf_counter()
    try:
        result = fn()
    except Exception:
        db.session.rollback()
        task_log(name, status="error", started_at=started)
        raise
    task_log(name, status="ok", started_at=started, result=result)
    return result


@shared_task(name="app.tasks.marketplace_tasks.run_auto_payouts")
def run_auto_payouts(limit: int = 50):
    return _run("run_auto_payouts", lambda: payouts.process_pending_payouts(limit))


@shared_task(name="app.tasks.marketplace_tasks.check_payout_statuses")
def check_payout_statuses(limit: int = 100):
    return _run("check_payout_statuses", lambda: payouts.check_payout_statuses(limit))


@shared_task(name="app.tasks.marketplace_tasks.send_tracking_reminders")
def send_tracking_reminders():
    return _run("send_tracking_reminders", tracking_reminders.send_tracking_reminders)


@shared_task(name="app.tasks.marketplace_tasks.process_indexing_queue")
def process_indexing_queue(limit: int = 50):
    return _run("process_indexing_queue", lambda: indexing.process_indexing_queue(limit))


@shared_task(name="app.tasks.marketplace_tasks.scan_platform_for_fraud")
def scan_platform_for_fraud():
    return _run("scan_platform_for_fraud", fraud.scan_platform)


@shared_task(name="app.tasks.marketplace_tasks.expire_promotions")
def expire_promotions():
    return _run("expire_promotions", lambda: {"expired": promotions.expire_promotions()})
