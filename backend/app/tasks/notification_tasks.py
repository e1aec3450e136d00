from __future__ import annotations

import time

from celery import shared_task

from app.services.errors import ServiceError
from app.services.notifications import send_notification
from app.tasks._logging import retry_countdown, task_log

# Misconfiguration will not fix itself between retries.
_PERMANENT_CODES = ("SMS_NOT_CONFIGURED", "EMAIL_NOT_CONFIGURED", "INVALID_NOTIFICATION_TYPE", "MISSING_FIELDS")


@shared_task(bind=True, name="app.tasks.notification_tasks.send_notification", max_retries=5)
def send_notification_task(self, *, ntype: str, to: str, message: str, subject: str | None = None):
    started = time.perf_counter()
    try:
        result = send_notification(ntype, to, message, subject)
    except ServiceError as e:
        if e.code in _PERMANENT_CODES or int(self.request.retries or 0) >= int(self.max_retries or 0):
            task_log("send_notification", status="failed", started_at=started, channel=ntype, code=e.code)
            return {"ok": False, "error": e.code}
        countdown = retry_countdown(int(self.request.retries or 0))
        task_log("send_notification", status="retrying", started_at=started, channel=ntype, code=e.code, countdown=countdown)
        raise self.retry(exc=e, countdown=countdown)
    task_log("send_notification", status="ok", started_at=started, channel=ntype)
    return {"ok": True, **result}
