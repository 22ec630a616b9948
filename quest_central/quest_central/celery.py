from __future__ import annotations

import os

from celery import Celery
from celery.schedules import schedule

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "quest_central.settings")

app = Celery("quest_central")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


def _build_beat_schedule() -> dict[str, dict[str, object]]:
    """Periodic sweep that re-enqueues settlement for stranded attempts."""

    from django.conf import settings

    interval = float(getattr(settings, "SETTLEMENT_SWEEP_INTERVAL_SECONDS", 120))
    interval = max(10.0, interval)
    routes = getattr(settings, "CELERY_TASK_ROUTES", {}) or {}
    queue_name = routes.get("quests.tasks.sweep_unscored_attempts", {}).get("queue", "settlement")
    return {
        "settlement.sweep": {
            "task": "quests.tasks.sweep_unscored_attempts",
            "schedule": schedule(interval),
            "options": {"queue": queue_name},
        }
    }


app.conf.beat_schedule = _build_beat_schedule()

__all__ = ("app",)
