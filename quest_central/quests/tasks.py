from __future__ import annotations

from typing import Any

from celery import shared_task
from celery.utils.log import get_task_logger
from django.db import DatabaseError

from quests.services import configuration as config_service
from quests.services import settlement
from quests.services.settlement import AggregateConflict

logger = get_task_logger(__name__)

SWEEP_BATCH_SIZE = 50


@shared_task(
    bind=True,
    name="quests.tasks.settle_attempt",
    autoretry_for=(AggregateConflict, DatabaseError),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def settle_attempt(self, attempt_id: int) -> dict[str, Any]:
    """Score one submitted attempt and close its quest when possible."""
    result = settlement.settle_attempt(attempt_id)
    if result is None:
        return {"status": "noop", "attempt_id": attempt_id}
    payload: dict[str, Any] = {
        "status": "scored" if result.scored else "skipped",
        "attempt_id": attempt_id,
        "winner_id": result.winner_id,
    }
    if result.verdict is not None:
        payload["score"] = result.verdict.score
        payload["scoring"] = result.verdict.source
    return payload


@shared_task(bind=True, name="quests.tasks.sweep_unscored_attempts")
def sweep_unscored_attempts(self, limit: int | None = None) -> dict[str, Any]:
    """Re-enqueue attempts stranded in ``submitted`` and close ready quests."""
    limit = int(limit or SWEEP_BATCH_SIZE)
    stale_seconds = config_service.setting_int("SETTLEMENT_STALE_SECONDS", 300)
    attempt_ids = settlement.stale_attempt_ids(older_than_seconds=stale_seconds, limit=limit)
    for attempt_id in attempt_ids:
        settle_attempt.delay(attempt_id)
    if attempt_ids:
        logger.info("Re-enqueued settlement for %s stranded attempts", len(attempt_ids))
    closed = settlement.close_ready_quests()
    if closed:
        logger.info("Closed %s quests during sweep: %s", len(closed), closed)
    return {"requeued": attempt_ids, "closed_quests": closed}
