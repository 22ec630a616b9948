"""Attempt lifecycle: accepting quests and submitting results."""
from __future__ import annotations

import logging
from typing import Any, Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from quests.models import ActivityLog, Party, Quest, QuestAttempt

from . import activity
from .settlement import round_half_up

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Client-side rejection; nothing was written."""

    code = "ledger_error"


class QuestNotAcceptingAttempts(LedgerError):
    code = "quest_not_accepting"


class QuestFull(LedgerError):
    code = "quest_full"


class AlreadyAttempted(LedgerError):
    code = "already_attempted"


class NoActiveAttempt(LedgerError):
    code = "no_active_attempt"


@transaction.atomic
def accept(quest: Quest, party: Party) -> QuestAttempt:
    locked = Quest.objects.select_for_update().get(pk=quest.pk)
    if not locked.is_accepting():
        raise QuestNotAcceptingAttempts(f"Quest {locked.pk} is {locked.status}")
    if QuestAttempt.objects.filter(quest=locked, party=party).exists():
        raise AlreadyAttempted(f"Party {party.pk} already attempted quest {locked.pk}")
    if QuestAttempt.objects.filter(quest=locked).count() >= locked.max_attempts:
        raise QuestFull(f"Quest {locked.pk} reached {locked.max_attempts} attempts")

    try:
        with transaction.atomic():
            attempt = QuestAttempt.objects.create(quest=locked, party=party)
    except IntegrityError as exc:
        raise AlreadyAttempted(f"Party {party.pk} already attempted quest {locked.pk}") from exc

    if locked.status == Quest.STATUS_OPEN:
        Quest.objects.filter(pk=locked.pk, status=Quest.STATUS_OPEN).update(
            status=Quest.STATUS_IN_PROGRESS, updated_at=timezone.now()
        )
        locked.status = Quest.STATUS_IN_PROGRESS
    quest.status = locked.status
    party.touch_status(Party.STATUS_ACTIVE)

    activity.record(
        ActivityLog.EVENT_QUEST_ACCEPTED,
        party=party,
        quest=locked,
        party_name=party.name,
        quest_title=locked.title,
    )
    logger.info("Party %s accepted quest %s (attempt %s)", party.pk, locked.pk, attempt.pk)
    return attempt


def submit(
    attempt: QuestAttempt,
    result_text: Optional[str],
    *,
    result_data: Optional[dict[str, Any]] = None,
    token_count: Optional[int] = None,
) -> QuestAttempt:
    """Mark an in-progress attempt as submitted and hand it to settlement.

    Settlement is enqueued once the transaction commits; the caller gets the
    submitted attempt back without waiting for a score.
    """
    now = timezone.now()
    elapsed = max(0, round_half_up((now - attempt.started_at).total_seconds()))
    with transaction.atomic():
        updated = QuestAttempt.objects.filter(
            pk=attempt.pk, status=QuestAttempt.STATUS_IN_PROGRESS
        ).update(
            status=QuestAttempt.STATUS_SUBMITTED,
            result_text=result_text or None,
            result_data=result_data or None,
            token_count=token_count or None,
            time_taken_seconds=elapsed,
            submitted_at=now,
        )
        if not updated:
            raise NoActiveAttempt(f"Attempt {attempt.pk} is not in progress")
        attempt.refresh_from_db()

        party = attempt.party
        party.touch_status(Party.STATUS_IDLE)
        activity.record(
            ActivityLog.EVENT_QUEST_SUBMITTED,
            party=party,
            quest=attempt.quest,
            party_name=party.name,
            quest_title=attempt.quest.title,
            time_taken_seconds=elapsed,
        )
        attempt_id = attempt.pk
        transaction.on_commit(lambda: enqueue_settlement(attempt_id))

    logger.info("Attempt %s submitted after %ss", attempt.pk, elapsed)
    return attempt


def submit_for(
    quest_id: int,
    party: Party,
    result_text: Optional[str],
    *,
    result_data: Optional[dict[str, Any]] = None,
    token_count: Optional[int] = None,
) -> QuestAttempt:
    attempt = (
        QuestAttempt.objects.select_related("quest", "party")
        .filter(quest_id=quest_id, party=party, status=QuestAttempt.STATUS_IN_PROGRESS)
        .first()
    )
    if attempt is None:
        raise NoActiveAttempt(f"No active attempt for party {party.pk} on quest {quest_id}")
    return submit(attempt, result_text, result_data=result_data, token_count=token_count)


def enqueue_settlement(attempt_id: int) -> None:
    from quests import tasks

    try:
        tasks.settle_attempt.delay(attempt_id)
    except Exception:  # noqa: BLE001 - the sweep picks up attempts left in "submitted"
        logger.exception("Failed to enqueue settlement for attempt %s", attempt_id)
