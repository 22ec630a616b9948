"""Scoring and reward settlement.

Per submitted attempt: ask the oracle for a verdict, persist it, fold it into
the party aggregates and, once the quest has no pending attempts, pick the
winner and close the quest.

Party aggregates are written with a compare-and-swap on ``Party.version`` so
two workers scoring for the same party never overwrite each other.  Quest
closure locks the quest row and flips its status with a conditional update,
which keeps winner selection idempotent.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Iterable, Optional, Sequence

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from quests.models import ActivityLog, Party, Quest, QuestAttempt

from . import activity, oracle
from . import configuration as config_service
from .rewards import COMPLETION_THRESHOLD, Reward, calculate_rewards, determine_rank

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 5
_FAR_FUTURE = datetime.max.replace(tzinfo=dt_timezone.utc)


class SettlementError(RuntimeError):
    pass


class AggregateConflict(SettlementError):
    """Party aggregates kept changing underneath us; needs reconciliation."""


@dataclass(frozen=True)
class AggregateUpdate:
    party_id: int
    score: int
    reward: Reward
    rp: int
    gold_earned: int
    quests_completed: int
    quests_failed: int
    avg_score: int
    rank: str
    previous_rank: str

    @property
    def ranked_up(self) -> bool:
        return self.rank != self.previous_rank


@dataclass(frozen=True)
class SettlementResult:
    attempt_id: int
    verdict: Optional[oracle.Verdict]
    aggregates: Optional[AggregateUpdate]
    winner_id: Optional[int]

    @property
    def scored(self) -> bool:
        return self.aggregates is not None


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def running_average(previous_avg: int, resolved: int, score: int) -> int:
    """Fold ``score`` into a mean over ``resolved`` earlier scores."""
    return round_half_up((previous_avg * resolved + score) / (resolved + 1))


def compute_aggregates(party: Party, score: int, difficulty: str) -> AggregateUpdate:
    reward = calculate_rewards(difficulty, score)
    completed = party.quests_completed
    failed = party.quests_failed
    avg = running_average(party.avg_score, completed + failed, score)
    if score >= COMPLETION_THRESHOLD:
        completed += 1
    else:
        failed += 1
    rp = party.rp + reward.rp
    return AggregateUpdate(
        party_id=party.pk,
        score=score,
        reward=reward,
        rp=rp,
        gold_earned=party.gold_earned + reward.gold,
        quests_completed=completed,
        quests_failed=failed,
        avg_score=avg,
        rank=determine_rank(rp),
        previous_rank=party.rank,
    )


def apply_score(party_id: int, score: int, difficulty: str, *, max_retries: Optional[int] = None) -> AggregateUpdate:
    """Write one score into the party aggregates with optimistic retries."""
    if max_retries is None:
        max_retries = config_service.setting_int("SETTLEMENT_MAX_RETRIES", DEFAULT_MAX_RETRIES)
    max_retries = max(1, max_retries)
    for attempt_no in range(1, max_retries + 1):
        snapshot = Party.objects.get(pk=party_id)
        update = compute_aggregates(snapshot, score, difficulty)
        written = Party.objects.filter(pk=party_id, version=snapshot.version).update(
            rp=update.rp,
            gold_earned=update.gold_earned,
            quests_completed=update.quests_completed,
            quests_failed=update.quests_failed,
            avg_score=update.avg_score,
            rank=update.rank,
            version=F("version") + 1,
            updated_at=timezone.now(),
        )
        if written:
            return update
        logger.info(
            "Party %s aggregates changed concurrently (try %s/%s); retrying.",
            party_id,
            attempt_no,
            max_retries,
        )
    logger.error(
        "Party %s aggregate update for score %s failed after %s tries; manual reconciliation required.",
        party_id,
        score,
        max_retries,
    )
    raise AggregateConflict(f"party {party_id} aggregates not updated")


def settle_attempt(attempt_id: int) -> Optional[SettlementResult]:
    attempt = QuestAttempt.objects.select_related("quest", "party").filter(pk=attempt_id).first()
    if attempt is None:
        logger.warning("Settlement requested for unknown attempt %s", attempt_id)
        return None
    if attempt.status == QuestAttempt.STATUS_IN_PROGRESS:
        logger.warning("Attempt %s has not been submitted; nothing to settle.", attempt_id)
        return None
    if attempt.status != QuestAttempt.STATUS_SUBMITTED:
        logger.debug("Attempt %s already %s; checking quest closure only.", attempt_id, attempt.status)
        winner = select_winner(attempt.quest_id)
        return SettlementResult(attempt.pk, None, None, winner.pk if winner else None)

    quest = attempt.quest
    verdict = oracle.score(
        quest.title,
        quest.description,
        quest.acceptance_criteria,
        quest.difficulty,
        attempt.result_text,
    )

    aggregates: Optional[AggregateUpdate] = None
    with transaction.atomic():
        now = timezone.now()
        claimed = QuestAttempt.objects.filter(
            pk=attempt.pk, status=QuestAttempt.STATUS_SUBMITTED
        ).update(
            status=QuestAttempt.STATUS_SCORED,
            score=verdict.score,
            feedback=verdict.feedback,
            scored_at=now,
        )
        if claimed:
            aggregates = apply_score(attempt.party_id, verdict.score, quest.difficulty)

    if aggregates is None:
        logger.info("Attempt %s was scored by another worker.", attempt.pk)
    else:
        _emit_scoring_events(attempt, quest, verdict, aggregates)

    winner = select_winner(quest.pk)
    return SettlementResult(attempt.pk, verdict, aggregates, winner.pk if winner else None)


def _emit_scoring_events(
    attempt: QuestAttempt, quest: Quest, verdict: oracle.Verdict, aggregates: AggregateUpdate
) -> None:
    party = attempt.party
    logger.info(
        "Attempt %s scored %s via %s (party %s: rp %s, avg %s)",
        attempt.pk,
        verdict.score,
        verdict.source,
        party.pk,
        aggregates.rp,
        aggregates.avg_score,
    )
    activity.record(
        ActivityLog.EVENT_QUEST_SCORED,
        party=party,
        quest=quest,
        attempt_id=attempt.pk,
        score=verdict.score,
        scoring=verdict.source,
        rp_awarded=aggregates.reward.rp,
        gold_awarded=aggregates.reward.gold,
    )
    if aggregates.ranked_up:
        activity.record(
            ActivityLog.EVENT_RANK_UP,
            party=party,
            quest=quest,
            party_name=party.name,
            old_rank=aggregates.previous_rank,
            new_rank=aggregates.rank,
        )


def _winner_sort_key(attempt: QuestAttempt) -> tuple:
    return (-(attempt.score or 0), attempt.scored_at or _FAR_FUTURE, attempt.pk)


def choose_winner(attempts: Sequence[QuestAttempt]) -> QuestAttempt:
    """Highest score; ties go to whoever was scored first."""
    return min(attempts, key=_winner_sort_key)


def select_winner(quest_id: int) -> Optional[QuestAttempt]:
    """Close the quest when every attempt is resolved.

    Returns the winning attempt when this call closed the quest, otherwise
    ``None`` (still pending, nothing scored, or already closed).
    """
    with transaction.atomic():
        quest = Quest.objects.select_for_update().filter(pk=quest_id).first()
        if quest is None or quest.status not in Quest.SETTLEABLE_STATUSES:
            return None
        attempts = list(QuestAttempt.objects.filter(quest=quest).order_by("id"))
        if any(a.status in QuestAttempt.PENDING_STATUSES for a in attempts):
            return None
        scored = [a for a in attempts if a.status == QuestAttempt.STATUS_SCORED]
        if not scored:
            return None

        winner = choose_winner(scored)
        closed = Quest.objects.filter(pk=quest.pk, status__in=Quest.SETTLEABLE_STATUSES).update(
            status=Quest.STATUS_COMPLETED,
            winning_attempt=winner,
            updated_at=timezone.now(),
        )
        if not closed:
            return None
        QuestAttempt.objects.filter(pk=winner.pk).update(status=QuestAttempt.STATUS_WON)
        QuestAttempt.objects.filter(quest=quest, status=QuestAttempt.STATUS_SCORED).exclude(
            pk=winner.pk
        ).update(status=QuestAttempt.STATUS_LOST)

    winner.refresh_from_db()
    logger.info("Quest %s completed; attempt %s won with %s", quest.pk, winner.pk, winner.score)
    activity.record(
        ActivityLog.EVENT_QUEST_COMPLETED,
        party=winner.party,
        quest=quest,
        title=quest.title,
        winner_attempt_id=winner.pk,
        winning_score=winner.score,
    )
    return winner


def stale_attempt_ids(*, older_than_seconds: int = 0, limit: int = 50) -> list[int]:
    """Attempts left in ``submitted`` (crash or lost task) awaiting a rescore."""
    cutoff = timezone.now() - timedelta(seconds=max(0, older_than_seconds))
    return list(
        QuestAttempt.objects.filter(status=QuestAttempt.STATUS_SUBMITTED, submitted_at__lte=cutoff)
        .order_by("submitted_at", "id")
        .values_list("id", flat=True)[:limit]
    )


def close_ready_quests(quest_ids: Optional[Iterable[int]] = None) -> list[int]:
    """Run winner selection over unsettled quests; returns the closed quest ids."""
    qs = Quest.objects.filter(status__in=Quest.SETTLEABLE_STATUSES)
    if quest_ids is not None:
        qs = qs.filter(pk__in=list(quest_ids))
    closed: list[int] = []
    for quest_id in qs.values_list("id", flat=True):
        if select_winner(quest_id) is not None:
            closed.append(quest_id)
    return closed
