from __future__ import annotations

import json
from collections import defaultdict
from typing import Any

from django.db.models import Count, Q
from django.http import HttpRequest, JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from .forms import PartyRegistrationForm, QuestCreateForm, SubmissionForm
from .models import ActivityLog, Party, Quest, QuestAttempt
from .services import activity, ledger
from .services.ledger import LedgerError
from .services.rewards import rp_to_next_rank
from .services.settlement import round_half_up

LEDGER_ERROR_STATUS = {
    ledger.QuestNotAcceptingAttempts: 400,
    ledger.QuestFull: 400,
    ledger.AlreadyAttempted: 409,
    ledger.NoActiveAttempt: 404,
}

SUBMITTED_OR_LATER = (
    QuestAttempt.STATUS_SUBMITTED,
    QuestAttempt.STATUS_SCORED,
    QuestAttempt.STATUS_WON,
)


def _parse_int(request: HttpRequest, name: str) -> tuple[int | None, JsonResponse | None]:
    raw = request.GET.get(name)
    if raw is None:
        return None, None
    try:
        return int(raw), None
    except (TypeError, ValueError):
        return None, JsonResponse({"error": f"Parameter '{name}' must be an integer."}, status=400)


def _json_body(request: HttpRequest) -> tuple[dict[str, Any] | None, JsonResponse | None]:
    if not request.body:
        return {}, None
    try:
        data = json.loads(request.body)
    except (TypeError, ValueError):
        return None, JsonResponse({"error": "Request body must be valid JSON."}, status=400)
    if not isinstance(data, dict):
        return None, JsonResponse({"error": "Request body must be a JSON object."}, status=400)
    return data, None


def _form_errors(form) -> JsonResponse:
    return JsonResponse({"error": "validation_failed", "fields": form.errors.get_json_data()}, status=400)


def _ledger_error(exc: LedgerError) -> JsonResponse:
    status = LEDGER_ERROR_STATUS.get(type(exc), 400)
    return JsonResponse({"error": str(exc), "code": exc.code}, status=status)


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def _quest_summary(quest: Quest) -> dict[str, Any]:
    return {
        "id": quest.id,
        "title": quest.title,
        "description": quest.description,
        "acceptance_criteria": quest.acceptance_criteria,
        "difficulty": quest.difficulty,
        "category": quest.category,
        "gold_reward": quest.gold_reward,
        "rp_reward": quest.rp_reward,
        "max_attempts": quest.max_attempts,
        "time_limit_minutes": quest.time_limit_minutes,
        "status": quest.status,
        "winning_attempt_id": quest.winning_attempt_id,
        "created_at": quest.created_at.isoformat(),
    }


def _party_summary(party: Party, include_key: bool = False) -> dict[str, Any]:
    data = {
        "id": party.id,
        "name": party.name,
        "description": party.description,
        "architecture_type": party.architecture_type,
        "architecture_detail": party.architecture_detail,
        "status": party.status,
        "rp": party.rp,
        "rank": party.rank,
        "gold_earned": party.gold_earned,
        "quests_completed": party.quests_completed,
        "quests_failed": party.quests_failed,
        "avg_score": party.avg_score,
        "is_public": party.is_public,
        "last_ping_at": _iso(party.last_ping_at),
        "created_at": party.created_at.isoformat(),
    }
    if include_key:
        data["api_key"] = party.api_key
    return data


def _attempt_summary(attempt: QuestAttempt) -> dict[str, Any]:
    return {
        "id": attempt.id,
        "quest_id": attempt.quest_id,
        "party_id": attempt.party_id,
        "status": attempt.status,
        "result_text": attempt.result_text,
        "result_data": attempt.result_data,
        "token_count": attempt.token_count,
        "score": attempt.score,
        "feedback": attempt.feedback,
        "time_taken_seconds": attempt.time_taken_seconds,
        "started_at": attempt.started_at.isoformat(),
        "submitted_at": _iso(attempt.submitted_at),
        "scored_at": _iso(attempt.scored_at),
    }


def _activity_summary(entry: ActivityLog) -> dict[str, Any]:
    return {
        "id": entry.id,
        "event_type": entry.event_type,
        "party_id": entry.party_id,
        "party": entry.party.name if entry.party_id else None,
        "quest_id": entry.quest_id,
        "quest": entry.quest.title if entry.quest_id else None,
        "details": entry.details,
        "created_at": entry.created_at.isoformat(),
    }


# External API (bearer API key resolved by PartyAPIKeyMiddleware)


@require_GET
def api_external_quest_list(request: HttpRequest) -> JsonResponse:
    party = request.party
    quests = (
        Quest.objects.filter(status__in=Quest.ACCEPTING_STATUSES)
        .exclude(attempts__party=party)
        .annotate(attempt_count=Count("attempts"))
        .order_by("-created_at")
    )
    difficulty = request.GET.get("difficulty")
    if difficulty:
        levels = [level.strip() for level in difficulty.split(",") if level.strip()]
        quests = quests.filter(difficulty__in=levels)
    category = request.GET.get("category")
    if category:
        quests = quests.filter(category=category)

    payload = []
    for quest in quests:
        item = _quest_summary(quest)
        item["current_attempts"] = quest.attempt_count
        item["slots_remaining"] = max(0, quest.max_attempts - quest.attempt_count)
        payload.append(item)
    return JsonResponse({"quests": payload})


@require_GET
def api_external_quest_detail(request: HttpRequest, pk: int) -> JsonResponse:
    quest = (
        Quest.objects.filter(pk=pk)
        .annotate(
            attempt_count=Count("attempts"),
            submitted_count=Count("attempts", filter=Q(attempts__status__in=SUBMITTED_OR_LATER)),
        )
        .first()
    )
    if quest is None:
        return JsonResponse({"error": "Quest not found"}, status=404)
    data = _quest_summary(quest)
    data["current_attempts"] = quest.attempt_count
    data["slots_remaining"] = max(0, quest.max_attempts - quest.attempt_count)
    data["submitted_count"] = quest.submitted_count
    return JsonResponse(data)


@require_POST
def api_external_quest_accept(request: HttpRequest, pk: int) -> JsonResponse:
    quest = Quest.objects.filter(pk=pk).first()
    if quest is None:
        return JsonResponse({"error": "Quest not found"}, status=404)
    try:
        attempt = ledger.accept(quest, request.party)
    except LedgerError as exc:
        return _ledger_error(exc)
    return JsonResponse(
        {
            "attempt_id": attempt.id,
            "quest_id": quest.id,
            "status": attempt.status,
            "started_at": attempt.started_at.isoformat(),
        },
        status=201,
    )


@require_POST
def api_external_quest_submit(request: HttpRequest, pk: int) -> JsonResponse:
    body, error = _json_body(request)
    if error:
        return error
    form = SubmissionForm(data=body)
    if not form.is_valid():
        return _form_errors(form)
    try:
        attempt = ledger.submit_for(
            pk,
            request.party,
            form.cleaned_data.get("result_text"),
            result_data=form.cleaned_data.get("result_data"),
            token_count=form.cleaned_data.get("token_count"),
        )
    except LedgerError as exc:
        return _ledger_error(exc)
    return JsonResponse(_attempt_summary(attempt))


@require_GET
def api_external_party_status(request: HttpRequest) -> JsonResponse:
    party = request.party
    detail = party.architecture_detail or {}
    return JsonResponse({
        "id": party.id,
        "name": party.name,
        "status": party.status,
        "rp": party.rp,
        "rank": party.rank,
        "gold_earned": party.gold_earned,
        "quests_completed": party.quests_completed,
        "next_rank": rp_to_next_rank(party.rank, party.rp),
        "leader_prompt": detail.get("leader_prompt") if isinstance(detail, dict) else None,
    })


@require_GET
def api_external_party_ping(request: HttpRequest) -> JsonResponse:
    party = request.party
    party.last_ping_at = timezone.now()
    party.save(update_fields=["last_ping_at"])
    return JsonResponse({
        "ok": True,
        "party": {"id": party.id, "name": party.name, "status": party.status, "rank": party.rank},
    })


# Internal API


@require_http_methods(["GET", "POST"])
def api_quest_list(request: HttpRequest) -> JsonResponse:
    if request.method == "POST":
        return _create_quest(request)
    quests = Quest.objects.all().order_by("-created_at")
    for name in ("difficulty", "status", "category"):
        value = request.GET.get(name)
        if value:
            quests = quests.filter(**{name: value})
    return JsonResponse({"quests": [_quest_summary(q) for q in quests]})


def _create_quest(request: HttpRequest) -> JsonResponse:
    body, error = _json_body(request)
    if error:
        return error
    form = QuestCreateForm(data=body)
    if not form.is_valid():
        return _form_errors(form)
    quest = form.save()
    activity.record(
        ActivityLog.EVENT_QUEST_POSTED,
        quest=quest,
        title=quest.title,
        difficulty=quest.difficulty,
    )
    return JsonResponse(_quest_summary(quest), status=201)


@require_http_methods(["GET", "POST"])
def api_party_list(request: HttpRequest) -> JsonResponse:
    if request.method == "POST":
        body, error = _json_body(request)
        if error:
            return error
        form = PartyRegistrationForm(data=body)
        if not form.is_valid():
            return _form_errors(form)
        party = form.save()
        return JsonResponse(_party_summary(party, include_key=True), status=201)
    parties = Party.objects.all().order_by("-rp", "name")
    return JsonResponse({"parties": [_party_summary(p) for p in parties]})


@require_GET
def api_leaderboard(request: HttpRequest) -> JsonResponse:
    entries = []
    for position, party in enumerate(Party.objects.order_by("-rp", "name"), start=1):
        entries.append({
            "position": position,
            "id": party.id,
            "name": party.name,
            "architecture_type": party.architecture_type,
            "rank": party.rank,
            "rp": party.rp,
            "quests_completed": party.quests_completed,
            "quests_failed": party.quests_failed,
            "avg_score": party.avg_score,
            "gold_earned": party.gold_earned,
            "next_rank": rp_to_next_rank(party.rank, party.rp),
        })
    return JsonResponse({"leaderboard": entries})


@require_GET
def api_activity(request: HttpRequest) -> JsonResponse:
    limit, error = _parse_int(request, "limit")
    if error:
        return error
    entries = activity.recent(limit or 20)
    return JsonResponse({"activity": [_activity_summary(entry) for entry in entries]})


@require_GET
def api_analytics(request: HttpRequest) -> JsonResponse:
    """Average time taken per architecture and difficulty over resolved attempts."""
    buckets: dict[tuple[str, str], list[int]] = defaultdict(lambda: [0, 0])
    rows = QuestAttempt.objects.filter(status__in=QuestAttempt.RESOLVED_STATUSES).values_list(
        "party__architecture_type", "quest__difficulty", "time_taken_seconds"
    )
    for architecture, difficulty, seconds in rows:
        bucket = buckets[(architecture, difficulty)]
        bucket[0] += seconds or 0
        bucket[1] += 1
    data = [
        {
            "architecture_type": architecture,
            "difficulty": difficulty,
            "avg_time": round_half_up(total / count),
            "count": count,
        }
        for (architecture, difficulty), (total, count) in sorted(buckets.items())
    ]
    return JsonResponse({"analytics": data})
