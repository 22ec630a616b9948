"""Activity feed emission.

Events are best effort: a failed insert is logged and dropped so callers in
the middle of settlement never roll back because of the feed.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from django.db import DatabaseError, transaction

from quests.models import ActivityLog, Party, Quest

logger = logging.getLogger(__name__)


def record(
    event_type: str,
    *,
    party: Optional[Party] = None,
    quest: Optional[Quest] = None,
    **details: Any,
) -> Optional[ActivityLog]:
    try:
        with transaction.atomic():
            return ActivityLog.objects.create(
                event_type=event_type,
                party=party,
                quest=quest,
                details=details,
            )
    except DatabaseError:
        logger.warning(
            "Dropped %s activity event (party=%s quest=%s)",
            event_type,
            getattr(party, "pk", None),
            getattr(quest, "pk", None),
            exc_info=True,
        )
        return None


def recent(limit: int = 20) -> list[ActivityLog]:
    limit = max(1, min(int(limit), 200))
    return list(ActivityLog.objects.select_related("party", "quest").order_by("-created_at", "-id")[:limit])
