from __future__ import annotations

import logging

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class QuestsConfig(AppConfig):
    """Configuration for the quests app."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'quests'

    def ready(self) -> None:  # pragma: no cover - startup wiring
        from django.conf import settings

        if not (getattr(settings, "OPENROUTER_API_KEY", "") or "").strip():
            logger.info("OPENROUTER_API_KEY not set; the oracle will score with the length heuristic.")
