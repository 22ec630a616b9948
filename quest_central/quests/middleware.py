from __future__ import annotations

import logging
from datetime import datetime, timedelta

from django.conf import settings
from django.core.cache import cache
from django.http import JsonResponse
from django.utils import timezone

from quests.models import Party
from quests.services import configuration as config_service

logger = logging.getLogger(__name__)

EXTERNAL_API_PREFIX = "/api/external/"


def _bearer_token(request) -> str | None:
    header = request.META.get("HTTP_AUTHORIZATION", "")
    if not header.startswith("Bearer "):
        return None
    token = header[len("Bearer "):].strip()
    return token or None


class APIRateLimitMiddleware:
    """Basic per-identifier daily rate limiting for API routes."""

    def __init__(self, get_response):
        self.get_response = get_response
        self._default_limit = getattr(settings, "API_DAILY_LIMIT", 5000)

    def __call__(self, request):
        response = self._maybe_reject(request)
        if response is not None:
            return response
        return self.get_response(request)

    def _maybe_reject(self, request):
        if not request.path.startswith("/api/"):
            return None

        limit = config_service.get_int("API_DAILY_LIMIT", self._default_limit)
        if limit <= 0:
            return None

        identifier = _bearer_token(request) or request.META.get("REMOTE_ADDR") or "anon"
        date_key = timezone.now().strftime("%Y%m%d")
        cache_key = f"api-rate:{identifier}:{date_key}"
        count = cache.get(cache_key, 0)
        if count >= limit:
            retry_at = (datetime.strptime(date_key, "%Y%m%d") + timedelta(days=1)).isoformat()
            logger.info("API quota exhausted for %s", identifier[:12])
            return JsonResponse(
                {
                    "error": "rate_limited",
                    "message": "Daily API quota exhausted. Please wait before retrying.",
                    "retry_at": retry_at,
                },
                status=429,
            )

        if not cache.add(cache_key, 1, 87_000):
            cache.incr(cache_key, 1)
        return None


class PartyAPIKeyMiddleware:
    """Resolve the calling party from its bearer API key on external routes."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request.party = None
        if request.path.startswith(EXTERNAL_API_PREFIX):
            token = _bearer_token(request)
            if token is None:
                return JsonResponse({"error": "Missing or invalid Authorization header"}, status=401)
            party = Party.objects.filter(api_key=token).first()
            if party is None:
                return JsonResponse({"error": "Invalid API key"}, status=401)
            request.party = party
        return self.get_response(request)
