"""Thin OpenRouter chat-completions client used by the scoring oracle.

Every call is metered against a per-day request quota stored in
``OracleUsage``.  Hard failures (auth, missing endpoint, network) put the
client into an offline window so a burst of settlements does not hammer a
dead upstream; during that window calls fail fast.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import requests
from django.conf import settings
from django.db.models import F
from django.utils import timezone

from quests.models import OracleUsage

logger = logging.getLogger(__name__)

DEFAULT_MODEL = getattr(settings, "OPENROUTER_MODEL", "anthropic/claude-sonnet-4.5")
BASE_URL = getattr(settings, "OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1").rstrip("/")
DEFAULT_MAX_TOKENS = getattr(settings, "OPENROUTER_DEFAULT_MAX_TOKENS", 256)
DAILY_LIMIT = getattr(settings, "ORACLE_DAILY_REQUEST_LIMIT", 1000)
TIMEOUT_SECONDS = float(getattr(settings, "ORACLE_TIMEOUT_SECONDS", 20))
FAILURE_BACKOFF_SECONDS = max(5, int(getattr(settings, "ORACLE_FAILURE_BACKOFF_SECONDS", 300) or 0))

TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})
MAX_ATTEMPTS = 3
RETRY_DELAY_SECONDS = 1.5

API_KEY = (getattr(settings, "OPENROUTER_API_KEY", "") or "").strip()
HEADERS = {"Content-Type": "application/json"}
if API_KEY:
    HEADERS["Authorization"] = f"Bearer {API_KEY}"
if getattr(settings, "OPENROUTER_TITLE", None):
    HEADERS["X-Title"] = settings.OPENROUTER_TITLE
if getattr(settings, "OPENROUTER_REFERRER", None):
    HEADERS["HTTP-Referer"] = settings.OPENROUTER_REFERRER

_offline_until: datetime | None = None


class _Transient(Exception):
    """Upstream hiccup worth another try."""


def _today_usage() -> OracleUsage:
    usage, _ = OracleUsage.objects.get_or_create(day=timezone.now().date())
    return usage


def remaining_requests() -> int:
    if not API_KEY:
        return 0
    return max(DAILY_LIMIT - _today_usage().request_count, 0)


def _record_request() -> None:
    OracleUsage.objects.filter(pk=_today_usage().pk).update(
        request_count=F("request_count") + 1, updated_at=timezone.now()
    )


def _go_offline(reason: str) -> None:
    global _offline_until
    _offline_until = timezone.now() + timedelta(seconds=FAILURE_BACKOFF_SECONDS)
    logger.warning("OpenRouter offline for %ss (%s).", FAILURE_BACKOFF_SECONDS, reason)


def _is_offline() -> bool:
    global _offline_until
    if _offline_until is None:
        return False
    if timezone.now() >= _offline_until:
        _offline_until = None
        return False
    return True


def _failure(reason: str, data: Any = None) -> Dict[str, Any]:
    return {"success": False, "text": "", "response": data, "error": reason}


def _messages(prompt: str, system: Optional[str]) -> list[dict[str, str]]:
    messages = [{"role": "system", "content": system}] if system else []
    messages.append({"role": "user", "content": prompt})
    return messages


def _post(payload: dict[str, Any], timeout: float) -> requests.Response:
    # Every request sent counts against the quota, whatever comes back.
    _record_request()
    response = requests.post(f"{BASE_URL}/chat/completions", headers=HEADERS, json=payload, timeout=timeout)
    if response.status_code in TRANSIENT_STATUSES:
        raise _Transient(response.status_code)
    response.raise_for_status()
    return response


def _message_text(data: dict[str, Any]) -> str | None:
    choices = data.get("choices")
    if not choices or not isinstance(choices, list) or not isinstance(choices[0], dict):
        return None
    message = choices[0].get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    return content.strip() if isinstance(content, str) else None


def _offline_reason(status: int | None) -> str:
    if status in (401, 403):
        return f"auth_{status}"
    if status == 404:
        return "endpoint_404"
    return f"status_{status}" if status else "network_error"


def generate_completion(
    prompt: str,
    *,
    system: Optional[str] = None,
    max_tokens: Optional[int] = None,
    temperature: float = 0.2,
    model: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """Run one chat completion.

    Returns ``{"success": True, "text": ..., "response": <raw json>}`` or a
    failure dict whose ``error`` is one of ``unavailable``, ``offline``,
    ``timeout``, ``status_<code>``, ``network_error``, ``invalid_json``,
    ``missing_choices`` or ``retries_exhausted``.  Never raises.
    """
    if not HEADERS.get("Authorization") or remaining_requests() <= 0:
        logger.info("OpenRouter unavailable: no API key or daily quota spent.")
        return _failure("unavailable")
    if _is_offline():
        logger.debug("OpenRouter offline window active.")
        return _failure("offline")

    payload = {
        "model": model or DEFAULT_MODEL,
        "messages": _messages(prompt, system),
        "max_tokens": max_tokens or DEFAULT_MAX_TOKENS,
        "temperature": temperature,
    }
    timeout = timeout or TIMEOUT_SECONDS

    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            response = _post(payload, timeout)
            data = response.json()
        except _Transient as exc:
            logger.warning("OpenRouter returned %s (try %s/%s).", exc, attempt, MAX_ATTEMPTS)
            if attempt < MAX_ATTEMPTS:
                time.sleep(RETRY_DELAY_SECONDS * attempt)
            continue
        except requests.Timeout:
            logger.warning("OpenRouter request timed out after %.1fs.", timeout)
            return _failure("timeout")
        except requests.RequestException as exc:
            status = getattr(getattr(exc, "response", None), "status_code", None)
            logger.error("OpenRouter request failed (%s): %s", status or "no status", exc)
            _go_offline(_offline_reason(status))
            return _failure(f"status_{status}" if status else "network_error")
        except ValueError:
            logger.error("OpenRouter returned a non-JSON body.")
            return _failure("invalid_json")

        if not isinstance(data, dict):
            logger.error("OpenRouter returned a JSON %s instead of an object.", type(data).__name__)
            return _failure("invalid_json", data)
        text = _message_text(data)
        if text is None:
            logger.error("OpenRouter response had no message content: %s", data)
            return _failure(data.get("error") or "missing_choices", data)
        return {"success": True, "text": text, "response": data}

    return _failure("retries_exhausted")
