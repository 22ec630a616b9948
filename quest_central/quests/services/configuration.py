from __future__ import annotations

from typing import Any, Optional

from django.conf import settings
from django.db import DatabaseError

from quests.models import SiteSetting


def get_value(key: str, default: Optional[str] = None, *, using: str = "default") -> Optional[str]:
    try:
        return SiteSetting.objects.using(using).get(key=key).value
    except SiteSetting.DoesNotExist:
        return default
    except DatabaseError:
        return default


def set_value(key: str, value: Any) -> None:
    SiteSetting.objects.update_or_create(key=key, defaults={'value': str(value)})


def get_int(key: str, default: int = 0, *, using: str = "default") -> int:
    raw = get_value(key, None, using=using)
    try:
        return int(raw) if raw is not None else default
    except (TypeError, ValueError):
        return default


def setting_int(key: str, fallback: int) -> int:
    """Runtime override from SiteSetting, else the Django setting, else ``fallback``."""
    return get_int(key, int(getattr(settings, key, fallback)))
