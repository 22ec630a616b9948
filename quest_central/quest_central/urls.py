"""URL configuration for quest_central.

The project only exposes the JSON API of the ``quests`` app.  The Django
admin surface is disabled.
"""
from __future__ import annotations

from django.http import HttpResponseNotFound
from django.urls import include, path


def admin_disabled(request, *args, **kwargs):  # pragma: no cover - simple guard
    return HttpResponseNotFound("Admin console disabled.")

urlpatterns = [
    path('admin/', admin_disabled, name='admin_disabled'),
    path('', include(('quests.urls', 'quests'), namespace='quests')),
]
