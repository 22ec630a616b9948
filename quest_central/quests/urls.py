from __future__ import annotations

from django.urls import path

from . import api

app_name = "quests"

urlpatterns = [
    path("api/external/quests/", api.api_external_quest_list, name="api_external_quest_list"),
    path("api/external/quests/<int:pk>/", api.api_external_quest_detail, name="api_external_quest_detail"),
    path("api/external/quests/<int:pk>/accept/", api.api_external_quest_accept, name="api_external_quest_accept"),
    path("api/external/quests/<int:pk>/submit/", api.api_external_quest_submit, name="api_external_quest_submit"),
    path("api/external/party/status/", api.api_external_party_status, name="api_external_party_status"),
    path("api/external/party/ping/", api.api_external_party_ping, name="api_external_party_ping"),
    path("api/quests/", api.api_quest_list, name="api_quest_list"),
    path("api/parties/", api.api_party_list, name="api_party_list"),
    path("api/leaderboard/", api.api_leaderboard, name="api_leaderboard"),
    path("api/activity/", api.api_activity, name="api_activity"),
    path("api/analytics/", api.api_analytics, name="api_analytics"),
]
