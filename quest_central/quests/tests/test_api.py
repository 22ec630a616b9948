from __future__ import annotations

from unittest import mock

from django.core.cache import cache
from django.test import TestCase
from django.urls import reverse

from quests.models import ActivityLog, Party, Quest, QuestAttempt
from quests.services import configuration as config_service
from quests.services import ledger


class APITestCase(TestCase):
    def setUp(self) -> None:
        cache.clear()
        self.party = Party.objects.create(name="Ops Crew", architecture_type="crew",
                                          architecture_detail={"leader_prompt": "Be brief."})
        self.quest = Quest.objects.create(
            title="Triage the backlog",
            description="Label every open ticket.",
            difficulty=Quest.DIFFICULTY_A,
            category="data",
            max_attempts=2,
        )

    def auth(self, party: Party | None = None) -> dict[str, str]:
        return {"HTTP_AUTHORIZATION": f"Bearer {(party or self.party).api_key}"}


class ExternalAuthTests(APITestCase):
    def test_missing_or_bad_key_is_rejected(self) -> None:
        url = reverse("quests:api_external_quest_list")
        response = self.client.get(url)
        self.assertEqual(response.status_code, 401)
        response = self.client.get(url, HTTP_AUTHORIZATION="Bearer qc_nope")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"], "Invalid API key")

    def test_internal_routes_need_no_key(self) -> None:
        self.assertEqual(self.client.get(reverse("quests:api_leaderboard")).status_code, 200)


class ExternalQuestTests(APITestCase):
    def test_list_hides_attempted_and_closed_quests(self) -> None:
        attempted = Quest.objects.create(title="Old", description="Done before.")
        ledger.accept(attempted, self.party)
        Quest.objects.create(title="Closed", description="Gone.", status=Quest.STATUS_COMPLETED)
        Quest.objects.create(title="Easy", description="Warm up.", difficulty=Quest.DIFFICULTY_C)

        response = self.client.get(reverse("quests:api_external_quest_list"), **self.auth())
        titles = {item["title"] for item in response.json()["quests"]}
        self.assertEqual(titles, {"Triage the backlog", "Easy"})

        response = self.client.get(
            reverse("quests:api_external_quest_list"), {"difficulty": "A,S", "category": "data"}, **self.auth()
        )
        quests = response.json()["quests"]
        self.assertEqual([q["title"] for q in quests], ["Triage the backlog"])
        self.assertEqual(quests[0]["current_attempts"], 0)
        self.assertEqual(quests[0]["slots_remaining"], 2)

    @mock.patch("quests.tasks.settle_attempt.delay")
    def test_detail_reports_counts_without_results(self, _delay) -> None:
        other = Party.objects.create(name="Rivals")
        ledger.submit(ledger.accept(self.quest, other), "secret answer")

        response = self.client.get(reverse("quests:api_external_quest_detail", args=[self.quest.pk]), **self.auth())
        data = response.json()
        self.assertEqual(data["current_attempts"], 1)
        self.assertEqual(data["slots_remaining"], 1)
        self.assertEqual(data["submitted_count"], 1)
        self.assertNotIn("secret answer", response.content.decode())

    def test_detail_unknown_quest(self) -> None:
        response = self.client.get(reverse("quests:api_external_quest_detail", args=[9999]), **self.auth())
        self.assertEqual(response.status_code, 404)

    def test_accept_status_codes(self) -> None:
        url = reverse("quests:api_external_quest_accept", args=[self.quest.pk])
        response = self.client.post(url, **self.auth())
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["quest_id"], self.quest.pk)
        self.assertEqual(body["status"], QuestAttempt.STATUS_IN_PROGRESS)
        self.assertTrue(QuestAttempt.objects.filter(pk=body["attempt_id"]).exists())

        self.assertEqual(self.client.post(url, **self.auth()).status_code, 409)

        self.client.post(url, **self.auth(Party.objects.create(name="Second")))
        response = self.client.post(url, **self.auth(Party.objects.create(name="Third")))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "quest_full")

        missing = reverse("quests:api_external_quest_accept", args=[9999])
        self.assertEqual(self.client.post(missing, **self.auth()).status_code, 404)

    def test_accept_rejects_closed_quest(self) -> None:
        Quest.objects.filter(pk=self.quest.pk).update(status=Quest.STATUS_EXPIRED)
        url = reverse("quests:api_external_quest_accept", args=[self.quest.pk])
        response = self.client.post(url, **self.auth())
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "quest_not_accepting")

    @mock.patch("quests.tasks.settle_attempt.delay")
    def test_submit_flow(self, _delay) -> None:
        url = reverse("quests:api_external_quest_submit", args=[self.quest.pk])
        self.assertEqual(self.client.post(url, {"result_text": "early"}, content_type="application/json",
                                          **self.auth()).status_code, 404)

        self.client.post(reverse("quests:api_external_quest_accept", args=[self.quest.pk]), **self.auth())
        response = self.client.post(
            url,
            {"result_text": "All tickets labelled.", "result_data": {"labelled": 42}, "token_count": 900},
            content_type="application/json",
            **self.auth(),
        )
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["status"], QuestAttempt.STATUS_SUBMITTED)
        self.assertEqual(data["result_data"], {"labelled": 42})
        self.assertEqual(data["token_count"], 900)
        self.assertIsNone(data["score"])

        again = self.client.post(url, {"result_text": "again"}, content_type="application/json", **self.auth())
        self.assertEqual(again.status_code, 404)

    def test_submit_validates_body(self) -> None:
        url = reverse("quests:api_external_quest_submit", args=[self.quest.pk])
        response = self.client.post(url, "not json", content_type="application/json", **self.auth())
        self.assertEqual(response.status_code, 400)
        response = self.client.post(url, {"token_count": -4}, content_type="application/json", **self.auth())
        self.assertEqual(response.status_code, 400)
        self.assertIn("token_count", response.json()["fields"])


class ExternalPartyTests(APITestCase):
    def test_status_exposes_leader_prompt(self) -> None:
        response = self.client.get(reverse("quests:api_external_party_status"), **self.auth())
        data = response.json()
        self.assertEqual(data["name"], "Ops Crew")
        self.assertEqual(data["leader_prompt"], "Be brief.")
        self.assertEqual(data["rank"], "Bronze")

    def test_ping_touches_last_ping(self) -> None:
        response = self.client.get(reverse("quests:api_external_party_ping"), **self.auth())
        self.assertTrue(response.json()["ok"])
        self.party.refresh_from_db()
        self.assertIsNotNone(self.party.last_ping_at)


class InternalAPITests(APITestCase):
    def test_create_quest_applies_difficulty_defaults(self) -> None:
        response = self.client.post(
            reverse("quests:api_quest_list"),
            {"title": "Design a logo", "description": "SVG please.", "difficulty": "S"},
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertEqual((data["gold_reward"], data["rp_reward"]), (500, 100))
        self.assertEqual(data["max_attempts"], 5)
        self.assertEqual(data["category"], "general")
        self.assertEqual(data["status"], Quest.STATUS_OPEN)
        event = ActivityLog.objects.get(event_type=ActivityLog.EVENT_QUEST_POSTED)
        self.assertEqual(event.details, {"title": "Design a logo", "difficulty": "S"})

    def test_create_quest_validation(self) -> None:
        response = self.client.post(reverse("quests:api_quest_list"), {"title": "No body"},
                                    content_type="application/json")
        self.assertEqual(response.status_code, 400)
        self.assertIn("description", response.json()["fields"])

    def test_list_quests_filters(self) -> None:
        Quest.objects.create(title="Done", description="x", status=Quest.STATUS_COMPLETED)
        response = self.client.get(reverse("quests:api_quest_list"), {"status": "completed"})
        self.assertEqual([q["title"] for q in response.json()["quests"]], ["Done"])

    def test_register_party_returns_key_once(self) -> None:
        response = self.client.post(
            reverse("quests:api_party_list"),
            {"name": "Newcomers", "architecture_type": "swarm", "architecture_detail": {"agents": 12}},
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertTrue(data["api_key"].startswith("qc_"))
        self.assertTrue(data["is_public"])
        self.assertEqual(data["architecture_detail"], {"agents": 12})

        listing = self.client.get(reverse("quests:api_party_list")).json()["parties"]
        self.assertTrue(all("api_key" not in item for item in listing))

        duplicate = self.client.post(reverse("quests:api_party_list"), {"name": "Newcomers"},
                                     content_type="application/json")
        self.assertEqual(duplicate.status_code, 400)

    def test_leaderboard_orders_by_rp(self) -> None:
        Party.objects.create(name="Leaders", rp=320, rank="Gold")
        board = self.client.get(reverse("quests:api_leaderboard")).json()["leaderboard"]
        self.assertEqual([entry["name"] for entry in board], ["Leaders", "Ops Crew"])
        self.assertEqual(board[0]["position"], 1)
        self.assertEqual(board[0]["next_rank"]["next_rank"], "Platinum")

    def test_activity_feed_limit(self) -> None:
        for _ in range(3):
            ActivityLog.objects.create(event_type=ActivityLog.EVENT_QUEST_POSTED, quest=self.quest)
        feed = self.client.get(reverse("quests:api_activity"), {"limit": 2}).json()["activity"]
        self.assertEqual(len(feed), 2)
        self.assertEqual(feed[0]["quest"], "Triage the backlog")
        bad = self.client.get(reverse("quests:api_activity"), {"limit": "many"})
        self.assertEqual(bad.status_code, 400)

    def test_analytics_groups_resolved_attempts(self) -> None:
        second = Party.objects.create(name="Solo", architecture_type="crew")
        for party, seconds in ((self.party, 100), (second, 201)):
            attempt = QuestAttempt.objects.create(quest=self.quest, party=party)
            QuestAttempt.objects.filter(pk=attempt.pk).update(
                status=QuestAttempt.STATUS_SCORED, time_taken_seconds=seconds, score=50
            )
        QuestAttempt.objects.create(quest=Quest.objects.create(title="Other", description="y"), party=self.party)

        data = self.client.get(reverse("quests:api_analytics")).json()["analytics"]
        self.assertEqual(data, [{"architecture_type": "crew", "difficulty": "A", "avg_time": 151, "count": 2}])


class RateLimitTests(APITestCase):
    def test_daily_quota_is_enforced_per_key(self) -> None:
        config_service.set_value("API_DAILY_LIMIT", 2)
        url = reverse("quests:api_external_party_status")
        self.assertEqual(self.client.get(url, **self.auth()).status_code, 200)
        self.assertEqual(self.client.get(url, **self.auth()).status_code, 200)
        response = self.client.get(url, **self.auth())
        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json()["error"], "rate_limited")

        other = Party.objects.create(name="Fresh")
        self.assertEqual(self.client.get(url, **self.auth(other)).status_code, 200)

    def test_zero_limit_disables_quota(self) -> None:
        config_service.set_value("API_DAILY_LIMIT", 0)
        url = reverse("quests:api_leaderboard")
        for _ in range(5):
            self.assertEqual(self.client.get(url).status_code, 200)
