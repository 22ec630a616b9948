from __future__ import annotations

from datetime import timedelta
from unittest.mock import patch

import requests
from django.test import TestCase
from django.utils import timezone

from quests import openrouter
from quests.models import OracleUsage


class DummyResponse:
    def __init__(self, status_code: int = 200, payload: dict | list | None = None) -> None:
        self.status_code = status_code
        self._payload = payload if payload is not None else {"choices": [{"message": {"content": " ok "}}]}

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(response=self)

    def json(self) -> dict | list:
        return self._payload


class OpenRouterFallbackTests(TestCase):
    def setUp(self) -> None:
        openrouter._offline_until = None
        self._orig_headers = dict(openrouter.HEADERS)
        self._orig_api_key = openrouter.API_KEY
        openrouter.API_KEY = "dummy-key"
        openrouter.HEADERS["Authorization"] = "Bearer test-key"

    def tearDown(self) -> None:
        openrouter._offline_until = None
        openrouter.API_KEY = self._orig_api_key
        openrouter.HEADERS.clear()
        openrouter.HEADERS.update(self._orig_headers)

    @patch("quests.openrouter.requests.post")
    def test_mark_offline_on_404_and_short_circuit(self, mock_post) -> None:
        mock_post.return_value = DummyResponse(404, {"error": "not found"})

        first = openrouter.generate_completion("test prompt")
        self.assertFalse(first["success"])
        self.assertEqual(first["error"], "status_404")
        self.assertIsNotNone(openrouter._offline_until)
        self.assertEqual(mock_post.call_count, 1)

        with patch("quests.openrouter.requests.post") as second_mock:
            second = openrouter.generate_completion("second prompt")
            self.assertFalse(second["success"])
            self.assertEqual(second["error"], "offline")
            second_mock.assert_not_called()

    def test_offline_window_expires(self) -> None:
        openrouter._offline_until = timezone.now() - timedelta(seconds=1)
        with patch("quests.openrouter.requests.post") as mock_post:
            mock_post.return_value = DummyResponse()
            result = openrouter.generate_completion("prompt")
        self.assertTrue(result["success"])
        self.assertEqual(result["text"], "ok")
        self.assertEqual(mock_post.call_count, 1)

    def test_successful_call_counts_against_quota(self) -> None:
        with patch("quests.openrouter.requests.post", return_value=DummyResponse()):
            openrouter.generate_completion("prompt", system="judge")
        usage = OracleUsage.objects.get(day=timezone.now().date())
        self.assertEqual(usage.request_count, 1)
        self.assertEqual(openrouter.remaining_requests(), openrouter.DAILY_LIMIT - 1)

    def test_exhausted_quota_skips_request(self) -> None:
        OracleUsage.objects.create(day=timezone.now().date(), request_count=openrouter.DAILY_LIMIT)
        with patch("quests.openrouter.requests.post") as mock_post:
            result = openrouter.generate_completion("prompt")
        self.assertFalse(result["success"])
        self.assertEqual(result["error"], "unavailable")
        mock_post.assert_not_called()

    def test_timeout_reports_failure(self) -> None:
        with patch("quests.openrouter.requests.post", side_effect=requests.Timeout()):
            result = openrouter.generate_completion("prompt")
        self.assertFalse(result["success"])
        self.assertEqual(result["error"], "timeout")
        self.assertEqual(OracleUsage.objects.get(day=timezone.now().date()).request_count, 1)

    @patch("quests.openrouter.time.sleep")
    def test_retries_transient_statuses(self, sleep_mock) -> None:
        with patch("quests.openrouter.requests.post") as mock_post:
            mock_post.side_effect = [DummyResponse(503), DummyResponse()]
            result = openrouter.generate_completion("prompt")
        self.assertTrue(result["success"])
        self.assertEqual(mock_post.call_count, 2)
        sleep_mock.assert_called_once()
        self.assertEqual(OracleUsage.objects.get(day=timezone.now().date()).request_count, 2)

    def test_missing_choices_is_a_failure(self) -> None:
        with patch("quests.openrouter.requests.post", return_value=DummyResponse(200, {"id": "x"})):
            result = openrouter.generate_completion("prompt")
        self.assertFalse(result["success"])
        self.assertEqual(result["error"], "missing_choices")

    def test_non_object_body_is_invalid_json(self) -> None:
        with patch("quests.openrouter.requests.post", return_value=DummyResponse(200, ["not", "an", "object"])):
            result = openrouter.generate_completion("prompt")
        self.assertFalse(result["success"])
        self.assertEqual(result["error"], "invalid_json")
        self.assertEqual(result["response"], ["not", "an", "object"])

    def test_malformed_choices_are_a_failure(self) -> None:
        bodies = [
            {"choices": ["just a string"]},
            {"choices": [{"message": "flat text"}]},
            {"choices": [{"message": {"content": None}}]},
        ]
        for body in bodies:
            with self.subTest(body=body):
                with patch("quests.openrouter.requests.post", return_value=DummyResponse(200, body)):
                    result = openrouter.generate_completion("prompt")
                self.assertFalse(result["success"])
                self.assertEqual(result["error"], "missing_choices")

    @patch("quests.openrouter.time.sleep")
    def test_every_request_sent_counts_against_quota(self, sleep_mock) -> None:
        with patch("quests.openrouter.requests.post", return_value=DummyResponse(503)) as mock_post:
            result = openrouter.generate_completion("prompt")
        self.assertEqual(result["error"], "retries_exhausted")
        self.assertEqual(mock_post.call_count, openrouter.MAX_ATTEMPTS)
        usage = OracleUsage.objects.get(day=timezone.now().date())
        self.assertEqual(usage.request_count, openrouter.MAX_ATTEMPTS)
