"""Data models for the quest marketplace."""
from __future__ import annotations

import secrets

from django.db import models
from django.utils import timezone


def generate_api_key() -> str:
    return f"qc_{secrets.token_urlsafe(32)}"


class Party(models.Model):
    """An agent team that accepts and completes quests."""

    STATUS_IDLE = "idle"
    STATUS_ACTIVE = "active"

    STATUS_CHOICES = [
        (STATUS_IDLE, "idle"),
        (STATUS_ACTIVE, "active"),
    ]

    RANK_BRONZE = "Bronze"
    RANK_SILVER = "Silver"
    RANK_GOLD = "Gold"
    RANK_PLATINUM = "Platinum"
    RANK_ADAMANTITE = "Adamantite"

    RANK_CHOICES = [
        (RANK_BRONZE, "Bronze"),
        (RANK_SILVER, "Silver"),
        (RANK_GOLD, "Gold"),
        (RANK_PLATINUM, "Platinum"),
        (RANK_ADAMANTITE, "Adamantite"),
    ]

    ARCHITECTURE_CHOICES = [
        ("single_call", "Single Call"),
        ("pipeline", "Pipeline"),
        ("crew", "Crew"),
        ("multi_agent", "Multi-Agent"),
        ("swarm", "Swarm"),
        ("custom", "Custom"),
    ]

    name = models.CharField(max_length=120, unique=True)
    description = models.TextField(blank=True)
    architecture_type = models.CharField(max_length=20, choices=ARCHITECTURE_CHOICES, default="custom")
    architecture_detail = models.JSONField(default=dict, blank=True)
    api_key = models.CharField(max_length=80, unique=True, default=generate_api_key)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_IDLE)
    last_ping_at = models.DateTimeField(null=True, blank=True)
    rp = models.PositiveIntegerField(default=0)
    rank = models.CharField(max_length=20, choices=RANK_CHOICES, default=RANK_BRONZE)
    gold_earned = models.PositiveIntegerField(default=0)
    quests_completed = models.PositiveIntegerField(default=0)
    quests_failed = models.PositiveIntegerField(default=0)
    avg_score = models.PositiveIntegerField(default=0)
    version = models.PositiveIntegerField(default=0)
    is_public = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-rp", "name"]

    def __str__(self) -> str:  # pragma: no cover
        return self.name

    @property
    def resolved_count(self) -> int:
        return self.quests_completed + self.quests_failed

    def touch_status(self, status: str) -> None:
        if self.status == status:
            return
        self.status = status
        self.save(update_fields=["status", "updated_at"])


class Quest(models.Model):
    """A task posted with an escrowed bounty."""

    DIFFICULTY_C = "C"
    DIFFICULTY_B = "B"
    DIFFICULTY_A = "A"
    DIFFICULTY_S = "S"

    DIFFICULTY_CHOICES = [
        (DIFFICULTY_C, "C"),
        (DIFFICULTY_B, "B"),
        (DIFFICULTY_A, "A"),
        (DIFFICULTY_S, "S"),
    ]

    CATEGORY_CHOICES = [
        ("coding", "coding"),
        ("writing", "writing"),
        ("research", "research"),
        ("data", "data"),
        ("creative", "creative"),
        ("general", "general"),
    ]

    STATUS_OPEN = "open"
    STATUS_IN_PROGRESS = "in_progress"
    STATUS_REVIEW = "review"
    STATUS_COMPLETED = "completed"
    STATUS_EXPIRED = "expired"

    STATUS_CHOICES = [
        (STATUS_OPEN, "open"),
        (STATUS_IN_PROGRESS, "in_progress"),
        (STATUS_REVIEW, "review"),
        (STATUS_COMPLETED, "completed"),
        (STATUS_EXPIRED, "expired"),
    ]

    ACCEPTING_STATUSES = (STATUS_OPEN, STATUS_IN_PROGRESS)
    SETTLEABLE_STATUSES = (STATUS_IN_PROGRESS, STATUS_REVIEW)

    title = models.CharField(max_length=200)
    description = models.TextField()
    acceptance_criteria = models.TextField(null=True, blank=True)
    difficulty = models.CharField(max_length=1, choices=DIFFICULTY_CHOICES, default=DIFFICULTY_C)
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES, default="general")
    gold_reward = models.PositiveIntegerField(default=0)
    rp_reward = models.PositiveIntegerField(default=0)
    max_attempts = models.PositiveIntegerField(default=5)
    time_limit_minutes = models.PositiveIntegerField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_OPEN, db_index=True)
    winning_attempt = models.ForeignKey(
        "QuestAttempt",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:  # pragma: no cover
        return self.title

    def is_accepting(self) -> bool:
        return self.status in self.ACCEPTING_STATUSES


class QuestAttempt(models.Model):
    """One party's run at one quest."""

    STATUS_IN_PROGRESS = "in_progress"
    STATUS_SUBMITTED = "submitted"
    STATUS_SCORED = "scored"
    STATUS_WON = "won"
    STATUS_LOST = "lost"

    STATUS_CHOICES = [
        (STATUS_IN_PROGRESS, "in_progress"),
        (STATUS_SUBMITTED, "submitted"),
        (STATUS_SCORED, "scored"),
        (STATUS_WON, "won"),
        (STATUS_LOST, "lost"),
    ]

    PENDING_STATUSES = (STATUS_IN_PROGRESS, STATUS_SUBMITTED)
    RESOLVED_STATUSES = (STATUS_SCORED, STATUS_WON, STATUS_LOST)

    quest = models.ForeignKey(Quest, on_delete=models.CASCADE, related_name="attempts")
    party = models.ForeignKey(Party, on_delete=models.CASCADE, related_name="attempts")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_IN_PROGRESS, db_index=True)
    result_text = models.TextField(null=True, blank=True)
    result_data = models.JSONField(null=True, blank=True)
    token_count = models.PositiveIntegerField(null=True, blank=True)
    score = models.PositiveSmallIntegerField(null=True, blank=True)
    feedback = models.TextField(null=True, blank=True)
    time_taken_seconds = models.PositiveIntegerField(null=True, blank=True)
    started_at = models.DateTimeField(default=timezone.now)
    submitted_at = models.DateTimeField(null=True, blank=True)
    scored_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["started_at", "id"]
        constraints = [
            models.UniqueConstraint(fields=["quest", "party"], name="unique_attempt_per_party"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Attempt {self.id} ({self.status})"


class ActivityLog(models.Model):
    """Append-only feed of marketplace events."""

    EVENT_QUEST_POSTED = "quest_posted"
    EVENT_QUEST_ACCEPTED = "quest_accepted"
    EVENT_QUEST_SUBMITTED = "quest_submitted"
    EVENT_QUEST_SCORED = "quest_scored"
    EVENT_QUEST_COMPLETED = "quest_completed"
    EVENT_RANK_UP = "rank_up"

    EVENT_CHOICES = [
        (EVENT_QUEST_POSTED, "quest_posted"),
        (EVENT_QUEST_ACCEPTED, "quest_accepted"),
        (EVENT_QUEST_SUBMITTED, "quest_submitted"),
        (EVENT_QUEST_SCORED, "quest_scored"),
        (EVENT_QUEST_COMPLETED, "quest_completed"),
        (EVENT_RANK_UP, "rank_up"),
    ]

    event_type = models.CharField(max_length=32, choices=EVENT_CHOICES)
    party = models.ForeignKey(Party, on_delete=models.SET_NULL, null=True, blank=True, related_name="activity")
    quest = models.ForeignKey(Quest, on_delete=models.SET_NULL, null=True, blank=True, related_name="activity")
    details = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["event_type", "created_at"], name="activity_event_created_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.event_type} @ {self.created_at:%Y-%m-%d %H:%M}"


class SiteSetting(models.Model):
    """Simple key/value store for runtime configuration."""

    key = models.CharField(max_length=100, unique=True)
    value = models.CharField(max_length=255)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["key"]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.key}={self.value}"


class OracleUsage(models.Model):
    """Tracks daily scoring requests sent to OpenRouter."""

    day = models.DateField(unique=True)
    request_count = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:  # pragma: no cover
        return f"Usage {self.day}: {self.request_count}"
