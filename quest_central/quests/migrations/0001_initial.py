from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone
import quests.models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Party",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=120, unique=True)),
                ("description", models.TextField(blank=True)),
                (
                    "architecture_type",
                    models.CharField(
                        choices=[
                            ("single_call", "Single Call"),
                            ("pipeline", "Pipeline"),
                            ("crew", "Crew"),
                            ("multi_agent", "Multi-Agent"),
                            ("swarm", "Swarm"),
                            ("custom", "Custom"),
                        ],
                        default="custom",
                        max_length=20,
                    ),
                ),
                ("architecture_detail", models.JSONField(blank=True, default=dict)),
                ("api_key", models.CharField(default=quests.models.generate_api_key, max_length=80, unique=True)),
                (
                    "status",
                    models.CharField(choices=[("idle", "idle"), ("active", "active")], default="idle", max_length=10),
                ),
                ("last_ping_at", models.DateTimeField(blank=True, null=True)),
                ("rp", models.PositiveIntegerField(default=0)),
                (
                    "rank",
                    models.CharField(
                        choices=[
                            ("Bronze", "Bronze"),
                            ("Silver", "Silver"),
                            ("Gold", "Gold"),
                            ("Platinum", "Platinum"),
                            ("Adamantite", "Adamantite"),
                        ],
                        default="Bronze",
                        max_length=20,
                    ),
                ),
                ("gold_earned", models.PositiveIntegerField(default=0)),
                ("quests_completed", models.PositiveIntegerField(default=0)),
                ("quests_failed", models.PositiveIntegerField(default=0)),
                ("avg_score", models.PositiveIntegerField(default=0)),
                ("version", models.PositiveIntegerField(default=0)),
                ("is_public", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={"ordering": ["-rp", "name"]},
        ),
        migrations.CreateModel(
            name="Quest",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=200)),
                ("description", models.TextField()),
                ("acceptance_criteria", models.TextField(blank=True, null=True)),
                (
                    "difficulty",
                    models.CharField(
                        choices=[("C", "C"), ("B", "B"), ("A", "A"), ("S", "S")], default="C", max_length=1
                    ),
                ),
                (
                    "category",
                    models.CharField(
                        choices=[
                            ("coding", "coding"),
                            ("writing", "writing"),
                            ("research", "research"),
                            ("data", "data"),
                            ("creative", "creative"),
                            ("general", "general"),
                        ],
                        default="general",
                        max_length=20,
                    ),
                ),
                ("gold_reward", models.PositiveIntegerField(default=0)),
                ("rp_reward", models.PositiveIntegerField(default=0)),
                ("max_attempts", models.PositiveIntegerField(default=5)),
                ("time_limit_minutes", models.PositiveIntegerField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("open", "open"),
                            ("in_progress", "in_progress"),
                            ("review", "review"),
                            ("completed", "completed"),
                            ("expired", "expired"),
                        ],
                        db_index=True,
                        default="open",
                        max_length=20,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={"ordering": ["-created_at"]},
        ),
        migrations.CreateModel(
            name="SiteSetting",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("key", models.CharField(max_length=100, unique=True)),
                ("value", models.CharField(max_length=255)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={"ordering": ["key"]},
        ),
        migrations.CreateModel(
            name="OracleUsage",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("day", models.DateField(unique=True)),
                ("request_count", models.PositiveIntegerField(default=0)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name="QuestAttempt",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("in_progress", "in_progress"),
                            ("submitted", "submitted"),
                            ("scored", "scored"),
                            ("won", "won"),
                            ("lost", "lost"),
                        ],
                        db_index=True,
                        default="in_progress",
                        max_length=20,
                    ),
                ),
                ("result_text", models.TextField(blank=True, null=True)),
                ("result_data", models.JSONField(blank=True, null=True)),
                ("token_count", models.PositiveIntegerField(blank=True, null=True)),
                ("score", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("feedback", models.TextField(blank=True, null=True)),
                ("time_taken_seconds", models.PositiveIntegerField(blank=True, null=True)),
                ("started_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("submitted_at", models.DateTimeField(blank=True, null=True)),
                ("scored_at", models.DateTimeField(blank=True, null=True)),
                (
                    "party",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="attempts", to="quests.party"
                    ),
                ),
                (
                    "quest",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="attempts", to="quests.quest"
                    ),
                ),
            ],
            options={"ordering": ["started_at", "id"]},
        ),
        migrations.AddConstraint(
            model_name="questattempt",
            constraint=models.UniqueConstraint(fields=("quest", "party"), name="unique_attempt_per_party"),
        ),
        migrations.AddField(
            model_name="quest",
            name="winning_attempt",
            field=models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.SET_NULL,
                related_name="+",
                to="quests.questattempt",
            ),
        ),
        migrations.CreateModel(
            name="ActivityLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "event_type",
                    models.CharField(
                        choices=[
                            ("quest_posted", "quest_posted"),
                            ("quest_accepted", "quest_accepted"),
                            ("quest_submitted", "quest_submitted"),
                            ("quest_scored", "quest_scored"),
                            ("quest_completed", "quest_completed"),
                            ("rank_up", "rank_up"),
                        ],
                        max_length=32,
                    ),
                ),
                ("details", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "party",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="activity",
                        to="quests.party",
                    ),
                ),
                (
                    "quest",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="activity",
                        to="quests.quest",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [models.Index(fields=["event_type", "created_at"], name="activity_event_created_idx")],
            },
        ),
    ]
