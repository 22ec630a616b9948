from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from quests.services import settlement
from quests.services.settlement import AggregateConflict


class Command(BaseCommand):
    help = "Settle attempts still waiting in 'submitted' (lost tasks, worker crashes)."

    def add_arguments(self, parser):
        parser.add_argument("--limit", type=int, default=25,
                            help="Maximum attempts to handle this run (default: 25).")
        parser.add_argument("--stale-seconds", type=int, default=0,
                            help="Only pick attempts submitted at least this long ago.")
        parser.add_argument("--sync", action="store_true",
                            help="Settle in this process instead of enqueueing Celery tasks.")

    def handle(self, *args, **options):
        limit = options.get("limit")
        if limit is None or limit <= 0:
            raise CommandError("Limit must be positive.")
        stale_seconds = max(0, options.get("stale_seconds") or 0)
        attempt_ids = settlement.stale_attempt_ids(older_than_seconds=stale_seconds, limit=limit)
        if not attempt_ids:
            self.stdout.write("No submitted attempts awaiting settlement.")
            return

        if not options.get("sync"):
            from quests.tasks import settle_attempt

            for attempt_id in attempt_ids:
                settle_attempt.delay(attempt_id)
            self.stdout.write(self.style.SUCCESS(f"Enqueued settlement for {len(attempt_ids)} attempts."))
            return

        scored = 0
        failed = 0
        for attempt_id in attempt_ids:
            try:
                result = settlement.settle_attempt(attempt_id)
            except AggregateConflict as exc:
                failed += 1
                self.stderr.write(f"Attempt {attempt_id}: {exc}")
                continue
            if result is not None and result.scored:
                scored += 1
        closed = settlement.close_ready_quests()
        self.stdout.write(self.style.SUCCESS(
            f"Scored {scored} attempts; {failed} conflicts; closed {len(closed)} quests."
        ))
