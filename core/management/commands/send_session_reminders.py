from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from core.scheduling import run_reminder_sweep


class Command(BaseCommand):
    help = "Flag 24h and 1h reminders for confirmed sessions. Run it periodically (e.g. hourly from cron)."

    def add_arguments(self, parser):
        parser.add_argument(
            "--now",
            help="ISO-8601 instant to sweep at instead of the current time.",
        )

    def handle(self, *args, **options):
        now = timezone.now()
        if options.get("now"):
            now = parse_datetime(options["now"])
            if now is None or now.tzinfo is None:
                raise CommandError("--now must be an ISO-8601 instant with a timezone offset.")

        flagged = run_reminder_sweep(now=now)
        for due in flagged:
            self.stdout.write(f"{due.horizon} reminder for session {due.session_id} ({due.start.isoformat()})")
        self.stdout.write(self.style.SUCCESS(f"Processed {len(flagged)} reminders."))
