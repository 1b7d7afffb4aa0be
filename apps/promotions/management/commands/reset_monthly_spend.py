"""
Reset monthly spend for customers whose spend period has ended.
"""

from typing import Any

from django.core.management.base import BaseCommand, CommandParser

from apps.common.queue import queue_by_name
from apps.promotions.config import MONTHLY_RESET_TASK
from apps.promotions.services import TierService


class Command(BaseCommand):
    help = "Reset stale monthly spend and recompute loyalty tiers"

    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument(
            "--async",
            action="store_true",
            dest="run_async",
            help="Queue the reset on the Django-Q cluster instead of running it inline",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Only report how many customers would be reset",
        )

    def handle(self, *args: Any, **options: Any) -> None:
        if options["dry_run"]:
            stale = TierService.stale_customer_ids()
            self.stdout.write(f"🔍 {len(stale)} customer(s) have a stale spend period")
            return

        if options["run_async"]:
            task_id = queue_by_name(MONTHLY_RESET_TASK)
            self.stdout.write(self.style.SUCCESS(f"📤 Queued monthly spend reset (task {task_id})"))
            return

        reset_count = TierService.reset_monthly_spend()
        self.stdout.write(self.style.SUCCESS(f"✅ Reset monthly spend for {reset_count} customer(s)"))
