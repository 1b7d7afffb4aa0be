"""
Management command to set up all scheduled tasks for the Autoparts Commerce Platform.
"""

from typing import Any

from django.core.management.base import BaseCommand, CommandError

from apps.promotions.tasks import setup_promotions_scheduled_tasks


class Command(BaseCommand):
    help = "Set up all scheduled tasks for the Autoparts Commerce Platform"

    def _setup_task_category(
        self, category_name: str, emoji: str, setup_function: Any, results_dict: dict[str, str]
    ) -> None:
        """Set up a category of scheduled tasks and display results."""
        self.stdout.write("")
        self.stdout.write(f"{emoji} Setting up {category_name} tasks...")

        prefix = category_name.replace(" ", "_").lower()
        task_results = setup_function()
        results_dict.update({f"{prefix}_{k}": v for k, v in task_results.items()})

        for task_name, result in task_results.items():
            if result == "already_exists":
                self.stdout.write(self.style.WARNING(f"  - {prefix}_{task_name}: Task already exists (skipped)"))
            else:
                self.stdout.write(self.style.SUCCESS(f"  - {prefix}_{task_name}: Created successfully"))

    def handle(self, *args: Any, **options: Any) -> None:
        self.stdout.write("🚀 Setting up scheduled tasks...")
        all_results: dict[str, str] = {}

        try:
            self._setup_task_category("promotions", "🎖️", setup_promotions_scheduled_tasks, all_results)
        except Exception as e:
            raise CommandError(f"❌ Failed to set up scheduled tasks: {e}") from e

        self.stdout.write("")
        self.stdout.write("📋 Task Schedule:")
        self.stdout.write("  - Monthly Spend Reset: Daily at 00:05 store time (no-op unless a month has ended)")
        self.stdout.write("")
        self.stdout.write("🔧 Start workers: python manage.py qcluster")

        created_tasks = sum(1 for v in all_results.values() if v == "created")
        existing_tasks = len(all_results) - created_tasks
        self.stdout.write("")
        self.stdout.write(f"📊 Summary: {created_tasks} new tasks created, {existing_tasks} existing tasks skipped")
