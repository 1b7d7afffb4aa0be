"""
Promotions background tasks.

Django-Q2 tasks for the month-boundary spend reset. The reset only touches
customers whose stored spend period is stale, so it is scheduled daily and
re-running it (or catching up after downtime) is harmless.
"""

from __future__ import annotations

import logging
from typing import Any

from django_q.models import Schedule
from django_q.tasks import schedule

from apps.promotions.config import MONTHLY_RESET_SCHEDULE_NAME, MONTHLY_RESET_TASK
from apps.promotions.services import TierService

logger = logging.getLogger(__name__)


def reset_monthly_spend_task() -> dict[str, Any]:
    """Reset stale monthly spend and re-tier the affected customers."""
    logger.info("📅 [PromotionsTasks] Starting monthly spend reset")
    try:
        reset_count = TierService.reset_monthly_spend()
    except Exception as e:
        logger.exception(f"🔥 [PromotionsTasks] Monthly spend reset failed: {e}")
        raise
    return {"success": True, "reset_count": reset_count}


def setup_promotions_scheduled_tasks() -> dict[str, str]:
    """Set up all promotions scheduled tasks."""
    tasks_created = {}

    existing_tasks = list(
        Schedule.objects.filter(name__in=[MONTHLY_RESET_SCHEDULE_NAME]).values_list("name", flat=True)
    )

    # Daily shortly after midnight store time; only the 1st has work to do
    if MONTHLY_RESET_SCHEDULE_NAME not in existing_tasks:
        schedule(
            MONTHLY_RESET_TASK,
            schedule_type=Schedule.CRON,
            cron="5 0 * * *",
            name=MONTHLY_RESET_SCHEDULE_NAME,
            cluster="autoparts-cluster",
        )
        tasks_created["monthly_spend_reset"] = "created"
    else:
        tasks_created["monthly_spend_reset"] = "already_exists"

    logger.info(f"✅ [PromotionsTasks] Scheduled tasks setup: {tasks_created}")
    return tasks_created
