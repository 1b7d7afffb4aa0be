"""
Django-Q2 queue utilities for the Autoparts Commerce Platform
Type-safe task queueing with proper mypy support.
"""

from __future__ import annotations

from typing import Any

from django_q.tasks import async_task


def queue_by_name(func_path: str, *args: Any, **kwargs: Any) -> str:
    """Enqueue a task by dotted path (prevents import cycles in signals)."""
    return async_task(func_path, *args, **kwargs)
