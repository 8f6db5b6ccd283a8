"""Scheduler module for background tasks."""

from app.scheduler.maintenance import (
    get_scheduler_status,
    run_maintenance,
    shutdown_scheduler,
    start_scheduler,
)

__all__ = [
    "start_scheduler",
    "shutdown_scheduler",
    "get_scheduler_status",
    "run_maintenance",
]
