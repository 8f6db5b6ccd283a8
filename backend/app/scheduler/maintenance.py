"""Background maintenance for tokens, sessions and verification codes.

Jobs:
- close_stale_sessions: end sessions idle past SESSION_INACTIVITY_MINUTES
- purge_expired_tokens: delete temporary tokens past their expiry
- purge_old_sessions: delete sessions older than SESSION_RETENTION_DAYS
- sweep_verification_codes: drop expired owner verification codes

Each job selects rows by its own time filter, so jobs never contend with
each other or with the request path for the same rows.

Usage in main application startup:
    from app.scheduler import start_scheduler, shutdown_scheduler

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await start_scheduler()
        yield
        await shutdown_scheduler()

Or run once from cron:
    python scripts/run_maintenance.py --all
"""

import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, NamedTuple

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.db.session import AsyncSessionLocal
from app.services.session_recorder import SessionRecorder
from app.services.token_store import TokenStore
from app.services.verification_codes import verification_codes

logger = logging.getLogger("maintenance")

SessionFactory = async_sessionmaker[AsyncSession]

# Global scheduler instance
_scheduler: AsyncIOScheduler | None = None


class MaintenanceResult(NamedTuple):
    """Result of a maintenance job run."""

    job: str
    affected: int
    duration_seconds: float
    error: str | None = None


async def close_stale_sessions(session_factory: SessionFactory = AsyncSessionLocal) -> int:
    async with session_factory() as db:
        return await SessionRecorder(db).cleanup_stale(settings.SESSION_INACTIVITY_MINUTES)


async def purge_expired_tokens(session_factory: SessionFactory = AsyncSessionLocal) -> int:
    async with session_factory() as db:
        return await TokenStore(db).purge_expired_temporary()


async def purge_old_sessions(session_factory: SessionFactory = AsyncSessionLocal) -> int:
    async with session_factory() as db:
        return await SessionRecorder(db).purge_older_than(settings.SESSION_RETENTION_DAYS)


async def sweep_verification_codes(session_factory: SessionFactory = AsyncSessionLocal) -> int:
    """Process-local; no database access."""
    return verification_codes.sweep()


MAINTENANCE_JOBS: dict[str, Callable[[SessionFactory], Awaitable[int]]] = {
    "stale_sessions": close_stale_sessions,
    "expired_tokens": purge_expired_tokens,
    "session_retention": purge_old_sessions,
    "verification_codes": sweep_verification_codes,
}


async def run_job(
    name: str,
    session_factory: SessionFactory = AsyncSessionLocal,
) -> MaintenanceResult:
    """Run one maintenance job, logging and capturing any failure."""
    job = MAINTENANCE_JOBS[name]
    started = time.monotonic()

    try:
        affected = await job(session_factory)
    except Exception as e:
        logger.exception(
            f"Maintenance job {name} failed: {e}",
            extra={"event_type": "maintenance.error", "job": name},
        )
        return MaintenanceResult(
            job=name,
            affected=0,
            duration_seconds=time.monotonic() - started,
            error=str(e),
        )

    duration = time.monotonic() - started
    logger.info(
        f"Maintenance job {name} completed: {affected} rows",
        extra={
            "event_type": "maintenance.complete",
            "job": name,
            "affected": affected,
            "duration_seconds": duration,
        },
    )
    return MaintenanceResult(job=name, affected=affected, duration_seconds=duration)


async def run_maintenance(
    jobs: list[str] | None = None,
    session_factory: SessionFactory = AsyncSessionLocal,
) -> list[MaintenanceResult]:
    """Run the named jobs (all jobs by default) one after another."""
    return [await run_job(name, session_factory) for name in (jobs or list(MAINTENANCE_JOBS))]


async def start_scheduler() -> None:
    """
    Start the maintenance scheduler.

    Call this during application startup.
    """
    global _scheduler

    if _scheduler is not None:
        logger.warning("Scheduler already running")
        return

    _scheduler = AsyncIOScheduler(timezone=timezone.utc)

    _scheduler.add_job(
        run_job,
        "interval",
        minutes=settings.SESSION_CLEANUP_INTERVAL_MINUTES,
        args=["stale_sessions"],
        id="stale_sessions",
        name="Close Stale Sessions",
        max_instances=1,
        coalesce=True,
    )
    _scheduler.add_job(
        run_job,
        "interval",
        hours=1,
        args=["expired_tokens"],
        id="expired_tokens",
        name="Purge Expired Temporary Tokens",
        max_instances=1,
        coalesce=True,
    )
    _scheduler.add_job(
        run_job,
        "cron",
        hour=2,
        minute=0,
        args=["session_retention"],
        id="session_retention",
        name="Session Retention",
        max_instances=1,
        coalesce=True,
    )
    _scheduler.add_job(
        run_job,
        "interval",
        minutes=1,
        args=["verification_codes"],
        id="verification_codes",
        name="Sweep Verification Codes",
        max_instances=1,
        coalesce=True,
    )

    _scheduler.start()
    logger.info("Maintenance scheduler started")


async def shutdown_scheduler() -> None:
    """
    Shutdown the scheduler gracefully.

    Call this during application shutdown.
    """
    global _scheduler

    if _scheduler:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Maintenance scheduler stopped")


def get_scheduler_status() -> dict[str, Any]:
    """
    Get current scheduler status for monitoring.

    Returns:
        Dictionary with scheduler state and job information
    """
    if not _scheduler:
        return {
            "running": False,
            "jobs": [],
            "checked_at": datetime.now(timezone.utc).isoformat(),
        }

    jobs = []
    for job in _scheduler.get_jobs():
        next_run = job.next_run_time
        jobs.append(
            {
                "id": job.id,
                "name": job.name,
                "next_run": next_run.isoformat() if next_run else None,
                "trigger": str(job.trigger),
            }
        )

    return {
        "running": _scheduler.running,
        "jobs": jobs,
        "checked_at": datetime.now(timezone.utc).isoformat(),
    }
