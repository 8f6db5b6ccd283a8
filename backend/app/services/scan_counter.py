"""Per-profile scan counter and bounded scan history.

The count is incremented in SQL (``scan_count = scan_count + 1``) so
concurrent scans never lose an increment. The history list is rebuilt from
the loaded row and written back whole; under heavy concurrency the last
writer wins and a history entry may be dropped, which is acceptable for
display-only analytics.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from app.core.config import settings
from app.core.metrics import scans_recorded_total
from app.models.base import utc_now
from app.models.entity import ProfileEntity

logger = logging.getLogger(__name__)


def append_scan_history(
    history: list[dict[str, Any]] | None,
    entry: dict[str, Any],
    cap: int,
) -> list[dict[str, Any]]:
    """Return a new history with ``entry`` appended and the oldest entries evicted past ``cap``."""
    updated = [*(history or []), entry]
    if cap <= 0:
        return []
    return updated[-cap:]


class ScanCounter:
    """Records NFC scans against a student or artist row."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Callable[[], datetime] = utc_now,
        history_limit: int | None = None,
    ):
        self.db = db
        self.clock = clock
        self.history_limit = (
            settings.SCAN_HISTORY_LIMIT if history_limit is None else history_limit
        )

    async def record_scan(
        self,
        entity: ProfileEntity,
        ip_address: str | None = None,
        user_agent: str | None = None,
        scanned_at: datetime | None = None,
    ) -> int:
        """Increment the scan count, stamp ``last_scanned`` and append history. Returns the new count."""
        scanned_at = scanned_at or self.clock()
        history = append_scan_history(
            entity.scan_history,
            {
                "scanned_at": scanned_at.isoformat(),
                "ip_address": ip_address,
                "user_agent": user_agent,
            },
            self.history_limit,
        )

        model = type(entity)
        result = await self.db.execute(
            update(model)
            .where(model.id == entity.id)
            .values(
                scan_count=model.scan_count + 1,
                last_scanned=scanned_at,
                scan_history=history,
            )
            .returning(model.scan_count)
            .execution_options(synchronize_session=False)
        )
        scan_count = result.scalar_one()
        await self.db.commit()

        # Keep the loaded instance in step with the row without another SELECT
        set_committed_value(entity, "scan_count", scan_count)
        set_committed_value(entity, "last_scanned", scanned_at)
        set_committed_value(entity, "scan_history", history)

        scans_recorded_total.labels(entity_type=entity.entity_ref.entity_type.value).inc()
        logger.debug(f"Recorded scan #{scan_count} for {entity.entity_ref}")
        return scan_count
