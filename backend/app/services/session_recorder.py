"""Profile view session recording and reporting.

A session is opened for every successful token resolution. Device, browser
and OS are classified once from the raw user agent at creation; the
classification is an ordered, case-insensitive substring match where the
first rule that matches wins. Chrome-derived browsers (Edge, Opera) carry
``chrome`` in their user agent and therefore report as Chrome.
"""

import logging
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import SessionNotFoundError
from app.core.metrics import (
    active_profile_sessions,
    profile_sessions_closed_total,
    profile_sessions_started_total,
)
from app.models.base import utc_now
from app.models.entity import EntityRef, EntityType
from app.models.profile_session import (
    DeviceType,
    ProfileSession,
    SessionAction,
    SessionActionType,
    format_duration,
)

logger = logging.getLogger(__name__)

DEFAULT_REFERRER = "Direct"
UNKNOWN = "Unknown"

_DEVICE_RULES: tuple[tuple[tuple[str, ...], DeviceType], ...] = (
    (("mobile", "android"), DeviceType.MOBILE),
    (("tablet", "ipad"), DeviceType.TABLET),
    (("mozilla", "chrome", "safari"), DeviceType.DESKTOP),
)

_BROWSER_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("chrome",), "Chrome"),
    (("firefox",), "Firefox"),
    (("safari",), "Safari"),
    (("edge",), "Edge"),
    (("opera",), "Opera"),
)

_OS_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("windows",), "Windows"),
    (("mac",), "macOS"),
    (("linux",), "Linux"),
    (("android",), "Android"),
    (("ios", "iphone", "ipad"), "iOS"),
)


@dataclass(frozen=True)
class ClientInfo:
    device_type: DeviceType
    browser: str
    os: str


def _first_match(ua: str, rules, default):
    for needles, label in rules:
        if any(needle in ua for needle in needles):
            return label
    return default


def classify_user_agent(user_agent: str | None) -> ClientInfo:
    """
    Derive device type, browser and OS from a raw user agent.

    >>> classify_user_agent("Mozilla/5.0 Chrome/100 Safari/537")
    ClientInfo(device_type=<DeviceType.DESKTOP: 'desktop'>, browser='Chrome', os='Unknown')
    """
    ua = (user_agent or "").lower()
    return ClientInfo(
        device_type=_first_match(ua, _DEVICE_RULES, DeviceType.UNKNOWN),
        browser=_first_match(ua, _BROWSER_RULES, UNKNOWN),
        os=_first_match(ua, _OS_RULES, UNKNOWN),
    )


def _entity_filter(entity_ref: EntityRef):
    column = (
        ProfileSession.student_id
        if entity_ref.entity_type == EntityType.STUDENT
        else ProfileSession.artist_id
    )
    return and_(
        ProfileSession.entity_type == entity_ref.entity_type,
        column == entity_ref.entity_id,
    )


def _elapsed_seconds(start: datetime, end: datetime) -> int:
    return max(0, int((end - start).total_seconds()))


class SessionRecorder:
    """
    Service for profile view sessions.

    Writes commit immediately; a session is independent of the scan counter
    and of the token update that preceded it.
    """

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def begin(
        self,
        entity_ref: EntityRef,
        ip_address: str | None = None,
        user_agent: str | None = None,
        referrer: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ProfileSession:
        """Open an active session for a successful resolution."""
        user_agent = (user_agent or UNKNOWN)[:500]
        client = classify_user_agent(user_agent)

        session = ProfileSession(
            entity_ref=entity_ref,
            ip_address=(ip_address or "0.0.0.0")[:45],
            user_agent=user_agent,
            referrer=(referrer or DEFAULT_REFERRER)[:500],
            device_type=client.device_type,
            browser=client.browser,
            os=client.os,
            start_time=self.clock(),
            duration=0,
            is_active=True,
            page_views=1,
            session_metadata=metadata or {},
            actions=[],
        )
        self.db.add(session)
        await self.db.commit()

        profile_sessions_started_total.labels(entity_type=entity_ref.entity_type.value).inc()
        logger.info(
            f"Session {session.session_id} started for {entity_ref}",
            extra={
                "event_type": "session.started",
                "session_id": session.session_id,
                "entity_type": entity_ref.entity_type.value,
                "entity_id": entity_ref.entity_id,
                "device_type": client.device_type.value,
            },
        )
        return session

    async def get(self, session_id: str) -> ProfileSession:
        result = await self.db.execute(
            select(ProfileSession)
            .where(ProfileSession.session_id == session_id)
            .execution_options(populate_existing=True)
        )
        session = result.scalar_one_or_none()
        if session is None:
            raise SessionNotFoundError()
        return session

    async def record_action(
        self,
        session_id: str,
        action_type: SessionActionType,
        details: str | None = None,
    ) -> ProfileSession:
        """Append an action and count it as a page view."""
        session = await self.get(session_id)

        session.actions.append(
            SessionAction(
                action_type=SessionActionType(action_type),
                occurred_at=self.clock(),
                details=details,
            )
        )
        session.page_views = ProfileSession.page_views + 1
        await self.db.commit()
        await self.db.refresh(session, attribute_names=["page_views"])

        logger.debug(f"Recorded {action_type} on session {session_id}")
        return session

    async def end(self, session_id: str) -> ProfileSession:
        """End an active session. Ending an inactive session changes nothing."""
        session = await self.get(session_id)
        if not session.is_active:
            return session

        now = self.clock()
        duration = _elapsed_seconds(session.start_time, now)
        result = await self.db.execute(
            update(ProfileSession)
            .where(ProfileSession.id == session.id, ProfileSession.is_active.is_(True))
            .values(end_time=now, duration=duration, is_active=False)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(session)

        if result.rowcount:
            profile_sessions_closed_total.labels(reason="explicit").inc()
            logger.info(
                f"Session {session_id} ended after {format_duration(duration)}",
                extra={"event_type": "session.ended", "session_id": session_id},
            )
        return session

    async def cleanup_stale(self, inactivity_minutes: int | None = None) -> int:
        """
        End every active session older than the inactivity threshold.

        Each row is ended with its own duration; the ``is_active`` guard makes
        concurrent sweeps and explicit ends safe to overlap.
        """
        if inactivity_minutes is None:
            inactivity_minutes = settings.SESSION_INACTIVITY_MINUTES

        now = self.clock()
        cutoff = now - timedelta(minutes=inactivity_minutes)

        result = await self.db.execute(
            select(ProfileSession.id, ProfileSession.start_time).where(
                ProfileSession.is_active.is_(True),
                ProfileSession.end_time.is_(None),
                ProfileSession.start_time < cutoff,
            )
        )
        stale = result.all()

        closed = 0
        for pk, start_time in stale:
            updated = await self.db.execute(
                update(ProfileSession)
                .where(ProfileSession.id == pk, ProfileSession.is_active.is_(True))
                .values(
                    end_time=now,
                    duration=_elapsed_seconds(start_time, now),
                    is_active=False,
                )
                .execution_options(synchronize_session=False)
            )
            closed += updated.rowcount or 0
        await self.db.commit()

        if closed:
            profile_sessions_closed_total.labels(reason="stale").inc(closed)
            logger.info(
                f"Closed {closed} stale sessions (inactive > {inactivity_minutes} min)",
                extra={"event_type": "session.cleanup", "count": closed},
            )

        active_count = await self.db.scalar(
            select(func.count()).select_from(ProfileSession).where(
                ProfileSession.is_active.is_(True)
            )
        )
        active_profile_sessions.set(active_count or 0)
        return closed

    async def purge_older_than(self, days: int | None = None) -> int:
        """Delete sessions created more than ``days`` ago. Returns rows removed."""
        if days is None:
            days = settings.SESSION_RETENTION_DAYS

        cutoff = self.clock() - timedelta(days=days)
        expired_ids = select(ProfileSession.id).where(ProfileSession.created_at < cutoff)

        # Actions first: SQLite does not enforce ON DELETE CASCADE by default
        await self.db.execute(
            delete(SessionAction).where(SessionAction.session_pk.in_(expired_ids))
        )
        result = await self.db.execute(
            delete(ProfileSession).where(ProfileSession.created_at < cutoff)
        )
        await self.db.commit()

        if result.rowcount:
            logger.info(
                f"Purged {result.rowcount} sessions older than {days} days",
                extra={"event_type": "session.purged", "count": result.rowcount},
            )
        return result.rowcount or 0

    # =========================================================================
    # Reporting
    # =========================================================================

    async def list_for_entity(
        self,
        entity_ref: EntityRef,
        active: bool | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[ProfileSession], int]:
        """Sessions for one entity, newest first, with the total match count."""
        conditions = [_entity_filter(entity_ref)]
        if active is not None:
            conditions.append(ProfileSession.is_active.is_(active))

        total = await self.db.scalar(
            select(func.count()).select_from(ProfileSession).where(*conditions)
        )

        result = await self.db.execute(
            select(ProfileSession)
            .where(*conditions)
            .order_by(ProfileSession.start_time.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total or 0

    async def list_active(self, limit: int = 100) -> list[ProfileSession]:
        result = await self.db.execute(
            select(ProfileSession)
            .where(ProfileSession.is_active.is_(True))
            .order_by(ProfileSession.start_time.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def entity_analytics(self, entity_ref: EntityRef, days: int = 30) -> dict[str, Any]:
        """Visitor analytics for one entity over the last ``days`` days."""
        since = self.clock() - timedelta(days=days)
        result = await self.db.execute(
            select(
                ProfileSession.ip_address,
                ProfileSession.page_views,
                ProfileSession.duration,
                ProfileSession.device_type,
                ProfileSession.browser,
                ProfileSession.start_time,
            ).where(_entity_filter(entity_ref), ProfileSession.start_time >= since)
        )
        rows = result.all()

        total_sessions = len(rows)
        total_page_views = sum(row.page_views for row in rows)
        total_duration = sum(row.duration for row in rows)

        return {
            "total_sessions": total_sessions,
            "unique_visitors": len({row.ip_address for row in rows}),
            "total_page_views": total_page_views,
            "avg_duration": total_duration // total_sessions if total_sessions else 0,
            "avg_page_views_per_session": (
                round(total_page_views / total_sessions, 2) if total_sessions else 0.0
            ),
            "device_breakdown": dict(Counter(DeviceType(row.device_type).value for row in rows)),
            "browser_breakdown": dict(Counter(row.browser for row in rows)),
            "hourly_breakdown": dict(Counter(row.start_time.hour for row in rows)),
            "period": f"Last {days} days",
        }

    async def overview(self, days: int = 7, top: int = 10) -> dict[str, Any]:
        """Service-wide session statistics over the last ``days`` days."""
        since = self.clock() - timedelta(days=days)
        result = await self.db.execute(
            select(
                ProfileSession.entity_type,
                ProfileSession.student_id,
                ProfileSession.artist_id,
                ProfileSession.ip_address,
                ProfileSession.is_active,
                ProfileSession.device_type,
                ProfileSession.browser,
                ProfileSession.start_time,
            ).where(ProfileSession.start_time >= since)
        )
        rows = result.all()

        views: Counter = Counter()
        visitors: dict[tuple[str, str], set[str]] = {}
        daily: dict[str, dict[str, Any]] = {}
        for row in rows:
            entity_type = EntityType(row.entity_type)
            key = (
                entity_type.value,
                row.student_id if entity_type == EntityType.STUDENT else row.artist_id,
            )
            views[key] += 1
            visitors.setdefault(key, set()).add(row.ip_address)

            day = row.start_time.date().isoformat()
            bucket = daily.setdefault(day, {"sessions": 0, "ips": set()})
            bucket["sessions"] += 1
            bucket["ips"].add(row.ip_address)

        return {
            "period": f"Last {days} days",
            "total_sessions": len(rows),
            "active_sessions": sum(1 for row in rows if row.is_active),
            "unique_visitors": len({row.ip_address for row in rows}),
            "top_viewed": [
                {
                    "entity_type": entity_type,
                    "entity_id": entity_id,
                    "view_count": count,
                    "unique_views": len(visitors[(entity_type, entity_id)]),
                }
                for (entity_type, entity_id), count in views.most_common(top)
            ],
            "device_breakdown": dict(Counter(DeviceType(row.device_type).value for row in rows)),
            "browser_breakdown": dict(Counter(row.browser for row in rows)),
            "daily_trend": [
                {"date": day, "sessions": bucket["sessions"], "unique_visitors": len(bucket["ips"])}
                for day, bucket in sorted(daily.items())
            ],
        }
