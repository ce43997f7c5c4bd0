import math
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from shortlink_app.config import settings
from shortlink_app.exceptions import LinkNotFound, NotOwner
from shortlink_app.repositories.link_repository import LinkRepository
from shortlink_app.schemas.analytics import (
    AccessLogEntry, AccessLogPage, CountryCount, DailyCount, DeviceStats,
    LinkAnalytics, OwnerAnalytics, ReferrerCount,
)
from shortlink_app.services.access_recorder import mask_ip
from shortlink_app.services.temporal import utcnow
from shortlink_app.storage.strategies import AccessLogStorage


class AnalyticsService:
    """
    Read-only aggregates over stored access logs, served to link owners.

    Raw IPs never leave this service unmasked.
    """

    def __init__(
        self,
        db: Session,
        storage: AccessLogStorage,
        window_days: Optional[int] = None,
        top_n: Optional[int] = None
    ):
        self.links = LinkRepository(db)
        self.storage = storage
        self.window_days = window_days or settings.analytics_window_days
        self.top_n = top_n or settings.analytics_top_n

    def _owned_link_id(self, owner_id: str, link_id: str) -> str:
        link = self.links.get_by_id(link_id)
        if link is None:
            raise LinkNotFound()
        if link.owner_id != owner_id:
            raise NotOwner()
        return link.id

    async def link_analytics(
        self,
        owner_id: str,
        link_id: str,
        now: Optional[datetime] = None
    ) -> LinkAnalytics:
        """Totals, top countries/referrers, device split and a zero-filled daily series"""
        ids = [self._owned_link_id(owner_id, link_id)]
        now = now or utcnow()

        # Trailing window of ``window_days`` calendar days ending today
        first_day = (now - timedelta(days=self.window_days - 1)).date()
        since = datetime.combine(first_day, datetime.min.time())
        daily = await self.storage.daily_counts(ids, since)
        series = [
            DailyCount(date=day.isoformat(), count=daily.get(day.isoformat(), 0))
            for day in (first_day + timedelta(days=offset) for offset in range(self.window_days))
        ]

        devices = await self.storage.counts_by_device(ids)

        return LinkAnalytics(
            total_access=await self.storage.count_accesses(ids),
            unique_ips=await self.storage.count_unique_ips(ids),
            top_countries=[CountryCount(**row) for row in await self.storage.counts_by_country(ids, self.top_n)],
            top_referrers=[ReferrerCount(**row) for row in await self.storage.top_referrers(ids, self.top_n)],
            access_by_date=series,
            device_stats=DeviceStats(
                mobile=devices.get("mobile", 0),
                desktop=devices.get("desktop", 0),
                tablet=devices.get("tablet", 0),
                other=sum(count for device, count in devices.items()
                          if device not in ("mobile", "desktop", "tablet")),
            ),
        )

    async def owner_analytics(self, owner_id: str) -> OwnerAnalytics:
        """Aggregates across every live link the owner has"""
        ids = self.links.link_ids_by_owner(owner_id)
        return OwnerAnalytics(
            total_access=await self.storage.count_accesses(ids),
            unique_ips=await self.storage.count_unique_ips(ids),
            top_referrers=[ReferrerCount(**row) for row in await self.storage.top_referrers(ids, self.top_n)],
            total_shortlinks=len(ids),
        )

    async def access_logs(
        self,
        owner_id: str,
        link_id: str,
        page: int = 1,
        limit: int = 20
    ) -> AccessLogPage:
        """Newest-first access log page with masked IPs"""
        link_id = self._owned_link_id(owner_id, link_id)
        rows, total = await self.storage.list_entries(link_id, limit=limit, offset=(page - 1) * limit)

        return AccessLogPage(
            data=[
                AccessLogEntry(**{**row, "ip_address": mask_ip(row["ip_address"])})
                for row in rows
            ],
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit) if limit else 0,
        )
