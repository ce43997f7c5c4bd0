"""
Access log storage strategies using Strategy Pattern.

Allows switching where access events land and how they are aggregated:
- Database: the main relational datastore (default)
- Memory: development/testing, no persistence
"""

import logging
from abc import ABC, abstractmethod
from collections import Counter
from datetime import datetime
from typing import Callable, Dict, List, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shortlink_app.models.access_log import AccessLog
from shortlink_app.queue.models import AccessEvent

logger = logging.getLogger(__name__)


class AccessLogStorage(ABC):
    """
    Abstract base class for access log storage strategies.

    Writes are append-only batches of access events. Every read takes a
    collection of link ids so the same queries serve per-link and per-owner
    analytics.
    """

    @abstractmethod
    async def store_entries(self, events: List[AccessEvent]) -> bool:
        """
        Store access events in batch.

        Returns:
            True if successful, False otherwise
        """
        pass

    async def store_entry(self, event: AccessEvent) -> bool:
        """Store a single access event"""
        return await self.store_entries([event])

    @abstractmethod
    async def count_accesses(self, link_ids: Sequence[str]) -> int:
        """Total number of recorded accesses"""
        pass

    @abstractmethod
    async def count_unique_ips(self, link_ids: Sequence[str]) -> int:
        """Number of distinct client IPs"""
        pass

    @abstractmethod
    async def counts_by_country(self, link_ids: Sequence[str], limit: int = 10) -> List[Dict]:
        """Top countries as ``{"country", "count"}``, most frequent first"""
        pass

    @abstractmethod
    async def top_referrers(self, link_ids: Sequence[str], limit: int = 10) -> List[Dict]:
        """Top non-empty referrers as ``{"referrer", "count"}``, most frequent first"""
        pass

    @abstractmethod
    async def counts_by_device(self, link_ids: Sequence[str]) -> Dict[str, int]:
        """Accesses grouped by device type"""
        pass

    @abstractmethod
    async def daily_counts(self, link_ids: Sequence[str], since: datetime) -> Dict[str, int]:
        """Accesses per ISO date (``YYYY-MM-DD``) at or after ``since``"""
        pass

    @abstractmethod
    async def list_entries(
        self,
        link_id: str,
        limit: int = 20,
        offset: int = 0
    ) -> Tuple[List[Dict], int]:
        """Newest-first page of raw entries plus the total entry count"""
        pass


class DatabaseAccessLogStorage(AccessLogStorage):
    """
    Stores access events as ``AccessLog`` rows in the main datastore.

    Opens a short-lived session per call from ``session_factory`` so it can
    be shared by the worker and request handlers.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    async def store_entries(self, events: List[AccessEvent]) -> bool:
        if not events:
            return True

        session = self.session_factory()
        try:
            session.add_all([
                AccessLog(
                    link_id=event.link_id,
                    accessed_at=event.timestamp,
                    ip_address=event.ip_address,
                    user_agent=event.user_agent,
                    referrer=event.referrer,
                    country=event.country,
                    device_type=event.device_type,
                )
                for event in events
            ])
            session.commit()
            return True

        except SQLAlchemyError as e:
            session.rollback()
            logger.warning("Access log storage error: %s", e)
            return False
        finally:
            session.close()

    async def count_accesses(self, link_ids: Sequence[str]) -> int:
        if not link_ids:
            return 0
        with self.session_factory() as session:
            return session.query(func.count(AccessLog.id)).filter(
                AccessLog.link_id.in_(link_ids)
            ).scalar() or 0

    async def count_unique_ips(self, link_ids: Sequence[str]) -> int:
        if not link_ids:
            return 0
        with self.session_factory() as session:
            return session.query(func.count(func.distinct(AccessLog.ip_address))).filter(
                AccessLog.link_id.in_(link_ids)
            ).scalar() or 0

    async def counts_by_country(self, link_ids: Sequence[str], limit: int = 10) -> List[Dict]:
        if not link_ids:
            return []
        count = func.count(AccessLog.id).label("count")
        with self.session_factory() as session:
            rows = session.query(AccessLog.country, count).filter(
                AccessLog.link_id.in_(link_ids)
            ).group_by(AccessLog.country).order_by(count.desc(), AccessLog.country).limit(limit).all()
        return [{"country": country or "Unknown", "count": total} for country, total in rows]

    async def top_referrers(self, link_ids: Sequence[str], limit: int = 10) -> List[Dict]:
        if not link_ids:
            return []
        count = func.count(AccessLog.id).label("count")
        with self.session_factory() as session:
            rows = session.query(AccessLog.referrer, count).filter(
                AccessLog.link_id.in_(link_ids),
                AccessLog.referrer.isnot(None),
                AccessLog.referrer != "",
            ).group_by(AccessLog.referrer).order_by(count.desc(), AccessLog.referrer).limit(limit).all()
        return [{"referrer": referrer, "count": total} for referrer, total in rows]

    async def counts_by_device(self, link_ids: Sequence[str]) -> Dict[str, int]:
        if not link_ids:
            return {}
        with self.session_factory() as session:
            rows = session.query(AccessLog.device_type, func.count(AccessLog.id)).filter(
                AccessLog.link_id.in_(link_ids)
            ).group_by(AccessLog.device_type).all()
        return {device or "other": total for device, total in rows}

    async def daily_counts(self, link_ids: Sequence[str], since: datetime) -> Dict[str, int]:
        if not link_ids:
            return {}
        day = func.date(AccessLog.accessed_at)
        with self.session_factory() as session:
            rows = session.query(day, func.count(AccessLog.id)).filter(
                AccessLog.link_id.in_(link_ids),
                AccessLog.accessed_at >= since,
            ).group_by(day).all()
        # SQLite returns strings, PostgreSQL returns date objects
        return {str(date): total for date, total in rows}

    async def list_entries(
        self,
        link_id: str,
        limit: int = 20,
        offset: int = 0
    ) -> Tuple[List[Dict], int]:
        with self.session_factory() as session:
            query = session.query(AccessLog).filter(AccessLog.link_id == link_id)
            total = query.count()
            rows = query.order_by(
                AccessLog.accessed_at.desc(), AccessLog.id.desc()
            ).offset(offset).limit(limit).all()
            entries = [
                {
                    "id": row.id,
                    "accessed_at": row.accessed_at,
                    "ip_address": row.ip_address,
                    "user_agent": row.user_agent,
                    "referrer": row.referrer,
                    "country": row.country,
                    "device_type": row.device_type,
                }
                for row in rows
            ]
        return entries, total


class InMemoryAccessLogStorage(AccessLogStorage):
    """
    In-memory access log storage.

    Lost on restart and private to the process. Used in
    development/testing environments.
    """

    def __init__(self):
        self._entries: List[Dict] = []

    def _for_links(self, link_ids: Sequence[str]) -> List[Dict]:
        wanted = set(link_ids)
        return [entry for entry in self._entries if entry["link_id"] in wanted]

    async def store_entries(self, events: List[AccessEvent]) -> bool:
        for event in events:
            self._entries.append({
                "id": len(self._entries) + 1,
                "link_id": event.link_id,
                "accessed_at": event.timestamp,
                "ip_address": event.ip_address,
                "user_agent": event.user_agent,
                "referrer": event.referrer,
                "country": event.country,
                "device_type": event.device_type,
            })
        return True

    async def count_accesses(self, link_ids: Sequence[str]) -> int:
        return len(self._for_links(link_ids))

    async def count_unique_ips(self, link_ids: Sequence[str]) -> int:
        return len({entry["ip_address"] for entry in self._for_links(link_ids)})

    async def counts_by_country(self, link_ids: Sequence[str], limit: int = 10) -> List[Dict]:
        counts = Counter(entry["country"] or "Unknown" for entry in self._for_links(link_ids))
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:limit]
        return [{"country": country, "count": total} for country, total in ranked]

    async def top_referrers(self, link_ids: Sequence[str], limit: int = 10) -> List[Dict]:
        counts = Counter(
            entry["referrer"] for entry in self._for_links(link_ids) if entry["referrer"]
        )
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:limit]
        return [{"referrer": referrer, "count": total} for referrer, total in ranked]

    async def counts_by_device(self, link_ids: Sequence[str]) -> Dict[str, int]:
        return dict(Counter(entry["device_type"] or "other" for entry in self._for_links(link_ids)))

    async def daily_counts(self, link_ids: Sequence[str], since: datetime) -> Dict[str, int]:
        return dict(Counter(
            entry["accessed_at"].date().isoformat()
            for entry in self._for_links(link_ids)
            if entry["accessed_at"] >= since
        ))

    async def list_entries(
        self,
        link_id: str,
        limit: int = 20,
        offset: int = 0
    ) -> Tuple[List[Dict], int]:
        entries = sorted(
            self._for_links([link_id]),
            key=lambda entry: (entry["accessed_at"], entry["id"]),
            reverse=True,
        )
        page = [{k: v for k, v in entry.items() if k != "link_id"} for entry in entries[offset:offset + limit]]
        return page, len(entries)
