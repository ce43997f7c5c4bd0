from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class CountryCount(BaseModel):
    country: str
    count: int


class ReferrerCount(BaseModel):
    referrer: str
    count: int


class DailyCount(BaseModel):
    date: str
    count: int


class DeviceStats(BaseModel):
    mobile: int = 0
    desktop: int = 0
    tablet: int = 0
    other: int = 0


class LinkAnalytics(BaseModel):
    total_access: int
    unique_ips: int
    top_countries: List[CountryCount]
    top_referrers: List[ReferrerCount]
    access_by_date: List[DailyCount]
    device_stats: DeviceStats


class OwnerAnalytics(BaseModel):
    total_access: int
    unique_ips: int
    top_referrers: List[ReferrerCount]
    total_shortlinks: int


class AccessLogEntry(BaseModel):
    """One access as shown to the link owner (IP masked)"""
    id: int
    accessed_at: datetime
    ip_address: str
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    country: Optional[str] = None
    device_type: Optional[str] = None


class AccessLogPage(BaseModel):
    data: List[AccessLogEntry]
    total: int
    page: int
    limit: int
    total_pages: int
