from fastapi import APIRouter, Depends, Query

from shortlink_app.dependencies import get_analytics_service, get_owner_id
from shortlink_app.schemas.analytics import AccessLogPage, LinkAnalytics, OwnerAnalytics
from shortlink_app.services.analytics_service import AnalyticsService

router = APIRouter(tags=["analytics"])


@router.get("/links/{link_id}/analytics", response_model=LinkAnalytics)
async def get_link_analytics(
    link_id: str,
    owner_id: str = Depends(get_owner_id),
    analytics: AnalyticsService = Depends(get_analytics_service)
):
    return await analytics.link_analytics(owner_id, link_id)


@router.get("/links/{link_id}/access-logs", response_model=AccessLogPage)
async def get_access_logs(
    link_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    owner_id: str = Depends(get_owner_id),
    analytics: AnalyticsService = Depends(get_analytics_service)
):
    """Access log entries with masked client IPs"""
    return await analytics.access_logs(owner_id, link_id, page=page, limit=limit)


@router.get("/analytics", response_model=OwnerAnalytics)
async def get_owner_analytics(
    owner_id: str = Depends(get_owner_id),
    analytics: AnalyticsService = Depends(get_analytics_service)
):
    return await analytics.owner_analytics(owner_id)
