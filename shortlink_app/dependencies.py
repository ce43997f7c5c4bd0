"""
FastAPI dependencies for dependency injection.

Queue, storage and access recorder are process-wide singletons; services are
built per request around the request's database session.
"""

from functools import lru_cache

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from shortlink_app.config import settings
from shortlink_app.database.connection import get_db
from shortlink_app.queue.factory import QueueFactory, QueueBackend
from shortlink_app.queue.strategies import QueueStrategy
from shortlink_app.services.access_recorder import AccessRecorder, RequestContext
from shortlink_app.services.analytics_service import AnalyticsService
from shortlink_app.services.link_service import LinkService
from shortlink_app.services.resolution_engine import ResolutionEngine
from shortlink_app.storage.factory import AccessLogStorageFactory, AccessLogBackend
from shortlink_app.storage.strategies import AccessLogStorage


@lru_cache()
def get_queue() -> QueueStrategy:
    """Queue instance (singleton) chosen by ``settings.queue_backend``"""
    return QueueFactory.create(QueueBackend(settings.queue_backend))


@lru_cache()
def get_access_log_storage() -> AccessLogStorage:
    """Access log storage (singleton) chosen by ``settings.access_log_backend``"""
    return AccessLogStorageFactory.create(AccessLogBackend(settings.access_log_backend))


@lru_cache()
def get_access_recorder() -> AccessRecorder:
    """
    Access recorder (singleton).

    Shared so its pending-task set covers every request and can be drained
    on shutdown.
    """
    return AccessRecorder(queue=get_queue(), queue_name=settings.queue_name)


def get_owner_id(x_owner_id: str = Header(..., description="Id of the authenticated link owner")) -> str:
    """
    Identity of the caller for management operations.

    Supplied by the session layer in front of this service (login is not
    handled here).
    """
    return x_owner_id


def get_request_context(request: Request) -> RequestContext:
    """Collect the raw request metadata access recording derives from"""
    headers = request.headers
    return RequestContext(
        forwarded_for=headers.get("x-forwarded-for"),
        real_ip=headers.get("x-real-ip"),
        peer_host=request.client.host if request.client else None,
        user_agent=headers.get("user-agent"),
        referrer=headers.get("referer") or headers.get("referrer"),
    )


def get_link_service(db: Session = Depends(get_db)) -> LinkService:
    return LinkService(db=db)


def get_resolution_engine(
    db: Session = Depends(get_db),
    recorder: AccessRecorder = Depends(get_access_recorder)
) -> ResolutionEngine:
    return ResolutionEngine(db=db, recorder=recorder)


def get_analytics_service(
    db: Session = Depends(get_db),
    storage: AccessLogStorage = Depends(get_access_log_storage)
) -> AnalyticsService:
    return AnalyticsService(db=db, storage=storage)
