"""
Access recording for successful resolutions.

Recording is best-effort: a failure to build or publish an access event is
logged and swallowed, never surfaced to the caller that issued the redirect.
"""

import asyncio
import ipaddress
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, Set

from pydantic import BaseModel

from shortlink_app.queue.models import AccessEvent
from shortlink_app.queue.strategies import QueueStrategy
from shortlink_app.services.temporal import utcnow

logger = logging.getLogger(__name__)

LOOPBACK = "127.0.0.1"

TABLET_SIGNALS = ("ipad", "tablet")
MOBILE_SIGNALS = ("mobile", "iphone", "android", "blackberry", "windows phone")
DESKTOP_SIGNALS = ("windows", "macintosh", "linux", "chrome", "firefox", "safari", "edge")


class RequestContext(BaseModel):
    """Raw request metadata the recorder derives an access event from"""

    forwarded_for: Optional[str] = None
    real_ip: Optional[str] = None
    peer_host: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None


def extract_client_ip(context: RequestContext) -> str:
    """
    Pick the client IP from a request context.

    Order: first entry of the forwarded-for header, then the real-IP header,
    then the transport peer address, then loopback.
    """
    if context.forwarded_for:
        first = context.forwarded_for.split(",")[0].strip()
        if first:
            return first

    if context.real_ip and context.real_ip.strip():
        return context.real_ip.strip()

    if context.peer_host:
        return context.peer_host

    return LOOPBACK


def mask_ip(ip_address: str) -> str:
    """Hide the last IPv4 octet or the last IPv6 segment for display"""
    parts = ip_address.split(".")
    if len(parts) == 4:
        return f"{parts[0]}.{parts[1]}.{parts[2]}.xxx"

    if ":" in ip_address:
        segments = ip_address.split(":")
        segments[-1] = "xxxx"
        return ":".join(segments)

    return "xxx.xxx.xxx.xxx"


def classify_device(user_agent: Optional[str]) -> str:
    """
    Classify a user agent as tablet, mobile, desktop or other.

    Tablets are checked first: Android tablets also carry "android", they
    just lack "mobile".
    """
    if not user_agent:
        return "other"

    ua = user_agent.lower()

    if any(signal in ua for signal in TABLET_SIGNALS) or ("android" in ua and "mobile" not in ua):
        return "tablet"

    if any(signal in ua for signal in MOBILE_SIGNALS):
        return "mobile"

    if any(signal in ua for signal in DESKTOP_SIGNALS):
        return "desktop"

    return "other"


class CountryResolver(ABC):
    """Maps a client IP to a coarse country label"""

    @abstractmethod
    def lookup(self, ip_address: str) -> str:
        pass


class PrivateRangeCountryResolver(CountryResolver):
    """
    Placeholder geolocation.

    Private and loopback addresses map to "Local", everything else to
    "Unknown". Swap in a GeoIP-backed resolver without touching callers.
    """

    def lookup(self, ip_address: str) -> str:
        try:
            address = ipaddress.ip_address(ip_address)
        except ValueError:
            return "Unknown"

        if address.is_private or address.is_loopback:
            return "Local"
        return "Unknown"


class AccessRecorder:
    """
    Builds access events and hands them to the queue without blocking.

    ``dispatch`` schedules the write as its own task, so cancelling the
    request that triggered it does not cancel an in-flight write.
    """

    def __init__(
        self,
        queue: QueueStrategy,
        queue_name: str,
        country_resolver: Optional[CountryResolver] = None
    ):
        self.queue = queue
        self.queue_name = queue_name
        self.country_resolver = country_resolver or PrivateRangeCountryResolver()
        self._pending: Set[asyncio.Task] = set()

    def build_entry(
        self,
        link_id: str,
        short_code: str,
        context: RequestContext,
        timestamp: Optional[datetime] = None
    ) -> AccessEvent:
        """Apply the write-time derivations and return an immutable event"""
        ip_address = extract_client_ip(context)
        return AccessEvent(
            link_id=link_id,
            short_code=short_code,
            timestamp=timestamp or utcnow(),
            ip_address=ip_address,
            user_agent=context.user_agent or None,
            referrer=context.referrer or None,
            country=self.country_resolver.lookup(ip_address),
            device_type=classify_device(context.user_agent),
        )

    async def record(
        self,
        link_id: str,
        short_code: str,
        context: Optional[RequestContext] = None,
        timestamp: Optional[datetime] = None
    ) -> Optional[AccessEvent]:
        """
        Build and publish one access event.

        Returns the event, or None when recording failed.
        """
        try:
            event = self.build_entry(link_id, short_code, context or RequestContext(), timestamp)
            published = await self.queue.publish(self.queue_name, event)
        except Exception:
            logger.warning("Failed to record access for link %s", link_id, exc_info=True)
            return None

        if not published:
            logger.warning("Access event for link %s was not published", link_id)
            return None
        return event

    def dispatch(
        self,
        link_id: str,
        short_code: str,
        context: Optional[RequestContext] = None,
        timestamp: Optional[datetime] = None
    ) -> None:
        """Schedule ``record`` on the running loop and return immediately"""
        task = asyncio.get_running_loop().create_task(
            self.record(link_id, short_code, context, timestamp)
        )
        # Referenced until done
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every dispatched write to finish (shutdown, tests)"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
