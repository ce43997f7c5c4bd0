"""
Short code resolution.

Flow per request:
    LOOKUP -> NOT_FOUND | GATE_CHECK -> PASSWORD_REQUIRED | DENIED
           | TARGET_RESOLVE -> SUCCESS (access recorded in the background)

Every step is synchronous and side-effect free except the final access
recording, which is dispatched without being awaited.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from shortlink_app.exceptions import NotFoundOrExpired, Unauthorized
from shortlink_app.models.link import Link
from shortlink_app.repositories.link_repository import LinkRepository
from shortlink_app.services.access_gate import AccessGate, GateDecision
from shortlink_app.services.access_recorder import AccessRecorder, RequestContext
from shortlink_app.services.temporal import active_windows, resolve_target, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolutionResult:
    """What the caller should do with a short code"""
    target_url: Optional[str]
    password_required: bool = False


def _is_live(link: Link, now: datetime) -> bool:
    if link.deleted_at is not None or not link.is_active:
        return False
    return link.expires_at is None or link.expires_at > now


class ResolutionEngine:
    """
    Decides which URL a short code serves right now.

    Missing, inactive, deleted and expired links all surface as the same
    NotFoundOrExpired error so callers cannot tell the conditions apart.
    """

    def __init__(
        self,
        db: Session,
        recorder: Optional[AccessRecorder] = None,
        gate: Optional[AccessGate] = None
    ):
        """
        Args:
            db: Database session
            recorder: Access recorder (optional; without it nothing is logged)
            gate: Password gate
        """
        self.links = LinkRepository(db)
        self.recorder = recorder
        self.gate = gate or AccessGate()

    async def resolve(
        self,
        short_code: str,
        password: Optional[str] = None,
        context: Optional[RequestContext] = None,
        now: Optional[datetime] = None
    ) -> ResolutionResult:
        """
        Resolve a short code.

        Args:
            short_code: Code from the short URL
            password: Secret supplied by the caller, if any
            context: Request metadata for access recording
            now: Reference instant (naive UTC); defaults to the current time

        Returns:
            ResolutionResult with the target URL, or ``password_required=True``
            and no target when an active password gates the link and none was given

        Raises:
            NotFoundOrExpired: No live link uses this code
            Unauthorized: A password was supplied and matched no active protection
        """
        now = now or utcnow()

        # LOOKUP
        candidate = self.links.find_link_by_code(short_code, now)
        if candidate is None or not _is_live(candidate.link, now):
            logger.debug("Short code %s not found or expired", short_code)
            raise NotFoundOrExpired()
        link = candidate.link

        # GATE_CHECK
        active_passwords = active_windows(candidate.passwords, now)
        decision = self.gate.authorize(
            [protection.password_hash for protection in active_passwords],
            password
        )
        if decision is GateDecision.PASSWORD_REQUIRED:
            return ResolutionResult(target_url=None, password_required=True)
        if decision is GateDecision.DENIED:
            logger.debug("Invalid password for short code %s", short_code)
            raise Unauthorized()

        # TARGET_RESOLVE
        target_url = resolve_target(link.target_url, candidate.schedules, now)

        # SUCCESS
        if self.recorder is not None:
            try:
                self.recorder.dispatch(link.id, link.short_code, context, timestamp=now)
            except Exception:
                logger.warning("Could not dispatch access recording for %s", short_code, exc_info=True)

        return ResolutionResult(target_url=target_url, password_required=False)
