import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shortlink_app.config import settings
from shortlink_app.exceptions import (
    CodeSpaceExhausted, CodeTaken, LinkNotFound, NotOwner,
    PasswordNotFound, ScheduleNotFound, ValidationFailed,
)
from shortlink_app.models.link import Link, PasswordProtection, Schedule
from shortlink_app.repositories.link_repository import LinkRepository
from shortlink_app.schemas.link import check_target_url
from shortlink_app.services.access_gate import hash_password
from shortlink_app.services.short_code_strategies import ShortCodeStrategy, RandomShortCodeStrategy
from shortlink_app.services.temporal import as_naive_utc, utcnow

logger = logging.getLogger(__name__)

LINK_FIELDS = ("target_url", "is_active", "expires_at", "access_limit", "meta_tag")
SCHEDULE_FIELDS = ("target_url", "start_time", "end_time")


def _validated_url(value: str) -> str:
    try:
        return check_target_url(value)
    except ValueError as e:
        raise ValidationFailed(str(e))


def _check_window(start: Optional[datetime], end: Optional[datetime]) -> None:
    if start is not None and end is not None and start >= end:
        raise ValidationFailed("Start time must be before end time")


class LinkService:
    """
    Owner-facing link management: creation, updates, schedules and passwords.

    Every operation except creation and code availability requires the caller
    to own the link. Resolution lives in ResolutionEngine.
    """

    def __init__(
        self,
        db: Session,
        short_code_strategy: Optional[ShortCodeStrategy] = None,
        bcrypt_rounds: Optional[int] = None
    ):
        """
        Args:
            db: Database session
            short_code_strategy: Generator for codes when none is supplied
            bcrypt_rounds: Work factor for new password hashes
        """
        self.db = db
        self.links = LinkRepository(db)
        self.short_code_strategy = short_code_strategy or RandomShortCodeStrategy(
            length=settings.short_code_length,
            max_retries=settings.max_retries
        )
        self.bcrypt_rounds = bcrypt_rounds or settings.bcrypt_rounds

    async def create_link(
        self,
        owner_id: Optional[str],
        target_url: str,
        short_code: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        access_limit: Optional[int] = None,
        meta_tag: Optional[str] = None
    ) -> Link:
        """
        Create a new link, with a custom or generated short code.

        Raises:
            ValidationFailed: target_url is not an absolute http(s) URL
            CodeTaken: the custom code is already used by a live link
            CodeSpaceExhausted: no free generated code within the retry ceiling
        """
        fields = dict(
            target_url=_validated_url(target_url),
            owner_id=owner_id,
            expires_at=as_naive_utc(expires_at),
            access_limit=access_limit,
            meta_tag=meta_tag,
        )

        if short_code:
            if self.links.exists_by_code(short_code):
                raise CodeTaken()
            try:
                return self.links.insert_link(Link(short_code=short_code, **fields))
            except IntegrityError:
                # Lost an insert race for the same custom code
                self.db.rollback()
                raise CodeTaken()

        for attempt in range(settings.max_retries):
            code = self.short_code_strategy.generate(self.links.exists_by_code)
            try:
                link = self.links.insert_link(Link(short_code=code, **fields))
            except IntegrityError:
                self.db.rollback()
                logger.debug("Generated code %s taken concurrently, retrying", code)
                continue
            logger.info("Created link %s with code %s", link.id, link.short_code)
            return link

        logger.error("Exhausted %d insert attempts for a generated code", settings.max_retries)
        raise CodeSpaceExhausted()

    async def is_code_available(self, short_code: str) -> bool:
        return not self.links.exists_by_code(short_code)

    async def get_link(self, owner_id: str, link_id: str) -> Link:
        """Fetch a live link owned by ``owner_id``"""
        link = self.links.get_by_id(link_id)
        if link is None:
            raise LinkNotFound()
        if link.owner_id != owner_id:
            raise NotOwner()
        return link

    async def list_links(self, owner_id: str, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        """Page through an owner's live links, newest first"""
        total = self.links.count_by_owner(owner_id)
        data = self.links.list_by_owner(owner_id, offset=(page - 1) * limit, limit=limit)
        return {
            "data": data,
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if limit else 0,
        }

    async def update_link(self, owner_id: str, link_id: str, changes: Dict[str, Any]) -> Link:
        """
        Apply a partial update. Keys absent from ``changes`` are left alone;
        an explicit ``expires_at=None`` clears the expiry.
        """
        link = await self.get_link(owner_id, link_id)

        for field in LINK_FIELDS:
            if field not in changes:
                continue
            value = changes[field]
            if field == "target_url":
                if value is None:
                    raise ValidationFailed("target_url cannot be empty")
                value = _validated_url(value)
            elif field == "is_active" and value is None:
                continue
            elif field == "expires_at":
                value = as_naive_utc(value)
            setattr(link, field, value)

        self.links.save()
        self.db.refresh(link)
        return link

    async def delete_link(self, owner_id: str, link_id: str) -> None:
        """Soft delete: the row stays, the code stops resolving and becomes reusable"""
        link = await self.get_link(owner_id, link_id)
        link.is_active = False
        link.deleted_at = utcnow()
        self.links.save()
        logger.info("Deleted link %s", link_id)

    # Schedules

    async def add_schedule(
        self,
        owner_id: str,
        link_id: str,
        target_url: str,
        start_time: datetime,
        end_time: datetime
    ) -> Schedule:
        link = await self.get_link(owner_id, link_id)
        start_time, end_time = as_naive_utc(start_time), as_naive_utc(end_time)
        _check_window(start_time, end_time)

        return self.links.add_schedule(Schedule(
            link_id=link.id,
            target_url=_validated_url(target_url),
            start_time=start_time,
            end_time=end_time,
        ))

    async def _owned_schedule(self, owner_id: str, schedule_id: str) -> Schedule:
        schedule = self.links.get_schedule(schedule_id)
        if schedule is None:
            raise ScheduleNotFound()
        await self.get_link(owner_id, schedule.link_id)
        return schedule

    async def update_schedule(self, owner_id: str, schedule_id: str, changes: Dict[str, Any]) -> Schedule:
        """Partial update; the merged window must still satisfy start < end"""
        schedule = await self._owned_schedule(owner_id, schedule_id)
        updates = {field: changes[field] for field in SCHEDULE_FIELDS if changes.get(field) is not None}

        if "target_url" in updates:
            updates["target_url"] = _validated_url(updates["target_url"])
        for field in ("start_time", "end_time"):
            if field in updates:
                updates[field] = as_naive_utc(updates[field])

        _check_window(
            updates.get("start_time", schedule.start_time),
            updates.get("end_time", schedule.end_time),
        )

        for field, value in updates.items():
            setattr(schedule, field, value)
        self.links.save()
        self.db.refresh(schedule)
        return schedule

    async def delete_schedule(self, owner_id: str, schedule_id: str) -> None:
        schedule = await self._owned_schedule(owner_id, schedule_id)
        self.links.delete_schedule(schedule)

    async def list_schedules(self, owner_id: str, link_id: str) -> List[Schedule]:
        link = await self.get_link(owner_id, link_id)
        return self.links.list_schedules(link.id)

    # Password protections

    async def add_password(
        self,
        owner_id: str,
        link_id: str,
        password: str,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None
    ) -> PasswordProtection:
        """Hash the secret with bcrypt and attach it to the link"""
        link = await self.get_link(owner_id, link_id)
        start_time, end_time = as_naive_utc(start_time), as_naive_utc(end_time)
        _check_window(start_time, end_time)
        if not password:
            raise ValidationFailed("Password cannot be empty")

        return self.links.add_password(PasswordProtection(
            link_id=link.id,
            password_hash=hash_password(password, rounds=self.bcrypt_rounds),
            start_time=start_time,
            end_time=end_time,
        ))

    async def remove_password(self, owner_id: str, password_id: str) -> None:
        protection = self.links.get_password(password_id)
        if protection is None:
            raise PasswordNotFound()
        await self.get_link(owner_id, protection.link_id)
        self.links.delete_password(protection)

    async def list_passwords(self, owner_id: str, link_id: str) -> List[PasswordProtection]:
        link = await self.get_link(owner_id, link_id)
        return self.links.list_passwords(link.id)
