"""
Persistence operations for links, schedules and password protections.

The repository owns every query so services stay free of SQL. It never
commits on its own except in ``insert_link``, where the unique-index check
has to happen at a well-defined point.
"""

from datetime import datetime
from typing import List, NamedTuple, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from shortlink_app.models.link import Link, Schedule, PasswordProtection


class LinkCandidate(NamedTuple):
    """A live link plus the schedules and passwords that may be active now"""
    link: Link
    schedules: List[Schedule]
    passwords: List[PasswordProtection]


class LinkRepository:
    """Queries over the link tables for a single database session"""

    def __init__(self, db: Session):
        self.db = db

    def _live(self):
        return self.db.query(Link).filter(Link.deleted_at.is_(None))

    def find_link_by_code(self, short_code: str, now: datetime) -> Optional[LinkCandidate]:
        """
        Load a resolvable link with its candidate schedules and passwords.

        Filtering here is a coarse store-level optimisation: the resolution
        engine re-checks every window in process.
        """
        link = self._live().filter(
            Link.short_code == short_code,
            Link.is_active.is_(True),
            or_(Link.expires_at.is_(None), Link.expires_at > now),
        ).first()

        if link is None:
            return None

        schedules = self.db.query(Schedule).filter(
            Schedule.link_id == link.id,
            Schedule.start_time <= now,
            Schedule.end_time >= now,
        ).order_by(Schedule.start_time.asc(), Schedule.id.asc()).all()

        passwords = self.db.query(PasswordProtection).filter(
            PasswordProtection.link_id == link.id,
            or_(PasswordProtection.start_time.is_(None), PasswordProtection.start_time <= now),
            or_(PasswordProtection.end_time.is_(None), PasswordProtection.end_time >= now),
        ).all()

        return LinkCandidate(link=link, schedules=schedules, passwords=passwords)

    def exists_by_code(self, short_code: str, exclude_id: Optional[str] = None) -> bool:
        """Check whether a live (non-deleted) link already uses the code"""
        query = self._live().filter(Link.short_code == short_code)
        if exclude_id:
            query = query.filter(Link.id != exclude_id)
        return query.first() is not None

    def insert_link(self, link: Link) -> Link:
        """
        Insert and commit a new link.

        Raises:
            sqlalchemy.exc.IntegrityError: The short code was taken concurrently
        """
        self.db.add(link)
        self.db.commit()
        self.db.refresh(link)
        return link

    def get_by_id(self, link_id: str) -> Optional[Link]:
        return self._live().filter(Link.id == link_id).first()

    def list_by_owner(self, owner_id: str, offset: int = 0, limit: int = 20) -> List[Link]:
        return self._live().filter(Link.owner_id == owner_id).order_by(
            Link.created_at.desc()
        ).offset(offset).limit(limit).all()

    def count_by_owner(self, owner_id: str) -> int:
        return self._live().filter(Link.owner_id == owner_id).count()

    def link_ids_by_owner(self, owner_id: str) -> List[str]:
        rows = self.db.query(Link.id).filter(
            Link.owner_id == owner_id,
            Link.deleted_at.is_(None),
        ).all()
        return [row[0] for row in rows]

    # Schedules

    def add_schedule(self, schedule: Schedule) -> Schedule:
        self.db.add(schedule)
        self.db.commit()
        self.db.refresh(schedule)
        return schedule

    def get_schedule(self, schedule_id: str) -> Optional[Schedule]:
        return self.db.query(Schedule).filter(Schedule.id == schedule_id).first()

    def list_schedules(self, link_id: str) -> List[Schedule]:
        return self.db.query(Schedule).filter(Schedule.link_id == link_id).order_by(
            Schedule.start_time.asc(), Schedule.id.asc()
        ).all()

    def delete_schedule(self, schedule: Schedule) -> None:
        self.db.delete(schedule)
        self.db.commit()

    # Password protections

    def add_password(self, password: PasswordProtection) -> PasswordProtection:
        self.db.add(password)
        self.db.commit()
        self.db.refresh(password)
        return password

    def get_password(self, password_id: str) -> Optional[PasswordProtection]:
        return self.db.query(PasswordProtection).filter(PasswordProtection.id == password_id).first()

    def list_passwords(self, link_id: str) -> List[PasswordProtection]:
        return self.db.query(PasswordProtection).filter(
            PasswordProtection.link_id == link_id
        ).order_by(PasswordProtection.created_at.asc(), PasswordProtection.id.asc()).all()

    def delete_password(self, password: PasswordProtection) -> None:
        self.db.delete(password)
        self.db.commit()

    def save(self) -> None:
        """Commit pending changes to already-loaded rows"""
        self.db.commit()
