import uuid

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from shortlink_app.database.connection import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class Link(Base):
    """
    A short code that redirects to a target URL.

    Soft-deleted links keep their row (``deleted_at`` is set) but are excluded
    from resolution and free their short code for reuse. Uniqueness of live
    codes is enforced by a partial unique index, so a concurrent insert of the
    same code is rejected by the datastore.
    """
    __tablename__ = "links"

    id = Column(String(36), primary_key=True, default=_new_id)
    short_code = Column(String(20), nullable=False, index=True)
    target_url = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime, nullable=True, index=True)
    access_limit = Column(Integer, nullable=True)
    meta_tag = Column(Text, nullable=True)
    # Owner is managed by the external session layer; orphaned links stay resolvable
    owner_id = Column(String(64), nullable=True, index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())
    deleted_at = Column(DateTime, nullable=True)

    schedules = relationship(
        "Schedule",
        back_populates="link",
        cascade="all, delete-orphan",
        order_by="Schedule.start_time",
    )
    passwords = relationship(
        "PasswordProtection",
        back_populates="link",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index(
            "uq_links_live_short_code",
            "short_code",
            unique=True,
            sqlite_where=deleted_at.is_(None),
            postgresql_where=deleted_at.is_(None),
        ),
    )


class Schedule(Base):
    """Time-boxed override of a link's target URL (start_time < end_time)"""
    __tablename__ = "link_schedules"

    id = Column(String(36), primary_key=True, default=_new_id)
    link_id = Column(String(36), ForeignKey("links.id", ondelete="CASCADE"), nullable=False, index=True)
    target_url = Column(Text, nullable=False)
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    link = relationship("Link", back_populates="schedules")


class PasswordProtection(Base):
    """
    Salted bcrypt hash gating access to a link.

    Both window bounds are optional: a missing bound is unbounded in that
    direction, and no bounds at all means the password is always active.
    """
    __tablename__ = "link_passwords"

    id = Column(String(36), primary_key=True, default=_new_id)
    link_id = Column(String(36), ForeignKey("links.id", ondelete="CASCADE"), nullable=False, index=True)
    password_hash = Column(String(128), nullable=False)
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    link = relationship("Link", back_populates="passwords")
