from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey

from shortlink_app.database.connection import Base


class AccessLog(Base):
    """
    One successful resolution (a redirect was issued).

    Rows are immutable: written once by the access-log worker, never updated.
    The raw IP is stored; masking happens when analytics are served.
    """
    __tablename__ = "link_access_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    link_id = Column(String(36), ForeignKey("links.id", ondelete="CASCADE"), nullable=False, index=True)
    accessed_at = Column(DateTime, nullable=False, index=True)
    ip_address = Column(String(64), nullable=False)
    user_agent = Column(Text, nullable=True)
    referrer = Column(Text, nullable=True)
    country = Column(String(64), nullable=True)
    device_type = Column(String(16), nullable=True)
