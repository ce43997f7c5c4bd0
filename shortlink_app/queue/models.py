"""
Data models for queue messages.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AccessEvent(BaseModel):
    """
    Immutable record of one successful resolution.

    Built by the access recorder with every write-time derivation applied
    (client IP, country, device type) and published to the queue; the
    access-log worker persists it unchanged.
    """

    link_id: str = Field(..., description="Id of the link that was resolved")
    short_code: str = Field(..., description="The short code that was accessed")
    timestamp: datetime = Field(..., description="When the redirect was issued (naive UTC)")

    # Request metadata
    ip_address: str = Field(..., description="Raw client IP address")
    user_agent: Optional[str] = Field(None, description="User agent string")
    referrer: Optional[str] = Field(None, description="HTTP referrer")

    # Derived metadata
    country: Optional[str] = Field(None, description="Coarse country label")
    device_type: Optional[str] = Field(None, description="mobile, desktop, tablet or other")

    # Set by queue backends that need acknowledgment
    message_id: Optional[str] = Field(None, exclude=True)

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "link_id": "0b6c4f0e-5f7e-4a36-9a57-1f0f0a7d2c11",
                "short_code": "promo1",
                "timestamp": "2025-10-29T10:30:00",
                "ip_address": "203.0.113.7",
                "user_agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0",
                "referrer": "https://twitter.com",
                "country": "Unknown",
                "device_type": "desktop"
            }
        }
    )
