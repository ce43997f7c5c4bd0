from datetime import datetime
from typing import Annotated, List, Optional

from pydantic import (
    AfterValidator, BaseModel, ConfigDict, Field, HttpUrl, TypeAdapter, ValidationError,
    computed_field, field_validator, model_validator,
)

from shortlink_app.config import settings
from shortlink_app.services.temporal import as_naive_utc

CUSTOM_CODE_PATTERN = r"^[A-Za-z0-9_-]+$"
BCRYPT_MAX_BYTES = 72

_http_url = TypeAdapter(HttpUrl)


def check_target_url(value: str) -> str:
    """
    Validate an absolute http(s) URL and return it unchanged.

    The original string is kept (no trailing-slash normalisation) so a link
    redirects to exactly what its owner typed.
    """
    try:
        _http_url.validate_python(value)
    except ValidationError:
        raise ValueError(f"Invalid URL: {value!r}")
    return value


TargetURL = Annotated[str, AfterValidator(check_target_url)]
UTCDateTime = Annotated[datetime, AfterValidator(as_naive_utc)]


class LinkCreate(BaseModel):
    target_url: TargetURL = Field(..., description="Default URL to redirect to")
    short_code: Optional[str] = Field(
        None,
        min_length=settings.custom_code_min_length,
        max_length=settings.custom_code_max_length,
        pattern=CUSTOM_CODE_PATTERN,
        description="Custom short code; generated when omitted",
    )
    expires_at: Optional[UTCDateTime] = None
    access_limit: Optional[int] = Field(None, ge=1)
    meta_tag: Optional[str] = Field(None, description="Meta tag for SEO and social sharing")


class LinkUpdate(BaseModel):
    """Partial update; only fields present in the request are applied"""
    target_url: Optional[TargetURL] = None
    is_active: Optional[bool] = None
    expires_at: Optional[UTCDateTime] = None
    access_limit: Optional[int] = Field(None, ge=1)
    meta_tag: Optional[str] = None


class LinkResponse(BaseModel):
    """Serializes the SQLAlchemy Link model (from_attributes)"""
    id: str
    short_code: str
    target_url: str
    is_active: bool
    expires_at: Optional[datetime] = None
    access_limit: Optional[int] = None
    meta_tag: Optional[str] = None
    owner_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @computed_field
    @property
    def short_url(self) -> str:
        return f"{settings.base_url}/{self.short_code}"

    model_config = ConfigDict(from_attributes=True)


class LinkListResponse(BaseModel):
    data: List[LinkResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class CodeAvailability(BaseModel):
    short_code: str
    available: bool


class _TimeWindow(BaseModel):
    """Rejects windows whose start is not strictly before their end"""

    @model_validator(mode="after")
    def _start_before_end(self):
        start, end = getattr(self, "start_time", None), getattr(self, "end_time", None)
        if start is not None and end is not None and start >= end:
            raise ValueError("Start time must be before end time")
        return self


class ScheduleCreate(_TimeWindow):
    target_url: TargetURL = Field(..., description="Target URL for this time period")
    start_time: UTCDateTime
    end_time: UTCDateTime


class ScheduleUpdate(_TimeWindow):
    target_url: Optional[TargetURL] = None
    start_time: Optional[UTCDateTime] = None
    end_time: Optional[UTCDateTime] = None


class ScheduleResponse(BaseModel):
    id: str
    link_id: str
    target_url: str
    start_time: datetime
    end_time: datetime
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PasswordCreate(_TimeWindow):
    password: str = Field(..., min_length=1)
    start_time: Optional[UTCDateTime] = None
    end_time: Optional[UTCDateTime] = None

    @field_validator("password")
    @classmethod
    def _fits_bcrypt(cls, value):
        if len(value.encode("utf-8")) > BCRYPT_MAX_BYTES:
            raise ValueError(f"Password must be at most {BCRYPT_MAX_BYTES} bytes")
        return value


class PasswordResponse(BaseModel):
    """Password protection metadata; the hash is never serialized"""
    id: str
    link_id: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AccessRequest(BaseModel):
    password: Optional[str] = None


class AccessResponse(BaseModel):
    """Result of resolving a short code; no target is returned while a password is required"""
    target_url: Optional[str] = None
    password_required: bool

    model_config = ConfigDict(from_attributes=True)
