"""Domain vocabulary and strict schemas for heat reports.

Enums, filter configuration and the pydantic payloads that flow between the
report service, the REST client and the feed. The feed and the request cache
treat reports as opaque; the only interpretation logic here is input
validation and severity derivation.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from microclimate_hub.errors import ReportValidationError

# Temperature range accepted from the report form, in degrees Celsius.
MIN_REPORT_TEMPERATURE_C = 15.0
MAX_REPORT_TEMPERATURE_C = 50.0
MAX_DESCRIPTION_CHARS = 2000
MAX_TAGS = 10


class _StrictBaseModel(BaseModel):
    """Base model with strict extra handling."""

    model_config = ConfigDict(extra="forbid")


class Severity(str, Enum):
    """Categorical heat-report intensity."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EXTREME = "extreme"


class ReportStatus(str, Enum):
    """Moderation status of a report."""
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class ThemeName(str, Enum):
    """UI theme preference persisted with client state."""
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"


class NotificationType(str, Enum):
    REPORT_VERIFIED = "report_verified"
    BADGE_UNLOCKED = "badge_unlocked"
    IMPACT_MILESTONE = "impact_milestone"
    COMMUNITY_UPDATE = "community_update"
    SYSTEM_ALERT = "system_alert"


# (upper bound exclusive, severity)
SEVERITY_THRESHOLDS_C = (
    (30.0, Severity.LOW),
    (35.0, Severity.MEDIUM),
    (40.0, Severity.HIGH),
)


def severity_for_temperature(temperature_c: float) -> Severity:
    """Derive a severity bucket from a reported temperature."""
    for upper, severity in SEVERITY_THRESHOLDS_C:
        if temperature_c < upper:
            return severity
    return Severity.EXTREME


class Location(_StrictBaseModel):
    """Where a report was taken."""
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    address: str = ""
    city: str = ""
    country: str = ""
    postal_code: Optional[str] = None


class GeoRadius(_StrictBaseModel):
    """Circle around a point, used to filter reports geographically."""
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    radius_km: float = Field(gt=0)


class DateRange(_StrictBaseModel):
    """Inclusive created_at window."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @model_validator(mode="after")
    def _ordered(self) -> "DateRange":
        if self.start and self.end and self.start > self.end:
            raise ValueError("date_range.start must not be after date_range.end")
        return self


class ReportFilters(_StrictBaseModel):
    """Recognised report filters; every field is optional and they combine with AND.

    Unknown fields are rejected instead of being forwarded to the backend.
    """
    severity: Optional[Severity] = None
    status: Optional[ReportStatus] = None
    tags: List[str] = Field(default_factory=list)
    radius: Optional[GeoRadius] = None
    date_range: Optional[DateRange] = None

    def is_empty(self) -> bool:
        return not (self.severity or self.status or self.tags or self.radius or self.date_range)

    def to_query_params(self) -> dict[str, str]:
        """Flatten into the query parameters understood by the report service."""
        params: dict[str, str] = {}
        if self.severity:
            params["severity"] = self.severity.value
        if self.status:
            params["status"] = self.status.value
        if self.tags:
            params["tags"] = ",".join(self.tags)
        if self.radius:
            params["lat"] = str(self.radius.lat)
            params["lng"] = str(self.radius.lng)
            params["radius_km"] = str(self.radius.radius_km)
        if self.date_range and self.date_range.start:
            params["start"] = self.date_range.start.isoformat()
        if self.date_range and self.date_range.end:
            params["end"] = self.date_range.end.isoformat()
        return params


class _ReportFields(_StrictBaseModel):
    """Fields shared by report creation and partial updates."""

    @field_validator("tags", check_fields=False)
    @classmethod
    def _clean_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        cleaned = [t.strip() for t in v]
        if any(not t for t in cleaned):
            raise ValueError("tags must not be empty")
        if len(cleaned) > MAX_TAGS:
            raise ValueError(f"at most {MAX_TAGS} tags are allowed")
        return cleaned


class ReportCreate(_ReportFields):
    """Payload submitted by the report form."""
    temperature: float = Field(ge=MIN_REPORT_TEMPERATURE_C, le=MAX_REPORT_TEMPERATURE_C)
    location: Location
    description: str = Field(default="", max_length=MAX_DESCRIPTION_CHARS)
    tags: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    voice_note: Optional[str] = None
    severity: Optional[Severity] = None

    def resolved_severity(self) -> Severity:
        return self.severity or severity_for_temperature(self.temperature)


class ReportUpdate(_ReportFields):
    """Partial update; only provided fields are applied."""
    temperature: Optional[float] = Field(default=None, ge=MIN_REPORT_TEMPERATURE_C, le=MAX_REPORT_TEMPERATURE_C)
    location: Optional[Location] = None
    description: Optional[str] = Field(default=None, max_length=MAX_DESCRIPTION_CHARS)
    tags: Optional[List[str]] = None
    images: Optional[List[str]] = None
    voice_note: Optional[str] = None
    severity: Optional[Severity] = None
    status: Optional[ReportStatus] = None

    @field_validator("temperature", "location", "description", "tags", "images", "severity", "status")
    @classmethod
    def _not_null(cls, v):
        # omitted fields are left alone; an explicit null cannot be stored
        if v is None:
            raise ValueError("may be omitted but not null")
        return v


class Report(BaseModel):
    """A stored heat report as returned by the report service."""
    id: str
    user_id: str
    temperature: float
    location: Location
    description: str = ""
    images: List[str] = Field(default_factory=list)
    voice_note: Optional[str] = None
    severity: Severity
    status: ReportStatus = ReportStatus.PENDING
    tags: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """One slice of a paginated collection plus its continuation flag."""
    items: List[T]
    page: int
    page_size: int
    total: int = 0
    has_next: bool = False


class Notification(BaseModel):
    id: str
    type: NotificationType = NotificationType.SYSTEM_ALERT
    title: str
    message: str = ""
    read: bool = False
    created_at: datetime


class UserProfile(BaseModel):
    """Snapshot of the signed-in user kept in client state."""
    id: str
    email: str
    name: str = ""
    role: str = "user"


class HeatmapPoint(BaseModel):
    lat: float
    lng: float
    intensity: float
    reports: int


class HeatmapData(BaseModel):
    points: List[HeatmapPoint]
    time_range: str
    max_temperature: Optional[float] = None


class AnalyticsOverview(BaseModel):
    total_reports: int
    active_users: int
    average_temperature: Optional[float] = None
    by_severity: dict[str, int] = Field(default_factory=dict)
    by_status: dict[str, int] = Field(default_factory=dict)


def parse_report_form(data: dict | ReportCreate) -> ReportCreate:
    """Validate raw form input, raising ReportValidationError with per-field messages."""
    if isinstance(data, ReportCreate):
        return data
    try:
        return ReportCreate.model_validate(data)
    except ValidationError as exc:
        errors = {".".join(str(p) for p in err["loc"]) or "__root__": err["msg"] for err in exc.errors()}
        raise ReportValidationError(errors) from exc
