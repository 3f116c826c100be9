"""HTTP API for heat reports and their analytics."""

import hmac
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, Response, status
from pydantic import BaseModel, ValidationError

from .analytics import TIME_RANGES, build_heatmap, build_overview, time_range_start
from .auth import AuthCollaborator, HostedAuthClient
from .config import settings
from .domain import (
    AnalyticsOverview,
    DateRange,
    GeoRadius,
    HeatmapData,
    Page,
    Report,
    ReportCreate,
    ReportFilters,
    ReportStatus,
    ReportUpdate,
    Severity,
    UserProfile,
)
from .errors import ServiceError, TransportError
from .repository import ReportRepository
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="microclimate_hub/api")

MAX_PAGE_SIZE = 100
LIST_QUERY_PARAMS = {"page", "limit", "severity", "status", "tags", "lat", "lng", "radius_km", "start", "end"}
MODERATOR_ROLES = {"admin", "moderator"}


def require_api_key(x_api_key: str | None = Header(default=None)):
    """
    Validate the X-API-Key header against the static api_key setting.
    """
    # If no key is configured, allow requests (dev/default mode).
    if not settings.api_key:
        return

    if not x_api_key:
        logger.debug("No API key provided")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing API key")

    if hmac.compare_digest(str(x_api_key), str(settings.api_key)):
        return

    logger.debug("Invalid API key provided")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


@lru_cache(maxsize=1)
def get_repository() -> ReportRepository:
    """Report store built from settings on first use."""
    return ReportRepository.from_url(settings.database_url)


@lru_cache(maxsize=1)
def get_auth() -> AuthCollaborator:
    """Hosted auth client built from settings on first use."""
    return HostedAuthClient.from_settings(settings)


def require_user(
    authorization: str | None = Header(default=None),
    auth: AuthCollaborator = Depends(get_auth),
) -> UserProfile:
    """Resolve the bearer token into a user; writes are refused without one."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sign in required")
    token = authorization.split(" ", 1)[1].strip()
    try:
        return auth.get_user(token)
    except TransportError as exc:
        logger.warning("Auth service unreachable", extra={"error": exc.message})
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Auth service unavailable")
    except ServiceError as exc:
        if exc.status >= 500:
            logger.warning("Auth service failed", extra={"status": exc.status, "error": exc.message})
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Auth service unavailable")
        logger.debug(f"Token rejected by auth service: {exc.message}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired session")


router = APIRouter(dependencies=[Depends(require_api_key)])


class HealthResponse(BaseModel):
    """Liveness payload."""
    status: str
    timestamp: datetime


def _parse_filters(request: Request, severity, report_status, tags, lat, lng, radius_km, start, end) -> ReportFilters:
    """Build strict filters from query parameters, rejecting unknown or partial ones."""
    unknown = sorted(set(request.query_params.keys()) - LIST_QUERY_PARAMS)
    if unknown:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                            detail=f"Unknown filter field(s): {', '.join(unknown)}")

    geo = (lat, lng, radius_km)
    if any(v is not None for v in geo) and not all(v is not None for v in geo):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                            detail="lat, lng and radius_km must be given together")
    try:
        return ReportFilters(
            severity=severity,
            status=report_status,
            tags=[t.strip() for t in tags.split(",") if t.strip()] if tags else [],
            radius=GeoRadius(lat=lat, lng=lng, radius_km=radius_km) if lat is not None else None,
            date_range=DateRange(start=start, end=end) if (start or end) else None,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                            detail=exc.errors(include_url=False, include_context=False))


def _get_owned_report(repo: ReportRepository, report_id: str, user: UserProfile) -> Report:
    report = repo.get(report_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    if report.user_id != user.id and user.role not in MODERATOR_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to modify this report")
    return report


@router.get("/reports", response_model=Page[Report])
def list_reports(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    severity: Optional[Severity] = None,
    report_status: Optional[ReportStatus] = Query(default=None, alias="status"),
    tags: Optional[str] = None,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    radius_km: Optional[float] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    repo: ReportRepository = Depends(get_repository),
):
    """List one page of reports, newest first."""
    filters = _parse_filters(request, severity, report_status, tags, lat, lng, radius_km, start, end)
    logger.debug(f"Listing reports page={page} limit={limit}", extra={"filters": filters.to_query_params()})
    return repo.list(filters, page, limit)


@router.post("/reports", response_model=Report, status_code=status.HTTP_201_CREATED)
def create_report(
    payload: ReportCreate,
    user: UserProfile = Depends(require_user),
    repo: ReportRepository = Depends(get_repository),
):
    """Store a new report for the signed-in user."""
    return repo.create(payload, user_id=user.id)


@router.get("/reports/{report_id}", response_model=Report)
def get_report(report_id: str, repo: ReportRepository = Depends(get_repository)):
    report = repo.get(report_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return report


@router.put("/reports/{report_id}", response_model=Report)
def update_report(
    report_id: str,
    changes: ReportUpdate,
    user: UserProfile = Depends(require_user),
    repo: ReportRepository = Depends(get_repository),
):
    """Apply a partial update; only the author or a moderator may change a report."""
    _get_owned_report(repo, report_id, user)
    if changes.status is not None and user.role not in MODERATOR_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only moderators can change status")
    updated = repo.update(report_id, changes)
    if updated is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return updated


@router.delete("/reports/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_report(
    report_id: str,
    user: UserProfile = Depends(require_user),
    repo: ReportRepository = Depends(get_repository),
):
    _get_owned_report(repo, report_id, user)
    repo.delete(report_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/analytics/heatmap", response_model=HeatmapData)
def heatmap(time_range: str = "7d", repo: ReportRepository = Depends(get_repository)):
    """Gridded report intensity for the requested time range."""
    if time_range not in TIME_RANGES:
        raise HTTPException(status_code=400, detail=f"Invalid time range: {time_range}")
    since = time_range_start(time_range, datetime.now(timezone.utc))
    return build_heatmap(repo.all(since=since), time_range=time_range)


@router.get("/analytics/overview", response_model=AnalyticsOverview)
def overview(repo: ReportRepository = Depends(get_repository)):
    return build_overview(repo.all())


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok", timestamp=datetime.now(timezone.utc))
