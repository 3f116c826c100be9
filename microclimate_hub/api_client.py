"""REST client for the Microclimate Hub backend with a client-side TTL cache.

Read calls pass a cache key and TTL; a valid cached value short-circuits the
network. Successful responses are cached, failures never are. Writes
invalidate the cache entries that depend on them by key substring.
"""

from __future__ import annotations

from typing import Any, BinaryIO, Optional
from urllib.parse import urlencode

import requests

from microclimate_hub import config
from microclimate_hub.auth import AuthCollaborator, AuthSession, require_session
from microclimate_hub.cache import RequestCache, build_request_cache
from microclimate_hub.domain import (
    AnalyticsOverview,
    HeatmapData,
    Notification,
    Page,
    Report,
    ReportCreate,
    ReportFilters,
    ReportUpdate,
    UserProfile,
    parse_report_form,
)
from microclimate_hub.errors import AuthRequiredError
from microclimate_hub.transport import send_request
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="api_client")

MINUTE = 60.0

CURRENT_USER_TTL = 10 * MINUTE
REPORTS_TTL = 2 * MINUTE
REPORT_TTL = 5 * MINUTE
IMPACT_TTL = 10 * MINUTE
PERSONAL_IMPACT_TTL = 5 * MINUTE
ANALYTICS_TTL = 15 * MINUTE
HEATMAP_TTL = 5 * MINUTE
NOTIFICATIONS_TTL = 1 * MINUTE
WEATHER_TTL = 30 * MINUTE
HEALTH_TTL = 1 * MINUTE


class ApiClient:
    """Typed wrapper over the report service and its companion endpoints."""

    def __init__(
        self,
        base_url: str,
        cache: RequestCache,
        *,
        auth: AuthCollaborator | None = None,
        timeout: float = 10.0,
        default_ttl: float = 5 * MINUTE,
        session=None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.cache = cache
        self.auth = auth
        self.timeout = timeout
        self.default_ttl = default_ttl
        self.http = session or requests.Session()

    @classmethod
    def from_settings(
        cls,
        settings: config.Settings | None = None,
        *,
        auth: AuthCollaborator | None = None,
        cache: RequestCache | None = None,
    ) -> "ApiClient":
        settings = settings or config.settings
        return cls(
            settings.api_base_url,
            cache or build_request_cache(settings),
            auth=auth,
            timeout=settings.api_timeout_seconds,
            default_ttl=settings.default_cache_ttl_seconds,
        )

    # ------------------------------------------------------------------
    # core request + cache
    # ------------------------------------------------------------------

    def request(
        self,
        method: str,
        endpoint: str,
        *,
        cache_key: str | None = None,
        ttl: float | None = None,
        authenticated: bool = False,
        **kwargs,
    ) -> Any:
        """Send a request, consulting and populating the cache when `cache_key` is given.

        Authenticated calls need a live session even on a cache hit, and their
        entries are keyed per user as `<cache_key>@<user id>`.
        """
        headers = dict(kwargs.pop("headers", None) or {})
        if authenticated:
            session = self._require_session()
            headers["Authorization"] = f"Bearer {session.access_token}"
            if cache_key is not None:
                cache_key = f"{cache_key}@{session.user.id}"

        if cache_key is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Cache hit for '{cache_key}'")
                return cached

        data = send_request(self.http, method, f"{self.base_url}{endpoint}", timeout=self.timeout,
                            headers=headers, **kwargs)

        if cache_key is not None:
            self.cache.set(cache_key, data, self.default_ttl if ttl is None else ttl)
        return data

    def clear_cache(self, pattern: str | None = None) -> None:
        """Invalidate cache entries whose key contains `pattern`, or everything."""
        self.cache.invalidate(pattern)

    def _require_session(self) -> AuthSession:
        if self.auth is None:
            raise AuthRequiredError("No auth collaborator configured")
        return require_session(self.auth)

    # ------------------------------------------------------------------
    # reports
    # ------------------------------------------------------------------

    @staticmethod
    def reports_query(filters: ReportFilters | None, page: int, limit: int) -> str:
        """Deterministic query string used both on the wire and as the cache key suffix."""
        params = {"page": str(page), "limit": str(limit)}
        if filters is not None:
            params.update(filters.to_query_params())
        return urlencode(params)

    def get_reports(self, filters: ReportFilters | None = None, page: int = 1, limit: int = 20) -> Page[Report]:
        """List one page of reports matching `filters`."""
        query = self.reports_query(filters, page, limit)
        data = self.request("GET", f"/reports?{query}", cache_key=f"reports-{query}", ttl=REPORTS_TTL)
        return Page[Report].model_validate(data)

    def get_report(self, report_id: str) -> Report:
        data = self.request("GET", f"/reports/{report_id}", cache_key=f"report-{report_id}", ttl=REPORT_TTL)
        return Report.model_validate(data)

    def create_report(self, form: dict | ReportCreate) -> Report:
        """Validate and submit a new report; validation failures never reach the network."""
        payload = parse_report_form(form)
        data = self.request("POST", "/reports", json=payload.model_dump(mode="json", exclude_none=True),
                            authenticated=True)
        self.clear_cache("reports")
        return Report.model_validate(data)

    def update_report(self, report_id: str, changes: dict | ReportUpdate) -> Report:
        if not isinstance(changes, ReportUpdate):
            changes = ReportUpdate.model_validate(changes)
        data = self.request("PUT", f"/reports/{report_id}",
                            json=changes.model_dump(mode="json", exclude_unset=True), authenticated=True)
        self.clear_cache(f"report-{report_id}")
        self.clear_cache("reports")
        return Report.model_validate(data)

    def delete_report(self, report_id: str) -> None:
        self.request("DELETE", f"/reports/{report_id}", authenticated=True)
        self.clear_cache(f"report-{report_id}")
        self.clear_cache("reports")

    # ------------------------------------------------------------------
    # analytics / impact
    # ------------------------------------------------------------------

    def get_analytics(self) -> AnalyticsOverview:
        data = self.request("GET", "/analytics/overview", cache_key="analytics", ttl=ANALYTICS_TTL)
        return AnalyticsOverview.model_validate(data)

    def get_heatmap_data(self, time_range: str = "7d") -> HeatmapData:
        data = self.request("GET", "/analytics/heatmap", params={"time_range": time_range},
                            cache_key=f"heatmap-{time_range}", ttl=HEATMAP_TTL)
        return HeatmapData.model_validate(data)

    def get_impact_data(self) -> dict:
        return self.request("GET", "/impact", cache_key="impact-data", ttl=IMPACT_TTL)

    def get_personal_impact(self) -> dict:
        return self.request("GET", "/impact/personal", cache_key="personal-impact", ttl=PERSONAL_IMPACT_TTL,
                            authenticated=True)

    def get_weather(self, lat: float, lng: float) -> dict:
        """Current conditions near a point, as reported by the backend."""
        return self.request("GET", "/weather", params={"lat": lat, "lng": lng},
                            cache_key=f"weather-{lat}-{lng}", ttl=WEATHER_TTL)

    # ------------------------------------------------------------------
    # notifications
    # ------------------------------------------------------------------

    def get_notifications(self) -> list[Notification]:
        data = self.request("GET", "/notifications", cache_key="notifications", ttl=NOTIFICATIONS_TTL,
                            authenticated=True)
        return [Notification.model_validate(item) for item in data or []]

    def mark_notification_read(self, notification_id: str) -> None:
        self.request("PUT", f"/notifications/{notification_id}/read", authenticated=True)
        self.clear_cache("notifications")

    def clear_all_notifications(self) -> None:
        self.request("DELETE", "/notifications", authenticated=True)
        self.clear_cache("notifications")

    # ------------------------------------------------------------------
    # profile
    # ------------------------------------------------------------------

    def get_current_user(self) -> UserProfile:
        data = self.request("GET", "/auth/me", cache_key="current-user", ttl=CURRENT_USER_TTL, authenticated=True)
        return UserProfile.model_validate(data)

    def update_profile(self, changes: dict) -> UserProfile:
        data = self.request("PUT", "/profile", json=changes, authenticated=True)
        self.clear_cache("current-user")
        return UserProfile.model_validate(data)

    def update_preferences(self, preferences: dict) -> UserProfile:
        data = self.request("PUT", "/profile/preferences", json=preferences, authenticated=True)
        self.clear_cache("current-user")
        return UserProfile.model_validate(data)

    # ------------------------------------------------------------------
    # media uploads
    # ------------------------------------------------------------------

    def upload_image(self, fileobj: BinaryIO, filename: str = "image.jpg") -> str:
        """Upload a photo and return its URL for use in `ReportCreate.images`."""
        data = self.request("POST", "/upload/image", files={"image": (filename, fileobj)}, authenticated=True)
        return data["url"]

    def upload_voice_note(self, fileobj: BinaryIO, filename: str = "voice-note.webm") -> str:
        """Upload a voice note and return its URL for use in `ReportCreate.voice_note`."""
        data = self.request("POST", "/upload/audio", files={"audio": (filename, fileobj)}, authenticated=True)
        return data["url"]

    def health_check(self) -> Optional[dict]:
        return self.request("GET", "/health", cache_key="health", ttl=HEALTH_TTL)
