"""Application state container shared by the client-side components.

One `AppState` is created at startup and passed to whatever needs it; there is
no module-level instance. Only the user snapshot, theme, notifications and
request-cache contents are persisted.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from microclimate_hub.cache import CacheEntry, InMemoryRequestCache, RequestCache
from microclimate_hub.domain import Notification, Report, ThemeName, UserProfile
from microclimate_hub.storage import StateStorage
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="state")

STATE_VERSION = 1


@dataclass
class LoadingState:
    """Progress of one named background operation."""
    is_loading: bool
    error: Optional[str] = None


@dataclass
class AppState:
    """Mutable UI/auth/cache state plus the actions that change it."""
    cache: RequestCache = field(default_factory=InMemoryRequestCache)
    clock: Callable[[], float] = time.time
    user: Optional[UserProfile] = None
    theme: ThemeName = ThemeName.DARK
    reports: List[Report] = field(default_factory=list)
    notifications: List[Notification] = field(default_factory=list)
    loading: Dict[str, LoadingState] = field(default_factory=dict)

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    # user ----------------------------------------------------------------

    def set_user(self, user: Optional[UserProfile]) -> None:
        self.user = user

    def update_user(self, **changes: Any) -> None:
        """Merge changes into the current user; ignored when signed out."""
        if self.user is None:
            return
        self.user = self.user.model_copy(update=changes)

    def logout(self) -> None:
        """Forget everything tied to the signed-in user, cached responses included."""
        self.user = None
        self.reports = []
        self.notifications = []
        self.cache.invalidate()

    def set_theme(self, theme: ThemeName | str) -> None:
        self.theme = ThemeName(theme)

    # reports -------------------------------------------------------------

    def set_reports(self, reports: List[Report]) -> None:
        self.reports = list(reports)

    def add_report(self, report: Report) -> None:
        """Newest reports go first."""
        self.reports = [report, *self.reports]

    def update_report(self, report_id: str, **changes: Any) -> None:
        self.reports = [r.model_copy(update=changes) if r.id == report_id else r for r in self.reports]

    def remove_report(self, report_id: str) -> None:
        self.reports = [r for r in self.reports if r.id != report_id]

    # notifications -------------------------------------------------------

    def set_notifications(self, notifications: List[Notification]) -> None:
        self.notifications = list(notifications)

    def add_notification(self, notification: Notification) -> None:
        self.notifications = [notification, *self.notifications]

    def mark_notification_read(self, notification_id: str) -> None:
        self.notifications = [
            n.model_copy(update={"read": True}) if n.id == notification_id else n for n in self.notifications
        ]

    def clear_notifications(self) -> None:
        self.notifications = []

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.notifications if not n.read)

    # loading -------------------------------------------------------------

    def set_loading(self, key: str, is_loading: bool, error: Optional[str] = None) -> None:
        self.loading[key] = LoadingState(is_loading=is_loading, error=error)

    def clear_loading(self, key: str) -> None:
        self.loading.pop(key, None)

    # persistence ---------------------------------------------------------

    def to_document(self) -> dict[str, Any]:
        """JSON-safe subset of the state that survives restarts."""
        return {
            "version": STATE_VERSION,
            "user": self.user.model_dump(mode="json") if self.user else None,
            "theme": self.theme.value,
            "notifications": [n.model_dump(mode="json") for n in self.notifications],
            "cache": {key: entry.to_dict() for key, entry in self.cache.snapshot().items()},
        }

    def persist(self, storage: StateStorage, namespace: str) -> None:
        storage.save(namespace, self.to_document())

    def rehydrate(self, storage: StateStorage, namespace: str) -> bool:
        """Load persisted state, dropping expired cache entries before anything is restored.

        Returns False when nothing (or nothing usable) was stored.
        """
        document = storage.load(namespace)
        if not document:
            return False
        if document.get("version") != STATE_VERSION:
            logger.warning("Discarding persisted state with unknown version", extra={"version": document.get("version")})
            return False

        now = self.clock()
        fresh: list[tuple[str, CacheEntry]] = []
        dropped = 0
        for key, raw in (document.get("cache") or {}).items():
            try:
                entry = CacheEntry.from_dict(raw)
            except (KeyError, TypeError, ValueError):
                dropped += 1
                continue
            if entry.is_valid(now):
                fresh.append((key, entry))
            else:
                dropped += 1

        try:
            user = UserProfile.model_validate(document["user"]) if document.get("user") else None
            notifications = [Notification.model_validate(n) for n in document.get("notifications") or []]
            theme = ThemeName(document.get("theme") or ThemeName.DARK.value)
        except (ValidationError, ValueError) as exc:
            logger.warning("Discarding malformed persisted state", extra={"error": str(exc)})
            return False

        self.user = user
        self.notifications = notifications
        self.theme = theme
        self.cache.restore(fresh)
        logger.debug(f"Rehydrated state: {len(fresh)} cache entries kept, {dropped} pruned")
        return True
