"""Incremental report feed: fetch page N, append, ask for N+1 near the end.

`PagedFeed` runs on a single asyncio event loop. The fetching flag is raised
before the first await, so any number of triggers arriving while a page is in
flight collapse into that one fetch. Changing the query bumps a generation
counter; a response that belongs to an older generation is dropped on arrival.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar

from microclimate_hub.domain import Page, Report, ReportFilters
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="feed")

T = TypeVar("T")

PageFetcher = Callable[[ReportFilters, int, int], Awaitable[Page]]


class PagedFeed(Generic[T]):
    """Ordered accumulation of paged results for one query at a time."""

    def __init__(
        self,
        fetch_page: PageFetcher,
        page_size: int = 10,
        filters: ReportFilters | None = None,
    ) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self._fetch_page = fetch_page
        self.page_size = page_size
        self.filters = filters or ReportFilters()
        self.items: List[T] = []
        self.page = 0
        self.has_more = True
        self.is_fetching = False
        self.error: Optional[BaseException] = None
        self._generation = 0

    def __len__(self) -> int:
        return len(self.items)

    async def load_next_page(self) -> bool:
        """Fetch and append the next page.

        Returns False without fetching when a fetch is already in flight or the
        last page has been seen; returns True once a page has been appended.
        Failures are recorded on `error` and re-raised.
        """
        if self.is_fetching or not self.has_more:
            return False

        self.is_fetching = True
        self.error = None
        generation = self._generation
        next_page = self.page + 1
        filters = self.filters
        try:
            result = await self._fetch_page(filters, next_page, self.page_size)
        except Exception as exc:
            if generation == self._generation:
                self.error = exc
            logger.warning(f"Failed to load page {next_page}", extra={"error": str(exc)})
            raise
        finally:
            # also covers cancellation by a caller-side timeout
            if generation == self._generation:
                self.is_fetching = False

        if generation != self._generation:
            logger.debug(f"Dropping stale page {next_page} from a previous query")
            return False

        self.items.extend(result.items)
        self.page = next_page
        self.has_more = bool(result.has_next)
        logger.debug(f"Loaded page {next_page}: {len(result.items)} items, total {len(self.items)}")
        return True

    async def on_visibility(self, visible: bool) -> bool:
        """Sentinel/intersection signal; loads the next page when the sentinel is visible."""
        if not visible:
            return False
        return await self.load_next_page()

    async def retry(self) -> bool:
        """Re-attempt the page that last failed."""
        return await self.load_next_page()

    def reset(self, filters: ReportFilters | None = None) -> None:
        """Start over for a new query; in-flight responses for the old one are ignored."""
        self._generation += 1
        if filters is not None:
            self.filters = filters
        self.items = []
        self.page = 0
        self.has_more = True
        self.is_fetching = False
        self.error = None
        logger.debug("Feed reset", extra={"filters": self.filters.model_dump(mode="json", exclude_none=True)})


def report_page_fetcher(client: Any) -> PageFetcher:
    """Adapt a blocking `ApiClient.get_reports` into an awaitable page fetcher."""

    async def fetch(filters: ReportFilters, page: int, page_size: int) -> Page[Report]:
        return await asyncio.to_thread(client.get_reports, filters, page, page_size)

    return fetch
