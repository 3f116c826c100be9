"""Visible-window arithmetic for rendering a long fixed-height list."""

from __future__ import annotations

import math
from typing import Iterator, Sequence, Tuple, TypeVar

T = TypeVar("T")


class VirtualWindow:
    """Compute which rows to materialize for a scroll offset, and when the end is near.

    Rows outside `[start, stop)` stay logically present but are not rendered.
    """

    def __init__(
        self,
        item_height: float,
        viewport_height: float,
        overscan: int = 5,
        end_threshold: float = 0.8,
    ) -> None:
        if item_height <= 0 or viewport_height <= 0:
            raise ValueError("item_height and viewport_height must be positive")
        if overscan < 0:
            raise ValueError("overscan must not be negative")
        if not 0 < end_threshold <= 1:
            raise ValueError("end_threshold must be in (0, 1]")
        self.item_height = item_height
        self.viewport_height = viewport_height
        self.overscan = overscan
        self.end_threshold = end_threshold
        self._at_end = False

    def visible_range(self, item_count: int, scroll_offset: float) -> Tuple[int, int]:
        """Half-open index range of rows to render, overscan included."""
        if item_count <= 0:
            return 0, 0
        offset = max(0.0, scroll_offset)
        first = int(offset // self.item_height)
        last = int(math.ceil((offset + self.viewport_height) / self.item_height))
        start = max(0, first - self.overscan)
        stop = min(item_count, last + self.overscan)
        return min(start, stop), stop

    def materialize(self, items: Sequence[T], scroll_offset: float) -> Iterator[Tuple[int, T]]:
        """Yield `(index, item)` for rendered rows, in list order."""
        start, stop = self.visible_range(len(items), scroll_offset)
        for index in range(start, stop):
            yield index, items[index]

    def scroll_fraction(self, item_count: int, scroll_offset: float) -> float:
        """How far through the scrollable extent the viewport is (1.0 when it all fits)."""
        max_scroll = item_count * self.item_height - self.viewport_height
        if max_scroll <= 0:
            return 1.0
        return min(1.0, max(0.0, scroll_offset / max_scroll))

    def scrolled(self, item_count: int, scroll_offset: float) -> bool:
        """Report a scroll; True exactly once each time the end threshold is crossed downward."""
        if item_count <= 0:
            return False
        if self.scroll_fraction(item_count, scroll_offset) >= self.end_threshold:
            if self._at_end:
                return False
            self._at_end = True
            return True
        self._at_end = False
        return False

    def reset(self) -> None:
        self._at_end = False
