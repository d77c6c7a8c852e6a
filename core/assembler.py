"""Client-side working set: pagination merge, local reveal, cache and stale guard."""

import itertools
import logging
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from core.models import View

log = logging.getLogger(__name__)

T = TypeVar("T")


class ResultAssembler(Generic[T]):
    """Merges upstream pages into one deduplicated, progressively revealed list.

    ``has_more`` reports whether the upstream source has records beyond those
    fetched so far. ``show_more`` reveals records already held in memory and
    never touches the network.
    """

    def __init__(self, initial_display: int = 16, increment: int = 16):
        self.initial_display = initial_display
        self.increment = increment
        self.items: list[T] = []
        self.total = 0
        self.fetched_count = 0
        self.visible = 0
        self._seen: set[str] = set()

    def merge(self, items: list[T], total: int, offset: int = 0, raw_count: int | None = None) -> int:
        """Append a page, first occurrence of an id wins. Returns how many were new."""
        added = 0
        for item in items:
            item_id = item.id  # type: ignore[attr-defined]
            if item_id in self._seen:
                log.debug(f"Dropping duplicate item {item_id}")
                continue
            self._seen.add(item_id)
            self.items.append(item)
            added += 1

        consumed = raw_count if raw_count is not None else len(items)
        self.fetched_count = max(self.fetched_count, offset + consumed)
        self.total = total
        if not self.visible:
            self.visible = min(self.initial_display, len(self.items))
        log.debug(
            f"Merged page at offset {offset}: {added} new, {len(self.items)} held, "
            f"{self.fetched_count}/{self.total} fetched"
        )
        return added

    def replace(self, items: list[T], total: int, raw_count: int | None = None) -> None:
        self.reset()
        self.merge(items, total, offset=0, raw_count=raw_count)

    def reset(self) -> None:
        self.items = []
        self.total = 0
        self.fetched_count = 0
        self.visible = 0
        self._seen = set()

    @property
    def has_more(self) -> bool:
        return self.fetched_count < self.total

    @property
    def next_offset(self) -> int:
        return self.fetched_count

    @property
    def displayed(self) -> list[T]:
        return self.items[: self.visible]

    @property
    def can_show_more(self) -> bool:
        return self.visible < len(self.items)

    @property
    def needs_network(self) -> bool:
        return not self.can_show_more and self.has_more

    def show_more(self, count: int | None = None) -> list[T]:
        """Reveal up to ``count`` more held items; returns the newly revealed slice."""
        step = self.increment if count is None else count
        start = self.visible
        self.visible = min(self.visible + step, len(self.items))
        return self.items[start : self.visible]

    def reset_display(self) -> None:
        self.visible = min(self.initial_display, len(self.items))


@dataclass
class CachedView:
    items: list
    total: int
    fetched_count: int
    title: str | None = None
    theme: str | None = None


@dataclass
class HomepageCache:
    """Homepage results per view for the lifetime of a session; never expires."""

    entries: dict[View, CachedView] = field(default_factory=dict)

    def get(self, view: View) -> CachedView | None:
        return self.entries.get(view)

    def store(self, view: View, entry: CachedView) -> None:
        log.debug(f"Caching {len(entry.items)} homepage {view.value} (total {entry.total})")
        self.entries[view] = entry

    def clear(self) -> None:
        self.entries.clear()


class RequestGuard:
    """Monotonic generation counter; only the latest fetch may apply its results."""

    def __init__(self):
        self._counter = itertools.count(1)
        self._current = 0

    def begin(self) -> int:
        self._current = next(self._counter)
        return self._current

    def is_current(self, token: int) -> bool:
        return token == self._current
