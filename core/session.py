import logging
from typing import Awaitable, Callable

from config import settings
from core.assembler import CachedView, HomepageCache, RequestGuard, ResultAssembler
from core.models import View
from core.service import BrowseResult, fetch_ebay_data

log = logging.getLogger(__name__)

Fetcher = Callable[..., Awaitable[BrowseResult]]


class BrowseSession:
    """One user's browsing state: the current view, its working set, and the homepage cache.

    Every network fetch takes a token from the request guard; a response whose
    token is no longer current is dropped without touching state. ``generation``
    changes on every ``load`` so controls built for an earlier browse can tell
    they are out of date.
    """

    def __init__(
        self,
        fetcher: Fetcher = fetch_ebay_data,
        initial_display: int | None = None,
        increment: int | None = None,
    ):
        self.fetcher = fetcher
        self.initial_display = initial_display or settings.initial_display_count
        self.results: ResultAssembler = ResultAssembler(
            self.initial_display,
            increment or settings.load_more_increment,
        )
        self.cache = HomepageCache()
        self.guard = RequestGuard()
        self.view = View.DEALS
        self.query = ""
        self.theme: str | None = None
        self.title: str | None = None
        self.error: str | None = None
        self.fallback: list = []
        self.loading = False
        self.generation = 0

    @property
    def is_homepage(self) -> bool:
        return not self.query

    @property
    def displayed(self) -> list:
        return self.results.displayed

    @property
    def can_load_more(self) -> bool:
        return self.results.can_show_more or self.results.has_more

    def _apply_cached(self, cached: CachedView) -> None:
        self.results.reset()
        self.results.merge(cached.items, cached.total, offset=0, raw_count=cached.fetched_count)
        self.title = cached.title
        self.theme = cached.theme

    def _cache_homepage(self) -> None:
        if not self.is_homepage or not self.results.items:
            return
        self.cache.store(
            self.view,
            CachedView(
                items=list(self.results.items),
                total=self.results.total,
                fetched_count=self.results.fetched_count,
                title=self.title,
                theme=self.theme,
            ),
        )

    async def load(self, view: View, query: str | None = "") -> bool:
        """Switch to ``view`` for ``query``; an empty query means the homepage.

        Returns False when the response was superseded by a newer request.
        """
        self.generation += 1
        self.view = view
        self.query = (query or "").strip()
        self.error = None
        self.fallback = []

        if self.is_homepage:
            cached = self.cache.get(view)
            if cached and cached.items:
                # Still invalidate anything in flight so it cannot overwrite the cached view.
                self.guard.begin()
                self.loading = False
                self._apply_cached(cached)
                log.info(f"Using cached homepage {view.value} ({len(cached.items)} items)")
                return True

        token = self.guard.begin()
        self.loading = True
        self.results.reset()
        self.theme = None
        result = await self.fetcher(self.query, view, 0)

        if not self.guard.is_current(token):
            log.info(f"Discarding stale {view.value} response for query {self.query!r}")
            return False

        self.loading = False
        self.results.replace(result.items, result.total, raw_count=result.raw_count)
        self.title = result.title
        self.error = result.error
        if self.is_homepage:
            self.theme = result.query_used
        self._cache_homepage()

        if not self.is_homepage and not result.items and not result.error:
            await self._load_fallback(token)
        return True

    async def _load_fallback(self, token: int) -> None:
        log.info(f"No {self.view.value} for {self.query!r}, loading recommendations")
        fallback = await self.fetcher("", self.view, 0)
        if self.guard.is_current(token) and not fallback.error:
            self.fallback = fallback.items[: self.initial_display]

    def show_more(self) -> list:
        """Reveal the next held items without any network call."""
        return self.results.show_more()

    async def fetch_next_page(self) -> bool:
        """Fetch the next upstream page and merge it. Returns True if new items arrived."""
        if not self.results.has_more:
            return False

        token = self.guard.begin()
        self.loading = True
        offset = self.results.next_offset
        theme = self.theme if self.is_homepage else None
        result = await self.fetcher(self.query, self.view, offset, theme=theme)

        if not self.guard.is_current(token):
            log.info(f"Discarding stale page at offset {offset} for query {self.query!r}")
            return False

        self.loading = False
        if result.error:
            self.error = result.error
            return False

        added = self.results.merge(result.items, result.total, offset=offset, raw_count=result.raw_count)
        self._cache_homepage()
        return added > 0

    async def load_more(self) -> list:
        """Reveal held items first; go to the network only when none are held back."""
        if self.results.can_show_more:
            return self.show_more()
        # Pages whose items were all filtered out still advance the offset.
        while self.results.has_more:
            offset = self.results.next_offset
            if await self.fetch_next_page():
                return self.show_more()
            if self.error or self.loading or self.results.next_offset <= offset:
                break
        return []
