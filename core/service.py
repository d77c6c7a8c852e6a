"""Public fetch/rank operations. Nothing here raises; failures come back as ``error``."""

import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable

import httpx

from config import settings
from core.ebay import EbayAuthError, EbayClient, EbayError, EbaySearchError, ebay_client
from core.filter import filter_deals
from core.models import Auction, Deal, SearchMode, SearchPage, View
from core.normalizer import map_search_page, normalize_to_deal
from core.ranker import SmartDealRanker, smart_ranker
from core.ranking import rank_auctions, rank_deals

log = logging.getLogger(__name__)

GENERIC_ERROR = "An unexpected error occurred while fetching data. Please try refreshing."
DATA_ISSUES_ERROR = "eBay API reported issues with some data."
TOP_DEALS_TITLE = "Today's Top Deals"
TRENDING_AUCTIONS_TITLE = "Trending Auctions"


def _auth_error() -> str:
    return f"Authentication with eBay ({settings.ebay_mode}) failed. Please try again later."


def _search_error(status_code: int | None) -> str:
    return (
        f"eBay ({settings.ebay_mode}) returned an error while searching for items. "
        f"(Status: {status_code if status_code is not None else 'unknown'})"
    )


def _network_error() -> str:
    return (
        f"A network error occurred while searching eBay items ({settings.ebay_mode}). "
        "Please check your connection."
    )


@dataclass
class DealsResult:
    deals: list[Deal] = field(default_factory=list)
    total: int = 0
    raw_count: int = 0
    error: str | None = None


@dataclass
class AuctionsResult:
    auctions: list[Auction] = field(default_factory=list)
    total: int = 0
    raw_count: int = 0
    error: str | None = None


@dataclass
class BrowseResult:
    view: View
    items: list = field(default_factory=list)
    total: int = 0
    offset: int = 0
    raw_count: int = 0
    error: str | None = None
    title: str = ""
    is_homepage: bool = False
    query_used: str = ""
    used_fallback: bool = False

    @property
    def has_more(self) -> bool:
        return self.offset + self.raw_count < self.total


async def _fetch_page(
    request: Callable[[], Awaitable[SearchPage]],
    context: str,
) -> tuple[SearchPage | None, str | None]:
    try:
        return await request(), None
    except EbayAuthError as e:
        log.error(f"Authentication error in {context}: {e}")
        return None, _auth_error()
    except EbaySearchError as e:
        log.error(f"Search error in {context}: {e}")
        return None, _search_error(e.status_code)
    except httpx.HTTPError as e:
        log.error(f"Network error in {context}: {e}")
        return None, _network_error()


async def fetch_deals(
    query: str,
    limit: int | None = None,
    offset: int = 0,
    client: EbayClient | None = None,
) -> DealsResult:
    client = client or ebay_client
    page, error = await _fetch_page(
        lambda: client.search_items(query, limit or settings.deals_fetch_size, offset, SearchMode.DEALS),
        f"fetch_deals({query!r})",
    )
    if page is None:
        return DealsResult(error=error)

    mapped = map_search_page(page, SearchMode.DEALS)
    if page.errors and not mapped.deals:
        error = DATA_ISSUES_ERROR
    return DealsResult(deals=mapped.deals, total=page.total, raw_count=page.raw_count, error=error)


async def fetch_auctions(
    query: str,
    limit: int | None = None,
    offset: int = 0,
    client: EbayClient | None = None,
) -> AuctionsResult:
    client = client or ebay_client
    page, error = await _fetch_page(
        lambda: client.search_items(query, limit or settings.auctions_fetch_size, offset, SearchMode.AUCTIONS),
        f"fetch_auctions({query!r})",
    )
    if page is None:
        return AuctionsResult(error=error)

    mapped = map_search_page(page, SearchMode.AUCTIONS)
    if page.errors and not mapped.auctions:
        error = DATA_ISSUES_ERROR
    return AuctionsResult(auctions=mapped.auctions, total=page.total, raw_count=page.raw_count, error=error)


async def fetch_marketplace_deals(
    limit: int | None = None,
    offset: int = 0,
    client: EbayClient | None = None,
) -> DealsResult:
    client = client or ebay_client
    page, error = await _fetch_page(
        lambda: client.fetch_marketplace_deals(limit=limit or settings.deals_fetch_size, offset=offset),
        "fetch_marketplace_deals",
    )
    if page is None:
        return DealsResult(error=error)

    mapped = map_search_page(page, SearchMode.DEALS)
    if page.errors and not mapped.deals:
        error = DATA_ISSUES_ERROR
    return DealsResult(deals=mapped.deals, total=page.total, raw_count=page.raw_count, error=error)


async def fetch_item_details(item_id: str, client: EbayClient | None = None) -> Deal | None:
    if not item_id or not item_id.strip():
        log.warning("Attempted to fetch details for an empty item id")
        return None

    client = client or ebay_client
    try:
        raw = await client.get_item(item_id)
    except (EbayError, httpx.HTTPError) as e:
        log.error(f"Failed to fetch details for item {item_id}: {e}")
        return None

    if raw.errors:
        log.warning(f"Item {item_id} returned API errors: {raw.errors}. Cannot map to deal.")
        return None
    return normalize_to_deal(raw)


async def rank_and_filter_deals(
    deals: list[Deal],
    user_query: str | None = None,
    ranker: SmartDealRanker | None = None,
) -> list[Deal]:
    """Filter to genuine single-item deals, rank them, then apply the optional ranking service.

    If the ranking service fails, the caller gets ``deals`` back unfiltered and
    in their original order.
    """
    kept, _ = filter_deals(deals, user_query)
    ranked = rank_deals(kept)

    ranker = ranker or smart_ranker
    if not ranker.enabled or not ranked:
        return ranked

    result = await ranker.try_rank_deals(ranked, user_query)
    if result is None:
        log.warning(f"Ranking service unavailable, returning {len(deals)} deals in their original order")
        return list(deals)
    return result


def select_random_themes(themes: list[str], count: int, rng: random.Random | None = None) -> list[str]:
    if count <= 0:
        return []
    if count >= len(themes):
        return list(themes)
    return (rng or random).sample(themes, count)


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


async def _browse_deals(
    user_query: str,
    effective_query: str,
    offset: int,
    client: EbayClient | None,
    ranker: SmartDealRanker | None,
) -> BrowseResult:
    is_homepage = not user_query
    result = await fetch_deals(effective_query, settings.deals_fetch_size, offset, client)
    deals, total, raw_count, error = result.deals, result.total, result.raw_count, result.error

    used_fallback = False
    if is_homepage and not deals and not result.error:
        log.info(f"Homepage query {effective_query or 'empty'!r} yielded 0 deals, trying marketplace deals")
        fallback = await fetch_marketplace_deals(settings.deals_fetch_size, offset, client)
        if fallback.deals:
            deals, total, raw_count = fallback.deals, fallback.total, fallback.raw_count
            used_fallback = True
        if fallback.error and not error:
            error = f"Marketplace Deals API Fallback: {fallback.error}"

    deals = await rank_and_filter_deals(deals, None if is_homepage else user_query, ranker)

    if not is_homepage:
        title = user_query
    elif deals and effective_query and not used_fallback:
        title = f'Deals for "{_capitalize(effective_query)}"'
    else:
        title = TOP_DEALS_TITLE

    return BrowseResult(
        view=View.DEALS,
        items=deals,
        total=total,
        offset=offset,
        raw_count=raw_count,
        error=error,
        title=title,
        is_homepage=is_homepage,
        query_used=effective_query,
        used_fallback=used_fallback,
    )


async def _browse_auctions(
    user_query: str,
    effective_query: str,
    offset: int,
    client: EbayClient | None,
) -> BrowseResult:
    is_homepage = not user_query
    result = await fetch_auctions(effective_query, settings.auctions_fetch_size, offset, client)
    auctions, total, raw_count, error = result.auctions, result.total, result.raw_count, result.error

    used_fallback = False
    if is_homepage and not auctions and not result.error and effective_query:
        log.info(f"Homepage query {effective_query!r} yielded 0 auctions, trying general auctions")
        fallback = await fetch_auctions("", settings.auctions_fetch_size, offset, client)
        if fallback.auctions:
            auctions, total, raw_count = fallback.auctions, fallback.total, fallback.raw_count
            used_fallback = True
        if fallback.error and not error:
            error = fallback.error

    auctions = rank_auctions(auctions)

    if not is_homepage:
        title = user_query
    elif auctions and effective_query and not used_fallback:
        title = f'Auctions for "{_capitalize(effective_query)}"'
    else:
        title = TRENDING_AUCTIONS_TITLE

    return BrowseResult(
        view=View.AUCTIONS,
        items=auctions,
        total=total,
        offset=offset,
        raw_count=raw_count,
        error=error,
        title=title,
        is_homepage=is_homepage,
        query_used=effective_query,
        used_fallback=used_fallback,
    )


async def fetch_ebay_data(
    user_query: str | None,
    view: View = View.DEALS,
    offset: int = 0,
    theme: str | None = None,
    client: EbayClient | None = None,
    ranker: SmartDealRanker | None = None,
    rng: random.Random | None = None,
) -> BrowseResult:
    """Fetch one page for a view.

    Without a user query a homepage theme is used (``theme`` pins it for later
    pages), with sequential fallbacks when the themed query comes back empty.
    """
    user_query = (user_query or "").strip()
    is_homepage = not user_query

    try:
        if is_homepage:
            if theme is None:
                themes = select_random_themes(settings.homepage_themes, settings.homepage_theme_count, rng)
                theme = themes[0] if themes else ""
            effective_query = theme
            log.info(f"Homepage {view.value} using theme {effective_query!r}")
        else:
            effective_query = user_query
            log.info(f"User search {user_query!r} for {view.value}")

        if view is View.DEALS:
            return await _browse_deals(user_query, effective_query, offset, client, ranker)
        return await _browse_auctions(user_query, effective_query, offset, client)

    except Exception as e:
        log.exception(f"Unexpected error fetching {view.value} (query: {user_query!r}): {e}")
        if is_homepage:
            title = TOP_DEALS_TITLE if view is View.DEALS else TRENDING_AUCTIONS_TITLE
        else:
            title = user_query
        return BrowseResult(view=view, offset=offset, error=GENERIC_ERROR, title=title, is_homepage=is_homepage)
